"""Execution runtime for plans and workflows.

 The runtime takes plans produced by the planning subsystem and executes them:

 - ``SequentialExecutor`` drives an ordered plan as a persisted LangGraph state
   machine with approval gates and automatic remediation.
 - ``GraphExecutor`` runs a dependency graph of workflow nodes concurrently.
 - ``PipelineExecutor`` runs named pipelines stage by stage.
 - ``LiveExecutionMap`` tracks which executions have a live owner, and
   ``sweep_interrupted`` / ``RecoverySweeper`` fail the ones that lost it.

 Dependencies are injected through ``EngineDeps``.
 """

from .engine import SequentialExecutor
from .graph import GraphExecutor, SharedContext
from .live import LiveExecutionMap
from .models import EngineDeps
from .pipeline import Pipeline, PipelineExecutor, PipelineRegistry
from .recovery import INTERRUPTED_REASON, RecoverySweeper, sweep_interrupted

__all__ = [
    "EngineDeps",
    "GraphExecutor",
    "INTERRUPTED_REASON",
    "LiveExecutionMap",
    "Pipeline",
    "PipelineExecutor",
    "PipelineRegistry",
    "RecoverySweeper",
    "SequentialExecutor",
    "SharedContext",
    "sweep_interrupted",
]
