"""Planning components.

 The planning subsystem produces either a sequential *plan* (a list of
 ``PlanStep``) or a *workflow* (a list of ``WorkflowNode`` forming a DAG) from a
 goal and an initial context.

 Output handling
 ---------------

 Reasoning output is free-form text. ``parsing`` extracts the JSON payload and
 validates it strictly first, then leniently. The planner re-asks the backend
 at most once before raising ``PlanningError``.

 The planner itself does not execute anything; its output is consumed by
 ``planforge_ai.engine.runtime``.
 """

from .parsing import OutputParseError, StructuredOutputParser, extract_json_block
from .planner import StructuredPlanner
from .steps import topological_order

__all__ = [
    "OutputParseError",
    "StructuredOutputParser",
    "StructuredPlanner",
    "extract_json_block",
    "topological_order",
]
