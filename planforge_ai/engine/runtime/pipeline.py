from __future__ import annotations

"""Named pipelines of capability stages.

A ``Pipeline`` is a predefined, named sequence of stages; each stage lists the
capabilities that run side by side. Applications register their pipelines in
a ``PipelineRegistry`` at startup and invoke them by name.

Execution
---------

- Stages run one after another.
- Before a stage starts, its capabilities are filtered by their optional
  ``can_handle`` predicate against the context accumulated so far; the ones
  that decline are left out of the run. Unregistered names are kept so they
  surface as failures.
- The remaining capabilities of the stage run concurrently through the
  ``GraphExecutor`` as dependency-free workflow nodes.
- The details of the stage's successful results are merged into the context
  of the next stage, in completion order.
- A failure ends the pipeline after its stage: the capabilities of every
  later stage get a skip marker instead of running.

There is no persistence, remediation or approval gate in pipeline mode.
"""

import logging
from dataclasses import dataclass
from typing import Any, Dict, Iterable, List, Optional, Sequence

from ..capabilities import CapabilityRegistry, can_handle
from ..errors import DuplicatePipelineError, PipelineNotFound
from ..schemas.domain import StepResult, WorkflowNode
from .graph import GraphExecutor, skip_marker

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Pipeline:
    """A named sequence of stages, each a list of capability names."""

    name: str
    stages: Sequence[Sequence[str]]
    description: str = ""

    def __post_init__(self) -> None:
        if not self.stages:
            raise ValueError(f"pipeline {self.name!r} has no stages")
        for number, stage in enumerate(self.stages, start=1):
            if not stage:
                raise ValueError(f"pipeline {self.name!r}: stage {number} is empty")
            if len(set(stage)) != len(stage):
                raise ValueError(f"pipeline {self.name!r}: stage {number} lists a capability twice")


def _node(stage_number: int, agent_name: str) -> WorkflowNode:
    return WorkflowNode(id=f"stage-{stage_number}:{agent_name}", agent_name=agent_name)


class PipelineRegistry:
    """In-memory mapping of pipeline names to definitions."""

    def __init__(self, pipelines: Iterable[Pipeline] = ()) -> None:
        self._pipelines: Dict[str, Pipeline] = {}
        for pipeline in pipelines:
            self.register(pipeline)

    def register(self, pipeline: Pipeline) -> None:
        if pipeline.name in self._pipelines:
            raise DuplicatePipelineError(pipeline.name)
        self._pipelines[pipeline.name] = pipeline
        logger.debug(f"Registered pipeline '{pipeline.name}' with {len(pipeline.stages)} stage(s)")

    def get(self, name: str) -> Pipeline:
        pipeline = self._pipelines.get(name)
        if pipeline is None:
            raise PipelineNotFound(name)
        return pipeline

    def names(self) -> List[str]:
        return list(self._pipelines)

    def __len__(self) -> int:
        return len(self._pipelines)

    def __contains__(self, name: object) -> bool:
        return name in self._pipelines


class PipelineExecutor:
    """Run registered pipelines stage by stage."""

    def __init__(
        self,
        *,
        capabilities: CapabilityRegistry,
        pipelines: PipelineRegistry,
        graph: GraphExecutor,
    ) -> None:
        """
        Initialize the PipelineExecutor.

        Args:
            capabilities: Registry used for the ``can_handle`` pre-filter.
            pipelines: The pipelines that can be invoked by name.
            graph: Executor that runs the capabilities of one stage concurrently.
        """
        self._capabilities = capabilities
        self._pipelines = pipelines
        self._graph = graph

    @property
    def pipelines(self) -> PipelineRegistry:
        return self._pipelines

    async def invoke(self, name: str, initial_context: Optional[Dict[str, Any]] = None) -> List[StepResult]:
        """
        Run the pipeline registered as ``name``.

        Returns:
            The results of every stage in stage order (completion order inside
            a stage), followed by skip markers when a stage failed.

        Raises:
            PipelineNotFound: If no pipeline has the given name.
        """
        pipeline = self._pipelines.get(name)
        context = dict(initial_context or {})
        results: List[StepResult] = []
        logger.info(f"Invoking pipeline '{name}' with {len(pipeline.stages)} stage(s)")

        for number, stage in enumerate(pipeline.stages, start=1):
            nodes = self._stage_nodes(number, stage, context)
            if not nodes:
                logger.info(f"Pipeline '{name}' stage {number}: no capability accepted the context")
                continue
            stage_results = await self._graph.execute(nodes, context)
            results.extend(stage_results)
            for result in stage_results:
                if result.ok:
                    context.update(result.details)

            failed = next((r for r in stage_results if not r.ok), None)
            if failed is not None:
                failed_id = failed.node_id or failed.agent_name
                for later, later_stage in enumerate(pipeline.stages[number:], start=number + 1):
                    results.extend(skip_marker(_node(later, agent), failed_id) for agent in later_stage)
                logger.warning(f"Pipeline '{name}' stopped after stage {number}: '{failed_id}' failed")
                break

        logger.info(f"Pipeline '{name}' finished with {len(results)} result(s)")
        return results

    def _stage_nodes(self, number: int, stage: Sequence[str], context: Dict[str, Any]) -> List[WorkflowNode]:
        nodes: List[WorkflowNode] = []
        for agent_name in stage:
            cap = self._capabilities.lookup(agent_name)
            if cap is not None and not can_handle(cap, context):
                logger.debug(f"Capability '{agent_name}' declined stage {number}")
                continue
            nodes.append(_node(number, agent_name))
        return nodes
