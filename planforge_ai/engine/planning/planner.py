from __future__ import annotations

"""Structured planning.

This module defines the planner used by ``ExecutionService``.

Responsibilities
----------------

- Convert a goal and an initial context into a sequential plan
  (``List[PlanStep]``) or a workflow graph (``List[WorkflowNode]``).
- Render the request for the reasoning backend, including the capability
  catalog, and parse the free-form answer with the strict/lenient discipline
  of ``planning.parsing``.
- When the registry defines toolboxes, route first: one call picks a toolbox
  by name and planning is offered only that toolbox's catalog.

Repair policy
-------------

If neither the strict nor the lenient pass yields a valid structure, the
planner re-asks exactly once with a "return ONLY the JSON array matching this
schema" prompt. If that answer is unusable too, ``PlanningError`` is raised
with the raw outputs attached. There are no further automatic retries.

The planner is intentionally constrained:

- It does not execute capabilities.
- It does not check that every ``agent_name`` resolves; unknown names surface
  as ordinary step failures at execution time.
"""

import logging
from typing import Any, Dict, List, Optional, Tuple, TypeVar

from ..capabilities.registry import CapabilityRegistry
from ..errors import PlanningError
from ..reasoning.base import ReasoningBackend
from ..schemas.domain import PlanStep, WorkflowNode
from . import prompts
from .parsing import OutputParseError, StructuredOutputParser
from .steps import plan_parser, topological_order, workflow_parser

logger = logging.getLogger(__name__)

T = TypeVar("T")


class StructuredPlanner:
    """Planner that turns a goal into plan steps or workflow nodes.

    Args:
        reasoning: The reasoning client/backend (``complete(prompt) -> str``).
        registry: Capability registry whose catalog is offered to the backend.
    """

    def __init__(self, *, reasoning: ReasoningBackend, registry: CapabilityRegistry) -> None:
        self._reasoning = reasoning
        self._registry = registry
        self._plan_parser = plan_parser()
        self._workflow_parser = workflow_parser()

    async def create_plan(self, goal: str, context: Optional[Dict[str, Any]] = None) -> List[PlanStep]:
        """Generate a sequential plan.

        Parameters
        ----------
        goal:
            The task description in natural language.
        context:
            Initial context made available to the backend.

        Returns
        -------
        list[PlanStep]
            The ordered steps; possibly empty.

        Raises
        ------
        PlanningError
            When no valid plan could be parsed after one re-ask, or the router
            picked no known toolbox.
        """
        tools = await self._route(goal)
        prompt = prompts.render(
            prompts.PLAN_PROMPT,
            goal=goal,
            tools=self._registry.catalog_json(tools),
            context=prompts.render_context(context or {}),
        )
        count = len(self._registry) if tools is None else len(tools)
        logger.info(f"Requesting plan from reasoning backend ({count} tools) for goal: '{goal}'")
        steps = await self._ask(prompt, self._plan_parser, what="plan")
        logger.info(f"Planner produced a plan of {len(steps)} step(s)")
        return steps

    async def create_workflow(self, goal: str, context: Optional[Dict[str, Any]] = None) -> List[WorkflowNode]:
        """Generate a workflow graph.

        The returned graph is validated (unique ids, known dependencies, no
        cycles) so structural problems surface as ``PlanningError`` here rather
        than at execution time.
        """
        tools = await self._route(goal)
        prompt = prompts.render(
            prompts.WORKFLOW_PROMPT,
            goal=goal,
            tools=self._registry.catalog_json(tools),
            context=prompts.render_context(context or {}),
        )
        logger.info(f"Requesting workflow from reasoning backend for goal: '{goal}'")
        nodes = await self._ask(prompt, self._workflow_parser, what="workflow")
        topological_order(nodes)
        logger.info(f"Planner produced a workflow of {len(nodes)} node(s)")
        return nodes

    async def _ask(self, prompt: str, parser: StructuredOutputParser[T], *, what: str) -> T:
        raw = await self._reasoning.complete(prompt)
        try:
            return parser.parse(raw)
        except OutputParseError as first_error:
            logger.warning(f"Could not parse {what} from reasoning output ({first_error}); re-asking once")

        repair_prompt = prompts.render(prompts.REPAIR_PROMPT, previous=raw, schema=parser.schema_json())
        repaired = await self._reasoning.complete(repair_prompt)
        try:
            return parser.parse(repaired)
        except OutputParseError as e:
            logger.error(f"Reasoning backend returned an invalid {what} twice; giving up")
            raw_output = f"--- first answer ---\n{raw}\n--- repair answer ---\n{repaired}"
            raise PlanningError(f"reasoning backend returned an invalid {what}: {e}", raw_output=raw_output) from e

    async def _route(self, goal: str) -> Optional[Tuple[str, ...]]:
        """Pick a toolbox for ``goal``; ``None`` means the full catalog."""
        toolboxes = self._registry.toolboxes()
        if not toolboxes:
            return None
        prompt = prompts.render(prompts.ROUTER_PROMPT, goal=goal, toolboxes=prompts.render_toolboxes(toolboxes))
        logger.info(f"Asking reasoning backend to route goal '{goal}' to one of {len(toolboxes)} toolbox(es)")
        raw = await self._reasoning.complete(prompt)
        name = raw.strip().strip("`'\".").strip()
        toolbox = self._registry.toolbox(name)
        if toolbox is None:
            logger.error(f"Router picked an empty or unknown toolbox: '{name}'")
            raise PlanningError(f"no suitable toolbox for the goal (router answered {name!r})", raw_output=raw)
        logger.info(f"Router picked toolbox '{toolbox.name}' ({len(toolbox.capabilities)} tools)")
        return toolbox.capabilities
