from __future__ import annotations

"""Error remediation advisor.

Given a failing step and its error, ``ErrorRemediationAdvisor`` asks the
reasoning backend for a ``RemediationPlan``: retry with corrected arguments, or
abandon the execution.

The advisor makes exactly one reasoning call per failure and does not re-ask;
output that fails both the strict and the lenient parse raises
``PlanningError``. The recovery-attempt budget is enforced by the caller.
"""

import logging
import traceback
from typing import Any, Dict, Mapping

from ..errors import PlanningError
from ..planning import prompts
from ..planning.parsing import OutputParseError
from ..planning.steps import remediation_parser
from ..reasoning.base import ReasoningBackend
from ..schemas.domain import RemediationPlan

logger = logging.getLogger(__name__)

STACK_TRACE_LIMIT = 4000


def format_error(error: BaseException, limit: int = STACK_TRACE_LIMIT) -> Dict[str, str]:
    """Return the message and a bounded traceback excerpt of ``error``."""
    trace = "".join(traceback.format_exception(type(error), error, error.__traceback__))
    if len(trace) > limit:
        trace = "...\n" + trace[-limit:]
    message = str(error) or type(error).__name__
    return {"error_message": message, "stack_trace": trace}


class ErrorRemediationAdvisor:
    """Diagnose a failed step and propose a fix via the reasoning backend."""

    def __init__(self, *, reasoning: ReasoningBackend) -> None:
        self._reasoning = reasoning
        self._parser = remediation_parser()

    async def advise(self, agent_name: str, arguments: Mapping[str, Any], error: BaseException) -> RemediationPlan:
        """
        Produce a retry-or-abandon verdict for a failed step.

        Args:
            agent_name: Name of the capability that failed.
            arguments: The arguments the step was executed with.
            error: The raised error (its message and traceback are sent to the backend).

        Returns:
            RemediationPlan: The parsed verdict.

        Raises:
            PlanningError: If the backend output is not a valid remediation plan.
        """
        prompt = prompts.render(
            prompts.REMEDIATION_PROMPT,
            agent_name=agent_name,
            arguments=prompts.to_prompt_json(dict(arguments)),
            **format_error(error),
        )
        raw = await self._reasoning.complete(prompt)
        try:
            plan = self._parser.parse(raw)
        except OutputParseError as e:
            logger.error(f"Remediation advisor returned invalid output for '{agent_name}': {e}")
            raise PlanningError(f"invalid remediation plan: {e}", raw_output=raw) from e
        logger.info(f"Remediation verdict for '{agent_name}': {plan.action.value} ({plan.justification})")
        return plan
