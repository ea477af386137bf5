from __future__ import annotations

"""Reasoning backend contract and the pydantic_ai adapter.

The backend accepts a fully rendered prompt and returns raw, free-form text.
The engine owns every step after that (JSON extraction, validation, repair);
backends are never assumed to return clean JSON.
"""

import logging
from typing import Any, Optional, Protocol

from pydantic_ai import Agent

logger = logging.getLogger(__name__)

DEFAULT_SYSTEM_PROMPT = (
    "You are the planning and diagnosis backend of a workflow execution engine. "
    "Answer with the JSON requested by the user message."
)


class ReasoningBackend(Protocol):
    """Async text-in/text-out reasoning backend."""

    async def complete(self, prompt: str) -> str: ...


class SyncReasoningBackend(Protocol):
    """Blocking reasoning backend; run on a worker pool by ``ReasoningClient``."""

    def complete(self, prompt: str) -> str: ...


class PydanticAIReasoningBackend:
    """Reasoning backend that delegates to a Pydantic AI agent with ``str`` output.

    Args:
        model: A Pydantic AI model instance or model identifier
            (e.g. ``"openai:gpt-4o"``).
        system_prompt: Optional override of the system prompt.
    """

    def __init__(self, model: Any, *, system_prompt: Optional[str] = None) -> None:
        self._model = model
        self._agent: Agent = Agent(
            model,
            output_type=str,
            system_prompt=system_prompt or DEFAULT_SYSTEM_PROMPT,
        )

    async def complete(self, prompt: str) -> str:
        result = await self._agent.run(prompt)
        output = result.output
        logger.debug(f"Reasoning backend returned {len(str(output))} characters")
        return output if isinstance(output, str) else str(output)
