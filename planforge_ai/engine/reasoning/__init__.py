"""Reasoning backend boundary.

The planner and the remediation advisor talk to an external reasoning backend
(an LLM) through ``ReasoningClient``, which adds timeouts, a retry budget and a
circuit breaker on top of any ``ReasoningBackend``.
"""

from .base import PydanticAIReasoningBackend, ReasoningBackend, SyncReasoningBackend
from .client import CircuitBreaker, ReasoningClient

__all__ = [
    "CircuitBreaker",
    "PydanticAIReasoningBackend",
    "ReasoningBackend",
    "ReasoningClient",
    "SyncReasoningBackend",
]
