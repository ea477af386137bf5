"""Capability registry and capability contract.

 A *capability* is the unit of work a plan step or workflow node names.

 - The planner emits steps with a capability name taken from the registry
   catalog.
 - The executors resolve that name through ``CapabilityRegistry``.
 - Capabilities receive the accumulated context overlaid with the step's own
   arguments and return a ``StepResult``.

 This package exports:

 - ``Capability``: protocol for async capability execution.
 - ``FunctionCapability``: adapter turning an async function into a capability.
 - ``CapabilityRegistry``: name → capability implementation mapping.
 - ``Toolbox``: a named group of registered capabilities used to narrow planning.
 """

from .base import Capability, FunctionCapability
from .registry import ENTRY_POINT_GROUP, CapabilityRegistry, Toolbox, can_handle, requires_approval

__all__ = [
    "Capability",
    "FunctionCapability",
    "CapabilityRegistry",
    "ENTRY_POINT_GROUP",
    "Toolbox",
    "can_handle",
    "requires_approval",
]
