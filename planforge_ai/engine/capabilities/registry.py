from __future__ import annotations

"""Capability registry.

The registry maps a capability name to an executable capability
implementation. It is built once at startup from an explicit list, explicit
``register`` calls, or Python entry points advertised by plugin packages.

The executors use this registry to resolve ``agent_name`` values; the planner
uses ``catalog_json`` to tell the reasoning backend what it may plan with.

Capabilities can also be grouped into named *toolboxes*. When toolboxes are
defined, the planner first asks the backend which toolbox fits the goal and
then plans with that toolbox's catalog only.
"""

import json
import logging
from dataclasses import dataclass
from importlib.metadata import entry_points
from typing import Any, Dict, Iterable, List, Optional, Tuple

from ..errors import CapabilityNotFound, DuplicateCapabilityError
from .base import Capability

logger = logging.getLogger(__name__)

ENTRY_POINT_GROUP = "planforge_ai.capabilities"


@dataclass(frozen=True)
class Toolbox:
    """A named, described subset of the registered capabilities."""

    name: str
    description: str
    capabilities: Tuple[str, ...]


class CapabilityRegistry:
    """
    In-memory mapping of capability names to implementations.

    Notes:
        - ``register`` raises ``DuplicateCapabilityError`` when the name is taken;
          a duplicate is a startup configuration error, never an override.
        - ``get`` raises ``CapabilityNotFound``; ``lookup`` returns ``None``.
    """

    def __init__(self, capabilities: Iterable[Capability] = ()) -> None:
        """
        Initialize the registry.

        Args:
            capabilities: Capabilities to register immediately, in order.
        """
        self._caps: Dict[str, Capability] = {}
        self._toolboxes: Dict[str, Toolbox] = {}
        for cap in capabilities:
            self.register(cap)

    def register(self, cap: Capability) -> None:
        """
        Register a capability implementation.

        Args:
            cap: The capability instance to register. It must expose a ``name`` attribute.

        Raises:
            DuplicateCapabilityError: If another capability already uses the name.
        """
        name = str(cap.name)
        if name in self._caps:
            raise DuplicateCapabilityError(name)
        self._caps[name] = cap
        logger.debug(f"Registered capability '{name}' (requires_approval={requires_approval(cap)})")

    def load_entry_points(self, group: str = ENTRY_POINT_GROUP) -> int:
        """
        Register capabilities advertised by installed packages.

        Each entry point may resolve to a capability instance, or to a
        zero-argument callable returning one capability or an iterable of them.

        Returns:
            The number of capabilities registered.
        """
        count = 0
        for ep in entry_points(group=group):
            loaded = ep.load()
            if callable(loaded) and not hasattr(loaded, "execute"):
                loaded = loaded()
            items = [loaded] if hasattr(loaded, "execute") else list(loaded)
            for cap in items:
                self.register(cap)
                count += 1
            logger.info(f"Loaded {len(items)} capability(ies) from entry point '{ep.name}'")
        return count

    def get(self, name: str) -> Capability:
        """
        Retrieve a registered capability by name.

        Raises:
            CapabilityNotFound: If no capability is registered with the given name.
        """
        cap = self._caps.get(name)
        if cap is None:
            raise CapabilityNotFound(name)
        return cap

    def lookup(self, name: str) -> Optional[Capability]:
        return self._caps.get(name)

    def has(self, name: str) -> bool:
        return name in self._caps

    def names(self) -> List[str]:
        return list(self._caps)

    def catalog(self, names: Optional[Iterable[str]] = None) -> List[Dict[str, str]]:
        """Describe capabilities as ``{"name", "description"}``.

        Without ``names`` every capability is described in registration order.
        """
        selected = list(self._caps) if names is None else [n for n in names if n in self._caps]
        return [{"name": n, "description": str(getattr(self._caps[n], "description", ""))} for n in selected]

    def catalog_json(self, names: Optional[Iterable[str]] = None) -> str:
        return json.dumps(self.catalog(names), indent=2, ensure_ascii=False)

    def add_toolbox(self, name: str, description: str, capabilities: Iterable[str]) -> Toolbox:
        """
        Group registered capabilities under a toolbox name.

        Raises:
            ValueError: If the name is taken or the toolbox would be empty.
            CapabilityNotFound: If a member is not registered.
        """
        if name in self._toolboxes:
            raise ValueError(f"toolbox already defined: {name!r}")
        members = tuple(dict.fromkeys(capabilities))
        if not members:
            raise ValueError(f"toolbox {name!r} has no capabilities")
        for member in members:
            self.get(member)
        toolbox = Toolbox(name=name, description=description, capabilities=members)
        self._toolboxes[name] = toolbox
        logger.debug(f"Defined toolbox '{name}' with {len(members)} capability(ies)")
        return toolbox

    def toolbox(self, name: str) -> Optional[Toolbox]:
        return self._toolboxes.get(name)

    def toolboxes(self) -> List[Toolbox]:
        return list(self._toolboxes.values())

    def candidates(self, context: Dict[str, Any]) -> List[Capability]:
        """
        Pre-filter capabilities by their optional ``can_handle`` predicate.

        Capabilities without ``can_handle`` are always candidates.
        """
        return [cap for cap in self._caps.values() if can_handle(cap, context)]

    def __len__(self) -> int:
        return len(self._caps)

    def __contains__(self, name: object) -> bool:
        return name in self._caps


def requires_approval(cap: Capability) -> bool:
    return bool(getattr(cap, "requires_approval", False))


def can_handle(cap: Capability, context: Dict[str, Any]) -> bool:
    predicate = getattr(cap, "can_handle", None)
    return predicate is None or bool(predicate(context))
