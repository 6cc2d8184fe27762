"""
Agent State Registry
====================

Read-accessible state surface for external automation hosts.

Each entry pairs a state provider (a zero-argument callable returning a plain
dict) with a table of named actions. Components register themselves; hosts
look entries up by name, read snapshots, and invoke actions.

Usage:
    from photo_discovery.services.agent_state import get_registry

    registry = get_registry()
    registry.register("photo_discovery", service.state, {"search": service.search})
    result = await registry.invoke("photo_discovery", "search", "sunset beach")

The module-level registry is one optional adapter; components also accept an
explicitly constructed AgentStateRegistry.
"""

from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional

from photo_discovery.errors import OperationNotSupportedError
from photo_discovery.services.concurrency import call_maybe_async
import logging

logger = logging.getLogger(__name__)


StateProvider = Callable[[], Dict[str, Any]]
RegistryListener = Callable[[str, str], None]


@dataclass
class AgentEntry:
    """One registered component"""
    name: str
    state: StateProvider
    actions: Dict[str, Callable[..., Any]] = field(default_factory=dict)
    description: str = ""

    def snapshot(self) -> Dict[str, Any]:
        return dict(self.state())


class AgentStateRegistry:
    """
    Registry of agent-visible components.

    Provides:
    - Entry lookup by name
    - State snapshots
    - Action invocation
    - Change notification (registered / unregistered)
    """

    def __init__(self):
        self._entries: Dict[str, AgentEntry] = {}
        self._listeners: List[RegistryListener] = []

    def register(
        self,
        name: str,
        state: StateProvider,
        actions: Optional[Dict[str, Callable[..., Any]]] = None,
        description: str = "",
        replace: bool = False,
    ) -> AgentEntry:
        """Register a component; raises ValueError if the name is taken and replace is False"""
        if name in self._entries and not replace:
            raise ValueError(f"Agent entry '{name}' already registered")

        entry = AgentEntry(name=name, state=state, actions=dict(actions or {}), description=description)
        self._entries[name] = entry
        logger.info(f"Registered agent entry '{name}' with actions {sorted(entry.actions)}")
        self._notify("registered", name)
        return entry

    def unregister(self, name: str) -> bool:
        if self._entries.pop(name, None) is None:
            return False
        logger.info(f"Unregistered agent entry '{name}'")
        self._notify("unregistered", name)
        return True

    def get(self, name: str) -> Optional[AgentEntry]:
        return self._entries.get(name)

    def list(self) -> List[str]:
        return sorted(self._entries)

    def snapshot(self, name: Optional[str] = None) -> Dict[str, Any]:
        """State of one entry, or of every entry keyed by name"""
        if name is not None:
            entry = self._entries.get(name)
            if entry is None:
                raise KeyError(name)
            return entry.snapshot()
        return {entry_name: entry.snapshot() for entry_name, entry in self._entries.items()}

    def actions(self, name: str) -> List[str]:
        entry = self._entries.get(name)
        return sorted(entry.actions) if entry else []

    async def invoke(self, name: str, action: str, *args, **kwargs) -> Any:
        """
        Invoke a registered action; sync and async actions are both accepted

        Raises:
            KeyError: no entry with that name
            OperationNotSupportedError: entry has no such action
        """
        entry = self._entries.get(name)
        if entry is None:
            raise KeyError(name)
        handler = entry.actions.get(action)
        if handler is None:
            raise OperationNotSupportedError(
                f"Agent entry '{name}' has no action '{action}'",
                {"available_actions": sorted(entry.actions)},
            )
        logger.debug(f"Invoking {name}.{action}")
        return await call_maybe_async(handler, *args, **kwargs)

    def subscribe(self, listener: RegistryListener) -> Callable[[], None]:
        """Listener receives (event, name); returns an unsubscribe callable"""
        self._listeners.append(listener)

        def unsubscribe():
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def clear(self):
        for name in list(self._entries):
            self.unregister(name)

    def _notify(self, event: str, name: str):
        for listener in list(self._listeners):
            listener(event, name)

    def __contains__(self, name: object) -> bool:
        return name in self._entries

    def __len__(self) -> int:
        return len(self._entries)


# =============================================================================
# GLOBAL ADAPTER
# =============================================================================

_registry: Optional[AgentStateRegistry] = None


def get_registry() -> AgentStateRegistry:
    """Get the process-wide registry"""
    global _registry
    if _registry is None:
        _registry = AgentStateRegistry()
        logger.info("Agent state registry initialized")
    return _registry


def reset_registry():
    """Drop the process-wide registry"""
    global _registry
    _registry = None
