"""Process-wide storage for keyed bus listener state."""

from __future__ import annotations

import logging
from collections.abc import Callable, Hashable, Iterator
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from keybus.policy_runtime import load_effective_config
from keybus.settings import BusSettings

logger = logging.getLogger("keybus.registry")

GlobalListener = Callable[[Any, Any], None]
ScopedHandler = Callable[[Any], None]


@dataclass
class BusEntry:
    """Listener state for one bus identifier."""

    listeners: list[GlobalListener] = field(default_factory=list)
    handlers: dict[Any, list[ScopedHandler]] = field(default_factory=dict)

    def is_empty(self) -> bool:
        return not self.listeners and not self.handlers


class BusRegistry:
    """Maps bus identifiers to their entries.

    Entries are created lazily by the bus handle and must be deleted as soon
    as they hold no listeners, so ``len(registry)`` counts live buses only.
    """

    def __init__(self, settings: BusSettings | None = None) -> None:
        self.settings = settings or BusSettings()
        self._entries: dict[Hashable, BusEntry] = {}

    @classmethod
    def from_config(cls, root: Path) -> "BusRegistry":
        """Create a registry configured from ``root/config/default.yaml``."""
        config = load_effective_config(root)
        return cls(settings=BusSettings.from_config(config))

    def get(self, key: Hashable) -> BusEntry | None:
        return self._entries.get(key)

    def set(self, key: Hashable, entry: BusEntry) -> None:
        if key not in self._entries:
            logger.debug("Created entry for bus %r", key)
        self._entries[key] = entry

    def delete(self, key: Hashable) -> bool:
        """Remove the entry for ``key``; return whether one existed."""
        if self._entries.pop(key, None) is None:
            return False
        logger.debug("Removed entry for bus %r", key)
        return True

    def keys(self) -> list[Hashable]:
        return list(self._entries)

    def clear(self) -> None:
        self._entries.clear()

    def __contains__(self, key: object) -> bool:
        return key in self._entries

    def __len__(self) -> int:
        return len(self._entries)

    def __iter__(self) -> Iterator[Hashable]:
        return iter(list(self._entries))


# Shared by every create_bus() call that does not inject its own registry.
default_registry = BusRegistry()
