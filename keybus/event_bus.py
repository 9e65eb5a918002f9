"""Keyed in-process event bus.

``create_bus(key)`` returns a thin handle over the shared registry entry for
``key``; handles created with equal keys see each other's listeners.

Global listeners receive ``(event, payload)`` for every emit on their bus.
Scoped handlers receive ``payload`` only when their event name is emitted.
Scoped handlers run before global listeners, each group in insertion order.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Hashable, Iterator
from contextlib import contextmanager
from types import BuiltinMethodType, MethodType, TracebackType
from typing import Any, Generic, TypeVar

from keybus.registry import BusEntry, BusRegistry, GlobalListener, ScopedHandler, default_registry
from keybus.scope import LifecycleScope, current_scope

logger = logging.getLogger("keybus.bus")

EventName = TypeVar("EventName")

# Distinguishes on(listener) from on(None, handler).
_MISSING: Any = object()


class BusKey(Generic[EventName]):
    """Unique bus identifier, equal only to itself."""

    def __init__(self, description: str = "") -> None:
        self.description = description

    def __repr__(self) -> str:
        return f"BusKey({self.description!r})"


class Subscription:
    """Unsubscribe token returned by ``EventBus.on`` and ``EventBus.once``.

    Calling it removes the registration it stands for. Later calls do
    nothing. Used as a context manager, it unsubscribes on exit.
    """

    def __init__(self, bus: EventBus, args: tuple[Any, ...]) -> None:
        self._bus = bus
        self._args = args
        self._cancelled = False

    @property
    def active(self) -> bool:
        return not self._cancelled and self._bus._is_registered(self._args)

    def unsubscribe(self) -> None:
        if self._cancelled:
            return
        self._cancelled = True
        self._bus.off(*self._args)

    def __call__(self) -> None:
        self.unsubscribe()

    def __enter__(self) -> Subscription:
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        self.unsubscribe()

    def __repr__(self) -> str:
        return f"Subscription(bus={self._bus.key!r}, active={self.active})"


def _require_callable(value: Any, role: str) -> None:
    if not callable(value):
        raise TypeError(f"{role} must be callable, got {type(value).__name__}")


def _same_method(callback: Any, target: Any) -> bool:
    # obj.method builds a new bound method object on every access.
    if isinstance(callback, MethodType) and isinstance(target, MethodType):
        return callback.__self__ is target.__self__ and callback.__func__ is target.__func__
    if isinstance(callback, BuiltinMethodType) and isinstance(target, BuiltinMethodType):
        return (
            callback.__self__ is target.__self__
            and callback.__self__ is not None
            and callback.__name__ == target.__name__
        )
    return False


def _find(callbacks: list[Any], target: Any) -> int:
    for index, callback in enumerate(callbacks):
        if callback is target:
            return index
    for index, callback in enumerate(callbacks):
        if _same_method(callback, target):
            return index
    return -1


def _remove_first(callbacks: list[Any], target: Any) -> bool:
    index = _find(callbacks, target)
    if index < 0:
        return False
    del callbacks[index]
    return True


class EventBus:
    """Handle over one bus identifier in a registry."""

    def __init__(self, key: Hashable, registry: BusRegistry | None = None) -> None:
        self._key = key
        self._registry = registry if registry is not None else default_registry

    @property
    def key(self) -> Hashable:
        return self._key

    @property
    def registry(self) -> BusRegistry:
        return self._registry

    def on(self, event_or_listener: Any, handler: ScopedHandler = _MISSING) -> Subscription:
        """Subscribe a global listener, or a handler for one event name.

        ``on(listener)`` registers ``listener(event, payload)`` for every
        emit. ``on(event, handler)`` registers ``handler(payload)`` for
        ``event`` only. If a lifecycle scope is active, the returned
        subscription is cancelled when that scope closes.
        """
        entry = self._registry.get(self._key) or BusEntry()
        if handler is _MISSING:
            _require_callable(event_or_listener, "listener")
            entry.listeners.append(event_or_listener)
            args: tuple[Any, ...] = (event_or_listener,)
            logger.debug("Subscribed global listener on bus %r", self._key)
        else:
            _require_callable(handler, "handler")
            entry.handlers.setdefault(event_or_listener, []).append(handler)
            args = (event_or_listener, handler)
            logger.debug("Subscribed handler for %r on bus %r", event_or_listener, self._key)
        self._registry.set(self._key, entry)

        subscription = Subscription(self, args)
        scope = current_scope()
        if scope is not None:
            scope.add_cleanup(subscription)
        return subscription

    def once(self, event_or_listener: Any, handler: ScopedHandler = _MISSING) -> Subscription:
        """Like ``on``, but the callback fires at most once."""
        fired = False

        if handler is _MISSING:
            listener: GlobalListener = event_or_listener
            _require_callable(listener, "listener")

            def _listener(event: Any, payload: Any) -> None:
                nonlocal fired
                if fired:
                    return
                fired = True
                self.off(_listener)
                listener(event, payload)

            return self.on(_listener)

        _require_callable(handler, "handler")
        event = event_or_listener

        def _handler(payload: Any) -> None:
            nonlocal fired
            if fired:
                return
            fired = True
            self.off(event, _handler)
            handler(payload)

        return self.on(event, _handler)

    def off(self, event_or_listener: Any, handler: ScopedHandler = _MISSING) -> None:
        """Remove a listener, a handler for one event, or a subscription.

        Removing something that is not registered does nothing.
        """
        if handler is _MISSING and isinstance(event_or_listener, Subscription):
            event_or_listener.unsubscribe()
            return

        entry = self._registry.get(self._key)
        if entry is None:
            return

        if handler is _MISSING:
            removed = _remove_first(entry.listeners, event_or_listener)
        else:
            handlers = entry.handlers.get(event_or_listener)
            if handlers is None:
                return
            removed = _remove_first(handlers, handler)
            if not handlers:
                del entry.handlers[event_or_listener]

        if removed:
            logger.debug("Unsubscribed from bus %r", self._key)
        if entry.is_empty():
            self._registry.delete(self._key)

    def emit(self, event: Any = None, payload: Any = None) -> None:
        """Call handlers for ``event``, then every global listener.

        With ``snapshot_on_emit`` set, each group is copied before dispatch:
        callbacks added during the emit wait for the next one. Listener
        errors propagate unless ``isolate_listener_errors`` is set.
        """
        entry = self._registry.get(self._key)
        if entry is None:
            return

        snapshot = self._registry.settings.snapshot_on_emit
        handlers = entry.handlers.get(event)
        if handlers:
            self._dispatch(list(handlers) if snapshot else handlers, event, (payload,))
        listeners = entry.listeners
        if listeners:
            self._dispatch(list(listeners) if snapshot else listeners, event, (event, payload))

    def reset(self) -> None:
        """Drop every listener and handler on this bus."""
        if self._registry.delete(self._key):
            logger.debug("Reset bus %r", self._key)

    def listener_count(self, event: Any = _MISSING) -> int:
        """Count registrations on this bus, or handlers for one event."""
        entry = self._registry.get(self._key)
        if entry is None:
            return 0
        if event is _MISSING:
            return len(entry.listeners) + sum(len(h) for h in entry.handlers.values())
        return len(entry.handlers.get(event, ()))

    def _dispatch(self, callbacks: list[Callable[..., None]], event: Any, args: tuple[Any, ...]) -> None:
        isolate = self._registry.settings.isolate_listener_errors
        for callback in callbacks:
            if not isolate:
                callback(*args)
                continue
            try:
                callback(*args)
            except Exception:
                logger.exception("Listener failed on bus %r for event %r", self._key, event)

    def _is_registered(self, args: tuple[Any, ...]) -> bool:
        entry = self._registry.get(self._key)
        if entry is None:
            return False
        if len(args) == 1:
            callbacks = entry.listeners
        else:
            callbacks = entry.handlers.get(args[0], [])
        return _find(callbacks, args[-1]) >= 0

    def __repr__(self) -> str:
        return f"EventBus({self._key!r})"


def create_bus(key: Hashable, registry: BusRegistry | None = None) -> EventBus:
    """Return a handle for ``key``; equal keys share listeners."""
    return EventBus(key, registry=registry)


@contextmanager
def bus_scope(key: Hashable, registry: BusRegistry | None = None) -> Iterator[EventBus]:
    """Yield a bus whose subscriptions end with the ``with`` block.

    Every subscription made inside the block, on any bus, is removed on exit,
    including when the block raises.
    """
    with LifecycleScope(name=f"bus:{key!r}"):
        yield create_bus(key, registry=registry)
