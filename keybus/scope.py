"""Lifecycle scopes that release subscriptions when they end."""

from __future__ import annotations

import logging
from collections.abc import Callable
from contextvars import ContextVar, Token
from types import TracebackType

logger = logging.getLogger("keybus.scope")

Cleanup = Callable[[], None]

_current_scope: ContextVar[LifecycleScope | None] = ContextVar("keybus_scope", default=None)


def current_scope() -> LifecycleScope | None:
    """Return the scope active in this context, if any."""
    return _current_scope.get()


class LifecycleScope:
    """Collects cleanup callbacks and runs each one once when closed.

    Entering the scope with ``with`` makes it the current scope, so buses
    created elsewhere register their unsubscribe callbacks here. Leaving the
    block restores the outer scope and closes this one, whether or not the
    block raised.
    """

    def __init__(self, name: str = "scope") -> None:
        self.name = name
        self._cleanups: list[Cleanup] = []
        self._closed = False
        self._token: Token[LifecycleScope | None] | None = None

    @property
    def active(self) -> bool:
        return not self._closed

    def add_cleanup(self, cleanup: Cleanup) -> None:
        """Queue ``cleanup`` for close; run it now if already closed."""
        if self._closed:
            cleanup()
            return
        self._cleanups.append(cleanup)

    def close(self) -> None:
        """Run queued cleanups in registration order."""
        if self._closed:
            return
        self._closed = True
        cleanups, self._cleanups = self._cleanups, []
        logger.debug("Closing scope %s with %d cleanups", self.name, len(cleanups))

        first_error: Exception | None = None
        for cleanup in cleanups:
            try:
                cleanup()
            except Exception as exc:
                logger.exception("Cleanup failed in scope %s", self.name)
                if first_error is None:
                    first_error = exc
        if first_error is not None:
            raise first_error

    def __enter__(self) -> LifecycleScope:
        if self._token is not None:
            raise RuntimeError(f"Scope {self.name} is already entered")
        self._token = _current_scope.set(self)
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        if self._token is not None:
            _current_scope.reset(self._token)
            self._token = None
        self.close()

    def __repr__(self) -> str:
        state = "active" if self.active else "closed"
        return f"LifecycleScope({self.name!r}, {state}, cleanups={len(self._cleanups)})"
