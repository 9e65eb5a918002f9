"""Emit re-entrancy and listener failure tests."""

from __future__ import annotations

import logging
from typing import Any

import pytest

from keybus.event_bus import create_bus
from keybus.registry import BusRegistry
from keybus.settings import BusSettings


def test_snapshot_runs_every_once_listener() -> None:
    bus = create_bus("snap", registry=BusRegistry())
    seen: list[str] = []

    bus.once(lambda event, payload: seen.append("first"))
    bus.once(lambda event, payload: seen.append("second"))
    bus.emit("go")
    bus.emit("go")

    assert seen == ["first", "second"]


def test_live_iteration_skips_the_neighbour_of_a_removed_listener() -> None:
    registry = BusRegistry(settings=BusSettings(snapshot_on_emit=False))
    bus = create_bus("live", registry=registry)
    seen: list[str] = []

    bus.once(lambda event, payload: seen.append("first"))
    bus.once(lambda event, payload: seen.append("second"))
    bus.emit("go")
    assert seen == ["first"]

    bus.emit("go")
    assert seen == ["first", "second"]


def test_listener_added_during_emit_waits_for_next_emit() -> None:
    bus = create_bus("added", registry=BusRegistry())
    seen: list[Any] = []

    def late(payload: Any) -> None:
        seen.append(("late", payload))

    def adder(payload: Any) -> None:
        seen.append(("adder", payload))
        if payload == 1:
            bus.on("tick", late)

    bus.on("tick", adder)
    bus.emit("tick", 1)
    assert seen == [("adder", 1)]

    bus.emit("tick", 2)
    assert seen == [("adder", 1), ("adder", 2), ("late", 2)]


def test_listener_may_emit_on_its_own_bus() -> None:
    bus = create_bus("nested", registry=BusRegistry())
    seen: list[str] = []

    def relay(payload: Any) -> None:
        seen.append(f"outer:{payload}")
        bus.emit("inner", payload)

    bus.on("outer", relay)
    bus.on("inner", lambda payload: seen.append(f"inner:{payload}"))
    bus.emit("outer", "x")

    assert seen == ["outer:x", "inner:x"]


def test_listener_error_propagates_and_stops_dispatch() -> None:
    bus = create_bus("boom", registry=BusRegistry())
    seen: list[str] = []

    def broken(payload: Any) -> None:
        raise RuntimeError("listener failed")

    bus.on("a", broken)
    bus.on("a", lambda payload: seen.append("after"))
    bus.on(lambda event, payload: seen.append("global"))

    with pytest.raises(RuntimeError, match="listener failed"):
        bus.emit("a")
    assert seen == []


def test_isolated_errors_are_logged_and_dispatch_continues(caplog: pytest.LogCaptureFixture) -> None:
    registry = BusRegistry(settings=BusSettings(isolate_listener_errors=True))
    bus = create_bus("isolated", registry=registry)
    seen: list[str] = []

    def broken(event: Any, payload: Any) -> None:
        raise RuntimeError("listener failed")

    bus.on(broken)
    bus.on(lambda event, payload: seen.append(event))

    with caplog.at_level(logging.ERROR, logger="keybus.bus"):
        bus.emit("a")

    assert seen == ["a"]
    assert any("Listener failed" in record.getMessage() for record in caplog.records)


def test_snapshot_still_runs_a_handler_removed_mid_emit() -> None:
    bus = create_bus("removed", registry=BusRegistry())
    seen: list[str] = []

    def second(payload: Any) -> None:
        seen.append("second")

    def first(payload: Any) -> None:
        seen.append("first")
        bus.off("e", second)

    bus.on("e", first)
    bus.on("e", second)
    bus.emit("e")
    assert seen == ["first", "second"]

    bus.emit("e")
    assert seen == ["first", "second", "first"]


def test_live_iteration_skips_a_handler_removed_mid_emit() -> None:
    registry = BusRegistry(settings=BusSettings(snapshot_on_emit=False))
    bus = create_bus("removed-live", registry=registry)
    seen: list[str] = []

    def second(payload: Any) -> None:
        seen.append("second")

    def first(payload: Any) -> None:
        seen.append("first")
        bus.off("e", second)

    bus.on("e", first)
    bus.on("e", second)
    bus.emit("e")

    assert seen == ["first"]
    assert bus.listener_count("e") == 1
