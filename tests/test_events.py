from __future__ import annotations

import logging

import pytest

from blescope.core.events import CATALOG_UPDATED, SCAN_COMPLETED, EventBus
from blescope.core.inflight import InFlightGuard


def test_publish_calls_handlers_in_order() -> None:
    bus = EventBus()
    seen: list[tuple[str, object]] = []
    bus.subscribe(CATALOG_UPDATED, lambda payload: seen.append(("first", payload)))
    bus.subscribe(CATALOG_UPDATED, lambda payload: seen.append(("second", payload)))
    bus.subscribe(SCAN_COMPLETED, lambda payload: seen.append(("other", payload)))

    bus.publish(CATALOG_UPDATED, [1])
    assert seen == [("first", [1]), ("second", [1])]


def test_unsubscribe_stops_delivery() -> None:
    bus = EventBus()
    seen: list[object] = []
    unsubscribe = bus.subscribe(SCAN_COMPLETED, seen.append)
    unsubscribe()
    unsubscribe()

    bus.publish(SCAN_COMPLETED)
    assert seen == []


def test_failing_handler_is_logged_and_others_run(caplog: pytest.LogCaptureFixture) -> None:
    bus = EventBus()
    seen: list[object] = []

    def broken(_: object) -> None:
        raise RuntimeError("boom")

    bus.subscribe(CATALOG_UPDATED, broken)
    bus.subscribe(CATALOG_UPDATED, seen.append)

    with caplog.at_level(logging.ERROR, logger="blescope.core.events"):
        bus.publish(CATALOG_UPDATED, "snapshot")

    assert seen == ["snapshot"]
    assert "catalog-updated" in caplog.text


def test_in_flight_guard_rejects_second_command() -> None:
    guard = InFlightGuard()
    with guard.hold("a") as first:
        assert first
        assert guard.is_active("a")
        with guard.hold("a") as second:
            assert not second
        with guard.hold("b") as other:
            assert other
        assert guard.active == frozenset({"a"})
    assert not guard.is_active("a")


def test_in_flight_guard_releases_on_error() -> None:
    guard = InFlightGuard()
    with pytest.raises(RuntimeError):
        with guard.hold("a"):
            raise RuntimeError("radio failed")
    assert not guard.is_active("a")
