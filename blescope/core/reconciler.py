"""Coalesces bursty discovery observations into a stable device catalog."""

from __future__ import annotations

import logging

from blescope.core.model import CanonicalDevice, RawObservation

LOGGER = logging.getLogger(__name__)


class DeviceReconciler:
    """
    Buffers the latest observation per identity and merges on flush.

    Between flushes any number of observations for one identity collapse to
    the most recent one, so a flush does at most one merge per identity.
    Existing records only take a new RSSI on flush; manufacturer data and
    service lists are filled once when still empty and never regress.
    """

    def __init__(self) -> None:
        self._catalog: dict[str, CanonicalDevice] = {}
        self._first_seen: dict[str, int] = {}
        self._next_index = 0
        self._pending: dict[str, RawObservation] = {}

    def ingest(self, observation: RawObservation) -> None:
        self._pending[observation.identity] = observation

    def flush(self) -> list[CanonicalDevice] | None:
        """Merge buffered observations; returns the new snapshot or ``None``."""
        if not self._pending:
            return None

        batch = list(self._pending.values())
        self._pending.clear()

        added = 0
        for observation in batch:
            identity = observation.identity
            if identity not in self._first_seen:
                self._first_seen[identity] = self._next_index
                self._next_index += 1

            existing = self._catalog.get(identity)
            if existing is None:
                self._catalog[identity] = CanonicalDevice.from_observation(observation)
                added += 1
                continue

            existing.rssi = observation.rssi
            if not existing.manufacturer_data and observation.manufacturer_data:
                existing.manufacturer_data = dict(observation.manufacturer_data)
            if not existing.services and observation.services:
                existing.services = list(observation.services)

        LOGGER.debug("Flushed %d observations (%d new devices)", len(batch), added)
        return self.snapshot()

    def clear(self) -> None:
        self._catalog.clear()
        self._first_seen.clear()
        self._next_index = 0
        self._pending.clear()

    def apply_connection_state(self, identity: str, paired: bool) -> bool:
        """Set the pairing flag immediately, bypassing the flush cycle."""
        device = self._catalog.get(identity)
        if device is None:
            return False
        device.paired = paired
        return True

    def snapshot(self) -> list[CanonicalDevice]:
        ordered = sorted(self._catalog.values(), key=lambda d: self._first_seen[d.identity])
        return [device.copy() for device in ordered]

    def get(self, identity: str) -> CanonicalDevice | None:
        device = self._catalog.get(identity)
        return device.copy() if device is not None else None

    def first_seen_index(self, identity: str) -> int | None:
        return self._first_seen.get(identity)

    @property
    def pending_count(self) -> int:
        return len(self._pending)

    def __len__(self) -> int:
        return len(self._catalog)
