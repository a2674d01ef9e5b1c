"""Service layer used by the CLI, the public API, and presentation surfaces."""

from __future__ import annotations

import asyncio
import contextlib
import importlib.util
import logging
from collections.abc import Callable
from dataclasses import replace
from pathlib import Path

from blescope.core.adv_decoder import decode
from blescope.core.config import default_naming_sources, load_settings, merge_naming_sources
from blescope.core.device_filter import filter_devices, rank_devices
from blescope.core.errors import ConfigValidationError, DeviceSelectionError, RadioError, RadioScanError
from blescope.core.events import (
    CATALOG_UPDATED,
    CONNECTION_CHANGED,
    SCAN_COMPLETED,
    SCAN_ERROR,
    SETTINGS_CHANGED,
    EventBus,
)
from blescope.core.hexcodec import payload_from_text
from blescope.core.inflight import InFlightGuard
from blescope.core.model import (
    CanonicalDevice,
    CommandOutcome,
    ConnectionChange,
    FilterOptions,
    GattService,
    ParsedAdvertisement,
    RawObservation,
    Settings,
)
from blescope.core.naming import NameRegistry, default_registry
from blescope.core.reconciler import DeviceReconciler
from blescope.transports.base import Radio
from blescope.transports.ble_radio import BleakRadio

LOGGER = logging.getLogger(__name__)

_THEMES = {"system", "light", "dark"}


class ScanService:
    def __init__(
        self,
        *,
        radio: Radio | None = None,
        settings: Settings | None = None,
        names: NameRegistry | None = None,
        bus: EventBus | None = None,
        config_path: Path | None = None,
    ) -> None:
        load_warnings: tuple[str, ...] = ()
        if settings is None:
            loaded = load_settings(config_path)
            settings = loaded.settings
            load_warnings = loaded.warnings
        self.load_warnings = load_warnings
        self.runtime_warnings = _runtime_warnings()
        self.settings = settings
        self.bus = bus or EventBus()
        self.names = names or default_registry()
        self.radio: Radio = radio or BleakRadio()
        self.reconciler = DeviceReconciler()
        self._in_flight = InFlightGuard()
        self._stop_event: asyncio.Event | None = None
        self.names.ensure_preload(merge_naming_sources(settings.naming, default_naming_sources()))

    @property
    def scanning(self) -> bool:
        return self._stop_event is not None

    def default_scan_duration(self) -> float | None:
        if self.settings.scan.continuous:
            return None
        return float(self.settings.scan.duration_s)

    def handle_observation(self, observation: RawObservation) -> None:
        self.reconciler.ingest(observation)

    def flush(self) -> list[CanonicalDevice] | None:
        snapshot = self.reconciler.flush()
        if snapshot is not None:
            self.bus.publish(CATALOG_UPDATED, snapshot)
        return snapshot

    async def _flush_periodically(self, interval_s: float) -> None:
        while True:
            await asyncio.sleep(interval_s)
            self.flush()

    async def scan(self, duration_s: float | None = None, *, clear: bool = False) -> list[CanonicalDevice]:
        """Scan until ``duration_s`` elapses or :meth:`stop_scan` is called.

        The catalog is kept across scans unless ``clear`` is set.
        """
        if self._stop_event is not None:
            raise RadioScanError("A scan is already running")
        if clear:
            self.reconciler.clear()

        self._stop_event = asyncio.Event()
        timer = asyncio.create_task(self._flush_periodically(self.settings.scan.flush_interval_s))
        try:
            await self.radio.scan(
                self.handle_observation,
                duration_s=duration_s,
                stop_event=self._stop_event,
            )
        except RadioError as exc:
            self.bus.publish(SCAN_ERROR, str(exc))
            raise
        finally:
            timer.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await timer
            self._stop_event = None
            self.flush()

        self.bus.publish(SCAN_COMPLETED, None)
        return self.reconciler.snapshot()

    def stop_scan(self) -> None:
        if self._stop_event is not None:
            self._stop_event.set()

    def clear(self) -> None:
        self.reconciler.clear()

    def devices(self) -> list[CanonicalDevice]:
        return self.reconciler.snapshot()

    def view(self, options: FilterOptions | None = None) -> list[CanonicalDevice]:
        return rank_devices(filter_devices(self.reconciler.snapshot(), options or self.settings.filters))

    def decode_device(self, identity: str) -> ParsedAdvertisement:
        device = self.reconciler.get(identity)
        if device is None:
            raise DeviceSelectionError(f"No device with identity '{identity}' in the catalog")
        return decode(device.raw_adv_hex or "", registry=self.names)

    def apply_connection_state(self, identity: str, paired: bool) -> bool:
        updated = self.reconciler.apply_connection_state(identity, paired)
        if updated:
            self.bus.publish(CONNECTION_CHANGED, ConnectionChange(identity=identity, paired=paired))
        return updated

    async def _verified_state(self, identity: str, *, assumed: bool) -> tuple[bool, bool]:
        try:
            return await self.radio.is_connected(identity), True
        except RadioError as exc:
            LOGGER.warning(
                "Could not verify connection state of %s (%s); assuming %s",
                identity,
                exc,
                "connected" if assumed else "disconnected",
            )
            return assumed, False

    async def connect(self, identity: str) -> CommandOutcome:
        with self._in_flight.hold(identity) as acquired:
            if not acquired:
                LOGGER.warning("Ignoring connect for %s: a command is already in flight", identity)
                return CommandOutcome(identity=identity, command="connect", accepted=False)

            await self.radio.connect(identity)
            paired, verified = await self._verified_state(identity, assumed=True)
            self.apply_connection_state(identity, paired)
            return CommandOutcome(
                identity=identity,
                command="connect",
                accepted=True,
                paired=paired,
                verified=verified,
            )

    async def disconnect(self, identity: str) -> CommandOutcome:
        with self._in_flight.hold(identity) as acquired:
            if not acquired:
                LOGGER.warning("Ignoring disconnect for %s: a command is already in flight", identity)
                return CommandOutcome(identity=identity, command="disconnect", accepted=False)

            await self.radio.disconnect(identity)
            paired, verified = await self._verified_state(identity, assumed=False)
            self.apply_connection_state(identity, paired)
            return CommandOutcome(
                identity=identity,
                command="disconnect",
                accepted=True,
                paired=paired,
                verified=verified,
            )

    def is_busy(self, identity: str) -> bool:
        return self._in_flight.is_active(identity)

    async def services(self, identity: str) -> list[GattService]:
        return await self.radio.services(identity)

    async def mtu(self, identity: str) -> int:
        return await self.radio.mtu(identity)

    async def read(self, identity: str, service_uuid: str, char_uuid: str) -> bytes:
        return await self.radio.read_characteristic(identity, service_uuid, char_uuid)

    async def write(
        self,
        identity: str,
        service_uuid: str,
        char_uuid: str,
        data: str | bytes,
        *,
        with_response: bool = True,
    ) -> bytes:
        payload = payload_from_text(data) if isinstance(data, str) else bytes(data)
        await self.radio.write_characteristic(
            identity,
            service_uuid,
            char_uuid,
            payload,
            with_response=with_response,
        )
        return payload

    async def subscribe(
        self,
        identity: str,
        service_uuid: str,
        char_uuid: str,
        handler: Callable[[bytes], None],
    ) -> None:
        await self.radio.subscribe(identity, service_uuid, char_uuid, handler)

    async def unsubscribe(self, identity: str, service_uuid: str, char_uuid: str) -> None:
        await self.radio.unsubscribe(identity, service_uuid, char_uuid)

    def update_appearance(self, *, theme: str | None = None, locale: str | None = None) -> Settings:
        if theme is not None and theme not in _THEMES:
            allowed = ", ".join(sorted(_THEMES))
            raise ConfigValidationError(f"Unknown theme '{theme}'. Allowed: {allowed}")
        appearance = replace(
            self.settings.appearance,
            theme=theme if theme is not None else self.settings.appearance.theme,
            locale=locale if locale is not None else self.settings.appearance.locale,
        )
        self.settings = replace(self.settings, appearance=appearance)
        self.bus.publish(SETTINGS_CHANGED, self.settings)
        return self.settings


def _runtime_warnings() -> tuple[str, ...]:
    warnings: list[str] = []
    if importlib.util.find_spec("bleak") is None:
        warnings.append("Python environment is missing 'bleak'; scanning and GATT commands will fail.")
    return tuple(warnings)
