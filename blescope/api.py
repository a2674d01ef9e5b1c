"""Stable public API for building tooling on top of blescope.

This module is the supported integration surface for third-party callers.
Avoid importing from private/internal modules unless intentionally depending on
non-stable internals.
"""

from __future__ import annotations

import asyncio
from pathlib import Path

from blescope.core.adv_decoder import decode
from blescope.core.errors import (
    BlescopeError,
    ConfigError,
    ConfigLoadError,
    ConfigValidationError,
    DeviceSelectionError,
    RadioCommandError,
    RadioConnectError,
    RadioError,
    RadioScanError,
    RadioTimeoutError,
    RadioUnavailableError,
)
from blescope.core.events import EventBus
from blescope.core.model import (
    CanonicalDevice,
    CommandOutcome,
    ConnectableFilter,
    FilterOptions,
    GattService,
    ManufacturerDataSummary,
    ParsedAdvertisement,
    RawObservation,
    Settings,
)
from blescope.core.naming import (
    format_manufacturer_data,
    resolve_characteristic_name,
    resolve_company_name,
    resolve_service_name,
)
from blescope.core.service import ScanService
from blescope.transports.base import Radio
from blescope.transports.ble_radio import BleakRadio

__all__ = [
    "BlescopeError",
    "ConfigError",
    "ConfigLoadError",
    "ConfigValidationError",
    "DeviceSelectionError",
    "RadioError",
    "RadioUnavailableError",
    "RadioScanError",
    "RadioConnectError",
    "RadioCommandError",
    "RadioTimeoutError",
    "CanonicalDevice",
    "CommandOutcome",
    "ConnectableFilter",
    "FilterOptions",
    "GattService",
    "ManufacturerDataSummary",
    "ParsedAdvertisement",
    "RawObservation",
    "Settings",
    "EventBus",
    "BleakRadio",
    "Client",
]


class Client:
    """Public client for interacting with blescope core capabilities.

    A `Client` instance wraps scanning, reconciliation, advertisement decoding
    and name resolution behind a synchronous API intended for third-party tools
    (GUI/TUI/services/scripts). Async callers can use `service` directly.
    """

    def __init__(
        self,
        *,
        radio: Radio | None = None,
        settings: Settings | None = None,
        config_path: Path | None = None,
        service: ScanService | None = None,
    ) -> None:
        self._service = service or ScanService(radio=radio, settings=settings, config_path=config_path)

    @property
    def service(self) -> ScanService:
        return self._service

    @property
    def events(self) -> EventBus:
        return self._service.bus

    @property
    def load_warnings(self) -> tuple[str, ...]:
        return self._service.load_warnings

    @property
    def runtime_warnings(self) -> tuple[str, ...]:
        return self._service.runtime_warnings

    def scan(
        self,
        duration_s: float | None = None,
        *,
        clear: bool = False,
        options: FilterOptions | None = None,
    ) -> list[CanonicalDevice]:
        """Run one bounded scan and return the filtered, ranked catalog."""
        if duration_s is None:
            duration_s = float(self._service.settings.scan.duration_s)
        asyncio.run(self._service.scan(duration_s, clear=clear))
        return self._service.view(options)

    def devices(self, options: FilterOptions | None = None) -> list[CanonicalDevice]:
        return self._service.view(options)

    def decode(self, raw_hex: str) -> ParsedAdvertisement:
        return decode(raw_hex, registry=self._service.names)

    def decode_device(self, identity: str) -> ParsedAdvertisement:
        return self._service.decode_device(identity)

    def company_name(self, company_id: str | int) -> str:
        return resolve_company_name(company_id, registry=self._service.names)

    def service_name(self, uuid: str) -> str:
        return resolve_service_name(uuid, registry=self._service.names)

    def characteristic_name(self, uuid: str) -> str:
        return resolve_characteristic_name(uuid, registry=self._service.names)

    def manufacturer_data(self, company_id: str | int, data_hex: str) -> ManufacturerDataSummary:
        return format_manufacturer_data(company_id, data_hex, registry=self._service.names)
