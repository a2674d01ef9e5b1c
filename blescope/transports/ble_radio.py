"""BLE radio implementation backed by bleak."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable, Mapping
from typing import Any

from blescope.core.adv_decoder import FRAME_LENGTH, MANUFACTURER_SPECIFIC_TYPE
from blescope.core.errors import (
    RadioCommandError,
    RadioConnectError,
    RadioScanError,
    RadioTimeoutError,
    RadioUnavailableError,
)
from blescope.core.hexcodec import bytes_from_hex, format_mac_address, hex_from_bytes
from blescope.core.model import GattCharacteristic, GattService, RawObservation
from blescope.core.naming import resolve_characteristic_name, resolve_service_name

LOGGER = logging.getLogger(__name__)

_FRAME_LENGTH_BYTE = FRAME_LENGTH - 1


def _import_bleak() -> Any:
    try:
        import bleak
    except ImportError as exc:
        raise RadioUnavailableError("BLE radio requires 'bleak'. Install dependency and retry.") from exc
    return bleak


def build_raw_advertisement(manufacturer_data: Mapping[str, str]) -> str | None:
    """Rebuild a 31-byte manufacturer-specific frame from the first entry."""
    if not manufacturer_data:
        return None

    company_id, data_hex = next(iter(manufacturer_data.items()))
    frame = bytearray([_FRAME_LENGTH_BYTE, MANUFACTURER_SPECIFIC_TYPE])
    try:
        frame += int(company_id, 16).to_bytes(2, "little")
        frame += bytes_from_hex(data_hex)
    except (ValueError, OverflowError):
        LOGGER.debug("Skipping payload with unparsable company ID %r", company_id)
    return hex_from_bytes(bytes(frame[:FRAME_LENGTH]).ljust(FRAME_LENGTH, b"\x00"))


def _bluez_props(device: Any) -> dict[str, Any]:
    details = getattr(device, "details", None)
    if isinstance(details, dict) and isinstance(details.get("props"), dict):
        return details["props"]
    return {}


def _is_connectable(adv: Any) -> bool:
    # CoreBluetooth reports connectability in the advertisement dictionary.
    for item in getattr(adv, "platform_data", None) or ():
        if isinstance(item, dict) and "kCBAdvDataIsConnectable" in item:
            return bool(item["kCBAdvDataIsConnectable"])
    return True


def observation_from_advertisement(device: Any, adv: Any) -> RawObservation:
    identity = device.address
    address = format_mac_address(device.address)
    props = _bluez_props(device)
    connectable = _is_connectable(adv)
    paired = bool(props.get("Paired") or props.get("Connected"))

    manufacturer_data = {
        f"{company_id:04X}": hex_from_bytes(payload)
        for company_id, payload in (adv.manufacturer_data or {}).items()
    }
    services = tuple(adv.service_uuids or ())

    adv_fields: dict[str, str] = {}
    if adv.rssi is not None:
        adv_fields["rssi"] = str(adv.rssi)
    if adv.tx_power is not None:
        adv_fields["tx_power"] = str(adv.tx_power)
    adv_fields["connectable"] = str(connectable).lower()
    if services:
        adv_fields["services_count"] = str(len(services))
        adv_fields["primary_service"] = services[0]
    if manufacturer_data:
        first_id, first_data = next(iter(manufacturer_data.items()))
        adv_fields["manufacturer_data_entries"] = str(len(manufacturer_data))
        adv_fields["manufacturer_company_id"] = first_id
        adv_fields["manufacturer_data_length"] = str(len(first_data) // 2)
    adv_fields["mac_address"] = address
    adv_fields["identifier"] = identity

    return RawObservation(
        identity=identity,
        address=address,
        name=adv.local_name or getattr(device, "name", None),
        rssi=adv.rssi,
        tx_power=adv.tx_power,
        connectable=connectable,
        paired=paired,
        manufacturer_data=manufacturer_data,
        services=services,
        adv_fields=adv_fields,
        raw_adv_hex=build_raw_advertisement(manufacturer_data),
    )


class BleakRadio:
    def __init__(self, *, connect_timeout_s: float = 10.0) -> None:
        self.connect_timeout_s = connect_timeout_s
        self._clients: dict[str, Any] = {}

    async def scan(
        self,
        on_observation: Callable[[RawObservation], None],
        *,
        duration_s: float | None = None,
        stop_event: asyncio.Event | None = None,
    ) -> None:
        bleak = _import_bleak()
        stop = stop_event or asyncio.Event()

        def _on_detection(device: Any, adv: Any) -> None:
            on_observation(observation_from_advertisement(device, adv))

        try:
            async with bleak.BleakScanner(detection_callback=_on_detection):
                if duration_s is None:
                    await stop.wait()
                else:
                    try:
                        await asyncio.wait_for(stop.wait(), timeout=duration_s)
                    except asyncio.TimeoutError:
                        pass
        except Exception as exc:
            raise RadioScanError(f"BLE scan failed: {exc}") from exc

    async def connect(self, identity: str) -> None:
        bleak = _import_bleak()
        existing = self._clients.get(identity)
        if existing is not None and existing.is_connected:
            return

        client = bleak.BleakClient(identity, timeout=self.connect_timeout_s)
        try:
            await client.connect()
        except (asyncio.TimeoutError, TimeoutError) as exc:
            raise RadioTimeoutError(f"BLE connect timed out for {identity}") from exc
        except Exception as exc:
            raise RadioConnectError(f"BLE connect failed for {identity}: {exc}") from exc
        self._clients[identity] = client

    async def disconnect(self, identity: str) -> None:
        client = self._clients.pop(identity, None)
        if client is None:
            return
        try:
            await client.disconnect()
        except Exception as exc:
            raise RadioCommandError(f"BLE disconnect failed for {identity}: {exc}") from exc

    async def is_connected(self, identity: str) -> bool:
        client = self._clients.get(identity)
        return bool(client is not None and client.is_connected)

    def _client(self, identity: str) -> Any:
        client = self._clients.get(identity)
        if client is None or not client.is_connected:
            raise RadioCommandError(f"Device {identity} is not connected")
        return client

    def _characteristic(self, client: Any, service_uuid: str, char_uuid: str) -> Any:
        service = client.services.get_service(service_uuid)
        characteristic = service.get_characteristic(char_uuid) if service is not None else None
        if characteristic is None:
            raise RadioCommandError(f"Characteristic {char_uuid} not found in service {service_uuid}")
        return characteristic

    async def services(self, identity: str) -> list[GattService]:
        client = self._client(identity)
        return [
            GattService(
                uuid=service.uuid,
                name=resolve_service_name(service.uuid),
                characteristics=tuple(
                    GattCharacteristic(
                        uuid=char.uuid,
                        name=resolve_characteristic_name(char.uuid),
                        properties=tuple(char.properties),
                    )
                    for char in service.characteristics
                ),
            )
            for service in client.services
        ]

    async def read_characteristic(self, identity: str, service_uuid: str, char_uuid: str) -> bytes:
        client = self._client(identity)
        characteristic = self._characteristic(client, service_uuid, char_uuid)
        try:
            return bytes(await client.read_gatt_char(characteristic))
        except Exception as exc:
            raise RadioCommandError(f"Read of {char_uuid} failed: {exc}") from exc

    async def write_characteristic(
        self,
        identity: str,
        service_uuid: str,
        char_uuid: str,
        data: bytes,
        *,
        with_response: bool = True,
    ) -> None:
        client = self._client(identity)
        characteristic = self._characteristic(client, service_uuid, char_uuid)
        try:
            await client.write_gatt_char(characteristic, data, response=with_response)
        except Exception as exc:
            raise RadioCommandError(f"Write to {char_uuid} failed: {exc}") from exc

    async def subscribe(
        self,
        identity: str,
        service_uuid: str,
        char_uuid: str,
        handler: Callable[[bytes], None],
    ) -> None:
        client = self._client(identity)
        characteristic = self._characteristic(client, service_uuid, char_uuid)

        def _notify_handler(_: Any, data: bytearray) -> None:
            handler(bytes(data))

        try:
            await client.start_notify(characteristic, _notify_handler)
        except Exception as exc:
            raise RadioCommandError(f"Subscribe to {char_uuid} failed: {exc}") from exc

    async def unsubscribe(self, identity: str, service_uuid: str, char_uuid: str) -> None:
        client = self._client(identity)
        characteristic = self._characteristic(client, service_uuid, char_uuid)
        try:
            await client.stop_notify(characteristic)
        except Exception as exc:
            raise RadioCommandError(f"Unsubscribe from {char_uuid} failed: {exc}") from exc

    async def mtu(self, identity: str) -> int:
        return int(self._client(identity).mtu_size)
