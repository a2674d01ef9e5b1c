"""Decoder for the vendor manufacturer-specific advertisement frame.

Frame layout (31 bytes, optional extension data after that)::

    0      length byte
    1      AD type (0xFF = manufacturer specific)
    2-3    company ID, little-endian
    4-5    VID, little-endian
    6-7    PID, little-endian
    8      high nibble device type, low nibble protocol version
    9-14   embedded MAC, wire order
    15     connection flag
    16-18  left / right / case battery (bit 7 charging, bits 0-6 percent)
    19     sequence nonce
    20-22  reserved
    23-30  integrity hash (not verified)
    31+    extension data

Anything shorter than a full frame is reported byte by byte.
"""

from __future__ import annotations

from blescope.core.hexcodec import bytes_from_hex, clean_hex, hex_from_bytes
from blescope.core.model import (
    BatteryInfo,
    BatteryLevel,
    Field,
    ParsedAdvertisement,
    StructuredSummary,
)
from blescope.core.naming import NameRegistry, resolve_company_name

FRAME_LENGTH = 31
MANUFACTURER_SPECIFIC_TYPE = 0xFF

DEVICE_TYPE_CODES = {
    0x0: "speaker",
    0x2: "tws",
    0x4: "soundcard",
    0x5: "watch",
}

_DEVICE_TYPE_LABELS = {
    "speaker": "Speaker",
    "tws": "TWS earbuds",
    "soundcard": "Sound card",
    "watch": "Watch",
}


def _hex_byte(value: int) -> str:
    return f"{value:02X}"


def _battery_level(value: int) -> BatteryLevel:
    return BatteryLevel(percent=value & 0x7F, charging=bool(value & 0x80))


def _battery_text(level: BatteryLevel) -> str:
    return f"{level.percent}% (charging)" if level.charging else f"{level.percent}%"


def _fallback_fields(data: bytes) -> tuple[Field, ...]:
    return tuple(
        Field(
            name=f"Byte {i}",
            offset=i,
            length=1,
            value=_hex_byte(b),
            interpretation=f"Value: {b}",
        )
        for i, b in enumerate(data)
    )


def decode(raw_hex: str, *, registry: NameRegistry | None = None) -> ParsedAdvertisement:
    """Decode a raw advertisement hex string. Never raises."""
    cleaned = clean_hex(raw_hex)
    if not cleaned:
        return ParsedAdvertisement(raw="", length=0, fields=(), structured=StructuredSummary())

    data = bytes_from_hex(cleaned)
    if len(data) < FRAME_LENGTH:
        return ParsedAdvertisement(
            raw=cleaned,
            length=len(data),
            fields=_fallback_fields(data),
            structured=StructuredSummary(),
        )

    fields: list[Field] = []
    length = len(data)

    fields.append(Field("Length", 0, 1, _hex_byte(data[0]), f"{data[0]} bytes"))
    fields.append(
        Field(
            "AD Type",
            1,
            1,
            _hex_byte(data[1]),
            "Manufacturer Specific Data" if data[1] == MANUFACTURER_SPECIFIC_TYPE else "Unknown type",
        )
    )

    company_id = f"{int.from_bytes(data[2:4], 'little'):04X}"
    company_name = resolve_company_name(company_id, registry=registry)
    fields.append(Field("Company ID", 2, 2, hex_from_bytes(data[2:4]), f"0x{company_id} {company_name}"))

    vid = int.from_bytes(data[4:6], "little")
    fields.append(Field("VID", 4, 2, hex_from_bytes(data[4:6]), f"0x{vid:04X}"))
    pid = int.from_bytes(data[6:8], "little")
    fields.append(Field("PID", 6, 2, hex_from_bytes(data[6:8]), f"0x{pid:04X}"))

    type_nibble = (data[8] & 0xF0) >> 4
    protocol_version = f"v{data[8] & 0x0F}"
    type_code = DEVICE_TYPE_CODES.get(type_nibble, "unknown")
    type_label = _DEVICE_TYPE_LABELS.get(type_code, f"Unknown type (0x{type_nibble:X})")
    fields.append(
        Field(
            "Device Type / Protocol",
            8,
            1,
            _hex_byte(data[8]),
            f"{type_label}, protocol {protocol_version}",
        )
    )

    mac_address = ":".join(_hex_byte(b) for b in data[9:15])
    fields.append(Field("MAC Address", 9, 6, hex_from_bytes(data[9:15]), mac_address))

    connection_flag: int | None = None
    if length > 15:
        connection_flag = data[15]
        fields.append(
            Field(
                "Connection Flag",
                15,
                1,
                _hex_byte(connection_flag),
                "Connected" if connection_flag == 1 else "Not connected",
            )
        )

    battery: BatteryInfo | None = None
    if length > 18:
        battery = BatteryInfo(
            left=_battery_level(data[16]),
            right=_battery_level(data[17]),
            case=_battery_level(data[18]),
        )
        for name, offset, level in (
            ("Left Battery", 16, battery.left),
            ("Right Battery", 17, battery.right),
            ("Case Battery", 18, battery.case),
        ):
            fields.append(Field(name, offset, 1, _hex_byte(data[offset]), _battery_text(level)))

    if length > 19:
        fields.append(Field("Sequence Nonce", 19, 1, _hex_byte(data[19]), f"Sequence: {data[19]}"))

    fields.append(Field("Integrity Hash", 23, 8, hex_from_bytes(data[23:31]), "Integrity hash (not verified)"))

    if length > FRAME_LENGTH:
        extra = data[FRAME_LENGTH:]
        fields.append(
            Field(
                "Extension Data",
                FRAME_LENGTH,
                len(extra),
                hex_from_bytes(extra),
                f"{len(extra)} bytes of extension data",
            )
        )

    structured = StructuredSummary(
        device_type_code=type_code,
        device_type_raw=type_nibble,
        protocol_version=protocol_version,
        company_id=company_id,
        company_name=company_name,
        mac_address=mac_address,
        connection_flag=connection_flag,
        battery=battery,
    )
    return ParsedAdvertisement(raw=cleaned, length=length, fields=tuple(fields), structured=structured)
