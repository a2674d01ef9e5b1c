"""Company, GATT service, and GATT characteristic name resolution.

Each table starts from a small built-in seed and can be augmented from
external sources (local files or http(s) URLs) in JSON, YAML, or the plain
text format used by the Bluetooth SIG assigned-numbers dumps::

    0x004C  Apple, Inc.
    004C    Apple, Inc.

Loading runs on a background thread so that lookups issued before it
finishes are answered from the seed. Lookups never fail; unknown IDs map to a
deterministic placeholder.
"""

from __future__ import annotations

import json
import logging
import re
import threading
from collections.abc import Callable, Iterable, Mapping
from pathlib import Path
from typing import Any
from urllib.parse import urlparse

import requests
import yaml

from blescope.core.hexcodec import clean_hex
from blescope.core.model import ManufacturerDataSummary, NamingSources, UuidDisplay

LOGGER = logging.getLogger(__name__)

BASE_UUID_SUFFIX = "-0000-1000-8000-00805F9B34FB"
_SHORT_UUID_RE = re.compile(r"^[0-9A-F]{4}$")
_FULL_UUID_RE = re.compile(r"^[0-9A-F]{8}-[0-9A-F]{4}-[0-9A-F]{4}-[0-9A-F]{4}-[0-9A-F]{12}$")
_BASE_UUID_RE = re.compile(r"^0000([0-9A-F]{4})-0000-1000-8000-00805F9B34FB$")
_TXT_LINE_RE = re.compile(r"^(?:0[xX])?([0-9A-Fa-f]{4})\s+(.+?)\s*$")
_TXT_SKIP_PREFIXES = ("#", "//", "UUID")
_REQUEST_TIMEOUT_S = 5.0

SEED_COMPANIES: dict[str, str] = {
    "004C": "Apple, Inc.",
    "038F": "Xiaomi Inc.",
    "00E0": "Google",
    "0006": "Microsoft",
    "0059": "Nordic Semiconductor ASA",
    "000F": "Broadcom Corporation",
    "001D": "Qualcomm",
    "0002": "Intel Corp.",
    "000D": "Texas Instruments Inc.",
    "0075": "Samsung Electronics Co. Ltd.",
    "5583": "JL (Zhuhai Jieli Technology)",
}

SEED_SERVICES: dict[str, str] = {
    "1800": "Generic Access",
    "1801": "Generic Attribute",
    "1802": "Immediate Alert",
    "1803": "Link Loss",
    "1804": "Tx Power",
    "1805": "Current Time",
    "1806": "Reference Time Update",
    "1807": "Next DST Change",
    "1808": "Glucose",
    "1809": "Health Thermometer",
    "180A": "Device Information",
    "180D": "Heart Rate",
    "180E": "Phone Alert Status",
    "180F": "Battery Service",
    "1810": "Blood Pressure",
    "1811": "Alert Notification",
    "1812": "Human Interface Device",
    "1813": "Scan Parameters",
    "1814": "Running Speed and Cadence",
    "1815": "Automation IO",
    "1816": "Cycling Speed and Cadence",
    "1818": "Cycling Power",
    "1819": "Location and Navigation",
    "181A": "Environmental Sensing",
    "181B": "Body Composition",
    "181C": "User Data",
    "181D": "Weight Scale",
    "181E": "Bond Management",
    "181F": "Continuous Glucose Monitoring",
    "1820": "Internet Protocol Support",
    "1821": "Indoor Positioning",
    "1822": "Pulse Oximeter",
    "1823": "HTTP Proxy",
    "1824": "Transport Discovery",
    "1825": "Object Transfer",
    "1826": "Fitness Machine",
    "1827": "Mesh Provisioning",
    "1828": "Mesh Proxy",
    "1829": "Reconnection Configuration",
    "FE59": "Apple Continuity",
    "FE2C": "Apple Notification Center Service",
    "FE26": "Apple Media Service",
    "6E400001-B5A3-F393-E0A9-E50E24DCCA9E": "Nordic UART Service",
    "FFF0": "Simple Key Service",
    "FFE0": "HM-10 Serial",
}

SEED_CHARACTERISTICS: dict[str, str] = {
    "2A00": "Device Name",
    "2A01": "Appearance",
    "2A04": "Peripheral Preferred Connection Parameters",
    "2A05": "Service Changed",
    "2A19": "Battery Level",
    "2A23": "System ID",
    "2A24": "Model Number String",
    "2A25": "Serial Number String",
    "2A26": "Firmware Revision String",
    "2A27": "Hardware Revision String",
    "2A28": "Software Revision String",
    "2A29": "Manufacturer Name String",
    "2AA6": "Central Address Resolution",
}

_APPLE_SUBTYPES = {
    "02": "iBeacon Advertisement",
    "05": "AirDrop Advertisement",
    "07": "AirPods Advertisement",
    "09": "AirPlay Advertisement",
    "10": "Nearby Info Advertisement",
    "0C": "Handoff Advertisement",
}

_GOOGLE_SUBTYPES = {
    "00": "Eddystone Beacon",
    "01": "UriBeacon",
    "02": "Eddystone-URL",
    "03": "Eddystone-UID",
    "04": "Eddystone-TLM",
    "05": "Eddystone-EID",
}

_MICROSOFT_SUBTYPES = {
    "01": "Microsoft Beacon",
    "03": "Microsoft Advertisement",
}

# Keyed by zero-padded company ID.
_VENDOR_SUBTYPES: dict[str, tuple[str, dict[str, str]]] = {
    "004C": ("Apple", _APPLE_SUBTYPES),
    "00E0": ("Google", _GOOGLE_SUBTYPES),
    "0006": ("Microsoft", _MICROSOFT_SUBTYPES),
}

_CATEGORY_KEYWORDS: tuple[tuple[str, tuple[str, ...]], ...] = (
    ("fitness", ("heart rate", "fitness")),
    ("audio", ("audio", "media")),
    ("apple", ("apple", "continuity")),
    ("development", ("uart", "serial")),
    ("health", ("glucose", "health")),
)


def normalize_company_id(company_id: str | int) -> tuple[str, str]:
    """Return the zero-padded and unpadded uppercase forms of a company ID."""
    if isinstance(company_id, int):
        clean = f"{company_id:X}"
    else:
        clean = company_id.strip()
        if clean.lower().startswith("0x"):
            clean = clean[2:]
        clean = clean.upper()
    full = clean.rjust(4, "0")
    short = full.lstrip("0") or "0"
    return full, short


def expand_short_uuid(short_uuid: str) -> str:
    if len(short_uuid) == 4:
        return f"0000{short_uuid.upper()}{BASE_UUID_SUFFIX}"
    return short_uuid


def normalize_uuid(uuid: str) -> tuple[str | None, str | None]:
    """Return ``(short, full)`` forms of a UUID; either may be ``None``."""
    value = uuid.strip().upper()
    if value.startswith("0X"):
        value = value[2:]
    if _SHORT_UUID_RE.match(value):
        return value, expand_short_uuid(value)
    if _FULL_UUID_RE.match(value):
        match = _BASE_UUID_RE.match(value)
        return (match.group(1) if match else None), value
    return None, None


def _company_keys(company_id: str) -> tuple[str, ...]:
    full, short = normalize_company_id(company_id)
    return full, short


def _uuid_keys(uuid: str) -> tuple[str, ...]:
    return tuple(key for key in normalize_uuid(uuid) if key)


class NameTable:
    """Seeded ID -> name table that external sources can augment."""

    def __init__(
        self,
        kind: str,
        seed: Mapping[str, str],
        key_fn: Callable[[str], tuple[str, ...]],
    ) -> None:
        self.kind = kind
        self._key_fn = key_fn
        self._lock = threading.Lock()
        self._names: dict[str, str] = {}
        self.update(seed)

    def get(self, key: str) -> str | None:
        names = self._names
        for candidate in self._key_fn(key):
            name = names.get(candidate)
            if name:
                return name
        return None

    def update(self, entries: Mapping[str, str]) -> int:
        """Merge entries over the current table; returns how many were usable."""
        count = 0
        with self._lock:
            merged = dict(self._names)
            for raw_key, name in entries.items():
                keys = self._key_fn(str(raw_key))
                cleaned_name = str(name).strip()
                if not keys or not cleaned_name:
                    continue
                for key in keys:
                    merged[key] = cleaned_name
                count += 1
            self._names = merged
        return count

    def __len__(self) -> int:
        return len(self._names)


def _pairs_from_data(data: Any) -> dict[str, str]:
    if isinstance(data, dict):
        return {str(key): str(value) for key, value in data.items()}
    if isinstance(data, list):
        pairs: dict[str, str] = {}
        for item in data:
            if not isinstance(item, (list, tuple)) or len(item) != 2:
                raise ValueError("name table list entries must be [id, name] pairs")
            pairs[str(item[0])] = str(item[1])
        return pairs
    raise ValueError("name table must be a mapping or a list of [id, name] pairs")


def _parse_txt(text: str) -> dict[str, str]:
    pairs: dict[str, str] = {}
    for raw_line in text.splitlines():
        line = raw_line.strip()
        if not line or line.startswith(_TXT_SKIP_PREFIXES):
            continue
        match = _TXT_LINE_RE.match(line)
        if match:
            pairs[match.group(1).upper()] = match.group(2)
    return pairs


def parse_name_table(text: str, suffix: str) -> dict[str, str]:
    if suffix == ".json":
        return _pairs_from_data(json.loads(text))
    if suffix in {".yaml", ".yml"}:
        # BaseLoader keeps keys such as 0010 as strings instead of octal ints.
        return _pairs_from_data(yaml.load(text, Loader=yaml.BaseLoader))
    return _parse_txt(text)


def read_name_source(source: str) -> dict[str, str]:
    if source.startswith(("http://", "https://")):
        response = requests.get(source, timeout=_REQUEST_TIMEOUT_S)
        response.raise_for_status()
        return parse_name_table(response.text, Path(urlparse(source).path).suffix.lower())

    path = Path(source).expanduser()
    return parse_name_table(path.read_text(encoding="utf-8"), path.suffix.lower())


class NameRegistry:
    """The three name tables plus their background loader."""

    def __init__(self) -> None:
        self.companies = NameTable("company", SEED_COMPANIES, _company_keys)
        self.services = NameTable("service", SEED_SERVICES, _uuid_keys)
        self.characteristics = NameTable("characteristic", SEED_CHARACTERISTICS, _uuid_keys)
        self.warnings: list[str] = []
        self._preload_thread: threading.Thread | None = None

    def load(self, sources: NamingSources) -> int:
        total = 0
        for table, table_sources in (
            (self.companies, sources.companies),
            (self.services, sources.services),
            (self.characteristics, sources.characteristics),
        ):
            for source in table_sources:
                try:
                    entries = read_name_source(source)
                except (OSError, ValueError, yaml.YAMLError, requests.RequestException) as exc:
                    warning = f"Could not load {table.kind} names from {source}: {exc}"
                    LOGGER.warning(warning)
                    self.warnings.append(warning)
                    continue
                count = table.update(entries)
                LOGGER.debug("Loaded %d %s names from %s", count, table.kind, source)
                total += count
        return total

    def ensure_preload(self, sources: NamingSources) -> threading.Thread:
        """Start the background load once; later calls return the same thread."""
        if self._preload_thread is None:
            self._preload_thread = threading.Thread(
                target=self.load,
                args=(sources,),
                name="blescope-names",
                daemon=True,
            )
            self._preload_thread.start()
        return self._preload_thread

    def wait_until_loaded(self, timeout: float | None = None) -> bool:
        if self._preload_thread is None:
            return True
        self._preload_thread.join(timeout)
        return not self._preload_thread.is_alive()


_DEFAULT_REGISTRY = NameRegistry()


def default_registry() -> NameRegistry:
    return _DEFAULT_REGISTRY


def resolve_company_name(company_id: str | int, *, registry: NameRegistry | None = None) -> str:
    names = (registry or _DEFAULT_REGISTRY).companies
    full, _ = normalize_company_id(company_id)
    return names.get(full) or f"Unknown Manufacturer (0x{full})"


def resolve_service_name(uuid: str, *, registry: NameRegistry | None = None) -> str:
    names = (registry or _DEFAULT_REGISTRY).services
    upper = uuid.strip().upper()

    if len(upper) == 4:
        return names.get(upper) or f"Unknown Service ({upper})"

    if len(upper) == 36:
        name = names.get(upper)
        if name:
            return name
        match = _BASE_UUID_RE.match(upper)
        if match:
            return f"Standard Service ({match.group(1)})"
        return f"Custom Service ({upper[:8]}...)"

    return f"Unknown Format ({uuid})"


def resolve_characteristic_name(uuid: str, *, registry: NameRegistry | None = None) -> str:
    names = (registry or _DEFAULT_REGISTRY).characteristics
    upper = uuid.strip().upper()

    if len(upper) == 4:
        return names.get(upper) or f"Characteristic {upper}"

    if len(upper) == 36:
        match = _BASE_UUID_RE.match(upper)
        if match:
            return names.get(upper) or f"Characteristic {match.group(1)}"
        return names.get(upper) or f"Characteristic {upper[:8]}..."

    return f"Characteristic {uuid}"


def format_manufacturer_data(
    company_id: str | int,
    data_hex: str,
    *,
    registry: NameRegistry | None = None,
) -> ManufacturerDataSummary:
    full, _ = normalize_company_id(company_id)
    payload = clean_hex(data_hex)

    interpretation: str | None = None
    vendor = _VENDOR_SUBTYPES.get(full)
    if vendor is not None:
        vendor_name, subtypes = vendor
        if len(payload) < 4:
            interpretation = f"Invalid {vendor_name} data"
        else:
            subtype = payload[:2]
            interpretation = subtypes.get(subtype, f"{vendor_name} Type 0x{subtype}")

    return ManufacturerDataSummary(
        company_id=f"0x{full}",
        company_name=resolve_company_name(full, registry=registry),
        data_hex=payload,
        data_length=(len(payload) + 1) // 2,
        interpretation=interpretation,
    )


def format_uuid_for_display(uuid: str, *, registry: NameRegistry | None = None) -> UuidDisplay:
    upper = uuid.strip().upper()
    name = resolve_service_name(uuid, registry=registry)

    if len(upper) == 4:
        return UuidDisplay(display=upper, full=expand_short_uuid(upper), name=name, is_standard=True)

    if len(upper) == 36:
        is_standard = _BASE_UUID_RE.match(upper) is not None
        display = upper[4:8] if is_standard else f"{upper[:8]}..."
        return UuidDisplay(display=display, full=upper, name=name, is_standard=is_standard)

    return UuidDisplay(display=uuid, full=uuid, name=name, is_standard=False)


def device_category_from_services(
    services: Iterable[str],
    *,
    registry: NameRegistry | None = None,
) -> str:
    names = [resolve_service_name(s, registry=registry).lower() for s in services]
    for category, keywords in _CATEGORY_KEYWORDS:
        if any(keyword in name for name in names for keyword in keywords):
            return category
    return "generic"
