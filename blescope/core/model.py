"""Core data models used across decoder, reconciler, service, and CLI."""

from __future__ import annotations

from dataclasses import asdict, dataclass, field
from enum import Enum
from typing import Any


@dataclass(frozen=True)
class RawObservation:
    """One advertisement sighting as reported by the radio."""

    identity: str
    address: str
    name: str | None = None
    rssi: int | None = None
    tx_power: int | None = None
    connectable: bool = False
    paired: bool = False
    manufacturer_data: dict[str, str] = field(default_factory=dict)
    services: tuple[str, ...] = ()
    adv_fields: dict[str, str] | None = None
    raw_adv_hex: str | None = None


@dataclass
class CanonicalDevice:
    """Reconciled record for one identity, mutated in place across flushes."""

    identity: str
    address: str
    name: str | None = None
    rssi: int | None = None
    tx_power: int | None = None
    connectable: bool = False
    paired: bool = False
    manufacturer_data: dict[str, str] = field(default_factory=dict)
    services: list[str] = field(default_factory=list)
    adv_fields: dict[str, str] | None = None
    raw_adv_hex: str | None = None

    @classmethod
    def from_observation(cls, observation: RawObservation) -> CanonicalDevice:
        return cls(
            identity=observation.identity,
            address=observation.address,
            name=observation.name,
            rssi=observation.rssi,
            tx_power=observation.tx_power,
            connectable=observation.connectable,
            paired=observation.paired,
            manufacturer_data=dict(observation.manufacturer_data),
            services=list(observation.services),
            adv_fields=dict(observation.adv_fields) if observation.adv_fields is not None else None,
            raw_adv_hex=observation.raw_adv_hex,
        )

    def copy(self) -> CanonicalDevice:
        return CanonicalDevice(
            identity=self.identity,
            address=self.address,
            name=self.name,
            rssi=self.rssi,
            tx_power=self.tx_power,
            connectable=self.connectable,
            paired=self.paired,
            manufacturer_data=dict(self.manufacturer_data),
            services=list(self.services),
            adv_fields=dict(self.adv_fields) if self.adv_fields is not None else None,
            raw_adv_hex=self.raw_adv_hex,
        )


@dataclass(frozen=True)
class Field:
    name: str
    offset: int
    length: int
    value: str
    interpretation: str


@dataclass(frozen=True)
class BatteryLevel:
    percent: int
    charging: bool


@dataclass(frozen=True)
class BatteryInfo:
    left: BatteryLevel
    right: BatteryLevel
    case: BatteryLevel


@dataclass(frozen=True)
class StructuredSummary:
    """Interpreted view of the vendor frame; every attribute is optional."""

    device_type_code: str | None = None
    device_type_raw: int | None = None
    protocol_version: str | None = None
    company_id: str | None = None
    company_name: str | None = None
    mac_address: str | None = None
    connection_flag: int | None = None
    battery: BatteryInfo | None = None

    @property
    def is_empty(self) -> bool:
        return not self.to_dict()

    def to_dict(self) -> dict[str, Any]:
        return {key: value for key, value in asdict(self).items() if value is not None}


@dataclass(frozen=True)
class ParsedAdvertisement:
    raw: str
    length: int
    fields: tuple[Field, ...]
    structured: StructuredSummary

    def to_dict(self) -> dict[str, Any]:
        return {
            "raw": self.raw,
            "length": self.length,
            "fields": [asdict(f) for f in self.fields],
            "structured": self.structured.to_dict(),
        }


@dataclass(frozen=True)
class ManufacturerDataSummary:
    company_id: str
    company_name: str
    data_hex: str
    data_length: int
    interpretation: str | None = None


@dataclass(frozen=True)
class UuidDisplay:
    display: str
    full: str
    name: str
    is_standard: bool


class ConnectableFilter(str, Enum):
    ANY = "all"
    CONNECTABLE = "connectable"
    NON_CONNECTABLE = "non-connectable"


@dataclass(frozen=True)
class FilterOptions:
    name: str = ""
    address: str = ""
    min_rssi: int = -100
    max_rssi: int = 0
    connectable: ConnectableFilter = ConnectableFilter.ANY


@dataclass(frozen=True)
class ConnectionChange:
    identity: str
    paired: bool


@dataclass(frozen=True)
class CommandOutcome:
    identity: str
    command: str
    accepted: bool
    paired: bool | None = None
    verified: bool = False


@dataclass(frozen=True)
class GattCharacteristic:
    uuid: str
    name: str
    properties: tuple[str, ...]


@dataclass(frozen=True)
class GattService:
    uuid: str
    name: str
    characteristics: tuple[GattCharacteristic, ...]


@dataclass(frozen=True)
class ScanSettings:
    duration_s: int = 10
    continuous: bool = False
    flush_interval_s: float = 1.0


@dataclass(frozen=True)
class NamingSources:
    companies: tuple[str, ...] = ()
    services: tuple[str, ...] = ()
    characteristics: tuple[str, ...] = ()


@dataclass(frozen=True)
class AppearanceSettings:
    theme: str = "system"
    locale: str = "en"


@dataclass(frozen=True)
class Settings:
    scan: ScanSettings = field(default_factory=ScanSettings)
    filters: FilterOptions = field(default_factory=FilterOptions)
    naming: NamingSources = field(default_factory=NamingSources)
    appearance: AppearanceSettings = field(default_factory=AppearanceSettings)
