"""Device filtering and display ranking."""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import replace

from blescope.core.model import CanonicalDevice, ConnectableFilter, FilterOptions

FILTER_PRESETS: dict[str, dict[str, object]] = {
    "strong": {"min_rssi": -60},
    "connectable": {"connectable": ConnectableFilter.CONNECTABLE},
    "iphone": {"name": "iPhone"},
}


def _name_match(device: CanonicalDevice, options: FilterOptions) -> bool:
    if not options.name:
        return True
    return bool(device.name) and options.name.lower() in device.name.lower()


def _address_match(device: CanonicalDevice, options: FilterOptions) -> bool:
    if not options.address:
        return True
    return options.address.lower() in device.address.lower()


def _rssi_match(device: CanonicalDevice, options: FilterOptions) -> bool:
    if device.rssi is None:
        return True
    return options.min_rssi <= device.rssi <= options.max_rssi


def _connectable_match(device: CanonicalDevice, options: FilterOptions) -> bool:
    if options.connectable == ConnectableFilter.CONNECTABLE:
        return device.connectable
    if options.connectable == ConnectableFilter.NON_CONNECTABLE:
        return not device.connectable
    return True


def device_matches(device: CanonicalDevice, options: FilterOptions) -> bool:
    return (
        _name_match(device, options)
        and _address_match(device, options)
        and _rssi_match(device, options)
        and _connectable_match(device, options)
    )


def filter_devices(devices: Iterable[CanonicalDevice], options: FilterOptions) -> list[CanonicalDevice]:
    return [device for device in devices if device_matches(device, options)]


def _rank_key(device: CanonicalDevice) -> tuple[float, int, str, str]:
    # Strongest signal first, unknown RSSI last; named before unnamed.
    rssi = float("inf") if device.rssi is None else -device.rssi
    name = (device.name or "").lower()
    return rssi, 0 if name else 1, name, device.identity


def rank_devices(devices: Iterable[CanonicalDevice]) -> list[CanonicalDevice]:
    return sorted(devices, key=_rank_key)


def has_active_filters(options: FilterOptions) -> bool:
    return options != FilterOptions()


def apply_preset(options: FilterOptions, preset: str) -> FilterOptions:
    changes = FILTER_PRESETS.get(preset)
    if changes is None:
        available = ", ".join(sorted(FILTER_PRESETS))
        raise ValueError(f"Unknown filter preset '{preset}'. Available: {available}")
    return replace(options, **changes)
