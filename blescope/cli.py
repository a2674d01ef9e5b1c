"""Typer CLI entrypoint."""

from __future__ import annotations

import asyncio
import json
import logging
from dataclasses import replace
from pathlib import Path

import typer

from blescope.core.adv_decoder import decode
from blescope.core.device_filter import apply_preset
from blescope.core.errors import BlescopeError
from blescope.core.events import CATALOG_UPDATED
from blescope.core.hexcodec import format_hex_block
from blescope.core.model import CanonicalDevice, ConnectableFilter, FilterOptions
from blescope.core.naming import (
    NameRegistry,
    device_category_from_services,
    format_manufacturer_data,
    format_uuid_for_display,
    normalize_company_id,
    normalize_uuid,
    resolve_characteristic_name,
    resolve_company_name,
)
from blescope.core.service import ScanService

app = typer.Typer(help="BLE advertisement scanner and decoder for TWS earbuds and friends")
lookup_app = typer.Typer(help="Resolve company IDs and GATT UUIDs to names")
app.add_typer(lookup_app, name="lookup")

_NAME_LOAD_TIMEOUT_S = 5.0


@app.callback()
def main(
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable debug logging"),
) -> None:
    if verbose:
        logging.basicConfig(level=logging.DEBUG)


def _build_service(config: Path | None = None) -> ScanService:
    service = ScanService(config_path=config)
    for warning in getattr(service, "load_warnings", ()):
        typer.echo(f"Warning: {warning}", err=True)
    for warning in getattr(service, "runtime_warnings", ()):
        typer.echo(f"Warning: {warning}", err=True)
    return service


def _loaded_names(service: ScanService) -> NameRegistry:
    names = service.names
    names.wait_until_loaded(_NAME_LOAD_TIMEOUT_S)
    for warning in names.warnings:
        typer.echo(f"Warning: {warning}", err=True)
    return names


def _manufacturer_label(device: CanonicalDevice, names: NameRegistry) -> str:
    if not device.manufacturer_data:
        return "-"
    company_id = next(iter(device.manufacturer_data))
    return resolve_company_name(company_id, registry=names)


def _device_row(device: CanonicalDevice, names: NameRegistry) -> str:
    rssi = "?" if device.rssi is None else str(device.rssi)
    name = device.name or "<unnamed>"
    category = device_category_from_services(device.services, registry=names)
    return f"{device.address:<17}  {rssi:>4}  {name:<28}  {category:<11}  {_manufacturer_label(device, names)}"


def _filter_options(
    base: FilterOptions,
    *,
    name: str | None,
    address: str | None,
    min_rssi: int | None,
    max_rssi: int | None,
    connectable: ConnectableFilter | None,
    preset: str | None,
) -> FilterOptions:
    options = apply_preset(base, preset) if preset else base
    overrides = {
        "name": name,
        "address": address,
        "min_rssi": min_rssi,
        "max_rssi": max_rssi,
        "connectable": connectable,
    }
    return replace(options, **{key: value for key, value in overrides.items() if value is not None})


@app.command("scan")
def scan(
    duration: float | None = typer.Option(None, "--duration", min=1, max=180, help="Scan length in seconds"),
    continuous: bool = typer.Option(False, "--continuous", help="Scan until interrupted"),
    name: str | None = typer.Option(None, "--name", help="Name substring"),
    address: str | None = typer.Option(None, "--address", help="Address substring"),
    min_rssi: int | None = typer.Option(None, "--min-rssi", help="Lowest RSSI to show"),
    max_rssi: int | None = typer.Option(None, "--max-rssi", help="Highest RSSI to show"),
    connectable: ConnectableFilter | None = typer.Option(None, "--connectable", help="Connectability filter"),
    preset: str | None = typer.Option(None, "--preset", help="Filter preset: strong, connectable, iphone"),
    config: Path | None = typer.Option(None, "--config", help="Settings YAML file"),
) -> None:
    """Scan for advertisements and print the ranked, filtered device table."""
    try:
        service = _build_service(config)
        options = _filter_options(
            service.settings.filters,
            name=name,
            address=address,
            min_rssi=min_rssi,
            max_rssi=max_rssi,
            connectable=connectable,
            preset=preset,
        )
        if options.min_rssi > options.max_rssi:
            typer.echo(f"Error: --min-rssi {options.min_rssi} exceeds --max-rssi {options.max_rssi}", err=True)
            raise typer.Exit(code=1)

        if continuous or (duration is None and service.settings.scan.continuous):
            window: float | None = None
            service.bus.subscribe(
                CATALOG_UPDATED,
                lambda snapshot: typer.echo(f"{len(snapshot)} devices seen", err=True),
            )
        else:
            window = duration if duration is not None else service.default_scan_duration()

        try:
            asyncio.run(service.scan(window, clear=True))
        except KeyboardInterrupt:
            typer.echo("Scan interrupted", err=True)

        devices = service.view(options)
        if not devices:
            typer.echo("No Bluetooth devices found")
            return

        names = service.names
        for device in devices:
            typer.echo(_device_row(device, names))
    except ValueError as exc:
        typer.echo(f"Error: {exc}", err=True)
        raise typer.Exit(code=1) from None
    except BlescopeError as exc:
        typer.echo(f"Error: {exc}", err=True)
        raise typer.Exit(code=1) from None


@app.command("decode")
def decode_command(
    raw_hex: str = typer.Argument(..., metavar="HEX", help="Raw advertisement hex"),
    as_json: bool = typer.Option(False, "--json", help="Print the decoded advertisement as JSON"),
    bytes_per_line: int = typer.Option(16, "--bytes-per-line", min=1, help="Hex dump width"),
    config: Path | None = typer.Option(None, "--config", help="Settings YAML file"),
) -> None:
    """Decode a raw vendor advertisement."""
    try:
        service = _build_service(config)
        parsed = decode(raw_hex, registry=_loaded_names(service))
    except BlescopeError as exc:
        typer.echo(f"Error: {exc}", err=True)
        raise typer.Exit(code=1) from None

    if as_json:
        typer.echo(json.dumps(parsed.to_dict(), indent=2))
        return

    if not parsed.length:
        typer.echo("No advertisement data")
        return

    typer.echo(f"Length: {parsed.length} bytes")
    for field in parsed.fields:
        typer.echo(f"  {field.offset:>3}  {field.name:<24} {field.value:<16} {field.interpretation}")
    typer.echo("")
    typer.echo(format_hex_block(parsed.raw, bytes_per_line))


@app.command("mfr")
def manufacturer(
    company_id: str = typer.Argument(..., help="Company ID, e.g. 0x004C or 004C"),
    data: str = typer.Argument("", help="Manufacturer payload hex"),
    config: Path | None = typer.Option(None, "--config", help="Settings YAML file"),
) -> None:
    """Summarize manufacturer-specific data."""
    try:
        service = _build_service(config)
        summary = format_manufacturer_data(company_id, data, registry=_loaded_names(service))
    except BlescopeError as exc:
        typer.echo(f"Error: {exc}", err=True)
        raise typer.Exit(code=1) from None

    typer.echo(f"{summary.company_id} {summary.company_name}")
    typer.echo(f"  data: {summary.data_hex or '-'} ({summary.data_length} bytes)")
    if summary.interpretation:
        typer.echo(f"  {summary.interpretation}")


@lookup_app.command("company")
def lookup_company(
    company_id: str = typer.Argument(..., help="Company ID, e.g. 0x004C"),
    config: Path | None = typer.Option(None, "--config", help="Settings YAML file"),
) -> None:
    """Resolve a Bluetooth SIG company identifier."""
    try:
        names = _loaded_names(_build_service(config))
    except BlescopeError as exc:
        typer.echo(f"Error: {exc}", err=True)
        raise typer.Exit(code=1) from None
    full, _ = normalize_company_id(company_id)
    typer.echo(f"0x{full}: {resolve_company_name(full, registry=names)}")


@lookup_app.command("service")
def lookup_service(
    uuid: str = typer.Argument(..., help="16-bit or 128-bit service UUID"),
    config: Path | None = typer.Option(None, "--config", help="Settings YAML file"),
) -> None:
    """Resolve a GATT service UUID."""
    try:
        names = _loaded_names(_build_service(config))
    except BlescopeError as exc:
        typer.echo(f"Error: {exc}", err=True)
        raise typer.Exit(code=1) from None
    display = format_uuid_for_display(uuid, registry=names)
    kind = "standard" if display.is_standard else "custom"
    typer.echo(f"{display.display}: {display.name}")
    typer.echo(f"  {display.full} ({kind})")


@lookup_app.command("characteristic")
def lookup_characteristic(
    uuid: str = typer.Argument(..., help="16-bit or 128-bit characteristic UUID"),
    config: Path | None = typer.Option(None, "--config", help="Settings YAML file"),
) -> None:
    """Resolve a GATT characteristic UUID."""
    try:
        names = _loaded_names(_build_service(config))
    except BlescopeError as exc:
        typer.echo(f"Error: {exc}", err=True)
        raise typer.Exit(code=1) from None
    _, full = normalize_uuid(uuid)
    typer.echo(f"{uuid}: {resolve_characteristic_name(uuid, registry=names)}")
    if full:
        typer.echo(f"  {full}")


async def _dump_gatt(service: ScanService, identity: str) -> None:
    outcome = await service.connect(identity)
    if not outcome.accepted:
        typer.echo(f"Error: a command for {identity} is already in flight", err=True)
        raise typer.Exit(code=1)
    try:
        gatt_services = await service.services(identity)
        mtu = await service.mtu(identity)
    finally:
        await service.disconnect(identity)

    typer.echo(f"MTU: {mtu}")
    if not gatt_services:
        typer.echo(f"No GATT services on {identity}")
        return

    for gatt_service in gatt_services:
        typer.echo(f"{gatt_service.uuid} {gatt_service.name}")
        for characteristic in gatt_service.characteristics:
            properties = ", ".join(characteristic.properties)
            typer.echo(f"  {characteristic.uuid} {characteristic.name} [{properties}]")


@app.command("gatt")
def gatt(
    identity: str = typer.Argument(..., help="Device identity as shown by 'scan'"),
    config: Path | None = typer.Option(None, "--config", help="Settings YAML file"),
) -> None:
    """Connect to a device, list its GATT services, and disconnect."""
    try:
        service = _build_service(config)
        asyncio.run(_dump_gatt(service, identity))
    except BlescopeError as exc:
        typer.echo(f"Error: {exc}", err=True)
        raise typer.Exit(code=1) from None


def run() -> None:
    app()


if __name__ == "__main__":
    run()
