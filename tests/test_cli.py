from __future__ import annotations

import json

from typer.testing import CliRunner

from blescope import cli
from blescope.core.device_filter import filter_devices, rank_devices
from blescope.core.errors import RadioConnectError, RadioScanError
from blescope.core.events import EventBus
from blescope.core.model import (
    CanonicalDevice,
    CommandOutcome,
    GattCharacteristic,
    GattService,
    Settings,
)
from blescope.core.naming import NameRegistry

FRAME = "1EFF835534127856251122334455660150505007000000AABBCCDDEEFF0011"


class FakeService:
    def __init__(self, config_path=None) -> None:
        self.config_path = config_path
        self.settings = Settings()
        self.names = NameRegistry()
        self.bus = EventBus()
        self.load_warnings: tuple[str, ...] = ()
        self.runtime_warnings: tuple[str, ...] = ()
        self.scan_windows: list[float | None] = []
        self.catalog = [
            CanonicalDevice(
                identity="AA:BB:CC:DD:EE:01",
                address="AA:BB:CC:DD:EE:01",
                name="Buds",
                rssi=-70,
                connectable=True,
                manufacturer_data={"5583": "3412"},
            ),
            CanonicalDevice(
                identity="AA:BB:CC:DD:EE:02",
                address="AA:BB:CC:DD:EE:02",
                name="iPhone",
                rssi=-40,
                connectable=False,
            ),
            CanonicalDevice(
                identity="AA:BB:CC:DD:EE:03",
                address="AA:BB:CC:DD:EE:03",
                name="Chest Strap",
                rssi=-90,
                connectable=True,
                services=("0000180d-0000-1000-8000-00805f9b34fb",),
            ),
        ]

    def default_scan_duration(self):
        return float(self.settings.scan.duration_s)

    async def scan(self, duration_s=None, *, clear=False):
        self.scan_windows.append(duration_s)
        return list(self.catalog)

    def view(self, options=None):
        return rank_devices(filter_devices(self.catalog, options or self.settings.filters))

    async def connect(self, identity):
        return CommandOutcome(identity=identity, command="connect", accepted=True, paired=True, verified=True)

    async def disconnect(self, identity):
        return CommandOutcome(identity=identity, command="disconnect", accepted=True, paired=False, verified=True)

    async def mtu(self, identity):
        return 247

    async def services(self, identity):
        return [
            GattService(
                uuid="0000180f-0000-1000-8000-00805f9b34fb",
                name="Battery Service",
                characteristics=(
                    GattCharacteristic(
                        uuid="00002a19-0000-1000-8000-00805f9b34fb",
                        name="Battery Level",
                        properties=("read", "notify"),
                    ),
                ),
            )
        ]


runner = CliRunner()


def test_scan_command_prints_ranked_table(monkeypatch):
    monkeypatch.setattr(cli, "ScanService", FakeService)
    result = runner.invoke(cli.app, ["scan", "--duration", "3"])
    assert result.exit_code == 0
    lines = result.stdout.splitlines()
    assert lines[0].startswith("AA:BB:CC:DD:EE:02")
    assert "iPhone" in lines[0]
    assert "JL (Zhuhai Jieli Technology)" in lines[1]


def test_scan_command_shows_device_category(monkeypatch):
    monkeypatch.setattr(cli, "ScanService", FakeService)
    result = runner.invoke(cli.app, ["scan"])
    assert result.exit_code == 0
    lines = result.stdout.splitlines()
    assert "generic" in lines[0]
    assert lines[2].startswith("AA:BB:CC:DD:EE:03")
    assert "fitness" in lines[2]


def test_scan_command_applies_filters_and_presets(monkeypatch):
    monkeypatch.setattr(cli, "ScanService", FakeService)
    result = runner.invoke(cli.app, ["scan", "--connectable", "connectable"])
    assert result.exit_code == 0
    assert "Buds" in result.stdout
    assert "iPhone" not in result.stdout

    result = runner.invoke(cli.app, ["scan", "--preset", "strong"])
    assert result.exit_code == 0
    assert "Buds" not in result.stdout
    assert "iPhone" in result.stdout


def test_scan_command_reports_empty_result(monkeypatch):
    monkeypatch.setattr(cli, "ScanService", FakeService)
    result = runner.invoke(cli.app, ["scan", "--name", "watch"])
    assert result.exit_code == 0
    assert "No Bluetooth devices found" in result.stdout


def test_scan_command_unknown_preset_is_clean(monkeypatch):
    monkeypatch.setattr(cli, "ScanService", FakeService)
    result = runner.invoke(cli.app, ["scan", "--preset", "loud"])
    assert result.exit_code == 1
    assert "Error: Unknown filter preset 'loud'" in result.stderr


def test_scan_command_error_is_clean(monkeypatch):
    class FailingService(FakeService):
        async def scan(self, duration_s=None, *, clear=False):
            raise RadioScanError("BLE scan failed: adapter off")

    monkeypatch.setattr(cli, "ScanService", FailingService)
    result = runner.invoke(cli.app, ["scan"])
    assert result.exit_code == 1
    assert "Error: BLE scan failed: adapter off" in result.stderr
    assert "Traceback" not in result.stdout
    assert "Traceback" not in result.stderr


def test_warnings_go_to_stderr(monkeypatch):
    class WarningService(FakeService):
        def __init__(self, config_path=None) -> None:
            super().__init__(config_path)
            self.runtime_warnings = ("Python environment is missing 'bleak'",)

    monkeypatch.setattr(cli, "ScanService", WarningService)
    result = runner.invoke(cli.app, ["lookup", "company", "004C"])
    assert result.exit_code == 0
    assert "Warning: Python environment is missing 'bleak'" in result.stderr


def test_decode_command_table_and_hex_dump(monkeypatch):
    monkeypatch.setattr(cli, "ScanService", FakeService)
    result = runner.invoke(cli.app, ["decode", FRAME, "--bytes-per-line", "8"])
    assert result.exit_code == 0
    assert "Length: 31 bytes" in result.stdout
    assert "TWS earbuds, protocol v5" in result.stdout
    assert "0008: 25 11 22 33 44 55 66 01" in result.stdout


def test_decode_command_json(monkeypatch):
    monkeypatch.setattr(cli, "ScanService", FakeService)
    result = runner.invoke(cli.app, ["decode", FRAME, "--json"])
    assert result.exit_code == 0
    payload = json.loads(result.stdout)
    assert payload["structured"]["device_type_code"] == "tws"
    assert payload["structured"]["battery"]["left"] == {"percent": 80, "charging": False}


def test_decode_command_empty_input(monkeypatch):
    monkeypatch.setattr(cli, "ScanService", FakeService)
    result = runner.invoke(cli.app, ["decode", ""])
    assert result.exit_code == 0
    assert "No advertisement data" in result.stdout


def test_mfr_command(monkeypatch):
    monkeypatch.setattr(cli, "ScanService", FakeService)
    result = runner.invoke(cli.app, ["mfr", "0x004C", "0719010E"])
    assert result.exit_code == 0
    assert "0x004C Apple, Inc." in result.stdout
    assert "AirPods Advertisement" in result.stdout


def test_lookup_commands(monkeypatch):
    monkeypatch.setattr(cli, "ScanService", FakeService)

    result = runner.invoke(cli.app, ["lookup", "company", "4c"])
    assert result.exit_code == 0
    assert "0x004C: Apple, Inc." in result.stdout

    result = runner.invoke(cli.app, ["lookup", "service", "180f"])
    assert result.exit_code == 0
    assert "180F: Battery Service" in result.stdout
    assert "0000180F-0000-1000-8000-00805F9B34FB (standard)" in result.stdout

    result = runner.invoke(cli.app, ["lookup", "characteristic", "2A19"])
    assert result.exit_code == 0
    assert "2A19: Battery Level" in result.stdout


def test_gatt_command(monkeypatch):
    monkeypatch.setattr(cli, "ScanService", FakeService)
    result = runner.invoke(cli.app, ["gatt", "AA:BB:CC:DD:EE:01"])
    assert result.exit_code == 0
    assert "0000180f-0000-1000-8000-00805f9b34fb Battery Service" in result.stdout
    assert "Battery Level [read, notify]" in result.stdout
    assert "MTU: 247" in result.stdout


def test_gatt_command_error_is_clean(monkeypatch):
    class FailingService(FakeService):
        async def connect(self, identity):
            raise RadioConnectError(f"BLE connect failed for {identity}: refused")

    monkeypatch.setattr(cli, "ScanService", FailingService)
    result = runner.invoke(cli.app, ["gatt", "AA:BB:CC:DD:EE:01"])
    assert result.exit_code == 1
    assert "Error: BLE connect failed for AA:BB:CC:DD:EE:01: refused" in result.stderr
