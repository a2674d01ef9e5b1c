from __future__ import annotations

from pathlib import Path

import pytest

from blescope.core.config import default_naming_sources, load_settings, merge_naming_sources, settings_path
from blescope.core.errors import ConfigLoadError, ConfigValidationError
from blescope.core.model import ConnectableFilter, NamingSources, Settings


def _write_settings(path: Path, content: str) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(content, encoding="utf-8")


def test_missing_default_file_gives_defaults(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    monkeypatch.setenv("XDG_CONFIG_HOME", str(tmp_path / "cfg"))

    loaded = load_settings()
    assert loaded.settings == Settings()
    assert loaded.warnings == ()
    assert loaded.source is None
    assert settings_path() == tmp_path / "cfg" / "blescope" / "config.yaml"


def test_user_settings_are_loaded(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    monkeypatch.setenv("XDG_CONFIG_HOME", str(tmp_path / "cfg"))
    _write_settings(
        tmp_path / "cfg" / "blescope" / "config.yaml",
        """
scan:
  duration_s: 30
  continuous: true
filters:
  name: Buds
  min_rssi: -70
  connectable: connectable
naming:
  companies: [https://example.invalid/companies.txt]
appearance:
  theme: dark
""",
    )

    loaded = load_settings()
    settings = loaded.settings
    assert loaded.source == tmp_path / "cfg" / "blescope" / "config.yaml"
    assert settings.scan.duration_s == 30
    assert settings.scan.continuous is True
    assert settings.scan.flush_interval_s == 1.0
    assert settings.filters.name == "Buds"
    assert settings.filters.min_rssi == -70
    assert settings.filters.max_rssi == 0
    assert settings.filters.connectable == ConnectableFilter.CONNECTABLE
    assert settings.naming.companies == ("https://example.invalid/companies.txt",)
    assert settings.appearance.theme == "dark"
    assert settings.appearance.locale == "en"


def test_flush_interval_outside_window_warns(tmp_path: Path) -> None:
    path = tmp_path / "settings.yaml"
    _write_settings(path, "scan:\n  flush_interval_s: 2.5\n")

    loaded = load_settings(path)
    assert loaded.settings.scan.flush_interval_s == 2.5
    assert len(loaded.warnings) == 1
    assert "flush_interval_s" in loaded.warnings[0]


def test_schema_violation_rejected(tmp_path: Path) -> None:
    path = tmp_path / "settings.yaml"
    _write_settings(path, "scan:\n  duration_s: 500\n")

    with pytest.raises(ConfigValidationError, match="scan.duration_s"):
        load_settings(path)


def test_unknown_key_rejected(tmp_path: Path) -> None:
    path = tmp_path / "settings.yaml"
    _write_settings(path, "scanner:\n  duration_s: 5\n")

    with pytest.raises(ConfigValidationError):
        load_settings(path)


def test_duplicate_keys_rejected(tmp_path: Path) -> None:
    path = tmp_path / "settings.yaml"
    _write_settings(path, "scan:\n  duration_s: 5\n  duration_s: 6\n")

    with pytest.raises(ConfigValidationError, match="Duplicate key"):
        load_settings(path)


def test_inverted_rssi_bounds_rejected(tmp_path: Path) -> None:
    path = tmp_path / "settings.yaml"
    _write_settings(path, "filters:\n  min_rssi: -20\n  max_rssi: -80\n")

    with pytest.raises(ConfigValidationError, match="min_rssi"):
        load_settings(path)


def test_non_mapping_root_rejected(tmp_path: Path) -> None:
    path = tmp_path / "settings.yaml"
    _write_settings(path, "- just\n- a list\n")

    with pytest.raises(ConfigValidationError):
        load_settings(path)


def test_explicit_missing_file_is_a_load_error(tmp_path: Path) -> None:
    with pytest.raises(ConfigLoadError):
        load_settings(tmp_path / "nope.yaml")


def test_default_naming_sources_from_data_dir(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    monkeypatch.setenv("XDG_DATA_HOME", str(tmp_path / "data"))
    data_dir = tmp_path / "data" / "blescope"
    data_dir.mkdir(parents=True)
    (data_dir / "company_identifiers.txt").write_text("0x004C Apple, Inc.\n", encoding="utf-8")
    (data_dir / "service_names.json").write_text("{}", encoding="utf-8")

    sources = default_naming_sources()
    assert sources.companies == (str(data_dir / "company_identifiers.txt"),)
    assert sources.services == (str(data_dir / "service_names.json"),)
    assert sources.characteristics == ()


def test_merge_naming_sources_keeps_order() -> None:
    merged = merge_naming_sources(
        NamingSources(companies=("a",)),
        NamingSources(companies=("b",), services=("c",)),
    )
    assert merged == NamingSources(companies=("a", "b"), services=("c",))
