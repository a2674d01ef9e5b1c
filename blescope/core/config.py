"""Settings loading and validation for the YAML config file."""

from __future__ import annotations

import json
import logging
import os
from dataclasses import dataclass
from importlib import resources
from pathlib import Path
from typing import Any

import yaml
from jsonschema import ValidationError, validators

from blescope.core.errors import ConfigLoadError, ConfigValidationError
from blescope.core.model import (
    AppearanceSettings,
    ConnectableFilter,
    FilterOptions,
    NamingSources,
    ScanSettings,
    Settings,
)

LOGGER = logging.getLogger(__name__)

RECOMMENDED_FLUSH_INTERVAL_S = (0.5, 1.0)
_NAMING_FILE_STEMS = {
    "companies": "company_identifiers",
    "services": "service_names",
    "characteristics": "characteristic_names",
}
_NAMING_SUFFIXES = (".json", ".yaml", ".yml", ".txt")


class UniqueKeyLoader(yaml.SafeLoader):
    """YAML loader that rejects duplicate mapping keys."""


def _construct_mapping(loader: UniqueKeyLoader, node: yaml.Node, deep: bool = False) -> dict[str, Any]:
    mapping: dict[str, Any] = {}
    for key_node, value_node in node.value:
        key = loader.construct_object(key_node, deep=deep)
        if key in mapping:
            raise ConfigValidationError(f"Duplicate key '{key}' in YAML document")
        mapping[key] = loader.construct_object(value_node, deep=deep)
    return mapping


UniqueKeyLoader.add_constructor(
    yaml.resolver.BaseResolver.DEFAULT_MAPPING_TAG,
    _construct_mapping,
)


@dataclass(frozen=True)
class LoadedSettings:
    settings: Settings
    warnings: tuple[str, ...]
    source: Path | None


def _load_schema_validator() -> Any:
    schema_text = resources.files("blescope.schemas").joinpath("settings.schema.json").read_text(
        encoding="utf-8"
    )
    schema = json.loads(schema_text)
    validator_cls = validators.validator_for(schema)
    validator_cls.check_schema(schema)
    return validator_cls(schema)


def settings_path() -> Path:
    xdg_config = Path(os.environ.get("XDG_CONFIG_HOME", Path.home() / ".config"))
    return xdg_config / "blescope/config.yaml"


def naming_data_dir() -> Path:
    xdg_data = Path(os.environ.get("XDG_DATA_HOME", Path.home() / ".local/share"))
    return xdg_data / "blescope"


def default_naming_sources() -> NamingSources:
    """Name table files dropped into the data directory, if any."""
    directory = naming_data_dir()
    found: dict[str, tuple[str, ...]] = {}
    for kind, stem in _NAMING_FILE_STEMS.items():
        found[kind] = tuple(
            str(directory / f"{stem}{suffix}")
            for suffix in _NAMING_SUFFIXES
            if (directory / f"{stem}{suffix}").is_file()
        )
    return NamingSources(**found)


def merge_naming_sources(*sources: NamingSources) -> NamingSources:
    return NamingSources(
        companies=tuple(s for group in sources for s in group.companies),
        services=tuple(s for group in sources for s in group.services),
        characteristics=tuple(s for group in sources for s in group.characteristics),
    )


def _read_yaml(path: Path) -> dict[str, Any]:
    try:
        content = path.read_text(encoding="utf-8")
    except OSError as exc:
        raise ConfigLoadError(f"Could not read settings file {path}: {exc}") from exc

    try:
        loaded = yaml.load(content, Loader=UniqueKeyLoader)
    except yaml.YAMLError as exc:
        raise ConfigValidationError(f"Invalid YAML in {path}: {exc}") from exc

    if loaded is None:
        return {}
    if not isinstance(loaded, dict):
        raise ConfigValidationError(f"Settings file {path} must contain a mapping at root")
    return loaded


def build_settings(doc: dict[str, Any], source: Path | str = "<settings>") -> tuple[Settings, tuple[str, ...]]:
    validator = _load_schema_validator()
    try:
        validator.validate(doc)
    except ValidationError as exc:
        path = ".".join(str(p) for p in exc.path)
        where = f" ({path})" if path else ""
        raise ConfigValidationError(f"Schema validation failed for {source}{where}: {exc.message}") from exc

    warnings: list[str] = []
    defaults = Settings()

    scan_doc = doc.get("scan", {})
    scan = ScanSettings(
        duration_s=int(scan_doc.get("duration_s", defaults.scan.duration_s)),
        continuous=bool(scan_doc.get("continuous", defaults.scan.continuous)),
        flush_interval_s=float(scan_doc.get("flush_interval_s", defaults.scan.flush_interval_s)),
    )
    low, high = RECOMMENDED_FLUSH_INTERVAL_S
    if not low <= scan.flush_interval_s <= high:
        warnings.append(
            f"scan.flush_interval_s={scan.flush_interval_s} is outside the recommended "
            f"{low}-{high}s window"
        )

    filters_doc = doc.get("filters", {})
    filters = FilterOptions(
        name=filters_doc.get("name", defaults.filters.name),
        address=filters_doc.get("address", defaults.filters.address),
        min_rssi=int(filters_doc.get("min_rssi", defaults.filters.min_rssi)),
        max_rssi=int(filters_doc.get("max_rssi", defaults.filters.max_rssi)),
        connectable=ConnectableFilter(filters_doc.get("connectable", defaults.filters.connectable.value)),
    )
    if filters.min_rssi > filters.max_rssi:
        raise ConfigValidationError(
            f"{source} (filters): min_rssi {filters.min_rssi} exceeds max_rssi {filters.max_rssi}"
        )

    naming_doc = doc.get("naming", {})
    naming = NamingSources(
        companies=tuple(naming_doc.get("companies", ())),
        services=tuple(naming_doc.get("services", ())),
        characteristics=tuple(naming_doc.get("characteristics", ())),
    )

    appearance_doc = doc.get("appearance", {})
    appearance = AppearanceSettings(
        theme=appearance_doc.get("theme", defaults.appearance.theme),
        locale=appearance_doc.get("locale", defaults.appearance.locale),
    )

    settings = Settings(scan=scan, filters=filters, naming=naming, appearance=appearance)
    return settings, tuple(warnings)


def load_settings(path: Path | None = None) -> LoadedSettings:
    source = path or settings_path()
    if path is None and not source.exists():
        return LoadedSettings(settings=Settings(), warnings=(), source=None)

    doc = _read_yaml(source)
    settings, warnings = build_settings(doc, source)
    for warning in warnings:
        LOGGER.warning(warning)
    return LoadedSettings(settings=settings, warnings=warnings, source=source)
