"""Configuration loading and validation for shbctl YAML config files."""

from __future__ import annotations

import json
import logging
import os
import re
from dataclasses import dataclass
from importlib import resources
from importlib.resources.abc import Traversable
from pathlib import Path
from typing import Any

import yaml
from jsonschema import ValidationError, validators

from shbctl.core.errors import ConfigLoadError, ConfigValidationError
from shbctl.core.model import AppConfig, SelectionDefault

_UUID_RE = re.compile(r"^[0-9a-f]{4}$|^[0-9a-f]{8}$|^[0-9a-f]{8}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{12}$")
_CONFIG_FILENAMES = ("config.yaml", "config.yml")
LOGGER = logging.getLogger(__name__)


class UniqueKeyLoader(yaml.SafeLoader):
    """YAML loader that rejects duplicate mapping keys."""


UniqueKeyLoader.yaml_implicit_resolvers = {
    key: list(value) for key, value in yaml.SafeLoader.yaml_implicit_resolvers.items()
}

for first_char, mappings in list(UniqueKeyLoader.yaml_implicit_resolvers.items()):
    UniqueKeyLoader.yaml_implicit_resolvers[first_char] = [
        (tag, regexp)
        for tag, regexp in mappings
        if tag != "tag:yaml.org,2002:bool"
    ]


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
class LoadedConfig:
    config: AppConfig
    sources: tuple[str, ...]
    warnings: tuple[str, ...]


def _load_schema_validator() -> Any:
    schema_text = resources.files("shbctl.schemas").joinpath("config.schema.json").read_text(
        encoding="utf-8"
    )
    schema = json.loads(schema_text)
    validator_cls = validators.validator_for(schema)
    validator_cls.check_schema(schema)
    return validator_cls(schema)


def user_config_dir() -> Path:
    xdg_config = Path(os.environ.get("XDG_CONFIG_HOME", Path.home() / ".config"))
    return xdg_config / "shbctl"


def _read_yaml(path: Path | Traversable) -> dict[str, Any]:
    try:
        content = path.read_text(encoding="utf-8")
    except OSError as exc:
        raise ConfigLoadError(f"Could not read config file {path}: {exc}") from exc

    try:
        loaded = yaml.load(content, Loader=UniqueKeyLoader)
    except yaml.YAMLError as exc:
        raise ConfigValidationError(f"Invalid YAML in {path}: {exc}") from exc

    if loaded is None:
        return {}
    if not isinstance(loaded, dict):
        raise ConfigValidationError(f"Config file {path} must contain a mapping at root")
    return loaded


def _validate(doc: dict[str, Any], source: Path | Traversable) -> None:
    validator = _load_schema_validator()
    try:
        validator.validate(doc)
    except ValidationError as exc:
        path = ".".join(str(p) for p in exc.path)
        where = f" ({path})" if path else ""
        raise ConfigValidationError(f"Schema validation failed for {source}{where}: {exc.message}") from exc


def normalize_uuid(value: str, *, context: str) -> str:
    normalized = value.strip().lower()
    if not _UUID_RE.match(normalized):
        raise ConfigValidationError(
            f"{context} must be a 16-bit, 32-bit, or 128-bit UUID string"
        )
    return normalized


def _normalize_bool(value: Any, *, context: str) -> bool:
    if isinstance(value, bool):
        return value
    if isinstance(value, str):
        lowered = value.strip().lower()
        if lowered == "true":
            return True
        if lowered == "false":
            return False
    raise ConfigValidationError(f"{context} must be boolean true/false")


def build_config(doc: dict[str, Any]) -> AppConfig:
    """Turn a merged, schema-valid document into an ``AppConfig``."""
    defaults = AppConfig()
    return AppConfig(
        target_identifier=str(doc.get("target_identifier", defaults.target_identifier)),
        characteristic_uuid=normalize_uuid(
            str(doc.get("characteristic_uuid", defaults.characteristic_uuid)),
            context="characteristic_uuid",
        ),
        scan_timeout_s=float(doc.get("scan_timeout_s", defaults.scan_timeout_s)),
        selection_default=SelectionDefault(doc.get("selection_default", defaults.selection_default.value)),
        diagnostics=_normalize_bool(doc.get("diagnostics", defaults.diagnostics), context="diagnostics"),
        connect_timeout_s=float(doc.get("connect_timeout_s", defaults.connect_timeout_s)),
    )


def _packaged_config_path() -> Traversable:
    return resources.files("shbctl.config").joinpath("default.yaml")


def _user_config_path() -> Path | None:
    directory = user_config_dir()
    for name in _CONFIG_FILENAMES:
        candidate = directory / name
        if candidate.is_file():
            return candidate
    return None


def load_config(path: Path | None = None) -> LoadedConfig:
    """Load packaged defaults, then overlay the user (or explicit) config file.

    An explicit ``path`` must exist and replaces the XDG user config.
    """
    packaged = _packaged_config_path()
    merged = _read_yaml(packaged)
    _validate(merged, packaged)
    sources = [str(packaged)]
    warnings: list[str] = []

    override: Path | None
    user_path = _user_config_path()
    if path is not None:
        if not path.is_file():
            raise ConfigLoadError(f"Config file {path} does not exist")
        if user_path is not None and user_path.resolve() != path.resolve():
            warning = f"User config {user_path} ignored in favour of {path}"
            LOGGER.warning(warning)
            warnings.append(warning)
        override = path
    else:
        override = user_path

    if override is not None:
        doc = _read_yaml(override)
        _validate(doc, override)
        for key, value in doc.items():
            if merged.get(key) != value:
                LOGGER.info("Config '%s' overridden by %s", key, override)
            merged[key] = value
        sources.append(str(override))

    return LoadedConfig(config=build_config(merged), sources=tuple(sources), warnings=tuple(warnings))
