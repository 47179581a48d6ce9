"""Configuration loader for recordctl.

This module centralises the logic for reading configuration values from
multiple sources, in increasing order of precedence:

1. Built-in defaults.
2. ``~/.config/recordctl/config.yml`` (or an override path).
3. Environment variables prefixed with ``RECORDCTL_``.
4. Explicit overrides supplied programmatically (reserved for CLI flags).

Environment keys use double underscores to express nesting, e.g.::

    export RECORDCTL_GENERATOR__PREFIX=make_
    export RECORDCTL_GENERATOR__VALIDATE=false

Values are coerced via PyYAML's ``safe_load`` so that booleans and numbers are
parsed naturally. The resulting configuration is exposed as immutable
``dataclasses`` for convenient access.
"""
from __future__ import annotations

import copy
import os
import re
from collections.abc import Mapping, MutableMapping
from dataclasses import dataclass
from pathlib import Path
from typing import cast

try:  # PyYAML is a runtime dependency (declared in pyproject.toml).
    import yaml
except Exception as exc:  # pragma: no cover - import failure covered in tests
    raise RuntimeError(
        "PyYAML is required to load recordctl configuration. Install with "
        "`pip install recordctl` or ensure PyYAML>=6.0 is available."
    ) from exc


ENV_PREFIX = "RECORDCTL_"
CONFIG_ENV_VAR = f"{ENV_PREFIX}CONFIG_FILE"
DEFAULT_CONFIG_FILE = "~/.config/recordctl/config.yml"

PREFIX_PATTERN = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")


class ConfigError(RuntimeError):
    """Raised when configuration parsing fails."""


@dataclass(frozen=True)
class GeneratorConfig:
    """Defaults applied to the record-constructor generator."""

    prefix: str = "new_"
    validate: bool = True

    def to_dict(self) -> dict[str, object]:
        """Return a serialisable representation."""
        return {"prefix": self.prefix, "validate": self.validate}


@dataclass(frozen=True)
class AppConfig:
    """Resolved configuration values for recordctl."""

    config_file: Path
    state_dir: Path
    catalog_file: Path
    logs_dir: Path
    generator: GeneratorConfig

    def to_dict(self) -> dict[str, object]:
        """Return a JSON-serialisable representation of the config."""
        return {
            "config_file": str(self.config_file),
            "state_dir": str(self.state_dir),
            "catalog_file": str(self.catalog_file),
            "logs_dir": str(self.logs_dir),
            "generator": self.generator.to_dict(),
        }


DEFAULTS: dict[str, object] = {
    "config_file": DEFAULT_CONFIG_FILE,
    "state_dir": "~/.local/state/recordctl",
    "catalog_file": None,  # derived from state_dir when absent
    "logs_dir": None,  # derived from state_dir when absent
    "generator": {
        "prefix": "new_",
        "validate": True,
    },
}

ALLOWED_TOP_LEVEL_KEYS = set(DEFAULTS.keys())
ALLOWED_GENERATOR_KEYS = {"prefix", "validate"}


def load_config(
    config_file: str | os.PathLike[str] | None = None,
    *,
    env: Mapping[str, str] | None = None,
    overrides: Mapping[str, object] | None = None,
) -> AppConfig:
    """Load and merge configuration sources into an :class:`AppConfig`."""
    resolved_env = dict(os.environ if env is None else env)
    config_path = _determine_config_path(config_file, resolved_env)

    merged = copy.deepcopy(DEFAULTS)
    for layer in (
        _load_yaml_file(config_path),
        _build_env_overrides(resolved_env),
        _as_dict(overrides, "overrides"),
    ):
        _deep_merge(merged, layer)
    merged["config_file"] = str(config_path)

    _validate_structure(merged)
    return _build_app_config(merged)


def _determine_config_path(
    cli_override: str | os.PathLike[str] | None,
    env: Mapping[str, str],
) -> Path:
    chosen = cli_override or env.get(CONFIG_ENV_VAR) or DEFAULT_CONFIG_FILE
    return Path(chosen).expanduser()


def _load_yaml_file(path: Path) -> dict[str, object]:
    if not path.exists():
        return {}
    try:
        data = yaml.safe_load(path.read_text(encoding="utf-8")) or {}
    except yaml.YAMLError as exc:  # pragma: no cover - PyYAML owns detailed error
        raise ConfigError(f"Failed to parse config file {path}: {exc}") from exc
    if not isinstance(data, Mapping):
        raise ConfigError(f"Config file {path} must contain a mapping at the top level.")
    return _as_dict(data, f"file:{path}")


def _validate_structure(raw: Mapping[str, object]) -> None:
    unknown_keys = set(raw.keys()) - ALLOWED_TOP_LEVEL_KEYS
    if unknown_keys:
        joined = ", ".join(sorted(unknown_keys))
        raise ConfigError(f"Unknown configuration keys: {joined}.")

    generator_map = _as_dict(raw.get("generator"), "generator")
    unknown = set(generator_map.keys()) - ALLOWED_GENERATOR_KEYS
    if unknown:
        joined = ", ".join(sorted(unknown))
        raise ConfigError(f"Unknown generator configuration keys: {joined}.")

    prefix = generator_map.get("prefix")
    if not isinstance(prefix, str) or not PREFIX_PATTERN.fullmatch(prefix):
        raise ConfigError(f"generator.prefix must be a valid identifier prefix. Got {prefix!r}.")

    validate = generator_map.get("validate")
    if not isinstance(validate, bool):
        raise ConfigError(
            f"Expected generator.validate to be a boolean. Got {type(validate).__name__}."
        )


def _build_app_config(raw: Mapping[str, object]) -> AppConfig:
    state_dir = _to_path(raw.get("state_dir"), "state_dir")
    catalog_value = raw.get("catalog_file")
    logs_value = raw.get("logs_dir")
    generator_map = _as_dict(raw.get("generator"), "generator")

    return AppConfig(
        config_file=_to_path(raw.get("config_file"), "config_file"),
        state_dir=state_dir,
        catalog_file=(
            _to_path(catalog_value, "catalog_file") if catalog_value else state_dir / "types.yml"
        ),
        logs_dir=_to_path(logs_value, "logs_dir") if logs_value else state_dir / "logs",
        generator=GeneratorConfig(
            prefix=str(generator_map["prefix"]),
            validate=bool(generator_map["validate"]),
        ),
    )


def _build_env_overrides(env: Mapping[str, str]) -> dict[str, object]:
    """Translate ``RECORDCTL_A__B=value`` variables into a nested mapping."""
    overrides: dict[str, object] = {}
    for key, raw in env.items():
        if key == CONFIG_ENV_VAR or not key.startswith(ENV_PREFIX):
            continue
        segments = [part.lower() for part in key[len(ENV_PREFIX) :].split("__") if part]
        if not segments:
            continue
        try:
            value = yaml.safe_load(raw.strip())
        except yaml.YAMLError:  # pragma: no cover - keep the raw string
            value = raw.strip()
        _assign_nested(overrides, segments, value)
    return overrides


def _assign_nested(tree: MutableMapping[str, object], path: list[str], value: object) -> None:
    node = tree
    for segment in path[:-1]:
        child = node.setdefault(segment, {})
        if not isinstance(child, MutableMapping):
            dotted = ".".join(path)
            raise ConfigError(f"Environment override {dotted} conflicts with a scalar value.")
        node = cast(MutableMapping[str, object], child)
    node[path[-1]] = value


def _deep_merge(target: MutableMapping[str, object], layer: Mapping[str, object]) -> None:
    for key, value in layer.items():
        current = target.get(key)
        if isinstance(current, MutableMapping) and isinstance(value, Mapping):
            _deep_merge(current, _as_dict(value, key))
        else:
            target[key] = value


def _to_path(value: object, key: str) -> Path:
    if not isinstance(value, str) or not value:
        raise ConfigError(f"Expected {key} to be a filesystem path. Got {value!r}.")
    return Path(value).expanduser()


def _as_dict(value: object | None, label: str) -> dict[str, object]:
    if value is None:
        return {}
    if not isinstance(value, Mapping):
        raise ConfigError(f"Expected {label} to be a mapping. Got {type(value).__name__}.")
    bad_keys = [key for key in value if not isinstance(key, str)]
    if bad_keys:
        raise ConfigError(f"Mapping {label} must use string keys. Got {bad_keys[0]!r}.")
    return dict(value)


__all__ = [
    "AppConfig",
    "ConfigError",
    "GeneratorConfig",
    "load_config",
]
