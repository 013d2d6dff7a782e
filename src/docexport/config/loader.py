"""
docexport - runtime config loader.

File: src/docexport/config/loader.py

Purpose
- Load the effective export config from defaults, ``export.toml``, the
  environment and caller overrides, and expose it as ``ExportSettings``.

Functional requirements
- Precedence: overrides > env (DOCEXPORT_<SECTION>_<KEY>) > file > defaults.
- Every environment binding is declared with its type; a value that does not
  coerce raises ``ConfigLoadError`` naming the variable.
- Path fields are resolved relative to the directory of the config file.
- Profiles are selected by argument, the ``profile`` override or
  ``DOCEXPORT_PROFILE``.
"""

from __future__ import annotations

import os
import tomllib
from collections.abc import Mapping
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Final, Literal

from docexport.config.schema import (
    PATH_FIELDS,
    RENDERER_KINDS,
    apply_profile_overlay,
    assert_valid_config,
    default_config,
    merge_config,
)
from docexport.constants import DEFAULT_CONFIG_FILE, ENV_PREFIX
from docexport.errors import ConfigurationError

ValueKind = Literal["str", "int", "float", "bool"]

_BOOLEAN_TRUE: Final[frozenset[str]] = frozenset({"1", "true", "t", "yes", "y", "on"})
_BOOLEAN_FALSE: Final[frozenset[str]] = frozenset({"0", "false", "f", "no", "n", "off"})


@dataclass(frozen=True, slots=True)
class _Binding:
    path: tuple[str, ...]
    kind: ValueKind

    @property
    def env_name(self) -> str:
        return ENV_PREFIX + "_".join(part.upper() for part in self.path)


# Renderer argv lists are file-only; every scalar knob is reachable from the environment.
_ENV_BINDINGS: Final[tuple[_Binding, ...]] = (
    _Binding(("paths", "build_root"), "str"),
    _Binding(("paths", "temp_root"), "str"),
    _Binding(("assets", "base_path"), "str"),
    _Binding(("assets", "simple_names"), "bool"),
    _Binding(("assets", "fetch_timeout_seconds"), "float"),
    _Binding(("assets", "max_concurrency"), "int"),
    _Binding(("export", "default_output_dir"), "str"),
    _Binding(("export", "max_concurrent_targets"), "int"),
    _Binding(("templates", "tex"), "str"),
    _Binding(("templates", "typst"), "str"),
    _Binding(("renderers", "timeout_seconds"), "float"),
    _Binding(("observability", "log_level"), "str"),
    _Binding(("observability", "log_format"), "str"),
    _Binding(("observability", "log_dir"), "str"),
    _Binding(("observability", "redact_secrets"), "bool"),
)


class ConfigLoadError(ConfigurationError):
    """Raised when config cannot be loaded or overrides cannot be coerced."""


@dataclass(frozen=True, slots=True)
class ExportSettings:
    """Typed, validated view of the effective config."""

    build_root: Path
    temp_root: Path | None
    asset_base_path: str
    simple_asset_names: bool
    fetch_timeout_seconds: float
    max_asset_concurrency: int | None
    default_output_dir: Path
    max_concurrent_targets: int | None
    templates: Mapping[str, str]
    renderers: Mapping[str, tuple[str, ...]]
    renderer_timeout_seconds: float
    log_level: str = "INFO"
    log_format: str = "json"
    log_dir: Path = field(default_factory=lambda: Path("_build/logs"))
    redact_secrets: bool = True

    @classmethod
    def from_config(cls, config: Mapping[str, Any]) -> ExportSettings:
        validated = assert_valid_config(config)
        paths = validated["paths"]
        assets = validated["assets"]
        export = validated["export"]
        renderers = validated["renderers"]
        observability = validated["observability"]
        temp_root = paths.get("temp_root")
        return cls(
            build_root=Path(paths["build_root"]),
            temp_root=Path(temp_root) if temp_root else None,
            asset_base_path=assets["base_path"],
            simple_asset_names=assets["simple_names"],
            fetch_timeout_seconds=assets["fetch_timeout_seconds"],
            max_asset_concurrency=assets.get("max_concurrency"),
            default_output_dir=Path(export["default_output_dir"]),
            max_concurrent_targets=export.get("max_concurrent_targets"),
            templates=dict(validated.get("templates", {})),
            renderers={kind: tuple(renderers[kind]) for kind in RENDERER_KINDS},
            renderer_timeout_seconds=renderers["timeout_seconds"],
            log_level=observability["log_level"],
            log_format=observability["log_format"],
            log_dir=Path(observability["log_dir"]),
            redact_secrets=observability["redact_secrets"],
        )


def load_config(
    config_path: str | Path | None = None,
    *,
    profile: str | None = None,
    cli_overrides: Mapping[str, object] | None = None,
    environ: Mapping[str, str] | None = None,
) -> dict[str, Any]:
    """Return the validated effective config as a plain mapping."""

    explicit = config_path is not None
    resolved_path = (
        Path(config_path).expanduser().resolve()
        if config_path is not None
        else (Path.cwd() / DEFAULT_CONFIG_FILE).resolve()
    )
    env_map = os.environ if environ is None else environ
    overrides = dict(cli_overrides or {})

    merged = assert_valid_config(
        merge_config(default_config(), _read_toml(resolved_path, required=explicit))
    )
    selected = _select_profile(profile, overrides.pop("profile", None), env_map)
    if selected is not None:
        merged = apply_profile_overlay(merged, selected)

    merged = merge_config(merged, _env_overrides(env_map))
    merged = merge_config(merged, _dotted_overrides(overrides))
    return assert_valid_config(normalize_paths(merged, base_dir=resolved_path.parent))


def load_settings(
    config_path: str | Path | None = None,
    *,
    profile: str | None = None,
    cli_overrides: Mapping[str, object] | None = None,
    environ: Mapping[str, str] | None = None,
) -> ExportSettings:
    return ExportSettings.from_config(
        load_config(config_path, profile=profile, cli_overrides=cli_overrides, environ=environ)
    )


def normalize_paths(config: Mapping[str, object], *, base_dir: Path) -> dict[str, Any]:
    """Resolve every configured path field against ``base_dir``."""

    materialized = merge_config({}, config)
    for section, key in PATH_FIELDS:
        table = materialized.get(section)
        if not isinstance(table, dict) or not isinstance(table.get(key), str):
            continue
        candidate = Path(os.path.expandvars(table[key])).expanduser()
        if not candidate.is_absolute():
            candidate = base_dir / candidate
        table[key] = Path(os.path.normpath(candidate)).as_posix()
    return materialized


def _read_toml(path: Path, *, required: bool) -> dict[str, Any]:
    if not path.exists():
        if required:
            raise ConfigLoadError(f"config file not found: {path}")
        return {}
    try:
        with path.open("rb") as handle:
            return tomllib.load(handle)
    except tomllib.TOMLDecodeError as exc:
        raise ConfigLoadError(f"invalid TOML in {path}: {exc}") from exc
    except OSError as exc:
        raise ConfigLoadError(f"unable to read config file {path}: {exc}") from exc


def _select_profile(
    explicit: str | None, override: object, environ: Mapping[str, str]
) -> str | None:
    if explicit is None and override is not None and not isinstance(override, str):
        raise ConfigLoadError("override 'profile' must be a string")
    for candidate in (explicit, override, environ.get(f"{ENV_PREFIX}PROFILE")):
        if candidate is not None:
            return str(candidate).strip() or None
    return None


def _env_overrides(environ: Mapping[str, str]) -> dict[str, Any]:
    overrides: dict[str, Any] = {}
    for binding in _ENV_BINDINGS:
        raw = environ.get(binding.env_name)
        if raw is not None:
            _set_nested(overrides, binding.path, _coerce(raw.strip(), binding))
    return overrides


def _coerce(value: str, binding: _Binding) -> object:
    target = ".".join(binding.path)
    if binding.kind == "str":
        return value
    if binding.kind == "bool":
        lowered = value.lower()
        if lowered in _BOOLEAN_TRUE:
            return True
        if lowered in _BOOLEAN_FALSE:
            return False
        raise ConfigLoadError(
            f"{binding.env_name} -> {target} must be a boolean (true/false/1/0/yes/no/on/off)"
        )
    convert = int if binding.kind == "int" else float
    try:
        return convert(value)
    except ValueError as exc:
        noun = "an integer" if binding.kind == "int" else "a number"
        raise ConfigLoadError(f"{binding.env_name} -> {target} must be {noun}") from exc


def _dotted_overrides(overrides: Mapping[str, object]) -> dict[str, Any]:
    payload: dict[str, Any] = {}
    for key in sorted(overrides):
        path = tuple(part for part in key.split(".") if part)
        if not path:
            raise ConfigLoadError(f"invalid override key {key!r}")
        _set_nested(payload, path, overrides[key])
    return payload


def _set_nested(target: dict[str, Any], path: tuple[str, ...], value: object) -> None:
    cursor = target
    for part in path[:-1]:
        cursor = cursor.setdefault(part, {})
    cursor[path[-1]] = value


__all__ = [
    "ConfigLoadError",
    "ExportSettings",
    "load_config",
    "load_settings",
    "normalize_paths",
]
