"""
docexport - configuration schema and validation.

File: src/docexport/config/schema.py

Purpose
- Define authoritative configuration defaults and strict validation rules.

What should be included in this file
- Schema versioning and migration guidance.
- Validation rules for required fields, types, enums, numeric constraints and argv templates.
- Profile overlay validation and deterministic deep-merge helpers.
- Redaction rules for sensitive fields.

Functional requirements
- Validate config payloads and return structured errors (field path + message).
- Reject embedded secrets; renderer commands reference env var names only.
"""

from __future__ import annotations

import copy
import math
import re
from collections.abc import Callable, Mapping, Sequence
from dataclasses import dataclass
from typing import Any, Final, Literal, NotRequired, TypedDict

from docexport.constants import CONFIG_SCHEMA_VERSION
from docexport.errors import ConfigurationError

ConfigSchemaVersion: Final[int] = CONFIG_SCHEMA_VERSION
RENDERER_KINDS: Final[tuple[str, ...]] = (
    "tex",
    "pdf",
    "typst",
    "docx",
    "jats",
    "notebook",
    "jupyter_book",
)

_PROFILE_NAME_PATTERN = re.compile(r"^[a-z][a-z0-9_-]*$")
_CAMEL_CASE_BOUNDARY = re.compile(r"([a-z0-9])([A-Z])")
_NON_ALNUM = re.compile(r"[^a-z0-9]+")

_SENSITIVE_KEY_TOKENS: Final[frozenset[str]] = frozenset(
    {
        "secret",
        "token",
        "password",
        "passwd",
        "apikey",
        "private",
        "credential",
        "credentials",
        "auth",
    }
)
_SENSITIVE_KEY_PHRASES: Final[tuple[str, ...]] = (
    "api_key",
    "access_token",
    "refresh_token",
    "client_secret",
    "private_key",
    "password",
    "secret",
)

# Config paths that should be normalized relative to config file location.
PATH_FIELDS: Final[tuple[tuple[str, ...], ...]] = (
    ("paths", "build_root"),
    ("paths", "temp_root"),
    ("export", "default_output_dir"),
    ("observability", "log_dir"),
)


class MetaConfig(TypedDict):
    schema_version: int


class PathsConfig(TypedDict):
    build_root: str
    temp_root: NotRequired[str | None]


class AssetsConfig(TypedDict):
    base_path: str
    simple_names: bool
    fetch_timeout_seconds: float
    max_concurrency: NotRequired[int | None]


class ExportConfig(TypedDict):
    default_output_dir: str
    max_concurrent_targets: NotRequired[int | None]


class TemplatesConfig(TypedDict, total=False):
    tex: str
    typst: str


class RenderersConfig(TypedDict):
    tex: list[str]
    pdf: list[str]
    typst: list[str]
    docx: list[str]
    jats: list[str]
    notebook: list[str]
    jupyter_book: list[str]
    timeout_seconds: float


class ObservabilityConfig(TypedDict):
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"]
    log_format: Literal["json", "text"]
    log_dir: str
    redact_secrets: bool


class ProfileOverlay(TypedDict, total=False):
    paths: dict[str, object]
    assets: dict[str, object]
    export: dict[str, object]
    templates: dict[str, object]
    renderers: dict[str, object]
    observability: dict[str, object]


class ExportEngineConfig(TypedDict):
    meta: MetaConfig
    paths: PathsConfig
    assets: AssetsConfig
    export: ExportConfig
    templates: TemplatesConfig
    renderers: RenderersConfig
    observability: ObservabilityConfig
    profiles: dict[str, ProfileOverlay]


DEFAULT_CONFIG: Final[ExportEngineConfig] = {
    "meta": {
        "schema_version": ConfigSchemaVersion,
    },
    "paths": {
        "build_root": "_build/",
        "temp_root": None,
    },
    "assets": {
        "base_path": "images",
        "simple_names": False,
        "fetch_timeout_seconds": 60.0,
        "max_concurrency": None,
    },
    "export": {
        "default_output_dir": "_build/exports/",
        "max_concurrent_targets": None,
    },
    "templates": {
        "tex": "plain_latex",
        "typst": "plain_typst",
    },
    "renderers": {
        "tex": [
            "myst",
            "build",
            "{{ input }}",
            "--tex",
            "--output",
            "{{ output }}",
            "{% if template %}--template={{ template }}{% endif %}",
        ],
        "pdf": [
            "latexmk",
            "-f",
            "-xelatex",
            "-synctex=1",
            "-interaction=batchmode",
            "-file-line-error",
            "-latexoption=-shell-escape",
            "{{ input }}",
        ],
        "typst": [
            "myst",
            "build",
            "{{ input }}",
            "--typst",
            "--output",
            "{{ output }}",
            "{% if template %}--template={{ template }}{% endif %}",
        ],
        "docx": ["myst", "build", "{{ input }}", "--docx", "--output", "{{ output }}"],
        "jats": ["myst", "build", "{{ input }}", "--jats", "--output", "{{ output }}"],
        "notebook": ["jupytext", "--to", "ipynb", "--output", "{{ output }}", "{{ input }}"],
        "jupyter_book": ["jupyter-book", "build", "{{ input }}", "--path-output", "{{ output }}"],
        "timeout_seconds": 600.0,
    },
    "observability": {
        "log_level": "INFO",
        "log_format": "json",
        "log_dir": "_build/logs/",
        "redact_secrets": True,
    },
    "profiles": {
        "ci": {
            "assets": {"simple_names": True},
            "observability": {"log_format": "json"},
        },
        "debug": {
            "observability": {"log_level": "DEBUG", "log_format": "text"},
        },
    },
}


@dataclass(frozen=True, slots=True)
class ConfigValidationIssue:
    """Single structured validation failure."""

    path: str
    message: str


@dataclass(frozen=True, slots=True)
class ConfigValidationResult:
    """Validation result with normalized config when no issues were found."""

    config: dict[str, Any] | None
    issues: tuple[ConfigValidationIssue, ...]

    @property
    def is_valid(self) -> bool:
        return self.config is not None and not self.issues


class ConfigValidationError(ConfigurationError):
    """Raised when strict config validation fails."""

    def __init__(self, issues: Sequence[ConfigValidationIssue]) -> None:
        self.issues = tuple(issues)
        if not self.issues:
            rendered = "unknown validation failure"
        else:
            rendered = "\n".join(f"- {item.path}: {item.message}" for item in self.issues)
        super().__init__(f"invalid config:\n{rendered}")


class _IssueCollector:
    __slots__ = ("_items",)

    def __init__(self) -> None:
        self._items: list[ConfigValidationIssue] = []

    def add(self, path: str, message: str) -> None:
        self._items.append(ConfigValidationIssue(path=path, message=message))

    def items(self) -> tuple[ConfigValidationIssue, ...]:
        return tuple(self._items)

    @property
    def has_issues(self) -> bool:
        return bool(self._items)


def default_config() -> ExportEngineConfig:
    """Return a deep copy of deterministic built-in defaults."""

    return copy.deepcopy(DEFAULT_CONFIG)


def migration_guidance(found_version: int) -> str:
    """Return deterministic migration guidance for schema version mismatch."""

    if found_version < ConfigSchemaVersion:
        return (
            f"schema version {found_version} is older than supported {ConfigSchemaVersion}; "
            "upgrade export.toml to the current schema"
        )
    if found_version > ConfigSchemaVersion:
        return (
            f"schema version {found_version} is newer than supported {ConfigSchemaVersion}; "
            "upgrade the docexport runtime"
        )
    return "schema version is current"


def merge_config(base: Mapping[str, object], overlay: Mapping[str, object]) -> dict[str, Any]:
    """Deterministically deep-merge ``overlay`` onto ``base``."""

    merged = _deep_copy_mapping(base)
    _merge_into(merged, overlay)
    return merged


def apply_profile_overlay(config: Mapping[str, object], profile: str | None) -> dict[str, Any]:
    """Apply a named profile overlay and re-validate the resulting config."""

    materialized = _deep_copy_mapping(config)
    if profile is None:
        return materialized

    selected = profile.strip()
    if not selected:
        return materialized

    profiles_raw = materialized.get("profiles")
    if not isinstance(profiles_raw, Mapping):
        raise ConfigValidationError(
            (ConfigValidationIssue("profiles", "profiles section is required"),)
        )

    overlay_raw = profiles_raw.get(selected)
    if overlay_raw is None:
        raise ConfigValidationError(
            (ConfigValidationIssue("profiles", f"profile {selected!r} is not defined"),)
        )
    if not isinstance(overlay_raw, Mapping):
        raise ConfigValidationError(
            (ConfigValidationIssue(f"profiles.{selected}", "profile overlay must be an object"),)
        )

    merged = merge_config(materialized, overlay_raw)
    return assert_valid_config(merged)


def validate_config(config: Mapping[str, object] | object) -> ConfigValidationResult:
    """Validate config and return structured issues with deterministic paths."""

    issues = _IssueCollector()
    root = _as_object(config, "<root>", issues)
    if root is None:
        return ConfigValidationResult(config=None, issues=issues.items())

    normalized = _validate_root(root, "", issues, partial=False)
    if issues.has_issues:
        return ConfigValidationResult(config=None, issues=issues.items())
    return ConfigValidationResult(config=normalized, issues=())


def assert_valid_config(config: Mapping[str, object] | object) -> dict[str, Any]:
    """Validate config and raise ``ConfigValidationError`` on failure."""

    result = validate_config(config)
    if result.config is None:
        raise ConfigValidationError(result.issues)
    return result.config


def redact_config(config: Mapping[str, object] | object) -> dict[str, Any]:
    """Return deterministic redacted representation for logs."""

    if not isinstance(config, Mapping):
        return {}
    redacted = _redact_value(config, parent_key=None)
    if isinstance(redacted, dict):
        return redacted
    return {}


def _validate_root(
    payload: Mapping[str, object],
    path: str,
    issues: _IssueCollector,
    *,
    partial: bool,
) -> dict[str, Any]:
    validators: dict[str, Callable[[dict[str, object], str, _IssueCollector, bool], dict[str, Any]]]
    validators = {
        "meta": _validate_meta,
        "paths": _validate_paths,
        "assets": _validate_assets,
        "export": _validate_export,
        "templates": _validate_templates,
        "renderers": _validate_renderers,
        "observability": _validate_observability,
    }
    allowed = {*validators, "profiles"}
    _reject_unknown_keys(payload, allowed, path, issues)
    if not partial:
        _require_keys(payload, set(validators), path, issues)

    out: dict[str, Any] = {}
    for key in sorted(validators):
        raw = payload.get(key)
        if raw is None:
            continue
        section_path = _join(path, key)
        section_obj = _as_object(raw, section_path, issues)
        if section_obj is None:
            continue
        out[key] = validators[key](section_obj, section_path, issues, partial)

    profiles_raw = payload.get("profiles")
    if profiles_raw is not None and not partial:
        profiles_path = _join(path, "profiles")
        profiles_obj = _as_object(profiles_raw, profiles_path, issues)
        if profiles_obj is not None:
            out["profiles"] = _validate_profiles(profiles_obj, profiles_path, issues)
    elif profiles_raw is not None:
        issues.add(_join(path, "profiles"), "profiles cannot be nested inside a profile")
    return out


def _validate_meta(
    payload: Mapping[str, object], path: str, issues: _IssueCollector, partial: bool
) -> dict[str, Any]:
    allowed = {"schema_version"}
    _reject_unknown_keys(payload, allowed, path, issues)
    if not partial:
        _require_keys(payload, allowed, path, issues)

    out: dict[str, Any] = {}
    if "schema_version" in payload:
        parsed = _as_int(
            payload["schema_version"], _join(path, "schema_version"), issues, minimum=1
        )
        if parsed is not None:
            out["schema_version"] = parsed
            if parsed != ConfigSchemaVersion:
                issues.add(_join(path, "schema_version"), migration_guidance(parsed))
    return out


def _validate_paths(
    payload: Mapping[str, object], path: str, issues: _IssueCollector, partial: bool
) -> dict[str, Any]:
    _reject_unknown_keys(payload, {"build_root", "temp_root"}, path, issues)
    if not partial:
        _require_keys(payload, {"build_root"}, path, issues)

    out: dict[str, Any] = {}
    if "build_root" in payload:
        parsed = _as_path_text(payload["build_root"], _join(path, "build_root"), issues)
        if parsed is not None:
            out["build_root"] = parsed
    if "temp_root" in payload:
        if payload["temp_root"] is None:
            out["temp_root"] = None
        else:
            parsed_temp = _as_path_text(payload["temp_root"], _join(path, "temp_root"), issues)
            if parsed_temp is not None:
                out["temp_root"] = parsed_temp
    return out


def _validate_assets(
    payload: Mapping[str, object], path: str, issues: _IssueCollector, partial: bool
) -> dict[str, Any]:
    allowed = {"base_path", "simple_names", "fetch_timeout_seconds", "max_concurrency"}
    _reject_unknown_keys(payload, allowed, path, issues)
    if not partial:
        _require_keys(payload, allowed - {"max_concurrency"}, path, issues)

    out: dict[str, Any] = {}
    if "base_path" in payload:
        parsed_base = _as_path_text(payload["base_path"], _join(path, "base_path"), issues)
        if parsed_base is not None:
            if parsed_base.startswith("/") or ".." in parsed_base.split("/"):
                issues.add(_join(path, "base_path"), "must be a relative path inside the build")
            else:
                out["base_path"] = parsed_base
    if "simple_names" in payload:
        parsed_simple = _as_bool(payload["simple_names"], _join(path, "simple_names"), issues)
        if parsed_simple is not None:
            out["simple_names"] = parsed_simple
    if "fetch_timeout_seconds" in payload:
        parsed_timeout = _as_float(
            payload["fetch_timeout_seconds"],
            _join(path, "fetch_timeout_seconds"),
            issues,
            minimum=0.001,
        )
        if parsed_timeout is not None:
            out["fetch_timeout_seconds"] = parsed_timeout
    if "max_concurrency" in payload:
        out["max_concurrency"] = _as_optional_limit(
            payload["max_concurrency"], _join(path, "max_concurrency"), issues
        )
    return out


def _validate_export(
    payload: Mapping[str, object], path: str, issues: _IssueCollector, partial: bool
) -> dict[str, Any]:
    allowed = {"default_output_dir", "max_concurrent_targets"}
    _reject_unknown_keys(payload, allowed, path, issues)
    if not partial:
        _require_keys(payload, {"default_output_dir"}, path, issues)

    out: dict[str, Any] = {}
    if "default_output_dir" in payload:
        parsed = _as_path_text(
            payload["default_output_dir"], _join(path, "default_output_dir"), issues
        )
        if parsed is not None:
            out["default_output_dir"] = parsed
    if "max_concurrent_targets" in payload:
        out["max_concurrent_targets"] = _as_optional_limit(
            payload["max_concurrent_targets"], _join(path, "max_concurrent_targets"), issues
        )
    return out


def _validate_templates(
    payload: Mapping[str, object], path: str, issues: _IssueCollector, partial: bool
) -> dict[str, Any]:
    _reject_unknown_keys(payload, {"tex", "typst"}, path, issues)

    out: dict[str, Any] = {}
    for key in ("tex", "typst"):
        if key in payload:
            parsed = _as_str(payload[key], _join(path, key), issues)
            if parsed is not None:
                out[key] = parsed
    return out


def _validate_renderers(
    payload: Mapping[str, object], path: str, issues: _IssueCollector, partial: bool
) -> dict[str, Any]:
    allowed = {*RENDERER_KINDS, "timeout_seconds"}
    _reject_unknown_keys(payload, allowed, path, issues)
    if not partial:
        _require_keys(payload, allowed, path, issues)

    out: dict[str, Any] = {}
    for key in RENDERER_KINDS:
        if key in payload:
            parsed_argv = _as_argv(payload[key], _join(path, key), issues)
            if parsed_argv is not None:
                out[key] = parsed_argv
    if "timeout_seconds" in payload:
        parsed_timeout = _as_float(
            payload["timeout_seconds"], _join(path, "timeout_seconds"), issues, minimum=0.001
        )
        if parsed_timeout is not None:
            out["timeout_seconds"] = parsed_timeout
    return out


def _validate_observability(
    payload: Mapping[str, object], path: str, issues: _IssueCollector, partial: bool
) -> dict[str, Any]:
    allowed = {"log_level", "log_format", "log_dir", "redact_secrets"}
    _reject_unknown_keys(payload, allowed, path, issues)
    if not partial:
        _require_keys(payload, allowed, path, issues)

    out: dict[str, Any] = {}

    if "log_level" in payload:
        parsed_log_level = _as_enum(
            payload["log_level"],
            _join(path, "log_level"),
            issues,
            allowed_values=("DEBUG", "INFO", "WARNING", "ERROR"),
        )
        if parsed_log_level is not None:
            out["log_level"] = parsed_log_level

    if "log_format" in payload:
        parsed_log_format = _as_enum(
            payload["log_format"],
            _join(path, "log_format"),
            issues,
            allowed_values=("json", "text"),
        )
        if parsed_log_format is not None:
            out["log_format"] = parsed_log_format

    if "log_dir" in payload:
        parsed_log_dir = _as_path_text(payload["log_dir"], _join(path, "log_dir"), issues)
        if parsed_log_dir is not None:
            out["log_dir"] = parsed_log_dir

    if "redact_secrets" in payload:
        parsed_redact = _as_bool(payload["redact_secrets"], _join(path, "redact_secrets"), issues)
        if parsed_redact is not None:
            out["redact_secrets"] = parsed_redact

    return out


def _validate_profiles(
    payload: Mapping[str, object],
    path: str,
    issues: _IssueCollector,
) -> dict[str, Any]:
    out: dict[str, Any] = {}
    for profile_name in sorted(payload):
        profile_path = _join(path, profile_name)
        if not _PROFILE_NAME_PATTERN.fullmatch(profile_name):
            issues.add(profile_path, "profile name must match ^[a-z][a-z0-9_-]*$")
            continue
        profile_obj = _as_object(payload[profile_name], profile_path, issues)
        if profile_obj is None:
            continue
        out[profile_name] = _validate_root(profile_obj, profile_path, issues, partial=True)
    return out


def _as_object(value: object, path: str, issues: _IssueCollector) -> dict[str, object] | None:
    if not isinstance(value, Mapping):
        issues.add(path or "<root>", f"expected object, got {type(value).__name__}")
        return None
    out: dict[str, object] = {}
    for key, item in value.items():
        if not isinstance(key, str):
            issues.add(path, f"object key must be string, got {type(key).__name__}")
            continue
        out[key] = item
    return out


def _as_str(value: object, path: str, issues: _IssueCollector) -> str | None:
    if not isinstance(value, str):
        issues.add(path, f"expected string, got {type(value).__name__}")
        return None
    parsed = value.strip()
    if not parsed:
        issues.add(path, "must not be empty")
        return None
    return parsed


def _as_path_text(value: object, path: str, issues: _IssueCollector) -> str | None:
    parsed = _as_str(value, path, issues)
    if parsed is None:
        return None
    if "\x00" in parsed:
        issues.add(path, "must not contain NUL bytes")
        return None
    return parsed


def _as_argv(value: object, path: str, issues: _IssueCollector) -> list[str] | None:
    if isinstance(value, str) or not isinstance(value, Sequence):
        issues.add(path, f"expected list of strings, got {type(value).__name__}")
        return None
    if not value:
        issues.add(path, "must not be empty")
        return None
    out: list[str] = []
    for index, item in enumerate(value):
        if not isinstance(item, str):
            issues.add(f"{path}[{index}]", f"expected string, got {type(item).__name__}")
            return None
        out.append(item)
    if not out[0].strip():
        issues.add(f"{path}[0]", "executable must not be empty")
        return None
    return out


def _as_bool(value: object, path: str, issues: _IssueCollector) -> bool | None:
    if isinstance(value, bool):
        return value
    issues.add(path, f"expected boolean, got {type(value).__name__}")
    return None


def _as_int(
    value: object,
    path: str,
    issues: _IssueCollector,
    *,
    minimum: int | None = None,
) -> int | None:
    if isinstance(value, bool) or not isinstance(value, int):
        issues.add(path, f"expected integer, got {type(value).__name__}")
        return None
    if minimum is not None and value < minimum:
        issues.add(path, f"must be >= {minimum}")
        return None
    return value


def _as_optional_limit(value: object, path: str, issues: _IssueCollector) -> int | None:
    if value is None:
        return None
    return _as_int(value, path, issues, minimum=1)


def _as_float(
    value: object,
    path: str,
    issues: _IssueCollector,
    *,
    minimum: float | None = None,
) -> float | None:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        issues.add(path, f"expected number, got {type(value).__name__}")
        return None
    parsed = float(value)
    if not math.isfinite(parsed):
        issues.add(path, "must be finite")
        return None
    if minimum is not None and parsed < minimum:
        issues.add(path, f"must be >= {minimum}")
        return None
    return parsed


def _as_enum(
    value: object,
    path: str,
    issues: _IssueCollector,
    *,
    allowed_values: tuple[str, ...],
) -> str | None:
    parsed = _as_str(value, path, issues)
    if parsed is None:
        return None
    if parsed not in allowed_values:
        expected = ", ".join(sorted(allowed_values))
        issues.add(path, f"invalid value {parsed!r}; expected one of: {expected}")
        return None
    return parsed


def _reject_unknown_keys(
    payload: Mapping[str, object],
    allowed: set[str],
    path: str,
    issues: _IssueCollector,
) -> None:
    for key in sorted(payload):
        if key in allowed:
            continue
        key_path = _join(path, key)
        if _looks_sensitive_key(key):
            issues.add(
                key_path,
                "embedded secret values are forbidden; use an *_env key with an env var name",
            )
        else:
            issues.add(key_path, "unknown field")


def _require_keys(
    payload: Mapping[str, object],
    required: set[str],
    path: str,
    issues: _IssueCollector,
) -> None:
    for key in sorted(required):
        if key not in payload:
            issues.add(_join(path, key), "missing required field")


def _looks_sensitive_key(key: str) -> bool:
    normalized = _normalize_key(key)
    if normalized.endswith("_env"):
        return False
    if any(phrase in normalized for phrase in _SENSITIVE_KEY_PHRASES):
        return True
    tokens = tuple(token for token in normalized.split("_") if token)
    return any(token in _SENSITIVE_KEY_TOKENS for token in tokens)


def _normalize_key(key: str) -> str:
    with_boundaries = _CAMEL_CASE_BOUNDARY.sub(r"\1_\2", key.strip())
    return _NON_ALNUM.sub("_", with_boundaries.lower()).strip("_")


def _join(path: str, key: str) -> str:
    if not path:
        return key
    return f"{path}.{key}"


def _merge_into(target: dict[str, Any], overlay: Mapping[str, object]) -> None:
    for key in sorted(overlay):
        value = overlay[key]
        if isinstance(value, Mapping):
            existing = target.get(key)
            if isinstance(existing, dict):
                _merge_into(existing, value)
            else:
                nested: dict[str, Any] = {}
                _merge_into(nested, value)
                target[key] = nested
        else:
            target[key] = _deep_copy_value(value)


def _deep_copy_mapping(value: Mapping[str, object]) -> dict[str, Any]:
    out: dict[str, Any] = {}
    for key in sorted(value):
        out[key] = _deep_copy_value(value[key])
    return out


def _deep_copy_value(value: object) -> Any:
    if isinstance(value, Mapping):
        return {key: _deep_copy_value(item) for key, item in value.items() if isinstance(key, str)}
    if isinstance(value, list):
        return [_deep_copy_value(item) for item in value]
    if isinstance(value, tuple):
        return tuple(_deep_copy_value(item) for item in value)
    return copy.deepcopy(value)


def _redact_value(value: object, parent_key: str | None) -> object:
    if isinstance(value, Mapping):
        out: dict[str, object] = {}
        for key in sorted(value):
            item = value[key]
            if _looks_sensitive_key(key):
                out[key] = "<redacted>"
            else:
                out[key] = _redact_value(item, key)
        return out
    if isinstance(value, (list, tuple)):
        return [_redact_value(item, parent_key) for item in value]
    return value


__all__ = [
    "ConfigSchemaVersion",
    "ConfigValidationError",
    "ConfigValidationIssue",
    "ConfigValidationResult",
    "DEFAULT_CONFIG",
    "ExportEngineConfig",
    "PATH_FIELDS",
    "ProfileOverlay",
    "RENDERER_KINDS",
    "apply_profile_overlay",
    "assert_valid_config",
    "default_config",
    "merge_config",
    "migration_guidance",
    "redact_config",
    "validate_config",
]
