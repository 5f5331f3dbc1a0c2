"""Typed settings loader for `mapcomposer.yaml`."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Mapping, cast

import yaml

from .util import setup_logging


_LOGGER = logging.getLogger("mapcomposer.config")

OVERLAP_POLICIES = ("warn", "strict")
UNKNOWN_PROJECTION_POLICIES = ("reject", "fallback")


def _mapping(value: Any, field_name: str) -> Mapping[str, Any]:
    if value is None:
        return {}
    if not isinstance(value, Mapping):
        raise ValueError(f"Expected mapping for '{field_name}'")
    return cast(Mapping[str, Any], value)


def _str(value: Any, field_name: str) -> str:
    if not isinstance(value, str) or not value.strip():
        raise ValueError(f"Expected non-empty string for '{field_name}'")
    return value.strip()


def _positive_float(value: Any, field_name: str) -> float:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise ValueError(f"Expected float for '{field_name}'")
    if value <= 0:
        raise ValueError(f"'{field_name}' must be positive")
    return float(value)


def _bool(value: Any, field_name: str) -> bool:
    if not isinstance(value, bool):
        raise ValueError(f"Expected bool for '{field_name}'")
    return value


def _choice(value: Any, field_name: str, allowed: tuple[str, ...]) -> str:
    raw = _str(value, field_name).lower()
    if raw not in allowed:
        raise ValueError(f"'{field_name}' must be one of: {', '.join(allowed)}")
    return raw


@dataclass(frozen=True, slots=True)
class CanvasConfig:
    width: float = 960.0
    height: float = 500.0

    @classmethod
    def from_mapping(cls, raw: Mapping[str, Any]) -> CanvasConfig:
        return cls(
            width=_positive_float(raw.get("width", 960.0), "canvas.width"),
            height=_positive_float(raw.get("height", 500.0), "canvas.height"),
        )


@dataclass(frozen=True, slots=True)
class LoggingConfig:
    verbose: bool = False
    log_file: Path | None = None

    @classmethod
    def from_mapping(cls, raw: Mapping[str, Any], root_dir: Path) -> LoggingConfig:
        log_file_raw = raw.get("log_file")
        log_file = None
        if log_file_raw is not None:
            candidate = Path(_str(log_file_raw, "logging.log_file"))
            log_file = candidate if candidate.is_absolute() else root_dir / candidate
        return cls(verbose=_bool(raw.get("verbose", False), "logging.verbose"), log_file=log_file)


@dataclass(frozen=True, slots=True)
class ComposerSettings:
    canvas: CanvasConfig = field(default_factory=CanvasConfig)
    reference_scale: float = 2700.0
    overlap_policy: str = "warn"
    unknown_projection_policy: str = "reject"
    fallback_projection: str | None = None
    logging: LoggingConfig = field(default_factory=LoggingConfig)
    source_path: Path | None = None

    @classmethod
    def from_mapping(cls, raw: Mapping[str, Any], source_path: Path | None = None) -> ComposerSettings:
        root_dir = source_path.parent if source_path is not None else Path.cwd()
        unknown_policy = _choice(
            raw.get("unknown_projection_policy", "reject"),
            "unknown_projection_policy",
            UNKNOWN_PROJECTION_POLICIES,
        )
        fallback_raw = raw.get("fallback_projection")
        fallback = None if fallback_raw is None else _str(fallback_raw, "fallback_projection")
        if unknown_policy == "fallback" and fallback is None:
            raise ValueError("'fallback_projection' is required when unknown_projection_policy is 'fallback'")
        return cls(
            canvas=CanvasConfig.from_mapping(_mapping(raw.get("canvas"), "canvas")),
            reference_scale=_positive_float(raw.get("reference_scale", 2700.0), "reference_scale"),
            overlap_policy=_choice(raw.get("overlap_policy", "warn"), "overlap_policy", OVERLAP_POLICIES),
            unknown_projection_policy=unknown_policy,
            fallback_projection=fallback,
            logging=LoggingConfig.from_mapping(_mapping(raw.get("logging"), "logging"), root_dir),
            source_path=source_path,
        )


def load_settings(path: str | Path | None = None) -> ComposerSettings:
    """Load settings from YAML; a missing file yields the defaults."""
    if path is None:
        return ComposerSettings()
    cfg_path = Path(path).resolve()
    if not cfg_path.exists():
        _LOGGER.info("Settings file %s not found; using defaults", cfg_path)
        return ComposerSettings()
    with cfg_path.open("r", encoding="utf-8") as fh:
        raw = yaml.safe_load(fh)
    if raw is None:
        raw = {}
    if not isinstance(raw, Mapping):
        raise ValueError("Top-level settings must be a YAML mapping")
    return ComposerSettings.from_mapping(cast(Mapping[str, Any], raw), cfg_path)


def configure_logging(settings: ComposerSettings) -> None:
    setup_logging(settings.logging.log_file, settings.logging.verbose)
