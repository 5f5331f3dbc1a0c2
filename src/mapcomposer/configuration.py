"""Serializable composite configuration (the interchange format)."""

from __future__ import annotations

import json
from dataclasses import dataclass, field, fields, replace
from typing import Any, Mapping

from .models import Point, ProjectionFamily, ProjectionParameters


class InvalidConfigurationError(ValueError):
    """A composite configuration or sub-projection violates an invariant."""


@dataclass(frozen=True, slots=True)
class CanvasDimensions:
    width: float
    height: float

    def to_json(self) -> dict[str, float]:
        return {"width": self.width, "height": self.height}


@dataclass(frozen=True, slots=True)
class TerritoryProjectionConfig:
    """One territory of a composite, without a live projection object."""

    code: str
    projection_id: str
    name: str = ""
    family: ProjectionFamily = ProjectionFamily.CONIC
    parameters: ProjectionParameters = field(default_factory=ProjectionParameters)
    translate_offset: Point = (0.0, 0.0)
    pixel_clip_extent: tuple[float, float, float, float] | None = None

    def to_json(self) -> dict[str, Any]:
        return {
            "code": self.code,
            "name": self.name,
            "projectionId": self.projection_id,
            "family": self.family.value,
            "parameters": self.parameters.to_dict(),
            "translateOffset": list(self.translate_offset),
            "pixelClipExtent": None if self.pixel_clip_extent is None else list(self.pixel_clip_extent),
        }

    @classmethod
    def from_json(cls, data: Mapping[str, Any]) -> TerritoryProjectionConfig:
        code = str(data.get("code") or "")
        return cls(
            code=code,
            name=str(data.get("name") or ""),
            projection_id=str(data.get("projectionId") or ""),
            family=_coerce_family(data.get("family", ProjectionFamily.CONIC.value), code),
            parameters=_coerce_parameters(data.get("parameters"), code),
            translate_offset=_coerce_offset(data.get("translateOffset"), code),
            pixel_clip_extent=_coerce_clip(data.get("pixelClipExtent"), code),
        )


def _coerce_family(value: Any, code: str) -> ProjectionFamily:
    if isinstance(value, ProjectionFamily):
        return value
    try:
        return ProjectionFamily(str(value).casefold())
    except ValueError:
        raise InvalidConfigurationError(f"Unknown family for territory: {code}") from None


def _coerce_parameters(value: Any, code: str) -> ProjectionParameters:
    if isinstance(value, ProjectionParameters):
        return value
    if value is not None and not isinstance(value, Mapping):
        raise InvalidConfigurationError(f"Invalid parameters for territory {code}: expected a mapping")
    try:
        return ProjectionParameters.from_mapping(value or {})
    except ValueError as exc:
        raise InvalidConfigurationError(f"Invalid parameters for territory {code}: {exc}") from exc


def _coerce_offset(value: Any, code: str) -> Point:
    if value is None:
        return (0.0, 0.0)
    try:
        x, y = value
        return (float(x), float(y))
    except (TypeError, ValueError):
        raise InvalidConfigurationError(f"translateOffset must be two numbers for territory: {code}") from None


def _coerce_clip(value: Any, code: str) -> tuple[float, float, float, float] | None:
    if value is None:
        return None
    try:
        x1, y1, x2, y2 = value
        return (float(x1), float(y1), float(x2), float(y2))
    except (TypeError, ValueError):
        raise InvalidConfigurationError(f"pixelClipExtent must have 4 values for territory: {code}") from None


_FIELD_COERCERS = {
    "family": _coerce_family,
    "parameters": _coerce_parameters,
    "translate_offset": _coerce_offset,
    "pixel_clip_extent": _coerce_clip,
}


_TERRITORY_FIELDS = frozenset(item.name for item in fields(TerritoryProjectionConfig))


def _validate_territory(config: TerritoryProjectionConfig) -> None:
    if not config.code or not config.code.strip():
        raise InvalidConfigurationError("Territory code is required")
    if not config.projection_id or not config.projection_id.strip():
        raise InvalidConfigurationError(f"Projection ID is required for territory: {config.code}")
    multiplier = config.parameters.scale_multiplier
    if multiplier is not None and multiplier <= 0:
        raise InvalidConfigurationError(f"Scale multiplier must be positive for territory: {config.code}")


def _validate_dimensions(width: float, height: float) -> CanvasDimensions:
    if width <= 0 or height <= 0:
        raise InvalidConfigurationError("Canvas dimensions must be positive")
    return CanvasDimensions(width=float(width), height=float(height))


class CompositeConfiguration:
    """Validated composite description keyed by territory code.

    Once a territory has been added the configuration never drops back to
    zero territories: removing the last one is rejected.
    """

    def __init__(
        self,
        atlas_id: str,
        atlas_name: str,
        reference_scale: float,
        canvas_dimensions: CanvasDimensions | tuple[float, float],
    ) -> None:
        if not atlas_id or not atlas_id.strip():
            raise InvalidConfigurationError("Atlas ID is required")
        if reference_scale <= 0:
            raise InvalidConfigurationError("Reference scale must be positive")
        if isinstance(canvas_dimensions, CanvasDimensions):
            width, height = canvas_dimensions.width, canvas_dimensions.height
        else:
            width, height = canvas_dimensions
        self.atlas_id = atlas_id
        self.atlas_name = atlas_name
        self._reference_scale = float(reference_scale)
        self._canvas = _validate_dimensions(width, height)
        self._territories: dict[str, TerritoryProjectionConfig] = {}

    def __repr__(self) -> str:
        return (
            f"CompositeConfiguration(atlas_id={self.atlas_id!r}, "
            f"territories={list(self._territories)})"
        )

    @property
    def reference_scale(self) -> float:
        return self._reference_scale

    def set_reference_scale(self, scale: float) -> None:
        if scale <= 0:
            raise InvalidConfigurationError("Reference scale must be positive")
        self._reference_scale = float(scale)

    @property
    def canvas_dimensions(self) -> CanvasDimensions:
        return self._canvas

    def set_canvas_dimensions(self, width: float, height: float) -> None:
        self._canvas = _validate_dimensions(width, height)

    def add_territory(self, config: TerritoryProjectionConfig) -> None:
        _validate_territory(config)
        self._territories[config.code] = config

    def update_territory(self, code: str, updates: Mapping[str, Any]) -> TerritoryProjectionConfig:
        """Replace fields of territory ``code``; mappings and lists are coerced as in ``from_json``."""
        existing = self._territories.get(code)
        if existing is None:
            raise InvalidConfigurationError(f"Territory not found: {code}")
        unknown = sorted(set(updates) - _TERRITORY_FIELDS)
        if unknown:
            raise InvalidConfigurationError(f"Unknown territory fields: {', '.join(unknown)}")
        changes = {
            key: _FIELD_COERCERS[key](value, code) if key in _FIELD_COERCERS else value
            for key, value in updates.items()
        }
        changes["code"] = code
        for key in ("name", "projection_id"):
            if key in changes and not isinstance(changes[key], str):
                raise InvalidConfigurationError(f"{key} must be a string for territory: {code}")
        updated = replace(existing, **changes)
        _validate_territory(updated)
        self._territories[code] = updated
        return updated

    def remove_territory(self, code: str) -> bool:
        if len(self._territories) <= 1 and code in self._territories:
            raise InvalidConfigurationError("Cannot remove the last territory")
        return self._territories.pop(code, None) is not None

    def get_territory(self, code: str) -> TerritoryProjectionConfig | None:
        return self._territories.get(code)

    def territory_codes(self) -> list[str]:
        return list(self._territories)

    def all_territories(self) -> list[TerritoryProjectionConfig]:
        return list(self._territories.values())

    @property
    def territory_count(self) -> int:
        return len(self._territories)

    def has_territory(self, code: str) -> bool:
        return code in self._territories

    def to_json(self) -> dict[str, Any]:
        return {
            "atlasId": self.atlas_id,
            "atlasName": self.atlas_name,
            "referenceScale": self._reference_scale,
            "canvasDimensions": self._canvas.to_json(),
            "territories": [territory.to_json() for territory in self._territories.values()],
        }

    @classmethod
    def from_json(cls, data: Mapping[str, Any]) -> CompositeConfiguration:
        canvas = data.get("canvasDimensions") or {}
        try:
            dimensions = (float(canvas["width"]), float(canvas["height"]))
            reference_scale = float(data["referenceScale"])
        except (KeyError, TypeError, ValueError) as exc:
            raise InvalidConfigurationError(f"Malformed composite configuration: {exc}") from exc
        composite = cls(
            str(data.get("atlasId") or ""),
            str(data.get("atlasName") or ""),
            reference_scale,
            dimensions,
        )
        for item in data.get("territories") or []:
            composite.add_territory(TerritoryProjectionConfig.from_json(item))
        return composite

    def dumps(self, **kwargs: Any) -> str:
        kwargs.setdefault("indent", 2)
        kwargs.setdefault("ensure_ascii", False)
        return json.dumps(self.to_json(), **kwargs)

    @classmethod
    def loads(cls, text: str) -> CompositeConfiguration:
        try:
            data = json.loads(text)
        except json.JSONDecodeError as exc:
            raise InvalidConfigurationError(f"Invalid composite configuration JSON: {exc}") from exc
        if not isinstance(data, dict):
            raise InvalidConfigurationError("Composite configuration JSON must be an object")
        return cls.from_json(data)
