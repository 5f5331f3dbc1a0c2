"""Domain models shared across projection modules."""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Any, Mapping


class ProjectionCategory(str, Enum):
    COMPOSITE = "composite"
    CONIC = "conic"
    AZIMUTHAL = "azimuthal"
    CYLINDRICAL = "cylindrical"
    WORLD = "world"
    COMPROMISE = "compromise"
    ARTISTIC = "artistic"


class ProjectionFamily(str, Enum):
    CONIC = "conic"
    AZIMUTHAL = "azimuthal"
    CYLINDRICAL = "cylindrical"
    PSEUDOCYLINDRICAL = "pseudocylindrical"
    POLYHEDRAL = "polyhedral"
    COMPOSITE = "composite"
    OTHER = "other"


class ProjectionStrategy(str, Enum):
    """How the factory builds a projection object."""

    NATIVE = "native"
    EXTENDED = "extended"
    COMPOSITE = "composite"


class ViewMode(str, Enum):
    SPLIT = "split"
    COMPOSITE_CUSTOM = "composite-custom"
    BUILT_IN_COMPOSITE = "built-in-composite"
    UNIFIED = "unified"


class RecommendationLevel(str, Enum):
    EXCELLENT = "excellent"
    GOOD = "good"
    USABLE = "usable"
    NOT_RECOMMENDED = "not-recommended"


PROPERTIES = frozenset({"area", "angle", "distance", "direction"})

Point = tuple[float, float]
Extent = tuple[Point, Point]


def _require_str(value: Any, field_name: str) -> str:
    if not isinstance(value, str) or not value.strip():
        raise ValueError(f"Expected non-empty string for '{field_name}'")
    return value.strip()


def _float(value: Any, field_name: str) -> float:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise ValueError(f"Expected numeric value for '{field_name}'")
    return float(value)


def _optional_float(value: Any, field_name: str) -> float | None:
    if value is None:
        return None
    return _float(value, field_name)


def _pair(value: Any, field_name: str) -> Point:
    if not isinstance(value, (list, tuple)) or len(value) != 2:
        raise ValueError(f"Expected [a, b] pair for '{field_name}'")
    return (_float(value[0], f"{field_name}[0]"), _float(value[1], f"{field_name}[1]"))


def _optional_pair(value: Any, field_name: str) -> Point | None:
    if value is None:
        return None
    return _pair(value, field_name)


def _optional_rotation(value: Any, field_name: str) -> tuple[float, float, float] | None:
    if value is None:
        return None
    if not isinstance(value, (list, tuple)) or len(value) not in (2, 3):
        raise ValueError(f"Expected [lambda, phi] or [lambda, phi, gamma] for '{field_name}'")
    angles = [_float(item, f"{field_name}[{idx}]") for idx, item in enumerate(value)]
    gamma = angles[2] if len(angles) == 3 else 0.0
    return (angles[0], angles[1], gamma)


def _enum(enum_cls: type[Enum], value: Any, field_name: str) -> Any:
    raw = _require_str(value, field_name).casefold()
    try:
        return enum_cls(raw)
    except ValueError:
        allowed = ", ".join(sorted(item.value for item in enum_cls))
        raise ValueError(f"'{field_name}' must be one of: {allowed}") from None


def _str_tuple(value: Any, field_name: str) -> tuple[str, ...]:
    if value is None:
        return ()
    if not isinstance(value, list):
        raise ValueError(f"Expected list for '{field_name}'")
    return tuple(_require_str(item, f"{field_name}[]") for item in value)


@dataclass(frozen=True, slots=True)
class GeoBounds:
    """Geographic rectangle used to route points to a territory."""

    min_lon: float
    min_lat: float
    max_lon: float
    max_lat: float

    def __post_init__(self) -> None:
        if self.min_lon > self.max_lon or self.min_lat > self.max_lat:
            raise ValueError(
                f"Bounds minimum exceeds maximum: "
                f"[[{self.min_lon}, {self.min_lat}], [{self.max_lon}, {self.max_lat}]]"
            )

    @classmethod
    def from_array(cls, value: Any) -> GeoBounds:
        """Build from ``[[minLon, minLat], [maxLon, maxLat]]``."""
        if not isinstance(value, (list, tuple)) or len(value) != 2:
            raise ValueError("Expected bounds as [[minLon, minLat], [maxLon, maxLat]]")
        low = _pair(value[0], "bounds[0]")
        high = _pair(value[1], "bounds[1]")
        return cls(min_lon=low[0], min_lat=low[1], max_lon=high[0], max_lat=high[1])

    def contains(self, lon: float, lat: float, tolerance: float = 0.0) -> bool:
        return (
            self.min_lon - tolerance <= lon <= self.max_lon + tolerance
            and self.min_lat - tolerance <= lat <= self.max_lat + tolerance
        )

    @property
    def max_span(self) -> float:
        return max(self.max_lon - self.min_lon, self.max_lat - self.min_lat)

    @property
    def center(self) -> Point:
        return ((self.min_lon + self.max_lon) / 2.0, (self.min_lat + self.max_lat) / 2.0)

    def corners(self, inset: float = 0.0) -> tuple[Point, Point, Point, Point]:
        """NW, NE, SE, SW corners pulled inward by ``inset`` degrees."""
        west = self.min_lon + inset
        east = self.max_lon - inset
        south = self.min_lat + inset
        north = self.max_lat - inset
        return ((west, north), (east, north), (east, south), (west, south))

    def to_polygon(self) -> Any:
        return _require_shapely_box_factory()(self.min_lon, self.min_lat, self.max_lon, self.max_lat)


@dataclass(frozen=True, slots=True)
class ProjectionCapabilities:
    preserves: frozenset[str] = frozenset()
    distorts: frozenset[str] = frozenset()
    supports_composite: bool = False
    supports_split: bool = False
    supports_unified: bool = False
    recommended_max_scale: float | None = None
    is_interrupted: bool = False

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any]) -> ProjectionCapabilities:
        def _properties(key: str) -> frozenset[str]:
            values = _str_tuple(data.get(key), f"capabilities.{key}")
            unknown = sorted(set(values) - PROPERTIES)
            if unknown:
                raise ValueError(f"Unknown properties in 'capabilities.{key}': {', '.join(unknown)}")
            return frozenset(values)

        def _flag(key: str) -> bool:
            raw = data.get(key, False)
            if not isinstance(raw, bool):
                raise ValueError(f"Expected bool for 'capabilities.{key}'")
            return raw

        return cls(
            preserves=_properties("preserves"),
            distorts=_properties("distorts"),
            supports_composite=_flag("supports_composite"),
            supports_split=_flag("supports_split"),
            supports_unified=_flag("supports_unified"),
            recommended_max_scale=_optional_float(
                data.get("recommended_max_scale"), "capabilities.recommended_max_scale"
            ),
            is_interrupted=_flag("is_interrupted"),
        )

    def matches(self, required: Mapping[str, Any]) -> bool:
        """True when every non-None requirement equals this capability value."""
        for key, expected in required.items():
            if expected is None:
                continue
            actual = getattr(self, key, None)
            if isinstance(expected, (set, frozenset, list, tuple)) and isinstance(actual, frozenset):
                expected = frozenset(expected)
            if actual != expected:
                return False
        return True


# Mapping between snake_case attribute names and the camelCase keys used in
# exported parameter bags.
_PARAMETER_KEYS = {
    "center": "center",
    "rotate": "rotate",
    "parallels": "parallels",
    "scale": "scale",
    "translate": "translate",
    "clip_angle": "clipAngle",
    "precision": "precision",
    "scale_multiplier": "scaleMultiplier",
    "focus_longitude": "focusLongitude",
    "focus_latitude": "focusLatitude",
    "rotate_gamma": "rotateGamma",
}


@dataclass(frozen=True, slots=True)
class ProjectionParameters:
    """Parameter bag applied to a projection instance. Unset fields are None."""

    center: Point | None = None
    rotate: tuple[float, float, float] | None = None
    parallels: Point | None = None
    scale: float | None = None
    translate: Point | None = None
    clip_angle: float | None = None
    precision: float | None = None
    scale_multiplier: float | None = None
    focus_longitude: float | None = None
    focus_latitude: float | None = None
    rotate_gamma: float | None = None

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any] | None) -> ProjectionParameters:
        if data is None:
            return cls()
        known = set(_PARAMETER_KEYS) | set(_PARAMETER_KEYS.values())
        unknown = sorted(str(key) for key in data if key not in known)
        if unknown:
            raise ValueError(f"Unknown projection parameters: {', '.join(unknown)}")

        def _get(attr: str) -> Any:
            camel = _PARAMETER_KEYS[attr]
            return data.get(camel, data.get(attr))

        return cls(
            center=_optional_pair(_get("center"), "center"),
            rotate=_optional_rotation(_get("rotate"), "rotate"),
            parallels=_optional_pair(_get("parallels"), "parallels"),
            scale=_optional_float(_get("scale"), "scale"),
            translate=_optional_pair(_get("translate"), "translate"),
            clip_angle=_optional_float(_get("clip_angle"), "clipAngle"),
            precision=_optional_float(_get("precision"), "precision"),
            scale_multiplier=_optional_float(_get("scale_multiplier"), "scaleMultiplier"),
            focus_longitude=_optional_float(_get("focus_longitude"), "focusLongitude"),
            focus_latitude=_optional_float(_get("focus_latitude"), "focusLatitude"),
            rotate_gamma=_optional_float(_get("rotate_gamma"), "rotateGamma"),
        )

    def merged(self, overrides: ProjectionParameters | None) -> ProjectionParameters:
        """Return a copy where every field set on ``overrides`` wins."""
        if overrides is None:
            return self
        changes = {
            attr: getattr(overrides, attr)
            for attr in _PARAMETER_KEYS
            if getattr(overrides, attr) is not None
        }
        return replace(self, **changes)

    def to_dict(self) -> dict[str, Any]:
        out: dict[str, Any] = {}
        for attr, key in _PARAMETER_KEYS.items():
            value = getattr(self, attr)
            if value is None:
                continue
            out[key] = list(value) if isinstance(value, tuple) else value
        return out

    @property
    def has_focus(self) -> bool:
        return self.focus_longitude is not None or self.focus_latitude is not None


@dataclass(frozen=True, slots=True)
class SuitabilityContext:
    """Geographic context a projection is (un)suited for."""

    territory_type: str | None = None
    region: str | None = None
    scale: str | None = None

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any]) -> SuitabilityContext:
        def _opt(key: str) -> str | None:
            raw = data.get(key)
            return None if raw is None else _require_str(raw, f"suitability.{key}")

        return cls(territory_type=_opt("territory_type"), region=_opt("region"), scale=_opt("scale"))


@dataclass(frozen=True, slots=True)
class ProjectionSuitability:
    excellent: tuple[SuitabilityContext, ...] = ()
    good: tuple[SuitabilityContext, ...] = ()
    usable: tuple[SuitabilityContext, ...] = ()
    avoid: tuple[SuitabilityContext, ...] = ()

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any] | None) -> ProjectionSuitability:
        if data is None:
            return cls()

        def _contexts(key: str) -> tuple[SuitabilityContext, ...]:
            raw = data.get(key, [])
            if not isinstance(raw, list):
                raise ValueError(f"Expected list for 'suitability.{key}'")
            return tuple(SuitabilityContext.from_mapping(item) for item in raw)

        return cls(
            excellent=_contexts("excellent"),
            good=_contexts("good"),
            usable=_contexts("usable"),
            avoid=_contexts("avoid"),
        )


@dataclass(frozen=True, slots=True)
class ProjectionDefinition:
    """Static projection metadata; created once, never mutated."""

    id: str
    name: str
    category: ProjectionCategory
    family: ProjectionFamily
    strategy: ProjectionStrategy
    capabilities: ProjectionCapabilities
    default_parameters: ProjectionParameters = field(default_factory=ProjectionParameters)
    aliases: tuple[str, ...] = ()
    suitability: ProjectionSuitability = field(default_factory=ProjectionSuitability)
    creator: str | None = None
    year: int | None = None
    metadata: Mapping[str, Any] = field(default_factory=dict)

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any]) -> ProjectionDefinition:
        projection_id = _require_str(data.get("id"), "id")
        capabilities_raw = data.get("capabilities", {})
        if not isinstance(capabilities_raw, Mapping):
            raise ValueError(f"Expected mapping for 'capabilities' in projection '{projection_id}'")
        year_raw = data.get("year")
        if year_raw is not None and (isinstance(year_raw, bool) or not isinstance(year_raw, int)):
            raise ValueError(f"Expected integer for 'year' in projection '{projection_id}'")
        creator_raw = data.get("creator")
        metadata_raw = data.get("metadata") or {}
        if not isinstance(metadata_raw, Mapping):
            raise ValueError(f"Expected mapping for 'metadata' in projection '{projection_id}'")
        return cls(
            id=projection_id,
            name=_require_str(data.get("name", projection_id), "name"),
            category=_enum(ProjectionCategory, data.get("category"), "category"),
            family=_enum(ProjectionFamily, data.get("family"), "family"),
            strategy=_enum(ProjectionStrategy, data.get("strategy"), "strategy"),
            capabilities=ProjectionCapabilities.from_mapping(capabilities_raw),
            default_parameters=ProjectionParameters.from_mapping(data.get("default_parameters")),
            aliases=_str_tuple(data.get("aliases"), "aliases"),
            suitability=ProjectionSuitability.from_mapping(data.get("suitability")),
            creator=None if creator_raw is None else _require_str(creator_raw, "creator"),
            year=year_raw,
            metadata=dict(metadata_raw),
        )


@dataclass(frozen=True, slots=True)
class AtlasPreferences:
    """Per-atlas projection preferences consumed by filter/recommend."""

    recommended: tuple[str, ...] = ()
    prohibited: tuple[str, ...] = ()

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any]) -> AtlasPreferences:
        return cls(
            recommended=_str_tuple(data.get("recommended"), "recommended"),
            prohibited=_str_tuple(data.get("prohibited"), "prohibited"),
        )


@dataclass(frozen=True, slots=True)
class TerritoryContext:
    """Territory descriptor used to match suitability contexts."""

    id: str
    type: str | None = None
    region: str | None = None


@dataclass(frozen=True, slots=True)
class FilterContext:
    """Query context for registry filter/recommend."""

    atlas_id: str | None = None
    view_mode: ViewMode | None = None
    required_capabilities: Mapping[str, Any] = field(default_factory=dict)
    exclude_categories: tuple[ProjectionCategory, ...] = ()
    recommended_only: bool = False
    territory: TerritoryContext | None = None


@dataclass(frozen=True, slots=True)
class ProjectionRecommendation:
    projection: ProjectionDefinition
    score: float
    level: RecommendationLevel
    reason: str


def _require_shapely_box_factory() -> Any:
    try:
        from shapely.geometry import box
    except ImportError as exc:  # pragma: no cover - dependency guard
        raise RuntimeError("shapely is required for bounds geometry") from exc
    return box
