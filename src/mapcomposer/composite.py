"""Composite projection engine.

A composite projection places several independently projected territories
(a mainland plus remote regions) on one pixel canvas. Each territory keeps
its own projection, an offset from the canvas center, optional geographic
bounds used for routing, and a clip rectangle derived at build time.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any, Mapping, Sequence

from .configuration import (
    CompositeConfiguration,
    InvalidConfigurationError,
    TerritoryProjectionConfig,
)
from .factory import ProjectionFactory
from .models import (
    Extent,
    GeoBounds,
    Point,
    ProjectionDefinition,
    ProjectionFamily,
    ProjectionParameters,
    ProjectionStrategy,
)
from .positioning import FocusPoint, apply_focus, extract_focus
from .projection import ClipAngleCapable, ConicCapable, Projection
from .registry import ProjectionRegistry
from .stream import GeoStream, StreamMultiplexer


_LOGGER = logging.getLogger("mapcomposer.composite")

DEFAULT_REFERENCE_SCALE = 2700.0
DEFAULT_CANVAS: Point = (960.0, 500.0)
CLIP_EPSILON = 1e-6
INVERT_TOLERANCE = 0.01
# 42000 / 15 degrees gives a conic scale of about 2800 for a mid-sized mainland.
SCALE_BASE_CONSTANT = 42000.0
NON_CONIC_SCALE_CORRECTION = 0.25
DERIVED_PARALLEL_OFFSET = 2.0


class CacheState(str, Enum):
    CLEAN = "clean"
    DIRTY = "dirty"


def proportional_scale(extent_degrees: float, family: ProjectionFamily) -> float:
    """Initial scale for a territory spanning ``extent_degrees`` at most."""
    if extent_degrees <= 0:
        raise ValueError("Territory extent must be positive")
    scale = SCALE_BASE_CONSTANT / extent_degrees
    if family is not ProjectionFamily.CONIC:
        scale *= NON_CONIC_SCALE_CORRECTION
    return scale


def pixel_clip_to_extent(translate: Point, pixel_clip: Sequence[float]) -> Extent:
    """Absolute clip rectangle from an ``(x1, y1, x2, y2)`` box around ``translate``."""
    x1, y1, x2, y2 = pixel_clip
    return (
        (translate[0] + x1 + CLIP_EPSILON, translate[1] + y1 + CLIP_EPSILON),
        (translate[0] + x2 - CLIP_EPSILON, translate[1] + y2 - CLIP_EPSILON),
    )


def _derived_parallels(latitude: float) -> Point:
    return (latitude - DERIVED_PARALLEL_OFFSET, latitude + DERIVED_PARALLEL_OFFSET)


@dataclass(slots=True)
class SubProjectionConfig:
    """One territory inside the engine, owning its live projection.

    ``projection.scale()`` always equals ``base_scale * scale_multiplier``
    after an engine mutation.
    """

    territory_code: str
    projection: Projection
    projection_id: str
    territory_name: str = ""
    base_scale: float = DEFAULT_REFERENCE_SCALE
    scale_multiplier: float = 1.0
    translate_offset: Point = (0.0, 0.0)
    bounds: GeoBounds | None = None
    pixel_clip_extent: tuple[float, float, float, float] | None = None

    def __post_init__(self) -> None:
        if not self.territory_code or not self.territory_code.strip():
            raise InvalidConfigurationError("Territory code is required")
        if not self.projection_id or not self.projection_id.strip():
            raise InvalidConfigurationError(f"Projection ID is required for territory: {self.territory_code}")
        if self.base_scale <= 0:
            raise InvalidConfigurationError(f"Base scale must be positive for territory: {self.territory_code}")
        if self.scale_multiplier <= 0:
            raise InvalidConfigurationError(
                f"Scale multiplier must be positive for territory: {self.territory_code}"
            )
        if self.pixel_clip_extent is not None and len(self.pixel_clip_extent) != 4:
            raise InvalidConfigurationError(
                f"pixel_clip_extent must have 4 values for territory: {self.territory_code}"
            )

    @property
    def current_scale(self) -> float:
        return self.base_scale * self.scale_multiplier

    @property
    def clip_extent(self) -> Extent | None:
        return self.projection.clip_extent()


@dataclass(frozen=True, slots=True)
class CompositionBorder:
    territory_code: str
    territory_name: str
    extent: Extent


class CompositeProjection:
    """Built composite: forward routing, validated inverse and a multiplexed stream."""

    def __init__(self, entries: Sequence[SubProjectionConfig]) -> None:
        if not entries:
            raise InvalidConfigurationError("Cannot build a composite projection without territories")
        self._entries = tuple(entries)

    def __call__(self, lon: float, lat: float) -> Point | None:
        for entry in self._entries:
            if entry.bounds is not None and entry.bounds.contains(lon, lat):
                result = entry.projection(lon, lat)
                if result is not None:
                    return result
        return None

    def locate(self, lon: float, lat: float) -> str | None:
        """Code of the territory a geographic point is routed to."""
        for entry in self._entries:
            if entry.bounds is not None and entry.bounds.contains(lon, lat):
                return entry.territory_code
        return None

    def invert(self, x: float, y: float) -> Point | None:
        for entry in self._entries:
            result = entry.projection.invert(x, y)
            if result is None:
                continue
            if entry.bounds is None or entry.bounds.contains(*result, tolerance=INVERT_TOLERANCE):
                return result
        return None

    def stream(self, sink: GeoStream) -> StreamMultiplexer:
        return StreamMultiplexer([entry.projection.stream(sink) for entry in self._entries])

    def scale(self, value: float | None = None) -> Any:
        """Mainland scale. Setting is a no-op returning ``self``; rescale through the engine."""
        if value is not None:
            return self
        return self._entries[0].projection.scale()

    def translate(self, value: Point | None = None) -> Any:
        """Mainland translate. Setting is a no-op returning ``self``, like :meth:`scale`."""
        if value is not None:
            return self
        return self._entries[0].projection.translate()

    def territory_codes(self) -> list[str]:
        return [entry.territory_code for entry in self._entries]


class CompositeProjectionEngine:
    """Owns the territories of a composite map and builds the composite projection."""

    def __init__(
        self,
        *,
        registry: ProjectionRegistry | None = None,
        factory: ProjectionFactory | None = None,
        reference_scale: float = DEFAULT_REFERENCE_SCALE,
        canvas: Point = DEFAULT_CANVAS,
        strict_overlap: bool = False,
        fallback_projection: str | None = None,
    ) -> None:
        if reference_scale <= 0:
            raise InvalidConfigurationError("Reference scale must be positive")
        if factory is None:
            factory = ProjectionFactory(registry)
        self.factory = factory
        self.registry = registry or factory.registry
        self.reference_scale = float(reference_scale)
        self.canvas = (float(canvas[0]), float(canvas[1]))
        self.strict_overlap = strict_overlap
        self.fallback_projection = fallback_projection
        self._entries: list[SubProjectionConfig] = []
        self._cached: CompositeProjection | None = None
        self._built_canvas: Point | None = None
        self.cache_state = CacheState.DIRTY

    @classmethod
    def from_settings(
        cls,
        settings: Any,
        *,
        registry: ProjectionRegistry | None = None,
        factory: ProjectionFactory | None = None,
    ) -> CompositeProjectionEngine:
        """Engine configured from :class:`~mapcomposer.config.ComposerSettings`."""
        fallback = settings.fallback_projection if settings.unknown_projection_policy == "fallback" else None
        return cls(
            registry=registry,
            factory=factory,
            reference_scale=settings.reference_scale,
            canvas=(settings.canvas.width, settings.canvas.height),
            strict_overlap=settings.overlap_policy == "strict",
            fallback_projection=fallback,
        )

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, code: object) -> bool:
        return any(entry.territory_code == code for entry in self._entries)

    # Territory management

    def add_or_replace_sub_projection(self, config: SubProjectionConfig) -> None:
        config.projection.scale(config.current_scale)
        for idx, entry in enumerate(self._entries):
            if entry.territory_code == config.territory_code:
                self._entries[idx] = config
                break
        else:
            self._entries.append(config)
        self._mark_dirty()

    def add_territory(
        self,
        code: str,
        projection_id: str,
        *,
        name: str = "",
        bounds: GeoBounds | None = None,
        parameters: ProjectionParameters | Mapping[str, Any] | None = None,
        translate_offset: Point = (0.0, 0.0),
        pixel_clip_extent: Sequence[float] | None = None,
    ) -> SubProjectionConfig:
        """Create, position and register a territory's projection.

        Raises :class:`InvalidConfigurationError` when ``projection_id`` cannot
        be built and no fallback projection is configured.
        """
        params = _as_parameters(parameters)
        created = self._create_sub_projection(projection_id)
        if created is None:
            raise InvalidConfigurationError(
                f"Unknown projection '{projection_id}' for territory: {code}"
            )
        definition, projection = created
        self._apply_positioning(projection, definition.family, params)
        self._apply_display_parameters(projection, params)
        multiplier = params.scale_multiplier if params.scale_multiplier is not None else 1.0
        config = SubProjectionConfig(
            territory_code=code,
            territory_name=name,
            projection=projection,
            projection_id=definition.id,
            base_scale=self.reference_scale,
            scale_multiplier=multiplier,
            translate_offset=(float(translate_offset[0]), float(translate_offset[1])),
            bounds=bounds,
            pixel_clip_extent=None if pixel_clip_extent is None else _clip_tuple(pixel_clip_extent),
        )
        projection.scale(config.current_scale).translate((0.0, 0.0))
        self.add_or_replace_sub_projection(config)
        return config

    def remove_sub_projection(self, code: str) -> bool:
        for idx, entry in enumerate(self._entries):
            if entry.territory_code == code:
                del self._entries[idx]
                self._mark_dirty()
                return True
        return False

    def sub_projection(self, code: str) -> SubProjectionConfig | None:
        for entry in self._entries:
            if entry.territory_code == code:
                return entry
        return None

    def territory_codes(self) -> list[str]:
        return [entry.territory_code for entry in self._entries]

    # Mutations

    def update_projection_type(self, code: str, kind: str) -> bool:
        """Swap a territory's projection kind keeping its visual footprint.

        Returns False (state unchanged) when the territory or kind is unknown.
        """
        entry = self.sub_projection(code)
        if entry is None:
            _LOGGER.warning("Cannot change projection of unknown territory '%s'", code)
            return False
        created = self._create_sub_projection(kind)
        if created is None:
            return False
        definition, new_projection = created

        old = entry.projection
        scale = old.scale()
        center = old.center()
        rotate = old.rotate()
        translate = old.translate()

        focus = FocusPoint.from_parameters(ProjectionParameters(center=center, rotate=rotate))
        if isinstance(new_projection, ConicCapable) and focus is not None:
            new_projection.parallels(_derived_parallels(focus.latitude))
        new_projection.scale(scale).center(center).rotate(rotate).translate(translate)
        new_projection.precision(old.precision())
        clip = old.clip_extent()
        if clip is not None:
            new_projection.clip_extent(clip)

        entry.projection = new_projection
        entry.projection_id = definition.id
        entry.base_scale = scale / entry.scale_multiplier
        self._mark_dirty()
        _LOGGER.debug("Territory '%s' now uses projection '%s'", code, definition.id)
        return True

    def update_translation_offset(self, code: str, offset: Point) -> bool:
        entry = self.sub_projection(code)
        if entry is None:
            return False
        entry.translate_offset = (float(offset[0]), float(offset[1]))
        self._mark_dirty()
        return True

    def update_scale(self, code: str, multiplier: float) -> bool:
        """Set a territory's multiplier; the absolute scale is ``base_scale * multiplier``."""
        if multiplier <= 0:
            raise InvalidConfigurationError(f"Scale multiplier must be positive for territory: {code}")
        entry = self.sub_projection(code)
        if entry is None:
            return False
        entry.scale_multiplier = float(multiplier)
        entry.projection.scale(entry.current_scale)
        self._mark_dirty()
        return True

    def update_territory_parameters(
        self, code: str, parameters: ProjectionParameters | Mapping[str, Any]
    ) -> bool:
        entry = self.sub_projection(code)
        if entry is None:
            _LOGGER.debug("Territory '%s' not found for parameter update", code)
            return False
        params = _as_parameters(parameters)
        if params.scale_multiplier is not None and params.scale_multiplier <= 0:
            raise InvalidConfigurationError(f"Scale multiplier must be positive for territory: {code}")
        self._apply_positioning(entry.projection, self._family_of(entry), params)
        self._apply_display_parameters(entry.projection, params)
        if params.scale_multiplier is not None:
            entry.scale_multiplier = params.scale_multiplier
        entry.projection.scale(entry.current_scale)
        self._mark_dirty()
        return True

    def update_reference_scale(self, scale: float) -> None:
        if scale <= 0:
            raise InvalidConfigurationError("Reference scale must be positive")
        self.reference_scale = float(scale)
        for entry in self._entries:
            entry.base_scale = self.reference_scale
            entry.projection.scale(entry.current_scale)
        self._mark_dirty()

    def seed_scale_from_extent(self, code: str) -> float | None:
        """Reset a territory's base scale from its geographic extent."""
        entry = self.sub_projection(code)
        if entry is None or entry.bounds is None or entry.bounds.max_span <= 0:
            return None
        entry.base_scale = proportional_scale(entry.bounds.max_span, self._family_of(entry))
        entry.projection.scale(entry.current_scale)
        self._mark_dirty()
        return entry.base_scale

    # Build

    def build(
        self,
        width: float | None = None,
        height: float | None = None,
        force_rebuild: bool = False,
    ) -> CompositeProjection:
        """Return the composite projection, rebuilding it when needed."""
        canvas = (
            float(width) if width is not None else self.canvas[0],
            float(height) if height is not None else self.canvas[1],
        )
        if (
            self._cached is not None
            and self.cache_state is CacheState.CLEAN
            and canvas == self._built_canvas
            and not force_rebuild
        ):
            return self._cached
        if not self._entries:
            raise InvalidConfigurationError("Cannot build a composite projection without territories")

        center_x, center_y = canvas[0] / 2.0, canvas[1] / 2.0
        for entry in self._entries:
            translate = (center_x + entry.translate_offset[0], center_y + entry.translate_offset[1])
            entry.projection.translate(translate)
            entry.projection.clip_extent(clear=True)
            extent = self._clip_extent_for(entry, translate)
            if extent is not None:
                entry.projection.clip_extent(extent)

        overlaps = self.overlapping_territories()
        if overlaps:
            pairs = ", ".join(f"{a}/{b}" for a, b in overlaps)
            if self.strict_overlap:
                raise InvalidConfigurationError(f"Territory bounds overlap: {pairs}")
            _LOGGER.warning("Territory bounds overlap (first registered wins): %s", pairs)

        self._cached = CompositeProjection(self._entries)
        self._built_canvas = canvas
        self.cache_state = CacheState.CLEAN
        _LOGGER.debug("Built composite with %d territories on %sx%s", len(self._entries), *canvas)
        return self._cached

    def _clip_extent_for(self, entry: SubProjectionConfig, translate: Point) -> Extent | None:
        if entry.pixel_clip_extent is not None:
            return pixel_clip_to_extent(translate, entry.pixel_clip_extent)
        if entry.bounds is None:
            return None
        projected = [entry.projection(lon, lat) for lon, lat in entry.bounds.corners(CLIP_EPSILON)]
        if any(point is None for point in projected):
            _LOGGER.debug("Bounds corners of '%s' are not all projectable; no clip", entry.territory_code)
            return None
        xs = [point[0] for point in projected if point is not None]
        ys = [point[1] for point in projected if point is not None]
        return ((min(xs), min(ys)), (max(xs), max(ys)))

    # Inspection

    def composition_borders(self) -> list[CompositionBorder]:
        """Pixel rectangle of every territory, for drawing inset frames."""
        borders: list[CompositionBorder] = []
        for entry in self._entries:
            extent = entry.projection.clip_extent()
            if extent is None and entry.bounds is not None:
                west, south, east, north = (
                    entry.bounds.min_lon,
                    entry.bounds.min_lat,
                    entry.bounds.max_lon,
                    entry.bounds.max_lat,
                )
                top_left = entry.projection(west, north)
                bottom_right = entry.projection(east, south)
                if top_left is not None and bottom_right is not None:
                    extent = (top_left, bottom_right)
            if extent is not None:
                borders.append(CompositionBorder(entry.territory_code, entry.territory_name, extent))
        return borders

    def effective_scales(self) -> dict[str, float]:
        return {entry.territory_code: entry.projection.scale() for entry in self._entries}

    def effective_scale(self, code: str) -> float | None:
        entry = self.sub_projection(code)
        return None if entry is None else entry.projection.scale()

    def overlapping_territories(self) -> list[tuple[str, str]]:
        """Pairs of territories whose geographic bounds share interior area."""
        with_bounds = [(entry.territory_code, entry.bounds.to_polygon()) for entry in self._entries if entry.bounds]
        pairs: list[tuple[str, str]] = []
        for idx, (code_a, poly_a) in enumerate(with_bounds):
            for code_b, poly_b in with_bounds[idx + 1 :]:
                if poly_a.intersects(poly_b) and not poly_a.touches(poly_b):
                    pairs.append((code_a, code_b))
        return pairs

    # Interchange

    def export_configuration(self, atlas_id: str, atlas_name: str = "") -> CompositeConfiguration:
        configuration = CompositeConfiguration(atlas_id, atlas_name, self.reference_scale, self.canvas)
        for entry in self._entries:
            configuration.add_territory(self._export_territory(entry))
        return configuration

    @classmethod
    def from_configuration(
        cls,
        configuration: CompositeConfiguration,
        *,
        bounds: Mapping[str, GeoBounds] | None = None,
        registry: ProjectionRegistry | None = None,
        factory: ProjectionFactory | None = None,
        strict_overlap: bool = False,
        fallback_projection: str | None = None,
    ) -> CompositeProjectionEngine:
        """Engine populated from an interchange configuration.

        Geographic bounds are not part of the interchange format and are
        supplied separately, keyed by territory code.
        """
        canvas = configuration.canvas_dimensions
        engine = cls(
            registry=registry,
            factory=factory,
            reference_scale=configuration.reference_scale,
            canvas=(canvas.width, canvas.height),
            strict_overlap=strict_overlap,
            fallback_projection=fallback_projection,
        )
        bounds = bounds or {}
        for territory in configuration.all_territories():
            engine.add_territory(
                territory.code,
                territory.projection_id,
                name=territory.name,
                bounds=bounds.get(territory.code),
                parameters=territory.parameters,
                translate_offset=territory.translate_offset,
                pixel_clip_extent=territory.pixel_clip_extent,
            )
        return engine

    def _export_territory(self, entry: SubProjectionConfig) -> TerritoryProjectionConfig:
        projection = entry.projection
        family = self._family_of(entry)
        focus = extract_focus(projection, family)
        parallels = projection.parallels() if isinstance(projection, ConicCapable) else None
        clip_angle = projection.clip_angle() if isinstance(projection, ClipAngleCapable) else None
        parameters = ProjectionParameters(
            focus_longitude=focus.longitude,
            focus_latitude=focus.latitude,
            rotate_gamma=focus.gamma,
            parallels=parallels,
            clip_angle=clip_angle,
            precision=projection.precision(),
            scale_multiplier=entry.scale_multiplier,
        )
        return TerritoryProjectionConfig(
            code=entry.territory_code,
            name=entry.territory_name,
            projection_id=entry.projection_id,
            family=family,
            parameters=parameters,
            translate_offset=entry.translate_offset,
            pixel_clip_extent=entry.pixel_clip_extent,
        )

    # Internals

    def _mark_dirty(self) -> None:
        self.cache_state = CacheState.DIRTY

    def _family_of(self, entry: SubProjectionConfig) -> ProjectionFamily:
        definition = self.registry.get(entry.projection_id)
        return definition.family if definition is not None else entry.projection.family

    def _create_sub_projection(self, kind: str) -> tuple[ProjectionDefinition, Projection] | None:
        definition = self.registry.get(kind)
        projection = None
        if definition is None:
            _LOGGER.warning("Unknown projection kind '%s'", kind)
        elif definition.strategy is ProjectionStrategy.COMPOSITE:
            _LOGGER.warning("Projection '%s' is a pre-built composite and cannot be a territory", kind)
        else:
            projection = self.factory.create(definition)
        if projection is not None and definition is not None:
            return definition, projection
        fallback = self.fallback_projection
        if fallback and fallback != kind:
            _LOGGER.warning("Using fallback projection '%s' instead of '%s'", fallback, kind)
            return self._create_sub_projection(fallback)
        return None

    @staticmethod
    def _apply_positioning(projection: Projection, family: ProjectionFamily, params: ProjectionParameters) -> None:
        focus = FocusPoint.from_parameters(params)
        if focus is not None:
            apply_focus(projection, focus, family)
        if not isinstance(projection, ConicCapable):
            return
        if params.parallels is not None:
            projection.parallels(params.parallels)
        elif focus is not None and focus.latitude != 0:
            projection.parallels(_derived_parallels(focus.latitude))

    @staticmethod
    def _apply_display_parameters(projection: Projection, params: ProjectionParameters) -> None:
        if params.precision is not None:
            projection.precision(params.precision)
        if params.clip_angle is not None and isinstance(projection, ClipAngleCapable):
            projection.clip_angle(params.clip_angle)


def _as_parameters(parameters: ProjectionParameters | Mapping[str, Any] | None) -> ProjectionParameters:
    if parameters is None:
        return ProjectionParameters()
    if isinstance(parameters, ProjectionParameters):
        return parameters
    return ProjectionParameters.from_mapping(parameters)


def _clip_tuple(values: Sequence[float]) -> tuple[float, float, float, float]:
    if len(values) != 4:
        raise InvalidConfigurationError("pixel_clip_extent must have 4 values")
    x1, y1, x2, y2 = (float(value) for value in values)
    return (x1, y1, x2, y2)
