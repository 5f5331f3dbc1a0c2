"""Pre-built national composite projections.

Each composite is a fixed layout of single-region projections. Inset scale,
translate offset and clip rectangle are expressed relative to the composite
scale ``k``, so the whole layout scales and moves as one object.
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from typing import Any, Callable, Sequence

from .models import Extent, GeoBounds, Point, ProjectionFamily
from .projection import ConicProjection, Projection
from .stream import GeoStream, StreamMultiplexer


_LOGGER = logging.getLogger("mapcomposer.prebuilt")

_CLIP_EPSILON = 1e-6
_INVERT_TOLERANCE = 0.01


@dataclass(frozen=True, slots=True)
class PrebuiltTerritory:
    code: str
    name: str
    kind: str
    proj_name: str
    bounds: GeoBounds
    # (x1, y1, x2, y2) around the territory translate, in units of k.
    clip: tuple[float, float, float, float]
    scale_factor: float = 1.0
    offset: Point = (0.0, 0.0)
    parallels: Point | None = None
    rotate: tuple[float, float, float] = (0.0, 0.0, 0.0)
    center: Point = (0.0, 0.0)

    def build(self) -> Projection:
        if self.parallels is not None:
            projection: Projection = ConicProjection(self.kind, self.proj_name, parallels=self.parallels)
        else:
            projection = Projection(self.kind, self.proj_name, family=ProjectionFamily.CYLINDRICAL)
        projection.rotate(self.rotate)
        projection.center(self.center)
        return projection


class PrebuiltComposite:
    """Fixed multi-territory projection driven by one scale and translate."""

    def __init__(
        self,
        kind: str,
        territories: Sequence[PrebuiltTerritory],
        *,
        default_scale: float,
        translate: Point = (480.0, 250.0),
    ) -> None:
        if not territories:
            raise ValueError(f"Composite '{kind}' needs at least one territory")
        self.kind = kind
        self.family = ProjectionFamily.COMPOSITE
        self._territories = tuple(territories)
        self._projections = {territory.code: territory.build() for territory in self._territories}
        self._scale = float(default_scale)
        self._translate = (float(translate[0]), float(translate[1]))
        self._precision = math.sqrt(0.5)
        self._extents: dict[str, Extent] = {}
        self._layout()
        _LOGGER.debug("Built composite '%s' with territories %s", kind, ", ".join(self._projections))

    def __call__(self, lon: float, lat: float) -> Point | None:
        for territory in self._territories:
            if territory.bounds.contains(lon, lat):
                return self._projections[territory.code](lon, lat)
        return None

    def invert(self, x: float, y: float) -> Point | None:
        # Insets are drawn over the mainland frame, so they are tried first.
        for territory in reversed(self._territories):
            (x0, y0), (x1, y1) = self._extents[territory.code]
            if not (x0 <= x <= x1 and y0 <= y <= y1):
                continue
            result = self._projections[territory.code].invert(x, y)
            if result is not None and territory.bounds.contains(*result, tolerance=_INVERT_TOLERANCE):
                return result
        return None

    def stream(self, sink: GeoStream) -> StreamMultiplexer:
        return StreamMultiplexer([self._projections[t.code].stream(sink) for t in self._territories])

    def copy(self) -> PrebuiltComposite:
        duplicate = PrebuiltComposite(
            self.kind, self._territories, default_scale=self._scale, translate=self._translate
        )
        duplicate.precision(self._precision)
        return duplicate

    def scale(self, value: float | None = None) -> Any:
        if value is None:
            return self._scale
        self._scale = float(value)
        self._layout()
        return self

    def translate(self, value: Point | None = None) -> Any:
        if value is None:
            return self._translate
        self._translate = (float(value[0]), float(value[1]))
        self._layout()
        return self

    def precision(self, value: float | None = None) -> Any:
        if value is None:
            return self._precision
        self._precision = max(0.0, float(value))
        for projection in self._projections.values():
            projection.precision(self._precision)
        return self

    def territory_codes(self) -> list[str]:
        return [territory.code for territory in self._territories]

    def sub_projection(self, code: str) -> Projection | None:
        return self._projections.get(code)

    def clip_extents(self) -> dict[str, Extent]:
        return dict(self._extents)

    def _layout(self) -> None:
        k = self._scale
        tx, ty = self._translate
        for territory in self._territories:
            cx = tx + territory.offset[0] * k
            cy = ty + territory.offset[1] * k
            x1, y1, x2, y2 = territory.clip
            extent = (
                (cx + x1 * k + _CLIP_EPSILON, cy + y1 * k + _CLIP_EPSILON),
                (cx + x2 * k - _CLIP_EPSILON, cy + y2 * k - _CLIP_EPSILON),
            )
            projection = self._projections[territory.code]
            projection.scale(k * territory.scale_factor).translate((cx, cy)).clip_extent(extent)
            self._extents[territory.code] = extent


USA_TERRITORIES = (
    PrebuiltTerritory(
        code="US-L48",
        name="Lower 48",
        kind="conic-equal-area",
        proj_name="aea",
        bounds=GeoBounds(-125.0, 24.0, -66.0, 50.0),
        clip=(-0.455, -0.238, 0.455, 0.238),
        parallels=(29.5, 45.5),
        rotate=(96.0, 0.0, 0.0),
        center=(-0.6, 38.7),
    ),
    PrebuiltTerritory(
        code="US-AK",
        name="Alaska",
        kind="conic-equal-area",
        proj_name="aea",
        bounds=GeoBounds(-180.0, 51.0, -129.0, 72.0),
        clip=(-0.118, -0.081, 0.093, 0.033),
        scale_factor=0.35,
        offset=(-0.307, 0.201),
        parallels=(55.0, 65.0),
        rotate=(154.0, 0.0, 0.0),
        center=(-2.0, 58.5),
    ),
    PrebuiltTerritory(
        code="US-HI",
        name="Hawaii",
        kind="conic-equal-area",
        proj_name="aea",
        bounds=GeoBounds(-161.0, 18.0, -154.0, 23.0),
        clip=(-0.009, -0.046, 0.090, 0.022),
        offset=(-0.205, 0.212),
        parallels=(8.0, 18.0),
        rotate=(157.0, 0.0, 0.0),
        center=(-3.0, 19.9),
    ),
)

PUERTO_RICO = PrebuiltTerritory(
    code="US-PR",
    name="Puerto Rico",
    kind="conic-equal-area",
    proj_name="aea",
    bounds=GeoBounds(-67.5, 17.8, -65.2, 18.6),
    clip=(-0.030, -0.020, 0.030, 0.010),
    offset=(0.350, 0.224),
    parallels=(8.0, 18.0),
    rotate=(66.0, 0.0, 0.0),
    center=(0.0, 18.0),
)


def _mercator_inset(
    code: str,
    name: str,
    bounds: GeoBounds,
    *,
    scale_factor: float,
    offset: Point,
    half_size: Point,
) -> PrebuiltTerritory:
    return PrebuiltTerritory(
        code=code,
        name=name,
        kind="mercator",
        proj_name="merc",
        bounds=bounds,
        clip=(-half_size[0], -half_size[1], half_size[0], half_size[1]),
        scale_factor=scale_factor,
        offset=offset,
        center=bounds.center,
    )


FRANCE_TERRITORIES = (
    PrebuiltTerritory(
        code="FR-MET",
        name="France métropolitaine",
        kind="conic-conformal",
        proj_name="lcc",
        bounds=GeoBounds(-5.0, 41.0, 10.0, 51.0),
        clip=(-0.1, -0.1, 0.1, 0.1),
        parallels=(0.0, 60.0),
        rotate=(-3.0, -46.2, 0.0),
    ),
    _mercator_inset(
        "FR-GP", "Guadeloupe", GeoBounds(-61.81, 15.83, -61.0, 16.52),
        scale_factor=1.4, offset=(-0.135, -0.06), half_size=(0.016, 0.016),
    ),
    _mercator_inset(
        "FR-MQ", "Martinique", GeoBounds(-61.23, 14.39, -60.81, 14.88),
        scale_factor=1.6, offset=(-0.135, -0.025), half_size=(0.016, 0.016),
    ),
    _mercator_inset(
        "FR-GF", "Guyane", GeoBounds(-54.6, 2.1, -51.6, 5.8),
        scale_factor=0.6, offset=(-0.135, 0.015), half_size=(0.016, 0.022),
    ),
    _mercator_inset(
        "FR-RE", "La Réunion", GeoBounds(55.22, -21.39, 55.84, -20.87),
        scale_factor=1.2, offset=(-0.135, 0.055), half_size=(0.016, 0.016),
    ),
    _mercator_inset(
        "FR-YT", "Mayotte", GeoBounds(44.98, -13.0, 45.3, -12.64),
        scale_factor=1.6, offset=(-0.135, 0.087), half_size=(0.016, 0.014),
    ),
)

PORTUGAL_TERRITORIES = (
    PrebuiltTerritory(
        code="PT-MAIN",
        name="Portugal continental",
        kind="conic-conformal",
        proj_name="lcc",
        bounds=GeoBounds(-9.6, 36.9, -6.1, 42.2),
        clip=(-0.04, -0.05, 0.04, 0.05),
        parallels=(0.0, 60.0),
        rotate=(8.0, -39.5, 0.0),
    ),
    _mercator_inset(
        "PT-20", "Açores", GeoBounds(-31.4, 36.8, -24.9, 39.8),
        scale_factor=0.5, offset=(-0.11, -0.02), half_size=(0.03, 0.015),
    ),
    _mercator_inset(
        "PT-30", "Madeira", GeoBounds(-17.4, 32.3, -16.2, 33.2),
        scale_factor=1.0, offset=(-0.09, 0.03), half_size=(0.012, 0.012),
    ),
)

SPAIN_TERRITORIES = (
    PrebuiltTerritory(
        code="ES-MAIN",
        name="España peninsular y Baleares",
        kind="conic-conformal",
        proj_name="lcc",
        bounds=GeoBounds(-9.5, 35.1, 4.5, 43.9),
        clip=(-0.1, -0.085, 0.1, 0.085),
        parallels=(36.0, 43.0),
        rotate=(3.5, -40.0, 0.0),
    ),
    PrebuiltTerritory(
        code="ES-CN",
        name="Canarias",
        kind="conic-conformal",
        proj_name="lcc",
        bounds=GeoBounds(-18.3, 27.5, -13.3, 29.5),
        clip=(-0.042, -0.02, 0.042, 0.02),
        offset=(-0.06, 0.11),
        parallels=(27.0, 30.0),
        rotate=(15.8, -28.5, 0.0),
    ),
)


def _factory(kind: str, territories: Sequence[PrebuiltTerritory], default_scale: float) -> Callable[[], PrebuiltComposite]:
    return lambda: PrebuiltComposite(kind, territories, default_scale=default_scale)


PREBUILT_CONSTRUCTORS: dict[str, Callable[[], PrebuiltComposite]] = {
    "albers-usa": _factory("albers-usa", USA_TERRITORIES, 1070.0),
    "albers-usa-composite": _factory("albers-usa-composite", (*USA_TERRITORIES, PUERTO_RICO), 1070.0),
    "conic-conformal-france": _factory("conic-conformal-france", FRANCE_TERRITORIES, 2700.0),
    "conic-conformal-portugal": _factory("conic-conformal-portugal", PORTUGAL_TERRITORIES, 3000.0),
    "conic-conformal-spain": _factory("conic-conformal-spain", SPAIN_TERRITORIES, 2300.0),
}
