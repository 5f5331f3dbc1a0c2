"""Single-region projection objects.

Raw projection math comes from PROJ (through pyproj) evaluated on the unit
sphere, so ``scale`` is expressed in pixels per radian. Rotation is applied
before the raw projection and the pixel transform after it::

    x = tx + k * (px - cx)
    y = ty - k * (py - cy)

where ``(px, py)`` is the raw projection of the rotated point and ``(cx, cy)``
the raw projection of the (unrotated) center.

Setters return the projection itself so calls can be chained; calling the
same method without arguments reads the current value.
"""

from __future__ import annotations

import abc
import logging
import math
from copy import copy as _shallow_copy
from typing import Any, Mapping

from .models import Extent, Point, ProjectionFamily
from .rotation import SphereRotation
from .stream import GeoStream, ProjectedStream


_LOGGER = logging.getLogger("mapcomposer.projection")

DEFAULT_SCALE = 150.0
DEFAULT_TRANSLATE: Point = (480.0, 250.0)
DEFAULT_PRECISION = math.sqrt(0.5)

# PROJ reports unprojectable input as HUGE_VAL; some builds use 1e30.
_PROJ_HUGE = 1e29
_CONIC_SYMMETRY_EPSILON = 1e-6
# PROJ clamps Mercator y near the poles instead of failing.
_POLE_DIVERGENT = frozenset({"merc"})
_POLE_EPSILON = 1e-5


class ConicCapable(abc.ABC):
    """Projection that accepts standard parallels."""

    @abc.abstractmethod
    def parallels(self, value: Point | None = None) -> Any: ...


class ClipAngleCapable(abc.ABC):
    """Projection that accepts a small-circle clip angle."""

    @abc.abstractmethod
    def clip_angle(self, value: float | None = None) -> Any: ...


class Projection:
    """Live, mutable projection for one region of the map."""

    def __init__(
        self,
        kind: str,
        proj_name: str,
        *,
        proj_params: Mapping[str, Any] | None = None,
        family: ProjectionFamily = ProjectionFamily.OTHER,
    ) -> None:
        self.kind = kind
        self.family = family
        self._proj_name = proj_name
        self._proj_params = dict(proj_params or {})
        self._scale = DEFAULT_SCALE
        self._translate = DEFAULT_TRANSLATE
        self._center: Point = (0.0, 0.0)
        self._rotate: tuple[float, float, float] = (0.0, 0.0, 0.0)
        self._rotation = SphereRotation()
        self._precision = DEFAULT_PRECISION
        self._clip_extent: Extent | None = None
        self._raw: Any = None
        self._pole_divergent = False
        self._center_raw: Point = (0.0, 0.0)
        self._rebuild_raw()

    def __repr__(self) -> str:
        return (
            f"{type(self).__name__}(kind={self.kind!r}, scale={self._scale:g}, "
            f"translate={self._translate}, rotate={self._rotate})"
        )

    # Geographic <-> pixel

    def __call__(self, lon: float, lat: float) -> Point | None:
        return self._project_rotated(*self._rotate_point(lon, lat))

    def invert(self, x: float, y: float) -> Point | None:
        k = self._scale
        if k == 0:
            return None
        px = (x - self._translate[0]) / k + self._center_raw[0]
        py = -(y - self._translate[1]) / k + self._center_raw[1]
        lon, lat = self._raw(px, py, inverse=True, errcheck=False)
        if not (_finite(lon) and _finite(lat)):
            return None
        return self._rotation.invert(float(lon), float(lat))

    def stream(self, sink: GeoStream) -> ProjectedStream:
        return ProjectedStream(self, sink, precision=self._precision, clip_extent=self._clip_extent)

    def copy(self) -> Projection:
        """Independent projection with the same parameters."""
        return _shallow_copy(self)

    # Parameters

    def scale(self, value: float | None = None) -> Any:
        if value is None:
            return self._scale
        self._scale = float(value)
        return self

    def translate(self, value: Point | None = None) -> Any:
        if value is None:
            return self._translate
        self._translate = (float(value[0]), float(value[1]))
        return self

    def center(self, value: Point | None = None) -> Any:
        if value is None:
            return self._center
        self._center = (float(value[0]), float(value[1]))
        self._center_raw = self._compute_center_raw()
        return self

    def rotate(self, value: tuple[float, ...] | None = None) -> Any:
        if value is None:
            return self._rotate
        gamma = float(value[2]) if len(value) > 2 else 0.0
        self._rotate = (float(value[0]), float(value[1]), gamma)
        self._rotation = SphereRotation.from_degrees(self._rotate)
        return self

    def precision(self, value: float | None = None) -> Any:
        if value is None:
            return self._precision
        self._precision = max(0.0, float(value))
        return self

    def clip_extent(self, value: Extent | None = None, *, clear: bool = False) -> Any:
        """Read or set the pixel clip rectangle; ``clear=True`` removes it."""
        if clear:
            self._clip_extent = None
            return self
        if value is None:
            return self._clip_extent
        (x0, y0), (x1, y1) = value
        self._clip_extent = ((float(x0), float(y0)), (float(x1), float(y1)))
        return self

    # Point pipeline used by the projected stream

    def _rotate_point(self, lon: float, lat: float) -> Point:
        return self._rotation.forward(lon, lat)

    def _project_rotated(self, lon: float, lat: float) -> Point | None:
        raw = self._raw_forward(lon, lat)
        if raw is None:
            return None
        k = self._scale
        return (
            self._translate[0] + k * (raw[0] - self._center_raw[0]),
            self._translate[1] - k * (raw[1] - self._center_raw[1]),
        )

    def _stream_project(self, lon: float, lat: float) -> Point | None:
        return self._project_rotated(lon, lat)

    # Raw projection

    def _raw_params(self) -> dict[str, Any]:
        params: dict[str, Any] = {"proj": self._proj_name, "R": 1, "lon_0": 0}
        params.update(self._proj_params)
        return params

    def _rebuild_raw(self) -> None:
        params = self._raw_params()
        self._raw = _require_pyproj_proj()(params)
        self._pole_divergent = params["proj"] in _POLE_DIVERGENT
        self._center_raw = self._compute_center_raw()

    def _raw_forward(self, lon: float, lat: float) -> Point | None:
        if self._pole_divergent and abs(lat) >= 90.0 - _POLE_EPSILON:
            return None
        x, y = self._raw(lon, lat, errcheck=False)
        if not (_finite(x) and _finite(y)):
            return None
        return (float(x), float(y))

    def _compute_center_raw(self) -> Point:
        raw = self._raw_forward(*self._center)
        if raw is None:
            _LOGGER.debug("Center %s is unprojectable for %s; using origin", self._center, self.kind)
            return (0.0, 0.0)
        return raw


class ConicProjection(Projection, ConicCapable):
    """Conic projection (``lcc``, ``aea``, ``eqdc``) with settable parallels.

    Parallels symmetric about the equator degenerate the cone into a
    cylinder; the matching cylindrical raw projection is used instead.
    """

    _CYLINDRICAL_FALLBACK = {"lcc": "merc", "aea": "cea", "eqdc": "eqc"}

    def __init__(
        self,
        kind: str,
        proj_name: str,
        *,
        parallels: Point = (30.0, 30.0),
        proj_params: Mapping[str, Any] | None = None,
        family: ProjectionFamily = ProjectionFamily.CONIC,
    ) -> None:
        self._parallels = (float(parallels[0]), float(parallels[1]))
        super().__init__(kind, proj_name, proj_params=proj_params, family=family)

    def parallels(self, value: Point | None = None) -> Any:
        if value is None:
            return self._parallels
        self._parallels = (float(value[0]), float(value[1]))
        self._rebuild_raw()
        return self

    def _raw_params(self) -> dict[str, Any]:
        lat_1, lat_2 = self._parallels
        if abs(lat_1 + lat_2) < _CONIC_SYMMETRY_EPSILON:
            fallback = self._CYLINDRICAL_FALLBACK.get(self._proj_name, "eqc")
            params: dict[str, Any] = {"proj": fallback, "R": 1, "lon_0": 0}
            if fallback == "cea":
                params["lat_ts"] = abs(lat_1)
            return params
        params = super()._raw_params()
        params.update({"lat_0": 0, "lat_1": lat_1, "lat_2": lat_2})
        return params


class AzimuthalProjection(Projection, ClipAngleCapable):
    """Azimuthal projection with an optional clip angle in degrees.

    Stream output drops points farther than the clip angle from the
    projection's rotated center; direct calls are not clipped.
    """

    def __init__(
        self,
        kind: str,
        proj_name: str,
        *,
        clip_angle: float | None = None,
        proj_params: Mapping[str, Any] | None = None,
        family: ProjectionFamily = ProjectionFamily.AZIMUTHAL,
    ) -> None:
        super().__init__(kind, proj_name, proj_params=proj_params, family=family)
        self._clip_angle: float | None = None
        self._cos_clip = -1.0
        if clip_angle is not None:
            self.clip_angle(clip_angle)

    def clip_angle(self, value: float | None = None, *, clear: bool = False) -> Any:
        if clear:
            self._clip_angle = None
            self._cos_clip = -1.0
            return self
        if value is None:
            return self._clip_angle
        self._clip_angle = float(value)
        self._cos_clip = math.cos(math.radians(self._clip_angle))
        return self

    def _raw_params(self) -> dict[str, Any]:
        params = super()._raw_params()
        params["lat_0"] = 0
        return params

    def _stream_project(self, lon: float, lat: float) -> Point | None:
        if self._clip_angle is not None:
            cos_distance = math.cos(math.radians(lat)) * math.cos(math.radians(lon))
            if cos_distance < self._cos_clip:
                return None
        return self._project_rotated(lon, lat)


def _finite(value: Any) -> bool:
    try:
        number = float(value)
    except (TypeError, ValueError):
        return False
    return math.isfinite(number) and abs(number) < _PROJ_HUGE


def _require_pyproj_proj() -> Any:
    try:
        from pyproj import Proj
    except ImportError as exc:  # pragma: no cover
        raise RuntimeError("pyproj is required for projection math") from exc
    return Proj
