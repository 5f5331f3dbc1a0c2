"""Geometry streams: sink protocol, geometry walker and the projected stream.

A stream is a push-based consumer of geometry events. Geographic geometry is
walked into a projection's stream, which rotates, projects, resamples and
clips it before forwarding pixel coordinates to a downstream sink such as a
path renderer or :class:`PathCollector`.
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass, field
from typing import Any, Callable, Mapping, Protocol, Sequence, runtime_checkable

from .models import Extent, Point


_LOGGER = logging.getLogger("mapcomposer.stream")

_MAX_RESAMPLE_DEPTH = 16
_COS_MIN_DISTANCE = math.cos(math.radians(30.0))
_ANTIMERIDIAN_JUMP_DEG = 180.0


@runtime_checkable
class GeoStream(Protocol):
    def point(self, x: float, y: float) -> None: ...

    def line_start(self) -> None: ...

    def line_end(self) -> None: ...

    def polygon_start(self) -> None: ...

    def polygon_end(self) -> None: ...

    def sphere(self) -> None: ...


@dataclass(slots=True)
class PathCollector:
    """Sink that records everything it receives, grouped by shape."""

    points: list[Point] = field(default_factory=list)
    lines: list[list[Point]] = field(default_factory=list)
    polygons: list[list[list[Point]]] = field(default_factory=list)
    sphere_count: int = 0
    _current_line: list[Point] | None = field(default=None, init=False, repr=False)
    _current_polygon: list[list[Point]] | None = field(default=None, init=False, repr=False)

    def point(self, x: float, y: float) -> None:
        if self._current_line is not None:
            self._current_line.append((x, y))
        else:
            self.points.append((x, y))

    def line_start(self) -> None:
        self._current_line = []

    def line_end(self) -> None:
        line = self._current_line or []
        self._current_line = None
        if self._current_polygon is not None:
            self._current_polygon.append(line)
        else:
            self.lines.append(line)

    def polygon_start(self) -> None:
        self._current_polygon = []

    def polygon_end(self) -> None:
        if self._current_polygon:
            self.polygons.append(self._current_polygon)
        self._current_polygon = None

    def sphere(self) -> None:
        self.sphere_count += 1

    @property
    def is_empty(self) -> bool:
        return not (self.points or self.lines or self.polygons or self.sphere_count)

    def geometries(self) -> list[Any]:
        """Return the collected shapes as shapely geometries."""
        point_cls, line_cls, polygon_cls, _ = _require_shapely_geometry()
        out: list[Any] = [point_cls(p) for p in self.points]
        out.extend(line_cls(line) for line in self.lines if len(line) >= 2)
        for rings in self.polygons:
            if len(rings[0]) >= 3:
                out.append(polygon_cls(rings[0], [r for r in rings[1:] if len(r) >= 3]))
        return out


def stream_geometry(obj: Any, stream: GeoStream) -> None:
    """Walk GeoJSON-like data or a shapely geometry into ``stream``.

    Polygon rings are emitted without their closing coordinate. ``{"type":
    "Sphere"}`` emits a single ``sphere`` event.
    """
    if hasattr(obj, "__geo_interface__"):
        obj = obj.__geo_interface__
    if not isinstance(obj, Mapping):
        raise ValueError(f"Cannot stream object of type {type(obj).__name__}")
    kind = obj.get("type")
    if kind == "FeatureCollection":
        for feature in obj.get("features", []):
            stream_geometry(feature, stream)
    elif kind == "Feature":
        geometry = obj.get("geometry")
        if geometry is not None:
            stream_geometry(geometry, stream)
    elif kind == "GeometryCollection":
        for geometry in obj.get("geometries", []):
            stream_geometry(geometry, stream)
    elif kind == "Sphere":
        stream.sphere()
    elif kind == "Point":
        _stream_point(obj["coordinates"], stream)
    elif kind == "MultiPoint":
        for coords in obj["coordinates"]:
            _stream_point(coords, stream)
    elif kind == "LineString":
        _stream_line(obj["coordinates"], stream, closed=False)
    elif kind == "MultiLineString":
        for coords in obj["coordinates"]:
            _stream_line(coords, stream, closed=False)
    elif kind == "Polygon":
        _stream_polygon(obj["coordinates"], stream)
    elif kind == "MultiPolygon":
        for coords in obj["coordinates"]:
            _stream_polygon(coords, stream)
    else:
        raise ValueError(f"Unsupported geometry type: {kind!r}")


def _stream_point(coords: Sequence[float], stream: GeoStream) -> None:
    stream.point(float(coords[0]), float(coords[1]))


def _stream_line(coords: Sequence[Sequence[float]], stream: GeoStream, *, closed: bool) -> None:
    points = list(coords)
    if closed and len(points) > 1 and tuple(points[0]) == tuple(points[-1]):
        points = points[:-1]
    stream.line_start()
    for item in points:
        stream.point(float(item[0]), float(item[1]))
    stream.line_end()


def _stream_polygon(rings: Sequence[Sequence[Sequence[float]]], stream: GeoStream) -> None:
    stream.polygon_start()
    for ring in rings:
        _stream_line(ring, stream, closed=True)
    stream.polygon_end()


class StreamMultiplexer:
    """Broadcasts every geometry event to each wrapped stream, in order."""

    def __init__(self, streams: Sequence[GeoStream]) -> None:
        self._streams = tuple(streams)

    def __len__(self) -> int:
        return len(self._streams)

    def point(self, x: float, y: float) -> None:
        for stream in self._streams:
            stream.point(x, y)

    def line_start(self) -> None:
        for stream in self._streams:
            stream.line_start()

    def line_end(self) -> None:
        for stream in self._streams:
            stream.line_end()

    def polygon_start(self) -> None:
        for stream in self._streams:
            stream.polygon_start()

    def polygon_end(self) -> None:
        for stream in self._streams:
            stream.polygon_end()

    def sphere(self) -> None:
        for stream in self._streams:
            stream.sphere()


class PointPipeline(Protocol):
    """What a projected stream needs from its projection."""

    def _rotate_point(self, lon: float, lat: float) -> Point: ...

    def _stream_project(self, lon: float, lat: float) -> Point | None: ...


@dataclass(slots=True)
class _Vertex:
    geo: Point
    pixel: Point


class ProjectedStream:
    """Stream adapter: geographic events in, clipped pixel events out."""

    def __init__(
        self,
        pipeline: PointPipeline,
        sink: GeoStream,
        *,
        precision: float,
        clip_extent: Extent | None,
    ) -> None:
        self._pipeline = pipeline
        self._sink = sink
        self._delta2 = precision * precision
        self._clip_extent = clip_extent
        self._in_line = False
        self._in_polygon = False
        self._segments: list[list[Point]] = []
        self._previous: _Vertex | None = None
        self._rings: list[list[Point]] = []

    def point(self, x: float, y: float) -> None:
        rotated = self._pipeline._rotate_point(x, y)
        pixel = self._pipeline._stream_project(*rotated)
        if not self._in_line:
            if pixel is not None and self._inside_extent(pixel):
                self._sink.point(*pixel)
            return
        if pixel is None:
            self._break_segment()
            return
        vertex = _Vertex(geo=rotated, pixel=pixel)
        previous = self._previous
        if previous is not None:
            jump = abs(rotated[0] - previous.geo[0]) > _ANTIMERIDIAN_JUMP_DEG
            if jump and not self._in_polygon:
                self._break_segment()
            elif self._delta2 > 0.0 and not jump:
                self._segments[-1].extend(self._resample(previous, vertex, _MAX_RESAMPLE_DEPTH))
        if not self._segments:
            self._segments.append([])
        self._segments[-1].append(pixel)
        self._previous = vertex

    def line_start(self) -> None:
        self._in_line = True
        self._segments = [[]]
        self._previous = None

    def line_end(self) -> None:
        self._in_line = False
        segments = [segment for segment in self._segments if segment]
        self._segments = []
        self._previous = None
        if self._in_polygon:
            ring = [p for segment in segments for p in segment]
            if len(ring) >= 3:
                self._rings.append(ring)
            else:
                _LOGGER.debug("Dropping degenerate ring with %d projected points", len(ring))
            return
        for segment in segments:
            if len(segment) >= 2:
                self._emit_line(segment)

    def polygon_start(self) -> None:
        self._in_polygon = True
        self._rings = []

    def polygon_end(self) -> None:
        self._in_polygon = False
        rings = self._rings
        self._rings = []
        if rings:
            self._emit_polygon(rings)

    def sphere(self) -> None:
        if self._clip_extent is None:
            self._sink.sphere()
            return
        (x0, y0), (x1, y1) = self._clip_extent
        self._write_polygon([[(x0, y0), (x1, y0), (x1, y1), (x0, y1)]])

    def _break_segment(self) -> None:
        if self._segments and self._segments[-1]:
            self._segments.append([])
        self._previous = None

    def _inside_extent(self, pixel: Point) -> bool:
        if self._clip_extent is None:
            return True
        (x0, y0), (x1, y1) = self._clip_extent
        return x0 <= pixel[0] <= x1 and y0 <= pixel[1] <= y1

    def _resample(self, start: _Vertex, end: _Vertex, depth: int) -> list[Point]:
        """Intermediate pixels between two vertices, excluding both ends."""
        x0, y0 = start.pixel
        x1, y1 = end.pixel
        dx = x1 - x0
        dy = y1 - y0
        d2 = dx * dx + dy * dy
        if d2 <= 4.0 * self._delta2 or depth <= 0:
            return []
        a0, b0, c0 = _cartesian(start.geo)
        a1, b1, c1 = _cartesian(end.geo)
        a, b, c = a0 + a1, b0 + b1, c0 + c1
        norm = math.sqrt(a * a + b * b + c * c)
        if norm < 1e-12:
            return []
        mid_geo = (
            math.degrees(math.atan2(b, a)),
            math.degrees(math.asin(max(-1.0, min(1.0, c / norm)))),
        )
        mid_pixel = self._pipeline._stream_project(*mid_geo)
        if mid_pixel is None:
            return []
        dx2 = mid_pixel[0] - x0
        dy2 = mid_pixel[1] - y0
        dz = dy * dx2 - dx * dy2
        if (
            dz * dz / d2 > self._delta2
            or abs((dx * dx2 + dy * dy2) / d2 - 0.5) > 0.3
            or a0 * a1 + b0 * b1 + c0 * c1 < _COS_MIN_DISTANCE
        ):
            middle = _Vertex(geo=mid_geo, pixel=mid_pixel)
            return [
                *self._resample(start, middle, depth - 1),
                mid_pixel,
                *self._resample(middle, end, depth - 1),
            ]
        return []

    def _emit_line(self, segment: list[Point]) -> None:
        if self._clip_extent is None:
            self._write_line(segment)
            return
        _, line_cls, _, box = _require_shapely_geometry()
        clipped = line_cls(segment).intersection(box(*_flat_extent(self._clip_extent)))
        for part in _iter_parts(clipped, "LineString"):
            coords = [(float(x), float(y)) for x, y in part.coords]
            if len(coords) >= 2:
                self._write_line(coords)

    def _emit_polygon(self, rings: list[list[Point]]) -> None:
        if self._clip_extent is None:
            self._write_polygon(rings)
            return
        _, _, polygon_cls, box = _require_shapely_geometry()
        polygon = _require_make_valid()(polygon_cls(rings[0], rings[1:]))
        clipped = polygon.intersection(box(*_flat_extent(self._clip_extent)))
        for part in _iter_parts(clipped, "Polygon"):
            out = [_open_ring(part.exterior.coords)]
            out.extend(_open_ring(interior.coords) for interior in part.interiors)
            self._write_polygon(out)

    def _write_line(self, points: Sequence[Point]) -> None:
        self._sink.line_start()
        for x, y in points:
            self._sink.point(x, y)
        self._sink.line_end()

    def _write_polygon(self, rings: Sequence[Sequence[Point]]) -> None:
        self._sink.polygon_start()
        for ring in rings:
            self._write_line(ring)
        self._sink.polygon_end()


def _cartesian(geo: Point) -> tuple[float, float, float]:
    lam = math.radians(geo[0])
    phi = math.radians(geo[1])
    cos_phi = math.cos(phi)
    return (cos_phi * math.cos(lam), cos_phi * math.sin(lam), math.sin(phi))


def _flat_extent(extent: Extent) -> tuple[float, float, float, float]:
    (x0, y0), (x1, y1) = extent
    return (min(x0, x1), min(y0, y1), max(x0, x1), max(y0, y1))


def _open_ring(coords: Any) -> list[Point]:
    ring = [(float(x), float(y)) for x, y in coords]
    if len(ring) > 1 and ring[0] == ring[-1]:
        ring = ring[:-1]
    return ring


def _iter_parts(geometry: Any, geom_type: str) -> list[Any]:
    if geometry.is_empty:
        return []
    if geometry.geom_type == geom_type:
        return [geometry]
    if hasattr(geometry, "geoms"):
        parts: list[Any] = []
        for item in geometry.geoms:
            parts.extend(_iter_parts(item, geom_type))
        return parts
    return []


def _require_shapely_geometry() -> tuple[Any, Any, Any, Callable[..., Any]]:
    try:
        from shapely.geometry import LineString, Point as ShapelyPoint, Polygon, box
    except ImportError as exc:  # pragma: no cover - dependency guard
        raise RuntimeError("shapely is required for stream clipping") from exc
    return (ShapelyPoint, LineString, Polygon, box)


def _require_make_valid() -> Callable[[Any], Any]:
    try:
        from shapely.validation import make_valid
    except ImportError as exc:  # pragma: no cover - dependency guard
        raise RuntimeError("shapely>=1.8 is required for polygon clipping") from exc
    return make_valid
