"""Tests for geometry streams, clipping and the stream multiplexer."""

from __future__ import annotations

import pytest
from shapely.geometry import LineString, Polygon

from mapcomposer.stream import PathCollector, StreamMultiplexer, stream_geometry


@pytest.fixture
def flat(factory):
    """Equirectangular projection: 100 px per radian, origin at (0, 0), no resampling."""
    return factory.create("equirectangular", {"scale": 100, "translate": [0, 0], "precision": 0})


def _square(half: float) -> dict:
    return {
        "type": "Polygon",
        "coordinates": [[[-half, -half], [half, -half], [half, half], [-half, half], [-half, -half]]],
    }


class TestGeometryWalker:
    """stream_geometry on raw GeoJSON-like input."""

    def test_polygon_ring_drops_closing_point(self):
        sink = PathCollector()
        stream_geometry(_square(1), sink)
        assert len(sink.polygons) == 1
        assert len(sink.polygons[0][0]) == 4

    def test_feature_collection(self):
        sink = PathCollector()
        collection = {
            "type": "FeatureCollection",
            "features": [
                {"type": "Feature", "geometry": {"type": "Point", "coordinates": [1, 2]}},
                {"type": "Feature", "geometry": {"type": "LineString", "coordinates": [[0, 0], [1, 1]]}},
                {"type": "Feature", "geometry": None},
            ],
        }
        stream_geometry(collection, sink)
        assert sink.points == [(1.0, 2.0)]
        assert sink.lines == [[(0.0, 0.0), (1.0, 1.0)]]

    def test_shapely_geometry_input(self):
        sink = PathCollector()
        stream_geometry(LineString([(0, 0), (2, 2), (4, 0)]), sink)
        assert len(sink.lines[0]) == 3

    def test_sphere(self):
        sink = PathCollector()
        assert sink.is_empty
        stream_geometry({"type": "Sphere"}, sink)
        assert sink.sphere_count == 1
        assert not sink.is_empty

    def test_unsupported_type(self):
        with pytest.raises(ValueError, match="Unsupported geometry type"):
            stream_geometry({"type": "Circle"}, PathCollector())

    def test_non_mapping_rejected(self):
        with pytest.raises(ValueError, match="Cannot stream"):
            stream_geometry(42, PathCollector())

    def test_geometries_builds_shapely_shapes(self):
        sink = PathCollector()
        stream_geometry(_square(1), sink)
        shapes = sink.geometries()
        assert isinstance(shapes[0], Polygon)
        assert shapes[0].area == pytest.approx(4.0)


class TestProjectedStream:
    """Projection streams: projection, clipping, resampling."""

    def test_point_projected(self, flat):
        sink = PathCollector()
        flat.stream(sink).point(90.0, 0.0)
        assert sink.points[0][0] == pytest.approx(157.0796, abs=1e-3)

    def test_point_outside_extent_dropped(self, flat):
        flat.clip_extent(((-10, -10), (10, 10)))
        sink = PathCollector()
        stream = flat.stream(sink)
        stream.point(30.0, 0.0)
        stream.point(1.0, 0.0)
        assert len(sink.points) == 1

    def test_line_clipped_to_extent(self, flat):
        flat.clip_extent(((-10, -10), (10, 10)))
        sink = PathCollector()
        stream_geometry({"type": "LineString", "coordinates": [[-20, 0], [20, 0]]}, flat.stream(sink))
        assert len(sink.lines) == 1
        xs = sorted(x for x, _ in sink.lines[0])
        assert xs[0] == pytest.approx(-10.0)
        assert xs[-1] == pytest.approx(10.0)

    def test_polygon_clipped_to_extent(self, flat):
        flat.clip_extent(((-10, -10), (10, 10)))
        sink = PathCollector()
        stream_geometry(_square(20), flat.stream(sink))
        assert len(sink.polygons) == 1
        ring = sink.polygons[0][0]
        assert len(ring) >= 4
        assert Polygon(ring).area == pytest.approx(400.0)
        assert all(-10.0 - 1e-9 <= x <= 10.0 + 1e-9 and -10.0 - 1e-9 <= y <= 10.0 + 1e-9 for x, y in ring)

    def test_polygon_outside_extent_vanishes(self, flat):
        flat.clip_extent(((-10, -10), (10, 10)))
        sink = PathCollector()
        stream_geometry(
            {"type": "Polygon", "coordinates": [[[40, 40], [50, 40], [50, 50], [40, 50]]]}, flat.stream(sink)
        )
        assert sink.polygons == []

    def test_sphere_with_extent_emits_rectangle(self, flat):
        flat.clip_extent(((0, 0), (20, 10)))
        sink = PathCollector()
        flat.stream(sink).sphere()
        assert sink.sphere_count == 0
        assert sink.polygons == [[[(0.0, 0.0), (20.0, 0.0), (20.0, 10.0), (0.0, 10.0)]]]

    def test_sphere_without_extent_forwarded(self, flat):
        sink = PathCollector()
        flat.stream(sink).sphere()
        assert sink.sphere_count == 1

    def test_antimeridian_breaks_line(self, flat):
        sink = PathCollector()
        line = {"type": "LineString", "coordinates": [[160, 0], [170, 0], [-170, 0], [-160, 0]]}
        stream_geometry(line, flat.stream(sink))
        assert len(sink.lines) == 2

    def test_resampling_follows_great_circle(self, factory):
        projection = factory.create("equirectangular", {"scale": 100, "translate": [0, 0]})
        sink = PathCollector()
        stream_geometry({"type": "LineString", "coordinates": [[-60, 45], [60, 45]]}, projection.stream(sink))
        line = sink.lines[0]
        assert len(line) > 2
        # The great circle bows poleward, i.e. upward on screen.
        assert min(y for _, y in line) < line[0][1]

    def test_clip_angle_drops_far_side(self, factory):
        projection = factory.create("orthographic")
        sink = PathCollector()
        stream = projection.stream(sink)
        stream.point(120.0, 0.0)
        stream.point(30.0, 10.0)
        assert len(sink.points) == 1


class TestStreamMultiplexer:
    """Broadcasting to several streams."""

    def test_every_event_reaches_every_stream(self):
        first, second = PathCollector(), PathCollector()
        multiplexer = StreamMultiplexer([first, second])
        stream_geometry(_square(1), multiplexer)
        stream_geometry({"type": "Sphere"}, multiplexer)
        assert len(multiplexer) == 2
        for sink in (first, second):
            assert len(sink.polygons) == 1
            assert sink.sphere_count == 1

    def test_projected_streams(self, factory):
        sink = PathCollector()
        left = factory.create("equirectangular", {"translate": [0, 0], "precision": 0})
        right = factory.create("equirectangular", {"translate": [1000, 0], "precision": 0})
        multiplexer = StreamMultiplexer([left.stream(sink), right.stream(sink)])
        multiplexer.point(0.0, 0.0)
        assert sink.points == [(0.0, 0.0), (1000.0, 0.0)]
