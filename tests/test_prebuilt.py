"""Tests for the pre-built national composites."""

from __future__ import annotations

import pytest

from mapcomposer.prebuilt import PREBUILT_CONSTRUCTORS
from mapcomposer.stream import PathCollector, stream_geometry


@pytest.fixture
def albers_usa():
    return PREBUILT_CONSTRUCTORS["albers-usa"]()


class TestAlbersUsa:
    """Lower 48 plus Alaska and Hawaii insets."""

    def test_lower48_center_maps_to_translate(self, albers_usa):
        assert albers_usa(-96.6, 38.7) == pytest.approx((480.0, 250.0), abs=1e-6)

    @pytest.mark.parametrize(
        "lon, lat",
        [(-100.0, 40.0), (-150.0, 61.0), (-157.8, 21.3)],
        ids=["lower48", "alaska", "hawaii"],
    )
    def test_round_trip(self, albers_usa, lon, lat):
        pixel = albers_usa(lon, lat)
        assert pixel is not None
        assert albers_usa.invert(*pixel) == pytest.approx((lon, lat), abs=1e-6)

    def test_alaska_drawn_in_lower_left_inset(self, albers_usa):
        x, y = albers_usa(-150.0, 61.0)
        (x0, y0), (x1, y1) = albers_usa.clip_extents()["US-AK"]
        assert x0 <= x <= x1 and y0 <= y <= y1
        assert x < 480.0 and y > 250.0

    def test_outside_every_territory(self, albers_usa):
        assert albers_usa(0.0, 0.0) is None
        assert albers_usa.invert(-5000.0, -5000.0) is None

    def test_scale_relayouts_insets(self, albers_usa):
        albers_usa.scale(2000)
        assert albers_usa.sub_projection("US-L48").scale() == pytest.approx(2000.0)
        assert albers_usa.sub_projection("US-AK").scale() == pytest.approx(700.0)
        assert albers_usa.sub_projection("US-AK").translate()[0] == pytest.approx(480.0 - 0.307 * 2000)

    def test_translate_moves_everything(self, albers_usa):
        before = albers_usa(-150.0, 61.0)
        albers_usa.translate((580, 250))
        after = albers_usa(-150.0, 61.0)
        assert after[0] - before[0] == pytest.approx(100.0)
        assert after[1] == pytest.approx(before[1])

    def test_copy_is_independent(self, albers_usa):
        duplicate = albers_usa.copy()
        duplicate.scale(500)
        assert albers_usa.scale() == pytest.approx(1070.0)

    def test_stream_reaches_every_territory(self, albers_usa):
        sink = PathCollector()
        stream_geometry({"type": "Sphere"}, albers_usa.stream(sink))
        assert len(sink.polygons) == len(albers_usa.territory_codes())

    def test_composite_variant_adds_puerto_rico(self):
        composite = PREBUILT_CONSTRUCTORS["albers-usa-composite"]()
        assert composite.territory_codes()[-1] == "US-PR"
        pixel = composite(-66.5, 18.2)
        assert pixel is not None
        assert composite.invert(*pixel) == pytest.approx((-66.5, 18.2), abs=1e-6)


class TestEuropeanComposites:
    """France, Portugal and Spain layouts."""

    @pytest.mark.parametrize(
        "kind, lon, lat",
        [
            ("conic-conformal-france", 2.35, 48.85),
            ("conic-conformal-france", 55.45, -21.1),
            ("conic-conformal-portugal", -9.14, 38.72),
            ("conic-conformal-portugal", -16.9, 32.65),
            ("conic-conformal-spain", -3.7, 40.4),
            ("conic-conformal-spain", -15.4, 28.1),
        ],
    )
    def test_round_trip(self, kind, lon, lat):
        composite = PREBUILT_CONSTRUCTORS[kind]()
        pixel = composite(lon, lat)
        assert pixel is not None
        assert composite.invert(*pixel) == pytest.approx((lon, lat), abs=1e-6)

    def test_france_insets_do_not_overlap(self):
        composite = PREBUILT_CONSTRUCTORS["conic-conformal-france"]()
        extents = list(composite.clip_extents().values())
        for idx, ((ax0, ay0), (ax1, ay1)) in enumerate(extents):
            for (bx0, by0), (bx1, by1) in extents[idx + 1 :]:
                assert ax1 <= bx0 or bx1 <= ax0 or ay1 <= by0 or by1 <= ay0

    def test_precision_propagates(self):
        composite = PREBUILT_CONSTRUCTORS["conic-conformal-spain"]()
        composite.precision(0.1)
        assert composite.sub_projection("ES-CN").precision() == pytest.approx(0.1)
