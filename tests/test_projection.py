"""Tests for single-region projections, rotation and focus positioning."""

from __future__ import annotations

import math

import pytest
from hypothesis import given, settings
from hypothesis import strategies as st

from mapcomposer.models import ProjectionFamily, ProjectionParameters
from mapcomposer.positioning import FocusPoint, apply_focus, extract_focus, uses_center
from mapcomposer.projection import (
    DEFAULT_PRECISION,
    AzimuthalProjection,
    ClipAngleCapable,
    ConicCapable,
    ConicProjection,
    Projection,
)
from mapcomposer.rotation import SphereRotation

# =============================================================================
# Rotation
# =============================================================================


class TestSphereRotation:
    """Spherical rotation round trips."""

    def test_identity(self):
        rotation = SphereRotation()
        assert rotation.is_identity
        assert rotation.forward(12.5, -40.0) == (12.5, -40.0)

    def test_focus_moves_to_origin(self):
        rotation = SphereRotation.from_degrees((-3.0, -46.2, 0.0))
        lon, lat = rotation.forward(3.0, 46.2)
        assert lon == pytest.approx(0.0, abs=1e-9)
        assert lat == pytest.approx(0.0, abs=1e-9)

    def test_lambda_wraps_across_antimeridian(self):
        rotation = SphereRotation.from_degrees((20.0, 0.0, 0.0))
        lon, lat = rotation.forward(170.0, 10.0)
        assert lon == pytest.approx(-170.0)
        assert lat == pytest.approx(10.0)

    @given(
        lam=st.floats(-180, 180),
        phi=st.floats(-40, 40),
        lon=st.floats(-170, 170),
        lat=st.floats(-40, 40),
    )
    @settings(max_examples=60)
    def test_invert_undoes_forward(self, lam, phi, lon, lat):
        rotation = SphereRotation.from_degrees((lam, phi, 0.0))
        back = rotation.invert(*rotation.forward(lon, lat))
        assert back[0] == pytest.approx(lon, abs=1e-6)
        assert back[1] == pytest.approx(lat, abs=1e-6)

    def test_gamma_round_trip(self):
        rotation = SphereRotation.from_degrees((10.0, 20.0, 30.0))
        back = rotation.invert(*rotation.forward(5.0, 15.0))
        assert back == pytest.approx((5.0, 15.0), abs=1e-9)


# =============================================================================
# Projection objects
# =============================================================================


class TestProjection:
    """Forward, inverse and parameter accessors."""

    def test_defaults(self):
        projection = Projection("equirectangular", "eqc", family=ProjectionFamily.CYLINDRICAL)
        assert projection.scale() == 150.0
        assert projection.translate() == (480.0, 250.0)
        assert projection.precision() == pytest.approx(DEFAULT_PRECISION)
        assert projection.clip_extent() is None

    def test_setters_chain(self):
        projection = Projection("mercator", "merc")
        assert projection.scale(300).translate((10, 20)) is projection
        assert projection.scale() == 300.0
        assert projection.translate() == (10.0, 20.0)

    def test_equirectangular_pixel_transform(self):
        projection = Projection("equirectangular", "eqc").scale(100).translate((0, 0))
        x, y = projection(90.0, 45.0)
        assert x == pytest.approx(100 * math.pi / 2)
        assert y == pytest.approx(-100 * math.pi / 4)

    def test_center_maps_to_translate(self):
        projection = Projection("mercator", "merc").center((10.0, 40.0)).translate((300, 200))
        assert projection(10.0, 40.0) == pytest.approx((300.0, 200.0), abs=1e-6)

    def test_rotated_focus_maps_to_translate(self, factory):
        projection = factory.create(
            "conic-conformal", {"rotate": [-3, -46.2], "translate": [480, 250], "scale": 2700}
        )
        assert projection(3.0, 46.2) == pytest.approx((480.0, 250.0), abs=1e-6)

    @pytest.mark.parametrize(
        "kind",
        ["conic-conformal", "conic-equal-area", "mercator", "azimuthal-equal-area", "equal-earth"],
    )
    def test_invert_round_trip(self, factory, kind):
        projection = factory.create(kind, {"scale": 500, "translate": [400, 300], "rotate": [-5, -30]})
        pixel = projection(10.0, 40.0)
        assert pixel is not None
        assert projection.invert(*pixel) == pytest.approx((10.0, 40.0), abs=1e-5)

    @pytest.mark.parametrize("lat", [90.0, -90.0])
    def test_unprojectable_point_is_none(self, lat):
        assert Projection("mercator", "merc")(0.0, lat) is None

    def test_mercator_projects_close_to_pole(self):
        assert Projection("mercator", "merc")(0.0, 89.9) is not None

    def test_rotated_pole_is_unprojectable(self):
        projection = Projection("mercator", "merc").rotate((0, 30))
        assert projection(0.0, 60.0) is None
        assert projection(0.0, 90.0) is not None

    def test_symmetric_conic_fallback_drops_pole(self):
        projection = ConicProjection("conic-conformal", "lcc", parallels=(-20.0, 20.0))
        assert projection(0.0, 90.0) is None

    def test_copy_is_independent(self):
        original = Projection("mercator", "merc").scale(200)
        duplicate = original.copy()
        duplicate.scale(900).rotate((10, 0))
        assert original.scale() == 200.0
        assert original.rotate() == (0.0, 0.0, 0.0)

    def test_rotate_pads_gamma(self):
        projection = Projection("mercator", "merc").rotate((5, 6))
        assert projection.rotate() == (5.0, 6.0, 0.0)

    def test_clip_extent_set_and_clear(self):
        projection = Projection("mercator", "merc")
        projection.clip_extent(((0, 0), (10, 10)))
        assert projection.clip_extent() == ((0.0, 0.0), (10.0, 10.0))
        projection.clip_extent(clear=True)
        assert projection.clip_extent() is None

    def test_negative_precision_clamped(self):
        assert Projection("mercator", "merc").precision(-1).precision() == 0.0


class TestCapabilityMarkers:
    """ConicCapable and ClipAngleCapable."""

    def test_markers(self):
        conic = ConicProjection("conic-conformal", "lcc")
        azimuthal = AzimuthalProjection("orthographic", "ortho", clip_angle=90)
        plain = Projection("mercator", "merc")
        assert isinstance(conic, ConicCapable) and not isinstance(conic, ClipAngleCapable)
        assert isinstance(azimuthal, ClipAngleCapable) and not isinstance(azimuthal, ConicCapable)
        assert not isinstance(plain, (ConicCapable, ClipAngleCapable))

    def test_parallels_change_projection(self):
        conic = ConicProjection("conic-conformal", "lcc", parallels=(30, 60)).translate((0, 0))
        before = conic(10.0, 50.0)
        conic.parallels((40, 50))
        assert conic.parallels() == (40.0, 50.0)
        assert conic(10.0, 50.0) != pytest.approx(before)

    def test_symmetric_parallels_fall_back_to_cylinder(self):
        conic = ConicProjection("conic-equal-area", "aea", parallels=(-10, 10))
        assert conic(20.0, 5.0) is not None

    def test_clip_angle_accessors(self):
        azimuthal = AzimuthalProjection("gnomonic", "gnom", clip_angle=60)
        assert azimuthal.clip_angle() == 60.0
        azimuthal.clip_angle(clear=True)
        assert azimuthal.clip_angle() is None


# =============================================================================
# Focus positioning
# =============================================================================


class TestFocusPositioning:
    """Canonical focus point handling."""

    def test_only_cylindrical_uses_center(self):
        assert uses_center(ProjectionFamily.CYLINDRICAL)
        assert not uses_center(ProjectionFamily.CONIC)
        assert not uses_center(ProjectionFamily.AZIMUTHAL)

    def test_focus_from_explicit_fields(self):
        params = ProjectionParameters(focus_longitude=190.0, focus_latitude=95.0, rotate_gamma=5.0)
        assert FocusPoint.from_parameters(params) == FocusPoint(-170.0, 90.0, 5.0)

    def test_focus_inferred_from_rotate(self):
        params = ProjectionParameters(rotate=(-3.0, -46.0, 0.0))
        assert FocusPoint.from_parameters(params) == FocusPoint(3.0, 46.0, 0.0)

    def test_focus_absent(self):
        assert FocusPoint.from_parameters(ProjectionParameters()) is None

    def test_apply_focus_cylindrical(self):
        projection = Projection("mercator", "merc", family=ProjectionFamily.CYLINDRICAL)
        apply_focus(projection, FocusPoint(55.5, -21.1))
        assert projection.center() == (55.5, -21.1)
        assert projection.rotate() == (0.0, 0.0, 0.0)

    def test_apply_focus_conic(self):
        projection = ConicProjection("conic-conformal", "lcc")
        apply_focus(projection, FocusPoint(2.5, 46.0, 10.0))
        assert projection.rotate() == (-2.5, -46.0, 10.0)
        assert projection.center() == (0.0, 0.0)

    def test_extract_matches_apply(self):
        projection = AzimuthalProjection("azimuthal-equal-area", "laea")
        apply_focus(projection, FocusPoint(-150.0, 61.0))
        assert extract_focus(projection) == FocusPoint(-150.0, 61.0, 0.0)
