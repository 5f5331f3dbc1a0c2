"""Tests for the composite configuration interchange format."""

from __future__ import annotations

import json

import pytest
from hypothesis import given, settings
from hypothesis import strategies as st

from mapcomposer.configuration import (
    CanvasDimensions,
    CompositeConfiguration,
    InvalidConfigurationError,
    TerritoryProjectionConfig,
)
from mapcomposer.models import ProjectionFamily, ProjectionParameters


def _territory(code: str = "FR-MET", **kwargs) -> TerritoryProjectionConfig:
    defaults = {
        "projection_id": "conic-conformal",
        "name": "France",
        "parameters": ProjectionParameters(
            focus_longitude=2.5, focus_latitude=46.0, parallels=(44.0, 49.0), scale_multiplier=1.0
        ),
    }
    defaults.update(kwargs)
    return TerritoryProjectionConfig(code=code, **defaults)


@pytest.fixture
def configuration() -> CompositeConfiguration:
    config = CompositeConfiguration("france", "France", 2700, (960, 500))
    config.add_territory(_territory())
    config.add_territory(
        _territory(
            "FR-GP",
            projection_id="mercator",
            name="Guadeloupe",
            family=ProjectionFamily.CYLINDRICAL,
            parameters=ProjectionParameters(focus_longitude=-61.4, focus_latitude=16.2, scale_multiplier=1.4),
            translate_offset=(-324.0, -160.0),
            pixel_clip_extent=(-40.0, -40.0, 40.0, 40.0),
        )
    )
    return config


class TestValidation:
    """Construction-time invariants."""

    def test_atlas_id_required(self):
        with pytest.raises(InvalidConfigurationError, match="Atlas ID"):
            CompositeConfiguration(" ", "Blank", 2700, (960, 500))

    def test_reference_scale_positive(self):
        with pytest.raises(InvalidConfigurationError, match="Reference scale"):
            CompositeConfiguration("x", "X", 0, (960, 500))

    def test_canvas_positive(self):
        with pytest.raises(InvalidConfigurationError, match="Canvas dimensions"):
            CompositeConfiguration("x", "X", 2700, (960, 0))

    def test_canvas_dimension_object(self):
        config = CompositeConfiguration("x", "X", 2700, CanvasDimensions(800, 600))
        assert config.canvas_dimensions == CanvasDimensions(800.0, 600.0)

    def test_projection_id_required(self, configuration):
        with pytest.raises(InvalidConfigurationError, match="Projection ID"):
            configuration.add_territory(_territory("FR-MQ", projection_id=""))

    def test_scale_multiplier_positive(self, configuration):
        with pytest.raises(InvalidConfigurationError, match="Scale multiplier"):
            configuration.add_territory(
                _territory("FR-MQ", parameters=ProjectionParameters(scale_multiplier=0.0))
            )

    def test_setters_validate(self, configuration):
        with pytest.raises(InvalidConfigurationError):
            configuration.set_reference_scale(-1)
        with pytest.raises(InvalidConfigurationError):
            configuration.set_canvas_dimensions(-1, 10)
        configuration.set_reference_scale(3000)
        assert configuration.reference_scale == 3000.0


class TestTerritories:
    """Territory add / update / remove."""

    def test_codes_in_insertion_order(self, configuration):
        assert configuration.territory_codes() == ["FR-MET", "FR-GP"]
        assert configuration.territory_count == 2
        assert configuration.has_territory("FR-GP")

    def test_update_territory(self, configuration):
        updated = configuration.update_territory("FR-GP", {"translate_offset": (-300.0, -150.0)})
        assert updated.translate_offset == (-300.0, -150.0)
        assert configuration.get_territory("FR-GP") is updated

    def test_update_parameters_from_mapping(self, configuration):
        updated = configuration.update_territory("FR-GP", {"parameters": {"scaleMultiplier": 1.5}})
        assert updated.parameters == ProjectionParameters(scale_multiplier=1.5)
        assert configuration.to_json()["territories"][1]["parameters"] == {"scaleMultiplier": 1.5}

    def test_update_coerces_family_and_sequences(self, configuration):
        updated = configuration.update_territory(
            "FR-GP",
            {"family": "AZIMUTHAL", "translate_offset": [10, 20], "pixel_clip_extent": [-5, -5, 5, 5]},
        )
        assert updated.family is ProjectionFamily.AZIMUTHAL
        assert updated.translate_offset == (10.0, 20.0)
        assert updated.pixel_clip_extent == (-5.0, -5.0, 5.0, 5.0)
        assert CompositeConfiguration.loads(configuration.dumps()).get_territory("FR-GP") == updated

    @pytest.mark.parametrize(
        "updates, message",
        [
            ({"parameters": {"scaleMultiplier": 0}}, "Scale multiplier"),
            ({"parameters": {"zoom": 2}}, "Invalid parameters"),
            ({"parameters": [1, 2]}, "Invalid parameters"),
            ({"family": "hexagonal"}, "Unknown family"),
            ({"translate_offset": [1]}, "translateOffset"),
            ({"pixel_clip_extent": [1, 2, 3]}, "pixelClipExtent"),
            ({"projection_id": 7}, "projection_id"),
        ],
    )
    def test_update_rejects_bad_values(self, configuration, updates, message):
        before = configuration.get_territory("FR-GP")
        with pytest.raises(InvalidConfigurationError, match=message):
            configuration.update_territory("FR-GP", updates)
        assert configuration.get_territory("FR-GP") is before

    def test_update_unknown_territory(self, configuration):
        with pytest.raises(InvalidConfigurationError, match="Territory not found"):
            configuration.update_territory("FR-XX", {"name": "Nowhere"})

    def test_update_unknown_field(self, configuration):
        with pytest.raises(InvalidConfigurationError, match="Unknown territory fields"):
            configuration.update_territory("FR-GP", {"zoom": 3})

    def test_remove_territory(self, configuration):
        assert configuration.remove_territory("FR-GP") is True
        assert configuration.remove_territory("FR-GP") is False

    def test_last_territory_cannot_be_removed(self, configuration):
        configuration.remove_territory("FR-GP")
        with pytest.raises(InvalidConfigurationError, match="last territory"):
            configuration.remove_territory("FR-MET")
        assert configuration.territory_codes() == ["FR-MET"]


class TestSerialization:
    """JSON round trips."""

    def test_json_round_trip(self, configuration):
        restored = CompositeConfiguration.from_json(configuration.to_json())
        assert restored.territory_codes() == configuration.territory_codes()
        for code in configuration.territory_codes():
            assert restored.get_territory(code) == configuration.get_territory(code)
        assert restored.reference_scale == configuration.reference_scale
        assert restored.canvas_dimensions == configuration.canvas_dimensions

    def test_camel_case_keys(self, configuration):
        data = configuration.to_json()
        assert data["atlasId"] == "france"
        territory = data["territories"][1]
        assert territory["projectionId"] == "mercator"
        assert territory["parameters"]["focusLongitude"] == -61.4
        assert territory["pixelClipExtent"] == [-40.0, -40.0, 40.0, 40.0]

    def test_dumps_loads(self, configuration):
        text = configuration.dumps()
        assert json.loads(text)["atlasName"] == "France"
        restored = CompositeConfiguration.loads(text)
        assert restored.get_territory("FR-MET") == configuration.get_territory("FR-MET")

    def test_loads_rejects_bad_json(self):
        with pytest.raises(InvalidConfigurationError, match="Invalid composite configuration JSON"):
            CompositeConfiguration.loads("{not json")
        with pytest.raises(InvalidConfigurationError, match="must be an object"):
            CompositeConfiguration.loads("[]")

    def test_from_json_missing_reference_scale(self):
        with pytest.raises(InvalidConfigurationError, match="Malformed"):
            CompositeConfiguration.from_json({"atlasId": "x", "canvasDimensions": {"width": 1, "height": 1}})

    def test_from_json_unknown_family(self, configuration):
        data = configuration.to_json()
        data["territories"][0]["family"] = "hexagonal"
        with pytest.raises(InvalidConfigurationError, match="Unknown family"):
            CompositeConfiguration.from_json(data)

    @given(
        codes=st.lists(st.from_regex(r"[A-Z]{2}-[A-Z0-9]{1,3}", fullmatch=True), min_size=1, max_size=6, unique=True),
        multiplier=st.floats(0.05, 20, allow_nan=False),
        offset=st.tuples(st.floats(-500, 500), st.floats(-500, 500)),
    )
    @settings(max_examples=30)
    def test_round_trip_preserves_parameters(self, codes, multiplier, offset):
        config = CompositeConfiguration("demo", "Demo", 1500, (800, 600))
        for code in codes:
            config.add_territory(
                _territory(
                    code,
                    parameters=ProjectionParameters(focus_longitude=offset[0] / 10, scale_multiplier=multiplier),
                    translate_offset=offset,
                )
            )
        restored = CompositeConfiguration.loads(config.dumps())
        assert set(restored.territory_codes()) == set(codes)
        for code in codes:
            assert restored.get_territory(code).parameters == config.get_territory(code).parameters
