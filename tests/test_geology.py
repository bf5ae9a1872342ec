"""Tests for the formation catalogue and geology layer."""

import numpy as np
import pytest

from battlemap.config.formations import (
    FORMATIONS,
    FormationName,
    TerrainFeature,
    formations_for_biome,
    get_formation,
    list_formations,
)
from battlemap.core.context import Biome, TacticalMapContext
from battlemap.core.geology import PRIMARY, SECONDARY, GeologyGenerator
from battlemap.utils.random import Seed


class TestFormationCatalogue:
    """Test the static formation data."""

    def test_catalogue_is_closed(self):
        """Test that every named formation has a record."""
        assert set(FORMATIONS) == set(FormationName)
        assert len(list_formations()) == len(FormationName)

    def test_fracture_intensity_formula(self):
        """Test fracture intensity is 1/(joint spacing + 1)."""
        for formation in FORMATIONS.values():
            assert formation.fracture_intensity == pytest.approx(
                1.0 / (formation.joint_spacing + 1)
            )

    def test_get_formation(self):
        """Test lookup by name."""
        assert get_formation("granite_dome").name == FORMATIONS[FormationName.GRANITE_DOME].name
        with pytest.raises(KeyError):
            get_formation("marble_quarry")

    def test_unknown_biome_falls_back(self):
        """Test that unknown biomes use granite."""
        candidates = formations_for_biome("volcano")
        assert candidates == [FORMATIONS[FormationName.GRANITE_DOME]]

    def test_formations_are_immutable(self):
        """Test that catalogue records cannot be modified."""
        formation = FORMATIONS[FormationName.LIMESTONE_KARST]
        with pytest.raises(Exception):
            formation.hardness = 9.0

    def test_soil_depth_range(self):
        """Test soil range from hardness and weathering rate."""
        granite = FORMATIONS[FormationName.GRANITE_DOME]
        tuff = FORMATIONS[FormationName.VOLCANIC_TUFF]
        slate = FORMATIONS[FormationName.SLATE_BEDS]
        assert granite.soil_depth_range == pytest.approx((1.0, 3.0))
        assert tuff.soil_depth_range == pytest.approx((8.0, 24.0))
        assert slate.soil_depth_range == pytest.approx((3.5, 10.5))
        for formation in FORMATIONS.values():
            low, high = formation.soil_depth_range
            assert 0 <= low <= high
            assert high >= 1.0

    def test_has_feature(self):
        """Test feature lookup against weathering products."""
        for formation in FORMATIONS.values():
            for feature in TerrainFeature:
                assert formation.has_feature(feature) == (feature in formation.weathering_products)


class TestGeologyGenerator:
    """Test geology generation."""

    @pytest.fixture
    def context(self):
        return TacticalMapContext.resolve(Seed(12345), biome=Biome.MOUNTAIN)

    @pytest.fixture
    def layer(self, context):
        return GeologyGenerator(20, 15, context, Seed(12345)).generate()

    def test_layer_shape(self, layer):
        """Test that all grids match the map size."""
        assert layer.shape == (15, 20)
        assert layer.soil_depth.shape == (15, 20)
        assert len(layer.features) == 15
        assert len(layer.features[0]) == 20

    def test_soil_depth_non_negative(self, layer):
        """Test that soil is never negative."""
        assert np.all(layer.soil_depth >= 0)

    def test_soil_within_formation_range(self, layer):
        """Test that soil never exceeds what the bedrock can hold."""
        for y in range(layer.height):
            for x in range(layer.width):
                _, deepest = layer.formation_at(x, y).soil_depth_range
                assert layer.soil_depth[y, x] <= deepest

    def test_hard_rock_caps_soil(self, context):
        """Test that talus on slow-weathering granite is capped at its range."""
        granite = FORMATIONS[FormationName.GRANITE_DOME]
        generator = GeologyGenerator(3, 2, context, Seed(12345))
        weathered = [[[TerrainFeature.TALUS] for _ in range(3)] for _ in range(2)]
        bedrock = np.zeros((2, 3), dtype=np.int8)
        depths = generator.calculate_soil_depths(weathered, bedrock, (granite,))
        np.testing.assert_allclose(depths, 3.0)

    def test_fracture_matches_formation(self, layer):
        """Test per-tile fracture intensity."""
        for y in range(layer.height):
            for x in range(layer.width):
                tile = layer.tile(x, y)
                assert tile.fracture_intensity == pytest.approx(tile.formation.fracture_intensity)
                assert tile.permeability == tile.formation.permeability

    def test_formation_selection_respects_candidates(self):
        """Test primary/secondary choice over many seeds."""
        for value in range(1, 60):
            for biome in Biome:
                context = TacticalMapContext.resolve(Seed(value), biome=biome)
                generator = GeologyGenerator(10, 10, context, Seed(value))
                primary, secondary = generator.select_formations()
                candidates = formations_for_biome(biome)
                assert primary in candidates
                if secondary is not None:
                    assert secondary in candidates
                    assert secondary != primary

    def test_uniform_bedrock_without_secondary(self, context):
        """Test that a single formation fills the map."""
        generator = GeologyGenerator(12, 8, context, Seed(3))
        primary = formations_for_biome(Biome.MOUNTAIN)[0]
        bedrock = generator.generate_bedrock_pattern(primary, None)
        assert np.all(bedrock == PRIMARY)

    def test_transition_zones_exclude_border(self, context):
        """Test 4-neighbour transition detection on a split grid."""
        generator = GeologyGenerator(6, 5, context, Seed(3))
        bedrock = np.full((5, 6), PRIMARY, dtype=np.int8)
        bedrock[:, 3:] = SECONDARY
        zones = generator.find_transition_zones(bedrock)
        assert sorted(zones) == [(2, 1), (2, 2), (2, 3), (3, 1), (3, 2), (3, 3)]

    def test_deep_weathering_opens_caves(self):
        """Test that deep dissolution adds caves in soluble rock."""
        soluble = next(f for f in FORMATIONS.values() if f.allows_caves)
        insoluble = next(
            f
            for f in FORMATIONS.values()
            if not f.allows_caves and TerrainFeature.CAVE not in f.weathering_products
        )
        assert TerrainFeature.CAVE in GeologyGenerator._weather_tile(soluble, -0.9)
        assert TerrainFeature.CAVE not in GeologyGenerator._weather_tile(insoluble, -0.9)

    def test_moderate_weathering_has_no_major_features(self):
        """Test that mid-range intensity adds no major or depression features."""
        for formation in FORMATIONS.values():
            features = GeologyGenerator._weather_tile(formation, 0.0)
            assert features == []

    def test_deterministic(self, context):
        """Test that equal seeds give equal layers."""
        a = GeologyGenerator(20, 15, context, Seed(777)).generate()
        b = GeologyGenerator(20, 15, context, Seed(777)).generate()
        np.testing.assert_array_equal(a.bedrock, b.bedrock)
        np.testing.assert_array_equal(a.soil_depth, b.soil_depth)
        assert a.features == b.features
