"""Tests for topography module."""

import numpy as np
import pytest

from battlemap.core.context import Biome, ElevationZone, TacticalMapContext
from battlemap.core.errors import LayerDependencyError
from battlemap.core.geology import GeologyGenerator
from battlemap.core.topography import (
    AspectDirection,
    TopographyGenerator,
    TopographyOptions,
    calculate_aspect,
    calculate_topography,
    identify_terrain_features,
)
from battlemap.utils.random import Seed


class TestTopographyCalculations:
    """Test slope, aspect and terrain classification on synthetic grids."""

    def test_flat_grid(self):
        """Test that a flat grid has zero slope and flat aspect."""
        layer = calculate_topography(np.full((6, 7), 12.0))
        assert np.all(layer.slope == 0)
        assert np.all(layer.relative_elevation == 0)
        assert all(a == AspectDirection.FLAT for row in layer.aspect for a in row)

    def test_aspect_directions(self):
        """Test compass sectors with y pointing south."""
        assert calculate_aspect(0, 0) == AspectDirection.FLAT
        assert calculate_aspect(1, 0) == AspectDirection.EAST
        assert calculate_aspect(0, 1) == AspectDirection.SOUTH
        assert calculate_aspect(-1, 0) == AspectDirection.WEST
        assert calculate_aspect(0, -1) == AspectDirection.NORTH

    def test_ramp_slope(self):
        """Test slope of a uniform ramp rising 5ft per tile."""
        elevation = np.tile(np.arange(8, dtype=float) * 5, (5, 1))
        layer = calculate_topography(elevation)
        # Interior: (5*2)/10 = 1 -> 45 degrees
        assert layer.slope[2, 3] == pytest.approx(45.0)
        assert layer.aspect[2][3] == AspectDirection.EAST

    def test_ranges_on_rough_grid(self):
        """Test that slope and relative elevation stay in range."""
        rng = np.random.default_rng(3)
        layer = calculate_topography(rng.uniform(0, 500, size=(12, 12)))
        assert np.all((layer.slope >= 0) & (layer.slope <= 90))
        assert np.all((layer.relative_elevation >= -1) & (layer.relative_elevation <= 1))

    def test_peak_is_ridge(self):
        """Test that a single raised tile is a ridge."""
        elevation = np.zeros((5, 5))
        elevation[2, 2] = 10.0
        layer = identify_terrain_features(calculate_topography(elevation))
        assert layer.is_ridge[2, 2]
        assert not layer.is_valley[2, 2]
        assert layer.is_ridge.sum() == 1

    def test_pit_is_valley_and_drains(self):
        """Test that a single sunken tile is a draining valley."""
        elevation = np.full((5, 5), 10.0)
        elevation[2, 2] = 0.0
        layer = identify_terrain_features(calculate_topography(elevation))
        assert layer.is_valley[2, 2]
        assert layer.is_drainage[2, 2]
        assert not layer.is_ridge[2, 2]

    def test_border_never_classified(self):
        """Test that border tiles are never ridges or valleys."""
        rng = np.random.default_rng(11)
        layer = identify_terrain_features(calculate_topography(rng.uniform(0, 50, (8, 9))))
        for mask in (layer.is_ridge, layer.is_valley):
            assert not mask[0, :].any()
            assert not mask[-1, :].any()
            assert not mask[:, 0].any()
            assert not mask[:, -1].any()


class TestTopographyGenerator:
    """Test the topography generator."""

    @pytest.fixture
    def context(self):
        return TacticalMapContext.resolve(
            Seed(2024), biome=Biome.MOUNTAIN, elevation=ElevationZone.HIGHLAND
        )

    @pytest.fixture
    def geology(self, context):
        return GeologyGenerator(24, 18, context, Seed(2024)).generate()

    def test_missing_geology_raises(self, context):
        """Test that topography requires geology."""
        with pytest.raises(LayerDependencyError) as exc_info:
            TopographyGenerator(None, context, Seed(2024))
        assert exc_info.value.code == "INVALID_LAYER_DEPENDENCY"

    def test_layer_invariants(self, geology, context):
        """Test shape, ranges and ridge/valley exclusivity."""
        layer = TopographyGenerator(geology, context, Seed(2024)).generate()
        assert layer.shape == (18, 24)
        assert np.all(layer.elevation >= 0)
        assert np.all((layer.slope >= 0) & (layer.slope <= 90))
        assert np.all((layer.relative_elevation >= -1) & (layer.relative_elevation <= 1))
        assert not np.any(layer.is_ridge & layer.is_valley)

    def test_rugged_terrain(self, geology, context):
        """Test that rugged terrain with geological features keeps invariants."""
        options = TopographyOptions(terrain_ruggedness=2.0, elevation_variance=2.0)
        layer = TopographyGenerator(geology, context, Seed(2024), options).generate()
        assert np.all((layer.slope >= 0) & (layer.slope <= 90))
        assert not np.any(layer.is_ridge & layer.is_valley)

    def test_deterministic(self, geology, context):
        """Test that equal seeds give equal elevations."""
        a = TopographyGenerator(geology, context, Seed(2024)).generate()
        b = TopographyGenerator(geology, context, Seed(2024)).generate()
        np.testing.assert_array_equal(a.elevation, b.elevation)

    def test_relief_grows_with_zone(self, geology):
        """Test that higher zones allow more relief."""
        lowland = TacticalMapContext.resolve(
            Seed(2024), biome=Biome.MOUNTAIN, elevation=ElevationZone.LOWLAND
        )
        alpine = TacticalMapContext.resolve(
            Seed(2024), biome=Biome.MOUNTAIN, elevation=ElevationZone.ALPINE
        )
        low = TopographyGenerator(geology, lowland, Seed(2024))
        high = TopographyGenerator(geology, alpine, Seed(2024))
        assert high.max_elevation > low.max_elevation
