"""Tests for features module."""

import pytest

from battlemap.core.context import Biome, DevelopmentLevel, RequiredFeatures, TacticalMapContext
from battlemap.core.errors import LayerDependencyError
from battlemap.core.features import (
    LANDMARK_LORE,
    FeatureGenerator,
    FeatureType,
    FeaturesLayer,
    Hazard,
    HazardLevel,
    InteractionType,
    Landmark,
    Resource,
    VisibilityLevel,
    build_feature_tiles,
    resource_description,
)
from battlemap.core.geology import GeologyGenerator
from battlemap.core.hydrology import HydrologyGenerator
from battlemap.core.structures import StructureGenerator
from battlemap.core.topography import TopographyGenerator
from battlemap.core.vegetation import VegetationGenerator
from battlemap.utils.random import Seed


def build_layers(seed_value, width=28, height=28, **overrides):
    """All layers below features, in pipeline order."""
    seed = Seed(seed_value)
    context = TacticalMapContext.resolve(seed, **overrides)
    geology = GeologyGenerator(width, height, context, seed).generate()
    topography = TopographyGenerator(geology, context, seed).generate()
    hydrology = HydrologyGenerator(topography, geology, context, seed).generate()
    vegetation = VegetationGenerator(geology, topography, hydrology, context, seed).generate()
    structures = StructureGenerator(vegetation, hydrology, topography, context, seed).generate()
    return geology, topography, hydrology, vegetation, structures, context, seed


class TestFeatureTiles:
    """Test feature grid assembly."""

    def test_landmark_beats_resource(self):
        """Test that landmarks overwrite resources."""
        resources = [Resource(1, 1, FeatureType.BERRIES, 2, 0.5)]
        landmarks = [
            Landmark(1, 1, FeatureType.STANDING_STONES, 0.8, LANDMARK_LORE[FeatureType.STANDING_STONES])
        ]
        tiles = build_feature_tiles(3, 3, [], resources, landmarks)
        tile = tiles[1][1]
        assert tile.feature_type == FeatureType.STANDING_STONES
        assert tile.interaction_type == InteractionType.INVESTIGATE
        assert tile.visibility == VisibilityLevel.OBVIOUS

    def test_hazard_beats_resource(self):
        """Test that resources never replace hazards."""
        hazards = [Hazard(0, 2, FeatureType.QUICKSAND, HazardLevel.SEVERE, 1)]
        resources = [Resource(0, 2, FeatureType.MEDICINAL_HERBS, 4, 0.9)]
        tiles = build_feature_tiles(3, 3, hazards, resources, [])
        tile = tiles[2][0]
        assert tile.feature_type == FeatureType.QUICKSAND
        assert tile.hazard_level == HazardLevel.SEVERE
        assert tile.visibility == VisibilityLevel.HIDDEN
        assert tile.resource_value == 0.0

    def test_landmark_beats_hazard(self):
        """Test that landmarks overwrite hazards."""
        hazards = [Hazard(2, 0, FeatureType.ANIMAL_DEN, HazardLevel.MODERATE, 3)]
        landmarks = [
            Landmark(2, 0, FeatureType.CAVE_ENTRANCE, 0.6, LANDMARK_LORE[FeatureType.CAVE_ENTRANCE])
        ]
        tiles = build_feature_tiles(3, 3, hazards, [], landmarks)
        assert tiles[0][2].feature_type == FeatureType.CAVE_ENTRANCE
        assert tiles[0][2].hazard_level == HazardLevel.NONE

    def test_resource_tile(self):
        """Test resource tile data."""
        resources = [Resource(1, 0, FeatureType.MINERAL_DEPOSIT, 6, 0.63)]
        tile = build_feature_tiles(2, 1, [], resources, [])[0][1]
        assert tile.has_feature
        assert tile.resource_value == pytest.approx(0.63)
        assert tile.interaction_type == InteractionType.HARVEST
        assert tile.description == "Exposed minerals worth 6 gold pieces"

    def test_empty_tiles(self):
        """Test that untouched tiles have no feature."""
        tiles = build_feature_tiles(4, 2, [], [], [])
        assert all(not tile.has_feature for row in tiles for tile in row)

    def test_resource_descriptions(self):
        """Test resource description text."""
        assert resource_description(FeatureType.MEDICINAL_HERBS, 3) == "3 doses of healing herbs grow here"
        assert resource_description(FeatureType.FRESH_WATER, 10) == "A source of clean, fresh water"

    def test_total_feature_count(self):
        """Test that tactical features are not counted."""
        layer = FeaturesLayer(
            tiles=[],
            hazards=[Hazard(0, 0, FeatureType.QUICKSAND, HazardLevel.SEVERE, 1)],
            resources=[Resource(1, 0, FeatureType.BERRIES, 1, 0.2)] * 2,
            landmarks=[],
        )
        assert layer.total_feature_count == 3


class TestFeatureGenerator:
    """Test end-to-end feature generation."""

    def test_missing_structures_raises(self):
        """Test that features require every lower layer."""
        geology, topography, hydrology, vegetation, _, context, seed = build_layers(5, 12, 12)
        with pytest.raises(LayerDependencyError):
            FeatureGenerator(geology, topography, hydrology, vegetation, None, context, seed)

    def test_placements_respect_rules(self):
        """Test placement rules and tile consistency."""
        layers = build_layers(99, biome=Biome.FOREST, development=DevelopmentLevel.RURAL)
        geology, topography, hydrology, vegetation, structures, _, _ = layers
        generator = FeatureGenerator(*layers)
        layer = generator.generate()

        occupied = structures.has_structure
        for hazard in layer.hazards:
            assert not occupied[hazard.y, hazard.x]
        for landmark in layer.landmarks:
            assert layer.feature_at(landmark.x, landmark.y) in {
                lm.feature_type for lm in layer.landmarks if (lm.x, lm.y) == (landmark.x, landmark.y)
            }
            assert landmark.lore == LANDMARK_LORE[landmark.feature_type]

        threshold = topography.max_elevation * generator.options.high_ground_ratio
        for feature in layer.tactical_features:
            if feature.feature_type == FeatureType.HIGH_GROUND:
                assert topography.elevation[feature.y, feature.x] >= threshold
                assert vegetation.is_passable[feature.y, feature.x]

        feature_tiles = sum(tile.has_feature for row in layer.tiles for tile in row)
        assert feature_tiles <= layer.total_feature_count

    def test_required_cave(self):
        """Test that a required cave entrance is always placed."""
        layers = build_layers(
            2024,
            biome=Biome.PLAINS,
            development=DevelopmentLevel.WILDERNESS,
            required_features=RequiredFeatures(has_cave=True),
        )
        layer = FeatureGenerator(*layers).generate()
        caves = [lm for lm in layer.landmarks if lm.feature_type == FeatureType.CAVE_ENTRANCE]
        assert caves
        assert layer.feature_at(caves[-1].x, caves[-1].y) == FeatureType.CAVE_ENTRANCE

    def test_deterministic(self):
        """Test that equal inputs give equal features."""
        layers = build_layers(77, 16, 16)
        a = FeatureGenerator(*layers).generate()
        b = FeatureGenerator(*layers).generate()
        assert a.hazards == b.hazards
        assert a.resources == b.resources
        assert a.landmarks == b.landmarks
        assert a.tactical_features == b.tactical_features
