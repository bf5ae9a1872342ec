"""Tests for vegetation module."""

import numpy as np
import pytest

from battlemap.core.context import Biome, HydrologyType, TacticalMapContext
from battlemap.core.errors import LayerDependencyError
from battlemap.core.geology import GeologyGenerator
from battlemap.core.hydrology import HydrologyGenerator, MoistureLevel
from battlemap.core.topography import TopographyGenerator
from battlemap.core.vegetation import (
    ForestType,
    Plant,
    PlantCategory,
    PlantSize,
    PlantSpecies,
    VegetationGenerator,
    VegetationOptions,
    VegetationType,
    calculate_tactical_properties,
    create_tile_data,
    dominant_species,
    extract_forest_patches,
    find_clearings,
    select_plant_size,
    select_tree_species,
)
from battlemap.utils.random import Seed

T = VegetationType.DENSE_TREES
S = VegetationType.SPARSE_TREES
N = VegetationType.NONE


def tree(species=PlantSpecies.OAK, size=PlantSize.MEDIUM):
    return Plant(species, PlantCategory.TREE, size)


class TestPlantSelection:
    """Test species and size selection."""

    def test_plant_height(self):
        """Test height from category and size."""
        assert tree(size=PlantSize.LARGE).height == 30.0
        assert Plant(PlantSpecies.MOSS, PlantCategory.GROUND_COVER, PlantSize.TINY).height == pytest.approx(0.15)

    def test_swamp_trees_are_willows(self):
        """Test that swamps only grow willows."""
        for value in range(0, 200, 13):
            assert select_tree_species(Biome.SWAMP, MoistureLevel.WET, value) == PlantSpecies.WILLOW

    def test_mountain_trees(self):
        """Test pine/oak split in the mountains."""
        assert select_tree_species(Biome.MOUNTAIN, MoistureLevel.MODERATE, 10) == PlantSpecies.PINE
        assert select_tree_species(Biome.MOUNTAIN, MoistureLevel.MODERATE, 85) == PlantSpecies.OAK

    def test_plant_size_thresholds(self):
        """Test size buckets from the scaled roll."""
        assert select_plant_size(1.0, 95) == PlantSize.HUGE
        assert select_plant_size(1.0, 50) == PlantSize.MEDIUM
        assert select_plant_size(0.0, 99) == PlantSize.TINY


class TestTileData:
    """Test per-tile tactical classification."""

    def test_dominant_species_tie_breaks_by_declaration_order(self):
        """Test that ties go to the earlier species."""
        assert dominant_species([tree(PlantSpecies.PINE), tree(PlantSpecies.OAK)]) == PlantSpecies.OAK
        assert dominant_species(
            [tree(PlantSpecies.PINE), tree(PlantSpecies.PINE), tree(PlantSpecies.OAK)]
        ) == PlantSpecies.PINE
        assert dominant_species([]) is None

    def test_tactical_flags(self):
        """Test passability, concealment and cover."""
        plants = [[
            [tree(size=PlantSize.LARGE), tree(size=PlantSize.LARGE)],
            [tree(size=PlantSize.SMALL)],
            [],
        ]]
        moisture = np.zeros((1, 3), dtype=np.int8)
        water_depth = np.array([[0.0, 0.0, 3.0]])

        tactical = calculate_tactical_properties(plants, moisture)
        assert tactical.vegetation_type == [[T, S, N]]
        assert tactical.canopy_density.tolist() == [[0.8, 0.4, 0.0]]

        layer = create_tile_data(plants, tactical, water_depth)
        assert layer.is_passable.tolist() == [[False, True, False]]
        assert layer.provides_cover.tolist() == [[True, False, False]]
        assert layer.provides_concealment.tolist() == [[True, True, False]]
        assert layer.dominant_species == [[PlantSpecies.OAK, PlantSpecies.OAK, None]]

    def test_wet_shrubs_are_undergrowth(self):
        """Test shrub classification by moisture."""
        shrub = Plant(PlantSpecies.ELDERBERRY, PlantCategory.SHRUB, PlantSize.MEDIUM)
        moisture = np.array([[MoistureLevel.WET, MoistureLevel.DRY]], dtype=np.int8)
        tactical = calculate_tactical_properties([[[shrub], [shrub]]], moisture)
        assert tactical.vegetation_type == [[VegetationType.UNDERGROWTH, VegetationType.SHRUBS]]


class TestForestPatches:
    """Test forest patch extraction."""

    def test_small_patches_dropped(self):
        """Test that patches below three tiles are not reported."""
        vegetation = [
            [T, T, N, N, N],
            [N, N, N, N, N],
            [N, N, S, T, N],
            [N, N, N, S, N],
        ]
        patches = extract_forest_patches(vegetation)
        assert len(patches) == 1
        assert sorted(patches[0].tiles) == [(2, 2), (3, 2), (3, 3)]
        assert patches[0].size == 3

    def test_diagonal_connectivity(self):
        """Test that diagonal neighbors join a patch."""
        vegetation = [
            [T, N, N],
            [N, T, N],
            [N, N, T],
        ]
        patches = extract_forest_patches(vegetation)
        assert len(patches) == 1
        assert patches[0].size == 3

    def test_forest_type_composition(self):
        """Test coniferous, deciduous and mixed classification."""
        vegetation = [[T, T, T]]
        pines = [[[tree(PlantSpecies.PINE)] for _ in range(3)]]
        oaks = [[[tree(PlantSpecies.OAK)] for _ in range(3)]]
        mixed = [[[tree(PlantSpecies.PINE)], [tree(PlantSpecies.OAK)], [tree(PlantSpecies.PINE)]]]
        assert extract_forest_patches(vegetation, pines)[0].forest_type == ForestType.CONIFEROUS
        assert extract_forest_patches(vegetation, oaks)[0].forest_type == ForestType.DECIDUOUS
        assert extract_forest_patches(vegetation, mixed)[0].forest_type == ForestType.MIXED

    def test_patch_density(self):
        """Test mean canopy density per patch."""
        density = np.array([[0.4, 0.8, 0.6]])
        patches = extract_forest_patches([[T, T, T]], canopy_density=density)
        assert patches[0].density == pytest.approx(0.6)


class TestClearings:
    """Test clearing detection."""

    def test_clearing_in_forest(self):
        """Test that a hole in a forest is found."""
        trees = np.ones((15, 15), dtype=bool)
        for y in range(15):
            for x in range(15):
                if (x - 7) ** 2 + (y - 7) ** 2 <= 9:
                    trees[y, x] = False

        clearings = find_clearings(trees)
        assert clearings
        assert any(clearing.contains(7, 7) for clearing in clearings)
        assert all(clearing.radius >= 2 for clearing in clearings)

    def test_no_clearings_without_trees(self):
        """Test that open ground is not a clearing."""
        assert find_clearings(np.zeros((12, 12), dtype=bool)) == []


class TestVegetationGenerator:
    """Test end-to-end vegetation generation."""

    @pytest.fixture
    def layers(self):
        seed = Seed(31337)
        context = TacticalMapContext.resolve(
            seed, biome=Biome.FOREST, hydrology=HydrologyType.STREAM
        )
        geology = GeologyGenerator(24, 24, context, seed).generate()
        topography = TopographyGenerator(geology, context, seed).generate()
        hydrology = HydrologyGenerator(topography, geology, context, seed).generate()
        return geology, topography, hydrology, context, seed

    def test_missing_hydrology_raises(self, layers):
        """Test that vegetation requires hydrology."""
        geology, topography, _, context, seed = layers
        with pytest.raises(LayerDependencyError):
            VegetationGenerator(geology, topography, None, context, seed)

    def test_layer_invariants(self, layers):
        """Test canopy ranges and tile flag consistency."""
        layer = VegetationGenerator(*layers).generate()
        assert layer.shape == (24, 24)
        assert np.all((layer.canopy_density >= 0) & (layer.canopy_density <= 1))
        for y in range(24):
            for x in range(24):
                tile = layer.tile(x, y)
                if tile.vegetation_type == VegetationType.DENSE_TREES:
                    assert not tile.is_passable
                    assert tile.provides_cover
                assert (tile.dominant_species is None) == (not tile.plants)
        for patch in layer.forest_patches:
            assert patch.size >= 3

    def test_zero_density_is_barren(self, layers):
        """Test that density 0 places no plants."""
        generator = VegetationGenerator(*layers, options=VegetationOptions(density=0.0))
        layer = generator.generate()
        assert layer.total_plant_count == 0
        assert layer.forest_patches == []
        assert generator.warnings == []

    def test_deterministic(self, layers):
        """Test that equal inputs give equal plants."""
        a = VegetationGenerator(*layers).generate()
        b = VegetationGenerator(*layers).generate()
        assert a.plants == b.plants
        np.testing.assert_array_equal(a.canopy_height, b.canopy_height)
