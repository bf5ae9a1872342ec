"""Tests for the map generation pipeline."""

import json

import pytest

from battlemap.config.config import Settings
from battlemap.core.context import Biome, DevelopmentLevel, HydrologyType
from battlemap.core.errors import InvalidContextError, InvalidSeedError, InvalidSettingsError
from battlemap.core.generator import CLIFF_SLOPE, GenerationSettings, MapGenerator
from battlemap.core.geology import GeologyGenerator
from battlemap.core.serialization import grids_equal, serialize_map


class TestSettingsValidation:
    """Test that invalid settings are rejected before generation."""

    @pytest.fixture
    def generator(self, monkeypatch):
        def fail(self):
            raise AssertionError("geology stage ran before validation finished")

        monkeypatch.setattr(GeologyGenerator, "generate", fail)
        return MapGenerator()

    @pytest.mark.parametrize("width,height", [(5, 20), (20, 9), (201, 20), (20, 500), (0, 0)])
    def test_invalid_dimensions(self, generator, width, height):
        """Test dimension bounds."""
        with pytest.raises(InvalidSettingsError) as exc_info:
            generator.generate(GenerationSettings(width=width, height=height, seed=1))
        assert exc_info.value.code == "MAP_INVALID_DIMENSIONS"
        assert exc_info.value.suggestions

    @pytest.mark.parametrize(
        "field,value",
        [
            ("terrain_ruggedness", 0.4),
            ("terrain_ruggedness", 2.1),
            ("elevation_variance", 3.0),
            ("water_abundance", 0.0),
            ("vegetation_multiplier", -0.1),
            ("vegetation_multiplier", 2.5),
        ],
    )
    def test_invalid_multipliers(self, generator, field, value):
        """Test multiplier ranges."""
        settings = GenerationSettings(width=20, height=20, seed=1, **{field: value})
        with pytest.raises(InvalidSettingsError) as exc_info:
            generator.generate(settings)
        assert exc_info.value.code == "SETTINGS_OUT_OF_RANGE"
        assert exc_info.value.metadata["field"] == field

    def test_invalid_cell_size(self, generator):
        """Test the cell size bound."""
        with pytest.raises(InvalidSettingsError) as exc_info:
            generator.generate(GenerationSettings(width=20, height=20, seed=1, cell_size=0))
        assert exc_info.value.code == "MAP_INVALID_CELL_SIZE"

    @pytest.mark.parametrize("seed", [0, -5, 2147483648, "", "   "])
    def test_invalid_seed(self, generator, seed):
        """Test seed validation."""
        with pytest.raises(InvalidSeedError):
            generator.generate(GenerationSettings(width=20, height=20, seed=seed))

    def test_conflicting_context(self, generator):
        """Test that explicit contradictions are rejected."""
        settings = GenerationSettings(
            width=20, height=20, seed=1, biome=Biome.DESERT, hydrology=HydrologyType.LAKE
        )
        with pytest.raises(InvalidContextError):
            generator.generate(settings)

    def test_validate_resolves_context(self):
        """Test the normalized seed and context from validation."""
        seed, context = MapGenerator().validate(GenerationSettings(width=20, height=20, seed="test"))
        assert seed.value == 3556499
        assert context.biome in Biome

    def test_default_seed(self):
        """Test that a missing seed uses the configured default."""
        seed, _ = MapGenerator(config=Settings(default_seed=777)).validate(
            GenerationSettings(width=20, height=20)
        )
        assert seed.value == 777


class TestMapGeneration:
    """Test complete generation runs."""

    @pytest.fixture
    def generator(self):
        return MapGenerator()

    @pytest.fixture
    def result(self, generator):
        return generator.generate(GenerationSettings(width=20, height=16, seed=12345))

    def test_layer_shapes(self, result):
        """Test that every layer covers the map."""
        shape = (16, 20)
        layers = result.layers
        assert layers.geology.shape == shape
        assert layers.topography.shape == shape
        assert layers.hydrology.shape == shape
        assert layers.vegetation.shape == shape
        assert layers.structures.shape == shape
        assert len(layers.features.tiles) == 16
        assert len(layers.features.tiles[0]) == 20

    def test_deterministic(self, generator, result):
        """Test that the same settings give identical maps."""
        again = generator.generate(GenerationSettings(width=20, height=16, seed=12345))
        assert grids_equal(result, again)

    def test_string_seed_deterministic(self, generator):
        """Test that string seeds are stable."""
        a = generator.generate(GenerationSettings(width=12, height=12, seed="forest glade"))
        b = generator.generate(GenerationSettings(width=12, height=12, seed="forest glade"))
        assert a.seed == b.seed
        assert grids_equal(a, b)

    def test_different_seeds_differ(self, generator, result):
        """Test that another seed changes the map."""
        other = generator.generate(GenerationSettings(width=20, height=16, seed=54321))
        assert not grids_equal(result, other)

    def test_seed_derived_context(self, result):
        """Test that the context comes from the seed."""
        assert result.seed == 12345
        assert result.context.biome == Biome.DESERT
        assert result.context.development == DevelopmentLevel.WILDERNESS

    def test_statistics(self, result):
        """Test summary statistics against the layers."""
        stats = result.statistics
        layers = result.layers
        assert stats.tile_count == 320
        assert stats.building_count == len(layers.structures.buildings)
        assert stats.stream_tiles == int(layers.hydrology.is_stream.sum())
        assert stats.feature_count == layers.features.total_feature_count
        assert 0 <= stats.water_coverage <= 100
        assert 0 <= stats.forest_coverage <= 100
        assert stats.min_elevation <= stats.max_elevation
        assert result.generation_time_ms > 0

    def test_barren_map(self, generator):
        """Test that vegetation 0 grows nothing and raises no warning."""
        result = generator.generate(
            GenerationSettings(width=15, height=15, seed=99, biome=Biome.FOREST, vegetation_multiplier=0.0)
        )
        assert result.layers.vegetation.total_plant_count == 0
        assert "No trees were generated" not in result.warnings

    def test_serializes_to_json(self, result):
        """Test that the export is JSON-safe."""
        data = serialize_map(result, include_plants=True)
        text = json.dumps(data)
        assert '"layers"' in text
        assert set(data["layers"]) == {
            "geology",
            "topography",
            "hydrology",
            "vegetation",
            "structures",
            "features",
        }
        assert "plants" in data["layers"]["vegetation"]
        assert "plants" not in serialize_map(result)["layers"]["vegetation"]
        assert data["context"]["biome"] == "desert"
        assert data["layers"]["hydrology"]["moisture"][0][0] in {
            "arid",
            "dry",
            "moderate",
            "moist",
            "wet",
            "saturated",
        }


class TestWarnings:
    """Test generation warnings."""

    def test_large_area_warning(self):
        """Test the large map warning."""
        generator = MapGenerator(config=Settings(large_area_warning_tiles=50))
        result = generator.generate(GenerationSettings(width=10, height=10, seed=3))
        assert any("Large map area" in warning for warning in result.warnings)

    def test_aspect_ratio_warning(self):
        """Test the stretched map warning."""
        generator = MapGenerator(config=Settings(extreme_aspect_ratio=1.5))
        result = generator.generate(GenerationSettings(width=30, height=10, seed=3))
        assert any("aspect ratio" in warning for warning in result.warnings)

    def test_no_size_warnings_by_default(self):
        """Test that ordinary maps are not flagged."""
        result = MapGenerator().generate(GenerationSettings(width=20, height=20, seed=3))
        assert not any("Large map area" in warning for warning in result.warnings)
        assert not any("aspect ratio" in warning for warning in result.warnings)

    def test_cliff_requirement(self):
        """Test that a missing cliff is reported and a present one is not."""
        settings = GenerationSettings(
            width=16,
            height=16,
            seed=5,
            biome=Biome.PLAINS,
            required_features={"has_cliff": True},
        )
        result = MapGenerator().generate(settings)
        has_cliff = bool((result.layers.topography.slope > CLIFF_SLOPE).any())
        reported = any("cliff" in warning for warning in result.warnings)
        assert reported != has_cliff

    def test_required_features_enforced(self):
        """Test road, ruins and cave guarantees."""
        settings = GenerationSettings(
            width=20,
            height=20,
            seed=8,
            development=DevelopmentLevel.WILDERNESS,
            required_features={"has_road": True, "has_ruins": True, "has_cave": True},
        )
        result = MapGenerator().generate(settings)
        layers = result.layers
        assert layers.structures.roads.segments
        assert any(d.structure_type.value == "ruin" for d in layers.structures.decorations)
        assert any(lm.feature_type.value == "cave_entrance" for lm in layers.features.landmarks)
        assert not any("could not be placed" in w and "bridge" not in w for w in result.warnings)
