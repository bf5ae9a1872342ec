"""
Core map generation functionality.
"""

from .context import (Biome, DevelopmentLevel, ElevationZone, HydrologyType, RequiredFeatures,
                      Season, TacticalMapContext)
from .errors import (InvalidContextError, InvalidSeedError, InvalidSettingsError,
                     LayerDependencyError, MapGenerationError)
from .noise import NoiseGenerator
from .geology import GeologyGenerator, GeologyLayer
from .topography import TopographyGenerator, TopographyLayer, TopographyOptions
from .hydrology import HydrologyGenerator, HydrologyLayer, HydrologyOptions, MoistureLevel
from .vegetation import (VegetationGenerator, VegetationLayer, VegetationOptions, VegetationType,
                         create_tile_data, extract_forest_patches)
from .structures import StructureGenerator, StructureOptions, StructuresLayer
from .features import FeatureGenerator, FeaturesLayer, FeatureType, build_feature_tiles
from .generator import GenerationSettings, MapGenerationResult, MapGenerator, RequiredFeaturesModel
from .serialization import grids_equal, serialize_map

__all__ = ['Biome', 'DevelopmentLevel', 'ElevationZone', 'HydrologyType', 'RequiredFeatures',
           'Season', 'TacticalMapContext',
           'InvalidContextError', 'InvalidSeedError', 'InvalidSettingsError',
           'LayerDependencyError', 'MapGenerationError',
           'NoiseGenerator', 'GeologyGenerator', 'GeologyLayer',
           'TopographyGenerator', 'TopographyLayer', 'TopographyOptions',
           'HydrologyGenerator', 'HydrologyLayer', 'HydrologyOptions', 'MoistureLevel',
           'VegetationGenerator', 'VegetationLayer', 'VegetationOptions', 'VegetationType',
           'create_tile_data', 'extract_forest_patches',
           'StructureGenerator', 'StructureOptions', 'StructuresLayer',
           'FeatureGenerator', 'FeaturesLayer', 'FeatureType', 'build_feature_tiles',
           'GenerationSettings', 'MapGenerationResult', 'MapGenerator', 'RequiredFeaturesModel',
           'grids_equal', 'serialize_map']
