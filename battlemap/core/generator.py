"""
Map generation orchestrator.

Runs the layer stages in their fixed order:

    geology -> topography -> hydrology -> vegetation -> structures -> features

Settings are validated once, before any stage executes. Stage errors are
not caught here; a failing stage fails the whole run.
"""

import time
from dataclasses import dataclass, field
from typing import List, Optional, Tuple, Union

import structlog
from pydantic import BaseModel, Field

from ..config import settings as app_settings
from ..utils.random import Seed
from .context import (
    Biome,
    DevelopmentLevel,
    ElevationZone,
    HydrologyType,
    RequiredFeatures,
    Season,
    TacticalMapContext,
)
from .errors import InvalidSettingsError
from .features import FeatureGenerator, FeaturesLayer, FeatureType
from .geology import GeologyGenerator, GeologyLayer
from .hydrology import HydrologyGenerator, HydrologyLayer, HydrologyOptions
from .structures import (
    StructureCondition,
    StructureGenerator,
    StructureOptions,
    StructuresLayer,
    StructureType,
)
from .topography import TopographyGenerator, TopographyLayer, TopographyOptions
from .vegetation import VegetationGenerator, VegetationLayer, VegetationOptions

logger = structlog.get_logger()

# Inclusive ranges for the user-facing multipliers
MULTIPLIER_RANGES = {
    "terrain_ruggedness": (0.5, 2.0),
    "elevation_variance": (0.5, 2.0),
    "water_abundance": (0.5, 2.0),
    "vegetation_multiplier": (0.0, 2.0),
}

CLIFF_SLOPE = 45.0


class RequiredFeaturesModel(BaseModel):
    """Features the generated map must contain."""

    has_road: bool = Field(False, description="Guarantee at least one road")
    has_bridge: bool = Field(False, description="Guarantee a road crossing water")
    has_ruins: bool = Field(False, description="Guarantee a ruin")
    has_cave: bool = Field(False, description="Guarantee a cave entrance")
    has_water: bool = Field(False, description="Guarantee standing or flowing water")
    has_cliff: bool = Field(False, description="Request cliffs (reported if absent)")

    def to_required_features(self) -> RequiredFeatures:
        return RequiredFeatures(**self.model_dump())


class GenerationSettings(BaseModel):
    """Settings for one map generation run."""

    width: int = Field(..., description="Map width in tiles")
    height: int = Field(..., description="Map height in tiles")
    cell_size: int = Field(app_settings.default_cell_size, description="Feet per tile")
    seed: Optional[Union[int, str]] = Field(None, description="Integer or string seed")

    biome: Optional[Biome] = Field(None, description="Biome override")
    elevation: Optional[ElevationZone] = Field(None, description="Elevation zone override")
    hydrology: Optional[HydrologyType] = Field(None, description="Hydrology regime override")
    development: Optional[DevelopmentLevel] = Field(None, description="Development level override")
    season: Optional[Season] = Field(None, description="Season override")

    terrain_ruggedness: float = Field(1.0, description="0.5 (gentle) to 2.0 (rugged)")
    elevation_variance: float = Field(1.0, description="0.5 (flat) to 2.0 (dramatic)")
    water_abundance: float = Field(1.0, description="0.5 (dry) to 2.0 (wet)")
    vegetation_multiplier: float = Field(1.0, description="0.0 (barren) to 2.0 (lush)")

    required_features: RequiredFeaturesModel = Field(default_factory=RequiredFeaturesModel)


@dataclass
class MapLayers:
    geology: GeologyLayer
    topography: TopographyLayer
    hydrology: HydrologyLayer
    vegetation: VegetationLayer
    structures: StructuresLayer
    features: FeaturesLayer


@dataclass
class MapStatistics:
    """Summary numbers for a generated map."""

    tile_count: int
    water_coverage: float  # percent
    stream_tiles: int
    spring_count: int
    forest_coverage: float  # percent
    building_count: int
    road_length: int
    feature_count: int
    min_elevation: float
    max_elevation: float
    average_slope: float


@dataclass
class MapGenerationResult:
    """Output of a complete generation run."""

    width: int
    height: int
    seed: int
    context: TacticalMapContext
    layers: MapLayers
    statistics: MapStatistics
    warnings: List[str] = field(default_factory=list)
    generation_time_ms: float = 0.0


class MapGenerator:
    """Runs the full layer pipeline for a set of generation settings."""

    def __init__(self, config=None):
        self.config = config or app_settings

    def validate(self, settings: GenerationSettings) -> Tuple[Seed, TacticalMapContext]:
        """
        Check settings before any stage runs.

        Returns:
            The normalized seed and the resolved tactical context

        Raises:
            InvalidSettingsError: Dimensions, cell size or a multiplier is out of range
            InvalidSeedError: The seed cannot be normalized
            InvalidContextError: Explicit context values contradict each other
        """
        low, high = self.config.min_map_dimension, self.config.max_map_dimension
        for value in (settings.width, settings.height):
            if isinstance(value, bool) or not isinstance(value, int) or not low <= value <= high:
                raise InvalidSettingsError.invalid_dimensions(
                    settings.width, settings.height, low, high
                )

        if not 1 <= settings.cell_size <= self.config.max_cell_size:
            raise InvalidSettingsError.invalid_cell_size(
                settings.cell_size, self.config.max_cell_size
            )

        for name, (minimum, maximum) in MULTIPLIER_RANGES.items():
            value = getattr(settings, name)
            if not minimum <= value <= maximum:
                raise InvalidSettingsError.out_of_range(name, value, minimum, maximum)

        seed_value = settings.seed if settings.seed is not None else self.config.default_seed
        seed = Seed.from_value(seed_value)

        context = TacticalMapContext.resolve(
            seed,
            biome=settings.biome,
            elevation=settings.elevation,
            hydrology=settings.hydrology,
            development=settings.development,
            season=settings.season,
            required_features=settings.required_features.to_required_features(),
        )
        return seed, context

    def _size_warnings(self, width: int, height: int) -> List[str]:
        warnings = []
        if width * height > self.config.large_area_warning_tiles:
            warnings.append(
                f"Large map area ({width}x{height} = {width * height} tiles) "
                "may take a while to generate"
            )
        if max(width, height) / min(width, height) > self.config.extreme_aspect_ratio:
            warnings.append(f"Extreme aspect ratio ({width}x{height}) may look stretched")
        return warnings

    @staticmethod
    def _requirement_warnings(context: TacticalMapContext, layers: MapLayers) -> List[str]:
        required = context.required_features
        warnings = []

        if required.has_cliff and not (layers.topography.slope > CLIFF_SLOPE).any():
            warnings.append(f"Required cliff not present: no slope exceeds {CLIFF_SLOPE:g} degrees")

        if required.has_ruins:
            ruined = any(
                b.condition == StructureCondition.RUINED for b in layers.structures.buildings
            ) or any(d.structure_type == StructureType.RUIN for d in layers.structures.decorations)
            if not ruined:
                warnings.append("Required ruins could not be placed")

        if required.has_cave and not any(
            landmark.feature_type == FeatureType.CAVE_ENTRANCE
            for landmark in layers.features.landmarks
        ):
            warnings.append("Required cave could not be placed")

        if context.hydrology in (HydrologyType.RIVER, HydrologyType.STREAM) and not layers.hydrology.is_stream.any():
            warnings.append(
                f"No streams formed under {context.hydrology.value} hydrology; terrain may be too flat"
            )
        return warnings

    @staticmethod
    def calculate_statistics(layers: MapLayers) -> MapStatistics:
        topography = layers.topography
        return MapStatistics(
            tile_count=int(topography.elevation.size),
            water_coverage=layers.hydrology.total_water_coverage,
            stream_tiles=int(layers.hydrology.is_stream.sum()),
            spring_count=len(layers.hydrology.springs),
            forest_coverage=float(layers.vegetation.tree_mask.mean() * 100),
            building_count=len(layers.structures.buildings),
            road_length=layers.structures.roads.total_length,
            feature_count=layers.features.total_feature_count,
            min_elevation=topography.min_elevation,
            max_elevation=topography.max_elevation,
            average_slope=topography.average_slope,
        )

    def generate(self, settings: GenerationSettings) -> MapGenerationResult:
        """
        Generate a complete map.

        Args:
            settings: Generation settings

        Returns:
            MapGenerationResult with every layer, statistics and warnings
        """
        start = time.perf_counter()
        seed, context = self.validate(settings)
        width, height = settings.width, settings.height

        logger.info(
            "Starting map generation",
            width=width,
            height=height,
            seed=seed.value,
            context=context.description(),
        )
        warnings = self._size_warnings(width, height)

        geology = GeologyGenerator(width, height, context, seed).generate()
        topography = TopographyGenerator(
            geology,
            context,
            seed,
            TopographyOptions(
                terrain_ruggedness=settings.terrain_ruggedness,
                elevation_variance=settings.elevation_variance,
                cell_size=settings.cell_size,
            ),
        ).generate()
        hydrology = HydrologyGenerator(
            topography,
            geology,
            context,
            seed,
            HydrologyOptions(water_abundance=settings.water_abundance),
        ).generate()

        vegetation_stage = VegetationGenerator(
            geology,
            topography,
            hydrology,
            context,
            seed,
            VegetationOptions(density=settings.vegetation_multiplier),
        )
        vegetation = vegetation_stage.generate()

        structure_stage = StructureGenerator(
            vegetation,
            hydrology,
            topography,
            context,
            seed,
            StructureOptions(cell_size=settings.cell_size),
        )
        structures = structure_stage.generate()

        feature_stage = FeatureGenerator(
            geology, topography, hydrology, vegetation, structures, context, seed
        )
        features = feature_stage.generate()

        layers = MapLayers(geology, topography, hydrology, vegetation, structures, features)
        warnings.extend(vegetation_stage.warnings)
        warnings.extend(structure_stage.warnings)
        warnings.extend(feature_stage.warnings)
        warnings.extend(self._requirement_warnings(context, layers))
        for warning in warnings:
            logger.warning("Map generation warning", warning=warning)

        statistics = self.calculate_statistics(layers)
        elapsed_ms = (time.perf_counter() - start) * 1000

        logger.info(
            "Map generation complete",
            seed=seed.value,
            generation_time_ms=round(elapsed_ms, 1),
            warnings=len(warnings),
            water_coverage=round(statistics.water_coverage, 2),
            forest_coverage=round(statistics.forest_coverage, 2),
        )

        return MapGenerationResult(
            width=width,
            height=height,
            seed=seed.value,
            context=context,
            layers=layers,
            statistics=statistics,
            warnings=warnings,
            generation_time_ms=elapsed_ms,
        )
