"""
Features layer generation.

This module implements:
- Hazard placement (quicksand, unstable ground, poison plants, animal dens)
- Resource placement (herbs, berries, fresh water, minerals)
- Landmark placement with lore
- Tactical feature identification (high ground, choke points, ambush and vantage points)
- Feature tile assembly with landmark > hazard > resource priority
"""

import math
from dataclasses import dataclass, field
from enum import Enum
from typing import List, Optional, Tuple

import numpy as np
import structlog

from ..config.formations import TerrainFeature
from ..utils.random import Seed
from .context import TacticalMapContext
from .errors import LayerDependencyError, require_shape
from .geology import GeologyLayer
from .hydrology import HydrologyLayer, MoistureLevel
from .noise import (
    HAZARD_STREAM,
    LANDMARK_STREAM,
    RESOURCE_STREAM,
    TACTICAL_FEATURE_STREAM,
    NoiseGenerator,
)
from .structures import BuildingType, StructureCondition, StructuresLayer
from .topography import TopographyLayer
from .vegetation import VegetationLayer, VegetationType

logger = structlog.get_logger()

Position = Tuple[int, int]


class FeatureType(str, Enum):
    # Hazards
    QUICKSAND = "quicksand"
    UNSTABLE_GROUND = "unstable_ground"
    POISON_PLANTS = "poison_plants"
    ANIMAL_DEN = "animal_den"
    # Resources
    MEDICINAL_HERBS = "medicinal_herbs"
    BERRIES = "berries"
    FRESH_WATER = "fresh_water"
    MINERAL_DEPOSIT = "mineral_deposit"
    # Landmarks
    ANCIENT_TREE = "ancient_tree"
    STANDING_STONES = "standing_stones"
    CAVE_ENTRANCE = "cave_entrance"
    BATTLEFIELD_REMAINS = "battlefield_remains"
    # Tactical
    HIGH_GROUND = "high_ground"
    CHOKE_POINT = "choke_point"
    AMBUSH_SITE = "ambush_site"
    VANTAGE_POINT = "vantage_point"


class HazardLevel(str, Enum):
    NONE = "none"
    MINOR = "minor"
    MODERATE = "moderate"
    SEVERE = "severe"


class VisibilityLevel(str, Enum):
    OBVIOUS = "obvious"
    NOTICEABLE = "noticeable"
    HIDDEN = "hidden"


class InteractionType(str, Enum):
    AVOID = "avoid"
    HARVEST = "harvest"
    INVESTIGATE = "investigate"


HAZARD_DESCRIPTIONS = {
    FeatureType.QUICKSAND: "Treacherous quicksand that can trap the unwary",
    FeatureType.UNSTABLE_GROUND: "Loose rocks and debris make footing treacherous",
    FeatureType.POISON_PLANTS: "Toxic vegetation that causes harm on contact",
    FeatureType.ANIMAL_DEN: "Signs of dangerous wildlife nearby",
}

LANDMARK_LORE = {
    FeatureType.ANCIENT_TREE: "An ancient tree, centuries old, its gnarled roots tell stories of ages past",
    FeatureType.STANDING_STONES: "Weathered stones arranged in an ancient pattern, their purpose lost to time",
    FeatureType.CAVE_ENTRANCE: "A dark opening in the rock face beckons the brave or foolish",
    FeatureType.BATTLEFIELD_REMAINS: "Rusted weapons and broken shields tell of a forgotten battle",
}


def resource_description(feature_type: FeatureType, quantity: int) -> str:
    if feature_type == FeatureType.MEDICINAL_HERBS:
        return f"{quantity} doses of healing herbs grow here"
    if feature_type == FeatureType.BERRIES:
        return f"A bush heavy with {quantity} servings of berries"
    if feature_type == FeatureType.FRESH_WATER:
        return "A source of clean, fresh water"
    if feature_type == FeatureType.MINERAL_DEPOSIT:
        return f"Exposed minerals worth {quantity} gold pieces"
    return "A valuable resource"


@dataclass
class FeatureOptions:
    """Feature placement options."""

    ancient_tree_min_canopy: float = 30.0  # feet
    high_ground_ratio: float = 0.8  # fraction of the map's maximum elevation
    ambush_distance: int = 2  # tiles from a road


@dataclass
class Hazard:
    x: int
    y: int
    feature_type: FeatureType
    level: HazardLevel
    radius: int


@dataclass
class Resource:
    x: int
    y: int
    feature_type: FeatureType
    quantity: int
    quality: float


@dataclass
class Landmark:
    x: int
    y: int
    feature_type: FeatureType
    significance: float
    lore: str


@dataclass
class TacticalFeature:
    x: int
    y: int
    feature_type: FeatureType
    control_radius: int


@dataclass
class FeatureTile:
    """At most one feature per tile."""

    has_feature: bool = False
    feature_type: Optional[FeatureType] = None
    hazard_level: HazardLevel = HazardLevel.NONE
    resource_value: float = 0.0
    visibility: VisibilityLevel = VisibilityLevel.OBVIOUS
    interaction_type: Optional[InteractionType] = None
    description: Optional[str] = None


@dataclass
class FeaturesLayer:
    """Complete features layer for a map."""

    tiles: List[List[FeatureTile]]
    hazards: List[Hazard] = field(default_factory=list)
    resources: List[Resource] = field(default_factory=list)
    landmarks: List[Landmark] = field(default_factory=list)
    tactical_features: List[TacticalFeature] = field(default_factory=list)

    @property
    def total_feature_count(self) -> int:
        return len(self.hazards) + len(self.resources) + len(self.landmarks)

    def feature_at(self, x: int, y: int) -> Optional[FeatureType]:
        return self.tiles[y][x].feature_type


def build_feature_tiles(
    width: int,
    height: int,
    hazards: List[Hazard],
    resources: List[Resource],
    landmarks: List[Landmark],
) -> List[List[FeatureTile]]:
    """
    Assemble the feature grid by sequential overwrite.

    Hazards are written first, resources only onto empty tiles, and
    landmarks always, so a landmark is never lost.
    """
    tiles = [[FeatureTile() for _ in range(width)] for _ in range(height)]

    for hazard in hazards:
        tiles[hazard.y][hazard.x] = FeatureTile(
            has_feature=True,
            feature_type=hazard.feature_type,
            hazard_level=hazard.level,
            visibility=(
                VisibilityLevel.HIDDEN
                if hazard.feature_type == FeatureType.QUICKSAND
                else VisibilityLevel.NOTICEABLE
            ),
            interaction_type=InteractionType.AVOID,
            description=HAZARD_DESCRIPTIONS.get(hazard.feature_type, "A potential hazard"),
        )

    for resource in resources:
        if tiles[resource.y][resource.x].has_feature:
            continue
        tiles[resource.y][resource.x] = FeatureTile(
            has_feature=True,
            feature_type=resource.feature_type,
            resource_value=resource.quality,
            visibility=(
                VisibilityLevel.HIDDEN
                if resource.feature_type == FeatureType.MEDICINAL_HERBS
                else VisibilityLevel.NOTICEABLE
            ),
            interaction_type=InteractionType.HARVEST,
            description=resource_description(resource.feature_type, resource.quantity),
        )

    for landmark in landmarks:
        tiles[landmark.y][landmark.x] = FeatureTile(
            has_feature=True,
            feature_type=landmark.feature_type,
            visibility=VisibilityLevel.OBVIOUS,
            interaction_type=InteractionType.INVESTIGATE,
            description=landmark.lore,
        )

    return tiles


class FeatureGenerator:
    """Places hazards, resources, landmarks and tactical features."""

    def __init__(
        self,
        geology: GeologyLayer,
        topography: TopographyLayer,
        hydrology: HydrologyLayer,
        vegetation: VegetationLayer,
        structures: StructuresLayer,
        context: TacticalMapContext,
        seed: Seed,
        options: Optional[FeatureOptions] = None,
    ):
        for name, layer in (
            ("geology", geology),
            ("topography", topography),
            ("hydrology", hydrology),
            ("vegetation", vegetation),
            ("structures", structures),
        ):
            if layer is None:
                raise LayerDependencyError.missing("features", name)
        shape = geology.shape
        require_shape("features", "topography", topography.elevation, shape)
        require_shape("features", "hydrology", hydrology.water_depth, shape)
        require_shape("features", "vegetation", vegetation.canopy_height, shape)
        require_shape("features", "structures", structures.has_structure, shape)

        self.geology = geology
        self.topography = topography
        self.hydrology = hydrology
        self.vegetation = vegetation
        self.structures = structures
        self.context = context
        self.seed = seed
        self.options = options or FeatureOptions()
        self.height, self.width = shape
        self.warnings: List[str] = []

    def place_hazards(self) -> List[Hazard]:
        noise = NoiseGenerator.for_stream(self.seed, HAZARD_STREAM)
        occupied = self.structures.has_structure
        hazards = []

        for y in range(self.height):
            for x in range(self.width):
                if occupied[y, x]:
                    continue
                roll = noise.at(x * 0.15, y * 0.15)
                slope = self.topography.slope[y, x]
                vegetation = self.vegetation.vegetation_type[y][x]

                if (
                    self.hydrology.moisture[y, x] == MoistureLevel.SATURATED
                    and slope < 5
                    and roll > 0.9
                ):
                    hazards.append(Hazard(x, y, FeatureType.QUICKSAND, HazardLevel.SEVERE, 1))
                if slope > 50 and self.geology.has_feature(x, y, TerrainFeature.TALUS) and roll > 0.85:
                    hazards.append(
                        Hazard(x, y, FeatureType.UNSTABLE_GROUND, HazardLevel.MODERATE, 2)
                    )
                if vegetation == VegetationType.DENSE_TREES and roll > 0.95:
                    hazards.append(Hazard(x, y, FeatureType.POISON_PLANTS, HazardLevel.MINOR, 1))
                if (
                    self.geology.has_feature(x, y, TerrainFeature.CAVE)
                    and vegetation != VegetationType.NONE
                    and roll > 0.8
                ):
                    hazards.append(Hazard(x, y, FeatureType.ANIMAL_DEN, HazardLevel.MODERATE, 3))

        return hazards

    def place_resources(self) -> List[Resource]:
        noise = NoiseGenerator.for_stream(self.seed, RESOURCE_STREAM)
        resources = []

        for y in range(self.height):
            for x in range(self.width):
                roll = noise.at(x * 0.2, y * 0.2)

                if roll > 0.8 and self.vegetation.in_clearing(x, y):
                    resources.append(
                        Resource(x, y, FeatureType.MEDICINAL_HERBS, math.ceil(roll * 5), roll)
                    )
                if self.vegetation.vegetation_type[y][x] == VegetationType.SPARSE_TREES and roll > 0.85:
                    resources.append(
                        Resource(x, y, FeatureType.BERRIES, math.ceil(roll * 3), roll * 0.8)
                    )
                if self.hydrology.is_spring[y, x] and roll > 0.5:
                    resources.append(Resource(x, y, FeatureType.FRESH_WATER, 10, 1.0))
                if (
                    self.geology.soil_depth[y, x] < 0.5
                    and self.geology.features[y][x]
                    and roll > 0.9
                ):
                    resources.append(
                        Resource(x, y, FeatureType.MINERAL_DEPOSIT, math.ceil(roll * 7), roll * 0.7)
                    )

        return resources

    def _landmark(self, x: int, y: int, feature_type: FeatureType, significance: float) -> Landmark:
        return Landmark(x, y, feature_type, significance, LANDMARK_LORE[feature_type])

    def place_landmarks(self) -> List[Landmark]:
        noise = NoiseGenerator.for_stream(self.seed, LANDMARK_STREAM)
        landmarks = []

        for y in range(2, self.height - 2):
            for x in range(2, self.width - 2):
                if (
                    self.vegetation.vegetation_type[y][x] == VegetationType.DENSE_TREES
                    and self.vegetation.canopy_height[y, x] > self.options.ancient_tree_min_canopy
                    and noise.at(x * 0.1, y * 0.1) > 0.95
                ):
                    landmarks.append(self._landmark(x, y, FeatureType.ANCIENT_TREE, 0.7))

        for y, x in zip(*np.nonzero(self.topography.is_ridge)):
            x, y = int(x), int(y)
            if noise.at(x * 0.15, y * 0.15) > 0.9:
                landmarks.append(self._landmark(x, y, FeatureType.STANDING_STONES, 0.8))

        for y in range(self.height):
            for x in range(self.width):
                if self.geology.has_feature(x, y, TerrainFeature.CAVE) and noise.at(x * 0.2, y * 0.2) > 0.85:
                    landmarks.append(self._landmark(x, y, FeatureType.CAVE_ENTRANCE, 0.6))

        for building in self.structures.buildings:
            if (
                building.condition == StructureCondition.RUINED
                and noise.at(building.x * 0.1, building.y * 0.1) > 0.7
            ):
                landmarks.append(
                    self._landmark(building.x, building.y, FeatureType.BATTLEFIELD_REMAINS, 0.5)
                )

        if self.context.required_features.has_cave and not any(
            landmark.feature_type == FeatureType.CAVE_ENTRANCE for landmark in landmarks
        ):
            x, y = self._required_cave_position()
            landmarks.append(self._landmark(x, y, FeatureType.CAVE_ENTRANCE, 0.6))
            logger.debug("Added required cave entrance", x=x, y=y)

        return landmarks

    def _required_cave_position(self) -> Position:
        """First cave-feature tile in raster order, else the steepest tile."""
        for y in range(self.height):
            for x in range(self.width):
                if self.geology.has_feature(x, y, TerrainFeature.CAVE):
                    return x, y
        self.warnings.append("Required cave placed on the steepest slope: no cave formation")
        y, x = np.unravel_index(int(np.argmax(self.topography.slope)), self.topography.shape)
        return int(x), int(y)

    def identify_tactical_features(self) -> List[TacticalFeature]:
        noise = NoiseGenerator.for_stream(self.seed, TACTICAL_FEATURE_STREAM)
        passable = self.vegetation.is_passable
        features = []

        threshold = self.topography.max_elevation * self.options.high_ground_ratio
        for y, x in zip(*np.nonzero(self.topography.elevation >= threshold)):
            x, y = int(x), int(y)
            if passable[y, x] and noise.at(x * 0.1, y * 0.1) > 0.7:
                features.append(TacticalFeature(x, y, FeatureType.HIGH_GROUND, 5))

        for y in range(1, self.height - 1):
            for x in range(1, self.width - 1):
                if not (self.topography.is_valley[y, x] and passable[y, x]):
                    continue
                blocked = sum(
                    not passable[ny, nx]
                    for nx, ny in ((x, y - 1), (x, y + 1), (x - 1, y), (x + 1, y))
                )
                if blocked >= 2:
                    features.append(TacticalFeature(x, y, FeatureType.CHOKE_POINT, 3))

        distance = self.options.ambush_distance
        concealment = self.vegetation.provides_concealment
        seen = set()
        for segment in self.structures.roads.segments:
            for px, py in segment.points:
                for dy in range(-distance, distance + 1):
                    for dx in range(-distance, distance + 1):
                        x, y = px + dx, py + dy
                        if (dx or dy) and 0 <= x < self.width and 0 <= y < self.height:
                            if (x, y) in seen:
                                continue
                            if concealment[y, x] and noise.at(x * 0.2, y * 0.2) > 0.85:
                                seen.add((x, y))
                                features.append(TacticalFeature(x, y, FeatureType.AMBUSH_SITE, 2))

        for building in self.structures.buildings:
            if building.building_type == BuildingType.TOWER:
                features.append(
                    TacticalFeature(building.x, building.y, FeatureType.VANTAGE_POINT, 8)
                )

        return features

    def generate(self) -> FeaturesLayer:
        """
        Run the complete features pipeline.

        Returns:
            FeaturesLayer with placed features and the per-tile feature grid
        """
        logger.info(
            "Starting features layer generation",
            width=self.width,
            height=self.height,
            seed=self.seed.value,
        )

        hazards = self.place_hazards()
        logger.debug("Placed hazards", count=len(hazards))
        resources = self.place_resources()
        logger.debug("Placed resources", count=len(resources))
        landmarks = self.place_landmarks()
        logger.debug("Placed landmarks", count=len(landmarks))
        tactical = self.identify_tactical_features()
        logger.debug("Identified tactical features", count=len(tactical))

        layer = FeaturesLayer(
            tiles=build_feature_tiles(self.width, self.height, hazards, resources, landmarks),
            hazards=hazards,
            resources=resources,
            landmarks=landmarks,
            tactical_features=tactical,
        )

        logger.info(
            "Features layer generated",
            hazards=len(hazards),
            resources=len(resources),
            landmarks=len(landmarks),
            total_features=layer.total_feature_count,
        )
        return layer
