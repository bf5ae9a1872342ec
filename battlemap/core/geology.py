"""
Geology layer generation.

This module implements:
- Bedrock formation selection per biome
- Bedrock pattern synthesis from primary/secondary formations
- Weathering of bedrock into surface terrain features
- Soil depth calculation
- Formation transition zone detection

Geology is the first layer; every other layer is derived from it.
"""

from dataclasses import dataclass, field
from typing import List, Optional, Tuple

import numpy as np
import structlog

from ..config.formations import (
    GeologicalFormation,
    GeologicalStructure,
    PermeabilityLevel,
    TerrainFeature,
    formations_for_biome,
)
from ..utils.random import Seed, SeededRandom
from .context import TacticalMapContext
from .noise import (
    BEDROCK_PATTERN_STREAM,
    GEOLOGY_FORMATION_STREAM,
    SOIL_DEPTH_STREAM,
    WEATHERING_STREAM,
    NoiseGenerator,
)

logger = structlog.get_logger()

Position = Tuple[int, int]

PRIMARY = 0
SECONDARY = 1

SECONDARY_FORMATION_CHANCE = 0.3

# Weathering rules in priority order, first available product wins
MAJOR_FEATURES = (
    TerrainFeature.TOWER,
    TerrainFeature.DOME,
    TerrainFeature.COLUMN,
    TerrainFeature.FIN,
)
INTERMEDIATE_FEATURES = (
    TerrainFeature.CORESTONE,
    TerrainFeature.HOODOO,
    TerrainFeature.LEDGE,
)
DEPRESSION_FEATURES = (
    TerrainFeature.SINKHOLE,
    TerrainFeature.CAVE,
    TerrainFeature.RAVINE,
)


@dataclass
class GeologyTile:
    """Geology data for a single tile."""

    formation: GeologicalFormation
    soil_depth: float  # feet
    permeability: PermeabilityLevel
    features: List[TerrainFeature]
    fracture_intensity: float


@dataclass
class GeologyLayer:
    """Complete geology layer for a map."""

    bedrock: np.ndarray  # formation index per tile, PRIMARY or SECONDARY
    formations: Tuple[GeologicalFormation, ...]
    soil_depth: np.ndarray
    fracture_intensity: np.ndarray
    features: List[List[List[TerrainFeature]]]
    primary_formation: GeologicalFormation
    secondary_formation: Optional[GeologicalFormation] = None
    transition_zones: List[Position] = field(default_factory=list)

    @property
    def height(self) -> int:
        return self.bedrock.shape[0]

    @property
    def width(self) -> int:
        return self.bedrock.shape[1]

    @property
    def shape(self) -> Tuple[int, int]:
        return self.bedrock.shape

    def formation_at(self, x: int, y: int) -> GeologicalFormation:
        return self.formations[self.bedrock[y, x]]

    def has_feature(self, x: int, y: int, feature: TerrainFeature) -> bool:
        return feature in self.features[y][x]

    def tile(self, x: int, y: int) -> GeologyTile:
        formation = self.formation_at(x, y)
        return GeologyTile(
            formation=formation,
            soil_depth=float(self.soil_depth[y, x]),
            permeability=formation.permeability,
            features=list(self.features[y][x]),
            fracture_intensity=float(self.fracture_intensity[y, x]),
        )

    def property_grid(self, name: str) -> np.ndarray:
        """Per-tile grid of a numeric formation property, e.g. 'erosion_resistance'."""
        values = np.array([getattr(f, name) for f in self.formations], dtype=float)
        return values[self.bedrock]


class GeologyGenerator:
    """Generates the geological foundation layer."""

    def __init__(self, width: int, height: int, context: TacticalMapContext, seed: Seed):
        """
        Initialize geology generator.

        Args:
            width: Map width in tiles
            height: Map height in tiles
            context: Resolved tactical context
            seed: Generation seed
        """
        self.width = width
        self.height = height
        self.context = context
        self.seed = seed

    def select_formations(self) -> Tuple[GeologicalFormation, Optional[GeologicalFormation]]:
        """
        Choose primary and optional secondary formation for the biome.

        The secondary is always the candidate after the primary, so the two
        never coincide.
        """
        candidates = formations_for_biome(self.context.biome)
        random = SeededRandom(self.seed.derive(GEOLOGY_FORMATION_STREAM))

        primary_index = random.choice_index(len(candidates))
        primary = candidates[primary_index]

        secondary = None
        if random.next() < SECONDARY_FORMATION_CHANCE and len(candidates) > 1:
            secondary = candidates[(primary_index + 1) % len(candidates)]

        logger.debug(
            "Selected geological formations",
            biome=self.context.biome.value,
            primary=primary.name,
            secondary=secondary.name if secondary else None,
        )
        return primary, secondary

    def generate_bedrock_pattern(
        self, primary: GeologicalFormation, secondary: Optional[GeologicalFormation]
    ) -> np.ndarray:
        """Formation index grid, PRIMARY where noise exceeds the bedding threshold."""
        if secondary is None:
            return np.full((self.height, self.width), PRIMARY, dtype=np.int8)

        noise = NoiseGenerator.for_stream(self.seed, BEDROCK_PATTERN_STREAM)
        ys, xs = np.mgrid[0 : self.height, 0 : self.width]
        values = noise.at(xs * 0.05, ys * 0.05)

        if primary.bedding == GeologicalStructure.VERTICAL:
            threshold = np.sin(xs * 0.1) * 0.3
        elif primary.bedding == GeologicalStructure.FOLDED:
            threshold = np.sin(xs * 0.1) * np.cos(ys * 0.1) * 0.3
        else:
            threshold = np.zeros((self.height, self.width))

        return np.where(values > threshold, PRIMARY, SECONDARY).astype(np.int8)

    def apply_weathering(
        self, bedrock: np.ndarray, formations: Tuple[GeologicalFormation, ...]
    ) -> List[List[List[TerrainFeature]]]:
        """Surface features per tile from weathering intensity in [-1, 1]."""
        noise = NoiseGenerator.for_stream(self.seed, WEATHERING_STREAM)
        ys, xs = np.mgrid[0 : self.height, 0 : self.width]
        intensity = noise.at(xs * 0.1, ys * 0.1) * 2 - 1

        weathered = []
        for y in range(self.height):
            row = []
            for x in range(self.width):
                formation = formations[bedrock[y, x]]
                row.append(self._weather_tile(formation, float(intensity[y, x])))
            weathered.append(row)
        return weathered

    @staticmethod
    def _weather_tile(formation: GeologicalFormation, intensity: float) -> List[TerrainFeature]:
        features = []

        if intensity > 0.7:
            rule = MAJOR_FEATURES
        elif intensity > 0.4:
            rule = INTERMEDIATE_FEATURES
        elif intensity < -0.5:
            rule = DEPRESSION_FEATURES
        else:
            rule = ()
        for feature in rule:
            if formation.has_feature(feature):
                features.append(feature)
                break

        # Deepest dissolution opens caves in soluble rock
        if intensity < -0.8 and formation.allows_caves and TerrainFeature.CAVE not in features:
            features.append(TerrainFeature.CAVE)

        if intensity > 0.2 and formation.has_feature(TerrainFeature.TALUS):
            features.append(TerrainFeature.TALUS)

        return features

    def calculate_soil_depths(
        self,
        weathered: List[List[List[TerrainFeature]]],
        bedrock: np.ndarray,
        formations: Tuple[GeologicalFormation, ...],
    ) -> np.ndarray:
        """
        Soil depth in feet, 1-3ft base adjusted by surface features.

        Depth never exceeds the upper end of the formation's soil depth range.
        """
        noise = NoiseGenerator.for_stream(self.seed, SOIL_DEPTH_STREAM)
        ys, xs = np.mgrid[0 : self.height, 0 : self.width]
        depths = 1 + noise.at(xs * 0.2, ys * 0.2) * 2

        for y in range(self.height):
            for x in range(self.width):
                features = weathered[y][x]
                depth = depths[y, x]
                if TerrainFeature.GRUS in features:
                    depth += 3  # decomposed granite
                if TerrainFeature.TALUS in features:
                    depth += 2
                if TerrainFeature.DOME in features or TerrainFeature.TOWER in features:
                    depth = 0.5  # bare rock
                if TerrainFeature.SINKHOLE in features:
                    depth += 5  # accumulated sediment
                _, deepest = formations[bedrock[y, x]].soil_depth_range
                depths[y, x] = min(max(0.0, depth), deepest)

        return depths

    def find_transition_zones(self, bedrock: np.ndarray) -> List[Position]:
        """Interior tiles whose formation differs from a 4-neighbor."""
        transitions = []
        for y in range(1, self.height - 1):
            for x in range(1, self.width - 1):
                current = bedrock[y, x]
                if (
                    bedrock[y - 1, x] != current
                    or bedrock[y + 1, x] != current
                    or bedrock[y, x - 1] != current
                    or bedrock[y, x + 1] != current
                ):
                    transitions.append((x, y))
        return transitions

    def generate(self) -> GeologyLayer:
        """
        Run the complete geology pipeline.

        Returns:
            GeologyLayer with per-tile formation, soil and weathering data
        """
        logger.info(
            "Starting geology layer generation",
            width=self.width,
            height=self.height,
            biome=self.context.biome.value,
            seed=self.seed.value,
        )

        primary, secondary = self.select_formations()
        formations = (primary,) if secondary is None else (primary, secondary)

        bedrock = self.generate_bedrock_pattern(primary, secondary)
        weathered = self.apply_weathering(bedrock, formations)
        logger.debug("Applied weathering effects")

        soil_depth = self.calculate_soil_depths(weathered, bedrock, formations)
        transition_zones = self.find_transition_zones(bedrock)
        logger.debug("Identified transition zones", count=len(transition_zones))

        fracture = np.array([f.fracture_intensity for f in formations], dtype=float)[bedrock]

        layer = GeologyLayer(
            bedrock=bedrock,
            formations=formations,
            soil_depth=soil_depth,
            fracture_intensity=fracture,
            features=weathered,
            primary_formation=primary,
            secondary_formation=secondary,
            transition_zones=transition_zones,
        )

        logger.info(
            "Geology layer generated",
            primary_formation=primary.name,
            secondary_formation=secondary.name if secondary else None,
            transition_zones=len(transition_zones),
        )
        return layer
