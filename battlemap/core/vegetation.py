"""
Vegetation layer generation.

This module implements:
- Growth potential from biome, moisture, slope, soil and altitude
- Forest seeding smoothed by a cellular automaton
- Per-tile plant placement with species and size selection
- Canopy height/density and vegetation type classification
- Contiguous forest patch extraction by flood fill
- Natural clearing detection
"""

import math
from collections import deque
from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, List, Optional, Tuple

import numpy as np
import structlog

from ..utils.random import Seed
from .context import Biome, ElevationZone, TacticalMapContext
from .errors import LayerDependencyError, require_shape
from .geology import GeologyLayer
from .hydrology import HydrologyLayer, MoistureLevel
from .noise import FOREST_STREAM, PLANT_OFFSET_STREAM, PLANT_STREAM, NoiseGenerator
from .topography import TopographyLayer

logger = structlog.get_logger()

Position = Tuple[int, int]


class PlantSpecies(str, Enum):
    """Declaration order doubles as the dominant-species tie-break."""

    OAK = "oak"
    PINE = "pine"
    WILLOW = "willow"
    HAZEL = "hazel"
    ELDERBERRY = "elderberry"
    FERN = "fern"
    MOSS = "moss"


class PlantCategory(str, Enum):
    TREE = "tree"
    SHRUB = "shrub"
    HERBACEOUS = "herbaceous"
    GROUND_COVER = "ground_cover"


class PlantSize(str, Enum):
    TINY = "tiny"
    SMALL = "small"
    MEDIUM = "medium"
    LARGE = "large"
    HUGE = "huge"
    MASSIVE = "massive"


class VegetationType(str, Enum):
    NONE = "none"
    GRASS = "grass"
    SHRUBS = "shrubs"
    SPARSE_TREES = "sparse_trees"
    DENSE_TREES = "dense_trees"
    UNDERGROWTH = "undergrowth"


class ForestType(str, Enum):
    DECIDUOUS = "deciduous"
    CONIFEROUS = "coniferous"
    MIXED = "mixed"


BASE_HEIGHTS = {
    PlantCategory.TREE: 20.0,
    PlantCategory.SHRUB: 5.0,
    PlantCategory.HERBACEOUS: 2.0,
    PlantCategory.GROUND_COVER: 0.5,
}

SIZE_MULTIPLIERS = {
    PlantSize.TINY: 0.3,
    PlantSize.SMALL: 0.5,
    PlantSize.MEDIUM: 1.0,
    PlantSize.LARGE: 1.5,
    PlantSize.HUGE: 2.0,
    PlantSize.MASSIVE: 3.0,
}

BIOME_GROWTH = {
    Biome.FOREST: 1.0,
    Biome.SWAMP: 0.8,
    Biome.COASTAL: 0.6,
    Biome.MOUNTAIN: 0.5,
    Biome.PLAINS: 0.4,
    Biome.DESERT: 0.1,
    Biome.UNDERGROUND: 0.5,
}

MOISTURE_GROWTH = {
    MoistureLevel.SATURATED: 0.7,
    MoistureLevel.WET: 1.0,
    MoistureLevel.MOIST: 0.9,
    MoistureLevel.MODERATE: 0.7,
    MoistureLevel.DRY: 0.3,
    MoistureLevel.ARID: 0.1,
}

TREE_TYPES = (VegetationType.DENSE_TREES, VegetationType.SPARSE_TREES)
MIN_PATCH_SIZE = 3


@dataclass
class VegetationOptions:
    """Vegetation options, density from 0.0 (barren) to 2.0 (lush)."""

    density: float = 1.0  # Multiplies growth potential
    smoothing_passes: int = 3  # Cellular automaton passes over the forest mask
    max_clearing_radius: int = 5

    @property
    def understory_probability(self) -> float:
        return 0.4 * min(self.density, 2.0)


@dataclass
class Plant:
    """A single plant placed inside a tile."""

    species: PlantSpecies
    category: PlantCategory
    size: PlantSize
    offset_x: float = 0.5  # position inside the tile, 0-1
    offset_y: float = 0.5

    @property
    def height(self) -> float:
        """Height in feet."""
        return BASE_HEIGHTS[self.category] * SIZE_MULTIPLIERS[self.size]

    @property
    def is_tree(self) -> bool:
        return self.category == PlantCategory.TREE


@dataclass
class TacticalProperties:
    """Canopy metrics and classification per tile."""

    canopy_height: np.ndarray
    canopy_density: np.ndarray
    vegetation_type: List[List[VegetationType]]


@dataclass
class ForestPatch:
    """Contiguous group of tree tiles."""

    id: int
    tiles: List[Position]
    forest_type: ForestType
    density: float  # mean canopy density

    @property
    def size(self) -> int:
        return len(self.tiles)


@dataclass
class Clearing:
    """Open ground surrounded by trees."""

    x: int
    y: int
    radius: int

    def contains(self, x: int, y: int) -> bool:
        return (x - self.x) ** 2 + (y - self.y) ** 2 <= self.radius**2


@dataclass
class VegetationTile:
    """Vegetation data for a single tile."""

    canopy_height: float
    canopy_density: float
    vegetation_type: VegetationType
    dominant_species: Optional[PlantSpecies]
    plants: List[Plant]
    ground_cover: float
    is_passable: bool
    provides_concealment: bool
    provides_cover: bool


@dataclass
class VegetationLayer:
    """Complete vegetation layer for a map."""

    canopy_height: np.ndarray
    canopy_density: np.ndarray
    vegetation_type: List[List[VegetationType]]
    dominant_species: List[List[Optional[PlantSpecies]]]
    plants: List[List[List[Plant]]]
    ground_cover: np.ndarray
    is_passable: np.ndarray
    provides_concealment: np.ndarray
    provides_cover: np.ndarray
    forest_patches: List[ForestPatch] = field(default_factory=list)
    clearings: List[Clearing] = field(default_factory=list)

    @property
    def shape(self) -> Tuple[int, int]:
        return self.canopy_height.shape

    @property
    def total_tree_count(self) -> int:
        return sum(plant.is_tree for row in self.plants for tile in row for plant in tile)

    @property
    def total_plant_count(self) -> int:
        return sum(len(tile) for row in self.plants for tile in row)

    @property
    def average_canopy_coverage(self) -> float:
        """Mean canopy density over tiles that have any canopy."""
        covered = self.canopy_density[self.canopy_density > 0]
        return float(covered.mean()) if covered.size else 0.0

    @property
    def tree_mask(self) -> np.ndarray:
        return np.array(
            [[vegetation in TREE_TYPES for vegetation in row] for row in self.vegetation_type],
            dtype=bool,
        ).reshape(self.shape)

    def in_clearing(self, x: int, y: int) -> bool:
        return any(clearing.contains(x, y) for clearing in self.clearings)

    def tile(self, x: int, y: int) -> VegetationTile:
        return VegetationTile(
            canopy_height=float(self.canopy_height[y, x]),
            canopy_density=float(self.canopy_density[y, x]),
            vegetation_type=self.vegetation_type[y][x],
            dominant_species=self.dominant_species[y][x],
            plants=list(self.plants[y][x]),
            ground_cover=float(self.ground_cover[y, x]),
            is_passable=bool(self.is_passable[y, x]),
            provides_concealment=bool(self.provides_concealment[y, x]),
            provides_cover=bool(self.provides_cover[y, x]),
        )


def select_tree_species(biome: Biome, moisture: MoistureLevel, value: int) -> PlantSpecies:
    roll = (value % 100) / 100
    if biome == Biome.FOREST:
        if moisture in (MoistureLevel.WET, MoistureLevel.SATURATED):
            return PlantSpecies.WILLOW if roll < 0.5 else PlantSpecies.OAK
        return PlantSpecies.OAK if roll < 0.5 else PlantSpecies.PINE
    if biome == Biome.MOUNTAIN:
        return PlantSpecies.PINE if roll < 0.7 else PlantSpecies.OAK
    if biome == Biome.SWAMP:
        return PlantSpecies.WILLOW
    return PlantSpecies.OAK


def select_shrub_species(moisture: MoistureLevel, value: int) -> PlantSpecies:
    if moisture in (MoistureLevel.ARID, MoistureLevel.DRY):
        return PlantSpecies.HAZEL
    return PlantSpecies.ELDERBERRY if (value % 100) / 100 < 0.5 else PlantSpecies.FERN


def select_plant_size(growth_potential: float, value: int) -> PlantSize:
    size_value = (value % 100) / 100 * growth_potential
    if size_value > 0.8:
        return PlantSize.HUGE
    if size_value > 0.6:
        return PlantSize.LARGE
    if size_value > 0.4:
        return PlantSize.MEDIUM
    if size_value > 0.2:
        return PlantSize.SMALL
    return PlantSize.TINY


def select_ground_vegetation(
    moisture: MoistureLevel, slope: float, biome: Biome, roll: float
) -> Optional[PlantCategory]:
    """Shrub, grass (herbaceous) or nothing for open ground."""
    if moisture == MoistureLevel.ARID:
        return None
    if slope > 40:
        cutoff = 0.7
    elif biome == Biome.PLAINS:
        cutoff = 0.8
    else:
        cutoff = 0.5
    return PlantCategory.SHRUB if roll > cutoff else PlantCategory.HERBACEOUS


def calculate_tactical_properties(
    plants: List[List[List[Plant]]], moisture: np.ndarray
) -> TacticalProperties:
    """Canopy height, density and vegetation type from the plants on each tile."""
    height, width = len(plants), len(plants[0]) if plants else 0
    canopy_height = np.zeros((height, width))
    canopy_density = np.zeros((height, width))
    vegetation_type = []

    for y in range(height):
        row = []
        for x in range(width):
            tile_plants = plants[y][x]
            trees = sum(1 for p in tile_plants if p.category == PlantCategory.TREE)
            shrubs = sum(1 for p in tile_plants if p.category == PlantCategory.SHRUB)
            canopy_height[y, x] = max((p.height for p in tile_plants), default=0.0)

            if trees:
                canopy_density[y, x] = min(1.0, trees * 0.4)
            elif shrubs:
                canopy_density[y, x] = min(1.0, shrubs * 0.3)
            else:
                canopy_density[y, x] = 0.1 if tile_plants else 0.0

            if trees >= 2:
                row.append(VegetationType.DENSE_TREES)
            elif trees == 1:
                row.append(VegetationType.SPARSE_TREES)
            elif shrubs:
                if moisture[y, x] >= MoistureLevel.WET:
                    row.append(VegetationType.UNDERGROWTH)
                else:
                    row.append(VegetationType.SHRUBS)
            elif tile_plants:
                row.append(VegetationType.GRASS)
            else:
                row.append(VegetationType.NONE)
        vegetation_type.append(row)

    return TacticalProperties(canopy_height, canopy_density, vegetation_type)


def dominant_species(plants: List[Plant]) -> Optional[PlantSpecies]:
    """Most common species on a tile; ties go to the earliest declared species."""
    if not plants:
        return None
    counts: Dict[PlantSpecies, int] = {}
    for plant in plants:
        counts[plant.species] = counts.get(plant.species, 0) + 1
    ordinal = list(PlantSpecies).index
    return min(counts, key=lambda species: (-counts[species], ordinal(species)))


def create_tile_data(
    plants: List[List[List[Plant]]], tactical: TacticalProperties, water_depth: np.ndarray
) -> VegetationLayer:
    """
    Combine plants and canopy metrics into per-tile vegetation data.

    Args:
        plants: Plants per tile, indexed [y][x]
        tactical: Canopy metrics and vegetation type per tile
        water_depth: Water depth grid from the hydrology layer

    Returns:
        VegetationLayer without forest patches or clearings
    """
    shape = tactical.canopy_height.shape
    dense = np.zeros(shape, dtype=bool)
    sparse = np.zeros(shape, dtype=bool)
    shrubs = np.zeros(shape, dtype=bool)
    ground_cover = np.full(shape, 0.2)
    dominant = []

    for y, row in enumerate(tactical.vegetation_type):
        dominant_row = []
        for x, vegetation in enumerate(row):
            dense[y, x] = vegetation == VegetationType.DENSE_TREES
            sparse[y, x] = vegetation == VegetationType.SPARSE_TREES
            shrubs[y, x] = vegetation == VegetationType.SHRUBS
            tile_plants = plants[y][x]
            if any(p.category == PlantCategory.GROUND_COVER for p in tile_plants):
                ground_cover[y, x] = 0.8
            dominant_row.append(dominant_species(tile_plants))
        dominant.append(dominant_row)

    return VegetationLayer(
        canopy_height=tactical.canopy_height,
        canopy_density=tactical.canopy_density,
        vegetation_type=tactical.vegetation_type,
        dominant_species=dominant,
        plants=plants,
        ground_cover=ground_cover,
        is_passable=~dense & (np.asarray(water_depth) < 2),
        provides_concealment=(tactical.canopy_density > 0.3) | shrubs,
        provides_cover=dense | (sparse & (tactical.canopy_height > 15)),
    )


def extract_forest_patches(
    vegetation_type: List[List[VegetationType]],
    plants: Optional[List[List[List[Plant]]]] = None,
    canopy_density: Optional[np.ndarray] = None,
) -> List[ForestPatch]:
    """
    Flood-fill contiguous tree tiles into forest patches.

    Uses 8-connectivity, seeds in raster order and drops patches smaller
    than MIN_PATCH_SIZE tiles. Pines count as conifers, every other tree
    as deciduous.
    """
    height = len(vegetation_type)
    width = len(vegetation_type[0]) if height else 0
    visited = np.zeros((height, width), dtype=bool)
    patches = []

    def is_tree(x, y):
        return vegetation_type[y][x] in TREE_TYPES

    for start_y in range(height):
        for start_x in range(width):
            if visited[start_y, start_x] or not is_tree(start_x, start_y):
                continue

            tiles = []
            conifers = deciduous = 0
            total_density = 0.0
            queue = deque([(start_x, start_y)])
            visited[start_y, start_x] = True

            while queue:
                x, y = queue.popleft()
                tiles.append((x, y))
                if plants is not None:
                    for plant in plants[y][x]:
                        if plant.is_tree:
                            if plant.species == PlantSpecies.PINE:
                                conifers += 1
                            else:
                                deciduous += 1
                if canopy_density is not None:
                    total_density += float(canopy_density[y, x])

                for dy in (-1, 0, 1):
                    for dx in (-1, 0, 1):
                        nx, ny = x + dx, y + dy
                        if (dx or dy) and 0 <= nx < width and 0 <= ny < height:
                            if not visited[ny, nx] and is_tree(nx, ny):
                                visited[ny, nx] = True
                                queue.append((nx, ny))

            if len(tiles) < MIN_PATCH_SIZE:
                continue

            if conifers > deciduous * 2:
                forest_type = ForestType.CONIFEROUS
            elif deciduous > conifers * 2:
                forest_type = ForestType.DECIDUOUS
            else:
                forest_type = ForestType.MIXED

            patches.append(
                ForestPatch(
                    id=len(patches),
                    tiles=tiles,
                    forest_type=forest_type,
                    density=total_density / len(tiles),
                )
            )

    return patches


def find_clearings(trees: np.ndarray, max_radius: int = 5) -> List[Clearing]:
    """
    Open areas ringed by trees.

    A candidate center has no tree and at least five tree tiles in the 7x7
    window outside its own 3x3. The radius grows while a 16-direction sample
    finds no tree; clearings of radius 2 or more are kept and their disc is
    excluded from later candidates.
    """
    height, width = trees.shape
    visited = np.zeros((height, width), dtype=bool)
    clearings = []

    for y in range(2, height - 2):
        for x in range(2, width - 2):
            if visited[y, x] or trees[y, x]:
                continue

            window = trees[max(0, y - 3) : y + 4, max(0, x - 3) : x + 4]
            inner = trees[y - 1 : y + 2, x - 1 : x + 2]
            if int(window.sum()) - int(inner.sum()) < 5:
                continue

            radius = _clearing_radius(trees, x, y, max_radius)
            if radius < 2:
                continue

            clearing = Clearing(x, y, radius)
            clearings.append(clearing)
            for dy in range(-radius, radius + 1):
                for dx in range(-radius, radius + 1):
                    nx, ny = x + dx, y + dy
                    if 0 <= nx < width and 0 <= ny < height and clearing.contains(nx, ny):
                        visited[ny, nx] = True

    return clearings


def _clearing_radius(trees: np.ndarray, cx: int, cy: int, max_radius: int) -> int:
    height, width = trees.shape
    radius = 1
    while radius < max_radius:
        for step in range(16):
            angle = step * math.pi / 8
            x = int(round(cx + math.cos(angle) * radius))
            y = int(round(cy + math.sin(angle) * radius))
            if x < 0 or x >= width or y < 0 or y >= height or trees[y, x]:
                return radius - 1
        radius += 1
    return radius


class VegetationGenerator:
    """Generates vegetation from geology, topography and hydrology."""

    def __init__(
        self,
        geology: GeologyLayer,
        topography: TopographyLayer,
        hydrology: HydrologyLayer,
        context: TacticalMapContext,
        seed: Seed,
        options: Optional[VegetationOptions] = None,
    ):
        if geology is None:
            raise LayerDependencyError.missing("vegetation", "geology")
        if topography is None:
            raise LayerDependencyError.missing("vegetation", "topography")
        if hydrology is None:
            raise LayerDependencyError.missing("vegetation", "hydrology")
        require_shape("vegetation", "geology", geology.bedrock, topography.shape)
        require_shape("vegetation", "hydrology", hydrology.water_depth, topography.shape)

        self.geology = geology
        self.topography = topography
        self.hydrology = hydrology
        self.context = context
        self.seed = seed
        self.options = options or VegetationOptions()
        self.height, self.width = topography.shape
        self.warnings: List[str] = []

    def calculate_growth_potential(self) -> np.ndarray:
        """Growth potential in [0, 1] per tile."""
        moisture = self.hydrology.moisture
        slope = self.topography.slope
        soil = self.geology.soil_depth

        moisture_factor = np.zeros((self.height, self.width))
        for level, factor in MOISTURE_GROWTH.items():
            moisture_factor[moisture == level] = factor

        potential = BIOME_GROWTH.get(self.context.biome, 0.5) * moisture_factor
        potential = potential * np.select(
            [slope > 60, slope > 40, slope > 20], [0.1, 0.3, 0.7], default=1.0
        )
        potential = potential * np.select([soil < 0.5, soil < 2], [0.2, 0.6], default=1.0)

        if self.context.elevation == ElevationZone.ALPINE:
            potential = np.where(self.topography.elevation > 60, potential * 0.3, potential)

        return np.clip(potential * self.options.density, 0.0, 1.0)

    def generate_forest_distribution(self, potential: np.ndarray) -> np.ndarray:
        """Noise-seeded forest mask smoothed by a cellular automaton."""
        noise = NoiseGenerator.for_stream(self.seed, FOREST_STREAM)
        forest = (noise.grid(self.width, self.height, 0.1) > 0.5 - potential * 0.3) & (
            potential > 0.3
        )

        # Updated in place, so later tiles in a pass see earlier results
        for _ in range(self.options.smoothing_passes):
            for y in range(self.height):
                for x in range(self.width):
                    window = forest[max(0, y - 1) : y + 2, max(0, x - 1) : x + 2]
                    neighbors = int(window.sum()) - int(forest[y, x])
                    if neighbors >= 5:
                        forest[y, x] = True
                    elif neighbors <= 2:
                        forest[y, x] = False

        return forest

    def _offset(self, noise: NoiseGenerator, x: int, y: int, index: int) -> Tuple[float, float]:
        return (
            noise.at(x * 0.7 + index * 0.13, y * 0.7),
            noise.at(x * 0.7, y * 0.7 + index * 0.13 + 0.5),
        )

    def distribute_plants(
        self, forest: np.ndarray, potential: np.ndarray
    ) -> List[List[List[Plant]]]:
        """Plants per tile from the forest mask and growth potential."""
        noise = NoiseGenerator.for_stream(self.seed, PLANT_STREAM)
        offsets = NoiseGenerator.for_stream(self.seed, PLANT_OFFSET_STREAM)
        water_depth = self.hydrology.water_depth
        biome = self.context.biome
        seed_value = self.seed.value
        understory_cutoff = 1.0 - self.options.understory_probability

        plants = []
        for y in range(self.height):
            row = []
            for x in range(self.width):
                tile_plants: List[Plant] = []
                row.append(tile_plants)
                if water_depth[y, x] > 1:
                    continue

                p = float(potential[y, x])
                moisture = MoistureLevel(int(self.hydrology.moisture[y, x]))

                def add(species, category, size):
                    offset_x, offset_y = self._offset(offsets, x, y, len(tile_plants))
                    tile_plants.append(Plant(species, category, size, offset_x, offset_y))

                if forest[y, x]:
                    tree_count = int(1 + noise.at(x * 0.5, y * 0.5) * 2)
                    for i in range(tree_count):
                        species = select_tree_species(biome, moisture, seed_value + x + y + i)
                        add(species, PlantCategory.TREE, select_plant_size(p, seed_value + i))

                    if noise.at(x * 0.3, y * 0.3) > understory_cutoff:
                        species = select_shrub_species(moisture, seed_value + x * y)
                        add(species, PlantCategory.SHRUB, PlantSize.MEDIUM)
                elif p > 0.2:
                    category = select_ground_vegetation(
                        moisture,
                        float(self.topography.slope[y, x]),
                        biome,
                        noise.at(x * 0.2, y * 0.2),
                    )
                    if category == PlantCategory.SHRUB:
                        species = select_shrub_species(moisture, seed_value + x + y)
                        add(species, PlantCategory.SHRUB, PlantSize.SMALL)
                    elif category == PlantCategory.HERBACEOUS:
                        add(PlantSpecies.FERN, PlantCategory.HERBACEOUS, PlantSize.SMALL)

                if p > 0.1 and water_depth[y, x] == 0:
                    add(PlantSpecies.MOSS, PlantCategory.GROUND_COVER, PlantSize.TINY)
            plants.append(row)

        return plants

    def generate(self) -> VegetationLayer:
        """
        Run the complete vegetation pipeline.

        Returns:
            VegetationLayer with plants, canopy, patches and clearings
        """
        logger.info(
            "Starting vegetation layer generation",
            width=self.width,
            height=self.height,
            biome=self.context.biome.value,
            density=self.options.density,
            seed=self.seed.value,
        )

        potential = self.calculate_growth_potential()
        forest = self.generate_forest_distribution(potential)
        logger.debug("Generated forest distribution", forest_tiles=int(forest.sum()))

        plants = self.distribute_plants(forest, potential)
        tactical = calculate_tactical_properties(plants, self.hydrology.moisture)
        layer = create_tile_data(plants, tactical, self.hydrology.water_depth)

        layer.forest_patches = extract_forest_patches(
            layer.vegetation_type, layer.plants, layer.canopy_density
        )
        trees = np.array(
            [[any(p.is_tree for p in tile) for tile in row] for row in plants], dtype=bool
        ).reshape(self.height, self.width)
        layer.clearings = find_clearings(trees, self.options.max_clearing_radius)

        tree_count = layer.total_tree_count
        if tree_count == 0 and self.options.density > 0:
            self.warnings.append("No trees were generated")
            logger.warning("No trees were generated", biome=self.context.biome.value)

        logger.info(
            "Vegetation layer generated",
            trees=tree_count,
            forest_patches=len(layer.forest_patches),
            clearings=len(layer.clearings),
            average_canopy=round(layer.average_canopy_coverage, 3),
        )
        return layer
