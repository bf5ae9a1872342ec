"""
Structures layer generation.

This module implements:
- Building site scoring from terrain, water and vegetation
- Building placement and type selection by development level
- Road network as a minimum spanning tree between buildings
- Bridge detection where roads cross water
- Decorative structures (wells, shrines, ruin markers)
- Per-tile structure data
"""

import math
from dataclasses import dataclass, field
from enum import Enum
from typing import List, Optional, Tuple

import numpy as np
import structlog

from ..utils.random import Seed
from .context import DevelopmentLevel, TacticalMapContext
from .errors import LayerDependencyError, require_shape
from .hydrology import HydrologyLayer
from .noise import (
    BRIDGE_STREAM,
    BUILDING_MATERIAL_STREAM,
    BUILDING_TYPE_STREAM,
    DECORATION_STREAM,
    NoiseGenerator,
)
from .topography import TopographyLayer
from .vegetation import VegetationLayer, VegetationType

logger = structlog.get_logger()

Position = Tuple[int, int]


class StructureType(str, Enum):
    BUILDING = "building"
    ROAD = "road"
    BRIDGE = "bridge"
    WELL = "well"
    SHRINE = "shrine"
    RUIN = "ruin"


class BuildingType(str, Enum):
    HUT = "hut"
    COTTAGE = "cottage"
    BARN = "barn"
    HOUSE = "house"
    FARMHOUSE = "farmhouse"
    TAVERN = "tavern"
    CHURCH = "church"
    TOWNHOUSE = "townhouse"
    MANOR = "manor"
    TOWER = "tower"


class MaterialType(str, Enum):
    WOOD = "wood"
    STONE = "stone"
    DIRT = "dirt"


class StructureCondition(str, Enum):
    GOOD = "good"
    RUINED = "ruined"


class BridgeOrientation(str, Enum):
    HORIZONTAL = "horizontal"
    VERTICAL = "vertical"


BUILDING_COUNTS = {
    DevelopmentLevel.WILDERNESS: 0,
    DevelopmentLevel.FRONTIER: 1,
    DevelopmentLevel.RURAL: 3,
    DevelopmentLevel.SETTLED: 8,
    DevelopmentLevel.URBAN: 15,
    DevelopmentLevel.RUINS: 3,
}

BUILDING_FLOORS = {
    BuildingType.TOWNHOUSE: 2,
    BuildingType.MANOR: 2,
    BuildingType.TOWER: 3,
    BuildingType.TAVERN: 2,
}

STONE_BUILDINGS = (BuildingType.CHURCH, BuildingType.MANOR, BuildingType.TOWER)
WOOD_BUILDINGS = (BuildingType.HUT, BuildingType.BARN)
INTERIOR_BUILDINGS = (BuildingType.TAVERN, BuildingType.CHURCH, BuildingType.MANOR)

WELL_OFFSETS = ((-2, 0), (2, 0), (0, -2), (0, 2))


@dataclass
class StructureOptions:
    """Structure placement options."""

    cell_size: int = 5  # feet per tile
    site_margin: int = 2  # tiles kept free along the map border
    min_building_spacing: float = 5.0  # tiles between building origins
    max_site_slope: float = 35.0
    max_footprint_slope: float = 45.0
    water_search_radius: int = 3


@dataclass
class BuildingSite:
    x: int
    y: int
    quality: float


@dataclass
class Building:
    """A placed building, positioned and sized in tiles."""

    id: int
    building_type: BuildingType
    x: int
    y: int
    width: int  # tiles
    height: int  # tiles
    footprint_ft: Tuple[int, int]
    floors: int
    material: MaterialType
    condition: StructureCondition
    has_interior: bool = False

    @property
    def position(self) -> Position:
        return (self.x, self.y)

    def footprint(self) -> List[Position]:
        return [
            (self.x + dx, self.y + dy) for dy in range(self.height) for dx in range(self.width)
        ]


@dataclass
class RoadSegment:
    points: List[Position]
    material: MaterialType
    width: int = 1


@dataclass
class RoadNetwork:
    segments: List[RoadSegment] = field(default_factory=list)
    intersections: List[Position] = field(default_factory=list)
    total_length: int = 0

    def contains(self, x: int, y: int) -> bool:
        return any((x, y) in segment.points for segment in self.segments)


@dataclass
class Bridge:
    """Span between the two banks of a road's water crossing."""

    x: int  # bank tile where the crossing starts
    y: int
    orientation: BridgeOrientation
    length: int
    material: MaterialType
    tiles: List[Position] = field(default_factory=list)


@dataclass
class Decoration:
    x: int
    y: int
    structure_type: StructureType


@dataclass
class StructureTile:
    """Structure data for a single tile."""

    has_structure: bool = False
    structure_type: Optional[StructureType] = None
    building_type: Optional[BuildingType] = None
    material: Optional[MaterialType] = None
    height: float = 0.0
    is_road: bool = False
    is_path: bool = False
    condition: StructureCondition = StructureCondition.GOOD


@dataclass
class StructuresLayer:
    """Complete structures layer for a map."""

    tiles: List[List[StructureTile]]
    buildings: List[Building]
    roads: RoadNetwork
    bridges: List[Bridge]
    decorations: List[Decoration]

    @property
    def shape(self) -> Tuple[int, int]:
        return (len(self.tiles), len(self.tiles[0]) if self.tiles else 0)

    @property
    def total_structure_count(self) -> int:
        return len(self.buildings) + len(self.bridges) + len(self.decorations)

    @property
    def has_structure(self) -> np.ndarray:
        return np.array(
            [[tile.has_structure for tile in row] for row in self.tiles], dtype=bool
        ).reshape(self.shape)

    @property
    def is_road(self) -> np.ndarray:
        return np.array([[tile.is_road for tile in row] for row in self.tiles], dtype=bool).reshape(
            self.shape
        )


def _round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def trace_line(start: Position, end: Position) -> List[Position]:
    """DDA line from start to end inclusive; empty when the points coincide."""
    dx = end[0] - start[0]
    dy = end[1] - start[1]
    steps = max(abs(dx), abs(dy))
    if steps == 0:
        return []
    x_step = dx / steps
    y_step = dy / steps
    return [
        (_round_half_up(start[0] + x_step * i), _round_half_up(start[1] + y_step * i))
        for i in range(steps + 1)
    ]


def minimum_spanning_edges(points: List[Position]) -> List[Tuple[int, int]]:
    """
    Prim's algorithm over Euclidean distance.

    Edges are returned in the order they join the tree. Ties go to the
    lowest (from, to) index pair.
    """
    if len(points) < 2:
        return []
    connected = [0]
    edges = []
    while len(connected) < len(points):
        best = None
        best_distance = math.inf
        for source in sorted(connected):
            for target in range(len(points)):
                if target in connected:
                    continue
                distance = math.dist(points[source], points[target])
                if distance < best_distance:
                    best_distance = distance
                    best = (source, target)
        edges.append(best)
        connected.append(best[1])
    return edges


def find_intersections(segments: List[RoadSegment]) -> List[Position]:
    """Tiles visited by more than one road segment, in first-seen order."""
    counts = {}
    for segment in segments:
        for point in dict.fromkeys(segment.points):
            counts[point] = counts.get(point, 0) + 1
    return [point for point, count in counts.items() if count > 1]


def detect_bridges(
    roads: RoadNetwork, water_depth: np.ndarray, noise: NoiseGenerator
) -> List[Bridge]:
    """Bridges wherever a segment enters water and leaves it again."""
    bridges = []
    for segment in roads.segments:
        points = segment.points
        i = 1
        while i < len(points):
            prev_x, prev_y = points[i - 1]
            x, y = points[i]
            if water_depth[prev_y, prev_x] == 0 and water_depth[y, x] > 0:
                end = i
                while end < len(points) and water_depth[points[end][1], points[end][0]] > 0:
                    end += 1
                if end < len(points):
                    end_x, end_y = points[end]
                    span_x, span_y = abs(end_x - prev_x), abs(end_y - prev_y)
                    material = (
                        MaterialType.STONE
                        if noise.at(prev_x * 0.1, prev_y * 0.1) > 0.5
                        else MaterialType.WOOD
                    )
                    bridges.append(
                        Bridge(
                            x=prev_x,
                            y=prev_y,
                            orientation=(
                                BridgeOrientation.HORIZONTAL
                                if span_x > span_y
                                else BridgeOrientation.VERTICAL
                            ),
                            length=max(span_x, span_y),
                            material=material,
                            tiles=list(points[i:end]),
                        )
                    )
                    i = end
            i += 1
    return bridges


def build_structure_tiles(
    width: int,
    height: int,
    buildings: List[Building],
    roads: RoadNetwork,
    bridges: List[Bridge],
    decorations: List[Decoration],
) -> List[List[StructureTile]]:
    """
    Per-tile structure grid.

    Written in order: buildings, roads and bridges (never over buildings),
    then decorations.
    """
    tiles = [[StructureTile() for _ in range(width)] for _ in range(height)]

    for building in buildings:
        for x, y in building.footprint():
            if 0 <= x < width and 0 <= y < height:
                tiles[y][x] = StructureTile(
                    has_structure=True,
                    structure_type=StructureType.BUILDING,
                    building_type=building.building_type,
                    material=building.material,
                    height=30.0 if building.building_type == BuildingType.TOWER else building.floors * 10.0,
                    condition=building.condition,
                )

    for segment in roads.segments:
        for x, y in segment.points:
            if not tiles[y][x].has_structure:
                tiles[y][x] = StructureTile(
                    has_structure=True,
                    structure_type=StructureType.ROAD,
                    material=segment.material,
                    is_road=True,
                )

    for bridge in bridges:
        for x, y in bridge.tiles:
            if tiles[y][x].structure_type == StructureType.BUILDING:
                continue
            tiles[y][x] = StructureTile(
                has_structure=True,
                structure_type=StructureType.BRIDGE,
                material=bridge.material,
                height=5.0,
                is_road=True,
            )

    for decoration in decorations:
        if decoration.structure_type == StructureType.WELL:
            tile = StructureTile(True, StructureType.WELL, material=MaterialType.STONE, height=3.0)
        elif decoration.structure_type == StructureType.SHRINE:
            tile = StructureTile(True, StructureType.SHRINE, material=MaterialType.WOOD, height=8.0)
        else:
            tile = StructureTile(
                True,
                StructureType.RUIN,
                material=MaterialType.STONE,
                height=4.0,
                condition=StructureCondition.RUINED,
            )
        tiles[decoration.y][decoration.x] = tile

    return tiles


class StructureGenerator:
    """Places buildings, roads, bridges and decorations."""

    def __init__(
        self,
        vegetation: VegetationLayer,
        hydrology: HydrologyLayer,
        topography: TopographyLayer,
        context: TacticalMapContext,
        seed: Seed,
        options: Optional[StructureOptions] = None,
    ):
        if vegetation is None:
            raise LayerDependencyError.missing("structures", "vegetation")
        if hydrology is None:
            raise LayerDependencyError.missing("structures", "hydrology")
        if topography is None:
            raise LayerDependencyError.missing("structures", "topography")
        require_shape("structures", "hydrology", hydrology.water_depth, topography.shape)
        require_shape("structures", "vegetation", vegetation.canopy_height, topography.shape)

        self.vegetation = vegetation
        self.hydrology = hydrology
        self.topography = topography
        self.context = context
        self.seed = seed
        self.options = options or StructureOptions()
        self.height, self.width = topography.shape
        self.warnings: List[str] = []

    def _is_dense(self, x: int, y: int) -> bool:
        return self.vegetation.vegetation_type[y][x] == VegetationType.DENSE_TREES

    def _footprint_clear(self, x: int, y: int, width: int = 2, height: int = 2) -> bool:
        """Whether the footprint fits on the map on dry, buildable ground."""
        for dy in range(height):
            for dx in range(width):
                nx, ny = x + dx, y + dy
                if not (0 <= nx < self.width and 0 <= ny < self.height):
                    return False
                if self.hydrology.water_depth[ny, nx] > 0:
                    return False
                if self.topography.slope[ny, nx] > self.options.max_footprint_slope:
                    return False
                if self._is_dense(nx, ny):
                    return False
        return True

    def identify_building_sites(self) -> List[BuildingSite]:
        """Buildable tiles, best quality first and raster order within a quality."""
        margin = self.options.site_margin
        radius = self.options.water_search_radius
        water = self.hydrology.water_depth > 0
        slope = self.topography.slope

        sites = []
        for y in range(margin, self.height - margin):
            for x in range(margin, self.width - margin):
                if water[y, x] or slope[y, x] > self.options.max_site_slope or self._is_dense(x, y):
                    continue

                quality = 1.0
                if self.vegetation.vegetation_type[y][x] in (VegetationType.NONE, VegetationType.GRASS):
                    quality += 0.3
                if slope[y, x] < 5:
                    quality += 0.2
                if water[max(0, y - radius) : y + radius + 1, max(0, x - radius) : x + radius + 1].any():
                    quality += 0.2

                if self._footprint_clear(x, y):
                    sites.append(BuildingSite(x, y, quality))

        return sorted(sites, key=lambda site: -site.quality)

    @staticmethod
    def select_building_type(
        development: DevelopmentLevel, roll: float
    ) -> Tuple[BuildingType, int, int]:
        """Building type and footprint in feet."""
        if development == DevelopmentLevel.FRONTIER:
            return BuildingType.HUT, 10, 10
        if development == DevelopmentLevel.RURAL:
            if roll < 0.5:
                return BuildingType.COTTAGE, 20, 20
            return BuildingType.BARN, 25, 20
        if development == DevelopmentLevel.SETTLED:
            if roll < 0.5:
                return BuildingType.HOUSE, 20, 25
            if roll < 0.8:
                return BuildingType.FARMHOUSE, 30, 25
            if roll < 0.95:
                return BuildingType.TAVERN, 35, 30
            return BuildingType.CHURCH, 40, 35
        if development == DevelopmentLevel.URBAN:
            if roll < 0.4:
                return BuildingType.TOWNHOUSE, 15 + int(roll * 10), 20 + int(roll * 10)
            if roll < 0.7:
                return BuildingType.HOUSE, 25, 25
            if roll < 0.9:
                return BuildingType.MANOR, 45, 40
            return BuildingType.TOWER, 15, 15
        return BuildingType.COTTAGE, 20, 20

    def place_buildings(self, sites: List[BuildingSite]) -> List[Building]:
        development = self.context.development
        count = BUILDING_COUNTS.get(development, 0)
        if count == 0:
            return []

        type_noise = NoiseGenerator.for_stream(self.seed, BUILDING_TYPE_STREAM)
        material_noise = NoiseGenerator.for_stream(self.seed, BUILDING_MATERIAL_STREAM)
        cell_size = self.options.cell_size
        occupied = set()
        buildings = []

        for site in sites:
            if len(buildings) >= count:
                break
            if any(
                math.dist((site.x, site.y), b.position) < self.options.min_building_spacing
                for b in buildings
            ):
                continue

            roll = type_noise.at(site.x * 0.1, site.y * 0.1)
            building_type, width_ft, height_ft = self.select_building_type(development, roll)

            if building_type in STONE_BUILDINGS:
                material = MaterialType.STONE
            elif building_type in WOOD_BUILDINGS:
                material = MaterialType.WOOD
            elif material_noise.at(site.x * 0.1, site.y * 0.1) > 0.6:
                material = MaterialType.STONE
            else:
                material = MaterialType.WOOD

            building = Building(
                id=len(buildings),
                building_type=building_type,
                x=site.x,
                y=site.y,
                width=math.ceil(width_ft / cell_size),
                height=math.ceil(height_ft / cell_size),
                footprint_ft=(width_ft, height_ft),
                floors=BUILDING_FLOORS.get(building_type, 1),
                material=material,
                condition=(
                    StructureCondition.RUINED
                    if development == DevelopmentLevel.RUINS
                    else StructureCondition.GOOD
                ),
                has_interior=building_type in INTERIOR_BUILDINGS
                or (building_type == BuildingType.HOUSE and roll > 0.7),
            )
            footprint = building.footprint()
            if occupied.intersection(footprint):
                continue
            if not self._footprint_clear(site.x, site.y, building.width, building.height):
                continue
            occupied.update(footprint)
            buildings.append(building)

        return buildings

    def generate_road_network(self, buildings: List[Building]) -> RoadNetwork:
        """Roads along the minimum spanning tree between building origins."""
        network = RoadNetwork()
        required = self.context.required_features
        material = (
            MaterialType.STONE
            if self.context.development == DevelopmentLevel.URBAN
            else MaterialType.DIRT
        )

        if self.context.development != DevelopmentLevel.WILDERNESS:
            positions = [b.position for b in buildings]
            for source, target in minimum_spanning_edges(positions):
                path = [
                    (x, y)
                    for x, y in trace_line(positions[source], positions[target])
                    if 0 <= x < self.width and 0 <= y < self.height
                ]
                if path:
                    network.segments.append(RoadSegment(path, material))

        if not network.segments and (required.has_road or required.has_bridge):
            row = self.height // 2
            network.segments.append(
                RoadSegment([(x, row) for x in range(self.width)], material)
            )
            logger.debug("Added required road", row=row)

        network.intersections = find_intersections(network.segments)
        network.total_length = sum(len(segment.points) for segment in network.segments)
        return network

    def place_decorations(
        self, buildings: List[Building], sites: List[BuildingSite]
    ) -> List[Decoration]:
        development = self.context.development
        decorations = []

        if development != DevelopmentLevel.WILDERNESS:
            noise = NoiseGenerator.for_stream(self.seed, DECORATION_STREAM)
            occupied = {tile for b in buildings for tile in b.footprint()}
            for building in buildings:
                if noise.at(building.x * 0.2, building.y * 0.2) <= 0.7:
                    continue
                for dx, dy in WELL_OFFSETS:
                    x, y = building.x + dx, building.y + dy
                    if (
                        0 <= x < self.width
                        and 0 <= y < self.height
                        and (x, y) not in occupied
                        and self.hydrology.water_depth[y, x] == 0
                        and not self._is_dense(x, y)
                    ):
                        decorations.append(Decoration(x, y, StructureType.WELL))
                        break

            if development in (DevelopmentLevel.SETTLED, DevelopmentLevel.URBAN):
                for clearing in self.vegetation.clearings:
                    if (clearing.x, clearing.y) in occupied:
                        continue
                    if noise.at(clearing.x * 0.15, clearing.y * 0.15) > 0.8:
                        decorations.append(Decoration(clearing.x, clearing.y, StructureType.SHRINE))

        has_ruin = any(b.condition == StructureCondition.RUINED for b in buildings)
        if self.context.required_features.has_ruins and not has_ruin:
            used = {tile for b in buildings for tile in b.footprint()}
            used.update((d.x, d.y) for d in decorations)
            free = [(s.x, s.y) for s in sites if (s.x, s.y) not in used]
            x, y = free[0] if free else (self.width // 2, self.height // 2)
            decorations.append(Decoration(x, y, StructureType.RUIN))
            logger.debug("Added required ruin", x=x, y=y)

        return decorations

    def generate(self) -> StructuresLayer:
        """
        Run the complete structures pipeline.

        Returns:
            StructuresLayer with buildings, roads, bridges, decorations and tiles
        """
        logger.info(
            "Starting structures layer generation",
            width=self.width,
            height=self.height,
            development=self.context.development.value,
            seed=self.seed.value,
        )

        sites = self.identify_building_sites()
        logger.debug("Identified building sites", count=len(sites))

        buildings = self.place_buildings(sites)
        logger.debug("Placed buildings", count=len(buildings))

        roads = self.generate_road_network(buildings)
        logger.debug("Generated road network", segments=len(roads.segments))

        bridges = detect_bridges(
            roads,
            self.hydrology.water_depth,
            NoiseGenerator.for_stream(self.seed, BRIDGE_STREAM),
        )
        decorations = self.place_decorations(buildings, sites)

        tiles = build_structure_tiles(
            self.width, self.height, buildings, roads, bridges, decorations
        )
        layer = StructuresLayer(
            tiles=tiles,
            buildings=buildings,
            roads=roads,
            bridges=bridges,
            decorations=decorations,
        )

        if self.context.required_features.has_bridge and not bridges:
            self.warnings.append("Required bridge could not be placed: no road crosses water")
            logger.warning("Required bridge could not be placed")

        logger.info(
            "Structures layer generated",
            buildings=len(buildings),
            roads=len(roads.segments),
            bridges=len(bridges),
            decorations=len(decorations),
            total_structures=layer.total_structure_count,
        )
        return layer
