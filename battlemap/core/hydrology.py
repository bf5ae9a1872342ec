"""
Hydrology layer generation.

This module implements:
- D8 steepest-descent flow routing
- Flow accumulation in descending-elevation order
- Stream extraction by accumulation threshold
- Strahler stream ordering by fixed-point iteration
- Stream and pool water depths
- Six-level moisture classification
- Spring placement at formation boundaries
- Stream segment tracing for rendering
"""

import math
from dataclasses import dataclass, field
from enum import IntEnum
from typing import List, Optional, Tuple

import numpy as np
import structlog

from ..config.formations import PermeabilityLevel
from ..utils.random import Seed
from .context import HydrologyType, TacticalMapContext
from .errors import LayerDependencyError, require_shape
from .geology import GeologyLayer
from .noise import SPRING_STREAM, WATER_DEPTH_STREAM, NoiseGenerator
from .topography import TopographyLayer

logger = structlog.get_logger()

Position = Tuple[int, int]

# D8 directions clockwise from north as (dx, dy)
D8_DIRECTIONS = (
    (0, -1),  # N
    (1, -1),  # NE
    (1, 0),  # E
    (1, 1),  # SE
    (0, 1),  # S
    (-1, 1),  # SW
    (-1, 0),  # W
    (-1, -1),  # NW
)
D8_DISTANCES = tuple(1.0 if i % 2 == 0 else 1.414 for i in range(8))
NO_FLOW = -1

STREAM_THRESHOLDS = {
    HydrologyType.ARID: 25,
    HydrologyType.SEASONAL: 15,
    HydrologyType.STREAM: 8,
    HydrologyType.RIVER: 5,
    HydrologyType.WETLAND: 3,
}
DEFAULT_STREAM_THRESHOLD = 10

STREAM_DEPTH_MULTIPLIERS = {
    HydrologyType.RIVER: 2.0,
    HydrologyType.STREAM: 1.5,
    HydrologyType.SEASONAL: 0.5,
}


class MoistureLevel(IntEnum):
    """Soil moisture, ordered driest to wettest."""

    ARID = 0
    DRY = 1
    MODERATE = 2
    MOIST = 3
    WET = 4
    SATURATED = 5


@dataclass
class HydrologyOptions:
    """Hydrology options derived from water abundance (0.5 dry to 2.0 wet)."""

    water_abundance: float = 1.0  # Scales streams, springs and pools together
    stream_threshold_multiplier: Optional[float] = None  # Overrides the abundance-derived multiplier

    @property
    def threshold_multiplier(self) -> float:
        if self.stream_threshold_multiplier is not None:
            return self.stream_threshold_multiplier
        return max(0.5, 2.0 - self.water_abundance)

    @property
    def spring_threshold(self) -> float:
        return float(np.interp(self.water_abundance, [0.5, 1.0, 2.0], [0.95, 0.8, 0.65]))

    @property
    def pool_threshold(self) -> float:
        return float(np.interp(self.water_abundance, [0.5, 1.0, 2.0], [0.85, 0.7, 0.55]))

    @property
    def slope_spring_bonus(self) -> float:
        return 0.3 * self.water_abundance


@dataclass
class StreamSegment:
    """Traced stream polyline."""

    points: List[Position]
    order: int
    width: int  # tiles


@dataclass
class HydrologyTile:
    """Hydrology data for a single tile."""

    flow_accumulation: float
    flow_direction: int
    water_depth: float
    moisture: MoistureLevel
    is_spring: bool
    is_stream: bool
    is_pool: bool
    stream_order: int


@dataclass
class HydrologyLayer:
    """Complete hydrology layer for a map."""

    flow_direction: np.ndarray
    flow_accumulation: np.ndarray
    water_depth: np.ndarray
    moisture: np.ndarray  # MoistureLevel values
    is_stream: np.ndarray
    stream_order: np.ndarray
    is_spring: np.ndarray
    streams: List[StreamSegment] = field(default_factory=list)
    springs: List[Position] = field(default_factory=list)

    @property
    def shape(self) -> Tuple[int, int]:
        return self.water_depth.shape

    @property
    def is_pool(self) -> np.ndarray:
        return (self.water_depth > 0) & ~self.is_stream

    @property
    def total_water_coverage(self) -> float:
        """Percentage of tiles holding water."""
        return float((self.water_depth > 0).mean() * 100)

    def tile(self, x: int, y: int) -> HydrologyTile:
        return HydrologyTile(
            flow_accumulation=float(self.flow_accumulation[y, x]),
            flow_direction=int(self.flow_direction[y, x]),
            water_depth=float(self.water_depth[y, x]),
            moisture=MoistureLevel(int(self.moisture[y, x])),
            is_spring=bool(self.is_spring[y, x]),
            is_stream=bool(self.is_stream[y, x]),
            is_pool=bool(self.water_depth[y, x] > 0 and not self.is_stream[y, x]),
            stream_order=int(self.stream_order[y, x]),
        )


def calculate_flow_directions(elevation: np.ndarray) -> np.ndarray:
    """
    D8 flow direction per tile.

    Each tile drains toward the neighbor with the steepest strictly positive
    drop per unit distance; ties keep the lowest direction index. Sinks and
    flats get NO_FLOW.
    """
    elevation = np.asarray(elevation, dtype=float)
    height, width = elevation.shape
    padded = np.pad(elevation, 1, mode="constant", constant_values=np.inf)

    best = np.zeros(elevation.shape)
    directions = np.full(elevation.shape, NO_FLOW, dtype=np.int8)
    for index, (dx, dy) in enumerate(D8_DIRECTIONS):
        neighbor = padded[1 + dy : 1 + dy + height, 1 + dx : 1 + dx + width]
        gradient = (elevation - neighbor) / D8_DISTANCES[index]
        steeper = gradient > best
        best = np.where(steeper, gradient, best)
        directions[steeper] = index
    return directions


def calculate_flow_accumulation(flow_direction: np.ndarray, elevation: np.ndarray) -> np.ndarray:
    """
    Number of tiles draining through each tile, itself included.

    Tiles are processed from highest to lowest so every upstream total is
    final before it is passed downstream.
    """
    height, width = flow_direction.shape
    accumulation = np.ones((height, width), dtype=float)
    order = np.argsort(-np.asarray(elevation, dtype=float), axis=None, kind="stable")

    for flat_index in order:
        y, x = divmod(int(flat_index), width)
        direction = flow_direction[y, x]
        if direction == NO_FLOW:
            continue
        dx, dy = D8_DIRECTIONS[direction]
        nx, ny = x + dx, y + dy
        if 0 <= nx < width and 0 <= ny < height:
            accumulation[ny, nx] += accumulation[y, x]
    return accumulation


def stream_threshold(hydrology: HydrologyType, multiplier: float = 1.0) -> float:
    """Accumulation at or above which a tile carries a stream."""
    return STREAM_THRESHOLDS.get(hydrology, DEFAULT_STREAM_THRESHOLD) * multiplier


def identify_streams(accumulation: np.ndarray, threshold: float) -> np.ndarray:
    return np.asarray(accumulation) >= threshold


def calculate_stream_orders(is_stream: np.ndarray, flow_direction: np.ndarray) -> np.ndarray:
    """
    Strahler order per tile, 0 off-stream.

    Orders start at 1 and are relaxed until no tile changes. A tile takes the
    maximum order among upstream stream tiles flowing into it, plus one when
    at least two tributaries share that maximum. Orders never decrease, so the
    loop ends within the longest flow path.
    """
    height, width = is_stream.shape
    orders = np.where(is_stream, 1, 0).astype(int)
    stream_tiles = [(int(x), int(y)) for y, x in zip(*np.nonzero(is_stream))]

    for _ in range(height * width):
        changed = False
        for x, y in stream_tiles:
            tributaries = []
            for index, (dx, dy) in enumerate(D8_DIRECTIONS):
                nx, ny = x - dx, y - dy
                if not (0 <= nx < width and 0 <= ny < height):
                    continue
                if flow_direction[ny, nx] == index and is_stream[ny, nx]:
                    tributaries.append(orders[ny, nx])
            if not tributaries:
                continue
            max_order = max(tributaries)
            new_order = max_order + 1 if tributaries.count(max_order) >= 2 else max_order
            if new_order > orders[y, x]:
                orders[y, x] = new_order
                changed = True
        if not changed:
            break
    return orders


def adjust_moisture(level: MoistureLevel, steps: int) -> MoistureLevel:
    return MoistureLevel(min(MoistureLevel.SATURATED, max(MoistureLevel.ARID, level + steps)))


def classify_moisture(
    hydrology: HydrologyType,
    water_depth: float,
    accumulation: float,
    permeability: PermeabilityLevel,
) -> MoistureLevel:
    """
    Moisture level of a single tile.

    Standing water saturates; high flow sets wet or moist; impermeable rock
    then holds one level more water and highly permeable rock drains one level.
    Dry ground in arid regions never rises above dry.
    """
    if hydrology == HydrologyType.ARID:
        level = MoistureLevel.ARID
    elif hydrology == HydrologyType.WETLAND:
        level = MoistureLevel.WET
    else:
        level = MoistureLevel.MODERATE

    if water_depth > 0:
        level = MoistureLevel.SATURATED
    elif accumulation > 20:
        level = MoistureLevel.WET
    elif accumulation > 10:
        level = MoistureLevel.MOIST

    if permeability == PermeabilityLevel.IMPERMEABLE and level != MoistureLevel.SATURATED:
        level = adjust_moisture(level, 1)
    elif permeability == PermeabilityLevel.HIGH:
        level = adjust_moisture(level, -1)

    if hydrology == HydrologyType.ARID and water_depth <= 0:
        level = min(level, MoistureLevel.DRY)
    return MoistureLevel(level)


def extract_stream_segments(
    is_stream: np.ndarray, flow_direction: np.ndarray, stream_order: np.ndarray
) -> List[StreamSegment]:
    """Trace stream polylines downstream from unvisited stream tiles in raster order."""
    height, width = is_stream.shape
    visited = np.zeros((height, width), dtype=bool)
    segments = []

    for start_y in range(height):
        for start_x in range(width):
            if not is_stream[start_y, start_x] or visited[start_y, start_x]:
                continue
            points = []
            max_order = 0
            x, y = start_x, start_y
            while 0 <= x < width and 0 <= y < height:
                if visited[y, x] or not is_stream[y, x]:
                    break
                visited[y, x] = True
                points.append((x, y))
                max_order = max(max_order, int(stream_order[y, x]))
                direction = flow_direction[y, x]
                if direction == NO_FLOW:
                    break
                dx, dy = D8_DIRECTIONS[direction]
                x, y = x + dx, y + dy
            if len(points) > 2:
                segments.append(StreamSegment(points, max_order, math.ceil(max_order / 2)))
    return segments


class HydrologyGenerator:
    """Generates surface water from topography and geology."""

    def __init__(
        self,
        topography: TopographyLayer,
        geology: GeologyLayer,
        context: TacticalMapContext,
        seed: Seed,
        options: Optional[HydrologyOptions] = None,
    ):
        if topography is None:
            raise LayerDependencyError.missing("hydrology", "topography")
        if geology is None:
            raise LayerDependencyError.missing("hydrology", "geology")
        require_shape("hydrology", "geology", geology.bedrock, topography.shape)

        self.topography = topography
        self.geology = geology
        self.context = context
        self.seed = seed
        self.options = options or HydrologyOptions()
        self.height, self.width = topography.shape

    @property
    def stream_threshold(self) -> float:
        return stream_threshold(self.context.hydrology, self.options.threshold_multiplier)

    def place_springs(self) -> List[Position]:
        """Springs on formation boundaries in rock that can hold groundwater."""
        if self.context.hydrology == HydrologyType.ARID:
            return []

        noise = NoiseGenerator.for_stream(self.seed, SPRING_STREAM)
        threshold = self.options.spring_threshold
        bonus = self.options.slope_spring_bonus

        springs = []
        for x, y in self.geology.transition_zones:
            if not self.geology.formation_at(x, y).can_have_springs:
                continue
            slope_bonus = bonus if self.topography.slope[y, x] > 15 else 0.0
            if noise.at(x * 0.5, y * 0.5) + slope_bonus > threshold:
                springs.append((x, y))
        return springs

    def calculate_water_depths(self, is_stream: np.ndarray, stream_order: np.ndarray) -> np.ndarray:
        """Stream depth by order and regime, plus pools in low flat ground."""
        topo = self.topography
        noise = NoiseGenerator.for_stream(self.seed, WATER_DEPTH_STREAM)
        ys, xs = np.mgrid[0 : self.height, 0 : self.width]

        regime = STREAM_DEPTH_MULTIPLIERS.get(self.context.hydrology, 1.0)
        depth = stream_order * 0.5 * regime
        depth = depth * (0.8 + noise.at(xs * 0.3, ys * 0.3) * 0.4)
        depth = np.where(topo.is_valley, depth * 1.5, depth)
        depth = np.where(is_stream, depth, 0.0)

        if self.context.hydrology != HydrologyType.ARID:
            low_ground = topo.elevation <= topo.min_elevation + (
                topo.max_elevation - topo.min_elevation
            ) * 0.3
            pool_site = (topo.is_valley | low_ground) & (topo.slope < 5)
            pool_chance = noise.at(xs * 0.2, ys * 0.2)
            forms_pool = pool_site & (pool_chance > self.options.pool_threshold)
            depth = np.where(forms_pool, np.maximum(depth, 1 + pool_chance * 2), depth)

        if self.context.required_features.has_water and not (depth > 0).any():
            y, x = np.unravel_index(int(np.argmin(topo.elevation)), topo.shape)
            depth[y, x] = 1.0
            logger.debug("Placed required water", x=int(x), y=int(y))

        return depth

    def calculate_moisture(self, water_depth: np.ndarray, accumulation: np.ndarray) -> np.ndarray:
        moisture = np.zeros((self.height, self.width), dtype=np.int8)
        permeability = [f.permeability for f in self.geology.formations]
        for y in range(self.height):
            for x in range(self.width):
                moisture[y, x] = classify_moisture(
                    self.context.hydrology,
                    float(water_depth[y, x]),
                    float(accumulation[y, x]),
                    permeability[self.geology.bedrock[y, x]],
                )
        return moisture

    def generate(self) -> HydrologyLayer:
        """
        Run the complete hydrology pipeline.

        Returns:
            HydrologyLayer with flow, streams, depths, moisture and springs
        """
        logger.info(
            "Starting hydrology layer generation",
            width=self.width,
            height=self.height,
            hydrology_type=self.context.hydrology.value,
            seed=self.seed.value,
        )

        elevation = self.topography.elevation
        flow_direction = calculate_flow_directions(elevation)
        accumulation = calculate_flow_accumulation(flow_direction, elevation)
        logger.debug("Calculated flow accumulation", max_accumulation=float(accumulation.max()))

        springs = self.place_springs()
        logger.debug("Placed springs", count=len(springs))

        threshold = self.stream_threshold
        is_stream = identify_streams(accumulation, threshold)
        stream_order = calculate_stream_orders(is_stream, flow_direction)
        logger.debug("Identified streams", threshold=threshold, stream_tiles=int(is_stream.sum()))

        water_depth = self.calculate_water_depths(is_stream, stream_order)
        moisture = self.calculate_moisture(water_depth, accumulation)

        is_spring = np.zeros((self.height, self.width), dtype=bool)
        for x, y in springs:
            is_spring[y, x] = True

        streams = extract_stream_segments(is_stream, flow_direction, stream_order)

        layer = HydrologyLayer(
            flow_direction=flow_direction,
            flow_accumulation=accumulation,
            water_depth=water_depth,
            moisture=moisture,
            is_stream=is_stream,
            stream_order=stream_order,
            is_spring=is_spring,
            streams=streams,
            springs=springs,
        )

        logger.info(
            "Hydrology layer generated",
            springs=len(springs),
            streams=len(streams),
            water_coverage=round(layer.total_water_coverage, 2),
        )
        return layer
