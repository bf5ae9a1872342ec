"""
Topography layer generation.

This module implements:
- Three-layer elevation synthesis (macro gradient, tactical undulations,
  geological texture) scaled to the physical map size
- Differential erosion driven by rock resistance, slope, fractures and climate
- Rock-specific erosional features for rugged terrain
- Variable smoothing by erosion susceptibility and topographic position
- Slope, aspect and relative elevation per tile
- Ridge, valley and drainage classification
"""

from dataclasses import dataclass
from enum import Enum
from typing import List, Optional, Tuple

import numpy as np
import structlog

from ..config.formations import RockType
from ..utils.random import Seed
from .context import ElevationZone, HydrologyType, TacticalMapContext
from .errors import LayerDependencyError
from .geology import GeologyLayer
from .noise import (
    EROSION_STREAM,
    GEOLOGICAL_FEATURE_STREAM,
    TOPOGRAPHY_MACRO_STREAM,
    TOPOGRAPHY_TACTICAL_STREAM,
    TOPOGRAPHY_TEXTURE_STREAM,
    NoiseGenerator,
)

logger = structlog.get_logger()


class AspectDirection(str, Enum):
    NORTH = "N"
    NORTHEAST = "NE"
    EAST = "E"
    SOUTHEAST = "SE"
    SOUTH = "S"
    SOUTHWEST = "SW"
    WEST = "W"
    NORTHWEST = "NW"
    FLAT = "flat"


# 45 degree sectors clockwise from east, matching atan2 with y pointing south
ASPECT_SECTORS = (
    AspectDirection.EAST,
    AspectDirection.SOUTHEAST,
    AspectDirection.SOUTH,
    AspectDirection.SOUTHWEST,
    AspectDirection.WEST,
    AspectDirection.NORTHWEST,
    AspectDirection.NORTH,
    AspectDirection.NORTHEAST,
)

ZONE_MULTIPLIERS = {
    ElevationZone.LOWLAND: 0.3,
    ElevationZone.FOOTHILLS: 0.6,
    ElevationZone.HIGHLAND: 0.8,
    ElevationZone.ALPINE: 1.0,
}

CLIMATE_WETNESS = {
    HydrologyType.ARID: 0.3,
    HydrologyType.SEASONAL: 0.6,
    HydrologyType.STREAM: 0.7,
    HydrologyType.RIVER: 0.8,
    HydrologyType.LAKE: 0.75,
    HydrologyType.COASTAL: 0.9,
    HydrologyType.WETLAND: 1.0,
}

TEXTURE_INTENSITY = {
    RockType.CARBONATE: 0.8,
    RockType.VOLCANIC: 0.7,
    RockType.GRANITIC: 0.6,
    RockType.METAMORPHIC: 0.5,
    RockType.CLASTIC: 0.3,
    RockType.EVAPORITE: 0.2,
}


@dataclass
class TopographyOptions:
    """Topography generation options."""

    terrain_ruggedness: float = 1.0  # 0.5 gentle old terrain, 2.0 young sharp terrain
    elevation_variance: float = 1.0  # Scales relief within the elevation zone
    cell_size: int = 5  # Feet per tile

    @property
    def relief_multiplier(self) -> float:
        return float(np.interp(self.elevation_variance, [0.5, 1.0, 2.0], [0.2, 0.4, 0.8]))

    def zone_multiplier(self, zone: ElevationZone) -> float:
        return ZONE_MULTIPLIERS.get(zone, 0.5) * self.elevation_variance


@dataclass
class TopographyTile:
    """Topography data for a single tile."""

    elevation: float
    slope: float
    aspect: AspectDirection
    relative_elevation: float
    is_ridge: bool
    is_valley: bool
    is_drainage: bool


@dataclass
class TopographyLayer:
    """Complete topography layer for a map."""

    elevation: np.ndarray
    slope: np.ndarray  # degrees, [0, 90]
    aspect: List[List[AspectDirection]]
    relative_elevation: np.ndarray  # [-1, 1]
    is_ridge: np.ndarray
    is_valley: np.ndarray
    is_drainage: np.ndarray

    @property
    def shape(self) -> Tuple[int, int]:
        return self.elevation.shape

    @property
    def height(self) -> int:
        return self.elevation.shape[0]

    @property
    def width(self) -> int:
        return self.elevation.shape[1]

    @property
    def min_elevation(self) -> float:
        return float(self.elevation.min())

    @property
    def max_elevation(self) -> float:
        return float(self.elevation.max())

    @property
    def average_slope(self) -> float:
        return float(self.slope.mean())

    def tile(self, x: int, y: int) -> TopographyTile:
        return TopographyTile(
            elevation=float(self.elevation[y, x]),
            slope=float(self.slope[y, x]),
            aspect=self.aspect[y][x],
            relative_elevation=float(self.relative_elevation[y, x]),
            is_ridge=bool(self.is_ridge[y, x]),
            is_valley=bool(self.is_valley[y, x]),
            is_drainage=bool(self.is_drainage[y, x]),
        )


def _gradients(elevation: np.ndarray) -> Tuple[np.ndarray, np.ndarray, np.ndarray]:
    """dx, dy and mean 4-neighbor elevation; border tiles use themselves for missing neighbors."""
    padded = np.pad(elevation, 1, mode="edge")
    north = padded[:-2, 1:-1]
    south = padded[2:, 1:-1]
    west = padded[1:-1, :-2]
    east = padded[1:-1, 2:]
    # Two tiles of 5ft between east and west samples
    dx = (east - west) / 10
    dy = (south - north) / 10
    mean = (north + south + east + west) / 4
    return dx, dy, mean


def slope_grid(elevation: np.ndarray) -> np.ndarray:
    dx, dy, _ = _gradients(np.asarray(elevation, dtype=float))
    return np.minimum(90.0, np.degrees(np.arctan(np.sqrt(dx * dx + dy * dy))))


def calculate_aspect(dx: float, dy: float) -> AspectDirection:
    """Compass direction the slope faces, FLAT when there is no gradient."""
    if dx == 0 and dy == 0:
        return AspectDirection.FLAT
    angle = (np.degrees(np.arctan2(dy, dx)) + 360) % 360
    return ASPECT_SECTORS[int(((angle + 22.5) % 360) // 45)]


def calculate_topography(elevation: np.ndarray) -> TopographyLayer:
    """
    Derive slope, aspect and relative elevation from an elevation grid.

    Ridge, valley and drainage flags are left False; identify_terrain_features
    fills them in.

    Args:
        elevation: Elevation in feet, shape (height, width)

    Returns:
        TopographyLayer owning a copy of the elevation grid
    """
    elevation = np.array(elevation, dtype=float)
    dx, dy, mean = _gradients(elevation)
    slope = np.minimum(90.0, np.degrees(np.arctan(np.sqrt(dx * dx + dy * dy))))
    relative = np.clip((elevation - mean) / 10, -1.0, 1.0)

    height, width = elevation.shape
    aspect = [
        [calculate_aspect(float(dx[y, x]), float(dy[y, x])) for x in range(width)]
        for y in range(height)
    ]

    return TopographyLayer(
        elevation=elevation,
        slope=slope,
        aspect=aspect,
        relative_elevation=relative,
        is_ridge=np.zeros(elevation.shape, dtype=bool),
        is_valley=np.zeros(elevation.shape, dtype=bool),
        is_drainage=np.zeros(elevation.shape, dtype=bool),
    )


def identify_terrain_features(layer: TopographyLayer) -> TopographyLayer:
    """
    Mark ridges, valleys and drainage in place over the interior tiles.

    A tile with at least 6 of 8 neighbors lower is a ridge; otherwise one with
    at least 6 higher is a valley and drains. Steep tiles sitting below their
    neighbors also drain.
    """
    height, width = layer.shape
    if height < 3 or width < 3:
        return layer

    e = layer.elevation
    center = e[1:-1, 1:-1]
    lower = np.zeros(center.shape, dtype=int)
    higher = np.zeros(center.shape, dtype=int)
    for dy in (-1, 0, 1):
        for dx in (-1, 0, 1):
            if dx == 0 and dy == 0:
                continue
            neighbor = e[1 + dy : height - 1 + dy, 1 + dx : width - 1 + dx]
            lower += neighbor < center
            higher += neighbor > center

    ridge = lower >= 6
    valley = ~ridge & (higher >= 6)
    steep_drain = (layer.slope[1:-1, 1:-1] > 30) & (layer.relative_elevation[1:-1, 1:-1] < -0.3)

    layer.is_ridge[1:-1, 1:-1] = ridge
    layer.is_valley[1:-1, 1:-1] = valley
    layer.is_drainage[1:-1, 1:-1] = valley | steep_drain
    return layer


class TopographyGenerator:
    """Generates topography from the geology layer."""

    def __init__(
        self,
        geology: GeologyLayer,
        context: TacticalMapContext,
        seed: Seed,
        options: Optional[TopographyOptions] = None,
    ):
        if geology is None:
            raise LayerDependencyError.missing("topography", "geology")
        self.geology = geology
        self.context = context
        self.seed = seed
        self.options = options or TopographyOptions()
        self.height, self.width = geology.shape

        self._ys, self._xs = np.mgrid[0 : self.height, 0 : self.width]
        self.max_elevation = self._max_elevation()

    def _max_elevation(self) -> float:
        """Relief scaled to the physical map size, elevation zone and ruggedness."""
        min_dimension = min(self.width, self.height) * self.options.cell_size
        ruggedness_factor = 0.4 + self.options.terrain_ruggedness * 0.6
        base_range = min_dimension * self.options.relief_multiplier
        return base_range * self.options.zone_multiplier(self.context.elevation) * ruggedness_factor

    @staticmethod
    def _normalize(values: np.ndarray) -> np.ndarray:
        low, high = values.min(), values.max()
        if high == low:
            return np.full(values.shape, 0.5)
        return (values - low) / (high - low)

    def generate_base_elevations(self) -> np.ndarray:
        """Sum of the macro, tactical and texture layers, floored at zero."""
        r = self.options.terrain_ruggedness
        span = self.max_elevation
        xs, ys = self._xs, self._ys

        macro_noise = NoiseGenerator.for_stream(self.seed, TOPOGRAPHY_MACRO_STREAM)
        macro = self._normalize(macro_noise.octaves(xs * 0.001, ys * 0.001, 2, 0.6))
        macro = macro * span * (0.7 - (r - 0.5) * 0.2)

        tactical_scale = 0.015 * (0.7 + 0.6 * r)
        tactical_noise = NoiseGenerator.for_stream(self.seed, TOPOGRAPHY_TACTICAL_STREAM)
        tactical = self._normalize(
            tactical_noise.octaves(
                xs * tactical_scale, ys * tactical_scale, int(round(1 + r * 1.5)), 0.5
            )
        )
        tactical = (tactical - 0.5) * span * (0.15 + (r - 0.5) * 0.267)

        texture_scale = 0.02 * (0.5 + 0.75 * r)
        texture_noise = NoiseGenerator.for_stream(self.seed, TOPOGRAPHY_TEXTURE_STREAM)
        texture = texture_noise.octaves(xs * texture_scale, ys * texture_scale, 2, 0.5) - 0.5
        intensity = np.array(
            [TEXTURE_INTENSITY.get(f.rock_type, 0.4) for f in self.geology.formations]
        )[self.geology.bedrock] * r
        texture = texture * intensity * span * (0.02 + (r - 0.5) * 0.053)

        return np.maximum(0.0, macro + tactical + texture)

    def erosion_susceptibility(self, elevation: np.ndarray) -> np.ndarray:
        """Per-tile erosion susceptibility in [0, 1]."""
        wetness = CLIMATE_WETNESS.get(self.context.hydrology, 0.6)
        resistance = self.geology.property_grid("erosion_resistance")
        slope_factor = np.minimum(1.5, 1 + slope_grid(elevation) / 60)
        fracture_factor = 1 + self.geology.fracture_intensity * 0.5
        age_factor = 2.0 - self.options.terrain_ruggedness

        susceptibility = (
            0.3 * (1 - resistance)
            + 0.2 * (slope_factor - 1)
            + 0.2 * (fracture_factor - 1)
            + 0.15 * (wetness - 0.5)
            + 0.15 * (age_factor - 1)
        )
        return np.clip(susceptibility, 0.0, 1.0)

    def apply_differential_erosion(self, elevation: np.ndarray) -> np.ndarray:
        noise = NoiseGenerator.for_stream(self.seed, EROSION_STREAM)
        variation = 0.7 + noise.at(self._xs * 0.1, self._ys * 0.1) * 0.6
        susceptibility = self.erosion_susceptibility(elevation)
        # ~8ft of erosion at 50ft of relief
        amount = susceptibility * variation * (elevation.max() / 50) * 8
        return np.maximum(0.0, elevation - amount)

    def apply_geological_features(self, elevation: np.ndarray) -> None:
        """Rock-specific features, applied in place in raster order."""
        noise = NoiseGenerator.for_stream(self.seed, GEOLOGICAL_FEATURE_STREAM)
        xs, ys = self._xs, self._ys
        dissolution = noise.at(xs * 0.12, ys * 0.12)
        fracturing = noise.at(xs * 0.15, ys * 0.15)
        wash = noise.at(xs * 0.08, ys * 0.08)
        layering = noise.at(xs * 0.2, ys * 0.2)

        max_elevation = self.max_elevation
        feature_scale = max_elevation / 50
        resistance = self.geology.property_grid("erosion_resistance")
        fracture = self.geology.fracture_intensity

        for y in range(self.height):
            for x in range(self.width):
                rock_type = self.geology.formation_at(x, y).rock_type
                if rock_type == RockType.CARBONATE:
                    self._dissolve(elevation, x, y, fracture[y, x], dissolution[y, x], feature_scale)
                elif rock_type == RockType.GRANITIC:
                    self._fracture(
                        elevation, x, y, fracture[y, x], fracturing[y, x], max_elevation, feature_scale
                    )
                elif rock_type == RockType.CLASTIC:
                    strength = wash[y, x]
                    if resistance[y, x] < 0.3 and strength > 0.7:
                        steepness = 1.0 - resistance[y, x]
                        depth = (5 + strength * 10 * steepness) * feature_scale
                        elevation[y, x] = max(0.0, elevation[y, x] - depth)
                elif rock_type == RockType.METAMORPHIC:
                    strength = layering[y, x]
                    if strength > 0.65:
                        tooth = (3 + strength * 5) * feature_scale
                        elevation[y, x] += tooth if (x + y) % 3 == 0 else -tooth * 0.5

    def _dissolve(self, elevation, x, y, fracture, strength, feature_scale) -> None:
        if fracture > 0.6 and strength > 0.65:
            depth = (8 + strength * 15) * feature_scale
            elevation[y, x] = max(0.0, elevation[y, x] - depth)

        # Dolina with radial falloff
        if fracture > 0.7 and strength > 0.8:
            depth = (10 + strength * 20) * feature_scale
            for dy in range(-2, 3):
                for dx in range(-2, 3):
                    nx, ny = x + dx, y + dy
                    if 0 <= nx < self.width and 0 <= ny < self.height:
                        dist = np.hypot(dx, dy)
                        if dist < 3:
                            falloff = (3 - dist) / 3
                            elevation[ny, nx] = max(0.0, elevation[ny, nx] - depth * falloff)

    def _fracture(self, elevation, x, y, fracture, strength, max_elevation, feature_scale) -> None:
        height_ratio = elevation[y, x] / max_elevation if max_elevation else 0.0
        if height_ratio > 0.7 and fracture > 0.6 and strength > 0.75:
            elevation[y, x] += (10 + strength * 20) * feature_scale
        elif height_ratio < 0.4 and fracture < 0.4:
            # Dome rounding, the center sample counts twice
            total = elevation[y, x]
            count = 1
            for dy in range(-2, 3):
                for dx in range(-2, 3):
                    nx, ny = x + dx, y + dy
                    if 0 <= nx < self.width and 0 <= ny < self.height:
                        total += elevation[ny, nx]
                        count += 1
            elevation[y, x] = total / count

    @staticmethod
    def topographic_position(elevation: np.ndarray) -> Tuple[np.ndarray, np.ndarray]:
        """(valley, ridge) masks from the 8-neighborhood, 60% majority over in-bounds neighbors."""
        padded = np.pad(elevation, 1, mode="constant", constant_values=np.nan)
        height, width = elevation.shape
        lower = np.zeros(elevation.shape, dtype=int)
        higher = np.zeros(elevation.shape, dtype=int)
        total = np.zeros(elevation.shape, dtype=int)
        for dy in (-1, 0, 1):
            for dx in (-1, 0, 1):
                if dx == 0 and dy == 0:
                    continue
                neighbor = padded[1 + dy : 1 + dy + height, 1 + dx : 1 + dx + width]
                valid = ~np.isnan(neighbor)
                total += valid
                lower += valid & (neighbor < elevation)
                higher += valid & (neighbor > elevation)
        valley = higher >= total * 0.6
        ridge = ~valley & (lower >= total * 0.6)
        return valley, ridge

    def smooth_elevations(self, elevation: np.ndarray) -> np.ndarray:
        """
        Variable smoothing.

        Highly erodible tiles get more passes, valleys one extra, ridges one
        fewer. Ruggedness 2.0 leaves a single pass over the tiles that need it.
        """
        max_passes = max(0, int(round(6 - self.options.terrain_ruggedness * 3)))
        susceptibility = self.erosion_susceptibility(elevation)
        valley, ridge = self.topographic_position(elevation)

        passes = np.floor(susceptibility * max_passes).astype(int)
        passes = np.where(valley, passes + 1, passes)
        passes = np.where(ridge, passes - 1, passes)
        passes = np.maximum(0, passes)

        inside = np.pad(np.ones(elevation.shape), 1, mode="constant", constant_values=0.0)
        neighbor_count = 4 + (
            inside[:-2, 1:-1] + inside[2:, 1:-1] + inside[1:-1, :-2] + inside[1:-1, 2:]
        )

        result = elevation
        for current_pass in range(max_passes + 1):
            padded = np.pad(result, 1, mode="constant", constant_values=0.0)
            neighbor_sum = (
                padded[:-2, 1:-1] + padded[2:, 1:-1] + padded[1:-1, :-2] + padded[1:-1, 2:]
            )
            smoothed = (result * 4 + neighbor_sum) / neighbor_count
            result = np.where(passes >= current_pass, smoothed, result)
        return result

    def generate(self) -> TopographyLayer:
        """
        Run the complete topography pipeline.

        Returns:
            TopographyLayer with elevation, slope, aspect and terrain flags
        """
        logger.info(
            "Starting topography layer generation",
            width=self.width,
            height=self.height,
            elevation_zone=self.context.elevation.value,
            seed=self.seed.value,
        )

        elevation = self.generate_base_elevations()
        logger.debug("Generated base elevations", max_elevation=self.max_elevation)

        elevation = self.apply_differential_erosion(elevation)

        if self.options.terrain_ruggedness >= 1.5:
            self.apply_geological_features(elevation)
            logger.debug("Applied geological features")

        elevation = self.smooth_elevations(elevation)

        layer = identify_terrain_features(calculate_topography(elevation))

        logger.info(
            "Topography layer generated",
            min_elevation=round(layer.min_elevation, 2),
            max_elevation=round(layer.max_elevation, 2),
            average_slope=round(layer.average_slope, 2),
            ridges=int(layer.is_ridge.sum()),
            valleys=int(layer.is_valley.sum()),
        )
        return layer
