"""
Deterministic coherent noise.

This module implements:
- Sine-hash value noise: frac(sin(x*12.9898 + y*78.233 + c) * 43758.5453)
- Fractal octave summation with amplitude persistence
- Whole-grid sampling over numpy coordinate arrays

A NoiseGenerator is a pure function of its stream constant, so stages that
use different constants never observe each other's noise.
"""

import numpy as np

# Stream multipliers applied to the seed value, one per purpose.
# Streams that share a multiplier are sampled at different coordinate scales.
GEOLOGY_FORMATION_STREAM = 1
BEDROCK_PATTERN_STREAM = 2
WEATHERING_STREAM = 3
SOIL_DEPTH_STREAM = 4
TOPOGRAPHY_MACRO_STREAM = 1
TOPOGRAPHY_TACTICAL_STREAM = 3
TOPOGRAPHY_TEXTURE_STREAM = 7
EROSION_STREAM = 5
GEOLOGICAL_FEATURE_STREAM = 11
SPRING_STREAM = 6
WATER_DEPTH_STREAM = 7
FOREST_STREAM = 8
PLANT_STREAM = 9
BUILDING_TYPE_STREAM = 10
BRIDGE_STREAM = 11
DECORATION_STREAM = 12
HAZARD_STREAM = 13
RESOURCE_STREAM = 14
LANDMARK_STREAM = 15
TACTICAL_FEATURE_STREAM = 16
PLANT_OFFSET_STREAM = 17
BUILDING_MATERIAL_STREAM = 18


class NoiseGenerator:
    """Value noise for one seed-derived stream."""

    A = 12.9898
    B = 78.233
    D = 43758.5453

    def __init__(self, stream_constant: float):
        self.stream_constant = float(stream_constant)

    @classmethod
    def for_stream(cls, seed, multiplier: int) -> "NoiseGenerator":
        return cls(seed.derive(multiplier))

    def at(self, x, y):
        """
        Sample noise at a point.

        Args:
            x: X coordinate, scalar or numpy array
            y: Y coordinate, scalar or numpy array

        Returns:
            Value in [0, 1) with the same shape as the inputs
        """
        n = np.sin(np.multiply(x, self.A) + np.multiply(y, self.B) + self.stream_constant) * self.D
        value = n - np.floor(n)
        # Floating point can round frac() up to exactly 1.0
        value = np.where(value >= 1.0, 0.0, value)
        if np.ndim(value) == 0:
            return float(value)
        return value

    def octaves(self, x, y, octaves: int = 4, persistence: float = 0.5):
        """Fractal sum of ``octaves`` frequency doublings, normalized to [0, 1)."""
        value = 0.0
        amplitude = 1.0
        frequency = 1.0
        max_value = 0.0
        for _ in range(max(1, int(octaves))):
            value = value + self.at(np.multiply(x, frequency), np.multiply(y, frequency)) * amplitude
            max_value += amplitude
            amplitude *= persistence
            frequency *= 2
        return value / max_value

    def grid(self, width: int, height: int, scale: float = 1.0) -> np.ndarray:
        """Sample at(x*scale, y*scale) for every tile, shape (height, width)."""
        ys, xs = np.mgrid[0:height, 0:width]
        return self.at(xs * scale, ys * scale)

    def octave_grid(
        self, width: int, height: int, scale: float, octaves: int, persistence: float = 0.5
    ) -> np.ndarray:
        ys, xs = np.mgrid[0:height, 0:width]
        return np.asarray(self.octaves(xs * scale, ys * scale, octaves, persistence), dtype=float)
