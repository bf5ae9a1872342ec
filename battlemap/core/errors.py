"""
Error types raised by the generation pipeline.

Three kinds of failure are distinguished:
- Invalid settings (bad dimensions, out-of-range multipliers, bad seeds,
  conflicting context) are detected before any stage runs.
- Layer dependency errors mean a stage received inconsistent input and
  indicate a pipeline bug.
- Warnings are not exceptions; they are collected on the result.
"""

from typing import Any, Dict, List, Optional


class MapGenerationError(Exception):
    """Base class for all map generation failures."""

    def __init__(
        self,
        code: str,
        message: str,
        metadata: Optional[Dict[str, Any]] = None,
        suggestions: Optional[List[str]] = None,
    ):
        super().__init__(message)
        self.code = code
        self.message = message
        self.metadata = metadata or {}
        self.suggestions = suggestions or []

    def to_dict(self) -> Dict[str, Any]:
        return {
            "code": self.code,
            "message": self.message,
            "metadata": self.metadata,
            "suggestions": self.suggestions,
        }


class InvalidSettingsError(MapGenerationError, ValueError):
    """Raised when generation settings fail validation."""

    @classmethod
    def invalid_dimensions(
        cls, width: Any, height: Any, minimum: int, maximum: int
    ) -> "InvalidSettingsError":
        return cls(
            "MAP_INVALID_DIMENSIONS",
            f"Invalid map dimensions: {width}x{height}. Dimensions must be integers "
            f"between {minimum}x{minimum} and {maximum}x{maximum}",
            metadata={"width": width, "height": height},
            suggestions=[f"Use dimensions between {minimum}x{minimum} and {maximum}x{maximum}"],
        )

    @classmethod
    def out_of_range(
        cls, name: str, value: Any, minimum: float, maximum: float
    ) -> "InvalidSettingsError":
        return cls(
            "SETTINGS_OUT_OF_RANGE",
            f"{name} {value} is outside the allowed range {minimum}..{maximum}",
            metadata={"field": name, "value": value, "minimum": minimum, "maximum": maximum},
            suggestions=[f"Use a {name} between {minimum} and {maximum}"],
        )

    @classmethod
    def invalid_cell_size(cls, cell_size: Any, maximum: int) -> "InvalidSettingsError":
        return cls(
            "MAP_INVALID_CELL_SIZE",
            f"Invalid cell size: {cell_size}. Cell size must be an integer between 1 and {maximum}",
            metadata={"cell_size": cell_size},
            suggestions=["Use the default 5ft tactical grid"],
        )


class InvalidSeedError(InvalidSettingsError):
    """Raised when a seed cannot be normalized to a valid integer."""

    @classmethod
    def invalid_type(cls, value: Any) -> "InvalidSeedError":
        return cls(
            "SEED_INVALID_TYPE",
            f"Invalid seed value: {value!r}. Seed must be an integer or a non-empty string",
            metadata={"seed": repr(value), "seed_type": type(value).__name__},
            suggestions=["Provide a valid string or integer as seed"],
        )

    @classmethod
    def out_of_range(cls, value: int, minimum: int, maximum: int) -> "InvalidSeedError":
        return cls(
            "SEED_OUT_OF_RANGE",
            f"Seed {value} is outside the allowed range {minimum}..{maximum}",
            metadata={"seed": value, "minimum": minimum, "maximum": maximum},
            suggestions=[f"Use an integer seed between {minimum} and {maximum}"],
        )

    @classmethod
    def empty_string(cls) -> "InvalidSeedError":
        return cls(
            "SEED_EMPTY_STRING",
            "Seed string cannot be empty",
            suggestions=["Provide a non-empty seed string"],
        )


class InvalidContextError(InvalidSettingsError):
    """Raised when explicitly requested context values contradict each other."""

    @classmethod
    def incompatible(cls, reason: str, **metadata: Any) -> "InvalidContextError":
        return cls(
            "CONTEXT_INCOMPATIBLE",
            f"Invalid tactical map context: {reason}",
            metadata=metadata,
            suggestions=["Leave one of the conflicting values unset so it can be derived"],
        )


class LayerDependencyError(MapGenerationError):
    """Raised when a stage receives missing or mismatched layer data."""

    @classmethod
    def missing(cls, current_layer: str, required_layer: str) -> "LayerDependencyError":
        return cls(
            "INVALID_LAYER_DEPENDENCY",
            f"{current_layer} layer requires {required_layer} layer data",
            metadata={"current_layer": current_layer, "required_layer": required_layer},
            suggestions=[f"Generate {required_layer} layer first"],
        )

    @classmethod
    def dimension_mismatch(
        cls, current_layer: str, required_layer: str, expected: tuple, actual: tuple
    ) -> "LayerDependencyError":
        return cls(
            "LAYER_DIMENSION_MISMATCH",
            f"{current_layer} layer expected {required_layer} grid of shape "
            f"{expected} but received {actual}",
            metadata={
                "current_layer": current_layer,
                "required_layer": required_layer,
                "expected": list(expected),
                "actual": list(actual),
            },
        )


def require_shape(current_layer: str, required_layer: str, grid, shape: tuple) -> None:
    """Raise LayerDependencyError unless ``grid`` has the expected (height, width) shape."""
    if grid is None:
        raise LayerDependencyError.missing(current_layer, required_layer)
    actual = tuple(grid.shape[:2])
    if actual != tuple(shape):
        raise LayerDependencyError.dimension_mismatch(
            current_layer, required_layer, tuple(shape), actual
        )
