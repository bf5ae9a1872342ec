"""
Plain-data export of generated maps.

serialize_map turns a MapGenerationResult into JSON-safe nested dicts and
lists: enums become their string values, numpy arrays become lists of rows
and numpy scalars become Python numbers.
"""

from dataclasses import fields, is_dataclass
from enum import Enum
from typing import Any, Dict

import numpy as np

from .generator import MapGenerationResult
from .hydrology import MoistureLevel


def to_builtin(value: Any) -> Any:
    """Recursively convert enums, numpy values and dataclasses to builtins."""
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, np.ndarray):
        return value.tolist()
    if isinstance(value, np.generic):
        return value.item()
    if is_dataclass(value) and not isinstance(value, type):
        return {f.name: to_builtin(getattr(value, f.name)) for f in fields(value)}
    if isinstance(value, dict):
        return {str(to_builtin(k)): to_builtin(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [to_builtin(v) for v in value]
    return value


def _geology(layer) -> Dict[str, Any]:
    return {
        "primary_formation": layer.primary_formation.name,
        "secondary_formation": layer.secondary_formation.name if layer.secondary_formation else None,
        "formations": [to_builtin(f) for f in layer.formations],
        "bedrock": to_builtin(layer.bedrock),
        "soil_depth": to_builtin(layer.soil_depth),
        "fracture_intensity": to_builtin(layer.fracture_intensity),
        "features": to_builtin(layer.features),
        "transition_zones": to_builtin(layer.transition_zones),
    }


def _topography(layer) -> Dict[str, Any]:
    return {
        "elevation": to_builtin(layer.elevation),
        "slope": to_builtin(layer.slope),
        "aspect": to_builtin(layer.aspect),
        "relative_elevation": to_builtin(layer.relative_elevation),
        "is_ridge": to_builtin(layer.is_ridge),
        "is_valley": to_builtin(layer.is_valley),
        "is_drainage": to_builtin(layer.is_drainage),
        "min_elevation": layer.min_elevation,
        "max_elevation": layer.max_elevation,
        "average_slope": layer.average_slope,
    }


def _hydrology(layer) -> Dict[str, Any]:
    return {
        "flow_direction": to_builtin(layer.flow_direction),
        "flow_accumulation": to_builtin(layer.flow_accumulation),
        "water_depth": to_builtin(layer.water_depth),
        "moisture": [
            [MoistureLevel(level).name.lower() for level in row] for row in layer.moisture.tolist()
        ],
        "is_stream": to_builtin(layer.is_stream),
        "is_spring": to_builtin(layer.is_spring),
        "is_pool": to_builtin(layer.is_pool),
        "stream_order": to_builtin(layer.stream_order),
        "streams": to_builtin(layer.streams),
        "springs": to_builtin(layer.springs),
        "total_water_coverage": layer.total_water_coverage,
    }


def _vegetation(layer, include_plants: bool) -> Dict[str, Any]:
    data = {
        "canopy_height": to_builtin(layer.canopy_height),
        "canopy_density": to_builtin(layer.canopy_density),
        "vegetation_type": to_builtin(layer.vegetation_type),
        "dominant_species": to_builtin(layer.dominant_species),
        "ground_cover": to_builtin(layer.ground_cover),
        "is_passable": to_builtin(layer.is_passable),
        "provides_concealment": to_builtin(layer.provides_concealment),
        "provides_cover": to_builtin(layer.provides_cover),
        "forest_patches": to_builtin(layer.forest_patches),
        "clearings": to_builtin(layer.clearings),
        "total_tree_count": layer.total_tree_count,
        "average_canopy_coverage": layer.average_canopy_coverage,
    }
    if include_plants:
        data["plants"] = to_builtin(layer.plants)
    return data


def _structures(layer) -> Dict[str, Any]:
    return {
        "tiles": to_builtin(layer.tiles),
        "buildings": to_builtin(layer.buildings),
        "roads": to_builtin(layer.roads),
        "bridges": to_builtin(layer.bridges),
        "decorations": to_builtin(layer.decorations),
        "total_structure_count": layer.total_structure_count,
    }


def _features(layer) -> Dict[str, Any]:
    return {
        "tiles": to_builtin(layer.tiles),
        "hazards": to_builtin(layer.hazards),
        "resources": to_builtin(layer.resources),
        "landmarks": to_builtin(layer.landmarks),
        "tactical_features": to_builtin(layer.tactical_features),
        "total_feature_count": layer.total_feature_count,
    }


def serialize_map(result: MapGenerationResult, include_plants: bool = False) -> Dict[str, Any]:
    """
    Export a generation result as JSON-safe data.

    Args:
        result: Completed generation result
        include_plants: Include per-tile plant lists (large)

    Returns:
        Nested dicts and lists keyed in snake_case
    """
    layers = result.layers
    context = result.context
    return {
        "width": result.width,
        "height": result.height,
        "seed": result.seed,
        "context": {
            "biome": context.biome.value,
            "elevation": context.elevation.value,
            "hydrology": context.hydrology.value,
            "development": context.development.value,
            "season": context.season.value,
            "required_features": to_builtin(context.required_features),
            "description": context.description(),
        },
        "layers": {
            "geology": _geology(layers.geology),
            "topography": _topography(layers.topography),
            "hydrology": _hydrology(layers.hydrology),
            "vegetation": _vegetation(layers.vegetation, include_plants),
            "structures": _structures(layers.structures),
            "features": _features(layers.features),
        },
        "statistics": to_builtin(result.statistics),
        "warnings": list(result.warnings),
        "generation_time_ms": result.generation_time_ms,
    }


def grids_equal(a: MapGenerationResult, b: MapGenerationResult) -> bool:
    """True when two results hold identical data in every layer."""
    first = serialize_map(a, include_plants=True)
    second = serialize_map(b, include_plants=True)
    first.pop("generation_time_ms")
    second.pop("generation_time_ms")
    return first == second
