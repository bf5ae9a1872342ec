"""
Configuration modules for map generation.
"""

from .config import Settings, settings
from .formations import (
    FORMATIONS,
    FORMATIONS_BY_BIOME,
    FormationName,
    GeologicalFormation,
    formations_for_biome,
    get_formation,
    list_formations,
)

__all__ = [
    'Settings',
    'settings',
    'FORMATIONS',
    'FORMATIONS_BY_BIOME',
    'FormationName',
    'GeologicalFormation',
    'formations_for_biome',
    'get_formation',
    'list_formations',
]
