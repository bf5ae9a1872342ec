"""
Tactical map context.

This module implements:
- Biome, elevation, hydrology, development and season classifications
- Compatibility rules between biome, elevation and hydrology
- Seed-derived contexts and reconciliation with explicit overrides
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import List, Optional

import structlog

from .errors import InvalidContextError

logger = structlog.get_logger()


class Biome(str, Enum):
    FOREST = "forest"
    MOUNTAIN = "mountain"
    PLAINS = "plains"
    SWAMP = "swamp"
    DESERT = "desert"
    COASTAL = "coastal"
    UNDERGROUND = "underground"


class ElevationZone(str, Enum):
    LOWLAND = "lowland"  # 0-500ft above sea level
    FOOTHILLS = "foothills"  # 500-2000ft
    HIGHLAND = "highland"  # 2000-5000ft
    ALPINE = "alpine"  # 5000ft+


class HydrologyType(str, Enum):
    ARID = "arid"
    SEASONAL = "seasonal"
    STREAM = "stream"
    RIVER = "river"
    LAKE = "lake"
    COASTAL = "coastal"
    WETLAND = "wetland"


class DevelopmentLevel(str, Enum):
    WILDERNESS = "wilderness"
    FRONTIER = "frontier"
    RURAL = "rural"
    SETTLED = "settled"
    URBAN = "urban"
    RUINS = "ruins"


class Season(str, Enum):
    SPRING = "spring"
    SUMMER = "summer"
    AUTUMN = "autumn"
    WINTER = "winter"


@dataclass(frozen=True)
class RequiredFeatures:
    """Features the caller wants guaranteed on the map."""

    has_road: bool = False
    has_bridge: bool = False
    has_ruins: bool = False
    has_cave: bool = False
    has_water: bool = False
    has_cliff: bool = False

    def names(self) -> List[str]:
        names = []
        if self.has_road:
            names.append("road")
        if self.has_bridge:
            names.append("bridge")
        if self.has_ruins:
            names.append("ruins")
        if self.has_cave:
            names.append("cave")
        if self.has_cliff:
            names.append("cliff")
        return names


def context_conflict(
    biome: Biome, elevation: Optional[ElevationZone], hydrology: Optional[HydrologyType]
) -> Optional[str]:
    """Reason the combination is invalid, or None if it is allowed."""
    if biome == Biome.UNDERGROUND and elevation == ElevationZone.ALPINE:
        return "underground biome cannot be at alpine elevation"
    if hydrology is None:
        return None
    if biome == Biome.DESERT and hydrology in (
        HydrologyType.RIVER,
        HydrologyType.LAKE,
        HydrologyType.WETLAND,
    ):
        return "desert biome incompatible with permanent water features"
    if biome == Biome.COASTAL and hydrology != HydrologyType.COASTAL:
        return "coastal biome must have coastal hydrology"
    if biome == Biome.SWAMP and hydrology != HydrologyType.WETLAND:
        return "swamp biome must have wetland hydrology"
    return None


def _rotate(enum_cls, start, accept):
    """First member at or after ``start`` (wrapping) that ``accept`` allows."""
    members = list(enum_cls)
    index = members.index(start)
    for step in range(len(members)):
        candidate = members[(index + step) % len(members)]
        if accept(candidate):
            return candidate
    return None


@dataclass(frozen=True)
class TacticalMapContext:
    """Resolved generation parameters for one run."""

    biome: Biome
    elevation: ElevationZone
    hydrology: HydrologyType
    development: DevelopmentLevel
    season: Season
    required_features: RequiredFeatures = field(default_factory=RequiredFeatures)

    def __post_init__(self):
        reason = context_conflict(self.biome, self.elevation, self.hydrology)
        if reason:
            raise InvalidContextError.incompatible(
                reason,
                biome=self.biome.value,
                elevation=self.elevation.value,
                hydrology=self.hydrology.value,
            )

    @classmethod
    def create(
        cls,
        biome,
        elevation,
        hydrology,
        development,
        season,
        required_features: Optional[RequiredFeatures] = None,
    ) -> "TacticalMapContext":
        return cls(
            Biome(biome),
            ElevationZone(elevation),
            HydrologyType(hydrology),
            DevelopmentLevel(development),
            Season(season),
            required_features or RequiredFeatures(),
        )

    @staticmethod
    def seed_indices(seed_value: int) -> dict:
        """Enum indices derived from different digits of the seed."""
        return {
            "biome": seed_value % len(Biome),
            "elevation": (seed_value // 100) % len(ElevationZone),
            "hydrology": (seed_value // 10000) % len(HydrologyType),
            "development": (seed_value // 1000000) % len(DevelopmentLevel),
            "season": (seed_value // 100000000) % len(Season),
        }

    @classmethod
    def from_seed(cls, seed) -> "TacticalMapContext":
        """Derive a full context from the seed alone."""
        return cls.resolve(seed)

    @classmethod
    def resolve(
        cls,
        seed,
        biome: Optional[Biome] = None,
        elevation: Optional[ElevationZone] = None,
        hydrology: Optional[HydrologyType] = None,
        development: Optional[DevelopmentLevel] = None,
        season: Optional[Season] = None,
        required_features: Optional[RequiredFeatures] = None,
    ) -> "TacticalMapContext":
        """
        Merge explicit overrides with seed-derived values.

        Explicit values always win. A seed-derived value that conflicts is
        rotated forward through its enum until it is compatible. Biome is
        reconciled against hydrology first, then elevation against biome.

        Args:
            seed: Seed for the run
            biome, elevation, hydrology, development, season: Optional overrides
            required_features: Features the map must contain

        Returns:
            A valid TacticalMapContext

        Raises:
            InvalidContextError: If two explicit values contradict each other
        """
        indices = cls.seed_indices(int(seed))
        explicit_biome = biome is not None
        explicit_elevation = elevation is not None
        explicit_hydrology = hydrology is not None

        biome = Biome(biome) if explicit_biome else list(Biome)[indices["biome"]]
        elevation = (
            ElevationZone(elevation)
            if explicit_elevation
            else list(ElevationZone)[indices["elevation"]]
        )
        hydrology = (
            HydrologyType(hydrology)
            if explicit_hydrology
            else list(HydrologyType)[indices["hydrology"]]
        )
        development = (
            DevelopmentLevel(development)
            if development is not None
            else list(DevelopmentLevel)[indices["development"]]
        )
        season = Season(season) if season is not None else list(Season)[indices["season"]]

        if explicit_biome:
            if explicit_hydrology:
                reason = context_conflict(biome, None, hydrology)
                if reason:
                    raise InvalidContextError.incompatible(
                        reason, biome=biome.value, hydrology=hydrology.value
                    )
            else:
                hydrology = _rotate(
                    HydrologyType, hydrology, lambda h: context_conflict(biome, None, h) is None
                )
        else:
            fixed_elevation = elevation if explicit_elevation else None
            rotated = _rotate(
                Biome,
                biome,
                lambda b: context_conflict(b, fixed_elevation, hydrology) is None,
            )
            if rotated != biome:
                logger.debug(
                    "Rotated seed-derived biome", derived=biome.value, resolved=rotated.value
                )
            biome = rotated

        if explicit_elevation:
            reason = context_conflict(biome, elevation, None)
            if reason:
                raise InvalidContextError.incompatible(
                    reason, biome=biome.value, elevation=elevation.value
                )
        else:
            elevation = _rotate(
                ElevationZone, elevation, lambda e: context_conflict(biome, e, None) is None
            )

        return cls(
            biome,
            elevation,
            hydrology,
            development,
            season,
            required_features or RequiredFeatures(),
        )

    def description(self) -> str:
        desc = f"{self.season.value} {self.elevation.value} {self.biome.value}"
        if self.hydrology != HydrologyType.ARID:
            desc += f" with {self.hydrology.value}"
        if self.development != DevelopmentLevel.WILDERNESS:
            desc += f" ({self.development.value})"
        features = self.required_features.names()
        if features:
            desc += f" featuring {', '.join(features)}"
        return desc

    def should_have_cliffs(self) -> bool:
        return self.biome == Biome.MOUNTAIN or self.elevation in (
            ElevationZone.HIGHLAND,
            ElevationZone.ALPINE,
        )

    def should_have_dense_vegetation(self) -> bool:
        return self.biome in (Biome.FOREST, Biome.SWAMP) and self.season != Season.WINTER

    def should_have_snow(self) -> bool:
        return self.season == Season.WINTER and (
            self.elevation == ElevationZone.ALPINE
            or (self.elevation == ElevationZone.HIGHLAND and self.biome == Biome.MOUNTAIN)
        )

    def visibility_range(self) -> int:
        """Typical visibility in tiles."""
        if self.biome == Biome.UNDERGROUND:
            return 10
        if self.biome == Biome.FOREST and self.should_have_dense_vegetation():
            return 15
        if self.biome == Biome.SWAMP:
            return 20
        if self.biome in (Biome.DESERT, Biome.PLAINS):
            return 50
        return 30
