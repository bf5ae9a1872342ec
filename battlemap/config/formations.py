"""
Geological formation catalogue.

This module implements:
- Rock, mineral, structure and weathering classifications
- The closed set of named bedrock formations
- Formation candidate lists per biome
"""

from dataclasses import dataclass
from enum import Enum
from typing import Dict, List, Optional, Tuple


class RockType(str, Enum):
    """Primary rock types by formation process."""

    CARBONATE = "carbonate"
    GRANITIC = "granitic"
    VOLCANIC = "volcanic"
    CLASTIC = "clastic"
    METAMORPHIC = "metamorphic"
    EVAPORITE = "evaporite"


class Mineral(str, Enum):
    CALCITE = "calcite"
    DOLOMITE = "dolomite"
    QUARTZ = "quartz"
    FELDSPAR = "feldspar"
    MICA = "mica"
    HORNBLENDE = "hornblende"
    BASALT = "basalt"
    GYPSUM = "gypsum"
    HALITE = "halite"
    CLAY = "clay"


class GeologicalStructure(str, Enum):
    """Bedding pattern of a formation."""

    MASSIVE = "massive"
    HORIZONTAL = "horizontal"
    VERTICAL = "vertical"
    FOLDED = "folded"
    CROSS_BEDDED = "cross_bedded"


class JointOrientation(str, Enum):
    ORTHOGONAL = "orthogonal"
    HEXAGONAL = "hexagonal"
    RANDOM = "random"
    RADIAL = "radial"


class WeatheringType(str, Enum):
    MECHANICAL = "mechanical"
    CHEMICAL = "chemical"
    BOTH = "both"


class WeatheringRate(str, Enum):
    RAPID = "rapid"  # <100 years
    MODERATE = "moderate"  # 100-1000 years
    SLOW = "slow"  # >1000 years


class PermeabilityLevel(str, Enum):
    HIGH = "high"
    MODERATE = "moderate"
    LOW = "low"
    IMPERMEABLE = "impermeable"


class ChemicalStability(str, Enum):
    STABLE = "stable"
    MODERATE = "moderate"
    UNSTABLE = "unstable"


class GrainSize(str, Enum):
    CRYSTALLINE = "crystalline"
    COARSE = "coarse"
    MEDIUM = "medium"
    FINE = "fine"
    GLASSY = "glassy"


class TerrainFeature(str, Enum):
    """Surface features produced by weathering."""

    # Karst
    TOWER = "tower"
    SINKHOLE = "sinkhole"
    CAVE = "cave"
    KARREN = "karren"
    # Granitic
    DOME = "dome"
    CORESTONE = "corestone"
    GRUS = "grus"
    TOR = "tor"
    # Volcanic
    COLUMN = "column"
    LAVA_FLOW = "lava_flow"
    VOLCANIC_NECK = "volcanic_neck"
    TUFF = "tuff"
    # Clastic
    FIN = "fin"
    SLOT_CANYON = "slot_canyon"
    HOODOO = "hoodoo"
    ALCOVE = "alcove"
    # Metamorphic
    FOLIATION_PLANE = "foliation_plane"
    CRENULATION = "crenulation"
    SCHIST_RAVINE = "schist_ravine"
    # General
    CLIFF = "cliff"
    TALUS = "talus"
    LEDGE = "ledge"
    RAVINE = "ravine"


@dataclass(frozen=True)
class GeologicalFormation:
    """Immutable bedrock formation record."""

    name: str
    rock_type: RockType
    primary_mineral: Mineral
    secondary_mineral: Optional[Mineral]
    accessory_minerals: Tuple[Mineral, ...]
    bedding: GeologicalStructure
    joint_spacing: float  # meters between joints
    joint_orientation: JointOrientation
    hardness: float  # Mohs scale 1-10
    permeability: PermeabilityLevel
    chemical_stability: ChemicalStability
    grain_size: GrainSize
    weathering_type: WeatheringType
    weathering_rate: WeatheringRate
    weathering_products: Tuple[TerrainFeature, ...]

    @property
    def erosion_resistance(self) -> float:
        """Erosion resistance in [0, 1], higher is more resistant."""
        resistance = self.hardness / 10
        if self.chemical_stability == ChemicalStability.UNSTABLE:
            resistance *= 0.5
        elif self.chemical_stability == ChemicalStability.MODERATE:
            resistance *= 0.75
        if self.grain_size == GrainSize.FINE:
            resistance *= 1.1
        return min(1.0, resistance)

    @property
    def allows_caves(self) -> bool:
        return (
            self.chemical_stability == ChemicalStability.UNSTABLE
            and self.permeability != PermeabilityLevel.IMPERMEABLE
        )

    @property
    def can_have_springs(self) -> bool:
        return self.permeability in (PermeabilityLevel.MODERATE, PermeabilityLevel.LOW)

    @property
    def soil_depth_range(self) -> Tuple[float, float]:
        """(min, max) soil depth in feet; harder rock gives thinner soil."""
        base = 10 - self.hardness
        multiplier = 1.0
        if self.weathering_rate == WeatheringRate.RAPID:
            multiplier = 2.0
        elif self.weathering_rate == WeatheringRate.SLOW:
            multiplier = 0.5
        return (max(0.0, base * multiplier * 0.5), max(1.0, base * multiplier * 1.5))

    @property
    def fracture_intensity(self) -> float:
        return 1.0 / (self.joint_spacing + 1)

    def has_feature(self, feature: TerrainFeature) -> bool:
        return feature in self.weathering_products


class FormationName(str, Enum):
    LIMESTONE_KARST = "limestone_karst"
    DOLOMITE_TOWERS = "dolomite_towers"
    GRANITE_DOME = "granite_dome"
    WEATHERED_GRANODIORITE = "weathered_granodiorite"
    BASALT_COLUMNS = "basalt_columns"
    VOLCANIC_TUFF = "volcanic_tuff"
    SANDSTONE_FINS = "sandstone_fins"
    CROSS_BEDDED_SANDSTONE = "cross_bedded_sandstone"
    FOLIATED_SCHIST = "foliated_schist"
    SLATE_BEDS = "slate_beds"
    GYPSUM_BADLANDS = "gypsum_badlands"


_F = TerrainFeature

FORMATIONS: Dict[FormationName, GeologicalFormation] = {
    # Carbonate formations create karst terrain
    FormationName.LIMESTONE_KARST: GeologicalFormation(
        name=FormationName.LIMESTONE_KARST.value,
        rock_type=RockType.CARBONATE,
        primary_mineral=Mineral.CALCITE,
        secondary_mineral=Mineral.DOLOMITE,
        accessory_minerals=(),
        bedding=GeologicalStructure.HORIZONTAL,
        joint_spacing=5,
        joint_orientation=JointOrientation.ORTHOGONAL,
        hardness=3,
        permeability=PermeabilityLevel.MODERATE,
        chemical_stability=ChemicalStability.UNSTABLE,
        grain_size=GrainSize.FINE,
        weathering_type=WeatheringType.CHEMICAL,
        weathering_rate=WeatheringRate.MODERATE,
        weathering_products=(_F.TOWER, _F.SINKHOLE, _F.CAVE, _F.KARREN),
    ),
    FormationName.DOLOMITE_TOWERS: GeologicalFormation(
        name=FormationName.DOLOMITE_TOWERS.value,
        rock_type=RockType.CARBONATE,
        primary_mineral=Mineral.DOLOMITE,
        secondary_mineral=Mineral.CALCITE,
        accessory_minerals=(),
        bedding=GeologicalStructure.HORIZONTAL,
        joint_spacing=3,
        joint_orientation=JointOrientation.ORTHOGONAL,
        hardness=4,
        permeability=PermeabilityLevel.LOW,
        chemical_stability=ChemicalStability.MODERATE,
        grain_size=GrainSize.CRYSTALLINE,
        weathering_type=WeatheringType.CHEMICAL,
        weathering_rate=WeatheringRate.SLOW,
        weathering_products=(_F.TOWER, _F.LEDGE, _F.CLIFF),
    ),
    # Granitic formations create domes and boulders
    FormationName.GRANITE_DOME: GeologicalFormation(
        name=FormationName.GRANITE_DOME.value,
        rock_type=RockType.GRANITIC,
        primary_mineral=Mineral.QUARTZ,
        secondary_mineral=Mineral.FELDSPAR,
        accessory_minerals=(Mineral.MICA,),
        bedding=GeologicalStructure.MASSIVE,
        joint_spacing=10,
        joint_orientation=JointOrientation.ORTHOGONAL,
        hardness=6,
        permeability=PermeabilityLevel.LOW,
        chemical_stability=ChemicalStability.MODERATE,
        grain_size=GrainSize.COARSE,
        weathering_type=WeatheringType.MECHANICAL,
        weathering_rate=WeatheringRate.SLOW,
        weathering_products=(_F.DOME, _F.CORESTONE, _F.GRUS, _F.TOR),
    ),
    FormationName.WEATHERED_GRANODIORITE: GeologicalFormation(
        name=FormationName.WEATHERED_GRANODIORITE.value,
        rock_type=RockType.GRANITIC,
        primary_mineral=Mineral.FELDSPAR,
        secondary_mineral=Mineral.QUARTZ,
        accessory_minerals=(Mineral.HORNBLENDE,),
        bedding=GeologicalStructure.MASSIVE,
        joint_spacing=7,
        joint_orientation=JointOrientation.RANDOM,
        hardness=5,
        permeability=PermeabilityLevel.MODERATE,
        chemical_stability=ChemicalStability.MODERATE,
        grain_size=GrainSize.MEDIUM,
        weathering_type=WeatheringType.BOTH,
        weathering_rate=WeatheringRate.MODERATE,
        weathering_products=(_F.CORESTONE, _F.GRUS, _F.RAVINE),
    ),
    # Volcanic formations create columns and flows
    FormationName.BASALT_COLUMNS: GeologicalFormation(
        name=FormationName.BASALT_COLUMNS.value,
        rock_type=RockType.VOLCANIC,
        primary_mineral=Mineral.BASALT,
        secondary_mineral=None,
        accessory_minerals=(),
        bedding=GeologicalStructure.MASSIVE,
        joint_spacing=2,
        joint_orientation=JointOrientation.HEXAGONAL,
        hardness=6,
        permeability=PermeabilityLevel.LOW,
        chemical_stability=ChemicalStability.STABLE,
        grain_size=GrainSize.FINE,
        weathering_type=WeatheringType.MECHANICAL,
        weathering_rate=WeatheringRate.SLOW,
        weathering_products=(_F.COLUMN, _F.TALUS, _F.CLIFF),
    ),
    FormationName.VOLCANIC_TUFF: GeologicalFormation(
        name=FormationName.VOLCANIC_TUFF.value,
        rock_type=RockType.VOLCANIC,
        primary_mineral=Mineral.CLAY,
        secondary_mineral=Mineral.QUARTZ,
        accessory_minerals=(),
        bedding=GeologicalStructure.HORIZONTAL,
        joint_spacing=4,
        joint_orientation=JointOrientation.RANDOM,
        hardness=2,
        permeability=PermeabilityLevel.HIGH,
        chemical_stability=ChemicalStability.UNSTABLE,
        grain_size=GrainSize.FINE,
        weathering_type=WeatheringType.BOTH,
        weathering_rate=WeatheringRate.RAPID,
        weathering_products=(_F.TUFF, _F.ALCOVE, _F.HOODOO),
    ),
    # Clastic formations create canyons and fins
    FormationName.SANDSTONE_FINS: GeologicalFormation(
        name=FormationName.SANDSTONE_FINS.value,
        rock_type=RockType.CLASTIC,
        primary_mineral=Mineral.QUARTZ,
        secondary_mineral=Mineral.CLAY,
        accessory_minerals=(),
        bedding=GeologicalStructure.VERTICAL,
        joint_spacing=3,
        joint_orientation=JointOrientation.ORTHOGONAL,
        hardness=5,
        permeability=PermeabilityLevel.HIGH,
        chemical_stability=ChemicalStability.STABLE,
        grain_size=GrainSize.MEDIUM,
        weathering_type=WeatheringType.MECHANICAL,
        weathering_rate=WeatheringRate.MODERATE,
        weathering_products=(_F.FIN, _F.SLOT_CANYON, _F.ALCOVE),
    ),
    FormationName.CROSS_BEDDED_SANDSTONE: GeologicalFormation(
        name=FormationName.CROSS_BEDDED_SANDSTONE.value,
        rock_type=RockType.CLASTIC,
        primary_mineral=Mineral.QUARTZ,
        secondary_mineral=None,
        accessory_minerals=(),
        bedding=GeologicalStructure.CROSS_BEDDED,
        joint_spacing=5,
        joint_orientation=JointOrientation.RANDOM,
        hardness=4,
        permeability=PermeabilityLevel.HIGH,
        chemical_stability=ChemicalStability.STABLE,
        grain_size=GrainSize.COARSE,
        weathering_type=WeatheringType.MECHANICAL,
        weathering_rate=WeatheringRate.MODERATE,
        weathering_products=(_F.HOODOO, _F.ALCOVE, _F.FIN),
    ),
    # Metamorphic formations create folded, platy terrain
    FormationName.FOLIATED_SCHIST: GeologicalFormation(
        name=FormationName.FOLIATED_SCHIST.value,
        rock_type=RockType.METAMORPHIC,
        primary_mineral=Mineral.MICA,
        secondary_mineral=Mineral.QUARTZ,
        accessory_minerals=(Mineral.FELDSPAR,),
        bedding=GeologicalStructure.FOLDED,
        joint_spacing=2,
        joint_orientation=JointOrientation.RANDOM,
        hardness=4,
        permeability=PermeabilityLevel.LOW,
        chemical_stability=ChemicalStability.MODERATE,
        grain_size=GrainSize.MEDIUM,
        weathering_type=WeatheringType.BOTH,
        weathering_rate=WeatheringRate.MODERATE,
        weathering_products=(_F.FOLIATION_PLANE, _F.SCHIST_RAVINE, _F.CRENULATION),
    ),
    FormationName.SLATE_BEDS: GeologicalFormation(
        name=FormationName.SLATE_BEDS.value,
        rock_type=RockType.METAMORPHIC,
        primary_mineral=Mineral.CLAY,
        secondary_mineral=Mineral.MICA,
        accessory_minerals=(),
        bedding=GeologicalStructure.HORIZONTAL,
        joint_spacing=1,
        joint_orientation=JointOrientation.ORTHOGONAL,
        hardness=3,
        permeability=PermeabilityLevel.IMPERMEABLE,
        chemical_stability=ChemicalStability.STABLE,
        grain_size=GrainSize.FINE,
        weathering_type=WeatheringType.MECHANICAL,
        weathering_rate=WeatheringRate.MODERATE,
        weathering_products=(_F.FOLIATION_PLANE, _F.TALUS, _F.LEDGE),
    ),
    # Evaporite formations create badlands
    FormationName.GYPSUM_BADLANDS: GeologicalFormation(
        name=FormationName.GYPSUM_BADLANDS.value,
        rock_type=RockType.EVAPORITE,
        primary_mineral=Mineral.GYPSUM,
        secondary_mineral=Mineral.HALITE,
        accessory_minerals=(),
        bedding=GeologicalStructure.HORIZONTAL,
        joint_spacing=2,
        joint_orientation=JointOrientation.RANDOM,
        hardness=2,
        permeability=PermeabilityLevel.MODERATE,
        chemical_stability=ChemicalStability.UNSTABLE,
        grain_size=GrainSize.CRYSTALLINE,
        weathering_type=WeatheringType.CHEMICAL,
        weathering_rate=WeatheringRate.RAPID,
        weathering_products=(_F.SINKHOLE, _F.CAVE, _F.RAVINE),
    ),
}


# Candidate formations per biome value, in selection order
FORMATIONS_BY_BIOME: Dict[str, Tuple[FormationName, ...]] = {
    "mountain": (
        FormationName.LIMESTONE_KARST,
        FormationName.DOLOMITE_TOWERS,
        FormationName.GRANITE_DOME,
        FormationName.BASALT_COLUMNS,
        FormationName.FOLIATED_SCHIST,
        FormationName.SLATE_BEDS,
    ),
    "desert": (
        FormationName.SANDSTONE_FINS,
        FormationName.CROSS_BEDDED_SANDSTONE,
        FormationName.GYPSUM_BADLANDS,
        FormationName.VOLCANIC_TUFF,
    ),
    "forest": (
        FormationName.GRANITE_DOME,
        FormationName.WEATHERED_GRANODIORITE,
        FormationName.FOLIATED_SCHIST,
        FormationName.LIMESTONE_KARST,
    ),
    "plains": (
        FormationName.LIMESTONE_KARST,
        FormationName.CROSS_BEDDED_SANDSTONE,
        FormationName.SLATE_BEDS,
    ),
    "coastal": (
        FormationName.SANDSTONE_FINS,
        FormationName.BASALT_COLUMNS,
        FormationName.LIMESTONE_KARST,
    ),
    "swamp": (
        FormationName.LIMESTONE_KARST,
        FormationName.GYPSUM_BADLANDS,
    ),
    "underground": (
        FormationName.LIMESTONE_KARST,
        FormationName.DOLOMITE_TOWERS,
        FormationName.GYPSUM_BADLANDS,
    ),
}


def get_formation(name) -> GeologicalFormation:
    """
    Get a formation from the catalogue.

    Args:
        name: FormationName or its string value

    Returns:
        The catalogue record

    Raises:
        KeyError: If the name is not in the catalogue
    """
    try:
        return FORMATIONS[FormationName(name)]
    except ValueError:
        raise KeyError(f"Unknown formation: {name}") from None


def list_formations() -> List[str]:
    """List available formation names."""
    return [name.value for name in FORMATIONS]


def formations_for_biome(biome) -> List[GeologicalFormation]:
    """Candidate formations for a biome, granite dome for unknown biomes."""
    key = getattr(biome, "value", biome)
    names = FORMATIONS_BY_BIOME.get(key, (FormationName.GRANITE_DOME,))
    return [FORMATIONS[name] for name in names]
