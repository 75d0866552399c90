"""Spatial record types produced by the battlefield parser."""

from dataclasses import dataclass, field
from enum import Enum

# Body height of a creature token in grid units
ENTITY_HEIGHT = 0.8


class EntityKind(Enum):
    ALLY = "ally"
    NPC = "npc"
    HOSTILE = "hostile"


class CreatureSize(Enum):
    TINY = "tiny"
    SMALL = "small"
    MEDIUM = "medium"
    LARGE = "large"
    HUGE = "huge"
    GARGANTUAN = "gargantuan"

    @property
    def units(self) -> int:
        """Side length of the occupied square in grid units."""
        return _SIZE_UNITS[self]


_SIZE_UNITS = {
    CreatureSize.TINY: 1,
    CreatureSize.SMALL: 1,
    CreatureSize.MEDIUM: 1,
    CreatureSize.LARGE: 2,
    CreatureSize.HUGE: 3,
    CreatureSize.GARGANTUAN: 4,
}


class CoverType(Enum):
    NONE = "none"
    HALF = "half"
    THREE_QUARTERS = "three-quarters"
    FULL = "full"


@dataclass(frozen=True)
class Vector3:
    x: float
    y: float
    z: float


@dataclass(frozen=True)
class Dimensions:
    """Extent in grid units: width along x, depth along z, height along y."""

    width: float
    depth: float
    height: float


@dataclass(frozen=True)
class Rect:
    """Half-open axis-aligned rectangle on the x/z plane."""

    min_x: float
    min_z: float
    max_x: float
    max_z: float

    def intersects(self, other: "Rect") -> bool:
        return (
            self.min_x < other.max_x
            and self.max_x > other.min_x
            and self.min_z < other.max_z
            and self.max_z > other.min_z
        )

    @classmethod
    def tile(cls, x: int, z: int) -> "Rect":
        return cls(x, z, x + 1, z + 1)


@dataclass(frozen=True)
class EntityAttributes:
    hp_current: int = 20
    hp_max: int = 20
    ac: int = 15
    conditions: tuple[str, ...] = ()


@dataclass(frozen=True)
class SpatialEntity:
    """A combatant on the grid.

    ``position`` is in local coordinates; x/z anchor the footprint's minimum
    corner and y is the elevation of the creature's base.
    """

    id: str
    name: str
    kind: EntityKind
    size: CreatureSize
    position: Vector3
    attributes: EntityAttributes = field(default_factory=EntityAttributes)
    primary: bool = False
    color: str = "#ffaa00"

    @property
    def size_units(self) -> int:
        return self.size.units

    @property
    def footprint(self) -> Rect:
        units = self.size_units
        return Rect(
            self.position.x,
            self.position.z,
            self.position.x + units,
            self.position.z + units,
        )

    @property
    def top(self) -> float:
        return self.position.y + ENTITY_HEIGHT


@dataclass(frozen=True)
class TerrainFeature:
    """A piece of terrain anchored at its minimum x/z corner (local coordinates)."""

    id: str
    kind: str
    position: Vector3
    dimensions: Dimensions
    blocks_movement: bool = False
    cover: CoverType = CoverType.NONE
    color: str = "#808080"

    @property
    def footprint(self) -> Rect:
        return Rect(
            self.position.x,
            self.position.z,
            self.position.x + self.dimensions.width,
            self.position.z + self.dimensions.depth,
        )

    @property
    def top(self) -> float:
        return self.position.y + self.dimensions.height
