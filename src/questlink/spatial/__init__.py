"""Spatial model of the combat grid.

Public API:
- parse_battlefield: report text -> ParsedBattlefield
- SpatialIndex: occupancy, elevation and nearest-open-tile queries
- to_local / to_remote: grid coordinate transform
"""

from questlink.spatial.coords import (
    DEFAULT_GRID_EXTENT,
    grid_origin,
    point_to_local,
    point_to_remote,
    to_local,
    to_remote,
)
from questlink.spatial.index import Snapshot, SpatialIndex, ring_scan
from questlink.spatial.parser import (
    BattlefieldParseError,
    ParseDiagnostic,
    ParsedBattlefield,
    parse_battlefield,
)
from questlink.spatial.types import (
    ENTITY_HEIGHT,
    CoverType,
    CreatureSize,
    Dimensions,
    EntityAttributes,
    EntityKind,
    Rect,
    SpatialEntity,
    TerrainFeature,
    Vector3,
)

__all__ = [
    "DEFAULT_GRID_EXTENT",
    "ENTITY_HEIGHT",
    "BattlefieldParseError",
    "CoverType",
    "CreatureSize",
    "Dimensions",
    "EntityAttributes",
    "EntityKind",
    "ParseDiagnostic",
    "ParsedBattlefield",
    "Rect",
    "Snapshot",
    "SpatialEntity",
    "SpatialIndex",
    "TerrainFeature",
    "Vector3",
    "grid_origin",
    "parse_battlefield",
    "point_to_local",
    "point_to_remote",
    "ring_scan",
    "to_local",
    "to_remote",
]
