"""Occupancy, elevation and open-tile queries over the parsed battlefield.

All coordinates are local grid tiles. A tile ``(x, z)`` covers the half-open
square ``[x, x+1) x [z, z+1)``; a record covers a tile when their footprints
intersect, so multi-cell creatures and terrain block every tile they touch.
"""

from __future__ import annotations

import threading
from collections.abc import Collection, Iterable, Iterator
from dataclasses import dataclass

from questlink.spatial.coords import DEFAULT_GRID_EXTENT, grid_origin
from questlink.spatial.types import Rect, SpatialEntity, TerrainFeature

DEFAULT_SEARCH_RADIUS = 5


@dataclass(frozen=True)
class Snapshot:
    entities: tuple[SpatialEntity, ...] = ()
    terrain: tuple[TerrainFeature, ...] = ()
    grid_extent: int = DEFAULT_GRID_EXTENT


class SpatialIndex:
    """Holds the current snapshot and answers queries against it.

    The snapshot is immutable and replaced wholesale, so a query that reads
    ``self._snapshot`` once never observes a mix of two syncs.
    """

    def __init__(self, snapshot: Snapshot | None = None) -> None:
        self._snapshot = snapshot or Snapshot()
        self._lock = threading.Lock()

    @property
    def snapshot(self) -> Snapshot:
        return self._snapshot

    @property
    def entities(self) -> tuple[SpatialEntity, ...]:
        return self._snapshot.entities

    @property
    def terrain(self) -> tuple[TerrainFeature, ...]:
        return self._snapshot.terrain

    def replace_snapshot(
        self,
        entities: Iterable[SpatialEntity],
        terrain: Iterable[TerrainFeature],
        grid_extent: int | None = None,
    ) -> Snapshot:
        """Swap in a new snapshot and return it."""
        with self._lock:
            snapshot = Snapshot(
                entities=tuple(entities),
                terrain=tuple(terrain),
                grid_extent=(
                    grid_extent
                    if grid_extent is not None
                    else self._snapshot.grid_extent
                ),
            )
            self._snapshot = snapshot
        return snapshot

    def entity(self, entity_id: str) -> SpatialEntity | None:
        return next((e for e in self._snapshot.entities if e.id == entity_id), None)

    def in_bounds(self, x: int, z: int) -> bool:
        """True when the tile lies on the sidecar's grid."""
        return _in_bounds(self._snapshot.grid_extent, x, z)

    def entities_at(
        self, x: int, z: int, ignore_entity_ids: Collection[str] = ()
    ) -> list[SpatialEntity]:
        return list(_covering(self._snapshot.entities, x, z, ignore_entity_ids))

    def is_blocked(
        self,
        x: int,
        z: int,
        ignore_entity_ids: Collection[str] = (),
        ignore_terrain_ids: Collection[str] = (),
    ) -> bool:
        """True if movement-blocking terrain or any creature covers the tile."""
        return _is_blocked(self._snapshot, x, z, ignore_entity_ids, ignore_terrain_ids)

    def elevation_at(
        self, x: int, z: int, ignore_entity_ids: Collection[str] = ()
    ) -> float:
        """Highest surface at the tile: terrain tops and stacked creature tops.

        Terrain counts whether or not it blocks movement. Returns 0.0 when
        nothing covers the tile.
        """
        snapshot = self._snapshot
        highest = 0.0
        for feature in _covering(snapshot.terrain, x, z, ()):
            highest = max(highest, feature.top)
        for entity in _covering(snapshot.entities, x, z, ignore_entity_ids):
            highest = max(highest, entity.top)
        return highest

    def nearest_open_tile(
        self,
        x: int,
        z: int,
        max_radius: int = DEFAULT_SEARCH_RADIUS,
        ignore_entity_ids: Collection[str] = (),
        ignore_terrain_ids: Collection[str] = (),
    ) -> tuple[int, int] | None:
        """Find the closest unblocked tile by Chebyshev ring.

        The start tile is checked first, then every tile at distance 1, 2, ...
        up to ``max_radius``. Within a ring tiles are scanned with x outer and
        z inner, both ascending. Tiles off the grid are skipped. Returns None
        if every tile is blocked.
        """
        snapshot = self._snapshot
        for tile in ring_scan(x, z, max_radius):
            if not _in_bounds(snapshot.grid_extent, *tile):
                continue
            if not _is_blocked(snapshot, *tile, ignore_entity_ids, ignore_terrain_ids):
                return tile
        return None


def ring_scan(x: int, z: int, max_radius: int) -> Iterator[tuple[int, int]]:
    """Yield the start tile, then each Chebyshev ring out to ``max_radius``."""
    yield x, z
    for r in range(1, max_radius + 1):
        for dx in range(-r, r + 1):
            if abs(dx) == r:
                for dz in range(-r, r + 1):
                    yield x + dx, z + dz
            else:
                yield x + dx, z - r
                yield x + dx, z + r


def _in_bounds(extent: int, x: int, z: int) -> bool:
    low = -grid_origin(extent)
    return low <= x < low + extent and low <= z < low + extent


def _covering(
    records: Iterable[SpatialEntity] | Iterable[TerrainFeature],
    x: int,
    z: int,
    ignore_ids: Collection[str],
) -> Iterator:
    tile = Rect.tile(x, z)
    for record in records:
        if record.id in ignore_ids:
            continue
        if record.footprint.intersects(tile):
            yield record


def _is_blocked(
    snapshot: Snapshot,
    x: int,
    z: int,
    ignore_entity_ids: Collection[str],
    ignore_terrain_ids: Collection[str],
) -> bool:
    for feature in _covering(snapshot.terrain, x, z, ignore_terrain_ids):
        if feature.blocks_movement:
            return True
    return any(True for _ in _covering(snapshot.entities, x, z, ignore_entity_ids))
