"""Conversion between the sidecar's grid and the local, origin-centred grid.

Remote coordinates are non-negative integers on a ``grid_extent`` square.
Local coordinates subtract a fixed origin of half the extent so the grid is
centred on zero.
"""

DEFAULT_GRID_EXTENT = 20


def grid_origin(grid_extent: int = DEFAULT_GRID_EXTENT) -> int:
    if grid_extent < 1:
        raise ValueError(f"grid extent must be positive, got {grid_extent}")
    return grid_extent // 2


def to_local(value: int, grid_extent: int = DEFAULT_GRID_EXTENT) -> int:
    return value - grid_origin(grid_extent)


def to_remote(value: int, grid_extent: int = DEFAULT_GRID_EXTENT) -> int:
    return value + grid_origin(grid_extent)


def point_to_local(
    x: int, z: int, grid_extent: int = DEFAULT_GRID_EXTENT
) -> tuple[int, int]:
    return to_local(x, grid_extent), to_local(z, grid_extent)


def point_to_remote(
    x: int, z: int, grid_extent: int = DEFAULT_GRID_EXTENT
) -> tuple[int, int]:
    return to_remote(x, grid_extent), to_remote(z, grid_extent)
