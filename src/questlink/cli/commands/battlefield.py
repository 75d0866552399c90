"""Battlefield inspection commands."""

import asyncio
from pathlib import Path
from typing import Annotated

import typer

from questlink.cli.commands import load_cli_config
from questlink.cli.console import console, error, success, warning
from questlink.config import QuestlinkConfig
from questlink.spatial import SpatialIndex, parse_battlefield, to_local, to_remote

ReportFile = Annotated[
    Path | None,
    typer.Option(
        "--file",
        "-f",
        help="Parse a saved report instead of asking the combat sidecar",
    ),
]


def register(app: typer.Typer) -> None:
    """Register the battlefield and nearest commands."""

    @app.command()
    def battlefield(ctx: typer.Context, file: ReportFile = None) -> None:
        """Show the parsed battlefield."""
        from rich.table import Table

        config = load_cli_config(ctx)
        index, parsed = _load(config, file)

        table = Table(title=f"Combatants (grid {parsed.grid_extent})")
        table.add_column("Id", style="dim")
        table.add_column("Name", style="cyan")
        table.add_column("Kind")
        table.add_column("Size")
        table.add_column("Position (x, y, z)")
        table.add_column("HP")
        for entity in index.entities:
            p = entity.position
            table.add_row(
                entity.id,
                entity.name + (" *" if entity.primary else ""),
                entity.kind.value,
                f"{entity.size.value} ({entity.size_units})",
                f"{p.x:g}, {p.y:g}, {p.z:g}",
                f"{entity.attributes.hp_current}/{entity.attributes.hp_max}",
            )
        console.print(table)

        terrain_table = Table(title="Terrain")
        terrain_table.add_column("Id", style="dim")
        terrain_table.add_column("Kind", style="cyan")
        terrain_table.add_column("Position (x, z)")
        terrain_table.add_column("W x D x H")
        terrain_table.add_column("Blocks")
        terrain_table.add_column("Cover")
        for feature in index.terrain:
            d = feature.dimensions
            terrain_table.add_row(
                feature.id,
                feature.kind,
                f"{feature.position.x:g}, {feature.position.z:g}",
                f"{d.width:g} x {d.depth:g} x {d.height:g}",
                "yes" if feature.blocks_movement else "no",
                feature.cover.value,
            )
        console.print(terrain_table)

        for diagnostic in parsed.diagnostics:
            warning(f"skipped {diagnostic.section} #{diagnostic.index}: {diagnostic.reason}")

    @app.command()
    def nearest(
        ctx: typer.Context,
        x: Annotated[int, typer.Argument(help="Start tile x")],
        z: Annotated[int, typer.Argument(help="Start tile z")],
        file: ReportFile = None,
        radius: Annotated[
            int | None,
            typer.Option("--radius", "-r", help="Maximum ring radius to search"),
        ] = None,
        remote: Annotated[
            bool,
            typer.Option("--remote", help="Coordinates are sidecar grid coordinates"),
        ] = False,
        ignore: Annotated[
            list[str] | None,
            typer.Option("--ignore", "-i", help="Entity id to ignore (repeatable)"),
        ] = None,
    ) -> None:
        """Find the nearest open tile to a start tile."""
        config = load_cli_config(ctx)
        index, parsed = _load(config, file)
        extent = parsed.grid_extent
        if remote:
            x, z = to_local(x, extent), to_local(z, extent)
        max_radius = config.battlefield.search_radius if radius is None else radius

        tile = index.nearest_open_tile(
            x, z, max_radius=max_radius, ignore_entity_ids=ignore or ()
        )
        if tile is None:
            error(f"No open tile within {max_radius} of ({x}, {z})")
            raise typer.Exit(1)
        tx, tz = tile
        success(
            f"Open tile: local ({tx}, {tz}) / remote "
            f"({to_remote(tx, extent)}, {to_remote(tz, extent)}), "
            f"elevation {index.elevation_at(tx, tz):g}"
        )


def _load(config: QuestlinkConfig, file: Path | None):
    """Build an index from a report file, or from a live sync."""
    from questlink.battlefield import BattlefieldSync
    from questlink.rpc import SidecarError, SidecarManager

    if file is not None:
        if not file.exists():
            error(f"Report not found: {file}")
            raise typer.Exit(1)
        parsed = parse_battlefield(
            file.read_text(encoding="utf-8"),
            default_grid_extent=config.battlefield.grid_extent,
            feet_per_unit=config.battlefield.feet_per_unit,
        )
        index = SpatialIndex()
        index.replace_snapshot(parsed.entities, parsed.terrain, parsed.grid_extent)
        return index, parsed

    async def _fetch():
        manager = SidecarManager.from_config(config.sidecars)
        sync = BattlefieldSync(manager, SpatialIndex(), config.battlefield)
        try:
            parsed = await sync.sync()
        finally:
            await manager.close()
        return sync.index, parsed

    try:
        return asyncio.run(_fetch())
    except SidecarError as e:
        error(str(e))
        raise typer.Exit(1) from None
