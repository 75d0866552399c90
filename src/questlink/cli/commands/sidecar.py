"""Direct sidecar RPC commands."""

import asyncio
import json
from typing import Annotated, Any

import typer

from questlink.cli.commands import load_cli_config
from questlink.cli.console import console, dim, error


def register(app: typer.Typer) -> None:
    """Register the tools and call commands."""

    @app.command()
    def tools(
        ctx: typer.Context,
        server: Annotated[str, typer.Argument(help="Logical sidecar name")],
    ) -> None:
        """List the tools a sidecar exposes."""
        from rich.table import Table

        result = _run(ctx, server, lambda manager: manager.list_tools(server))
        entries = result.get("tools", []) if isinstance(result, dict) else []
        if not entries:
            dim("No tools reported")
            return
        table = Table(title=f"Tools on {server}")
        table.add_column("Name", style="cyan")
        table.add_column("Description")
        for tool in entries:
            table.add_row(str(tool.get("name", "?")), str(tool.get("description", "")))
        console.print(table)

    @app.command()
    def call(
        ctx: typer.Context,
        server: Annotated[str, typer.Argument(help="Logical sidecar name")],
        tool: Annotated[str, typer.Argument(help="Tool name")],
        args: Annotated[
            str,
            typer.Option("--args", "-a", help="Tool arguments as a JSON object"),
        ] = "{}",
        timeout: Annotated[
            float | None,
            typer.Option("--timeout", "-t", help="Seconds to wait for the reply"),
        ] = None,
    ) -> None:
        """Call a tool and print its result."""
        from questlink.rpc.results import tool_error_message, unwrap_tool_result

        try:
            arguments = json.loads(args)
        except json.JSONDecodeError as e:
            error(f"--args is not valid JSON: {e}")
            raise typer.Exit(1) from None
        if not isinstance(arguments, dict):
            error("--args must be a JSON object")
            raise typer.Exit(1)

        result = _run(
            ctx,
            server,
            lambda manager: manager.call(server, tool, arguments, timeout=timeout),
        )
        if message := tool_error_message(result):
            error(message)
            raise typer.Exit(1)
        payload = unwrap_tool_result(result, fallback=result)
        if isinstance(payload, str):
            console.print(payload, markup=False)
        else:
            console.print_json(json.dumps(payload))


def _run(ctx: typer.Context, server: str, action) -> Any:
    """Start the configured sidecars, run one action and shut them down."""
    from questlink.rpc import SidecarError, SidecarManager

    config = load_cli_config(ctx)
    manager = SidecarManager.from_config(config.sidecars)
    if server not in manager.names:
        error(f"Unknown sidecar '{server}'. Known: {', '.join(manager.names)}")
        raise typer.Exit(1)

    async def _go() -> Any:
        try:
            return await action(manager)
        finally:
            await manager.close()

    try:
        return asyncio.run(_go())
    except SidecarError as e:
        error(str(e))
        raise typer.Exit(1) from None
