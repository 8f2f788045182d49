import logging
from collections.abc import Iterator
from contextlib import contextmanager
from pathlib import Path
from typing import Annotated

import typer
from rich.console import Console
from rich.logging import RichHandler
from rich.markup import escape
from rich.panel import Panel
from rich.table import Table

from adjmap._constants import ROOT_DISPLAY_NAME, ROOT_ID
from adjmap._errors import EvaluationError, MapDefinitionError
from adjmap._io import export_values_to_toml, load_map
from adjmap._map import AdjacencyMap, format_number

from .config import AdjmapConfig, ConfigError, get_config

app = typer.Typer()

logger = logging.getLogger(__name__)
# Console for stderr (info/errors)
err_console = Console(stderr=True)
# Console for stdout (results)
out_console = Console()

MapArgument = Annotated[
    Path | None,
    typer.Argument(help="Path to a .json or .toml map definition (defaults to [tool.adjmap].map)"),
]
ScenarioOption = Annotated[
    str | None,
    typer.Option("--scenario", "-s", help="Active scenario (defaults to [tool.adjmap].scenario)"),
]
HiddenOption = Annotated[
    bool | None,
    typer.Option("--hidden/--no-hidden", help="Include hidden properties"),
]


@app.callback()
def callback(
    *,
    verbose: bool = typer.Option(default=False, help="Enable verbose output"),
) -> None:
    """Adjmap CLI."""
    log_level = logging.DEBUG if verbose else logging.INFO

    logging.basicConfig(
        level=log_level,
        format="%(message)s",
        handlers=[
            RichHandler(
                console=err_console,
                show_time=False,
                show_path=verbose,
                rich_tracebacks=True,
            ),
        ],
    )


@contextmanager
def _reported_errors() -> Iterator[None]:
    """Turn definition, evaluation and config errors into a red message and exit code 1."""
    try:
        yield
    except (MapDefinitionError, EvaluationError, ConfigError) as e:
        err_console.print(f"[red]✗ {escape(str(e))}[/red]")
        raise typer.Exit(code=1) from e


def _open_map(path: Path | None, scenario: str | None, config: AdjmapConfig) -> AdjacencyMap:
    path = path if path is not None else config.map
    if path is None:
        msg = "No map given: pass a path or set [tool.adjmap].map in pyproject.toml"
        raise ConfigError(msg)
    scenario = scenario if scenario is not None else config.scenario

    err_console.print(f"[cyan]Loading map from:[/cyan] {path}")
    adjacency_map = AdjacencyMap(load_map(path), scenario_name=scenario or "")
    if adjacency_map.scenario_name:
        err_console.print(f"[cyan]Scenario:[/cyan] [bold]{escape(adjacency_map.scenario_name)}[/bold]")
    return adjacency_map


def _node_label(adjacency_map: AdjacencyMap, node_id: str) -> str:
    return ROOT_DISPLAY_NAME if node_id == ROOT_ID else adjacency_map.node(node_id).display_name


@app.command()
def check(path: MapArgument = None) -> None:
    """Check that a map definition is valid without printing values."""
    err_console.print()
    with _reported_errors():
        adjacency_map = _open_map(path, None, get_config())
        err_console.print()

        table = Table(show_header=True, header_style="bold cyan")
        table.add_column("Property", style="bold")
        table.add_column("Combine", style="yellow")
        table.add_column("Depends on", style="dim")
        table.add_column("Implies", style="dim")
        for name in adjacency_map.property_names:
            prop = adjacency_map.definition.properties[name]
            table.add_row(
                escape(name),
                prop.combine.value,
                escape(", ".join(prop.dependencies)),
                escape(", ".join(prop.implies)),
            )

        definition = adjacency_map.definition
        err_console.print(
            Panel(
                table,
                title=f"[bold]Map: {escape(definition.description) or escape(str(path or ''))}[/bold]",
                subtitle=(
                    f"[dim]{len(definition.nodes)} nodes, {len(adjacency_map.edges)} edges, "
                    f"{len(definition.scenarios)} scenarios[/dim]"
                ),
                border_style="cyan",
            ),
        )

    err_console.print()
    err_console.print("[green]✓ Map is valid[/green]")
    err_console.print()


@app.command()
def values(
    path: MapArgument = None,
    *,
    node: Annotated[
        str | None,
        typer.Option("--node", "-n", help="Node id to show (defaults to the summary of all nodes)"),
    ] = None,
    scenario: ScenarioOption = None,
    hidden: HiddenOption = None,
) -> None:
    """Print the computed values of a node, or the summary over all nodes."""
    config = get_config()
    include_hidden = hidden if hidden is not None else config.include_hidden
    with _reported_errors():
        adjacency_map = _open_map(path, scenario, config)
        if node is None:
            text = adjacency_map.format_summary(include_hidden=include_hidden)
        else:
            try:
                selected = adjacency_map.node(node)
            except KeyError:
                err_console.print(f"[red]✗ Unknown node: {escape(node)}[/red]")
                raise typer.Exit(code=1) from None
            text = selected.format_values(include_hidden=include_hidden)
    out_console.print(text, markup=False, highlight=False)


@app.command()
def edges(
    path: MapArgument = None,
    *,
    node: Annotated[str, typer.Option("--node", "-n", help="Node id whose edges to show")],
    scenario: ScenarioOption = None,
) -> None:
    """Print a node's expanded edges and the edges a renderer would draw."""
    with _reported_errors():
        adjacency_map = _open_map(path, scenario, get_config())
        try:
            selected = adjacency_map.node(node)
        except KeyError:
            err_console.print(f"[red]✗ Unknown node: {escape(node)}[/red]")
            raise typer.Exit(code=1) from None

        expanded = Table(show_header=True, header_style="bold cyan", title="Edges")
        expanded.add_column("Ref", style="bold")
        expanded.add_column("Type")
        expanded.add_column("Constants", style="dim")
        expanded.add_column("Implied")
        for edge in selected.edges:
            constants = ", ".join(f"{k}={format_number(v)}" for k, v in edge.constants.items())
            expanded.add_row(
                escape(_node_label(adjacency_map, edge.ref)),
                escape(edge.type),
                escape(constants),
                "[yellow]yes[/yellow]" if edge.implied else "",
            )

        rendered = Table(show_header=True, header_style="bold cyan", title="Render edges")
        rendered.add_column("Parent", style="bold")
        rendered.add_column("Width", justify="right")
        rendered.add_column("Color")
        rendered.add_column("Opacity", justify="right")
        rendered.add_column("Bump", justify="right")
        rendered.add_column("Types", style="dim")
        for render_edge in selected.render_edges:
            color = render_edge.rgba
            rendered.add_row(
                escape(_node_label(adjacency_map, render_edge.parent)),
                format_number(render_edge.width),
                f"[{color.hex}]■[/{color.hex}] {color.rgba_str}" if color.a else color.rgba_str,
                format_number(render_edge.opacity),
                format_number(render_edge.bump),
                escape(", ".join(dict.fromkeys(edge.type for edge in render_edge.edges))),
            )

    out_console.print(expanded)
    out_console.print(rendered)


@app.command()
def export(
    path: MapArgument = None,
    *,
    output: Annotated[Path, typer.Option("-o", "--output", help="Path to output TOML file")],
    scenario: ScenarioOption = None,
    hidden: HiddenOption = None,
) -> None:
    """Compute every node's values and write them to a TOML file."""
    config = get_config()
    include_hidden = hidden if hidden is not None else config.include_hidden
    err_console.print()
    with _reported_errors():
        adjacency_map = _open_map(path, scenario, config)
        err_console.print(f"[cyan]Exporting values to:[/cyan] {output}")
        export_values_to_toml(adjacency_map, output, include_hidden=include_hidden)

    err_console.print()
    err_console.print("[green]✓ Export complete[/green]")
    err_console.print()
