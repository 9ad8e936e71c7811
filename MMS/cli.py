#!/usr/bin/env python3
"""
MMS CLI

Typer/Rich-powered command-line interface for running one aggregated
search across the configured sites, listing the site registry, and
starting the HTTP server.
"""

import json
from typing import Optional

import typer
from rich.console import Console
from rich.markup import escape
from rich.panel import Panel
from rich.table import Table

from MMS.services.aggregator.service import AggregatorService
from MMS.services.shared.errors import SearchRequestError, format_user_error
from MMS.services.shared.settings import get_settings
from MMS.tools.scrape.registry import SiteRegistry
from MMS.tools.scrape.schema import AggregatedResponse, SitePipelineOutcome


console = Console()

app = typer.Typer(help="MMS movie meta-search CLI")


def _load_registry(sites: Optional[str]) -> SiteRegistry:
    registry = SiteRegistry(sites or get_settings().registry.sites_path)
    registry.load()
    return registry


def _render_outcome(outcome: SitePipelineOutcome) -> None:
    header = f"[bold]{escape(outcome.site_name)}[/bold] [dim]({outcome.elapsed_ms} ms)[/dim]"

    if not outcome.ok:
        console.print(
            Panel.fit(
                f"[bold red]{escape(outcome.error or '')}[/bold red]\n\nOpen manually: {escape(outcome.manual_url or '')}",
                title=header,
                border_style="red",
            )
        )
        return

    if not outcome.items:
        console.print(Panel.fit("[yellow]No results.[/yellow]", title=header, border_style="yellow"))
        return

    table = Table(title=header, show_lines=False, expand=True)
    table.add_column("#", justify="right", style="dim", width=3)
    table.add_column("Title", style="bold")
    table.add_column("URL", overflow="fold")
    table.add_column("Snippet", overflow="fold")
    for idx, item in enumerate(outcome.items, 1):
        table.add_row(str(idx), escape(item.title), escape(item.url), escape(item.snippet))
    console.print(table)


def _render_response(response: AggregatedResponse) -> None:
    ok_count = sum(1 for outcome in response.results if outcome.ok)
    console.print(
        Panel.fit(
            f"[bold cyan]MMS Search[/bold cyan]\n\n"
            f"[bold]Query:[/bold] {escape(response.query)}\n"
            f"[bold]Sites:[/bold] {ok_count}/{len(response.results)} ok\n"
            f"[bold]Timestamp:[/bold] {response.timestamp}",
            border_style="cyan",
        )
    )
    for outcome in response.results:
        _render_outcome(outcome)


def run_search(query: str, sites: Optional[str] = None, as_json: bool = False) -> int:
    """Run one aggregated search and print it. Returns the exit code."""
    registry = _load_registry(sites)
    aggregator = AggregatorService(registry)

    try:
        response = aggregator.search(query)
    except SearchRequestError as exc:
        console.print(f"[bold red]mms:[/bold red] {escape(format_user_error(exc))}")
        return 1

    if as_json:
        # Plain echo: Rich would wrap long lines and break the JSON
        typer.echo(json.dumps(response.model_dump(mode="json", by_alias=True), indent=2))
    else:
        _render_response(response)
    return 0


@app.command("search")
def search_command(
    query: str = typer.Argument(..., help="Text to search for on every site."),
    sites: Optional[str] = typer.Option(
        None,
        "--sites",
        "-s",
        help="Path to a site descriptor document; overrides MMS_SITES_PATH.",
    ),
    as_json: bool = typer.Option(
        False,
        "--json",
        help="Print the raw aggregated response as JSON.",
    ),
) -> None:
    """Search all enabled sites for QUERY."""
    raise typer.Exit(code=run_search(query, sites=sites, as_json=as_json))


@app.command("sites")
def sites_command(
    sites: Optional[str] = typer.Option(
        None,
        "--sites",
        "-s",
        help="Path to a site descriptor document; overrides MMS_SITES_PATH.",
    ),
) -> None:
    """List the enabled site descriptors."""
    registry = _load_registry(sites)
    active = registry.snapshot()

    if not active:
        console.print("[yellow]No sites configured.[/yellow]")
        raise typer.Exit(code=1)

    table = Table(title=f"{len(active)} active sites ({registry.sites_path})")
    table.add_column("ID", style="bold")
    table.add_column("Name")
    table.add_column("URL template", overflow="fold")
    table.add_column("Result selector")
    for site in active:
        table.add_row(
            escape(site.id), escape(site.name), escape(site.url_template), escape(site.result_selector)
        )
    console.print(table)


@app.command("serve")
def serve_command(
    host: Optional[str] = typer.Option(None, "--host", help="Bind address; defaults to MMS_HOST or 0.0.0.0."),
    port: Optional[int] = typer.Option(None, "--port", "-p", help="Listening port; defaults to PORT or 3000."),
) -> None:
    """Start the HTTP server."""
    import uvicorn

    settings = get_settings()
    uvicorn.run(
        "MMS.services.api.fastapi_server:app",
        host=host or settings.server.host,
        port=port or settings.server.port,
    )


def main() -> None:
    """Entrypoint used by `python -m MMS.cli` or the `mms` console script."""
    app()


if __name__ == "__main__":
    main()
