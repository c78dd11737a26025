"""Typer-based CLI for the page fetcher."""

import json
from typing import Any, Dict, List, Optional

import typer
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from CrawlKit.PageFetch.errors import ConfigError, PageFetchError
from CrawlKit.PageFetch.fetcher import PageFetcher
from CrawlKit.PageFetch.loader import load_settings
from CrawlKit.PageFetch.logging_config import mask_sensitive_data, setup_logging

console = Console()
app = typer.Typer(help="CrawlKit PageFetch")

# ============================================================================
# Setup
# ============================================================================


def _cli_overrides(
    verbose: bool,
    delay: Optional[float],
    max_size: Optional[int],
) -> Dict[str, Any]:
    overrides: Dict[str, Any] = {}
    if verbose:
        overrides["logging"] = {"level": "DEBUG"}
    if delay is not None:
        overrides["politeness_delay"] = delay
    if max_size is not None:
        overrides["max_download_size"] = max_size
    return overrides


# ============================================================================
# Commands
# ============================================================================


@app.command()
def fetch(
    urls: List[str] = typer.Argument(..., help="Absolute URLs to fetch"),
    config: Optional[str] = typer.Option(
        None,
        "--config",
        "-c",
        help="Path to config file",
        envvar="CRAWLKIT_CONFIG",
    ),
    delay: Optional[float] = typer.Option(None, "--delay", help="Politeness delay in seconds"),
    max_size: Optional[int] = typer.Option(None, "--max-size", help="Maximum page size in bytes"),
    headers: bool = typer.Option(False, "--headers", help="Print response headers"),
    verbose: bool = typer.Option(False, "-v", "--verbose", help="Verbose"),
) -> None:
    """Fetch each URL once and print how it was classified."""
    try:
        settings = load_settings(path=config, cli_overrides=_cli_overrides(verbose, delay, max_size))
    except ConfigError as e:
        console.print(f"[red]✗ Error: {e}[/red]")
        raise typer.Exit(code=1)
    setup_logging(settings.logging)

    table = Table(title="Fetch Results")
    table.add_column("URL", style="cyan")
    table.add_column("Status", style="green")
    table.add_column("Fetched / Moved to", style="yellow")
    table.add_column("Bytes", style="magenta", justify="right")

    failures = 0
    with PageFetcher(settings) as fetcher:
        for url in urls:
            try:
                with fetcher.fetch(url) as result:
                    size = ""
                    if result.fetched_url is not None:
                        size = str(len(result.fetch_content()))
                    target = result.fetched_url or (
                        f"→ {result.moved_to_url}" if result.moved_to_url else ""
                    )
                    table.add_row(url, str(result.status_code), target, size)
                    if headers:
                        lines = "\n".join(f"{k}: {v}" for k, v in result.response_headers)
                        console.print(Panel(lines or "(none)", title=url, expand=False))
            except PageFetchError as e:
                failures += 1
                table.add_row(url, "[red]error[/red]", f"[red]{e}[/red]", "")

    console.print(table)
    if failures:
        console.print(f"[red]✗ {failures} of {len(urls)} fetches failed[/red]")
        raise typer.Exit(code=1)


@app.command()
def show_config(
    config: Optional[str] = typer.Option(
        None,
        "--config",
        "-c",
        help="Path to config file",
        envvar="CRAWLKIT_CONFIG",
    ),
    raw: bool = typer.Option(False, "--raw", help="Raw JSON"),
) -> None:
    """Print merged effective settings with secrets masked."""
    try:
        settings = load_settings(path=config)
    except ConfigError as e:
        console.print(f"[red]✗ Error: {e}[/red]")
        raise typer.Exit(code=1)

    data = mask_sensitive_data(settings.model_dump(mode="json"))
    if raw:
        typer.echo(json.dumps(data, indent=2))
    else:
        console.print(
            Panel(
                json.dumps(data, indent=2),
                title=f"PageFetch Settings ({settings.config_hash()[:8]})",
                expand=False,
            )
        )


def main() -> None:
    app()


if __name__ == "__main__":
    main()
