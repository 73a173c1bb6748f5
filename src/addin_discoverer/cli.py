"""Command-line interface for addin_discoverer.

Provides the main entry point and subcommands for auditing the Cake addin
ecosystem and managing the analysis cache.
"""

import asyncio
import logging
from pathlib import Path
from typing import Annotated, Optional

import typer
from rich.console import Console
from rich.progress import Progress, SpinnerColumn, TextColumn

from addin_discoverer import constants
from addin_discoverer.cache import AnalysisCache
from addin_discoverer.context import DiscoveryContext, Options, default_temp_folder
from addin_discoverer.pipeline import Pipeline

app = typer.Typer(
    name="cake-addin-discoverer",
    help="Audit the Cake addin ecosystem published on NuGet.",
    no_args_is_help=True,
)

console = Console()
err_console = Console(stderr=True)

# Configure logging
logging.basicConfig(
    level=logging.WARNING,
    format="%(levelname)s: %(message)s",
)
logger = logging.getLogger("addin_discoverer")


def _setup_logging(verbose: bool) -> None:
    """Configure logging level based on verbosity flag."""
    level = logging.DEBUG if verbose else logging.WARNING
    logging.getLogger("addin_discoverer").setLevel(level)


async def _run_discover(options: Options) -> int:
    """Async implementation of the discover command."""
    pipeline = Pipeline()

    async with DiscoveryContext(options) as context:
        with Progress(
            SpinnerColumn(),
            TextColumn("[progress.description]{task.description}"),
            console=console,
            transient=True,
        ) as progress:
            task = progress.add_task("Starting...", total=None)

            def on_step(index: int, total: int, description: str) -> None:
                progress.update(task, description=f"[{index}/{total}] {description}")

            try:
                result = await pipeline.run(context, on_step=on_step)
            except Exception as e:
                err_console.print(f"[red]Error:[/red] {e}")
                return 1

        analyzed = sum(1 for a in context.addins if a.analyzed)
        with_notes = sum(1 for a in context.addins if a.analysis_result.has_notes)

    for description, error in result.failed:
        console.print(f"[yellow]Warning:[/yellow] {description} failed: {error}")

    console.print(
        f"Audited [bold]{analyzed}[/bold] package versions "
        f"([bold]{with_notes}[/bold] with exceptions)"
    )
    console.print(f"[green]Results:[/green] {context.analysis_result_path}")
    if options.generate_markdown:
        console.print(f"[green]Report:[/green] {context.markdown_report_path}")

    return 0


@app.command()
def discover(
    temp_folder: Annotated[
        Path,
        typer.Option(
            "--temp-folder",
            "-t",
            help="Working folder for downloaded packages, analysis results and reports",
        ),
    ] = default_temp_folder(),
    addin_name: Annotated[
        Optional[str],
        typer.Option(
            "--addin-name",
            "-a",
            help="Only audit this package",
        ),
    ] = None,
    clear_cache: Annotated[
        bool,
        typer.Option(
            "--clear-cache",
            "-c",
            help="Delete downloaded packages and previous analysis before running",
        ),
    ] = False,
    analyze_all: Annotated[
        bool,
        typer.Option(
            "--analyze-all",
            help="Ignore previous analysis and audit every version again",
        ),
    ] = False,
    exclude_slow_steps: Annotated[
        bool,
        typer.Option(
            "--exclude-slow-steps",
            help="Skip the Cake.Recipe usage check",
        ),
    ] = False,
    markdown: Annotated[
        bool,
        typer.Option(
            "--markdown/--no-markdown",
            help="Generate the markdown report",
        ),
    ] = True,
    resources_folder: Annotated[
        Optional[Path],
        typer.Option(
            "--resources-folder",
            help="Folder with custom exclusionlist.json and inclusionlist.json",
            exists=True,
            file_okay=False,
        ),
    ] = None,
    nuget_concurrency: Annotated[
        int,
        typer.Option(
            "--nuget-concurrency",
            min=1,
            help="Maximum concurrent NuGet requests",
        ),
    ] = constants.MAX_NUGET_CONCURRENCY,
    github_concurrency: Annotated[
        int,
        typer.Option(
            "--github-concurrency",
            min=1,
            help="Maximum concurrent GitHub requests",
        ),
    ] = constants.MAX_GITHUB_CONCURRENCY,
    github_token: Annotated[
        Optional[str],
        typer.Option(
            "--github-token",
            envvar="GITHUB_TOKEN",
            help="GitHub API token for higher rate limits",
        ),
    ] = None,
    verbose: Annotated[
        bool,
        typer.Option(
            "--verbose",
            "-v",
            help="Enable verbose output",
        ),
    ] = False,
) -> None:
    """Discover and audit Cake addins.

    Searches NuGet for packages named Cake.*, inspects every version that
    was not audited by a previous run and writes the results to the
    working folder.
    """
    _setup_logging(verbose)

    options = Options(
        temp_folder=temp_folder,
        addin_name=addin_name,
        clear_cache=clear_cache,
        analyze_all=analyze_all,
        exclude_slow_steps=exclude_slow_steps,
        generate_markdown=markdown,
        github_token=github_token,
        use_local_resources=resources_folder is not None,
        resources_folder=resources_folder,
        nuget_concurrency=nuget_concurrency,
        github_concurrency=github_concurrency,
    )

    exit_code = asyncio.run(_run_discover(options))
    raise typer.Exit(code=exit_code)


@app.command()
def cache(
    action: Annotated[
        str,
        typer.Argument(help="Cache action: 'show' or 'clear'"),
    ],
    temp_folder: Annotated[
        Path,
        typer.Option(
            "--temp-folder",
            "-t",
            help="Working folder used by the discover command",
        ),
    ] = default_temp_folder(),
) -> None:
    """Manage the analysis results of previous runs.

    Actions:
        show  - Display the results location, entry count, and size
        clear - Delete the results and pending snapshots
    """
    cache_instance = AnalysisCache(temp_folder / "analysis", temp_folder / "Analysis_result.json")

    if action == "show":
        info = cache_instance.info()
        console.print(f"[bold]Cache Location:[/bold] {info['path']}")
        console.print(f"[bold]Entries:[/bold] {info['count']}")
        console.print(f"[bold]Pending snapshots:[/bold] {info['snapshots']}")
        console.print(f"[bold]Size:[/bold] {info['size_bytes'] / 1024:.1f} KB")

    elif action == "clear":
        cache_instance.clear()
        console.print("[green]Cache cleared[/green]")

    else:
        err_console.print(f"[red]Unknown action:[/red] {action}")
        err_console.print("Valid actions: show, clear")
        raise typer.Exit(code=1)


if __name__ == "__main__":
    app()
