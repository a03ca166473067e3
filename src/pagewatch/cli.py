"""Command line interface for pagewatch."""

import asyncio
import sys
from pathlib import Path
from typing import Annotated, Optional

import typer
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from pagewatch import __version__
from pagewatch.browser.playwright import PlaywrightVisitor
from pagewatch.config import DEFAULT_INPUT_FILE, default_store_name, load_input
from pagewatch.core.exceptions import InputError
from pagewatch.core.interfaces import BlobStore
from pagewatch.core.models import MonitorConfig, RunRecord, url_key
from pagewatch.engine.monitor import ChangeMonitor
from pagewatch.logging_config import setup_logging
from pagewatch.notify.mailer import DEFAULT_ENDPOINT, SendMailClient
from pagewatch.storage.apify import ApifyKeyValueStore
from pagewatch.storage.baseline import BaselineStore, record_key
from pagewatch.storage.filesystem import FilesystemBlobStore, JsonLinesSink

console = Console()

COMMANDS = ("run", "keys", "--help", "-h", "--version", "-V")

STATUS_STYLES = {
    "first_run": "cyan",
    "unchanged": "dim",
    "changed": "bold yellow",
    "not_found": "magenta",
    "failed": "bold red",
}


def version_callback(value: bool) -> None:
    """Print version and exit."""
    if value:
        console.print(f"[bold]pagewatch[/bold] version {__version__}")
        raise typer.Exit()


def _default_store_dir(store_name: str) -> Path:
    return Path("./storage/key_value_stores") / store_name


def _rewrite_argv(argv: list[str]) -> list[str]:
    """Insert the ``run`` command when the first argument is an input file.

    Examples:
        pagewatch INPUT.json -> pagewatch run INPUT.json
        pagewatch keys https://example.com -> unchanged
    """
    if len(argv) > 1 and argv[1] not in COMMANDS and not argv[1].startswith("-"):
        return [argv[0], "run", *argv[1:]]
    return list(argv)


def _print_summary(records: list[RunRecord], blob_store: BlobStore) -> None:
    table = Table(
        title="[bold]Check Results[/bold]",
        show_header=True,
        header_style="bold cyan",
    )
    table.add_column("URL", style="green", overflow="fold")
    table.add_column("Status")
    table.add_column("Attempts", justify="right")
    table.add_column("Details", overflow="fold")

    for record in records:
        style = STATUS_STYLES.get(record.status, "")
        details = record.failure.message if record.failure else ""
        table.add_row(
            record.url,
            f"[{style}]{record.status}[/{style}]" if style else record.status,
            str(record.attempts),
            details,
        )

    console.print()
    console.print(table)

    console.print()
    console.print("You can check the output in the store on the following URLs:")
    for record in records:
        console.print(f"[bold]URL:[/bold] {record.url}")
        console.print(f"  - {blob_store.public_url(record_key(url_key(record.url)))}")
        for link in (
            record.current_screenshot_url,
            record.previous_screenshot_url,
            record.failure.full_page_screenshot_url if record.failure else None,
        ):
            if link:
                console.print(f"  - {link}")


async def _run_monitor(
    config: MonitorConfig,
    blob_store: BlobStore,
    dataset: Path,
    mailer: Optional[SendMailClient],
    concurrency: int,
    settle_delay: float,
    headless: bool,
) -> list[RunRecord]:
    """Run the monitor asynchronously."""
    sink = JsonLinesSink(dataset)
    baselines = BaselineStore(blob_store)

    try:
        async with PlaywrightVisitor(
            headless=headless, settle_delay=settle_delay
        ) as visitor:
            monitor = ChangeMonitor(
                visitor,
                baselines,
                sink,
                config,
                mailer=mailer,
                max_concurrency=concurrency,
            )
            return await monitor.run()
    finally:
        if mailer is not None:
            await mailer.aclose()
        if isinstance(blob_store, ApifyKeyValueStore):
            await blob_store.aclose()


app = typer.Typer(
    name="pagewatch",
    help="Watch web pages for content changes.",
    add_completion=False,
    rich_markup_mode="rich",
    no_args_is_help=True,
)


@app.callback()
def callback(
    version: Annotated[
        Optional[bool],
        typer.Option(
            "--version",
            "-V",
            callback=version_callback,
            is_eager=True,
            help="Show version and exit",
        ),
    ] = None,
) -> None:
    """Watch web pages for content changes."""


@app.command()
def run(
    input_file: Annotated[
        Path,
        typer.Argument(help="JSON input with the URLs to check"),
    ] = Path(DEFAULT_INPUT_FILE),
    store_dir: Annotated[
        Optional[Path],
        typer.Option(
            "-s",
            "--store-dir",
            envvar="PAGEWATCH_STORE_DIR",
            help="Local directory for baselines [default: ./storage/key_value_stores/<store name>]",
        ),
    ] = None,
    store_id: Annotated[
        Optional[str],
        typer.Option(
            "--store-id",
            envvar="PAGEWATCH_STORE_ID",
            help="Use a remote Apify key-value store instead of a local directory",
        ),
    ] = None,
    token: Annotated[
        Optional[str],
        typer.Option(
            "--token",
            envvar="APIFY_TOKEN",
            help="API token for the remote store and the mail endpoint",
        ),
    ] = None,
    dataset: Annotated[
        Path,
        typer.Option(
            "-o",
            "--dataset",
            help="JSON Lines file receiving one record per URL",
        ),
    ] = Path("./storage/datasets/results.jsonl"),
    concurrency: Annotated[
        int,
        typer.Option(
            "-c",
            "--concurrency",
            min=1,
            help="Number of pages checked at once",
        ),
    ] = 5,
    settle_delay: Annotated[
        float,
        typer.Option(
            "--settle-delay",
            min=0.0,
            help="Seconds to wait after page load for dynamic content",
        ),
    ] = 5.0,
    headed: Annotated[
        bool,
        typer.Option("--headed", help="Show the browser window"),
    ] = False,
    mail_endpoint: Annotated[
        str,
        typer.Option(
            "--mail-endpoint",
            envvar="PAGEWATCH_MAIL_ENDPOINT",
            help="HTTP endpoint that accepts send-mail requests",
        ),
    ] = DEFAULT_ENDPOINT,
    verbose: Annotated[
        bool,
        typer.Option("-v", "--verbose", help="Verbose output"),
    ] = False,
    quiet: Annotated[
        bool,
        typer.Option("-q", "--quiet", help="Only log warnings and errors"),
    ] = False,
) -> None:
    """Check every URL in the input once.

    \b
    Examples:
        pagewatch run INPUT.json
        pagewatch run INPUT.json -s ./baselines -o results.jsonl
        pagewatch INPUT.json --store-id my-store --token $APIFY_TOKEN
    """
    setup_logging(verbose=verbose, quiet=quiet)

    try:
        config = load_input(input_file)
    except InputError as e:
        console.print(f"[red]Invalid input: {e}[/red]")
        raise typer.Exit(2)

    store_name = default_store_name()
    blob_store: BlobStore
    if store_id:
        blob_store = ApifyKeyValueStore(store_id, token=token)
        location = f"Apify store {store_id}"
    else:
        directory = store_dir or _default_store_dir(store_name)
        blob_store = FilesystemBlobStore(directory)
        location = str(directory)

    mailer: Optional[SendMailClient] = None
    if config.send_notification_to:
        if token or mail_endpoint != DEFAULT_ENDPOINT:
            mailer = SendMailClient(token=token, endpoint=mail_endpoint)
        else:
            console.print("[yellow]No API token given, mail notifications are disabled.[/yellow]")

    console.print()
    console.print(
        Panel(
            f"[bold cyan]URLs:[/bold cyan] {len(config.urls)}\n"
            f"[bold green]Retry strategy:[/bold green] {config.retry_strategy.value}"
            f" (max retries {config.max_retries})\n"
            f"[bold yellow]Store:[/bold yellow] {location}",
            title="[bold]pagewatch[/bold]",
            border_style="blue",
        )
    )

    try:
        records = asyncio.run(
            _run_monitor(
                config,
                blob_store,
                dataset,
                mailer,
                concurrency,
                settle_delay,
                not headed,
            )
        )
    except KeyboardInterrupt:
        console.print("\n[yellow]Interrupted. Baselines of unfinished URLs are untouched.[/yellow]")
        raise typer.Exit(1)

    _print_summary(records, blob_store)

    failed = [r for r in records if r.status == "failed"]
    changed = [r for r in records if r.status == "changed"]
    console.print()
    console.print(
        Panel(
            f"[bold yellow]Changed:[/bold yellow] {len(changed)}\n"
            f"[bold red]Failed:[/bold red] {len(failed)}\n"
            f"[bold]Records:[/bold] {dataset}",
            title="[bold green]Check Complete![/bold green]",
            border_style="red" if failed else "green",
        )
    )
    if failed:
        raise typer.Exit(1)


@app.command("keys")
def keys(
    urls: Annotated[list[str], typer.Argument(help="URLs to derive store keys for")],
) -> None:
    """Print the baseline record key used for each URL, tab separated."""
    for url in urls:
        typer.echo(f"{record_key(url_key(url))}\t{url}")


def main() -> None:
    """Main entry point.

    Allows both:
        pagewatch INPUT.json
        pagewatch run INPUT.json
    """
    sys.argv = _rewrite_argv(sys.argv)
    app()


if __name__ == "__main__":
    main()
