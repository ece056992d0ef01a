"""Click command group for backhub.

Commands stay thin; backup logic lives in backhub.backup.
"""

import signal
import sys
from importlib.metadata import PackageNotFoundError, version
from pathlib import Path

import click
from rich.console import Console
from rich.markup import escape

from backhub.config import DEFAULT_CONFIG_FILE, ConfigError, get_settings, load_config
from backhub.logging_setup import configure_logging

console = Console()


def _get_cli_version() -> str:
    """Get installed package version, or "unknown" from a source checkout."""
    try:
        return version("backhub")
    except PackageNotFoundError:
        return "unknown"


def _handle_sigint(signum, frame):
    """Handle Ctrl-C gracefully."""
    console.print("\n[dim]Cancelled.[/dim]")
    sys.exit(130)


@click.group()
@click.version_option(version=_get_cli_version())
def main():
    """backhub - back up git repositories as local mirrors."""
    signal.signal(signal.SIGINT, _handle_sigint)


@main.command()
@click.argument("config", default=DEFAULT_CONFIG_FILE, required=False)
@click.option(
    "-u",
    "--unlimited",
    is_flag=True,
    help="Keep every log line and print tables and errors in detail at the end",
)
@click.option(
    "-n",
    "--concurrency",
    type=click.IntRange(min=1),
    default=None,
    help="Number of repositories backed up in parallel (default: 5)",
)
@click.option(
    "--max-lines",
    type=click.IntRange(min=1),
    default=None,
    help="Log lines shown per repository (default: 15)",
)
@click.option(
    "-o",
    "--output-dir",
    type=click.Path(file_okay=False),
    default=None,
    help="Directory holding the mirrors (default: current directory)",
)
@click.option(
    "--report",
    type=click.Path(dir_okay=False),
    default=None,
    help="Write a Markdown report of the run to this file",
)
def backup(
    config: str,
    unlimited: bool,
    concurrency: int | None,
    max_lines: int | None,
    output_dir: str | None,
    report: str | None,
):
    """Create or refresh mirrors for every repository in CONFIG.

    CONFIG is a YAML file with a ``repos`` list (default: .backhub.yaml),
    or a single repository such as github.com/owner/name.

    Set GH_TOKEN to back up private repositories.

    Examples:
        backhub backup                          # uses .backhub.yaml
        backhub backup repos.yaml -n 10 -o /backups
        backhub backup github.com/tanq16/backhub
    """
    from backhub.backup import BackupHandler
    from backhub.output import OutputManager

    settings = get_settings()
    overrides = {
        key: value
        for key, value in {
            "concurrency": concurrency,
            "max_stream_lines": max_lines,
            "clone_folder": output_dir,
        }.items()
        if value is not None
    }
    if overrides:
        settings = settings.model_copy(update=overrides)

    output = OutputManager(
        max_stream_lines=settings.max_stream_lines,
        update_interval=settings.update_interval,
    )
    configure_logging(settings.log_level, settings.log_file or None, display=output)

    handler = BackupHandler(settings, output=output)
    try:
        handler.run_backup(config, unlimited_output=unlimited, report_path=report)
    except ConfigError as e:
        console.print(f"[red]Configuration error: {escape(str(e))}[/red]")
        sys.exit(1)
    except OSError as e:
        console.print(f"[red]Could not write report: {escape(str(e))}[/red]")
        sys.exit(1)


@main.command("list")
@click.argument("config", default=DEFAULT_CONFIG_FILE, required=False)
@click.option(
    "-o",
    "--output-dir",
    type=click.Path(file_okay=False),
    default=None,
    help="Directory holding the mirrors (default: current directory)",
)
@click.option("--markdown", is_flag=True, help="Print a Markdown table")
def list_repos(config: str, output_dir: str | None, markdown: bool):
    """List configured repositories and whether a local mirror exists."""
    from backhub.git_utils import git, local_folder_name
    from backhub.table import Table

    try:
        backup_config = load_config(config)
    except ConfigError as e:
        console.print(f"[red]Configuration error: {escape(str(e))}[/red]")
        sys.exit(1)

    if not backup_config.repos:
        console.print("[dim]No repositories configured.[/dim]")
        return

    folder = Path(output_dir).expanduser() if output_dir else get_settings().clone_path
    table = Table(["Repository", "Mirror", "Path"])
    for repo in backup_config.repos:
        path = folder / local_folder_name(repo)
        table.add_row([repo, "present" if git.is_repo(path) else "missing", str(path)])

    if markdown:
        click.echo(table.format_markdown_table(), nl=False)
    else:
        click.echo(table.format_table(inner_dividers=False), nl=False)


if __name__ == "__main__":
    main()
