"""CLI command for installing or updating a kit from an extracted release.

Usage:
    ck install ./engineer-release                  # Install into ./.claude
    ck install ./engineer-release --global         # Install into ~/.claude
    ck install ./engineer-release --force          # Overwrite local edits
    ck install ./release --kit marketing -v        # Explicit kit, verbose log

Only files that changed since the last install are written. Files the user
edited are kept and reported as conflicts unless --force is given.
"""

from __future__ import annotations

import asyncio
from pathlib import Path
from typing import List, Optional

import typer
from filelock import FileLock, Timeout
from rich.markup import escape
from rich.progress import BarColumn, Progress, SpinnerColumn, TextColumn
from rich.table import Table

from claudekit_cli.cli.helpers import configure_logging, console
from claudekit_cli.core.config import load_config
from claudekit_cli.core.constants import LOCK_FILENAME
from claudekit_cli.core.paths import resolve_config_root
from claudekit_cli.installation.copy_executor import CopyReport
from claudekit_cli.installation.exceptions import InstallationError
from claudekit_cli.installation.installer import InstallOptions, InstallResult, install_kit, load_kit_metadata
from claudekit_cli.installation.migration import detect_legacy_kit


def _render_conflicts(report: CopyReport) -> None:
    if not report.conflicts:
        return
    table = Table(title="Conflicts", show_lines=False)
    table.add_column("Path", style="cyan")
    table.add_column("Existing", style="magenta")
    table.add_column("Winner")
    table.add_column("Reason", style="dim")
    for conflict in report.conflicts:
        winner_style = "green" if conflict.winner.value == "incoming" else "yellow"
        table.add_row(
            conflict.relative_path,
            conflict.existing_kit,
            f"[{winner_style}]{conflict.winner.value}[/{winner_style}]",
            conflict.reason.value,
        )
    console.print(table)


def _render_result(result: InstallResult) -> None:
    report = result.copy_report
    console.print(f"[green]✓[/green] Kit [bold]{result.kit}[/bold] v{result.version}: {report.summary()}")

    if result.deletion.deleted_paths:
        console.print(f"  Removed {len(result.deletion.deleted_paths)} obsolete path(s)")
    if result.deletion.preserved_paths:
        console.print(f"  [yellow]Kept {len(result.deletion.preserved_paths)} obsolete path(s) you modified[/yellow]")
    if result.deletion.errors:
        console.print(f"  [red]Could not remove {len(result.deletion.errors)} path(s)[/red]")

    _render_conflicts(report)
    if report.modified_preserved:
        console.print("[yellow]Locally modified files were kept. Re-run with --force to overwrite them:[/yellow]")
        for path in report.modified_preserved:
            console.print(f"  • {path}")

    if result.tracking.failed:
        console.print(
            f"[yellow]Failed to track {result.tracking.failed} of {result.tracking.total} files; "
            "re-run with --verbose for details.[/yellow]"
        )


def install(
    source_dir: Path = typer.Argument(
        ...,
        exists=True,
        file_okay=False,
        dir_okay=True,
        resolve_path=True,
        help="Extracted kit release directory",
    ),
    kit: Optional[str] = typer.Option(None, "--kit", "-k", help="Kit name (default: from release metadata)"),
    global_install: bool = typer.Option(False, "--global", "-g", help="Install into ~/.claude instead of ./.claude"),
    project_dir: Optional[Path] = typer.Option(None, "--project", help="Project directory for a local install"),
    force: bool = typer.Option(False, "--force", help="Overwrite and delete locally modified kit files"),
    force_overwrite_settings: bool = typer.Option(
        False, "--force-overwrite-settings", help="Replace settings.json instead of merging it"
    ),
    include: Optional[List[str]] = typer.Option(None, "--include", help="Only install paths matching this pattern"),
    lock_timeout: float = typer.Option(30.0, "--lock-timeout", help="Seconds to wait for another ck process"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Show detailed logging"),
) -> None:
    """Install or update a kit from an extracted release directory.

    Examples:
        ck install ./release            # Local project install
        ck install ./release --global   # Per-user install
    """
    configure_logging(verbose)
    config = load_config()

    kit_name = kit or config.default_kit or detect_legacy_kit(load_kit_metadata(source_dir).name)
    config_root = resolve_config_root(global_install, project_dir)
    config_root.mkdir(parents=True, exist_ok=True)

    options = InstallOptions(
        source_dir=source_dir,
        config_root=config_root,
        kit=kit_name,
        global_install=global_install,
        force=force,
        force_overwrite_settings=force_overwrite_settings or config.force_overwrite_settings,
        include_patterns=list(include or config.include),
        extra_never_copy=list(config.extra_never_copy),
        concurrency=config.concurrency,
    )

    lock = FileLock(str(config_root / LOCK_FILENAME), timeout=lock_timeout)
    try:
        with lock:
            with Progress(
                SpinnerColumn(),
                TextColumn("[progress.description]{task.description}"),
                BarColumn(),
                TextColumn("{task.completed}/{task.total}"),
                console=console,
                transient=True,
            ) as progress:
                task = progress.add_task("Tracking files", total=None)

                def _on_progress(done: int, total: int) -> None:
                    progress.update(task, completed=done, total=total)

                result = asyncio.run(install_kit(options, on_progress=_on_progress))
    except Timeout:
        console.print(f"[red]Another ck process is working on {config_root}. Try again later.[/red]")
        raise typer.Exit(1)
    except (InstallationError, OSError) as exc:
        console.print(f"[red]Install failed:[/red] {escape(str(exc))}")
        raise typer.Exit(1)

    _render_result(result)
