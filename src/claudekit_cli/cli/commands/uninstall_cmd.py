"""CLI command for removing an installed kit.

Usage:
    ck uninstall                     # Remove every kit from ./.claude
    ck uninstall --kit marketing     # Remove one kit, keep shared files
    ck uninstall --global --force    # Also remove files you modified
"""

from __future__ import annotations

from pathlib import Path
from typing import Optional

import typer
from filelock import FileLock, Timeout
from rich.markup import escape

from claudekit_cli.cli.helpers import configure_logging, console
from claudekit_cli.core.constants import LOCK_FILENAME
from claudekit_cli.core.paths import resolve_config_root
from claudekit_cli.installation.exceptions import InstallationError
from claudekit_cli.installation.installer import uninstall_kit


def uninstall(
    kit: Optional[str] = typer.Option(None, "--kit", "-k", help="Kit to remove (default: all kits)"),
    global_install: bool = typer.Option(False, "--global", "-g", help="Operate on ~/.claude"),
    project_dir: Optional[Path] = typer.Option(None, "--project", help="Project directory for a local install"),
    force: bool = typer.Option(False, "--force", help="Also remove kit files you modified"),
    lock_timeout: float = typer.Option(30.0, "--lock-timeout", help="Seconds to wait for another ck process"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Show detailed logging"),
) -> None:
    """Remove kit files while keeping user files and shared kit files."""
    configure_logging(verbose)
    config_root = resolve_config_root(global_install, project_dir)
    if not config_root.is_dir():
        console.print(f"[red]No configuration directory at {config_root}[/red]")
        raise typer.Exit(1)

    try:
        with FileLock(str(config_root / LOCK_FILENAME), timeout=lock_timeout):
            result = uninstall_kit(config_root, kit=kit, force=force)
    except Timeout:
        console.print(f"[red]Another ck process is working on {config_root}. Try again later.[/red]")
        raise typer.Exit(1)
    except (InstallationError, OSError) as exc:
        console.print(f"[red]Uninstall failed:[/red] {escape(str(exc))}")
        raise typer.Exit(1)

    target = f"kit [bold]{kit}[/bold]" if kit else "all kits"
    console.print(f"[green]✓[/green] Uninstalled {target}: removed {len(result.removed)} path(s)")
    if result.preserved:
        console.print(f"[yellow]Kept {len(result.preserved)} file(s) that are shared or modified:[/yellow]")
        for path in result.preserved:
            console.print(f"  • {path}")
    if result.errors:
        console.print(f"[red]Could not remove {len(result.errors)} path(s):[/red] {', '.join(result.errors)}")
    if result.remaining_kits:
        console.print(f"Remaining kits: {', '.join(result.remaining_kits)}")
