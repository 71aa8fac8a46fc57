"""CLI command showing installed kits and the ownership of their files."""

from __future__ import annotations

import asyncio
from collections import Counter
from pathlib import Path
from typing import Optional

import typer
from rich.table import Table

from claudekit_cli.cli.helpers import configure_logging, console
from claudekit_cli.core.config import load_config
from claudekit_cli.core.paths import resolve_config_root
from claudekit_cli.installation.manifest_store import ManifestStore
from claudekit_cli.installation.models import Ownership
from claudekit_cli.installation.ownership import check_ownership_batch
from claudekit_cli.installation.tracker import get_optimal_concurrency


def status(
    global_install: bool = typer.Option(False, "--global", "-g", help="Inspect ~/.claude"),
    project_dir: Optional[Path] = typer.Option(None, "--project", help="Project directory for a local install"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="List modified files"),
) -> None:
    """Show installed kits with pristine, modified and user-owned file counts."""
    configure_logging(verbose)
    config_root = resolve_config_root(global_install, project_dir)
    store = ManifestStore(config_root)
    manifest = store.read()
    if not manifest.kits:
        console.print(f"[yellow]No kits installed in {config_root}[/yellow]")
        raise typer.Exit(0)

    concurrency = load_config().concurrency or get_optimal_concurrency()
    table = Table(title=f"Kits in {config_root}")
    table.add_column("Kit", style="cyan")
    table.add_column("Version")
    table.add_column("Installed")
    table.add_column("Pristine", justify="right", style="green")
    table.add_column("Modified", justify="right", style="yellow")
    table.add_column("User", justify="right")
    table.add_column("Missing", justify="right", style="red")

    modified: list[str] = []
    for kit_name, kit_manifest in manifest.kits.items():
        results = asyncio.run(
            check_ownership_batch(
                [(config_root / entry.path, entry) for entry in kit_manifest.files],
                concurrency=concurrency,
            )
        )
        counts = Counter(result.ownership for result in results if result.exists)
        missing = sum(1 for result in results if not result.exists)
        modified.extend(
            f"{kit_name}: {result.path.relative_to(config_root).as_posix()}"
            for result in results
            if result.exists and result.ownership is Ownership.CK_MODIFIED
        )
        table.add_row(
            kit_name,
            kit_manifest.version,
            kit_manifest.installed_at,
            str(counts[Ownership.CK]),
            str(counts[Ownership.CK_MODIFIED]),
            str(counts[Ownership.USER]),
            str(missing),
        )

    console.print(table)
    if verbose and modified:
        console.print("[yellow]Modified files:[/yellow]")
        for line in modified:
            console.print(f"  • {line}")
