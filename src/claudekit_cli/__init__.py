"""
ClaudeKit CLI - installs kits into a .claude configuration directory and
keeps them in sync without clobbering local edits.

Usage:
    ck install <release-dir>
    ck uninstall [--kit NAME]
    ck status
"""

from __future__ import annotations

import typer

from claudekit_cli.cli.commands import install, status, uninstall

__version__ = "0.4.0"

app = typer.Typer(
    name="ck",
    help="Install and update ClaudeKit kits in a .claude directory",
    add_completion=False,
    no_args_is_help=True,
)

app.command()(install)
app.command()(uninstall)
app.command()(status)


def main():
    app()


if __name__ == "__main__":
    main()
