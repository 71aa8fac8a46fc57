"""Command-line interface for claudekit-cli."""
