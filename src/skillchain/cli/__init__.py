"""Command-line interface for skillchain (typer + rich)."""
