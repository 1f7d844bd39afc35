"""Command line client for the speed alert service; the Typer app is ``cli.app.app``."""
