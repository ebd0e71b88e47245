"""Command-line interface."""

from stageplan.cli.main import app

__all__ = ["app"]
