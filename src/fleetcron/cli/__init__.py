"""fleetcron command line interface."""

from fleetcron.cli.app import app

__all__ = ["app"]
