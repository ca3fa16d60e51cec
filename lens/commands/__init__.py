"""CLI commands for Lens."""

from .stats import stats_commands
from .user import user_commands


def register_commands(app):
    """Register all CLI command groups with the Flask app."""
    app.cli.add_command(user_commands)
    app.cli.add_command(stats_commands)
