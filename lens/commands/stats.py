"""Statistics maintenance CLI commands."""

import click
from flask.cli import with_appcontext

from lens.services.stats import recompute_user_stats
from lens.services.users import find_by_identifier


@click.group('stats')
def stats_commands():
    """User statistics commands."""
    pass


@stats_commands.command('recompute')
@click.option('--username', help='Only recompute this user')
@with_appcontext
def recompute(username):
    """Rebuild photo, view and like totals from photo rows.

    Example:
        flask stats recompute
        flask stats recompute --username jane
    """
    user_id = None
    if username:
        user = find_by_identifier(username)
        if not user:
            click.echo(click.style(f'Error: No user "{username}" found', fg='red'))
            return
        user_id = user.id

    changed = recompute_user_stats(user_id)
    click.echo(click.style(f'Stats recomputed, {changed} user(s) updated.', fg='green'))
