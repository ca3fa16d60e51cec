"""User management CLI commands."""

import click
from flask import current_app
from flask.cli import with_appcontext

from lens.errors import LensError
from lens.extensions import db
from lens.models import User, UserRole
from lens.services.users import create_account, find_by_identifier, set_role as change_role


def _find_user(identifier: str) -> User | None:
    user = find_by_identifier(identifier)
    if not user:
        click.echo(click.style(f'Error: No user "{identifier}" found', fg='red'))
    return user


@click.group('user')
def user_commands():
    """User management commands."""
    pass


@user_commands.command('create-super-admin')
@click.option('--email', required=True, help='Account email')
@click.option('--username', required=True, help='Account username')
@click.option('--password', required=True, help='Account password')
@with_appcontext
def create_super_admin(email, username, password):
    """Create a super admin account."""
    try:
        user = create_account(
            username=username, email=email, password=password, role=UserRole.SUPER_ADMIN
        )
    except LensError as e:
        click.echo(click.style(f'Error: {e.message}', fg='red'))
        return

    click.echo(click.style('Super admin created successfully!', fg='green'))
    click.echo(f'  Username: {user.username}')
    click.echo(f'  Email: {user.email}')


@user_commands.command('ensure-super-admin')
@with_appcontext
def ensure_super_admin():
    """Create the super admin from SUPER_ADMIN_* settings unless one already exists."""
    config = current_app.config
    existing = db.session.query(User).filter_by(role=UserRole.SUPER_ADMIN).first()
    if existing:
        click.echo(f'Super admin already exists: {existing.username}')
        return

    email, password = config.get('SUPER_ADMIN_EMAIL'), config.get('SUPER_ADMIN_PASSWORD')
    if not email or not password:
        click.echo(click.style('Error: SUPER_ADMIN_EMAIL and SUPER_ADMIN_PASSWORD must be set', fg='red'))
        return

    promoted = find_by_identifier(email)
    if promoted:
        promoted.role = UserRole.SUPER_ADMIN
        db.session.commit()
        click.echo(click.style(f'Promoted {promoted.username} to super admin.', fg='green'))
        return

    try:
        user = create_account(
            username=config.get('SUPER_ADMIN_USERNAME') or 'superadmin',
            email=email,
            password=password,
            role=UserRole.SUPER_ADMIN,
        )
    except LensError as e:
        click.echo(click.style(f'Error: {e.message}', fg='red'))
        return
    click.echo(click.style(f'Super admin {user.username} created.', fg='green'))


@user_commands.command('set-password')
@click.option('--user', 'identifier', required=True, help='Username or email')
@click.option('--password', required=True, help='New password')
@with_appcontext
def set_password(identifier, password):
    """Set or reset a user's password."""
    user = _find_user(identifier)
    if not user:
        return

    from lens.services.tokens import revoke_all_refresh_tokens

    user.set_password(password)
    revoke_all_refresh_tokens(user)
    db.session.commit()
    click.echo(click.style('Password updated.', fg='green'))


@user_commands.command('set-role')
@click.option('--user', 'identifier', required=True, help='Username or email')
@click.option('--role', type=click.Choice([r.value for r in UserRole]), required=True)
@with_appcontext
def set_role(identifier, role):
    """Change a user's role."""
    user = _find_user(identifier)
    if not user:
        return

    try:
        change_role(user, user, UserRole(role))
    except LensError as e:
        click.echo(click.style(f'Error: {e.message}', fg='red'))
        return
    click.echo(click.style(f'{user.username} is now {role}.', fg='green'))
