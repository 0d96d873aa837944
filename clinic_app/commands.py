import click
from flask.cli import with_appcontext
from clinic_app.extensions import db
from clinic_app.models.user_models import User
from clinic_app.roles import SUPER_ADMIN


@click.command('init-db')
@with_appcontext
def init_db_command():
    """Create every table for the clinic schema."""
    db.create_all()
    click.echo("Database initialized successfully!")


@click.command('create-superadmin')
@click.option('--email', prompt=True, help='Login email for the SuperAdmin account.')
@click.option('--username', prompt=True)
@click.option('--password', prompt=True, hide_input=True, confirmation_prompt=True)
@with_appcontext
def create_superadmin_command(email, username, password):
    """Create a verified SuperAdmin account."""
    email = email.strip().lower()
    if User.find_by_email(email):
        raise click.ClickException(f"A user with email {email} already exists.")

    user = User(username=username, role=SUPER_ADMIN, is_verified=True)
    user.set_email(email)
    try:
        user.set_password(password)
    except ValueError as e:
        raise click.ClickException(str(e))

    db.session.add(user)
    db.session.commit()
    click.echo(f"SuperAdmin '{username}' created.")


def register_commands(app):
    app.cli.add_command(init_db_command)
    app.cli.add_command(create_superadmin_command)
