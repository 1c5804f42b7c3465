import click
from flask import current_app
from flask.cli import with_appcontext
from pharmacy.extensions import db
from pharmacy.models.user_models import User, Role, Permission
from pharmacy.models.hospital_models import Hospital
from pharmacy.services.account_service import refresh_statuses
from pharmacy.utils.encryption_util import encryptor

ROLES = [
    {'name': 'admin', 'description': 'Full system access'},
    {'name': 'pharmacist', 'description': 'Dispensing, accounts and reporting'},
    {'name': 'doctor', 'description': 'Hospital clinician access'},
    {'name': 'nurse', 'description': 'Hospital nursing access'},
    {'name': 'staff', 'description': 'Front-of-house and accounts staff'},
]

PERMISSIONS = [
    {'name': 'read_patients', 'resource': 'patients', 'action': 'read'},
    {'name': 'write_patients', 'resource': 'patients', 'action': 'write'},
    {'name': 'read_discharge_forms', 'resource': 'discharge_forms', 'action': 'read'},
    {'name': 'write_discharge_forms', 'resource': 'discharge_forms', 'action': 'write'},
    {'name': 'read_accounts', 'resource': 'accounts', 'action': 'read'},
    {'name': 'write_accounts', 'resource': 'accounts', 'action': 'write'},
    {'name': 'read_reports', 'resource': 'reports', 'action': 'read'},
]

# Permissions per role; admin bypasses permission checks entirely
ROLE_PERMISSIONS = {
    'pharmacist': [p['name'] for p in PERMISSIONS],
    'doctor': ['read_patients', 'write_patients', 'read_discharge_forms', 'write_discharge_forms', 'read_accounts'],
    'nurse': ['read_patients', 'read_discharge_forms', 'write_discharge_forms'],
    'staff': ['read_patients', 'read_discharge_forms', 'read_accounts', 'write_accounts', 'read_reports'],
}

HOSPITALS = [
    {'name': 'Northern Beaches Hospital', 'address': '105 Frenchs Forest Rd W, Frenchs Forest NSW 2086'},
    {'name': 'Royal North Shore Hospital', 'address': 'Reserve Rd, St Leonards NSW 2065'},
    {'name': 'Mona Vale Hospital', 'address': '18 Coronation St, Mona Vale NSW 2103'},
]


def seed_defaults():
    """Creates the default roles, permissions and hospitals. Safe to run repeatedly."""
    for role_data in ROLES:
        if not Role.query.filter_by(name=role_data['name']).first():
            db.session.add(Role(**role_data))
    for perm_data in PERMISSIONS:
        if not Permission.query.filter_by(name=perm_data['name']).first():
            db.session.add(Permission(**perm_data))
    for hospital_data in HOSPITALS:
        if not Hospital.query.filter_by(name=hospital_data['name']).first():
            db.session.add(Hospital(**hospital_data))
    db.session.commit()

    for role_name, permission_names in ROLE_PERMISSIONS.items():
        role = Role.query.filter_by(name=role_name).first()
        role.permissions = Permission.query.filter(Permission.name.in_(permission_names)).all()
    db.session.commit()


@click.command('init-db')
@with_appcontext
def init_db_command():
    """Create tables and seed roles, permissions and hospitals."""
    db.create_all()
    seed_defaults()
    click.echo("Database initialized successfully with roles, permissions and hospitals!")


@click.command('create-admin')
@click.option('--username', prompt=True)
@click.option('--email', prompt=True)
@click.password_option()
@with_appcontext
def create_admin_command(username, email, password):
    """Create an administrator account."""
    if User.query.filter_by(username_hash=User.create_hash(username)).first():
        raise click.ClickException('Username already exists')
    if User.query.filter_by(email_hash=User.create_hash(email)).first():
        raise click.ClickException('Email already exists')

    role = Role.query.filter_by(name='admin').first()
    if not role:
        raise click.ClickException("Run 'flask init-db' first")

    user = User(
        username=encryptor.encrypt(username),
        email=encryptor.encrypt(email),
        username_hash=User.create_hash(username),
        email_hash=User.create_hash(email),
        role_id=role.id
    )
    try:
        user.set_password(password)
    except ValueError as e:
        raise click.ClickException(str(e))

    db.session.add(user)
    db.session.commit()
    click.echo(f"Admin user '{username}' created.")


@click.command('refresh-account-statuses')
@with_appcontext
def refresh_account_statuses_command():
    """Re-derive and store the status of every customer account."""
    changed = refresh_statuses()
    db.session.commit()
    current_app.logger.info(f"Account status refresh changed {changed} accounts")
    click.echo(f"Refreshed account statuses: {changed} changed.")


def register_commands(app):
    app.cli.add_command(init_db_command)
    app.cli.add_command(create_admin_command)
    app.cli.add_command(refresh_account_statuses_command)
