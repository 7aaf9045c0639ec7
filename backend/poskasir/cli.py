# Overview: Flask CLI command groups for bootstrap and user inspection.

# backend/poskasir/cli.py
# Commands Legend (run from the backend directory):
# Prereqs:
# - Activate your virtualenv.
# - Set FLASK_APP to wsgi.py (PowerShell: $env:FLASK_APP="wsgi.py").
# - Use: python -m flask <group> <command> [options]
#
# System bootstrap:
# - python -m flask system init-db
#   Create all tables directly (dev/test; production uses `flask db upgrade`).
# - python -m flask system seed
#   Idempotent: payment methods, cancellation reasons, categories, settings, default users.
# - python -m flask system reset-db --yes
#   DEV/TEST only: drop and recreate all tables (deletes all data).
#
# User inspection/bootstrap:
# - python -m flask users list [--role cashier]
#   List live users with role and active status.
# - python -m flask users create --username admin2 --email admin2@poskasir.local --password "Password123" --role admin
#   Create a user (prompts if options are omitted).

import click
from flask.cli import with_appcontext

from .extensions import db
from .models import CancellationReason, Category, PaymentMethod, User
from .models.auth import USER_ROLES
from .services.auth_service import hash_password
from .services.settings_service import seed_default_settings

DEFAULT_PAYMENT_METHODS = [
    ("Cash", "Tunai di kasir"),
    ("QRIS Dinamis", "QRIS dibuat per transaksi melalui Midtrans"),
    ("QRIS Statis", "QRIS statis yang dicetak di kasir"),
]

DEFAULT_CANCELLATION_REASONS = [
    ("Stok Habis", "Produk tidak tersedia"),
    ("Permintaan Pelanggan", "Pelanggan membatalkan pesanan"),
    ("Kesalahan Input", "Pesanan salah dimasukkan kasir"),
    ("Masalah Pembayaran", "Pembayaran gagal atau kedaluwarsa"),
    ("Lainnya", None),
]

DEFAULT_CATEGORIES = ["Makanan", "Minuman", "Camilan", "Makanan Penutup", "Paket"]

DEFAULT_PASSWORD = "Password123"

DEFAULT_USERS = [
    ("admin", "admin@poskasir.local", "admin"),
    ("manager", "manager@poskasir.local", "manager"),
    ("cashier", "cashier@poskasir.local", "cashier"),
]


@click.group('system')
def system_group():
    """System bootstrap commands."""


@system_group.command('init-db')
@with_appcontext
def init_db():
    """Create all tables that do not exist yet."""
    db.create_all()
    click.echo("PASS Tables created")


@system_group.command('reset-db')
@click.option('--yes', is_flag=True, help='Skip confirmation')
@with_appcontext
def reset_db(yes):
    """
    DANGER: Drop all tables and recreate schema.

    This will DELETE ALL DATA!
    """
    if not yes:
        click.confirm("WARN This will DELETE ALL DATA. Are you sure?", abort=True)

    click.echo("DELETE  Dropping all tables...")
    db.drop_all()

    click.echo("BUILD  Creating all tables...")
    db.create_all()

    click.echo("PASS Database reset complete. Run 'python -m flask system seed' to initialize.")


def seed_reference_data() -> dict:
    """Insert missing lookup rows. Returns how many rows of each kind were added."""
    added = {"payment_methods": 0, "cancellation_reasons": 0, "categories": 0, "settings": 0}

    for name, description in DEFAULT_PAYMENT_METHODS:
        if db.session.query(PaymentMethod.id).filter_by(name=name).first() is None:
            db.session.add(PaymentMethod(name=name, description=description))
            added["payment_methods"] += 1

    for reason, description in DEFAULT_CANCELLATION_REASONS:
        if db.session.query(CancellationReason.id).filter_by(reason=reason).first() is None:
            db.session.add(CancellationReason(reason=reason, description=description))
            added["cancellation_reasons"] += 1

    for name in DEFAULT_CATEGORIES:
        if db.session.query(Category.id).filter_by(name=name).first() is None:
            db.session.add(Category(name=name))
            added["categories"] += 1

    added["settings"] = seed_default_settings()

    db.session.commit()
    return added


@system_group.command('seed')
@with_appcontext
def seed():
    """
    Seed lookup data and the default staff accounts.

    Safe to run repeatedly: existing rows are left untouched.

    Users: admin/admin@poskasir.local, manager/manager@poskasir.local,
    cashier/cashier@poskasir.local, all with password "Password123".

    SECURITY: Change passwords immediately in production!
    """
    click.echo("START Seeding reference data...")
    added = seed_reference_data()
    for kind, count in added.items():
        click.echo(f"PASS {kind}: {count} added")

    click.echo("\nUSERS Creating default users...")
    for username, email, role in DEFAULT_USERS:
        existing = db.session.query(User).filter(
            (User.username == username) | (User.email == email)
        ).first()
        if existing:
            click.echo(f"WARN  User '{username}' already exists, skipping...")
            continue
        db.session.add(User(
            username=username,
            email=email,
            password_hash=hash_password(DEFAULT_PASSWORD),
            role=role,
        ))
        db.session.commit()
        click.echo(f"PASS Created user: {username} ({email}) with role '{role}'")

    click.echo("\nDONE Seed complete. Default password: " + DEFAULT_PASSWORD)


@click.group('users')
def users_group():
    """User inspection and bootstrap commands."""


@users_group.command('create')
@click.option('--username', prompt=True, help='Username')
@click.option('--email', prompt=True, help='Email address')
@click.option('--password', prompt=True, hide_input=True, confirmation_prompt=True, help='Password')
@click.option('--role', type=click.Choice(list(USER_ROLES)), prompt=True, help='Role')
@with_appcontext
def create_user_cli(username, email, password, role):
    """Create a user without going through the API (no activity log entry)."""
    email = email.strip().lower()
    if not 8 <= len(password) <= 32:
        raise click.BadParameter("password must be 8 to 32 characters", param_hint="--password")

    taken = db.session.query(User.id).filter(
        (User.username == username) | (User.email == email)
    ).first()
    if taken:
        raise click.ClickException(f"User with username '{username}' or email '{email}' already exists")

    user = User(username=username, email=email, password_hash=hash_password(password), role=role)
    db.session.add(user)
    db.session.commit()
    click.echo(f"PASS Created user: {username} ({email}) with role '{role}' (ID: {user.id})")


@users_group.command('list')
@click.option('--role', type=click.Choice(list(USER_ROLES)), help='Filter by role')
@with_appcontext
def list_users(role):
    """List live users with their roles."""
    query = db.session.query(User).filter(User.deleted_at.is_(None))
    if role:
        query = query.filter(User.role == role)

    users = query.order_by(User.created_at).all()
    if not users:
        click.echo("No users found.")
        return

    click.echo("\n" + "=" * 100)
    click.echo(f"{'ID':<38} {'Username':<20} {'Email':<28} {'Active':<8} {'Role'}")
    click.echo("=" * 100)
    for user in users:
        active_str = "Yes" if user.is_active else "No"
        click.echo(f"{str(user.id):<38} {user.username:<20} {user.email:<28} {active_str:<8} {user.role}")
    click.echo("=" * 100 + "\n")


def register_commands(app):
    """Register all CLI commands with Flask app."""
    app.cli.add_command(system_group)
    app.cli.add_command(users_group)
