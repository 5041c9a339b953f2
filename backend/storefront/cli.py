# Overview: Flask CLI command groups for bootstrap and order inspection.

# backend/storefront/cli.py
# Commands Legend (run from the backend directory):
# Prereqs:
# - Activate your virtualenv.
# - Set FLASK_APP to wsgi.py (PowerShell: $env:FLASK_APP="wsgi.py").
# - Use: python -m flask <group> <command> [options]
#
# System bootstrap:
# - python -m flask system init-db
#   Create all tables that do not exist yet (use `flask db upgrade` for migrations).
# - python -m flask system reset-db --yes
#   DEV/TEST only: drop and recreate all tables (deletes all data).
# - python -m flask system seed-superadmin
#   Create the super admin from SUPERADMIN_USERNAME / SUPERADMIN_EMAIL /
#   SUPERADMIN_NAME / SUPERADMIN_PASSWORD. Idempotent.
#
# Order inspection:
# - python -m flask orders list [--status Pending] [--limit 20]
#   List recent orders with totals and payment state.

import os

import click
from flask.cli import with_appcontext

from .errors import StorefrontError
from .extensions import db
from .models import Admin, Order
from .services.auth_service import create_admin


@click.group('system')
def system_group():
    """System bootstrap and repair commands."""


@system_group.command('init-db')
@with_appcontext
def init_db():
    """Create missing tables."""
    db.create_all()
    click.echo("OK Database tables created")


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
    click.echo("OK Database reset complete")


@system_group.command('seed-superadmin')
@with_appcontext
def seed_superadmin():
    """Create the super admin from environment variables if it does not exist."""
    username = os.environ.get("SUPERADMIN_USERNAME")
    email = os.environ.get("SUPERADMIN_EMAIL")
    name = os.environ.get("SUPERADMIN_NAME")
    password = os.environ.get("SUPERADMIN_PASSWORD")

    if not all([username, email, name, password]):
        raise click.ClickException(
            "SUPERADMIN_USERNAME, SUPERADMIN_EMAIL, SUPERADMIN_NAME and SUPERADMIN_PASSWORD must be set"
        )

    existing = db.session.query(Admin).filter(
        db.or_(Admin.username == username, Admin.email == email.lower())
    ).first()
    if existing:
        click.echo(f"SKIP Super admin already exists: {existing.username}")
        return

    try:
        admin = create_admin(
            username=username,
            email=email,
            name=name,
            password=password,
            super_admin=True,
        )
    except StorefrontError as e:
        raise click.ClickException(e.message)
    click.echo(f"OK Created super admin {admin.username} <{admin.email}>")


@click.group('orders')
def orders_group():
    """Order inspection commands."""


@orders_group.command('list')
@click.option('--status', default=None, help='Filter by order status')
@click.option('--limit', default=20, show_default=True, type=int)
@with_appcontext
def list_orders(status, limit):
    """List recent orders."""
    query = db.session.query(Order)
    if status:
        query = query.filter(Order.status == status)
    orders = query.order_by(Order.created_at.desc(), Order.id.desc()).limit(limit).all()

    if not orders:
        click.echo("No orders found")
        return

    for order in orders:
        click.echo(
            f"{order.order_id:<14} {order.status:<18} {order.payment_status:<8} "
            f"{order.fulfillment_flow:<13} {order.total_amount:>12} {order.email}"
        )


def register_commands(app):
    """Register all CLI commands with Flask app."""
    app.cli.add_command(system_group)
    app.cli.add_command(orders_group)
