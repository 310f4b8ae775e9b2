# Overview: Flask CLI command groups for bootstrap, inspection, and maintenance.

# backend/stockledger/cli.py
# Commands Legend (run from the backend directory):
# Prereqs:
# - Activate your virtualenv.
# - Set FLASK_APP (PowerShell: $env:FLASK_APP="stockledger:create_app").
# - Use: python -m flask <group> <command> [options]
#
# System bootstrap/repair:
# - python -m flask system reset-db --yes
#   DEV/TEST only: drop and recreate all tables (deletes all data).
# - python -m flask system seed
#   Idempotent sample data: users, raw materials, a product and its structure.
#
# Sequence inspection/repair:
# - python -m flask sequences show BILL [--year 2024-2025]
#   Show the last issued and next number for a domain.
# - python -m flask sequences sync RECEIPT [--year 2024-2025]
#   Raise the counter to the highest stored document number (never lowers it).

import click
from decimal import Decimal
from flask.cli import with_appcontext

from .extensions import db
from .models import Product, RawMaterial, User
from .services import bom_service, sequence_service, stock_service
from .services.errors import LedgerError


@click.group('system')
def system_group():
    """System bootstrap and repair commands."""


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

    click.echo("PASS Database reset complete. Run 'python -m flask system seed' for sample data.")


@system_group.command('seed')
@with_appcontext
def seed():
    """
    Create sample data (skips anything that already exists).

    Creates:
    - Users: admin@stockledger.local (admin), worker@stockledger.local
    - Raw materials: Steel (100 kg), Copper (50 kg)
    - Product: Sanch, structure Steel x2 + Copper x1 per unit
    """
    click.echo("START Seeding sample data...")

    users = [
        ("Admin", "admin@stockledger.local", True),
        ("Worker", "worker@stockledger.local", False),
    ]
    for name, email, is_admin in users:
        if db.session.query(User).filter_by(email=email).first():
            click.echo(f"SKIP User {email} exists")
            continue
        user = stock_service.create_user(name, email, is_admin)
        click.echo(f"PASS Created user {user.email} (ID: {user.id})")

    materials = {}
    for name, unit, quantity in (("Steel", "kg", Decimal("100")), ("Copper", "kg", Decimal("50"))):
        material = db.session.query(RawMaterial).filter_by(name=name).first()
        if material:
            click.echo(f"SKIP Raw material {name} exists")
        else:
            material = stock_service.create_raw_material(name, unit=unit, quantity=quantity)
            click.echo(f"PASS Created raw material {name}: {quantity} {unit}")
        materials[name] = material

    product = db.session.query(Product).filter_by(name="Sanch").first()
    if product:
        click.echo("SKIP Product Sanch exists")
    else:
        product = stock_service.create_product("Sanch", price=Decimal("250.00"))
        bom_service.define_structure(product.id, [
            {"raw_material_id": materials["Steel"].id, "quantity_required": 2},
            {"raw_material_id": materials["Copper"].id, "quantity_required": 1},
        ])
        click.echo(f"PASS Created product Sanch (ID: {product.id}) with structure")

    click.echo("PASS Seed complete.")


@click.group('sequences')
def sequences_group():
    """Document number counters."""


@sequences_group.command('show')
@click.argument('domain')
@click.option('--year', 'financial_year', default=None, help='Financial year, e.g. 2024-2025')
@with_appcontext
def show_sequence(domain, financial_year):
    """Show the counter for DOMAIN (BILL, RECEIPT, VENDOR_PAYMENT, VENDOR_CREDIT_NOTE, INVOICE)."""
    try:
        info = sequence_service.current_number(domain, financial_year)
    except LedgerError as e:
        raise click.ClickException(e.message)

    click.echo(f"{'Domain':<20} {'Year':<10} {'Last':<8} {'Next'}")
    click.echo(f"{info['domain']:<20} {info['financial_year']:<10} {info['last_number']:<8} {info['formatted']}")


@sequences_group.command('sync')
@click.argument('domain')
@click.option('--year', 'financial_year', default=None, help='Financial year, e.g. 2024-2025')
@with_appcontext
def sync_sequence(domain, financial_year):
    """Raise the DOMAIN counter to the highest stored document number."""
    try:
        result = sequence_service.sync(domain, financial_year)
    except LedgerError as e:
        raise click.ClickException(e.message)

    if result["last_number"] != result["previous_last_number"]:
        click.echo(
            f"FIXED {result['domain']} {result['financial_year']}: "
            f"{result['previous_last_number']} -> {result['last_number']}"
        )
    else:
        click.echo(f"PASS {result['domain']} {result['financial_year']} in sync at {result['last_number']}")


def register_commands(app):
    """Register all CLI commands with Flask app."""
    app.cli.add_command(system_group)
    app.cli.add_command(sequences_group)
