# Overview: Flask CLI command group for database bootstrap and tenant maintenance.

# backend/stockledger/cli.py
# Commands Legend (run from the backend directory):
# Prereqs:
# - Activate your virtualenv.
# - Set FLASK_APP to stockledger (PowerShell: $env:FLASK_APP="stockledger").
# - Use: python -m flask ledger <command> [options]
#
# - python -m flask ledger init-db
#   Create all tables (use `flask db upgrade` for migration-managed databases).
# - python -m flask ledger create-business --name "Corner Shop" --owner-name "Sam"
#   Create a business with its settings row and an OWNER member.
# - python -m flask ledger reset-business --business-id 1 --yes
#   Full tenant reset: deletes the business's items, schema, operations and logs.
#   This is the only path that ever deletes operations or logs.

import click
from flask.cli import with_appcontext

from .extensions import db
from .models import (
    Business,
    BusinessMember,
    BusinessSettings,
    InventoryItem,
    InventoryLog,
    InventorySchema,
    Operation,
    User,
)
from .models.tenancy import ROLE_OWNER


@click.group('ledger')
def ledger_group():
    """Inventory ledger bootstrap and maintenance commands."""


@ledger_group.command('init-db')
@with_appcontext
def init_db():
    """Create all tables that do not exist yet."""
    db.create_all()
    click.echo("PASS Database tables created.")


@ledger_group.command('create-business')
@click.option('--name', required=True, help='Business name')
@click.option('--owner-name', required=True, help='Display name of the owning user')
@click.option('--owner-email', default=None, help='Owner email (optional)')
@with_appcontext
def create_business(name, owner_name, owner_email):
    """Create a business, its settings and an OWNER member."""
    business = Business(name=name)
    business.settings = BusinessSettings()
    owner = User(name=owner_name, email=owner_email)
    db.session.add_all([business, owner])
    db.session.flush()

    db.session.add(BusinessMember(business_id=business.id, user_id=owner.id, role=ROLE_OWNER))
    db.session.commit()

    click.echo(f"PASS Created business: {business.name} (ID: {business.id})")
    click.echo(f"PASS Owner: {owner.name} (User ID: {owner.id})")


def reset_business_data(business_id: int) -> dict:
    """
    Delete every ledger row of a business. Members, users and settings stay.

    Returns the number of rows removed per table.
    """
    # Returns reference their sale, so they go first
    counts = {
        "returns": db.session.query(Operation)
        .filter(Operation.business_id == business_id, Operation.original_sale_id.isnot(None))
        .delete(synchronize_session=False),
    }
    counts["operations"] = (
        db.session.query(Operation)
        .filter(Operation.business_id == business_id)
        .delete(synchronize_session=False)
    )
    counts["logs"] = (
        db.session.query(InventoryLog)
        .filter(InventoryLog.business_id == business_id)
        .delete(synchronize_session=False)
    )
    counts["items"] = (
        db.session.query(InventoryItem)
        .filter(InventoryItem.business_id == business_id)
        .delete(synchronize_session=False)
    )
    counts["schemas"] = (
        db.session.query(InventorySchema)
        .filter(InventorySchema.business_id == business_id)
        .delete(synchronize_session=False)
    )
    db.session.commit()
    return counts


@ledger_group.command('reset-business')
@click.option('--business-id', type=int, required=True, help='Business to reset')
@click.option('--yes', is_flag=True, help='Skip confirmation')
@with_appcontext
def reset_business(business_id, yes):
    """
    DANGER: Delete all items, schema, operations and logs of one business.
    """
    business = db.session.get(Business, business_id)
    if business is None:
        raise click.ClickException(f"Business {business_id} not found")

    if not yes:
        click.confirm(
            f"WARN This will DELETE all inventory data of '{business.name}'. Are you sure?",
            abort=True,
        )

    counts = reset_business_data(business_id)
    for table, count in counts.items():
        click.echo(f"DELETE  {table}: {count}")
    click.echo(f"PASS Business {business.name} (ID: {business.id}) reset.")


def register_commands(app):
    """Register all CLI commands with Flask app."""
    app.cli.add_command(ledger_group)
