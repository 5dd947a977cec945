# Overview: Flask CLI command groups for bootstrap, seller accounts and inventory maintenance.

# backend/recargas/cli.py
# Commands Legend (run from the backend directory):
# Prereqs:
# - Activate your virtualenv.
# - Set FLASK_APP to wsgi.py (PowerShell: $env:FLASK_APP="wsgi.py").
# - Use: python -m flask <group> <command> [options]
#
# System bootstrap:
# - python -m flask system init-db
#   Create all tables (idempotent).
# - python -m flask system reset-db --yes
#   DEV/TEST only: drop and recreate all tables (deletes all data).
#
# Seller accounts:
# - python -m flask sellers create --name "Loja" --email loja@example.com --password "Senha1234"
# - python -m flask sellers list
#
# Inventory maintenance:
# - python -m flask inventory reconcile [--seller-id 1]
#   Recompute every app's codes_available from its unused codes.
# - python -m flask inventory import-codes --seller-id 1 --app-id 3 --file codes.txt
#   Ingest a file of codes (one per line, or comma/semicolon separated).

import click
from flask.cli import with_appcontext

from .extensions import db
from .models import Seller
from .services.auth_service import register_seller
from .services import code_inventory_service
from .services.errors import DomainError
from .validation import ValidationError, ConflictError


@click.group('system')
def system_group():
    """System bootstrap commands."""


@system_group.command('init-db')
@with_appcontext
def init_db():
    """Create all tables that do not exist yet."""
    db.create_all()
    click.echo("PASS Database tables created")


@system_group.command('reset-db')
@click.option('--yes', is_flag=True, help='Confirm destructive reset')
@with_appcontext
def reset_db(yes):
    """DEV/TEST only: drop and recreate all tables."""
    if not yes:
        click.echo("FAIL Refusing to reset without --yes")
        raise SystemExit(1)
    db.drop_all()
    db.create_all()
    click.echo("PASS Database reset")


@click.group('sellers')
def sellers_group():
    """Seller account commands."""


@sellers_group.command('create')
@click.option('--name', prompt=True)
@click.option('--email', prompt=True)
@click.option('--phone', default=None)
@click.option('--password', prompt=True, hide_input=True, confirmation_prompt=True)
@with_appcontext
def create_seller(name, email, phone, password):
    """Create a seller account."""
    try:
        seller = register_seller(name=name, email=email, password=password, phone=phone)
    except (ValidationError, ConflictError) as e:
        click.echo(f"FAIL {e}")
        raise SystemExit(1)

    click.echo(f"PASS Created seller {seller.email} (ID: {seller.id})")


@sellers_group.command('list')
@with_appcontext
def list_sellers():
    """List seller accounts."""
    sellers = db.session.query(Seller).order_by(Seller.id.asc()).all()
    if not sellers:
        click.echo("No sellers found")
        return
    for s in sellers:
        flags = []
        if not s.is_active:
            flags.append("inactive")
        if s.whatsapp_configured:
            flags.append("whatsapp")
        if s.mercadopago_configured:
            flags.append("mercadopago")
        suffix = f" [{', '.join(flags)}]" if flags else ""
        click.echo(f"{s.id}\t{s.email}\t{s.name}{suffix}")


@click.group('inventory')
def inventory_group():
    """Code inventory maintenance."""


@inventory_group.command('reconcile')
@click.option('--seller-id', type=int, default=None, help='Only this seller (default: all)')
@with_appcontext
def reconcile(seller_id):
    """Recompute codes_available from the code rows."""
    corrections = code_inventory_service.reconcile_codes_available(seller_id)
    if not corrections:
        click.echo("PASS All counters consistent")
        return
    for c in corrections:
        click.echo(f"FIXED app {c['app_id']}: {c['before']} -> {c['after']}")


@inventory_group.command('import-codes')
@click.option('--seller-id', type=int, required=True)
@click.option('--app-id', type=int, required=True)
@click.option('--file', 'path', type=click.Path(exists=True, dir_okay=False), required=True)
@with_appcontext
def import_codes(seller_id, app_id, path):
    """Ingest codes from a text file."""
    with open(path, encoding="utf-8") as fh:
        codes = code_inventory_service.parse_code_batch(fh.read())

    try:
        result = code_inventory_service.add_codes(
            seller_id,
            app_id,
            codes,
            on_progress=lambda pct: click.echo(f"  {pct}%"),
        )
    except (DomainError, ValidationError, ConflictError) as e:
        click.echo(f"FAIL {e}")
        raise SystemExit(1)

    click.echo(
        f"PASS added={len(result.valid_codes)} "
        f"duplicates={len(result.duplicates)} "
        f"already_stored={len(result.system_duplicates)}"
    )


def register_commands(app):
    app.cli.add_command(system_group)
    app.cli.add_command(sellers_group)
    app.cli.add_command(inventory_group)
