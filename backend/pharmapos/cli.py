# Overview: Flask CLI command groups for bootstrap and inspection.

# backend/pharmapos/cli.py
# Commands Legend (run from the backend directory):
# Prereqs:
# - Activate your virtualenv.
# - Set FLASK_APP to wsgi.py (PowerShell: $env:FLASK_APP="wsgi.py").
# - Use: python -m flask <group> <command> [options]
#
# Schema:
# - python -m flask db upgrade
#   Apply migrations (Flask-Migrate).
#
# POS bootstrap/inspection:
# - python -m flask pos seed-demo [--tenant-code DEMO] [--state-code 27]
#   Idempotent: creates a demo tenant, branch, GST registration, products,
#   barcodes and FEFO batches.
# - python -m flask pos registrations [--tenant-id 1]
#   List GST registrations with the number the next invoice will receive.
# - python -m flask pos issue-number --registration-id 1 [--on-date 2025-04-01]
#   Reserve and commit one invoice number outside a checkout (manual invoices).
#   --on-date picks the fiscal year; defaults to today.

import click
from datetime import timedelta
from flask.cli import with_appcontext

from .extensions import db
from .models import (
    Branch,
    InventoryBatch,
    Product,
    ProductBarcode,
    TAX_EXCLUSIVE,
    TAX_INCLUSIVE,
    TaxIdentity,
    Tenant,
    is_valid_invoice_prefix,
)
from .services.barcodes import SCHEME_EAN13, SCHEME_INMED
from .services.errors import CheckoutError
from .services.invoice_sequencer import issue_invoice_number, peek_invoice_number
from .services.jurisdictions import STATE_CODES, normalize_state_code
from .time_utils import parse_iso_date, today


# name, internal code, HSN, GST bps, inclusion, price paise, EAN-13, batches (code, qty, expiry offset days)
DEMO_PRODUCTS = [
    ("Paracetamol 500mg Strip", "INMED-000001", "30049011", 1200, TAX_EXCLUSIVE, 2000,
     "8901234567890", [("PCM-A1", 30, 45), ("PCM-A2", 50, 400)]),
    ("Amoxicillin 250mg Capsule", "INMED-000002", "30041010", 1200, TAX_INCLUSIVE, 11200,
     "8901234567883", [("AMX-B1", 20, 200)]),
    ("Vitamin C 500mg Tablet", "INMED-000003", "21069099", 1800, TAX_EXCLUSIVE, 15000,
     "8901234567876", [("VTC-C1", 10, 20), ("VTC-C2", 40, 500)]),
]

DEMO_GSTIN_BODY = "ABCDE1234F1Z5"


@click.group('pos')
def pos_group():
    """POS bootstrap and inspection commands."""


@pos_group.command('seed-demo')
@click.option('--tenant-code', default='DEMO', show_default=True, help='Tenant code (unique)')
@click.option('--state-code', default='27', show_default=True, help='GST state code of the registration')
@click.option('--prefix', default='PP', show_default=True, help='Invoice number prefix')
@with_appcontext
def seed_demo_cli(tenant_code, state_code, prefix):
    """Create demo data for a counter: tenant, branch, registration, stock."""
    try:
        state_code = normalize_state_code(state_code)
    except CheckoutError as e:
        click.echo(f"FAIL {e}")
        return
    if not is_valid_invoice_prefix(prefix):
        click.echo(f"FAIL Invalid invoice prefix '{prefix}' (1-16 uppercase letters or digits)")
        return

    tenant = db.session.query(Tenant).filter_by(code=tenant_code).first()
    if tenant:
        click.echo(f"SKIP Tenant '{tenant_code}' already exists (ID: {tenant.id})")
        return

    tenant = Tenant(name=f"{tenant_code.title()} Pharmacy", code=tenant_code, is_active=True)
    db.session.add(tenant)
    db.session.flush()

    branch = Branch(tenant_id=tenant.id, name="Main Counter", code="MAIN")
    registration = TaxIdentity(
        tenant_id=tenant.id,
        gstin=f"{state_code}{DEMO_GSTIN_BODY}",
        legal_name=tenant.name,
        state_code=state_code,
        invoice_prefix=prefix,
        next_invoice_no=1,
        is_active=True,
    )
    db.session.add_all([branch, registration])
    db.session.flush()

    received = today()
    for name, internal_code, hsn, bps, inclusion, price, ean, batches in DEMO_PRODUCTS:
        product = Product(
            tenant_id=tenant.id,
            name=name,
            internal_code=internal_code,
            hsn_code=hsn,
            gst_rate_bps=bps,
            tax_inclusion=inclusion,
            sale_price_paise=price,
            is_active=True,
        )
        db.session.add(product)
        db.session.flush()

        db.session.add_all([
            ProductBarcode(tenant_id=tenant.id, product_id=product.id, value=ean, scheme=SCHEME_EAN13),
            ProductBarcode(
                tenant_id=tenant.id, product_id=product.id, value=internal_code, scheme=SCHEME_INMED
            ),
        ])
        for batch_code, qty, expiry_days in batches:
            db.session.add(InventoryBatch(
                tenant_id=tenant.id,
                branch_id=branch.id,
                product_id=product.id,
                batch_code=batch_code,
                quantity_on_hand=qty,
                received_on=received,
                expiry_date=received + timedelta(days=expiry_days),
            ))

    db.session.commit()
    click.echo(f"PASS Seeded tenant {tenant.name} (ID: {tenant.id})")
    click.echo(f"  Branch ID: {branch.id}")
    click.echo(f"  Registration ID: {registration.id} GSTIN {registration.gstin} ({STATE_CODES[state_code]})")
    click.echo(f"  Products: {len(DEMO_PRODUCTS)}")


@pos_group.command('registrations')
@click.option('--tenant-id', type=int, help='Filter by tenant ID')
@with_appcontext
def list_registrations_cli(tenant_id):
    """List GST registrations and their next invoice number."""
    query = db.session.query(TaxIdentity)
    if tenant_id:
        query = query.filter_by(tenant_id=tenant_id)
    registrations = query.order_by(TaxIdentity.id).all()

    if not registrations:
        click.echo("No registrations found")
        return

    click.echo(f"\n{'ID':<5} {'Tenant':<7} {'GSTIN':<16} {'State':<6} {'Next number':<22} {'Active':<6}")
    click.echo("-" * 66)
    for reg in registrations:
        upcoming = str(peek_invoice_number(reg.id))
        active = "yes" if reg.is_active else "no"
        click.echo(f"{reg.id:<5} {reg.tenant_id:<7} {reg.gstin:<16} {reg.state_code:<6} {upcoming:<22} {active:<6}")


@pos_group.command('issue-number')
@click.option('--registration-id', type=int, required=True, help='Registration ID')
@click.option('--on-date', default=None, help='Business date YYYY-MM-DD (default: today)')
@with_appcontext
def issue_number_cli(registration_id, on_date):
    """Reserve and commit one invoice number."""
    try:
        on_date = parse_iso_date(on_date)
    except ValueError:
        click.echo(f"FAIL Invalid date '{on_date}'")
        return

    try:
        number = issue_invoice_number(registration_id, on_date=on_date)
    except CheckoutError as e:
        click.echo(f"FAIL {e}")
        return
    click.echo(f"PASS Issued {number}")


def register_commands(app):
    """Register all CLI commands with Flask app."""
    app.cli.add_command(pos_group)
