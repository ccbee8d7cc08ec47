"""
Pytest fixtures for PharmaPOS backend tests.

Provides the test app (in-memory SQLite), per-test table wipe, tenant and
branch fixtures, a GST registration, and product/batch factories.
"""

from datetime import date

import pytest
from pharmapos import create_app
from pharmapos.extensions import db
from pharmapos.models import (
    Branch,
    InventoryBatch,
    Product,
    ProductBarcode,
    TAX_EXCLUSIVE,
    TaxIdentity,
    Tenant,
)
from pharmapos.services.context import CheckoutContext


@pytest.fixture(scope='session')
def app():
    """Create application for testing."""
    app = create_app({
        'TESTING': True,
        'SQLALCHEMY_DATABASE_URI': 'sqlite:///:memory:',
        'SQLALCHEMY_TRACK_MODIFICATIONS': False,
        'POS_ALLOW_NEGATIVE_STOCK': False,
        'POS_BLOCK_EXPIRED_BATCHES': False,
        'CHECKOUT_MAX_ATTEMPTS': 3,
        'CHECKOUT_RETRY_BACKOFF': 0,
    })

    with app.app_context():
        db.create_all()
        yield app
        db.drop_all()


@pytest.fixture(scope='function')
def client(app):
    """Create test client."""
    return app.test_client()


@pytest.fixture(scope='function')
def db_session(app):
    """Create fresh database for each test."""
    with app.app_context():
        # Clear all data but keep schema
        meta = db.metadata
        for table in reversed(meta.sorted_tables):
            db.session.execute(table.delete())
        db.session.commit()

        yield db.session

        # Cleanup after test
        db.session.rollback()


@pytest.fixture(scope='function')
def tenant(db_session):
    """Tenant A: the pharmacy under test."""
    tenant = Tenant(name="Tenant A - City Pharmacy", code="CITY", is_active=True)
    db_session.add(tenant)
    db_session.commit()
    return tenant


@pytest.fixture(scope='function')
def other_tenant(db_session):
    """Tenant B: must never see Tenant A's data."""
    tenant = Tenant(name="Tenant B - Other Pharmacy", code="OTHER", is_active=True)
    db_session.add(tenant)
    db_session.commit()
    return tenant


@pytest.fixture(scope='function')
def branch(db_session, tenant):
    branch = Branch(tenant_id=tenant.id, name="Main Counter", code="MAIN")
    db_session.add(branch)
    db_session.commit()
    return branch


@pytest.fixture(scope='function')
def registration(db_session, tenant):
    """GST registration in Maharashtra (state 27)."""
    registration = TaxIdentity(
        tenant_id=tenant.id,
        gstin="27ABCDE1234F1Z5",
        legal_name="City Pharmacy Pvt Ltd",
        state_code="27",
        invoice_prefix="PP",
        next_invoice_no=1,
        is_active=True,
    )
    db_session.add(registration)
    db_session.commit()
    return registration


@pytest.fixture(scope='function')
def ctx(tenant, branch):
    return CheckoutContext(tenant_id=tenant.id, branch_id=branch.id, user_id=7)


@pytest.fixture(scope='function')
def make_product(db_session, tenant):
    """Factory: make_product(name=..., barcode="4006381333931", ...)."""
    def _make(
        name="Paracetamol 500mg",
        *,
        tenant_id=None,
        internal_code=None,
        hsn_code="30049011",
        gst_rate_bps=1200,
        tax_inclusion=TAX_EXCLUSIVE,
        sale_price_paise=2000,
        is_active=True,
        barcode=None,
        barcode_scheme="EAN13",
    ):
        product = Product(
            tenant_id=tenant_id or tenant.id,
            name=name,
            internal_code=internal_code,
            hsn_code=hsn_code,
            gst_rate_bps=gst_rate_bps,
            tax_inclusion=tax_inclusion,
            sale_price_paise=sale_price_paise,
            is_active=is_active,
        )
        db_session.add(product)
        db_session.flush()
        if barcode:
            db_session.add(ProductBarcode(
                tenant_id=product.tenant_id,
                product_id=product.id,
                value=barcode,
                scheme=barcode_scheme,
                is_active=True,
            ))
        db_session.commit()
        return product
    return _make


@pytest.fixture(scope='function')
def make_batch(db_session, tenant, branch):
    """Factory: make_batch(product, "B1", qty, date(2025, 6, 30))."""
    def _make(product, batch_code, quantity, expiry_date, *, received_on=None, branch_id=None):
        batch = InventoryBatch(
            tenant_id=product.tenant_id,
            branch_id=branch_id or branch.id,
            product_id=product.id,
            batch_code=batch_code,
            quantity_on_hand=quantity,
            received_on=received_on or date(2025, 1, 1),
            expiry_date=expiry_date,
        )
        db_session.add(batch)
        db_session.commit()
        return batch
    return _make


@pytest.fixture(scope='function')
def paracetamol(make_product):
    """Exclusive 12% product, Rs 20.00, EAN-13 4006381333931, INMED-000001."""
    return make_product(
        "Paracetamol 500mg",
        internal_code="INMED-000001",
        barcode="4006381333931",
    )


@pytest.fixture(scope='function')
def paracetamol_batches(paracetamol, make_batch):
    """B1: 3 units expiring 2025-06-30, B2: 10 units expiring 2025-12-31."""
    b1 = make_batch(paracetamol, "B1", 3, date(2025, 6, 30))
    b2 = make_batch(paracetamol, "B2", 10, date(2025, 12, 31))
    return b1, b2


@pytest.fixture(scope='function')
def headers(ctx):
    """Trusted gateway headers for ctx."""
    return {
        'X-Tenant-Id': str(ctx.tenant_id),
        'X-Branch-Id': str(ctx.branch_id),
        'X-User-Id': str(ctx.user_id),
    }
