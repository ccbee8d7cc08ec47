"""Checkout core: tenants, catalog, FEFO batches, GST registrations, invoices

Revision ID: 20261019_checkout_core
Revises:
Create Date: 2026-10-19

This migration adds:
1. Tenant and Branch (multi-tenant root, stock-holding stores)
2. TaxIdentity (GST registration with per-fiscal-year invoice counter)
3. Product and ProductBarcode (scannable codes, soft deactivation)
4. InventoryBatch (FEFO stock, non-negative quantity CHECK)
5. Invoice, InvoiceLine, InvoiceLineAllocation, InvoiceTaxLine
"""
from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = '20261019_checkout_core'
down_revision = None
branch_labels = None
depends_on = None


def upgrade():
    # ==========================================================================
    # 1. TENANTS AND BRANCHES
    # ==========================================================================
    op.create_table('tenants',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('name', sa.String(length=255), nullable=False),
        sa.Column('code', sa.String(length=32), nullable=True),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default='1'),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('(CURRENT_TIMESTAMP)'), nullable=False),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True
    )
    with op.batch_alter_table('tenants', schema=None) as batch_op:
        batch_op.create_index(batch_op.f('ix_tenants_code'), ['code'], unique=True)
        batch_op.create_index(batch_op.f('ix_tenants_is_active'), ['is_active'], unique=False)

    op.create_table('branches',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('tenant_id', sa.Integer(), nullable=False),
        sa.Column('name', sa.String(length=120), nullable=False),
        sa.Column('code', sa.String(length=32), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('(CURRENT_TIMESTAMP)'), nullable=False),
        sa.ForeignKeyConstraint(['tenant_id'], ['tenants.id'], ),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('tenant_id', 'code', name='uq_branches_tenant_code'),
        sqlite_autoincrement=True
    )
    with op.batch_alter_table('branches', schema=None) as batch_op:
        batch_op.create_index(batch_op.f('ix_branches_tenant_id'), ['tenant_id'], unique=False)

    # ==========================================================================
    # 2. GST REGISTRATIONS
    # ==========================================================================
    op.create_table('tax_identities',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('tenant_id', sa.Integer(), nullable=False),
        sa.Column('gstin', sa.String(length=15), nullable=False),
        sa.Column('legal_name', sa.String(length=255), nullable=False),
        sa.Column('state_code', sa.String(length=2), nullable=False),
        sa.Column('invoice_prefix', sa.String(length=16), nullable=False, server_default='PP'),
        sa.Column('fiscal_year', sa.String(length=5), nullable=True),
        sa.Column('next_invoice_no', sa.Integer(), nullable=False, server_default='1'),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default='1'),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('(CURRENT_TIMESTAMP)'), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.text('(CURRENT_TIMESTAMP)'), nullable=False),
        sa.ForeignKeyConstraint(['tenant_id'], ['tenants.id'], ),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('tenant_id', 'gstin', name='uq_tax_identities_tenant_gstin'),
        sa.UniqueConstraint('tenant_id', 'invoice_prefix', name='uq_tax_identities_tenant_prefix'),
        sqlite_autoincrement=True
    )
    with op.batch_alter_table('tax_identities', schema=None) as batch_op:
        batch_op.create_index(batch_op.f('ix_tax_identities_tenant_id'), ['tenant_id'], unique=False)

    # ==========================================================================
    # 3. PRODUCTS AND BARCODES
    # ==========================================================================
    op.create_table('products',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('tenant_id', sa.Integer(), nullable=False),
        sa.Column('name', sa.String(length=255), nullable=False),
        sa.Column('internal_code', sa.String(length=32), nullable=True),
        sa.Column('hsn_code', sa.String(length=8), nullable=True),
        sa.Column('gst_rate_bps', sa.Integer(), nullable=False, server_default='1200'),
        sa.Column('tax_inclusion', sa.String(length=16), nullable=False, server_default='EXCLUSIVE'),
        sa.Column('sale_price_paise', sa.Integer(), nullable=True),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default='1'),
        sa.Column('version_id', sa.Integer(), nullable=False, server_default='1'),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('(CURRENT_TIMESTAMP)'), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.text('(CURRENT_TIMESTAMP)'), nullable=False),
        sa.ForeignKeyConstraint(['tenant_id'], ['tenants.id'], ),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('tenant_id', 'internal_code', name='uq_products_tenant_internal_code'),
        sqlite_autoincrement=True
    )
    with op.batch_alter_table('products', schema=None) as batch_op:
        batch_op.create_index(batch_op.f('ix_products_tenant_id'), ['tenant_id'], unique=False)
        batch_op.create_index('ix_products_tenant_name', ['tenant_id', 'name'], unique=False)
        batch_op.create_index('ix_products_tenant_hsn', ['tenant_id', 'hsn_code'], unique=False)
        batch_op.create_index('ix_products_tenant_active', ['tenant_id', 'is_active'], unique=False)

    op.create_table('product_barcodes',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('tenant_id', sa.Integer(), nullable=False),
        sa.Column('product_id', sa.Integer(), nullable=False),
        sa.Column('value', sa.String(length=64), nullable=False),
        sa.Column('scheme', sa.String(length=16), nullable=False),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default='1'),
        sa.Column('deactivated_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('(CURRENT_TIMESTAMP)'), nullable=False),
        sa.ForeignKeyConstraint(['tenant_id'], ['tenants.id'], ),
        sa.ForeignKeyConstraint(['product_id'], ['products.id'], ),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True
    )
    with op.batch_alter_table('product_barcodes', schema=None) as batch_op:
        batch_op.create_index('ix_barcodes_tenant_value', ['tenant_id', 'value'], unique=False)
        batch_op.create_index('ix_barcodes_tenant_value_active', ['tenant_id', 'value', 'is_active'], unique=False)
        batch_op.create_index('ix_barcodes_product', ['product_id'], unique=False)

    # ==========================================================================
    # 4. INVENTORY BATCHES
    # ==========================================================================
    op.create_table('inventory_batches',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('tenant_id', sa.Integer(), nullable=False),
        sa.Column('branch_id', sa.Integer(), nullable=False),
        sa.Column('product_id', sa.Integer(), nullable=False),
        sa.Column('batch_code', sa.String(length=64), nullable=False),
        sa.Column('quantity_on_hand', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('received_on', sa.Date(), nullable=False),
        sa.Column('expiry_date', sa.Date(), nullable=False),
        sa.Column('mrp_paise', sa.Integer(), nullable=True),
        sa.Column('unit_cost_paise', sa.Integer(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('(CURRENT_TIMESTAMP)'), nullable=False),
        sa.CheckConstraint('quantity_on_hand >= 0', name='ck_batches_qty_non_negative'),
        sa.ForeignKeyConstraint(['tenant_id'], ['tenants.id'], ),
        sa.ForeignKeyConstraint(['branch_id'], ['branches.id'], ),
        sa.ForeignKeyConstraint(['product_id'], ['products.id'], ),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint(
            'tenant_id', 'branch_id', 'product_id', 'batch_code',
            name='uq_batches_tenant_branch_product_code',
        ),
        sqlite_autoincrement=True
    )
    with op.batch_alter_table('inventory_batches', schema=None) as batch_op:
        batch_op.create_index(
            'ix_batches_fefo',
            ['tenant_id', 'branch_id', 'product_id', 'expiry_date', 'received_on'],
            unique=False,
        )

    # ==========================================================================
    # 5. INVOICES
    # ==========================================================================
    op.create_table('invoices',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('tenant_id', sa.Integer(), nullable=False),
        sa.Column('branch_id', sa.Integer(), nullable=False),
        sa.Column('tax_identity_id', sa.Integer(), nullable=False),
        sa.Column('invoice_number', sa.String(length=64), nullable=False),
        sa.Column('fiscal_year', sa.String(length=5), nullable=False),
        sa.Column('sequence_no', sa.Integer(), nullable=False),
        sa.Column('status', sa.String(length=16), nullable=False, server_default='ISSUED'),
        sa.Column('invoice_type', sa.String(length=8), nullable=False, server_default='B2C'),
        sa.Column('supply_type', sa.String(length=16), nullable=False),
        sa.Column('seller_state_code', sa.String(length=2), nullable=False),
        sa.Column('buyer_state_code', sa.String(length=2), nullable=False),
        sa.Column('buyer_gstin', sa.String(length=15), nullable=True),
        sa.Column('total_taxable_paise', sa.Integer(), nullable=False),
        sa.Column('total_tax_paise', sa.Integer(), nullable=False),
        sa.Column('round_off_paise', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('grand_total_paise', sa.Integer(), nullable=False),
        sa.Column('created_by_user_id', sa.Integer(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('(CURRENT_TIMESTAMP)'), nullable=False),
        sa.ForeignKeyConstraint(['tenant_id'], ['tenants.id'], ),
        sa.ForeignKeyConstraint(['branch_id'], ['branches.id'], ),
        sa.ForeignKeyConstraint(['tax_identity_id'], ['tax_identities.id'], ),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('tax_identity_id', 'invoice_number', name='uq_invoices_identity_number'),
        sa.UniqueConstraint('tax_identity_id', 'fiscal_year', 'sequence_no', name='uq_invoices_identity_fy_seq'),
        sqlite_autoincrement=True
    )
    with op.batch_alter_table('invoices', schema=None) as batch_op:
        batch_op.create_index(batch_op.f('ix_invoices_tenant_id'), ['tenant_id'], unique=False)
        batch_op.create_index(batch_op.f('ix_invoices_branch_id'), ['branch_id'], unique=False)
        batch_op.create_index('ix_invoices_tenant_created', ['tenant_id', 'created_at'], unique=False)

    op.create_table('invoice_lines',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('invoice_id', sa.Integer(), nullable=False),
        sa.Column('line_no', sa.Integer(), nullable=False),
        sa.Column('product_id', sa.Integer(), nullable=False),
        sa.Column('product_name', sa.String(length=255), nullable=False),
        sa.Column('hsn_code', sa.String(length=8), nullable=True),
        sa.Column('scanned_code', sa.String(length=64), nullable=False),
        sa.Column('resolved_scheme', sa.String(length=16), nullable=False),
        sa.Column('quantity', sa.Integer(), nullable=False),
        sa.Column('unit_price_paise', sa.Integer(), nullable=False),
        sa.Column('discount_paise', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('gst_rate_bps', sa.Integer(), nullable=False),
        sa.Column('tax_inclusion', sa.String(length=16), nullable=False),
        sa.Column('taxable_paise', sa.Integer(), nullable=False),
        sa.Column('cgst_paise', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('sgst_paise', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('igst_paise', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('line_total_paise', sa.Integer(), nullable=False),
        sa.Column('unallocated_quantity', sa.Integer(), nullable=False, server_default='0'),
        sa.ForeignKeyConstraint(['invoice_id'], ['invoices.id'], ),
        sa.ForeignKeyConstraint(['product_id'], ['products.id'], ),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('invoice_id', 'line_no', name='uq_invoice_lines_invoice_line_no'),
        sqlite_autoincrement=True
    )
    with op.batch_alter_table('invoice_lines', schema=None) as batch_op:
        batch_op.create_index(batch_op.f('ix_invoice_lines_invoice_id'), ['invoice_id'], unique=False)

    op.create_table('invoice_line_allocations',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('invoice_line_id', sa.Integer(), nullable=False),
        sa.Column('batch_id', sa.Integer(), nullable=False),
        sa.Column('batch_code', sa.String(length=64), nullable=False),
        sa.Column('expiry_date', sa.Date(), nullable=False),
        sa.Column('quantity', sa.Integer(), nullable=False),
        sa.ForeignKeyConstraint(['invoice_line_id'], ['invoice_lines.id'], ),
        sa.ForeignKeyConstraint(['batch_id'], ['inventory_batches.id'], ),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True
    )
    with op.batch_alter_table('invoice_line_allocations', schema=None) as batch_op:
        batch_op.create_index(batch_op.f('ix_invoice_line_allocations_invoice_line_id'), ['invoice_line_id'], unique=False)
        batch_op.create_index(batch_op.f('ix_invoice_line_allocations_batch_id'), ['batch_id'], unique=False)

    op.create_table('invoice_tax_lines',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('invoice_id', sa.Integer(), nullable=False),
        sa.Column('hsn_code', sa.String(length=8), nullable=True),
        sa.Column('tax_type', sa.String(length=8), nullable=False),
        sa.Column('rate_bps', sa.Integer(), nullable=False),
        sa.Column('taxable_paise', sa.Integer(), nullable=False),
        sa.Column('tax_paise', sa.Integer(), nullable=False),
        sa.ForeignKeyConstraint(['invoice_id'], ['invoices.id'], ),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True
    )
    with op.batch_alter_table('invoice_tax_lines', schema=None) as batch_op:
        batch_op.create_index(batch_op.f('ix_invoice_tax_lines_invoice_id'), ['invoice_id'], unique=False)


def downgrade():
    with op.batch_alter_table('invoice_tax_lines', schema=None) as batch_op:
        batch_op.drop_index(batch_op.f('ix_invoice_tax_lines_invoice_id'))
    op.drop_table('invoice_tax_lines')

    with op.batch_alter_table('invoice_line_allocations', schema=None) as batch_op:
        batch_op.drop_index(batch_op.f('ix_invoice_line_allocations_batch_id'))
        batch_op.drop_index(batch_op.f('ix_invoice_line_allocations_invoice_line_id'))
    op.drop_table('invoice_line_allocations')

    with op.batch_alter_table('invoice_lines', schema=None) as batch_op:
        batch_op.drop_index(batch_op.f('ix_invoice_lines_invoice_id'))
    op.drop_table('invoice_lines')

    with op.batch_alter_table('invoices', schema=None) as batch_op:
        batch_op.drop_index('ix_invoices_tenant_created')
        batch_op.drop_index(batch_op.f('ix_invoices_branch_id'))
        batch_op.drop_index(batch_op.f('ix_invoices_tenant_id'))
    op.drop_table('invoices')

    with op.batch_alter_table('inventory_batches', schema=None) as batch_op:
        batch_op.drop_index('ix_batches_fefo')
    op.drop_table('inventory_batches')

    with op.batch_alter_table('product_barcodes', schema=None) as batch_op:
        batch_op.drop_index('ix_barcodes_product')
        batch_op.drop_index('ix_barcodes_tenant_value_active')
        batch_op.drop_index('ix_barcodes_tenant_value')
    op.drop_table('product_barcodes')

    with op.batch_alter_table('products', schema=None) as batch_op:
        batch_op.drop_index('ix_products_tenant_active')
        batch_op.drop_index('ix_products_tenant_hsn')
        batch_op.drop_index('ix_products_tenant_name')
        batch_op.drop_index(batch_op.f('ix_products_tenant_id'))
    op.drop_table('products')

    with op.batch_alter_table('tax_identities', schema=None) as batch_op:
        batch_op.drop_index(batch_op.f('ix_tax_identities_tenant_id'))
    op.drop_table('tax_identities')

    with op.batch_alter_table('branches', schema=None) as batch_op:
        batch_op.drop_index(batch_op.f('ix_branches_tenant_id'))
    op.drop_table('branches')

    with op.batch_alter_table('tenants', schema=None) as batch_op:
        batch_op.drop_index(batch_op.f('ix_tenants_is_active'))
        batch_op.drop_index(batch_op.f('ix_tenants_code'))
    op.drop_table('tenants')
