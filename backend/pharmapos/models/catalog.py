from __future__ import annotations

from ..extensions import db
from pharmapos.time_utils import to_utc_z, to_iso_date


TAX_INCLUSIVE = "INCLUSIVE"
TAX_EXCLUSIVE = "EXCLUSIVE"


class Product(db.Model):
    """
    Product master data.

    MULTI-TENANT: Products are scoped to tenants; stock is held per branch
    in InventoryBatch rows.

    CODES:
    - Scannable barcodes live in ProductBarcode (EAN13/EAN8/UPCA/HSN/CUSTOM).
    - internal_code is the tenant's own medicine code (INMED-000001).
    - hsn_code is the tariff classification used for tax buckets.

    MONEY: sale_price_paise is the authoritative price in paise. Whether it
    includes GST is decided by tax_inclusion.
    """
    __tablename__ = "products"
    __table_args__ = (
        db.UniqueConstraint("tenant_id", "internal_code", name="uq_products_tenant_internal_code"),
        db.Index("ix_products_tenant_name", "tenant_id", "name"),
        db.Index("ix_products_tenant_hsn", "tenant_id", "hsn_code"),
        db.Index("ix_products_tenant_active", "tenant_id", "is_active"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    tenant_id = db.Column(db.Integer, db.ForeignKey("tenants.id"), nullable=False, index=True)

    name = db.Column(db.String(255), nullable=False)
    internal_code = db.Column(db.String(32), nullable=True)
    hsn_code = db.Column(db.String(8), nullable=True)

    gst_rate_bps = db.Column(db.Integer, nullable=False, default=1200)
    tax_inclusion = db.Column(db.String(16), nullable=False, default=TAX_EXCLUSIVE)
    sale_price_paise = db.Column(db.Integer, nullable=True)

    is_active = db.Column(db.Boolean, nullable=False, default=True)

    version_id = db.Column(db.Integer, nullable=False, default=1)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    __mapper_args__ = {"version_id_col": version_id}

    def __repr__(self) -> str:
        return f"<Product id={self.id} name={self.name!r} tenant_id={self.tenant_id}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "tenant_id": self.tenant_id,
            "name": self.name,
            "internal_code": self.internal_code,
            "hsn_code": self.hsn_code,
            "gst_rate_bps": self.gst_rate_bps,
            "tax_inclusion": self.tax_inclusion,
            "sale_price_paise": self.sale_price_paise,
            "is_active": self.is_active,
            "version_id": self.version_id,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }


class ProductBarcode(db.Model):
    """
    Scannable code attached to a product.

    UNIQUENESS: at most one ACTIVE row per (tenant_id, value). Deactivated
    rows stay for audit and may be reactivated if the value is free again.
    The rule is enforced in services.code_resolver.bind_barcode because
    SQLite and PostgreSQL disagree on partial unique indexes.

    VALUE NORMALIZATION: uppercase, whitespace removed; digit schemes are
    stored digits-only.
    """
    __tablename__ = "product_barcodes"
    __table_args__ = (
        db.Index("ix_barcodes_tenant_value", "tenant_id", "value"),
        db.Index("ix_barcodes_tenant_value_active", "tenant_id", "value", "is_active"),
        db.Index("ix_barcodes_product", "product_id"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    tenant_id = db.Column(db.Integer, db.ForeignKey("tenants.id"), nullable=False)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False)

    value = db.Column(db.String(64), nullable=False)
    scheme = db.Column(db.String(16), nullable=False)  # EAN13, EAN8, UPCA, HSN, INMED, CUSTOM

    is_active = db.Column(db.Boolean, nullable=False, default=True)
    deactivated_at = db.Column(db.DateTime(timezone=True), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    product = db.relationship("Product", backref=db.backref("barcodes", lazy=True))

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "tenant_id": self.tenant_id,
            "product_id": self.product_id,
            "value": self.value,
            "scheme": self.scheme,
            "is_active": self.is_active,
            "deactivated_at": to_utc_z(self.deactivated_at),
            "created_at": to_utc_z(self.created_at),
        }


class InventoryBatch(db.Model):
    """
    Stock of one product, from one supplier lot, held at one branch.

    INVARIANTS:
    - quantity_on_hand never goes below zero (CHECK constraint plus guarded
      decrements in services.checkout_service).
    - A batch at zero is never picked again by the FEFO allocator.
    """
    __tablename__ = "inventory_batches"
    __table_args__ = (
        db.UniqueConstraint(
            "tenant_id", "branch_id", "product_id", "batch_code",
            name="uq_batches_tenant_branch_product_code",
        ),
        db.CheckConstraint("quantity_on_hand >= 0", name="ck_batches_qty_non_negative"),
        db.Index("ix_batches_fefo", "tenant_id", "branch_id", "product_id", "expiry_date", "received_on"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    tenant_id = db.Column(db.Integer, db.ForeignKey("tenants.id"), nullable=False)
    branch_id = db.Column(db.Integer, db.ForeignKey("branches.id"), nullable=False)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False)

    batch_code = db.Column(db.String(64), nullable=False)
    quantity_on_hand = db.Column(db.Integer, nullable=False, default=0)
    received_on = db.Column(db.Date, nullable=False)
    expiry_date = db.Column(db.Date, nullable=False)

    mrp_paise = db.Column(db.Integer, nullable=True)
    unit_cost_paise = db.Column(db.Integer, nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    product = db.relationship("Product", backref=db.backref("batches", lazy=True))

    def __repr__(self) -> str:
        return (
            f"<InventoryBatch id={self.id} code={self.batch_code!r} "
            f"qty={self.quantity_on_hand} expiry={self.expiry_date}>"
        )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "tenant_id": self.tenant_id,
            "branch_id": self.branch_id,
            "product_id": self.product_id,
            "batch_code": self.batch_code,
            "quantity_on_hand": self.quantity_on_hand,
            "received_on": to_iso_date(self.received_on),
            "expiry_date": to_iso_date(self.expiry_date),
            "mrp_paise": self.mrp_paise,
            "unit_cost_paise": self.unit_cost_paise,
            "created_at": to_utc_z(self.created_at),
        }
