from __future__ import annotations

import re

from sqlalchemy.orm import validates

from ..extensions import db
from pharmapos.time_utils import to_utc_z


# Printed as the first segment of PREFIX/YY-YY/NNNN
INVOICE_PREFIX_PATTERN = r"[A-Z0-9]{1,16}"
_INVOICE_PREFIX_RE = re.compile(rf"^{INVOICE_PREFIX_PATTERN}$")


def is_valid_invoice_prefix(value) -> bool:
    return isinstance(value, str) and bool(_INVOICE_PREFIX_RE.match(value))


class Tenant(db.Model):
    """
    Multi-tenant root: every pharmacy business is a Tenant.

    All branches, products, batches, registrations and invoices belong to
    exactly one tenant. No data may cross tenant boundaries.
    """
    __tablename__ = "tenants"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(255), nullable=False)
    code = db.Column(db.String(32), nullable=True, unique=True, index=True)

    is_active = db.Column(db.Boolean, nullable=False, default=True, index=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    def __repr__(self) -> str:
        return f"<Tenant id={self.id} name={self.name!r}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "code": self.code,
            "is_active": self.is_active,
            "created_at": to_utc_z(self.created_at),
        }


class Branch(db.Model):
    """
    Physical store of a tenant. Inventory batches are owned per branch.
    """
    __tablename__ = "branches"
    __table_args__ = (
        db.UniqueConstraint("tenant_id", "code", name="uq_branches_tenant_code"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    tenant_id = db.Column(db.Integer, db.ForeignKey("tenants.id"), nullable=False, index=True)
    name = db.Column(db.String(120), nullable=False)
    code = db.Column(db.String(32), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    tenant = db.relationship("Tenant", backref=db.backref("branches", lazy=True))

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "tenant_id": self.tenant_id,
            "name": self.name,
            "code": self.code,
            "created_at": to_utc_z(self.created_at),
        }


class TaxIdentity(db.Model):
    """
    GST registration (GSTIN) under which invoices are issued.

    SEQUENCE: next_invoice_no is the number the next invoice of
    fiscal_year will carry. Both columns are only ever changed together by
    a single UPDATE statement (see services.invoice_sequencer). A new fiscal
    year restarts the counter at 1.

    STATE: state_code is the first two characters of the GSTIN and decides
    intra- vs inter-state treatment at checkout.

    PREFIX: unique within a tenant, so an invoice number identifies one
    invoice of the tenant.
    """
    __tablename__ = "tax_identities"
    __table_args__ = (
        db.UniqueConstraint("tenant_id", "gstin", name="uq_tax_identities_tenant_gstin"),
        db.UniqueConstraint("tenant_id", "invoice_prefix", name="uq_tax_identities_tenant_prefix"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    tenant_id = db.Column(db.Integer, db.ForeignKey("tenants.id"), nullable=False, index=True)

    gstin = db.Column(db.String(15), nullable=False)
    legal_name = db.Column(db.String(255), nullable=False)
    state_code = db.Column(db.String(2), nullable=False)

    invoice_prefix = db.Column(db.String(16), nullable=False, default="PP")
    fiscal_year = db.Column(db.String(5), nullable=True)  # e.g. "25-26"
    next_invoice_no = db.Column(db.Integer, nullable=False, default=1)

    is_active = db.Column(db.Boolean, nullable=False, default=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    tenant = db.relationship("Tenant", backref=db.backref("tax_identities", lazy=True))

    @validates("invoice_prefix")
    def _validate_invoice_prefix(self, key, value):
        if not is_valid_invoice_prefix(value):
            raise ValueError(
                f"Invalid invoice prefix '{value}': use 1-16 uppercase letters or digits"
            )
        return value

    def __repr__(self) -> str:
        return f"<TaxIdentity id={self.id} gstin={self.gstin!r} prefix={self.invoice_prefix!r}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "tenant_id": self.tenant_id,
            "gstin": self.gstin,
            "legal_name": self.legal_name,
            "state_code": self.state_code,
            "invoice_prefix": self.invoice_prefix,
            "fiscal_year": self.fiscal_year,
            "next_invoice_no": self.next_invoice_no,
            "is_active": self.is_active,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }
