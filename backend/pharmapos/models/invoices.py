from __future__ import annotations

from ..extensions import db
from pharmapos.time_utils import to_utc_z, to_iso_date


class Invoice(db.Model):
    """
    GST tax invoice: the durable output of a committed checkout.

    Created exactly once per checkout, inside the same DB transaction that
    decrements stock and advances the registration's sequence counter.
    Never updated afterwards (credit notes are a separate document).

    MONEY: totals are in paise.
    grand_total_paise == sum(line_total_paise) + round_off_paise
    """
    __tablename__ = "invoices"
    __table_args__ = (
        db.UniqueConstraint("tax_identity_id", "invoice_number", name="uq_invoices_identity_number"),
        db.UniqueConstraint(
            "tax_identity_id", "fiscal_year", "sequence_no", name="uq_invoices_identity_fy_seq"
        ),
        db.Index("ix_invoices_tenant_created", "tenant_id", "created_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    tenant_id = db.Column(db.Integer, db.ForeignKey("tenants.id"), nullable=False, index=True)
    branch_id = db.Column(db.Integer, db.ForeignKey("branches.id"), nullable=False, index=True)
    tax_identity_id = db.Column(db.Integer, db.ForeignKey("tax_identities.id"), nullable=False)

    # Human-readable number, e.g. "PP/25-26/0001"
    invoice_number = db.Column(db.String(64), nullable=False)
    fiscal_year = db.Column(db.String(5), nullable=False)
    sequence_no = db.Column(db.Integer, nullable=False)

    status = db.Column(db.String(16), nullable=False, default="ISSUED")
    invoice_type = db.Column(db.String(8), nullable=False, default="B2C")  # B2B, B2C
    supply_type = db.Column(db.String(16), nullable=False)  # INTRA_STATE, INTER_STATE

    seller_state_code = db.Column(db.String(2), nullable=False)
    buyer_state_code = db.Column(db.String(2), nullable=False)
    buyer_gstin = db.Column(db.String(15), nullable=True)

    total_taxable_paise = db.Column(db.Integer, nullable=False)
    total_tax_paise = db.Column(db.Integer, nullable=False)
    round_off_paise = db.Column(db.Integer, nullable=False, default=0)
    grand_total_paise = db.Column(db.Integer, nullable=False)

    created_by_user_id = db.Column(db.Integer, nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    tax_identity = db.relationship("TaxIdentity")
    lines = db.relationship(
        "InvoiceLine",
        backref="invoice",
        lazy=True,
        order_by="InvoiceLine.line_no",
        cascade="all, delete-orphan",
    )
    tax_lines = db.relationship(
        "InvoiceTaxLine",
        backref="invoice",
        lazy=True,
        order_by="InvoiceTaxLine.id",
        cascade="all, delete-orphan",
    )

    def __repr__(self) -> str:
        return f"<Invoice id={self.id} number={self.invoice_number!r} total={self.grand_total_paise}>"

    def to_dict(self, include_lines: bool = True) -> dict:
        data = {
            "id": self.id,
            "tenant_id": self.tenant_id,
            "branch_id": self.branch_id,
            "tax_identity_id": self.tax_identity_id,
            "invoice_number": self.invoice_number,
            "fiscal_year": self.fiscal_year,
            "sequence_no": self.sequence_no,
            "status": self.status,
            "invoice_type": self.invoice_type,
            "supply_type": self.supply_type,
            "seller_state_code": self.seller_state_code,
            "buyer_state_code": self.buyer_state_code,
            "buyer_gstin": self.buyer_gstin,
            "total_taxable_paise": self.total_taxable_paise,
            "total_tax_paise": self.total_tax_paise,
            "round_off_paise": self.round_off_paise,
            "grand_total_paise": self.grand_total_paise,
            "created_by_user_id": self.created_by_user_id,
            "created_at": to_utc_z(self.created_at),
        }
        if include_lines:
            data["lines"] = [line.to_dict() for line in self.lines]
            data["tax_lines"] = [tl.to_dict() for tl in self.tax_lines]
        return data


class InvoiceLine(db.Model):
    """Finalized cart line, frozen at checkout time."""
    __tablename__ = "invoice_lines"
    __table_args__ = (
        db.UniqueConstraint("invoice_id", "line_no", name="uq_invoice_lines_invoice_line_no"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    invoice_id = db.Column(db.Integer, db.ForeignKey("invoices.id"), nullable=False, index=True)
    line_no = db.Column(db.Integer, nullable=False)

    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False)
    product_name = db.Column(db.String(255), nullable=False)
    hsn_code = db.Column(db.String(8), nullable=True)
    scanned_code = db.Column(db.String(64), nullable=False)
    resolved_scheme = db.Column(db.String(16), nullable=False)

    quantity = db.Column(db.Integer, nullable=False)
    unit_price_paise = db.Column(db.Integer, nullable=False)
    discount_paise = db.Column(db.Integer, nullable=False, default=0)
    gst_rate_bps = db.Column(db.Integer, nullable=False)
    tax_inclusion = db.Column(db.String(16), nullable=False)

    taxable_paise = db.Column(db.Integer, nullable=False)
    cgst_paise = db.Column(db.Integer, nullable=False, default=0)
    sgst_paise = db.Column(db.Integer, nullable=False, default=0)
    igst_paise = db.Column(db.Integer, nullable=False, default=0)
    line_total_paise = db.Column(db.Integer, nullable=False)

    # Units billed without a batch to draw from (negative-stock override)
    unallocated_quantity = db.Column(db.Integer, nullable=False, default=0)

    allocations = db.relationship(
        "InvoiceLineAllocation",
        backref="line",
        lazy=True,
        order_by="InvoiceLineAllocation.id",
        cascade="all, delete-orphan",
    )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "line_no": self.line_no,
            "product_id": self.product_id,
            "product_name": self.product_name,
            "hsn_code": self.hsn_code,
            "scanned_code": self.scanned_code,
            "resolved_scheme": self.resolved_scheme,
            "quantity": self.quantity,
            "unit_price_paise": self.unit_price_paise,
            "discount_paise": self.discount_paise,
            "gst_rate_bps": self.gst_rate_bps,
            "tax_inclusion": self.tax_inclusion,
            "taxable_paise": self.taxable_paise,
            "cgst_paise": self.cgst_paise,
            "sgst_paise": self.sgst_paise,
            "igst_paise": self.igst_paise,
            "line_total_paise": self.line_total_paise,
            "unallocated_quantity": self.unallocated_quantity,
            "allocations": [a.to_dict() for a in self.allocations],
        }


class InvoiceLineAllocation(db.Model):
    """Batch draw recorded against an invoice line (audit of the FEFO plan)."""
    __tablename__ = "invoice_line_allocations"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    invoice_line_id = db.Column(db.Integer, db.ForeignKey("invoice_lines.id"), nullable=False, index=True)
    batch_id = db.Column(db.Integer, db.ForeignKey("inventory_batches.id"), nullable=False, index=True)
    batch_code = db.Column(db.String(64), nullable=False)
    expiry_date = db.Column(db.Date, nullable=False)
    quantity = db.Column(db.Integer, nullable=False)

    def to_dict(self) -> dict:
        return {
            "batch_id": self.batch_id,
            "batch_code": self.batch_code,
            "expiry_date": to_iso_date(self.expiry_date),
            "quantity": self.quantity,
        }


class InvoiceTaxLine(db.Model):
    """Aggregated GST per (HSN, rate, tax type) on an invoice."""
    __tablename__ = "invoice_tax_lines"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    invoice_id = db.Column(db.Integer, db.ForeignKey("invoices.id"), nullable=False, index=True)
    hsn_code = db.Column(db.String(8), nullable=True)
    tax_type = db.Column(db.String(8), nullable=False)  # CGST, SGST, IGST
    rate_bps = db.Column(db.Integer, nullable=False)
    taxable_paise = db.Column(db.Integer, nullable=False)
    tax_paise = db.Column(db.Integer, nullable=False)

    def to_dict(self) -> dict:
        return {
            "hsn_code": self.hsn_code,
            "tax_type": self.tax_type,
            "rate_bps": self.rate_bps,
            "taxable_paise": self.taxable_paise,
            "tax_paise": self.tax_paise,
        }
