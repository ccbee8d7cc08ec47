# Overview: Service-layer checkout orchestration; resolves, allocates, taxes, numbers and commits a cart.

"""
Checkout Orchestrator

STATE MACHINE:
    DRAFT -> RESOLVING -> ALLOCATING -> TAXING -> SEQUENCING -> COMMITTED
    FAILED is reachable from every non-terminal state.
    A lost stock race sends the run back to ALLOCATING (bounded retry).

UNIT OF WORK: everything after RESOLVING happens in ONE database
transaction:
    BEGIN IMMEDIATE (SQLite)
    re-plan FEFO picks, guarded decrements
    tax lines, bucket summary, round-off
    reserve invoice number
    insert invoice, lines, allocations, tax lines
    COMMIT
A failure anywhere before COMMIT rolls the whole thing back: no stock
moves, no number is consumed, no invoice row exists.

GUARDED DECREMENT:
    UPDATE inventory_batches SET quantity_on_hand = quantity_on_hand - :take
    WHERE id = :id AND quantity_on_hand >= :take
Zero rows means another checkout drew from the batch since we planned.
That is a StockConflict: roll back, re-plan, retry.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date
from enum import Enum
from typing import Any

from flask import current_app
from sqlalchemy import update

from ..extensions import db
from ..models import (
    Invoice,
    InvoiceLine,
    InvoiceLineAllocation,
    InvoiceTaxLine,
    InventoryBatch,
    Product,
    TaxIdentity,
)
from pharmapos.time_utils import today
from .batch_allocator import AllocationPlan, fefo_batches, plan_allocation
from .code_resolver import Unresolved, resolve
from .concurrency import StockConflict, begin_write_transaction, run_with_retry
from .context import CheckoutContext
from .errors import CheckoutError, InsufficientStockError, NotFoundError, ValidationError
from .invoice_sequencer import InvoiceNumber, next_invoice_number
from .jurisdictions import (
    SUPPLY_INTRA_STATE,
    is_valid_gstin,
    normalize_state_code,
    state_code_from_gstin,
    supply_type,
)
from .round_off import RoundOff, round_to_whole_unit
from .tax_engine import (
    TAX_CGST,
    TAX_IGST,
    TAX_SGST,
    TaxLineResult,
    TaxSummary,
    bps_to_percent,
    compute_tax_line,
    summarize_tax_lines,
)


INVOICE_TYPE_B2B = "B2B"
INVOICE_TYPE_B2C = "B2C"

MAX_CART_LINES = 200


class CheckoutState(str, Enum):
    DRAFT = "DRAFT"
    RESOLVING = "RESOLVING"
    ALLOCATING = "ALLOCATING"
    TAXING = "TAXING"
    SEQUENCING = "SEQUENCING"
    COMMITTED = "COMMITTED"
    FAILED = "FAILED"


_TRANSITIONS: dict[CheckoutState, set[CheckoutState]] = {
    CheckoutState.DRAFT: {CheckoutState.RESOLVING},
    CheckoutState.RESOLVING: {CheckoutState.ALLOCATING},
    CheckoutState.ALLOCATING: {CheckoutState.ALLOCATING, CheckoutState.TAXING},
    CheckoutState.TAXING: {CheckoutState.ALLOCATING, CheckoutState.SEQUENCING},
    CheckoutState.SEQUENCING: {CheckoutState.ALLOCATING, CheckoutState.COMMITTED},
    CheckoutState.COMMITTED: set(),
    CheckoutState.FAILED: set(),
}


@dataclass
class CartLine:
    """One cart entry; filled in stage by stage as the checkout advances."""
    scanned_code: str
    quantity: int
    discount: int = 0
    unit_price_override: int | None = None
    line_no: int = 0

    product: Product | None = None
    resolved_scheme: str | None = None
    unit_price: int | None = None
    plan: AllocationPlan | None = None
    unallocated_quantity: int = 0
    tax: TaxLineResult | None = None

    def to_dict(self) -> dict:
        product = self.product
        return {
            "line_no": self.line_no,
            "scanned_code": self.scanned_code,
            "resolved_scheme": self.resolved_scheme,
            "product_id": product.id if product else None,
            "product_name": product.name if product else None,
            "hsn_code": product.hsn_code if product else None,
            "quantity": self.quantity,
            "unit_price_paise": self.unit_price,
            "discount_paise": self.discount,
            "unallocated_quantity": self.unallocated_quantity,
            "allocations": [p.to_dict() for p in self.plan.picks] if self.plan else [],
            "tax": self.tax.to_dict() if self.tax else None,
        }


@dataclass
class CheckoutRequest:
    issuing_registration_id: int
    lines: list[CartLine]
    buyer_state_code: str | None = None
    buyer_gstin: str | None = None


@dataclass
class CheckoutResult:
    state: CheckoutState
    lines: list[CartLine]
    tax_summary: TaxSummary
    round_off: RoundOff
    grand_total: int
    seller_state_code: str
    buyer_state_code: str
    supply_type: str
    invoice_number: str | None = None
    invoice: Invoice | None = None
    history: list[CheckoutState] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "state": self.state.value,
            "invoice_number": self.invoice_number,
            "invoice_id": self.invoice.id if self.invoice is not None else None,
            "seller_state_code": self.seller_state_code,
            "buyer_state_code": self.buyer_state_code,
            "supply_type": self.supply_type,
            "lines": [line.to_dict() for line in self.lines],
            "tax_summary": self.tax_summary.to_dict(),
            "round_off": self.round_off.to_dict(),
            "grand_total_paise": self.grand_total,
            "history": [s.value for s in self.history],
        }


class _Run:
    """State tracker for one checkout attempt sequence."""

    def __init__(self, ctx: CheckoutContext, label: str):
        self.ctx = ctx
        self.label = label
        self.state = CheckoutState.DRAFT
        self.history: list[CheckoutState] = [CheckoutState.DRAFT]

    def advance(self, new_state: CheckoutState) -> None:
        if new_state not in _TRANSITIONS[self.state]:
            raise RuntimeError(f"Illegal checkout transition {self.state.value} -> {new_state.value}")
        current_app.logger.debug(
            "%s tenant=%s branch=%s: %s -> %s",
            self.label, self.ctx.tenant_id, self.ctx.branch_id, self.state.value, new_state.value,
        )
        self.state = new_state
        self.history.append(new_state)

    def fail(self, exc: Exception) -> None:
        if self.state in (CheckoutState.COMMITTED, CheckoutState.FAILED):
            return
        current_app.logger.info(
            "%s failed in %s: %s", self.label, self.state.value, exc,
        )
        self.state = CheckoutState.FAILED
        self.history.append(CheckoutState.FAILED)


# =============================================================================
# Request parsing
# =============================================================================


def _int_field(data: dict, key: str, *, minimum: int, default: Any = None, required: bool = False):
    value = data.get(key, default)
    if value is None:
        if required:
            raise ValidationError(f"{key} is required")
        return None
    if isinstance(value, bool) or not isinstance(value, int):
        raise ValidationError(f"{key} must be an integer", details={key: value})
    if value < minimum:
        raise ValidationError(f"{key} must be >= {minimum}", details={key: value})
    return value


def parse_checkout_request(payload) -> CheckoutRequest:
    """Validate a JSON checkout body. Tenant and branch never come from here."""
    if not isinstance(payload, dict):
        raise ValidationError("Request body must be a JSON object")

    registration_id = _int_field(payload, "issuing_registration_id", minimum=1, required=True)

    raw_lines = payload.get("lines")
    if not isinstance(raw_lines, list) or not raw_lines:
        raise ValidationError("lines must be a non-empty list")
    if len(raw_lines) > MAX_CART_LINES:
        raise ValidationError(f"A cart holds at most {MAX_CART_LINES} lines")

    lines = []
    for idx, raw in enumerate(raw_lines, start=1):
        if not isinstance(raw, dict):
            raise ValidationError("Each line must be an object", details={"line_no": idx})
        code = raw.get("scanned_code")
        if not isinstance(code, str) or not code.strip():
            raise ValidationError("scanned_code is required", details={"line_no": idx})
        try:
            lines.append(
                CartLine(
                    scanned_code=code.strip(),
                    quantity=_int_field(raw, "quantity", minimum=1, required=True),
                    discount=_int_field(raw, "discount", minimum=0, default=0),
                    unit_price_override=_int_field(raw, "unit_price_override", minimum=0),
                    line_no=idx,
                )
            )
        except ValidationError as exc:
            exc.details.setdefault("line_no", idx)
            raise

    buyer_gstin = payload.get("buyer_gstin") or None
    if buyer_gstin is not None:
        if not isinstance(buyer_gstin, str) or not is_valid_gstin(buyer_gstin):
            raise ValidationError(f"Invalid buyer GSTIN '{buyer_gstin}'")
        buyer_gstin = buyer_gstin.strip().upper()

    buyer_state = payload.get("buyer_state_code")
    if buyer_state is not None and buyer_state != "":
        buyer_state = normalize_state_code(buyer_state)
        if buyer_gstin and state_code_from_gstin(buyer_gstin) != buyer_state:
            raise ValidationError(
                "buyer_state_code does not match buyer GSTIN",
                details={"buyer_state_code": buyer_state, "buyer_gstin": buyer_gstin},
            )
    elif buyer_gstin:
        buyer_state = state_code_from_gstin(buyer_gstin)
    else:
        buyer_state = None

    return CheckoutRequest(
        issuing_registration_id=registration_id,
        lines=lines,
        buyer_state_code=buyer_state,
        buyer_gstin=buyer_gstin,
    )


# =============================================================================
# Stages
# =============================================================================


def _load_registration(registration_id: int, ctx: CheckoutContext) -> TaxIdentity:
    registration = db.session.query(TaxIdentity).filter_by(
        id=registration_id, tenant_id=ctx.tenant_id
    ).first()
    if registration is None:
        raise NotFoundError(
            "Issuing registration not found", details={"registration_id": registration_id}
        )
    if not registration.is_active:
        raise ValidationError(
            "Issuing registration is inactive", details={"registration_id": registration_id}
        )
    return registration


def _resolve_lines(lines: list[CartLine], ctx: CheckoutContext) -> None:
    unresolved = []
    for line in lines:
        outcome = resolve(line.scanned_code, ctx)
        if isinstance(outcome, Unresolved):
            unresolved.append({
                "line_no": line.line_no,
                "scanned_code": line.scanned_code,
                "reason": outcome.reason,
            })
            continue
        line.product = outcome.product
        line.resolved_scheme = outcome.scheme

    if unresolved:
        raise NotFoundError("Cart contains codes that do not resolve", details={"lines": unresolved})


def _allocate_lines(
    lines: list[CartLine],
    ctx: CheckoutContext,
    *,
    allow_negative_stock: bool,
    not_expired_on: date | None,
) -> None:
    """
    Plan picks for every line against one snapshot per product.

    Lines of the same product share the snapshot through `reserved`, so two
    lines never plan the same units twice.
    """
    snapshots: dict[int, list[InventoryBatch]] = {}
    reserved: dict[int, int] = {}
    short = []

    for line in lines:
        product_id = line.product.id
        if product_id not in snapshots:
            snapshots[product_id] = fefo_batches(product_id, ctx, not_expired_on=not_expired_on)

        plan = plan_allocation(product_id, snapshots[product_id], line.quantity, reserved=reserved)
        for pick in plan.picks:
            reserved[pick.batch_id] = reserved.get(pick.batch_id, 0) + pick.quantity

        line.plan = plan
        line.unallocated_quantity = plan.shortfall
        if plan.is_partial:
            short.append({
                "line_no": line.line_no,
                "product_id": product_id,
                "scanned_code": line.scanned_code,
                "requested": plan.requested,
                "available": plan.allocated,
                "shortfall": plan.shortfall,
            })

    if short and not allow_negative_stock:
        raise InsufficientStockError("Insufficient stock to complete checkout", details={"items": short})
    if short:
        current_app.logger.warning(
            "Billing %d line(s) beyond available stock (negative stock allowed)", len(short)
        )


def _apply_allocations(lines: list[CartLine]) -> None:
    for line in lines:
        for pick in line.plan.picks:
            stmt = (
                update(InventoryBatch)
                .where(
                    InventoryBatch.id == pick.batch_id,
                    InventoryBatch.quantity_on_hand >= pick.quantity,
                )
                .values(quantity_on_hand=InventoryBatch.quantity_on_hand - pick.quantity)
                .execution_options(synchronize_session=False)
            )
            if db.session.execute(stmt).rowcount != 1:
                raise StockConflict(pick.batch_id, pick.quantity)


def _price_lines(lines: list[CartLine], seller_state: str, buyer_state: str) -> TaxSummary:
    for line in lines:
        product = line.product
        unit_price = line.unit_price_override
        if unit_price is None:
            unit_price = product.sale_price_paise
        if unit_price is None:
            raise ValidationError(
                f"Product '{product.name}' has no sale price",
                details={"line_no": line.line_no, "product_id": product.id},
            )
        line.unit_price = unit_price
        line.tax = compute_tax_line(
            unit_price,
            line.quantity,
            line.discount,
            bps_to_percent(product.gst_rate_bps),
            product.tax_inclusion,
            seller_state,
            buyer_state,
        )
    return summarize_tax_lines((line.product.hsn_code, line.tax) for line in lines)


def _persist_invoice(
    request: CheckoutRequest,
    ctx: CheckoutContext,
    number: InvoiceNumber,
    seller_state: str,
    buyer_state: str,
    summary: TaxSummary,
    rounding: RoundOff,
) -> Invoice:
    supply = supply_type(seller_state, buyer_state)
    invoice = Invoice(
        tenant_id=ctx.tenant_id,
        branch_id=ctx.branch_id,
        tax_identity_id=request.issuing_registration_id,
        invoice_number=str(number),
        fiscal_year=number.fiscal_year,
        sequence_no=number.sequence,
        status="ISSUED",
        invoice_type=INVOICE_TYPE_B2B if request.buyer_gstin else INVOICE_TYPE_B2C,
        supply_type=supply,
        seller_state_code=seller_state,
        buyer_state_code=buyer_state,
        buyer_gstin=request.buyer_gstin,
        total_taxable_paise=summary.total_taxable,
        total_tax_paise=summary.total_tax,
        round_off_paise=rounding.adjustment,
        grand_total_paise=rounding.rounded_amount,
        created_by_user_id=ctx.user_id,
    )

    for line in request.lines:
        product = line.product
        invoice_line = InvoiceLine(
            line_no=line.line_no,
            product_id=product.id,
            product_name=product.name,
            hsn_code=product.hsn_code,
            scanned_code=line.scanned_code[:64],
            resolved_scheme=line.resolved_scheme,
            quantity=line.quantity,
            unit_price_paise=line.unit_price,
            discount_paise=line.discount,
            gst_rate_bps=line.tax.rate_bps,
            tax_inclusion=line.tax.inclusion_mode,
            taxable_paise=line.tax.taxable_value,
            cgst_paise=line.tax.amount_of(TAX_CGST),
            sgst_paise=line.tax.amount_of(TAX_SGST),
            igst_paise=line.tax.amount_of(TAX_IGST),
            line_total_paise=line.tax.line_total,
            unallocated_quantity=line.unallocated_quantity,
        )
        for pick in line.plan.picks:
            invoice_line.allocations.append(
                InvoiceLineAllocation(
                    batch_id=pick.batch_id,
                    batch_code=pick.batch_code,
                    expiry_date=pick.expiry_date,
                    quantity=pick.quantity,
                )
            )
        invoice.lines.append(invoice_line)

    tax_types = (TAX_CGST, TAX_SGST) if supply == SUPPLY_INTRA_STATE else (TAX_IGST,)
    for bucket in summary.buckets:
        amounts = {TAX_CGST: bucket.cgst, TAX_SGST: bucket.sgst, TAX_IGST: bucket.igst}
        for tax_type in tax_types:
            invoice.tax_lines.append(
                InvoiceTaxLine(
                    hsn_code=bucket.hsn_code,
                    tax_type=tax_type,
                    rate_bps=bucket.rate_bps,
                    taxable_paise=bucket.taxable_value,
                    tax_paise=amounts[tax_type],
                )
            )

    db.session.add(invoice)
    db.session.flush()
    return invoice


def _setting(name: str, override):
    if override is not None:
        return override
    return current_app.config.get(name)


def _prepare(request: CheckoutRequest, ctx: CheckoutContext, run: _Run) -> tuple[str, str]:
    """DRAFT -> RESOLVING. Returns (seller_state, buyer_state)."""
    if not request.lines:
        raise ValidationError("Cart is empty")

    run.advance(CheckoutState.RESOLVING)
    registration = _load_registration(request.issuing_registration_id, ctx)
    seller_state = normalize_state_code(registration.state_code)
    # Walk-in sale without a declared place of supply is a local sale
    buyer_state = normalize_state_code(request.buyer_state_code or seller_state)
    _resolve_lines(request.lines, ctx)
    return seller_state, buyer_state


# =============================================================================
# Entry points
# =============================================================================


def preview_checkout(
    request: CheckoutRequest,
    ctx: CheckoutContext,
    *,
    allow_negative_stock: bool | None = None,
    block_expired: bool | None = None,
    on_date: date | None = None,
) -> CheckoutResult:
    """Price a cart exactly as checkout would, without touching stock or numbers."""
    run = _Run(ctx, "checkout-preview")
    on_date = on_date or today()
    allow_negative = bool(_setting("POS_ALLOW_NEGATIVE_STOCK", allow_negative_stock))
    not_expired_on = on_date if _setting("POS_BLOCK_EXPIRED_BATCHES", block_expired) else None

    try:
        seller_state, buyer_state = _prepare(request, ctx, run)
        run.advance(CheckoutState.ALLOCATING)
        _allocate_lines(
            request.lines, ctx,
            allow_negative_stock=allow_negative,
            not_expired_on=not_expired_on,
        )
        run.advance(CheckoutState.TAXING)
        summary = _price_lines(request.lines, seller_state, buyer_state)
        rounding = round_to_whole_unit(summary.total_amount)
    except Exception as exc:
        run.fail(exc)
        raise

    return CheckoutResult(
        state=run.state,
        lines=request.lines,
        tax_summary=summary,
        round_off=rounding,
        grand_total=rounding.rounded_amount,
        seller_state_code=seller_state,
        buyer_state_code=buyer_state,
        supply_type=supply_type(seller_state, buyer_state),
        history=list(run.history),
    )


def checkout(
    request: CheckoutRequest,
    ctx: CheckoutContext,
    *,
    allow_negative_stock: bool | None = None,
    block_expired: bool | None = None,
    on_date: date | None = None,
    max_attempts: int | None = None,
) -> CheckoutResult:
    """
    Turn a cart into a committed GST invoice, or fail with no side effects.

    Raises:
        ValidationError          malformed cart, unknown state code
        NotFoundError            a code does not resolve, unknown registration
        InsufficientStockError   stock short and negative stock not allowed
        ConcurrencyConflictError retry budget exhausted
        SequencingError          invoice counter could not be advanced
    """
    run = _Run(ctx, "checkout")
    on_date = on_date or today()
    allow_negative = bool(_setting("POS_ALLOW_NEGATIVE_STOCK", allow_negative_stock))
    not_expired_on = on_date if _setting("POS_BLOCK_EXPIRED_BATCHES", block_expired) else None
    attempts = _setting("CHECKOUT_MAX_ATTEMPTS", max_attempts) or 3
    backoff = current_app.config.get("CHECKOUT_RETRY_BACKOFF", 0.05)

    try:
        seller_state, buyer_state = _prepare(request, ctx, run)

        def _op():
            begin_write_transaction()

            run.advance(CheckoutState.ALLOCATING)
            _allocate_lines(
                request.lines, ctx,
                allow_negative_stock=allow_negative,
                not_expired_on=not_expired_on,
            )
            _apply_allocations(request.lines)

            run.advance(CheckoutState.TAXING)
            summary = _price_lines(request.lines, seller_state, buyer_state)
            rounding = round_to_whole_unit(summary.total_amount)

            run.advance(CheckoutState.SEQUENCING)
            number = next_invoice_number(request.issuing_registration_id, on_date=on_date)
            invoice = _persist_invoice(
                request, ctx, number, seller_state, buyer_state, summary, rounding
            )

            db.session.commit()
            run.advance(CheckoutState.COMMITTED)
            return invoice, summary, rounding

        invoice, summary, rounding = run_with_retry(_op, attempts=attempts, backoff_base=backoff)
    except CheckoutError as exc:
        run.fail(exc)
        raise
    except Exception as exc:
        db.session.rollback()
        run.fail(exc)
        raise

    current_app.logger.info(
        "Invoice %s issued: tenant=%s branch=%s lines=%d total=%d paise",
        invoice.invoice_number, ctx.tenant_id, ctx.branch_id,
        len(request.lines), invoice.grand_total_paise,
    )

    return CheckoutResult(
        state=run.state,
        lines=request.lines,
        tax_summary=summary,
        round_off=rounding,
        grand_total=rounding.rounded_amount,
        seller_state_code=seller_state,
        buyer_state_code=buyer_state,
        supply_type=supply_type(seller_state, buyer_state),
        invoice_number=invoice.invoice_number,
        invoice=invoice,
        history=list(run.history),
    )


def get_invoice(invoice_number: str, ctx: CheckoutContext) -> Invoice:
    invoice = db.session.query(Invoice).filter_by(
        tenant_id=ctx.tenant_id, invoice_number=invoice_number
    ).first()
    if invoice is None:
        raise NotFoundError("Invoice not found", details={"invoice_number": invoice_number})
    return invoice
