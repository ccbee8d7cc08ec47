# Overview: Service-layer operations for scanned-code resolution and barcode binding.

"""
Code Resolver - scanned string to product

Schemes are tried in a fixed priority order, most specific first:

1. BARCODE  exact match on an active ProductBarcode of the tenant
2. HSN      4-8 digit tariff code matched against Product.hsn_code
3. INMED    "INMED-000001" matched against Product.internal_code
4. NAME     case-insensitive exact name, then a unique partial match

The first scheme that claims the code (finds any candidate) decides the
outcome. If its candidate turns out unusable (inactive product, more than
one candidate) the result is Unresolved; later schemes are NOT consulted,
so one code can never silently mean two different products.

Lookups are read-only. An absent code is an Unresolved value, never an
exception; only malformed input raises ValidationError.
"""

from __future__ import annotations

from dataclasses import dataclass, field

from sqlalchemy import func

from ..extensions import db
from ..models import Product, ProductBarcode
from pharmapos.time_utils import utcnow
from .barcodes import (
    SCHEME_HSN,
    SCHEME_INMED,
    digits_only,
    is_hsn_pattern,
    is_inmed_code,
    normalize_code,
    validate_for_scheme,
)
from .concurrency import begin_write_transaction
from .context import CheckoutContext
from .errors import NotFoundError, ValidationError


MATCH_BARCODE = "BARCODE"
MATCH_HSN = "HSN"
MATCH_INMED = "INMED"
MATCH_NAME = "NAME"

MAX_SCAN_LENGTH = 128
MIN_PARTIAL_NAME_LENGTH = 3
MAX_CANDIDATES = 10


class DuplicateBarcodeError(ValidationError):
    """Barcode value already owned by another active product of the tenant."""

    code = "DUPLICATE_BARCODE"
    http_status = 409


@dataclass
class ResolvedProduct:
    product: Product
    scheme: str
    normalized_code: str
    barcode_id: int | None = None

    found = True

    def to_dict(self) -> dict:
        return {
            "found": True,
            "scheme": self.scheme,
            "normalized_code": self.normalized_code,
            "barcode_id": self.barcode_id,
            "product": self.product.to_dict(),
        }


@dataclass
class Unresolved:
    code: str
    reason: str
    scheme: str | None = None
    candidates: list[Product] = field(default_factory=list)

    found = False

    def to_dict(self) -> dict:
        return {
            "found": False,
            "code": self.code,
            "reason": self.reason,
            "scheme": self.scheme,
            "candidates": [
                {"id": p.id, "name": p.name, "hsn_code": p.hsn_code, "is_active": p.is_active}
                for p in self.candidates[:MAX_CANDIDATES]
            ],
        }


@dataclass
class _Claim:
    scheme: str
    normalized_code: str
    candidates: list[Product]
    barcode_id: int | None = None


def _clean_input(code) -> str:
    if not isinstance(code, str):
        raise ValidationError("Scanned code must be a string")
    cleaned = code.strip()
    if not cleaned:
        raise ValidationError("Scanned code is empty")
    if len(cleaned) > MAX_SCAN_LENGTH:
        raise ValidationError(
            f"Scanned code longer than {MAX_SCAN_LENGTH} characters",
            details={"length": len(cleaned)},
        )
    return cleaned


def _match_barcode(code: str, ctx: CheckoutContext) -> _Claim | None:
    values = {normalize_code(code)}
    digits = digits_only(code)
    if digits:
        values.add(digits)

    rows = (
        db.session.query(ProductBarcode)
        .filter(
            ProductBarcode.tenant_id == ctx.tenant_id,
            ProductBarcode.value.in_(values),
            ProductBarcode.is_active == True,  # noqa: E712
        )
        .order_by(ProductBarcode.id)
        .all()
    )
    if not rows:
        return None

    products = {row.product_id: row.product for row in rows}
    return _Claim(
        scheme=MATCH_BARCODE,
        normalized_code=rows[0].value,
        candidates=list(products.values()),
        barcode_id=rows[0].id if len(products) == 1 else None,
    )


def _match_hsn(code: str, ctx: CheckoutContext) -> _Claim | None:
    if not is_hsn_pattern(code):
        return None
    hsn = digits_only(code)

    products = (
        db.session.query(Product)
        .filter(Product.tenant_id == ctx.tenant_id, Product.hsn_code == hsn)
        .order_by(Product.id)
        .all()
    )
    if not products:
        return None
    # Retired products sharing the HSN do not make an active one ambiguous
    active = [p for p in products if p.is_active]
    return _Claim(scheme=MATCH_HSN, normalized_code=hsn, candidates=active or products)


def _match_inmed(code: str, ctx: CheckoutContext) -> _Claim | None:
    if not is_inmed_code(code):
        return None
    normalized = normalize_code(code)

    products = (
        db.session.query(Product)
        .filter(Product.tenant_id == ctx.tenant_id, Product.internal_code == normalized)
        .all()
    )
    if not products:
        return None
    return _Claim(scheme=MATCH_INMED, normalized_code=normalized, candidates=products)


def _escape_like(term: str) -> str:
    return term.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


def _match_name(code: str, ctx: CheckoutContext) -> _Claim | None:
    term = " ".join(code.split())
    base = db.session.query(Product).filter(
        Product.tenant_id == ctx.tenant_id,
        Product.is_active == True,  # noqa: E712
    )

    exact = base.filter(func.lower(Product.name) == term.lower()).order_by(Product.id).all()
    if exact:
        return _Claim(scheme=MATCH_NAME, normalized_code=term, candidates=exact)

    if len(term) < MIN_PARTIAL_NAME_LENGTH:
        return None

    partial = (
        base.filter(Product.name.ilike(f"%{_escape_like(term)}%", escape="\\"))
        .order_by(Product.name, Product.id)
        .limit(MAX_CANDIDATES + 1)
        .all()
    )
    if not partial:
        return None
    return _Claim(scheme=MATCH_NAME, normalized_code=term, candidates=partial)


RESOLUTION_ORDER = (
    (MATCH_BARCODE, _match_barcode),
    (MATCH_HSN, _match_hsn),
    (MATCH_INMED, _match_inmed),
    (MATCH_NAME, _match_name),
)


def _judge(code: str, claim: _Claim) -> ResolvedProduct | Unresolved:
    if len(claim.candidates) > 1:
        return Unresolved(
            code=code,
            reason=f"Ambiguous {claim.scheme} match: {len(claim.candidates)} products",
            scheme=claim.scheme,
            candidates=claim.candidates,
        )

    product = claim.candidates[0]
    if not product.is_active:
        return Unresolved(
            code=code,
            reason="Matched product is inactive",
            scheme=claim.scheme,
            candidates=[product],
        )

    return ResolvedProduct(
        product=product,
        scheme=claim.scheme,
        normalized_code=claim.normalized_code,
        barcode_id=claim.barcode_id,
    )


def resolve(code: str, ctx: CheckoutContext) -> ResolvedProduct | Unresolved:
    """
    Resolve a scanned or typed code to exactly one active product.

    Raises ValidationError for empty or over-long input.
    """
    cleaned = _clean_input(code)

    for _scheme, matcher in RESOLUTION_ORDER:
        claim = matcher(cleaned, ctx)
        if claim is not None:
            return _judge(cleaned, claim)

    return Unresolved(code=cleaned, reason="No product matches this code")


# =============================================================================
# Barcode binding
# =============================================================================


def get_product(ctx: CheckoutContext, product_id: int) -> Product:
    product = db.session.query(Product).filter_by(id=product_id, tenant_id=ctx.tenant_id).first()
    if product is None:
        raise NotFoundError("Product not found", details={"product_id": product_id})
    return product


def bind_barcode(ctx: CheckoutContext, product_id: int, value: str, scheme: str) -> ProductBarcode:
    """
    Attach a barcode to a product after validating it for its scheme.

    UNIQUENESS: one active owner per (tenant, value). Binding the same
    value to the same product again returns the existing row.
    """
    try:
        stored = validate_for_scheme(value, scheme)
    except ValueError as exc:
        raise ValidationError(str(exc), details={"value": value, "scheme": scheme}) from exc

    begin_write_transaction()
    try:
        product = get_product(ctx, product_id)

        existing = db.session.query(ProductBarcode).filter_by(
            tenant_id=ctx.tenant_id,
            value=stored,
            is_active=True,
        ).first()
        if existing:
            if existing.product_id != product.id:
                raise DuplicateBarcodeError(
                    f"Barcode '{stored}' already belongs to another product",
                    details={"value": stored, "product_id": existing.product_id},
                )
            db.session.rollback()
            return existing

        barcode = ProductBarcode(
            tenant_id=ctx.tenant_id,
            product_id=product.id,
            value=stored,
            scheme=scheme,
            is_active=True,
        )
        db.session.add(barcode)
        if scheme == SCHEME_HSN and not product.hsn_code:
            product.hsn_code = stored
        if scheme == SCHEME_INMED and not product.internal_code:
            product.internal_code = stored
        db.session.commit()
        return barcode
    except Exception:
        db.session.rollback()
        raise


def _barcode_in_tenant(ctx: CheckoutContext, barcode_id: int) -> ProductBarcode:
    barcode = db.session.query(ProductBarcode).filter_by(id=barcode_id, tenant_id=ctx.tenant_id).first()
    if barcode is None:
        raise NotFoundError("Barcode not found", details={"barcode_id": barcode_id})
    return barcode


def deactivate_barcode(ctx: CheckoutContext, barcode_id: int) -> ProductBarcode:
    """Soft-delete: the row stays for audit but no longer resolves."""
    barcode = _barcode_in_tenant(ctx, barcode_id)
    if not barcode.is_active:
        raise ValidationError("Barcode is already deactivated")

    barcode.is_active = False
    barcode.deactivated_at = utcnow()
    db.session.commit()
    return barcode


def reactivate_barcode(ctx: CheckoutContext, barcode_id: int) -> ProductBarcode:
    barcode = _barcode_in_tenant(ctx, barcode_id)
    if barcode.is_active:
        raise ValidationError("Barcode is already active")

    conflict = db.session.query(ProductBarcode).filter(
        ProductBarcode.tenant_id == barcode.tenant_id,
        ProductBarcode.value == barcode.value,
        ProductBarcode.is_active == True,  # noqa: E712
        ProductBarcode.id != barcode.id,
    ).first()
    if conflict:
        raise DuplicateBarcodeError(
            f"Cannot reactivate: '{barcode.value}' is in use by another active barcode",
            details={"value": barcode.value, "product_id": conflict.product_id},
        )

    barcode.is_active = True
    barcode.deactivated_at = None
    db.session.commit()
    return barcode
