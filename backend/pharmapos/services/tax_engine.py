# Overview: GST tax-line computation; pure integer arithmetic, no database access.

"""
Tax Engine - GST per cart line

MONEY: all amounts are integer paise. Rates enter as percentages and are
converted to integer basis points (12% -> 1200) before any arithmetic, so
no float ever touches money. Division rounds half-up:
    (numerator + denominator // 2) // denominator

STEPS:
1. gross   = unit_price * quantity - discount
2. taxable = gross                                   (EXCLUSIVE)
             round(gross * 10000 / (10000 + bps))    (INCLUSIVE)
3. tax     = round(taxable * bps / 10000)            (EXCLUSIVE)
             gross - taxable                         (INCLUSIVE)
4. split   = CGST + SGST when seller and buyer state match, else IGST
5. total   = taxable + tax

For INCLUSIVE pricing the tax is the remainder of the shelf price, so the
line total always equals the price the customer saw; it differs from
round(taxable * rate) by at most one paisa.

State codes are validated before step 1. An unknown code is rejected,
never replaced by a guess.
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal, InvalidOperation
from typing import Iterable

from ..models import TAX_EXCLUSIVE, TAX_INCLUSIVE
from .errors import ValidationError
from .jurisdictions import SUPPLY_INTRA_STATE, normalize_state_code, supply_type


TAX_CGST = "CGST"
TAX_SGST = "SGST"
TAX_IGST = "IGST"

INCLUSION_MODES = (TAX_INCLUSIVE, TAX_EXCLUSIVE)

BPS_SCALE = 10000
MAX_RATE_BPS = 10000


def _div_half_up(numerator: int, denominator: int) -> int:
    # nearest-paisa rounding (half-up) for non-negative numerators
    return (numerator + denominator // 2) // denominator


def rate_to_bps(tax_rate_percent) -> int:
    """
    Convert a GST percentage (5, "12", Decimal("0.25")) to basis points.

    Rejects negatives, rates above 100% and anything finer than 0.01%.
    """
    if isinstance(tax_rate_percent, bool) or tax_rate_percent is None:
        raise ValidationError("Tax rate is required")
    try:
        rate = Decimal(str(tax_rate_percent))
    except InvalidOperation as exc:
        raise ValidationError(f"Invalid tax rate '{tax_rate_percent}'") from exc

    if not rate.is_finite():
        raise ValidationError(f"Invalid tax rate '{tax_rate_percent}'")
    bps = rate * 100
    if bps != bps.to_integral_value():
        raise ValidationError(f"Tax rate '{tax_rate_percent}' has more than two decimals")
    bps = int(bps)
    if bps < 0 or bps > MAX_RATE_BPS:
        raise ValidationError(f"Tax rate '{tax_rate_percent}' out of range")
    return bps


def _plain(value: Decimal) -> Decimal:
    # normalize() alone would render 10 as 1E+1
    if value == value.to_integral_value():
        return value.quantize(Decimal(1))
    return value.normalize()


def bps_to_percent(bps: int) -> Decimal:
    return _plain(Decimal(bps) / 100)


@dataclass(frozen=True)
class TaxComponent:
    tax_type: str
    rate_percent: Decimal
    amount: int

    def to_dict(self) -> dict:
        return {
            "tax_type": self.tax_type,
            "rate_percent": str(self.rate_percent),
            "amount_paise": self.amount,
        }


@dataclass(frozen=True)
class TaxLineResult:
    gross_value: int
    taxable_value: int
    total_tax: int
    components: tuple[TaxComponent, ...]
    line_total: int
    rate_bps: int
    inclusion_mode: str
    supply_type: str

    def amount_of(self, tax_type: str) -> int:
        return sum(c.amount for c in self.components if c.tax_type == tax_type)

    def to_dict(self) -> dict:
        return {
            "gross_value_paise": self.gross_value,
            "taxable_value_paise": self.taxable_value,
            "total_tax_paise": self.total_tax,
            "line_total_paise": self.line_total,
            "rate_percent": str(bps_to_percent(self.rate_bps)),
            "inclusion_mode": self.inclusion_mode,
            "supply_type": self.supply_type,
            "components": [c.to_dict() for c in self.components],
        }


def _require_int(name: str, value, *, minimum: int) -> int:
    if isinstance(value, bool) or not isinstance(value, int):
        raise ValidationError(f"{name} must be an integer", details={name: value})
    if value < minimum:
        raise ValidationError(f"{name} must be >= {minimum}", details={name: value})
    return value


def split_tax(total_tax: int, rate_bps: int, seller_state_code: str, buyer_state_code: str) -> tuple[TaxComponent, ...]:
    """
    Intra-state: two co-equal levies (CGST, SGST) at half the rate each.
    An odd-paisa total puts the extra paisa on CGST.
    Inter-state: one IGST levy at the full rate.
    """
    if supply_type(seller_state_code, buyer_state_code) == SUPPLY_INTRA_STATE:
        half_rate = _plain(Decimal(rate_bps) / 200)
        cgst = (total_tax + 1) // 2
        sgst = total_tax - cgst
        return (
            TaxComponent(TAX_CGST, half_rate, cgst),
            TaxComponent(TAX_SGST, half_rate, sgst),
        )
    return (TaxComponent(TAX_IGST, bps_to_percent(rate_bps), total_tax),)


def compute_tax_line(
    unit_price: int,
    quantity: int,
    discount: int,
    tax_rate_percent,
    inclusion_mode: str,
    seller_state_code,
    buyer_state_code,
) -> TaxLineResult:
    """Compute taxable value, GST components and line total for one cart line."""
    seller = normalize_state_code(seller_state_code)
    buyer = normalize_state_code(buyer_state_code)

    if inclusion_mode not in INCLUSION_MODES:
        raise ValidationError(
            f"Invalid tax inclusion mode '{inclusion_mode}'",
            details={"allowed": list(INCLUSION_MODES)},
        )
    rate_bps = rate_to_bps(tax_rate_percent)
    _require_int("unit_price", unit_price, minimum=0)
    _require_int("quantity", quantity, minimum=1)
    _require_int("discount", discount, minimum=0)

    gross = unit_price * quantity - discount
    if gross < 0:
        raise ValidationError(
            "Discount exceeds line value",
            details={"line_value": unit_price * quantity, "discount": discount},
        )

    if inclusion_mode == TAX_INCLUSIVE:
        taxable = _div_half_up(gross * BPS_SCALE, BPS_SCALE + rate_bps)
        total_tax = gross - taxable
        line_total = taxable + total_tax
    else:
        taxable = gross
        total_tax = _div_half_up(taxable * rate_bps, BPS_SCALE)
        line_total = gross + total_tax

    return TaxLineResult(
        gross_value=gross,
        taxable_value=taxable,
        total_tax=total_tax,
        components=split_tax(total_tax, rate_bps, seller, buyer),
        line_total=line_total,
        rate_bps=rate_bps,
        inclusion_mode=inclusion_mode,
        supply_type=supply_type(seller, buyer),
    )


# =============================================================================
# Invoice-level aggregation
# =============================================================================


@dataclass
class TaxBucket:
    hsn_code: str | None
    rate_bps: int
    taxable_value: int = 0
    cgst: int = 0
    sgst: int = 0
    igst: int = 0

    @property
    def total_tax(self) -> int:
        return self.cgst + self.sgst + self.igst

    def to_dict(self) -> dict:
        return {
            "hsn_code": self.hsn_code,
            "rate_percent": str(bps_to_percent(self.rate_bps)),
            "taxable_value_paise": self.taxable_value,
            "cgst_paise": self.cgst,
            "sgst_paise": self.sgst,
            "igst_paise": self.igst,
            "total_tax_paise": self.total_tax,
        }


@dataclass
class TaxSummary:
    buckets: list[TaxBucket]
    total_taxable: int
    total_tax: int
    total_amount: int

    def to_dict(self) -> dict:
        return {
            "buckets": [b.to_dict() for b in self.buckets],
            "total_taxable_paise": self.total_taxable,
            "total_tax_paise": self.total_tax,
            "total_amount_paise": self.total_amount,
        }


def summarize_tax_lines(lines: Iterable[tuple[str | None, TaxLineResult]]) -> TaxSummary:
    """
    Group computed lines by (HSN, rate) as printed in the invoice tax table.

    Buckets are ordered by rate, then HSN.
    """
    buckets: dict[tuple[str, int], TaxBucket] = {}
    total_taxable = 0
    total_tax = 0
    total_amount = 0

    for hsn_code, result in lines:
        key = (hsn_code or "", result.rate_bps)
        bucket = buckets.get(key)
        if bucket is None:
            bucket = TaxBucket(hsn_code=hsn_code or None, rate_bps=result.rate_bps)
            buckets[key] = bucket

        bucket.taxable_value += result.taxable_value
        bucket.cgst += result.amount_of(TAX_CGST)
        bucket.sgst += result.amount_of(TAX_SGST)
        bucket.igst += result.amount_of(TAX_IGST)

        total_taxable += result.taxable_value
        total_tax += result.total_tax
        total_amount += result.line_total

    ordered = [buckets[k] for k in sorted(buckets, key=lambda k: (k[1], k[0]))]
    return TaxSummary(
        buckets=ordered,
        total_taxable=total_taxable,
        total_tax=total_tax,
        total_amount=total_amount,
    )
