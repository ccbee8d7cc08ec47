# Overview: Service-layer operations for invoice numbering; atomic per-registration counters.

"""
Invoice Sequencer - PREFIX/YY-YY/NNNN

GAP-FREE: the counter lives on the TaxIdentity row and is advanced by ONE
UPDATE statement. The row lock that UPDATE takes serializes concurrent
checkouts; whoever commits second sees the first one's value. Because the
step runs inside the caller's transaction, a rollback returns the number.

FISCAL YEAR: Indian fiscal year, 1 April to 31 March, labelled "25-26".
The row stores the label of the year its counter belongs to. The first
number of a new fiscal year restarts at 1 within the same UPDATE:

    next_invoice_no = CASE WHEN fiscal_year = :fy OR fiscal_year IS NULL
                           THEN next_invoice_no + 1 ELSE 2 END
    fiscal_year     = :fy

SQL evaluates every SET expression against the pre-update row, so the
CASE sees the old fiscal_year. A registration that has never issued
(fiscal_year NULL) starts from its configured next_invoice_no, so a store
can carry its numbering over from another system.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from datetime import date

from sqlalchemy import case, or_, update

from ..extensions import db
from ..models import INVOICE_PREFIX_PATTERN, TaxIdentity
from pharmapos.time_utils import today
from .concurrency import begin_write_transaction, lock_for_update, run_with_retry
from .errors import NotFoundError, SequencingError, ValidationError


FISCAL_YEAR_START_MONTH = 4
MIN_SEQUENCE_WIDTH = 4

_INVOICE_NUMBER_RE = re.compile(rf"^({INVOICE_PREFIX_PATTERN})/(\d{{2}}-\d{{2}})/(\d+)$")


@dataclass(frozen=True)
class InvoiceNumber:
    prefix: str
    fiscal_year: str
    sequence: int

    def __str__(self) -> str:
        return format_invoice_number(self.prefix, self.fiscal_year, self.sequence)

    def to_dict(self) -> dict:
        return {
            "invoice_number": str(self),
            "prefix": self.prefix,
            "fiscal_year": self.fiscal_year,
            "sequence": self.sequence,
        }


def fiscal_year_start(on_date: date) -> int:
    if on_date.month >= FISCAL_YEAR_START_MONTH:
        return on_date.year
    return on_date.year - 1


def fiscal_year_label(on_date: date | None = None) -> str:
    """'25-26' for any date from 2025-04-01 to 2026-03-31."""
    start = fiscal_year_start(on_date or today())
    return f"{start % 100:02d}-{(start + 1) % 100:02d}"


def fiscal_year_bounds(on_date: date | None = None) -> tuple[date, date]:
    start = fiscal_year_start(on_date or today())
    return date(start, 4, 1), date(start + 1, 3, 31)


def format_invoice_number(prefix: str, fiscal_year: str, sequence: int) -> str:
    # zero-padded to at least four digits; wider numbers are never truncated
    return f"{prefix}/{fiscal_year}/{sequence:0{MIN_SEQUENCE_WIDTH}d}"


def parse_invoice_number(value: str) -> InvoiceNumber:
    match = _INVOICE_NUMBER_RE.match((value or "").strip())
    if not match:
        raise ValidationError(
            f"Invalid invoice number '{value}'",
            details={"expected": "PREFIX/YY-YY/NNNN"},
        )
    prefix, fiscal_year, sequence = match.groups()
    return InvoiceNumber(prefix=prefix, fiscal_year=fiscal_year, sequence=int(sequence))


def _active_registration(registration_id: int) -> TaxIdentity:
    registration = lock_for_update(
        db.session.query(TaxIdentity).filter_by(id=registration_id)
    ).populate_existing().first()
    if registration is None:
        raise NotFoundError(
            "Tax registration not found", details={"registration_id": registration_id}
        )
    if not registration.is_active:
        raise ValidationError(
            "Tax registration is inactive", details={"registration_id": registration_id}
        )
    return registration


def fiscal_year_start_of(label: str) -> int:
    """Start year of a '25-26' style label (2025)."""
    return 2000 + int(label[:2])


def next_invoice_number(registration_id: int, *, on_date: date | None = None) -> InvoiceNumber:
    """
    Reserve the next number of a registration inside the current transaction.

    Does NOT commit. The caller commits together with the invoice row, or
    rolls back and the number is never consumed.

    FORWARD ONLY: once a registration has issued in a fiscal year, a
    number for an earlier year is refused. Rolling back would restart the
    counter and re-issue numbers of the later year.
    """
    fiscal_year = fiscal_year_label(on_date)
    registration = _active_registration(registration_id)
    if registration.fiscal_year is not None and (
        fiscal_year_start_of(fiscal_year) < fiscal_year_start_of(registration.fiscal_year)
    ):
        raise SequencingError(
            f"Cannot issue a {fiscal_year} invoice: registration already numbers {registration.fiscal_year}",
            details={
                "registration_id": registration_id,
                "requested_fiscal_year": fiscal_year,
                "current_fiscal_year": registration.fiscal_year,
            },
        )

    stmt = (
        update(TaxIdentity)
        .where(
            TaxIdentity.id == registration_id,
            or_(TaxIdentity.fiscal_year.is_(None), TaxIdentity.fiscal_year <= fiscal_year),
        )
        .values(
            next_invoice_no=case(
                (
                    or_(TaxIdentity.fiscal_year == fiscal_year, TaxIdentity.fiscal_year.is_(None)),
                    TaxIdentity.next_invoice_no + 1,
                ),
                else_=2,
            ),
            fiscal_year=fiscal_year,
        )
        .execution_options(synchronize_session=False)
    )
    result = db.session.execute(stmt)
    if result.rowcount != 1:
        raise SequencingError(
            "Invoice counter could not be advanced",
            details={"registration_id": registration_id, "rowcount": result.rowcount},
        )

    row = (
        db.session.query(TaxIdentity.invoice_prefix, TaxIdentity.next_invoice_no)
        .filter(TaxIdentity.id == registration_id)
        .one()
    )
    return InvoiceNumber(
        prefix=row.invoice_prefix,
        fiscal_year=fiscal_year,
        sequence=row.next_invoice_no - 1,
    )


def issue_invoice_number(
    registration_id: int,
    *,
    on_date: date | None = None,
    attempts: int = 3,
    backoff_base: float = 0.1,
) -> InvoiceNumber:
    """Standalone variant: reserve and commit a number in its own transaction."""
    def _op() -> InvoiceNumber:
        begin_write_transaction()
        number = next_invoice_number(registration_id, on_date=on_date)
        db.session.commit()
        return number

    return run_with_retry(_op, attempts=attempts, backoff_base=backoff_base)


def peek_invoice_number(registration_id: int, *, on_date: date | None = None) -> InvoiceNumber:
    """The number the next checkout would receive. Read-only, not a reservation."""
    registration = db.session.get(TaxIdentity, registration_id)
    if registration is None:
        raise NotFoundError(
            "Tax registration not found", details={"registration_id": registration_id}
        )
    fiscal_year = fiscal_year_label(on_date)
    if registration.fiscal_year in (fiscal_year, None):
        sequence = registration.next_invoice_no
    else:
        sequence = 1
    return InvoiceNumber(
        prefix=registration.invoice_prefix, fiscal_year=fiscal_year, sequence=sequence
    )
