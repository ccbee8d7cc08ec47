# Overview: Service-layer operations for FEFO batch allocation; plans stock draws, never writes.

"""
Batch Allocator - First-Expiry-First-Out

ORDER: expiry_date ASC, received_on ASC, batch_code ASC, id ASC.
Soonest-expiring stock always leaves first, which minimizes write-offs.

EXCLUSION: batches with quantity_on_hand <= 0 are filtered out by the
query, not skipped while walking, so an emptied batch is never revived.

PLAN vs APPLY: allocate() only computes which batches to draw from. The
checkout orchestrator applies the plan with guarded decrements inside its
commit transaction and re-plans when a decrement loses a race.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date
from typing import Iterable

from sqlalchemy import func

from ..extensions import db
from ..models import InventoryBatch
from pharmapos.time_utils import to_iso_date
from .context import CheckoutContext
from .errors import ValidationError


@dataclass(frozen=True)
class BatchPick:
    batch_id: int
    batch_code: str
    expiry_date: date
    quantity: int

    def to_dict(self) -> dict:
        return {
            "batch_id": self.batch_id,
            "batch_code": self.batch_code,
            "expiry_date": to_iso_date(self.expiry_date),
            "quantity": self.quantity,
        }


@dataclass
class AllocationPlan:
    product_id: int
    requested: int
    picks: list[BatchPick] = field(default_factory=list)

    @property
    def allocated(self) -> int:
        return sum(p.quantity for p in self.picks)

    @property
    def shortfall(self) -> int:
        return self.requested - self.allocated

    @property
    def is_partial(self) -> bool:
        return self.allocated < self.requested

    def to_dict(self) -> dict:
        return {
            "product_id": self.product_id,
            "requested": self.requested,
            "allocated": self.allocated,
            "shortfall": self.shortfall,
            "is_partial": self.is_partial,
            "picks": [p.to_dict() for p in self.picks],
        }


def fefo_sort_key(batch: InventoryBatch):
    return (batch.expiry_date, batch.received_on, batch.batch_code, batch.id)


def plan_allocation(
    product_id: int,
    batches: Iterable[InventoryBatch],
    quantity: int,
    *,
    reserved: dict[int, int] | None = None,
) -> AllocationPlan:
    """
    Greedy FEFO walk over an inventory snapshot.

    Batches are re-sorted here so the plan does not depend on the order the
    caller fetched them in. reserved maps batch_id to units already claimed
    by earlier lines of the same cart.
    """
    if isinstance(quantity, bool) or not isinstance(quantity, int) or quantity <= 0:
        raise ValidationError("Quantity must be a positive integer", details={"quantity": quantity})

    reserved = reserved or {}
    plan = AllocationPlan(product_id=product_id, requested=quantity)
    remaining = quantity
    for batch in sorted((b for b in batches if b.quantity_on_hand > 0), key=fefo_sort_key):
        if remaining <= 0:
            break
        free = batch.quantity_on_hand - reserved.get(batch.id, 0)
        if free <= 0:
            continue
        take = min(remaining, free)
        plan.picks.append(
            BatchPick(
                batch_id=batch.id,
                batch_code=batch.batch_code,
                expiry_date=batch.expiry_date,
                quantity=take,
            )
        )
        remaining -= take
    return plan


def fefo_batches(
    product_id: int,
    ctx: CheckoutContext,
    *,
    not_expired_on: date | None = None,
) -> list[InventoryBatch]:
    """Sellable batches of a product at the context branch, in FEFO order."""
    q = db.session.query(InventoryBatch).filter(
        InventoryBatch.tenant_id == ctx.tenant_id,
        InventoryBatch.branch_id == ctx.branch_id,
        InventoryBatch.product_id == product_id,
        InventoryBatch.quantity_on_hand > 0,
    )
    if not_expired_on is not None:
        q = q.filter(InventoryBatch.expiry_date >= not_expired_on)

    return q.order_by(
        InventoryBatch.expiry_date.asc(),
        InventoryBatch.received_on.asc(),
        InventoryBatch.batch_code.asc(),
        InventoryBatch.id.asc(),
    ).all()


def allocate(
    product_id: int,
    ctx: CheckoutContext,
    quantity_needed: int,
    *,
    not_expired_on: date | None = None,
    reserved: dict[int, int] | None = None,
) -> AllocationPlan:
    """
    Plan which batches cover quantity_needed units of a product.

    sum(picks) == quantity_needed unless stock is short, in which case the
    plan is_partial and sums to exactly the available stock.
    """
    batches = fefo_batches(product_id, ctx, not_expired_on=not_expired_on)
    return plan_allocation(product_id, batches, quantity_needed, reserved=reserved)


def quantity_available(product_id: int, ctx: CheckoutContext) -> int:
    q = db.session.query(
        func.coalesce(func.sum(InventoryBatch.quantity_on_hand), 0)
    ).filter(
        InventoryBatch.tenant_id == ctx.tenant_id,
        InventoryBatch.branch_id == ctx.branch_id,
        InventoryBatch.product_id == product_id,
        InventoryBatch.quantity_on_hand > 0,
    )
    return int(q.scalar() or 0)


# =============================================================================
# Expiry warnings
# =============================================================================

EXPIRY_EXPIRED = "EXPIRED"
EXPIRY_CRITICAL = "CRITICAL"
EXPIRY_SOON = "SOON"
EXPIRY_NEAR = "NEAR"
EXPIRY_SAFE = "SAFE"


def days_to_expiry(expiry_date: date, on_date: date) -> int:
    return (expiry_date - on_date).days


def expiry_level(expiry_date: date, on_date: date, near_days: int = 90) -> str:
    """Shelf warning level: <0 EXPIRED, <=30 CRITICAL, <=60 SOON, <=near_days NEAR."""
    days = days_to_expiry(expiry_date, on_date)
    if days < 0:
        return EXPIRY_EXPIRED
    if days <= 30:
        return EXPIRY_CRITICAL
    if days <= 60:
        return EXPIRY_SOON
    if days <= near_days:
        return EXPIRY_NEAR
    return EXPIRY_SAFE
