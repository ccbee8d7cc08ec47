# Overview: Pytest coverage for FEFO batch allocation and expiry levels.

from datetime import date, timedelta

import pytest

from pharmapos.models import Branch, InventoryBatch
from pharmapos.services.batch_allocator import (
    EXPIRY_CRITICAL,
    EXPIRY_EXPIRED,
    EXPIRY_NEAR,
    EXPIRY_SAFE,
    EXPIRY_SOON,
    allocate,
    expiry_level,
    fefo_batches,
    plan_allocation,
    quantity_available,
)
from pharmapos.services.errors import ValidationError


def _picks(plan):
    return [(p.batch_code, p.quantity) for p in plan.picks]


class TestAllocate:
    def test_soonest_expiry_first(self, ctx, paracetamol, paracetamol_batches):
        plan = allocate(paracetamol.id, ctx, 5)

        assert _picks(plan) == [("B1", 3), ("B2", 2)]
        assert plan.allocated == 5
        assert not plan.is_partial
        assert plan.shortfall == 0

    def test_single_batch_covers_demand(self, ctx, paracetamol, paracetamol_batches):
        assert _picks(allocate(paracetamol.id, ctx, 2)) == [("B1", 2)]

    def test_short_stock_is_partial(self, ctx, paracetamol, paracetamol_batches):
        plan = allocate(paracetamol.id, ctx, 20)

        assert _picks(plan) == [("B1", 3), ("B2", 10)]
        assert plan.is_partial
        assert plan.allocated == 13
        assert plan.shortfall == 7

    def test_empty_batches_excluded(self, ctx, paracetamol, make_batch):
        make_batch(paracetamol, "EMPTY", 0, date(2025, 1, 31))
        make_batch(paracetamol, "B2", 10, date(2025, 12, 31))

        assert _picks(allocate(paracetamol.id, ctx, 4)) == [("B2", 4)]

    def test_tie_break_received_on_then_batch_code(self, ctx, paracetamol, make_batch):
        expiry = date(2025, 9, 30)
        make_batch(paracetamol, "Z-LATE", 5, expiry, received_on=date(2025, 3, 1))
        make_batch(paracetamol, "B-EARLY", 1, expiry, received_on=date(2025, 2, 1))
        make_batch(paracetamol, "A-EARLY", 1, expiry, received_on=date(2025, 2, 1))

        plan = allocate(paracetamol.id, ctx, 4)

        assert _picks(plan) == [("A-EARLY", 1), ("B-EARLY", 1), ("Z-LATE", 2)]

    def test_other_branch_stock_ignored(self, ctx, db_session, tenant, paracetamol, make_batch):
        other = Branch(tenant_id=tenant.id, name="Airport Kiosk", code="AIR")
        db_session.add(other)
        db_session.commit()
        make_batch(paracetamol, "AIR-1", 50, date(2025, 2, 1), branch_id=other.id)
        make_batch(paracetamol, "MAIN-1", 2, date(2025, 12, 31))

        plan = allocate(paracetamol.id, ctx, 5)

        assert _picks(plan) == [("MAIN-1", 2)]
        assert plan.shortfall == 3
        assert quantity_available(paracetamol.id, ctx) == 2

    def test_expired_batches_skipped_when_requested(self, ctx, paracetamol, paracetamol_batches):
        plan = allocate(paracetamol.id, ctx, 5, not_expired_on=date(2025, 7, 1))
        assert _picks(plan) == [("B2", 5)]

    def test_fefo_batches_order(self, ctx, paracetamol, paracetamol_batches):
        assert [b.batch_code for b in fefo_batches(paracetamol.id, ctx)] == ["B1", "B2"]

    def test_allocation_does_not_write(self, ctx, db_session, paracetamol, paracetamol_batches):
        allocate(paracetamol.id, ctx, 5)
        db_session.expire_all()
        assert [b.quantity_on_hand for b in paracetamol_batches] == [3, 10]


class TestPlanAllocation:
    def _batch(self, batch_id, code, qty, expiry):
        return InventoryBatch(
            id=batch_id,
            batch_code=code,
            quantity_on_hand=qty,
            received_on=date(2025, 1, 1),
            expiry_date=expiry,
        )

    def test_input_order_does_not_matter(self):
        late = self._batch(2, "B2", 10, date(2025, 12, 31))
        early = self._batch(1, "B1", 3, date(2025, 6, 30))

        plan = plan_allocation(1, [late, early], 5)

        assert _picks(plan) == [("B1", 3), ("B2", 2)]

    def test_reserved_units_are_skipped(self):
        b1 = self._batch(1, "B1", 3, date(2025, 6, 30))
        b2 = self._batch(2, "B2", 10, date(2025, 12, 31))

        plan = plan_allocation(1, [b1, b2], 5, reserved={1: 3, 2: 1})

        assert _picks(plan) == [("B2", 5)]

    @pytest.mark.parametrize("quantity", [0, -3, 2.5, None, True])
    def test_bad_quantity(self, quantity):
        with pytest.raises(ValidationError):
            plan_allocation(1, [], quantity)

    def test_sum_never_exceeds_request(self):
        batches = [self._batch(i, f"B{i}", i, date(2025, 1, i)) for i in range(1, 8)]
        for quantity in range(1, 40):
            plan = plan_allocation(1, batches, quantity)
            assert plan.allocated == min(quantity, sum(range(1, 8)))
            assert all(p.quantity > 0 for p in plan.picks)


class TestExpiryLevels:
    @pytest.mark.parametrize("days,level", [
        (-1, EXPIRY_EXPIRED),
        (0, EXPIRY_CRITICAL),
        (30, EXPIRY_CRITICAL),
        (31, EXPIRY_SOON),
        (60, EXPIRY_SOON),
        (61, EXPIRY_NEAR),
        (90, EXPIRY_NEAR),
        (91, EXPIRY_SAFE),
    ])
    def test_levels(self, days, level):
        today = date(2025, 6, 1)
        assert expiry_level(today + timedelta(days=days), today) == level
