# Overview: Pytest coverage for the checkout orchestrator.

"""
Checkout Orchestrator Tests

End-to-end carts through resolve -> allocate -> tax -> number -> commit,
plus the guarantee that a failed checkout leaves no trace: stock, the
invoice counter and the invoices table are exactly as before.
"""

from datetime import date
import logging

import pytest

from pharmapos.models import Invoice, TAX_INCLUSIVE, TaxIdentity
from pharmapos.services import checkout_service
from pharmapos.services.checkout_service import (
    CheckoutState,
    checkout,
    get_invoice,
    parse_checkout_request,
    preview_checkout,
)
from pharmapos.services.concurrency import StockConflict
from pharmapos.services.context import CheckoutContext
from pharmapos.services.errors import (
    ConcurrencyConflictError,
    InsufficientStockError,
    NotFoundError,
    SequencingError,
    ValidationError,
)


MAY_2025 = date(2025, 5, 1)
PARACETAMOL_EAN = "4006381333931"


def _cart(registration, *lines, **extra):
    payload = {
        "issuing_registration_id": registration.id,
        "lines": [{"scanned_code": code, "quantity": qty} for code, qty in lines],
    }
    payload.update(extra)
    return parse_checkout_request(payload)


def _assert_untouched(db_session, batches, quantities, registration):
    db_session.expire_all()
    assert [b.quantity_on_hand for b in batches] == quantities
    reg = db_session.get(TaxIdentity, registration.id)
    assert reg.next_invoice_no == 1
    assert reg.fiscal_year is None
    assert db_session.query(Invoice).count() == 0


class TestCommittedCheckout:
    def test_exclusive_twelve_percent(self, ctx, db_session, registration, paracetamol, paracetamol_batches):
        """10 x Rs 20.00 + 12% GST = Rs 224.00 on PP/25-26/0001."""
        result = checkout(_cart(registration, (PARACETAMOL_EAN, 10)), ctx, on_date=MAY_2025)

        assert result.state == CheckoutState.COMMITTED
        assert result.invoice_number == "PP/25-26/0001"
        assert result.tax_summary.total_taxable == 20000
        assert result.tax_summary.total_tax == 2400
        assert result.round_off.adjustment == 0
        assert result.grand_total == 22400

        db_session.expire_all()
        b1, b2 = paracetamol_batches
        assert (b1.quantity_on_hand, b2.quantity_on_hand) == (0, 3)

        invoice = db_session.query(Invoice).filter_by(invoice_number="PP/25-26/0001").one()
        assert invoice.grand_total_paise == 22400
        assert invoice.supply_type == "INTRA_STATE"
        assert invoice.invoice_type == "B2C"
        assert invoice.created_by_user_id == 7
        line = invoice.lines[0]
        assert (line.cgst_paise, line.sgst_paise, line.igst_paise) == (1200, 1200, 0)
        assert [(a.batch_code, a.quantity) for a in line.allocations] == [("B1", 3), ("B2", 7)]
        assert sorted((t.tax_type, t.tax_paise) for t in invoice.tax_lines) == [("CGST", 1200), ("SGST", 1200)]

    def test_inclusive_price(self, ctx, db_session, registration, make_product, make_batch):
        amoxicillin = make_product(
            "Amoxicillin 250mg",
            hsn_code="30041010",
            tax_inclusion=TAX_INCLUSIVE,
            sale_price_paise=20000,
            barcode="5901234123457",
        )
        make_batch(amoxicillin, "AMX-1", 5, date(2026, 1, 31))

        result = checkout(_cart(registration, ("5901234123457", 1)), ctx, on_date=MAY_2025)

        line = result.lines[0]
        assert line.tax.taxable_value == 17857
        assert line.tax.total_tax == 2143
        assert line.tax.line_total == 20000
        assert result.grand_total == 20000

    def test_fefo_picks_recorded(self, ctx, db_session, registration, paracetamol, paracetamol_batches):
        result = checkout(_cart(registration, (PARACETAMOL_EAN, 5)), ctx, on_date=MAY_2025)

        assert [(p.batch_code, p.quantity) for p in result.lines[0].plan.picks] == [("B1", 3), ("B2", 2)]

    def test_state_history(self, ctx, registration, paracetamol, paracetamol_batches):
        result = checkout(_cart(registration, (PARACETAMOL_EAN, 1)), ctx, on_date=MAY_2025)

        assert result.history == [
            CheckoutState.DRAFT,
            CheckoutState.RESOLVING,
            CheckoutState.ALLOCATING,
            CheckoutState.TAXING,
            CheckoutState.SEQUENCING,
            CheckoutState.COMMITTED,
        ]

    def test_consecutive_invoice_numbers(self, ctx, registration, paracetamol, paracetamol_batches):
        first = checkout(_cart(registration, (PARACETAMOL_EAN, 1)), ctx, on_date=MAY_2025)
        second = checkout(_cart(registration, (PARACETAMOL_EAN, 1)), ctx, on_date=MAY_2025)

        assert first.invoice_number == "PP/25-26/0001"
        assert second.invoice_number == "PP/25-26/0002"

    def test_inter_state_buyer_gets_igst(self, ctx, registration, paracetamol, paracetamol_batches):
        result = checkout(
            _cart(registration, (PARACETAMOL_EAN, 10), buyer_state_code="29"),
            ctx,
            on_date=MAY_2025,
        )

        assert result.supply_type == "INTER_STATE"
        assert [(b.igst, b.cgst) for b in result.tax_summary.buckets] == [(2400, 0)]

    def test_b2b_buyer_state_from_gstin(self, ctx, db_session, registration, paracetamol, paracetamol_batches):
        result = checkout(
            _cart(registration, (PARACETAMOL_EAN, 1), buyer_gstin="29ABCDE1234F1Z5"),
            ctx,
            on_date=MAY_2025,
        )

        assert result.buyer_state_code == "29"
        assert result.invoice.invoice_type == "B2B"
        assert result.invoice.buyer_gstin == "29ABCDE1234F1Z5"

    def test_round_off_line(self, ctx, registration, make_product, make_batch):
        """Rs 19.99 + 12% = 2239 paise, printed as Rs 22.00 with -0.39 round-off."""
        product = make_product("Antacid Gel", sale_price_paise=1999, barcode="96385074", barcode_scheme="EAN8")
        make_batch(product, "AG-1", 5, date(2026, 1, 31))

        result = checkout(_cart(registration, ("96385074", 1)), ctx, on_date=MAY_2025)

        assert result.tax_summary.total_amount == 2239
        assert result.round_off.adjustment == -39
        assert result.grand_total == 2200
        assert result.invoice.round_off_paise == -39

    def test_same_product_on_two_lines_shares_stock(self, ctx, registration, paracetamol, paracetamol_batches):
        result = checkout(
            _cart(registration, (PARACETAMOL_EAN, 2), ("INMED-000001", 2)),
            ctx,
            on_date=MAY_2025,
        )

        first, second = result.lines
        assert [(p.batch_code, p.quantity) for p in first.plan.picks] == [("B1", 2)]
        assert [(p.batch_code, p.quantity) for p in second.plan.picks] == [("B1", 1), ("B2", 1)]

    def test_unit_price_override_and_discount(self, ctx, registration, paracetamol, paracetamol_batches):
        payload = {
            "issuing_registration_id": registration.id,
            "lines": [{"scanned_code": PARACETAMOL_EAN, "quantity": 2, "unit_price_override": 1500, "discount": 500}],
        }
        result = checkout(parse_checkout_request(payload), ctx, on_date=MAY_2025)

        line = result.lines[0]
        assert line.unit_price == 1500
        assert line.tax.taxable_value == 2500
        assert line.tax.total_tax == 300


class TestFailedCheckoutLeavesNoTrace:
    def test_unresolved_line(self, ctx, db_session, registration, paracetamol, paracetamol_batches):
        with pytest.raises(NotFoundError) as exc:
            checkout(
                _cart(registration, (PARACETAMOL_EAN, 1), ("UNKNOWN-CODE", 1)),
                ctx,
                on_date=MAY_2025,
            )

        assert exc.value.details["lines"][0]["line_no"] == 2
        _assert_untouched(db_session, paracetamol_batches, [3, 10], registration)

    def test_insufficient_stock(self, ctx, db_session, registration, paracetamol, paracetamol_batches):
        with pytest.raises(InsufficientStockError) as exc:
            checkout(_cart(registration, (PARACETAMOL_EAN, 20)), ctx, on_date=MAY_2025)

        item = exc.value.details["items"][0]
        assert (item["requested"], item["available"], item["shortfall"]) == (20, 13, 7)
        assert exc.value.http_status == 409
        _assert_untouched(db_session, paracetamol_batches, [3, 10], registration)

    def test_failure_after_stock_was_drawn_rolls_back(
        self, ctx, db_session, registration, paracetamol, paracetamol_batches, make_product, make_batch
    ):
        """A price error surfaces after decrements ran; all of it is undone."""
        unpriced = make_product("Unpriced Sample", sale_price_paise=None, barcode="036000291452", barcode_scheme="UPCA")
        sample_batch = make_batch(unpriced, "S-1", 4, date(2026, 1, 31))

        with pytest.raises(ValidationError, match="no sale price"):
            checkout(
                _cart(registration, (PARACETAMOL_EAN, 5), ("036000291452", 1)),
                ctx,
                on_date=MAY_2025,
            )

        _assert_untouched(db_session, [*paracetamol_batches, sample_batch], [3, 10, 4], registration)

    def test_backdated_checkout_after_year_rollover(self, ctx, db_session, registration, paracetamol, paracetamol_batches):
        first = checkout(_cart(registration, (PARACETAMOL_EAN, 1)), ctx, on_date=date(2026, 4, 2))
        assert first.invoice_number == "PP/26-27/0001"

        with pytest.raises(SequencingError):
            checkout(_cart(registration, (PARACETAMOL_EAN, 1)), ctx, on_date=date(2026, 3, 30))

        db_session.expire_all()
        assert [b.quantity_on_hand for b in paracetamol_batches] == [2, 10]
        assert db_session.query(Invoice).count() == 1
        assert db_session.get(TaxIdentity, registration.id).next_invoice_no == 2

    def test_foreign_registration(self, ctx, db_session, other_tenant, paracetamol, paracetamol_batches):
        foreign = TaxIdentity(
            tenant_id=other_tenant.id,
            gstin="07ABCDE1234F1Z5",
            legal_name="Other",
            state_code="07",
        )
        db_session.add(foreign)
        db_session.commit()

        with pytest.raises(NotFoundError):
            checkout(_cart(foreign, (PARACETAMOL_EAN, 1)), ctx, on_date=MAY_2025)

    def test_failed_run_ends_in_failed_state(self, app, ctx, registration, paracetamol, paracetamol_batches, caplog):
        with caplog.at_level(logging.INFO, logger=app.logger.name):
            with pytest.raises(InsufficientStockError):
                checkout(_cart(registration, (PARACETAMOL_EAN, 99)), ctx, on_date=MAY_2025)
        assert "failed in ALLOCATING" in caplog.text


class TestInvoiceLookup:
    def test_each_registration_numbers_under_its_own_prefix(
        self, ctx, db_session, tenant, registration, paracetamol, paracetamol_batches
    ):
        second = TaxIdentity(
            tenant_id=tenant.id,
            gstin="27ABCDE1234F2Z5",
            legal_name="City Pharmacy Wholesale",
            state_code="27",
            invoice_prefix="PW",
        )
        db_session.add(second)
        db_session.commit()

        checkout(_cart(registration, (PARACETAMOL_EAN, 1)), ctx, on_date=MAY_2025)
        checkout(_cart(second, (PARACETAMOL_EAN, 1)), ctx, on_date=MAY_2025)

        assert get_invoice("PP/25-26/0001", ctx).tax_identity_id == registration.id
        assert get_invoice("PW/25-26/0001", ctx).tax_identity_id == second.id

    def test_other_tenant_cannot_fetch(self, db_session, other_tenant, branch, ctx, registration, paracetamol, paracetamol_batches):
        checkout(_cart(registration, (PARACETAMOL_EAN, 1)), ctx, on_date=MAY_2025)

        foreign_ctx = CheckoutContext(tenant_id=other_tenant.id, branch_id=branch.id)
        with pytest.raises(NotFoundError):
            get_invoice("PP/25-26/0001", foreign_ctx)


class TestStockPolicies:
    def test_negative_stock_override(self, ctx, db_session, registration, paracetamol, paracetamol_batches):
        result = checkout(
            _cart(registration, (PARACETAMOL_EAN, 20)),
            ctx,
            on_date=MAY_2025,
            allow_negative_stock=True,
        )

        line = result.lines[0]
        assert line.unallocated_quantity == 7
        assert line.tax.line_total == 44800

        db_session.expire_all()
        assert [b.quantity_on_hand for b in paracetamol_batches] == [0, 0]
        assert result.invoice.lines[0].unallocated_quantity == 7

    def test_negative_stock_from_config(self, app, ctx, registration, paracetamol, paracetamol_batches, monkeypatch):
        monkeypatch.setitem(app.config, "POS_ALLOW_NEGATIVE_STOCK", True)

        result = checkout(_cart(registration, (PARACETAMOL_EAN, 15)), ctx, on_date=MAY_2025)

        assert result.lines[0].unallocated_quantity == 2

    def test_block_expired_batches(self, ctx, registration, paracetamol, paracetamol_batches):
        result = checkout(
            _cart(registration, (PARACETAMOL_EAN, 2)),
            ctx,
            on_date=date(2025, 7, 1),
            block_expired=True,
        )

        assert [(p.batch_code, p.quantity) for p in result.lines[0].plan.picks] == [("B2", 2)]


class TestRetry:
    def test_lost_stock_race_is_replanned(self, ctx, registration, paracetamol, paracetamol_batches, monkeypatch):
        original = checkout_service._apply_allocations
        calls = []

        def flaky(lines):
            calls.append(1)
            if len(calls) == 1:
                raise StockConflict(lines[0].plan.picks[0].batch_id, 1)
            original(lines)

        monkeypatch.setattr(checkout_service, "_apply_allocations", flaky)

        result = checkout(_cart(registration, (PARACETAMOL_EAN, 5)), ctx, on_date=MAY_2025)

        assert len(calls) == 2
        assert result.invoice_number == "PP/25-26/0001"
        assert result.history.count(CheckoutState.ALLOCATING) == 2

    def test_exhausted_retries(self, ctx, db_session, registration, paracetamol, paracetamol_batches, monkeypatch):
        def always_conflict(lines):
            raise StockConflict(lines[0].plan.picks[0].batch_id, 1)

        monkeypatch.setattr(checkout_service, "_apply_allocations", always_conflict)

        with pytest.raises(ConcurrencyConflictError) as exc:
            checkout(_cart(registration, (PARACETAMOL_EAN, 5)), ctx, on_date=MAY_2025, max_attempts=2)

        assert exc.value.retryable
        assert exc.value.details["attempts"] == 2
        _assert_untouched(db_session, paracetamol_batches, [3, 10], registration)


class TestPreview:
    def test_preview_has_no_side_effects(self, ctx, db_session, registration, paracetamol, paracetamol_batches):
        result = preview_checkout(_cart(registration, (PARACETAMOL_EAN, 10)), ctx)

        assert result.invoice_number is None
        assert result.state == CheckoutState.TAXING
        assert result.grand_total == 22400
        _assert_untouched(db_session, paracetamol_batches, [3, 10], registration)

    def test_preview_reports_short_stock(self, ctx, registration, paracetamol, paracetamol_batches):
        with pytest.raises(InsufficientStockError):
            preview_checkout(_cart(registration, (PARACETAMOL_EAN, 14)), ctx)


class TestParseRequest:
    @pytest.mark.parametrize("payload", [
        None,
        [],
        {"lines": [{"scanned_code": "X", "quantity": 1}]},
        {"issuing_registration_id": 1, "lines": []},
        {"issuing_registration_id": 1, "lines": [{"scanned_code": "X", "quantity": 0}]},
        {"issuing_registration_id": 1, "lines": [{"scanned_code": "", "quantity": 1}]},
        {"issuing_registration_id": 1, "lines": [{"scanned_code": "X", "quantity": 1, "discount": -1}]},
        {"issuing_registration_id": "1", "lines": [{"scanned_code": "X", "quantity": 1}]},
        {"issuing_registration_id": 1, "lines": [{"scanned_code": "X", "quantity": 1}], "buyer_state_code": "00"},
        {"issuing_registration_id": 1, "lines": [{"scanned_code": "X", "quantity": 1}], "buyer_gstin": "BAD"},
    ])
    def test_rejects_malformed(self, payload):
        with pytest.raises(ValidationError):
            parse_checkout_request(payload)

    def test_gstin_and_state_must_agree(self):
        with pytest.raises(ValidationError, match="does not match"):
            parse_checkout_request({
                "issuing_registration_id": 1,
                "lines": [{"scanned_code": "X", "quantity": 1}],
                "buyer_state_code": "27",
                "buyer_gstin": "29ABCDE1234F1Z5",
            })

    def test_line_numbers_assigned(self):
        request = parse_checkout_request({
            "issuing_registration_id": 1,
            "lines": [{"scanned_code": " A ", "quantity": 1}, {"scanned_code": "B", "quantity": 2}],
        })
        assert [(l.line_no, l.scanned_code) for l in request.lines] == [(1, "A"), (2, "B")]
        assert request.buyer_state_code is None

    def test_context_not_taken_from_body(self):
        request = parse_checkout_request({
            "issuing_registration_id": 1,
            "tenant_id": 999,
            "branch_id": 999,
            "lines": [{"scanned_code": "X", "quantity": 1}],
        })
        assert not hasattr(request, "tenant_id")
        assert not hasattr(request, "branch_id")
