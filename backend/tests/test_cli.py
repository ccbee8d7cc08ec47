# Overview: Pytest coverage for the pos CLI group.

from pharmapos.cli import DEMO_PRODUCTS
from pharmapos.models import InventoryBatch, Product, TaxIdentity
from pharmapos.services.barcodes import validate_for_scheme


def test_seed_demo_is_idempotent(app, db_session):
    runner = app.test_cli_runner()

    result = runner.invoke(args=["pos", "seed-demo", "--tenant-code", "CLI"])
    assert "PASS Seeded" in result.output
    assert db_session.query(Product).count() == len(DEMO_PRODUCTS)
    assert db_session.query(InventoryBatch).count() == 5

    result = runner.invoke(args=["pos", "seed-demo", "--tenant-code", "CLI"])
    assert "SKIP" in result.output
    assert db_session.query(Product).count() == len(DEMO_PRODUCTS)


def test_seed_demo_rejects_unknown_state(app, db_session):
    result = app.test_cli_runner().invoke(args=["pos", "seed-demo", "--state-code", "00"])
    assert "FAIL" in result.output
    assert db_session.query(TaxIdentity).count() == 0


def test_demo_barcodes_carry_valid_check_digits():
    for product in DEMO_PRODUCTS:
        ean = product[6]
        assert validate_for_scheme(ean, "EAN13") == ean


def test_issue_number_and_list(app, db_session):
    runner = app.test_cli_runner()
    runner.invoke(args=["pos", "seed-demo", "--tenant-code", "CLI", "--state-code", "29", "--prefix", "KA"])
    registration = db_session.query(TaxIdentity).one()

    result = runner.invoke(args=[
        "pos", "issue-number", "--registration-id", str(registration.id), "--on-date", "2025-04-01",
    ])
    assert "PASS Issued KA/25-26/0001" in result.output

    result = runner.invoke(args=["pos", "registrations"])
    assert "29ABCDE1234F1Z5" in result.output


def test_issue_number_bad_input(app, db_session):
    runner = app.test_cli_runner()

    result = runner.invoke(args=["pos", "issue-number", "--registration-id", "1", "--on-date", "01/04/2025"])
    assert "FAIL Invalid date" in result.output

    result = runner.invoke(args=["pos", "issue-number", "--registration-id", "999"])
    assert "FAIL Tax registration not found" in result.output


def test_seed_demo_rejects_unprintable_prefix(app, db_session):
    result = app.test_cli_runner().invoke(args=["pos", "seed-demo", "--prefix", "ph-1"])
    assert "FAIL Invalid invoice prefix" in result.output
    assert db_session.query(TaxIdentity).count() == 0
