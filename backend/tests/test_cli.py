"""
Flask CLI tests.

Verifies:
- system seed is idempotent
- system reset-db refuses without confirmation
- sequences show / sync report and repair counter drift
"""

from decimal import Decimal

import pytest

from stockledger.extensions import db
from stockledger.models import Bill, Product, ProductStructure, RawMaterial, User

from conftest import quantity_of


@pytest.fixture
def runner(app):
    return app.test_cli_runner()


class TestSeed:
    def test_seed_twice_creates_once(self, runner, db_session):
        first = runner.invoke(args=["system", "seed"])
        assert first.exit_code == 0, first.output
        assert "PASS Created product Sanch" in first.output

        second = runner.invoke(args=["system", "seed"])
        assert second.exit_code == 0, second.output
        assert "SKIP Product Sanch exists" in second.output

        assert db.session.query(User).count() == 2
        assert db.session.query(RawMaterial).count() == 2
        assert db.session.query(Product).count() == 1
        assert db.session.query(ProductStructure).count() == 2

        steel = db.session.query(RawMaterial).filter_by(name="Steel").one()
        assert quantity_of(RawMaterial, steel.id) == Decimal("100")


class TestResetDb:
    def test_declined_confirmation_keeps_data(self, runner, steel):
        result = runner.invoke(args=["system", "reset-db"], input="n\n")

        assert result.exit_code != 0
        assert "Aborted" in result.output
        assert quantity_of(RawMaterial, steel.id) == Decimal("100")


class TestSequences:
    def test_sync_repairs_out_of_band_document(self, runner, db_session):
        db.session.add(Bill(number="BILL-2024-2025-0005", financial_year="2024-2025", counterparty="Acme", amount=1))
        db.session.commit()

        result = runner.invoke(args=["sequences", "sync", "BILL", "--year", "2024-2025"])
        assert result.exit_code == 0, result.output
        assert "FIXED BILL 2024-2025: 0 -> 5" in result.output

        again = runner.invoke(args=["sequences", "sync", "BILL", "--year", "2024-2025"])
        assert "PASS BILL 2024-2025 in sync at 5" in again.output

        shown = runner.invoke(args=["sequences", "show", "BILL", "--year", "2024-2025"])
        assert shown.exit_code == 0, shown.output
        assert "BILL-2024-2025-0006" in shown.output

    def test_unknown_domain(self, runner, db_session):
        result = runner.invoke(args=["sequences", "show", "QUOTE"])

        assert result.exit_code != 0
        assert "Valid domain is required" in result.output
