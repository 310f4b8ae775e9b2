# Overview: Pytest coverage for ledger balance primitives and admin stock operations.

from decimal import Decimal

import pytest

from stockledger.extensions import db
from stockledger.models import Product, RawMaterial, StockMovement
from stockledger.services import ledger_service, stock_service
from stockledger.services.concurrency import run_in_transaction
from stockledger.services.errors import (
    ConflictingUnique,
    InsufficientMaterial,
    InsufficientStock,
    InvalidArgument,
    NotFound,
)

from conftest import quantity_of, user_balance


class TestCentralStock:
    def test_opening_stock_is_journaled(self, db_session, steel):
        assert quantity_of(RawMaterial, steel.id) == Decimal("100")

        movements = ledger_service.list_stock_movements(raw_material_id=steel.id)
        assert len(movements) == 1
        assert movements[0].event_type == "stock.adjusted"
        assert Decimal(movements[0].quantity_after) == Decimal("100")

    def test_duplicate_raw_material_name_rejected(self, db_session, steel):
        with pytest.raises(ConflictingUnique):
            stock_service.create_raw_material("Steel", unit="kg")

    def test_debit_never_goes_negative(self, db_session, steel):
        def _op():
            stock_service.debit_raw_material(steel.id, Decimal("101"), event_type="test.debit")

        with pytest.raises(InsufficientStock) as exc:
            run_in_transaction(_op)

        assert exc.value.details == {
            "material": "Steel",
            "available": Decimal("100"),
            "requested": Decimal("101"),
        }
        assert quantity_of(RawMaterial, steel.id) == Decimal("100")

    def test_adjust_raw_material_restock_and_write_off(self, db_session, steel):
        stock_service.adjust_raw_material_stock(steel.id, Decimal("25"), note="Delivery")
        assert quantity_of(RawMaterial, steel.id) == Decimal("125")

        stock_service.adjust_raw_material_stock(steel.id, Decimal("-125"), note="Scrap")
        assert quantity_of(RawMaterial, steel.id) == Decimal("0")

        with pytest.raises(InsufficientStock):
            stock_service.adjust_raw_material_stock(steel.id, Decimal("-1"))

    def test_adjust_unknown_material(self, db_session):
        with pytest.raises(NotFound):
            stock_service.adjust_raw_material_stock(999, Decimal("5"))

    def test_negative_opening_stock_rejected(self, db_session):
        with pytest.raises(InvalidArgument):
            stock_service.create_raw_material("Tin", quantity=Decimal("-1"))


class TestProductStock:
    def test_product_adjustment_refuses_negative(self, db_session, sanch):
        stock_service.adjust_product_stock(sanch.id, Decimal("3"))
        with pytest.raises(InsufficientStock) as exc:
            stock_service.adjust_product_stock(sanch.id, Decimal("-4"))

        assert exc.value.details["product"] == "Sanch"
        assert quantity_of(Product, sanch.id) == Decimal("3")


class TestUserInventory:
    def test_credit_creates_row_lazily(self, db_session, worker, steel):
        def _op():
            stock_service.credit_user_inventory(worker.id, steel, Decimal("5"), event_type="test.credit")
            stock_service.credit_user_inventory(worker.id, steel, Decimal("7"), event_type="test.credit")

        run_in_transaction(_op)

        rows = stock_service.get_user_inventory(worker.id)
        assert len(rows) == 1
        assert Decimal(rows[0].quantity) == Decimal("12")
        assert rows[0].unit == "kg"

    def test_unit_defaults_when_material_has_none(self, db_session, worker):
        bolts = stock_service.create_raw_material("Bolts", quantity=Decimal("10"))

        run_in_transaction(lambda: stock_service.credit_user_inventory(
            worker.id, bolts, Decimal("1"), event_type="test.credit",
        ))

        assert stock_service.get_user_inventory(worker.id)[0].unit == "pcs"

    def test_debit_missing_row_reports_zero_available(self, db_session, worker, copper):
        def _op():
            stock_service.debit_user_inventory(worker.id, copper, Decimal("5"), event_type="test.debit")

        with pytest.raises(InsufficientMaterial) as exc:
            run_in_transaction(_op)

        assert exc.value.details["material"] == "Copper"
        assert exc.value.details["available"] == Decimal("0")
        assert user_balance(worker.id, copper.id) == Decimal("0")

    def test_inventory_for_unknown_user(self, db_session):
        with pytest.raises(NotFound):
            stock_service.get_user_inventory(12345)


class TestRollback:
    def test_failure_rolls_back_earlier_changes_in_same_transaction(self, db_session, steel, copper):
        def _op():
            stock_service.debit_raw_material(steel.id, Decimal("10"), event_type="test.debit")
            stock_service.debit_raw_material(copper.id, Decimal("500"), event_type="test.debit")

        with pytest.raises(InsufficientStock):
            run_in_transaction(_op)

        assert quantity_of(RawMaterial, steel.id) == Decimal("100")
        assert quantity_of(RawMaterial, copper.id) == Decimal("50")
        assert db.session.query(StockMovement).filter_by(event_type="test.debit").count() == 0


def test_duplicate_user_email(db_session, worker):
    with pytest.raises(ConflictingUnique):
        stock_service.create_user("Someone", "U1@test.local")


def test_stock_summary_after_issuance(db_session, worker, steel):
    from stockledger.services import issuance_service

    issuance_service.issue_batch(worker.id, [{"raw_material_id": steel.id, "quantity_issued": 30}])

    summary = {row["name"]: row["stock_summary"] for row in stock_service.raw_material_stock_summary()}
    assert Decimal(summary["Steel"]["available"]) == Decimal("70")
    assert Decimal(summary["Steel"]["sent_to_users"]) == Decimal("30")
    assert Decimal(summary["Steel"]["used"]) == Decimal("0")
    assert Decimal(summary["Steel"]["remaining_with_users"]) == Decimal("30")
