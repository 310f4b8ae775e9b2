# Overview: Pytest coverage for invoice-driven finished goods reservation.

from decimal import Decimal

import pytest

from stockledger.extensions import db
from stockledger.models import Invoice, InvoiceItem, Product, StockMovement
from stockledger.services import invoice_service, stock_service
from stockledger.services.errors import ConflictingUnique, InsufficientStock, InvalidArgument, NotFound
from stockledger.time_utils import financial_year_for

from conftest import quantity_of


@pytest.fixture
def stocked(db_session):
    """Two products with finished stock: Sanch 10, Bolt 4."""
    sanch = stock_service.create_product("Sanch", price=Decimal("250.00"), quantity=Decimal("10"))
    bolt = stock_service.create_product("Bolt", price=Decimal("2.50"), quantity=Decimal("4"))
    return sanch, bolt


class TestCreate:
    @pytest.mark.parametrize("status", ["DRAFT", "FINAL", "PAID", "UNPAID", "ADVANCE"])
    def test_reserves_once_for_any_live_status(self, stocked, status):
        sanch, bolt = stocked

        invoice = invoice_service.create_invoice(
            [{"product_id": sanch.id, "quantity": 3}, {"product_id": bolt.id, "quantity": 4}],
            status=status,
        )

        assert invoice.stock_reserved is True
        assert quantity_of(Product, sanch.id) == Decimal("7")
        assert quantity_of(Product, bolt.id) == Decimal("0")

    def test_cancelled_invoice_reserves_nothing(self, stocked):
        sanch, _ = stocked

        invoice = invoice_service.create_invoice([{"product_id": sanch.id, "quantity": 3}], status="CANCELLED")

        assert invoice.stock_reserved is False
        assert quantity_of(Product, sanch.id) == Decimal("10")

    def test_insufficient_item_aborts_whole_invoice(self, stocked):
        sanch, bolt = stocked

        with pytest.raises(InsufficientStock) as exc:
            invoice_service.create_invoice([
                {"product_id": sanch.id, "quantity": 2},
                {"product_id": bolt.id, "quantity": 5},
            ])

        assert exc.value.details == {"product": "Bolt", "available": Decimal("4"), "requested": Decimal("5")}
        assert quantity_of(Product, sanch.id) == Decimal("10")
        assert db.session.query(Invoice).count() == 0
        assert db.session.query(InvoiceItem).count() == 0

    def test_number_allocated_from_invoice_sequence(self, stocked):
        sanch, _ = stocked
        year = financial_year_for()

        first = invoice_service.create_invoice([{"product_id": sanch.id, "quantity": 1}])
        second = invoice_service.create_invoice([{"product_id": sanch.id, "quantity": 1}])

        assert first.invoice_number == f"INV-{year}-0001"
        assert second.invoice_number == f"INV-{year}-0002"

    def test_failed_invoice_does_not_consume_a_number(self, stocked):
        sanch, bolt = stocked
        year = financial_year_for()

        with pytest.raises(InsufficientStock):
            invoice_service.create_invoice([{"product_id": bolt.id, "quantity": 50}])
        invoice = invoice_service.create_invoice([{"product_id": sanch.id, "quantity": 1}])

        assert invoice.invoice_number == f"INV-{year}-0001"

    def test_duplicate_explicit_number(self, stocked):
        sanch, _ = stocked
        invoice_service.create_invoice([{"product_id": sanch.id, "quantity": 1}], invoice_number="INV-MANUAL-1")

        with pytest.raises(ConflictingUnique):
            invoice_service.create_invoice([{"product_id": sanch.id, "quantity": 1}], invoice_number="INV-MANUAL-1")

        assert quantity_of(Product, sanch.id) == Decimal("9")

    def test_totals_default_from_lines(self, stocked):
        sanch, bolt = stocked

        invoice = invoice_service.create_invoice(
            [{"product_id": sanch.id, "quantity": 2}, {"product_id": bolt.id, "quantity": 2, "price": "3.00"}],
            advance_paid=100,
        )

        assert Decimal(invoice.total) == Decimal("506.00")
        assert Decimal(invoice.balance_due) == Decimal("406.00")
        assert [item.name for item in invoice.items] == ["Sanch", "Bolt"]

    def test_unknown_status(self, stocked):
        sanch, _ = stocked
        with pytest.raises(InvalidArgument):
            invoice_service.create_invoice([{"product_id": sanch.id, "quantity": 1}], status="SHIPPED")


class TestStatusChange:
    def test_cancel_releases_and_reopen_reserves(self, stocked):
        sanch, _ = stocked
        invoice = invoice_service.create_invoice([{"product_id": sanch.id, "quantity": 3}], status="FINAL")

        invoice_service.update_invoice_status(invoice.id, "CANCELLED")
        assert quantity_of(Product, sanch.id) == Decimal("10")

        # Cancelling twice does not release twice
        invoice_service.update_invoice_status(invoice.id, "CANCELLED")
        assert quantity_of(Product, sanch.id) == Decimal("10")

        reopened = invoice_service.update_invoice_status(invoice.id, "DRAFT")
        assert reopened.stock_reserved is True
        assert quantity_of(Product, sanch.id) == Decimal("7")

    @pytest.mark.parametrize("path", [
        ("DRAFT", "FINAL"),
        ("FINAL", "DRAFT"),
        ("DRAFT", "UNPAID"),
        ("ADVANCE", "PAID"),
    ])
    def test_non_cancel_transitions_move_no_stock(self, stocked, path):
        sanch, _ = stocked
        start, end = path
        invoice = invoice_service.create_invoice([{"product_id": sanch.id, "quantity": 3}], status=start)

        invoice_service.update_invoice_status(invoice.id, end)

        assert quantity_of(Product, sanch.id) == Decimal("7")

    def test_reopen_fails_when_stock_was_sold_elsewhere(self, stocked):
        sanch, _ = stocked
        invoice = invoice_service.create_invoice([{"product_id": sanch.id, "quantity": 6}])
        invoice_service.update_invoice_status(invoice.id, "CANCELLED")
        invoice_service.create_invoice([{"product_id": sanch.id, "quantity": 8}])

        with pytest.raises(InsufficientStock):
            invoice_service.update_invoice_status(invoice.id, "FINAL")

        db.session.expire_all()
        assert db.session.get(Invoice, invoice.id).status == "CANCELLED"
        assert quantity_of(Product, sanch.id) == Decimal("2")

    def test_paid_clears_balance_due(self, stocked):
        sanch, _ = stocked
        invoice = invoice_service.create_invoice([{"product_id": sanch.id, "quantity": 1}], status="UNPAID")
        assert Decimal(invoice.balance_due) == Decimal("250.00")

        paid = invoice_service.update_invoice_status(invoice.id, "PAID", balance_due=99)
        assert Decimal(paid.balance_due) == Decimal("0")

    def test_unknown_invoice(self, db_session):
        with pytest.raises(NotFound):
            invoice_service.update_invoice_status(404, "FINAL")


class TestReplaceItems:
    def test_swaps_reservation(self, stocked):
        sanch, bolt = stocked
        invoice = invoice_service.create_invoice([{"product_id": sanch.id, "quantity": 3}])

        updated = invoice_service.replace_invoice_items(invoice.id, [{"product_id": bolt.id, "quantity": 2}])

        assert [item.product_id for item in updated.items] == [bolt.id]
        assert quantity_of(Product, sanch.id) == Decimal("10")
        assert quantity_of(Product, bolt.id) == Decimal("2")

    def test_shortfall_keeps_old_lines(self, stocked):
        sanch, bolt = stocked
        invoice = invoice_service.create_invoice([{"product_id": sanch.id, "quantity": 3}])

        with pytest.raises(InsufficientStock):
            invoice_service.replace_invoice_items(invoice.id, [{"product_id": bolt.id, "quantity": 9}])

        db.session.expire_all()
        assert [item.product_id for item in db.session.get(Invoice, invoice.id).items] == [sanch.id]
        assert quantity_of(Product, sanch.id) == Decimal("7")
        assert quantity_of(Product, bolt.id) == Decimal("4")

    def test_cancelled_invoice_lines_change_without_stock(self, stocked):
        sanch, bolt = stocked
        invoice = invoice_service.create_invoice([{"product_id": sanch.id, "quantity": 3}], status="CANCELLED")

        invoice_service.replace_invoice_items(invoice.id, [{"product_id": bolt.id, "quantity": 2}])

        assert quantity_of(Product, bolt.id) == Decimal("4")


class TestUpdateInvoice:
    def test_items_and_status_together(self, stocked):
        sanch, bolt = stocked
        invoice = invoice_service.create_invoice([{"product_id": sanch.id, "quantity": 3}], status="CANCELLED")

        updated = invoice_service.update_invoice(
            invoice.id, items=[{"product_id": bolt.id, "quantity": 2}], status="FINAL"
        )

        assert updated.status == "FINAL"
        assert updated.stock_reserved is True
        assert [item.product_id for item in updated.items] == [bolt.id]
        assert quantity_of(Product, sanch.id) == Decimal("10")
        assert quantity_of(Product, bolt.id) == Decimal("2")

    def test_status_shortfall_rolls_back_item_swap(self, stocked):
        """Lines swap on a cancelled invoice, then reactivation runs short: nothing sticks."""
        sanch, bolt = stocked
        invoice = invoice_service.create_invoice([{"product_id": sanch.id, "quantity": 3}], status="CANCELLED")

        with pytest.raises(InsufficientStock):
            invoice_service.update_invoice(
                invoice.id, items=[{"product_id": bolt.id, "quantity": 9}], status="FINAL"
            )

        db.session.expire_all()
        stored = db.session.get(Invoice, invoice.id)
        assert stored.status == "CANCELLED"
        assert stored.stock_reserved is False
        assert [item.product_id for item in stored.items] == [sanch.id]
        assert quantity_of(Product, sanch.id) == Decimal("10")
        assert quantity_of(Product, bolt.id) == Decimal("4")

    def test_requires_items_or_status(self, stocked):
        sanch, _ = stocked
        invoice = invoice_service.create_invoice([{"product_id": sanch.id, "quantity": 1}])

        with pytest.raises(InvalidArgument):
            invoice_service.update_invoice(invoice.id)


class TestDelete:
    @pytest.mark.parametrize("status", ["DRAFT", "FINAL", "PAID"])
    def test_delete_restores_reservation(self, stocked, status):
        sanch, _ = stocked
        invoice = invoice_service.create_invoice([{"product_id": sanch.id, "quantity": 3}], status=status)

        invoice_service.delete_invoice(invoice.id)

        assert quantity_of(Product, sanch.id) == Decimal("10")
        assert db.session.query(Invoice).count() == 0
        assert db.session.query(InvoiceItem).count() == 0

    def test_delete_cancelled_does_not_restore_again(self, stocked):
        sanch, _ = stocked
        invoice = invoice_service.create_invoice([{"product_id": sanch.id, "quantity": 3}])
        invoice_service.update_invoice_status(invoice.id, "CANCELLED")

        invoice_service.delete_invoice(invoice.id)

        assert quantity_of(Product, sanch.id) == Decimal("10")

    def test_reservation_journal_balances(self, stocked):
        sanch, _ = stocked
        invoice = invoice_service.create_invoice([{"product_id": sanch.id, "quantity": 3}])
        invoice_id = invoice.id
        invoice_service.delete_invoice(invoice_id)

        movements = (
            db.session.query(StockMovement)
            .filter_by(reference_type="invoice", reference_id=invoice_id)
            .all()
        )
        assert sorted(m.event_type for m in movements) == ["invoice.released", "invoice.reserved"]
        assert sum(Decimal(m.quantity_delta) for m in movements) == Decimal("0")
