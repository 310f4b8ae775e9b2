# Overview: Pytest coverage for raw material issuance, returns and the repair workflow.

from decimal import Decimal

import pytest

from stockledger.extensions import db
from stockledger.models import RawMaterial, RawMaterialTransfer, StockMovement
from stockledger.services import issuance_service, stock_service
from stockledger.services.errors import (
    InsufficientMaterial,
    InsufficientStock,
    InvalidArgument,
    InvalidTransition,
    NotFound,
)

from conftest import quantity_of, user_balance


class TestIssueBatch:
    def test_issue_moves_stock_to_user(self, db_session, admin, worker, steel):
        """Steel 100, issue 30 to U1 -> central 70, U1 holds 30."""
        transfers = issuance_service.issue_batch(
            worker.id,
            [{"raw_material_id": steel.id, "quantity_issued": 30}],
            notes="Week 1",
            actor_user_id=admin.id,
        )

        assert len(transfers) == 1
        assert transfers[0].status == issuance_service.ISSUANCE_STATUS_SENT
        assert transfers[0].issued_by_user_id == admin.id
        assert quantity_of(RawMaterial, steel.id) == Decimal("70")
        assert user_balance(worker.id, steel.id) == Decimal("30")

    def test_issue_journals_both_sides(self, db_session, worker, steel):
        transfer = issuance_service.issue_batch(
            worker.id, [{"raw_material_id": steel.id, "quantity_issued": 30}]
        )[0]

        movements = (
            db.session.query(StockMovement)
            .filter_by(reference_type="raw_material_transfer", reference_id=transfer.id)
            .order_by(StockMovement.id.asc())
            .all()
        )
        assert [m.event_type for m in movements] == ["issuance.sent", "issuance.received"]
        assert Decimal(movements[0].quantity_delta) == Decimal("-30")
        assert Decimal(movements[1].quantity_delta) == Decimal("30")

    def test_multi_item_batch_is_all_or_nothing(self, db_session, worker, steel, copper):
        with pytest.raises(InsufficientStock) as exc:
            issuance_service.issue_batch(worker.id, [
                {"raw_material_id": steel.id, "quantity_issued": 10},
                {"raw_material_id": copper.id, "quantity_issued": 51},
            ])

        assert exc.value.details["material"] == "Copper"
        assert quantity_of(RawMaterial, steel.id) == Decimal("100")
        assert quantity_of(RawMaterial, copper.id) == Decimal("50")
        assert user_balance(worker.id, steel.id) == Decimal("0")
        assert db.session.query(RawMaterialTransfer).count() == 0

    def test_fractional_issues_drain_stock_to_exactly_zero(self, db_session, worker):
        """Wire 0.3: issuing 0.2 then 0.1 leaves exactly nothing behind."""
        wire = stock_service.create_raw_material("Wire", unit="m", quantity=Decimal("0.3"))

        issuance_service.issue_batch(worker.id, [{"raw_material_id": wire.id, "quantity_issued": "0.2"}])
        issuance_service.issue_batch(worker.id, [{"raw_material_id": wire.id, "quantity_issued": 0.1}])

        assert quantity_of(RawMaterial, wire.id) == Decimal("0")
        assert user_balance(worker.id, wire.id) == Decimal("0.3")

        with pytest.raises(InsufficientStock) as exc:
            issuance_service.issue_batch(worker.id, [{"raw_material_id": wire.id, "quantity_issued": "0.001"}])
        assert exc.value.details["available"] == Decimal("0")

        last = (
            db.session.query(StockMovement)
            .filter_by(balance_type="RAW_MATERIAL", balance_id=wire.id)
            .order_by(StockMovement.id.desc())
            .first()
        )
        assert Decimal(last.quantity_after) == Decimal("0")

    def test_fractional_return_restores_exact_balance(self, db_session, worker):
        wire = stock_service.create_raw_material("Wire", unit="m", quantity=Decimal("1.1"))
        batch = issuance_service.issue_batch(
            worker.id, [{"raw_material_id": wire.id, "quantity_issued": "0.7"}]
        )[0]

        issuance_service.return_batch(batch.id, quantity=Decimal("0.3"))
        issuance_service.issue_batch(worker.id, [{"raw_material_id": wire.id, "quantity_issued": "0.7"}])

        assert quantity_of(RawMaterial, wire.id) == Decimal("0")
        assert user_balance(worker.id, wire.id) == Decimal("1.1")

    def test_same_material_twice_is_summed(self, db_session, worker, copper):
        with pytest.raises(InsufficientStock):
            issuance_service.issue_batch(worker.id, [
                {"raw_material_id": copper.id, "quantity_issued": 30},
                {"raw_material_id": copper.id, "quantity_issued": 30},
            ])
        assert quantity_of(RawMaterial, copper.id) == Decimal("50")

    @pytest.mark.parametrize("items", [
        [],
        [{"raw_material_id": 1, "quantity_issued": 0}],
        [{"raw_material_id": 1, "quantity_issued": -5}],
        [{"raw_material_id": 1, "quantity_issued": "1e3"}],
        [{"quantity_issued": 5}],
    ])
    def test_malformed_items_rejected(self, db_session, worker, items):
        with pytest.raises(InvalidArgument):
            issuance_service.issue_batch(worker.id, items)

    def test_unknown_user(self, db_session, steel):
        with pytest.raises(NotFound):
            issuance_service.issue_batch(999, [{"raw_material_id": steel.id, "quantity_issued": 1}])

    def test_unknown_material(self, db_session, worker):
        with pytest.raises(NotFound):
            issuance_service.issue_batch(worker.id, [{"raw_material_id": 999, "quantity_issued": 1}])


class TestReturnBatch:
    def test_full_return_restores_central_stock(self, db_session, worker, steel):
        transfer = issuance_service.issue_batch(
            worker.id, [{"raw_material_id": steel.id, "quantity_issued": 30}]
        )[0]

        returned = issuance_service.return_batch(transfer.id, notes="Not needed")

        assert returned.status == issuance_service.ISSUANCE_STATUS_RETURNED
        assert Decimal(returned.returned_quantity) == Decimal("30")
        assert quantity_of(RawMaterial, steel.id) == Decimal("100")
        assert user_balance(worker.id, steel.id) == Decimal("0")

    def test_partial_return(self, db_session, worker, steel):
        transfer = issuance_service.issue_batch(
            worker.id, [{"raw_material_id": steel.id, "quantity_issued": 30}]
        )[0]

        issuance_service.return_batch(transfer.id, quantity=Decimal("10"))

        assert quantity_of(RawMaterial, steel.id) == Decimal("80")
        assert user_balance(worker.id, steel.id) == Decimal("20")

    def test_cannot_return_more_than_issued(self, db_session, worker, steel):
        transfer = issuance_service.issue_batch(
            worker.id, [{"raw_material_id": steel.id, "quantity_issued": 30}]
        )[0]

        with pytest.raises(InvalidArgument):
            issuance_service.return_batch(transfer.id, quantity=Decimal("31"))

    def test_cannot_return_material_already_consumed(self, db_session, worker, steel, copper, sanch):
        from stockledger.services import manufacturing_service

        batch = issuance_service.issue_batch(worker.id, [
            {"raw_material_id": steel.id, "quantity_issued": 10},
            {"raw_material_id": copper.id, "quantity_issued": 5},
        ])
        manufacturing_service.create_transfer(worker.id, sanch.id, 5)

        with pytest.raises(InsufficientMaterial):
            issuance_service.return_batch(batch[0].id)

        assert quantity_of(RawMaterial, steel.id) == Decimal("90")

    def test_return_twice_rejected(self, db_session, worker, steel):
        transfer = issuance_service.issue_batch(
            worker.id, [{"raw_material_id": steel.id, "quantity_issued": 30}]
        )[0]
        issuance_service.return_batch(transfer.id)

        with pytest.raises(InvalidTransition):
            issuance_service.return_batch(transfer.id)


class TestRepairWorkflow:
    def test_repairing_then_finished(self, db_session, worker, steel):
        transfer = issuance_service.issue_batch(
            worker.id, [{"raw_material_id": steel.id, "quantity_issued": 30}]
        )[0]

        repairing = issuance_service.mark_repairing(transfer.id)
        assert repairing.status == issuance_service.ISSUANCE_STATUS_REPAIRING
        assert repairing.notes == "Material under repair"

        finished = issuance_service.mark_finished(transfer.id, notes="Rewelded")
        assert finished.status == issuance_service.ISSUANCE_STATUS_FINISHED
        assert finished.notes == "Rewelded"

        # Status only: balances untouched
        assert quantity_of(RawMaterial, steel.id) == Decimal("70")
        assert user_balance(worker.id, steel.id) == Decimal("30")

    def test_finished_requires_repairing(self, db_session, worker, steel):
        transfer = issuance_service.issue_batch(
            worker.id, [{"raw_material_id": steel.id, "quantity_issued": 30}]
        )[0]

        with pytest.raises(InvalidTransition):
            issuance_service.mark_finished(transfer.id)

    def test_unknown_transfer(self, db_session):
        with pytest.raises(NotFound):
            issuance_service.mark_repairing(404)


def test_list_issuances_filters(db_session, worker, other_worker, steel):
    issuance_service.issue_batch(worker.id, [{"raw_material_id": steel.id, "quantity_issued": 10}])
    issuance_service.issue_batch(other_worker.id, [{"raw_material_id": steel.id, "quantity_issued": 5}])

    assert len(issuance_service.list_issuances()) == 2
    mine = issuance_service.list_issuances(user_id=worker.id)
    assert [t.user_id for t in mine] == [worker.id]
    assert issuance_service.list_issuances(status="USED") == []
