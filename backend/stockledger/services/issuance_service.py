# backend/stockledger/services/issuance_service.py
"""
Raw material issuance: admin-to-user raw material batches.

WHY: A user can only produce goods from raw material they personally hold.
Issuance moves stock out of the central RawMaterial balance into the user's
UserInventory, recording one RawMaterialTransfer per material.

LIFECYCLE:
1. SENT: Issued (central stock decremented, user inventory credited)
2. USED: Consumed by a completed manufacturing run
3. RETURNED: Handed back; quantity moved from the user to central stock
4. REPAIRING: Rejected goods under repair (external workflow, status only)
5. FINISHED: Repair completed (external workflow, status only)
"""
from __future__ import annotations

from decimal import Decimal

from flask import current_app

from ..extensions import db
from ..models import RawMaterialTransfer
from ..validation import parse_id, parse_quantity
from .concurrency import lock_for_update, run_in_transaction
from .errors import InsufficientStock, InvalidArgument, InvalidTransition, NotFound
from .stock_service import (
    credit_raw_material,
    credit_user_inventory,
    debit_raw_material,
    debit_user_inventory,
    get_raw_material,
    get_user,
)


# Issuance status constants
ISSUANCE_STATUS_SENT = "SENT"
ISSUANCE_STATUS_USED = "USED"
ISSUANCE_STATUS_RETURNED = "RETURNED"
ISSUANCE_STATUS_REPAIRING = "REPAIRING"
ISSUANCE_STATUS_FINISHED = "FINISHED"

ISSUANCE_STATUSES = (
    ISSUANCE_STATUS_SENT,
    ISSUANCE_STATUS_USED,
    ISSUANCE_STATUS_RETURNED,
    ISSUANCE_STATUS_REPAIRING,
    ISSUANCE_STATUS_FINISHED,
)


def _parse_items(items) -> list[tuple[int, Decimal]]:
    if not isinstance(items, list) or not items:
        raise InvalidArgument("At least one transfer item is required")

    parsed = []
    for index, item in enumerate(items):
        if not isinstance(item, dict):
            raise InvalidArgument(f"Item {index} must be an object")
        parsed.append((
            parse_id(item.get("raw_material_id"), f"items[{index}].raw_material_id"),
            parse_quantity(item.get("quantity_issued"), f"items[{index}].quantity_issued"),
        ))
    return parsed


def _precheck_availability(parsed: list[tuple[int, Decimal]]) -> None:
    """
    Fail fast on a pre-transaction read.

    Quantities for the same material are summed so a batch listing one
    material twice cannot pass item-by-item. The conditional debit inside the
    transaction re-validates against concurrent writers.
    """
    requested: dict[int, Decimal] = {}
    for material_id, quantity in parsed:
        requested[material_id] = requested.get(material_id, Decimal("0")) + quantity

    for material_id, quantity in requested.items():
        material = get_raw_material(material_id)
        available = Decimal(material.quantity)
        if available < quantity:
            raise InsufficientStock("material", material.name, available, quantity)


def issue_batch(
    user_id: int,
    items: list[dict],
    notes: str | None = None,
    actor_user_id: int | None = None,
) -> list[RawMaterialTransfer]:
    """
    Issue one or more raw materials to a user, all-or-nothing.

    Args:
        user_id: Receiving user
        items: [{"raw_material_id": int, "quantity_issued": number}, ...]
        notes: Free text stored on every created transfer
        actor_user_id: Admin performing the issuance

    Returns:
        list[RawMaterialTransfer]: created transfers, status SENT

    Raises:
        InvalidArgument, NotFound, InsufficientStock
    """
    parsed = _parse_items(items)
    get_user(user_id)
    if actor_user_id is not None:
        get_user(actor_user_id)
    _precheck_availability(parsed)

    def _op():
        transfers = []
        for material_id, quantity in parsed:
            transfer = RawMaterialTransfer(
                user_id=user_id,
                raw_material_id=material_id,
                quantity_issued=quantity,
                status=ISSUANCE_STATUS_SENT,
                notes=notes,
                issued_by_user_id=actor_user_id,
            )
            db.session.add(transfer)
            db.session.flush()  # Get ID

            material = debit_raw_material(
                material_id,
                quantity,
                event_type="issuance.sent",
                reference_type="raw_material_transfer",
                reference_id=transfer.id,
                actor_user_id=actor_user_id,
                note=notes,
            )
            credit_user_inventory(
                user_id,
                material,
                quantity,
                event_type="issuance.received",
                reference_type="raw_material_transfer",
                reference_id=transfer.id,
                actor_user_id=actor_user_id,
                note=notes,
            )
            transfers.append(transfer)

        return transfers

    transfers = run_in_transaction(_op)
    current_app.logger.info(
        "Issued %d raw material item(s) to user %s", len(transfers), user_id
    )
    return transfers


def _get_locked(transfer_id: int) -> RawMaterialTransfer:
    transfer = lock_for_update(
        db.session.query(RawMaterialTransfer).filter_by(id=transfer_id)
    ).first()
    if not transfer:
        raise NotFound("Raw material transfer", transfer_id)
    return transfer


def _set_status(transfer_id: int, allowed_from: tuple[str, ...], status: str, notes: str | None):
    def _op():
        transfer = _get_locked(transfer_id)
        if transfer.status not in allowed_from:
            raise InvalidTransition(
                f"Cannot mark transfer {transfer_id} as {status} from {transfer.status}",
                details={"transfer_id": transfer_id, "status": transfer.status, "requested": status},
            )
        transfer.status = status
        if notes is not None:
            transfer.notes = notes
        db.session.flush()
        return transfer

    return run_in_transaction(_op)


def mark_repairing(transfer_id: int, notes: str | None = None) -> RawMaterialTransfer:
    """Repair workflow entry point. Status only; no quantity moves."""
    return _set_status(
        transfer_id,
        (ISSUANCE_STATUS_SENT, ISSUANCE_STATUS_USED),
        ISSUANCE_STATUS_REPAIRING,
        notes if notes is not None else "Material under repair",
    )


def mark_finished(transfer_id: int, notes: str | None = None) -> RawMaterialTransfer:
    """Repair workflow completion. Status only; no quantity moves."""
    return _set_status(
        transfer_id,
        (ISSUANCE_STATUS_REPAIRING,),
        ISSUANCE_STATUS_FINISHED,
        notes if notes is not None else "Repair completed",
    )


def return_batch(
    transfer_id: int,
    quantity: Decimal | None = None,
    notes: str | None = None,
    actor_user_id: int | None = None,
) -> RawMaterialTransfer:
    """
    Hand an issued batch (or part of it) back to central stock.

    Moves `quantity` (default: the full quantity_issued) from the user's
    inventory to RawMaterial. Only SENT batches can be returned.
    """
    def _op():
        transfer = _get_locked(transfer_id)
        if transfer.status != ISSUANCE_STATUS_SENT:
            raise InvalidTransition(
                f"Cannot return transfer in {transfer.status} status",
                details={"transfer_id": transfer_id, "status": transfer.status},
            )

        issued = Decimal(transfer.quantity_issued)
        returned = issued if quantity is None else quantity
        if returned > issued:
            raise InvalidArgument(
                f"Cannot return more than {issued} {transfer.raw_material.unit or ''}".rstrip(),
                details={"quantity_issued": issued, "requested": returned},
            )

        material = get_raw_material(transfer.raw_material_id)
        debit_user_inventory(
            transfer.user_id,
            material,
            returned,
            event_type="issuance.returned",
            reference_type="raw_material_transfer",
            reference_id=transfer.id,
            actor_user_id=actor_user_id,
            note=notes,
        )
        credit_raw_material(
            material.id,
            returned,
            event_type="issuance.returned",
            reference_type="raw_material_transfer",
            reference_id=transfer.id,
            actor_user_id=actor_user_id,
            note=notes,
        )

        transfer.status = ISSUANCE_STATUS_RETURNED
        transfer.returned_quantity = returned
        if notes is not None:
            transfer.notes = notes
        db.session.flush()
        return transfer

    return run_in_transaction(_op)


def get_issuance(transfer_id: int) -> RawMaterialTransfer:
    transfer = db.session.get(RawMaterialTransfer, transfer_id)
    if not transfer:
        raise NotFound("Raw material transfer", transfer_id)
    return transfer


def list_issuances(user_id: int | None = None, status: str | None = None) -> list[RawMaterialTransfer]:
    q = db.session.query(RawMaterialTransfer)
    if user_id is not None:
        q = q.filter(RawMaterialTransfer.user_id == user_id)
    if status:
        q = q.filter(RawMaterialTransfer.status == status)
    return q.order_by(RawMaterialTransfer.created_at.desc(), RawMaterialTransfer.id.desc()).all()
