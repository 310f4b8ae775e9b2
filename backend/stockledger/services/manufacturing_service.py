# backend/stockledger/services/manufacturing_service.py
"""
Manufacturing transfer engine: user-to-admin finished goods transfers.

WHY: A user turns personally held raw material into finished goods and sends
them to the admin. Raw material is consumed from the user's inventory when
the transfer is created; if the admin refuses the goods the user is made
whole so the material can be reused.

LIFECYCLE:
1. SENT: Created; user raw material consumed per BOM, consumption logged
2. RECEIVED: Accepted; no quantity side effects
3. REJECTED: Refused; consumed raw material restored to the user
4. CANCELLED: Withdrawn; consumed raw material restored to the user

Leaving SENT happens exactly once. Restored quantities come from the
consumption rows written at creation, so BOM edits made afterwards do not
change what a rejection gives back.

Finished goods stock (Product.quantity) is not touched by transfers; it only
rises when a manufacturing run is completed.
"""
from __future__ import annotations

from decimal import Decimal

from flask import current_app
from sqlalchemy import update

from ..extensions import db
from ..models import ManufacturingRun, ProductTransfer, RawMaterialConsumption, RawMaterialTransfer
from ..time_utils import utcnow
from ..validation import parse_choice, parse_id_list, parse_quantity
from .bom_service import resolve_bom
from .concurrency import lock_for_update, run_in_transaction
from .errors import (
    AlreadyResolved,
    InsufficientMaterial,
    InvalidArgument,
    InvalidTransition,
    NotFound,
)
from .issuance_service import ISSUANCE_STATUS_SENT, ISSUANCE_STATUS_USED
from .stock_service import (
    credit_product,
    credit_user_inventory,
    debit_user_inventory,
    get_product,
    get_raw_material,
    get_user,
    user_inventory_map,
)


# Transfer status constants
TRANSFER_STATUS_SENT = "SENT"
TRANSFER_STATUS_RECEIVED = "RECEIVED"
TRANSFER_STATUS_REJECTED = "REJECTED"
TRANSFER_STATUS_CANCELLED = "CANCELLED"

TRANSFER_RESOLUTIONS = (
    TRANSFER_STATUS_RECEIVED,
    TRANSFER_STATUS_REJECTED,
    TRANSFER_STATUS_CANCELLED,
)
TRANSFER_STATUSES = (TRANSFER_STATUS_SENT,) + TRANSFER_RESOLUTIONS

ZERO = Decimal("0")


def create_transfer(
    user_id: int,
    product_id: int,
    quantity_sent,
    notes: str | None = None,
) -> ProductTransfer:
    """
    Create a product transfer and consume the user's raw material.

    Args:
        user_id: User sending the goods
        product_id: Product produced
        quantity_sent: Units sent (> 0)
        notes: Optional notes

    Returns:
        ProductTransfer: The created transfer (status: SENT)

    Raises:
        NotFound: unknown user or product
        NoStructureDefined: product has no BOM
        InsufficientMaterial: user lacks a required material (no partial consumption)
    """
    quantity_sent = parse_quantity(quantity_sent, "quantity_sent")

    def _op():
        get_user(user_id)
        product = get_product(product_id)
        requirements = resolve_bom(product_id, quantity_sent)

        # Validate every material before consuming any
        inventory = user_inventory_map(user_id, [r.raw_material_id for r in requirements])
        for requirement in requirements:
            row = inventory.get(requirement.raw_material_id)
            available = Decimal(row.quantity) if row else ZERO
            if row is None or available < requirement.quantity:
                raise InsufficientMaterial(
                    requirement.material_name,
                    requirement.quantity,
                    available,
                    requirement.unit,
                )

        transfer = ProductTransfer(
            user_id=user_id,
            product_id=product_id,
            quantity_sent=quantity_sent,
            notes=notes,
            status=TRANSFER_STATUS_SENT,
        )
        db.session.add(transfer)
        db.session.flush()  # Get ID

        for requirement in requirements:
            material = get_raw_material(requirement.raw_material_id)
            row = debit_user_inventory(
                user_id,
                material,
                requirement.quantity,
                event_type="transfer.consumed",
                reference_type="product_transfer",
                reference_id=transfer.id,
                actor_user_id=user_id,
            )
            db.session.add(RawMaterialConsumption(
                user_id=user_id,
                product_id=product_id,
                raw_material_id=material.id,
                product_transfer_id=transfer.id,
                quantity_used=requirement.quantity,
                product_transfer_quantity=quantity_sent,
                unit=row.unit,
                notes=f"Consumed for {quantity_sent} units of {product.name} transfer",
            ))

        db.session.flush()
        return transfer

    transfer = run_in_transaction(_op)
    current_app.logger.info(
        "Product transfer %s created: user=%s product=%s quantity=%s",
        transfer.id, user_id, product_id, quantity_sent,
    )
    return transfer


def resolve_transfer(
    transfer_id: int,
    status: str,
    notes: str | None = None,
    received_by: str | None = None,
) -> ProductTransfer:
    """
    Move a SENT transfer to RECEIVED, REJECTED or CANCELLED.

    REJECTED/CANCELLED restore the consumption snapshot to the user's
    inventory (not to central stock). RECEIVED has no quantity effect.

    Raises:
        InvalidArgument: unknown status
        NotFound: unknown transfer
        AlreadyResolved: transfer is not SENT
    """
    status = parse_choice(status, TRANSFER_RESOLUTIONS, "status")

    def _op():
        transfer = lock_for_update(
            db.session.query(ProductTransfer).filter_by(id=transfer_id)
        ).first()
        if not transfer:
            raise NotFound("Product transfer", transfer_id)

        # Conditional flip out of SENT: only one resolver can win, even where
        # the database ignores FOR UPDATE.
        result = db.session.execute(
            update(ProductTransfer)
            .where(
                ProductTransfer.id == transfer_id,
                ProductTransfer.status == TRANSFER_STATUS_SENT,
            )
            .values(status=status)
            .execution_options(synchronize_session="fetch")
        )
        if not result.rowcount:
            db.session.refresh(transfer)
            raise AlreadyResolved(transfer_id, transfer.status)

        if status in (TRANSFER_STATUS_REJECTED, TRANSFER_STATUS_CANCELLED):
            for consumption in transfer.consumptions:
                credit_user_inventory(
                    transfer.user_id,
                    consumption.raw_material,
                    Decimal(consumption.quantity_used),
                    event_type="transfer.restored",
                    reference_type="product_transfer",
                    reference_id=transfer.id,
                    note=f"Transfer {transfer.id} {status.lower()}",
                )

        if notes is not None:
            transfer.notes = notes
        if received_by is not None:
            transfer.received_by = received_by
        transfer.received_at = utcnow()
        db.session.flush()
        return transfer

    transfer = run_in_transaction(_op)
    current_app.logger.info("Product transfer %s resolved as %s", transfer_id, status)
    return transfer


def complete_manufacturing(
    product_id: int,
    quantity_produced,
    user_id: int,
    transfer_ids,
    notes: str | None = None,
) -> ManufacturingRun:
    """
    Record a finished production run and add the goods to Product.quantity.

    The referenced issuance batches must belong to the user, still be SENT,
    and together cover the BOM requirement for quantity_produced. They are
    linked to the run and marked USED.

    Raises:
        InvalidArgument: bad quantity, no batches, or batches carrying
            materials the product does not use
        NotFound: unknown product/user or batch not issued to this user
        NoStructureDefined: product has no BOM
        InvalidTransition: a batch is no longer SENT
        InsufficientMaterial: batches do not cover the requirement
    """
    quantity_produced = parse_quantity(quantity_produced, "quantity_produced")
    transfer_ids = parse_id_list(transfer_ids, "transfer_ids")
    if not transfer_ids:
        raise InvalidArgument("At least one raw material transfer id is required")

    def _op():
        get_user(user_id)
        get_product(product_id)
        requirements = resolve_bom(product_id, quantity_produced)

        batches = lock_for_update(
            db.session.query(RawMaterialTransfer).filter(
                RawMaterialTransfer.id.in_(transfer_ids),
                RawMaterialTransfer.user_id == user_id,
            )
        ).all()
        found = {batch.id for batch in batches}
        missing = [transfer_id for transfer_id in transfer_ids if transfer_id not in found]
        if missing:
            raise NotFound("Raw material transfer", missing[0])

        spent = [batch.id for batch in batches if batch.status != ISSUANCE_STATUS_SENT]
        if spent:
            raise InvalidTransition(
                "Raw material transfer(s) already consumed or returned",
                details={"transfer_ids": sorted(spent)},
            )

        covered: dict[int, Decimal] = {}
        for batch in batches:
            covered[batch.raw_material_id] = covered.get(batch.raw_material_id, ZERO) + Decimal(batch.quantity_issued)

        required_ids = {r.raw_material_id for r in requirements}
        unrelated = sorted(set(covered) - required_ids)
        if unrelated:
            raise InvalidArgument(
                "Raw material transfer(s) carry materials not used by this product",
                details={"raw_material_ids": unrelated},
            )

        for requirement in requirements:
            available = covered.get(requirement.raw_material_id, ZERO)
            if available < requirement.quantity:
                raise InsufficientMaterial(
                    requirement.material_name,
                    requirement.quantity,
                    available,
                    requirement.unit,
                )

        run = ManufacturingRun(
            user_id=user_id,
            product_id=product_id,
            quantity_produced=quantity_produced,
            notes=notes,
        )
        db.session.add(run)
        db.session.flush()

        for batch in batches:
            batch.status = ISSUANCE_STATUS_USED
            batch.manufacturing_run_id = run.id

        credit_product(
            product_id,
            quantity_produced,
            event_type="manufacturing.completed",
            reference_type="manufacturing_run",
            reference_id=run.id,
            actor_user_id=user_id,
            note=notes,
        )
        db.session.flush()
        return run

    run = run_in_transaction(_op)
    current_app.logger.info(
        "Manufacturing run %s completed: product=%s quantity=%s",
        run.id, product_id, quantity_produced,
    )
    return run


def get_transfer(transfer_id: int) -> ProductTransfer:
    transfer = db.session.get(ProductTransfer, transfer_id)
    if not transfer:
        raise NotFound("Product transfer", transfer_id)
    return transfer


def list_transfers(user_id: int | None = None, status: str | None = None) -> list[ProductTransfer]:
    q = db.session.query(ProductTransfer)
    if user_id is not None:
        q = q.filter(ProductTransfer.user_id == user_id)
    if status:
        q = q.filter(ProductTransfer.status == status)
    return q.order_by(ProductTransfer.created_at.desc(), ProductTransfer.id.desc()).all()


def list_consumptions(
    user_id: int | None = None,
    product_transfer_id: int | None = None,
) -> list[RawMaterialConsumption]:
    q = db.session.query(RawMaterialConsumption)
    if user_id is not None:
        q = q.filter(RawMaterialConsumption.user_id == user_id)
    if product_transfer_id is not None:
        q = q.filter(RawMaterialConsumption.product_transfer_id == product_transfer_id)
    return q.order_by(RawMaterialConsumption.id.asc()).all()
