# Overview: Append-only stock movement journal written alongside every balance change.

from __future__ import annotations

from decimal import Decimal
from typing import Optional

from ..extensions import db
from ..models import StockMovement
"""
Stock Movement Journal Invariants (authoritative)

- Append-only: no updates/deletes of existing movements.
- No domain/business logic in the journal itself.
- Movements are written inside the same DB transaction as the balance change they record.
- quantity_after is the balance of (balance_type, balance_id) right after the change.
"""


BALANCE_RAW_MATERIAL = "RAW_MATERIAL"
BALANCE_USER_INVENTORY = "USER_INVENTORY"
BALANCE_PRODUCT = "PRODUCT"


def append_stock_movement(
    *,
    balance_type: str,
    balance_id: int,
    quantity_delta: Decimal,
    quantity_after: Decimal,
    event_type: str,
    raw_material_id: int | None = None,
    product_id: int | None = None,
    user_id: int | None = None,
    reference_type: str | None = None,
    reference_id: int | None = None,
    actor_user_id: int | None = None,
    note: Optional[str] = None,
) -> StockMovement:
    movement = StockMovement(
        balance_type=balance_type,
        balance_id=balance_id,
        raw_material_id=raw_material_id,
        product_id=product_id,
        user_id=user_id,
        quantity_delta=quantity_delta,
        quantity_after=quantity_after,
        event_type=event_type,
        reference_type=reference_type,
        reference_id=reference_id,
        actor_user_id=actor_user_id,
        note=note[:255] if note else None,
    )
    db.session.add(movement)
    db.session.flush()  # ensures movement.id is assigned without committing
    return movement


def list_stock_movements(
    *,
    balance_type: str | None = None,
    raw_material_id: int | None = None,
    product_id: int | None = None,
    user_id: int | None = None,
    reference_type: str | None = None,
    reference_id: int | None = None,
    limit: int = 200,
) -> list[StockMovement]:
    q = db.session.query(StockMovement)
    if balance_type:
        q = q.filter(StockMovement.balance_type == balance_type)
    if raw_material_id is not None:
        q = q.filter(StockMovement.raw_material_id == raw_material_id)
    if product_id is not None:
        q = q.filter(StockMovement.product_id == product_id)
    if user_id is not None:
        q = q.filter(StockMovement.user_id == user_id)
    if reference_type:
        q = q.filter(StockMovement.reference_type == reference_type)
    if reference_id is not None:
        q = q.filter(StockMovement.reference_id == reference_id)
    return q.order_by(StockMovement.id.desc()).limit(limit).all()
