# Overview: Ledger store; balance primitives for raw materials, user inventories and products.

from __future__ import annotations

from decimal import Decimal

from flask import current_app
from sqlalchemy import func, update

from ..extensions import db
from ..models import Product, RawMaterial, RawMaterialTransfer, User, UserInventory
from ..models.types import Quantity
from .concurrency import insert_if_absent, lock_for_update, run_in_transaction
from .errors import (
    ConflictingUnique,
    InsufficientMaterial,
    InsufficientStock,
    InvalidArgument,
    NotFound,
)
from .ledger_service import (
    BALANCE_PRODUCT,
    BALANCE_RAW_MATERIAL,
    BALANCE_USER_INVENTORY,
    append_stock_movement,
)
"""
Ledger Store Invariants (authoritative)

- RawMaterial.quantity, Product.quantity and UserInventory.quantity are never negative.
- Every debit is a single conditional UPDATE (... WHERE quantity >= :requested),
  so the sufficiency check and the decrement cannot be split by a concurrent writer.
- A UserInventory row is created lazily on the first credit (one row per user/material).
- Every balance change appends a StockMovement in the same transaction.
- Primitives never commit; callers own the transaction boundary.
"""


ZERO = Decimal("0")


# =============================================================================
# Lookups
# =============================================================================

def get_user(user_id: int) -> User:
    user = db.session.get(User, user_id)
    if user is None:
        raise NotFound("User", user_id)
    return user


def get_raw_material(material_id: int, *, lock: bool = False) -> RawMaterial:
    query = db.session.query(RawMaterial).filter_by(id=material_id)
    if lock:
        query = lock_for_update(query)
    material = query.first()
    if material is None:
        raise NotFound("Raw material", material_id)
    return material


def get_product(product_id: int, *, lock: bool = False) -> Product:
    query = db.session.query(Product).filter_by(id=product_id)
    if lock:
        query = lock_for_update(query)
    product = query.first()
    if product is None:
        raise NotFound("Product", product_id)
    return product


def _unit_for(material: RawMaterial) -> str:
    return material.unit or current_app.config.get("DEFAULT_UNIT", "pcs")


def _apply_delta(model, criteria: list, delta: Decimal) -> bool:
    """
    Add delta to model.quantity for the row matching criteria.

    Negative deltas only apply while the balance covers them.
    Returns False when no row was changed.
    """
    conditions = list(criteria)
    if delta < 0:
        conditions.append(model.quantity >= -delta)
    stmt = (
        update(model)
        .where(*conditions)
        .values(quantity=model.quantity + delta)
        .execution_options(synchronize_session="fetch")
    )
    result = db.session.execute(stmt)
    return bool(result.rowcount)


def _current_quantity(model, criteria: list) -> Decimal:
    value = db.session.query(model.quantity).filter(*criteria).scalar()
    return Decimal(value) if value is not None else ZERO


# =============================================================================
# Central raw material stock
# =============================================================================

def debit_raw_material(
    material_id: int,
    quantity: Decimal,
    *,
    event_type: str,
    reference_type: str | None = None,
    reference_id: int | None = None,
    actor_user_id: int | None = None,
    note: str | None = None,
) -> RawMaterial:
    material = get_raw_material(material_id, lock=True)
    criteria = [RawMaterial.id == material_id]
    if not _apply_delta(RawMaterial, criteria, -quantity):
        available = _current_quantity(RawMaterial, criteria)
        raise InsufficientStock("material", material.name, available, quantity)

    append_stock_movement(
        balance_type=BALANCE_RAW_MATERIAL,
        balance_id=material.id,
        raw_material_id=material.id,
        quantity_delta=-quantity,
        quantity_after=_current_quantity(RawMaterial, criteria),
        event_type=event_type,
        reference_type=reference_type,
        reference_id=reference_id,
        actor_user_id=actor_user_id,
        note=note,
    )
    return material


def credit_raw_material(
    material_id: int,
    quantity: Decimal,
    *,
    event_type: str,
    reference_type: str | None = None,
    reference_id: int | None = None,
    actor_user_id: int | None = None,
    note: str | None = None,
) -> RawMaterial:
    material = get_raw_material(material_id, lock=True)
    criteria = [RawMaterial.id == material_id]
    _apply_delta(RawMaterial, criteria, quantity)

    append_stock_movement(
        balance_type=BALANCE_RAW_MATERIAL,
        balance_id=material.id,
        raw_material_id=material.id,
        quantity_delta=quantity,
        quantity_after=_current_quantity(RawMaterial, criteria),
        event_type=event_type,
        reference_type=reference_type,
        reference_id=reference_id,
        actor_user_id=actor_user_id,
        note=note,
    )
    return material


# =============================================================================
# Finished goods stock
# =============================================================================

def debit_product(
    product_id: int,
    quantity: Decimal,
    *,
    event_type: str,
    reference_type: str | None = None,
    reference_id: int | None = None,
    actor_user_id: int | None = None,
    note: str | None = None,
) -> Product:
    product = get_product(product_id, lock=True)
    criteria = [Product.id == product_id]
    if not _apply_delta(Product, criteria, -quantity):
        available = _current_quantity(Product, criteria)
        raise InsufficientStock("product", product.name, available, quantity)

    append_stock_movement(
        balance_type=BALANCE_PRODUCT,
        balance_id=product.id,
        product_id=product.id,
        quantity_delta=-quantity,
        quantity_after=_current_quantity(Product, criteria),
        event_type=event_type,
        reference_type=reference_type,
        reference_id=reference_id,
        actor_user_id=actor_user_id,
        note=note,
    )
    return product


def credit_product(
    product_id: int,
    quantity: Decimal,
    *,
    event_type: str,
    reference_type: str | None = None,
    reference_id: int | None = None,
    actor_user_id: int | None = None,
    note: str | None = None,
) -> Product:
    product = get_product(product_id, lock=True)
    criteria = [Product.id == product_id]
    _apply_delta(Product, criteria, quantity)

    append_stock_movement(
        balance_type=BALANCE_PRODUCT,
        balance_id=product.id,
        product_id=product.id,
        quantity_delta=quantity,
        quantity_after=_current_quantity(Product, criteria),
        event_type=event_type,
        reference_type=reference_type,
        reference_id=reference_id,
        actor_user_id=actor_user_id,
        note=note,
    )
    return product


# =============================================================================
# User inventories
# =============================================================================

def _user_inventory_criteria(user_id: int, material_id: int) -> list:
    return [UserInventory.user_id == user_id, UserInventory.raw_material_id == material_id]


def credit_user_inventory(
    user_id: int,
    material: RawMaterial,
    quantity: Decimal,
    *,
    event_type: str,
    reference_type: str | None = None,
    reference_id: int | None = None,
    actor_user_id: int | None = None,
    note: str | None = None,
) -> UserInventory:
    """Upsert: create the (user, material) row at zero if absent, then increment."""
    insert_if_absent(
        UserInventory,
        {
            "user_id": user_id,
            "raw_material_id": material.id,
            "quantity": ZERO,
            "unit": _unit_for(material),
        },
        ["user_id", "raw_material_id"],
    )
    criteria = _user_inventory_criteria(user_id, material.id)
    _apply_delta(UserInventory, criteria, quantity)

    row = lock_for_update(db.session.query(UserInventory).filter(*criteria)).one()
    append_stock_movement(
        balance_type=BALANCE_USER_INVENTORY,
        balance_id=row.id,
        raw_material_id=material.id,
        user_id=user_id,
        quantity_delta=quantity,
        quantity_after=_current_quantity(UserInventory, criteria),
        event_type=event_type,
        reference_type=reference_type,
        reference_id=reference_id,
        actor_user_id=actor_user_id,
        note=note,
    )
    return row


def debit_user_inventory(
    user_id: int,
    material: RawMaterial,
    quantity: Decimal,
    *,
    event_type: str,
    reference_type: str | None = None,
    reference_id: int | None = None,
    actor_user_id: int | None = None,
    note: str | None = None,
) -> UserInventory:
    criteria = _user_inventory_criteria(user_id, material.id)
    row = lock_for_update(db.session.query(UserInventory).filter(*criteria)).first()
    if row is None:
        raise InsufficientMaterial(material.name, quantity, ZERO, material.unit)
    if not _apply_delta(UserInventory, criteria, -quantity):
        available = _current_quantity(UserInventory, criteria)
        raise InsufficientMaterial(material.name, quantity, available, row.unit)

    append_stock_movement(
        balance_type=BALANCE_USER_INVENTORY,
        balance_id=row.id,
        raw_material_id=material.id,
        user_id=user_id,
        quantity_delta=-quantity,
        quantity_after=_current_quantity(UserInventory, criteria),
        event_type=event_type,
        reference_type=reference_type,
        reference_id=reference_id,
        actor_user_id=actor_user_id,
        note=note,
    )
    return row


def user_inventory_map(user_id: int, material_ids: list[int]) -> dict[int, UserInventory]:
    """Current inventory rows of a user keyed by raw_material_id."""
    if not material_ids:
        return {}
    rows = (
        db.session.query(UserInventory)
        .filter(
            UserInventory.user_id == user_id,
            UserInventory.raw_material_id.in_(material_ids),
        )
        .all()
    )
    return {row.raw_material_id: row for row in rows}


def get_user_inventory(user_id: int) -> list[UserInventory]:
    get_user(user_id)
    return (
        db.session.query(UserInventory)
        .join(RawMaterial, RawMaterial.id == UserInventory.raw_material_id)
        .filter(UserInventory.user_id == user_id)
        .order_by(RawMaterial.name.asc())
        .all()
    )


# =============================================================================
# Administrative operations
# =============================================================================

def list_users() -> list[User]:
    return db.session.query(User).order_by(User.id.asc()).all()


def create_user(name: str, email: str, is_admin: bool = False) -> User:
    if not name or not email:
        raise InvalidArgument("name and email are required")

    def _op():
        if db.session.query(User).filter_by(email=email.strip().lower()).first():
            raise ConflictingUnique(f"User with email {email} already exists", details={"email": email})
        user = User(name=name.strip(), email=email.strip().lower(), is_admin=bool(is_admin))
        db.session.add(user)
        db.session.flush()
        return user

    return run_in_transaction(_op)


def create_raw_material(
    name: str,
    unit: str | None = None,
    quantity: Decimal = ZERO,
    actor_user_id: int | None = None,
) -> RawMaterial:
    if not name or not name.strip():
        raise InvalidArgument("name is required")
    if quantity < 0:
        raise InvalidArgument("quantity must not be negative")

    def _op():
        if db.session.query(RawMaterial).filter_by(name=name.strip()).first():
            raise ConflictingUnique(f"Raw material {name} already exists", details={"name": name})
        material = RawMaterial(name=name.strip(), unit=unit, quantity=ZERO)
        db.session.add(material)
        db.session.flush()
        if quantity > 0:
            credit_raw_material(
                material.id,
                quantity,
                event_type="stock.adjusted",
                reference_type="raw_material",
                reference_id=material.id,
                actor_user_id=actor_user_id,
                note="Opening stock",
            )
        return material

    return run_in_transaction(_op)


def list_products() -> list[Product]:
    return db.session.query(Product).order_by(Product.name.asc()).all()


def create_product(
    name: str,
    price: Decimal = ZERO,
    cost_price: Decimal | None = None,
    quantity: Decimal = ZERO,
    actor_user_id: int | None = None,
) -> Product:
    if not name or not name.strip():
        raise InvalidArgument("name is required")
    if quantity < 0:
        raise InvalidArgument("quantity must not be negative")

    def _op():
        product = Product(name=name.strip(), price=price, cost_price=cost_price, quantity=ZERO)
        db.session.add(product)
        db.session.flush()
        if quantity > 0:
            credit_product(
                product.id,
                quantity,
                event_type="stock.adjusted",
                reference_type="product",
                reference_id=product.id,
                actor_user_id=actor_user_id,
                note="Opening stock",
            )
        return product

    return run_in_transaction(_op)


def adjust_raw_material_stock(
    material_id: int,
    delta: Decimal,
    note: str | None = None,
    actor_user_id: int | None = None,
) -> RawMaterial:
    """Restock (delta > 0) or write off (delta < 0) central raw material stock."""
    def _op():
        kwargs = dict(
            event_type="stock.adjusted",
            reference_type="raw_material",
            reference_id=material_id,
            actor_user_id=actor_user_id,
            note=note,
        )
        if delta > 0:
            material = credit_raw_material(material_id, delta, **kwargs)
        else:
            material = debit_raw_material(material_id, -delta, **kwargs)
        current_app.logger.info("Raw material %s adjusted by %s", material_id, delta)
        return material

    return run_in_transaction(_op)


def adjust_product_stock(
    product_id: int,
    delta: Decimal,
    note: str | None = None,
    actor_user_id: int | None = None,
) -> Product:
    """Manual finished goods correction; never drives the balance negative."""
    def _op():
        kwargs = dict(
            event_type="stock.adjusted",
            reference_type="product",
            reference_id=product_id,
            actor_user_id=actor_user_id,
            note=note,
        )
        if delta > 0:
            product = credit_product(product_id, delta, **kwargs)
        else:
            product = debit_product(product_id, -delta, **kwargs)
        current_app.logger.info("Product %s adjusted by %s", product_id, delta)
        return product

    return run_in_transaction(_op)


def raw_material_stock_summary() -> list[dict]:
    """
    Per-material view of where stock sits.

    - available: central stock
    - sent_to_users: quantity on SENT or USED issuance batches
    - used: quantity on USED batches
    - remaining_with_users: current sum of user inventories
    """
    issued = dict(
        db.session.query(
            RawMaterialTransfer.raw_material_id,
            func.coalesce(func.sum(RawMaterialTransfer.quantity_issued), 0, type_=Quantity()),
        )
        .filter(RawMaterialTransfer.status.in_(["SENT", "USED"]))
        .group_by(RawMaterialTransfer.raw_material_id)
        .all()
    )
    used = dict(
        db.session.query(
            RawMaterialTransfer.raw_material_id,
            func.coalesce(func.sum(RawMaterialTransfer.quantity_issued), 0, type_=Quantity()),
        )
        .filter(RawMaterialTransfer.status == "USED")
        .group_by(RawMaterialTransfer.raw_material_id)
        .all()
    )
    held = dict(
        db.session.query(
            UserInventory.raw_material_id,
            func.coalesce(func.sum(UserInventory.quantity), 0, type_=Quantity()),
        )
        .group_by(UserInventory.raw_material_id)
        .all()
    )

    summary = []
    for material in db.session.query(RawMaterial).order_by(RawMaterial.id.asc()).all():
        summary.append({
            **material.to_dict(),
            "stock_summary": {
                "available": str(material.quantity),
                "sent_to_users": str(Decimal(str(issued.get(material.id, 0)))),
                "used": str(Decimal(str(used.get(material.id, 0)))),
                "remaining_with_users": str(Decimal(str(held.get(material.id, 0)))),
            },
        })
    return summary
