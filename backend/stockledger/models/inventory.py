from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z
from .types import Quantity
from .catalog import _dec


class UserInventory(db.Model):
    """
    A user's personal raw material float.

    Created lazily on the first credit; one row per (user_id, raw_material_id).
    Filled by issuance, drawn down by product transfers, refilled on rejection.
    """
    __tablename__ = "user_inventories"
    __table_args__ = (
        db.UniqueConstraint("user_id", "raw_material_id", name="uq_user_inventories_user_material"),
        db.CheckConstraint("quantity >= 0", name="ck_user_inventories_quantity_non_negative"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)
    raw_material_id = db.Column(db.Integer, db.ForeignKey("raw_materials.id"), nullable=False, index=True)
    quantity = db.Column(Quantity(), nullable=False, default=0)
    unit = db.Column(db.String(32), nullable=False)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    user = db.relationship("User")
    raw_material = db.relationship("RawMaterial")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "user_id": self.user_id,
            "raw_material_id": self.raw_material_id,
            "material_name": self.raw_material.name if self.raw_material else None,
            "quantity": _dec(self.quantity),
            "unit": self.unit,
            "updated_at": to_utc_z(self.updated_at),
        }


class ManufacturingRun(db.Model):
    """
    Completion of a production run: finished goods added to Product.quantity.

    Issuance batches consumed by the run point back here via
    RawMaterialTransfer.manufacturing_run_id.
    """
    __tablename__ = "manufacturing_runs"
    __table_args__ = ({"sqlite_autoincrement": True},)

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False, index=True)
    quantity_produced = db.Column(Quantity(), nullable=False)
    notes = db.Column(db.Text, nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    product = db.relationship("Product")
    batches = db.relationship("RawMaterialTransfer", back_populates="manufacturing_run", lazy=True)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "user_id": self.user_id,
            "product_id": self.product_id,
            "quantity_produced": _dec(self.quantity_produced),
            "notes": self.notes,
            "transfer_ids": sorted(b.id for b in self.batches),
            "created_at": to_utc_z(self.created_at),
        }


class RawMaterialTransfer(db.Model):
    """
    Issuance record: raw material moved from central stock to a user.

    LIFECYCLE:
    1. SENT: issued; central stock decremented, user inventory credited
    2. USED: consumed by a completed manufacturing run
    3. RETURNED: handed back; quantity moved from the user to central stock
    4. REPAIRING / FINISHED: external repair workflow (status only)
    """
    __tablename__ = "raw_material_transfers"
    __table_args__ = (
        db.CheckConstraint("quantity_issued > 0", name="ck_raw_material_transfers_quantity_positive"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)
    raw_material_id = db.Column(db.Integer, db.ForeignKey("raw_materials.id"), nullable=False, index=True)
    quantity_issued = db.Column(Quantity(), nullable=False)
    returned_quantity = db.Column(Quantity(), nullable=True)

    # SENT, USED, RETURNED, REPAIRING, FINISHED
    status = db.Column(db.String(16), nullable=False, default="SENT", index=True)
    notes = db.Column(db.Text, nullable=True)

    issued_by_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    manufacturing_run_id = db.Column(
        db.Integer, db.ForeignKey("manufacturing_runs.id"), nullable=True, index=True
    )

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    user = db.relationship("User", foreign_keys=[user_id])
    issued_by = db.relationship("User", foreign_keys=[issued_by_user_id])
    raw_material = db.relationship("RawMaterial")
    manufacturing_run = db.relationship("ManufacturingRun", back_populates="batches")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "user_id": self.user_id,
            "user": self.user.to_summary() if self.user else None,
            "raw_material_id": self.raw_material_id,
            "raw_material": self.raw_material.to_dict() if self.raw_material else None,
            "quantity_issued": _dec(self.quantity_issued),
            "returned_quantity": _dec(self.returned_quantity),
            "status": self.status,
            "notes": self.notes,
            "issued_by_user_id": self.issued_by_user_id,
            "manufacturing_run_id": self.manufacturing_run_id,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }


class ProductTransfer(db.Model):
    """
    Finished goods sent by a user to the admin.

    LIFECYCLE:
    1. SENT: created; user raw materials consumed per BOM
    2. RECEIVED: accepted; no quantity side effects
    3. REJECTED / CANCELLED: consumed materials restored to the user

    Leaving SENT happens exactly once; quantity_sent never changes afterwards.
    """
    __tablename__ = "product_transfers"
    __table_args__ = (
        db.CheckConstraint("quantity_sent > 0", name="ck_product_transfers_quantity_positive"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False, index=True)
    quantity_sent = db.Column(Quantity(), nullable=False)

    # SENT, RECEIVED, REJECTED, CANCELLED
    status = db.Column(db.String(16), nullable=False, default="SENT", index=True)
    notes = db.Column(db.Text, nullable=True)

    received_by = db.Column(db.String(255), nullable=True)
    received_at = db.Column(db.DateTime(timezone=True), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    user = db.relationship("User")
    product = db.relationship("Product")
    consumptions = db.relationship(
        "RawMaterialConsumption",
        back_populates="product_transfer",
        lazy=True,
        order_by="RawMaterialConsumption.id",
    )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "user_id": self.user_id,
            "user": self.user.to_summary() if self.user else None,
            "product_id": self.product_id,
            "product": self.product.to_dict() if self.product else None,
            "quantity_sent": _dec(self.quantity_sent),
            "status": self.status,
            "notes": self.notes,
            "received_by": self.received_by,
            "received_at": to_utc_z(self.received_at),
            "consumptions": [c.to_dict() for c in self.consumptions],
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }


class RawMaterialConsumption(db.Model):
    """
    Append-only log of raw material consumed by a product transfer.

    quantity_used is the snapshot restored to the user if the transfer is
    rejected or cancelled; later BOM edits do not change it.
    """
    __tablename__ = "raw_material_consumptions"
    __table_args__ = ({"sqlite_autoincrement": True},)

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False, index=True)
    raw_material_id = db.Column(db.Integer, db.ForeignKey("raw_materials.id"), nullable=False, index=True)
    product_transfer_id = db.Column(
        db.Integer, db.ForeignKey("product_transfers.id"), nullable=False, index=True
    )
    quantity_used = db.Column(Quantity(), nullable=False)
    product_transfer_quantity = db.Column(Quantity(), nullable=False)
    unit = db.Column(db.String(32), nullable=False)
    notes = db.Column(db.Text, nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    raw_material = db.relationship("RawMaterial")
    product_transfer = db.relationship("ProductTransfer", back_populates="consumptions")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "user_id": self.user_id,
            "product_id": self.product_id,
            "raw_material_id": self.raw_material_id,
            "product_transfer_id": self.product_transfer_id,
            "quantity_used": _dec(self.quantity_used),
            "product_transfer_quantity": _dec(self.product_transfer_quantity),
            "unit": self.unit,
            "notes": self.notes,
            "created_at": to_utc_z(self.created_at),
        }


class StockMovement(db.Model):
    """
    Append-only journal of every balance change.

    Written in the same DB transaction as the change it records.
    quantity_after is the balance immediately after the change.
    """
    __tablename__ = "stock_movements"
    __table_args__ = (
        db.Index("ix_stock_movements_balance", "balance_type", "balance_id"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)

    # RAW_MATERIAL, USER_INVENTORY, PRODUCT
    balance_type = db.Column(db.String(16), nullable=False)
    balance_id = db.Column(db.Integer, nullable=False)

    raw_material_id = db.Column(db.Integer, db.ForeignKey("raw_materials.id"), nullable=True, index=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=True, index=True)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True, index=True)

    quantity_delta = db.Column(Quantity(), nullable=False)
    quantity_after = db.Column(Quantity(), nullable=False)

    event_type = db.Column(db.String(64), nullable=False, index=True)
    reference_type = db.Column(db.String(32), nullable=True)
    reference_id = db.Column(db.Integer, nullable=True)
    actor_user_id = db.Column(db.Integer, nullable=True)
    note = db.Column(db.String(255), nullable=True)

    occurred_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), index=True)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "balance_type": self.balance_type,
            "balance_id": self.balance_id,
            "raw_material_id": self.raw_material_id,
            "product_id": self.product_id,
            "user_id": self.user_id,
            "quantity_delta": _dec(self.quantity_delta),
            "quantity_after": _dec(self.quantity_after),
            "event_type": self.event_type,
            "reference_type": self.reference_type,
            "reference_id": self.reference_id,
            "actor_user_id": self.actor_user_id,
            "note": self.note,
            "occurred_at": to_utc_z(self.occurred_at),
        }
