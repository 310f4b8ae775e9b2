from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z
from .types import Quantity


def _dec(value):
    return None if value is None else str(value)


class User(db.Model):
    """
    Owner of a personal raw material float.

    Authentication lives outside this service; only identity is stored here.
    """
    __tablename__ = "users"
    __table_args__ = ({"sqlite_autoincrement": True},)

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(255), nullable=False)
    email = db.Column(db.String(255), nullable=False, unique=True)
    is_admin = db.Column(db.Boolean, nullable=False, default=False)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    def __repr__(self) -> str:
        return f"<User id={self.id} email={self.email!r}>"

    def to_summary(self) -> dict:
        return {"id": self.id, "name": self.name, "email": self.email}

    def to_dict(self) -> dict:
        return {
            **self.to_summary(),
            "is_admin": self.is_admin,
            "created_at": to_utc_z(self.created_at),
        }


class RawMaterial(db.Model):
    """
    Central raw material stock.

    quantity is the admin-held balance; issuance moves it into UserInventory.
    """
    __tablename__ = "raw_materials"
    __table_args__ = (
        db.CheckConstraint("quantity >= 0", name="ck_raw_materials_quantity_non_negative"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(255), nullable=False, unique=True)
    quantity = db.Column(Quantity(), nullable=False, default=0)
    unit = db.Column(db.String(32), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    def __repr__(self) -> str:
        return f"<RawMaterial id={self.id} name={self.name!r} quantity={self.quantity}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "quantity": _dec(self.quantity),
            "unit": self.unit,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }


class Product(db.Model):
    """Finished goods. quantity rises on manufacturing completion and falls on invoice reservation."""
    __tablename__ = "products"
    __table_args__ = (
        db.CheckConstraint("quantity >= 0", name="ck_products_quantity_non_negative"),
        db.Index("ix_products_name", "name"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(255), nullable=False)
    quantity = db.Column(Quantity(), nullable=False, default=0)
    price = db.Column(db.Numeric(12, 2), nullable=False, default=0)
    cost_price = db.Column(db.Numeric(12, 2), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    structures = db.relationship(
        "ProductStructure",
        back_populates="product",
        lazy=True,
        cascade="all, delete-orphan",
    )

    def __repr__(self) -> str:
        return f"<Product id={self.id} name={self.name!r} quantity={self.quantity}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "quantity": _dec(self.quantity),
            "price": _dec(self.price),
            "cost_price": _dec(self.cost_price),
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }


class ProductStructure(db.Model):
    """
    Bill of materials line: quantity_required of one raw material per ONE unit of product.

    UNIQUENESS: at most one row per (product_id, raw_material_id).
    """
    __tablename__ = "product_structures"
    __table_args__ = (
        db.UniqueConstraint("product_id", "raw_material_id", name="uq_product_structures_product_material"),
        db.CheckConstraint("quantity_required > 0", name="ck_product_structures_quantity_positive"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False, index=True)
    raw_material_id = db.Column(db.Integer, db.ForeignKey("raw_materials.id"), nullable=False, index=True)
    quantity_required = db.Column(Quantity(), nullable=False)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    product = db.relationship("Product", back_populates="structures")
    raw_material = db.relationship("RawMaterial")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "product_id": self.product_id,
            "raw_material_id": self.raw_material_id,
            "material_name": self.raw_material.name if self.raw_material else None,
            "unit": self.raw_material.unit if self.raw_material else None,
            "quantity_required": _dec(self.quantity_required),
        }
