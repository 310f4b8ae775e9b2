from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z
from .types import Quantity
from .catalog import _dec


class SequenceCounter(db.Model):
    """
    Atomic per-domain, per-financial-year document counters.

    last_number is the most recently issued number; it never decreases.
    """
    __tablename__ = "sequence_counters"
    __table_args__ = (
        db.UniqueConstraint("domain", "financial_year", name="uq_sequence_counters_domain_year"),
        db.CheckConstraint("last_number >= 0", name="ck_sequence_counters_last_number_non_negative"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    domain = db.Column(db.String(32), nullable=False, index=True)
    financial_year = db.Column(db.String(9), nullable=False)
    last_number = db.Column(db.Integer, nullable=False, default=0)
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now())

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "domain": self.domain,
            "financial_year": self.financial_year,
            "last_number": self.last_number,
            "updated_at": to_utc_z(self.updated_at),
        }


class Invoice(db.Model):
    """
    Sales invoice (stock-relevant view).

    stock_reserved is True while the invoice's lines are deducted from
    Product.quantity. It is set on creation and cleared only by cancellation
    or deletion.
    """
    __tablename__ = "invoices"
    __table_args__ = ({"sqlite_autoincrement": True},)

    id = db.Column(db.Integer, primary_key=True)
    invoice_number = db.Column(db.String(64), nullable=False, unique=True)

    # DRAFT, FINAL, PAID, UNPAID, ADVANCE, CANCELLED
    status = db.Column(db.String(16), nullable=False, default="DRAFT", index=True)
    customer_name = db.Column(db.String(255), nullable=True)

    subtotal = db.Column(db.Numeric(12, 2), nullable=False, default=0)
    total = db.Column(db.Numeric(12, 2), nullable=False, default=0)
    advance_paid = db.Column(db.Numeric(12, 2), nullable=False, default=0)
    balance_due = db.Column(db.Numeric(12, 2), nullable=False, default=0)

    stock_reserved = db.Column(db.Boolean, nullable=False, default=False)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    items = db.relationship(
        "InvoiceItem",
        back_populates="invoice",
        lazy=True,
        cascade="all, delete-orphan",
        order_by="InvoiceItem.id",
    )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "invoice_number": self.invoice_number,
            "status": self.status,
            "customer_name": self.customer_name,
            "subtotal": _dec(self.subtotal),
            "total": _dec(self.total),
            "advance_paid": _dec(self.advance_paid),
            "balance_due": _dec(self.balance_due),
            "stock_reserved": self.stock_reserved,
            "items": [item.to_dict() for item in self.items],
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }


class InvoiceItem(db.Model):
    __tablename__ = "invoice_items"
    __table_args__ = (
        db.CheckConstraint("quantity > 0", name="ck_invoice_items_quantity_positive"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    invoice_id = db.Column(db.Integer, db.ForeignKey("invoices.id"), nullable=False, index=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False, index=True)
    name = db.Column(db.String(255), nullable=False)
    quantity = db.Column(Quantity(), nullable=False)
    price = db.Column(db.Numeric(12, 2), nullable=False, default=0)
    total = db.Column(db.Numeric(12, 2), nullable=False, default=0)
    notes = db.Column(db.Text, nullable=True)

    invoice = db.relationship("Invoice", back_populates="items")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "product_id": self.product_id,
            "name": self.name,
            "quantity": _dec(self.quantity),
            "price": _dec(self.price),
            "total": _dec(self.total),
            "notes": self.notes,
        }


class NumberedDocumentMixin:
    """Columns shared by documents numbered {PREFIX}-{financial_year}-{NNNN}."""
    id = db.Column(db.Integer, primary_key=True)
    number = db.Column(db.String(64), nullable=False, unique=True)
    financial_year = db.Column(db.String(9), nullable=False, index=True)
    counterparty = db.Column(db.String(255), nullable=False)
    amount = db.Column(db.Numeric(12, 2), nullable=False, default=0)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "number": self.number,
            "financial_year": self.financial_year,
            "counterparty": self.counterparty,
            "amount": _dec(self.amount),
            "created_at": to_utc_z(self.created_at),
        }


class Bill(NumberedDocumentMixin, db.Model):
    """Vendor bill (BILL-...)."""
    __tablename__ = "bills"
    __table_args__ = ({"sqlite_autoincrement": True},)


class Payment(NumberedDocumentMixin, db.Model):
    """Customer payment receipt (RCP-...)."""
    __tablename__ = "payments"
    __table_args__ = ({"sqlite_autoincrement": True},)


class VendorPayment(NumberedDocumentMixin, db.Model):
    """Payment made to a vendor (VPMT-...)."""
    __tablename__ = "vendor_payments"
    __table_args__ = ({"sqlite_autoincrement": True},)


class VendorCreditNote(NumberedDocumentMixin, db.Model):
    """Credit note received from a vendor (VCN-...)."""
    __tablename__ = "vendor_credit_notes"
    __table_args__ = ({"sqlite_autoincrement": True},)
