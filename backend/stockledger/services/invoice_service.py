# backend/stockledger/services/invoice_service.py
"""
Invoice stock reservation: couples the invoice lifecycle to Product.quantity.

WHY: Goods on an invoice are committed to a sale, so they must leave
finished goods stock when the invoice is written and come back if the sale
is cancelled or the invoice is deleted. Every reservation is taken and
released exactly once.

RULES:
1. Create: each line is deducted from Product.quantity, whatever the
   initial status, except CANCELLED. Insufficient stock on any line aborts
   the whole invoice.
2. Status change to CANCELLED: reservation released (stock restored).
3. Status change out of CANCELLED: reservation taken again (with checks).
4. Any other status change (DRAFT <-> FINAL/PAID/UNPAID/ADVANCE): no stock effect.
5. Delete: reservation released if held, then invoice and lines removed.

The stock_reserved flag on the invoice records whether its lines are
currently deducted; release and reserve flip it.
"""
from __future__ import annotations

from decimal import Decimal

from flask import current_app

from ..extensions import db
from ..models import Invoice, InvoiceItem
from ..validation import parse_choice, parse_id, parse_money, parse_quantity
from .concurrency import lock_for_update, run_in_transaction
from .errors import ConflictingUnique, InvalidArgument, NotFound
from .sequence_service import allocate_number
from .stock_service import credit_product, debit_product, get_product


# Invoice status constants
INVOICE_STATUS_DRAFT = "DRAFT"
INVOICE_STATUS_FINAL = "FINAL"
INVOICE_STATUS_PAID = "PAID"
INVOICE_STATUS_UNPAID = "UNPAID"
INVOICE_STATUS_ADVANCE = "ADVANCE"
INVOICE_STATUS_CANCELLED = "CANCELLED"

INVOICE_STATUSES = (
    INVOICE_STATUS_DRAFT,
    INVOICE_STATUS_FINAL,
    INVOICE_STATUS_PAID,
    INVOICE_STATUS_UNPAID,
    INVOICE_STATUS_ADVANCE,
    INVOICE_STATUS_CANCELLED,
)

CENTS = Decimal("0.01")


def _parse_items(items) -> list[dict]:
    if not isinstance(items, list) or not items:
        raise InvalidArgument("At least one invoice item is required")

    parsed = []
    for index, item in enumerate(items):
        if not isinstance(item, dict):
            raise InvalidArgument(f"Item {index} must be an object")
        quantity = parse_quantity(item.get("quantity"), f"items[{index}].quantity")
        price = parse_money(item.get("price"), f"items[{index}].price", default=None)
        parsed.append({
            "product_id": parse_id(item.get("product_id"), f"items[{index}].product_id"),
            "quantity": quantity,
            "price": price,
            "name": item.get("name"),
            "notes": item.get("notes"),
        })
    return parsed


def _build_lines(parsed: list[dict]) -> list[InvoiceItem]:
    """Invoice lines with name/price defaulted from the product."""
    lines = []
    for entry in parsed:
        product = get_product(entry["product_id"])
        price = entry["price"] if entry["price"] is not None else Decimal(product.price or 0)
        lines.append(InvoiceItem(
            product_id=product.id,
            name=entry["name"] or product.name,
            quantity=entry["quantity"],
            price=price,
            total=(price * entry["quantity"]).quantize(CENTS),
            notes=entry["notes"],
        ))
    return lines


def _reserve(invoice: Invoice, lines) -> None:
    for line in lines:
        debit_product(
            line.product_id,
            Decimal(line.quantity),
            event_type="invoice.reserved",
            reference_type="invoice",
            reference_id=invoice.id,
            note=f"Invoice {invoice.invoice_number}",
        )
    invoice.stock_reserved = True


def _release(invoice: Invoice, lines) -> None:
    for line in lines:
        credit_product(
            line.product_id,
            Decimal(line.quantity),
            event_type="invoice.released",
            reference_type="invoice",
            reference_id=invoice.id,
            note=f"Invoice {invoice.invoice_number}",
        )
    invoice.stock_reserved = False


def _get_locked(invoice_id: int) -> Invoice:
    invoice = lock_for_update(db.session.query(Invoice).filter_by(id=invoice_id)).first()
    if not invoice:
        raise NotFound("Invoice", invoice_id)
    return invoice


def create_invoice(
    items: list[dict],
    status: str = INVOICE_STATUS_DRAFT,
    customer_name: str | None = None,
    subtotal=None,
    total=None,
    advance_paid=None,
    balance_due=None,
    invoice_number: str | None = None,
) -> Invoice:
    """
    Create an invoice and reserve its goods in one transaction.

    Args:
        items: [{"product_id": int, "quantity": number, "price"?: number, "name"?: str}, ...]
        status: Initial status (default DRAFT)
        invoice_number: Explicit number; allocated from the INVOICE sequence when omitted

    Raises:
        InvalidArgument, NotFound, InsufficientStock, ConflictingUnique
    """
    status = parse_choice(status or INVOICE_STATUS_DRAFT, INVOICE_STATUSES, "status")
    parsed = _parse_items(items)
    subtotal = parse_money(subtotal, "subtotal", default=None)
    total = parse_money(total, "total", default=None)
    advance_paid = parse_money(advance_paid, "advance_paid", default=Decimal("0"))
    balance_due = parse_money(balance_due, "balance_due", default=None)

    def _op():
        lines = _build_lines(parsed)
        computed = sum((Decimal(line.total) for line in lines), Decimal("0"))

        if invoice_number is None:
            _, number = allocate_number("INVOICE")
        else:
            number = invoice_number.strip()
            if db.session.query(Invoice).filter_by(invoice_number=number).first():
                raise ConflictingUnique(
                    f"Invoice number {number} already exists",
                    details={"invoice_number": number},
                )

        invoice_total = total if total is not None else computed
        if status == INVOICE_STATUS_PAID:
            due = Decimal("0")
        elif balance_due is not None:
            due = balance_due
        else:
            due = max(invoice_total - advance_paid, Decimal("0"))

        invoice = Invoice(
            invoice_number=number,
            status=status,
            customer_name=customer_name,
            subtotal=subtotal if subtotal is not None else computed,
            total=invoice_total,
            advance_paid=advance_paid,
            balance_due=due,
            stock_reserved=False,
        )
        invoice.items = lines
        db.session.add(invoice)
        db.session.flush()  # Get ID

        if status != INVOICE_STATUS_CANCELLED:
            _reserve(invoice, lines)

        db.session.flush()
        return invoice

    invoice = run_in_transaction(_op)
    current_app.logger.info(
        "Invoice %s created with %d item(s), status %s",
        invoice.invoice_number, len(invoice.items), invoice.status,
    )
    return invoice


def _apply_status(invoice: Invoice, status: str, balance_due) -> None:
    previous = invoice.status

    if status == INVOICE_STATUS_CANCELLED and invoice.stock_reserved:
        _release(invoice, invoice.items)
    elif status != INVOICE_STATUS_CANCELLED and not invoice.stock_reserved:
        _reserve(invoice, invoice.items)

    invoice.status = status
    if status == INVOICE_STATUS_PAID:
        invoice.balance_due = Decimal("0")
    elif balance_due is not None:
        invoice.balance_due = balance_due

    db.session.flush()
    current_app.logger.info("Invoice %s status %s -> %s", invoice.invoice_number, previous, status)


def _apply_items(invoice: Invoice, parsed) -> None:
    held = invoice.stock_reserved

    if held:
        _release(invoice, invoice.items)

    new_lines = _build_lines(parsed)
    invoice.items = new_lines
    db.session.flush()

    if held:
        _reserve(invoice, new_lines)

    computed = sum((Decimal(line.total) for line in new_lines), Decimal("0"))
    invoice.subtotal = computed
    invoice.total = computed
    if invoice.status == INVOICE_STATUS_PAID:
        invoice.balance_due = Decimal("0")
    else:
        invoice.balance_due = max(computed - Decimal(invoice.advance_paid or 0), Decimal("0"))

    db.session.flush()


def update_invoice_status(invoice_id: int, status: str, balance_due=None) -> Invoice:
    """
    Change an invoice's status, releasing or re-taking its reservation
    only when the change crosses the CANCELLED boundary.
    """
    return update_invoice(invoice_id, status=status, balance_due=balance_due)


def replace_invoice_items(invoice_id: int, items: list[dict]) -> Invoice:
    """
    Swap an invoice's lines. A held reservation is released for the old
    lines and taken for the new ones in the same transaction, so a shortfall
    on any new line leaves the invoice and stock untouched.
    """
    return update_invoice(invoice_id, items=items)


def update_invoice(
    invoice_id: int,
    items: list[dict] | None = None,
    status: str | None = None,
    balance_due=None,
) -> Invoice:
    """
    Replace lines and/or change status as one transaction.

    Lines are swapped first, then the status change applies to the new
    lines. A shortfall in either step rolls back both.

    Raises:
        InvalidArgument, NotFound, InsufficientStock
    """
    if items is None and status is None:
        raise InvalidArgument("items or status is required")
    parsed = _parse_items(items) if items is not None else None
    status = parse_choice(status, INVOICE_STATUSES, "status") if status is not None else None
    balance_due = parse_money(balance_due, "balance_due", default=None)

    def _op():
        invoice = _get_locked(invoice_id)
        if parsed is not None:
            _apply_items(invoice, parsed)
        if status is not None:
            _apply_status(invoice, status, balance_due)
        return invoice

    return run_in_transaction(_op)


def delete_invoice(invoice_id: int) -> None:
    """Delete an invoice, first returning its goods to stock if reserved."""
    def _op():
        invoice = _get_locked(invoice_id)
        number = invoice.invoice_number
        if invoice.stock_reserved:
            _release(invoice, invoice.items)
        db.session.delete(invoice)
        db.session.flush()
        return number

    number = run_in_transaction(_op)
    current_app.logger.info("Invoice %s deleted", number)


def get_invoice(invoice_id: int) -> Invoice:
    invoice = db.session.get(Invoice, invoice_id)
    if not invoice:
        raise NotFound("Invoice", invoice_id)
    return invoice


def list_invoices(status: str | None = None) -> list[Invoice]:
    q = db.session.query(Invoice)
    if status:
        q = q.filter(Invoice.status == parse_choice(status, INVOICE_STATUSES, "status"))
    return q.order_by(Invoice.created_at.desc(), Invoice.id.desc()).all()
