# Overview: Flask API routes for invoices; stock reservation happens in invoice_service.

# backend/stockledger/routes/invoices.py
from flask import Blueprint, current_app, jsonify, request

from ..services import invoice_service
from ..services.errors import InvalidArgument, LedgerError
from ..validation import require_fields


invoices_bp = Blueprint("invoices", __name__, url_prefix="/api/invoices")


@invoices_bp.get("")
def list_invoices_route():
    try:
        invoices = invoice_service.list_invoices(status=request.args.get("status"))
        return jsonify({"invoices": [inv.to_dict() for inv in invoices]}), 200
    except LedgerError as e:
        return jsonify(e.to_dict()), e.status_code


@invoices_bp.post("")
def create_invoice_route():
    """
    Create an invoice, deducting its items from finished goods stock.

    Request body:
    {
        "items": [{"product_id": int, "quantity": number, "price": number (optional)}, ...],
        "status": str (optional, default DRAFT),
        "customer_name": str (optional),
        "invoice_number": str (optional, allocated when omitted),
        "subtotal" / "total" / "advance_paid" / "balance_due": number (optional)
    }

    Returns:
        201: Invoice created
        409: Insufficient stock (nothing is created)
    """
    try:
        data = require_fields(request.get_json(silent=True), "items")
        invoice = invoice_service.create_invoice(
            items=data["items"],
            status=data.get("status") or invoice_service.INVOICE_STATUS_DRAFT,
            customer_name=data.get("customer_name"),
            subtotal=data.get("subtotal"),
            total=data.get("total"),
            advance_paid=data.get("advance_paid"),
            balance_due=data.get("balance_due"),
            invoice_number=data.get("invoice_number"),
        )
        return jsonify({"invoice": invoice.to_dict()}), 201

    except LedgerError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to create invoice")
        return jsonify({"error": "Internal server error"}), 500


@invoices_bp.get("/<int:invoice_id>")
def get_invoice_route(invoice_id: int):
    try:
        return jsonify({"invoice": invoice_service.get_invoice(invoice_id).to_dict()}), 200
    except LedgerError as e:
        return jsonify(e.to_dict()), e.status_code


@invoices_bp.put("/<int:invoice_id>")
def update_invoice_route(invoice_id: int):
    """
    Replace items and/or change status.

    Request body (at least one of):
    {
        "items": [...],
        "status": str,
        "balance_due": number (optional)
    }

    Items are replaced before the status change when both are given; both
    happen in one transaction.
    """
    try:
        data = request.get_json(silent=True)
        if not isinstance(data, dict) or ("items" not in data and "status" not in data):
            raise InvalidArgument("items or status is required")

        invoice = invoice_service.update_invoice(
            invoice_id,
            items=data.get("items"),
            status=data.get("status"),
            balance_due=data.get("balance_due"),
        )

        return jsonify({"invoice": invoice.to_dict()}), 200

    except LedgerError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to update invoice")
        return jsonify({"error": "Internal server error"}), 500


@invoices_bp.delete("/<int:invoice_id>")
def delete_invoice_route(invoice_id: int):
    try:
        invoice_service.delete_invoice(invoice_id)
        return jsonify({"deleted": invoice_id}), 200

    except LedgerError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to delete invoice")
        return jsonify({"error": "Internal server error"}), 500
