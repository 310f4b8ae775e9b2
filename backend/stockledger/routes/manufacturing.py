# Overview: Flask API routes for user-to-admin product transfers and manufacturing completion.

# backend/stockledger/routes/manufacturing.py
"""
Product transfer and manufacturing completion routes.
"""
from flask import Blueprint, current_app, jsonify, request

from ..services import manufacturing_service
from ..services.errors import LedgerError
from ..validation import parse_choice, parse_id, require_fields


product_transfers_bp = Blueprint("product_transfers", __name__, url_prefix="/api/product-transfers")
manufacturing_bp = Blueprint("manufacturing", __name__, url_prefix="/api/manufacturing")


@product_transfers_bp.get("")
def list_transfers_route():
    try:
        user_id = request.args.get("user_id")
        status = request.args.get("status")
        transfers = manufacturing_service.list_transfers(
            user_id=parse_id(user_id, "user_id") if user_id else None,
            status=parse_choice(status, manufacturing_service.TRANSFER_STATUSES) if status else None,
        )
        return jsonify({"transfers": [t.to_dict() for t in transfers]}), 200
    except LedgerError as e:
        return jsonify(e.to_dict()), e.status_code


@product_transfers_bp.post("")
def create_transfer_route():
    """
    Send finished goods to the admin, consuming the user's raw material.

    Request body:
    {
        "user_id": int,
        "product_id": int,
        "quantity_sent": number,
        "notes": str (optional)
    }

    Returns:
        201: Transfer created (SENT)
        404: User or product not found
        409: Insufficient raw material in the user's inventory
        422: Product has no structure
    """
    try:
        data = require_fields(request.get_json(silent=True), "user_id", "product_id", "quantity_sent")
        transfer = manufacturing_service.create_transfer(
            user_id=parse_id(data["user_id"], "user_id"),
            product_id=parse_id(data["product_id"], "product_id"),
            quantity_sent=data["quantity_sent"],
            notes=data.get("notes"),
        )
        return jsonify({"transfer": transfer.to_dict()}), 201

    except LedgerError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to create product transfer")
        return jsonify({"error": "Internal server error"}), 500


@product_transfers_bp.get("/<int:transfer_id>")
def get_transfer_route(transfer_id: int):
    try:
        return jsonify({"transfer": manufacturing_service.get_transfer(transfer_id).to_dict()}), 200
    except LedgerError as e:
        return jsonify(e.to_dict()), e.status_code


@product_transfers_bp.put("/<int:transfer_id>")
def resolve_transfer_route(transfer_id: int):
    """
    Accept, reject or cancel a SENT transfer.

    Request body:
    {
        "status": "RECEIVED" | "REJECTED" | "CANCELLED",
        "notes": str (optional),
        "received_by": str (optional)
    }

    Returns:
        200: Transfer resolved
        409: Transfer already resolved
    """
    try:
        data = require_fields(request.get_json(silent=True), "status")
        transfer = manufacturing_service.resolve_transfer(
            transfer_id,
            data["status"],
            notes=data.get("notes"),
            received_by=data.get("received_by"),
        )
        return jsonify({"transfer": transfer.to_dict()}), 200

    except LedgerError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to resolve product transfer")
        return jsonify({"error": "Internal server error"}), 500


@product_transfers_bp.get("/<int:transfer_id>/consumptions")
def transfer_consumptions_route(transfer_id: int):
    try:
        manufacturing_service.get_transfer(transfer_id)
        rows = manufacturing_service.list_consumptions(product_transfer_id=transfer_id)
        return jsonify({"consumptions": [row.to_dict() for row in rows]}), 200
    except LedgerError as e:
        return jsonify(e.to_dict()), e.status_code


@manufacturing_bp.post("/complete")
def complete_manufacturing_route():
    """
    Record a completed production run.

    Request body:
    {
        "product_id": int,
        "quantity_produced": number,
        "user_id": int,
        "transfer_ids": [int, ...],
        "notes": str (optional)
    }
    """
    try:
        data = require_fields(
            request.get_json(silent=True),
            "product_id", "quantity_produced", "user_id", "transfer_ids",
        )
        run = manufacturing_service.complete_manufacturing(
            product_id=parse_id(data["product_id"], "product_id"),
            quantity_produced=data["quantity_produced"],
            user_id=parse_id(data["user_id"], "user_id"),
            transfer_ids=data["transfer_ids"],
            notes=data.get("notes"),
        )
        return jsonify({"manufacturing_run": run.to_dict()}), 201

    except LedgerError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to complete manufacturing")
        return jsonify({"error": "Internal server error"}), 500
