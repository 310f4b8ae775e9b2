# Overview: Flask API routes for admin-to-user raw material issuance.

# backend/stockledger/routes/issuance.py
"""Raw material issuance routes (raw-material-transfers)."""

from flask import Blueprint, current_app, jsonify, request

from ..services import issuance_service
from ..services.errors import InvalidArgument, LedgerError
from ..validation import parse_choice, parse_id, parse_quantity, require_fields


issuance_bp = Blueprint("raw_material_transfers", __name__, url_prefix="/api/raw-material-transfers")

# Statuses a caller may request directly; USED is only set by manufacturing completion
REQUESTABLE_STATUSES = (
    issuance_service.ISSUANCE_STATUS_RETURNED,
    issuance_service.ISSUANCE_STATUS_REPAIRING,
    issuance_service.ISSUANCE_STATUS_FINISHED,
)


@issuance_bp.get("")
def list_issuances_route():
    try:
        user_id = request.args.get("user_id")
        status = request.args.get("status")
        transfers = issuance_service.list_issuances(
            user_id=parse_id(user_id, "user_id") if user_id else None,
            status=parse_choice(status, issuance_service.ISSUANCE_STATUSES) if status else None,
        )
        return jsonify({"transfers": [t.to_dict() for t in transfers]}), 200
    except LedgerError as e:
        return jsonify(e.to_dict()), e.status_code


@issuance_bp.post("")
def issue_batch_route():
    """
    Issue raw materials to a user (all-or-nothing).

    Request body:
    {
        "user_id": int,
        "items": [{"raw_material_id": int, "quantity_issued": number}, ...],
        "notes": str (optional),
        "actor_user_id": int (optional)
    }

    Returns:
        201: Transfers created
        400: Invalid request
        404: User or raw material not found
        409: Insufficient stock
    """
    try:
        data = require_fields(request.get_json(silent=True), "user_id", "items")
        transfers = issuance_service.issue_batch(
            user_id=parse_id(data["user_id"], "user_id"),
            items=data["items"],
            notes=data.get("notes"),
            actor_user_id=parse_id(data["actor_user_id"], "actor_user_id") if data.get("actor_user_id") else None,
        )
        return jsonify({"transfers": [t.to_dict() for t in transfers]}), 201

    except LedgerError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to issue raw materials")
        return jsonify({"error": "Internal server error"}), 500


@issuance_bp.get("/<int:transfer_id>")
def get_issuance_route(transfer_id: int):
    try:
        return jsonify({"transfer": issuance_service.get_issuance(transfer_id).to_dict()}), 200
    except LedgerError as e:
        return jsonify(e.to_dict()), e.status_code


@issuance_bp.put("/<int:transfer_id>")
def update_issuance_route(transfer_id: int):
    """
    Move an issuance batch through the return/repair workflow.

    Request body:
    {
        "status": "RETURNED" | "REPAIRING" | "FINISHED",
        "quantity": number (optional, RETURNED only; defaults to the full batch),
        "notes": str (optional)
    }
    """
    try:
        data = require_fields(request.get_json(silent=True), "status")
        status = parse_choice(data["status"], REQUESTABLE_STATUSES)
        notes = data.get("notes")

        if status == issuance_service.ISSUANCE_STATUS_RETURNED:
            quantity = data.get("quantity")
            transfer = issuance_service.return_batch(
                transfer_id,
                quantity=parse_quantity(quantity) if quantity is not None else None,
                notes=notes,
                actor_user_id=parse_id(data["actor_user_id"], "actor_user_id") if data.get("actor_user_id") else None,
            )
        elif status == issuance_service.ISSUANCE_STATUS_REPAIRING:
            transfer = issuance_service.mark_repairing(transfer_id, notes)
        elif status == issuance_service.ISSUANCE_STATUS_FINISHED:
            transfer = issuance_service.mark_finished(transfer_id, notes)
        else:
            raise InvalidArgument(f"Unsupported status {status}")

        return jsonify({"transfer": transfer.to_dict()}), 200

    except LedgerError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to update raw material transfer")
        return jsonify({"error": "Internal server error"}), 500
