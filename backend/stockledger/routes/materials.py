# Overview: Flask API routes for raw materials, users and user inventories.

# backend/stockledger/routes/materials.py

from flask import Blueprint, current_app, jsonify, request

from ..services import ledger_service, stock_service
from ..services.errors import LedgerError
from ..validation import parse_delta, parse_id, parse_opening_quantity, require_fields


materials_bp = Blueprint("raw_materials", __name__, url_prefix="/api/raw-materials")
users_bp = Blueprint("users", __name__, url_prefix="/api/users")
user_inventory_bp = Blueprint("user_inventory", __name__, url_prefix="/api/user-inventory")


@materials_bp.get("")
def list_raw_materials_route():
    """Raw materials with a stock summary (available, sent to users, used, held by users)."""
    try:
        return jsonify({"raw_materials": stock_service.raw_material_stock_summary()}), 200
    except Exception:
        current_app.logger.exception("Failed to list raw materials")
        return jsonify({"error": "Internal server error"}), 500


@materials_bp.post("")
def create_raw_material_route():
    """
    Create a raw material.

    Request body:
    {
        "name": str,
        "unit": str (optional),
        "quantity": number (optional opening stock)
    }
    """
    try:
        data = require_fields(request.get_json(silent=True), "name")
        material = stock_service.create_raw_material(
            name=data["name"],
            unit=data.get("unit"),
            quantity=parse_opening_quantity(data.get("quantity")),
            actor_user_id=parse_id(data["actor_user_id"], "actor_user_id") if data.get("actor_user_id") else None,
        )
        return jsonify({"raw_material": material.to_dict()}), 201

    except LedgerError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to create raw material")
        return jsonify({"error": "Internal server error"}), 500


@materials_bp.get("/<int:material_id>")
def get_raw_material_route(material_id: int):
    try:
        material = stock_service.get_raw_material(material_id)
        return jsonify({"raw_material": material.to_dict()}), 200
    except LedgerError as e:
        return jsonify(e.to_dict()), e.status_code


@materials_bp.post("/<int:material_id>/adjust")
def adjust_raw_material_route(material_id: int):
    """
    Restock or write off central stock.

    Request body:
    {
        "delta": number (positive restock, negative write-off),
        "note": str (optional)
    }
    """
    try:
        data = require_fields(request.get_json(silent=True), "delta")
        material = stock_service.adjust_raw_material_stock(
            material_id,
            parse_delta(data["delta"]),
            note=data.get("note"),
            actor_user_id=parse_id(data["actor_user_id"], "actor_user_id") if data.get("actor_user_id") else None,
        )
        return jsonify({"raw_material": material.to_dict()}), 200

    except LedgerError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to adjust raw material stock")
        return jsonify({"error": "Internal server error"}), 500


@materials_bp.get("/<int:material_id>/movements")
def raw_material_movements_route(material_id: int):
    movements = ledger_service.list_stock_movements(raw_material_id=material_id)
    return jsonify({"movements": [m.to_dict() for m in movements]}), 200


@users_bp.get("")
def list_users_route():
    users = stock_service.list_users()
    return jsonify({"users": [u.to_dict() for u in users]}), 200


@users_bp.post("")
def create_user_route():
    """
    Create a user.

    Request body:
    {
        "name": str,
        "email": str,
        "is_admin": bool (optional)
    }
    """
    try:
        data = require_fields(request.get_json(silent=True), "name", "email")
        user = stock_service.create_user(data["name"], data["email"], bool(data.get("is_admin")))
        return jsonify({"user": user.to_dict()}), 201

    except LedgerError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to create user")
        return jsonify({"error": "Internal server error"}), 500


@user_inventory_bp.get("/<int:user_id>")
def get_user_inventory_route(user_id: int):
    """A user's personal raw material balances."""
    try:
        rows = stock_service.get_user_inventory(user_id)
        return jsonify({"user_id": user_id, "inventory": [row.to_dict() for row in rows]}), 200
    except LedgerError as e:
        return jsonify(e.to_dict()), e.status_code
