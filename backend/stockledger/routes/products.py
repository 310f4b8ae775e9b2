# Overview: Flask API routes for finished goods and their bills of material.

# backend/stockledger/routes/products.py
from flask import Blueprint, current_app, jsonify, request

from ..services import bom_service, ledger_service, stock_service
from ..services.errors import LedgerError
from ..validation import (
    parse_delta,
    parse_id,
    parse_money,
    parse_opening_quantity,
    parse_quantity,
    require_fields,
)


products_bp = Blueprint("products", __name__, url_prefix="/api/products")
structures_bp = Blueprint("product_structures", __name__, url_prefix="/api/product-structures")


@products_bp.get("")
def list_products_route():
    products = stock_service.list_products()
    return jsonify({"products": [p.to_dict() for p in products]}), 200


@products_bp.post("")
def create_product_route():
    """
    Create a finished good.

    Request body:
    {
        "name": str,
        "price": number (optional),
        "cost_price": number (optional),
        "quantity": number (optional opening stock)
    }
    """
    try:
        data = require_fields(request.get_json(silent=True), "name")
        product = stock_service.create_product(
            name=data["name"],
            price=parse_money(data.get("price"), "price", default=0),
            cost_price=parse_money(data.get("cost_price"), "cost_price"),
            quantity=parse_opening_quantity(data.get("quantity")),
        )
        return jsonify({"product": product.to_dict()}), 201

    except LedgerError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to create product")
        return jsonify({"error": "Internal server error"}), 500


@products_bp.get("/<int:product_id>")
def get_product_route(product_id: int):
    try:
        return jsonify({"product": stock_service.get_product(product_id).to_dict()}), 200
    except LedgerError as e:
        return jsonify(e.to_dict()), e.status_code


@products_bp.post("/<int:product_id>/adjust")
def adjust_product_route(product_id: int):
    """Manual finished goods correction. Body: {"delta": number, "note": str}"""
    try:
        data = require_fields(request.get_json(silent=True), "delta")
        product = stock_service.adjust_product_stock(
            product_id,
            parse_delta(data["delta"]),
            note=data.get("note"),
            actor_user_id=parse_id(data["actor_user_id"], "actor_user_id") if data.get("actor_user_id") else None,
        )
        return jsonify({"product": product.to_dict()}), 200

    except LedgerError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to adjust product stock")
        return jsonify({"error": "Internal server error"}), 500


@products_bp.get("/<int:product_id>/requirements")
def product_requirements_route(product_id: int):
    """Raw material needed for ?quantity= units (defaults to 1)."""
    try:
        quantity = parse_quantity(request.args.get("quantity", "1"))
        requirements = bom_service.resolve_bom(product_id, quantity)
        return jsonify({
            "product_id": product_id,
            "quantity": str(quantity),
            "requirements": [r.to_dict() for r in requirements],
        }), 200
    except LedgerError as e:
        return jsonify(e.to_dict()), e.status_code


@products_bp.get("/<int:product_id>/movements")
def product_movements_route(product_id: int):
    movements = ledger_service.list_stock_movements(product_id=product_id)
    return jsonify({"movements": [m.to_dict() for m in movements]}), 200


@structures_bp.get("")
def list_structures_route():
    return jsonify({"structures": bom_service.list_structures()}), 200


@structures_bp.post("")
def define_structure_route():
    """
    Add BOM lines to a product.

    Request body:
    {
        "product_id": int,
        "raw_materials": [{"raw_material_id": int, "quantity_required": number}, ...]
    }

    Returns:
        201: Lines created
        409: Structure already defined for a raw material
    """
    try:
        data = require_fields(request.get_json(silent=True), "product_id", "raw_materials")
        lines = bom_service.define_structure(
            parse_id(data["product_id"], "product_id"),
            data["raw_materials"],
        )
        return jsonify({"structures": [line.to_dict() for line in lines]}), 201

    except LedgerError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to define product structure")
        return jsonify({"error": "Internal server error"}), 500


@structures_bp.put("/<int:structure_id>")
def update_structure_route(structure_id: int):
    try:
        data = require_fields(request.get_json(silent=True), "quantity_required")
        line = bom_service.update_structure_line(
            structure_id,
            parse_quantity(data["quantity_required"], "quantity_required"),
        )
        return jsonify({"structure": line.to_dict()}), 200

    except LedgerError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to update product structure")
        return jsonify({"error": "Internal server error"}), 500


@structures_bp.delete("/<int:structure_id>")
def delete_structure_route(structure_id: int):
    try:
        bom_service.delete_structure_line(structure_id)
        return jsonify({"deleted": structure_id}), 200
    except LedgerError as e:
        return jsonify(e.to_dict()), e.status_code
