# Overview: Flask API routes for document number counters and numbered documents.

# backend/stockledger/routes/sequences.py
from flask import Blueprint, current_app, jsonify, request

from ..services import sequence_service
from ..services.errors import LedgerError
from ..validation import require_fields


sequences_bp = Blueprint("sequences", __name__, url_prefix="/api/sequences")
documents_bp = Blueprint("documents", __name__, url_prefix="/api/documents")


@sequences_bp.get("/<domain>")
def current_number_route(domain: str):
    """Preview the next number (?financial_year=2024-2025). Not a reservation."""
    try:
        result = sequence_service.current_number(domain, request.args.get("financial_year"))
        return jsonify(result), 200
    except LedgerError as e:
        return jsonify(e.to_dict()), e.status_code


@sequences_bp.post("/<domain>")
def next_number_route(domain: str):
    """Issue the next number for the domain."""
    try:
        data = request.get_json(silent=True) or {}
        result = sequence_service.next_number(domain, data.get("financial_year"))
        return jsonify(result), 201

    except LedgerError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to issue sequence number")
        return jsonify({"error": "Internal server error"}), 500


@sequences_bp.patch("/<domain>")
def sync_route(domain: str):
    """Recompute the counter from stored document numbers (never lowers it)."""
    try:
        data = request.get_json(silent=True) or {}
        result = sequence_service.sync(domain, data.get("financial_year"))
        return jsonify(result), 200

    except LedgerError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to sync sequence")
        return jsonify({"error": "Internal server error"}), 500


@documents_bp.get("/<domain>")
def list_documents_route(domain: str):
    try:
        documents = sequence_service.list_documents(domain, request.args.get("financial_year"))
        return jsonify({"documents": [d.to_dict() for d in documents]}), 200
    except LedgerError as e:
        return jsonify(e.to_dict()), e.status_code


@documents_bp.post("/<domain>")
def create_document_route(domain: str):
    """
    Create a bill, receipt, vendor payment or vendor credit note.

    Request body:
    {
        "counterparty": str,
        "amount": number,
        "number": str (optional, allocated when omitted),
        "financial_year": str (optional)
    }
    """
    try:
        data = require_fields(request.get_json(silent=True), "counterparty")
        document = sequence_service.create_document(
            domain,
            data["counterparty"],
            data.get("amount"),
            number=data.get("number"),
            financial_year=data.get("financial_year"),
        )
        return jsonify({"document": document.to_dict()}), 201

    except LedgerError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to create document")
        return jsonify({"error": "Internal server error"}), 500
