# Overview: Typed failures raised by the service layer; routes map them to HTTP responses.

"""
Stock ledger error taxonomy.

Every failure raised by a service carries:
- status_code: HTTP status the route layer responds with
- code: stable machine-readable identifier
- details: structured data (entity, available, requested) for display

A raised LedgerError always means the surrounding transaction was rolled back.
"""
from __future__ import annotations

from decimal import Decimal


def _jsonable(value):
    if isinstance(value, Decimal):
        return str(value)
    return value


class LedgerError(Exception):
    """Base class for request-scoped stock ledger failures."""
    status_code = 400
    code = "ledger_error"

    def __init__(self, message: str, details: dict | None = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def to_dict(self) -> dict:
        return {
            "error": self.message,
            "code": self.code,
            "details": {k: _jsonable(v) for k, v in self.details.items()},
        }


class NotFound(LedgerError):
    status_code = 404
    code = "not_found"

    def __init__(self, entity: str, entity_id):
        super().__init__(
            f"{entity} {entity_id} not found",
            details={"entity": entity, "id": entity_id},
        )


class InvalidArgument(LedgerError, ValueError):
    """400-level input problem (missing field, non-positive quantity, unknown status)."""
    status_code = 400
    code = "invalid_argument"


class NoStructureDefined(LedgerError):
    status_code = 422
    code = "no_structure_defined"

    def __init__(self, product_id: int, product_name: str | None = None):
        label = product_name or f"product {product_id}"
        super().__init__(
            f"Product structure not defined for {label}. Cannot produce product.",
            details={"product_id": product_id},
        )


class InsufficientStock(LedgerError):
    """Central raw material or finished-goods balance is short."""
    status_code = 409
    code = "insufficient_stock"

    def __init__(self, entity: str, name: str, available: Decimal, requested: Decimal):
        super().__init__(
            f"Insufficient stock for {name}. Available: {available}, Requested: {requested}",
            details={entity: name, "available": available, "requested": requested},
        )
        self.available = available
        self.requested = requested


class InsufficientMaterial(LedgerError):
    """A user's personal raw material balance is missing or short."""
    status_code = 409
    code = "insufficient_material"

    def __init__(self, material: str, required: Decimal, available: Decimal, unit: str | None = None):
        suffix = f" {unit}" if unit else ""
        super().__init__(
            f"Insufficient {material}. Required: {required}{suffix}, Available: {available}{suffix}",
            details={"material": material, "required": required, "available": available},
        )
        self.required = required
        self.available = available


class AlreadyResolved(LedgerError):
    status_code = 409
    code = "already_resolved"

    def __init__(self, transfer_id: int, status: str):
        super().__init__(
            f"Product transfer {transfer_id} is already {status}",
            details={"transfer_id": transfer_id, "status": status},
        )


class InvalidTransition(LedgerError):
    """Requested status change is not allowed from the record's current status."""
    status_code = 409
    code = "invalid_transition"


class ConflictingUnique(LedgerError):
    """Duplicate document number or duplicate BOM pair."""
    status_code = 409
    code = "conflicting_unique"


class StorageFailure(LedgerError):
    """Underlying transaction aborted or connection error."""
    status_code = 503
    code = "storage_failure"
