# Overview: Per-financial-year document number counters with drift repair.

from __future__ import annotations

import re
from dataclasses import dataclass
from datetime import date
from decimal import Decimal

from flask import current_app
from sqlalchemy import update

from ..extensions import db
from ..models import Bill, Invoice, Payment, SequenceCounter, VendorCreditNote, VendorPayment
from ..time_utils import financial_year_for
from ..validation import parse_choice, parse_money
from .concurrency import insert_if_absent, run_in_transaction
from .errors import ConflictingUnique, InvalidArgument
"""
Sequence Invariants (authoritative)

- One counter row per (domain, financial_year); last_number is the last number issued.
- Issuing is one atomic step: insert-if-absent at 0, then UPDATE last_number = last_number + 1.
  Concurrent callers serialize on the row and never observe the same number.
- Peeking (current_number) never writes and never reserves.
- Wire format: {PREFIX}-{FINANCIAL_YEAR}-{NNNN}, e.g. BILL-2024-2025-0007.
- sync() recomputes the counter from stored document numbers; it never lowers it.
"""


@dataclass(frozen=True)
class SequenceDomain:
    name: str
    prefix: str
    model: type
    number_column: str


DOMAINS: dict[str, SequenceDomain] = {
    "BILL": SequenceDomain("BILL", "BILL", Bill, "number"),
    "RECEIPT": SequenceDomain("RECEIPT", "RCP", Payment, "number"),
    "VENDOR_PAYMENT": SequenceDomain("VENDOR_PAYMENT", "VPMT", VendorPayment, "number"),
    "VENDOR_CREDIT_NOTE": SequenceDomain("VENDOR_CREDIT_NOTE", "VCN", VendorCreditNote, "number"),
    "INVOICE": SequenceDomain("INVOICE", "INV", Invoice, "invoice_number"),
}

FINANCIAL_YEAR_RE = re.compile(r"^(\d{4})-(\d{4})$")
TRAILING_NUMBER_RE = re.compile(r"-(\d+)$")


def get_domain(domain: str) -> SequenceDomain:
    name = parse_choice(domain, DOMAINS.keys(), "domain")
    return DOMAINS[name]


def _resolve_year(financial_year: str | None) -> str:
    if financial_year is None:
        return financial_year_for(date.today())
    match = FINANCIAL_YEAR_RE.match(financial_year.strip()) if isinstance(financial_year, str) else None
    if not match or int(match.group(2)) != int(match.group(1)) + 1:
        raise InvalidArgument(
            "financial_year must look like 2024-2025",
            details={"financial_year": financial_year},
        )
    return financial_year.strip()


def format_number(domain: str, financial_year: str, number: int) -> str:
    seq = get_domain(domain)
    pad = current_app.config.get("SEQUENCE_PAD", 4)
    return f"{seq.prefix}-{financial_year}-{number:0{pad}d}"


def parse_number(text: str | None) -> int | None:
    """Trailing numeric suffix of a formatted document number, or None."""
    if not text:
        return None
    match = TRAILING_NUMBER_RE.search(text.strip())
    return int(match.group(1)) if match else None


def _counter_value(domain: str, financial_year: str) -> int | None:
    return (
        db.session.query(SequenceCounter.last_number)
        .filter_by(domain=domain, financial_year=financial_year)
        .scalar()
    )


def allocate_number(domain: str, financial_year: str | None = None) -> tuple[int, str]:
    """
    Issue the next number inside the caller's transaction (flush only).

    Returns (number, formatted_number).
    """
    seq = get_domain(domain)
    year = _resolve_year(financial_year)

    insert_if_absent(
        SequenceCounter,
        {"domain": seq.name, "financial_year": year, "last_number": 0},
        ["domain", "financial_year"],
    )
    db.session.execute(
        update(SequenceCounter)
        .where(
            SequenceCounter.domain == seq.name,
            SequenceCounter.financial_year == year,
        )
        .values(last_number=SequenceCounter.last_number + 1)
        .execution_options(synchronize_session="fetch")
    )
    number = _counter_value(seq.name, year)
    return number, format_number(seq.name, year, number)


def next_number(domain: str, financial_year: str | None = None) -> dict:
    """Atomically issue the next document number for a domain/year."""
    seq = get_domain(domain)
    year = _resolve_year(financial_year)

    def _op():
        number, formatted = allocate_number(seq.name, year)
        return {
            "domain": seq.name,
            "financial_year": year,
            "number": number,
            "formatted": formatted,
        }

    return run_in_transaction(_op)


def current_number(domain: str, financial_year: str | None = None) -> dict:
    """
    Preview the number the next call to next_number would issue.

    Not a reservation: a concurrent caller may take it first.
    """
    seq = get_domain(domain)
    year = _resolve_year(financial_year)
    last = _counter_value(seq.name, year) or 0
    return {
        "domain": seq.name,
        "financial_year": year,
        "last_number": last,
        "next_number": last + 1,
        "formatted": format_number(seq.name, year, last + 1),
    }


def sync(domain: str, financial_year: str | None = None) -> dict:
    """
    Repair drift between a counter and the documents actually stored.

    Scans the domain's documents numbered for the year, takes the highest
    trailing suffix and raises last_number to it. The counter is never
    lowered, so numbers already handed out cannot be reissued.
    """
    seq = get_domain(domain)
    year = _resolve_year(financial_year)
    column = getattr(seq.model, seq.number_column)
    prefix = f"{seq.prefix}-{year}-"

    def _op():
        numbers = db.session.query(column).filter(column.startswith(prefix, autoescape=True)).all()
        highest = 0
        for (text,) in numbers:
            parsed = parse_number(text)
            if parsed is not None and parsed > highest:
                highest = parsed

        insert_if_absent(
            SequenceCounter,
            {"domain": seq.name, "financial_year": year, "last_number": 0},
            ["domain", "financial_year"],
        )
        previous = _counter_value(seq.name, year) or 0
        db.session.execute(
            update(SequenceCounter)
            .where(
                SequenceCounter.domain == seq.name,
                SequenceCounter.financial_year == year,
                SequenceCounter.last_number < highest,
            )
            .values(last_number=highest)
            .execution_options(synchronize_session="fetch")
        )
        last = _counter_value(seq.name, year)
        return {
            "domain": seq.name,
            "financial_year": year,
            "highest_document_number": highest,
            "previous_last_number": previous,
            "last_number": last,
        }

    result = run_in_transaction(_op)
    if result["last_number"] != result["previous_last_number"]:
        current_app.logger.warning(
            "Sequence %s %s drifted: counter %s, highest stored %s",
            seq.name, year, result["previous_last_number"], result["highest_document_number"],
        )
    return result


# =============================================================================
# Numbered documents (bills, receipts, vendor payments, vendor credit notes)
# =============================================================================

def create_document(
    domain: str,
    counterparty: str,
    amount,
    number: str | None = None,
    financial_year: str | None = None,
):
    """
    Persist a numbered document, allocating its number unless one is supplied.

    A supplied number must be unique within the domain; it does not advance
    the counter (use sync() to reconcile).
    """
    seq = get_domain(domain)
    if seq.name == "INVOICE":
        raise InvalidArgument("Invoices are created through the invoice service")
    if not counterparty or not str(counterparty).strip():
        raise InvalidArgument("counterparty is required")
    amount = parse_money(amount, "amount", default=Decimal("0"))
    year = _resolve_year(financial_year)

    def _op():
        if number is None:
            _, formatted = allocate_number(seq.name, year)
        else:
            formatted = number.strip()
            if parse_number(formatted) is None:
                raise InvalidArgument(
                    "number must end with -<digits>",
                    details={"number": number},
                )
            if db.session.query(seq.model).filter_by(number=formatted).first():
                raise ConflictingUnique(
                    f"Document number {formatted} already exists",
                    details={"domain": seq.name, "number": formatted},
                )

        document = seq.model(
            number=formatted,
            financial_year=year,
            counterparty=str(counterparty).strip(),
            amount=amount,
        )
        db.session.add(document)
        db.session.flush()
        return document

    return run_in_transaction(_op)


def list_documents(domain: str, financial_year: str | None = None) -> list:
    seq = get_domain(domain)
    if seq.name == "INVOICE":
        raise InvalidArgument("Invoices are listed through the invoice service")
    q = db.session.query(seq.model)
    if financial_year is not None:
        q = q.filter(seq.model.financial_year == _resolve_year(financial_year))
    return q.order_by(seq.model.id.asc()).all()
