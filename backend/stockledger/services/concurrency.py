# Overview: Transaction boundary and row locking shared by every mutating service.

from __future__ import annotations

from flask import current_app
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from ..extensions import db
from .errors import ConflictingUnique, LedgerError, StorageFailure


def lock_for_update(query):
    """
    Apply row-level locking for critical operations.

    NOTE: SQLite ignores SELECT ... FOR UPDATE, but other DBs will honor it.
    """
    return query.with_for_update()


def insert_if_absent(model, values: dict, index_elements: list[str]) -> None:
    """
    INSERT ... ON CONFLICT DO NOTHING on the given unique key.

    Two concurrent callers creating the same keyed row both succeed; exactly
    one row exists afterwards. Dialects without ON CONFLICT fall back to
    check-then-insert (a race there surfaces as ConflictingUnique).
    """
    dialect = db.session.get_bind().dialect.name
    if dialect == "postgresql":
        from sqlalchemy.dialects.postgresql import insert
    elif dialect == "sqlite":
        from sqlalchemy.dialects.sqlite import insert
    else:
        key = {name: values[name] for name in index_elements}
        if db.session.query(model).filter_by(**key).first() is None:
            db.session.add(model(**values))
            db.session.flush()
        return

    stmt = insert(model).values(**values).on_conflict_do_nothing(index_elements=index_elements)
    db.session.execute(stmt)


def run_in_transaction(func):
    """
    Execute func() as one transaction: commit on success, full rollback on failure.

    - LedgerError propagates unchanged after rollback.
    - IntegrityError -> ConflictingUnique
    - any other SQLAlchemyError -> StorageFailure

    No retry: the caller decides whether to resubmit.
    """
    try:
        result = func()
        db.session.commit()
        return result
    except LedgerError as exc:
        db.session.rollback()
        current_app.logger.warning("Refused (%s): %s", exc.code, exc.message)
        raise
    except IntegrityError as exc:
        db.session.rollback()
        current_app.logger.warning("Unique constraint violated: %s", exc.orig)
        raise ConflictingUnique(
            "Unique constraint violated",
            details={"reason": str(exc.orig)},
        ) from exc
    except SQLAlchemyError as exc:
        db.session.rollback()
        current_app.logger.error("Transaction aborted: %s", exc)
        raise StorageFailure(
            "Transaction aborted by the database",
            details={"reason": str(exc)},
        ) from exc
    except Exception:
        db.session.rollback()
        raise
