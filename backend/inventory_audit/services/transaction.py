# Overview: Transaction boundary shared by every mutating service operation.

from __future__ import annotations

from contextlib import contextmanager

from sqlalchemy.exc import IntegrityError

from ..errors import ConflictError
from ..extensions import db


@contextmanager
def atomic(conflict_message: str = "Duplicate or conflicting record"):
    """
    Run a block of writes as one unit of work.

    Commits db.session when the block finishes; rolls back and re-raises on
    any exception so partial writes are never visible. A unique/foreign-key
    violation (IntegrityError) surfaces as ConflictError.

    No retry: the caller decides whether to resubmit.
    """
    try:
        yield db.session
        db.session.commit()
    except IntegrityError as exc:
        db.session.rollback()
        raise ConflictError(conflict_message, details=str(exc.orig)) from exc
    except Exception:
        db.session.rollback()
        raise
