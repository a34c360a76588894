"""Infrastructure faults raised by the redemption engine.

Expected rejections (unknown code, expired code, ...) are returned as values,
never raised. Only the faults below propagate as exceptions.
"""

from contextlib import contextmanager

from sqlalchemy.exc import DBAPIError, DisconnectionError, OperationalError


class RedemptionError(Exception):
    """Base class for redemption engine faults."""


class StoreUnavailable(RedemptionError):
    """The code store could not be reached or is contended. Safe to retry."""


class InternalInconsistency(RedemptionError):
    """A committed or about-to-commit state violates a store invariant."""


class CodeIssueError(Exception):
    """An operator-requested code could not be issued."""


@contextmanager
def store_guard(db, operation: str):
    """Translate transient database failures into StoreUnavailable."""
    try:
        yield
    except (OperationalError, DisconnectionError) as exc:
        db.rollback()
        raise StoreUnavailable(f"{operation}: access code store unavailable") from exc
    except DBAPIError as exc:
        if exc.connection_invalidated:
            db.rollback()
            raise StoreUnavailable(f"{operation}: connection lost") from exc
        raise
