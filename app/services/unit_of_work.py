"""
Unit of work and structured results for ledger operations.

Every multi-step ledger operation runs inside exactly one ``UnitOfWork``.
The unit commits when the block exits cleanly and rolls back on any
exception, so a reallocation or a decision is either fully visible or not
visible at all.

Business refusals (``LedgerRefusal`` subclasses) are turned into a
``LedgerResult`` with ``status=False`` *after* the rollback; everything else
propagates.  Database errors surface as ``TransactionFailure``.

Usage:
    @ledger_operation
    def decide(uow, modification_id, decision, actor):
        store = LedgerStore(uow)
        ...
        return {"modification": mod.to_dict()}

    result = decide(42, "APPROVED", actor)   # -> LedgerResult
"""

from __future__ import annotations

import functools
import logging
from dataclasses import dataclass, field

from sqlalchemy.exc import SQLAlchemyError

from app.core.exceptions import LedgerRefusal, TransactionFailure
from app.models import db

logger = logging.getLogger(__name__)


@dataclass
class LedgerResult:
    """Outcome of a ledger operation.

    ``status`` is False only for business refusals; ``code`` then carries
    the refusal's machine-readable code (see ``app.utils.errors.E``).
    """

    status: bool
    message: str = "OK"
    code: str | None = None
    data: dict = field(default_factory=dict)

    @classmethod
    def ok(cls, data: dict | None = None, message: str = "OK") -> "LedgerResult":
        return cls(status=True, message=message, data=data or {})

    @classmethod
    def refused(cls, exc: LedgerRefusal) -> "LedgerResult":
        data = {}
        for attr in ("projected", "cap", "resource", "field", "value", "role"):
            value = getattr(exc, attr, None)
            if value is not None:
                data[attr] = value
        return cls(status=False, message=exc.message, code=exc.code, data=data)

    def to_dict(self) -> dict:
        body = {"status": self.status, "message": self.message}
        if self.code:
            body["code"] = self.code
        if self.data:
            body["data"] = self.data
        return body


class UnitOfWork:
    """Atomic boundary around the Flask-SQLAlchemy session."""

    def __init__(self, session=None):
        self.session = session or db.session

    def __enter__(self) -> "UnitOfWork":
        return self

    def __exit__(self, exc_type, exc, tb) -> bool:
        if exc_type is None:
            try:
                self.session.commit()
            except SQLAlchemyError as err:
                self.session.rollback()
                logger.error("Ledger commit failed: %s", err)
                raise TransactionFailure("Ledger transaction could not be committed") from err
            return False

        self.session.rollback()
        if isinstance(exc, SQLAlchemyError):
            logger.error("Ledger transaction rolled back: %s", exc)
            raise TransactionFailure("Ledger transaction failed") from exc
        return False

    def flush(self) -> None:
        """Push pending rows so generated ids and FK checks are available."""
        try:
            self.session.flush()
        except SQLAlchemyError as err:
            raise TransactionFailure("Ledger flush failed") from err

    def add(self, instance):
        self.session.add(instance)
        return instance


def ledger_operation(func):
    """Run ``func(uow, *args, **kwargs)`` in a fresh unit of work.

    The wrapped callable drops the ``uow`` parameter and returns a
    ``LedgerResult``.  The undecorated body stays reachable as
    ``wrapper.run_in(uow, ...)`` so operations can compose inside one
    transaction.
    """

    @functools.wraps(func)
    def wrapper(*args, **kwargs) -> LedgerResult:
        try:
            with UnitOfWork() as uow:
                data = func(uow, *args, **kwargs)
        except LedgerRefusal as exc:
            logger.info(
                "Ledger operation refused",
                extra={"operation": func.__name__, "code": exc.code, "reason": exc.message},
            )
            return LedgerResult.refused(exc)
        return LedgerResult.ok(data)

    wrapper.run_in = func
    return wrapper
