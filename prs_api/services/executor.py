from __future__ import annotations

import logging
import time
from typing import Any, Callable, TypeVar

from psycopg2 import errors as pg_errors
from sqlalchemy import func, select
from sqlalchemy.exc import DBAPIError, SQLAlchemyError
from sqlalchemy.orm import Session

from .errors import QueryExecutionError, QueryTimeoutError, Stage

logger = logging.getLogger(__name__)

T = TypeVar("T")

QUERY_CANCELED_PGCODE = "57014"


class Deadline:
    """Absolute point on a monotonic clock by which a request must finish."""

    def __init__(self, expires_at: float, *, clock: Callable[[], float] = time.monotonic) -> None:
        self.expires_at = expires_at
        self._clock = clock

    @classmethod
    def after(cls, seconds: float, *, clock: Callable[[], float] = time.monotonic) -> "Deadline":
        return cls(clock() + seconds, clock=clock)

    def remaining(self) -> float:
        return max(self.expires_at - self._clock(), 0.0)

    def remaining_ms(self) -> int:
        return int(self.remaining() * 1000)

    def check(self, stage: Stage) -> int:
        """Whole milliseconds left; under one counts as expired."""
        budget_ms = self.remaining_ms()
        if budget_ms <= 0:
            raise QueryTimeoutError("Deadline expired before the query could run", stage=stage)
        return budget_ms


def _is_cancelled(exc: DBAPIError) -> bool:
    original = getattr(exc, "orig", None)
    if isinstance(original, pg_errors.QueryCanceled):
        return True
    return getattr(original, "pgcode", None) == QUERY_CANCELED_PGCODE


class QueryRunner:
    """Runs read-only work in one transaction bounded by the caller's deadline.

    The remaining budget becomes a transaction-local ``statement_timeout``; the
    transaction is always rolled back afterwards since nothing is written.
    """

    def __init__(self, session: Session) -> None:
        self.session = session

    def run(self, work: Callable[[Session], T], *, deadline: Deadline, stage: Stage) -> T:
        # One clock read: a statement_timeout of 0 would disable the limit.
        budget_ms = deadline.check(stage)
        try:
            self.session.execute(select(func.set_config("statement_timeout", str(max(budget_ms, 1)), True)))
            return work(self.session)
        except DBAPIError as exc:
            if _is_cancelled(exc):
                raise QueryTimeoutError("Dashboard query exceeded its deadline", stage=stage) from exc
            raise QueryExecutionError(f"Dashboard query failed: {exc.orig}", stage=stage) from exc
        except SQLAlchemyError as exc:
            raise QueryExecutionError(f"Dashboard query failed: {exc}", stage=stage) from exc
        finally:
            self._rollback()

    def fetch_many(self, *statements: Any, deadline: Deadline, stage: Stage) -> list[list[Any]]:
        """Run several reads in one transaction, sharing the deadline."""
        return self.run(
            lambda session: [list(session.execute(statement).mappings().all()) for statement in statements],
            deadline=deadline,
            stage=stage,
        )

    def _rollback(self) -> None:
        try:
            self.session.rollback()
        except SQLAlchemyError:
            logger.exception("Failed to roll back dashboard read transaction")
