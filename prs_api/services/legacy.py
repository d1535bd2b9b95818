"""Reference implementation of the dashboard query.

Three count queries plus one page query over the same classified feed. Slower than
the single windowed statement, but it avoids window aggregates and CTE joins, so
it serves as the one-shot degradation path when the optimized statement fails.
"""

from __future__ import annotations

from typing import Any, Optional, Sequence

from sqlalchemy import func, select
from sqlalchemy.orm import Session
from sqlalchemy.sql import Executable, Select

from .errors import Stage
from .executor import Deadline, QueryRunner
from .filters import Predicate
from .pagination import (
    BucketTotals,
    Ordering,
    PageResult,
    bucket_clause,
    classified_select,
    page_offset,
    page_row_from_record,
)
from .visibility import RequestType, RequestUser, VisibilityPolicy


def run_legacy_query(
    runner: QueryRunner,
    feed: Select,
    *,
    predicates: Sequence[Predicate],
    policy: VisibilityPolicy,
    user: RequestUser,
    request_type: Optional[RequestType],
    ordering: Ordering,
    limit: int,
    page: int,
    deadline: Deadline,
    orphans: Optional[Executable] = None,
) -> tuple[PageResult, list[Any]]:
    """Page the feed the slow way. ``orphans``, when given, is read in the same transaction."""
    filtered = classified_select(feed, predicates=predicates, policy=policy, user=user).subquery("filtered")
    f = filtered.c

    def count(session: Session, *criteria) -> int:
        return int(session.execute(select(func.count()).select_from(filtered).where(*criteria)).scalar_one())

    def work(session: Session) -> tuple[PageResult, list[Any]]:
        totals = BucketTotals(
            all=count(session),
            my_request=count(session, f.is_my_request),
            my_approval=count(session, f.is_my_approval),
        )
        statement = (
            select(*f)
            .where(bucket_clause(f, request_type))
            .order_by(*ordering.clauses(f))
            .limit(limit)
            .offset(page_offset(page, limit))
        )
        rows = [page_row_from_record(record) for record in session.execute(statement).mappings()]
        orphan_records = [] if orphans is None else list(session.execute(orphans).mappings().all())
        return PageResult(rows=rows, totals=totals), orphan_records

    return runner.run(work, deadline=deadline, stage=Stage.PAGINATE)
