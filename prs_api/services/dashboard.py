from __future__ import annotations

import json
import logging
import time
from dataclasses import dataclass, field
from datetime import datetime, tzinfo
from typing import Any, Callable, Dict, Mapping, Optional

from sqlalchemy.orm import Session

from .errors import DashboardError, QueryExecutionError, Stage, ValidationError
from .executor import Deadline, QueryRunner
from .filters import Predicate, compile_filters, parse_filter_by
from .legacy import run_legacy_query
from .metrics import record_failure, record_fallback, record_served
from .pagination import Ordering, PageResult, build_dashboard_statement, paginate_rows, parse_order, read_page
from .projector import project_response
from .snapshot import SnapshotRefresher
from .time_window import DEFAULT_TIME_RANGE, UTC, TimeWindow, resolve_time_window
from .union import build_union, orphan_select, report_orphans, with_display_names
from .visibility import RequestType, RequestUser, VisibilityPolicy

logger = logging.getLogger(__name__)

MAX_LIMIT = 100

SOURCE_SNAPSHOT = "snapshot"
SOURCE_OPTIMIZED = "optimized"
SOURCE_FALLBACK = "fallback"


@dataclass(frozen=True)
class EngineConfig:
    policy: VisibilityPolicy = field(default_factory=VisibilityPolicy)
    default_time_range: str = DEFAULT_TIME_RANGE
    tz: tzinfo = UTC
    fallback_enabled: bool = True
    query_timeout: float = 15.0


@dataclass(frozen=True)
class DashboardQuery:
    user: RequestUser
    limit: int = 10
    page: int = 1
    order: Optional[Mapping[str, Any]] = None
    filter_by: Optional[Mapping[str, Any]] = None
    request_type: Optional[RequestType | str] = None
    time_range: Optional[str] = None


@dataclass(frozen=True)
class QueryPlan:
    """A validated request: nothing in it can fail once storage is involved."""

    user: RequestUser
    window: TimeWindow
    predicates: tuple[Predicate, ...]
    ordering: Ordering
    request_type: Optional[RequestType]
    limit: int
    page: int

    def paging(self) -> Dict[str, Any]:
        return {
            "predicates": self.predicates,
            "user": self.user,
            "request_type": self.request_type,
            "ordering": self.ordering,
            "limit": self.limit,
            "page": self.page,
        }


@dataclass
class DashboardResult:
    body: Dict[str, Any]
    source: str
    snapshot_generation: Optional[int] = None


def parse_request_type(value: Optional[RequestType | str]) -> Optional[RequestType]:
    if value is None or value == "":
        return None
    if isinstance(value, RequestType):
        return value
    try:
        return RequestType(value)
    except ValueError as exc:
        allowed = ", ".join(item.value for item in RequestType)
        raise ValidationError(
            f"Unknown requestType {value!r}; expected one of: {allowed}", stage=Stage.FILTER_COMPILE
        ) from exc


class DashboardService:
    """Serves one dashboard page: snapshot when it covers the window, else the live query.

    The live path runs the single windowed statement and, if that fails to execute,
    the legacy multi-query implementation once. Timeouts and validation errors are
    never retried.
    """

    def __init__(
        self,
        session: Session,
        config: EngineConfig,
        *,
        refresher: Optional[SnapshotRefresher] = None,
        runner: Optional[QueryRunner] = None,
        now: Callable[[], datetime] = lambda: datetime.now(UTC),
    ) -> None:
        self.config = config
        self.refresher = refresher
        self.runner = runner or QueryRunner(session)
        self._now = now

    def plan(self, query: DashboardQuery) -> QueryPlan:
        if not 1 <= query.limit <= MAX_LIMIT:
            raise ValidationError(f"limit must be between 1 and {MAX_LIMIT}", stage=Stage.FILTER_COMPILE)
        if query.page < 1:
            raise ValidationError("page must be 1 or greater", stage=Stage.FILTER_COMPILE)

        filter_by = parse_filter_by(query.filter_by)
        window = resolve_time_window(
            query.time_range,
            filter_by.updated_at,
            default_range=self.config.default_time_range,
            now=self._now(),
            tz=self.config.tz,
        )
        return QueryPlan(
            user=query.user,
            window=window,
            predicates=compile_filters(filter_by),
            ordering=parse_order(query.order),
            request_type=parse_request_type(query.request_type),
            limit=query.limit,
            page=query.page,
        )

    def get_dashboard(self, query: DashboardQuery, *, deadline: Optional[Deadline] = None) -> DashboardResult:
        started = time.perf_counter()
        deadline = deadline or Deadline.after(self.config.query_timeout)
        try:
            plan = self.plan(query)
            snapshot = self.refresher.current if self.refresher is not None else None
            generation: Optional[int] = None
            if snapshot is not None and snapshot.covers(plan.window):
                result = paginate_rows(snapshot.rows_in(plan.window), policy=self.config.policy, **plan.paging())
                source, generation = SOURCE_SNAPSHOT, snapshot.generation
            else:
                result, source = self._run_live(plan, deadline)
            body = project_response(result, request_type=plan.request_type, page=plan.page, limit=plan.limit)
        except DashboardError as exc:
            record_failure(type(exc).__name__, exc.stage.value)
            raise

        elapsed = time.perf_counter() - started
        record_served(source, elapsed)
        logger.info(
            json.dumps(
                {
                    "event": "dashboard_query",
                    "source": source,
                    "user_id": plan.user.id,
                    "request_type": plan.request_type.value if plan.request_type else None,
                    "page": plan.page,
                    "rows": len(result.rows),
                    "all_total": result.totals.all,
                    "elapsed_ms": round(elapsed * 1000, 2),
                },
                separators=(",", ":"),
            )
        )
        return DashboardResult(body=body, source=source, snapshot_generation=generation)

    def _run_live(self, plan: QueryPlan, deadline: Deadline) -> tuple[PageResult, str]:
        feed = with_display_names(build_union(plan.window))
        statement = build_dashboard_statement(feed, policy=self.config.policy, **plan.paging())
        orphans = orphan_select(plan.window)
        try:
            records, orphan_records = self.runner.fetch_many(
                statement, orphans, deadline=deadline, stage=Stage.PAGINATE
            )
            report_orphans(orphan_records)
            return read_page(records), SOURCE_OPTIMIZED
        except QueryExecutionError as exc:
            if not self.config.fallback_enabled:
                raise
            logger.warning(
                json.dumps(
                    {"event": "dashboard_fallback", "stage": exc.stage.value, "reason": exc.message},
                    separators=(",", ":"),
                )
            )

        try:
            result, orphan_records = run_legacy_query(
                self.runner, feed, policy=self.config.policy, deadline=deadline, orphans=orphans, **plan.paging()
            )
        except QueryExecutionError:
            record_fallback("failed")
            raise
        record_fallback("recovered")
        report_orphans(orphan_records)
        return result, SOURCE_FALLBACK

