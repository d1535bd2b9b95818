from __future__ import annotations

import math
from dataclasses import dataclass, field
from typing import Any, Iterable, Mapping, Optional, Sequence

from sqlalchemy import case, func, select, true
from sqlalchemy.sql import Select

from .documents import DashboardRow, DisplayNames, UnifiedDocument
from .errors import Stage, ValidationError
from .filters import Predicate, matches_all
from .union import FEED_COLUMNS, NAME_COLUMNS
from .visibility import Classification, RequestType, RequestUser, VisibilityPolicy

CLOSED_RANK = "closed_rank"
PRIORITY = "doc_type_priority"

# Request field -> row field.
ORDER_FIELDS: dict[str, str] = {
    "ref_number": "ref_number",
    "doc_type": PRIORITY,
    "requestor": "requestor_name",
    "company": "company_name",
    "status": "status",
    "updated_at": "updated_at",
    "updatedAt": "updated_at",
}

DIRECTIONS = {"asc": False, "desc": True}


@dataclass(frozen=True)
class SortKey:
    field: str
    descending: bool = False


@dataclass(frozen=True)
class Ordering:
    keys: tuple[SortKey, ...]

    @classmethod
    def build(cls, *keys: SortKey) -> "Ordering":
        """Append ``id`` and doc type priority so every ordering is total."""
        present = {key.field for key in keys}
        tail = [SortKey(name) for name in ("id", PRIORITY) if name not in present]
        return cls(tuple(keys) + tuple(tail))

    def clauses(self, columns) -> list:
        clauses = []
        for key in self.keys:
            if key.field == CLOSED_RANK:
                column = case((columns.root_status == "closed", 2), else_=1)
            else:
                column = columns[key.field]
            clauses.append(column.desc() if key.descending else column.asc())
        return clauses

    def sort(self, items: Iterable[Any], row_of=lambda item: item) -> list[Any]:
        """Sort in-process with PostgreSQL NULL placement (last ascending, first descending)."""
        ordered = list(items)
        for key in reversed(self.keys):
            ordered.sort(key=lambda item, name=key.field: _sort_value(row_of(item), name), reverse=key.descending)
        return ordered


def _sort_value(row: DashboardRow, name: str) -> tuple:
    if name == CLOSED_RANK:
        return (0, 2 if row.document.root_status == "closed" else 1)
    value = row.value(name)
    if value is None:
        return (1, 0)
    return (0, value)


DEFAULT_ORDERING = Ordering.build(
    SortKey(CLOSED_RANK),
    SortKey("updated_at", descending=True),
    SortKey("grouping_id"),
)


def parse_order(order: Mapping[str, Any] | None) -> Ordering:
    if not order:
        return DEFAULT_ORDERING
    if not isinstance(order, Mapping):
        raise ValidationError("order must be an object", stage=Stage.FILTER_COMPILE)
    if len(order) != 1:
        raise ValidationError("order accepts exactly one field", stage=Stage.FILTER_COMPILE)

    requested, raw_direction = next(iter(order.items()))
    target = ORDER_FIELDS.get(requested)
    if target is None:
        allowed = ", ".join(ORDER_FIELDS)
        raise ValidationError(f"Unknown order field {requested!r}; expected one of: {allowed}", stage=Stage.FILTER_COMPILE)
    direction = str(raw_direction or "").strip().lower()
    if direction not in DIRECTIONS:
        raise ValidationError(f"Unknown order direction {raw_direction!r}; expected asc or desc", stage=Stage.FILTER_COMPILE)
    descending = DIRECTIONS[direction]

    if target == "ref_number":
        return Ordering.build(SortKey("ref_number", descending), SortKey(PRIORITY))
    if target == PRIORITY:
        return Ordering.build(SortKey(PRIORITY, descending))
    return Ordering.build(SortKey(PRIORITY), SortKey(target, descending))


def total_pages(total: int, limit: int) -> int:
    return math.ceil(total / limit) if limit else 0


def page_offset(page: int, limit: int) -> int:
    return (page - 1) * limit


@dataclass(frozen=True)
class BucketTotals:
    all: int = 0
    my_request: int = 0
    my_approval: int = 0


@dataclass(frozen=True)
class PageRow:
    row: DashboardRow
    classification: Classification


@dataclass
class PageResult:
    rows: list[PageRow] = field(default_factory=list)
    totals: BucketTotals = field(default_factory=BucketTotals)


def classified_select(
    feed: Select, *, predicates: Sequence[Predicate], policy: VisibilityPolicy, user: RequestUser
) -> Select:
    """The filtered feed with the two bucket flags attached."""
    base = feed.subquery("feed")
    return select(
        *base.c,
        policy.my_request_expression(base.c, user).label("is_my_request"),
        policy.my_approval_expression(base.c, user).label("is_my_approval"),
    ).where(true(), *(predicate.expression(base.c) for predicate in predicates))


def bucket_clause(columns, request_type: Optional[RequestType]):
    if request_type is RequestType.MY_REQUEST:
        return columns.is_my_request
    if request_type is RequestType.MY_APPROVAL:
        return columns.is_my_approval
    return true()


def build_dashboard_statement(
    feed: Select,
    *,
    predicates: Sequence[Predicate],
    policy: VisibilityPolicy,
    user: RequestUser,
    request_type: Optional[RequestType],
    ordering: Ordering,
    limit: int,
    page: int,
) -> Select:
    """One statement: page of the requested bucket plus three independent totals.

    Totals are counted over the filtered feed before the bucket restriction. The
    page is left-joined onto the totals, so an out-of-range page still yields one
    row carrying the totals with a NULL ``id``.
    """
    classified = classified_select(feed, predicates=predicates, policy=policy, user=user).cte("classified")

    c = classified.c
    counted = select(
        *c,
        func.count().over().label("all_total"),
        func.count().filter(c.is_my_request).over().label("my_requests_total"),
        func.count().filter(c.is_my_approval).over().label("my_approvals_total"),
    ).cte("counted")

    k = counted.c
    bucket = bucket_clause(k, request_type)
    order_by = ordering.clauses(k)
    row_columns = [k[name] for name in FEED_COLUMNS + NAME_COLUMNS]
    page_rows = (
        select(
            *row_columns,
            k.is_my_request,
            k.is_my_approval,
            func.row_number().over(order_by=order_by).label("position"),
        )
        .where(bucket)
        .order_by(*order_by)
        .limit(limit)
        .offset(page_offset(page, limit))
        .cte("page")
    )
    totals = select(k.all_total, k.my_requests_total, k.my_approvals_total).limit(1).cte("totals")

    p, t = page_rows.c, totals.c
    return (
        select(
            t.all_total,
            t.my_requests_total,
            t.my_approvals_total,
            *(p[name] for name in FEED_COLUMNS + NAME_COLUMNS),
            p.is_my_request,
            p.is_my_approval,
        )
        .select_from(totals.outerjoin(page_rows, true()))
        .order_by(p.position)
    )


def page_row_from_record(record: Mapping[str, Any]) -> PageRow:
    return PageRow(
        row=DashboardRow(UnifiedDocument.from_feed_row(record), DisplayNames.from_feed_row(record)),
        classification=Classification(
            my_request=bool(record["is_my_request"]),
            my_approval=bool(record["is_my_approval"]),
        ),
    )


def read_page(records: Iterable[Mapping[str, Any]]) -> PageResult:
    result = PageResult()
    for index, record in enumerate(records):
        if index == 0:
            result.totals = BucketTotals(
                all=int(record["all_total"] or 0),
                my_request=int(record["my_requests_total"] or 0),
                my_approval=int(record["my_approvals_total"] or 0),
            )
        if record["id"] is None:
            continue
        result.rows.append(page_row_from_record(record))
    return result


def paginate_rows(
    rows: Iterable[DashboardRow],
    *,
    predicates: Sequence[Predicate],
    policy: VisibilityPolicy,
    user: RequestUser,
    request_type: Optional[RequestType],
    ordering: Ordering,
    limit: int,
    page: int,
) -> PageResult:
    """In-process rendition of ``build_dashboard_statement`` for the snapshot path."""
    filtered = [row for row in rows if matches_all(tuple(predicates), row)]
    classified = [PageRow(row, policy.classify(row.document, user)) for row in filtered]
    totals = BucketTotals(
        all=len(classified),
        my_request=sum(1 for item in classified if item.classification.my_request),
        my_approval=sum(1 for item in classified if item.classification.my_approval),
    )

    bucket = request_type or RequestType.ALL
    in_bucket = [item for item in classified if item.classification.in_bucket(bucket)]
    ordered = ordering.sort(in_bucket, row_of=lambda item: item.row)
    start = page_offset(page, limit)
    return PageResult(rows=ordered[start : start + limit], totals=totals)
