"""Unified document feed across the seven procurement entity tables.

Two renditions of the same rules:

* ``build_union`` compiles a single ``UNION ALL`` statement for the live path. Each
  branch filters its own table on ``updated_at`` so TimescaleDB can exclude chunks,
  and inner-joins the owning requisition without a time predicate.
* ``load_dashboard_rows`` reads the tables in batches and assembles the documents
  in-process through the ``UnifiedDocument`` constructors. The snapshot refresher
  and the orphan audit use it.

Orphaned sub-documents are reported as ``DataIntegrityWarning`` either way: the
in-process join finds them directly, the live path reads ``orphan_select``.
"""

from __future__ import annotations

import json
import logging
from collections import defaultdict
from dataclasses import dataclass, field
from typing import Any, Iterable, Iterator, Mapping, Sequence

from sqlalchemy import Integer, String, and_, case, cast, func, literal, null, select, union_all
from sqlalchemy.dialects.postgresql import ARRAY
from sqlalchemy.orm import Session
from sqlalchemy.sql import CompoundSelect, Select, Subquery

from ..models import (
    CanvassApprover,
    CanvassRequisition,
    Company,
    DeliveryReceipt,
    Department,
    InvoiceReport,
    NonRequisition,
    NonRequisitionApprover,
    PaymentRequest,
    PaymentRequestApprover,
    Project,
    PurchaseOrder,
    PurchaseOrderApprover,
    Requisition,
    RequisitionApprover,
    User,
)
from .documents import (
    DOC_TYPE_PRIORITY,
    ApproverPair,
    DashboardRow,
    DisplayNames,
    DocType,
    UnifiedDocument,
    full_name,
)
from .errors import DataIntegrityWarning
from .metrics import record_integrity_warning
from .ref_numbers import DRAFT_MARKER
from .time_window import TimeWindow

logger = logging.getLogger(__name__)

requisitions = Requisition.__table__
requisition_approvers = RequisitionApprover.__table__
canvasses = CanvassRequisition.__table__
canvass_approvers = CanvassApprover.__table__
purchase_orders = PurchaseOrder.__table__
purchase_order_approvers = PurchaseOrderApprover.__table__
delivery_receipts = DeliveryReceipt.__table__
invoice_reports = InvoiceReport.__table__
payment_requests = PaymentRequest.__table__
payment_request_approvers = PaymentRequestApprover.__table__
non_requisitions = NonRequisition.__table__
non_requisition_approvers = NonRequisitionApprover.__table__
users = User.__table__
companies = Company.__table__
projects = Project.__table__
departments = Department.__table__

FEED_COLUMNS = (
    "id",
    "doc_type",
    "ref_number",
    "requestor_id",
    "company_id",
    "project_id",
    "department_id",
    "updated_at",
    "status",
    "root_status",
    "grouping_id",
    "assigned_to_user_id",
    "primary_approvers",
    "alternate_approvers",
    "doc_type_priority",
)

NAME_COLUMNS = (
    "requestor_name",
    "company_name",
    "project_name",
    "department_name",
    "assigned_to_user_name",
)


@dataclass(frozen=True)
class ApproverSource:
    table: Any
    owner_column: str
    primary_column: str = "user_id"


# Doc types without an approver table (delivery receipts, invoices) have no entry.
APPROVER_SOURCES: dict[DocType, ApproverSource] = {
    DocType.REQUISITION: ApproverSource(requisition_approvers, "requisition_id", primary_column="approver_id"),
    DocType.CANVASS: ApproverSource(canvass_approvers, "canvass_requisition_id"),
    DocType.PURCHASE_ORDER: ApproverSource(purchase_order_approvers, "purchase_order_id"),
    DocType.PAYMENT_REQUEST: ApproverSource(payment_request_approvers, "payment_request_id"),
    DocType.NON_REQUISITION: ApproverSource(non_requisition_approvers, "non_requisition_id"),
}

SOURCE_TABLES: dict[DocType, Any] = {
    DocType.REQUISITION: requisitions,
    DocType.CANVASS: canvasses,
    DocType.PURCHASE_ORDER: purchase_orders,
    DocType.DELIVERY_RECEIPT: delivery_receipts,
    DocType.INVOICE: invoice_reports,
    DocType.PAYMENT_REQUEST: payment_requests,
    DocType.NON_REQUISITION: non_requisitions,
}

CHILD_DOC_TYPES = (
    DocType.CANVASS,
    DocType.PURCHASE_ORDER,
    DocType.DELIVERY_RECEIPT,
    DocType.INVOICE,
    DocType.PAYMENT_REQUEST,
)


# ---------------------------------------------------------------------------
# Live SQL rendition
# ---------------------------------------------------------------------------


def in_window(table, window: TimeWindow):
    return and_(table.c.updated_at >= window.start, table.c.updated_at < window.end)


def _tag(doc_type: DocType):
    return literal(doc_type.value, type_=String)


def _priority(doc_type: DocType):
    return literal(DOC_TYPE_PRIORITY[doc_type], type_=Integer)


def _ref(prefix: str, *parts, draft: bool = False):
    head = f"{prefix}-{DRAFT_MARKER}-" if draft else f"{prefix}-"
    return func.concat(literal(head, type_=String), *parts)


def _status(table):
    return func.coalesce(table.c.status, "")


def _approver_arrays(doc_type: DocType, owner_id):
    """Correlated aggregates of the primary and alternate approver columns.

    They stay separate so membership can be tested with ``= ANY`` on each; the
    deduplicated union is taken when rows are materialized.
    """
    source = APPROVER_SOURCES.get(doc_type)
    if source is None:
        empty = cast(null(), ARRAY(Integer))
        return empty, empty

    table = source.table
    owner = table.c[source.owner_column]
    primary = table.c[source.primary_column]
    alternate = table.c.alt_approver_id
    primary_ids = (
        select(func.array_agg(primary).filter(primary.isnot(None))).where(owner == owner_id).scalar_subquery()
    )
    alternate_ids = (
        select(func.array_agg(alternate).filter(alternate.isnot(None))).where(owner == owner_id).scalar_subquery()
    )
    return primary_ids, alternate_ids


def _feed_columns(**expressions) -> list:
    return [expressions[name].label(name) for name in FEED_COLUMNS]


def _root_columns(root=requisitions) -> dict:
    return {
        "requestor_id": root.c.created_by,
        "company_id": root.c.company_id,
        "project_id": root.c.project_id,
        "department_id": root.c.department_id,
        "root_status": _status(root),
        "grouping_id": cast(root.c.id, String),
        "assigned_to_user_id": root.c.assigned_to,
    }


def _child_select(doc_type: DocType, table, ref_number, window: TimeWindow, **overrides) -> Select:
    primary, alternate = _approver_arrays(doc_type, table.c.id)
    columns = _root_columns()
    columns.update(
        id=table.c.id,
        doc_type=_tag(doc_type),
        ref_number=ref_number,
        updated_at=table.c.updated_at,
        status=_status(table),
        primary_approvers=primary,
        alternate_approvers=alternate,
        doc_type_priority=_priority(doc_type),
    )
    columns.update(overrides)
    return (
        select(*_feed_columns(**columns))
        .select_from(table.join(requisitions, table.c.requisition_id == requisitions.c.id))
        .where(in_window(table, window))
    )


def requisition_select(window: TimeWindow) -> Select:
    r = requisitions
    primary, alternate = _approver_arrays(DocType.REQUISITION, r.c.id)
    ref_number = case(
        (r.c.status == "rs_draft", _ref("RS", r.c.company_code, r.c.rs_letter, r.c.draft_rs_number, draft=True)),
        else_=_ref("RS", r.c.company_code, r.c.rs_letter, r.c.rs_number),
    )
    columns = _root_columns(r)
    columns.update(
        id=r.c.id,
        doc_type=_tag(DocType.REQUISITION),
        ref_number=ref_number,
        updated_at=r.c.updated_at,
        status=_status(r),
        primary_approvers=primary,
        alternate_approvers=alternate,
        doc_type_priority=_priority(DocType.REQUISITION),
    )
    return select(*_feed_columns(**columns)).where(in_window(r, window))


def canvass_select(window: TimeWindow) -> Select:
    cr, r = canvasses, requisitions
    ref_number = case(
        (cr.c.cs_number.is_(None), _ref("CS", r.c.company_code, cr.c.cs_letter, cr.c.draft_cs_number, draft=True)),
        else_=_ref("CS", r.c.company_code, cr.c.cs_letter, cr.c.cs_number),
    )
    return _child_select(DocType.CANVASS, cr, ref_number, window)


def purchase_order_select(window: TimeWindow) -> Select:
    po, r = purchase_orders, requisitions
    ref_number = _ref("PO", r.c.company_code, po.c.po_letter, po.c.po_number)
    return _child_select(DocType.PURCHASE_ORDER, po, ref_number, window)


def delivery_receipt_select(window: TimeWindow) -> Select:
    dr = delivery_receipts
    ref_number = case(
        (dr.c.is_draft, _ref("RR", dr.c.draft_dr_number, draft=True)),
        else_=_ref("RR", dr.c.dr_number),
    )
    return _child_select(DocType.DELIVERY_RECEIPT, dr, ref_number, window)


def invoice_select(window: TimeWindow) -> Select:
    ir = invoice_reports
    ref_number = case(
        (ir.c.is_draft, _ref("IR", ir.c.ir_draft_number, draft=True)),
        else_=_ref("IR", ir.c.ir_number),
    )
    return _child_select(DocType.INVOICE, ir, ref_number, window)


def payment_request_select(window: TimeWindow) -> Select:
    pr, r = payment_requests, requisitions
    ref_number = case(
        (pr.c.is_draft, _ref("VR", r.c.company_code, pr.c.draft_pr_number, draft=True)),
        else_=_ref("VR", r.c.company_code, pr.c.pr_letter, pr.c.pr_number),
    )
    return _child_select(
        DocType.PAYMENT_REQUEST, pr, ref_number, window, grouping_id=cast(pr.c.requisition_id, String)
    )


def non_requisition_select(window: TimeWindow) -> Select:
    nr = non_requisitions
    primary, alternate = _approver_arrays(DocType.NON_REQUISITION, nr.c.id)
    ref_number = case(
        (nr.c.status == "draft", _ref("NR", nr.c.non_rs_letter, nr.c.draft_non_rs_number, draft=True)),
        else_=_ref("NR", nr.c.non_rs_letter, nr.c.non_rs_number),
    )
    return select(
        *_feed_columns(
            id=nr.c.id,
            doc_type=_tag(DocType.NON_REQUISITION),
            ref_number=ref_number,
            requestor_id=nr.c.created_by,
            company_id=nr.c.company_id,
            project_id=nr.c.project_id,
            department_id=nr.c.department_id,
            updated_at=nr.c.updated_at,
            status=_status(nr),
            root_status=_status(nr),
            grouping_id=func.concat("non_rs_", cast(nr.c.id, String)),
            assigned_to_user_id=cast(null(), Integer),
            primary_approvers=primary,
            alternate_approvers=alternate,
            doc_type_priority=_priority(DocType.NON_REQUISITION),
        )
    ).where(in_window(nr, window))


_SELECT_BUILDERS = (
    requisition_select,
    canvass_select,
    purchase_order_select,
    delivery_receipt_select,
    invoice_select,
    payment_request_select,
    non_requisition_select,
)


def build_union(window: TimeWindow, *, name: str = "ud") -> Subquery:
    return union_all(*(builder(window) for builder in _SELECT_BUILDERS)).subquery(name)


def orphan_select(window: TimeWindow) -> CompoundSelect:
    """Sub-documents in the window whose requisition is missing.

    ``build_union`` inner-joins the root, so these never reach the feed; this
    anti-join is how the live path finds them to report.
    """
    branches = []
    for doc_type in CHILD_DOC_TYPES:
        table = SOURCE_TABLES[doc_type]
        branches.append(
            select(
                _tag(doc_type).label("doc_type"),
                table.c.id.label("id"),
                table.c.requisition_id.label("requisition_id"),
            )
            .select_from(table.outerjoin(requisitions, table.c.requisition_id == requisitions.c.id))
            .where(in_window(table, window), requisitions.c.id.is_(None))
        )
    return union_all(*branches)


def _sql_full_name(table):
    return func.nullif(func.concat_ws(" ", func.nullif(table.c.first_name, ""), func.nullif(table.c.last_name, "")), "")


def with_display_names(ud: Subquery) -> Select:
    """Left-join the reference tables so search and sort can use display names."""
    requestor = users.alias("requestor_u")
    assignee = users.alias("assignee_u")
    joined = (
        ud.outerjoin(requestor, ud.c.requestor_id == requestor.c.id)
        .outerjoin(companies, ud.c.company_id == companies.c.id)
        .outerjoin(projects, ud.c.project_id == projects.c.id)
        .outerjoin(departments, ud.c.department_id == departments.c.id)
        .outerjoin(assignee, ud.c.assigned_to_user_id == assignee.c.id)
    )
    return select(
        *ud.c,
        _sql_full_name(requestor).label("requestor_name"),
        companies.c.name.label("company_name"),
        projects.c.name.label("project_name"),
        departments.c.name.label("department_name"),
        _sql_full_name(assignee).label("assigned_to_user_name"),
    ).select_from(joined)


# ---------------------------------------------------------------------------
# In-process rendition
# ---------------------------------------------------------------------------


@dataclass
class SourceBatch:
    """Raw entity rows for one window, keyed for the in-process join."""

    records: dict[DocType, list[Mapping[str, Any]]] = field(default_factory=dict)
    requisitions: dict[int, Mapping[str, Any]] = field(default_factory=dict)
    approvers: dict[DocType, dict[int, list[ApproverPair]]] = field(default_factory=dict)

    def approvers_for(self, doc_type: DocType, owner_id: int) -> list[ApproverPair]:
        return self.approvers.get(doc_type, {}).get(owner_id, [])


@dataclass
class Assembly:
    documents: list[UnifiedDocument] = field(default_factory=list)
    orphans: list[DataIntegrityWarning] = field(default_factory=list)


def _report_orphan(doc_type: DocType, record: Mapping[str, Any]) -> DataIntegrityWarning:
    warning = DataIntegrityWarning(doc_type.value, record["id"], record.get("requisition_id"))
    logger.warning(
        json.dumps(
            {
                "event": "orphaned_document",
                "stage": warning.stage.value,
                "doc_type": doc_type.value,
                "document_id": record["id"],
                "requisition_id": record.get("requisition_id"),
            },
            separators=(",", ":"),
        )
    )
    record_integrity_warning(doc_type.value)
    return warning


def report_orphans(records: Iterable[Mapping[str, Any]]) -> list[DataIntegrityWarning]:
    """Log and count rows read through ``orphan_select``."""
    return [_report_orphan(DocType(record["doc_type"]), record) for record in records]


def assemble_documents(batch: SourceBatch, window: TimeWindow | None = None) -> Assembly:
    """Normalize raw rows into unified documents.

    Sub-documents whose requisition cannot be found are dropped and reported; the
    assembly itself never fails because of them.
    """
    result = Assembly()

    def keep(document: UnifiedDocument) -> None:
        if window is None or window.contains(document.updated_at):
            result.documents.append(document)

    for record in batch.records.get(DocType.REQUISITION, ()):
        keep(UnifiedDocument.requisition(record, batch.approvers_for(DocType.REQUISITION, record["id"])))

    for doc_type in CHILD_DOC_TYPES:
        for record in batch.records.get(doc_type, ()):
            root = batch.requisitions.get(record["requisition_id"])
            if root is None:
                result.orphans.append(_report_orphan(doc_type, record))
                continue
            if doc_type is DocType.CANVASS:
                document = UnifiedDocument.canvass(record, root, batch.approvers_for(doc_type, record["id"]))
            elif doc_type is DocType.PURCHASE_ORDER:
                document = UnifiedDocument.purchase_order(record, root, batch.approvers_for(doc_type, record["id"]))
            elif doc_type is DocType.DELIVERY_RECEIPT:
                document = UnifiedDocument.delivery_receipt(record, root)
            elif doc_type is DocType.INVOICE:
                document = UnifiedDocument.invoice(record, root)
            else:
                document = UnifiedDocument.payment_request(record, root, batch.approvers_for(doc_type, record["id"]))
            keep(document)

    for record in batch.records.get(DocType.NON_REQUISITION, ()):
        keep(UnifiedDocument.non_requisition(record, batch.approvers_for(DocType.NON_REQUISITION, record["id"])))

    return result


def _chunks(values: Iterable[Any], size: int = 1000) -> Iterator[list[Any]]:
    ordered = sorted(set(values))
    for index in range(0, len(ordered), size):
        yield ordered[index : index + size]


def load_source_batch(session: Session, window: TimeWindow) -> SourceBatch:
    batch = SourceBatch()
    for doc_type, table in SOURCE_TABLES.items():
        rows = session.execute(select(table).where(in_window(table, window))).mappings().all()
        batch.records[doc_type] = list(rows)

    batch.requisitions = {row["id"]: row for row in batch.records[DocType.REQUISITION]}
    missing_roots = {
        record["requisition_id"]
        for doc_type in CHILD_DOC_TYPES
        for record in batch.records[doc_type]
        if record["requisition_id"] not in batch.requisitions
    }
    for chunk in _chunks(missing_roots):
        for row in session.execute(select(requisitions).where(requisitions.c.id.in_(chunk))).mappings():
            batch.requisitions[row["id"]] = row

    for doc_type, source in APPROVER_SOURCES.items():
        owner = source.table.c[source.owner_column]
        grouped: dict[int, list[ApproverPair]] = defaultdict(list)
        owner_ids = [record["id"] for record in batch.records[doc_type]]
        for chunk in _chunks(owner_ids):
            statement = select(owner, source.table.c[source.primary_column], source.table.c.alt_approver_id).where(
                owner.in_(chunk)
            )
            for owner_id, primary, alternate in session.execute(statement):
                grouped[owner_id].append((primary, alternate))
        batch.approvers[doc_type] = dict(grouped)

    return batch


def _name_lookup(session: Session, table, ids: Iterable[Any]) -> dict[int, str | None]:
    lookup: dict[int, str | None] = {}
    for chunk in _chunks(value for value in ids if value is not None):
        if table is users:
            statement = select(table.c.id, table.c.first_name, table.c.last_name).where(table.c.id.in_(chunk))
            lookup.update({row.id: full_name(row.first_name, row.last_name) for row in session.execute(statement)})
        else:
            statement = select(table.c.id, table.c.name).where(table.c.id.in_(chunk))
            lookup.update({row.id: row.name for row in session.execute(statement)})
    return lookup


def attach_display_names(session: Session, documents: Sequence[UnifiedDocument]) -> list[DashboardRow]:
    people = _name_lookup(
        session,
        users,
        [doc.requestor_id for doc in documents] + [doc.assigned_to_user_id for doc in documents],
    )
    company_names = _name_lookup(session, companies, (doc.company_id for doc in documents))
    project_names = _name_lookup(session, projects, (doc.project_id for doc in documents))
    department_names = _name_lookup(session, departments, (doc.department_id for doc in documents))
    return [
        DashboardRow(
            document=doc,
            names=DisplayNames(
                requestor_name=people.get(doc.requestor_id),
                company_name=company_names.get(doc.company_id),
                project_name=project_names.get(doc.project_id),
                department_name=department_names.get(doc.department_id),
                assigned_to_user_name=people.get(doc.assigned_to_user_id),
            ),
        )
        for doc in documents
    ]


def load_dashboard_rows(session: Session, window: TimeWindow) -> tuple[list[DashboardRow], list[DataIntegrityWarning]]:
    assembly = assemble_documents(load_source_batch(session, window), window)
    return attach_display_names(session, assembly.documents), assembly.orphans
