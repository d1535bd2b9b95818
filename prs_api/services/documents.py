from __future__ import annotations

from dataclasses import dataclass, field, fields
from datetime import datetime
from enum import Enum
from typing import Any, Iterable, Mapping, Optional

from . import ref_numbers
from .time_window import ensure_utc


class DocType(str, Enum):
    REQUISITION = "requisition"
    CANVASS = "canvass"
    PURCHASE_ORDER = "purchase_order"
    DELIVERY_RECEIPT = "delivery_receipt"
    INVOICE = "invoice"
    PAYMENT_REQUEST = "payment_request"
    NON_REQUISITION = "non_requisition"


# Stable cross-type ordinal used as a grouping key when sorting.
DOC_TYPE_PRIORITY: dict[DocType, int] = {
    DocType.REQUISITION: 1,
    DocType.CANVASS: 2,
    DocType.PURCHASE_ORDER: 3,
    DocType.INVOICE: 4,
    DocType.DELIVERY_RECEIPT: 5,
    DocType.PAYMENT_REQUEST: 6,
    DocType.NON_REQUISITION: 7,
}

DOC_TYPE_LABELS: dict[DocType, str] = {
    DocType.REQUISITION: "R.S.",
    DocType.CANVASS: "Canvass",
    DocType.PURCHASE_ORDER: "Order",
    DocType.DELIVERY_RECEIPT: "Delivery",
    DocType.INVOICE: "Invoice",
    DocType.PAYMENT_REQUEST: "Voucher",
    DocType.NON_REQUISITION: "Non-R.S.",
}

ROOT_DOC_TYPES = frozenset({DocType.REQUISITION, DocType.NON_REQUISITION})

ApproverPair = tuple[Optional[int], Optional[int]]


def merge_approvers(primary: Iterable[Optional[int]] | None, alternate: Iterable[Optional[int]] | None) -> frozenset[int]:
    """Set union of primary and alternate approver ids, ignoring nulls."""
    merged = set(primary or ()) | set(alternate or ())
    merged.discard(None)
    return frozenset(int(user_id) for user_id in merged)


def approvers_from_pairs(pairs: Iterable[ApproverPair]) -> frozenset[int]:
    pairs = list(pairs)
    return merge_approvers((primary for primary, _ in pairs), (alternate for _, alternate in pairs))


@dataclass(frozen=True)
class UnifiedDocument:
    """One row of the unified feed.

    A tagged union over the seven workflow entities: ``doc_type`` is the tag, and
    instances are only built through the per-variant constructors below so the
    normalization rules for each entity live in one place.
    """

    id: int
    doc_type: DocType
    ref_number: str
    requestor_id: Optional[int]
    company_id: Optional[int]
    project_id: Optional[int]
    department_id: Optional[int]
    updated_at: datetime
    status: str
    root_status: str
    grouping_id: str
    assigned_to_user_id: Optional[int] = None
    approvers: frozenset[int] = field(default_factory=frozenset)

    @property
    def priority(self) -> int:
        return DOC_TYPE_PRIORITY[self.doc_type]

    @classmethod
    def _child(
        cls,
        doc_type: DocType,
        record: Mapping[str, Any],
        root: Mapping[str, Any],
        *,
        ref_number: str,
        approvers: frozenset[int] = frozenset(),
        grouping_id: str | None = None,
    ) -> "UnifiedDocument":
        return cls(
            id=record["id"],
            doc_type=doc_type,
            ref_number=ref_number,
            requestor_id=root["created_by"],
            company_id=root["company_id"],
            project_id=root["project_id"],
            department_id=root["department_id"],
            updated_at=ensure_utc(record["updated_at"]),
            status=record.get("status") or "",
            root_status=root.get("status") or "",
            grouping_id=grouping_id or str(root["id"]),
            assigned_to_user_id=root.get("assigned_to"),
            approvers=approvers,
        )

    @classmethod
    def requisition(cls, record: Mapping[str, Any], approvers: Iterable[ApproverPair] = ()) -> "UnifiedDocument":
        status = record.get("status") or ""
        return cls(
            id=record["id"],
            doc_type=DocType.REQUISITION,
            ref_number=ref_numbers.requisition_ref(
                company_code=record.get("company_code"),
                rs_letter=record.get("rs_letter"),
                rs_number=record.get("rs_number"),
                draft_rs_number=record.get("draft_rs_number"),
                status=status,
            ),
            requestor_id=record["created_by"],
            company_id=record.get("company_id"),
            project_id=record.get("project_id"),
            department_id=record.get("department_id"),
            updated_at=ensure_utc(record["updated_at"]),
            status=status,
            root_status=status,
            grouping_id=str(record["id"]),
            assigned_to_user_id=record.get("assigned_to"),
            approvers=approvers_from_pairs(approvers),
        )

    @classmethod
    def canvass(
        cls, record: Mapping[str, Any], root: Mapping[str, Any], approvers: Iterable[ApproverPair] = ()
    ) -> "UnifiedDocument":
        ref = ref_numbers.canvass_ref(
            company_code=root.get("company_code"),
            cs_letter=record.get("cs_letter"),
            cs_number=record.get("cs_number"),
            draft_cs_number=record.get("draft_cs_number"),
        )
        return cls._child(DocType.CANVASS, record, root, ref_number=ref, approvers=approvers_from_pairs(approvers))

    @classmethod
    def purchase_order(
        cls, record: Mapping[str, Any], root: Mapping[str, Any], approvers: Iterable[ApproverPair] = ()
    ) -> "UnifiedDocument":
        ref = ref_numbers.purchase_order_ref(
            company_code=root.get("company_code"),
            po_letter=record.get("po_letter"),
            po_number=record.get("po_number"),
        )
        return cls._child(
            DocType.PURCHASE_ORDER, record, root, ref_number=ref, approvers=approvers_from_pairs(approvers)
        )

    @classmethod
    def delivery_receipt(cls, record: Mapping[str, Any], root: Mapping[str, Any]) -> "UnifiedDocument":
        ref = ref_numbers.delivery_receipt_ref(
            is_draft=bool(record.get("is_draft")),
            dr_number=record.get("dr_number"),
            draft_dr_number=record.get("draft_dr_number"),
        )
        return cls._child(DocType.DELIVERY_RECEIPT, record, root, ref_number=ref)

    @classmethod
    def invoice(cls, record: Mapping[str, Any], root: Mapping[str, Any]) -> "UnifiedDocument":
        ref = ref_numbers.invoice_ref(
            is_draft=bool(record.get("is_draft")),
            ir_number=record.get("ir_number"),
            ir_draft_number=record.get("ir_draft_number"),
        )
        return cls._child(DocType.INVOICE, record, root, ref_number=ref)

    @classmethod
    def payment_request(
        cls, record: Mapping[str, Any], root: Mapping[str, Any], approvers: Iterable[ApproverPair] = ()
    ) -> "UnifiedDocument":
        ref = ref_numbers.payment_request_ref(
            company_code=root.get("company_code"),
            is_draft=bool(record.get("is_draft")),
            pr_letter=record.get("pr_letter"),
            pr_number=record.get("pr_number"),
            draft_pr_number=record.get("draft_pr_number"),
        )
        return cls._child(
            DocType.PAYMENT_REQUEST,
            record,
            root,
            ref_number=ref,
            approvers=approvers_from_pairs(approvers),
            grouping_id=str(record["requisition_id"]),
        )

    @classmethod
    def non_requisition(cls, record: Mapping[str, Any], approvers: Iterable[ApproverPair] = ()) -> "UnifiedDocument":
        status = record.get("status") or ""
        return cls(
            id=record["id"],
            doc_type=DocType.NON_REQUISITION,
            ref_number=ref_numbers.non_requisition_ref(
                status=status,
                non_rs_letter=record.get("non_rs_letter"),
                non_rs_number=record.get("non_rs_number"),
                draft_non_rs_number=record.get("draft_non_rs_number"),
            ),
            requestor_id=record["created_by"],
            company_id=record.get("company_id"),
            project_id=record.get("project_id"),
            department_id=record.get("department_id"),
            updated_at=ensure_utc(record["updated_at"]),
            status=status,
            root_status=status,
            grouping_id=f"non_rs_{record['id']}",
            assigned_to_user_id=None,
            approvers=approvers_from_pairs(approvers),
        )

    @classmethod
    def from_feed_row(cls, row: Mapping[str, Any]) -> "UnifiedDocument":
        """Rebuild a document from a row of the live union query (already normalized in SQL)."""
        return cls(
            id=row["id"],
            doc_type=DocType(row["doc_type"]),
            ref_number=row["ref_number"],
            requestor_id=row["requestor_id"],
            company_id=row["company_id"],
            project_id=row["project_id"],
            department_id=row["department_id"],
            updated_at=ensure_utc(row["updated_at"]),
            status=row["status"] or "",
            root_status=row["root_status"] or "",
            grouping_id=row["grouping_id"],
            assigned_to_user_id=row["assigned_to_user_id"],
            approvers=merge_approvers(row["primary_approvers"], row["alternate_approvers"]),
        )


@dataclass(frozen=True)
class DisplayNames:
    requestor_name: Optional[str] = None
    company_name: Optional[str] = None
    project_name: Optional[str] = None
    department_name: Optional[str] = None
    assigned_to_user_name: Optional[str] = None

    @classmethod
    def from_feed_row(cls, row: Mapping[str, Any]) -> "DisplayNames":
        return cls(**{item.name: row[item.name] for item in fields(cls)})


_NAME_FIELDS = frozenset(item.name for item in fields(DisplayNames))


@dataclass(frozen=True)
class DashboardRow:
    """A unified document plus the display names joined from reference tables."""

    document: UnifiedDocument
    names: DisplayNames = field(default_factory=DisplayNames)

    def value(self, name: str) -> Any:
        """Field lookup shared by the in-process filter and sort paths."""
        if name in _NAME_FIELDS:
            return getattr(self.names, name)
        if name == "doc_type":
            return self.document.doc_type.value
        if name == "doc_type_priority":
            return self.document.priority
        return getattr(self.document, name)


def full_name(first: Optional[str], last: Optional[str]) -> Optional[str]:
    return " ".join(part for part in (first, last) if part) or None
