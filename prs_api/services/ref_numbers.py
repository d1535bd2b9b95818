"""Reference number formatting, one function per document type.

Draft documents carry the ``TMP`` marker and their draft sequence; finalized
documents carry the canonical sequence. A missing part renders as an empty
string, matching ``CONCAT`` semantics in the live query.
"""

from __future__ import annotations

from typing import Any

DRAFT_MARKER = "TMP"


def _part(value: Any) -> str:
    return "" if value is None else str(value)


def _compose(prefix: str, *parts: Any, draft: bool = False) -> str:
    head = f"{prefix}-{DRAFT_MARKER}-" if draft else f"{prefix}-"
    return head + "".join(_part(part) for part in parts)


def requisition_ref(
    *, company_code: Any, rs_letter: Any, rs_number: Any, draft_rs_number: Any, status: str | None
) -> str:
    if status == "rs_draft":
        return _compose("RS", company_code, rs_letter, draft_rs_number, draft=True)
    return _compose("RS", company_code, rs_letter, rs_number)


def canvass_ref(*, company_code: Any, cs_letter: Any, cs_number: Any, draft_cs_number: Any) -> str:
    # A canvass stays a draft until it is assigned its canonical number.
    if cs_number is None:
        return _compose("CS", company_code, cs_letter, draft_cs_number, draft=True)
    return _compose("CS", company_code, cs_letter, cs_number)


def purchase_order_ref(*, company_code: Any, po_letter: Any, po_number: Any) -> str:
    return _compose("PO", company_code, po_letter, po_number)


def delivery_receipt_ref(*, is_draft: bool, dr_number: Any, draft_dr_number: Any) -> str:
    if is_draft:
        return _compose("RR", draft_dr_number, draft=True)
    return _compose("RR", dr_number)


def invoice_ref(*, is_draft: bool, ir_number: Any, ir_draft_number: Any) -> str:
    if is_draft:
        return _compose("IR", ir_draft_number, draft=True)
    return _compose("IR", ir_number)


def payment_request_ref(
    *, company_code: Any, is_draft: bool, pr_letter: Any, pr_number: Any, draft_pr_number: Any
) -> str:
    if is_draft:
        return _compose("VR", company_code, draft_pr_number, draft=True)
    return _compose("VR", company_code, pr_letter, pr_number)


def non_requisition_ref(
    *, status: str | None, non_rs_letter: Any, non_rs_number: Any, draft_non_rs_number: Any
) -> str:
    if status == "draft":
        return _compose("NR", non_rs_letter, draft_non_rs_number, draft=True)
    return _compose("NR", non_rs_letter, non_rs_number)
