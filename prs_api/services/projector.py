from __future__ import annotations

from typing import Any, Dict, Optional

from .documents import DOC_TYPE_LABELS, DashboardRow
from .pagination import PageResult, total_pages
from .visibility import RequestType

SUCCESS_MESSAGE = "Successfully retrieved dashboard data"


def serialize_row(row: DashboardRow) -> Dict[str, Any]:
    document = row.document
    names = row.names
    return {
        "id": document.id,
        "doc_type": DOC_TYPE_LABELS[document.doc_type],
        "ref_number": document.ref_number,
        "requestor_id": document.requestor_id,
        "requestor_name": names.requestor_name,
        "company_id": document.company_id,
        "company_name": names.company_name,
        "project_id": document.project_id,
        "project_name": names.project_name,
        "department_id": document.department_id,
        "department_name": names.department_name,
        "updated_at": document.updated_at.isoformat() if document.updated_at else None,
        "status": document.status,
        "approvers": sorted(document.approvers),
        "grouping_id": document.grouping_id,
        "root_status": document.root_status,
        "assigned_to_user_id": document.assigned_to_user_id,
        "assigned_to_user_name": names.assigned_to_user_name,
    }


def project_response(
    result: PageResult,
    *,
    request_type: Optional[RequestType],
    page: int,
    limit: int,
) -> Dict[str, Any]:
    """Shape one page into the dashboard response.

    With a ``request_type`` only that list is filled. Without one the page is the
    ``all`` page and the other two lists carry the rows of it that belong to them.
    """
    lists: Dict[str, list[Dict[str, Any]]] = {bucket.value: [] for bucket in RequestType}
    for item in result.rows:
        payload = serialize_row(item.row)
        if request_type is None:
            if item.classification.my_request:
                lists[RequestType.MY_REQUEST.value].append(payload)
            if item.classification.my_approval:
                lists[RequestType.MY_APPROVAL.value].append(payload)
            lists[RequestType.ALL.value].append(payload)
        else:
            lists[request_type.value].append(payload)

    totals = result.totals
    return {
        **lists,
        "meta": {
            "message": SUCCESS_MESSAGE,
            "page": page,
            "limit": limit,
            "myRequestsTotal": totals.my_request,
            "myRequestsTotalPages": total_pages(totals.my_request, limit),
            "myApprovalsTotal": totals.my_approval,
            "myApprovalsTotalPages": total_pages(totals.my_approval, limit),
            "allTotal": totals.all,
            "allTotalPages": total_pages(totals.all, limit),
        },
    }
