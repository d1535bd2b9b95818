from __future__ import annotations

from conftest import build_row
from prs_api.services.documents import DocType
from prs_api.services.pagination import BucketTotals, PageResult, PageRow
from prs_api.services.projector import SUCCESS_MESSAGE, project_response, serialize_row
from prs_api.services.visibility import Classification, RequestType


def _page() -> PageResult:
    mine = build_row(id=1, approvers=[7, 3])
    approval = build_row(DocType.PAYMENT_REQUEST, id=2, requisition_id=1)
    other = build_row(DocType.CANVASS, id=3, requisition_id=1)
    return PageResult(
        rows=[
            PageRow(mine, Classification(my_request=True, my_approval=False)),
            PageRow(approval, Classification(my_request=False, my_approval=True)),
            PageRow(other, Classification(my_request=False, my_approval=False)),
        ],
        totals=BucketTotals(all=21, my_request=4, my_approval=10),
    )


def test_serialized_row_uses_display_label_and_sorted_approvers() -> None:
    payload = serialize_row(build_row(DocType.PAYMENT_REQUEST, id=2, requisition_id=1, approvers=[9, 2]))
    assert payload["doc_type"] == "Voucher"
    assert payload["approvers"] == [2, 9]
    assert payload["grouping_id"] == "1"
    assert payload["updated_at"] == "2025-06-15T12:00:00+00:00"
    assert payload["requestor_name"] == "Ana Cruz"


def test_unset_request_type_fills_every_list_from_the_page() -> None:
    body = project_response(_page(), request_type=None, page=1, limit=10)
    assert [row["id"] for row in body["all"]] == [1, 2, 3]
    assert [row["id"] for row in body["my_request"]] == [1]
    assert [row["id"] for row in body["my_approval"]] == [2]


def test_request_type_fills_only_its_list() -> None:
    body = project_response(_page(), request_type=RequestType.MY_APPROVAL, page=2, limit=10)
    assert len(body["my_approval"]) == 3
    assert body["my_request"] == []
    assert body["all"] == []


def test_meta_reports_all_three_totals_and_page_counts() -> None:
    meta = project_response(_page(), request_type=RequestType.ALL, page=3, limit=10)["meta"]
    assert meta == {
        "message": SUCCESS_MESSAGE,
        "page": 3,
        "limit": 10,
        "myRequestsTotal": 4,
        "myRequestsTotalPages": 1,
        "myApprovalsTotal": 10,
        "myApprovalsTotalPages": 1,
        "allTotal": 21,
        "allTotalPages": 3,
    }


def test_empty_page_keeps_totals() -> None:
    body = project_response(PageResult(totals=BucketTotals(all=5)), request_type=None, page=9, limit=10)
    assert body["all"] == []
    assert body["meta"]["allTotal"] == 5
    assert body["meta"]["allTotalPages"] == 1
