from __future__ import annotations

import pytest
from sqlalchemy import column, select, table
from sqlalchemy.dialects import postgresql

from prs_api.services.documents import DocType
from prs_api.services.visibility import (
    ApprovalRule,
    RequestType,
    RequestUser,
    RoleClass,
    VisibilityPolicy,
)

ME = 42
PRIVILEGED = RequestUser(id=ME, role="Purchasing Staff")
REGULAR = RequestUser(id=ME, role="Engineer")

policy = VisibilityPolicy()


def test_role_classes() -> None:
    assert policy.role_class("Purchasing Head") is RoleClass.PRIVILEGED
    assert policy.role_class("Purchasing Admin") is RoleClass.PRIVILEGED
    assert policy.role_class("Engineer") is RoleClass.REGULAR
    assert policy.role_class(None) is RoleClass.REGULAR


def test_privileged_roles_are_configurable() -> None:
    custom = VisibilityPolicy(privileged_roles=["Auditor"])
    assert custom.role_class("Auditor") is RoleClass.PRIVILEGED
    assert custom.role_class("Purchasing Staff") is RoleClass.REGULAR


def test_rule_table_is_immutable() -> None:
    with pytest.raises(TypeError):
        policy.rules[(RoleClass.REGULAR, DocType.INVOICE)] = ApprovalRule(via_approvers=True)  # type: ignore[index]


@pytest.mark.parametrize("doc_type", [DocType.REQUISITION, DocType.NON_REQUISITION])
def test_my_request_covers_root_documents_only(make_row, doc_type: DocType) -> None:
    assert policy.classify(make_row(doc_type, requestor_id=ME).document, REGULAR).my_request


def test_sub_documents_are_never_my_requests(make_row) -> None:
    canvass = make_row(DocType.CANVASS, requestor_id=ME).document
    assert not policy.classify(canvass, REGULAR).my_request


def test_assigning_requisition_is_an_approval_for_privileged_only(make_row) -> None:
    document = make_row(DocType.REQUISITION, status="assigning", approvers=()).document
    assert policy.is_my_approval(document, PRIVILEGED)
    assert not policy.is_my_approval(document, REGULAR)


def test_assignment_grants_privileged_for_every_doc_type(make_row) -> None:
    for doc_type in (DocType.CANVASS, DocType.DELIVERY_RECEIPT, DocType.INVOICE):
        document = make_row(doc_type, assigned_to_user_id=ME).document
        assert policy.is_my_approval(document, PRIVILEGED)
        assert not policy.is_my_approval(document, REGULAR)


def test_regular_requisition_approval_excludes_drafts(make_row) -> None:
    draft = make_row(DocType.REQUISITION, status="rs_draft", approvers=[ME]).document
    submitted = make_row(DocType.REQUISITION, status="submitted", approvers=[ME]).document
    assert not policy.is_my_approval(draft, REGULAR)
    assert policy.is_my_approval(submitted, REGULAR)


def test_regular_payment_request_excludes_pr_draft(make_row) -> None:
    draft = make_row(DocType.PAYMENT_REQUEST, status="PR Draft", approvers=[ME]).document
    pending = make_row(DocType.PAYMENT_REQUEST, status="For PR Approval", approvers=[ME]).document
    assert not policy.is_my_approval(draft, REGULAR)
    assert policy.is_my_approval(pending, REGULAR)


def test_regular_never_approves_deliveries_or_invoices(make_row) -> None:
    for doc_type in (DocType.DELIVERY_RECEIPT, DocType.INVOICE):
        assert not policy.is_my_approval(make_row(doc_type, approvers=[ME]).document, REGULAR)


def test_membership_is_exact_not_textual(make_row) -> None:
    # 142 and 420 contain "42" as text; neither is user 42.
    document = make_row(DocType.CANVASS, approvers=[142, 420]).document
    assert not policy.is_my_approval(document, REGULAR)
    assert not policy.is_my_approval(document, PRIVILEGED)


def test_buckets_overlap(make_row) -> None:
    document = make_row(DocType.REQUISITION, requestor_id=ME, approvers=[ME]).document
    classification = policy.classify(document, REGULAR)
    assert classification.in_bucket(RequestType.MY_REQUEST)
    assert classification.in_bucket(RequestType.MY_APPROVAL)
    assert classification.in_bucket(RequestType.ALL)


def _feed_table():
    return table(
        "feed",
        column("doc_type"),
        column("status"),
        column("requestor_id"),
        column("assigned_to_user_id"),
        column("primary_approvers"),
        column("alternate_approvers"),
    )


def test_sql_expression_uses_array_membership() -> None:
    feed = _feed_table()
    statement = select(policy.my_approval_expression(feed.c, REGULAR).label("is_my_approval"))
    sql = str(statement.compile(dialect=postgresql.dialect()))
    assert "ANY (feed.primary_approvers)" in sql
    assert "ANY (feed.alternate_approvers)" in sql
    assert "LIKE" not in sql.upper()
    assert "coalesce" in sql
    # Delivery receipts and invoices have no rule for regular users.
    assert "delivery_receipt" not in str(statement.compile(dialect=postgresql.dialect(), compile_kwargs={"literal_binds": True}))


def test_privileged_sql_includes_assignment_and_pending_status() -> None:
    feed = _feed_table()
    statement = select(policy.my_approval_expression(feed.c, PRIVILEGED))
    sql = str(statement.compile(dialect=postgresql.dialect(), compile_kwargs={"literal_binds": True}))
    assert "feed.assigned_to_user_id = 42" in sql
    assert "'assigning'" in sql
