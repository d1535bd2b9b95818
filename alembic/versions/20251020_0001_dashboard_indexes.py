"""Dashboard indexes: time composites, active partials, approver lookups"""

from __future__ import annotations

from alembic import op

revision = "20251020_0001"
down_revision = None
branch_labels = None
depends_on = None


# (name, table, definition)
TIME_COMPOSITE_INDEXES = [
    ("idx_requisitions_updated_at_status_user", "requisitions", "(updated_at DESC, status, created_by, assigned_to)"),
    ("idx_requisitions_company_time", "requisitions", "(company_id, updated_at DESC, status)"),
    ("idx_requisitions_project_time", "requisitions", "(project_id, updated_at DESC, status)"),
    ("idx_canvass_requisitions_updated_at_status", "canvass_requisitions", "(updated_at DESC, status, requisition_id)"),
    ("idx_purchase_orders_updated_at_status", "purchase_orders", "(updated_at DESC, status, requisition_id)"),
    ("idx_delivery_receipts_updated_at_status", "delivery_receipts", "(updated_at DESC, status, requisition_id)"),
    ("idx_invoice_reports_updated_at_status", "invoice_reports", "(updated_at DESC, status, requisition_id)"),
    ("idx_rs_payment_requests_updated_at_status", "rs_payment_requests", "(updated_at DESC, status, requisition_id)"),
    ("idx_non_requisitions_updated_at_status", "non_requisitions", "(updated_at DESC, status, created_by)"),
]

ACTIVE_PARTIAL_INDEXES = [
    (
        "idx_requisitions_active_updated_at",
        "requisitions",
        "(updated_at DESC, created_by, assigned_to, company_id)",
        "status NOT IN ('cancelled', 'closed', 'rs_draft')",
    ),
    (
        "idx_canvass_active_updated_at",
        "canvass_requisitions",
        "(updated_at DESC, requisition_id)",
        "status NOT IN ('cancelled', 'closed')",
    ),
    (
        "idx_purchase_orders_active_updated_at",
        "purchase_orders",
        "(updated_at DESC, requisition_id)",
        "status NOT IN ('cancelled', 'closed')",
    ),
]

APPROVER_INDEXES = [
    ("idx_requisition_approvers_owner", "requisition_approvers", "(requisition_id) INCLUDE (approver_id, alt_approver_id)"),
    ("idx_canvass_approvers_owner", "canvass_approvers", "(canvass_requisition_id) INCLUDE (user_id, alt_approver_id)"),
    ("idx_purchase_order_approvers_owner", "purchase_order_approvers", "(purchase_order_id) INCLUDE (user_id, alt_approver_id)"),
    ("idx_rs_payment_request_approvers_owner", "rs_payment_request_approvers", "(payment_request_id) INCLUDE (user_id, alt_approver_id)"),
    ("idx_non_requisition_approvers_owner", "non_requisition_approvers", "(non_requisition_id) INCLUDE (user_id, alt_approver_id)"),
    ("idx_requisition_approvers_user", "requisition_approvers", "(approver_id, alt_approver_id) INCLUDE (requisition_id)"),
    ("idx_canvass_approvers_user", "canvass_approvers", "(user_id, alt_approver_id) INCLUDE (canvass_requisition_id)"),
    ("idx_purchase_order_approvers_user", "purchase_order_approvers", "(user_id, alt_approver_id) INCLUDE (purchase_order_id)"),
    ("idx_rs_payment_request_approvers_user", "rs_payment_request_approvers", "(user_id, alt_approver_id) INCLUDE (payment_request_id)"),
    ("idx_non_requisition_approvers_user", "non_requisition_approvers", "(user_id, alt_approver_id) INCLUDE (non_requisition_id)"),
]

REFERENCE_INDEXES = [
    ("idx_users_fullname_search", "users", "(first_name, last_name)"),
    ("idx_companies_name_search", "companies", "(name)"),
    ("idx_projects_name_search", "projects", "(name)"),
    ("idx_departments_name_search", "departments", "(name)"),
]


def _all_index_names() -> list[str]:
    groups = (TIME_COMPOSITE_INDEXES, ACTIVE_PARTIAL_INDEXES, APPROVER_INDEXES, REFERENCE_INDEXES)
    return [entry[0] for group in groups for entry in group]


def upgrade() -> None:
    # CREATE INDEX CONCURRENTLY cannot run inside a transaction block.
    with op.get_context().autocommit_block():
        for name, table, columns in TIME_COMPOSITE_INDEXES + APPROVER_INDEXES + REFERENCE_INDEXES:
            op.execute(f"CREATE INDEX CONCURRENTLY IF NOT EXISTS {name} ON {table} {columns}")
        for name, table, columns, predicate in ACTIVE_PARTIAL_INDEXES:
            op.execute(f"CREATE INDEX CONCURRENTLY IF NOT EXISTS {name} ON {table} {columns} WHERE {predicate}")


def downgrade() -> None:
    with op.get_context().autocommit_block():
        for name in reversed(_all_index_names()):
            op.execute(f"DROP INDEX CONCURRENTLY IF EXISTS {name}")
