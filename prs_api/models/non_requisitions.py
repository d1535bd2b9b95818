from __future__ import annotations

from sqlalchemy import Column, DateTime, Integer, String
from sqlalchemy.sql import func

from .base import Base


class NonRequisition(Base):
    """Self-contained request that never hangs off a requisition."""

    __tablename__ = "non_requisitions"

    id = Column(Integer, primary_key=True)
    created_by = Column(Integer, nullable=False, index=True)
    company_id = Column(Integer, nullable=True)
    project_id = Column(Integer, nullable=True)
    department_id = Column(Integer, nullable=True)
    non_rs_letter = Column(String, nullable=True)
    non_rs_number = Column(String, nullable=True)
    draft_non_rs_number = Column(String, nullable=True)
    status = Column(String, nullable=False, server_default="draft")
    updated_at = Column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False, index=True
    )


class NonRequisitionApprover(Base):
    __tablename__ = "non_requisition_approvers"

    id = Column(Integer, primary_key=True)
    non_requisition_id = Column(Integer, nullable=False, index=True)
    user_id = Column(Integer, nullable=True)
    alt_approver_id = Column(Integer, nullable=True)
