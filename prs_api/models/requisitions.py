from __future__ import annotations

from sqlalchemy import Column, DateTime, Integer, String
from sqlalchemy.sql import func

from .base import Base


class Requisition(Base):
    """Root workflow entity. Stored in a hypertable partitioned on ``updated_at``."""

    __tablename__ = "requisitions"

    id = Column(Integer, primary_key=True)
    company_code = Column(String, nullable=True)
    rs_letter = Column(String, nullable=True)
    rs_number = Column(String, nullable=True)
    draft_rs_number = Column(String, nullable=True)
    created_by = Column(Integer, nullable=False, index=True)
    company_id = Column(Integer, nullable=True)
    project_id = Column(Integer, nullable=True)
    department_id = Column(Integer, nullable=True)
    assigned_to = Column(Integer, nullable=True)
    status = Column(String, nullable=False, server_default="rs_draft")
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False, index=True
    )


class RequisitionApprover(Base):
    __tablename__ = "requisition_approvers"

    id = Column(Integer, primary_key=True)
    requisition_id = Column(Integer, nullable=False, index=True)
    approver_id = Column(Integer, nullable=True)
    alt_approver_id = Column(Integer, nullable=True)
