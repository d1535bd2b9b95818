from __future__ import annotations

from sqlalchemy import Boolean, Column, DateTime, Integer, String
from sqlalchemy.sql import func

from .base import Base


class PaymentRequest(Base):
    __tablename__ = "rs_payment_requests"

    id = Column(Integer, primary_key=True)
    requisition_id = Column(Integer, nullable=False, index=True)
    is_draft = Column(Boolean, nullable=False, default=True)
    pr_letter = Column(String, nullable=True)
    pr_number = Column(String, nullable=True)
    draft_pr_number = Column(String, nullable=True)
    status = Column(String, nullable=True)
    updated_at = Column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False, index=True
    )


class PaymentRequestApprover(Base):
    __tablename__ = "rs_payment_request_approvers"

    id = Column(Integer, primary_key=True)
    payment_request_id = Column(Integer, nullable=False, index=True)
    user_id = Column(Integer, nullable=True)
    alt_approver_id = Column(Integer, nullable=True)
