from __future__ import annotations

from sqlalchemy import Column, DateTime, Integer, String
from sqlalchemy.sql import func

from .base import Base


class CanvassRequisition(Base):
    __tablename__ = "canvass_requisitions"

    id = Column(Integer, primary_key=True)
    # No FK: hypertables cannot be referenced, and orphans must stay readable.
    requisition_id = Column(Integer, nullable=False, index=True)
    cs_letter = Column(String, nullable=True)
    cs_number = Column(String, nullable=True)
    draft_cs_number = Column(String, nullable=True)
    status = Column(String, nullable=True)
    updated_at = Column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False, index=True
    )


class CanvassApprover(Base):
    __tablename__ = "canvass_approvers"

    id = Column(Integer, primary_key=True)
    canvass_requisition_id = Column(Integer, nullable=False, index=True)
    user_id = Column(Integer, nullable=True)
    alt_approver_id = Column(Integer, nullable=True)
