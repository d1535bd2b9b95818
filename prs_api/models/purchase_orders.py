from __future__ import annotations

from sqlalchemy import Column, DateTime, Integer, String
from sqlalchemy.sql import func

from .base import Base


class PurchaseOrder(Base):
    __tablename__ = "purchase_orders"

    id = Column(Integer, primary_key=True)
    requisition_id = Column(Integer, nullable=False, index=True)
    po_letter = Column(String, nullable=True)
    po_number = Column(String, nullable=True)
    status = Column(String, nullable=True)
    updated_at = Column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False, index=True
    )


class PurchaseOrderApprover(Base):
    __tablename__ = "purchase_order_approvers"

    id = Column(Integer, primary_key=True)
    purchase_order_id = Column(Integer, nullable=False, index=True)
    user_id = Column(Integer, nullable=True)
    alt_approver_id = Column(Integer, nullable=True)
