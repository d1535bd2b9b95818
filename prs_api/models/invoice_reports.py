from __future__ import annotations

from sqlalchemy import Boolean, Column, DateTime, Integer, String
from sqlalchemy.sql import func

from .base import Base


class InvoiceReport(Base):
    __tablename__ = "invoice_reports"

    id = Column(Integer, primary_key=True)
    requisition_id = Column(Integer, nullable=False, index=True)
    is_draft = Column(Boolean, nullable=False, default=True)
    ir_number = Column(String, nullable=True)
    ir_draft_number = Column(String, nullable=True)
    status = Column(String, nullable=True)
    updated_at = Column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False, index=True
    )
