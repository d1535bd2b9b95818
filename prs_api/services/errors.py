from __future__ import annotations

from enum import Enum
from typing import Any


class Stage(str, Enum):
    FILTER_COMPILE = "filter-compile"
    UNION_BUILD = "union-build"
    CLASSIFY = "classify"
    PAGINATE = "paginate"
    PROJECT = "project"


class DashboardError(Exception):
    """Base class for dashboard engine failures. Every error names the stage that raised it."""

    def __init__(self, message: str, *, stage: Stage) -> None:
        super().__init__(message)
        self.message = message
        self.stage = stage

    def to_detail(self) -> dict[str, Any]:
        return {"message": self.message, "stage": self.stage.value}


class ValidationError(DashboardError):
    """Raised for an unknown order/filter field or a malformed value, before storage is touched."""


class QueryExecutionError(DashboardError):
    """Raised when the storage engine fails to execute a statement."""


class QueryTimeoutError(DashboardError, TimeoutError):
    """Raised when the caller's deadline expires. Never retried inside the engine."""


class DataIntegrityWarning(UserWarning):
    """An orphaned sub-document row. Logged and dropped; the query still succeeds."""

    def __init__(self, doc_type: str, document_id: Any, requisition_id: Any, *, stage: Stage = Stage.UNION_BUILD) -> None:
        super().__init__(
            f"{doc_type} {document_id} references missing requisition {requisition_id}; row dropped"
        )
        self.doc_type = doc_type
        self.document_id = document_id
        self.requisition_id = requisition_id
        self.stage = stage
