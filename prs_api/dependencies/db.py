from __future__ import annotations

from typing import Iterator

from sqlalchemy.orm import Session

from ..db.session import SessionLocal


def get_db() -> Iterator[Session]:
    """Request-scoped session. The dashboard only reads, so nothing is ever committed."""
    db = SessionLocal()
    try:
        yield db
    finally:
        db.rollback()
        db.close()
