from __future__ import annotations

from typing import Optional

from fastapi import Header, HTTPException, Request, status

from ..services.visibility import RequestUser


def require_user(
    request: Request,
    x_user_id: Optional[str] = Header(default=None),
    x_user_role: Optional[str] = Header(default=None),
) -> RequestUser:
    """Resolve the caller from the identity headers set by the authenticating gateway."""
    raw_id = (x_user_id or "").strip()
    if not raw_id:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Authentication required")
    try:
        user_id = int(raw_id)
    except ValueError as exc:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Authentication required") from exc

    role = (x_user_role or "").strip() or None
    request.state.user_id = str(user_id)
    request.state.user_role = role
    return RequestUser(id=user_id, role=role)
