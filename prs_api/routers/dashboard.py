from __future__ import annotations

import json
import logging
from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends, HTTPException, Query, Response, status

from ..dependencies.auth import require_user
from ..dependencies.dashboard import get_dashboard_service
from ..services.dashboard import DashboardQuery, DashboardService
from ..services.errors import QueryExecutionError, QueryTimeoutError, Stage, ValidationError
from ..services.visibility import RequestUser

router = APIRouter()

logger = logging.getLogger(__name__)


def _json_param(raw: Optional[str], name: str) -> Optional[Any]:
    if raw is None or not raw.strip():
        return None
    try:
        return json.loads(raw)
    except json.JSONDecodeError as exc:
        detail = ValidationError(f"{name} must be valid JSON", stage=Stage.FILTER_COMPILE).to_detail()
        raise HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail=detail) from exc


@router.get("/v2/requisitions")
def get_all_requisitions(
    response: Response,
    limit: int = Query(default=10, ge=1, le=100),
    page: int = Query(default=1, ge=1),
    order: Optional[str] = Query(default=None),
    filter_by: Optional[str] = Query(default=None, alias="filterBy"),
    request_type: Optional[str] = Query(default=None, alias="requestType"),
    time_range: Optional[str] = Query(default=None, alias="timeRange"),
    user: RequestUser = Depends(require_user),
    service: DashboardService = Depends(get_dashboard_service),
) -> Dict[str, Any]:
    query = DashboardQuery(
        user=user,
        limit=limit,
        page=page,
        order=_json_param(order, "order"),
        filter_by=_json_param(filter_by, "filterBy"),
        request_type=request_type,
        time_range=time_range,
    )
    try:
        result = service.get_dashboard(query)
    except ValidationError as exc:
        raise HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail=exc.to_detail()) from exc
    except QueryTimeoutError as exc:
        logger.warning("Dashboard query timed out for user %s at stage %s", user.id, exc.stage.value)
        raise HTTPException(status_code=status.HTTP_504_GATEWAY_TIMEOUT, detail=exc.to_detail()) from exc
    except QueryExecutionError as exc:
        logger.error("Dashboard query failed for user %s at stage %s: %s", user.id, exc.stage.value, exc.message)
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=exc.to_detail()) from exc

    response.headers["x-dashboard-source"] = result.source
    if result.snapshot_generation is not None:
        response.headers["x-snapshot-generation"] = str(result.snapshot_generation)
    return result.body
