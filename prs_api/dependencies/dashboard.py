from __future__ import annotations

from functools import lru_cache
from typing import Optional
from zoneinfo import ZoneInfo

from fastapi import Depends, Request
from sqlalchemy.orm import Session

from ..config import Settings, get_settings
from ..services.dashboard import DashboardService, EngineConfig
from ..services.snapshot import SnapshotRefresher
from ..services.visibility import VisibilityPolicy
from .db import get_db


def build_engine_config(settings: Settings) -> EngineConfig:
    return EngineConfig(
        policy=VisibilityPolicy(privileged_roles=settings.privileged_roles),
        default_time_range=settings.default_time_range,
        tz=ZoneInfo(settings.timezone),
        fallback_enabled=settings.fallback_enabled,
        query_timeout=settings.query_timeout_ms / 1000,
    )


@lru_cache(maxsize=1)
def get_engine_config() -> EngineConfig:
    return build_engine_config(get_settings())


def get_snapshot_refresher(request: Request) -> Optional[SnapshotRefresher]:
    return getattr(request.app.state, "snapshot_refresher", None)


def get_dashboard_service(
    db: Session = Depends(get_db),
    config: EngineConfig = Depends(get_engine_config),
    refresher: Optional[SnapshotRefresher] = Depends(get_snapshot_refresher),
) -> DashboardService:
    return DashboardService(db, config, refresher=refresher)
