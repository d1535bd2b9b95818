from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends

from ..dependencies.dashboard import get_snapshot_refresher
from ..services.snapshot import SnapshotRefresher

router = APIRouter()


@router.get("/health")
def health() -> dict[str, bool]:
    return {"ok": True}


@router.get("/healthz")
def healthz(refresher: Optional[SnapshotRefresher] = Depends(get_snapshot_refresher)) -> Dict[str, Any]:
    snapshot = refresher.current if refresher is not None else None
    return {
        "status": "ok",
        "snapshot_enabled": refresher is not None,
        "snapshot_generation": snapshot.generation if snapshot is not None else None,
        "snapshot_built_at": snapshot.built_at.isoformat() if snapshot is not None else None,
    }
