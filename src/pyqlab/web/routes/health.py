"""Health check endpoint."""

from datetime import datetime, timezone
from pathlib import Path

from fastapi import APIRouter, Depends

from pyqlab.db.papers_repository import get_all_papers
from pyqlab.web.deps import data_dir_dependency
from pyqlab.web.schemas import HealthResponse

router = APIRouter(tags=["health"])


@router.get("/health", response_model=HealthResponse)
async def health_check(data_dir: Path = Depends(data_dir_dependency)) -> HealthResponse:
    """Check API health status and database reachability."""
    return HealthResponse(
        status="ok",
        version="0.1.0",
        timestamp=datetime.now(timezone.utc).isoformat(),
        data_dir=str(data_dir),
        papers=len(get_all_papers()),
    )
