from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.orm import Session

from safescan.api.dependencies import get_user_id
from safescan.models import get_db
from safescan.models.schemas import ScanHistoryResponse
from safescan.services.scan_history import list_scan_history

router = APIRouter()


@router.get("", response_model=ScanHistoryResponse)
async def get_scan_history(
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=10, ge=1, le=100),
    user_id: Optional[str] = Depends(get_user_id),
    db: Session = Depends(get_db),
) -> dict:
    """Paginated scan history for the calling user, newest first."""
    if user_id is None:
        raise HTTPException(status_code=401, detail="X-User-Id header is required")
    return list_scan_history(db, user_id, page=page, limit=limit).to_dict()
