"""API router for browsing the curated ingredient dataset."""

from typing import Literal, Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from safescan.models import get_db
from safescan.models.schemas import DatasetPageResponse, DatasetStatsResponse
from safescan.services.dataset_import import dataset_stats
from safescan.services.dataset_lookup import list_dataset
from safescan.services.errors import DatasetError

router = APIRouter()


@router.get("", response_model=DatasetPageResponse)
async def browse_dataset(
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=20, ge=1, le=100),
    search: Optional[str] = Query(default=None, max_length=200),
    risk_level: Optional[Literal["LOW", "MEDIUM", "HIGH"]] = Query(default=None),
    db: Session = Depends(get_db),
) -> dict:
    """
    Page through dataset rows in alphabetical order.

    Args:
        page: Page number, starting at 1
        limit: Rows per page
        search: Substring matched against names and aliases
        risk_level: Only rows with this level
        db: Database session

    Returns:
        Rows and pagination metadata

    Raises:
        HTTPException: If the dataset store cannot be read
    """
    try:
        return list_dataset(db, page=page, limit=limit, search=search, risk_level=risk_level).to_dict()
    except DatasetError as e:
        raise HTTPException(status_code=503, detail=e.message)


@router.get("/stats", response_model=DatasetStatsResponse)
async def get_dataset_stats(db: Session = Depends(get_db)) -> dict:
    try:
        return dataset_stats(db)
    except SQLAlchemyError:
        raise HTTPException(status_code=503, detail="Dataset store unavailable")
