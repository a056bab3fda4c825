"""Persistence of analysis verdicts as scan records, and scan history queries."""

import logging
import math
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Optional

from sqlalchemy import case, func, select
from sqlalchemy.orm import Session

from safescan.models.db_retry import commit_with_retry
from safescan.models.domain import Ingredient, Scan, ScanIngredient
from safescan.services.analysis import AnalysisVerdict
from safescan.services.risk_vocabulary import ScanRisk, to_scan_risk

logger = logging.getLogger(__name__)


def _get_or_create_ingredient(db: Session, name: str, normalized_name: Optional[str], risk: str) -> Ingredient:
    ingredient = db.scalars(
        select(Ingredient).where(func.lower(Ingredient.name) == name.lower()).limit(1)
    ).first()
    if ingredient is None:
        ingredient = Ingredient(name=name, normalized_name=normalized_name, risk=risk)
        db.add(ingredient)
        db.flush()
    return ingredient


def save_scan(
    db: Session,
    verdict: AnalysisVerdict,
    user_id: str,
    extracted_text: str,
    image_name: Optional[str] = None,
    product_category: Optional[str] = None,
) -> int:
    """Insert one scan and its per-ingredient rows in a single transaction.

    Returns the new scan id. On failure the transaction is rolled back and the
    error re-raised; callers decide whether to swallow it.
    """
    try:
        scan = Scan(
            user_id=user_id,
            image_name=image_name,
            ocr_text=extracted_text,
            product_category=product_category,
            source=verdict.source.value,
            overall_risk=verdict.overall_risk_level.value,
        )
        db.add(scan)
        db.flush()

        for result in verdict.results:
            risk = to_scan_risk(result.risk_status).value
            ingredient = _get_or_create_ingredient(
                db, result.input_token, result.matched_canonical_name, risk
            )
            db.add(
                ScanIngredient(
                    scan_id=scan.id,
                    ingredient_id=ingredient.id,
                    raw_text=result.input_token,
                    risk=risk,
                )
            )

        commit_with_retry(db)
    except Exception:
        db.rollback()
        raise

    logger.info(f"Saved scan {scan.id} for user {user_id} with {len(verdict.results)} ingredients")
    return scan.id


def save_scan_safely(db: Session, verdict: AnalysisVerdict, user_id: Optional[str], **kwargs) -> Optional[int]:
    """Persist when a user is known; log and swallow any storage failure."""
    if not user_id:
        return None
    try:
        return save_scan(db, verdict, user_id, **kwargs)
    except Exception:
        logger.exception(f"Failed to save scan for user {user_id}")
        return None


@dataclass(frozen=True)
class ScanHistoryItem:
    id: int
    created_at: Optional[datetime]
    extracted_text: Optional[str]
    product_category: Optional[str]
    source: str
    overall_risk: str
    safe_count: int = 0
    risky_count: int = 0
    restricted_count: int = 0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "createdAt": self.created_at.isoformat() if self.created_at else None,
            "extractedText": self.extracted_text,
            "productCategory": self.product_category,
            "source": self.source,
            "overallRisk": self.overall_risk,
            "summary": {
                "safeCount": self.safe_count,
                "riskyCount": self.risky_count,
                "restrictedCount": self.restricted_count,
            },
        }


@dataclass(frozen=True)
class ScanHistoryPage:
    items: List[ScanHistoryItem] = field(default_factory=list)
    page: int = 1
    limit: int = 10
    total: int = 0

    @property
    def total_pages(self) -> int:
        return math.ceil(self.total / self.limit) if self.limit else 0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "data": [item.to_dict() for item in self.items],
            "pagination": {
                "page": self.page,
                "limit": self.limit,
                "total": self.total,
                "totalPages": self.total_pages,
            },
        }


def _risk_count(risk: ScanRisk):
    return func.coalesce(
        func.sum(case((func.lower(ScanIngredient.risk) == risk.value, 1), else_=0)), 0
    )


def list_scan_history(db: Session, user_id: str, page: int = 1, limit: int = 10) -> ScanHistoryPage:
    page = max(page, 1)
    limit = max(limit, 1)

    total = db.scalar(select(func.count()).select_from(Scan).where(Scan.user_id == user_id)) or 0

    rows = db.execute(
        select(
            Scan,
            _risk_count(ScanRisk.SAFE).label("safe_count"),
            _risk_count(ScanRisk.RISKY).label("risky_count"),
            _risk_count(ScanRisk.RESTRICTED).label("restricted_count"),
        )
        .outerjoin(ScanIngredient, ScanIngredient.scan_id == Scan.id)
        .where(Scan.user_id == user_id)
        .group_by(Scan.id)
        .order_by(Scan.created_at.desc(), Scan.id.desc())
        .limit(limit)
        .offset((page - 1) * limit)
    ).all()

    items = [
        ScanHistoryItem(
            id=scan.id,
            created_at=scan.created_at,
            extracted_text=scan.ocr_text,
            product_category=scan.product_category,
            source=scan.source,
            overall_risk=scan.overall_risk,
            safe_count=int(safe_count),
            risky_count=int(risky_count),
            restricted_count=int(restricted_count),
        )
        for scan, safe_count, risky_count, restricted_count in rows
    ]
    return ScanHistoryPage(items=items, page=page, limit=limit, total=total)
