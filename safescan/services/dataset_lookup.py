"""Dataset tier: strict lookup of tokens against the curated dataset table.

Only two strategies are used, in order: case-insensitive equality with the
canonical ingredient name, then equality with one whole element of the
comma-separated alias list. Partial alias matches are never accepted.
Tokens that match neither are dropped from the result.
"""

import logging
import math
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Sequence

from sqlalchemy import String, func, or_, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from safescan.models.domain import DatasetRow
from safescan.services.errors import DatasetError
from safescan.services.risk_vocabulary import (
    RiskLevel,
    RiskSummary,
    coerce_risk_level,
    highest_level,
    summarize,
)
from safescan.services.tokenizer import parse_ingredient_tokens

logger = logging.getLogger(__name__)

NO_MATCHES_EXPLANATION = "No dataset matches found"


@dataclass(frozen=True)
class DatasetMatch:
    input: str
    name: str
    risk_level: RiskLevel
    reason: Optional[str]

    def to_dict(self) -> Dict[str, Optional[str]]:
        return {
            "input": self.input,
            "name": self.name,
            "risk_level": self.risk_level.value,
            "reason": self.reason,
        }


@dataclass(frozen=True)
class DatasetClassification:
    matched_ingredients: List[DatasetMatch] = field(default_factory=list)
    explanations: List[str] = field(default_factory=list)
    risk_level: RiskLevel = RiskLevel.LOW
    summary: RiskSummary = field(default_factory=RiskSummary)

    def to_dict(self) -> dict:
        return {
            "matched_ingredients": [m.to_dict() for m in self.matched_ingredients],
            "explanations": list(self.explanations),
            "risk_level": self.risk_level.value,
            "summary": self.summary.to_dict(),
        }


def is_dataset_available(db: Session) -> bool:
    """True when the dataset table holds at least one row.

    Any storage failure counts as "not available" rather than an error.
    """
    try:
        count = db.scalar(select(func.count()).select_from(DatasetRow))
        return bool(count)
    except SQLAlchemyError as e:
        logger.warning(f"Dataset availability check failed: {e}")
        return False


def find_dataset_row(db: Session, token: str) -> Optional[DatasetRow]:
    needle = (token or "").strip().lower()
    if not needle:
        return None

    exact = db.scalars(
        select(DatasetRow)
        .where(func.lower(DatasetRow.ingredient_name) == needle)
        .order_by(DatasetRow.id)
        .limit(1)
    ).first()
    if exact is not None:
        return exact

    candidates = db.scalars(
        select(DatasetRow)
        .where(func.lower(DatasetRow.aliases, type_=String).contains(needle, autoescape=True))
        .order_by(DatasetRow.id)
    )
    for row in candidates:
        if needle in row.alias_list():
            return row
    return None


def classify_with_dataset(db: Session, tokens: Sequence[str]) -> DatasetClassification:
    if not tokens:
        return DatasetClassification()

    logger.debug(f"Dataset lookup tokens: {list(tokens)}")
    matches: List[DatasetMatch] = []
    matched_names: set[str] = set()

    try:
        for token in tokens:
            if not token or not token.strip():
                continue
            row = find_dataset_row(db, token)
            if row is None:
                continue
            key = row.ingredient_name.lower()
            if key in matched_names:
                continue
            matched_names.add(key)
            matches.append(
                DatasetMatch(
                    input=token,
                    name=row.ingredient_name,
                    risk_level=_row_risk_level(row),
                    reason=row.reason,
                )
            )
    except SQLAlchemyError as e:
        logger.error(f"Dataset analysis error: {e}")
        raise DatasetError(str(e)) from e

    logger.debug(f"Dataset matched {len(matches)} of {len(tokens)} tokens")

    if not matches:
        return DatasetClassification(explanations=[NO_MATCHES_EXPLANATION])

    explanations = list(dict.fromkeys(m.reason for m in matches if m.reason))
    return DatasetClassification(
        matched_ingredients=matches,
        explanations=explanations,
        risk_level=highest_level(m.risk_level for m in matches),
        summary=summarize(m.risk_level for m in matches),
    )


def analyze_text_with_dataset(db: Session, text: str) -> DatasetClassification:
    result = classify_with_dataset(db, parse_ingredient_tokens(text))
    if not result.matched_ingredients:
        return DatasetClassification(explanations=[NO_MATCHES_EXPLANATION])
    return result


def _row_risk_level(row: DatasetRow) -> RiskLevel:
    value = (row.risk_level or "").strip().upper()
    if value in RiskLevel.__members__:
        return RiskLevel(value)
    logger.warning(f"Dataset row '{row.ingredient_name}' has invalid risk level {row.risk_level!r}")
    return coerce_risk_level(value)


@dataclass(frozen=True)
class DatasetPage:
    rows: List[DatasetRow] = field(default_factory=list)
    page: int = 1
    limit: int = 20
    total: int = 0

    @property
    def total_pages(self) -> int:
        return math.ceil(self.total / self.limit) if self.limit else 0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "data": [
                {
                    "id": row.id,
                    "ingredient_name": row.ingredient_name,
                    "risk_level": row.risk_level,
                    "reason": row.reason,
                    "aliases": row.alias_list(),
                    "updated_at": row.updated_at.isoformat() if row.updated_at else None,
                }
                for row in self.rows
            ],
            "pagination": {
                "page": self.page,
                "limit": self.limit,
                "total": self.total,
                "totalPages": self.total_pages,
            },
        }


def list_dataset(
    db: Session,
    page: int = 1,
    limit: int = 20,
    search: Optional[str] = None,
    risk_level: Optional[str] = None,
) -> DatasetPage:
    """Browse dataset rows alphabetically.

    ``search`` matches a substring of the name or the alias list, case-insensitively.
    """
    page = max(page, 1)
    limit = max(limit, 1)

    filters = []
    needle = (search or "").strip().lower()
    if needle:
        filters.append(
            or_(
                func.lower(DatasetRow.ingredient_name, type_=String).contains(needle, autoescape=True),
                func.lower(DatasetRow.aliases, type_=String).contains(needle, autoescape=True),
            )
        )
    if risk_level:
        filters.append(DatasetRow.risk_level == risk_level.strip().upper())

    try:
        total = db.scalar(select(func.count()).select_from(DatasetRow).where(*filters)) or 0
        rows = db.scalars(
            select(DatasetRow)
            .where(*filters)
            .order_by(func.lower(DatasetRow.ingredient_name), DatasetRow.id)
            .limit(limit)
            .offset((page - 1) * limit)
        ).all()
    except SQLAlchemyError as e:
        logger.error(f"Dataset browse error: {e}")
        raise DatasetError(str(e), operation="browse") from e

    return DatasetPage(rows=list(rows), page=page, limit=limit, total=total)
