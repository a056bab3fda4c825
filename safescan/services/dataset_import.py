"""Load curated ingredient rows into the dataset table."""

import csv
import json
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Iterable, List, Mapping, Union

from sqlalchemy import func, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from safescan.models.db_retry import commit_with_retry
from safescan.models.domain import DatasetRow
from safescan.services.errors import DatasetError, InputValidationError
from safescan.services.reference_matcher import ReferenceTable
from safescan.services.risk_vocabulary import RiskLevel, to_risk_level

logger = logging.getLogger(__name__)

REQUIRED_HEADERS = ("ingredient_name", "risk_level")


@dataclass(frozen=True)
class ImportResult:
    inserted: int = 0
    updated: int = 0
    skipped: int = 0

    def to_dict(self) -> Dict[str, int]:
        return {"inserted": self.inserted, "updated": self.updated, "skipped": self.skipped}


def _normalize_header(header: str) -> str:
    return "_".join((header or "").strip().lower().split())


def load_rows_from_csv(path: Union[str, Path]) -> List[Dict[str, str]]:
    logger.info(f"Loading dataset rows from CSV: {path}")
    with open(path, "r", encoding="utf-8", newline="") as f:
        reader = csv.reader(f)
        try:
            headers = [_normalize_header(h) for h in next(reader)]
        except StopIteration:
            raise InputValidationError("file", "CSV file is empty", str(path)) from None

        for required in REQUIRED_HEADERS:
            if required not in headers:
                raise InputValidationError("file", f"Missing required header: {required}", str(path))

        rows = []
        for values in reader:
            if not any(v.strip() for v in values):
                continue
            row = {header: (values[i].strip() if i < len(values) else "") for i, header in enumerate(headers)}
            rows.append(row)

    if not rows:
        raise InputValidationError("file", "CSV file must have a header row and at least one data row", str(path))
    return rows


def load_rows_from_json(path: Union[str, Path]) -> List[Dict[str, Any]]:
    logger.info(f"Loading dataset rows from JSON: {path}")
    with open(path, "r", encoding="utf-8") as f:
        data = json.load(f)
    if not isinstance(data, list):
        raise InputValidationError("file", "JSON file must contain an array of ingredients", str(path))
    return data


def rows_from_reference_table(table: ReferenceTable) -> List[Dict[str, str]]:
    return [
        {
            "ingredient_name": name,
            "risk_level": (to_risk_level(entry.status) or RiskLevel.LOW).value,
            "reason": entry.explanation,
            "aliases": "",
        }
        for name, entry in table.items()
    ]


def import_rows(db: Session, rows: Iterable[Mapping[str, Any]]) -> ImportResult:
    """Upsert rows by ingredient name in one transaction."""
    inserted = updated = skipped = 0
    try:
        for row in rows:
            name = str(row.get("ingredient_name") or "").strip()
            risk_level = str(row.get("risk_level") or "").strip().upper()
            if not name or not risk_level:
                logger.warning(f"Skipping row with missing data: {dict(row)}")
                skipped += 1
                continue
            if risk_level not in RiskLevel.__members__:
                logger.warning(f"Invalid risk_level {risk_level!r} for {name!r}, defaulting to LOW")
                risk_level = RiskLevel.LOW.value

            existing = db.scalars(
                select(DatasetRow).where(func.lower(DatasetRow.ingredient_name) == name.lower()).limit(1)
            ).first()
            reason = str(row.get("reason") or "")
            aliases = str(row.get("aliases") or "")
            if existing is None:
                db.add(DatasetRow(ingredient_name=name, risk_level=risk_level, reason=reason, aliases=aliases))
                inserted += 1
            else:
                existing.risk_level = risk_level
                existing.reason = reason
                existing.aliases = aliases
                updated += 1
            db.flush()

        commit_with_retry(db)
    except SQLAlchemyError as e:
        db.rollback()
        raise DatasetError(str(e), operation="import") from e

    result = ImportResult(inserted=inserted, updated=updated, skipped=skipped)
    logger.info(f"Dataset import complete: {result.to_dict()}")
    return result


def dataset_stats(db: Session) -> Dict[str, int]:
    counts = dict(
        db.execute(
            select(DatasetRow.risk_level, func.count()).group_by(DatasetRow.risk_level)
        ).all()
    )
    stats = {level.value: int(counts.get(level.value, 0)) for level in RiskLevel}
    stats["total"] = sum(stats.values())
    return stats
