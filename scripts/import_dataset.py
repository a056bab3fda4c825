"""Import the curated ingredient dataset from CSV, JSON or the bundled reference list.

Usage:
    python scripts/import_dataset.py --file path/to/dataset.csv
    python scripts/import_dataset.py --json path/to/dataset.json
    python scripts/import_dataset.py --sample

CSV columns: ingredient_name,risk_level,reason,aliases
"""

import argparse
import logging
import sys
from pathlib import Path

sys.path.insert(0, str(Path(__file__).parent.parent))

from safescan.config import settings
from safescan.models import SessionLocal, init_db
from safescan.services.dataset_import import (
    dataset_stats,
    import_rows,
    load_rows_from_csv,
    load_rows_from_json,
    rows_from_reference_table,
)
from safescan.services.errors import SafeScanError
from safescan.services.reference_matcher import load_reference_table

logging.basicConfig(level=settings.log_level.upper())
logger = logging.getLogger(__name__)


def main() -> int:
    parser = argparse.ArgumentParser(description="Import ingredient dataset rows")
    source = parser.add_mutually_exclusive_group(required=True)
    source.add_argument("--file", help="CSV file with ingredient_name and risk_level columns")
    source.add_argument("--json", help="JSON file containing an array of ingredient objects")
    source.add_argument("--sample", action="store_true", help="Load the bundled reference list")
    args = parser.parse_args()

    init_db()

    try:
        if args.file:
            rows = load_rows_from_csv(args.file)
        elif args.json:
            rows = load_rows_from_json(args.json)
        else:
            rows = rows_from_reference_table(load_reference_table(settings.reference_data_path))

        with SessionLocal() as db:
            result = import_rows(db, rows)
            stats = dataset_stats(db)
    except (OSError, ValueError, SafeScanError) as e:
        logger.error(f"Import failed: {e}")
        return 1

    logger.info(
        f"Inserted: {result.inserted}, updated: {result.updated}, skipped: {result.skipped}"
    )
    logger.info(
        f"Dataset now holds {stats['total']} rows "
        f"(LOW {stats['LOW']}, MEDIUM {stats['MEDIUM']}, HIGH {stats['HIGH']})"
    )
    return 0


if __name__ == "__main__":
    sys.exit(main())
