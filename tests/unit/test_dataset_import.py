import json

import pytest
from sqlalchemy import select

from safescan.models import DatasetRow
from safescan.services.dataset_import import (
    dataset_stats,
    import_rows,
    load_rows_from_csv,
    load_rows_from_json,
    rows_from_reference_table,
)
from safescan.services.errors import InputValidationError


def test_load_rows_from_csv_normalizes_headers(tmp_path):
    path = tmp_path / "dataset.csv"
    path.write_text(
        "Ingredient Name,Risk Level,Reason,Aliases\n"
        'paraben,HIGH,"Preservative, sensitizing","methylparaben,propylparaben"\n'
        "\n"
        "water,low,Base,\n",
        encoding="utf-8",
    )

    rows = load_rows_from_csv(path)

    assert rows == [
        {
            "ingredient_name": "paraben",
            "risk_level": "HIGH",
            "reason": "Preservative, sensitizing",
            "aliases": "methylparaben,propylparaben",
        },
        {"ingredient_name": "water", "risk_level": "low", "reason": "Base", "aliases": ""},
    ]


def test_load_rows_from_csv_requires_headers(tmp_path):
    path = tmp_path / "dataset.csv"
    path.write_text("name,level\nwater,LOW\n", encoding="utf-8")

    with pytest.raises(InputValidationError, match="ingredient_name"):
        load_rows_from_csv(path)


def test_load_rows_from_json_requires_array(tmp_path):
    path = tmp_path / "dataset.json"
    path.write_text(json.dumps({"ingredient_name": "water"}), encoding="utf-8")

    with pytest.raises(InputValidationError):
        load_rows_from_json(path)


def test_rows_from_reference_table_maps_statuses(reference_table):
    rows = {row["ingredient_name"]: row for row in rows_from_reference_table(reference_table)}

    assert rows["water"]["risk_level"] == "LOW"
    assert rows["fragrance"]["risk_level"] == "MEDIUM"
    assert rows["formaldehyde"]["risk_level"] == "HIGH"


def test_import_rows_upserts_and_skips(db_session):
    first = import_rows(
        db_session,
        [
            {"ingredient_name": "paraben", "risk_level": "high", "aliases": "methylparaben"},
            {"ingredient_name": "water", "risk_level": "LOW", "reason": "Base"},
            {"ingredient_name": "", "risk_level": "LOW"},
            {"ingredient_name": "talc"},
        ],
    )
    second = import_rows(
        db_session,
        [
            {"ingredient_name": "Water", "risk_level": "MEDIUM", "reason": "Updated"},
            {"ingredient_name": "retinol", "risk_level": "extreme"},
        ],
    )

    assert first.to_dict() == {"inserted": 2, "updated": 0, "skipped": 2}
    assert second.to_dict() == {"inserted": 1, "updated": 1, "skipped": 0}

    water = db_session.scalars(select(DatasetRow).where(DatasetRow.ingredient_name == "water")).one()
    assert water.risk_level == "MEDIUM"
    assert water.reason == "Updated"
    retinol = db_session.scalars(select(DatasetRow).where(DatasetRow.ingredient_name == "retinol")).one()
    assert retinol.risk_level == "LOW"


def test_dataset_stats(db_session):
    import_rows(
        db_session,
        [
            {"ingredient_name": "a1", "risk_level": "LOW"},
            {"ingredient_name": "b2", "risk_level": "HIGH"},
            {"ingredient_name": "c3", "risk_level": "HIGH"},
        ],
    )

    assert dataset_stats(db_session) == {"LOW": 1, "MEDIUM": 0, "HIGH": 2, "total": 3}
