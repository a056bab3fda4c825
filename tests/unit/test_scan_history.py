import asyncio

import pytest
from sqlalchemy import select
from sqlalchemy.exc import OperationalError

from safescan.models import Ingredient, Scan, ScanIngredient
from safescan.services.analysis import analyze
from safescan.services.scan_history import list_scan_history, save_scan, save_scan_safely


@pytest.fixture
def rules_verdict(analysis_context):
    return asyncio.run(analyze("Aqua, Parfum, Formaldehyde, Mystery Extract", analysis_context))


def test_save_scan_persists_scan_and_ingredients(db_session, rules_verdict):
    scan_id = save_scan(
        db_session,
        rules_verdict,
        user_id="user-1",
        extracted_text="Aqua, Parfum, Formaldehyde, Mystery Extract",
        image_name="label.jpg",
        product_category="skincare",
    )

    scan = db_session.get(Scan, scan_id)
    assert scan.user_id == "user-1"
    assert scan.source == "rules"
    assert scan.overall_risk == "HIGH"
    assert scan.image_name == "label.jpg"
    risks = [row.risk for row in db_session.scalars(select(ScanIngredient).order_by(ScanIngredient.id))]
    assert risks == ["safe", "risky", "restricted", "unknown"]


def test_save_scan_reuses_existing_ingredients(db_session, rules_verdict):
    save_scan(db_session, rules_verdict, "user-1", "text")
    save_scan(db_session, rules_verdict, "user-2", "text")

    names = db_session.scalars(select(Ingredient.name)).all()
    assert sorted(names) == ["aqua", "formaldehyde", "mystery extract", "parfum"]
    assert db_session.get(Ingredient, 1).normalized_name == "water"


def test_save_scan_safely_requires_user(db_session, rules_verdict):
    assert save_scan_safely(db_session, rules_verdict, None, extracted_text="text") is None
    assert db_session.scalars(select(Scan)).all() == []


def test_save_scan_safely_swallows_storage_errors(db_session, rules_verdict, monkeypatch, caplog):
    def broken_flush(*args, **kwargs):
        raise OperationalError("INSERT INTO scans", {}, Exception("disk full"))

    monkeypatch.setattr(db_session, "flush", broken_flush)

    assert save_scan_safely(db_session, rules_verdict, "user-1", extracted_text="text") is None
    assert "Failed to save scan" in caplog.text


def test_list_scan_history_counts_and_paginates(db_session, rules_verdict):
    first = save_scan(db_session, rules_verdict, "user-1", "first", product_category="skincare")
    second = save_scan(db_session, rules_verdict, "user-1", "second")
    save_scan(db_session, rules_verdict, "someone-else", "other")

    page = list_scan_history(db_session, "user-1", page=1, limit=1)

    assert page.total == 2
    assert page.total_pages == 2
    assert [item.id for item in page.items] == [second]
    data = page.to_dict()
    assert data["data"][0]["summary"] == {"safeCount": 1, "riskyCount": 1, "restrictedCount": 1}
    assert data["pagination"] == {"page": 1, "limit": 1, "total": 2, "totalPages": 2}

    older = list_scan_history(db_session, "user-1", page=2, limit=1)
    assert [item.id for item in older.items] == [first]
    assert older.items[0].product_category == "skincare"


def test_list_scan_history_for_unknown_user_is_empty(db_session):
    page = list_scan_history(db_session, "nobody")

    assert page.items == []
    assert page.total == 0
    assert page.total_pages == 0


def test_save_scan_safely_swallows_unexpected_errors(db_session, rules_verdict, monkeypatch, caplog):
    def broken_add(*args, **kwargs):
        raise RuntimeError("session is closed")

    monkeypatch.setattr(db_session, "add", broken_add)

    assert save_scan_safely(db_session, rules_verdict, "user-1", extracted_text="text") is None
    assert "Failed to save scan" in caplog.text
