"""Tests for the dataset -> AI -> rules fallback chain."""

import logging

import httpx
import pytest

from safescan.services.ai_classifier import AIClassification, AIClassifierService, AIIngredient
from safescan.services.analysis import (
    AnalysisSource,
    analyze,
    build_context,
    validate_text,
)
from safescan.services.errors import AITimeoutError, DatasetError, InputValidationError
from safescan.services.reference_matcher import MatchSource
from safescan.services.risk_vocabulary import RiskLevel, RiskStatus

from conftest import make_settings

SCENARIO_TEXT = "Water, Glycerin, Fragrance, Methylparaben"


class FakeAIClassifier:
    def __init__(self, result=None, error=None, configured=True):
        self.result = result
        self.error = error
        self.text_service_configured = configured
        self.calls = []

    async def classify_text(self, text):
        self.calls.append(text)
        if self.error is not None:
            raise self.error
        return self.result


def ai_result(*ingredients, risk_level=RiskLevel.LOW):
    return AIClassification(
        matched_ingredients=list(ingredients),
        explanations=["AI explanation"],
        risk_level=risk_level,
        model_version="test-model",
    )


@pytest.fixture
def broken_dataset(monkeypatch, add_dataset_rows):
    add_dataset_rows({"ingredient_name": "water", "risk_level": "LOW", "reason": "Base"})

    def fail(db, tokens):
        raise DatasetError("disk I/O error")

    monkeypatch.setattr("safescan.services.analysis.classify_with_dataset", fail)


def context_with_ai(session_factory, reference_table, classifier):
    return build_context(
        settings=make_settings(),
        session_factory=session_factory,
        reference_table=reference_table,
        ai_classifier=classifier,
    )


@pytest.mark.asyncio
async def test_rules_tier_when_dataset_empty_and_ai_not_configured(analysis_context):
    verdict = await analyze(SCENARIO_TEXT, analysis_context)

    assert verdict.source is AnalysisSource.RULES
    assert verdict.tokens == ["water", "glycerin", "fragrance", "methylparaben"]
    statuses = {r.input_token: r.risk_status for r in verdict.results}
    assert statuses["fragrance"] is RiskStatus.RISKY
    assert statuses["methylparaben"] is RiskStatus.RISKY
    summary = verdict.summary
    assert summary.safe + summary.risky + summary.restricted + summary.unknown == 4
    assert summary.total == 4
    assert verdict.overall_risk_level is RiskLevel.MEDIUM


@pytest.mark.asyncio
async def test_dataset_tier_is_preferred(analysis_context, add_dataset_rows):
    add_dataset_rows(
        {
            "ingredient_name": "paraben",
            "risk_level": "HIGH",
            "reason": "Sensitivity concerns",
            "aliases": "methylparaben,propylparaben",
        }
    )

    verdict = await analyze(SCENARIO_TEXT, analysis_context)

    assert verdict.source is AnalysisSource.DATASET
    assert len(verdict.results) == 1
    result = verdict.results[0]
    assert result.input_token == "methylparaben"
    assert result.matched_canonical_name == "paraben"
    assert result.match_source is MatchSource.ALIAS
    assert result.risk_status is RiskStatus.RESTRICTED
    assert verdict.summary.to_dict()["restrictedCount"] == 1
    assert verdict.summary.unknown == 0
    assert verdict.unmatched_tokens == ["water", "glycerin", "fragrance"]
    assert verdict.overall_risk_level is RiskLevel.HIGH


@pytest.mark.asyncio
async def test_dataset_without_matches_still_answers(analysis_context, add_dataset_rows):
    add_dataset_rows({"ingredient_name": "triclosan", "risk_level": "HIGH", "reason": "Restricted"})

    verdict = await analyze(SCENARIO_TEXT, analysis_context)

    assert verdict.source is AnalysisSource.DATASET
    assert verdict.results == []
    assert verdict.explanations == ["No dataset matches found"]
    assert verdict.overall_risk_level is RiskLevel.LOW


@pytest.mark.asyncio
async def test_dataset_failure_falls_back_to_ai(session_factory, reference_table, broken_dataset, caplog):
    classifier = FakeAIClassifier(
        result=ai_result(
            AIIngredient(name="Fragrance", risk=RiskLevel.MEDIUM, reason="Allergen"),
            risk_level=RiskLevel.MEDIUM,
        )
    )
    context = context_with_ai(session_factory, reference_table, classifier)

    with caplog.at_level(logging.INFO, logger="safescan.services.analysis"):
        verdict = await analyze(SCENARIO_TEXT, context)

    assert verdict.source is AnalysisSource.AI
    assert classifier.calls == [SCENARIO_TEXT]
    assert verdict.results[0].match_source is MatchSource.AI
    assert verdict.results[0].input_token == "fragrance"
    assert verdict.summary.risky == 1
    assert verdict.model_version == "test-model"
    assert "fragrance" not in verdict.unmatched_tokens
    assert any("check_dataset failed" in record.message for record in caplog.records)


@pytest.mark.asyncio
async def test_dataset_failure_without_ai_falls_back_to_rules(session_factory, reference_table, broken_dataset):
    classifier = FakeAIClassifier(configured=False)
    context = context_with_ai(session_factory, reference_table, classifier)

    verdict = await analyze(SCENARIO_TEXT, context)

    assert verdict.source is AnalysisSource.RULES
    assert classifier.calls == []


@pytest.mark.asyncio
async def test_ai_failure_falls_back_to_rules(session_factory, reference_table):
    classifier = FakeAIClassifier(error=AITimeoutError(10.0))
    context = context_with_ai(session_factory, reference_table, classifier)

    verdict = await analyze(SCENARIO_TEXT, context)

    assert verdict.source is AnalysisSource.RULES
    assert len(classifier.calls) == 1


@pytest.mark.asyncio
async def test_unexpected_ai_error_falls_back_to_rules(session_factory, reference_table, caplog):
    classifier = FakeAIClassifier(error=RuntimeError("event loop is closed"))
    context = context_with_ai(session_factory, reference_table, classifier)

    with caplog.at_level(logging.WARNING, logger="safescan.services.analysis"):
        verdict = await analyze(SCENARIO_TEXT, context)

    assert verdict.source is AnalysisSource.RULES
    assert any("check_ai failed" in record.message for record in caplog.records)


@pytest.mark.asyncio
async def test_unparseable_ai_body_falls_back_to_rules(session_factory, reference_table):
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, text="[" * 100000)

    settings = make_settings(ai_service_url="http://ai.test")
    classifier = AIClassifierService(
        settings, http_client=httpx.AsyncClient(transport=httpx.MockTransport(handler))
    )
    context = build_context(
        settings=settings,
        session_factory=session_factory,
        reference_table=reference_table,
        ai_classifier=classifier,
    )

    verdict = await analyze("Water, Glycerin", context)

    assert verdict.source is AnalysisSource.RULES
    assert verdict.tokens == ["water", "glycerin"]


@pytest.mark.asyncio
async def test_ai_counts_only_names_matching_tokens(session_factory, reference_table):
    classifier = FakeAIClassifier(
        result=ai_result(
            AIIngredient(name="Water", risk=RiskLevel.LOW),
            AIIngredient(name="Limonene", risk=RiskLevel.MEDIUM),
            AIIngredient(name="Linalool", risk=RiskLevel.MEDIUM),
        )
    )
    context = context_with_ai(session_factory, reference_table, classifier)

    verdict = await analyze("Water, Glycerin", context)

    summary = verdict.summary
    assert len(verdict.results) == 3
    assert (summary.safe, summary.risky, summary.restricted) == (1, 0, 0)
    assert summary.safe + summary.risky + summary.restricted <= summary.total == 2
    assert verdict.overall_risk_level is RiskLevel.MEDIUM


@pytest.mark.asyncio
async def test_ai_overall_risk_never_below_its_matches(session_factory, reference_table):
    classifier = FakeAIClassifier(
        result=ai_result(
            AIIngredient(name="formaldehyde", risk=RiskLevel.HIGH),
            AIIngredient(name="water", risk=RiskLevel.LOW),
            risk_level=RiskLevel.LOW,
        )
    )
    context = context_with_ai(session_factory, reference_table, classifier)

    verdict = await analyze("Water, Formaldehyde", context)

    assert verdict.overall_risk_level is RiskLevel.HIGH
    assert verdict.overall_status is RiskStatus.RESTRICTED


@pytest.mark.asyncio
async def test_no_session_factory_skips_dataset(reference_table):
    context = build_context(settings=make_settings(), reference_table=reference_table)

    verdict = await analyze(SCENARIO_TEXT, context)

    assert verdict.source is AnalysisSource.RULES


@pytest.mark.asyncio
async def test_severity_dominance(analysis_context):
    verdict = await analyze("Water, Glycerin, Squalane, Formaldehyde", analysis_context)

    assert verdict.overall_risk_level is RiskLevel.HIGH
    assert verdict.to_dict()["overall_risk"] == "restricted"


@pytest.mark.asyncio
async def test_unrated_results_give_low_overall_risk(analysis_context):
    verdict = await analyze("Mystery Extract, Unknown Oil", analysis_context)

    assert verdict.overall_risk_level is RiskLevel.LOW
    assert verdict.summary.unknown == 2
    assert verdict.unmatched_tokens == ["mystery extract", "unknown oil"]


@pytest.mark.asyncio
@pytest.mark.parametrize("value", ["", "   ", None, 42])
async def test_invalid_input_raises_validation_error(analysis_context, value):
    with pytest.raises(InputValidationError):
        await analyze(value, analysis_context)


def test_overlong_text_is_rejected():
    with pytest.raises(InputValidationError) as exc_info:
        validate_text("x" * 11, max_length=10)

    assert exc_info.value.field == "text"


@pytest.mark.asyncio
async def test_verdict_serialization(analysis_context):
    verdict = await analyze("Aqua, Parfum", analysis_context)

    data = verdict.to_dict()

    assert data["source"] == "rules"
    assert data["summary"] == {
        "safeCount": 1,
        "riskyCount": 1,
        "restrictedCount": 0,
        "unknownCount": 0,
        "total": 2,
    }
    assert data["results"][0]["matched_canonical_name"] == "water"
    assert data["results"][0]["match_source"] == "synonym"
