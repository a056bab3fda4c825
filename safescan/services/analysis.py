"""Analysis orchestrator: dataset -> AI -> rules fallback chain.

Each tier runner returns a ``TierOutcome`` (succeeded, skipped or failed).
The orchestrator walks the states in order and stops at the first success.
The rules tier cannot fail, so every valid input produces a verdict.
"""

import asyncio
import enum
import logging
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Dict, List, Optional, Sequence

from sqlalchemy.orm import Session

from safescan.config import Settings
from safescan.config import settings as default_settings
from safescan.services.ai_classifier import AIClassification, AIClassifierService
from safescan.services.dataset_lookup import (
    DatasetClassification,
    classify_with_dataset,
    is_dataset_available,
)
from safescan.services.errors import InputValidationError, SafeScanError
from safescan.services.reference_matcher import (
    MatchSource,
    ReferenceTable,
    RulesClassification,
    classify_with_rules,
    load_reference_table,
)
from safescan.services.risk_vocabulary import (
    RiskLevel,
    RiskStatus,
    RiskSummary,
    highest_level,
    summarize,
    to_risk_level,
    to_risk_status,
    to_scan_risk,
)
from safescan.services.tokenizer import tokenize

logger = logging.getLogger(__name__)


class AnalysisSource(str, enum.Enum):
    DATASET = "dataset"
    AI = "ai"
    RULES = "rules"


class TierState(str, enum.Enum):
    CHECK_DATASET = "check_dataset"
    CHECK_AI = "check_ai"
    RULE_BASED = "rule_based"


class OutcomeKind(str, enum.Enum):
    SUCCEEDED = "succeeded"
    SKIPPED = "skipped"
    FAILED = "failed"


@dataclass(frozen=True)
class AnalysisContext:
    """Everything a single analysis needs, built once and shared read-only."""

    settings: Settings
    reference_table: ReferenceTable
    session_factory: Optional[Callable[[], Session]] = None
    ai_classifier: Optional[AIClassifierService] = None


def build_context(
    settings: Optional[Settings] = None,
    session_factory: Optional[Callable[[], Session]] = None,
    ai_classifier: Optional[AIClassifierService] = None,
    reference_table: Optional[ReferenceTable] = None,
) -> AnalysisContext:
    settings = settings or default_settings
    if reference_table is None:
        reference_table = load_reference_table(settings.reference_data_path)
    if ai_classifier is None:
        ai_classifier = AIClassifierService(settings)
    return AnalysisContext(
        settings=settings,
        reference_table=reference_table,
        session_factory=session_factory,
        ai_classifier=ai_classifier,
    )


@dataclass(frozen=True)
class MatchResult:
    input_token: str
    matched_canonical_name: Optional[str]
    risk_status: RiskStatus
    risk_level: Optional[RiskLevel]
    explanation: str
    match_source: MatchSource

    def to_dict(self) -> Dict[str, Any]:
        return {
            "input_token": self.input_token,
            "matched_canonical_name": self.matched_canonical_name,
            "risk_status": self.risk_status.value,
            "risk_level": self.risk_level.value if self.risk_level else None,
            "explanation": self.explanation,
            "match_source": self.match_source.value,
        }


@dataclass(frozen=True)
class VerdictSummary:
    safe: int = 0
    risky: int = 0
    restricted: int = 0
    unknown: int = 0
    total: int = 0

    @classmethod
    def from_counts(cls, counts: RiskSummary, total: int, count_unknown: bool) -> "VerdictSummary":
        return cls(
            safe=counts.safe_count,
            risky=counts.risky_count,
            restricted=counts.restricted_count,
            unknown=counts.unknown_count if count_unknown else 0,
            total=total,
        )

    def to_dict(self) -> Dict[str, int]:
        return {
            "safeCount": self.safe,
            "riskyCount": self.risky,
            "restrictedCount": self.restricted,
            "unknownCount": self.unknown,
            "total": self.total,
        }


@dataclass(frozen=True)
class AnalysisVerdict:
    source: AnalysisSource
    results: List[MatchResult]
    summary: VerdictSummary
    overall_risk_level: RiskLevel
    tokens: List[str] = field(default_factory=list)
    unmatched_tokens: List[str] = field(default_factory=list)
    explanations: List[str] = field(default_factory=list)
    recommendations: Optional[Any] = None
    model_version: Optional[str] = None

    @property
    def overall_status(self) -> RiskStatus:
        return to_risk_status(self.overall_risk_level)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "source": self.source.value,
            "overall_risk_level": self.overall_risk_level.value,
            "overall_status": self.overall_status.value,
            "overall_risk": to_scan_risk(self.overall_risk_level).value,
            "results": [r.to_dict() for r in self.results],
            "summary": self.summary.to_dict(),
            "tokens": list(self.tokens),
            "unmatched_tokens": list(self.unmatched_tokens),
            "explanations": list(self.explanations),
            "recommendations": self.recommendations,
            "model_version": self.model_version,
        }


@dataclass(frozen=True)
class TierOutcome:
    tier: TierState
    kind: OutcomeKind
    verdict: Optional[AnalysisVerdict] = None
    reason: Optional[str] = None

    @classmethod
    def succeeded(cls, tier: TierState, verdict: AnalysisVerdict) -> "TierOutcome":
        return cls(tier=tier, kind=OutcomeKind.SUCCEEDED, verdict=verdict)

    @classmethod
    def skipped(cls, tier: TierState, reason: str) -> "TierOutcome":
        return cls(tier=tier, kind=OutcomeKind.SKIPPED, reason=reason)

    @classmethod
    def failed(cls, tier: TierState, reason: str) -> "TierOutcome":
        return cls(tier=tier, kind=OutcomeKind.FAILED, reason=reason)


def verdict_from_dataset(result: DatasetClassification, tokens: Sequence[str]) -> AnalysisVerdict:
    results = [
        MatchResult(
            input_token=m.input,
            matched_canonical_name=m.name,
            risk_status=to_risk_status(m.risk_level),
            risk_level=m.risk_level,
            explanation=m.reason or "",
            match_source=(
                MatchSource.EXACT if m.input.strip().lower() == m.name.lower() else MatchSource.ALIAS
            ),
        )
        for m in result.matched_ingredients
    ]
    matched_inputs = {r.input_token for r in results}
    return AnalysisVerdict(
        source=AnalysisSource.DATASET,
        results=results,
        summary=VerdictSummary.from_counts(result.summary, len(tokens), count_unknown=False),
        overall_risk_level=result.risk_level,
        tokens=list(tokens),
        unmatched_tokens=[t for t in tokens if t not in matched_inputs],
        explanations=list(result.explanations),
    )


def verdict_from_ai(result: AIClassification, tokens: Sequence[str]) -> AnalysisVerdict:
    results = [
        MatchResult(
            input_token=i.name.strip().lower(),
            matched_canonical_name=i.name,
            risk_status=to_risk_status(i.risk),
            risk_level=i.risk,
            explanation=i.reason or "",
            match_source=MatchSource.AI,
        )
        for i in result.matched_ingredients
    ]
    token_set = set(tokens)
    # Only names that match a token are counted, so the counts never exceed total.
    counted = {r.input_token: r.risk_level for r in results if r.input_token in token_set}
    matched_inputs = {r.input_token for r in results}
    levels = [result.risk_level] + [r.risk_level for r in results]
    return AnalysisVerdict(
        source=AnalysisSource.AI,
        results=results,
        summary=VerdictSummary.from_counts(
            summarize(counted.values()), len(tokens), count_unknown=False
        ),
        overall_risk_level=highest_level(levels),
        tokens=list(tokens),
        unmatched_tokens=[t for t in tokens if t not in matched_inputs],
        explanations=list(result.explanations),
        recommendations=result.recommendations,
        model_version=result.model_version,
    )


def verdict_from_rules(result: RulesClassification, tokens: Sequence[str]) -> AnalysisVerdict:
    results = [
        MatchResult(
            input_token=r.ingredient,
            matched_canonical_name=r.matched_key,
            risk_status=r.status,
            risk_level=to_risk_level(r.status),
            explanation=r.explanation,
            match_source=r.match_source,
        )
        for r in result.results
    ]
    summary = result.summary
    return AnalysisVerdict(
        source=AnalysisSource.RULES,
        results=results,
        summary=VerdictSummary(
            safe=summary.safe,
            risky=summary.risky,
            restricted=summary.restricted,
            unknown=summary.unknown,
            total=summary.total,
        ),
        overall_risk_level=highest_level(r.risk_status for r in results),
        tokens=list(tokens),
        unmatched_tokens=[r.input_token for r in results if r.risk_status is RiskStatus.UNKNOWN],
    )


def _dataset_lookup(context: AnalysisContext, tokens: Sequence[str]) -> Optional[DatasetClassification]:
    db = context.session_factory()
    try:
        if not is_dataset_available(db):
            return None
        return classify_with_dataset(db, tokens)
    finally:
        db.close()


async def _run_dataset_tier(raw_text: str, tokens: List[str], context: AnalysisContext) -> TierOutcome:
    tier = TierState.CHECK_DATASET
    if context.session_factory is None:
        return TierOutcome.skipped(tier, "no dataset store configured")
    try:
        result = await asyncio.to_thread(_dataset_lookup, context, tokens)
    except SafeScanError as e:
        return TierOutcome.failed(tier, str(e))
    except Exception as e:
        logger.exception(f"Unexpected dataset tier error: {e}")
        return TierOutcome.failed(tier, f"{type(e).__name__}: {e}")
    if result is None:
        return TierOutcome.skipped(tier, "dataset is empty or unreachable")
    return TierOutcome.succeeded(tier, verdict_from_dataset(result, tokens))


async def _run_ai_tier(raw_text: str, tokens: List[str], context: AnalysisContext) -> TierOutcome:
    tier = TierState.CHECK_AI
    classifier = context.ai_classifier
    if classifier is None or not classifier.text_service_configured:
        return TierOutcome.skipped(tier, "AI service not configured")
    try:
        result = await classifier.classify_text(raw_text)
    except SafeScanError as e:
        return TierOutcome.failed(tier, str(e))
    except Exception as e:
        logger.exception(f"Unexpected AI tier error: {e}")
        return TierOutcome.failed(tier, f"{type(e).__name__}: {e}")
    return TierOutcome.succeeded(tier, verdict_from_ai(result, tokens))


async def _run_rules_tier(raw_text: str, tokens: List[str], context: AnalysisContext) -> TierOutcome:
    result = classify_with_rules(tokens, context.reference_table)
    return TierOutcome.succeeded(TierState.RULE_BASED, verdict_from_rules(result, tokens))


TierRunner = Callable[[str, List[str], AnalysisContext], Awaitable[TierOutcome]]

_TIER_RUNNERS: Dict[TierState, TierRunner] = {
    TierState.CHECK_DATASET: _run_dataset_tier,
    TierState.CHECK_AI: _run_ai_tier,
    TierState.RULE_BASED: _run_rules_tier,
}

_NEXT_STATE: Dict[TierState, Optional[TierState]] = {
    TierState.CHECK_DATASET: TierState.CHECK_AI,
    TierState.CHECK_AI: TierState.RULE_BASED,
    TierState.RULE_BASED: None,
}


def validate_text(raw_text: object, max_length: int) -> str:
    if not isinstance(raw_text, str):
        raise InputValidationError("text", "must be a string", raw_text)
    if not raw_text.strip():
        raise InputValidationError("text", "must not be empty")
    if len(raw_text) > max_length:
        raise InputValidationError("text", f"must be at most {max_length} characters")
    return raw_text


async def analyze(raw_text: str, context: AnalysisContext) -> AnalysisVerdict:
    """Classify label text, trying dataset, AI and rules in that order."""
    text = validate_text(raw_text, context.settings.max_text_length)
    tokens = tokenize(text, context.settings.section_window)
    logger.debug(f"Tokenized {len(text)} characters into {len(tokens)} tokens")

    state: Optional[TierState] = TierState.CHECK_DATASET
    while state is not None:
        outcome = await _TIER_RUNNERS[state](text, tokens, context)
        if outcome.kind is OutcomeKind.SUCCEEDED:
            verdict = outcome.verdict
            logger.info(
                f"Analysis completed by {verdict.source.value} tier: "
                f"{len(verdict.results)} results, overall {verdict.overall_risk_level.value}"
            )
            return verdict
        if outcome.kind is OutcomeKind.FAILED:
            logger.warning(f"Tier {state.value} failed, falling back: {outcome.reason}")
        else:
            logger.info(f"Tier {state.value} skipped: {outcome.reason}")
        state = _NEXT_STATE[state]

    raise RuntimeError("rules tier did not produce a verdict")
