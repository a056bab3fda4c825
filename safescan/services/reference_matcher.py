"""Rule-based classification against the curated reference table.

This is the last fallback tier: it has no external dependencies and never
raises. Matching order for a token, first hit wins:

1. synonym substitution ("aqua" -> "water") followed by exact lookup
2. exact lookup
3. substring match against reference keys of at least four characters,
   in the table's insertion order
4. family heuristics for parabens and fragrance
5. Unknown
"""

import enum
import json
import logging
import re
from dataclasses import dataclass, field
from functools import lru_cache
from pathlib import Path
from types import MappingProxyType
from typing import Dict, Iterable, Iterator, List, Mapping, Optional

from safescan.services.risk_vocabulary import RiskStatus, summarize

logger = logging.getLogger(__name__)

DEFAULT_REFERENCE_PATH = Path(__file__).resolve().parent.parent / "data" / "reference_ingredients.json"

SYNONYMS: Mapping[str, str] = MappingProxyType(
    {
        "aqua": "water",
        "eau": "water",
        "perfume": "fragrance",
        "sodium lauryl sulphate": "sodium lauryl sulfate",
        "sodium laureth sulphate": "sodium laureth sulfate",
    }
)

MIN_SUBSTRING_KEY_LENGTH = 4
UNKNOWN_EXPLANATION = "Not found in the current SafeScan reference list."
EMPTY_EXPLANATION = "No ingredient provided."

_PARABEN_RE = re.compile(r"(paraben)s?$")


class MatchSource(str, enum.Enum):
    EXACT = "exact"
    ALIAS = "alias"
    SYNONYM = "synonym"
    SUBSTRING = "substring"
    HEURISTIC = "heuristic"
    AI = "ai"
    NONE = "none"


@dataclass(frozen=True)
class ReferenceEntry:
    status: RiskStatus
    explanation: str


@dataclass(frozen=True)
class FamilyHeuristic:
    key: str
    needles: tuple
    default: ReferenceEntry
    pattern: Optional[re.Pattern] = None

    def matches(self, token: str) -> bool:
        if self.pattern is not None and self.pattern.search(token):
            return True
        return any(needle in token for needle in self.needles)


FAMILY_HEURISTICS = (
    FamilyHeuristic(
        key="paraben",
        needles=("paraben",),
        default=ReferenceEntry(RiskStatus.RISKY, "Preservative; may concern some users."),
        pattern=_PARABEN_RE,
    ),
    FamilyHeuristic(
        key="fragrance",
        needles=("fragrance", "parfum"),
        default=ReferenceEntry(
            RiskStatus.RISKY, "May trigger irritation or allergies in sensitive users."
        ),
    ),
)


class ReferenceTable(Mapping[str, ReferenceEntry]):
    """Read-only mapping of normalized ingredient key to reference entry.

    Iteration follows the insertion order of the source data, which fixes the
    tie-break order of substring matching.
    """

    def __init__(self, entries: Mapping[str, ReferenceEntry]):
        ordered: Dict[str, ReferenceEntry] = {}
        for key, entry in entries.items():
            normalized = normalize_for_match(key)
            if normalized and normalized not in ordered:
                ordered[normalized] = entry
        self._entries = MappingProxyType(ordered)
        self._substring_keys = tuple(
            key for key in ordered if len(key) >= MIN_SUBSTRING_KEY_LENGTH
        )

    def __getitem__(self, key: str) -> ReferenceEntry:
        return self._entries[key]

    def __iter__(self) -> Iterator[str]:
        return iter(self._entries)

    def __len__(self) -> int:
        return len(self._entries)

    @property
    def substring_keys(self) -> tuple:
        return self._substring_keys

    @classmethod
    def from_dict(cls, raw: Mapping[str, Mapping[str, str]]) -> "ReferenceTable":
        entries = {}
        for key, info in raw.items():
            status = RiskStatus((info.get("status") or "Unknown").strip().capitalize())
            entries[key] = ReferenceEntry(status=status, explanation=info.get("explanation", ""))
        return cls(entries)

    @classmethod
    def from_json(cls, path: Path) -> "ReferenceTable":
        with open(path, "r", encoding="utf-8") as f:
            raw = json.load(f)
        table = cls.from_dict(raw)
        logger.info(f"Loaded {len(table)} reference ingredients from {path}")
        return table


@lru_cache(maxsize=4)
def load_reference_table(path: Optional[str] = None) -> ReferenceTable:
    return ReferenceTable.from_json(Path(path) if path else DEFAULT_REFERENCE_PATH)


@dataclass(frozen=True)
class ReferenceMatch:
    status: RiskStatus
    explanation: str
    matched_key: Optional[str]
    match_source: MatchSource


def normalize_for_match(value: str) -> str:
    value = re.sub(r"\s+", " ", (value or "").lower())
    return re.sub(r"[()\[\]{}]", "", value).strip()


def classify_ingredient(raw_ingredient: str, table: ReferenceTable) -> ReferenceMatch:
    ingredient = normalize_for_match(raw_ingredient if isinstance(raw_ingredient, str) else "")
    if not ingredient:
        return ReferenceMatch(RiskStatus.UNKNOWN, EMPTY_EXPLANATION, None, MatchSource.NONE)

    synonym = SYNONYMS.get(ingredient)
    normalized = normalize_for_match(synonym) if synonym else ingredient

    if normalized in table:
        hit = table[normalized]
        source = MatchSource.SYNONYM if synonym else MatchSource.EXACT
        return ReferenceMatch(hit.status, hit.explanation, normalized, source)

    for key in table.substring_keys:
        if key in normalized:
            hit = table[key]
            return ReferenceMatch(hit.status, hit.explanation, key, MatchSource.SUBSTRING)

    for heuristic in FAMILY_HEURISTICS:
        if heuristic.matches(normalized):
            hit = table.get(heuristic.key, heuristic.default)
            return ReferenceMatch(hit.status, hit.explanation, heuristic.key, MatchSource.HEURISTIC)

    return ReferenceMatch(RiskStatus.UNKNOWN, UNKNOWN_EXPLANATION, None, MatchSource.NONE)


@dataclass(frozen=True)
class RuleResult:
    ingredient: str
    status: RiskStatus
    explanation: str
    matched_key: Optional[str]
    match_source: MatchSource

    def to_dict(self) -> Dict[str, Optional[str]]:
        return {
            "ingredient": self.ingredient,
            "status": self.status.value,
            "explanation": self.explanation,
            "matchedKey": self.matched_key,
        }


@dataclass(frozen=True)
class RulesSummary:
    total: int = 0
    safe: int = 0
    risky: int = 0
    restricted: int = 0
    unknown: int = 0

    def to_dict(self) -> Dict[str, int]:
        return {
            "total": self.total,
            "safe": self.safe,
            "risky": self.risky,
            "restricted": self.restricted,
            "unknown": self.unknown,
        }


@dataclass(frozen=True)
class RulesClassification:
    results: List[RuleResult] = field(default_factory=list)
    summary: RulesSummary = field(default_factory=RulesSummary)


def classify_with_rules(tokens: Iterable[str], table: ReferenceTable) -> RulesClassification:
    results = []
    for token in tokens:
        match = classify_ingredient(token, table)
        results.append(
            RuleResult(
                ingredient=token,
                status=match.status,
                explanation=match.explanation,
                matched_key=match.matched_key,
                match_source=match.match_source,
            )
        )

    counts = summarize(r.status for r in results)
    summary = RulesSummary(
        total=len(results),
        safe=counts.safe_count,
        risky=counts.risky_count,
        restricted=counts.restricted_count,
        unknown=counts.unknown_count,
    )
    return RulesClassification(results=results, summary=summary)
