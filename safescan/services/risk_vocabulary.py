"""Shared risk vocabulary for all classification tiers.

The rules tier speaks Safe/Risky/Restricted/Unknown, the dataset and AI tiers
speak LOW/MEDIUM/HIGH, and stored scans use lowercase safe/risky/restricted/
unknown. Every conversion between them goes through VOCABULARY below.
"""

import enum
from dataclasses import dataclass
from typing import Dict, Iterable, Optional, Union


class RiskStatus(str, enum.Enum):
    SAFE = "Safe"
    RISKY = "Risky"
    RESTRICTED = "Restricted"
    UNKNOWN = "Unknown"


class RiskLevel(str, enum.Enum):
    LOW = "LOW"
    MEDIUM = "MEDIUM"
    HIGH = "HIGH"


class ScanRisk(str, enum.Enum):
    SAFE = "safe"
    RISKY = "risky"
    RESTRICTED = "restricted"
    UNKNOWN = "unknown"


@dataclass(frozen=True)
class VocabularyRow:
    status: RiskStatus
    level: Optional[RiskLevel]
    scan_risk: ScanRisk
    severity: int


VOCABULARY = (
    VocabularyRow(RiskStatus.UNKNOWN, None, ScanRisk.UNKNOWN, 0),
    VocabularyRow(RiskStatus.SAFE, RiskLevel.LOW, ScanRisk.SAFE, 1),
    VocabularyRow(RiskStatus.RISKY, RiskLevel.MEDIUM, ScanRisk.RISKY, 2),
    VocabularyRow(RiskStatus.RESTRICTED, RiskLevel.HIGH, ScanRisk.RESTRICTED, 3),
)

_BY_STATUS: Dict[RiskStatus, VocabularyRow] = {row.status: row for row in VOCABULARY}
_BY_LEVEL: Dict[RiskLevel, VocabularyRow] = {row.level: row for row in VOCABULARY if row.level}
_BY_SCAN_RISK: Dict[ScanRisk, VocabularyRow] = {row.scan_risk: row for row in VOCABULARY}

# Free-form words returned by AI models, mapped onto the closed vocabulary.
LOW_SYNONYMS = frozenset({"low", "safe", "safe/low", "low risk", "no risk", "minimal"})
MEDIUM_SYNONYMS = frozenset(
    {"medium", "moderate", "risky", "caution", "concern", "medium risk", "moderate risk"}
)
HIGH_SYNONYMS = frozenset(
    {"high", "danger", "dangerous", "high risk", "restricted", "unsafe", "banned"}
)

RiskTerm = Union[RiskStatus, RiskLevel, ScanRisk, str, None]


def _row_for(value: RiskTerm) -> Optional[VocabularyRow]:
    if value is None:
        return None
    if isinstance(value, RiskStatus):
        return _BY_STATUS[value]
    if isinstance(value, RiskLevel):
        return _BY_LEVEL[value]
    if isinstance(value, ScanRisk):
        return _BY_SCAN_RISK[value]
    text = str(value).strip()
    for row in VOCABULARY:
        if text == row.status.value or text == row.scan_risk.value:
            return row
        if row.level is not None and text == row.level.value:
            return row
    return None


def to_risk_level(value: RiskTerm) -> Optional[RiskLevel]:
    """Map any vocabulary term to LOW/MEDIUM/HIGH; Unknown maps to None."""
    row = _row_for(value)
    return row.level if row else None


def to_risk_status(value: RiskTerm) -> RiskStatus:
    row = _row_for(value)
    return row.status if row else RiskStatus.UNKNOWN


def to_scan_risk(value: RiskTerm) -> ScanRisk:
    row = _row_for(value)
    return row.scan_risk if row else ScanRisk.UNKNOWN


def severity(value: RiskTerm) -> int:
    row = _row_for(value)
    return row.severity if row else 0


def coerce_risk_level(raw: object, default: RiskLevel = RiskLevel.LOW) -> RiskLevel:
    """Map a free-form risk word to LOW/MEDIUM/HIGH.

    Unrecognized or empty values fall back to ``default`` (LOW), so ambiguous
    model output is never escalated.
    """
    if raw is None:
        return default
    if isinstance(raw, (RiskStatus, RiskLevel, ScanRisk)):
        return to_risk_level(raw) or default
    word = str(raw).strip().lower()
    if word in HIGH_SYNONYMS:
        return RiskLevel.HIGH
    if word in MEDIUM_SYNONYMS:
        return RiskLevel.MEDIUM
    if word in LOW_SYNONYMS:
        return RiskLevel.LOW
    return default


def coerce_risk_status(raw: object, default: RiskStatus = RiskStatus.SAFE) -> RiskStatus:
    if raw is None or not str(raw).strip():
        return default
    word = str(raw).strip().lower()
    if word not in HIGH_SYNONYMS | MEDIUM_SYNONYMS | LOW_SYNONYMS:
        return default
    return to_risk_status(coerce_risk_level(word))


def normalize_risk_level(value: RiskTerm) -> Optional[RiskLevel]:
    """Canonical LOW/MEDIUM/HIGH for any vocabulary term or synonym."""
    direct = to_risk_level(value)
    if direct is not None:
        return direct
    if value is None or _row_for(value) is not None:
        return None
    return coerce_risk_level(value)


def highest_level(values: Iterable[RiskTerm]) -> RiskLevel:
    """Most severe level among ``values``; LOW when nothing is rated."""
    top = max((_row_for(v) for v in values), key=lambda r: r.severity if r else 0, default=None)
    if top is None or top.level is None:
        return RiskLevel.LOW
    return top.level


def highest_status(values: Iterable[RiskTerm]) -> RiskStatus:
    return to_risk_status(highest_level(values))


@dataclass(frozen=True)
class RiskSummary:
    safe_count: int = 0
    risky_count: int = 0
    restricted_count: int = 0
    unknown_count: int = 0

    @property
    def rated(self) -> int:
        return self.safe_count + self.risky_count + self.restricted_count

    def to_dict(self) -> Dict[str, int]:
        return {
            "safeCount": self.safe_count,
            "riskyCount": self.risky_count,
            "restrictedCount": self.restricted_count,
        }


def summarize(values: Iterable[RiskTerm]) -> RiskSummary:
    counts = {risk: 0 for risk in ScanRisk}
    for value in values:
        counts[to_scan_risk(value)] += 1
    return RiskSummary(
        safe_count=counts[ScanRisk.SAFE],
        risky_count=counts[ScanRisk.RISKY],
        restricted_count=counts[ScanRisk.RESTRICTED],
        unknown_count=counts[ScanRisk.UNKNOWN],
    )
