from datetime import datetime
from typing import Any, List, Optional

from pydantic import BaseModel, Field, field_validator

DISCLAIMER = (
    "SafeScan provides informational guidance only and is not medical advice. "
    "If you have a reaction or concern, consult a healthcare professional."
)


class AnalyzeTextRequest(BaseModel):
    text: Any = None


class MatchResultResponse(BaseModel):
    input_token: str
    matched_canonical_name: Optional[str]
    risk_status: str
    risk_level: Optional[str]
    explanation: str
    match_source: str


class SummaryResponse(BaseModel):
    safeCount: int = 0
    riskyCount: int = 0
    restrictedCount: int = 0
    unknownCount: int = 0
    total: int = 0


class AnalysisResponse(BaseModel):
    source: str
    overall_risk_level: str
    overall_status: str
    overall_risk: str
    results: List[MatchResultResponse]
    summary: SummaryResponse
    tokens: List[str]
    unmatched_tokens: List[str]
    explanations: List[str]
    recommendations: Optional[Any] = None
    model_version: Optional[str] = None
    scan_id: Optional[int] = None
    disclaimer: str = DISCLAIMER


class ScanImageResponse(AnalysisResponse):
    extracted_text: str


class LookupResponse(BaseModel):
    ingredient: str
    status: str
    explanation: str
    matched_key: Optional[str]
    match_source: str


class ExplainRequest(BaseModel):
    ingredients: List[str] = Field(..., min_length=1, max_length=30)

    @field_validator("ingredients")
    @classmethod
    def validate_ingredient_names(cls, value: List[str]) -> List[str]:
        cleaned = [item.strip() for item in value]
        for item in cleaned:
            if not 2 <= len(item) <= 80:
                raise ValueError("each ingredient must be between 2 and 80 characters")
        return cleaned


class ExplainedIngredient(BaseModel):
    name: str
    status: str
    explanation: str


class ExplainResponse(BaseModel):
    results: List[ExplainedIngredient]
    disclaimer: str = DISCLAIMER


class AIHealthResponse(BaseModel):
    provider: str
    model: str
    configured: bool
    text_service_configured: bool
    status: str


class ScanSummary(BaseModel):
    safeCount: int = 0
    riskyCount: int = 0
    restrictedCount: int = 0


class ScanHistoryItemResponse(BaseModel):
    id: int
    createdAt: Optional[datetime]
    extractedText: Optional[str]
    productCategory: Optional[str]
    source: str
    overallRisk: str
    summary: ScanSummary


class Pagination(BaseModel):
    page: int
    limit: int
    total: int
    totalPages: int


class ScanHistoryResponse(BaseModel):
    data: List[ScanHistoryItemResponse]
    pagination: Pagination


class DatasetRowResponse(BaseModel):
    id: int
    ingredient_name: str
    risk_level: str
    reason: Optional[str]
    aliases: List[str]
    updated_at: Optional[datetime]


class DatasetPageResponse(BaseModel):
    data: List[DatasetRowResponse]
    pagination: Pagination


class DatasetStatsResponse(BaseModel):
    LOW: int = 0
    MEDIUM: int = 0
    HIGH: int = 0
    total: int = 0
