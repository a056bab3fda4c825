from fastapi import APIRouter, Depends, Query

from safescan.api.dependencies import get_analysis_context
from safescan.models.schemas import LookupResponse
from safescan.services.analysis import AnalysisContext
from safescan.services.reference_matcher import classify_ingredient
from safescan.services.risk_vocabulary import to_scan_risk

router = APIRouter()


@router.get("", response_model=LookupResponse)
async def lookup_ingredient(
    ingredient: str = Query(..., min_length=1, max_length=200),
    context: AnalysisContext = Depends(get_analysis_context),
) -> LookupResponse:
    match = classify_ingredient(ingredient, context.reference_table)
    return LookupResponse(
        ingredient=ingredient.strip(),
        status=to_scan_risk(match.status).value,
        explanation=match.explanation,
        matched_key=match.matched_key,
        match_source=match.match_source.value,
    )
