"""API router for the explicit ingredient-list AI flow."""

import logging

from fastapi import APIRouter, Depends, HTTPException

from safescan.api.dependencies import get_ai_classifier
from safescan.models.schemas import AIHealthResponse, ExplainRequest, ExplainResponse
from safescan.services.ai_classifier import AIClassifierService
from safescan.services.errors import AIConfigError, InputValidationError, SafeScanError

logger = logging.getLogger(__name__)

router = APIRouter()


@router.post("/explain", response_model=ExplainResponse)
async def explain(
    request: ExplainRequest,
    classifier: AIClassifierService = Depends(get_ai_classifier),
) -> ExplainResponse:
    """
    Classify and explain an explicit list of ingredients with the AI model.

    Raises:
        HTTPException: 503 when AI is not configured or the provider fails
    """
    limit = classifier.settings.max_explain_ingredients
    if len(request.ingredients) > limit:
        raise InputValidationError("ingredients", f"at most {limit} ingredients per request")

    try:
        results = await classifier.explain_ingredients(request.ingredients)
    except AIConfigError as e:
        logger.warning(f"AI explain requested but not configured: {e}")
        raise HTTPException(status_code=503, detail="AI not configured") from e
    except SafeScanError as e:
        logger.error(f"AI explain failed: {e}")
        raise HTTPException(status_code=503, detail="AI service unavailable") from e

    return ExplainResponse(results=[r.to_dict() for r in results])


@router.get("/health", response_model=AIHealthResponse)
async def ai_health(classifier: AIClassifierService = Depends(get_ai_classifier)) -> dict:
    return classifier.health()
