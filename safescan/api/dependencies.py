from functools import lru_cache
from typing import Optional

from fastapi import Header

from safescan.config import settings
from safescan.models import SessionLocal
from safescan.services.ai_classifier import AIClassifierService
from safescan.services.analysis import AnalysisContext, build_context
from safescan.services.ocr import TesseractOCRService


@lru_cache(maxsize=1)
def get_analysis_context() -> AnalysisContext:
    return build_context(settings=settings, session_factory=SessionLocal)


def get_ai_classifier() -> AIClassifierService:
    return get_analysis_context().ai_classifier


@lru_cache(maxsize=1)
def get_ocr_service() -> TesseractOCRService:
    return TesseractOCRService()


def get_user_id(x_user_id: Optional[str] = Header(default=None)) -> Optional[str]:
    """Opaque user id forwarded by the upstream auth layer, if any."""
    if x_user_id is None or not x_user_id.strip():
        return None
    return x_user_id.strip()
