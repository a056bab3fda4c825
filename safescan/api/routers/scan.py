"""API router for label scanning and text analysis."""

import asyncio
import logging
from typing import Optional

from fastapi import APIRouter, Depends, File, Form, HTTPException, UploadFile
from sqlalchemy.orm import Session

from safescan.api.dependencies import get_analysis_context, get_ocr_service, get_user_id
from safescan.models import get_db
from safescan.models.schemas import AnalysisResponse, AnalyzeTextRequest, ScanImageResponse
from safescan.services.analysis import AnalysisContext, analyze
from safescan.services.ocr import TesseractOCRService, extract_text_or_empty
from safescan.services.scan_history import save_scan_safely

logger = logging.getLogger(__name__)

router = APIRouter()

MIN_OCR_TEXT_LENGTH = 3


@router.post("", response_model=ScanImageResponse)
async def scan_image(
    image: UploadFile = File(...),
    product_category: Optional[str] = Form(default=None),
    context: AnalysisContext = Depends(get_analysis_context),
    ocr: TesseractOCRService = Depends(get_ocr_service),
    user_id: Optional[str] = Depends(get_user_id),
    db: Session = Depends(get_db),
) -> dict:
    """
    Extract text from an uploaded label image and analyze its ingredients.

    Args:
        image: Label photo
        product_category: Optional category stored with the scan
        context: Analysis context
        ocr: OCR service
        user_id: Caller id from the X-User-Id header, enables persistence
        db: Database session

    Returns:
        Verdict with the extracted text and disclaimer

    Raises:
        HTTPException: If no readable text was found in the image
    """
    image_bytes = await image.read()
    extracted_text = await asyncio.to_thread(extract_text_or_empty, ocr, image_bytes)

    if len(extracted_text.strip()) < MIN_OCR_TEXT_LENGTH:
        raise HTTPException(
            status_code=422,
            detail="We couldn't read any ingredients from this image. Try a sharper, well-lit photo of the label.",
        )

    verdict = await analyze(extracted_text, context)
    scan_id = save_scan_safely(
        db,
        verdict,
        user_id,
        extracted_text=extracted_text,
        image_name=image.filename,
        product_category=product_category,
    )

    return {**verdict.to_dict(), "scan_id": scan_id, "extracted_text": extracted_text}


@router.post("/analyze", response_model=AnalysisResponse)
async def analyze_text(
    request: AnalyzeTextRequest,
    context: AnalysisContext = Depends(get_analysis_context),
    user_id: Optional[str] = Depends(get_user_id),
    db: Session = Depends(get_db),
) -> dict:
    """Analyze pasted label text."""
    verdict = await analyze(request.text, context)
    scan_id = save_scan_safely(db, verdict, user_id, extracted_text=request.text)
    return {**verdict.to_dict(), "scan_id": scan_id}
