import io
import logging
from typing import Optional

import pytesseract
from PIL import Image, UnidentifiedImageError

from safescan.services.errors import OCRTimeoutError, OCRUnavailableError, SafeScanError

logger = logging.getLogger(__name__)

DEFAULT_OCR_TIMEOUT = 30


class TesseractOCRService:
    """Extract label text from an image with the local Tesseract engine."""

    def __init__(self, timeout: int = DEFAULT_OCR_TIMEOUT, lang: str = "eng", config: Optional[str] = None):
        self.timeout = timeout
        self.lang = lang
        self.config = config or "--psm 6"

    def extract_text(self, image_bytes: bytes) -> str:
        if not image_bytes:
            raise OCRUnavailableError("Empty image upload")

        try:
            with Image.open(io.BytesIO(image_bytes)) as img:
                text = pytesseract.image_to_string(
                    img.convert("RGB"), lang=self.lang, config=self.config, timeout=self.timeout
                )
        except UnidentifiedImageError as e:
            raise OCRUnavailableError(f"Unreadable image: {e}") from e
        except pytesseract.TesseractNotFoundError as e:
            raise OCRUnavailableError("Tesseract engine is not installed") from e
        except pytesseract.TesseractError as e:
            raise OCRUnavailableError(f"Tesseract failed: {e.message}") from e
        except RuntimeError as e:
            # pytesseract signals its own timeout with a bare RuntimeError
            if "timeout" in str(e).lower():
                raise OCRTimeoutError(f"OCR timed out after {self.timeout}s", {"timeout": self.timeout}) from e
            raise OCRUnavailableError(f"Tesseract failed: {e}") from e
        except OSError as e:
            raise OCRUnavailableError(f"Could not read image: {e}") from e

        text = text.strip()
        logger.debug(f"OCR extracted {len(text)} characters")
        return text


def extract_text_or_empty(ocr: TesseractOCRService, image_bytes: bytes) -> str:
    try:
        return ocr.extract_text(image_bytes)
    except SafeScanError as e:
        logger.warning(f"OCR failed, continuing with no text: {e}")
        return ""
    except Exception:
        logger.exception("Unexpected OCR error, continuing with no text")
        return ""
