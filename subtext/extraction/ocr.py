"""Tesseract-backed image text reader for chat screenshots."""

import io

import structlog

logger = structlog.get_logger(__name__)


def tesseract_reader(content: bytes, filename: str) -> str:
    """Recognize text in an image with Pillow and pytesseract.

    Both come from the ``ocr`` extra; the imports stay local so the rest of
    the package works without them.

    Raises:
        ImportError: If the OCR extra is not installed.
    """
    from PIL import Image
    import pytesseract

    with Image.open(io.BytesIO(content)) as image:
        text = pytesseract.image_to_string(image) or ""

    logger.debug("ocr_complete", filename=filename, chars=len(text))
    return text
