"""Raw content extraction: uploaded files to parsed RawMessages.

Dispatches each file by mimetype and extension to a format parser. Archives
are unpacked recursively and images go through a pluggable OCR reader.
Extraction problems never abort a batch: the offending file becomes a single
sentinel message tagged ``error=extraction_failed``.
"""

import io
import mimetypes
import zipfile
import zlib
from pathlib import PurePosixPath
from typing import Callable, Iterable, Optional

import structlog

from subtext.config import Settings, get_settings
from subtext.extraction.parsers import (
    parse_json_export,
    parse_ocr_chat_text,
    parse_text_export,
)
from subtext.models import RawMessage, UploadedFile

logger = structlog.get_logger(__name__)

# (image bytes, filename) -> recognized text
ImageTextReader = Callable[[bytes, str], str]

ARCHIVE_FAILED = "[Archive could not be extracted]"
ARCHIVE_TOO_DEEP = "[Archive nested too deeply to extract]"
IMAGE_WITHOUT_TEXT = "[Image with no extractable text]"
OCR_FAILED = "[OCR extraction failed]"
OCR_UNAVAILABLE = "[Image text reader not configured]"

TEXT_EXTENSIONS = {".txt", ".csv"}
TEXT_MIMETYPES = {"text/plain", "text/csv"}
JSON_EXTENSIONS = {".json"}
JSON_MIMETYPES = {"application/json"}
ARCHIVE_EXTENSIONS = {".zip"}
ARCHIVE_MIMETYPES = {"application/zip", "application/x-zip-compressed"}
IMAGE_EXTENSIONS = {".png", ".jpg", ".jpeg", ".gif", ".webp", ".bmp", ".heic"}

# Corrupt members surface as zlib errors from ZipFile.read
ARCHIVE_READ_ERRORS = (zipfile.BadZipFile, zipfile.LargeZipFile, zlib.error, RuntimeError, OSError, EOFError)


def extraction_sentinel(source: str, content: str, reason: str) -> RawMessage:
    """Placeholder message standing in for a file that could not be read."""
    return RawMessage(
        source=source,
        content=content,
        tags={"error": "extraction_failed", "reason": reason},
    )


def _decode_text(content: bytes) -> str:
    return content.decode("utf-8-sig", errors="replace")


class RawContentExtractor:
    """Turns uploaded files into RawMessages."""

    def __init__(
        self,
        image_reader: Optional[ImageTextReader] = None,
        settings: Optional[Settings] = None,
    ):
        self.image_reader = image_reader
        self.settings = settings or get_settings()

    def extract(self, file: UploadedFile) -> list[RawMessage]:
        """Extract messages from one uploaded file.

        Args:
            file: The staged upload.

        Returns:
            Messages in encounter order; possibly a single sentinel, possibly
            empty for unsupported file types.
        """
        messages = self._extract(file.filename, file.mimetype, file.raw, depth=0)
        logger.info(
            "file_extracted",
            filename=file.filename,
            mimetype=file.mimetype,
            messages=len(messages),
            failed=sum(1 for m in messages if m.extraction_failed),
        )
        return messages

    def extract_all(self, files: Iterable[UploadedFile]) -> list[RawMessage]:
        messages: list[RawMessage] = []
        for file in files:
            messages.extend(self.extract(file))
        return messages

    def _extract(self, filename: str, mimetype: str, content: bytes, depth: int) -> list[RawMessage]:
        suffix = PurePosixPath(filename).suffix.lower()
        mimetype = (mimetype or "").lower()

        if mimetype in ARCHIVE_MIMETYPES or suffix in ARCHIVE_EXTENSIONS:
            return self._extract_archive(filename, content, depth)
        if mimetype in JSON_MIMETYPES or suffix in JSON_EXTENSIONS:
            return self._extract_json(filename, content)
        if mimetype in TEXT_MIMETYPES or suffix in TEXT_EXTENSIONS:
            return parse_text_export(_decode_text(content), filename)
        if mimetype.startswith("image/") or suffix in IMAGE_EXTENSIONS:
            return self._extract_image(filename, content)

        logger.warning("unsupported_file_skipped", filename=filename, mimetype=mimetype)
        return []

    def _extract_json(self, filename: str, content: bytes) -> list[RawMessage]:
        text = _decode_text(content)
        messages = parse_json_export(text, filename)
        if messages is None:
            logger.debug("json_invalid_falling_back_to_text", filename=filename)
            return parse_text_export(text, filename)
        return messages

    def _extract_image(self, filename: str, content: bytes) -> list[RawMessage]:
        if self.image_reader is None:
            logger.warning("image_reader_missing", filename=filename)
            return [extraction_sentinel(filename, OCR_UNAVAILABLE, "ocr_unavailable")]

        try:
            text = self.image_reader(content, filename)
        except Exception as e:
            logger.warning("ocr_failed", filename=filename, error=str(e))
            return [extraction_sentinel(filename, OCR_FAILED, "ocr_error")]

        if not text or not text.strip():
            return [RawMessage(
                source=filename,
                content=IMAGE_WITHOUT_TEXT,
                tags={"type": "image", "ocr_empty": True},
            )]

        chat_messages = parse_ocr_chat_text(text, filename)
        if chat_messages:
            return chat_messages

        return [RawMessage(source=filename, content=text.strip(), tags={"type": "image_ocr"})]

    def _extract_archive(self, filename: str, content: bytes, depth: int) -> list[RawMessage]:
        if depth >= self.settings.max_archive_depth:
            logger.warning("archive_too_deep", filename=filename, depth=depth)
            return [extraction_sentinel(filename, ARCHIVE_TOO_DEEP, "archive_depth")]

        # (inner name, content or None when the member could not be read)
        entries: list[tuple[str, Optional[bytes]]] = []
        try:
            with zipfile.ZipFile(io.BytesIO(content)) as archive:
                for info in archive.infolist():
                    if info.is_dir() or info.filename.startswith("__MACOSX/"):
                        continue
                    try:
                        entries.append((info.filename, archive.read(info)))
                    except ARCHIVE_READ_ERRORS as e:
                        logger.warning("archive_member_failed", filename=filename, member=info.filename, error=str(e))
                        entries.append((info.filename, None))
        except ARCHIVE_READ_ERRORS as e:
            logger.warning("archive_extraction_failed", filename=filename, error=str(e))
            return [extraction_sentinel(filename, ARCHIVE_FAILED, "archive_error")]

        logger.debug("archive_opened", filename=filename, entries=len(entries), depth=depth)

        messages: list[RawMessage] = []
        for inner_name, inner_content in entries:
            inner_path = f"{filename}/{inner_name}"
            if inner_content is None:
                messages.append(extraction_sentinel(inner_path, ARCHIVE_FAILED, "archive_error"))
                continue
            inner_mimetype, _ = mimetypes.guess_type(inner_name)
            messages.extend(self._extract(
                inner_path,
                inner_mimetype or "application/octet-stream",
                inner_content,
                depth + 1,
            ))
        return messages
