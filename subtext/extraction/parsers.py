"""Format parsers: turn exported chat text into RawMessages.

Every parser is a pure function ``(text, source) -> list[RawMessage]``.
``parse_text_export`` tries them in a fixed priority order and the first
one that returns any messages wins, with a line-split fallback at the end so
ingestion always degrades to *some* usable message list.

A parser never partially matches. The first non-blank line must be a header
of its format, and every later non-blank line is either a new header or a
continuation of the previous message body. Anything else means the text is
not in that format and the parser returns ``[]``.
"""

import json
import re
from typing import Any, Callable, Optional

import structlog

from subtext.models import RawMessage

logger = structlog.get_logger(__name__)

Parser = Callable[[str, str], list[RawMessage]]


# =============================================================================
# Header Patterns
# =============================================================================

# Optional "Sender: " prefix; the sender is everything up to the first colon.
_SENDER_CONTENT = r"(?:(?P<sender>[^:]{1,80}?):(?:\s+|$))?(?P<content>.*)$"

_WA_TIMESTAMP = (
    r"\d{1,2}[/.]\d{1,2}[/.]\d{2,4},?\s+\d{1,2}:\d{2}(?::\d{2})?"
    r"(?:\s*[AaPp]\.?\s?[Mm]\.?)?"
)

# [3/15/24, 2:30:15 PM] Alice: Hey
WHATSAPP_BRACKETED = re.compile(rf"^\[(?P<ts>{_WA_TIMESTAMP})\]\s*{_SENDER_CONTENT}")

# 3/15/24, 14:30 - Alice: Hey
WHATSAPP_DASH = re.compile(rf"^(?P<ts>{_WA_TIMESTAMP})\s+[-–]\s+{_SENDER_CONTENT}")

# Mar 15, 2024 at 2:30 PM - Alice: Hey
IMESSAGE = re.compile(
    r"^(?P<ts>[A-Za-z]{3,9}\.?\s+\d{1,2},\s+\d{4}\s+at\s+\d{1,2}:\d{2}(?::\d{2})?\s*[AaPp][Mm])"
    rf"\s+[-–]\s+{_SENDER_CONTENT}"
)

# 2024-03-15 14:30:00 - Alice: Hey
GENERIC_TIMESTAMPED = re.compile(
    r"^(?P<ts>\d{4}-\d{2}-\d{2}[ T]\d{2}:\d{2}(?::\d{2})?)\s*[-–]\s*"
    + _SENDER_CONTENT
)

# 10:42 PM Hey, are you there?  (screenshot OCR output)
OCR_CHAT_LINE = re.compile(r"^(?P<ts>\d{1,2}:\d{2}(?:\s*[AaPp][Mm])?)\s+(?P<content>.+)$")

# Invisible marks some exporters put around timestamps and names
_INVISIBLE_CHARS = str.maketrans({
    "\u200e": None,
    "\u200f": None,
    "\ufeff": None,
    "\u202f": " ",
    "\u00a0": " ",
})


def normalize_export_text(text: str) -> str:
    """Strip direction marks and odd spaces so header patterns can match."""
    return text.translate(_INVISIBLE_CHARS)


# =============================================================================
# Line-Oriented Parsing
# =============================================================================

def _parse_headed_lines(
    text: str,
    source: str,
    header: re.Pattern,
    message_type: str,
    sender_required: bool,
) -> list[RawMessage]:
    """Parse text where each message begins with a header line.

    Returns [] as soon as the text stops conforming to the format.
    """
    messages: list[RawMessage] = []
    current: Optional[dict[str, Any]] = None

    def _flush() -> None:
        if current is None:
            return
        content = "\n".join(current["lines"]).strip()
        tags: dict[str, Any] = {"type": message_type}
        if current["sender"] is None:
            tags["system"] = True
        messages.append(RawMessage(
            source=source,
            content=content,
            timestamp=current["timestamp"],
            sender=current["sender"],
            tags=tags,
        ))

    for raw_line in normalize_export_text(text).splitlines():
        line = raw_line.strip()
        if not line:
            continue

        match = header.match(line)
        if match:
            sender = match.group("sender")
            sender = sender.strip() if sender else None
            if sender is None and sender_required:
                return []
            _flush()
            current = {
                "timestamp": match.group("ts").strip(),
                "sender": sender,
                "lines": [match.group("content").strip()],
            }
        elif current is None:
            return []
        else:
            current["lines"].append(line)

    _flush()
    return messages


def parse_whatsapp_bracketed(text: str, source: str) -> list[RawMessage]:
    """WhatsApp iOS export: ``[M/D/YY, H:MM:SS AM] Sender: text``."""
    return _parse_headed_lines(text, source, WHATSAPP_BRACKETED, "whatsapp", sender_required=False)


def parse_whatsapp_dash(text: str, source: str) -> list[RawMessage]:
    """WhatsApp Android export: ``M/D/YY, H:MM - Sender: text``."""
    return _parse_headed_lines(text, source, WHATSAPP_DASH, "whatsapp", sender_required=False)


def parse_imessage(text: str, source: str) -> list[RawMessage]:
    """iMessage export: ``Mar 15, 2024 at 2:30 PM - Sender: text``."""
    return _parse_headed_lines(text, source, IMESSAGE, "imessage", sender_required=True)


def parse_generic_timestamped(text: str, source: str) -> list[RawMessage]:
    """Generic ``YYYY-MM-DD HH:MM[:SS] - Sender: text``."""
    return _parse_headed_lines(text, source, GENERIC_TIMESTAMPED, "generic", sender_required=True)


def parse_plain_lines(text: str, source: str) -> list[RawMessage]:
    """Fallback: every non-blank line is one message with no sender or time."""
    return [
        RawMessage(source=source, content=line.strip(), tags={"type": "text_line"})
        for line in normalize_export_text(text).splitlines()
        if line.strip()
    ]


# Priority order matters: the most specific formats come first.
TEXT_PARSERS: tuple[Parser, ...] = (
    parse_whatsapp_bracketed,
    parse_whatsapp_dash,
    parse_imessage,
    parse_generic_timestamped,
)


def parse_text_export(text: str, source: str) -> list[RawMessage]:
    """Parse a text export with the first format that matches."""
    for parser in TEXT_PARSERS:
        messages = parser(text, source)
        if messages:
            logger.debug("text_format_detected", source=source, parser=parser.__name__, messages=len(messages))
            return messages

    logger.debug("text_format_fallback", source=source)
    return parse_plain_lines(text, source)


def parse_ocr_chat_text(text: str, source: str) -> list[RawMessage]:
    """Pick timestamped chat lines out of screenshot OCR output.

    OCR text is noisy, so unlike the export parsers this one keeps the lines
    that match and ignores the rest.
    """
    messages = []
    for line in normalize_export_text(text).splitlines():
        match = OCR_CHAT_LINE.match(line.strip())
        if match:
            messages.append(RawMessage(
                source=source,
                content=match.group("content").strip(),
                timestamp=match.group("ts"),
                tags={"type": "ocr_chat"},
            ))
    return messages


# =============================================================================
# JSON Exports
# =============================================================================

_CONTENT_KEYS = ("content", "message", "text", "body")
_TIMESTAMP_KEYS = ("timestamp", "timestamp_ms", "date", "time", "date_unixtime")
_SENDER_KEYS = ("sender", "sender_name", "from", "author")


def _first_present(item: dict, keys: tuple[str, ...]) -> Any:
    for key in keys:
        value = item.get(key)
        if value not in (None, ""):
            return value
    return None


def _flatten_text(value: Any) -> str:
    """Telegram stores rich text as a list of strings and entity dicts."""
    if isinstance(value, list):
        parts = []
        for part in value:
            if isinstance(part, dict):
                parts.append(str(part.get("text", "")))
            else:
                parts.append(str(part))
        return "".join(parts)
    return str(value)


def parse_json_export(text: str, source: str) -> Optional[list[RawMessage]]:
    """Parse a JSON chat export.

    Accepts a top-level list of message objects, or an object whose
    ``messages`` key holds that list (Telegram, Instagram, Messenger).

    Returns:
        Parsed messages, or None if the text is not JSON at all.
    """
    try:
        data = json.loads(text)
    except json.JSONDecodeError:
        return None

    message_type = "json"
    if isinstance(data, dict) and isinstance(data.get("messages"), list):
        data = data["messages"]
        message_type = "telegram_json"

    if not isinstance(data, list):
        return []

    messages = []
    for item in data:
        if not isinstance(item, dict):
            continue
        content = _first_present(item, _CONTENT_KEYS)
        content_text = _flatten_text(content).strip() if content is not None else ""
        if not content_text:
            continue

        timestamp = _first_present(item, _TIMESTAMP_KEYS)
        sender = _first_present(item, _SENDER_KEYS)
        messages.append(RawMessage(
            source=source,
            content=content_text,
            timestamp=str(timestamp) if timestamp is not None else None,
            sender=str(sender).strip() if sender is not None else None,
            tags={"type": message_type},
        ))

    return messages
