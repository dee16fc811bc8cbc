"""Extraction of chat messages from uploaded files."""

from .extractor import ImageTextReader, RawContentExtractor, extraction_sentinel
from .parsers import parse_json_export, parse_text_export

__all__ = [
    "ImageTextReader",
    "RawContentExtractor",
    "extraction_sentinel",
    "parse_json_export",
    "parse_text_export",
]
