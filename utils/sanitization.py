# utils/sanitization.py
from typing import Optional
import html
import re

CONTROL_CHARS = r"[\x00-\x08\x0b-\x0c\x0e-\x1f\x7f-\x9f]"
TAG_PATTERN = re.compile(r"<[^>]*>")


def clean_text(value: Optional[str]) -> str:
    if value is None:
        return ""

    text = re.sub(CONTROL_CHARS, "", value)
    text = text.strip()
    text = re.sub(r"\s+", " ", text)

    return text


def is_nonempty_text(value: Optional[str]) -> bool:
    return bool(clean_text(value))


def strip_html(markup: Optional[str]) -> str:
    """
    Plain-text rendering of an HTML body. Tags become spaces so adjacent
    block elements never glue words together.
    """
    if not markup:
        return ""
    text = TAG_PATTERN.sub(" ", markup)
    return clean_text(html.unescape(text))


def count_words(markup: Optional[str]) -> int:
    text = strip_html(markup)
    return len(text.split()) if text else 0
