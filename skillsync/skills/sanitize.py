"""Sanitizers for untrusted text shown to the user (marketplace metadata, API errors)."""

import re
from typing import Optional

_INVISIBLE_CHARS = re.compile(r"[\u200B\u200C\u200D\u2060\uFEFF]")
_BIDI_OVERRIDES = re.compile(r"[\u202A-\u202E\u2066-\u2069]")
_EXCESS_NEWLINES = re.compile(r"\n{4,}")
_HTTP_URL = re.compile(r"^https?://", re.IGNORECASE)

MAX_TEXT_LENGTH = 1000
MAX_ERROR_BODY = 100
INVALID_URL_PLACEHOLDER = "[invalid URL removed]"


def sanitize_text(value: Optional[str]) -> str:
    """Strip invisible/bidi characters, collapse blank runs, cap the length."""
    if not value:
        return ""
    text = str(value)
    text = _INVISIBLE_CHARS.sub("", text)
    text = _BIDI_OVERRIDES.sub("", text)
    text = _EXCESS_NEWLINES.sub("\n\n\n", text)
    if len(text) > MAX_TEXT_LENGTH:
        text = text[:MAX_TEXT_LENGTH - 3] + "..."
    return text


def sanitize_url(value: Optional[str]) -> str:
    """Only http(s) URLs pass through; anything else is replaced."""
    if not value:
        return ""
    trimmed = value.strip()
    if _HTTP_URL.match(trimmed):
        return trimmed
    return INVALID_URL_PLACEHOLDER


def sanitize_api_error(status: int, body: str, service: str = "Marketplace API") -> str:
    """Keep the HTTP status and a short single-line prefix of the body."""
    safe_body = re.sub(r"[\r\n]", " ", (body or "")[:MAX_ERROR_BODY]).strip()
    message = f"{service} error: HTTP {status}"
    if safe_body:
        message += f": {safe_body}"
    return message
