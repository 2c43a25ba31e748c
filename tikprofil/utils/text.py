from __future__ import annotations

import re

_TAG_RE = re.compile(r"<[^>]*>")
_SCRIPT_RE = re.compile(r"<(script|style)[^>]*>.*?</\1\s*>", re.IGNORECASE | re.DOTALL)
_JS_PROTOCOL_RE = re.compile(r"\b(javascript|vbscript|data)\s*:", re.IGNORECASE)
_EVENT_ATTR_RE = re.compile(r"\bon\w+\s*=", re.IGNORECASE)
_CONTROL_RE = re.compile(r"[\x00-\x08\x0b\x0c\x0e-\x1f\x7f]")
_SPACES_RE = re.compile(r"\s+")


def strip_html(value: str | None) -> str:
    if not value:
        return ""
    text = _SCRIPT_RE.sub("", value)
    text = _TAG_RE.sub("", text)
    return text


def sanitize_string(value: str | None) -> str:
    if not value:
        return ""
    text = _CONTROL_RE.sub("", value)
    text = _JS_PROTOCOL_RE.sub("", text)
    text = _EVENT_ATTR_RE.sub("", text)
    return text.replace("<", "").replace(">", "").strip()


def full_sanitize(value: str | None) -> str:
    """Strip markup and script vectors from free text typed by customers."""
    return _SPACES_RE.sub(" ", sanitize_string(strip_html(value))).strip()


def digits_only(value: str | None) -> str:
    return re.sub(r"\D", "", value or "")
