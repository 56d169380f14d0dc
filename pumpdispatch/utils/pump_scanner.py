"""
Normalisation of pump numbers typed by hand or read by a barcode/QR scanner
"""

import re
from typing import Optional
from urllib.parse import urlparse, parse_qs

URL_QUERY_KEYS = ("pump", "pumpNumber", "code", "id", "p")
_TOKEN_SEPARATORS = re.compile(r"[\s,;|]+")
_BATCH_SEPARATORS = re.compile(r"[\r\n\t,;]+")
_PUMP_PREFIX = re.compile(r"^PUMP[#:\-\s]*", re.IGNORECASE)
_DISALLOWED = re.compile(r"[^A-Z0-9\-_/]")


def normalize_pump_scanner_input(raw: Optional[str]) -> str:
    """Reduce scanner or keyboard input to a bare upper-case pump number"""
    value = (raw or "").strip()
    if not value:
        return ""

    from_url = _extract_from_url(value)
    if from_url:
        return _clean_pump_token(from_url)

    return _clean_pump_token(_extract_best_token(value))


def split_scanner_batch(raw: Optional[str]) -> list:
    """Split a pasted or multi-scan value into separate entries"""
    return [part.strip() for part in _BATCH_SEPARATORS.split(raw or "") if part.strip()]


def _extract_from_url(value: str) -> Optional[str]:
    if not re.match(r"^https?://", value, re.IGNORECASE):
        return None

    try:
        url = urlparse(value)
    except ValueError:
        return None

    query = parse_qs(url.query)
    for key in URL_QUERY_KEYS:
        candidates = [item for item in query.get(key, []) if item]
        if candidates:
            return candidates[0]

    path_parts = [part for part in url.path.split("/") if part]
    return path_parts[-1] if path_parts else None


def _extract_best_token(value: str) -> str:
    parts = [part.strip() for part in _TOKEN_SEPARATORS.split(value) if part.strip()]
    if not parts:
        return value

    for part in parts:
        if re.search(r"[a-zA-Z]", part) and re.search(r"\d", part):
            return part
    for part in parts:
        if re.search(r"\d", part):
            return part
    return parts[0]


def _clean_pump_token(value: str) -> str:
    token = _PUMP_PREFIX.sub("", value.strip().upper())
    return _DISALLOWED.sub("", token)
