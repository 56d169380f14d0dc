"""
Helpers for signature images sent as PNG data URLs
"""

import base64
import binascii
import hashlib
import re

_DATA_URL = re.compile(r"^data:image/(png|jpeg);base64,(?P<payload>[A-Za-z0-9+/=\s]+)$")


def is_image_data_url(value: str) -> bool:
    return bool(value) and _DATA_URL.match(value.strip()) is not None


def decode_image_data_url(value: str) -> bytes:
    """Return the raw image bytes of a data URL"""
    match = _DATA_URL.match((value or "").strip())
    if not match:
        raise ValueError("Signature must be a base64 PNG or JPEG data URL")
    try:
        data = base64.b64decode(match.group("payload"), validate=False)
    except (binascii.Error, ValueError) as e:
        raise ValueError(f"Signature is not valid base64: {e}")
    if not data:
        raise ValueError("Signature is empty")
    return data


def sha256_hex(value: str) -> str:
    """SHA-256 of the signature exactly as captured (the data URL string)"""
    return hashlib.sha256(value.encode("utf-8")).hexdigest()
