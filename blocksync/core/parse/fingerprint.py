"""Content fingerprints for change detection."""

import hashlib


def content_hash(text: str) -> str:
    """SHA-256 of the UTF-8 encoded text as 64 lowercase hex characters.

    Used only to detect that a block changed, never for security.
    """
    return hashlib.sha256(text.encode("utf-8")).hexdigest()
