from __future__ import annotations

import re

from cyberguard.errors import ClassificationError
from cyberguard.models import Variant

HASH_RE = re.compile(r"^(?:[A-Fa-f0-9]{32}|[A-Fa-f0-9]{40}|[A-Fa-f0-9]{64})$")


def classify(raw_input: str) -> Variant:
    """Map free text to URL or Hash. File uploads never come through here."""
    value = raw_input.strip()
    if not value:
        raise ClassificationError("Input is required")
    if "://" in value or value.startswith("www."):
        return Variant.URL
    if HASH_RE.match(value):
        return Variant.HASH
    raise ClassificationError("Unsupported input: expected a URL or an MD5/SHA-1/SHA-256 hash")
