"""Cache key derivation.

The browser extension computes the same key before sending a request, so the
algorithm here must stay byte-for-byte compatible: normalise, lowercase,
truncate to 500 characters, DJB2 hash, base-36, namespace prefix.
"""

from __future__ import annotations

import re

from brevity.config import CACHE_KEY_PREFIX

_KEY_SOURCE_MAX_CHARS = 500

_CONTROL_WHITESPACE = re.compile(r"[\r\n\t]+")
_MULTI_SPACE = re.compile(r"\s{2,}")
# Printable ASCII, Latin-1 supplement, Latin Extended-A/B, Latin Extended Additional.
_NON_PRINTABLE = re.compile(r"[^\x20-\x7E\u00A0-\u024F\u1E00-\u1EFF]")

_BASE36 = "0123456789abcdefghijklmnopqrstuvwxyz"


def normalise_text(text: str) -> str:
    """Collapse whitespace, strip non-printable characters and trim."""
    text = _CONTROL_WHITESPACE.sub(" ", text)
    text = _MULTI_SPACE.sub(" ", text)
    text = _NON_PRINTABLE.sub("", text)
    return text.strip()


def djb2(text: str) -> int:
    """32-bit unsigned DJB2 hash."""
    value = 5381
    for char in text:
        value = (value * 33 + ord(char)) & 0xFFFFFFFF
    return value


def _to_base36(number: int) -> str:
    if number == 0:
        return "0"
    digits = []
    while number:
        number, rem = divmod(number, 36)
        digits.append(_BASE36[rem])
    return "".join(reversed(digits))


def namespace_key(key: str) -> str:
    """Add the cache prefix to a caller-supplied key unless it is already there."""
    return key if key.startswith(CACHE_KEY_PREFIX) else f"{CACHE_KEY_PREFIX}{key}"


def make_cache_key(text: str) -> str:
    """Return the namespaced cache key for a piece of descriptive text.

    ``"  Some   Plot\\n"`` and ``"some plot"`` map to the same key.
    """
    normalised = normalise_text(text).lower()[:_KEY_SOURCE_MAX_CHARS]
    return f"{CACHE_KEY_PREFIX}{_to_base36(djb2(normalised))}"
