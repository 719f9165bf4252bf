"""
core/ids.py -- Canonical entity identifiers.

Every stored record (user, OU, division, credential) is keyed by a 24-char
lowercase hex string. Identifiers reach the code from three places: path
parameters, JSON bodies, and token claims. All of them pass through
canonical_id() before any comparison or set membership check, so
"65A1...", " 65a1... " and "65a1..." are the same reference and a raw value
never gets compared against its string form.

Layer rule: core/ is the kernel. No imports from api/, auth/, or vault/.
"""

from __future__ import annotations

import re
import secrets
from collections.abc import Iterable

_ID_RE = re.compile(r"^[0-9a-f]{24}$")


def new_id() -> str:
    """Return a fresh random identifier (96 bits of entropy)."""
    return secrets.token_hex(12)


def canonical_id(value: object) -> str:
    """Normalize an identifier to its canonical string form.

    Raises ValueError if the value cannot be an identifier at all. Callers
    decide what that means (400 for a malformed body field, 404 for a path
    segment that cannot name an existing record).
    """
    if value is None or isinstance(value, bool):
        raise ValueError(f"Invalid identifier: {value!r}")
    normalized = str(value).strip().lower()
    if not _ID_RE.match(normalized):
        raise ValueError(f"Invalid identifier: {value!r}")
    return normalized


def is_valid_id(value: object) -> bool:
    try:
        canonical_id(value)
    except ValueError:
        return False
    return True


def canonical_ids(values: Iterable[object]) -> list[str]:
    """Canonicalize and deduplicate identifiers, preserving first-seen order."""
    seen: set[str] = set()
    result: list[str] = []
    for v in values:
        normalized = canonical_id(v)
        if normalized not in seen:
            seen.add(normalized)
            result.append(normalized)
    return result
