"""External identifier generation (report IDs, cross-organization study IDs).

Format: ``PREFIX-TOKEN1-TOKEN2-<base36 millisecond timestamp>-<random hex>``.
Identifiers are collision-resistant, not unique by construction; uniqueness
is enforced by database constraints and callers regenerate on collision.
"""

import re
import secrets
import time

_BASE36_ALPHABET = "0123456789ABCDEFGHIJKLMNOPQRSTUVWXYZ"
_TOKEN_CLEAN_RE = re.compile(r"\s+")

RANDOM_SUFFIX_BYTES = 4

REPORT_PREFIX = "RPT"
STUDY_COPY_PREFIX = "BP"


def to_base36(value: int) -> str:
    """Encode a non-negative integer as upper-case base36."""
    if value < 0:
        raise ValueError("base36 encoding requires a non-negative value")
    if value == 0:
        return "0"
    digits = []
    while value:
        value, rem = divmod(value, 36)
        digits.append(_BASE36_ALPHABET[rem])
    return "".join(reversed(digits))


def _clean_token(token: object) -> str:
    return _TOKEN_CLEAN_RE.sub("", str(token or "")).upper()


def new_id(prefix: str, *scope_tokens: object) -> str:
    """Build ``PREFIX-tokens...-<ts36>-<hex>``; empty scope tokens are skipped."""
    parts = [_clean_token(prefix)]
    parts.extend(t for t in (_clean_token(tok) for tok in scope_tokens) if t)
    parts.append(to_base36(time.time_ns() // 1_000_000))
    parts.append(secrets.token_hex(RANDOM_SUFFIX_BYTES).upper())
    return "-".join(parts)


def new_report_id(organization_identifier: str | None) -> str:
    return new_id(REPORT_PREFIX, organization_identifier)


def new_study_external_id(organization_identifier: str, lab_identifier: str | None) -> str:
    return new_id(STUDY_COPY_PREFIX, organization_identifier, lab_identifier or "NOLAB")


def is_well_formed(identifier: str | None, max_length: int = 128) -> bool:
    """Shape check for externally supplied identifiers (no whitespace, bounded)."""
    if not identifier or len(identifier) > max_length:
        return False
    return re.fullmatch(r"[A-Za-z0-9_.\-]+", identifier) is not None
