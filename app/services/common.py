import re
import time

_NON_ALNUM_RE = re.compile(r"[^a-z0-9]")
_PHONE_RE = re.compile(r"^\+?[0-9][0-9 ()\-.]{6,19}$")

DEALERSHIP_SCHEMA_PREFIX = "dealership_"
DEALER_GROUP_SCHEMA_PREFIX = "dealer_group_"


def sanitize_name(value: str) -> str:
    """Lower-case and replace every character outside ``[a-z0-9]`` with ``_``."""
    return _NON_ALNUM_RE.sub("_", value.lower())


def epoch_millis() -> int:
    return time.time_ns() // 1_000_000


def build_schema_name(prefix: str, name: str, now_ms: int) -> str:
    return f"{prefix}{sanitize_name(name)}_{now_ms}"


def is_valid_phone(value: str) -> bool:
    value = value.strip()
    if not _PHONE_RE.match(value):
        return False
    return sum(ch.isdigit() for ch in value) >= 7


def normalize_email(value: str) -> str:
    return value.strip().lower()
