"""Input validation for original URLs, custom aliases and lookup keys."""

import re
from urllib.parse import quote, urlsplit, urlunsplit

import validators

from shortlink.codes import is_well_formed
from shortlink.errors import ValidationError

__all__ = [
    "SUSPICIOUS_PATTERNS",
    "sanitize_url",
    "is_valid_url",
    "is_suspicious_url",
    "is_valid_alias",
    "is_valid_lookup_key",
    "validate_original_url",
    "validate_alias",
]

SUSPICIOUS_PATTERNS = ("javascript:", "data:", "vbscript:", "file:", "about:")
ALLOWED_SCHEMES = ("http", "https")

_ALIAS = re.compile(r"^[a-zA-Z0-9_-]{3,50}$")
_TRAILING_SLASHES = re.compile(r"/+$")
# RFC 3986 reserved characters plus "%" so existing escapes are kept.
_URL_SAFE = "/?:@!$&'()*+,;=%~"


def sanitize_url(url: str) -> str:
    return _TRAILING_SLASHES.sub("", url.strip())


def is_valid_url(url: str) -> bool:
    try:
        parts = urlsplit(url)
    except ValueError:
        return False
    if parts.scheme.lower() not in ALLOWED_SCHEMES or not parts.hostname:
        return False
    try:
        parts.port  # raises on a non-numeric or out-of-range port
    except ValueError:
        return False
    # Escape the path and fold host underscores; validators rejects both raw.
    normalized = urlunsplit(
        (
            parts.scheme.lower(),
            parts.netloc.replace("_", "-"),
            quote(parts.path, safe=_URL_SAFE),
            quote(parts.query, safe=_URL_SAFE),
            quote(parts.fragment, safe=_URL_SAFE),
        )
    )
    return bool(validators.url(normalized, simple_host=True, strict_query=False))


def is_suspicious_url(url: str) -> bool:
    # Substring match anywhere in the string, not a parse.
    lowered = url.lower()
    return any(pattern in lowered for pattern in SUSPICIOUS_PATTERNS)


def is_valid_alias(alias: str | None) -> bool:
    if not isinstance(alias, str):
        return False
    return _ALIAS.fullmatch(alias) is not None


def is_valid_lookup_key(key: str | None) -> bool:
    """A resolvable key is either a generated code or a custom alias."""
    return is_well_formed(key) or is_valid_alias(key)


def validate_original_url(url: str) -> str:
    """Sanitize ``url`` and return it, or raise ValidationError."""
    if not isinstance(url, str) or not url.strip():
        raise ValidationError("original_url is required")
    sanitized = sanitize_url(url)
    if is_suspicious_url(sanitized):
        raise ValidationError("URL contains suspicious content")
    if not is_valid_url(sanitized):
        raise ValidationError("Invalid URL format")
    return sanitized


def validate_alias(alias: str) -> str:
    if not is_valid_alias(alias):
        raise ValidationError(
            "Invalid custom alias format. Use only alphanumeric, hyphens, and underscores (3-50 characters)"
        )
    return alias
