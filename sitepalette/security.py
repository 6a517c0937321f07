"""Guards for user-supplied patterns, URLs and free-text input.

Patterns from settings (host blocklists, tag patterns) are length-bounded
and screened for catastrophic-backtracking shapes before compiling. A
rejected pattern matches nothing; nothing here raises on bad input.
"""
import re
from typing import Optional
from urllib.parse import urlparse


MAX_PATTERN_LENGTH = 100
MAX_INPUT_LENGTH = 1000

ALLOWED_URL_SCHEMES = ("http", "https", "ftp", "ftps", "mailto", "tel")

_DANGEROUS_PATTERNS = [
    # Nested groups
    re.compile(r"\(.*\(\(.*\)\).*\)"),
    # Recursive-looking conditionals
    re.compile(r"\(\?\((.*)\)\)"),
    # Runs of quantifiers
    re.compile(r"(\*|\+|\?|\{[\d,]+\}){5,}"),
    # Stacked lookarounds
    re.compile(r"(\(\?=.+\)|\(\?!.+\)|\(\?<=.+\)|\(\?<!.+\)){2,}"),
    # Repeated quantified runs
    re.compile(r"(.+\*|.+[^*]\+|.+[^+]\?){2,}"),
]

_CONTROL_CHARS_RE = re.compile(r"[\x00-\x08\x0B\x0C\x0E-\x1F\x7F]")


def is_dangerous_pattern(pattern: str) -> bool:
    """Whether a pattern has a known catastrophic-backtracking shape."""
    return any(dangerous.search(pattern) for dangerous in _DANGEROUS_PATTERNS)


def sanitize_regex(pattern: str, max_length: int = MAX_PATTERN_LENGTH) -> Optional[str]:
    """Screen a user pattern and return it as an escaped literal.

    Args:
        pattern: User-supplied pattern
        max_length: Maximum accepted pattern length

    Returns:
        Escaped pattern, or None if the pattern is empty, too long or
        matches a known backtracking shape
    """
    if not pattern or len(pattern) > max_length or is_dangerous_pattern(pattern):
        return None

    return re.escape(pattern)


def create_safe_regex(
    pattern: str,
    flags: int = re.IGNORECASE,
    max_length: int = MAX_PATTERN_LENGTH,
) -> Optional["re.Pattern[str]"]:
    """Compile a screened literal pattern, or return None."""
    sanitized = sanitize_regex(pattern, max_length)
    if sanitized is None:
        return None

    try:
        return re.compile(sanitized, flags)
    except re.error:
        return None


def compile_wildcard(pattern: str, max_length: int = MAX_PATTERN_LENGTH) -> Optional["re.Pattern[str]"]:
    """Compile a ``*`` glob into an anchored, case-insensitive regex.

    Returns:
        Compiled pattern, or None for rejected patterns
    """
    pattern = (pattern or "").strip()
    if not pattern or len(pattern) > max_length or is_dangerous_pattern(pattern):
        return None

    body = ".*".join(re.escape(part) for part in pattern.split("*"))
    try:
        return re.compile(f"^{body}$", re.IGNORECASE)
    except re.error:
        return None


def wildcard(text: str, pattern: str) -> bool:
    """Glob-style match where ``*`` stands for any run of characters."""
    compiled = compile_wildcard(pattern)
    if compiled is None:
        return False
    return compiled.match(text or "") is not None


def is_blocked_host(host: str, blocklist: str) -> bool:
    """Check a host against a newline-separated list of wildcard patterns.

    Args:
        host: Hostname, e.g. ``"www.example.com"``
        blocklist: Patterns such as ``"*.example.com"``, one per line

    Returns:
        True if any pattern matches
    """
    patterns = [line.strip() for line in (blocklist or "").splitlines() if line.strip()]
    return any(wildcard(host, pattern) for pattern in patterns)


def is_valid_url(url: str) -> bool:
    """Accept only URLs with an allowed scheme and a target."""
    try:
        parsed = urlparse(url or "")
    except ValueError:
        return False

    if parsed.scheme.lower() not in ALLOWED_URL_SCHEMES:
        return False
    if parsed.scheme.lower() in ("mailto", "tel"):
        return bool(parsed.path)
    return bool(parsed.netloc)


def validate_input(text: str, max_length: int = MAX_INPUT_LENGTH) -> bool:
    """Reject empty, over-long or control-character-laden input (tabs and newlines allowed)."""
    if not text or not isinstance(text, str):
        return False
    if len(text) > max_length:
        return False
    return _CONTROL_CHARS_RE.search(text) is None
