"""
Thinking Monitor - Secret Redaction
====================================

Pattern-based detection and redaction of sensitive values before a
payload is stored or fanned out to dashboard subscribers.
"""

import re
from typing import List, Optional, Pattern, Tuple


REDACTED = "[REDACTED]"

# Content beyond this length is not scanned (bounded regex work)
MAX_REDACTION_LENGTH = 50_000


# ==========================================================================
# Secret Patterns
# ==========================================================================

# (name, pattern, min_length). Patterns with one group redact the whole
# group; patterns with two or more groups keep group 1 as a prefix and
# group 3 (if any) as a suffix.
SECRET_PATTERNS: List[Tuple[str, Pattern[str], Optional[int]]] = [
    ("stripe_secret_key", re.compile(r"\b(sk_(?:live|test)_[a-zA-Z0-9]{24,})\b"), 20),
    ("stripe_publishable_key", re.compile(r"\b(pk_(?:live|test)_[a-zA-Z0-9]{24,})\b"), 20),
    ("aws_access_key", re.compile(r"\b(AKIA[0-9A-Z]{16})\b"), 20),
    ("aws_secret_key", re.compile(r"\b(aws_secret_access_key\s*[=:]\s*)([a-zA-Z0-9+/]{40})\b", re.IGNORECASE), None),
    ("anthropic_api_key", re.compile(r"\b(sk-ant(?:-[a-zA-Z0-9]+)?-[a-zA-Z0-9_-]{20,})\b"), 20),
    ("openai_project_key", re.compile(r"\b(sk-proj-[a-zA-Z0-9_-]{20,})\b"), 20),
    ("openai_api_key", re.compile(r"\b(sk-[a-zA-Z0-9]{32,})\b"), 20),
    ("github_token", re.compile(r"\b(gh[pso]_[a-zA-Z0-9]{36,})\b"), 20),
    ("google_api_key", re.compile(r"\b(AIza[0-9A-Za-z_-]{32,})\b"), 30),
    ("slack_token", re.compile(r"\b(xox[baprs]-[0-9a-zA-Z-]{10,})\b"), 15),
    ("npm_token", re.compile(r"\b(npm_[a-zA-Z0-9]{20,})\b"), 20),
    ("jwt", re.compile(r"\b(eyJ[a-zA-Z0-9_-]+\.eyJ[a-zA-Z0-9_-]+\.[a-zA-Z0-9_-]+)\b"), 50),
    ("bearer_token", re.compile(r"(Bearer\s+)([a-zA-Z0-9_.-]{20,128})\b", re.IGNORECASE), None),
    ("basic_auth", re.compile(r"(Basic\s+)([a-zA-Z0-9+/]{8,}={0,2})(?=\s|$)", re.IGNORECASE), None),
    ("api_key_assignment", re.compile(r"\b(api[_-]?key\s*[=:]\s*[\"']?)([a-zA-Z0-9_.-]{16,80})([\"']?)", re.IGNORECASE), None),
    ("secret_assignment", re.compile(r"\b([a-zA-Z_]*secret\s*[=:]\s*[\"']?)([a-zA-Z0-9_.-]{16,80})([\"']?)", re.IGNORECASE), None),
    ("token_assignment", re.compile(r"\b((?:access[_-]?)?token\s*[=:]\s*[\"']?)([a-zA-Z0-9_.-]{16,80})([\"']?)", re.IGNORECASE), None),
    ("password_assignment", re.compile(r"\b((?:pass(?:word)?|pwd|passwd)\s*[=:]\s*[\"']?)([^\s\"',;]{8,40})([\"']?)", re.IGNORECASE), None),
    (
        "private_key_block",
        re.compile(r"(-----BEGIN\s+(?:[A-Z]+\s+)?PRIVATE\s+KEY-----[\s\S]*?-----END\s+(?:[A-Z]+\s+)?PRIVATE\s+KEY-----)"),
        None,
    ),
    ("database_url_password", re.compile(r"((?:postgres|mysql|mongodb|redis)://[^:/\s]+:)([^@\s]{1,80})(@)", re.IGNORECASE), None),
]


def _replacer(min_length: Optional[int]):
    def replace(match: "re.Match[str]") -> str:
        groups = match.groups()
        if len(groups) == 1:
            secret = groups[0]
            if min_length and len(secret) < min_length:
                return match.group(0)
            return REDACTED

        prefix = groups[0] or ""
        secret = groups[1] or ""
        suffix = groups[2] if len(groups) > 2 and groups[2] else ""
        if min_length and len(secret) < min_length:
            return match.group(0)
        return prefix + REDACTED + suffix

    return replace


def redact_secrets(content: Optional[str]) -> Optional[str]:
    """
    Redact secrets from a string based on known patterns.

    Example:
        >>> redact_secrets("key sk_live_" + "a" * 24)
        'key [REDACTED]'
    """
    if not content or not isinstance(content, str):
        return content

    truncated = False
    if len(content) > MAX_REDACTION_LENGTH:
        content = content[:MAX_REDACTION_LENGTH]
        truncated = True

    redacted = content
    for _name, pattern, min_length in SECRET_PATTERNS:
        redacted = pattern.sub(_replacer(min_length), redacted)

    if truncated:
        redacted += "\n[... content truncated for security scanning ...]"
    return redacted
