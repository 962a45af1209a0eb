"""Redaction utilities for sensitive data in command output and logs.

Strips passwords, tokens, and credentials embedded in URLs (e.g. a
repo URL with basic-auth) and in captured stdout/stderr before they
are logged or copied into a notification excerpt.
"""

import re
from urllib.parse import parse_qs, urlparse, urlunparse


# URL parameters that should be redacted
SENSITIVE_PARAMS = {
    "apikey",
    "api_key",
    "key",
    "token",
    "secret",
    "password",
    "access_token",
    "authorization",
}

# Regex patterns for credentials in free text
_KEY_PATTERNS = [
    # user:password@host in URLs (git remotes)
    re.compile(r"(://[^/\s:@]+:)[^@\s/]+(?=@)"),
    re.compile(r"(api_key=)[^\s&]+", re.IGNORECASE),
    re.compile(r"(token=)[^\s&]+", re.IGNORECASE),
    re.compile(r"(secret=)[^\s&]+", re.IGNORECASE),
    re.compile(r"(password=)[^\s&]+", re.IGNORECASE),
    # Bearer tokens
    re.compile(r"(Bearer\s+)\S+", re.IGNORECASE),
    # GitHub personal access tokens
    re.compile(r"(gh[pousr]_)[A-Za-z0-9]+"),
]


def redact_url(url: str) -> str:
    """Remove credentials and sensitive query parameters from a URL.

    Args:
        url: URL that may contain a password or token.

    Returns:
        URL with sensitive values replaced by '[REDACTED]'.
    """
    try:
        parsed = urlparse(url)
    except ValueError:
        return redact_text(url)

    netloc = parsed.netloc
    if parsed.password:
        netloc = netloc.replace(f":{parsed.password}@", ":[REDACTED]@", 1)

    params = parse_qs(parsed.query, keep_blank_values=True)
    parts = []
    for key, values in params.items():
        for v in values:
            if key.lower() in SENSITIVE_PARAMS:
                v = "[REDACTED]"
            parts.append(f"{key}={v}")
    new_query = "&".join(parts)
    return urlunparse(parsed._replace(netloc=netloc, query=new_query))


def redact_text(text: str) -> str:
    """Strip potential tokens and passwords from free text.

    Args:
        text: Command output or error string that may contain credentials.

    Returns:
        Text with sensitive values replaced by '[REDACTED]'.
    """
    result = text
    for pattern in _KEY_PATTERNS:
        result = pattern.sub(r"\1[REDACTED]", result)
    return result
