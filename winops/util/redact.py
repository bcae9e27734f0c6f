"""Utilities for redacting credentials from PowerShell scripts and messages."""

import re

# Patterns for sensitive data that should be redacted
SENSITIVE_PATTERNS = [
    # ConvertTo-SecureString 'secret' -AsPlainText
    (r"(ConvertTo-SecureString\s+)(?:'(?:[^']|'')*'|\"[^\"]*\"|\S+)", r"\1'REDACTED'"),
    # password=..., secret: ...
    (r'(password|passwd|pwd|secret|token)([=:"\s]+)\S+', r"\1\2REDACTED"),
    # Basic/Bearer authorization headers
    (r"(Basic|Bearer)\s+[A-Za-z0-9+/=._-]{8,}", r"\1 REDACTED"),
]


def redact_sensitive(text: str) -> str:
    """
    Redact sensitive data from text using pattern matching.

    Args:
        text: Text potentially containing credentials

    Returns:
        Text with sensitive data replaced with REDACTED markers

    Example:
        >>> redact_sensitive("ConvertTo-SecureString 'hunter2' -AsPlainText -Force")
        "ConvertTo-SecureString 'REDACTED' -AsPlainText -Force"
    """
    result = text
    for pattern, replacement in SENSITIVE_PATTERNS:
        result = re.sub(pattern, replacement, result, flags=re.IGNORECASE)
    return result
