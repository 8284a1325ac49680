from __future__ import annotations

"""
taskrun.security.redaction
==========================

Signed upload URLs are bearer credentials: anyone holding the full URL can
write to the destination until it expires. Log lines must only carry a
redacted form.

Principles:
- Fail-open on shape: a string that does not parse as a URL is returned
  with any query string cut off.
- Deterministic and cheap: stdlib parsing only.
"""

from urllib.parse import parse_qsl, urlencode, urlsplit, urlunsplit

__all__ = [
    "is_sensitive_param",
    "redact_url",
]

# Query parameter names (case-insensitive) that carry signing material.
_SENSITIVE_PARAMS = frozenset(
    s.lower()
    for s in [
        "signature",
        "sig",
        "token",
        "access_token",
        "awsaccesskeyid",
        "x-amz-signature",
        "x-amz-credential",
        "x-amz-security-token",
        "se",
        "sv",
        "sp",
        "key",
    ]
)


def is_sensitive_param(name: str) -> bool:
    return name.lower() in _SENSITIVE_PARAMS


def redact_url(url: str | None, *, replacement: str = "***") -> str:
    """
    Return `url` with credentials replaced:
      - userinfo (user:password@) is dropped,
      - values of signing query parameters become `replacement`.
    """
    if not url:
        return ""
    try:
        parts = urlsplit(url)
        host = parts.hostname or ""
        port = parts.port
    except ValueError:
        return url.split("?", 1)[0]
    if ":" in host:
        host = f"[{host}]"
    netloc = f"{host}:{port}" if port else host
    query = parts.query
    if query:
        pairs = [(k, replacement if is_sensitive_param(k) else v) for k, v in parse_qsl(query, keep_blank_values=True)]
        query = urlencode(pairs, safe="*")
    return urlunsplit((parts.scheme, netloc, parts.path, query, parts.fragment))
