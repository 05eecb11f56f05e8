"""Cache key derivation.

Key format::

    <normalized message>|<sha256(context[:N])[:16]>|<model>|<project id>

Two requests share a key when their messages differ only in case or
whitespace and their context prefixes, model and project are identical.
"""

from __future__ import annotations

import hashlib
import re

_WS_RE = re.compile(r"\s+")

DEFAULT_CONTEXT_CHARS = 500


def normalize_message(message: str) -> str:
    """Lower-case, trim and collapse internal whitespace runs to one space."""
    return _WS_RE.sub(" ", message.strip().lower())


def context_fingerprint(context: str, chars: int = DEFAULT_CONTEXT_CHARS) -> str:
    """First 16 hex chars of the SHA-256 of the first *chars* characters of *context*."""
    return hashlib.sha256(context[:chars].encode("utf-8")).hexdigest()[:16]


def make_cache_key(
    message: str,
    context: str,
    model: str,
    project_id: str,
    *,
    context_chars: int = DEFAULT_CONTEXT_CHARS,
) -> str:
    return "|".join(
        [
            normalize_message(message),
            context_fingerprint(context, context_chars),
            model,
            project_id,
        ]
    )


def project_of(key: str) -> str:
    """Project id component of a key built by ``make_cache_key``."""
    return key.rsplit("|", 1)[-1]
