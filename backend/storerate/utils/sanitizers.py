from __future__ import annotations
from typing import Any

SENSITIVE_KEY_PARTS = ('password', 'token', 'secret', 'key', 'auth')
REDACTED = '[REDACTED]'


def redact_sensitive(data: Any) -> Any:
    """Return a copy of data with values under sensitive-looking keys replaced. Recurses into dicts/lists."""
    if isinstance(data, dict):
        out = {}
        for k, v in data.items():
            if isinstance(k, str) and any(part in k.lower() for part in SENSITIVE_KEY_PARTS):
                out[k] = REDACTED
            else:
                out[k] = redact_sensitive(v)
        return out
    if isinstance(data, (list, tuple)):
        return [redact_sensitive(v) for v in data]
    return data


MARKUP_CHARS = str.maketrans('', '', '<>')


def strip_markup(data: Any) -> Any:
    """Remove angle brackets from every string in data and trim it. Values under password keys are left as typed."""
    if isinstance(data, str):
        return data.translate(MARKUP_CHARS).strip()
    if isinstance(data, dict):
        return {
            k: v if isinstance(k, str) and 'password' in k.lower() else strip_markup(v)
            for k, v in data.items()
        }
    if isinstance(data, list):
        return [strip_markup(v) for v in data]
    return data

__all__ = ['redact_sensitive', 'strip_markup', 'REDACTED']
