"""Request payload validation helpers producing consistent 400 responses."""
from __future__ import annotations
import re
from typing import Any, Dict, Iterable, Optional
from flask import abort, request

from storerate.constants.permissions import Role
from storerate.utils.sanitizers import strip_markup

EMAIL_RE = re.compile(r'^[^@\s]+@[^@\s]+\.[^@\s]+$')


def json_body() -> Dict[str, Any]:
    """The request JSON as a sanitized dict. A missing body is empty; any other JSON shape is a 400."""
    data = request.get_json(silent=True)
    if data is None:
        return {}
    if not isinstance(data, dict):
        abort(400, description='Request body must be a JSON object')
    return strip_markup(data)


def query_text(name: str) -> Optional[str]:
    raw = request.args.get(name)
    return strip_markup(raw) if raw else None


def require_text(data: Dict[str, Any], field: str) -> str:
    value = data.get(field)
    if not isinstance(value, str) or not value:
        abort(400, description=f'{field} must be a non-empty string')
    return value


def optional_text(data: Dict[str, Any], field: str) -> Optional[str]:
    value = data.get(field)
    if value is None or isinstance(value, str):
        return value or None
    abort(400, description=f'{field} must be a string')


def require_int(data: Dict[str, Any], field: str, required: bool = True) -> Optional[int]:
    value = data.get(field)
    if value is None and not required:
        return None
    if isinstance(value, bool) or not isinstance(value, (int, str)):
        abort(400, description=f'{field} must be an integer')
    try:
        return int(value)
    except ValueError:
        abort(400, description=f'{field} must be an integer')


def require_fields(data: Dict[str, Any], fields: Iterable[str]) -> Dict[str, Any]:
    if not isinstance(data, dict):
        abort(400, description='Request body must be a JSON object')
    missing = [f for f in fields if data.get(f) in (None, '')]
    if missing:
        abort(400, description=f"Missing required fields: {', '.join(missing)}")
    return data


def validate_email(value: str) -> str:
    if not isinstance(value, str) or not EMAIL_RE.match(value):
        abort(400, description='email invalid')
    return value.strip().lower()


def validate_rating_value(value: Any, low: int = 1, high: int = 5) -> int:
    if isinstance(value, bool):
        abort(400, description='rating invalid')
    try:
        val = int(value)
    except (TypeError, ValueError):
        abort(400, description='rating invalid')
    if val < low or val > high:
        abort(400, description=f'rating must be between {low} and {high}')
    return val


def validate_role(value: Any) -> Role:
    role = Role.parse(value)
    if role is None:
        abort(400, description='role invalid')
    return role

__all__ = ['json_body', 'query_text', 'require_text', 'optional_text', 'require_int', 'require_fields', 'validate_email', 'validate_rating_value', 'validate_role']
