from __future__ import annotations
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Optional

from flask import current_app
from flask_jwt_extended import create_access_token, decode_token
from flask_jwt_extended.exceptions import JWTExtendedException
from jwt import ExpiredSignatureError, InvalidTokenError
from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError

from storerate.constants.permissions import Role
from storerate.errors import CredentialError, InfraError
from storerate.models.authz import User


@dataclass(frozen=True)
class Actor:
    id: int
    name: str
    email: str
    role: Role

    def to_dict(self):
        return {'id': self.id, 'name': self.name, 'email': self.email, 'role': self.role.value}


@dataclass(frozen=True)
class Credential:
    actor_id: int
    role: str
    expiry: Optional[datetime]


def issue_token(user_id: int, role) -> str:
    """Sign an access token binding the user id and the role held at issue time."""
    hours = current_app.config.get('JWT_EXPIRES_HOURS', 24)
    # JWT identity must be a string (flask-jwt-extended v4 requirement)
    return create_access_token(
        identity=str(user_id),
        additional_claims={'role': getattr(role, 'value', role)},
        expires_delta=timedelta(hours=hours),
    )


class CredentialVerifier:
    def verify(self, token: str) -> Credential:
        try:
            claims = decode_token(token)
        except ExpiredSignatureError as e:
            raise CredentialError(CredentialError.EXPIRED, str(e)) from e
        except (InvalidTokenError, JWTExtendedException) as e:
            raise CredentialError(CredentialError.INVALID, str(e)) from e
        if claims.get('type') != 'access':
            raise CredentialError(CredentialError.INVALID, 'not an access token')
        try:
            actor_id = int(claims.get('sub'))
        except (TypeError, ValueError):
            raise CredentialError(CredentialError.INVALID, 'malformed subject')
        role = claims.get('role')
        if not isinstance(role, str):
            raise CredentialError(CredentialError.INVALID, 'missing role claim')
        exp = claims.get('exp')
        expiry = datetime.fromtimestamp(exp, tz=timezone.utc) if isinstance(exp, (int, float)) else None
        return Credential(actor_id=actor_id, role=role, expiry=expiry)


class ActorDirectory:
    """Resolves the current persisted actor. A row must match both id and role."""

    def __init__(self, session_factory: Callable[[], Any]):
        self._session_factory = session_factory

    def find(self, actor_id: int, role: str) -> Optional[Actor]:
        try:
            user = self._session_factory().execute(
                select(User).where(User.id == actor_id, User.role == role)
            ).scalar_one_or_none()
        except SQLAlchemyError as e:
            raise InfraError('actor lookup failed') from e
        if user is None:
            return None
        parsed = Role.parse(user.role)
        if parsed is None:
            return None
        return Actor(id=user.id, name=user.name, email=user.email, role=parsed)
