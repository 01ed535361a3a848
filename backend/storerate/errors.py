from __future__ import annotations
from enum import Enum


class DenialReason(str, Enum):
    UNAUTHENTICATED = 'UNAUTHENTICATED'
    FORBIDDEN = 'FORBIDDEN'
    INFRA_ERROR = 'INFRA_ERROR'
    VALIDATION_ERROR = 'VALIDATION_ERROR'


STATUS_FOR_REASON = {
    DenialReason.UNAUTHENTICATED: 401,
    DenialReason.FORBIDDEN: 403,
    DenialReason.INFRA_ERROR: 500,
    DenialReason.VALIDATION_ERROR: 400,
}


class InfraError(Exception):
    """A collaborator (database, audit sink) failed unexpectedly."""


class CredentialError(Exception):
    EXPIRED = 'EXPIRED'
    INVALID = 'INVALID'

    def __init__(self, kind: str, message: str = ''):
        super().__init__(message or kind)
        self.kind = kind

    @property
    def expired(self) -> bool:
        return self.kind == self.EXPIRED
