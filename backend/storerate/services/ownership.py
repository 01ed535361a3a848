from __future__ import annotations
import logging
from typing import Any, Callable, Optional

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError

from storerate.constants.permissions import ResourceType
from storerate.errors import InfraError
from storerate.models.store import Store
from storerate.models.rating import Rating

ops_logger = logging.getLogger('storerate.ops')


def _as_int(value) -> Optional[int]:
    if isinstance(value, bool):
        return None
    try:
        return int(value)
    except (TypeError, ValueError):
        return None


class OwnershipResolver:
    """Decides whether an actor owns a resource instance.

    user/profile compare ids without I/O; store and rating perform exactly one lookup.
    Unknown resource types and missing rows deny. A database failure raises InfraError
    so the caller can fail closed with a 500 instead of masking it as a plain 403.
    """

    def __init__(self, session_factory: Callable[[], Any]):
        self._session_factory = session_factory

    def owns(self, resource_type, resource_id, actor_id) -> bool:
        rtype = ResourceType.parse(resource_type)
        rid = _as_int(resource_id)
        if rtype is None or rid is None or actor_id is None:
            return False
        if rtype in (ResourceType.USER, ResourceType.PROFILE):
            return rid == actor_id
        if rtype is ResourceType.STORE:
            stmt = select(Store.id).where(Store.id == rid, Store.owner_id == actor_id)
        elif rtype is ResourceType.RATING:
            stmt = select(Rating.id).where(Rating.id == rid, Rating.user_id == actor_id)
        else:
            return False
        try:
            found = self._session_factory().execute(stmt).first()
        except SQLAlchemyError as e:
            ops_logger.error('Ownership lookup failed for %s/%s: %s', rtype.value, rid, e)
            raise InfraError(f'ownership lookup failed for {rtype.value}') from e
        return found is not None
