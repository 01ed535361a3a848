"""Append-only audit/security event log.

Recording is fire-and-forget: callers never see a failure from here. A failed write is
rolled back and reported on the operational logger ``storerate.ops`` instead of the
audit table it could not reach. By default writes run on a small thread pool so request
latency is not tied to the audit table; ``AUDIT_ASYNC=False`` writes inline (tests).
"""
from __future__ import annotations
import logging
import threading
from concurrent.futures import ThreadPoolExecutor, Future, wait
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Callable, Dict, Optional, Set

from flask import current_app, has_request_context, request

from storerate.models.audit import AuditEventRecord
from storerate.constants.permissions import EVENT_PERMISSION_CHECK
from storerate.utils.sanitizers import redact_sensitive

ops_logger = logging.getLogger('storerate.ops')

EXTENSION_KEY = 'storerate.audit'


@dataclass(frozen=True)
class AuditEvent:
    event_type: str
    actor_id: Optional[int] = None
    actor_role: Optional[str] = None
    resource_type: Optional[str] = None
    resource_id: Optional[str] = None
    granted: Optional[bool] = None
    ip: Optional[str] = None
    user_agent: Optional[str] = None
    details: Dict[str, Any] = field(default_factory=dict)
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))


class AuditSink:
    """Writes one row per event, each in a fresh session from session_factory.

    The factory must not hand out the request-scoped session: an audit commit or rollback
    would otherwise commit or discard whatever the handler has pending.
    """

    def __init__(self, session_factory: Callable[[], Any]):
        self._session_factory = session_factory

    def write(self, event: AuditEvent) -> None:
        session = self._session_factory()
        row = AuditEventRecord(
            user_id=event.actor_id,
            user_role=getattr(event.actor_role, 'value', event.actor_role),
            event_type=event.event_type,
            resource_type=getattr(event.resource_type, 'value', event.resource_type),
            resource_id=str(event.resource_id) if event.resource_id is not None else None,
            granted=event.granted,
            ip_address=event.ip,
            user_agent=(event.user_agent or '')[:255] or None,
            details=redact_sensitive(dict(event.details or {})),
            created_at=event.timestamp,
        )
        try:
            session.add(row)
            session.commit()
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()


class AuditLog:
    def __init__(self, sink: AuditSink, async_mode: bool = True, workers: int = 2):
        self.sink = sink
        self.async_mode = async_mode
        self._executor = ThreadPoolExecutor(max_workers=max(1, workers), thread_name_prefix='audit') if async_mode else None
        self._pending: Set[Future] = set()
        self._lock = threading.Lock()

    def record(self, event_type: str, actor_id: Optional[int] = None, details: Optional[Dict[str, Any]] = None, **fields) -> None:
        try:
            event = AuditEvent(event_type=event_type, actor_id=actor_id, details=dict(details or {}), **fields)
            self.emit(event)
        except Exception:
            ops_logger.exception('Audit event %s could not be dispatched', event_type)

    def emit(self, event: AuditEvent) -> None:
        if self._executor is None:
            self._write_safely(event)
            return
        fut = self._executor.submit(self._write_safely, event)
        with self._lock:
            self._pending.add(fut)
        fut.add_done_callback(self._forget)

    def _forget(self, fut: Future) -> None:
        with self._lock:
            self._pending.discard(fut)

    def _write_safely(self, event: AuditEvent) -> None:
        try:
            self.sink.write(event)
        except Exception:
            ops_logger.exception(
                'Audit write failed: event=%s actor=%s resource=%s/%s',
                event.event_type, event.actor_id, event.resource_type, event.resource_id,
            )

    def drain(self, timeout: Optional[float] = None) -> None:
        """Block until every dispatched write has finished (or timeout)."""
        with self._lock:
            pending = list(self._pending)
        if pending:
            wait(pending, timeout=timeout)

    def shutdown(self) -> None:
        if self._executor is not None:
            self._executor.shutdown(wait=True)


def get_audit_log() -> AuditLog:
    return current_app.extensions[EXTENSION_KEY]


def _request_fields() -> Dict[str, Any]:
    if not has_request_context():
        return {}
    return {
        'ip': request.remote_addr,
        'user_agent': request.headers.get('User-Agent'),
    }


def record_event(event_type: str, actor_id: Optional[int] = None, details: Optional[Dict[str, Any]] = None, **fields) -> None:
    """Record an event for the current app, filling ip/user agent from the active request."""
    merged = {**_request_fields(), **fields}
    try:
        audit = get_audit_log()
    except Exception:
        ops_logger.exception('No audit log configured; dropping %s', event_type)
        return
    audit.record(event_type, actor_id, details, **merged)


def log_permission_check(actor, permission: str, resource: Optional[str], granted: bool, ip: Optional[str] = None) -> None:
    """Explicit audit for sensitive actions (successful or not); middleware only audits denials."""
    fields = {'granted': granted, 'resource_type': resource}
    if ip is not None:
        fields['ip'] = ip
    record_event(
        EVENT_PERMISSION_CHECK,
        getattr(actor, 'id', None),
        {'permission': str(permission), 'resource': resource, 'granted': granted},
        actor_role=getattr(actor, 'role', None),
        **fields,
    )
