# -*- coding: utf-8 -*-
# SPDX-License-Identifier: Apache-2.0

"""
Audit emission with OpenTelemetry correlation.
"""

import logging
from typing import Any, Dict, Optional
from opentelemetry import trace
from pymongo.errors import PyMongoError

from ..domain.errors import EmitError
from ..models.entities import ActorContext, AuditEvent
from .interfaces import AuditSink
from .mongodb import MongoDBService, AUDIT_EVENTS, to_document

logger = logging.getLogger(__name__)
tracer = trace.get_tracer(__name__)


def build_audit_event(
    actor: ActorContext,
    action: str,
    resource_type: str,
    resource_id: str,
    before: Optional[Dict[str, Any]] = None,
    after: Optional[Dict[str, Any]] = None
) -> AuditEvent:
    """
    Build an audit event carrying the current trace and request context.

    Args:
        actor: Acting user
        action: Action name, e.g. ``switch_request.accept``
        resource_type: ``switch_request`` or ``agency``
        resource_id: Affected resource
        before: Snapshot before the change
        after: Snapshot after the change

    Returns:
        AuditEvent
    """
    trace_fields = {}
    span_context = trace.get_current_span().get_span_context()
    if span_context.is_valid:
        trace_fields = {
            "trace_id": format(span_context.trace_id, "032x"),
            "span_id": format(span_context.span_id, "016x")
        }

    return AuditEvent(
        actor_id=actor.actor_id,
        actor_role=actor.role,
        action=action,
        resource_type=resource_type,
        resource_id=resource_id,
        before=before,
        after=after,
        ip_address=actor.ip_address,
        user_agent=actor.user_agent,
        session_id=actor.session_id,
        **trace_fields
    )


class AuditEmitter:
    """Hands audit events to a sink, reporting sink failures as EmitError."""

    def __init__(self, sink: AuditSink):
        self.sink = sink

    def emit(self, event: AuditEvent) -> None:
        """
        Append an event to the sink.

        Raises:
            EmitError: the sink rejected the event
        """
        with tracer.start_as_current_span("audit.emit") as span:
            span.set_attributes({
                "audit.action": event.action,
                "audit.resource_type": event.resource_type,
                "audit.resource_id": event.resource_id,
                "audit.actor_id": event.actor_id
            })
            try:
                self.sink.append(event)
            except Exception as e:
                span.record_exception(e)
                span.set_status(trace.Status(trace.StatusCode.ERROR, str(e)))
                raise EmitError(f"Audit sink rejected {event.action}: {e}")

            logger.info(
                "Audit trail entry created",
                extra={
                    "audit_id": event.id,
                    "resource_type": event.resource_type,
                    "resource_id": event.resource_id,
                    "action": event.action,
                    "actor_id": event.actor_id,
                    "trace_id": event.trace_id,
                    "audit_category": "business_action"
                }
            )


class MongoAuditSink:
    """Append-only audit storage in the ``audit_events`` collection."""

    def __init__(self, mongo_service: MongoDBService):
        self.mongo_service = mongo_service
        self.collection_name = AUDIT_EVENTS

    def append(self, event: AuditEvent) -> None:
        try:
            self.mongo_service.get_collection(self.collection_name).insert_one(to_document(event))
        except PyMongoError as e:
            logger.error(
                "Failed to create audit trail entry",
                extra={"action": event.action, "resource_id": event.resource_id, "error": str(e)},
                exc_info=True
            )
            raise
