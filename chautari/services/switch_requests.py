# -*- coding: utf-8 -*-
# SPDX-License-Identifier: Apache-2.0

"""
Switch request service: persistence, audit and notification around the
lifecycle rules in ``domain.switch_requests``.

The service is stateless; every collaborator is injected.
"""

import logging
from datetime import datetime
from typing import Any, Callable, List, Optional, Tuple

from opentelemetry import trace
from opentelemetry.trace import Status, StatusCode

from ..domain.errors import (
    ActiveRequestExistsError, ChautariError, EmitError, ForbiddenError,
    InvalidStateError, InvalidValueError, NotFoundError
)
from ..domain.stats import RequestStats, aggregate
from ..domain.switch_requests import (
    NOTIFY_ON, can_view, plan_create, plan_transition, status_snapshot
)
from ..models.base import utcnow
from ..models.entities import ActorContext, SwitchRequest
from ..models.enums import ActorRole, SwitchAction, SwitchStatus
from .audit import AuditEmitter, build_audit_event
from .interfaces import (
    AgencyCatalog, NotificationDispatcher, RequestQuery, SwitchRequestStore
)

logger = logging.getLogger(__name__)
tracer = trace.get_tracer(__name__)

RESOURCE_TYPE = "switch_request"


class SwitchRequestService:
    """Lifecycle operations on switch requests."""

    def __init__(
        self,
        store: SwitchRequestStore,
        catalog: AgencyCatalog,
        emitter: AuditEmitter,
        notifier: Optional[NotificationDispatcher] = None,
        clock: Callable[[], datetime] = utcnow
    ):
        self.store = store
        self.catalog = catalog
        self.emitter = emitter
        self.notifier = notifier
        self.clock = clock

    # Side effects after a successful write

    def _audit(self, actor: ActorContext, action: str, request_id: str,
               before: Optional[SwitchRequest], after: SwitchRequest,
               extra_after: Optional[dict] = None) -> None:
        after_snapshot = status_snapshot(after)
        if extra_after:
            after_snapshot.update(extra_after)
        event = build_audit_event(
            actor,
            action=f"{RESOURCE_TYPE}.{action}",
            resource_type=RESOURCE_TYPE,
            resource_id=request_id,
            before=status_snapshot(before),
            after=after_snapshot
        )
        try:
            self.emitter.emit(event)
        except EmitError as e:
            logger.error(
                "Audit emission failed after switch request write",
                extra={"switch_request_id": request_id, "action": action, "error": e.message}
            )

    def _notify(self, action: SwitchAction, request: SwitchRequest) -> None:
        event = NOTIFY_ON.get(action)
        if event is None or self.notifier is None:
            return
        recipient = request.agency_id if action == SwitchAction.SUBMIT else request.patient_id
        context = {"status": request.status.value, "agency_id": request.agency_id}
        if action == SwitchAction.DENY:
            context["status_reason"] = request.status_reason
        if action == SwitchAction.ACCEPT and request.decision_note:
            context["note"] = request.decision_note
        try:
            self.notifier.notify(request.id, event, recipient, context=context)
        except Exception as e:
            logger.warning(
                "Notification dispatch failed",
                extra={"switch_request_id": request.id, "event": event.value, "error": str(e)}
            )

    def _ensure_no_other_active(self, patient_id: str, exclude_id: Optional[str] = None) -> None:
        existing = self.store.find_active_for_patient(patient_id, exclude_id=exclude_id)
        if existing is not None:
            raise ActiveRequestExistsError(existing_id=existing.id)

    # Lifecycle operations

    def create(self, actor: ActorContext, agency_id: str, **details: Any) -> SwitchRequest:
        """
        Start a draft switch request for the acting patient.

        Args:
            actor: Acting patient
            agency_id: Agency the patient wants to move to
            **details: current_agency_id, care_type, payer_type, switch_reason,
                services_requested, special_instructions, requested_start_date,
                document_ids

        Returns:
            Stored draft request

        Raises:
            ForbiddenError: actor is not a patient
            NotFoundError: agency does not exist or is not listed
            InvalidStateError: agency is not accepting new patients
            ActiveRequestExistsError: patient already has a request in progress
        """
        with tracer.start_as_current_span("switch_request.create") as span:
            span.set_attributes({
                "switch_request.agency_id": agency_id,
                "actor.id": actor.actor_id,
                "actor.role": actor.role.value
            })
            try:
                request = plan_create(actor, agency_id, now=self.clock(), **details)

                if request.current_agency_id and request.current_agency_id == agency_id:
                    raise InvalidValueError("agency_id", "Choose an agency other than your current one")

                agency = self.catalog.get(agency_id)
                if agency is None or not agency.is_active:
                    raise NotFoundError("The selected agency could not be found")
                if not agency.is_accepting_patients:
                    raise InvalidStateError(f"{agency.name} is not accepting new patients right now")

                self._ensure_no_other_active(actor.actor_id)
                stored = self.store.insert(request)
            except ChautariError as e:
                span.set_status(Status(StatusCode.ERROR, e.error_type))
                raise

            span.set_attribute("switch_request.id", stored.id)
            self._audit(actor, SwitchAction.CREATE.value, stored.id, None, stored)

            logger.info(
                "Switch request created",
                extra={"switch_request_id": stored.id, "agency_id": agency_id, "actor_id": actor.actor_id}
            )
            return stored

    def transition(
        self,
        request: SwitchRequest,
        action: SwitchAction,
        actor: ActorContext,
        reason: Optional[str] = None,
        note: Optional[str] = None
    ) -> SwitchRequest:
        """
        Apply an action to a request snapshot and persist it.

        The write only succeeds if the stored version and status still match
        the snapshot. Audit and notification follow a successful write and
        never fail the transition.

        Args:
            request: Request as read by the caller
            action: Action to apply
            actor: Acting user
            reason: Denial or cancellation reason
            note: Acceptance note relayed to the patient

        Returns:
            Stored request after the transition

        Raises:
            MissingReasonError, InvalidValueError, ForbiddenError,
            InvalidStateError, ActiveRequestExistsError, ConflictError, StoreError
        """
        with tracer.start_as_current_span(f"switch_request.{action.value}") as span:
            span.set_attributes({
                "switch_request.id": request.id,
                "switch_request.from_status": request.status.value,
                "switch_request.version": request.version,
                "actor.id": actor.actor_id,
                "actor.role": actor.role.value
            })
            try:
                updated = plan_transition(request, action, actor, reason=reason, now=self.clock(), note=note)
                if action == SwitchAction.SUBMIT:
                    self._ensure_no_other_active(request.patient_id, exclude_id=request.id)
                stored = self.store.update_if_unchanged(updated, request.version, request.status)
            except ChautariError as e:
                span.set_status(Status(StatusCode.ERROR, e.error_type))
                logger.info(
                    "Switch request transition rejected",
                    extra={"switch_request_id": request.id, "action": action.value, "error_type": e.error_type}
                )
                raise

            span.set_attribute("switch_request.to_status", stored.status.value)
            self._audit(actor, action.value, stored.id, request, stored)
            self._notify(action, stored)

            logger.info(
                "Switch request transitioned",
                extra={
                    "switch_request_id": stored.id,
                    "action": action.value,
                    "from_status": request.status.value,
                    "to_status": stored.status.value,
                    "actor_id": actor.actor_id
                }
            )
            return stored

    def _load(self, request_id: str) -> SwitchRequest:
        request = self.store.get(request_id)
        if request is None:
            raise NotFoundError("Switch request not found")
        return request

    def transition_by_id(self, request_id: str, action: SwitchAction, actor: ActorContext,
                         reason: Optional[str] = None, note: Optional[str] = None) -> SwitchRequest:
        """Read the current record and apply an action to it."""
        return self.transition(self._load(request_id), action, actor, reason=reason, note=note)

    def submit(self, request_id: str, actor: ActorContext) -> SwitchRequest:
        return self.transition_by_id(request_id, SwitchAction.SUBMIT, actor)

    def cancel(self, request_id: str, actor: ActorContext, reason: Optional[str] = None) -> SwitchRequest:
        return self.transition_by_id(request_id, SwitchAction.CANCEL, actor, reason=reason)

    def begin_review(self, request_id: str, actor: ActorContext) -> SwitchRequest:
        return self.transition_by_id(request_id, SwitchAction.BEGIN_REVIEW, actor)

    def accept(self, request_id: str, actor: ActorContext, note: Optional[str] = None) -> SwitchRequest:
        return self.transition_by_id(request_id, SwitchAction.ACCEPT, actor, note=note)

    def deny(self, request_id: str, actor: ActorContext, reason: Optional[str]) -> SwitchRequest:
        return self.transition_by_id(request_id, SwitchAction.DENY, actor, reason=reason)

    def complete(self, request_id: str, actor: ActorContext) -> SwitchRequest:
        return self.transition_by_id(request_id, SwitchAction.COMPLETE, actor)

    def assign_case_manager(self, request_id: str, case_manager_id: str,
                            actor: ActorContext) -> SwitchRequest:
        """
        Assign a case manager to an open request. Platform admins only.

        Raises:
            ForbiddenError, NotFoundError, InvalidValueError, InvalidStateError, ConflictError
        """
        if actor.role != ActorRole.PLATFORM_ADMIN:
            raise ForbiddenError("Only platform administrators can assign case managers")
        case_manager_id = (case_manager_id or "").strip()
        if not case_manager_id:
            raise InvalidValueError("case_manager_id", "Choose a case manager to assign")

        with tracer.start_as_current_span("switch_request.assign_case_manager") as span:
            span.set_attributes({"switch_request.id": request_id, "actor.id": actor.actor_id})
            request = self._load(request_id)
            if request.is_terminal:
                raise InvalidStateError(
                    f"This request is already {request.status.value} and can no longer be changed"
                )

            now = self.clock()
            updated = request.model_copy(update={
                "case_manager_id": case_manager_id,
                "updated_at": now,
                "updated_by": actor.actor_id,
                "version": request.version + 1
            })
            stored = self.store.update_if_unchanged(updated, request.version, request.status)
            self._audit(actor, "assign_case_manager", stored.id, request, stored,
                        extra_after={"case_manager_id": case_manager_id})
            return stored

    # Queries

    def get(self, request_id: str, actor: ActorContext) -> SwitchRequest:
        request = self._load(request_id)
        if not can_view(request, actor):
            raise ForbiddenError("You do not have access to this switch request")
        return request

    def _scope_for(self, actor: ActorContext, statuses: Optional[List[SwitchStatus]] = None) -> RequestQuery:
        if actor.role == ActorRole.PATIENT:
            return RequestQuery(patient_id=actor.actor_id, statuses=statuses or [])
        if actor.role == ActorRole.PLATFORM_ADMIN:
            return RequestQuery(statuses=statuses or [])
        if not actor.agency_id:
            raise ForbiddenError("Your account is not linked to an agency")
        return RequestQuery(agency_id=actor.agency_id, statuses=statuses or [])

    def list_for_actor(
        self,
        actor: ActorContext,
        page: int = 1,
        page_size: int = 20,
        statuses: Optional[List[SwitchStatus]] = None
    ) -> Tuple[List[SwitchRequest], int]:
        """
        List the requests visible to an actor, newest first.

        Returns:
            Tuple of (page items, total count)
        """
        if page < 1:
            raise InvalidValueError("page", "'page' must be at least 1")
        if not 1 <= page_size <= 100:
            raise InvalidValueError("page_size", "'page_size' must be between 1 and 100")
        with tracer.start_as_current_span("switch_request.list") as span:
            span.set_attributes({"actor.role": actor.role.value, "page": page, "page_size": page_size})
            return self.store.query(self._scope_for(actor, statuses), page, page_size)

    def stats_for_actor(self, actor: ActorContext) -> RequestStats:
        """Dashboard counts over the requests visible to an actor."""
        with tracer.start_as_current_span("switch_request.stats"):
            return aggregate(self.store.all_matching(self._scope_for(actor)))
