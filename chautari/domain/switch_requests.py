# SPDX-License-Identifier: Apache-2.0

"""
Switch request lifecycle rules.

The transition table is data: each ``(from_status, action)`` pair maps to the
roles allowed to perform it and the resulting status. ``plan_transition``
applies the table to a request snapshot and returns the updated copy without
touching storage; persistence, audit and notification live in
``services.switch_requests``.
"""

from dataclasses import dataclass
from datetime import datetime
from typing import Any, Dict, FrozenSet, List, Optional, Tuple

from ..models.base import utcnow
from ..models.entities import ActorContext, SwitchRequest
from ..models.enums import (
    ActorRole, NotificationEvent, SwitchAction, SwitchStatus, TERMINAL_STATUSES
)
from .errors import (
    ForbiddenError, InvalidStateError, InvalidValueError, MissingReasonError
)

MAX_REASON_LENGTH = 500

PATIENT_ACTIONS = frozenset({SwitchAction.CREATE, SwitchAction.SUBMIT, SwitchAction.CANCEL})
AGENCY_ACTIONS = frozenset({
    SwitchAction.BEGIN_REVIEW, SwitchAction.ACCEPT, SwitchAction.DENY, SwitchAction.COMPLETE
})


@dataclass(frozen=True)
class Transition:
    """Allowed roles and resulting status for one table entry."""
    roles: FrozenSet[ActorRole]
    to_status: SwitchStatus


_PATIENT = frozenset({ActorRole.PATIENT})
_AGENCY_MEMBERS = frozenset({ActorRole.AGENCY_STAFF, ActorRole.AGENCY_ADMIN})
_AGENCY_ADMIN = frozenset({ActorRole.AGENCY_ADMIN})

TRANSITIONS: Dict[Tuple[Optional[SwitchStatus], SwitchAction], Transition] = {
    (None, SwitchAction.CREATE): Transition(_PATIENT, SwitchStatus.DRAFT),
    (SwitchStatus.DRAFT, SwitchAction.SUBMIT): Transition(_PATIENT, SwitchStatus.SUBMITTED),
    (SwitchStatus.DRAFT, SwitchAction.CANCEL): Transition(_PATIENT, SwitchStatus.CANCELLED),
    (SwitchStatus.SUBMITTED, SwitchAction.CANCEL): Transition(_PATIENT, SwitchStatus.CANCELLED),
    (SwitchStatus.UNDER_REVIEW, SwitchAction.CANCEL): Transition(_PATIENT, SwitchStatus.CANCELLED),
    (SwitchStatus.SUBMITTED, SwitchAction.BEGIN_REVIEW): Transition(_AGENCY_MEMBERS, SwitchStatus.UNDER_REVIEW),
    (SwitchStatus.UNDER_REVIEW, SwitchAction.ACCEPT): Transition(_AGENCY_ADMIN, SwitchStatus.ACCEPTED),
    (SwitchStatus.UNDER_REVIEW, SwitchAction.DENY): Transition(_AGENCY_ADMIN, SwitchStatus.REJECTED),
    (SwitchStatus.ACCEPTED, SwitchAction.COMPLETE): Transition(_AGENCY_ADMIN, SwitchStatus.COMPLETED),
}

NOTIFY_ON: Dict[SwitchAction, NotificationEvent] = {
    SwitchAction.SUBMIT: NotificationEvent.REQUEST_SUBMITTED,
    SwitchAction.ACCEPT: NotificationEvent.REQUEST_ACCEPTED,
    SwitchAction.DENY: NotificationEvent.REQUEST_REJECTED,
    SwitchAction.COMPLETE: NotificationEvent.REQUEST_COMPLETED,
}

_TIMESTAMP_FIELDS = {
    SwitchAction.SUBMIT: "submitted_at",
    SwitchAction.BEGIN_REVIEW: "reviewed_at",
    SwitchAction.ACCEPT: "decided_at",
    SwitchAction.DENY: "decided_at",
    SwitchAction.COMPLETE: "completed_at",
    SwitchAction.CANCEL: "cancelled_at",
}


def roles_for(action: SwitchAction) -> FrozenSet[ActorRole]:
    """All roles that may perform an action from some status."""
    roles = set()
    for (_, table_action), transition in TRANSITIONS.items():
        if table_action == action:
            roles |= transition.roles
    return frozenset(roles)


def _normalise_reason(action: SwitchAction, reason: Optional[str]) -> Optional[str]:
    cleaned = reason.strip() if reason else None
    if action == SwitchAction.DENY and not cleaned:
        raise MissingReasonError()
    if cleaned and len(cleaned) > MAX_REASON_LENGTH:
        raise InvalidValueError("reason", f"Reason must be at most {MAX_REASON_LENGTH} characters")
    return cleaned or None


def _normalise_note(action: SwitchAction, note: Optional[str]) -> Optional[str]:
    if action != SwitchAction.ACCEPT:
        return None
    cleaned = note.strip() if note else None
    if cleaned and len(cleaned) > MAX_REASON_LENGTH:
        raise InvalidValueError("note", f"Note must be at most {MAX_REASON_LENGTH} characters")
    return cleaned or None


def check_role(action: SwitchAction, actor: ActorContext) -> None:
    """Raise ForbiddenError if the actor's role may never perform the action."""
    if actor.role not in roles_for(action):
        raise ForbiddenError(f"A {actor.role.value} cannot {action.value.replace('_', ' ')} a switch request")


def check_ownership(request: SwitchRequest, action: SwitchAction, actor: ActorContext) -> None:
    """Raise ForbiddenError if the actor is not tied to this request."""
    if action in PATIENT_ACTIONS and actor.actor_id != request.patient_id:
        raise ForbiddenError("Only the patient who owns this request can change it")
    if action in AGENCY_ACTIONS and not actor.belongs_to(request.agency_id):
        raise ForbiddenError("Only members of the receiving agency can act on this request")


def plan_transition(
    request: SwitchRequest,
    action: SwitchAction,
    actor: ActorContext,
    reason: Optional[str] = None,
    now: Optional[datetime] = None,
    note: Optional[str] = None
) -> SwitchRequest:
    """
    Validate an action against a request snapshot and return the updated copy.

    Checks run in a fixed order: missing deny reason, role, ownership or
    agency membership, then current status.

    Args:
        request: Current request snapshot
        action: Action to apply
        actor: Acting user
        reason: Denial or cancellation reason
        now: Transition time (defaults to current UTC time)
        note: Acceptance note for the patient; ignored for other actions

    Returns:
        New SwitchRequest with status, timestamps and version advanced

    Raises:
        MissingReasonError, InvalidValueError, ForbiddenError, InvalidStateError
    """
    if action == SwitchAction.CREATE:
        raise InvalidStateError("A switch request that already exists cannot be created again")

    reason = _normalise_reason(action, reason)
    note = _normalise_note(action, note)
    check_role(action, actor)
    check_ownership(request, action, actor)

    transition = TRANSITIONS.get((request.status, action))
    if transition is None:
        if request.status in TERMINAL_STATUSES:
            raise InvalidStateError(
                f"This request is already {request.status.value} and can no longer be changed"
            )
        raise InvalidStateError(
            f"Cannot {action.value.replace('_', ' ')} a request that is {request.status.value.replace('_', ' ')}"
        )
    if actor.role not in transition.roles:
        raise ForbiddenError(f"A {actor.role.value} cannot {action.value.replace('_', ' ')} a switch request")

    now = now or utcnow()
    updates: Dict[str, Any] = {
        "status": transition.to_status,
        "updated_at": now,
        "updated_by": actor.actor_id,
        "version": request.version + 1,
        _TIMESTAMP_FIELDS[action]: now,
    }
    if action in (SwitchAction.DENY, SwitchAction.CANCEL):
        updates["status_reason"] = reason
    if action == SwitchAction.ACCEPT:
        updates["decision_note"] = note

    return request.model_copy(update=updates)


def plan_create(
    actor: ActorContext,
    agency_id: str,
    now: Optional[datetime] = None,
    **details: Any
) -> SwitchRequest:
    """
    Build a new draft request owned by the acting patient.

    Args:
        actor: Acting patient
        agency_id: Target agency
        now: Creation time
        **details: Optional request fields (care_type, payer_type, ...)

    Returns:
        Draft SwitchRequest at version 1
    """
    if actor.role not in TRANSITIONS[(None, SwitchAction.CREATE)].roles:
        raise ForbiddenError("Only patients can start a switch request")

    now = now or utcnow()
    try:
        return SwitchRequest(
            patient_id=actor.actor_id,
            agency_id=agency_id,
            status=SwitchStatus.DRAFT,
            created_at=now,
            updated_at=now,
            created_by=actor.actor_id,
            updated_by=actor.actor_id,
            version=1,
            **details
        )
    except ValueError as e:
        field = "request"
        errors = getattr(e, "errors", None)
        if callable(errors) and errors():
            loc = errors()[0].get("loc") or ("request",)
            field = str(loc[0])
        raise InvalidValueError(field, f"'{field}' has an invalid value")


def allowed_actions(request: SwitchRequest, actor: ActorContext) -> List[SwitchAction]:
    """List actions the actor could perform on the request right now."""
    actions = []
    for (status, action), transition in TRANSITIONS.items():
        if status != request.status or actor.role not in transition.roles:
            continue
        try:
            check_ownership(request, action, actor)
        except ForbiddenError:
            continue
        actions.append(action)
    return actions


def can_view(request: SwitchRequest, actor: ActorContext) -> bool:
    """Patients see their own requests, agency members their agency's, admins all."""
    if actor.role == ActorRole.PLATFORM_ADMIN:
        return True
    if actor.role == ActorRole.PATIENT:
        return request.patient_id == actor.actor_id
    return actor.belongs_to(request.agency_id)


def status_snapshot(request: Optional[SwitchRequest]) -> Optional[Dict[str, Any]]:
    """Audit snapshot without patient details."""
    if request is None:
        return None
    return {"status": request.status.value, "version": request.version}


_ACTION_PATHS = {
    SwitchAction.SUBMIT: "submit",
    SwitchAction.CANCEL: "cancel",
    SwitchAction.BEGIN_REVIEW: "review",
    SwitchAction.ACCEPT: "accept",
    SwitchAction.DENY: "deny",
    SwitchAction.COMPLETE: "complete",
}


def _iso(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value else None


def build_switch_request_hal_response(
    request: SwitchRequest,
    actor: ActorContext,
    base_url: str
) -> Dict[str, Any]:
    """
    Build HAL response for a switch request with affordance links.

    Args:
        request: Switch request
        actor: Viewing actor, decides which action links appear
        base_url: Base URL for link generation

    Returns:
        HAL-formatted response dictionary
    """
    href = f"{base_url}/api/switch-requests/{request.id}"
    response = {
        "id": request.id,
        "patient_id": request.patient_id,
        "agency_id": request.agency_id,
        "current_agency_id": request.current_agency_id,
        "care_type": request.care_type.value if request.care_type else None,
        "payer_type": request.payer_type.value if request.payer_type else None,
        "switch_reason": request.switch_reason,
        "services_requested": list(request.services_requested),
        "special_instructions": request.special_instructions,
        "requested_start_date": request.requested_start_date.isoformat() if request.requested_start_date else None,
        "status": request.status.value,
        "status_reason": request.status_reason,
        "decision_note": request.decision_note,
        "document_ids": list(request.document_ids),
        "case_manager_id": request.case_manager_id,
        "version": request.version,
        "created_at": _iso(request.created_at),
        "updated_at": _iso(request.updated_at),
        "submitted_at": _iso(request.submitted_at),
        "reviewed_at": _iso(request.reviewed_at),
        "decided_at": _iso(request.decided_at),
        "completed_at": _iso(request.completed_at),
        "cancelled_at": _iso(request.cancelled_at),
        "_links": {
            "self": {"href": href},
            "agency": {"href": f"{base_url}/api/agencies/{request.agency_id}"},
            "collection": {"href": f"{base_url}/api/switch-requests"},
        }
    }

    links = response["_links"]
    for action in allowed_actions(request, actor):
        links[action.value] = {
            "href": f"{href}/{_ACTION_PATHS[action]}",
            "method": "POST",
            "type": "application/json"
        }

    if actor.role == ActorRole.PLATFORM_ADMIN and not request.is_terminal:
        links["assign_case_manager"] = {
            "href": f"{href}/case-manager",
            "method": "POST",
            "type": "application/json"
        }

    return response


def build_switch_request_collection_hal_response(
    requests: List[SwitchRequest],
    actor: ActorContext,
    base_url: str,
    page: int,
    page_size: int,
    total_count: int
) -> Dict[str, Any]:
    """Build HAL collection response for switch requests."""
    total_pages = (total_count + page_size - 1) // page_size
    collection = f"{base_url}/api/switch-requests"

    response = {
        "total": total_count,
        "page": page,
        "page_size": page_size,
        "total_pages": total_pages,
        "_embedded": {
            "switch_requests": [
                build_switch_request_hal_response(r, actor, base_url) for r in requests
            ]
        },
        "_links": {
            "self": {"href": f"{collection}?page={page}&page_size={page_size}"}
        }
    }

    links = response["_links"]
    if page > 1:
        links["first"] = {"href": f"{collection}?page=1&page_size={page_size}"}
        links["prev"] = {"href": f"{collection}?page={page - 1}&page_size={page_size}"}
    if page < total_pages:
        links["next"] = {"href": f"{collection}?page={page + 1}&page_size={page_size}"}
        links["last"] = {"href": f"{collection}?page={total_pages}&page_size={page_size}"}
    if actor.role == ActorRole.PATIENT:
        links["create"] = {"href": collection, "method": "POST", "type": "application/json"}

    return response
