# SPDX-License-Identifier: Apache-2.0

"""
Switch request workflow endpoints.

Creation, listing and detail, plus one POST endpoint per lifecycle action.
Errors propagate to the registered problem-document handlers.
"""

from flask import jsonify, current_app
from flask_openapi3 import APIBlueprint, Tag
from opentelemetry import trace
import logging

from ..domain.errors import InvalidValueError
from ..domain.switch_requests import (
    build_switch_request_collection_hal_response, build_switch_request_hal_response
)
from ..middleware.auth import require_actor
from ..models.enums import SwitchAction, SwitchStatus
from ..models.requests import (
    AcceptRequest, AssignCaseManagerRequest, CreateSwitchRequest, ReasonRequest,
    RequestListQuery, SwitchRequestPath
)
from ..models.responses import CollectionResponse, ErrorResponse, SwitchRequestResponse
from ..utils.request import current_actor, parse_json_body

logger = logging.getLogger(__name__)
tracer = trace.get_tracer(__name__)

switch_requests_tag = Tag(name="Switch Requests", description="Agency switch request workflow")
switch_requests_bp = APIBlueprint(
    'switch_requests',
    __name__,
    url_prefix='/api/switch-requests',
    abp_tags=[switch_requests_tag]
)

_ACTION_RESPONSES = {
    200: SwitchRequestResponse,
    400: ErrorResponse,
    403: ErrorResponse,
    404: ErrorResponse,
    409: ErrorResponse
}


def _render(switch_request, status_code: int = 200):
    body = build_switch_request_hal_response(
        switch_request, current_actor(), current_app.config['BASE_URL']
    )
    return jsonify(body), status_code


def _parse_statuses(raw):
    if not raw:
        return []
    statuses = []
    for value in raw.split(","):
        value = value.strip().lower()
        if not value or value == "all":
            continue
        try:
            statuses.append(SwitchStatus(value))
        except ValueError:
            raise InvalidValueError("status", f"'{value}' is not a valid switch request status")
    return statuses


@switch_requests_bp.post('', responses={201: SwitchRequestResponse, 400: ErrorResponse,
                                        403: ErrorResponse, 404: ErrorResponse, 409: ErrorResponse})
@require_actor
def create_switch_request():
    """
    Start a switch request.

    Creates a draft owned by the signed-in patient. Submit it to send it to
    the agency.
    """
    body = parse_json_body(CreateSwitchRequest)
    details = body.model_dump(exclude={"agency_id"}, exclude_none=True)
    switch_request = current_app.switch_request_service.create(
        current_actor(), body.agency_id, **details
    )
    return _render(switch_request, 201)


@switch_requests_bp.get('', responses={200: CollectionResponse, 400: ErrorResponse})
@require_actor
def list_switch_requests(query: RequestListQuery):
    """
    List switch requests visible to the caller.

    Patients see their own, agency members their agency's, platform
    administrators all of them. Newest first.
    """
    actor = current_actor()
    items, total = current_app.switch_request_service.list_for_actor(
        actor,
        page=query.page,
        page_size=query.page_size,
        statuses=_parse_statuses(query.status)
    )
    return jsonify(build_switch_request_collection_hal_response(
        items, actor, current_app.config['BASE_URL'], query.page, query.page_size, total
    ))


@switch_requests_bp.get('/<request_id>', responses={200: SwitchRequestResponse, 403: ErrorResponse,
                                                    404: ErrorResponse})
@require_actor
def get_switch_request(path: SwitchRequestPath):
    """Switch request detail with the actions the caller may take."""
    switch_request = current_app.switch_request_service.get(path.request_id, current_actor())
    return _render(switch_request)


@switch_requests_bp.post('/<request_id>/submit', responses=_ACTION_RESPONSES)
@require_actor
def submit_switch_request(path: SwitchRequestPath):
    """Submit a draft to the agency."""
    return _render(current_app.switch_request_service.transition_by_id(
        path.request_id, SwitchAction.SUBMIT, current_actor()
    ))


@switch_requests_bp.post('/<request_id>/cancel', responses=_ACTION_RESPONSES)
@require_actor
def cancel_switch_request(path: SwitchRequestPath):
    """Withdraw a request that has not been decided yet."""
    body = parse_json_body(ReasonRequest)
    return _render(current_app.switch_request_service.transition_by_id(
        path.request_id, SwitchAction.CANCEL, current_actor(), reason=body.reason
    ))


@switch_requests_bp.post('/<request_id>/review', responses=_ACTION_RESPONSES)
@require_actor
def review_switch_request(path: SwitchRequestPath):
    """Start reviewing a submitted request."""
    return _render(current_app.switch_request_service.transition_by_id(
        path.request_id, SwitchAction.BEGIN_REVIEW, current_actor()
    ))


@switch_requests_bp.post('/<request_id>/accept', responses=_ACTION_RESPONSES)
@require_actor
def accept_switch_request(path: SwitchRequestPath):
    """Accept a request under review. An optional note is passed on to the patient."""
    body = parse_json_body(AcceptRequest)
    return _render(current_app.switch_request_service.transition_by_id(
        path.request_id, SwitchAction.ACCEPT, current_actor(), note=body.note
    ))


@switch_requests_bp.post('/<request_id>/deny', responses=_ACTION_RESPONSES)
@require_actor
def deny_switch_request(path: SwitchRequestPath):
    """Deny a request under review. A reason is required."""
    body = parse_json_body(ReasonRequest)
    return _render(current_app.switch_request_service.transition_by_id(
        path.request_id, SwitchAction.DENY, current_actor(), reason=body.reason
    ))


@switch_requests_bp.post('/<request_id>/complete', responses=_ACTION_RESPONSES)
@require_actor
def complete_switch_request(path: SwitchRequestPath):
    """Mark an accepted request as completed once care has transferred."""
    return _render(current_app.switch_request_service.transition_by_id(
        path.request_id, SwitchAction.COMPLETE, current_actor()
    ))


@switch_requests_bp.post('/<request_id>/case-manager', responses=_ACTION_RESPONSES)
@require_actor
def assign_case_manager(path: SwitchRequestPath):
    """Assign a case manager (platform administrators)."""
    body = parse_json_body(AssignCaseManagerRequest)
    return _render(current_app.switch_request_service.assign_case_manager(
        path.request_id, body.case_manager_id, current_actor()
    ))
