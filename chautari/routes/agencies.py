# SPDX-License-Identifier: Apache-2.0

"""
Agency discovery and agency flag endpoints.
"""

from flask import jsonify, current_app
from flask_openapi3 import APIBlueprint, Tag
from opentelemetry import trace
import logging

from ..domain.errors import ForbiddenError
from ..domain.filters import build_filter
from ..middleware.auth import optional_actor, require_actor
from ..models.enums import ActorRole
from ..models.requests import (
    AgencyPath, AgencySearchQuery, AcceptingPatientsRequest, VerificationRequest
)
from ..models.responses import AgencyResponse, CollectionResponse, ErrorResponse
from ..utils.request import current_actor, parse_json_body

logger = logging.getLogger(__name__)
tracer = trace.get_tracer(__name__)

agencies_tag = Tag(name="Agencies", description="Agency discovery and management")
agencies_bp = APIBlueprint(
    'agencies',
    __name__,
    url_prefix='/api/agencies',
    abp_tags=[agencies_tag]
)


@agencies_bp.get('', responses={200: CollectionResponse, 400: ErrorResponse, 503: ErrorResponse})
def search_agencies(query: AgencySearchQuery):
    """
    Search agencies.

    Filters combine with AND. Empty values and 'all' mean no constraint.
    Results are ordered home county first, then verified partners, then name.
    A signed-in patient's county is the home county unless one is given.
    """
    raw = query.model_dump(exclude_none=True)
    actor = optional_actor()
    if not raw.get("home_county") and actor is not None and actor.role == ActorRole.PATIENT:
        home_county = current_app.agency_search_service.home_county_for(actor.actor_id)
        if home_county:
            raw["home_county"] = home_county
    criteria = build_filter(raw)
    result = current_app.agency_search_service.search(criteria)
    return jsonify(current_app.hal_formatter.format_search_result(result, criteria))


@agencies_bp.get('/suggested', responses={200: CollectionResponse, 403: ErrorResponse})
@require_actor
def suggested_agencies(query: AgencySearchQuery):
    """
    Suggested agencies for the signed-in patient.

    Agencies taking the patient's payer, with the patient's county first.
    Without a profile the whole directory is listed.
    """
    actor = current_actor()
    if actor.role != ActorRole.PATIENT:
        raise ForbiddenError("Suggestions are only available to patients")

    paging = build_filter({"page": query.page, "page_size": query.page_size})
    result = current_app.agency_search_service.suggest_for_patient(
        actor.actor_id, page=paging.page, page_size=paging.page_size
    )
    return jsonify(current_app.hal_formatter.format_search_result(
        result, paging, actor, path="/api/agencies/suggested"
    ))


@agencies_bp.get('/<agency_id>', responses={200: AgencyResponse, 404: ErrorResponse})
def get_agency(path: AgencyPath):
    """Agency detail."""
    agency = current_app.agency_search_service.get_agency(path.agency_id)
    return jsonify(current_app.hal_formatter.format_agency(agency))


@agencies_bp.put('/<agency_id>/accepting', responses={200: AgencyResponse, 403: ErrorResponse})
@require_actor
def set_accepting_patients(path: AgencyPath):
    """Open or close the agency to new patients."""
    actor = current_actor()
    body = parse_json_body(AcceptingPatientsRequest)
    agency = current_app.agency_service.set_accepting_patients(
        path.agency_id, body.is_accepting_patients, actor
    )
    return jsonify(current_app.hal_formatter.format_agency(agency, actor))


@agencies_bp.put('/<agency_id>/verification', responses={200: AgencyResponse, 403: ErrorResponse})
@require_actor
def set_verification(path: AgencyPath):
    """Grant or revoke verified-partner status."""
    actor = current_actor()
    body = parse_json_body(VerificationRequest)
    agency = current_app.agency_service.set_verified(path.agency_id, body.is_verified, actor)
    return jsonify(current_app.hal_formatter.format_agency(agency, actor))
