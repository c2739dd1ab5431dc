# -*- coding: utf-8 -*-
# SPDX-License-Identifier: Apache-2.0

"""
HAL (Hypertext Application Language) response formatting utilities.
"""

from typing import Dict, Any, Optional
from urllib.parse import urlencode

from ..domain.filters import CanonicalFilter
from ..domain.search import SearchResult
from ..models.entities import ActorContext, Agency
from ..models.enums import ActorRole
from ..models.responses import HalLink


class HalLinkBuilder:
    """Builder for HAL links with proper URL construction."""

    def __init__(self, base_url: str):
        self.base_url = base_url.rstrip('/')

    def build_link(
        self,
        path: str,
        method: str = "GET",
        content_type: Optional[str] = None,
        title: Optional[str] = None
    ) -> Dict[str, Any]:
        """Build a HAL link dictionary, omitting unset attributes."""
        link = HalLink(
            href=f"{self.base_url}/{path.lstrip('/')}",
            method=method if method != "GET" else None,
            type=content_type,
            title=title
        )
        return link.model_dump(exclude_none=True)


class PaginationLinkBuilder:
    """Builder for pagination links in HAL collections."""

    def __init__(self, base_url: str):
        self.link_builder = HalLinkBuilder(base_url)

    def build_pagination_links(
        self,
        base_path: str,
        current_page: int,
        total_pages: int,
        page_size: int,
        query_params: Optional[Dict[str, Any]] = None
    ) -> Dict[str, Dict[str, Any]]:
        """Build self/first/prev/next/last links for a collection."""
        params = query_params or {}

        def page_link(page: int, title: str) -> Dict[str, Any]:
            query = urlencode({**params, 'page': page, 'page_size': page_size})
            return self.link_builder.build_link(f"{base_path}?{query}", title=title)

        links = {'self': page_link(current_page, "Current page")}
        if current_page > 1:
            links['first'] = page_link(1, "First page")
            links['prev'] = page_link(current_page - 1, "Previous page")
        if current_page < total_pages:
            links['next'] = page_link(current_page + 1, "Next page")
            links['last'] = page_link(total_pages, "Last page")
        return links


def filter_query_params(criteria: CanonicalFilter) -> Dict[str, Any]:
    """Query parameters that reproduce a filter, excluding paging."""
    params: Dict[str, Any] = {}
    if criteria.county:
        params['county'] = criteria.county
    if criteria.care_type:
        params['care_type'] = criteria.care_type.value
    if criteria.payer_type:
        params['payer_type'] = criteria.payer_type.value
    if criteria.language:
        params['language'] = criteria.language
    if criteria.services:
        params['services'] = ",".join(criteria.services)
    if criteria.verified_only:
        params['verified_only'] = "true"
    if criteria.query:
        params['query'] = criteria.query
    return params


class HalFormatter:
    """HAL formatting for agencies, search results and problem documents."""

    def __init__(self, base_url: str):
        self.base_url = base_url.rstrip('/')
        self.link_builder = HalLinkBuilder(base_url)
        self.pagination = PaginationLinkBuilder(base_url)

    def format_agency(self, agency: Agency, actor: Optional[ActorContext] = None) -> Dict[str, Any]:
        """Format an agency with action links the actor may use."""
        path = f"/api/agencies/{agency.id}"
        response = {
            "id": agency.id,
            "name": agency.name,
            "npi": agency.npi,
            "address_city": agency.address_city,
            "address_state": agency.address_state,
            "county": agency.county,
            "service_counties": list(agency.service_counties),
            "payers_accepted": [p.value for p in agency.payers_accepted],
            "care_types": [c.value for c in agency.care_types],
            "services_offered": list(agency.services_offered),
            "languages_spoken": list(agency.languages_spoken),
            "is_verified": agency.is_verified,
            "is_accepting_patients": agency.is_accepting_patients,
            "medicare_quality_score": agency.medicare_quality_score,
            "_links": {
                "self": self.link_builder.build_link(path),
                "collection": self.link_builder.build_link("/api/agencies")
            }
        }

        if actor is None:
            return response

        links = response["_links"]
        if actor.role == ActorRole.PATIENT and agency.is_accepting_patients:
            links["request_switch"] = self.link_builder.build_link(
                "/api/switch-requests", method="POST", content_type="application/json",
                title="Request a switch to this agency"
            )
        if actor.role == ActorRole.PLATFORM_ADMIN or (
                actor.role == ActorRole.AGENCY_ADMIN and actor.belongs_to(agency.id)):
            links["accepting"] = self.link_builder.build_link(
                f"{path}/accepting", method="PUT", content_type="application/json"
            )
        if actor.role == ActorRole.PLATFORM_ADMIN:
            links["verification"] = self.link_builder.build_link(
                f"{path}/verification", method="PUT", content_type="application/json"
            )
        return response

    def format_search_result(
        self,
        result: SearchResult,
        criteria: CanonicalFilter,
        actor: Optional[ActorContext] = None,
        path: str = "/api/agencies"
    ) -> Dict[str, Any]:
        """Format a search page as a HAL collection."""
        return {
            "total": result.total,
            "page": result.page,
            "page_size": result.page_size,
            "total_pages": result.total_pages,
            "_embedded": {
                "agencies": [self.format_agency(a, actor) for a in result.results]
            },
            "_links": self.pagination.build_pagination_links(
                path,
                result.page,
                result.total_pages,
                result.page_size,
                filter_query_params(criteria)
            )
        }

    def build_error_response(
        self,
        error_type: str,
        title: str,
        status: int,
        detail: str,
        instance: str,
        field: Optional[str] = None
    ) -> Dict[str, Any]:
        """Build RFC 7807 compliant error response with a help link."""
        error_response = {
            'type': f"https://api.chautari.org/problems/{error_type}",
            'title': title,
            'status': status,
            'detail': detail,
            'instance': instance
        }
        if field:
            error_response['field'] = field

        error_response['_links'] = {
            'help': self.link_builder.build_link(f"/docs/errors#{error_type}", title="Error documentation")
        }
        return error_response


def create_hal_formatter(base_url: str) -> HalFormatter:
    """Factory function to create HAL formatter."""
    return HalFormatter(base_url)
