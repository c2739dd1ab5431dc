# -*- coding: utf-8 -*-
# SPDX-License-Identifier: Apache-2.0

"""
Agency search over the catalog, plus "suggested for you" lookups.
"""

import logging
from typing import Optional

from opentelemetry import trace
from opentelemetry.trace import Status, StatusCode

from ..domain.errors import NotFoundError, SearchUnavailableError, StoreError
from ..domain.filters import CanonicalFilter, DEFAULT_PAGE_SIZE, build_filter
from ..domain.search import SearchResult, rank_and_page
from ..models.entities import Agency, PatientProfile
from .interfaces import AgencyCatalog, PatientDirectory

logger = logging.getLogger(__name__)
tracer = trace.get_tracer(__name__)


class AgencySearchService:
    """Ranked, paginated agency search."""

    def __init__(self, catalog: AgencyCatalog, patients: Optional[PatientDirectory] = None):
        self.catalog = catalog
        self.patients = patients

    def search(self, criteria: CanonicalFilter) -> SearchResult:
        """
        Run a search with a canonical filter.

        Raises:
            SearchUnavailableError: the catalog could not be read
        """
        with tracer.start_as_current_span("agency_search.search") as span:
            span.set_attributes({
                "search.county": criteria.county or "",
                "search.payer_type": criteria.payer_type.value if criteria.payer_type else "",
                "search.verified_only": criteria.verified_only,
                "search.page": criteria.page,
                "search.page_size": criteria.page_size
            })
            try:
                candidates = self.catalog.find_candidates(criteria)
            except StoreError as e:
                span.record_exception(e)
                span.set_status(Status(StatusCode.ERROR, str(e)))
                logger.error("Agency catalog unavailable", extra={"error": e.message})
                raise SearchUnavailableError()

            result = rank_and_page(candidates, criteria)
            span.set_attribute("search.total", result.total)

            logger.debug(
                "Agency search completed",
                extra={"total": result.total, "page": result.page, "returned": len(result.results)}
            )
            return result

    def suggest_for_profile(self, profile: PatientProfile, page: int = 1,
                            page_size: int = DEFAULT_PAGE_SIZE) -> SearchResult:
        """
        Agencies that take the patient's payer, with their home county ranked first.
        """
        criteria = build_filter({
            "payer_type": profile.payer_type.value if profile.payer_type else None,
            "home_county": profile.county,
            "page": page,
            "page_size": page_size
        })
        return self.search(criteria)

    def home_county_for(self, patient_id: str) -> Optional[str]:
        """County from the patient's profile, if one is on file."""
        if self.patients is None:
            return None
        profile = self.patients.get_profile(patient_id)
        return profile.county if profile is not None else None

    def suggest_for_patient(self, patient_id: str, page: int = 1,
                            page_size: int = DEFAULT_PAGE_SIZE) -> SearchResult:
        """
        Suggested agencies for a patient, read from the patient directory.

        A patient without a profile gets the unfiltered directory.
        """
        profile = self.patients.get_profile(patient_id) if self.patients is not None else None
        if profile is None:
            logger.debug("No patient profile, suggesting the full directory", extra={"patient_id": patient_id})
            return self.search(build_filter({"page": page, "page_size": page_size}))
        return self.suggest_for_profile(profile, page=page, page_size=page_size)

    def get_agency(self, agency_id: str) -> Agency:
        """
        Raises:
            NotFoundError: unknown or inactive agency
        """
        try:
            agency = self.catalog.get(agency_id)
        except StoreError:
            raise SearchUnavailableError()
        if agency is None or not agency.is_active:
            raise NotFoundError("Agency not found")
        return agency

