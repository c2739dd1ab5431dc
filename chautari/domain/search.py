# SPDX-License-Identifier: Apache-2.0

"""
Agency matching, ranking and pagination.

Pure functions over already-loaded agencies. Ranking is applied to the full
matching set before slicing, so pages concatenate to the full ordering.
"""

import math
from dataclasses import dataclass, field
from typing import Iterable, List, Tuple

from ..models.entities import Agency
from .filters import CanonicalFilter


@dataclass
class SearchResult:
    """One page of ranked agencies."""
    results: List[Agency]
    total: int
    page: int
    page_size: int
    total_pages: int = field(init=False)

    def __post_init__(self):
        self.total_pages = math.ceil(self.total / self.page_size) if self.page_size > 0 else 0

    @property
    def has_next(self) -> bool:
        return self.page < self.total_pages

    @property
    def has_prev(self) -> bool:
        return self.page > 1


def matches(agency: Agency, criteria: CanonicalFilter) -> bool:
    """Check an agency against every populated constraint (AND semantics)."""
    if not agency.is_active:
        return False
    if criteria.county and not agency.serves_county(criteria.county):
        return False
    if criteria.care_type and not agency.offers_care_type(criteria.care_type):
        return False
    if criteria.payer_type and not agency.accepts_payer(criteria.payer_type):
        return False
    if criteria.language and not agency.speaks(criteria.language):
        return False
    if criteria.verified_only and not agency.is_verified:
        return False
    if criteria.services and not set(criteria.services) & set(agency.services_offered):
        return False
    if criteria.query:
        needle = criteria.query.casefold()
        haystacks = [agency.name, agency.address_city or ""]
        if not any(needle in h.casefold() for h in haystacks):
            return False
    return True


def rank_key(agency: Agency, criteria: CanonicalFilter) -> Tuple[int, int, str, str]:
    """
    Sort key: home-county agencies first, then verified, then name, then id.

    The id is the final tie-break so equal names still order deterministically.
    """
    in_home_county = bool(criteria.home_county) and agency.serves_county(criteria.home_county)
    return (
        0 if in_home_county else 1,
        0 if agency.is_verified else 1,
        agency.name.casefold(),
        agency.id,
    )


def rank_and_page(candidates: Iterable[Agency], criteria: CanonicalFilter) -> SearchResult:
    """
    Filter, rank and paginate candidate agencies.

    Args:
        candidates: Agencies to consider; may be a superset of the matches
        criteria: Canonical filter

    Returns:
        SearchResult with the requested page and the unpaginated total
    """
    matched = [a for a in candidates if matches(a, criteria)]
    matched.sort(key=lambda a: rank_key(a, criteria))

    start = criteria.offset
    page_items = matched[start:start + criteria.page_size]

    return SearchResult(
        results=page_items,
        total=len(matched),
        page=criteria.page,
        page_size=criteria.page_size,
    )
