# -*- coding: utf-8 -*-
# SPDX-License-Identifier: Apache-2.0

"""
Request models for API endpoints.

Search parameters stay plain strings here: ``domain.filters.build_filter``
owns their validation so HTTP and programmatic callers get the same errors.
"""

from datetime import date
from typing import List, Optional
from pydantic import BaseModel, Field, field_validator

from .enums import CareType, PayerType


class SwitchRequestPath(BaseModel):
    request_id: str = Field(..., description="Switch request ID")


class AgencyPath(BaseModel):
    agency_id: str = Field(..., description="Agency ID")


class AgencySearchQuery(BaseModel):
    """Agency search parameters (documented for OpenAPI; validated by build_filter)."""

    county: Optional[str] = Field(None, description="County served, or 'all'")
    care_type: Optional[str] = Field(None, description="home_health, home_care, both or 'all'")
    payer_type: Optional[str] = Field(None, description="medicaid, medicare, private, self_pay, waiver or 'all'")
    language: Optional[str] = Field(None, description="Language code such as 'en' or 'ne'")
    services: Optional[str] = Field(None, description="Comma-separated services; any overlap matches")
    verified_only: Optional[str] = Field(None, description="Only verified partners")
    query: Optional[str] = Field(None, description="Text contained in the agency name or city")
    home_county: Optional[str] = Field(None, description="Rank agencies serving this county first")
    page: Optional[str] = Field(None, description="Page number (1-based)")
    page_size: Optional[str] = Field(None, description="Items per page (1-50, default 12)")


class CreateSwitchRequest(BaseModel):
    """Request model for starting a switch request."""

    agency_id: str = Field(..., min_length=1, description="Agency to switch to")
    current_agency_id: Optional[str] = Field(None, description="Agency currently providing care")
    care_type: Optional[CareType] = Field(None, description="Requested care type")
    payer_type: Optional[PayerType] = Field(None, description="Payer for the new agency")
    switch_reason: Optional[str] = Field(None, max_length=1000, description="Why the patient wants to switch")
    services_requested: List[str] = Field(default_factory=list, description="Services the patient needs")
    special_instructions: Optional[str] = Field(None, max_length=1000, description="Notes for the receiving agency")
    requested_start_date: Optional[date] = Field(None, description="Preferred start date")
    document_ids: List[str] = Field(default_factory=list, description="Supporting document IDs")

    @field_validator('switch_reason', 'special_instructions')
    @classmethod
    def validate_free_text(cls, v):
        if v is None:
            return v
        return v.strip() or None


class ReasonRequest(BaseModel):
    """Optional or required reason for cancel and deny actions."""

    reason: Optional[str] = Field(None, description="Reason shown to the other party")


class AcceptRequest(BaseModel):
    note: Optional[str] = Field(None, description="Note relayed to the patient with the acceptance")


class AssignCaseManagerRequest(BaseModel):
    case_manager_id: str = Field(..., description="Case manager to assign")


class AcceptingPatientsRequest(BaseModel):
    is_accepting_patients: bool = Field(..., description="Whether the agency takes new patients")


class VerificationRequest(BaseModel):
    is_verified: bool = Field(..., description="Verified partner flag")


class RequestListQuery(BaseModel):
    """Pagination and status filter for switch request listings."""

    page: int = Field(default=1, ge=1, description="Page number")
    page_size: int = Field(default=20, ge=1, le=100, description="Items per page")
    status: Optional[str] = Field(None, description="Comma-separated statuses")
