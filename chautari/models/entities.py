# -*- coding: utf-8 -*-
# SPDX-License-Identifier: Apache-2.0

"""
Core entity models for the Chautari switch platform.
"""

from datetime import date, datetime
from typing import List, Optional, Dict, Any
from pydantic import BaseModel, Field, field_validator, model_validator, ConfigDict
from .base import BaseEntity, generate_object_id, utcnow
from .enums import (
    ActorRole,
    CareType,
    PayerType,
    SwitchStatus,
    TERMINAL_STATUSES,
)


def _dedupe(values: List[Any]) -> List[Any]:
    seen = []
    for value in values:
        if value not in seen:
            seen.append(value)
    return seen


class Agency(BaseEntity):
    """Licensed home-care agency listed in the directory."""

    name: str = Field(..., min_length=1, max_length=200, description="Agency display name")
    npi: Optional[str] = Field(None, description="National Provider Identifier")
    address_city: Optional[str] = Field(None, description="City of the main office")
    address_state: str = Field(default="PA", description="State of the main office")
    county: Optional[str] = Field(None, description="County of the main office")
    service_counties: List[str] = Field(default_factory=list, description="Counties the agency serves")
    payers_accepted: List[PayerType] = Field(default_factory=list, description="Accepted payers")
    care_types: List[CareType] = Field(default_factory=list, description="Care types offered")
    services_offered: List[str] = Field(default_factory=list, description="Services offered")
    languages_spoken: List[str] = Field(default_factory=list, description="Language codes spoken by staff")
    is_verified: bool = Field(default=False, description="Verified partner flag")
    is_accepting_patients: bool = Field(default=True, description="Currently accepting new patients")
    is_active: bool = Field(default=True, description="Listed in the directory")
    medicare_quality_score: Optional[float] = Field(None, ge=0, le=5, description="CMS star rating")

    @field_validator('name')
    @classmethod
    def validate_name(cls, v):
        """Validate agency name."""
        if not v.strip():
            raise ValueError('Agency name cannot be empty')
        return v.strip()

    @field_validator('npi')
    @classmethod
    def validate_npi(cls, v):
        """NPIs are exactly ten digits."""
        if v is None:
            return v
        v = v.strip()
        if len(v) != 10 or not v.isdigit():
            raise ValueError('NPI must be a 10-digit number')
        return v

    @field_validator('languages_spoken')
    @classmethod
    def validate_languages(cls, v):
        return _dedupe([code.strip().lower() for code in v if code and code.strip()])

    @field_validator('service_counties', 'services_offered')
    @classmethod
    def validate_string_lists(cls, v):
        return _dedupe([item.strip() for item in v if item and item.strip()])

    @field_validator('payers_accepted', 'care_types')
    @classmethod
    def validate_enum_lists(cls, v):
        return _dedupe(v)

    def serves_county(self, county: str) -> bool:
        """Check whether the agency serves the given county (case-insensitive)."""
        wanted = county.casefold()
        counties = list(self.service_counties)
        if self.county:
            counties.append(self.county)
        return any(c.casefold() == wanted for c in counties)

    def offers_care_type(self, care_type: CareType) -> bool:
        """
        Check whether the agency offers a care type.

        An agency offering ``both`` satisfies either single type. Asking for
        ``both`` requires the agency to cover home health and home care.
        """
        offered = set(self.care_types)
        if CareType.BOTH in offered:
            return True
        if care_type == CareType.BOTH:
            return {CareType.HOME_HEALTH, CareType.HOME_CARE} <= offered
        return care_type in offered

    def accepts_payer(self, payer_type: PayerType) -> bool:
        return payer_type in self.payers_accepted

    def speaks(self, language: str) -> bool:
        return language.lower() in self.languages_spoken


class PatientProfile(BaseEntity):
    """Patient-owned profile used for suggestions."""

    full_name: Optional[str] = Field(None, max_length=200, description="Patient full name")
    phone: Optional[str] = Field(None, description="Contact phone")
    preferred_language: str = Field(default="en", description="Preferred language code")
    address_city: Optional[str] = Field(None, description="City of residence")
    county: Optional[str] = Field(None, description="County of residence")
    payer_type: Optional[PayerType] = Field(None, description="Primary payer")
    care_needs: List[str] = Field(default_factory=list, description="Services the patient needs")

    @field_validator('preferred_language')
    @classmethod
    def validate_language(cls, v):
        return v.strip().lower() if v else "en"


class SwitchRequest(BaseEntity):
    """Patient request to move care to a new agency."""

    patient_id: str = Field(..., min_length=1, description="Owning patient")
    agency_id: str = Field(..., min_length=1, description="Target agency")
    current_agency_id: Optional[str] = Field(None, description="Agency currently providing care")
    care_type: Optional[CareType] = Field(None, description="Requested care type")
    payer_type: Optional[PayerType] = Field(None, description="Payer for the new agency")
    switch_reason: Optional[str] = Field(None, max_length=1000, description="Patient's reason for switching")
    services_requested: List[str] = Field(default_factory=list, description="Services the patient needs")
    special_instructions: Optional[str] = Field(None, max_length=1000, description="Notes for the receiving agency")
    requested_start_date: Optional[date] = Field(None, description="Preferred start date")
    status: SwitchStatus = Field(default=SwitchStatus.DRAFT, description="Workflow status")
    status_reason: Optional[str] = Field(None, max_length=500, description="Denial or cancellation reason")
    decision_note: Optional[str] = Field(None, max_length=500, description="Agency note sent with an acceptance")
    document_ids: List[str] = Field(default_factory=list, description="Supporting documents owned externally")
    case_manager_id: Optional[str] = Field(None, description="Assigned case manager")
    submitted_at: Optional[datetime] = Field(None, description="Submission timestamp")
    reviewed_at: Optional[datetime] = Field(None, description="Review start timestamp")
    decided_at: Optional[datetime] = Field(None, description="Accept or deny timestamp")
    completed_at: Optional[datetime] = Field(None, description="Completion timestamp")
    cancelled_at: Optional[datetime] = Field(None, description="Cancellation timestamp")
    version: int = Field(default=0, ge=0, description="Optimistic concurrency version")

    @field_validator('services_requested')
    @classmethod
    def validate_services_requested(cls, v):
        return _dedupe([item.strip() for item in v if item and item.strip()])

    @model_validator(mode='after')
    def validate_status_fields(self):
        """Validate status-dependent fields."""
        if self.status == SwitchStatus.REJECTED and not self.status_reason:
            raise ValueError('status_reason is required when status is rejected')
        return self

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES

class AuditEvent(BaseModel):
    """Write-once audit record for a state change."""

    id: str = Field(default_factory=generate_object_id, description="Unique identifier")
    timestamp: datetime = Field(default_factory=utcnow, description="Action timestamp")
    actor_id: str = Field(..., description="Actor who performed the action")
    actor_role: ActorRole = Field(..., description="Role of the actor")
    action: str = Field(..., description="Action performed")
    resource_type: str = Field(..., description="Resource type")
    resource_id: str = Field(..., description="Resource identifier")
    before: Optional[Dict[str, Any]] = Field(None, description="State before action")
    after: Optional[Dict[str, Any]] = Field(None, description="State after action")
    ip_address: Optional[str] = Field(None, description="Client IP address")
    user_agent: Optional[str] = Field(None, description="Client user agent")
    session_id: Optional[str] = Field(None, description="Session identifier")
    trace_id: Optional[str] = Field(None, description="OpenTelemetry trace ID")
    span_id: Optional[str] = Field(None, description="OpenTelemetry span ID")
    schema_version: int = Field(default=1, description="Schema version")

    model_config = ConfigDict(frozen=True)

    @field_validator('resource_type')
    @classmethod
    def validate_resource_type(cls, v):
        """Validate resource type."""
        if v not in ('switch_request', 'agency'):
            raise ValueError(f'Invalid resource type: {v}')
        return v


class ActorContext(BaseModel):
    """Authenticated actor for request processing."""

    actor_id: str = Field(..., min_length=1, description="Authenticated user ID")
    role: ActorRole = Field(..., description="Actor role")
    agency_id: Optional[str] = Field(None, description="Agency membership for staff and admins")
    email: Optional[str] = Field(None, description="User email")
    name: Optional[str] = Field(None, description="User display name")
    token_payload: Optional[Dict[str, Any]] = Field(None, description="Original JWT payload")
    ip_address: Optional[str] = Field(None, description="Client IP address")
    user_agent: Optional[str] = Field(None, description="Client user agent")
    session_id: Optional[str] = Field(None, description="Session identifier")

    @property
    def is_agency_member(self) -> bool:
        return self.role in (ActorRole.AGENCY_STAFF, ActorRole.AGENCY_ADMIN)

    def belongs_to(self, agency_id: str) -> bool:
        """Check if the actor is staff or admin of the given agency."""
        return self.is_agency_member and self.agency_id is not None and self.agency_id == agency_id
