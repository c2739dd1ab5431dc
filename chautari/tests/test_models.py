# SPDX-License-Identifier: Apache-2.0

"""
Unit tests for Pydantic models and validation.
"""

import pytest
from pydantic import ValidationError

from chautari.models.entities import ActorContext, Agency, AuditEvent, PatientProfile, SwitchRequest
from chautari.models.enums import (
    ACTIVE_STATUSES, ActorRole, CareType, PayerType, SwitchStatus, TERMINAL_STATUSES
)


class TestAgencyModel:
    """Test Agency model validation and matching helpers."""

    def test_valid_agency(self, agency_factory):
        agency = agency_factory(npi="1234567890", languages_spoken=["EN", "ne", "en"])

        assert agency.name == "Keystone Home Health"
        assert agency.address_state == "PA"
        assert agency.is_accepting_patients is True
        assert agency.is_active is True
        assert agency.languages_spoken == ["en", "ne"]

    def test_empty_name_validation(self, agency_factory):
        with pytest.raises(ValidationError):
            agency_factory(name="   ")

    def test_npi_must_be_ten_digits(self, agency_factory):
        with pytest.raises(ValidationError) as exc_info:
            agency_factory(npi="12345")
        assert "NPI" in str(exc_info.value)

    def test_serves_county_is_case_insensitive(self, agency_factory):
        agency = agency_factory(county="Allegheny", service_counties=["Butler", "Beaver"])

        assert agency.serves_county("allegheny")
        assert agency.serves_county("BUTLER")
        assert not agency.serves_county("Erie")

    def test_agency_offering_both_satisfies_any_care_type(self, agency_factory):
        agency = agency_factory(care_types=[CareType.BOTH])

        assert agency.offers_care_type(CareType.HOME_HEALTH)
        assert agency.offers_care_type(CareType.HOME_CARE)
        assert agency.offers_care_type(CareType.BOTH)

    def test_requesting_both_needs_both_types(self, agency_factory):
        single = agency_factory(care_types=[CareType.HOME_HEALTH])
        dual = agency_factory(care_types=[CareType.HOME_HEALTH, CareType.HOME_CARE])

        assert not single.offers_care_type(CareType.BOTH)
        assert dual.offers_care_type(CareType.BOTH)

    def test_accepts_payer_and_speaks(self, agency_factory):
        agency = agency_factory(payers_accepted=[PayerType.MEDICARE], languages_spoken=["ne"])

        assert agency.accepts_payer(PayerType.MEDICARE)
        assert not agency.accepts_payer(PayerType.MEDICAID)
        assert agency.speaks("NE")


class TestSwitchRequestModel:
    """Test SwitchRequest model."""

    def test_defaults(self):
        request = SwitchRequest(patient_id="p1", agency_id="a1")

        assert request.status == SwitchStatus.DRAFT
        assert request.version == 0
        assert request.document_ids == []
        assert not request.is_terminal

    def test_rejected_requires_reason(self):
        with pytest.raises(ValidationError) as exc_info:
            SwitchRequest(patient_id="p1", agency_id="a1", status=SwitchStatus.REJECTED)
        assert "status_reason" in str(exc_info.value)

    def test_terminal_statuses(self):
        for status in (SwitchStatus.COMPLETED, SwitchStatus.CANCELLED):
            assert SwitchRequest(patient_id="p1", agency_id="a1", status=status).is_terminal

    def test_status_sets_partition_all_statuses(self):
        assert TERMINAL_STATUSES | ACTIVE_STATUSES == set(SwitchStatus)
        assert not TERMINAL_STATUSES & ACTIVE_STATUSES
        assert SwitchStatus.ACCEPTED.is_terminal is False
        assert SwitchStatus.REJECTED.is_terminal is True

    def test_status_reason_length_limit(self):
        with pytest.raises(ValidationError):
            SwitchRequest(patient_id="p1", agency_id="a1", status_reason="x" * 501)


class TestAuditEventModel:
    """Test AuditEvent model."""

    def test_valid_audit_event(self):
        event = AuditEvent(
            actor_id="admin-1",
            actor_role=ActorRole.AGENCY_ADMIN,
            action="switch_request.accept",
            resource_type="switch_request",
            resource_id="req-1",
            before={"status": "under_review"},
            after={"status": "accepted"}
        )

        assert event.schema_version == 1
        assert event.timestamp.tzinfo is not None

    def test_invalid_resource_type(self):
        with pytest.raises(ValidationError):
            AuditEvent(
                actor_id="admin-1",
                actor_role=ActorRole.AGENCY_ADMIN,
                action="notification.approve",
                resource_type="notification",
                resource_id="n-1"
            )

    def test_audit_events_are_immutable(self):
        event = AuditEvent(
            actor_id="admin-1",
            actor_role=ActorRole.PLATFORM_ADMIN,
            action="agency.set_verified",
            resource_type="agency",
            resource_id="a-1"
        )
        with pytest.raises(ValidationError):
            event.action = "agency.deleted"


class TestActorContext:
    """Test ActorContext helpers."""

    def test_agency_membership(self):
        staff = ActorContext(actor_id="s1", role=ActorRole.AGENCY_STAFF, agency_id="a1")

        assert staff.is_agency_member
        assert staff.belongs_to("a1")
        assert not staff.belongs_to("a2")

    def test_patient_never_belongs_to_agency(self):
        patient = ActorContext(actor_id="p1", role=ActorRole.PATIENT, agency_id="a1")

        assert not patient.is_agency_member
        assert not patient.belongs_to("a1")

    def test_patient_profile_language_normalised(self):
        profile = PatientProfile(preferred_language=" NE ")
        assert profile.preferred_language == "ne"
