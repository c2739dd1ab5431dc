# -*- coding: utf-8 -*-
# SPDX-License-Identifier: Apache-2.0

"""
Pytest configuration and fixtures.
"""

import os
import pytest
from datetime import datetime, timezone

# Set test environment
os.environ['ENVIRONMENT'] = 'test'
os.environ['OTEL_ENABLED'] = 'false'

from chautari.models.entities import ActorContext, Agency, PatientProfile, SwitchRequest
from chautari.models.enums import ActorRole, CareType, PayerType, SwitchStatus
from chautari.services.audit import AuditEmitter
from chautari.services.auth import generate_key_pair
from chautari.services.memory import (
    InMemoryAgencyCatalog, InMemoryAuditSink, InMemoryPatientDirectory,
    InMemorySwitchRequestStore, RecordingNotificationDispatcher
)
from chautari.services.switch_requests import SwitchRequestService

TARGET_AGENCY_ID = "agency-target"
CURRENT_AGENCY_ID = "agency-current"
PATIENT_ID = "patient-1"
OTHER_PATIENT_ID = "patient-2"

FIXED_NOW = datetime(2024, 3, 1, 9, 30, tzinfo=timezone.utc)


@pytest.fixture
def agency_factory():
    """Build agencies with sensible defaults."""
    def _make(**overrides) -> Agency:
        data = {
            "name": "Keystone Home Health",
            "county": "Allegheny",
            "address_city": "Pittsburgh",
            "service_counties": ["Allegheny"],
            "payers_accepted": [PayerType.MEDICAID],
            "care_types": [CareType.HOME_HEALTH],
            "services_offered": ["nursing"],
            "languages_spoken": ["en"],
        }
        data.update(overrides)
        return Agency(**data)
    return _make


@pytest.fixture
def request_factory():
    """Build switch requests in any status."""
    def _make(status: SwitchStatus = SwitchStatus.DRAFT, **overrides) -> SwitchRequest:
        data = {
            "patient_id": PATIENT_ID,
            "agency_id": TARGET_AGENCY_ID,
            "status": status,
            "version": 1,
        }
        if status == SwitchStatus.REJECTED:
            data["status_reason"] = "Outside service area"
        data.update(overrides)
        return SwitchRequest(**data)
    return _make


@pytest.fixture
def patient():
    return ActorContext(actor_id=PATIENT_ID, role=ActorRole.PATIENT)


@pytest.fixture
def other_patient():
    return ActorContext(actor_id=OTHER_PATIENT_ID, role=ActorRole.PATIENT)


@pytest.fixture
def agency_staff():
    return ActorContext(actor_id="staff-1", role=ActorRole.AGENCY_STAFF, agency_id=TARGET_AGENCY_ID)


@pytest.fixture
def agency_admin():
    return ActorContext(actor_id="admin-1", role=ActorRole.AGENCY_ADMIN, agency_id=TARGET_AGENCY_ID)


@pytest.fixture
def other_agency_admin():
    return ActorContext(actor_id="admin-2", role=ActorRole.AGENCY_ADMIN, agency_id=CURRENT_AGENCY_ID)


@pytest.fixture
def platform_admin():
    return ActorContext(actor_id="root-1", role=ActorRole.PLATFORM_ADMIN)


@pytest.fixture
def actors(patient, agency_staff, agency_admin, platform_admin):
    """One actor per role, each tied to the target agency where applicable."""
    return {
        ActorRole.PATIENT: patient,
        ActorRole.AGENCY_STAFF: agency_staff,
        ActorRole.AGENCY_ADMIN: agency_admin,
        ActorRole.PLATFORM_ADMIN: platform_admin,
    }


@pytest.fixture
def catalog(agency_factory):
    return InMemoryAgencyCatalog([
        agency_factory(id=TARGET_AGENCY_ID, name="Keystone Home Health", is_verified=True),
        agency_factory(id=CURRENT_AGENCY_ID, name="Allegheny Care Partners"),
    ])


@pytest.fixture
def patients():
    return InMemoryPatientDirectory([
        PatientProfile(id=PATIENT_ID, full_name="Maya Gurung", county="Allegheny",
                       payer_type=PayerType.MEDICAID, preferred_language="ne")
    ])


@pytest.fixture
def store():
    return InMemorySwitchRequestStore()


@pytest.fixture
def audit_sink():
    return InMemoryAuditSink()


@pytest.fixture
def notifier():
    return RecordingNotificationDispatcher()


@pytest.fixture
def switch_service(store, catalog, audit_sink, notifier):
    """Switch request service over in-memory collaborators with a fixed clock."""
    return SwitchRequestService(store, catalog, AuditEmitter(audit_sink), notifier, clock=lambda: FIXED_NOW)


@pytest.fixture(scope="session")
def key_pair():
    """One RSA key pair per test session."""
    return generate_key_pair()
