# SPDX-License-Identifier: Apache-2.0

"""
Tests for audited agency flag updates.
"""

import pytest
from unittest.mock import MagicMock

from chautari.domain.errors import ForbiddenError, NotFoundError
from chautari.services.agencies import AgencyService
from chautari.services.audit import AuditEmitter


@pytest.fixture
def agency_service(catalog, audit_sink):
    return AgencyService(catalog, AuditEmitter(audit_sink))


class TestAcceptingPatients:

    def test_agency_admin_closes_intake(self, agency_service, agency_admin, audit_sink, catalog):
        agency = agency_service.set_accepting_patients("agency-target", False, agency_admin)

        assert agency.is_accepting_patients is False
        assert catalog.get("agency-target").is_accepting_patients is False
        assert agency.updated_by == agency_admin.actor_id

        event = audit_sink.events[-1]
        assert event.action == "agency.set_accepting_patients"
        assert event.resource_type == "agency"
        assert event.before == {"is_accepting_patients": True}
        assert event.after == {"is_accepting_patients": False}

    def test_platform_admin_allowed(self, agency_service, platform_admin):
        assert agency_service.set_accepting_patients("agency-target", False, platform_admin).is_accepting_patients is False

    def test_admin_of_other_agency_forbidden(self, agency_service, other_agency_admin):
        with pytest.raises(ForbiddenError):
            agency_service.set_accepting_patients("agency-target", False, other_agency_admin)

    def test_staff_forbidden(self, agency_service, agency_staff):
        with pytest.raises(ForbiddenError):
            agency_service.set_accepting_patients("agency-target", False, agency_staff)

    def test_unknown_agency(self, agency_service, platform_admin):
        with pytest.raises(NotFoundError):
            agency_service.set_accepting_patients("missing", True, platform_admin)


class TestVerification:

    def test_platform_admin_verifies(self, agency_service, platform_admin, audit_sink):
        agency = agency_service.set_verified("agency-current", True, platform_admin)

        assert agency.is_verified is True
        assert audit_sink.events[-1].action == "agency.set_verified"

    def test_agency_admin_cannot_verify_itself(self, agency_service, agency_admin):
        with pytest.raises(ForbiddenError):
            agency_service.set_verified("agency-target", True, agency_admin)

    def test_audit_failure_is_swallowed(self, catalog, platform_admin):
        sink = MagicMock()
        sink.append.side_effect = RuntimeError("audit store down")
        service = AgencyService(catalog, AuditEmitter(sink))

        assert service.set_verified("agency-current", True, platform_admin).is_verified is True
