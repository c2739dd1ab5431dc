# SPDX-License-Identifier: Apache-2.0

"""
Tests for the switch request service over in-memory collaborators.
"""

import pytest
from unittest.mock import MagicMock

from chautari.domain.errors import (
    ActiveRequestExistsError, ConflictError, ForbiddenError, InvalidStateError,
    InvalidValueError, NotFoundError, StoreError
)
from chautari.models.enums import NotificationEvent, SwitchAction, SwitchStatus
from chautari.services.audit import AuditEmitter
from chautari.services.switch_requests import SwitchRequestService


def _walk_to(service, patient, agency_admin, status):
    """Create a request and move it forward to the given status."""
    request = service.create(patient, agency_admin.agency_id)
    steps = {
        SwitchStatus.SUBMITTED: [(SwitchAction.SUBMIT, patient)],
        SwitchStatus.UNDER_REVIEW: [(SwitchAction.SUBMIT, patient), (SwitchAction.BEGIN_REVIEW, agency_admin)],
        SwitchStatus.ACCEPTED: [(SwitchAction.SUBMIT, patient), (SwitchAction.BEGIN_REVIEW, agency_admin),
                                (SwitchAction.ACCEPT, agency_admin)],
    }
    for action, actor in steps.get(status, []):
        request = service.transition_by_id(request.id, action, actor)
    return request


class TestCreate:
    """Test switch request creation."""

    def test_create_draft(self, switch_service, patient, audit_sink):
        request = switch_service.create(patient, "agency-target", switch_reason="Missed visits")

        assert request.status == SwitchStatus.DRAFT
        assert request.version == 1
        assert switch_service.store.get(request.id) == request
        assert len(audit_sink.events) == 1
        event = audit_sink.events[0]
        assert event.action == "switch_request.create"
        assert event.before is None
        assert event.after == {"status": "draft", "version": 1}

    def test_create_keeps_care_details(self, switch_service, patient):
        request = switch_service.create(
            patient, "agency-target",
            services_requested=["nursing", " physical therapy ", "nursing", ""],
            special_instructions="Ring the side door"
        )

        stored = switch_service.store.get(request.id)
        assert stored.services_requested == ["nursing", "physical therapy"]
        assert stored.special_instructions == "Ring the side door"

    def test_unknown_agency(self, switch_service, patient):
        with pytest.raises(NotFoundError):
            switch_service.create(patient, "no-such-agency")

    def test_inactive_agency_is_not_found(self, switch_service, patient, catalog, agency_factory):
        catalog.add(agency_factory(id="closed", is_active=False))
        with pytest.raises(NotFoundError):
            switch_service.create(patient, "closed")

    def test_agency_not_accepting_patients(self, switch_service, patient, catalog, agency_factory):
        catalog.add(agency_factory(id="full", is_accepting_patients=False))
        with pytest.raises(InvalidStateError):
            switch_service.create(patient, "full")

    def test_switching_to_current_agency_is_invalid(self, switch_service, patient):
        with pytest.raises(InvalidValueError) as exc_info:
            switch_service.create(patient, "agency-target", current_agency_id="agency-target")
        assert exc_info.value.field == "agency_id"

    def test_second_request_while_one_is_submitted(self, switch_service, patient, agency_admin):
        existing = _walk_to(switch_service, patient, agency_admin, SwitchStatus.SUBMITTED)

        with pytest.raises(ActiveRequestExistsError) as exc_info:
            switch_service.create(patient, "agency-current")
        assert exc_info.value.existing_id == existing.id

    def test_new_request_allowed_after_cancel(self, switch_service, patient):
        first = switch_service.create(patient, "agency-target")
        switch_service.cancel(first.id, patient)

        second = switch_service.create(patient, "agency-current")
        assert second.status == SwitchStatus.DRAFT

    def test_agency_members_cannot_create(self, switch_service, agency_admin):
        with pytest.raises(ForbiddenError):
            switch_service.create(agency_admin, "agency-target")


class TestTransitions:
    """Test lifecycle transitions with persistence side effects."""

    def test_full_lifecycle(self, switch_service, patient, agency_staff, agency_admin, audit_sink, notifier):
        request = switch_service.create(patient, "agency-target")

        request = switch_service.submit(request.id, patient)
        assert request.status == SwitchStatus.SUBMITTED
        assert request.submitted_at is not None

        request = switch_service.begin_review(request.id, agency_staff)
        assert request.status == SwitchStatus.UNDER_REVIEW

        request = switch_service.accept(request.id, agency_admin)
        assert request.status == SwitchStatus.ACCEPTED

        request = switch_service.complete(request.id, agency_admin)
        assert request.status == SwitchStatus.COMPLETED
        assert request.version == 5

        assert [e.action for e in audit_sink.events] == [
            "switch_request.create",
            "switch_request.submit",
            "switch_request.begin_review",
            "switch_request.accept",
            "switch_request.complete",
        ]
        assert [n["event"] for n in notifier.sent] == [
            NotificationEvent.REQUEST_SUBMITTED,
            NotificationEvent.REQUEST_ACCEPTED,
            NotificationEvent.REQUEST_COMPLETED,
        ]
        assert notifier.sent[0]["recipient_id"] == "agency-target"
        assert notifier.sent[1]["recipient_id"] == patient.actor_id

    def test_out_of_order_action_is_invalid_state(self, switch_service, patient, agency_admin, audit_sink):
        request = _walk_to(switch_service, patient, agency_admin, SwitchStatus.SUBMITTED)
        events_before = len(audit_sink.events)

        with pytest.raises(InvalidStateError):
            switch_service.complete(request.id, agency_admin)
        assert switch_service.store.get(request.id).status == SwitchStatus.SUBMITTED
        assert len(audit_sink.events) == events_before

    def test_deny_notifies_patient(self, switch_service, patient, agency_admin, notifier):
        request = _walk_to(switch_service, patient, agency_admin, SwitchStatus.UNDER_REVIEW)

        denied = switch_service.deny(request.id, agency_admin, "Outside our service area")

        assert denied.status == SwitchStatus.REJECTED
        assert denied.status_reason == "Outside our service area"
        assert notifier.sent[-1]["event"] == NotificationEvent.REQUEST_REJECTED
        assert notifier.sent[-1]["recipient_id"] == patient.actor_id
        assert notifier.sent[-1]["context"]["status_reason"] == "Outside our service area"

    def test_accept_note_reaches_patient(self, switch_service, patient, agency_admin, notifier):
        request = _walk_to(switch_service, patient, agency_admin, SwitchStatus.UNDER_REVIEW)

        accepted = switch_service.accept(request.id, agency_admin, note="  Intake call on Monday  ")

        assert accepted.decision_note == "Intake call on Monday"
        assert notifier.sent[-1]["event"] == NotificationEvent.REQUEST_ACCEPTED
        assert notifier.sent[-1]["context"]["note"] == "Intake call on Monday"

        switch_service.complete(request.id, agency_admin)
        assert "note" not in notifier.sent[-1]["context"]

    def test_accept_without_note(self, switch_service, patient, agency_admin, notifier):
        request = _walk_to(switch_service, patient, agency_admin, SwitchStatus.UNDER_REVIEW)

        accepted = switch_service.accept(request.id, agency_admin)

        assert accepted.decision_note is None
        assert "note" not in notifier.sent[-1]["context"]

    def test_accept_note_too_long(self, switch_service, patient, agency_admin):
        request = _walk_to(switch_service, patient, agency_admin, SwitchStatus.UNDER_REVIEW)

        with pytest.raises(InvalidValueError) as exc_info:
            switch_service.accept(request.id, agency_admin, note="x" * 501)
        assert exc_info.value.field == "note"

    def test_concurrent_accept_and_cancel(self, switch_service, patient, agency_admin):
        request = _walk_to(switch_service, patient, agency_admin, SwitchStatus.UNDER_REVIEW)
        snapshot = switch_service.store.get(request.id)

        accepted = switch_service.transition(snapshot, SwitchAction.ACCEPT, agency_admin)
        with pytest.raises(ConflictError):
            switch_service.transition(snapshot, SwitchAction.CANCEL, patient)

        assert accepted.status == SwitchStatus.ACCEPTED
        assert switch_service.store.get(request.id).status == SwitchStatus.ACCEPTED

    def test_submit_blocked_by_other_active_request(self, store, switch_service, patient, request_factory):
        store.insert(request_factory(SwitchStatus.CANCELLED, id="old"))
        draft = request_factory(SwitchStatus.DRAFT, id="draft-1")
        # Seeded directly, bypassing the store's active-request check
        store._records["draft-1"] = draft
        store._records["other"] = request_factory(SwitchStatus.SUBMITTED, id="other")

        with pytest.raises(ActiveRequestExistsError):
            switch_service.submit("draft-1", patient)

    def test_unknown_request(self, switch_service, patient):
        with pytest.raises(NotFoundError):
            switch_service.submit("missing", patient)

    def test_store_failure_emits_no_audit(self, catalog, audit_sink, patient, request_factory):
        store = MagicMock()
        store.update_if_unchanged.side_effect = StoreError("Could not save the switch request")
        store.find_active_for_patient.return_value = None
        service = SwitchRequestService(store, catalog, AuditEmitter(audit_sink))

        with pytest.raises(StoreError):
            service.transition(request_factory(SwitchStatus.DRAFT), SwitchAction.SUBMIT, patient)
        assert audit_sink.events == []

    def test_audit_failure_does_not_fail_transition(self, store, catalog, notifier, patient):
        sink = MagicMock()
        sink.append.side_effect = RuntimeError("audit store down")
        service = SwitchRequestService(store, catalog, AuditEmitter(sink), notifier)

        request = service.create(patient, "agency-target")
        submitted = service.submit(request.id, patient)

        assert submitted.status == SwitchStatus.SUBMITTED
        assert store.get(request.id).status == SwitchStatus.SUBMITTED
        assert sink.append.call_count == 2

    def test_notification_failure_does_not_fail_transition(self, store, catalog, audit_sink, patient):
        notifier = MagicMock()
        notifier.notify.side_effect = ConnectionError("broker unreachable")
        service = SwitchRequestService(store, catalog, AuditEmitter(audit_sink), notifier)

        request = service.create(patient, "agency-target")
        submitted = service.submit(request.id, patient)

        assert submitted.status == SwitchStatus.SUBMITTED
        notifier.notify.assert_called_once()


class TestCaseManager:
    """Test case manager assignment."""

    def test_platform_admin_assigns(self, switch_service, patient, platform_admin, audit_sink):
        request = switch_service.create(patient, "agency-target")

        updated = switch_service.assign_case_manager(request.id, " cm-7 ", platform_admin)

        assert updated.case_manager_id == "cm-7"
        assert updated.version == request.version + 1
        assert updated.status == SwitchStatus.DRAFT
        assert audit_sink.events[-1].action == "switch_request.assign_case_manager"
        assert audit_sink.events[-1].after["case_manager_id"] == "cm-7"

    def test_others_cannot_assign(self, switch_service, patient, agency_admin):
        request = switch_service.create(patient, "agency-target")
        with pytest.raises(ForbiddenError):
            switch_service.assign_case_manager(request.id, "cm-7", agency_admin)

    def test_blank_case_manager(self, switch_service, patient, platform_admin):
        request = switch_service.create(patient, "agency-target")
        with pytest.raises(InvalidValueError):
            switch_service.assign_case_manager(request.id, "  ", platform_admin)

    def test_terminal_request(self, switch_service, patient, platform_admin):
        request = switch_service.create(patient, "agency-target")
        switch_service.cancel(request.id, patient)
        with pytest.raises(InvalidStateError):
            switch_service.assign_case_manager(request.id, "cm-7", platform_admin)


class TestQueries:
    """Test reads scoped to the actor."""

    def test_get_respects_visibility(self, switch_service, patient, other_patient, other_agency_admin,
                                     platform_admin):
        request = switch_service.create(patient, "agency-target")

        assert switch_service.get(request.id, patient).id == request.id
        assert switch_service.get(request.id, platform_admin).id == request.id
        with pytest.raises(ForbiddenError):
            switch_service.get(request.id, other_patient)
        with pytest.raises(ForbiddenError):
            switch_service.get(request.id, other_agency_admin)

    def test_list_scoped_by_role(self, switch_service, patient, other_patient, agency_admin,
                                 other_agency_admin, platform_admin):
        switch_service.create(patient, "agency-target")
        switch_service.create(other_patient, "agency-current")

        mine, total = switch_service.list_for_actor(patient)
        assert total == 1
        assert mine[0].patient_id == patient.actor_id

        assert switch_service.list_for_actor(agency_admin)[1] == 1
        assert switch_service.list_for_actor(other_agency_admin)[0][0].agency_id == "agency-current"
        assert switch_service.list_for_actor(platform_admin)[1] == 2

    def test_list_status_filter(self, switch_service, patient, other_patient, platform_admin):
        request = switch_service.create(patient, "agency-target")
        switch_service.submit(request.id, patient)
        switch_service.create(other_patient, "agency-target")

        items, total = switch_service.list_for_actor(platform_admin, statuses=[SwitchStatus.SUBMITTED])
        assert total == 1
        assert items[0].id == request.id

    def test_list_rejects_bad_paging(self, switch_service, patient):
        with pytest.raises(InvalidValueError):
            switch_service.list_for_actor(patient, page=0)
        with pytest.raises(InvalidValueError):
            switch_service.list_for_actor(patient, page_size=101)

    def test_stats_for_agency(self, switch_service, patient, other_patient, agency_admin):
        first = switch_service.create(patient, "agency-target")
        switch_service.submit(first.id, patient)
        switch_service.create(other_patient, "agency-target")

        stats = switch_service.stats_for_actor(agency_admin)

        assert stats.total == 2
        assert stats.pending == 1
        assert stats.by_status[SwitchStatus.DRAFT] == 1
