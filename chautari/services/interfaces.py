# -*- coding: utf-8 -*-
# SPDX-License-Identifier: Apache-2.0

"""
Collaborator interfaces consumed by the switch and search services.

MongoDB-backed implementations live in ``services.repositories``; in-memory
ones in ``services.memory``.
"""

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Protocol, Tuple

from ..domain.filters import CanonicalFilter
from ..models.entities import Agency, AuditEvent, PatientProfile, SwitchRequest
from ..models.enums import NotificationEvent, SwitchStatus


@dataclass
class RequestQuery:
    """Store-level filter for listing switch requests."""
    patient_id: Optional[str] = None
    agency_id: Optional[str] = None
    statuses: List[SwitchStatus] = field(default_factory=list)


class SwitchRequestStore(Protocol):
    def get(self, request_id: str) -> Optional[SwitchRequest]:
        ...

    def insert(self, request: SwitchRequest) -> SwitchRequest:
        """Persist a new request. Raises ActiveRequestExistsError when the
        store itself enforces the single-active-request rule."""
        ...

    def update_if_unchanged(
        self,
        request: SwitchRequest,
        expected_version: int,
        expected_status: SwitchStatus
    ) -> SwitchRequest:
        """Replace the stored record only if version and status still match.
        Raises ConflictError otherwise."""
        ...

    def find_active_for_patient(
        self,
        patient_id: str,
        exclude_id: Optional[str] = None
    ) -> Optional[SwitchRequest]:
        ...

    def query(self, criteria: RequestQuery, page: int, page_size: int) -> Tuple[List[SwitchRequest], int]:
        ...

    def all_matching(self, criteria: RequestQuery) -> List[SwitchRequest]:
        ...


class AgencyCatalog(Protocol):
    def get(self, agency_id: str) -> Optional[Agency]:
        ...

    def find_candidates(self, criteria: CanonicalFilter) -> List[Agency]:
        """Return a superset of the active agencies matching the filter."""
        ...

    def update_flags(self, agency_id: str, updated_by: str, **flags: Any) -> Optional[Agency]:
        ...


class PatientDirectory(Protocol):
    def get_profile(self, patient_id: str) -> Optional[PatientProfile]:
        ...


class AuditSink(Protocol):
    def append(self, event: AuditEvent) -> None:
        ...


class NotificationDispatcher(Protocol):
    def notify(self, request_id: str, event: NotificationEvent, recipient_id: str,
               context: Optional[Dict[str, Any]] = None) -> None:
        ...
