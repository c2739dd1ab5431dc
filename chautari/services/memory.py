# SPDX-License-Identifier: Apache-2.0

"""
In-memory collaborators for local development and tests.

These mirror the MongoDB-backed implementations: the switch request store
serialises its compare-and-set under a lock and enforces one active request
per patient the way the partial unique index does.
"""

import threading
import logging
from typing import Any, Dict, Iterable, List, Optional, Tuple

from ..domain.errors import ActiveRequestExistsError, ConflictError
from ..domain.filters import CanonicalFilter
from ..models.base import utcnow
from ..models.entities import Agency, AuditEvent, PatientProfile, SwitchRequest
from ..models.enums import NotificationEvent, SwitchStatus
from .interfaces import RequestQuery

logger = logging.getLogger(__name__)


class InMemorySwitchRequestStore:
    """Thread-safe dictionary-backed switch request store."""

    def __init__(self, requests: Iterable[SwitchRequest] = ()):
        self._lock = threading.Lock()
        self._records: Dict[str, SwitchRequest] = {r.id: r.model_copy(deep=True) for r in requests}

    def _active_conflict(self, request: SwitchRequest) -> Optional[SwitchRequest]:
        if request.is_terminal:
            return None
        for other in self._records.values():
            if other.id != request.id and other.patient_id == request.patient_id and not other.is_terminal:
                return other
        return None

    def get(self, request_id: str) -> Optional[SwitchRequest]:
        with self._lock:
            record = self._records.get(request_id)
            return record.model_copy(deep=True) if record else None

    def insert(self, request: SwitchRequest) -> SwitchRequest:
        with self._lock:
            existing = self._active_conflict(request)
            if existing is not None:
                raise ActiveRequestExistsError(existing_id=existing.id)
            if request.id in self._records:
                raise ConflictError("A switch request with this id already exists")
            self._records[request.id] = request.model_copy(deep=True)
        logger.debug(f"Stored switch request {request.id}")
        return request

    def update_if_unchanged(self, request: SwitchRequest, expected_version: int,
                            expected_status: SwitchStatus) -> SwitchRequest:
        with self._lock:
            current = self._records.get(request.id)
            if current is None or current.version != expected_version or current.status != expected_status:
                raise ConflictError()
            existing = self._active_conflict(request)
            if existing is not None:
                raise ActiveRequestExistsError(existing_id=existing.id)
            self._records[request.id] = request.model_copy(deep=True)
        return request

    def find_active_for_patient(self, patient_id: str,
                                exclude_id: Optional[str] = None) -> Optional[SwitchRequest]:
        with self._lock:
            for record in self._records.values():
                if record.patient_id == patient_id and not record.is_terminal and record.id != exclude_id:
                    return record.model_copy(deep=True)
        return None

    def _matching(self, criteria: RequestQuery) -> List[SwitchRequest]:
        matched = []
        for record in self._records.values():
            if criteria.patient_id and record.patient_id != criteria.patient_id:
                continue
            if criteria.agency_id and record.agency_id != criteria.agency_id:
                continue
            if criteria.statuses and record.status not in criteria.statuses:
                continue
            matched.append(record.model_copy(deep=True))
        return matched

    def query(self, criteria: RequestQuery, page: int, page_size: int) -> Tuple[List[SwitchRequest], int]:
        with self._lock:
            matched = self._matching(criteria)
        matched.sort(key=lambda r: (r.created_at, r.id), reverse=True)
        start = (page - 1) * page_size
        return matched[start:start + page_size], len(matched)

    def all_matching(self, criteria: RequestQuery) -> List[SwitchRequest]:
        with self._lock:
            return self._matching(criteria)


class InMemoryAgencyCatalog:
    """Agency catalog over a fixed list, returning every active agency as a candidate."""

    def __init__(self, agencies: Iterable[Agency] = ()):
        self._lock = threading.Lock()
        self._agencies: Dict[str, Agency] = {a.id: a for a in agencies}

    def add(self, agency: Agency) -> None:
        with self._lock:
            self._agencies[agency.id] = agency

    def get(self, agency_id: str) -> Optional[Agency]:
        return self._agencies.get(agency_id)

    def find_candidates(self, criteria: CanonicalFilter) -> List[Agency]:
        with self._lock:
            return [a for a in self._agencies.values() if a.is_active]

    def update_flags(self, agency_id: str, updated_by: str, **flags: Any) -> Optional[Agency]:
        with self._lock:
            agency = self._agencies.get(agency_id)
            if agency is None:
                return None
            updated = agency.model_copy(update={**flags, "updated_at": utcnow(), "updated_by": updated_by})
            self._agencies[agency_id] = updated
            return updated


class InMemoryPatientDirectory:
    def __init__(self, profiles: Iterable[PatientProfile] = ()):
        self._profiles = {p.id: p for p in profiles}

    def add(self, profile: PatientProfile) -> None:
        self._profiles[profile.id] = profile

    def get_profile(self, patient_id: str) -> Optional[PatientProfile]:
        return self._profiles.get(patient_id)


class InMemoryAuditSink:
    """Append-only list of audit events."""

    def __init__(self):
        self._lock = threading.Lock()
        self.events: List[AuditEvent] = []

    def append(self, event: AuditEvent) -> None:
        with self._lock:
            self.events.append(event)


class RecordingNotificationDispatcher:
    """Dispatcher that records notifications instead of delivering them."""

    def __init__(self):
        self.sent: List[Dict[str, Any]] = []

    def notify(self, request_id: str, event: NotificationEvent, recipient_id: str,
               context: Optional[Dict[str, Any]] = None) -> None:
        self.sent.append({
            "request_id": request_id,
            "event": event,
            "recipient_id": recipient_id,
            "context": context or {}
        })
        logger.info(f"Notification {event.value} recorded for {recipient_id}")
