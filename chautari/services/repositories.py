# -*- coding: utf-8 -*-
# SPDX-License-Identifier: Apache-2.0

"""
MongoDB-backed switch request store, agency catalog and patient directory.
"""

import logging
import re
from typing import Any, Dict, List, Optional, Tuple

from opentelemetry import trace
from pymongo import ReturnDocument, DESCENDING
from pymongo.errors import DuplicateKeyError, PyMongoError

from ..domain.errors import ActiveRequestExistsError, ConflictError, StoreError
from ..domain.filters import CanonicalFilter
from ..models.base import utcnow
from ..models.entities import Agency, PatientProfile, SwitchRequest
from ..models.enums import SwitchStatus
from .interfaces import RequestQuery
from .mongodb import (
    MongoDBService, AGENCIES, PATIENT_PROFILES, SWITCH_REQUESTS,
    from_document, to_camel, to_document
)

logger = logging.getLogger(__name__)
tracer = trace.get_tracer(__name__)


def _request_document(request: SwitchRequest) -> Dict[str, Any]:
    document = to_document(request)
    # Backs the partial unique index on patientId
    document["active"] = not request.is_terminal
    return document


def _exact_ci(value: str) -> Dict[str, Any]:
    return {"$regex": f"^{re.escape(value)}$", "$options": "i"}


def _contains_ci(value: str) -> Dict[str, Any]:
    return {"$regex": re.escape(value), "$options": "i"}


class MongoSwitchRequestStore:
    """Switch request persistence with version-checked writes."""

    def __init__(self, mongo_service: MongoDBService):
        self.mongo_service = mongo_service
        self.collection_name = SWITCH_REQUESTS

    @property
    def collection(self):
        return self.mongo_service.get_collection(self.collection_name)

    def get(self, request_id: str) -> Optional[SwitchRequest]:
        with tracer.start_as_current_span("store.switch_requests.get") as span:
            span.set_attribute("switch_request.id", request_id)
            try:
                document = self.collection.find_one({"_id": request_id})
            except PyMongoError as e:
                span.record_exception(e)
                logger.error(f"Failed to load switch request {request_id}: {e}")
                raise StoreError("Switch requests are temporarily unavailable")
            return from_document(document, SwitchRequest) if document else None

    def insert(self, request: SwitchRequest) -> SwitchRequest:
        with tracer.start_as_current_span("store.switch_requests.insert") as span:
            span.set_attributes({
                "switch_request.id": request.id,
                "switch_request.patient_id": request.patient_id
            })
            try:
                self.collection.insert_one(_request_document(request))
            except DuplicateKeyError as e:
                logger.warning(f"Active request already exists for patient {request.patient_id}: {e}")
                raise ActiveRequestExistsError()
            except PyMongoError as e:
                span.record_exception(e)
                logger.error(f"Failed to insert switch request {request.id}: {e}")
                raise StoreError("Could not save the switch request")

            logger.info(f"Created switch request {request.id}")
            return request

    def update_if_unchanged(
        self,
        request: SwitchRequest,
        expected_version: int,
        expected_status: SwitchStatus
    ) -> SwitchRequest:
        """
        Replace a stored request if nobody changed it since it was read.

        Args:
            request: Updated request
            expected_version: Version the caller read
            expected_status: Status the caller read

        Returns:
            The stored request

        Raises:
            ConflictError: version or status no longer match
            ActiveRequestExistsError: the update would create a second active request
            StoreError: MongoDB failure
        """
        with tracer.start_as_current_span("store.switch_requests.update") as span:
            span.set_attributes({
                "switch_request.id": request.id,
                "switch_request.expected_version": expected_version,
                "switch_request.expected_status": expected_status.value
            })
            document = _request_document(request)
            document.pop("_id")
            query = {
                "_id": request.id,
                "version": expected_version,
                "status": expected_status.value
            }
            try:
                stored = self.collection.find_one_and_update(
                    query,
                    {"$set": document},
                    return_document=ReturnDocument.AFTER
                )
            except DuplicateKeyError:
                raise ActiveRequestExistsError()
            except PyMongoError as e:
                span.record_exception(e)
                logger.error(f"Failed to update switch request {request.id}: {e}")
                raise StoreError("Could not save the switch request")

            if stored is None:
                logger.warning(
                    "Conditional update lost the race",
                    extra={"switch_request_id": request.id, "expected_version": expected_version}
                )
                raise ConflictError()

            return from_document(stored, SwitchRequest)

    def find_active_for_patient(self, patient_id: str,
                                exclude_id: Optional[str] = None) -> Optional[SwitchRequest]:
        query: Dict[str, Any] = {"patientId": patient_id, "active": True}
        if exclude_id:
            query["_id"] = {"$ne": exclude_id}
        try:
            document = self.collection.find_one(query)
        except PyMongoError as e:
            logger.error(f"Failed to look up active request for patient {patient_id}: {e}")
            raise StoreError("Switch requests are temporarily unavailable")
        return from_document(document, SwitchRequest) if document else None

    def _build_query(self, criteria: RequestQuery) -> Dict[str, Any]:
        query: Dict[str, Any] = {}
        if criteria.patient_id:
            query["patientId"] = criteria.patient_id
        if criteria.agency_id:
            query["agencyId"] = criteria.agency_id
        if criteria.statuses:
            query["status"] = {"$in": [s.value for s in criteria.statuses]}
        return query

    def query(self, criteria: RequestQuery, page: int, page_size: int) -> Tuple[List[SwitchRequest], int]:
        query = self._build_query(criteria)
        skip = (page - 1) * page_size
        try:
            total = self.collection.count_documents(query)
            cursor = (self.collection.find(query)
                      .sort([("createdAt", DESCENDING), ("_id", DESCENDING)])
                      .skip(skip)
                      .limit(page_size))
            items = [from_document(doc, SwitchRequest) for doc in cursor]
        except PyMongoError as e:
            logger.error(f"Failed to list switch requests: {e}")
            raise StoreError("Switch requests are temporarily unavailable")

        logger.debug(f"Listed {len(items)} switch requests (page {page})")
        return items, total

    def all_matching(self, criteria: RequestQuery) -> List[SwitchRequest]:
        try:
            return [from_document(doc, SwitchRequest)
                    for doc in self.collection.find(self._build_query(criteria))]
        except PyMongoError as e:
            logger.error(f"Failed to load switch requests: {e}")
            raise StoreError("Switch requests are temporarily unavailable")


class MongoAgencyCatalog:
    """Agency directory backed by the ``agencies`` collection."""

    def __init__(self, mongo_service: MongoDBService):
        self.mongo_service = mongo_service
        self.collection_name = AGENCIES

    @property
    def collection(self):
        return self.mongo_service.get_collection(self.collection_name)

    def get(self, agency_id: str) -> Optional[Agency]:
        try:
            document = self.collection.find_one({"_id": agency_id})
        except PyMongoError as e:
            logger.error(f"Failed to load agency {agency_id}: {e}")
            raise StoreError("The agency directory is temporarily unavailable")
        return from_document(document, Agency) if document else None

    def build_candidate_query(self, criteria: CanonicalFilter) -> Dict[str, Any]:
        """
        Push the selective constraints down to MongoDB.

        Care-type matching stays in the ranking step, so the result may be a
        superset of the final matches.
        """
        clauses: List[Dict[str, Any]] = [{"isActive": True}]
        if criteria.payer_type:
            clauses.append({"payersAccepted": criteria.payer_type.value})
        if criteria.verified_only:
            clauses.append({"isVerified": True})
        if criteria.language:
            clauses.append({"languagesSpoken": criteria.language})
        if criteria.services:
            clauses.append({"servicesOffered": {"$in": list(criteria.services)}})
        if criteria.county:
            clauses.append({"$or": [
                {"county": _exact_ci(criteria.county)},
                {"serviceCounties": _exact_ci(criteria.county)}
            ]})
        if criteria.query:
            clauses.append({"$or": [
                {"name": _contains_ci(criteria.query)},
                {"addressCity": _contains_ci(criteria.query)}
            ]})
        return clauses[0] if len(clauses) == 1 else {"$and": clauses}

    def find_candidates(self, criteria: CanonicalFilter) -> List[Agency]:
        query = self.build_candidate_query(criteria)
        with tracer.start_as_current_span("store.agencies.find_candidates") as span:
            try:
                documents = list(self.collection.find(query))
            except PyMongoError as e:
                span.record_exception(e)
                logger.error(f"Agency candidate query failed: {e}")
                raise StoreError("The agency directory is temporarily unavailable")
            span.set_attribute("agencies.candidates", len(documents))
        return [from_document(doc, Agency) for doc in documents]

    def update_flags(self, agency_id: str, updated_by: str, **flags: Any) -> Optional[Agency]:
        updates = {to_camel(name): value for name, value in flags.items()}
        updates.update({"updatedAt": utcnow(), "updatedBy": updated_by})
        try:
            document = self.collection.find_one_and_update(
                {"_id": agency_id},
                {"$set": updates},
                return_document=ReturnDocument.AFTER
            )
        except PyMongoError as e:
            logger.error(f"Failed to update agency {agency_id}: {e}")
            raise StoreError("Could not update the agency")
        return from_document(document, Agency) if document else None


class MongoPatientDirectory:
    """Read-only access to patient profiles."""

    def __init__(self, mongo_service: MongoDBService):
        self.mongo_service = mongo_service

    def get_profile(self, patient_id: str) -> Optional[PatientProfile]:
        try:
            document = self.mongo_service.get_collection(PATIENT_PROFILES).find_one({"_id": patient_id})
        except PyMongoError as e:
            logger.error(f"Failed to load patient profile {patient_id}: {e}")
            raise StoreError("Patient profiles are temporarily unavailable")
        return from_document(document, PatientProfile) if document else None
