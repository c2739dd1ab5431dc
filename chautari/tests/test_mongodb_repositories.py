# SPDX-License-Identifier: Apache-2.0

"""
Unit tests for MongoDB document mapping and repositories.
"""

import pytest
from datetime import date
from unittest.mock import MagicMock, patch
from pymongo.errors import DuplicateKeyError, PyMongoError

from chautari.domain.errors import ActiveRequestExistsError, ConflictError, StoreError
from chautari.domain.filters import build_filter
from chautari.models.entities import Agency, SwitchRequest
from chautari.models.enums import CareType, SwitchStatus
from chautari.services.interfaces import RequestQuery
from chautari.services.mongodb import (
    MongoDBService, from_document, to_camel, to_document, to_snake,
    get_mongodb_service, close_mongodb_connection
)
from chautari.services.repositories import (
    MongoAgencyCatalog, MongoPatientDirectory, MongoSwitchRequestStore
)


@pytest.fixture
def collection():
    return MagicMock()


@pytest.fixture
def mongo_service(collection):
    service = MagicMock(spec=MongoDBService)
    service.get_collection.return_value = collection
    return service


class TestDocumentMapping:
    """Test model <-> document conversion."""

    def test_case_conversion(self):
        assert to_camel("is_accepting_patients") == "isAcceptingPatients"
        assert to_camel("name") == "name"
        assert to_snake("isAcceptingPatients") == "is_accepting_patients"

    def test_to_document(self, request_factory):
        request = request_factory(SwitchStatus.SUBMITTED, id="req-1", care_type=CareType.HOME_CARE,
                                  requested_start_date=date(2024, 6, 1))

        document = to_document(request)

        assert document["_id"] == "req-1"
        assert document["patientId"] == "patient-1"
        assert document["status"] == "submitted"
        assert document["careType"] == "home_care"
        assert document["requestedStartDate"] == "2024-06-01"
        assert "id" not in document

    def test_round_trip_ignores_unknown_keys(self, request_factory):
        request = request_factory(SwitchStatus.UNDER_REVIEW, id="req-1")
        document = to_document(request)
        document["active"] = True

        restored = from_document(document, SwitchRequest)

        assert restored.id == "req-1"
        assert restored.status == SwitchStatus.UNDER_REVIEW
        assert restored.version == request.version


class TestMongoSwitchRequestStore:
    """Test the switch request store against a mocked collection."""

    def test_insert_marks_active(self, mongo_service, collection, request_factory):
        store = MongoSwitchRequestStore(mongo_service)
        store.insert(request_factory(SwitchStatus.DRAFT, id="req-1"))

        document = collection.insert_one.call_args[0][0]
        assert document["active"] is True
        assert document["_id"] == "req-1"

    def test_insert_duplicate_active(self, mongo_service, collection, request_factory):
        collection.insert_one.side_effect = DuplicateKeyError("E11000 duplicate key")
        store = MongoSwitchRequestStore(mongo_service)

        with pytest.raises(ActiveRequestExistsError):
            store.insert(request_factory(SwitchStatus.DRAFT))

    def test_conditional_update_filters_on_version_and_status(self, mongo_service, collection, request_factory):
        updated = request_factory(SwitchStatus.CANCELLED, id="req-1", version=3)
        collection.find_one_and_update.return_value = to_document(updated)
        store = MongoSwitchRequestStore(mongo_service)

        stored = store.update_if_unchanged(updated, 2, SwitchStatus.SUBMITTED)

        query, update = collection.find_one_and_update.call_args[0][:2]
        assert query == {"_id": "req-1", "version": 2, "status": "submitted"}
        assert update["$set"]["active"] is False
        assert update["$set"]["status"] == "cancelled"
        assert "_id" not in update["$set"]
        assert stored.status == SwitchStatus.CANCELLED

    def test_conditional_update_conflict(self, mongo_service, collection, request_factory):
        collection.find_one_and_update.return_value = None
        store = MongoSwitchRequestStore(mongo_service)

        with pytest.raises(ConflictError):
            store.update_if_unchanged(request_factory(SwitchStatus.SUBMITTED), 1, SwitchStatus.DRAFT)

    def test_store_errors(self, mongo_service, collection):
        collection.find_one.side_effect = PyMongoError("connection reset")
        store = MongoSwitchRequestStore(mongo_service)

        with pytest.raises(StoreError):
            store.get("req-1")

    def test_find_active_excludes_id(self, mongo_service, collection):
        collection.find_one.return_value = None
        store = MongoSwitchRequestStore(mongo_service)

        assert store.find_active_for_patient("patient-1", exclude_id="req-1") is None
        collection.find_one.assert_called_once_with(
            {"patientId": "patient-1", "active": True, "_id": {"$ne": "req-1"}}
        )

    def test_query_builds_filter_and_pages(self, mongo_service, collection, request_factory):
        collection.count_documents.return_value = 7
        cursor = MagicMock()
        cursor.sort.return_value = cursor
        cursor.skip.return_value = cursor
        cursor.limit.return_value = iter([to_document(request_factory(SwitchStatus.SUBMITTED))])
        collection.find.return_value = cursor
        store = MongoSwitchRequestStore(mongo_service)

        items, total = store.query(
            RequestQuery(agency_id="agency-target", statuses=[SwitchStatus.SUBMITTED]), page=2, page_size=5
        )

        assert total == 7
        assert len(items) == 1
        collection.find.assert_called_once_with({"agencyId": "agency-target", "status": {"$in": ["submitted"]}})
        cursor.skip.assert_called_once_with(5)
        cursor.limit.assert_called_once_with(5)


class TestMongoAgencyCatalog:
    """Test the agency catalog queries."""

    def test_unconstrained_query(self, mongo_service):
        catalog = MongoAgencyCatalog(mongo_service)
        assert catalog.build_candidate_query(build_filter({})) == {"isActive": True}

    def test_candidate_query_pushes_down_constraints(self, mongo_service):
        catalog = MongoAgencyCatalog(mongo_service)
        query = catalog.build_candidate_query(build_filter({
            "payer_type": "medicaid",
            "verified_only": "true",
            "county": "St. Marys",
            "query": "care+",
        }))

        clauses = query["$and"]
        assert {"isActive": True} in clauses
        assert {"payersAccepted": "medicaid"} in clauses
        assert {"isVerified": True} in clauses
        county_clause = next(c for c in clauses if "$or" in c and "county" in c["$or"][0])
        assert county_clause["$or"][0]["county"]["$regex"] == r"^St\.\ Marys$"
        text_clause = next(c for c in clauses if "$or" in c and "name" in c["$or"][0])
        assert text_clause["$or"][0]["name"]["$regex"] == r"care\+"

    def test_find_candidates_maps_documents(self, mongo_service, collection, agency_factory):
        collection.find.return_value = [to_document(agency_factory(id="a1", care_types=[CareType.BOTH]))]
        catalog = MongoAgencyCatalog(mongo_service)

        agencies = catalog.find_candidates(build_filter({}))

        assert isinstance(agencies[0], Agency)
        assert agencies[0].care_types == [CareType.BOTH]

    def test_find_candidates_failure(self, mongo_service, collection):
        collection.find.side_effect = PyMongoError("timeout")
        with pytest.raises(StoreError):
            MongoAgencyCatalog(mongo_service).find_candidates(build_filter({}))

    def test_update_flags(self, mongo_service, collection, agency_factory):
        collection.find_one_and_update.return_value = to_document(agency_factory(id="a1", is_verified=True))
        catalog = MongoAgencyCatalog(mongo_service)

        agency = catalog.update_flags("a1", "root-1", is_verified=True)

        update = collection.find_one_and_update.call_args[0][1]["$set"]
        assert update["isVerified"] is True
        assert update["updatedBy"] == "root-1"
        assert agency.is_verified is True

    def test_patient_directory_missing_profile(self, mongo_service, collection):
        collection.find_one.return_value = None
        assert MongoPatientDirectory(mongo_service).get_profile("p1") is None


class TestMongoDBService:
    """Test connection setup without a live server."""

    @patch('chautari.services.mongodb.MongoClient')
    def test_client_disables_driver_retries(self, mock_client):
        service = MongoDBService("mongodb://db:27017/test", "test")
        service.client

        kwargs = mock_client.call_args[1]
        assert kwargs["retryWrites"] is False
        assert kwargs["retryReads"] is False
        assert kwargs["tz_aware"] is True

    @patch('chautari.services.mongodb.MongoClient')
    def test_create_indexes_includes_single_active_request(self, mock_client):
        service = MongoDBService("mongodb://db:27017/test", "test")
        service.create_indexes()

        requests = mock_client.return_value["test"]["switch_requests"]
        names = [c[1].get("name") for c in requests.create_index.call_args_list]
        assert "one_active_request_per_patient" in names

    @patch('chautari.services.mongodb.MongoClient')
    def test_health_check_unhealthy(self, mock_client):
        mock_client.return_value.admin.command.side_effect = [{"ok": 1}, PyMongoError("down")]
        service = MongoDBService("mongodb://db:27017/test", "test")
        service.client

        assert service.health_check()["status"] == "unhealthy"

    @patch('chautari.services.mongodb.MongoClient')
    def test_singleton(self, mock_client):
        close_mongodb_connection()
        first = get_mongodb_service()

        assert get_mongodb_service() is first
        close_mongodb_connection()
        assert get_mongodb_service() is not first
        close_mongodb_connection()
