# -*- coding: utf-8 -*-
# SPDX-License-Identifier: Apache-2.0

"""
MongoDB connection management, document mapping and index setup.
"""

import os
import logging
from datetime import date, datetime
from enum import Enum
from typing import Dict, Optional, Any, Type, TypeVar
from pydantic import BaseModel
from pymongo import MongoClient, ASCENDING, DESCENDING
from pymongo.collection import Collection
from pymongo.database import Database
from pymongo.errors import ConnectionFailure, ServerSelectionTimeoutError, PyMongoError

logger = logging.getLogger(__name__)

SWITCH_REQUESTS = "switch_requests"
AGENCIES = "agencies"
PATIENT_PROFILES = "patient_profiles"
AUDIT_EVENTS = "audit_events"

ModelT = TypeVar("ModelT", bound=BaseModel)


def to_camel(name: str) -> str:
    """Convert snake_case field names to the camelCase used in documents."""
    head, *rest = name.split("_")
    return head + "".join(part.title() for part in rest)


def to_snake(name: str) -> str:
    chars = []
    for ch in name:
        if ch.isupper():
            chars.append("_")
            chars.append(ch.lower())
        else:
            chars.append(ch)
    return "".join(chars)


def _to_bson_value(value: Any) -> Any:
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, datetime):
        return value
    if isinstance(value, date):
        return value.isoformat()
    if isinstance(value, (list, tuple, set, frozenset)):
        return [_to_bson_value(v) for v in value]
    if isinstance(value, dict):
        return {k: _to_bson_value(v) for k, v in value.items()}
    return value


def to_document(model: BaseModel) -> Dict[str, Any]:
    """
    Map a pydantic model to a MongoDB document.

    The ``id`` field becomes ``_id``; every other key is camelCased.
    """
    data = model.model_dump(mode="python")
    document = {"_id": data.pop("id")}
    for key, value in data.items():
        document[to_camel(key)] = _to_bson_value(value)
    return document


def from_document(document: Dict[str, Any], model_cls: Type[ModelT]) -> ModelT:
    """Map a MongoDB document back to a pydantic model, ignoring unknown keys."""
    data = {"id": str(document["_id"])}
    fields = model_cls.model_fields
    for key, value in document.items():
        if key == "_id":
            continue
        name = to_snake(key)
        if name in fields:
            data[name] = value
    return model_cls.model_validate(data)


class MongoDBService:
    """MongoDB service with connection pooling."""

    def __init__(self, connection_string: str = None, database_name: str = None):
        """Initialize MongoDB service with connection pooling."""
        self.connection_string = connection_string or os.getenv(
            'MONGODB_URI',
            'mongodb://localhost:27017/chautari_dev'
        )
        self.database_name = database_name or os.getenv('MONGODB_DATABASE', 'chautari_dev')
        self._client: Optional[MongoClient] = None
        self._database: Optional[Database] = None

        # Connection pool settings
        self.max_pool_size = int(os.getenv('MONGODB_MAX_POOL_SIZE', '10'))
        self.min_pool_size = int(os.getenv('MONGODB_MIN_POOL_SIZE', '1'))
        self.max_idle_time_ms = int(os.getenv('MONGODB_MAX_IDLE_TIME_MS', '30000'))
        self.server_selection_timeout_ms = int(os.getenv('MONGODB_SERVER_SELECTION_TIMEOUT_MS', '5000'))

        logger.info(f"MongoDB service initialized for database: {self.database_name}")

    @property
    def client(self) -> MongoClient:
        """Get MongoDB client with connection pooling."""
        if self._client is None:
            try:
                # Writes are conditional, so driver-level retries stay off.
                self._client = MongoClient(
                    self.connection_string,
                    maxPoolSize=self.max_pool_size,
                    minPoolSize=self.min_pool_size,
                    maxIdleTimeMS=self.max_idle_time_ms,
                    serverSelectionTimeoutMS=self.server_selection_timeout_ms,
                    retryWrites=False,
                    retryReads=False,
                    tz_aware=True
                )
                self._client.admin.command('ping')
                logger.info("MongoDB connection established successfully")
            except (ConnectionFailure, ServerSelectionTimeoutError) as e:
                logger.error(f"Failed to connect to MongoDB: {e}")
                self._client = None
                raise

        return self._client

    @property
    def database(self) -> Database:
        """Get MongoDB database."""
        if self._database is None:
            self._database = self.client[self.database_name]
        return self._database

    def get_collection(self, collection_name: str) -> Collection:
        """Get MongoDB collection."""
        return self.database[collection_name]

    def close_connection(self) -> None:
        """Close MongoDB connection."""
        if self._client:
            self._client.close()
            self._client = None
            self._database = None
            logger.info("MongoDB connection closed")

    def health_check(self) -> Dict[str, Any]:
        """Check MongoDB connection health."""
        try:
            result = self.client.admin.command('ping')
            return {
                'status': 'healthy',
                'ping': result.get('ok') == 1,
                'database': self.database_name
            }
        except PyMongoError as e:
            logger.error(f"MongoDB health check failed: {e}")
            return {
                'status': 'unhealthy',
                'error': str(e),
                'database': self.database_name
            }

    def create_indexes(self) -> None:
        """Create indexes for all collections."""
        try:
            logger.info("Creating MongoDB indexes...")

            requests = self.get_collection(SWITCH_REQUESTS)
            # At most one non-terminal request per patient
            requests.create_index(
                "patientId",
                name="one_active_request_per_patient",
                unique=True,
                partialFilterExpression={"active": True}
            )
            requests.create_index([("patientId", ASCENDING), ("createdAt", DESCENDING)])
            requests.create_index([("agencyId", ASCENDING), ("status", ASCENDING), ("createdAt", DESCENDING)])

            agencies = self.get_collection(AGENCIES)
            agencies.create_index([("isActive", ASCENDING), ("isVerified", DESCENDING), ("name", ASCENDING)])
            agencies.create_index("serviceCounties")
            agencies.create_index("payersAccepted")
            agencies.create_index("npi", unique=True, sparse=True)

            audit_events = self.get_collection(AUDIT_EVENTS)
            audit_events.create_index([("resourceType", ASCENDING), ("resourceId", ASCENDING), ("timestamp", DESCENDING)])
            audit_events.create_index([("actorId", ASCENDING), ("timestamp", DESCENDING)])
            audit_events.create_index("traceId")

            logger.info("MongoDB indexes created successfully")

        except PyMongoError as e:
            logger.error(f"Failed to create MongoDB indexes: {e}")
            raise


# Singleton instance for application use
_mongodb_service: Optional[MongoDBService] = None


def get_mongodb_service() -> MongoDBService:
    """Get singleton MongoDB service instance."""
    global _mongodb_service
    if _mongodb_service is None:
        _mongodb_service = MongoDBService()
    return _mongodb_service


def close_mongodb_connection() -> None:
    """Close MongoDB connection (for cleanup)."""
    global _mongodb_service
    if _mongodb_service:
        _mongodb_service.close_connection()
        _mongodb_service = None
