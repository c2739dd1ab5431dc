# -*- coding: utf-8 -*-
# SPDX-License-Identifier: Apache-2.0

"""
Services package - External integrations and side effects.
"""

from .mongodb import MongoDBService, get_mongodb_service, close_mongodb_connection
from .amqp import AMQPService, AMQPConfig, AMQPNotificationDispatcher, PublishResult, create_amqp_service
from .audit import AuditEmitter, MongoAuditSink, build_audit_event
from .switch_requests import SwitchRequestService
from .agency_search import AgencySearchService
from .agencies import AgencyService

__all__ = [
    "MongoDBService",
    "get_mongodb_service",
    "close_mongodb_connection",
    "AMQPService",
    "AMQPConfig",
    "AMQPNotificationDispatcher",
    "PublishResult",
    "create_amqp_service",
    "AuditEmitter",
    "MongoAuditSink",
    "build_audit_event",
    "SwitchRequestService",
    "AgencySearchService",
    "AgencyService"
]
