# -*- coding: utf-8 -*-
# SPDX-License-Identifier: Apache-2.0

"""
Models package - Pydantic schemas and data models for the Chautari switch platform.
"""

# Base models
from .base import BaseEntity

# Enumerations
from .enums import (
    ActorRole,
    CareType,
    PayerType,
    SwitchStatus,
    SwitchAction,
    NotificationEvent,
    TERMINAL_STATUSES,
    ACTIVE_STATUSES
)

# Core entities
from .entities import (
    Agency,
    PatientProfile,
    SwitchRequest,
    AuditEvent,
    ActorContext
)

__all__ = [
    "BaseEntity",
    "ActorRole",
    "CareType",
    "PayerType",
    "SwitchStatus",
    "SwitchAction",
    "NotificationEvent",
    "TERMINAL_STATUSES",
    "ACTIVE_STATUSES",
    "Agency",
    "PatientProfile",
    "SwitchRequest",
    "AuditEvent",
    "ActorContext"
]
