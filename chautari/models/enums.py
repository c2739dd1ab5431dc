# -*- coding: utf-8 -*-
# SPDX-License-Identifier: Apache-2.0

"""
Enumeration types for the Chautari switch platform.
"""

from enum import Enum


class ActorRole(str, Enum):
    """Roles supplied by the identity provider."""
    PATIENT = "patient"
    AGENCY_STAFF = "agency_staff"
    AGENCY_ADMIN = "agency_admin"
    PLATFORM_ADMIN = "platform_admin"


class CareType(str, Enum):
    """Kinds of care an agency provides."""
    HOME_HEALTH = "home_health"
    HOME_CARE = "home_care"
    BOTH = "both"


class PayerType(str, Enum):
    """Known payers."""
    MEDICAID = "medicaid"
    MEDICARE = "medicare"
    PRIVATE = "private"
    SELF_PAY = "self_pay"
    WAIVER = "waiver"


class SwitchStatus(str, Enum):
    """Switch request workflow status enumeration."""
    DRAFT = "draft"
    SUBMITTED = "submitted"
    UNDER_REVIEW = "under_review"
    ACCEPTED = "accepted"
    REJECTED = "rejected"
    COMPLETED = "completed"
    CANCELLED = "cancelled"

    @property
    def is_terminal(self) -> bool:
        return self in TERMINAL_STATUSES


TERMINAL_STATUSES = frozenset({
    SwitchStatus.COMPLETED,
    SwitchStatus.REJECTED,
    SwitchStatus.CANCELLED,
})

ACTIVE_STATUSES = frozenset(s for s in SwitchStatus if s not in TERMINAL_STATUSES)


class SwitchAction(str, Enum):
    """Actions that move a switch request through its lifecycle."""
    CREATE = "create"
    SUBMIT = "submit"
    CANCEL = "cancel"
    BEGIN_REVIEW = "begin_review"
    ACCEPT = "accept"
    DENY = "deny"
    COMPLETE = "complete"


class NotificationEvent(str, Enum):
    """Events handed to the notification dispatcher."""
    REQUEST_SUBMITTED = "request_submitted"
    REQUEST_ACCEPTED = "request_accepted"
    REQUEST_REJECTED = "request_rejected"
    REQUEST_COMPLETED = "request_completed"
