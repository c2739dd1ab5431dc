# SPDX-License-Identifier: Apache-2.0

"""
Error taxonomy for the switch and search core.

Every error carries a machine-readable ``error_type`` and an HTTP status so
the API layer can render it without inspecting the message.
"""

from typing import Optional


class ChautariError(Exception):
    """Base class for application errors."""

    status_code = 500
    error_type = "application-error"
    title = "Application Error"

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class InvalidValueError(ChautariError):
    """A supplied value is not acceptable for the named field."""

    status_code = 400
    error_type = "invalid-value"
    title = "Invalid Value"

    def __init__(self, field: str, message: Optional[str] = None):
        super().__init__(message or f"'{field}' has an invalid value")
        self.field = field


class MissingReasonError(ChautariError):
    status_code = 400
    error_type = "missing-reason"
    title = "Reason Required"

    def __init__(self, message: str = "A reason is required to deny a switch request"):
        super().__init__(message)
        self.field = "reason"


class ForbiddenError(ChautariError):
    status_code = 403
    error_type = "forbidden"
    title = "Forbidden"


class NotFoundError(ChautariError):
    status_code = 404
    error_type = "resource-not-found"
    title = "Resource Not Found"


class InvalidStateError(ChautariError):
    """The action is not valid from the record's current status."""

    status_code = 409
    error_type = "invalid-state"
    title = "Invalid State"


class ActiveRequestExistsError(ChautariError):
    """The patient already has a switch request in progress."""

    status_code = 409
    error_type = "active-request-exists"
    title = "Active Request Exists"

    def __init__(self, message: str = "You already have a switch request in progress. "
                                      "Cancel it or wait for a decision before starting another.",
                 existing_id: Optional[str] = None):
        super().__init__(message)
        self.existing_id = existing_id


class ConflictError(ChautariError):
    """The record changed between read and write."""

    status_code = 409
    error_type = "resource-conflict"
    title = "Resource Conflict"

    def __init__(self, message: str = "This request was updated by someone else. "
                                      "Reload it and try again."):
        super().__init__(message)


class StoreError(ChautariError):
    status_code = 503
    error_type = "store-unavailable"
    title = "Storage Unavailable"


class SearchUnavailableError(ChautariError):
    status_code = 503
    error_type = "search-unavailable"
    title = "Search Unavailable"

    def __init__(self, message: str = "Agency search is temporarily unavailable. Please try again shortly."):
        super().__init__(message)


class EmitError(ChautariError):
    """The audit sink rejected an event. Never surfaced to callers."""

    error_type = "audit-emit-failed"
    title = "Audit Emission Failed"
