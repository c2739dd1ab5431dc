# -*- coding: utf-8 -*-
# SPDX-License-Identifier: Apache-2.0

"""
Response models for API endpoints with HAL support.
"""

from typing import List, Optional, Dict, Any
from pydantic import BaseModel, Field


class HalLink(BaseModel):
    """HAL link representation."""

    href: str = Field(..., description="Link URL")
    method: Optional[str] = Field(None, description="HTTP method")
    type: Optional[str] = Field(None, description="Content type")
    title: Optional[str] = Field(None, description="Link title")


class AgencyResponse(BaseModel):
    id: str
    name: str
    county: Optional[str] = None
    service_counties: List[str] = Field(default_factory=list)
    payers_accepted: List[str] = Field(default_factory=list)
    care_types: List[str] = Field(default_factory=list)
    languages_spoken: List[str] = Field(default_factory=list)
    is_verified: bool = False
    is_accepting_patients: bool = True
    links: Dict[str, HalLink] = Field(default_factory=dict, alias="_links")


class SwitchRequestResponse(BaseModel):
    id: str
    patient_id: str
    agency_id: str
    status: str
    status_reason: Optional[str] = None
    version: int
    links: Dict[str, HalLink] = Field(default_factory=dict, alias="_links")


class CollectionResponse(BaseModel):
    """Paginated HAL collection."""

    total: int = Field(..., description="Total number of items")
    page: int = Field(..., description="Current page number")
    page_size: int = Field(..., description="Items per page")
    total_pages: int = Field(..., description="Total number of pages")
    embedded: Dict[str, List[Dict[str, Any]]] = Field(default_factory=dict, alias="_embedded")
    links: Dict[str, HalLink] = Field(default_factory=dict, alias="_links")


class RequestStatsResponse(BaseModel):
    total: int
    pending: int
    active: int
    accepted: int
    completed: int
    by_status: Dict[str, int]


class HealthCheckResponse(BaseModel):
    status: str = Field(..., description="Overall status")
    environment: str = Field(..., description="Deployment environment")
    dependencies: Dict[str, Any] = Field(default_factory=dict, description="Dependency checks")


class ErrorResponse(BaseModel):
    """RFC 7807 problem document."""

    type: str = Field(..., description="Problem type URI")
    title: str = Field(..., description="Short summary")
    status: int = Field(..., description="HTTP status code")
    detail: str = Field(..., description="Actionable explanation")
    instance: str = Field(..., description="Request path")
    field: Optional[str] = Field(None, description="Offending field, for invalid input")
