# -*- coding: utf-8 -*-
# SPDX-License-Identifier: Apache-2.0

"""
Agency flag management: accepting-patients and verified-partner toggles.
"""

import logging

from opentelemetry import trace

from ..domain.errors import EmitError, ForbiddenError, NotFoundError
from ..models.entities import ActorContext, Agency
from ..models.enums import ActorRole
from .audit import AuditEmitter, build_audit_event
from .interfaces import AgencyCatalog

logger = logging.getLogger(__name__)
tracer = trace.get_tracer(__name__)


class AgencyService:
    """Audited updates to the mutable agency flags."""

    def __init__(self, catalog: AgencyCatalog, emitter: AuditEmitter):
        self.catalog = catalog
        self.emitter = emitter

    def _update_flag(self, agency: Agency, flag: str, value: bool, actor: ActorContext) -> Agency:
        before = getattr(agency, flag)
        updated = self.catalog.update_flags(agency.id, actor.actor_id, **{flag: value})
        if updated is None:
            raise NotFoundError("Agency not found")

        event = build_audit_event(
            actor,
            action=f"agency.set_{flag.removeprefix('is_')}",
            resource_type="agency",
            resource_id=agency.id,
            before={flag: before},
            after={flag: value}
        )
        try:
            self.emitter.emit(event)
        except EmitError as e:
            logger.error("Audit emission failed after agency update",
                         extra={"agency_id": agency.id, "flag": flag, "error": e.message})

        logger.info(f"Agency {agency.id} {flag} set to {value}", extra={"actor_id": actor.actor_id})
        return updated

    def _load(self, agency_id: str) -> Agency:
        agency = self.catalog.get(agency_id)
        if agency is None:
            raise NotFoundError("Agency not found")
        return agency

    def set_accepting_patients(self, agency_id: str, accepting: bool, actor: ActorContext) -> Agency:
        """
        Open or close an agency to new patients.

        Allowed for admins of that agency and platform admins.
        """
        with tracer.start_as_current_span("agency.set_accepting_patients") as span:
            span.set_attributes({"agency.id": agency_id, "agency.accepting": accepting})
            allowed = (
                actor.role == ActorRole.PLATFORM_ADMIN
                or (actor.role == ActorRole.AGENCY_ADMIN and actor.belongs_to(agency_id))
            )
            if not allowed:
                raise ForbiddenError("Only an administrator of this agency can change intake status")
            return self._update_flag(self._load(agency_id), "is_accepting_patients", accepting, actor)

    def set_verified(self, agency_id: str, verified: bool, actor: ActorContext) -> Agency:
        """Mark an agency as a verified partner. Platform admins only."""
        with tracer.start_as_current_span("agency.set_verified") as span:
            span.set_attributes({"agency.id": agency_id, "agency.verified": verified})
            if actor.role != ActorRole.PLATFORM_ADMIN:
                raise ForbiddenError("Only platform administrators can verify agencies")
            return self._update_flag(self._load(agency_id), "is_verified", verified, actor)
