"""
Shared FastAPI dependencies

The identity provider sits in front of this API and forwards its verdicts
as headers: ``X-Session-Id`` for an authenticated principal and
``X-Technician-Id`` for a technician (alternate) session.
"""

from dataclasses import dataclass
from typing import Optional

from fastapi import Header, Request

from entitlement.churn import ChurnFlow
from entitlement.service import EntitlementService, get_entitlement_service


@dataclass
class SessionContext:
    """Session predicates consumed from the identity collaborator"""
    session_id: Optional[str] = None
    technician_id: Optional[str] = None

    @property
    def has_session(self) -> bool:
        return bool(self.session_id)

    @property
    def is_technician(self) -> bool:
        return bool(self.technician_id)


def get_service() -> EntitlementService:
    """Entitlement service for this installation (override in tests)"""
    return get_entitlement_service()


def get_session_context(
    x_session_id: Optional[str] = Header(default=None),
    x_technician_id: Optional[str] = Header(default=None),
) -> SessionContext:
    return SessionContext(session_id=x_session_id, technician_id=x_technician_id)


def get_open_churn_flow(request: Request) -> Optional[ChurnFlow]:
    """The cancellation flow in progress, if any"""
    flow = getattr(request.app.state, "churn_flow", None)
    if flow is not None and flow.is_open:
        return flow
    return None
