"""Entry-point routes reached after the gate has allowed the request.

The single-page UI is served elsewhere; these routes hand it the gate's
advisory signals.
"""

from fastapi import APIRouter, Request
from fastapi.responses import PlainTextResponse

from outreach.features.access.gate import MAINTENANCE_HEADER

router = APIRouter(tags=["pages"])


@router.get("/")
def index(request: Request):
    identity = getattr(request.state, "client_identity", None)
    return {
        "app": "outreach",
        "maintenanceGate": request.headers.get(MAINTENANCE_HEADER) == "true",
        "identity": identity.kind.value if identity else None,
    }


@router.get("/not-found", response_class=PlainTextResponse)
def not_found():
    return PlainTextResponse("404: Page Not Found", status_code=404)
