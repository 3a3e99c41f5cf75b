"""Access diagnostics used by the UI to pick which gate to render."""

from fastapi import APIRouter, Depends, Request

from outreach.api.deps import get_registry, get_settings
from outreach.core.config import Settings
from outreach.features.access.classifier import get_client_ip
from outreach.features.access.registry import TokenRegistry

router = APIRouter(prefix="/api", tags=["access"])


@router.get("/check-access")
def check_access(request: Request, registry: TokenRegistry = Depends(get_registry)):
    client_ip = get_client_ip(request.headers)
    is_master = registry.is_master_ip(client_ip)
    return {"isMaster": is_master, "clientIP": client_ip, "hasAccess": is_master}


@router.get("/check-auth")
def check_auth(cfg: Settings = Depends(get_settings)):
    configured = cfg.basic_auth_configured
    return {
        "basicAuthConfigured": configured,
        "hasUser": len(cfg.BASIC_AUTH_USER) > 0,
        "hasPass": len(cfg.BASIC_AUTH_PASS) > 0,
        "message": (
            "Basic Auth is configured. Main Link requires authentication."
            if configured
            else "Basic Auth is NOT configured. Main Link is restricted to master IPs and tokens."
        ),
    }
