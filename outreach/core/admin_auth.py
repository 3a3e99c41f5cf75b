"""
Admin authentication for ledger maintenance.

Admin calls present the shared secret in X-Admin-Key. There is no other
admin mechanism; when ADMIN_KEY is unset the admin surface answers 503.
"""
import hashlib
import hmac
from dataclasses import dataclass
from typing import Optional

from fastapi import HTTPException, Request

from outreach.core.config import Settings, settings


@dataclass
class AdminActor:
    """Represents an authenticated admin actor."""
    actor_id: str  # "admin-key:<hash>"
    auth_mechanism: str = "x_admin_key"


def _settings_for(request: Request) -> Settings:
    return getattr(request.app.state, "settings", None) or settings


def verify_admin_key(request: Request, expected_key: Optional[str]) -> Optional[AdminActor]:
    """Return AdminActor if X-Admin-Key matches, None if absent/invalid."""
    if not expected_key:
        return None

    header_key = request.headers.get("X-Admin-Key", "").strip()
    if not header_key or not hmac.compare_digest(header_key.encode(), expected_key.encode()):
        return None

    key_hash = hashlib.sha256(header_key.encode()).hexdigest()[:16]
    return AdminActor(actor_id=f"admin-key:{key_hash}")


def require_admin(request: Request) -> AdminActor:
    """
    FastAPI dependency: Require admin authentication.
    Raises HTTPException if authentication fails.
    """
    expected_key = _settings_for(request).ADMIN_KEY
    if not expected_key:
        raise HTTPException(
            status_code=503,
            detail={
                "error": "Admin authentication not configured",
                "code": "admin_auth_unconfigured",
                "hint": "Set ADMIN_KEY",
            },
        )

    actor = verify_admin_key(request, expected_key)
    if not actor:
        raise HTTPException(
            status_code=401,
            detail={
                "error": "Unauthorized: invalid or missing admin credentials",
                "code": "admin_unauthorized",
            },
        )
    return actor
