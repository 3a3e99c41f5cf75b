"""
Health and diagnostics API.

Lightweight endpoints for operational monitoring without exposing secrets.
"""

import logging
import time
from datetime import datetime, timezone
from typing import Optional

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel

from outreach.api.deps import get_ledger
from outreach.core.logging import get_request_id, latency_bucket_ms
from outreach.features.trial.ledger import UsageLedger

logger = logging.getLogger("outreach")

router = APIRouter(prefix="/api/health", tags=["health"])
root_router = APIRouter(tags=["health"])


class UsageStoreHealth(BaseModel):
    ok: bool
    backend: str
    durable: bool
    latency_ms: Optional[float] = None
    computed_at: str  # UTC ISO format


@root_router.get("/healthz")
def healthz():
    """Lightweight liveness check (no deps)."""
    return {"status": "ok"}


@router.get("/usage-store", response_model=UsageStoreHealth)
async def health_usage_store(
    now: Optional[str] = Query(None),
    ledger: UsageLedger = Depends(get_ledger),
):
    """
    Report which usage backend is active and whether the durable store answers.

    An unreachable durable store is not an outage: the ledger keeps counting
    in memory, so this still returns 200 with ok=False.

    Args:
        now: Optional ISO timestamp for deterministic testing (overrides system time)
    """
    start = time.perf_counter()
    reachable = await ledger.ping()
    latency_ms = (time.perf_counter() - start) * 1000

    logger.info(
        "health.usage_store",
        extra={
            "request_id": get_request_id(),
            "ok": reachable,
            "backend": ledger.backend_name,
            "latency_bucket": latency_bucket_ms(latency_ms if now is None else None),
        },
    )

    return UsageStoreHealth(
        ok=reachable,
        backend=ledger.backend_name,
        durable=ledger.backend_name != "memory",
        latency_ms=None if now else latency_ms,
        computed_at=now or datetime.now(timezone.utc).isoformat(),
    )
