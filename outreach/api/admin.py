"""
Admin trial-ledger endpoints.

Guarded by X-Admin-Key (see core/admin_auth.py). Unknown tokens are 404 so
the ledger never grows records for tokens that are not configured.
"""

import logging

from fastapi import APIRouter, Depends

from outreach.api.deps import get_quota_policy
from outreach.core.admin_auth import AdminActor, require_admin
from outreach.core.errors import NotFoundError
from outreach.core.logging import token_fingerprint
from outreach.features.trial.policy import QuotaPolicy, TrialUsageSummary

logger = logging.getLogger("outreach")

router = APIRouter(prefix="/api/admin/trial-usage", tags=["admin"])


def _require_trial_token(policy: QuotaPolicy, token: str) -> None:
    if not policy.registry.is_trial_token(token):
        raise NotFoundError("Unknown trial token")


@router.get("/{token}", response_model=TrialUsageSummary)
async def admin_get_usage(
    token: str,
    actor: AdminActor = Depends(require_admin),
    policy: QuotaPolicy = Depends(get_quota_policy),
):
    _require_trial_token(policy, token)
    return await policy.usage_summary(token)


@router.post("/{token}/reset", response_model=TrialUsageSummary)
async def admin_reset_usage(
    token: str,
    actor: AdminActor = Depends(require_admin),
    policy: QuotaPolicy = Depends(get_quota_policy),
):
    _require_trial_token(policy, token)
    await policy.ledger.reset(token)
    logger.info(
        "admin.trial_usage.reset",
        extra={"actor_id": actor.actor_id, "token_fp": token_fingerprint(token)},
    )
    return await policy.usage_summary(token)
