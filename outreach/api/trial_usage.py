"""
Trial usage API.

GET /api/trial-usage reports counters, maxima and remaining credits for the
caller's token. No token and the master token are both unlimited (null
maxima).
"""

import logging
from typing import Optional

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse

from outreach.api.deps import get_quota_policy, get_trial_token
from outreach.core.errors import InvalidTrialTokenError
from outreach.features.trial.policy import INVALID_TOKEN_REASON, QuotaPolicy, TrialUsageSummary

logger = logging.getLogger("outreach")

router = APIRouter(tags=["trial"])


@router.get("/api/trial-usage", response_model=TrialUsageSummary)
async def trial_usage(
    token: Optional[str] = Depends(get_trial_token),
    policy: QuotaPolicy = Depends(get_quota_policy),
):
    try:
        return await policy.usage_summary(token)
    except InvalidTrialTokenError:
        return JSONResponse(
            status_code=400,
            content={"isMaster": False, "isTrial": False, "error": INVALID_TOKEN_REASON},
        )
