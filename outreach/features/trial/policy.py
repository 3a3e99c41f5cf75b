"""
outreach/features/trial/policy.py

Trial quota decisions.

can_consume answers "may this token spend N more units of a resource class
right now?" without mutating anything. Callers increment the ledger only
after the metered work has succeeded, so failed upstream calls are free.
"""

import logging
from dataclasses import dataclass
from typing import Dict, Optional

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel

from outreach.core.errors import InvalidTrialTokenError, QuotaExceededError, ValidationError
from outreach.core.logging import token_fingerprint
from outreach.features.access.registry import TokenRegistry
from outreach.features.trial.ledger import ResourceClass, UsageLedger


logger = logging.getLogger("outreach")

INVALID_TOKEN_REASON = "Invalid trial token"
INVALID_UNITS_REASON = "requested_units must be at least 1"

# (singular, plural) used in limit messages
_RESOURCE_NOUNS: Dict[ResourceClass, tuple] = {
    ResourceClass.ARTICLES: ("article", "articles"),
    ResourceClass.TOPIC_DISCOVERY: ("topic discovery run", "topic discovery runs"),
    ResourceClass.IMAGES: ("image", "images"),
}


@dataclass(frozen=True)
class QuotaLimits:
    max_articles: int = 2
    max_topic_discovery_runs: int = 2
    max_images: int = 1

    def limit_for(self, resource: ResourceClass) -> int:
        return {
            ResourceClass.ARTICLES: self.max_articles,
            ResourceClass.TOPIC_DISCOVERY: self.max_topic_discovery_runs,
            ResourceClass.IMAGES: self.max_images,
        }[ResourceClass(resource)]


TRIAL_LIMITS = QuotaLimits()


@dataclass(frozen=True)
class QuotaDecision:
    allowed: bool
    reason: Optional[str] = None
    current_usage: Optional[int] = None
    limit: Optional[int] = None


class TrialUsageSummary(BaseModel):
    """Payload of GET /api/trial-usage. None maxima mean unlimited."""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    is_master: bool
    is_trial: bool
    articles_generated: int = 0
    topic_discovery_runs: int = 0
    images_generated: int = 0
    max_articles: Optional[int] = None
    max_topic_discovery_runs: Optional[int] = None
    max_images: Optional[int] = None
    articles_remaining: Optional[int] = None
    topic_discovery_runs_remaining: Optional[int] = None
    images_remaining: Optional[int] = None


def limit_reached_reason(resource: ResourceClass, limit: int, current: int) -> str:
    singular, plural = _RESOURCE_NOUNS[ResourceClass(resource)]
    noun = singular if limit == 1 else plural
    return f"Trial limit reached: maximum {limit} {noun} allowed ({current} used)"


class QuotaPolicy:
    def __init__(self, registry: TokenRegistry, ledger: UsageLedger, limits: QuotaLimits = TRIAL_LIMITS):
        self.registry = registry
        self.ledger = ledger
        self.limits = limits

    async def can_consume(
        self,
        token: Optional[str],
        resource: ResourceClass,
        requested_units: int = 1,
    ) -> QuotaDecision:
        """Decide whether `token` may consume `requested_units` of `resource`.

        Never raises. Rules, in order:
        0. requested_units < 1: deny
        1. no token: allow (the gate already vetted the un-tokened entry point)
        2. master token: allow, no counter read
        3. unknown token: deny
        4. trial token: allow iff current + requested <= limit
        """
        resource = ResourceClass(resource)
        if requested_units < 1:
            return QuotaDecision(allowed=False, reason=INVALID_UNITS_REASON)

        if not token:
            return QuotaDecision(allowed=True)

        if self.registry.is_master_token(token):
            return QuotaDecision(allowed=True)

        if not self.registry.is_trial_token(token):
            return QuotaDecision(allowed=False, reason=INVALID_TOKEN_REASON)

        usage = await self.ledger.get(token)
        current = usage.count(resource)
        limit = self.limits.limit_for(resource)

        if current + requested_units > limit:
            logger.warning(
                "[quota] WOULD_EXCEED",
                extra={
                    "token_fp": token_fingerprint(token),
                    "resource": resource.value,
                    "limit": limit,
                    "current_usage": current,
                    "requested": requested_units,
                },
            )
            return QuotaDecision(
                allowed=False,
                reason=limit_reached_reason(resource, limit, current),
                current_usage=current,
                limit=limit,
            )

        return QuotaDecision(allowed=True, current_usage=current, limit=limit)

    async def enforce(
        self,
        token: Optional[str],
        resource: ResourceClass,
        requested_units: int = 1,
    ) -> QuotaDecision:
        """can_consume, raising the matching AppError on deny."""
        decision = await self.can_consume(token, resource, requested_units)
        if decision.allowed:
            return decision
        if decision.reason == INVALID_TOKEN_REASON:
            raise InvalidTrialTokenError(INVALID_TOKEN_REASON)
        if decision.reason == INVALID_UNITS_REASON:
            raise ValidationError(INVALID_UNITS_REASON)
        raise QuotaExceededError(decision.reason, resource=ResourceClass(resource).value)

    async def usage_summary(self, token: Optional[str]) -> TrialUsageSummary:
        """Counters, maxima and remaining credits for a token.

        Raises InvalidTrialTokenError for tokens that are neither master nor trial.
        """
        if not token or self.registry.is_master_token(token):
            return TrialUsageSummary(is_master=True, is_trial=False)

        if not self.registry.is_trial_token(token):
            raise InvalidTrialTokenError(INVALID_TOKEN_REASON)

        usage = await self.ledger.get(token)
        limits = self.limits
        return TrialUsageSummary(
            is_master=False,
            is_trial=True,
            articles_generated=usage.articles_generated,
            topic_discovery_runs=usage.topic_discovery_runs,
            images_generated=usage.images_generated,
            max_articles=limits.max_articles,
            max_topic_discovery_runs=limits.max_topic_discovery_runs,
            max_images=limits.max_images,
            articles_remaining=max(0, limits.max_articles - usage.articles_generated),
            topic_discovery_runs_remaining=max(0, limits.max_topic_discovery_runs - usage.topic_discovery_runs),
            images_remaining=max(0, limits.max_images - usage.images_generated),
        )
