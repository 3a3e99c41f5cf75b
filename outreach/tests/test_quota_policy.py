"""Tests for trial quota decisions."""

import asyncio
from unittest.mock import MagicMock

import pytest

from outreach.core.errors import InvalidTrialTokenError, QuotaExceededError, ValidationError
from outreach.features.trial.ledger import ResourceClass
from outreach.features.trial.policy import TRIAL_LIMITS, QuotaPolicy, limit_reached_reason
from outreach.tests.mocks import MASTER_TOKEN


async def _use(ledger, token, resource, times):
    for _ in range(times):
        await ledger.increment(token, resource)


@pytest.mark.asyncio
async def test_no_token_is_allowed(policy):
    decision = await policy.can_consume(None, ResourceClass.ARTICLES)
    assert decision.allowed


@pytest.mark.asyncio
async def test_master_token_never_reads_ledger(registry):
    ledger = MagicMock()
    policy = QuotaPolicy(registry, ledger)

    decision = await policy.can_consume(MASTER_TOKEN, ResourceClass.IMAGES, requested_units=1000)

    assert decision.allowed
    ledger.get.assert_not_called()
    ledger.increment.assert_not_called()


@pytest.mark.asyncio
@pytest.mark.parametrize("resource", list(ResourceClass))
@pytest.mark.parametrize("units", [1, 3])
async def test_unknown_token_denied_for_every_resource(policy, resource, units):
    decision = await policy.can_consume("bogus", resource, units)
    assert not decision.allowed
    assert decision.reason == "Invalid trial token"


@pytest.mark.asyncio
@pytest.mark.parametrize("resource", list(ResourceClass))
async def test_limit_boundary(policy, ledger, resource):
    limit = TRIAL_LIMITS.limit_for(resource)

    await _use(ledger, "trial-abc", resource, limit - 1)
    assert (await policy.can_consume("trial-abc", resource)).allowed

    await _use(ledger, "trial-abc", resource, 1)
    decision = await policy.can_consume("trial-abc", resource)
    assert not decision.allowed
    assert decision.current_usage == limit
    assert decision.limit == limit


@pytest.mark.asyncio
async def test_batch_request_counts_all_units(policy, ledger):
    assert (await policy.can_consume("trial-abc", ResourceClass.ARTICLES, 2)).allowed
    assert not (await policy.can_consume("trial-abc", ResourceClass.ARTICLES, 3)).allowed

    await _use(ledger, "trial-abc", ResourceClass.ARTICLES, 1)
    assert not (await policy.can_consume("trial-abc", ResourceClass.ARTICLES, 2)).allowed


@pytest.mark.asyncio
async def test_can_consume_does_not_mutate(policy, ledger):
    await policy.can_consume("trial-abc", ResourceClass.TOPIC_DISCOVERY)
    await policy.can_consume("trial-abc", ResourceClass.TOPIC_DISCOVERY)
    assert (await ledger.get("trial-abc")).topic_discovery_runs == 0


@pytest.mark.asyncio
async def test_single_image_limit_message(policy, ledger):
    await ledger.increment("trial-abc", ResourceClass.IMAGES)

    decision = await policy.can_consume("trial-abc", ResourceClass.IMAGES)

    assert not decision.allowed
    assert decision.reason == "Trial limit reached: maximum 1 image allowed (1 used)"


def test_plural_limit_message():
    assert limit_reached_reason(ResourceClass.ARTICLES, 2, 2) == "Trial limit reached: maximum 2 articles allowed (2 used)"
    assert limit_reached_reason(ResourceClass.TOPIC_DISCOVERY, 2, 2).startswith(
        "Trial limit reached: maximum 2 topic discovery runs"
    )


@pytest.mark.asyncio
@pytest.mark.parametrize("token", [None, MASTER_TOKEN, "trial-abc"])
async def test_non_positive_units_are_denied_not_raised(policy, token):
    decision = await policy.can_consume(token, ResourceClass.ARTICLES, 0)

    assert not decision.allowed
    assert decision.reason == "requested_units must be at least 1"


@pytest.mark.asyncio
async def test_enforce_rejects_non_positive_units(policy):
    with pytest.raises(ValidationError):
        await policy.enforce("trial-abc", ResourceClass.ARTICLES, -1)


@pytest.mark.asyncio
async def test_enforce_raises_matching_errors(policy, ledger):
    with pytest.raises(InvalidTrialTokenError):
        await policy.enforce("bogus", ResourceClass.ARTICLES)

    await _use(ledger, "trial-abc", ResourceClass.ARTICLES, 2)
    with pytest.raises(QuotaExceededError) as excinfo:
        await policy.enforce("trial-abc", ResourceClass.ARTICLES)
    assert excinfo.value.resource == "articles"
    assert excinfo.value.status_code == 403


@pytest.mark.asyncio
async def test_concurrent_checks_read_the_same_count(policy, ledger):
    # Check-then-increment is not atomic: both callers see one remaining unit
    await _use(ledger, "trial-abc", ResourceClass.ARTICLES, 1)
    first, second = await asyncio.gather(
        policy.can_consume("trial-abc", ResourceClass.ARTICLES),
        policy.can_consume("trial-abc", ResourceClass.ARTICLES),
    )
    assert first.allowed and second.allowed


@pytest.mark.asyncio
async def test_usage_summary_for_trial_token(policy, ledger):
    await _use(ledger, "trial-abc", ResourceClass.ARTICLES, 1)
    await _use(ledger, "trial-abc", ResourceClass.IMAGES, 1)

    summary = await policy.usage_summary("trial-abc")
    payload = summary.model_dump(by_alias=True)

    assert payload["isTrial"] is True
    assert payload["articlesGenerated"] == 1
    assert payload["articlesRemaining"] == 1
    assert payload["imagesRemaining"] == 0
    assert payload["topicDiscoveryRunsRemaining"] == 2
    assert payload["maxImages"] == 1


@pytest.mark.asyncio
async def test_usage_summary_master_is_unlimited(policy):
    summary = await policy.usage_summary(MASTER_TOKEN)
    assert summary.is_master
    assert summary.max_articles is None

    assert (await policy.usage_summary(None)).is_master


@pytest.mark.asyncio
async def test_usage_summary_unknown_token(policy):
    with pytest.raises(InvalidTrialTokenError):
        await policy.usage_summary("bogus")
