"""
Metered generation endpoints.

Each endpoint follows the same sequence:
1. QuotaPolicy.enforce before the provider call (403 on deny)
2. the provider call (502 on failure, no quota consumed)
3. UsageLedger.increment for trial tokens after success
"""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel, Field

from outreach.api.deps import get_content_client, get_quota_policy, get_trial_token
from outreach.core.logging import log_event
from outreach.features.trial.ledger import ResourceClass
from outreach.features.trial.policy import QuotaPolicy
from outreach.services.content_client import ContentClient

logger = logging.getLogger("outreach")

router = APIRouter(prefix="/api", tags=["generation"])


class TopicsRequest(BaseModel):
    niche: str
    count: int = Field(5, ge=1, le=20)


class ArticleRequest(BaseModel):
    topic: str
    niche: Optional[str] = None
    word_count: int = Field(1200, ge=200, le=5000, alias="wordCount")

    model_config = {"populate_by_name": True}


class ImageRequest(BaseModel):
    prompt: str
    size: str = "1024x1024"


async def record_consumption(policy: QuotaPolicy, token: Optional[str], resource: ResourceClass) -> None:
    """Count one unit against a trial token; master and un-tokened callers are not metered."""
    if token and policy.registry.is_trial_token(token):
        await policy.ledger.increment(token, resource)


def _require_text(value: str, field: str) -> str:
    if not value or not value.strip():
        raise HTTPException(status_code=422, detail=f"{field} cannot be empty")
    return value.strip()


@router.post("/generate-topics")
async def generate_topics(
    body: TopicsRequest,
    token: Optional[str] = Depends(get_trial_token),
    policy: QuotaPolicy = Depends(get_quota_policy),
    client: ContentClient = Depends(get_content_client),
):
    niche = _require_text(body.niche, "niche")
    await policy.enforce(token, ResourceClass.TOPIC_DISCOVERY)

    topics = await client.generate_topics(niche, body.count)
    await record_consumption(policy, token, ResourceClass.TOPIC_DISCOVERY)

    log_event("info", "generation.topics", token=token, event_type="topic_discovery", extra={"count": len(topics)})
    return {"topics": topics}


@router.post("/articles")
async def generate_article(
    body: ArticleRequest,
    token: Optional[str] = Depends(get_trial_token),
    policy: QuotaPolicy = Depends(get_quota_policy),
    client: ContentClient = Depends(get_content_client),
):
    topic = _require_text(body.topic, "topic")
    await policy.enforce(token, ResourceClass.ARTICLES)

    html = await client.generate_article(topic, niche=body.niche, word_count=body.word_count)
    await record_consumption(policy, token, ResourceClass.ARTICLES)

    log_event("info", "generation.article", token=token, event_type="article", extra={"chars": len(html)})
    return {"topic": topic, "html": html}


@router.post("/article-image")
async def generate_article_image(
    body: ImageRequest,
    token: Optional[str] = Depends(get_trial_token),
    policy: QuotaPolicy = Depends(get_quota_policy),
    client: ContentClient = Depends(get_content_client),
):
    prompt = _require_text(body.prompt, "prompt")
    await policy.enforce(token, ResourceClass.IMAGES)

    url = await client.generate_image(prompt, size=body.size)
    await record_consumption(policy, token, ResourceClass.IMAGES)

    log_event("info", "generation.image", token=token, event_type="image")
    return {"url": url}
