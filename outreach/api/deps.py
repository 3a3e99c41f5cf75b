"""FastAPI dependencies resolving the per-process objects built in create_app."""

from typing import Optional

from fastapi import Request

from outreach.core.config import Settings
from outreach.features.access.classifier import extract_token
from outreach.features.access.registry import TokenRegistry
from outreach.features.trial.ledger import UsageLedger
from outreach.features.trial.policy import QuotaPolicy
from outreach.services.content_client import ContentClient


def get_settings(request: Request) -> Settings:
    return request.app.state.settings


def get_registry(request: Request) -> TokenRegistry:
    return request.app.state.token_registry


def get_ledger(request: Request) -> UsageLedger:
    return request.app.state.usage_ledger


def get_quota_policy(request: Request) -> QuotaPolicy:
    return request.app.state.quota_policy


def get_content_client(request: Request) -> ContentClient:
    return request.app.state.content_client


def get_trial_token(request: Request) -> Optional[str]:
    """Token as presented (query or x-trial-token). Not trusted until checked."""
    return extract_token(request)
