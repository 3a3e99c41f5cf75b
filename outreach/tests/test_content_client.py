"""ContentClient against a mocked provider transport."""

import json

import httpx
import pytest

from outreach.core.errors import UpstreamServiceError
from outreach.services.content_client import ContentClient


def _client(handler, api_key="sk-test"):
    return ContentClient(api_key, base_url="https://provider.test/v1", transport=httpx.MockTransport(handler))


def _chat(content: str) -> httpx.Response:
    return httpx.Response(200, json={"choices": [{"message": {"content": content}}]})


@pytest.mark.asyncio
async def test_generate_topics_parses_json_payload():
    seen = {}

    def handler(request: httpx.Request):
        seen["path"] = request.url.path
        seen["auth"] = request.headers["authorization"]
        seen["body"] = json.loads(request.content)
        return _chat(json.dumps({"topics": [{"title": "A"}, {"title": "B"}, "junk", {"title": "C"}]}))

    topics = await _client(handler).generate_topics("dev tools", count=2)

    assert topics == [{"title": "A"}, {"title": "B"}]
    assert seen["path"] == "/v1/chat/completions"
    assert seen["auth"] == "Bearer sk-test"
    assert seen["body"]["response_format"] == {"type": "json_object"}


@pytest.mark.asyncio
async def test_generate_article_returns_html():
    html = await _client(lambda request: _chat("<h2>Hi</h2>")).generate_article("Hi", niche="seo")
    assert html == "<h2>Hi</h2>"


@pytest.mark.asyncio
async def test_generate_image_returns_url():
    def handler(request: httpx.Request):
        assert request.url.path == "/v1/images/generations"
        return httpx.Response(200, json={"data": [{"url": "https://img.test/1.png"}]})

    assert await _client(handler).generate_image("a cat") == "https://img.test/1.png"


@pytest.mark.asyncio
async def test_provider_error_status_raises_upstream_error():
    with pytest.raises(UpstreamServiceError):
        await _client(lambda request: httpx.Response(500, json={"error": "boom"})).generate_article("x")


@pytest.mark.asyncio
async def test_malformed_topics_raise_upstream_error():
    with pytest.raises(UpstreamServiceError):
        await _client(lambda request: _chat("not json")).generate_topics("x")


@pytest.mark.asyncio
async def test_missing_api_key_raises_without_calling_provider():
    def handler(request):
        raise AssertionError("provider should not be called")

    with pytest.raises(UpstreamServiceError):
        await _client(handler, api_key=None).generate_image("x")
