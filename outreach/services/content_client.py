"""
Thin client for the chat/image model provider (OpenAI-compatible API).

Prompt construction lives with the caller; this module only ships the
request and reshapes the response. Provider failures surface as
UpstreamServiceError so metered endpoints can skip the ledger increment.
"""
import json
import logging
from typing import Any, Dict, List, Optional

import httpx

from outreach.core.config import Settings
from outreach.core.errors import UpstreamServiceError

logger = logging.getLogger("outreach")


class ContentClient:
    def __init__(
        self,
        api_key: Optional[str],
        *,
        base_url: str = "https://api.openai.com/v1",
        model: str = "gpt-4o-mini",
        image_model: str = "dall-e-3",
        timeout_seconds: float = 60.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.api_key = api_key
        self.base_url = base_url.rstrip("/")
        self.model = model
        self.image_model = image_model
        self.timeout_seconds = timeout_seconds
        self._transport = transport

    @classmethod
    def from_settings(cls, cfg: Settings) -> "ContentClient":
        return cls(
            cfg.OPENAI_API_KEY,
            base_url=cfg.OPENAI_BASE_URL,
            model=cfg.OPENAI_MODEL,
            image_model=cfg.OPENAI_IMAGE_MODEL,
            timeout_seconds=cfg.PROVIDER_TIMEOUT_SECONDS,
        )

    async def _post(self, path: str, payload: Dict[str, Any]) -> Dict[str, Any]:
        if not self.api_key:
            raise UpstreamServiceError("Content provider is not configured (OPENAI_API_KEY missing)")

        headers = {"Authorization": f"Bearer {self.api_key}"}
        try:
            async with httpx.AsyncClient(
                base_url=self.base_url,
                timeout=self.timeout_seconds,
                transport=self._transport,
            ) as client:
                response = await client.post(path, json=payload, headers=headers)
                response.raise_for_status()
                return response.json()
        except httpx.HTTPStatusError as e:
            logger.error(f"[content_client] provider returned {e.response.status_code} for {path}")
            raise UpstreamServiceError(f"Content provider error ({e.response.status_code})")
        except (httpx.HTTPError, ValueError) as e:
            logger.error(f"[content_client] provider call failed for {path}: {type(e).__name__}")
            raise UpstreamServiceError("Content provider unreachable")

    async def complete(self, system: str, user: str, *, json_mode: bool = False, temperature: float = 0.7) -> str:
        payload: Dict[str, Any] = {
            "model": self.model,
            "messages": [
                {"role": "system", "content": system},
                {"role": "user", "content": user},
            ],
            "temperature": temperature,
        }
        if json_mode:
            payload["response_format"] = {"type": "json_object"}

        data = await self._post("/chat/completions", payload)
        try:
            return data["choices"][0]["message"]["content"] or ""
        except (KeyError, IndexError, TypeError):
            raise UpstreamServiceError("Content provider returned an unexpected payload")

    async def generate_topics(self, niche: str, count: int = 5) -> List[Dict[str, Any]]:
        content = await self.complete(
            "You propose outreach article topics. Reply with JSON: {\"topics\": [{\"title\": str, \"angle\": str}]}.",
            f"Niche: {niche}\nNumber of topics: {count}",
            json_mode=True,
        )
        try:
            topics = json.loads(content).get("topics", [])
        except (json.JSONDecodeError, AttributeError):
            raise UpstreamServiceError("Content provider returned malformed topics")
        return [t for t in topics if isinstance(t, dict)][:count]

    async def generate_article(self, topic: str, *, niche: Optional[str] = None, word_count: int = 1200) -> str:
        context = f"Niche: {niche}\n" if niche else ""
        return await self.complete(
            "You write well-sourced outreach articles in clean HTML (h2/h3/p/ul).",
            f"{context}Topic: {topic}\nTarget length: about {word_count} words.",
        )

    async def generate_image(self, prompt: str, size: str = "1024x1024") -> str:
        data = await self._post(
            "/images/generations",
            {"model": self.image_model, "prompt": prompt, "n": 1, "size": size},
        )
        try:
            return data["data"][0]["url"]
        except (KeyError, IndexError, TypeError):
            raise UpstreamServiceError("Content provider returned no image")
