"""Text-cleanup collaborator: normalizes transcripts through an LLM."""

from __future__ import annotations

import asyncio
import logging
import time
from abc import ABC, abstractmethod

import httpx

OPENROUTER_URL = "https://openrouter.ai/api/v1/chat/completions"

CLEANUP_INSTRUCTIONS = (
    "You clean up shop-keeper inventory messages transcribed from speech. "
    "Rewrite spelled-out numbers as digits, fix the spelling of product names, "
    "keep the original language and script, and keep every item. "
    "Reply with the cleaned message only."
)


class TextCleaner(ABC):
    """Contract: bounded-length string in, cleaned string out. May raise."""

    @abstractmethod
    async def clean(self, text: str, language: str | None = None) -> str:
        """Return a cleaned version of ``text``."""


class PassthroughCleaner(TextCleaner):
    """Used when no cleanup service is configured."""

    async def clean(self, text: str, language: str | None = None) -> str:
        return text


class OpenRouterCleaner(TextCleaner):
    """Call an OpenRouter chat model to normalize a transcript."""

    def __init__(
        self,
        api_key: str,
        *,
        model: str = "minimax/minimax-m2:free",
        referer: str | None = None,
        title: str | None = None,
        timeout: float = 15.0,
        min_interval: float = 0.2,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._api_key = api_key
        self._model = model
        self._referer = referer
        self._title = title or "Stockbot"
        self._timeout = timeout
        self._min_interval = max(0.0, min_interval)
        self._last_call = 0.0
        self._rate_lock = asyncio.Lock()
        self._transport = transport
        self._logger = logging.getLogger("stockbot.cleanup")

    async def clean(self, text: str, language: str | None = None) -> str:
        async with self._rate_lock:
            wait_for = self._min_interval - (time.monotonic() - self._last_call)
            if wait_for > 0:
                await asyncio.sleep(wait_for)
            self._last_call = time.monotonic()

        headers = {
            "Authorization": f"Bearer {self._api_key}",
            "Content-Type": "application/json",
        }
        if self._referer:
            headers["HTTP-Referer"] = self._referer
        if self._title:
            headers["X-Title"] = self._title

        user_content = text if not language else f"[language: {language}]\n{text}"
        payload = {
            "model": self._model,
            "temperature": 0,
            "messages": [
                {"role": "system", "content": CLEANUP_INSTRUCTIONS},
                {"role": "user", "content": user_content},
            ],
        }

        async with httpx.AsyncClient(timeout=self._timeout, transport=self._transport) as client:
            response = await client.post(OPENROUTER_URL, headers=headers, json=payload)
            response.raise_for_status()
            data = response.json()

        content = data.get("choices", [{}])[0].get("message", {}).get("content", "") or ""
        content = " ".join(content.split())
        self._logger.debug("Cleanup returned %d chars", len(content))
        return content
