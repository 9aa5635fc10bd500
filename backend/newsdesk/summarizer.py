"""LLM rewrite of news items through an OpenAI-compatible chat completions API."""
import logging
from typing import Optional

import httpx

from .config import Settings

logger = logging.getLogger(__name__)


class Summarizer:
    def __init__(self, settings: Settings, client: Optional[httpx.AsyncClient] = None, timeout: float = 60):
        self.api_url = f"{settings.openai_base_url}/chat/completions"
        self.api_key = settings.openai_api_key
        self.system_prompt = settings.system_prompt
        self._client = client
        self._timeout = timeout

    async def _post(self, payload: dict) -> httpx.Response:
        headers = {
            "Authorization": f"Bearer {self.api_key}",
            "Content-Type": "application/json",
        }
        if self._client is not None:
            return await self._client.post(self.api_url, headers=headers, json=payload)
        async with httpx.AsyncClient(timeout=self._timeout) as client:
            return await client.post(self.api_url, headers=headers, json=payload)

    async def summarize(self, content: str, prompt: str, model: str) -> Optional[str]:
        """Rewrite ``content`` following ``prompt``. None means the call failed."""
        logger.info(f"Rewrite request: model={model}, prompt={prompt[:100]!r}, content_len={len(content)}")
        payload = {
            "model": model,
            "messages": [
                {"role": "system", "content": self.system_prompt},
                {"role": "user", "content": f"{content}\n\n{prompt}"},
            ],
        }
        try:
            resp = await self._post(payload)
            if resp.status_code != 200:
                logger.error(f"LLM error {resp.status_code}: {resp.text[:200]}")
                return None
            answer = resp.json()["choices"][0]["message"]["content"]
        except (httpx.HTTPError, httpx.InvalidURL, ValueError, KeyError, IndexError, TypeError) as e:
            logger.error(f"Rewrite call with model {model} failed: {e}")
            return None

        if not answer or not answer.strip():
            logger.warning("Rewrite call returned empty content")
            return None
        logger.info(f"Rewrite succeeded, {len(answer)} chars")
        return answer.strip()
