"""HTTP client for the upstream inference API.

``probe`` is the key health check: a one-token chat completion authorised by
the key under test. ``list_models`` fetches the upstream model catalogue with
retries and linear backoff.

SECURITY: Key values never appear in log output unmasked.
"""

from __future__ import annotations

import asyncio
import logging

import httpx

from keypool.logging_config import mask_key
from keypool.middleware.error_handler import ProbeError, UpstreamError

logger = logging.getLogger(__name__)

_ERROR_BODY_LIMIT = 200


def _truncate(text: str) -> str:
    if len(text) > _ERROR_BODY_LIMIT:
        return text[:_ERROR_BODY_LIMIT] + "..."
    return text


class UpstreamClient:
    """Async client for the upstream OpenAI-compatible API.

    Parameters
    ----------
    base_url:
        Upstream API root (e.g. "https://api-inference.modelscope.cn/v1").
    models_timeout_seconds:
        Timeout for the model listing request.
    models_max_retries:
        Attempts for the model listing before giving up.
    """

    def __init__(
        self,
        base_url: str,
        models_timeout_seconds: float = 30.0,
        models_max_retries: int = 3,
    ) -> None:
        self._base_url = base_url.rstrip("/")
        self._models_timeout_seconds = models_timeout_seconds
        self._models_max_retries = models_max_retries
        self._client = httpx.AsyncClient()

    async def aclose(self) -> None:
        await self._client.aclose()

    async def probe(self, key: str, model: str) -> None:
        """Run one minimal chat completion with ``key`` against ``model``.

        Returns normally when the upstream answers 200. The caller bounds the
        call with its own timeout.

        Raises
        ------
        ProbeError
            On a non-200 response or a transport failure.
        """
        payload = {
            "model": model,
            "messages": [{"role": "user", "content": "Hi"}],
            "max_tokens": 1,
            "stream": False,
        }
        try:
            response = await self._client.post(
                f"{self._base_url}/chat/completions",
                json=payload,
                headers={"Authorization": f"Bearer {key}"},
                timeout=None,
            )
        except httpx.HTTPError as exc:
            raise ProbeError(f"Network error: {exc}") from exc

        if response.status_code != 200:
            raise ProbeError(f"HTTP {response.status_code}: {_truncate(response.text)}")

        logger.debug("Probe succeeded", extra={"key": mask_key(key), "model": model})

    async def list_models(self, key: str) -> dict:
        """Fetch ``GET /models`` authorised by ``key``.

        Retry schedule: 1s, 2s, ... between attempts.

        Raises
        ------
        UpstreamError
            If every attempt fails.
        """
        url = f"{self._base_url}/models"
        last_error: str = "no attempt made"

        for attempt in range(self._models_max_retries):
            try:
                response = await self._client.get(
                    url,
                    headers={"Authorization": f"Bearer {key}"},
                    timeout=self._models_timeout_seconds,
                )
                if response.status_code == 200:
                    try:
                        return response.json()
                    except ValueError:
                        last_error = "invalid JSON body"
                else:
                    last_error = f"HTTP {response.status_code}"
            except httpx.HTTPError as exc:
                last_error = f"Network error: {exc}"

            logger.warning(
                "Upstream models request failed (attempt %d/%d): %s",
                attempt + 1,
                self._models_max_retries,
                last_error,
            )
            if attempt < self._models_max_retries - 1:
                await asyncio.sleep(attempt + 1)

        logger.error(
            "Upstream models request failed after %d attempts", self._models_max_retries
        )
        raise UpstreamError(f"Upstream models request failed: {last_error}")
