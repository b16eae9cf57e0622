"""
OpenRouter text generator.

Implements ITextGenerator against the OpenRouter chat-completions API,
which fronts many model vendors behind one OpenAI-compatible endpoint.
Every failure surfaces as ProviderError so the pipeline's step
combinator can cycle models or fall back.

Usage:
    async with OpenRouterTextGenerator(api_key="sk-or-...") as generator:
        text = await generator.generate(system, user, "openai/gpt-4o")
"""

import logging

import httpx

from listing_enhancer.core.exceptions import ProviderError
from listing_enhancer.core.interfaces import GenerationOptions, ITextGenerator

logger = logging.getLogger(__name__)

DEFAULT_BASE_URL = "https://openrouter.ai/api/v1"
DEFAULT_TEMPERATURE = 0.2
DEFAULT_MAX_TOKENS = 2000


class OpenRouterTextGenerator(ITextGenerator):
    """
    ITextGenerator backed by OpenRouter.

    The underlying httpx client is created lazily and reused; call
    ``close()`` (or use ``async with``) when done. Per-attempt deadlines
    are enforced by the caller; ``request_timeout`` only guards against
    a hung connection.
    """

    def __init__(
        self,
        api_key: str,
        base_url: str = DEFAULT_BASE_URL,
        site_url: str = "",
        app_title: str = "",
        temperature: float = DEFAULT_TEMPERATURE,
        max_tokens: int = DEFAULT_MAX_TOKENS,
        request_timeout: float = 60.0,
        client: httpx.AsyncClient | None = None,
    ):
        self._api_key = api_key
        self._base_url = base_url.rstrip("/")
        self._site_url = site_url
        self._app_title = app_title
        self._temperature = temperature
        self._max_tokens = max_tokens
        self._request_timeout = request_timeout
        self._client = client

    async def __aenter__(self) -> "OpenRouterTextGenerator":
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.close()

    async def close(self) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None

    def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=self._request_timeout)
        return self._client

    def _get_headers(self) -> dict[str, str]:
        """Build authorization and attribution headers."""
        if not self._api_key:
            raise ProviderError("No OpenRouter API key configured", retryable=False)
        headers = {
            "Authorization": f"Bearer {self._api_key}",
            "Content-Type": "application/json",
        }
        if self._site_url:
            headers["HTTP-Referer"] = self._site_url
        if self._app_title:
            headers["X-Title"] = self._app_title
        return headers

    def _build_payload(
        self,
        system_prompt: str,
        user_prompt: str,
        model_id: str,
        options: GenerationOptions,
    ) -> dict:
        payload = {
            "model": model_id,
            "messages": [
                {"role": "system", "content": system_prompt},
                {"role": "user", "content": user_prompt},
            ],
            "temperature": options.temperature if options.temperature is not None else self._temperature,
            "max_tokens": options.max_tokens or self._max_tokens,
        }
        if options.json_mode:
            payload["response_format"] = {"type": "json_object"}
        return payload

    async def generate(
        self,
        system_prompt: str,
        user_prompt: str,
        model_id: str,
        options: GenerationOptions | None = None,
    ) -> str:
        """
        Request one chat completion and return its message content.

        Raises:
            ProviderError: On transport failure, a non-2xx status, or a
                response without message content.
        """
        options = options or GenerationOptions()
        payload = self._build_payload(system_prompt, user_prompt, model_id, options)
        data = await self._request(payload, model_id)

        try:
            content = data["choices"][0]["message"]["content"]
        except (KeyError, IndexError, TypeError) as e:
            raise ProviderError(
                f"Malformed completion from {model_id}",
                model_id=model_id,
                details={"response": str(data)[:500]},
            ) from e

        if not isinstance(content, str) or not content.strip():
            raise ProviderError(f"Empty completion from {model_id}", model_id=model_id)

        logger.debug(f"OpenRouter {model_id} returned {len(content)} chars")
        return content

    async def _request(self, payload: dict, model_id: str) -> dict:
        """POST a chat-completions payload, mapping failures to ProviderError."""
        url = f"{self._base_url}/chat/completions"
        headers = self._get_headers()

        try:
            response = await self._get_client().post(url, headers=headers, json=payload)
        except httpx.HTTPError as e:
            raise ProviderError(
                f"OpenRouter request failed: {type(e).__name__}",
                model_id=model_id,
            ) from e

        if response.status_code in (401, 403):
            raise ProviderError(
                "OpenRouter rejected the API key",
                model_id=model_id,
                status_code=response.status_code,
                retryable=False,
            )

        if response.status_code == 429:
            raise ProviderError(
                "OpenRouter rate limit exceeded",
                model_id=model_id,
                status_code=429,
            )

        if response.status_code >= 400:
            error_detail = response.text
            try:
                error_json = response.json()
                error = error_json.get("error") if isinstance(error_json, dict) else None
                if isinstance(error, dict):
                    error_detail = error.get("message", error_detail)
            except ValueError:
                pass

            raise ProviderError(
                f"OpenRouter API error ({response.status_code}): {error_detail}",
                model_id=model_id,
                status_code=response.status_code,
            )

        try:
            return response.json()
        except ValueError as e:
            raise ProviderError(
                "OpenRouter returned a non-JSON body", model_id=model_id
            ) from e
