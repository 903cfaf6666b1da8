"""
Generative model provider boundary.

``ModelProvider`` is the interface the call planner depends on: one prompt
in, raw text plus token counts out. ``GeminiProvider`` implements it over
the Gemini ``generateContent`` REST endpoint with ``httpx``.

HTTP failures are raised as typed ``ModelCallError`` subclasses chosen from
the status code and the Gemini ``error.status`` field; the message keeps the
status and the provider's error body for logging.
"""

import logging
from dataclasses import dataclass
from typing import Any, Optional, Protocol

import httpx

from src.errors import (
    ModelCallError,
    ModelInvalidCredentialError,
    ModelRateLimitedError,
    ModelTimeoutError,
    ModelUnsupportedError,
)

logger = logging.getLogger(__name__)

_INVALID_KEY_STATUSES = ("UNAUTHENTICATED", "PERMISSION_DENIED")


def error_class_for(status_code: int, body: Any, text: str = "") -> type[ModelCallError]:
    """Pick the error type for a failed Gemini response.

    Gemini reports a bad key as 400 INVALID_ARGUMENT with reason
    ``API_KEY_INVALID``, so the reason is checked as well as the status.
    """
    error = body.get("error") if isinstance(body, dict) else None
    status = str(error.get("status") or "") if isinstance(error, dict) else ""
    if status_code == 429 or status == "RESOURCE_EXHAUSTED":
        return ModelRateLimitedError
    if status_code in (401, 403) or status in _INVALID_KEY_STATUSES or "API_KEY_INVALID" in text:
        return ModelInvalidCredentialError
    if status_code == 404 or status == "NOT_FOUND":
        return ModelUnsupportedError
    return ModelCallError


@dataclass
class ProviderResponse:
    """Raw provider output and token usage for one call."""

    text: str
    input_tokens: int = 0
    output_tokens: int = 0
    total_tokens: int = 0


class ModelProvider(Protocol):
    async def generate(
        self,
        api_key: str,
        model: str,
        prompt: str,
        response_schema: Optional[dict[str, Any]] = None,
        temperature: float = 0.7,
        max_output_tokens: int = 2048,
    ) -> ProviderResponse:
        ...


class GeminiProvider:
    """Async REST client for Gemini ``models/{model}:generateContent``."""

    def __init__(
        self,
        base_url: str = "https://generativelanguage.googleapis.com",
        timeout: float = 30.0,
        client: Optional[httpx.AsyncClient] = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self._client = client or httpx.AsyncClient(timeout=timeout)

    def _build_payload(
        self,
        prompt: str,
        response_schema: Optional[dict[str, Any]],
        temperature: float,
        max_output_tokens: int,
    ) -> dict[str, Any]:
        generation_config: dict[str, Any] = {
            "temperature": float(temperature),
            "maxOutputTokens": int(max_output_tokens),
        }
        if response_schema is not None:
            generation_config["responseMimeType"] = "application/json"
            generation_config["responseSchema"] = response_schema
        return {
            "contents": [{"role": "user", "parts": [{"text": prompt}]}],
            "generationConfig": generation_config,
        }

    async def generate(
        self,
        api_key: str,
        model: str,
        prompt: str,
        response_schema: Optional[dict[str, Any]] = None,
        temperature: float = 0.7,
        max_output_tokens: int = 2048,
    ) -> ProviderResponse:
        url = f"{self.base_url}/v1beta/models/{model}:generateContent"
        payload = self._build_payload(prompt, response_schema, temperature, max_output_tokens)

        try:
            response = await self._client.post(
                url,
                params={"key": api_key},
                headers={"Content-Type": "application/json"},
                json=payload,
            )
            response.raise_for_status()
            data = response.json()
        except httpx.TimeoutException as e:
            raise ModelTimeoutError(f"Gemini timeout calling {model}: {e}") from e
        except httpx.HTTPStatusError as e:
            status_code = e.response.status_code
            error_text = e.response.text[:500] if e.response.text else ""
            try:
                body = e.response.json()
            except ValueError:
                body = None
            raise error_class_for(status_code, body, error_text)(
                f"Gemini API returned error {status_code}: {error_text}"
            ) from e
        except httpx.RequestError as e:
            raise ModelCallError(f"Gemini request failed: {e}") from e
        except ValueError as e:
            raise ModelCallError(f"Gemini returned non-JSON body, parsing failed: {e}") from e

        return self._parse_response(data, model)

    def _parse_response(self, data: dict[str, Any], model: str) -> ProviderResponse:
        try:
            candidate = data["candidates"][0]
            parts = candidate.get("content", {}).get("parts", [])
            text = "".join(str(part.get("text", "")) for part in parts)
        except (KeyError, IndexError, TypeError, AttributeError) as e:
            feedback = data.get("promptFeedback") if isinstance(data, dict) else None
            raise ModelCallError(
                f"Gemini response from {model} has no candidates: {feedback or e}"
            ) from e

        usage = data.get("usageMetadata") or {}
        input_tokens = int(usage.get("promptTokenCount") or 0)
        output_tokens = int(usage.get("candidatesTokenCount") or 0)
        total_tokens = int(usage.get("totalTokenCount") or (input_tokens + output_tokens))
        logger.debug(
            "Gemini %s returned %d chars (%d/%d tokens)",
            model, len(text), input_tokens, output_tokens,
        )
        return ProviderResponse(
            text=text,
            input_tokens=input_tokens,
            output_tokens=output_tokens,
            total_tokens=total_tokens,
        )

    async def aclose(self) -> None:
        await self._client.aclose()
