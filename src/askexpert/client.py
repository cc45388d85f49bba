from __future__ import annotations

import logging
from typing import Any

import httpx

from .config import ExpertConfig
from .errors import ApiError, EmptyInputError, MalformedResponseError, UnauthorizedError
from .images import NormalizedImage

logger = logging.getLogger(__name__)

CHAT_COMPLETIONS_PATH = "/v1/chat/completions"

# Error bodies are embedded in messages; keep them readable.
_BODY_PREVIEW_CHARS = 300


class ExpertClient:
    """Thin client for an OpenAI-compatible ``/v1/chat/completions`` endpoint.

    The bearer token is passed per call rather than stored on the client, so
    one instance can serve requests authenticated with different tokens.
    """

    def __init__(self, config: ExpertConfig) -> None:
        self.config = config
        self.base_url = config.base_url
        self.timeout = config.timeout

    def build_text_payload(self, question: str) -> dict[str, Any]:
        return {
            "model": self.config.model,
            "messages": [{"role": "user", "content": question}],
            "temperature": self.config.temperature,
        }

    def build_image_payload(self, prompt: str, image: NormalizedImage) -> dict[str, Any]:
        content = [
            {"type": "text", "text": prompt},
            {"type": "image_url", "image_url": {"url": image.data_uri}},
        ]
        return {
            "model": self.config.model,
            "messages": [{"role": "user", "content": content}],
            "temperature": self.config.temperature,
        }

    async def ask_text(self, question: str, token: str | None) -> str:
        if not question or not question.strip():
            raise EmptyInputError("Question cannot be empty")
        require_token(token)
        return await self._chat(self.build_text_payload(question), token)

    async def ask_with_image(self, prompt: str, image: NormalizedImage, token: str | None) -> str:
        if not prompt or not prompt.strip():
            raise EmptyInputError("Prompt cannot be empty")
        require_token(token)
        return await self._chat(self.build_image_payload(prompt, image), token)

    async def _chat(self, payload: dict[str, Any], token: str | None) -> str:
        url = f"{self.base_url}{CHAT_COMPLETIONS_PATH}"
        headers = {"Authorization": f"Bearer {token}"}
        try:
            async with httpx.AsyncClient(timeout=self.timeout) as client:
                response = await client.post(url, json=payload, headers=headers)
                response.raise_for_status()
        except httpx.TimeoutException as exc:
            raise ApiError(f"API request timed out: {CHAT_COMPLETIONS_PATH}") from exc
        except httpx.HTTPStatusError as exc:
            body = exc.response.text[:_BODY_PREVIEW_CHARS]
            raise ApiError(
                f"API error: HTTP {exc.response.status_code} on {CHAT_COMPLETIONS_PATH}: {body}",
                status_code=exc.response.status_code,
                body=body,
            ) from exc
        except httpx.HTTPError as exc:
            raise ApiError(f"API error: network error on {CHAT_COMPLETIONS_PATH}: {exc}") from exc

        try:
            data = response.json()
        except ValueError as exc:
            raise MalformedResponseError(f"JSON parsing error: {exc}") from exc
        content = extract_reply(data)
        logger.info("Chat completion returned %d chars (model=%s)", len(content), payload.get("model"))
        return content


def extract_reply(data: Any) -> str:
    """Return ``choices[0].message.content`` or raise MalformedResponseError."""
    try:
        content = data["choices"][0]["message"]["content"]
    except (KeyError, IndexError, TypeError) as exc:
        raise MalformedResponseError("Unexpected API response format from AI service.") from exc
    if not isinstance(content, str):
        raise MalformedResponseError("Unexpected API response format from AI service.")
    return content


def require_token(token: str | None) -> None:
    if not token:
        raise UnauthorizedError(
            "No authorization token found. MCP client must provide a Bearer token for API access.",
            status_code=401,
        )
