from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable

from .auth import RequestContext
from .client import ExpertClient, require_token
from .errors import EmptyInputError, ExpertError, InvalidArgumentsError
from .images import NormalizedImage, normalize_image

logger = logging.getLogger(__name__)

ImageNormalizer = Callable[..., Awaitable[NormalizedImage]]


# ---------------------------------------------------------------------------
# Tool schema registry — one entry per exposed tool
# ---------------------------------------------------------------------------

TOOL_SCHEMAS: list[dict[str, Any]] = [
    {
        "name": "ask_expert",
        "description": "Ask a question to an AI expert and get a response",
        "inputSchema": {
            "type": "object",
            "properties": {
                "question": {"type": "string", "description": "The question to ask the AI expert"},
            },
            "required": ["question"],
        },
    },
    {
        "name": "ask_expert_on_image",
        "description": (
            "Ask a question to an AI expert about an image and get a response. "
            "The image can be a URL, a local file path, or a base64 encoded string. "
            "All inputs are converted to base64 data URIs."
        ),
        "inputSchema": {
            "type": "object",
            "properties": {
                "prompt": {"type": "string", "description": "The question or prompt related to the image"},
                "image": {
                    "type": "string",
                    "description": "Image URL, local file path, or base64 encoded image string",
                },
            },
            "required": ["prompt", "image"],
        },
    },
]


@dataclass(slots=True)
class ToolResult:
    content: list[dict[str, Any]] = field(default_factory=list)
    is_error: bool = False

    @classmethod
    def text(cls, text: str, *, is_error: bool = False) -> "ToolResult":
        return cls([{"type": "text", "text": text}], is_error)

    def as_mcp(self) -> dict[str, Any]:
        return {"content": self.content, "isError": self.is_error}


class ExpertTools:
    def __init__(self, client: ExpertClient, normalizer: ImageNormalizer = normalize_image) -> None:
        self.client = client
        self.normalizer = normalizer

    @property
    def schemas(self) -> list[dict[str, Any]]:
        return TOOL_SCHEMAS

    async def call_tool(self, name: str, arguments: dict[str, Any], context: RequestContext) -> ToolResult:
        """Dispatch one ``tools/call``; failures come back flagged, never raised."""
        try:
            if name == "ask_expert":
                question = _string_arg(arguments, "question")
                answer = await self.client.ask_text(question, context.token)
                return ToolResult.text(answer)

            if name == "ask_expert_on_image":
                prompt = _string_arg(arguments, "prompt")
                image = _string_arg(arguments, "image")
                answer = await self.ask_on_image(prompt, image, context)
                return ToolResult.text(answer)

            return ToolResult.text(f"Unknown tool: {name}", is_error=True)

        except ExpertError as exc:
            logger.warning("Tool '%s' failed: %s: %s", name, type(exc).__name__, exc)
            return ToolResult.text(f"Error: {exc}", is_error=True)
        except Exception as exc:
            logger.error("Tool '%s' crashed: %s", name, exc, exc_info=True)
            return ToolResult.text(f"Error: {exc}", is_error=True)

    async def ask_on_image(self, prompt: str, image: str, context: RequestContext) -> str:
        if not prompt.strip():
            raise EmptyInputError("Prompt cannot be empty")
        if not image.strip():
            raise EmptyInputError("Image cannot be empty")
        # Checked before normalizing so nothing is downloaded without a credential.
        require_token(context.token)
        normalized = await self.normalizer(image, timeout=self.client.timeout)
        return await self.client.ask_with_image(prompt, normalized, context.token)


def _string_arg(arguments: dict[str, Any], key: str) -> str:
    value = arguments.get(key)
    if value is None:
        return ""
    if not isinstance(value, str):
        raise InvalidArgumentsError(f"'{key}' must be a string, got {type(value).__name__}")
    return value
