"""Nano Banana — Gemini image editing via OpenRouter.

One call per render: ordered reference images plus an instruction, answered
with a single edited image. The OpenAI client is injected so tests can swap it
and so the app owns a single connection pool.
"""

import logging
from dataclasses import dataclass

import openai
from openai import AsyncOpenAI

from ..config import (
    APP_REFERER,
    APP_TITLE,
    IMAGE_EDIT_MODEL,
    OPENROUTER_API_KEY,
    OPENROUTER_BASE_URL,
    RENDER_TIMEOUT_S,
)
from ..errors import QuotaExceededError, RenderTimeoutError, UnknownExternalError

logger = logging.getLogger(__name__)

# Gemini-native reasons OpenRouter passes through as native_finish_reason
_SAFETY_REASONS = {
    "content_filter",
    "SAFETY",
    "IMAGE_SAFETY",
    "PROHIBITED_CONTENT",
    "BLOCKLIST",
    "SPII",
}


@dataclass
class ImageEditCall:
    """Everything sent to the model for one edit."""

    instruction: str
    images: list[str]  # data URLs, already in slot order
    temperature: float
    aspect_ratio: str | None = None


@dataclass
class ImageEditResult:
    image_url: str | None
    finish_reason: str | None = None
    text: str = ""
    refused: bool = False


def create_openrouter_client(timeout: float = RENDER_TIMEOUT_S + 10) -> AsyncOpenAI:
    """Client for OpenRouter. Automatic retries are off: an edit call costs money."""
    return AsyncOpenAI(
        base_url=OPENROUTER_BASE_URL,
        api_key=OPENROUTER_API_KEY,
        max_retries=0,
        timeout=timeout,
    )


def _extract_image_from_response(resp) -> str | None:
    """Extract a generated image data-URL from an OpenRouter multimodal response."""
    message = resp.choices[0].message

    # OpenRouter non-standard images field
    images = getattr(message, "images", None)
    if images:
        try:
            first = images[0]
            if not isinstance(first, dict):
                first = first.model_dump()
            return first["image_url"]["url"]
        except (KeyError, TypeError, IndexError, AttributeError):
            pass

    content = message.content or ""
    if isinstance(content, str) and content.startswith("data:image"):
        return content

    raw = resp.model_dump()
    choices = raw.get("choices", [])
    if choices:
        msg_content = choices[0].get("message", {}).get("content")
        if isinstance(msg_content, list):
            for part in msg_content:
                if not isinstance(part, dict):
                    continue
                img_url = part.get("image_url", {})
                if isinstance(img_url, dict) and img_url.get("url", "").startswith("data:image"):
                    return img_url["url"]
    return None


def _finish_reasons(resp) -> tuple[str | None, str | None]:
    if not resp.choices:
        return None, None
    choice = resp.choices[0]
    native = getattr(choice, "native_finish_reason", None)
    if native is None and getattr(choice, "model_extra", None):
        native = choice.model_extra.get("native_finish_reason")
    return choice.finish_reason, native


class ImageEditClient:
    """Thin wrapper over the chat completions endpoint for image edits."""

    def __init__(self, client: AsyncOpenAI, model: str = IMAGE_EDIT_MODEL):
        self._client = client
        self.model = model

    async def edit(self, call: ImageEditCall) -> ImageEditResult:
        """Send one edit request. Never retries.

        Transport failures are mapped to the render error taxonomy here;
        interpreting a completed response is left to the caller.
        """
        content: list[dict] = [
            {"type": "image_url", "image_url": {"url": url}} for url in call.images
        ]
        content.append({"type": "text", "text": call.instruction})

        extra_body: dict = {"modalities": ["image", "text"]}
        if call.aspect_ratio:
            extra_body["image_config"] = {"aspect_ratio": call.aspect_ratio}

        logger.info(
            "Nano Banana: sending edit with %d images, temperature=%.1f",
            len(call.images),
            call.temperature,
        )
        try:
            resp = await self._client.chat.completions.create(
                model=self.model,
                messages=[{"role": "user", "content": content}],
                temperature=call.temperature,
                extra_body=extra_body,
                extra_headers={
                    "HTTP-Referer": APP_REFERER,
                    "X-Title": APP_TITLE,
                },
            )
        except openai.RateLimitError as e:
            raise QuotaExceededError(f"Image model quota exceeded: {e}") from e
        except openai.APITimeoutError as e:
            raise RenderTimeoutError("Image model request timed out") from e
        except openai.APIError as e:
            raise UnknownExternalError(f"Image model error: {e}") from e

        finish_reason, native = _finish_reasons(resp)
        image_url = _extract_image_from_response(resp) if resp.choices else None
        text = ""
        if resp.choices and isinstance(resp.choices[0].message.content, str):
            text = resp.choices[0].message.content

        refused = image_url is None and (
            finish_reason in _SAFETY_REASONS or native in _SAFETY_REASONS
        )
        if image_url is None:
            logger.warning(
                "Nano Banana: no image in response (finish_reason=%s, native=%s)",
                finish_reason,
                native,
            )
        return ImageEditResult(
            image_url=image_url,
            finish_reason=native or finish_reason,
            text=text,
            refused=refused,
        )
