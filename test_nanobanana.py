"""Tests for the OpenRouter image edit client (OpenAI SDK mocked)."""

from unittest.mock import AsyncMock, MagicMock

import httpx
import openai
import pytest
from openai.types.chat import ChatCompletion

from roomcanvas.errors import QuotaExceededError, RenderTimeoutError, UnknownExternalError
from roomcanvas.tools.nanobanana import ImageEditCall, ImageEditClient, create_openrouter_client

PNG_URL = "data:image/png;base64,iVBORw0KGgo="
_REQUEST = httpx.Request("POST", "https://openrouter.ai/api/v1/chat/completions")


def _completion(message: dict, finish_reason: str = "stop", native: str | None = None) -> ChatCompletion:
    choice = {
        "index": 0,
        "finish_reason": finish_reason,
        "message": {"role": "assistant", "content": None, **message},
    }
    if native:
        choice["native_finish_reason"] = native
    return ChatCompletion.model_validate(
        {
            "id": "gen-123",
            "object": "chat.completion",
            "created": 0,
            "model": "google/gemini-3-pro-image-preview",
            "choices": [choice],
        }
    )


def _client(return_value=None, side_effect=None) -> tuple[ImageEditClient, AsyncMock]:
    openai_client = MagicMock()
    create = AsyncMock(return_value=return_value, side_effect=side_effect)
    openai_client.chat.completions.create = create
    return ImageEditClient(openai_client), create


CALL = ImageEditCall(
    instruction="Paint WALL 1 #FF0000",
    images=["data:image/jpeg;base64,AAA", "data:image/png;base64,BBB"],
    temperature=0.1,
    aspect_ratio="16:9",
)


class TestImageEditClient:
    @pytest.mark.asyncio
    async def test_request_shape(self):
        client, create = _client(_completion({"images": [{"type": "image_url", "image_url": {"url": PNG_URL}}]}))
        await client.edit(CALL)

        kwargs = create.call_args.kwargs
        content = kwargs["messages"][0]["content"]
        assert [part["type"] for part in content] == ["image_url", "image_url", "text"]
        assert content[0]["image_url"]["url"] == CALL.images[0]
        assert content[-1]["text"] == CALL.instruction
        assert kwargs["temperature"] == 0.1
        assert kwargs["extra_body"]["modalities"] == ["image", "text"]
        assert kwargs["extra_body"]["image_config"] == {"aspect_ratio": "16:9"}

    @pytest.mark.asyncio
    async def test_image_from_images_field(self):
        client, _ = _client(_completion({"images": [{"type": "image_url", "image_url": {"url": PNG_URL}}]}))
        result = await client.edit(CALL)
        assert result.image_url == PNG_URL
        assert not result.refused

    @pytest.mark.asyncio
    async def test_image_as_data_url_content(self):
        client, _ = _client(_completion({"content": PNG_URL}))
        assert (await client.edit(CALL)).image_url == PNG_URL

    @pytest.mark.asyncio
    async def test_content_filter_is_refusal(self):
        client, _ = _client(_completion({"content": ""}, finish_reason="content_filter"))
        result = await client.edit(CALL)
        assert result.image_url is None
        assert result.refused

    @pytest.mark.asyncio
    async def test_native_safety_reason_is_refusal(self):
        client, _ = _client(_completion({"content": "I can't help with that."}, native="IMAGE_SAFETY"))
        result = await client.edit(CALL)
        assert result.refused
        assert result.finish_reason == "IMAGE_SAFETY"

    @pytest.mark.asyncio
    async def test_text_only_is_not_refusal(self):
        client, _ = _client(_completion({"content": "Here is a description instead."}))
        result = await client.edit(CALL)
        assert result.image_url is None
        assert not result.refused

    @pytest.mark.asyncio
    async def test_rate_limit_maps_to_quota(self):
        err = openai.RateLimitError(
            "quota exceeded", response=httpx.Response(429, request=_REQUEST), body=None
        )
        client, _ = _client(side_effect=err)
        with pytest.raises(QuotaExceededError):
            await client.edit(CALL)

    @pytest.mark.asyncio
    async def test_timeout_maps_to_timeout(self):
        client, _ = _client(side_effect=openai.APITimeoutError(request=_REQUEST))
        with pytest.raises(RenderTimeoutError):
            await client.edit(CALL)

    @pytest.mark.asyncio
    async def test_server_error_maps_to_unknown(self):
        err = openai.InternalServerError(
            "upstream error", response=httpx.Response(500, request=_REQUEST), body=None
        )
        client, create = _client(side_effect=err)
        with pytest.raises(UnknownExternalError):
            await client.edit(CALL)
        assert create.await_count == 1


def test_openrouter_client_never_retries():
    client = create_openrouter_client()
    assert client.max_retries == 0
    assert str(client.base_url).startswith("https://openrouter.ai/api/v1")
