"""Tests for image fetch/decode helpers."""

import httpx
import pytest
from PIL import Image

from conftest import make_image_bytes
from roomcanvas.errors import ImageLoadError
from roomcanvas.tools.images import (
    ImageFetcher,
    aspect_ratio_label,
    decode_image,
    fit_to_dimensions,
    parse_data_url,
    to_data_url,
)


def test_data_url_parsing():
    url = to_data_url(b"\x89PNG-bytes", "image/png")
    assert parse_data_url(url) == ("image/png", b"\x89PNG-bytes")


def test_not_a_data_url():
    with pytest.raises(ImageLoadError):
        parse_data_url("https://example.com/a.png")


def test_decode_garbage():
    with pytest.raises(ImageLoadError):
        decode_image(b"definitely not an image")


def test_fit_to_dimensions_stretches():
    img = Image.new("RGB", (1024, 1024))
    out = fit_to_dimensions(img, 1920, 1080)
    assert out.size == (1920, 1080)


@pytest.mark.parametrize(
    "size,label",
    [((2560, 1080), "21:9"), ((1920, 1080), "16:9"), ((1600, 1200), "4:3"), ((1000, 1000), "1:1"),
     ((900, 1200), "3:4"), ((1080, 1920), "9:16"), ((400, 1000), "2:3")],
)
def test_aspect_ratio_label(size, label):
    assert aspect_ratio_label(*size) == label


@pytest.mark.asyncio
async def test_fetch_over_http():
    body = make_image_bytes(10, 10)

    def handler(request: httpx.Request) -> httpx.Response:
        if request.url.path == "/room.jpg":
            return httpx.Response(200, content=body, headers={"content-type": "image/jpeg"})
        return httpx.Response(404)

    async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as http:
        fetcher = ImageFetcher(http)
        assert await fetcher.fetch("https://cdn.test/room.jpg") == body
        assert (await fetcher.fetch_data_url("https://cdn.test/room.jpg")).startswith("data:image/jpeg;base64,")
        with pytest.raises(ImageLoadError):
            await fetcher.fetch("https://cdn.test/missing.jpg")
