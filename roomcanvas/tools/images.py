"""Image download, decode and encode helpers shared by the render pipeline."""

import base64
import binascii
import io
import logging
import re

import httpx
from PIL import Image, UnidentifiedImageError

from ..errors import ImageLoadError

logger = logging.getLogger(__name__)

_TIMEOUT = httpx.Timeout(30.0, connect=10.0)
_DATA_URL_RE = re.compile(r"^data:(?P<mime>[\w/+.-]+)?(?:;[\w=-]+)*;base64,(?P<data>.*)$", re.DOTALL)

# (min width/height ratio, label), checked top-down
_ASPECT_RATIOS = [
    (2.2, "21:9"),
    (1.6, "16:9"),
    (1.2, "4:3"),
    (0.9, "1:1"),
    (0.7, "3:4"),
    (0.5, "9:16"),
]


def parse_data_url(url: str) -> tuple[str, bytes]:
    """Split a base64 data URL into (mime type, raw bytes)."""
    m = _DATA_URL_RE.match(url)
    if not m:
        raise ImageLoadError("Not a base64 data URL")
    try:
        data = base64.b64decode(m.group("data"), validate=False)
    except (binascii.Error, ValueError) as e:
        raise ImageLoadError(f"Corrupt data URL: {e}") from e
    return m.group("mime") or "image/png", data


def to_data_url(data: bytes, mime: str = "image/png") -> str:
    b64 = base64.b64encode(data).decode()
    return f"data:{mime};base64,{b64}"


class ImageFetcher:
    """Loads image bytes from http(s) or data URLs."""

    def __init__(self, http: httpx.AsyncClient | None = None):
        self._http = http

    async def fetch(self, url: str) -> bytes:
        if url.startswith("data:"):
            return parse_data_url(url)[1]
        try:
            if self._http is not None:
                resp = await self._http.get(url, timeout=_TIMEOUT, follow_redirects=True)
            else:
                async with httpx.AsyncClient(timeout=_TIMEOUT, follow_redirects=True) as client:
                    resp = await client.get(url)
            resp.raise_for_status()
        except httpx.HTTPError as e:
            logger.warning("Image download failed for %s: %s", url[:120], e)
            raise ImageLoadError(f"Could not download image: {e}") from e
        return resp.content

    async def fetch_data_url(self, url: str) -> str:
        """Same as ``fetch`` but keeps the content type, for sending to the model."""
        if url.startswith("data:"):
            return url
        data = await self.fetch(url)
        return to_data_url(data, sniff_mime(data))


def sniff_mime(data: bytes) -> str:
    try:
        with Image.open(io.BytesIO(data)) as img:
            fmt = (img.format or "PNG").lower()
    except (UnidentifiedImageError, OSError):
        return "image/png"
    return "image/jpeg" if fmt == "jpeg" else f"image/{fmt}"


def decode_image(data: bytes) -> Image.Image:
    """Decode bytes into a fully loaded RGB image."""
    try:
        img = Image.open(io.BytesIO(data))
        img.load()
    except (UnidentifiedImageError, OSError) as e:
        raise ImageLoadError(f"Could not decode image: {e}") from e
    return img.convert("RGB")


def encode_jpeg(img: Image.Image, quality: int = 95) -> bytes:
    buf = io.BytesIO()
    img.convert("RGB").save(buf, format="JPEG", quality=quality)
    return buf.getvalue()


def encode_png(img: Image.Image) -> bytes:
    buf = io.BytesIO()
    img.save(buf, format="PNG")
    return buf.getvalue()


def fit_to_dimensions(img: Image.Image, width: int, height: int) -> Image.Image:
    """Stretch-fill to exactly width x height (no letterboxing)."""
    if img.size == (width, height):
        return img
    logger.info("Resizing model output %sx%s -> %sx%s", img.width, img.height, width, height)
    return img.resize((width, height), Image.Resampling.LANCZOS)


def aspect_ratio_label(width: int, height: int) -> str:
    """Closest aspect ratio the image model accepts for this frame."""
    ratio = width / height
    for threshold, label in _ASPECT_RATIOS:
        if ratio > threshold:
            return label
    return "2:3"
