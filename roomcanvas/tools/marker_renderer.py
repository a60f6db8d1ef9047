"""Burn region markers and placement strokes onto a room photo with Pillow.

The marker overlay tells the image model which areas to edit. It is always
drawn at the photo's native resolution so polygon coordinates line up with
what the model sees.
"""

import logging
from dataclasses import dataclass

from PIL import Image, ImageDraw, ImageFont

from ..geometry.polygon import polygon_centroid
from ..models.schemas import FurniturePlacement, RegionKind
from .images import decode_image, encode_png

logger = logging.getLogger(__name__)

_FONT_PATH = "/usr/share/fonts/truetype/dejavu/DejaVuSans-Bold.ttf"

KIND_COLORS = {
    RegionKind.WALL: "#FF6B00",
    RegionKind.FLOOR: "#FFD700",
    RegionKind.OPENING: "#00B8D4",
}

# How the prompt refers to each outline colour
KIND_COLOR_NAMES = {
    RegionKind.WALL: "ORANGE",
    RegionKind.FLOOR: "YELLOW",
    RegionKind.OPENING: "CYAN",
}

FILL_ALPHA = 128  # 50 %
OUTLINE_WIDTH = 4
STROKE_WIDTH = 20
MIN_FONT_PX = 36
MAX_FONT_PX = 72


@dataclass
class MarkerShape:
    """One region to burn in, with points already in native image pixels."""

    kind: RegionKind
    label: str
    points: list[float]


def _hex_to_rgb(h: str) -> tuple[int, int, int]:
    h = h.lstrip("#")
    return (int(h[0:2], 16), int(h[2:4], 16), int(h[4:6], 16))


def _hex_to_rgba(h: str, alpha: int) -> tuple[int, int, int, int]:
    r, g, b = _hex_to_rgb(h)
    return (r, g, b, alpha)


def label_font_size(image_width: int) -> int:
    return int(min(max(image_width / 20, MIN_FONT_PX), MAX_FONT_PX))


def _load_font(size: int) -> ImageFont.ImageFont:
    try:
        return ImageFont.truetype(_FONT_PATH, size)
    except OSError:
        return ImageFont.load_default(size=size)


def _pairs(points: list[float]) -> list[tuple[float, float]]:
    return [(points[i], points[i + 1]) for i in range(0, len(points) - 1, 2)]


def _load_base(base_image: bytes | Image.Image) -> Image.Image:
    if isinstance(base_image, Image.Image):
        return base_image.convert("RGBA")
    return decode_image(base_image).convert("RGBA")


def render_marker_overlay(base_image: bytes | Image.Image, shapes: list[MarkerShape]) -> bytes:
    """Return a PNG of the base photo with every shape filled, outlined and labelled.

    Shapes are drawn in input order, so later shapes sit on top of earlier ones.
    Raises ``ImageLoadError`` if the base image cannot be decoded.
    """
    base = _load_base(base_image)
    overlay = Image.new("RGBA", base.size, (0, 0, 0, 0))
    draw = ImageDraw.Draw(overlay)
    font = _load_font(label_font_size(base.width))

    for shape in shapes:
        color = KIND_COLORS[shape.kind]
        pts = _pairs(shape.points)
        draw.polygon(pts, fill=_hex_to_rgba(color, FILL_ALPHA))
        # Closed outline drawn as a line so the width is honoured on every Pillow version
        draw.line(pts + [pts[0]], fill=_hex_to_rgba(color, 255), width=OUTLINE_WIDTH, joint="curve")

    composed = Image.alpha_composite(base, overlay)
    text_draw = ImageDraw.Draw(composed)
    for shape in shapes:
        cx, cy = polygon_centroid(shape.points)
        text_draw.text(
            (cx, cy),
            shape.label.upper(),
            fill=(255, 255, 255, 255),
            font=font,
            anchor="mm",
            stroke_width=3,
            stroke_fill=_hex_to_rgba(KIND_COLORS[shape.kind], 255),
        )

    logger.info("Rendered marker overlay %sx%s with %d shapes", base.width, base.height, len(shapes))
    return encode_png(composed.convert("RGB"))


def render_placement_reference(
    base_image: bytes | Image.Image,
    placements: list[FurniturePlacement],
) -> bytes:
    """Return a PNG of the base photo with each placement's strokes in its palette colour."""
    base = _load_base(base_image)
    draw = ImageDraw.Draw(base)
    w, h = base.size

    for placement in placements:
        rgba = _hex_to_rgba(placement.color, 255)
        for stroke in placement.strokes:
            pts = [(x * w, y * h) for x, y in _pairs(stroke)]
            if len(pts) == 1:
                x, y = pts[0]
                r = STROKE_WIDTH / 2
                draw.ellipse([x - r, y - r, x + r, y + r], fill=rgba)
                continue
            draw.line(pts, fill=rgba, width=STROKE_WIDTH, joint="curve")

    logger.info("Rendered placement reference map with %d products", len(placements))
    return encode_png(base.convert("RGB"))


def render_edit_mask(width: int, height: int, strokes: list[list[float]], brush_size: float) -> bytes:
    """Return a black PNG of the photo's size with the brushed area in white.

    ``strokes`` are normalized paths, ``brush_size`` the brush diameter as a
    fraction of the image width.
    """
    mask = Image.new("L", (width, height), 0)
    draw = ImageDraw.Draw(mask)
    diameter = max(int(round(brush_size * width)), 1)
    r = diameter / 2

    for stroke in strokes:
        pts = [(x * width, y * height) for x, y in _pairs(stroke)]
        # Round caps and joints
        for x, y in pts:
            draw.ellipse([x - r, y - r, x + r, y + r], fill=255)
        if len(pts) > 1:
            draw.line(pts, fill=255, width=diameter)

    logger.info("Rendered edit mask %sx%s from %d strokes", width, height, len(strokes))
    return encode_png(mask.convert("RGB"))

def marker_color_words(kinds: list[RegionKind]) -> str:
    """Describe the outline colours used for ``kinds``, e.g. ``ORANGE (#FF6B00) or CYAN (#00B8D4)``."""
    seen = [k for k in RegionKind if k in kinds]
    return " or ".join(f"{KIND_COLOR_NAMES[k]} ({KIND_COLORS[k]})" for k in seen)
