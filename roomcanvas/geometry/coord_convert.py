"""Convert polygon coordinates between screen, image-pixel and normalized space.

Coordinate systems:
- View space: pointer positions on the on-screen canvas, after zoom (``scale``)
  and pan (``offset_x``, ``offset_y``) have been applied to the photo.
- Image space: native pixels of the photo. Origin top-left, x right, y down.
- Normalized space: image space divided by the image width/height, so every
  coordinate of a point inside the photo lies in [0, 1].

All point lists are flat: [x1, y1, x2, y2, ...].
"""

import math

import numpy as np

from ..models.schemas import ViewTransform


def _as_pairs(points: list[float]) -> np.ndarray:
    if len(points) % 2 != 0:
        raise ValueError(f"expected an even number of coordinates, got {len(points)}")
    return np.asarray(points, dtype=np.float64).reshape(-1, 2)


def _check_dims(width: float, height: float) -> None:
    if width <= 0 or height <= 0:
        raise ValueError(f"image dimensions must be positive, got {width}x{height}")


def normalize(points: list[float], width: float, height: float) -> list[float]:
    """Image pixels → [0, 1] by dividing x by width and y by height."""
    _check_dims(width, height)
    pairs = _as_pairs(points) / np.array([width, height], dtype=np.float64)
    return pairs.ravel().tolist()


def denormalize(points: list[float], width: float, height: float) -> list[float]:
    """[0, 1] → image pixels at the given resolution."""
    _check_dims(width, height)
    pairs = _as_pairs(points) * np.array([width, height], dtype=np.float64)
    return pairs.ravel().tolist()


def view_to_image(points: list[float], view: ViewTransform) -> list[float]:
    """Undo the canvas zoom/pan: (pointer - offset) / scale."""
    pairs = _as_pairs(points)
    offset = np.array([view.offset_x, view.offset_y], dtype=np.float64)
    return ((pairs - offset) / view.scale).ravel().tolist()


def image_to_view(points: list[float], view: ViewTransform) -> list[float]:
    pairs = _as_pairs(points)
    offset = np.array([view.offset_x, view.offset_y], dtype=np.float64)
    return (pairs * view.scale + offset).ravel().tolist()


def is_normalized(points: list[float]) -> bool:
    """True when every coordinate is finite and already lies in [0, 1]."""
    return bool(points) and all(math.isfinite(p) and 0.0 <= p <= 1.0 for p in points)


def to_native_pixels(
    points: list[float],
    width: int,
    height: int,
    canvas_width: float | None = None,
    canvas_height: float | None = None,
) -> list[float]:
    """Bring a stored or submitted point list to native image pixels.

    Normalized lists are denormalized. Older payloads carried raw pixels of the
    canvas the user drew on; when that canvas size is known they are scaled up
    to the native resolution, otherwise they are taken as native pixels.
    """
    if is_normalized(points):
        return denormalize(points, width, height)
    if canvas_width and canvas_height:
        pairs = _as_pairs(points) * np.array(
            [width / canvas_width, height / canvas_height], dtype=np.float64
        )
        return pairs.ravel().tolist()
    return [float(p) for p in points]
