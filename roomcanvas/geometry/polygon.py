"""Polygon checks run before a region is stored and again before any render."""

import logging
from dataclasses import dataclass

import numpy as np

from ..config import MIN_POLYGON_AREA_PX
from ..errors import ValidationError

logger = logging.getLogger(__name__)

TOO_FEW_POINTS = "too few points"
OUTSIDE_BOUNDS = "outside bounds"
TOO_SMALL = "too small"

_MESSAGES = {
    TOO_FEW_POINTS: "Polygon must have at least 3 points",
    OUTSIDE_BOUNDS: "Polygon extends outside image bounds",
    TOO_SMALL: "Polygon too small. Draw a larger area.",
}


@dataclass(frozen=True)
class PolygonCheck:
    valid: bool
    reason: str | None = None

    @property
    def message(self) -> str | None:
        return _MESSAGES.get(self.reason) if self.reason else None


def polygon_area(points: list[float]) -> float:
    """Absolute shoelace area of a flat [x1, y1, ...] polygon, in squared input units."""
    pairs = np.asarray(points, dtype=np.float64).reshape(-1, 2)
    x, y = pairs[:, 0], pairs[:, 1]
    return float(abs(np.dot(x, np.roll(y, -1)) - np.dot(y, np.roll(x, -1))) / 2.0)


def polygon_centroid(points: list[float]) -> tuple[float, float]:
    """Arithmetic mean of the vertices. Used to anchor labels, not an area centroid."""
    pairs = np.asarray(points, dtype=np.float64).reshape(-1, 2)
    cx, cy = pairs.mean(axis=0)
    return float(cx), float(cy)


def validate_polygon(
    points: list[float],
    image_width: float,
    image_height: float,
    min_area: float = MIN_POLYGON_AREA_PX,
) -> PolygonCheck:
    """Check an image-pixel polygon. The first failing rule wins:

    1. at least 3 points (an odd coordinate count is malformed and fails here)
    2. every coordinate inside [0, width] x [0, height]
    3. shoelace area of at least ``min_area`` square pixels
    """
    if len(points) < 6 or len(points) % 2 != 0:
        return PolygonCheck(False, TOO_FEW_POINTS)

    pairs = np.asarray(points, dtype=np.float64).reshape(-1, 2)
    # NaN compares false against every bound
    if not np.isfinite(pairs).all():
        return PolygonCheck(False, OUTSIDE_BOUNDS)
    xs, ys = pairs[:, 0], pairs[:, 1]
    if xs.min() < 0 or ys.min() < 0 or xs.max() > image_width or ys.max() > image_height:
        return PolygonCheck(False, OUTSIDE_BOUNDS)

    if polygon_area(points) < min_area:
        return PolygonCheck(False, TOO_SMALL)

    return PolygonCheck(True)


def ensure_valid_polygon(
    points: list[float],
    image_width: float,
    image_height: float,
    *,
    label: str | None = None,
    min_area: float = MIN_POLYGON_AREA_PX,
) -> None:
    """Raise ``ValidationError`` when ``validate_polygon`` rejects the polygon."""
    check = validate_polygon(points, image_width, image_height, min_area)
    if not check.valid:
        logger.info("Rejected polygon %s: %s", label or "<new>", check.reason)
        raise ValidationError(check.reason, check.message, label=label)
