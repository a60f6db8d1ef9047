"""Pydantic models for regions, pending edits, image versions and render results."""

import math
import uuid
from datetime import UTC, datetime
from enum import Enum
from typing import Annotated, Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from ..config import MASK_BRUSH_SIZE
from ..errors import PlacementLimitError

HEX_COLOR = r"^#[0-9A-Fa-f]{6}$"

# Each simultaneous furniture placement gets its own stroke colour.
PLACEMENT_COLORS = ("#FF0000", "#0000FF", "#00FF00", "#FFFF00", "#FF00FF")


def _short_id(prefix: str) -> str:
    return f"{prefix}_{uuid.uuid4().hex[:12]}"


def _check_strokes(strokes: list[list[float]]) -> list[list[float]]:
    for stroke in strokes:
        if len(stroke) % 2 != 0:
            raise ValueError("stroke must hold an even number of coordinates")
        if not all(math.isfinite(p) and 0.0 <= p <= 1.0 for p in stroke):
            raise ValueError("stroke coordinates must be finite and lie in [0, 1]")
    return strokes


def _check_normalized(points: list[float]) -> list[float]:
    if len(points) % 2 != 0:
        raise ValueError("point list must hold an even number of coordinates")
    if len(points) < 6:
        raise ValueError("a polygon needs at least 3 points")
    if not all(math.isfinite(p) and 0.0 <= p <= 1.0 for p in points):
        raise ValueError("normalized coordinates must be finite and lie in [0, 1]")
    return points


# ---------------------------------------------------------------------------
# Regions
# ---------------------------------------------------------------------------


class RegionKind(str, Enum):
    WALL = "wall"
    FLOOR = "floor"
    OPENING = "opening"


class Region(BaseModel):
    """A user-drawn polygon over the room photo, stored resolution-independent."""

    id: str = Field(default_factory=lambda: _short_id("wall"))
    label: str = Field(..., min_length=1, description="Display name, e.g. 'Wall 1'")
    kind: RegionKind = RegionKind.WALL
    polygon_points: list[float] = Field(
        ..., description="Flat [x1, y1, x2, y2, ...] normalized to the image size"
    )
    applied_color: str | None = Field(
        default=None, description="Last colour successfully rendered onto this region"
    )
    sponsored_product_id: str | None = None
    sponsored_product_name: str | None = None
    created_on_image_id: str | None = None
    marker_image_url: str | None = None
    marked_on_image_id: str | None = None

    @field_validator("polygon_points")
    @classmethod
    def _points_normalized(cls, v: list[float]) -> list[float]:
        return _check_normalized(v)

    @field_validator("label")
    @classmethod
    def _strip_label(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("label must not be blank")
        return v

    def marker_valid_for(self, version_id: str | None) -> bool:
        return bool(self.marker_image_url) and self.marked_on_image_id == version_id

    def invalidate_marker(self) -> None:
        self.marker_image_url = None
        self.marked_on_image_id = None

    model_config = ConfigDict(
        json_schema_extra={
            "example": {
                "id": "wall_3f2a9c1b7d4e",
                "label": "Wall 1",
                "kind": "wall",
                "polygon_points": [0.1, 0.1, 0.5, 0.1, 0.5, 0.6, 0.1, 0.6],
                "applied_color": "#87CEEB",
            }
        }
    )


# ---------------------------------------------------------------------------
# Pending edits
# ---------------------------------------------------------------------------


class FloorSourceKind(str, Enum):
    QUICK = "quick"
    SPONSORED = "sponsored"
    CUSTOM_TEXT = "custom_text"
    CUSTOM_IMAGE = "custom_image"


class FloorEditIntent(BaseModel):
    """What the user wants the floor to become."""

    material_id: str
    material_name: str = Field(..., min_length=1)
    source_kind: FloorSourceKind = FloorSourceKind.QUICK
    sponsored_product_id: str | None = None
    brand: str | None = None
    price: float | None = Field(default=None, description="Price per sq ft")
    texture_image_url: str | None = None
    custom_prompt: str | None = Field(
        default=None, description="Free-text description, kept as a supplement to an image"
    )
    custom_image: str | None = Field(
        default=None, description="Reference texture as a data URL"
    )

    @model_validator(mode="after")
    def _resolve_source(self) -> "FloorEditIntent":
        # A supplied image always wins over free text.
        if self.custom_image:
            self.source_kind = FloorSourceKind.CUSTOM_IMAGE
        elif self.source_kind == FloorSourceKind.CUSTOM_IMAGE:
            raise ValueError("custom_image source requires an image")
        if self.source_kind == FloorSourceKind.CUSTOM_TEXT and not (self.custom_prompt or "").strip():
            raise ValueError("custom_text source requires a prompt")
        if self.source_kind == FloorSourceKind.SPONSORED and not self.sponsored_product_id:
            raise ValueError("sponsored source requires a product id")
        return self


class FurniturePlacement(BaseModel):
    """A catalog product the user brushed onto the photo."""

    id: str = Field(default_factory=lambda: _short_id("place"))
    product_id: str
    name: str
    brand: str = ""
    price: float = 0.0
    product_image_url: str | None = None
    color: str = Field(default=PLACEMENT_COLORS[0], pattern=HEX_COLOR)
    strokes: list[list[float]] = Field(
        default_factory=list, description="Freehand strokes, each a flat normalized path"
    )

    @field_validator("strokes")
    @classmethod
    def _strokes_normalized(cls, v: list[list[float]]) -> list[list[float]]:
        return _check_strokes(v)


class WallEdit(BaseModel):
    kind: Literal["wall"] = "wall"
    region_id: str
    label: str
    color: str = Field(..., pattern=HEX_COLOR)
    sponsored_product_id: str | None = None
    sponsored_product_name: str | None = None


class FloorEdit(BaseModel):
    kind: Literal["floor"] = "floor"
    intent: FloorEditIntent


class PlacementEdit(BaseModel):
    kind: Literal["placement"] = "placement"
    placement: FurniturePlacement


class MaskEdit(BaseModel):
    """A free-form change confined to an area the user brushed over."""

    kind: Literal["mask"] = "mask"
    prompt: str = Field(..., min_length=1, description="What to change inside the brushed area")
    strokes: list[list[float]] = Field(
        ..., min_length=1, description="Brush strokes, each a flat normalized path"
    )
    brush_size: float = Field(
        default=MASK_BRUSH_SIZE, gt=0, le=0.5, description="Brush diameter as a fraction of image width"
    )
    reference_image: str | None = Field(
        default=None, description="Optional style reference as a data URL"
    )

    @field_validator("strokes")
    @classmethod
    def _strokes_normalized(cls, v: list[list[float]]) -> list[list[float]]:
        if not any(v):
            raise ValueError("brush at least one stroke")
        return _check_strokes(v)

    @field_validator("prompt")
    @classmethod
    def _strip_prompt(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("describe the change to make")
        return v


PendingEdit = Annotated[
    WallEdit | FloorEdit | PlacementEdit | MaskEdit, Field(discriminator="kind")
]


class EditGroup(str, Enum):
    """Pending edits are submitted in independent groups, one render each."""

    SURFACE = "surface"
    PLACEMENT = "placement"
    MASK = "mask"


class PendingEditSet(BaseModel):
    """Edits queued for the next render, keyed so each region appears at most once."""

    walls: dict[str, WallEdit] = Field(default_factory=dict)
    floor: FloorEdit | None = None
    placements: list[PlacementEdit] = Field(default_factory=list)
    mask: MaskEdit | None = None

    def set_wall(self, edit: WallEdit) -> None:
        self.walls[edit.region_id] = edit

    def remove_wall(self, region_id: str) -> bool:
        return self.walls.pop(region_id, None) is not None

    def set_floor(self, intent: FloorEditIntent) -> None:
        self.floor = FloorEdit(intent=intent)

    def clear_floor(self) -> None:
        self.floor = None

    def add_placement(self, placement: FurniturePlacement) -> FurniturePlacement:
        """Queue a placement, assigning it the first free palette colour."""
        used = {p.placement.color for p in self.placements}
        free = [c for c in PLACEMENT_COLORS if c not in used]
        if not free:
            raise PlacementLimitError(
                f"At most {len(PLACEMENT_COLORS)} products can be placed at once"
            )
        placement = placement.model_copy(update={"color": free[0]})
        self.placements.append(PlacementEdit(placement=placement))
        return placement

    def set_mask(self, edit: MaskEdit) -> None:
        self.mask = edit

    def clear_mask(self) -> None:
        self.mask = None

    def get_placement(self, placement_id: str) -> FurniturePlacement | None:
        for edit in self.placements:
            if edit.placement.id == placement_id:
                return edit.placement
        return None

    def remove_placement(self, placement_id: str) -> bool:
        before = len(self.placements)
        self.placements = [p for p in self.placements if p.placement.id != placement_id]
        return len(self.placements) != before

    def surface_edits(self) -> list[WallEdit | FloorEdit]:
        edits: list[WallEdit | FloorEdit] = list(self.walls.values())
        if self.floor is not None:
            edits.append(self.floor)
        return edits

    def edits_for(self, group: EditGroup) -> list[WallEdit | FloorEdit | PlacementEdit | MaskEdit]:
        if group == EditGroup.SURFACE:
            return self.surface_edits()
        if group == EditGroup.MASK:
            return [self.mask] if self.mask is not None else []
        return list(self.placements)

    def clear(self, group: EditGroup | None = None) -> None:
        if group in (None, EditGroup.SURFACE):
            self.walls = {}
            self.floor = None
        if group in (None, EditGroup.PLACEMENT):
            self.placements = []
        if group in (None, EditGroup.MASK):
            self.mask = None

    def is_empty(self) -> bool:
        return not self.walls and self.floor is None and not self.placements and self.mask is None


# ---------------------------------------------------------------------------
# Projects and image versions
# ---------------------------------------------------------------------------


class ImageVersion(BaseModel):
    """One entry in a project's append-only image history."""

    id: str = Field(default_factory=lambda: _short_id("img"))
    project_id: str
    url: str
    is_original: bool = False
    created_at: datetime = Field(default_factory=lambda: datetime.now(UTC))
    change_summary: list[str] = Field(default_factory=list)
    width: int = Field(..., gt=0)
    height: int = Field(..., gt=0)
    edit_type: Literal["upload", "surface", "placement", "mask"] = "upload"


class Project(BaseModel):
    id: str = Field(default_factory=lambda: uuid.uuid4().hex[:16])
    name: str = "Untitled room"
    current_version_id: str | None = None
    created_at: datetime = Field(default_factory=lambda: datetime.now(UTC))


class ViewTransform(BaseModel):
    """Zoom and pan of the on-screen canvas the user drew on."""

    scale: float = Field(default=1.0, gt=0)
    offset_x: float = 0.0
    offset_y: float = 0.0


# ---------------------------------------------------------------------------
# Render API payloads
# ---------------------------------------------------------------------------


class RenderRequest(BaseModel):
    group: EditGroup | None = Field(
        default=None,
        description="Which pending group to render; defaults to surface edits, then placements, then the mask edit",
    )


class RenderResponse(BaseModel):
    success: bool
    rendered_image_url: str | None = None
    image_id: str | None = None
    render_time: float | None = Field(default=None, description="Seconds spent in the external call")
    change_summary: list[str] = Field(default_factory=list)
    error: str | None = None
    error_code: str | None = None
    suggestion: str | None = None
    bookkeeping_errors: list[str] = Field(default_factory=list)


class RenderStatusResponse(BaseModel):
    state: str
    progress: float = 0.0
    step: str = ""
    last: RenderResponse | None = None
    trace: list[dict] = Field(default_factory=list)
