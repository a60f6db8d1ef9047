"""Assemble one image-edit request from the current photo, regions and pending edits.

Images are attached in a fixed slot order, declared below, so the prompt can
refer to them by position ("IMAGE 2", "the LAST IMAGE provided").
"""

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import assert_never

from ..config import MASK_TEMPERATURE, PLACEMENT_TEMPERATURE, SURFACE_TEMPERATURE
from ..errors import NothingToRenderError, NotFoundError
from ..geometry.coord_convert import denormalize
from ..geometry.polygon import ensure_valid_polygon
from ..models.schemas import (
    EditGroup,
    FloorEdit,
    FloorSourceKind,
    MaskEdit,
    PendingEdit,
    PlacementEdit,
    Region,
    WallEdit,
)
from ..prompts.edit_instructions import (
    floor_instruction,
    mask_edit_prompt,
    placement_prompt,
    surface_edit_prompt,
    wall_instruction,
)
from ..tools.images import aspect_ratio_label, decode_image, sniff_mime, to_data_url
from ..tools.marker_renderer import (
    MarkerShape,
    marker_color_words,
    render_edit_mask,
    render_marker_overlay,
    render_placement_reference,
)
from ..tools.nanobanana import ImageEditCall

logger = logging.getLogger(__name__)


class ImageSlot(str, Enum):
    BASE = "base"
    MARKER = "marker"
    FLOOR_REFERENCE = "floor_reference"
    PLACEMENT_MAP = "placement_map"
    PRODUCT = "product"
    MASK = "mask"
    REFERENCE = "reference"


SLOT_ORDER: dict[EditGroup, tuple[ImageSlot, ...]] = {
    EditGroup.SURFACE: (ImageSlot.BASE, ImageSlot.MARKER, ImageSlot.FLOOR_REFERENCE),
    EditGroup.PLACEMENT: (ImageSlot.BASE, ImageSlot.PLACEMENT_MAP, ImageSlot.PRODUCT),
    EditGroup.MASK: (ImageSlot.BASE, ImageSlot.MASK, ImageSlot.REFERENCE),
}

_SLOT_ROLES = {
    ImageSlot.BASE: "The current room photo that needs editing.",
    ImageSlot.FLOOR_REFERENCE: "Reference texture for the new floor material.",
}


def _marker_role(colors: str) -> str:
    return f"Reference: the same photo with the walls to edit marked by labelled {colors} polygons."


@dataclass
class SlotImage:
    slot: ImageSlot
    data_url: str
    key: str | None = None  # placement id for product images


@dataclass
class EditRequest:
    group: EditGroup
    instruction: str
    images: list[SlotImage]
    temperature: float
    aspect_ratio: str
    change_summary: list[str]
    edits: list[PendingEdit] = field(default_factory=list)

    @property
    def slots(self) -> list[ImageSlot]:
        return [img.slot for img in self.images]

    def to_call(self) -> ImageEditCall:
        return ImageEditCall(
            instruction=self.instruction,
            images=[img.data_url for img in self.images],
            temperature=self.temperature,
            aspect_ratio=self.aspect_ratio,
        )


def _order_slots(group: EditGroup, images: list[SlotImage]) -> list[SlotImage]:
    order = SLOT_ORDER[group]
    unknown = [img.slot for img in images if img.slot not in order]
    if unknown:
        raise ValueError(f"slots {unknown} are not valid for {group.value} requests")
    # sorted() is stable, so several product images keep their relative order
    return sorted(images, key=lambda img: order.index(img.slot))


class EditRequestBuilder:
    """Builds the request for any edit group against one decoded base photo.

    Raises ``ImageLoadError`` on construction if the photo cannot be decoded.
    """

    def __init__(self, base_image: bytes):
        self.image = decode_image(base_image)
        self.width, self.height = self.image.size
        self._base_url = to_data_url(base_image, sniff_mime(base_image))

    def build(
        self,
        edits: list[PendingEdit],
        regions: dict[str, Region],
        product_images: dict[str, str] | None = None,
        marker_image: str | None = None,
    ) -> EditRequest:
        """Split a pending group by edit kind and build the matching request.

        ``marker_image`` is a pre-rendered marker of a single wall, used instead
        of drawing one when exactly one wall is edited.
        """
        walls: list[WallEdit] = []
        floor: FloorEdit | None = None
        placements: list[PlacementEdit] = []
        masks: list[MaskEdit] = []
        for edit in edits:
            match edit:
                case WallEdit():
                    walls.append(edit)
                case FloorEdit():
                    floor = edit
                case PlacementEdit():
                    placements.append(edit)
                case MaskEdit():
                    masks.append(edit)
                case _:
                    assert_never(edit)

        if sum(map(bool, (walls or floor, placements, masks))) > 1:
            raise ValueError("each edit group is rendered separately")
        if masks:
            return self.build_mask(masks[-1])
        if placements:
            return self.build_placement(placements, product_images or {})
        return self.build_surface(walls, floor, regions, marker_image)

    def build_surface(
        self,
        walls: list[WallEdit],
        floor: FloorEdit | None,
        regions: dict[str, Region],
        marker_image: str | None = None,
    ) -> EditRequest:
        if not walls and floor is None:
            raise NothingToRenderError("No wall or floor changes to apply")

        images = [SlotImage(ImageSlot.BASE, self._base_url)]
        shapes: list[MarkerShape] = []
        for edit in walls:
            region = regions.get(edit.region_id)
            if region is None:
                raise NotFoundError(f"Wall {edit.label} no longer exists")
            points = denormalize(region.polygon_points, self.width, self.height)
            ensure_valid_polygon(points, self.width, self.height, label=region.label)
            shapes.append(MarkerShape(kind=region.kind, label=region.label, points=points))

        # Floors are auto-detected by the model, so only walls get an overlay.
        colors = marker_color_words([s.kind for s in shapes])
        if len(shapes) == 1 and marker_image:
            images.append(SlotImage(ImageSlot.MARKER, marker_image))
        elif shapes:
            marker = render_marker_overlay(self.image, shapes)
            images.append(SlotImage(ImageSlot.MARKER, to_data_url(marker, "image/png")))

        if floor is not None and floor.intent.source_kind == FloorSourceKind.CUSTOM_IMAGE:
            images.append(SlotImage(ImageSlot.FLOOR_REFERENCE, floor.intent.custom_image))

        images = _order_slots(EditGroup.SURFACE, images)
        instruction = surface_edit_prompt(
            wall_lines=[wall_instruction(w) for w in walls],
            floor_line=floor_instruction(floor.intent) if floor else None,
            image_roles=[
                _marker_role(colors) if img.slot == ImageSlot.MARKER else _SLOT_ROLES[img.slot]
                for img in images
            ],
            marker_colors=colors,
        )

        summary = [f"{w.label}: {w.sponsored_product_name or w.color}" for w in walls]
        if floor is not None:
            summary.append(f"Floor: {floor.intent.material_name}")

        logger.info(
            "Built surface request: %d walls, floor=%s, images=%s",
            len(walls),
            floor is not None,
            [img.slot.value for img in images],
        )
        edits: list[PendingEdit] = list(walls)
        if floor is not None:
            edits.append(floor)
        return EditRequest(
            group=EditGroup.SURFACE,
            instruction=instruction,
            images=images,
            temperature=SURFACE_TEMPERATURE,
            aspect_ratio=aspect_ratio_label(self.width, self.height),
            change_summary=summary,
            edits=edits,
        )

    def build_placement(
        self,
        placements: list[PlacementEdit],
        product_images: dict[str, str],
    ) -> EditRequest:
        """``product_images`` maps placement id → product photo data URL.

        Products missing from the map are placed by name only.
        """
        if not placements:
            raise NothingToRenderError("No products to place")

        items = [edit.placement for edit in placements]
        reference = render_placement_reference(self.image, items)
        images = [
            SlotImage(ImageSlot.BASE, self._base_url),
            SlotImage(ImageSlot.PLACEMENT_MAP, to_data_url(reference, "image/png")),
        ]
        for item in items:
            if item.id in product_images:
                images.append(SlotImage(ImageSlot.PRODUCT, product_images[item.id], key=item.id))

        images = _order_slots(EditGroup.PLACEMENT, images)
        numbers = {
            img.key: i for i, img in enumerate(images, start=1) if img.slot == ImageSlot.PRODUCT
        }
        instruction = placement_prompt(items, numbers)

        logger.info(
            "Built placement request: %d products, %d product images",
            len(items),
            len(numbers),
        )
        return EditRequest(
            group=EditGroup.PLACEMENT,
            instruction=instruction,
            images=images,
            temperature=PLACEMENT_TEMPERATURE,
            aspect_ratio=aspect_ratio_label(self.width, self.height),
            change_summary=[f"Placed: {', '.join(item.name for item in items)}"],
            edits=list(placements),
        )

    def build_mask(self, edit: MaskEdit) -> EditRequest:
        """Free-form edit: base photo, then the brushed mask, then an optional reference."""
        mask = render_edit_mask(self.width, self.height, edit.strokes, edit.brush_size)
        images = [
            SlotImage(ImageSlot.BASE, self._base_url),
            SlotImage(ImageSlot.MASK, to_data_url(mask, "image/png")),
        ]
        if edit.reference_image:
            images.append(SlotImage(ImageSlot.REFERENCE, edit.reference_image))

        images = _order_slots(EditGroup.MASK, images)
        logger.info("Built mask request: %d strokes, reference=%s", len(edit.strokes), bool(edit.reference_image))
        return EditRequest(
            group=EditGroup.MASK,
            instruction=mask_edit_prompt(edit.prompt, has_reference=bool(edit.reference_image)),
            images=images,
            temperature=MASK_TEMPERATURE,
            aspect_ratio=aspect_ratio_label(self.width, self.height),
            change_summary=[f"AI Edit: {edit.prompt[:100]}"],
            edits=[edit],
        )
