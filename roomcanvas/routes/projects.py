"""Project, region and pending-edit endpoints."""

import logging

from fastapi import APIRouter, HTTPException, Request, UploadFile
from pydantic import BaseModel, Field

from ..errors import RenderError
from ..models.schemas import (
    EditGroup,
    FloorEditIntent,
    FurniturePlacement,
    MaskEdit,
    RegionKind,
    ViewTransform,
)
from . import get_registry, http_error

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/projects", tags=["projects"])

_MAX_UPLOAD_BYTES = 20 * 1024 * 1024


class CreateProjectRequest(BaseModel):
    name: str = "Untitled room"


class CreateRegionRequest(BaseModel):
    points: list[float] = Field(..., description="Flat [x1, y1, ...]")
    label: str | None = None
    kind: RegionKind = RegionKind.WALL
    view: ViewTransform | None = Field(
        default=None, description="Canvas zoom/pan when points are pointer positions"
    )
    canvas_width: float | None = None
    canvas_height: float | None = None


class RenameRegionRequest(BaseModel):
    label: str


class WallEditRequest(BaseModel):
    color: str = Field(..., pattern=r"^#[0-9A-Fa-f]{6}$")
    sponsored_product_id: str | None = None
    sponsored_product_name: str | None = None


class PlacementRequest(BaseModel):
    product_id: str
    name: str
    brand: str = ""
    price: float = 0.0
    product_image_url: str | None = None
    strokes: list[list[float]] = Field(default_factory=list)


class StrokesRequest(BaseModel):
    strokes: list[list[float]]


# ---------------------------------------------------------------------------
# Projects and images
# ---------------------------------------------------------------------------


@router.post("")
async def create_project(request: Request, body: CreateProjectRequest | None = None) -> dict:
    body = body or CreateProjectRequest()
    workspace = get_registry(request).create_project(body.name)
    return {"project_id": workspace.project_id}


@router.post("/{project_id}/images")
async def upload_image(project_id: str, request: Request, file: UploadFile) -> dict:
    """Upload a room photo. It becomes the current image and clears queued edits."""
    data = await file.read()
    if len(data) > _MAX_UPLOAD_BYTES:
        raise HTTPException(status_code=413, detail="Image too large (max 20 MB)")
    try:
        workspace = get_registry(request).workspace(project_id)
        version = workspace.add_original_image(data)
    except RenderError as e:
        raise http_error(e)
    return version.model_dump(mode="json")


@router.get("/{project_id}/workspace")
async def get_workspace(project_id: str, request: Request) -> dict:
    try:
        return get_registry(request).workspace(project_id).snapshot()
    except RenderError as e:
        raise http_error(e)


@router.post("/{project_id}/versions/{version_id}/select")
async def select_version(project_id: str, version_id: str, request: Request) -> dict:
    try:
        version = get_registry(request).workspace(project_id).select_version(version_id)
    except RenderError as e:
        raise http_error(e)
    return version.model_dump(mode="json")


# ---------------------------------------------------------------------------
# Regions
# ---------------------------------------------------------------------------


@router.post("/{project_id}/regions")
async def create_region(project_id: str, body: CreateRegionRequest, request: Request) -> dict:
    registry = get_registry(request)
    try:
        workspace = registry.workspace(project_id)
        region = workspace.add_region(
            body.points,
            label=body.label,
            kind=body.kind,
            view=body.view,
            canvas_width=body.canvas_width,
            canvas_height=body.canvas_height,
        )
    except RenderError as e:
        raise http_error(e)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    await workspace.attach_marker(region.id, registry.fetcher)
    return region.model_dump(mode="json")


@router.patch("/{project_id}/regions/{region_id}")
async def rename_region(
    project_id: str, region_id: str, body: RenameRegionRequest, request: Request
) -> dict:
    registry = get_registry(request)
    try:
        workspace = registry.workspace(project_id)
        region = workspace.rename_region(region_id, body.label)
    except RenderError as e:
        raise http_error(e)
    await workspace.attach_marker(region.id, registry.fetcher)
    return region.model_dump(mode="json")


@router.delete("/{project_id}/regions/{region_id}")
async def delete_region(project_id: str, region_id: str, request: Request) -> dict:
    try:
        get_registry(request).workspace(project_id).delete_region(region_id)
    except RenderError as e:
        raise http_error(e)
    return {"deleted": region_id}


# ---------------------------------------------------------------------------
# Pending edits
# ---------------------------------------------------------------------------


@router.put("/{project_id}/pending/walls/{region_id}")
async def set_wall_edit(
    project_id: str, region_id: str, body: WallEditRequest, request: Request
) -> dict:
    try:
        edit = get_registry(request).workspace(project_id).set_wall_edit(
            region_id,
            body.color,
            sponsored_product_id=body.sponsored_product_id,
            sponsored_product_name=body.sponsored_product_name,
        )
    except RenderError as e:
        raise http_error(e)
    return edit.model_dump(mode="json")


@router.delete("/{project_id}/pending/walls/{region_id}")
async def remove_wall_edit(project_id: str, region_id: str, request: Request) -> dict:
    try:
        get_registry(request).workspace(project_id).remove_wall_edit(region_id)
    except RenderError as e:
        raise http_error(e)
    return {"removed": region_id}


@router.put("/{project_id}/pending/floor")
async def set_floor_edit(project_id: str, body: FloorEditIntent, request: Request) -> dict:
    try:
        get_registry(request).workspace(project_id).set_floor_edit(body)
    except RenderError as e:
        raise http_error(e)
    return body.model_dump(mode="json")


@router.delete("/{project_id}/pending/floor")
async def clear_floor_edit(project_id: str, request: Request) -> dict:
    try:
        get_registry(request).workspace(project_id).clear_floor_edit()
    except RenderError as e:
        raise http_error(e)
    return {"removed": "floor"}


@router.put("/{project_id}/pending/mask")
async def set_mask_edit(project_id: str, body: MaskEdit, request: Request) -> dict:
    try:
        get_registry(request).workspace(project_id).set_mask_edit(body)
    except RenderError as e:
        raise http_error(e)
    return body.model_dump(mode="json")


@router.delete("/{project_id}/pending/mask")
async def clear_mask_edit(project_id: str, request: Request) -> dict:
    try:
        get_registry(request).workspace(project_id).clear_mask_edit()
    except RenderError as e:
        raise http_error(e)
    return {"removed": "mask"}


@router.post("/{project_id}/pending/placements")
async def add_placement(project_id: str, body: PlacementRequest, request: Request) -> dict:
    try:
        placement = get_registry(request).workspace(project_id).add_placement(
            FurniturePlacement(**body.model_dump())
        )
    except RenderError as e:
        raise http_error(e)
    return placement.model_dump(mode="json")


@router.put("/{project_id}/pending/placements/{placement_id}/strokes")
async def update_placement_strokes(
    project_id: str, placement_id: str, body: StrokesRequest, request: Request
) -> dict:
    try:
        placement = get_registry(request).workspace(project_id).update_placement_strokes(
            placement_id, body.strokes
        )
    except RenderError as e:
        raise http_error(e)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    return placement.model_dump(mode="json")


@router.delete("/{project_id}/pending/placements/{placement_id}")
async def remove_placement(project_id: str, placement_id: str, request: Request) -> dict:
    try:
        get_registry(request).workspace(project_id).remove_placement(placement_id)
    except RenderError as e:
        raise http_error(e)
    return {"removed": placement_id}


@router.delete("/{project_id}/pending")
async def clear_pending(project_id: str, request: Request, group: EditGroup | None = None) -> dict:
    try:
        get_registry(request).workspace(project_id).clear_pending(group)
    except RenderError as e:
        raise http_error(e)
    return {"cleared": group.value if group else "all"}
