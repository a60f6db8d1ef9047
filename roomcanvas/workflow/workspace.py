"""Per-project editing state: regions, queued edits and the image history.

Every user mutation goes through ``ProjectWorkspace`` so the label rules and
the "no edits while a render is running" rule hold in one place.
"""

import logging

from ..db import ProjectStore
from ..errors import LabelConflictError, NotFoundError, RenderInProgressError, ValidationError
from ..geometry.coord_convert import denormalize, normalize, to_native_pixels, view_to_image
from ..geometry.polygon import TOO_FEW_POINTS, PolygonCheck, ensure_valid_polygon
from ..models.schemas import (
    EditGroup,
    FloorEditIntent,
    FurniturePlacement,
    ImageVersion,
    MaskEdit,
    PendingEditSet,
    Project,
    Region,
    RegionKind,
    ViewTransform,
    WallEdit,
)
from ..tools.images import ImageFetcher, decode_image, sniff_mime
from ..tools.marker_renderer import MarkerShape, render_marker_overlay

logger = logging.getLogger(__name__)


def _label_key(label: str) -> str:
    return label.strip().casefold()


class ProjectWorkspace:
    def __init__(
        self,
        project: Project,
        store: ProjectStore,
        regions: list[Region] | None = None,
        versions: list[ImageVersion] | None = None,
    ):
        self.project = project
        self.store = store
        self.regions: dict[str, Region] = {r.id: r for r in regions or []}
        self.versions: list[ImageVersion] = list(versions or [])
        self.pending = PendingEditSet()
        # Set by the orchestrator while a render is preparing or awaiting
        self.render_active = False

    @classmethod
    def load(cls, store: ProjectStore, project_id: str) -> "ProjectWorkspace":
        project = store.get_project(project_id)
        if project is None:
            raise NotFoundError(f"Project {project_id} not found")
        return cls(
            project,
            store,
            regions=store.list_regions(project_id),
            versions=store.list_image_versions(project_id),
        )

    @property
    def project_id(self) -> str:
        return self.project.id

    @property
    def current_version(self) -> ImageVersion | None:
        for version in self.versions:
            if version.id == self.project.current_version_id:
                return version
        return None

    def _require_idle(self) -> None:
        if self.render_active:
            raise RenderInProgressError("Edits are locked while a render is in progress")

    def _require_version(self) -> ImageVersion:
        version = self.current_version
        if version is None:
            raise NotFoundError("Upload a room photo first")
        return version

    def _require_region(self, region_id: str) -> Region:
        region = self.regions.get(region_id)
        if region is None:
            raise NotFoundError(f"Wall {region_id} not found")
        return region

    # --- labels ---

    def label_taken(self, label: str, exclude_id: str | None = None) -> bool:
        key = _label_key(label)
        return any(
            _label_key(r.label) == key for r in self.regions.values() if r.id != exclude_id
        )

    def next_label(self, kind: RegionKind = RegionKind.WALL) -> str:
        n = 1
        while self.label_taken(f"{kind.value.title()} {n}"):
            n += 1
        return f"{kind.value.title()} {n}"

    # --- image versions ---

    def add_version(self, version: ImageVersion) -> None:
        """Record an already persisted version and make it current."""
        self.store.set_current_version(self.project_id, version.id)
        self.versions.append(version)
        self.project.current_version_id = version.id
        self.invalidate_stale_markers()

    def add_original_image(self, data: bytes) -> ImageVersion:
        """Upload a new room photo as an original version and switch to it."""
        self._require_idle()
        img = decode_image(data)
        url = self.store.upload_image(self.project_id, data, sniff_mime(data))
        version = self.store.append_image_version(
            ImageVersion(
                project_id=self.project_id,
                url=url,
                is_original=True,
                width=img.width,
                height=img.height,
                edit_type="upload",
            )
        )
        self.add_version(version)
        self.pending.clear()
        logger.info("Project %s: original image %s (%sx%s)", self.project_id, version.id, img.width, img.height)
        return version

    def select_version(self, version_id: str) -> ImageVersion:
        """Switch the current image. Queued edits and stale markers are dropped."""
        self._require_idle()
        version = next((v for v in self.versions if v.id == version_id), None)
        if version is None:
            raise NotFoundError(f"Image version {version_id} not found")
        self.project.current_version_id = version.id
        self.store.set_current_version(self.project_id, version.id)
        self.pending.clear()
        self.invalidate_stale_markers()
        return version

    def invalidate_stale_markers(self) -> None:
        for region in self.regions.values():
            if region.marker_image_url and not region.marker_valid_for(self.project.current_version_id):
                region.invalidate_marker()

    # --- regions ---

    def add_region(
        self,
        points: list[float],
        *,
        label: str | None = None,
        kind: RegionKind = RegionKind.WALL,
        view: ViewTransform | None = None,
        canvas_width: float | None = None,
        canvas_height: float | None = None,
    ) -> Region:
        """Validate a drawn polygon at native resolution, then store it normalized.

        ``points`` are pointer positions when ``view`` is given, otherwise
        normalized coordinates or pixels (of the canvas, when its size is given).
        """
        self._require_idle()
        version = self._require_version()
        w, h = version.width, version.height
        label = (label or self.next_label(kind)).strip()
        if len(points) < 6 or len(points) % 2 != 0:
            raise ValidationError(TOO_FEW_POINTS, PolygonCheck(False, TOO_FEW_POINTS).message, label=label)

        if view is not None:
            native = view_to_image(points, view)
        else:
            native = to_native_pixels(points, w, h, canvas_width, canvas_height)

        ensure_valid_polygon(native, w, h, label=label)
        if self.label_taken(label):
            raise LabelConflictError(f'A wall named "{label}" already exists')

        region = Region(
            label=label,
            kind=kind,
            polygon_points=normalize(native, w, h),
            created_on_image_id=version.id,
        )
        self.store.insert_region(self.project_id, region)
        self.regions[region.id] = region
        logger.info("Project %s: added %s %s", self.project_id, kind.value, label)
        return region

    async def attach_marker(self, region_id: str, fetcher: ImageFetcher) -> bool:
        """Render and upload a marker image of one region on the current photo.

        The marker is a cache for single-wall renders, so any failure is
        logged and reported as ``False`` instead of raised.
        """
        region = self._require_region(region_id)
        version = self._require_version()
        try:
            base = decode_image(await fetcher.fetch(version.url))
            points = denormalize(region.polygon_points, base.width, base.height)
            png = render_marker_overlay(base, [MarkerShape(region.kind, region.label, points)])
            url = self.store.upload_image(self.project_id, png, "image/png")
        except Exception as e:
            logger.warning("Marker for %s not cached: %s", region.label, e)
            return False

        if self.project.current_version_id != version.id or self.regions.get(region_id) is not region:
            # Photo switched or region deleted while rendering the marker
            return False
        region.marker_image_url = url
        region.marked_on_image_id = version.id
        try:
            self.store.update_region(self.project_id, region)
        except Exception as e:
            logger.warning("Marker for %s not saved: %s", region.label, e)
        return True

    def rename_region(self, region_id: str, label: str) -> Region:
        self._require_idle()
        region = self._require_region(region_id)
        label = label.strip()
        if not label:
            raise LabelConflictError("Wall name must not be empty")
        if self.label_taken(label, exclude_id=region_id):
            raise LabelConflictError(f'A wall named "{label}" already exists')
        region.label = label
        # The cached marker shows the old label
        region.invalidate_marker()
        if region_id in self.pending.walls:
            self.pending.walls[region_id] = self.pending.walls[region_id].model_copy(
                update={"label": label}
            )
        self.store.update_region(self.project_id, region)
        return region

    def delete_region(self, region_id: str) -> None:
        self._require_idle()
        self._require_region(region_id)
        self.store.delete_region(self.project_id, region_id)
        del self.regions[region_id]
        self.pending.remove_wall(region_id)

    # --- pending edits ---

    def set_wall_edit(
        self,
        region_id: str,
        color: str,
        *,
        sponsored_product_id: str | None = None,
        sponsored_product_name: str | None = None,
    ) -> WallEdit:
        self._require_idle()
        region = self._require_region(region_id)
        edit = WallEdit(
            region_id=region_id,
            label=region.label,
            color=color.upper(),
            sponsored_product_id=sponsored_product_id,
            sponsored_product_name=sponsored_product_name,
        )
        self.pending.set_wall(edit)
        return edit

    def remove_wall_edit(self, region_id: str) -> None:
        self._require_idle()
        self.pending.remove_wall(region_id)

    def set_floor_edit(self, intent: FloorEditIntent) -> None:
        self._require_idle()
        self.pending.set_floor(intent)

    def clear_floor_edit(self) -> None:
        self._require_idle()
        self.pending.clear_floor()

    def add_placement(self, placement: FurniturePlacement) -> FurniturePlacement:
        self._require_idle()
        return self.pending.add_placement(placement)

    def update_placement_strokes(self, placement_id: str, strokes: list[list[float]]) -> FurniturePlacement:
        self._require_idle()
        for i, edit in enumerate(self.pending.placements):
            if edit.placement.id == placement_id:
                # model_validate re-runs the stroke checks
                placement = FurniturePlacement.model_validate(
                    {**edit.placement.model_dump(), "strokes": strokes}
                )
                self.pending.placements[i] = edit.model_copy(update={"placement": placement})
                return placement
        raise NotFoundError(f"Placement {placement_id} not found")

    def remove_placement(self, placement_id: str) -> None:
        self._require_idle()
        if not self.pending.remove_placement(placement_id):
            raise NotFoundError(f"Placement {placement_id} not found")

    def set_mask_edit(self, edit: MaskEdit) -> MaskEdit:
        """Queue a free-form edit of a brushed area, replacing any earlier one."""
        self._require_idle()
        self._require_version()
        self.pending.set_mask(edit)
        return edit

    def clear_mask_edit(self) -> None:
        self._require_idle()
        self.pending.clear_mask()

    def clear_pending(self, group: EditGroup | None = None) -> None:
        self._require_idle()
        self.pending.clear(group)

    def snapshot(self) -> dict:
        return {
            "project": self.project.model_dump(mode="json"),
            "current_version_id": self.project.current_version_id,
            "versions": [v.model_dump(mode="json") for v in self.versions],
            "regions": [r.model_dump(mode="json") for r in self.regions.values()],
            "pending": self.pending.model_dump(mode="json"),
            "render_active": self.render_active,
        }
