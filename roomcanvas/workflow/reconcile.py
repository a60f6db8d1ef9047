"""Turn a successful model response into a saved image version.

Primary writes (upload, new version, current pointer) must succeed or the
render fails with ``PersistenceError``. Everything after that is best-effort.
"""

import logging
from dataclasses import dataclass, field

from ..errors import BookkeepingError, ImageLoadError, PersistenceError, UnknownExternalError
from ..models.schemas import EditGroup, FloorEdit, ImageVersion, PlacementEdit, WallEdit
from ..tools.images import ImageFetcher, decode_image, encode_jpeg, fit_to_dimensions
from . import bookkeeping
from .edit_request import EditRequest
from .workspace import ProjectWorkspace

logger = logging.getLogger(__name__)


@dataclass
class ReconcileResult:
    version: ImageVersion
    bookkeeping_errors: list[BookkeepingError] = field(default_factory=list)


def _bookkeeping_failure(project_id: str, what: str, exc: Exception) -> BookkeepingError:
    logger.warning("Project %s: %s update failed", project_id, what, exc_info=True)
    return BookkeepingError(f"{what}: {exc}")


class ResultReconciler:
    def __init__(self, fetcher: ImageFetcher):
        self.fetcher = fetcher

    async def reconcile(
        self,
        workspace: ProjectWorkspace,
        request: EditRequest,
        image_url: str,
        width: int,
        height: int,
    ) -> ReconcileResult:
        store = workspace.store
        project_id = workspace.project_id

        try:
            data = await self.fetcher.fetch(image_url)
            img = decode_image(data)
        except ImageLoadError as e:
            raise UnknownExternalError(f"Image model returned an unreadable image: {e}") from e
        jpeg = encode_jpeg(fit_to_dimensions(img, width, height), quality=95)

        try:
            url = store.upload_image(project_id, jpeg, "image/jpeg")
            version = store.append_image_version(
                ImageVersion(
                    project_id=project_id,
                    url=url,
                    is_original=False,
                    change_summary=request.change_summary,
                    width=width,
                    height=height,
                    edit_type=request.group.value,
                )
            )
            workspace.add_version(version)
        except Exception as e:
            logger.exception("Project %s: failed to save rendered image", project_id)
            raise PersistenceError(f"Could not save the rendered image: {e}") from e

        errors: list[BookkeepingError] = []
        walls = [e for e in request.edits if isinstance(e, WallEdit)]
        floors = [e for e in request.edits if isinstance(e, FloorEdit)]
        placements = [e for e in request.edits if isinstance(e, PlacementEdit)]

        for wall in walls:
            region = workspace.regions.get(wall.region_id)
            if region is None:
                continue
            region.applied_color = wall.color
            region.sponsored_product_id = wall.sponsored_product_id
            region.sponsored_product_name = wall.sponsored_product_name
            try:
                store.update_region(project_id, region)
            except Exception as e:
                errors.append(_bookkeeping_failure(project_id, f"colour of {region.label}", e))

        workspace.pending.clear(request.group)

        if walls:
            try:
                bookkeeping.record_wall_products(store, project_id, walls)
            except Exception as e:
                errors.append(_bookkeeping_failure(project_id, "paint BOQ", e))
        for floor in floors:
            try:
                bookkeeping.record_flooring(store, project_id, floor)
            except Exception as e:
                errors.append(_bookkeeping_failure(project_id, "flooring BOQ", e))
        if request.group == EditGroup.PLACEMENT and placements:
            try:
                bookkeeping.record_placements(store, project_id, placements)
            except Exception as e:
                errors.append(_bookkeeping_failure(project_id, "product BOQ", e))

        logger.info(
            "Project %s: saved version %s (%s), %d bookkeeping errors",
            project_id,
            version.id,
            "; ".join(request.change_summary),
            len(errors),
        )
        return ReconcileResult(version=version, bookkeeping_errors=errors)
