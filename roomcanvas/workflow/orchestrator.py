"""Render lifecycle for one project: prepare, call the image model once, reconcile.

States: idle → preparing → awaiting → succeeded | failed. A second submission
while preparing or awaiting is rejected. The call is never retried; on any
failure the queued edits stay as they were so the user can resubmit.
"""

import asyncio
import logging
import time
from dataclasses import dataclass, field
from enum import Enum

from ..config import MASK_TIMEOUT_S, PLACEMENT_TIMEOUT_S, PROGRESS_TICK_S, RENDER_TIMEOUT_S
from ..db import ProjectStore
from ..errors import (
    BookkeepingError,
    ImageLoadError,
    NothingToRenderError,
    NotFoundError,
    RenderError,
    RenderInProgressError,
    RenderTimeoutError,
    SafetyRefusal,
    UnknownExternalError,
)
from ..models.schemas import EditGroup, ImageVersion, RenderResponse, WallEdit
from ..tools.images import ImageFetcher
from ..tools.nanobanana import ImageEditClient, ImageEditResult
from .edit_request import EditRequest, EditRequestBuilder
from .progress import ProgressEstimator
from .reconcile import ResultReconciler
from .workspace import ProjectWorkspace

logger = logging.getLogger(__name__)


class RenderState(str, Enum):
    IDLE = "idle"
    PREPARING = "preparing"
    AWAITING = "awaiting"
    # Result received and being saved; too late to cancel
    SAVING = "saving"
    SUCCEEDED = "succeeded"
    FAILED = "failed"


def _trace_event(step: str, message: str, **kwargs) -> dict:
    """Build a structured trace event dict."""
    evt = {"step": step, "message": message, "timestamp": time.time()}
    evt.update(kwargs)
    return evt


@dataclass
class RenderOutcome:
    group: EditGroup
    success: bool
    version: ImageVersion | None = None
    error: RenderError | None = None
    cancelled: bool = False
    render_time: float | None = None
    change_summary: list[str] = field(default_factory=list)
    bookkeeping_errors: list[BookkeepingError] = field(default_factory=list)
    trace: list[dict] = field(default_factory=list)

    def to_response(self) -> RenderResponse:
        resp = RenderResponse(
            success=self.success,
            rendered_image_url=self.version.url if self.version else None,
            image_id=self.version.id if self.version else None,
            render_time=self.render_time,
            change_summary=self.change_summary,
            bookkeeping_errors=[e.message for e in self.bookkeeping_errors],
        )
        if self.error is not None:
            resp.error = self.error.message
            resp.error_code = self.error.kind.value
            resp.suggestion = self.error.suggestion
        elif self.cancelled:
            resp.error = "Render cancelled"
            resp.error_code = "CANCELLED"
        return resp


def classify_result(result: ImageEditResult) -> str:
    """Return the image URL of a usable response, or raise the matching error."""
    if result.image_url:
        return result.image_url
    if result.refused:
        raise SafetyRefusal(f"Blocked by safety filters ({result.finish_reason})")
    raise UnknownExternalError(
        f"No image in model response (finish_reason={result.finish_reason})"
    )


class RenderOrchestrator:
    def __init__(
        self,
        workspace: ProjectWorkspace,
        image_client: ImageEditClient,
        fetcher: ImageFetcher,
        *,
        timeout_s: float = RENDER_TIMEOUT_S,
        placement_timeout_s: float = PLACEMENT_TIMEOUT_S,
        mask_timeout_s: float = MASK_TIMEOUT_S,
        progress_tick_s: float = PROGRESS_TICK_S,
    ):
        self.workspace = workspace
        self.image_client = image_client
        self.fetcher = fetcher
        self.reconciler = ResultReconciler(fetcher)
        self.timeouts = {
            EditGroup.SURFACE: timeout_s,
            EditGroup.PLACEMENT: placement_timeout_s,
            EditGroup.MASK: mask_timeout_s,
        }
        self.progress_tick_s = progress_tick_s

        self.state = RenderState.IDLE
        self.progress: ProgressEstimator | None = None
        self.last_outcome: RenderOutcome | None = None
        self._call_task: asyncio.Task | None = None
        self._cancel_requested = False

    @property
    def busy(self) -> bool:
        return self.state in (RenderState.PREPARING, RenderState.AWAITING, RenderState.SAVING)

    def _pick_group(self, group: EditGroup | None) -> EditGroup:
        if group is not None:
            return group
        pending = self.workspace.pending
        if pending.surface_edits():
            return EditGroup.SURFACE
        if pending.mask is not None and not pending.placements:
            return EditGroup.MASK
        return EditGroup.PLACEMENT

    async def submit(self, group: EditGroup | None = None) -> RenderOutcome:
        """Render one pending group. Raises ``RenderInProgressError`` if busy.

        Failures during the render are returned as a failed outcome, not raised.
        """
        if self.busy:
            raise RenderInProgressError("A render is already in progress for this project")
        group = self._pick_group(group)
        edits = self.workspace.pending.edits_for(group)
        if not edits:
            raise NothingToRenderError(f"No pending {group.value} changes")

        project_id = self.workspace.project_id
        trace = [_trace_event("started", f"{group.value} render started", edits=len(edits))]
        self.state = RenderState.PREPARING
        self.progress = None
        self._cancel_requested = False
        self.workspace.render_active = True
        try:
            try:
                request, base = await self._prepare(group, edits, trace)
                if self._cancel_requested:
                    return self._cancelled(group, trace)

                self.state = RenderState.AWAITING
                t0 = time.monotonic()
                result = await self._await_call(group, request, len(edits), trace)
                render_time = round(time.monotonic() - t0, 2)
                image_url = classify_result(result)
                trace.append(_trace_event("model_done", "Image model returned an image", seconds=render_time))
                self.state = RenderState.SAVING

                reconciled = await self.reconciler.reconcile(
                    self.workspace, request, image_url, base.width, base.height
                )
            except asyncio.CancelledError:
                if not self._cancel_requested:
                    raise
                return self._cancelled(group, trace)
            except RenderError as e:
                logger.warning("Project %s: %s render failed: %s (%s)", project_id, group.value, e.kind.value, e.message)
                trace.append(_trace_event("failed", e.message, error_code=e.kind.value))
                self.state = RenderState.FAILED
                outcome = RenderOutcome(group=group, success=False, error=e, trace=trace)
                self.last_outcome = outcome
                return outcome
            except Exception:
                logger.exception("Project %s: unexpected render failure", project_id)
                self.state = RenderState.FAILED
                raise

            if self.progress is not None:
                self.progress.complete()
            self.state = RenderState.SUCCEEDED
            trace.append(_trace_event("completed", "Render saved", image_id=reconciled.version.id))
            outcome = RenderOutcome(
                group=group,
                success=True,
                version=reconciled.version,
                render_time=render_time,
                change_summary=request.change_summary,
                bookkeeping_errors=reconciled.bookkeeping_errors,
                trace=trace,
            )
            self.last_outcome = outcome
            logger.info("Project %s: %s render succeeded in %.1fs", project_id, group.value, render_time)
            return outcome
        finally:
            self.workspace.render_active = False
            self._call_task = None

    async def _prepare(
        self, group: EditGroup, edits: list, trace: list[dict]
    ) -> tuple[EditRequest, ImageVersion]:
        store: ProjectStore = self.workspace.store
        base = store.read_current_version(self.workspace.project_id)
        if base is None:
            raise NotFoundError("Upload a room photo first")

        trace.append(_trace_event("download", "Loading current image", image_id=base.id))
        base_bytes = await self.fetcher.fetch(base.url)
        builder = EditRequestBuilder(base_bytes)

        product_images: dict[str, str] = {}
        if group == EditGroup.PLACEMENT:
            for edit in edits:
                p = edit.placement
                if not p.product_image_url:
                    continue
                try:
                    product_images[p.id] = await self.fetcher.fetch_data_url(p.product_image_url)
                except ImageLoadError:
                    logger.warning("Product image for %s unavailable, placing by name", p.name)

        marker_image = await self._cached_marker(edits, base.id)
        request = builder.build(edits, self.workspace.regions, product_images, marker_image)
        trace.append(
            _trace_event(
                "request_built",
                "Edit request assembled",
                slots=[s.value for s in request.slots],
            )
        )
        return request, base

    async def _cached_marker(self, edits: list, version_id: str) -> str | None:
        """Marker saved when the only wall being edited was drawn on this photo."""
        walls = [e for e in edits if isinstance(e, WallEdit)]
        if len(walls) != 1:
            return None
        region = self.workspace.regions.get(walls[0].region_id)
        if region is None or not region.marker_valid_for(version_id):
            return None
        try:
            return await self.fetcher.fetch_data_url(region.marker_image_url)
        except ImageLoadError:
            logger.warning("Cached marker for %s unavailable, redrawing", region.label)
            return None

    async def _await_call(
        self, group: EditGroup, request: EditRequest, edit_count: int, trace: list[dict]
    ) -> ImageEditResult:
        timeout = self.timeouts[group]
        stop = asyncio.Event()
        self.progress = ProgressEstimator(group, edit_count, tick_s=self.progress_tick_s)
        progress_task = asyncio.create_task(self.progress.run(stop))
        self._call_task = asyncio.create_task(self.image_client.edit(request.to_call()))
        trace.append(_trace_event("model_call", "Calling image model", timeout_s=timeout))
        try:
            return await asyncio.wait_for(self._call_task, timeout=timeout)
        except asyncio.TimeoutError as e:
            raise RenderTimeoutError(f"No response from the image model after {timeout:g}s") from e
        finally:
            stop.set()
            await progress_task

    def _cancelled(self, group: EditGroup, trace: list[dict]) -> RenderOutcome:
        trace.append(_trace_event("cancelled", "Render cancelled by user"))
        self.state = RenderState.IDLE
        self.progress = None
        outcome = RenderOutcome(group=group, success=False, cancelled=True, trace=trace)
        self.last_outcome = outcome
        return outcome

    def cancel(self) -> bool:
        """Abandon the in-flight render.

        Returns False when nothing is running or the model has already answered,
        in which case the render finishes and is saved as usual.
        """
        if not self.busy:
            return False
        if self.state == RenderState.SAVING or (self._call_task is not None and self._call_task.done()):
            logger.info("Project %s: result already received, cancel ignored", self.workspace.project_id)
            return False
        self._cancel_requested = True
        if self._call_task is not None and not self._call_task.done():
            self._call_task.cancel()
        logger.info("Project %s: render cancel requested", self.workspace.project_id)
        return True


class ProjectRegistry:
    """Keeps one workspace and orchestrator per project for the app's lifetime."""

    def __init__(
        self,
        store: ProjectStore,
        image_client: ImageEditClient,
        fetcher: ImageFetcher,
        **orchestrator_kwargs,
    ):
        self.store = store
        self.image_client = image_client
        self.fetcher = fetcher
        self.orchestrator_kwargs = orchestrator_kwargs
        self._orchestrators: dict[str, RenderOrchestrator] = {}

    def orchestrator(self, project_id: str) -> RenderOrchestrator:
        orch = self._orchestrators.get(project_id)
        if orch is None:
            workspace = ProjectWorkspace.load(self.store, project_id)
            orch = RenderOrchestrator(
                workspace, self.image_client, self.fetcher, **self.orchestrator_kwargs
            )
            self._orchestrators[project_id] = orch
        return orch

    def workspace(self, project_id: str) -> ProjectWorkspace:
        return self.orchestrator(project_id).workspace

    def create_project(self, name: str) -> ProjectWorkspace:
        project = self.store.create_project(name)
        return self.workspace(project.id)
