"""Render submission, status polling and cancellation."""

import logging

from fastapi import APIRouter, Request, Response

from ..errors import RenderError
from ..models.schemas import RenderRequest, RenderResponse, RenderStatusResponse
from . import get_registry, http_error

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/projects", tags=["render"])


@router.post("/{project_id}/render", response_model=RenderResponse)
async def render(
    project_id: str,
    request: Request,
    response: Response,
    body: RenderRequest | None = None,
) -> RenderResponse:
    """Run one render to completion and report the outcome.

    Rejections before any work starts (already rendering, nothing queued) are
    HTTP errors. Failures of the render itself come back in the body, with the
    status code of their error kind.
    """
    body = body or RenderRequest()
    try:
        orchestrator = get_registry(request).orchestrator(project_id)
        outcome = await orchestrator.submit(body.group)
    except RenderError as e:
        raise http_error(e)

    if outcome.error is not None:
        response.status_code = outcome.error.status_code
    elif outcome.cancelled:
        response.status_code = 409
    return outcome.to_response()


@router.get("/{project_id}/render/status", response_model=RenderStatusResponse)
async def render_status(project_id: str, request: Request) -> RenderStatusResponse:
    try:
        orchestrator = get_registry(request).orchestrator(project_id)
    except RenderError as e:
        raise http_error(e)
    progress = orchestrator.progress
    last = orchestrator.last_outcome
    return RenderStatusResponse(
        state=orchestrator.state.value,
        progress=round(progress.progress, 1) if progress else 0.0,
        step=progress.step if progress else "",
        last=last.to_response() if last else None,
        trace=last.trace if last else [],
    )


@router.post("/{project_id}/render/cancel")
async def cancel_render(project_id: str, request: Request) -> dict:
    try:
        orchestrator = get_registry(request).orchestrator(project_id)
    except RenderError as e:
        raise http_error(e)
    return {"cancelled": orchestrator.cancel(), "state": orchestrator.state.value}
