"""Shared helpers for the API routers."""

from fastapi import HTTPException, Request

from ..errors import RenderError
from ..workflow.orchestrator import ProjectRegistry


def get_registry(request: Request) -> ProjectRegistry:
    return request.app.state.registry


def http_error(e: RenderError) -> HTTPException:
    return HTTPException(status_code=e.status_code, detail=e.to_dict())
