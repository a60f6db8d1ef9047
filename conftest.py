"""Shared fixtures: an in-memory project with an uploaded photo and a fake image model."""

import asyncio
import io

import pytest
from PIL import Image

from roomcanvas.db import InMemoryProjectStore
from roomcanvas.tools.images import ImageFetcher, to_data_url
from roomcanvas.tools.nanobanana import ImageEditCall, ImageEditResult
from roomcanvas.workflow.orchestrator import ProjectRegistry, RenderOrchestrator
from roomcanvas.workflow.workspace import ProjectWorkspace

SPONSORED_MATERIALS = {
    "sp1": {
        "id": "sp1",
        "name": "Royal Luxury Emulsion",
        "brand": "Asian Paints",
        "type": "paint",
        "price": 12.5,
    },
}


def make_image_bytes(width: int = 1920, height: int = 1080, color=(200, 200, 200), fmt: str = "JPEG") -> bytes:
    buf = io.BytesIO()
    Image.new("RGB", (width, height), color).save(buf, format=fmt)
    return buf.getvalue()


def make_image_data_url(width: int = 1024, height: int = 576, color=(90, 140, 200)) -> str:
    return to_data_url(make_image_bytes(width, height, color, fmt="PNG"), "image/png")


class FakeImageClient:
    """Stands in for ImageEditClient. Records calls, answers with a canned result."""

    def __init__(self, result: ImageEditResult | None = None, *, error: Exception | None = None, delay: float = 0.0):
        self.result = result or ImageEditResult(image_url=make_image_data_url(), finish_reason="stop")
        self.error = error
        self.delay = delay
        self.calls: list[ImageEditCall] = []

    async def edit(self, call: ImageEditCall) -> ImageEditResult:
        self.calls.append(call)
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.error is not None:
            raise self.error
        return self.result


@pytest.fixture
def store():
    return InMemoryProjectStore(sponsored_materials=SPONSORED_MATERIALS)


@pytest.fixture
def workspace(store):
    project = store.create_project("Living room")
    ws = ProjectWorkspace.load(store, project.id)
    ws.add_original_image(make_image_bytes(1920, 1080))
    return ws


@pytest.fixture
def fake_client():
    return FakeImageClient()


@pytest.fixture
def orchestrator(workspace, fake_client):
    return RenderOrchestrator(workspace, fake_client, ImageFetcher(), progress_tick_s=0.01)


@pytest.fixture
def registry(store, fake_client):
    return ProjectRegistry(store, fake_client, ImageFetcher(), progress_tick_s=0.01)
