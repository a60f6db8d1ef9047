"""Project persistence: Supabase tables + Storage, or an in-memory store in mock mode.

Tables: ``projects``, ``image_versions``, ``regions``, ``sponsored_materials``,
``boq_items``. Images live in the ``STORAGE_BUCKET`` bucket.
"""

import logging
import uuid
from typing import Protocol

from supabase import Client, create_client

from .config import STORAGE_BUCKET, SUPABASE_SERVICE_ROLE_KEY, SUPABASE_URL
from .models.schemas import ImageVersion, Project, Region
from .tools.images import to_data_url

logger = logging.getLogger(__name__)


class ProjectStore(Protocol):
    def create_project(self, name: str) -> Project: ...
    def get_project(self, project_id: str) -> Project | None: ...
    def set_current_version(self, project_id: str, version_id: str) -> None: ...
    def append_image_version(self, version: ImageVersion) -> ImageVersion: ...
    def read_current_version(self, project_id: str) -> ImageVersion | None: ...
    def list_image_versions(self, project_id: str) -> list[ImageVersion]: ...
    def list_regions(self, project_id: str) -> list[Region]: ...
    def insert_region(self, project_id: str, region: Region) -> Region: ...
    def update_region(self, project_id: str, region: Region) -> None: ...
    def delete_region(self, project_id: str, region_id: str) -> None: ...
    def upload_image(self, project_id: str, data: bytes, content_type: str) -> str: ...
    def get_sponsored_material(self, product_id: str) -> dict | None: ...
    def upsert_boq_entry(
        self, project_id: str, key: str, entry: dict, *, increment_quantity: bool = False
    ) -> dict: ...


def _extension(content_type: str) -> str:
    return {"image/jpeg": "jpg", "image/png": "png", "image/webp": "webp"}.get(content_type, "bin")


# ---------------------------------------------------------------------------
# Supabase
# ---------------------------------------------------------------------------


class SupabaseProjectStore:
    """CRUD helpers over the Supabase project tables."""

    def __init__(self, client: Client | None = None):
        self._client = client

    @property
    def client(self) -> Client:
        if self._client is None:
            self._client = create_client(SUPABASE_URL, SUPABASE_SERVICE_ROLE_KEY)
        return self._client

    # --- projects ---

    def create_project(self, name: str) -> Project:
        project = Project(name=name)
        result = self.client.table("projects").insert(project.model_dump(mode="json")).execute()
        return Project.model_validate(result.data[0])

    def get_project(self, project_id: str) -> Project | None:
        result = self.client.table("projects").select("*").eq("id", project_id).execute()
        return Project.model_validate(result.data[0]) if result.data else None

    def set_current_version(self, project_id: str, version_id: str) -> None:
        self.client.table("projects").update({"current_version_id": version_id}).eq(
            "id", project_id
        ).execute()

    # --- image_versions ---

    def append_image_version(self, version: ImageVersion) -> ImageVersion:
        result = (
            self.client.table("image_versions")
            .insert(version.model_dump(mode="json"))
            .execute()
        )
        return ImageVersion.model_validate(result.data[0])

    def read_current_version(self, project_id: str) -> ImageVersion | None:
        project = self.get_project(project_id)
        if not project or not project.current_version_id:
            return None
        result = (
            self.client.table("image_versions")
            .select("*")
            .eq("id", project.current_version_id)
            .execute()
        )
        return ImageVersion.model_validate(result.data[0]) if result.data else None

    def list_image_versions(self, project_id: str) -> list[ImageVersion]:
        result = (
            self.client.table("image_versions")
            .select("*")
            .eq("project_id", project_id)
            .order("created_at")
            .execute()
        )
        return [ImageVersion.model_validate(row) for row in result.data]

    # --- regions ---

    def list_regions(self, project_id: str) -> list[Region]:
        result = (
            self.client.table("regions")
            .select("*")
            .eq("project_id", project_id)
            .order("created_at")
            .execute()
        )
        return [Region.model_validate(row) for row in result.data]

    def insert_region(self, project_id: str, region: Region) -> Region:
        row = {**region.model_dump(mode="json"), "project_id": project_id}
        self.client.table("regions").insert(row).execute()
        return region

    def update_region(self, project_id: str, region: Region) -> None:
        self.client.table("regions").update(region.model_dump(mode="json")).eq(
            "id", region.id
        ).eq("project_id", project_id).execute()

    def delete_region(self, project_id: str, region_id: str) -> None:
        self.client.table("regions").delete().eq("id", region_id).eq(
            "project_id", project_id
        ).execute()

    # --- storage ---

    def upload_image(self, project_id: str, data: bytes, content_type: str) -> str:
        path = f"{project_id}/{uuid.uuid4().hex[:12]}.{_extension(content_type)}"
        bucket = self.client.storage.from_(STORAGE_BUCKET)
        bucket.upload(path, data, file_options={"content-type": content_type, "upsert": "true"})
        url = bucket.get_public_url(path)
        logger.info("Uploaded %d bytes to %s/%s", len(data), STORAGE_BUCKET, path)
        return url

    # --- catalog + bill of quantities ---

    def get_sponsored_material(self, product_id: str) -> dict | None:
        result = self.client.table("sponsored_materials").select("*").eq("id", product_id).execute()
        return result.data[0] if result.data else None

    def upsert_boq_entry(
        self, project_id: str, key: str, entry: dict, *, increment_quantity: bool = False
    ) -> dict:
        existing = (
            self.client.table("boq_items")
            .select("*")
            .eq("project_id", project_id)
            .eq("key", key)
            .execute()
        )
        row = {**entry, "project_id": project_id, "key": key}
        if existing.data:
            if increment_quantity:
                row["quantity"] = existing.data[0].get("quantity", 0) + entry.get("quantity", 1)
            result = (
                self.client.table("boq_items")
                .update(row)
                .eq("id", existing.data[0]["id"])
                .execute()
            )
        else:
            row["id"] = uuid.uuid4().hex[:16]
            result = self.client.table("boq_items").insert(row).execute()
        return result.data[0]


# ---------------------------------------------------------------------------
# In-memory (mock mode and tests)
# ---------------------------------------------------------------------------


class InMemoryProjectStore:
    """Same contract as ``SupabaseProjectStore``; uploads come back as data URLs."""

    def __init__(self, sponsored_materials: dict[str, dict] | None = None):
        self.projects: dict[str, Project] = {}
        self.versions: dict[str, list[ImageVersion]] = {}
        self.regions: dict[str, dict[str, Region]] = {}
        self.sponsored_materials: dict[str, dict] = dict(sponsored_materials or {})
        self.boq: dict[str, dict[str, dict]] = {}

    def create_project(self, name: str) -> Project:
        project = Project(name=name)
        self.projects[project.id] = project
        self.versions[project.id] = []
        self.regions[project.id] = {}
        return project

    def get_project(self, project_id: str) -> Project | None:
        return self.projects.get(project_id)

    def set_current_version(self, project_id: str, version_id: str) -> None:
        self.projects[project_id].current_version_id = version_id

    def append_image_version(self, version: ImageVersion) -> ImageVersion:
        self.versions.setdefault(version.project_id, []).append(version)
        return version

    def read_current_version(self, project_id: str) -> ImageVersion | None:
        project = self.projects.get(project_id)
        if not project or not project.current_version_id:
            return None
        for version in self.versions.get(project_id, []):
            if version.id == project.current_version_id:
                return version
        return None

    def list_image_versions(self, project_id: str) -> list[ImageVersion]:
        return list(self.versions.get(project_id, []))

    def list_regions(self, project_id: str) -> list[Region]:
        return [r.model_copy(deep=True) for r in self.regions.get(project_id, {}).values()]

    def insert_region(self, project_id: str, region: Region) -> Region:
        self.regions.setdefault(project_id, {})[region.id] = region.model_copy(deep=True)
        return region

    def update_region(self, project_id: str, region: Region) -> None:
        self.regions.setdefault(project_id, {})[region.id] = region.model_copy(deep=True)

    def delete_region(self, project_id: str, region_id: str) -> None:
        self.regions.get(project_id, {}).pop(region_id, None)

    def upload_image(self, project_id: str, data: bytes, content_type: str) -> str:
        return to_data_url(data, content_type)

    def get_sponsored_material(self, product_id: str) -> dict | None:
        return self.sponsored_materials.get(product_id)

    def upsert_boq_entry(
        self, project_id: str, key: str, entry: dict, *, increment_quantity: bool = False
    ) -> dict:
        items = self.boq.setdefault(project_id, {})
        row = {**entry, "project_id": project_id, "key": key}
        if key in items and increment_quantity:
            row["quantity"] = items[key].get("quantity", 0) + entry.get("quantity", 1)
        items[key] = row
        return row


def create_store(mock: bool) -> ProjectStore:
    if mock:
        logger.warning("Supabase not configured, using in-memory project store (mock mode)")
        return InMemoryProjectStore()
    return SupabaseProjectStore()
