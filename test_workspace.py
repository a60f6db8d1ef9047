"""Tests for region editing, pending edits and version switching."""

import io

import pytest
from PIL import Image

from conftest import make_image_bytes
from roomcanvas.errors import (
    LabelConflictError,
    NotFoundError,
    PlacementLimitError,
    RenderInProgressError,
    ValidationError,
)
from roomcanvas.models.schemas import (
    PLACEMENT_COLORS,
    EditGroup,
    FloorEditIntent,
    FloorSourceKind,
    FurniturePlacement,
    MaskEdit,
    PendingEditSet,
    Region,
    ViewTransform,
)
from roomcanvas.tools.images import ImageFetcher, parse_data_url
from roomcanvas.workflow.workspace import ProjectWorkspace

SQUARE = [100, 100, 600, 100, 600, 700, 100, 700]


class TestRegions:
    def test_add_region_stores_normalized_points(self, workspace, store):
        region = workspace.add_region(SQUARE, label="Wall 1")
        assert all(0.0 <= p <= 1.0 for p in region.polygon_points)
        assert region.polygon_points[:2] == pytest.approx([100 / 1920, 100 / 1080])
        assert region.created_on_image_id == workspace.current_version.id
        assert [r.id for r in store.list_regions(workspace.project_id)] == [region.id]

    def test_default_labels_count_up(self, workspace):
        first = workspace.add_region(SQUARE)
        second = workspace.add_region(SQUARE)
        assert (first.label, second.label) == ("Wall 1", "Wall 2")

    def test_view_space_points_are_mapped_to_image(self, workspace):
        view = ViewTransform(scale=0.5, offset_x=40, offset_y=10)
        pts = [40 + 50, 10 + 50, 40 + 300, 10 + 50, 40 + 300, 10 + 350]
        region = workspace.add_region(pts, label="Zoomed", view=view)
        assert region.polygon_points[:2] == pytest.approx([100 / 1920, 100 / 1080])

    def test_tiny_region_rejected(self, workspace):
        with pytest.raises(ValidationError) as exc:
            workspace.add_region([0, 0, 10, 0, 0, 10])
        assert exc.value.reason == "too small"
        assert workspace.regions == {}

    def test_two_point_region_rejected(self, workspace):
        with pytest.raises(ValidationError) as exc:
            workspace.add_region([0, 0, 100, 100])
        assert exc.value.reason == "too few points"

    def test_nan_region_rejected(self, workspace, store):
        nan = float("nan")
        with pytest.raises(ValidationError) as exc:
            workspace.add_region([nan, nan, 600, 100, 600, 700, 100, 700], label="Broken")
        assert exc.value.reason == "outside bounds"
        assert workspace.regions == {}
        assert store.list_regions(workspace.project_id) == []

    def test_region_model_rejects_nan(self):
        with pytest.raises(ValueError):
            Region(label="Wall", polygon_points=[float("nan"), 0.1, 0.5, 0.1, 0.5, 0.5])

    def test_duplicate_label_case_insensitive(self, workspace):
        workspace.add_region(SQUARE, label="Wall 1")
        with pytest.raises(LabelConflictError):
            workspace.add_region(SQUARE, label="wall 1")
        with pytest.raises(LabelConflictError):
            workspace.add_region(SQUARE, label="  WALL 1 ")

    def test_rename_to_existing_label_rejected(self, workspace):
        workspace.add_region(SQUARE, label="Wall 1")
        other = workspace.add_region(SQUARE, label="Accent")
        with pytest.raises(LabelConflictError):
            workspace.rename_region(other.id, "wall 1")
        assert workspace.regions[other.id].label == "Accent"

    def test_rename_to_own_label_with_new_case(self, workspace):
        region = workspace.add_region(SQUARE, label="Wall 1")
        assert workspace.rename_region(region.id, "WALL 1").label == "WALL 1"

    def test_rename_updates_pending_label(self, workspace):
        region = workspace.add_region(SQUARE, label="Wall 1")
        workspace.set_wall_edit(region.id, "#87ceeb")
        workspace.rename_region(region.id, "Feature wall")
        assert workspace.pending.walls[region.id].label == "Feature wall"

    def test_delete_removes_pending_edit(self, workspace, store):
        region = workspace.add_region(SQUARE, label="Wall 1")
        workspace.set_wall_edit(region.id, "#87CEEB")
        workspace.delete_region(region.id)
        assert region.id not in workspace.pending.walls
        assert store.list_regions(workspace.project_id) == []

    def test_region_needs_a_photo(self, store):
        ws = ProjectWorkspace.load(store, store.create_project("Empty").id)
        with pytest.raises(NotFoundError):
            ws.add_region(SQUARE)


class TestPendingEdits:
    def test_wall_edit_replaces_previous(self, workspace):
        region = workspace.add_region(SQUARE, label="Wall 1")
        workspace.set_wall_edit(region.id, "#FF0000")
        workspace.set_wall_edit(region.id, "#00ff00")
        assert len(workspace.pending.walls) == 1
        assert workspace.pending.walls[region.id].color == "#00FF00"

    def test_clear_is_idempotent(self, workspace):
        region = workspace.add_region(SQUARE, label="Wall 1")
        workspace.set_wall_edit(region.id, "#FF0000")
        workspace.clear_pending()
        once = workspace.pending.model_dump()
        workspace.clear_pending()
        assert workspace.pending.model_dump() == once
        assert workspace.pending.is_empty()

    def test_clear_one_group_keeps_other(self, workspace):
        region = workspace.add_region(SQUARE, label="Wall 1")
        workspace.set_wall_edit(region.id, "#FF0000")
        workspace.add_placement(FurniturePlacement(product_id="p1", name="Sofa"))
        workspace.clear_pending(EditGroup.SURFACE)
        assert workspace.pending.walls == {}
        assert len(workspace.pending.placements) == 1

    def test_mask_edit_replaced_and_cleared_with_its_group(self, workspace):
        workspace.set_mask_edit(MaskEdit(prompt="add a rug", strokes=[[0.5, 0.9]]))
        workspace.set_mask_edit(MaskEdit(prompt="add a lamp", strokes=[[0.2, 0.3]]))
        workspace.add_placement(FurniturePlacement(product_id="p1", name="Sofa"))
        assert workspace.pending.edits_for(EditGroup.MASK)[0].prompt == "add a lamp"

        workspace.clear_pending(EditGroup.MASK)
        assert workspace.pending.mask is None
        assert len(workspace.pending.placements) == 1

    def test_mask_edit_needs_a_photo(self, store):
        project = store.create_project("Empty")
        ws = ProjectWorkspace.load(store, project.id)
        with pytest.raises(NotFoundError):
            ws.set_mask_edit(MaskEdit(prompt="add a rug", strokes=[[0.5, 0.9]]))

    def test_placement_colors_assigned_in_order(self):
        pending = PendingEditSet()
        colors = [
            pending.add_placement(FurniturePlacement(product_id=f"p{i}", name=f"Item {i}")).color
            for i in range(len(PLACEMENT_COLORS))
        ]
        assert colors == list(PLACEMENT_COLORS)
        with pytest.raises(PlacementLimitError):
            pending.add_placement(FurniturePlacement(product_id="p9", name="One too many"))

    def test_removed_placement_frees_its_color(self):
        pending = PendingEditSet()
        first = pending.add_placement(FurniturePlacement(product_id="a", name="Lamp"))
        pending.add_placement(FurniturePlacement(product_id="b", name="Rug"))
        pending.remove_placement(first.id)
        again = pending.add_placement(FurniturePlacement(product_id="c", name="Chair"))
        assert again.color == PLACEMENT_COLORS[0]

    def test_update_strokes_validates(self, workspace):
        placement = workspace.add_placement(FurniturePlacement(product_id="p1", name="Sofa"))
        updated = workspace.update_placement_strokes(placement.id, [[0.1, 0.1, 0.2, 0.2]])
        assert updated.strokes == [[0.1, 0.1, 0.2, 0.2]]
        with pytest.raises(ValueError):
            workspace.update_placement_strokes(placement.id, [[0.1, 2.0]])
        with pytest.raises(ValueError):
            workspace.update_placement_strokes(placement.id, [[0.1, float("nan")]])

    def test_edits_locked_while_rendering(self, workspace):
        region = workspace.add_region(SQUARE, label="Wall 1")
        workspace.render_active = True
        with pytest.raises(RenderInProgressError):
            workspace.set_wall_edit(region.id, "#FF0000")
        with pytest.raises(RenderInProgressError):
            workspace.add_region(SQUARE, label="Wall 2")
        with pytest.raises(RenderInProgressError):
            workspace.clear_pending()


class TestFloorIntent:
    def test_custom_image_wins_over_text(self):
        intent = FloorEditIntent(
            material_id="custom",
            material_name="Custom floor",
            source_kind=FloorSourceKind.CUSTOM_TEXT,
            custom_prompt="herringbone oak",
            custom_image="data:image/png;base64,AAAA",
        )
        assert intent.source_kind == FloorSourceKind.CUSTOM_IMAGE
        assert intent.custom_prompt == "herringbone oak"

    def test_custom_text_needs_prompt(self):
        with pytest.raises(ValueError):
            FloorEditIntent(material_id="c", material_name="Custom", source_kind=FloorSourceKind.CUSTOM_TEXT)

    def test_sponsored_needs_product(self):
        with pytest.raises(ValueError):
            FloorEditIntent(material_id="sf1", material_name="Premium Marble", source_kind=FloorSourceKind.SPONSORED)


class TestVersions:
    def test_select_version_clears_pending(self, workspace):
        original = workspace.current_version
        region = workspace.add_region(SQUARE, label="Wall 1")
        workspace.set_wall_edit(region.id, "#FF0000")
        workspace.set_floor_edit(FloorEditIntent(material_id="qf1", material_name="Oak Wood"))

        second = workspace.add_original_image(make_image_bytes(1920, 1080, color=(10, 10, 10)))
        workspace.set_wall_edit(region.id, "#0000FF")
        workspace.select_version(original.id)

        assert workspace.pending.is_empty()
        assert workspace.project.current_version_id == original.id
        assert second.id in [v.id for v in workspace.versions]

    @pytest.mark.asyncio
    async def test_stale_marker_cleared_on_switch(self, workspace):
        original = workspace.current_version
        region = workspace.add_region(SQUARE, label="Wall 1")
        assert await workspace.attach_marker(region.id, ImageFetcher())
        assert region.marker_valid_for(original.id)

        workspace.add_original_image(make_image_bytes(800, 600))
        assert region.marker_image_url is None
        assert region.marked_on_image_id is None

    @pytest.mark.asyncio
    async def test_marker_cleared_when_selecting_old_version(self, workspace):
        original = workspace.current_version
        region = workspace.add_region(SQUARE, label="Wall 1")
        workspace.add_original_image(make_image_bytes(1920, 1080, color=(10, 10, 10)))
        assert await workspace.attach_marker(region.id, ImageFetcher())

        workspace.select_version(original.id)
        assert not region.marker_valid_for(original.id)
        assert region.marker_image_url is None

    def test_unknown_version(self, workspace):
        with pytest.raises(NotFoundError):
            workspace.select_version("img_missing")


class TestMarkerCache:
    @pytest.mark.asyncio
    async def test_attach_marker_records_image_and_version(self, workspace, store):
        region = workspace.add_region(SQUARE, label="Wall 1")
        assert await workspace.attach_marker(region.id, ImageFetcher())

        assert region.marked_on_image_id == workspace.current_version.id
        mime, data = parse_data_url(region.marker_image_url)
        assert mime == "image/png"
        assert Image.open(io.BytesIO(data)).size == (1920, 1080)
        saved = store.list_regions(workspace.project_id)[0]
        assert saved.marker_image_url == region.marker_image_url

    @pytest.mark.asyncio
    async def test_rename_drops_marker(self, workspace):
        region = workspace.add_region(SQUARE, label="Wall 1")
        await workspace.attach_marker(region.id, ImageFetcher())
        workspace.rename_region(region.id, "Feature wall")
        assert region.marker_image_url is None

    @pytest.mark.asyncio
    async def test_unreadable_photo_leaves_region_unmarked(self, workspace):
        region = workspace.add_region(SQUARE, label="Wall 1")
        workspace.current_version.url = "data:image/png;base64,bm90IGFuIGltYWdl"
        assert not await workspace.attach_marker(region.id, ImageFetcher())
        assert region.marker_image_url is None
