"""Bill-of-quantities updates after a successful render.

These writes are secondary: callers catch and log their failures, a render
that produced and saved an image is never reported as failed because of them.
"""

import logging

from ..db import ProjectStore
from ..models.schemas import FloorEdit, FloorSourceKind, PlacementEdit, WallEdit

logger = logging.getLogger(__name__)

# Rough paint coverage: cost of one wall ≈ 100 units of the listed price
PAINT_UNITS_PER_WALL = 100


def record_wall_products(store: ProjectStore, project_id: str, walls: list[WallEdit]) -> int:
    """Add one BOQ line per sponsored paint used in this render. Returns lines written."""
    by_product: dict[str, list[str]] = {}
    for wall in walls:
        if wall.sponsored_product_id:
            by_product.setdefault(wall.sponsored_product_id, []).append(wall.label)

    written = 0
    for product_id, labels in by_product.items():
        product = store.get_sponsored_material(product_id)
        if not product:
            logger.warning("Sponsored material %s not in catalog, skipping BOQ", product_id)
            continue
        price = product.get("price") or 0
        store.upsert_boq_entry(
            project_id,
            f"paint:{product_id}",
            {
                "name": product.get("name"),
                "brand": product.get("brand"),
                "category": product.get("type", "paint"),
                "unit_price": price,
                "estimated_cost": price * PAINT_UNITS_PER_WALL * len(labels),
                "applied_to": labels,
            },
        )
        written += 1
    return written


def record_flooring(store: ProjectStore, project_id: str, floor: FloorEdit) -> None:
    intent = floor.intent
    store.upsert_boq_entry(
        project_id,
        "flooring",
        {
            "name": intent.material_name,
            "brand": intent.brand,
            "category": "flooring",
            "product_id": intent.sponsored_product_id
            if intent.source_kind == FloorSourceKind.SPONSORED
            else None,
            "price_per_sq_ft": intent.price,
        },
    )


def record_placements(store: ProjectStore, project_id: str, placements: list[PlacementEdit]) -> None:
    for edit in placements:
        p = edit.placement
        store.upsert_boq_entry(
            project_id,
            f"product:{p.product_id}",
            {
                "name": p.name,
                "brand": p.brand,
                "category": "furniture",
                "unit_price": p.price,
                "quantity": 1,
            },
            increment_quantity=True,
        )
