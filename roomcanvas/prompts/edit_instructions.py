"""Prompt templates, one per edit group, plus the shared inpainting rules."""

from ..models.schemas import FloorEditIntent, FloorSourceKind, FurniturePlacement, WallEdit

COLOR_NAMES = {
    "#FF0000": "RED",
    "#0000FF": "BLUE",
    "#00FF00": "GREEN",
    "#FFFF00": "YELLOW",
    "#FF00FF": "MAGENTA",
    "#00FFFF": "CYAN",
    "#FFA500": "ORANGE",
    "#800080": "PURPLE",
}


def color_name(hex_color: str) -> str:
    return COLOR_NAMES.get(hex_color.upper(), hex_color.upper())


def inpainting_constraints(edit_area: str) -> str:
    """Rules every edit prompt ends with. ``edit_area`` names what may change."""
    return f"""\
CRITICAL CONSTRAINTS - INPAINTING MODE:
1. ACT AS AN INPAINTING MODEL. PRESERVE THE EXACT SCENE GEOMETRY.
2. DO NOT CHANGE THE CAMERA ANGLE, ZOOM, OR PERSPECTIVE.
3. DO NOT REGENERATE THE ROOM. EVERY PIXEL OUTSIDE THE EDITED AREA MUST STAY AS IT IS.
4. DO NOT MOVE, ADD OR CHANGE FURNITURE.
5. ONLY MODIFY THE PIXELS OF {edit_area}.
6. The output must overlay perfectly with the original image."""


def wall_instruction(edit: WallEdit) -> str:
    line = f"- {edit.label.upper()}: repaint the wall surface marked \"{edit.label.upper()}\". TARGET COLOR: {edit.color}"
    if edit.sponsored_product_name:
        line += f" (paint product: {edit.sponsored_product_name})"
    return line + ". Keep the existing lighting, shadows and wall texture."


def floor_instruction(intent: FloorEditIntent) -> str:
    line = f"- FLOOR: replace the floor material. TARGET MATERIAL: {intent.material_name}"
    if intent.brand:
        line += f" by {intent.brand}"
    if intent.source_kind == FloorSourceKind.CUSTOM_IMAGE:
        line += ". Use the texture/pattern from the LAST IMAGE provided"
    if intent.custom_prompt:
        line += f". DESCRIPTION: {intent.custom_prompt.strip()}"
    return line + ". Match the room's perspective, scale the pattern realistically and keep furniture on top of it."


def surface_edit_prompt(
    wall_lines: list[str],
    floor_line: str | None,
    image_roles: list[str],
    marker_colors: str,
) -> str:
    """Build the wall/floor inpainting prompt.

    ``image_roles`` describes every attached image in order, e.g.
    ``["The room photo that needs editing.", "Reference with the walls marked ..."]``.
    ``marker_colors`` names the outline colours drawn on the marker image.
    """
    images = "\n".join(f"IMAGE {i}: {role}" for i, role in enumerate(image_roles, start=1))
    edits = "\n".join(wall_lines + ([floor_line] if floor_line else []))
    count = "ONE image" if len(image_roles) == 1 else f"{len(image_roles)} images"

    if wall_lines and floor_line:
        goal = f"""\
1. For WALL edits: inpaint each wall area inside its {marker_colors} polygon in IMAGE 2, in the same place in IMAGE 1.
2. For the FLOOR edit: find the floor area yourself (where the floor meets walls and furniture) and inpaint it with the new material."""
        area = "THE MARKED WALLS AND THE FLOOR"
    elif wall_lines:
        goal = f"""\
1. Identify each wall location from IMAGE 2 (the area inside each {marker_colors} polygon).
2. Inpaint that SAME wall area in IMAGE 1 with its target color."""
        area = "THE MARKED WALL AREAS"
    else:
        goal = """\
1. Find the floor area in the room (where the floor meets walls and furniture).
2. INPAINT the detected floor area with the new material."""
        area = "THE FLOOR AREA"

    overlay_note = (
        f"\nNote: the {marker_colors} polygons and labels from IMAGE 2 must NOT appear in your output."
        if wall_lines
        else ""
    )

    return f"""\
TASK: INPAINTING / IMAGE EDITING

I provide {count} of the same room:

{images}

YOUR GOAL:
{goal}

EDITS TO APPLY:
{edits}

{inpainting_constraints(area)}
{overlay_note}
Return the edited IMAGE 1 only, as a high-quality realistic photo with NO GEOMETRY CHANGES."""


def placement_prompt(
    placements: list[FurniturePlacement],
    product_image_numbers: dict[str, int],
) -> str:
    """Build the furniture placement prompt.

    Image 1 is the room, Image 2 the colour-coded stroke map, then one image per
    product whose picture could be fetched (``product_image_numbers`` maps
    placement id → image number). Products without a picture are described by name.
    """
    refs = [
        "Image 1: The original room photo.",
        "Image 2: A color-coded reference map. Colored brush strokes show where each product goes.",
    ]
    instructions = []
    for p in placements:
        cname = color_name(p.color)
        number = product_image_numbers.get(p.id)
        label = f"{p.name} by {p.brand}" if p.brand else p.name
        if number is not None:
            refs.append(f"Image {number}: Product photo of {label}.")
            instructions.append(
                f"- Place the item from Image {number} ({label}) where the {cname} ({p.color}) strokes are in Image 2."
            )
        else:
            instructions.append(
                f"- Place a {label} where the {cname} ({p.color}) strokes are in Image 2."
            )

    return f"""\
TASK: PLACE FURNITURE INTO A ROOM PHOTO

{chr(10).join(refs)}

PLACEMENTS:
{chr(10).join(instructions)}

RULES:
1. Reproduce each product's shape, color and material faithfully from its product photo.
2. Scale each product realistically for the room and align it with the floor and walls.
3. Add natural contact shadows and match the room's lighting.
4. The colored strokes from Image 2 must NOT appear in your output.
5. DO NOT CHANGE THE CAMERA ANGLE, ZOOM, OR PERSPECTIVE. Keep everything else in the room unchanged.

Return the edited Image 1 only, as a high-quality realistic photo."""


def mask_edit_prompt(prompt: str, has_reference: bool) -> str:
    """Build the prompt for a free-form edit inside a brushed mask.

    Image 1 is the room, Image 2 the black-and-white mask, and Image 3 an
    optional style reference.
    """
    refs = [
        "IMAGE 1: The room photo that needs editing.",
        "IMAGE 2: A black-and-white mask of the same size. The WHITE area is the only area to edit.",
    ]
    if has_reference:
        refs.append("IMAGE 3: A style reference. Match its look, material and color in the edited area.")

    return f"""\
TASK: SEMANTIC INPAINTING

{chr(10).join(refs)}

USER EDIT REQUEST:
{prompt.strip()}

RULES:
1. Apply the request ONLY inside the white area of IMAGE 2. Every pixel outside it must stay as it is.
2. Preserve the lighting, shadows and perspective of the room.
3. DO NOT change structural walls, major floor areas or the room layout.
4. DO NOT CHANGE THE CAMERA ANGLE, ZOOM, OR PERSPECTIVE.
5. Do not add text, labels or watermarks. The mask itself must NOT appear in your output.

Return the edited IMAGE 1 only, as a high-quality realistic photo."""
