"""Prompt construction for coloring-book pages.

Pure string building: task description, style, color rules, frame layout,
output ratio and negative prompt are assembled into one instruction block.
"""

from typing import Optional, Sequence

from colorbook.models.job import ColorMode, FrameStyle, PrintSize, TransformType

BASE_NEGATIVES: tuple[str, ...] = (
    "text",
    "writing",
    "letters",
    "typography",
    "watermark",
    "signature",
    "blurry",
    "noise",
    "jpeg artifacts",
    "pixelated",
    "low quality",
    "photorealistic",
    "photo",
    "3d render",
)
BW_NEGATIVES: tuple[str, ...] = (
    "color",
    "grey",
    "gray",
    "red",
    "blue",
    "green",
    "shading",
    "gradients",
)
COLORIZE_NEGATIVES = (
    "white background, empty background, uncolored spots, white gaps, incomplete coloring, sketch"
)
DECOLORIZE_NEGATIVES = "color, shading, gradient, grey, gray, painted, realistic"
FRAMELESS_NEGATIVES = (
    "frame, border, margin, padding, square box, rectangle box, picture frame, "
    "white border, outline around image"
)

FRAME_DESCRIPTIONS: dict[FrameStyle, str] = {
    FrameStyle.HAND_DRAWN: (
        "A wiggly, uneven, shaky doodle-style border. Not straight. "
        "Looks like it was drawn by a human hand with a marker. Wobbly lines."
    ),
    FrameStyle.SKETCHER: "A rough, sketched border with multiple overlapping loose lines.",
    FrameStyle.DOUBLE: "A double-line border. Two parallel lines surrounding the image.",
    FrameStyle.ORNATE: "A decorative border with corner flourishes or simple patterns.",
    FrameStyle.SIMPLE: "A clean, simple single-line black border.",
}


def _palette_rule(palette_colors: Sequence[str]) -> str:
    if not palette_colors:
        return ""
    return f"\n- PALETTE: YOU MUST STRICTLY USE THESE COLORS: [{', '.join(palette_colors)}]."


def _task_and_color(
    user_prompt: str,
    has_reference: bool,
    color_mode: ColorMode,
    palette_colors: Sequence[str],
    transform_type: Optional[TransformType],
) -> tuple[str, str, str]:
    """Return (task description, color instruction, transform negatives)."""
    if transform_type == TransformType.COLORIZE:
        task = (
            "TASK: FULLY COLORIZE the provided line art.\n"
            "CRITICAL RULE: DO NOT LEAVE ANY WHITE GAPS. FILL THE ENTIRE CANVAS.\n"
            "SUBJECT: Keep the exact lines and composition of the reference image.\n"
            "ACTION:\n"
            "1. Fill the main character/subject with vibrant colors.\n"
            "2. YOU MUST PAINT THE BACKGROUND. Create a full scene environment color.\n"
            "3. Ensure every pixel is colored."
        )
        color = (
            "COLOR MODE: RICH FULL COLOR ILLUSTRATION.\n"
            "- NO WHITE CANVAS. The image must look like a finished painting, not a sticker.\n"
            "- Do not change the line art style, just add color."
        ) + _palette_rule(palette_colors)
        return task, color, COLORIZE_NEGATIVES

    if transform_type == TransformType.DECOLORIZE:
        task = (
            "TASK: CONVERT the provided colored illustration into a BLACK AND WHITE COLORING PAGE.\n"
            "SUBJECT: Keep the composition exactly the same.\n"
            "ACTION: Remove all color, shading, and gradients. Turn it into clean line art."
        )
        color = (
            "COLOR MODE: STRICT BLACK AND WHITE ONLY.\n"
            "- NO GRAYSCALE. NO SHADING.\n"
            "- Pure #000000 lines on #FFFFFF background."
        )
        return task, color, DECOLORIZE_NEGATIVES

    if color_mode == ColorMode.BW:
        color = (
            "COLOR MODE: STRICT BLACK AND WHITE ONLY.\n"
            "- ABSOLUTELY NO GRAYSCALE. NO SHADING. NO GRADIENTS.\n"
            "- The image must be pure #000000 lines on pure #FFFFFF background.\n"
            "- This is a Coloring Book Page. The inside of shapes must be EMPTY (White) "
            "for the user to color."
        )
    else:
        color = (
            "COLOR MODE: FULL COLOR ILLUSTRATION.\n"
            "- Create a fully colored, finished illustration.\n"
            '- Keep the "Coloring Book" aesthetic (thick outlines), '
            "but fill the shapes with vibrant colors."
        ) + _palette_rule(palette_colors)

    if has_reference:
        task = (
            f'TASK: GENERATE A NEW IMAGE based on the text prompt: "{user_prompt}".\n\n'
            "REFERENCE IMAGES ROLE: STYLE & VIBE SOURCE ONLY.\n"
            "- Analyze the provided reference image(s) for Art Style, Line Weight, "
            "Color Palette, and Rendering Technique.\n"
            f'- APPLY that exact style to the NEW SUBJECT defined in the text prompt "{user_prompt}".\n'
            "- DO NOT simply redraw the reference image. Create a BRAND NEW composition.\n"
            "- If the reference is a photo, extract its vibe/color but draw it as a "
            "Coloring Page (as per rules).\n"
            "- If the reference is a drawing, mimic the artist's hand/brush strokes."
        )
    else:
        kind = "Black & White Coloring Page" if color_mode == ColorMode.BW else "Coloring Book Illustration"
        task = f"TASK: Create a {kind}.\nSUBJECT: {user_prompt}."

    return task, color, ""


def _frame(use_frame: bool, frame_style: FrameStyle) -> tuple[str, str]:
    """Return (frame instruction, frame negatives)."""
    if use_frame:
        description = FRAME_DESCRIPTIONS.get(frame_style, FRAME_DESCRIPTIONS[FrameStyle.SIMPLE])
        return (
            "LAYOUT: FRAMED.\n"
            "- Draw a border around the entire page.\n"
            f"- FRAME STYLE: {description}\n"
            "- The gap between the image edge and the frame must be MINIMAL "
            "(Maximize the drawing area inside).\n"
            "- The main illustration must be contained ENTIRELY inside this frame."
        ), ""

    return (
        "LAYOUT: FULL BLEED / EDGE-TO-EDGE.\n"
        "- CRITICAL RULE: DO NOT DRAW A FRAME. DO NOT DRAW A BORDER.\n"
        "- The illustration must extend all the way to the canvas edges.\n"
        "- Elements at the edges should be cut off by the canvas.\n"
        "- NO white margin around the drawing.\n"
        "- The drawing is NOT contained in a box."
    ), FRAMELESS_NEGATIVES


def build_prompt(
    user_prompt: str,
    *,
    has_reference: bool,
    print_size: PrintSize,
    color_mode: ColorMode,
    style_instruction: str = "",
    style_negatives: str = "",
    use_frame: bool = False,
    frame_style: FrameStyle = FrameStyle.SIMPLE,
    palette_colors: Sequence[str] = (),
    transform_type: Optional[TransformType] = None,
) -> str:
    """Assemble the full instruction text sent to the image model."""
    task, color, transform_negatives = _task_and_color(
        user_prompt, has_reference, color_mode, palette_colors, transform_type
    )
    frame, frame_negatives = _frame(use_frame, frame_style)

    negatives = list(BASE_NEGATIVES)
    if color_mode == ColorMode.BW or transform_type == TransformType.DECOLORIZE:
        negatives.extend(BW_NEGATIVES)
    negatives.extend(part for part in (style_negatives, transform_negatives, frame_negatives) if part)

    sections = [
        task,
        style_instruction.strip(),
        color,
        frame,
        f"OUTPUT SIZE RATIO: {print_size.value}.",
        f"NEGATIVE PROMPT: {', '.join(negatives)}.",
    ]
    return "\n\n".join(section for section in sections if section)
