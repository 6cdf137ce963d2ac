"""Preference documents: generation config, styles and palettes."""

from typing import Optional

from pydantic import BaseModel, Field

from colorbook.models.job import ColorMode, FrameStyle, PrintSize, Resolution

DEFAULT_STYLE_ID = "cozy-default"


class GenerationConfig(BaseModel):
    """Form state used by planners to build new descriptors."""

    prompt: str = ""
    style: str = DEFAULT_STYLE_ID
    print_size: PrintSize = PrintSize.SQUARE_8X8
    color_mode: ColorMode = ColorMode.BW
    resolution: Resolution = Resolution.R1K
    batch_count: int = Field(default=1, ge=1)
    use_frame: bool = False
    frame_style: FrameStyle = FrameStyle.SIMPLE
    selected_palette_id: Optional[str] = None


class StyleDefinition(BaseModel):
    """Art style with the instruction and negative prompt sent to the model."""

    id: str
    label: str
    icon: str = ""
    desc: str = ""
    is_custom: bool = False
    is_visible: bool = True
    instruction: str = ""
    negative_prompt: str = ""


class ColorPalette(BaseModel):
    """Named list of hex colors the model must stick to in color mode."""

    id: str
    name: str
    colors: list[str] = Field(default_factory=list)
    is_custom: bool = False
