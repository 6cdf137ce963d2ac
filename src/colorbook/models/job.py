"""Job descriptor - frozen parameter set for one generation attempt."""

import random
from dataclasses import dataclass
from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field

MAX_SEED = 1_000_000_000


class PrintSize(str, Enum):
    """Physical page size the generated image is printed at."""

    SQUARE_8X8 = '8.25x8.25"'
    LETTER = '8.5x11"'
    PORTRAIT_8X10 = '8x10"'
    PORTRAIT_6X9 = '6x9"'


class Resolution(str, Enum):
    """Output resolution tier."""

    R1K = "1k"
    R2K = "2k"
    R4K = "4k"


class ColorMode(str, Enum):
    """Black-and-white coloring page or full color illustration."""

    BW = "bw"
    COLOR = "color"


class FrameStyle(str, Enum):
    """Border drawn around a framed page."""

    HAND_DRAWN = "Hand Drawn"
    SKETCHER = "Sketcher"
    SIMPLE = "Simple Line"
    DOUBLE = "Double Line"
    ORNATE = "Ornate"


class TransformType(str, Enum):
    """Whole-image transformation applied to a reference image."""

    COLORIZE = "colorize"
    DECOLORIZE = "decolorize"


def random_seed() -> int:
    """Return a fresh seed for a new job."""
    return random.randrange(MAX_SEED)


class JobDescriptor(BaseModel):
    """Immutable input for one job.

    Created by a planner, consumed once by the executor, and snapshotted
    verbatim (seed included) into a FailedJob when the job fails.
    """

    model_config = ConfigDict(frozen=True)

    prompt: str
    print_size: PrintSize
    seed: int = Field(ge=0)
    style: str
    color_mode: ColorMode
    resolution: Resolution
    use_frame: bool = False
    frame_style: FrameStyle = FrameStyle.SIMPLE
    reference_images: tuple[str, ...] = ()
    is_editing: bool = False
    transform_type: Optional[TransformType] = None
    selected_palette_id: Optional[str] = None

    @property
    def action_label(self) -> str:
        """Human-readable verb used in session log entries."""
        if self.transform_type == TransformType.COLORIZE:
            return "Colorizing"
        if self.transform_type == TransformType.DECOLORIZE:
            return "Decolorizing"
        return "Editing" if self.is_editing else "Generating"


@dataclass(frozen=True)
class GenerationRequest:
    """Everything the remote call needs: the descriptor plus resolved preferences."""

    descriptor: JobDescriptor
    style_instruction: str = ""
    style_negatives: str = ""
    palette_colors: tuple[str, ...] = ()


@dataclass(frozen=True)
class GenerationOutcome:
    """Successful result of a generation call."""

    content: str
    used_model: str
