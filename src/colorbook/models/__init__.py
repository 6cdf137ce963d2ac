"""Domain entities.

Table models are imported here so they are registered with SQLModel metadata
before the schema is created.
"""

from colorbook.models.document import StoredDocument
from colorbook.models.failed_job import FailedJob
from colorbook.models.image import GeneratedImage
from colorbook.models.job import (
    ColorMode,
    FrameStyle,
    GenerationOutcome,
    GenerationRequest,
    JobDescriptor,
    PrintSize,
    Resolution,
    TransformType,
)
from colorbook.models.preferences import ColorPalette, GenerationConfig, StyleDefinition

__all__ = [
    "ColorMode",
    "ColorPalette",
    "FailedJob",
    "FrameStyle",
    "GeneratedImage",
    "GenerationConfig",
    "GenerationOutcome",
    "GenerationRequest",
    "JobDescriptor",
    "PrintSize",
    "Resolution",
    "StoredDocument",
    "StyleDefinition",
    "TransformType",
]
