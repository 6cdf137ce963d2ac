"""GeneratedImage entity - one entry of the local history."""

from datetime import datetime, timezone
from typing import Optional
from uuid import uuid4

from sqlalchemy import Column, Text
from sqlmodel import Field, SQLModel

from colorbook.models.job import ColorMode, PrintSize, Resolution


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class GeneratedImage(SQLModel, table=True):
    """GeneratedImage is an immutable successful result.

    Only prompt, resolution and print size are kept from the producing job,
    together with seed and color mode for provenance.
    """

    __tablename__ = "images"  # type: ignore[assignment]

    id: str = Field(default_factory=lambda: uuid4().hex, primary_key=True, max_length=64)
    url: str = Field(sa_column=Column(Text, nullable=False))
    prompt: str
    timestamp: datetime = Field(default_factory=_utcnow, index=True)
    resolution: Resolution
    print_size: PrintSize
    seed: Optional[int] = Field(default=None)
    color_mode: Optional[ColorMode] = Field(default=None)
