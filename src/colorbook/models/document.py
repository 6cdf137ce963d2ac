"""StoredDocument entity - key-value store for preference documents."""

from datetime import datetime, timezone
from typing import Any

from pydantic import field_validator
from sqlalchemy import JSON, Column
from sqlmodel import Field, SQLModel


class StoredDocument(SQLModel, table=True):
    """One JSON document per key (generation config, palettes, styles, schema version)."""

    __tablename__ = "documents"  # type: ignore[assignment]

    key: str = Field(primary_key=True, max_length=255)
    value: Any = Field(sa_column=Column(JSON))
    updated_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    @field_validator("key")
    @classmethod
    def validate_key(cls, v: str) -> str:
        """Validate key is alphanumeric + underscores only."""
        if not v.replace("_", "").isalnum():
            raise ValueError("Key must be alphanumeric with underscores only")
        return v
