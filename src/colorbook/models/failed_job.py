"""FailedJob entity - a replayable record of a job that did not succeed."""

import random
import time
from datetime import datetime, timezone

from sqlalchemy import JSON, Column
from sqlmodel import Field, SQLModel

from colorbook.models.job import JobDescriptor


def new_failed_job_id() -> str:
    """Build a time + random composite id (``fail-<epoch ms>-<0..999>``)."""
    return f"fail-{int(time.time() * 1000)}-{random.randrange(1000)}"


class FailedJob(SQLModel, table=True):
    """FailedJob keeps the frozen job config so a retry replays it exactly."""

    __tablename__ = "failed_jobs"  # type: ignore[assignment]

    id: str = Field(default_factory=new_failed_job_id, primary_key=True, max_length=64)
    timestamp: datetime = Field(default_factory=lambda: datetime.now(timezone.utc), index=True)
    error: str
    job_config: dict = Field(sa_column=Column(JSON, nullable=False))

    @classmethod
    def from_descriptor(cls, descriptor: JobDescriptor, error: str) -> "FailedJob":
        """Snapshot a descriptor (seed included) together with the error message."""
        return cls(error=error, job_config=descriptor.model_dump(mode="json"))

    def to_descriptor(self) -> JobDescriptor:
        """Rebuild the original descriptor for a verbatim replay."""
        return JobDescriptor.model_validate(self.job_config)
