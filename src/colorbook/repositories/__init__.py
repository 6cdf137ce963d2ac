"""Repository layer.

Provides data access abstractions for the history, the retry queue and
preference documents. Each repository is self-contained.
"""

from colorbook.repositories.document import DocumentRepository
from colorbook.repositories.failed_job import FailedJobRepository
from colorbook.repositories.image import GeneratedImageRepository

__all__ = [
    "DocumentRepository",
    "FailedJobRepository",
    "GeneratedImageRepository",
]
