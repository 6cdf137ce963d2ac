"""Zip export of the image history."""

import base64
import binascii
import zipfile
from pathlib import Path
from typing import Sequence

from colorbook.models.image import GeneratedImage

EXPORT_FOLDER = "coloring-book-pages"


def decode_data_uri(data_uri: str) -> bytes:
    """Decode a ``data:<mime>;base64,<payload>`` URI into raw bytes.

    Raises:
        ValueError: If the value is not a base64 data URI
    """
    header, sep, payload = data_uri.partition(",")
    if not sep or not header.startswith("data:") or not header.endswith(";base64"):
        raise ValueError("Image is not stored as a base64 data URI")
    try:
        return base64.b64decode(payload, validate=True)
    except binascii.Error as e:
        raise ValueError(f"Invalid base64 payload: {e}") from e


def export_zip(images: Sequence[GeneratedImage], destination: Path) -> Path:
    """Write every image into ``coloring-book-pages/coloring-page-<n>.png``.

    Returns:
        Path of the written archive
    """
    destination.parent.mkdir(parents=True, exist_ok=True)
    with zipfile.ZipFile(destination, "w", compression=zipfile.ZIP_DEFLATED) as archive:
        for index, image in enumerate(images):
            archive.writestr(f"{EXPORT_FOLDER}/coloring-page-{index}.png", decode_data_uri(image.url))
    return destination
