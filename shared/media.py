"""
Media reference utilities.

Artifacts move through the pipeline as data URIs
('data:<mime>;base64,<payload>'). These helpers build and take them apart.
"""

import base64
import binascii
from typing import Tuple

from shared.errors import ValidationError


def to_data_uri(content: bytes, mime_type: str) -> str:
    """Encode raw bytes as a base64 data URI."""
    encoded = base64.b64encode(content).decode("ascii")
    return f"data:{mime_type};base64,{encoded}"


def parse_data_uri(uri: str) -> Tuple[str, bytes]:
    """
    Decode a base64 data URI.

    Returns:
        Tuple of (mime_type, content bytes)

    Raises:
        ValidationError: If the string is not a base64 data URI
    """
    if not uri.startswith("data:") or "," not in uri:
        raise ValidationError("Not a data URI")
    header, payload = uri[5:].split(",", 1)
    if not header.endswith(";base64"):
        raise ValidationError("Only base64 data URIs are supported")
    mime_type = header[: -len(";base64")] or "application/octet-stream"
    try:
        return mime_type, base64.b64decode(payload, validate=True)
    except (binascii.Error, ValueError) as e:
        raise ValidationError(f"Invalid base64 payload: {e}") from e

