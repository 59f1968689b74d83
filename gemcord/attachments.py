"""Data-URI encoding for chat attachments."""

from __future__ import annotations

import base64
import binascii
import re

from gemcord.models import InlineData, Part

_DATA_URI = re.compile(r"^data:(?P<mime>[\w.+-]+/[\w.+-]+);base64,(?P<data>.*)$", re.DOTALL)

DEFAULT_MIME_TYPE = "application/octet-stream"


def encode_data_uri(content: bytes, mime_type: str | None) -> str:
    """Encode bytes as `data:<mime>;base64,<data>`."""

    mime = (mime_type or DEFAULT_MIME_TYPE).split(";")[0].strip() or DEFAULT_MIME_TYPE
    return f"data:{mime};base64,{base64.b64encode(content).decode('ascii')}"


def parse_data_uri(uri: str) -> InlineData:
    """Split a base64 data URI into its MIME type and payload.

    Raises:
        ValueError: The URI is not a base64 data URI with a MIME type.
    """
    match = _DATA_URI.match(uri.strip())
    if match is None:
        raise ValueError("Expected a data URI of the form 'data:<mimetype>;base64,<encoded_data>'")
    data = match.group("data")
    try:
        base64.b64decode(data, validate=True)
    except (binascii.Error, ValueError) as exc:
        raise ValueError("Data URI payload is not valid base64") from exc
    return InlineData(mime_type=match.group("mime"), data=data)


def data_uri_part(uri: str) -> Part:
    return Part(inline_data=parse_data_uri(uri))
