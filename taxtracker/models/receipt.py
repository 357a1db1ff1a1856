"""
Receipt attachment model.

A receipt is owned by exactly one expense. Its binary payload is kept as raw
bytes in the database and travels inside snapshots as a self-describing
data URI so a backup is a single portable file.
"""

import base64
import binascii
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Optional

from .timestamps import format_timestamp, parse_timestamp

DATA_URI_PREFIX = "data:"


def encode_data_uri(mime_type: str, payload: bytes) -> str:
    """Encode a payload as a base64 data URI."""
    encoded = base64.b64encode(payload).decode("ascii")
    return f"{DATA_URI_PREFIX}{mime_type};base64,{encoded}"


def decode_data_uri(uri: str) -> tuple[str, bytes]:
    """
    Decode a base64 data URI.

    Returns:
        Tuple of (mime_type, payload)

    Raises:
        ValueError: If the URI is not a base64 data URI
    """
    if not isinstance(uri, str) or not uri.startswith(DATA_URI_PREFIX):
        raise ValueError("Receipt payload is not a data URI")

    header, sep, body = uri[len(DATA_URI_PREFIX) :].partition(",")
    if not sep or not header.endswith(";base64"):
        raise ValueError("Receipt payload is not base64 encoded")

    mime_type = header[: -len(";base64")] or "application/octet-stream"
    try:
        payload = base64.b64decode(body, validate=True)
    except binascii.Error as e:
        raise ValueError(f"Receipt payload is not valid base64: {e}") from e
    return mime_type, payload


@dataclass
class ReceiptFile:
    """
    A receipt attached to an expense.

    Attributes:
        name: Original file name
        mime_type: MIME type of the payload
        size_bytes: Size of the payload in bytes
        payload: Raw file contents
        uploaded_at: When the file was attached
    """

    name: str
    mime_type: str
    size_bytes: int
    payload: bytes
    uploaded_at: Optional[datetime] = None

    @classmethod
    def from_bytes(
        cls, name: str, mime_type: str, payload: bytes
    ) -> "ReceiptFile":
        """Create a receipt for freshly attached file contents."""
        return cls(
            name=name,
            mime_type=mime_type,
            size_bytes=len(payload),
            payload=payload,
            uploaded_at=datetime.now(timezone.utc),
        )

    def to_data_uri(self) -> str:
        return encode_data_uri(self.mime_type, self.payload)

    def to_dict(self) -> dict:
        """Convert to the snapshot representation."""
        return {
            "name": self.name,
            "mimeType": self.mime_type,
            "sizeBytes": self.size_bytes,
            "payload": self.to_data_uri(),
            "uploadedAt": format_timestamp(self.uploaded_at),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "ReceiptFile":
        """
        Create a receipt from its snapshot representation.

        Accepts both the current keys (mimeType, sizeBytes, payload) and the
        legacy browser keys (type, size, data).

        Raises:
            ValueError: If the record is malformed
        """
        if not isinstance(data, dict):
            raise ValueError("Receipt record must be an object")

        name = data.get("name")
        if not name:
            raise ValueError("Receipt record has no name")

        uri = data.get("payload", data.get("data"))
        uri_mime, payload = decode_data_uri(uri)
        mime_type = data.get("mimeType") or data.get("type") or uri_mime
        size = data.get("sizeBytes", data.get("size"))
        size_bytes = int(size) if size is not None else len(payload)
        if size_bytes < 0:
            raise ValueError(f"Receipt size cannot be negative: {size_bytes}")

        return cls(
            name=str(name),
            mime_type=str(mime_type),
            size_bytes=size_bytes,
            payload=payload,
            uploaded_at=parse_timestamp(data.get("uploadedAt")),
        )

    @classmethod
    def from_row(cls, row) -> "ReceiptFile":
        """Create a receipt from a receipt_files row."""
        return cls(
            name=row["name"],
            mime_type=row["mime_type"],
            size_bytes=row["size_bytes"],
            payload=bytes(row["payload"]),
            uploaded_at=parse_timestamp(row["uploaded_at"]),
        )
