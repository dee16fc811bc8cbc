"""Models for uploaded files and parsed messages."""

import base64
from datetime import datetime
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field


class UploadedFile(BaseModel):
    """A raw file staged for ingestion.

    Content is kept base64-encoded so the model round-trips through JSON
    artifacts unchanged.
    """

    filename: str = Field(description="Original filename, including any archive path")
    mimetype: str = Field(default="application/octet-stream")
    data: str = Field(default="", description="Base64-encoded file content")

    @classmethod
    def from_bytes(cls, filename: str, content: bytes, mimetype: str = "application/octet-stream") -> "UploadedFile":
        return cls(
            filename=filename,
            mimetype=mimetype,
            data=base64.b64encode(content).decode("ascii"),
        )

    @property
    def raw(self) -> bytes:
        return base64.b64decode(self.data)


class RawMessage(BaseModel):
    """One message as produced by a format parser.

    Immutable; owned by ingestion until handed to the stitcher.
    """

    model_config = ConfigDict(frozen=True)

    source: str = Field(description="File identifier the message came from")
    content: str = Field(description="Message text")
    timestamp: Optional[str] = Field(None, description="Timestamp exactly as it appeared")
    sender: Optional[str] = Field(None, description="Sender exactly as it appeared")
    tags: dict[str, Any] = Field(
        default_factory=dict,
        description="Parser annotations (type, system, error)",
    )

    @property
    def extraction_failed(self) -> bool:
        return self.tags.get("error") == "extraction_failed"


class TimelineMessage(RawMessage):
    """A RawMessage placed on the stitched timeline."""

    index: int = Field(ge=0, description="Dense chronological position")
    resolved_time: Optional[datetime] = Field(
        None, description="Absolute UTC time, if the timestamp could be resolved"
    )
