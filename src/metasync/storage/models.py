"""Object storage data models."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from enum import StrEnum


class SignedUrlOperation(StrEnum):
    """Operation a signed URL authorizes."""

    GET = "get"
    PUT = "put"


@dataclass(frozen=True)
class ObjectHead:
    """Authoritative attributes of a stored object, as reported by HEAD.

    Attributes:
        bucket: Bucket holding the object.
        key: Object key within the bucket.
        content_type: MIME type, if the store recorded one.
        size: Content length in bytes, if reported.
        sha256: Hex SHA-256 of the content, if the store tracks checksums.
        last_modified: Last modification timestamp reported by the store.
    """

    bucket: str
    key: str
    content_type: str | None
    size: int | None
    sha256: str | None
    last_modified: datetime

    def to_dict(self) -> dict[str, str | int | None]:
        """Convert to a JSON-serializable dictionary."""
        return {
            "bucket": self.bucket,
            "key": self.key,
            "content_type": self.content_type,
            "size": self.size,
            "sha256": self.sha256,
            "last_modified": self.last_modified.isoformat(),
        }

    @classmethod
    def from_dict(cls, data: dict[str, str | int | None]) -> ObjectHead:
        """Create an ObjectHead from a dictionary produced by to_dict()."""
        last_modified_raw = data.get("last_modified")
        if isinstance(last_modified_raw, str):
            last_modified = datetime.fromisoformat(last_modified_raw)
        elif isinstance(last_modified_raw, datetime):
            last_modified = last_modified_raw
        else:
            raise ValueError("last_modified is required")

        size_raw = data.get("size")
        content_type_raw = data.get("content_type")
        sha256_raw = data.get("sha256")

        return cls(
            bucket=str(data["bucket"]),
            key=str(data["key"]),
            content_type=str(content_type_raw) if content_type_raw else None,
            size=int(size_raw) if size_raw is not None else None,
            sha256=str(sha256_raw) if sha256_raw else None,
            last_modified=last_modified,
        )
