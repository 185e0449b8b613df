"""
Record schemas - what the repositories persist.

JobRecord and TemplateRecord both point at a blob: the id the blob store
assigned and the SHA1 used to verify the content on read.
"""

from dataclasses import dataclass
from typing import Any


@dataclass(frozen=True)
class JobRecord:
    """Uploaded job source tarball."""
    blob_id: str
    sha1: str

    def to_dict(self) -> dict[str, Any]:
        return {"blob_id": self.blob_id, "sha1": self.sha1}

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "JobRecord":
        return cls(blob_id=data["blob_id"], sha1=data["sha1"])


@dataclass(frozen=True)
class TemplateRecord:
    """Uploaded rendered templates archive for one (job, instance)."""
    blob_id: str
    sha1: str

    def to_dict(self) -> dict[str, Any]:
        return {"blob_id": self.blob_id, "sha1": self.sha1}

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "TemplateRecord":
        return cls(blob_id=data["blob_id"], sha1=data["sha1"])


@dataclass(frozen=True)
class RenderedArchiveRecord:
    """Location of a rendered archive as returned to callers."""
    blob_id: str
    sha1: str
