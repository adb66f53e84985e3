from dataclasses import dataclass, field
from enum import StrEnum
from pathlib import Path
from typing import Any

from uploader.upload.content import FileContent, LocalFileContent, guess_mime_type


@dataclass(frozen=True)
class GroupingKey:
    """Subject and paper code under which a batch is filed on the backend."""

    subject_name: str
    paper_code: str

    def as_payload(self) -> dict[str, str]:
        return {"subject_name": self.subject_name, "paper_code": self.paper_code}


@dataclass(frozen=True)
class FileDescriptor:
    """A file selected for upload. Immutable once handed to the pipeline."""

    file_name: str
    file_type: str
    content: FileContent
    size: int | None = None

    @classmethod
    def from_path(cls, path: Path, file_type: str | None = None) -> "FileDescriptor":
        """Describe a local file, guessing its MIME type from the extension."""
        content = LocalFileContent(path)
        return cls(
            file_name=path.name,
            file_type=file_type or guess_mime_type(path.name),
            content=content,
            size=content.size,
        )


@dataclass(frozen=True)
class MultipartDestination:
    """Presigned POST target: form ``fields`` must precede the file part."""

    base_url: str
    fields: dict[str, str]
    url: str
    object_key: str = ""
    file_name: str = ""


@dataclass(frozen=True)
class DirectPutDestination:
    """Presigned PUT target: the raw body goes straight to ``url``."""

    url: str
    object_key: str = ""
    file_name: str = ""


UploadDestination = MultipartDestination | DirectPutDestination


@dataclass(frozen=True)
class UploadedFileMetadata:
    """Confirmation of one transferred object, ready for registration.

    ``file_size`` is best effort: 0 when the descriptor declared no size.
    """

    file_name: str
    s3_url: str
    mime_type: str
    file_size: int = 0

    def as_payload(self) -> dict[str, Any]:
        return {
            "file_name": self.file_name,
            "s3_url": self.s3_url,
            "file_size": self.file_size,
            "mime_type": self.mime_type,
        }


class FileStatus(StrEnum):
    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"


@dataclass(frozen=True)
class FileRecord:
    """Backend-owned record of an uploaded file."""

    file_id: str
    paper_code_id: str
    file_name: str
    s3_url: str
    file_size: int
    mime_type: str
    status: FileStatus | str
    evaluation_result: dict[str, Any] | None = None
    evaluation_count: int = 0
    created_at: str = ""
    subject_name: str | None = None
    paper_code: str | None = None
    code: str | None = None


@dataclass(frozen=True)
class PaperCode:
    paper_code_id: str
    subject_name: str
    paper_code: str
    code: str = ""
    description: str | None = None
    is_active: bool = True
    created_at: str = ""


@dataclass(frozen=True)
class RegistrationResult:
    files: list[FileRecord] = field(default_factory=list)
    paper_code: PaperCode | None = None


@dataclass(frozen=True)
class FileHistoryPage:
    data: list[FileRecord] = field(default_factory=list)
    total: int = 0
    limit: int | None = None
    offset: int | None = None
