from abc import ABC, abstractmethod
from dataclasses import dataclass, field

from uploader.upload.models import (
    FileDescriptor,
    GroupingKey,
    RegistrationResult,
    UploadDestination,
    UploadedFileMetadata,
)
from uploader.upload.state import PipelineStateStore


@dataclass(slots=True)
class BatchContext:
    key: GroupingKey
    files: list[FileDescriptor]
    destinations: list[UploadDestination] = field(default_factory=list)
    uploads: list[UploadedFileMetadata] = field(default_factory=list)
    registration: RegistrationResult | None = None


class BatchStep(ABC):
    """One stage of a batch upload.

    ``run`` performs the stage's I/O and fills the context; ``record``
    projects the stage's outcome onto the state store once ``run`` has
    fully resolved.
    """

    name: str = ""
    milestone: int = 0

    @abstractmethod
    async def run(self, context: BatchContext) -> BatchContext:
        raise NotImplementedError

    def record(self, context: BatchContext, store: PipelineStateStore) -> None:
        store.set_progress(self.milestone)
