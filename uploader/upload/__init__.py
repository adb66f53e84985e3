from uploader.upload.models import FileDescriptor, GroupingKey
from uploader.upload.orchestrator import UploadOrchestrator, build_orchestrator
from uploader.upload.state import PipelineState, PipelineStateStore, UploadStep

__all__ = [
    "FileDescriptor",
    "GroupingKey",
    "PipelineState",
    "PipelineStateStore",
    "UploadOrchestrator",
    "UploadStep",
    "build_orchestrator",
]
