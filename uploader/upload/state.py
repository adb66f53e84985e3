"""Observable upload progress shared between the orchestrator and the UI."""

from collections.abc import Callable, Sequence
from dataclasses import dataclass, replace
from enum import StrEnum

from uploader.logging.logger import Log
from uploader.upload.models import FileRecord, PaperCode, UploadDestination


class UploadStep(StrEnum):
    INPUT = "input"
    UPLOADING = "uploading"
    SUCCESS = "success"
    ERROR = "error"


@dataclass(frozen=True)
class PipelineState:
    """Snapshot of upload progress. A new snapshot is published per mutation."""

    step: UploadStep = UploadStep.INPUT
    progress: int = 0
    error: str | None = None
    destinations: tuple[UploadDestination, ...] = ()
    uploaded_files: tuple[FileRecord, ...] = ()
    paper_code: PaperCode | None = None
    file_history: tuple[FileRecord, ...] = ()

    @property
    def is_uploading(self) -> bool:
        return self.step is UploadStep.UPLOADING


StateListener = Callable[[PipelineState], None]


class PipelineStateStore:
    """Holds the current PipelineState and notifies subscribers of changes.

    Only the orchestrator writes; any number of observers may read or
    subscribe. Writes happen between awaits, so no locking is needed.
    """

    def __init__(self, initial: PipelineState | None = None) -> None:
        self._state = initial or PipelineState()
        self._listeners: list[StateListener] = []

    @property
    def state(self) -> PipelineState:
        return self._state

    def subscribe(self, listener: StateListener) -> Callable[[], None]:
        """Call ``listener`` after every mutation. Returns an unsubscribe function."""
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def begin_batch(self) -> PipelineState:
        return self._publish(
            replace(
                self._state,
                step=UploadStep.UPLOADING,
                progress=0,
                error=None,
                destinations=(),
                uploaded_files=(),
                paper_code=None,
            )
        )

    def set_destinations(self, destinations: Sequence[UploadDestination]) -> PipelineState:
        return self._publish(replace(self._state, destinations=tuple(destinations)))

    def set_progress(self, progress: int) -> PipelineState:
        if not 0 <= progress <= 100:
            raise ValueError(f"progress must be within [0, 100], got {progress}")
        return self._publish(replace(self._state, progress=progress))

    def complete(
        self, uploaded_files: Sequence[FileRecord], paper_code: PaperCode | None
    ) -> PipelineState:
        return self._publish(
            replace(
                self._state,
                step=UploadStep.SUCCESS,
                progress=100,
                uploaded_files=tuple(uploaded_files),
                paper_code=paper_code,
            )
        )

    def fail(self, message: str) -> PipelineState:
        return self._publish(replace(self._state, step=UploadStep.ERROR, error=message))

    def set_file_history(self, records: Sequence[FileRecord]) -> PipelineState:
        return self._publish(replace(self._state, file_history=tuple(records)))

    def reset(self) -> PipelineState:
        """Return to ``input`` for a new scan. File history is kept."""
        return self._publish(PipelineState(file_history=self._state.file_history))

    def clear(self) -> PipelineState:
        """Drop everything, including file history (e.g. on logout)."""
        return self._publish(PipelineState())

    def _publish(self, state: PipelineState) -> PipelineState:
        self._state = state
        for listener in list(self._listeners):
            try:
                listener(state)
            except Exception as exc:
                Log.error(f"State listener {listener!r} failed: {exc}")
        return state
