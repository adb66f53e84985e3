import asyncio
from collections.abc import Awaitable, Callable, Sequence

import httpx

from uploader.api.client import BackendClient, TokenProvider, create_transfer_client
from uploader.api.errors import extract_error_message
from uploader.config.settings import Settings
from uploader.logging.logger import Log
from uploader.upload.exceptions import (
    BatchInProgressError,
    HistoryRefreshError,
    InvalidBatchError,
    UploadError,
)
from uploader.upload.history import FileHistoryClient
from uploader.upload.models import FileDescriptor, FileHistoryPage, GroupingKey
from uploader.upload.pipeline import BatchContext, BatchStep
from uploader.upload.registrar import MetadataRegistrar
from uploader.upload.resolver import UploadTargetResolver
from uploader.upload.state import PipelineState, PipelineStateStore
from uploader.upload.steps import RegisterMetadataStep, ResolveDestinationsStep, TransferFilesStep
from uploader.upload.transfer import ObjectTransferExecutor


class UploadOrchestrator:
    """Drives a batch through resolve -> transfer -> register -> history refresh.

    The orchestrator is the only writer of its PipelineStateStore. Progress
    moves in fixed milestones (0, 33, 66, 100) at stage boundaries.
    """

    def __init__(
        self,
        *,
        store: PipelineStateStore,
        steps: Sequence[BatchStep],
        history: FileHistoryClient,
        history_limit: int = 10,
        closers: Sequence[Callable[[], Awaitable[None]]] = (),
    ) -> None:
        self._store = store
        self._steps = list(steps)
        self._history = history
        self._history_limit = history_limit
        self._closers = list(closers)
        self._background_tasks: set[asyncio.Task[None]] = set()

    @property
    def store(self) -> PipelineStateStore:
        return self._store

    @property
    def state(self) -> PipelineState:
        return self._store.state

    async def submit(self, key: GroupingKey, files: Sequence[FileDescriptor]) -> PipelineState:
        """Upload ``files`` as one batch and return the terminal state.

        Stage failures do not raise: they move the state to ``error`` with
        a user-facing message.

        Raises:
            BatchInProgressError: if another batch is still uploading.
            InvalidBatchError: if ``files`` is empty.
        """
        if self._store.state.is_uploading:
            raise BatchInProgressError("An upload is already in progress")
        if not files:
            raise InvalidBatchError("At least one file is required")

        Log.info(f"Uploading {len(files)} files for {key.subject_name}/{key.paper_code}")
        context = BatchContext(key=key, files=list(files))
        self._store.begin_batch()

        for step in self._steps:
            Log.info(f"Step {step.name} started")
            try:
                context = await step.run(context)
            except UploadError as exc:
                return self._fail(step, str(exc))
            except Exception as exc:
                Log.exception(f"Unexpected error in {step.name} step")
                return self._fail(step, extract_error_message(exc))
            step.record(context, self._store)
            Log.info(f"Step {step.name} complete ({self._store.state.progress}%)")

        self._spawn_history_refresh()
        return self._store.state

    async def refresh_history(
        self,
        paper_code_id: str | None = None,
        limit: int | None = None,
        offset: int | None = None,
    ) -> FileHistoryPage:
        """Fetch file history and publish it to the store.

        Raises:
            HistoryRefreshError: if the history cannot be fetched.
        """
        page = await self._history.fetch(paper_code_id=paper_code_id, limit=limit, offset=offset)
        self._store.set_file_history(page.data)
        return page

    def reset(self) -> PipelineState:
        """Start a new scan: back to ``input``, file history kept."""
        return self._store.reset()

    def clear(self) -> PipelineState:
        """Forget everything, including file history (logout)."""
        return self._store.clear()

    async def wait_for_background_tasks(self) -> None:
        """Wait for any pending post-upload history refresh."""
        while self._background_tasks:
            await asyncio.gather(*list(self._background_tasks))

    async def aclose(self) -> None:
        await self.wait_for_background_tasks()
        for close in self._closers:
            await close()

    def _fail(self, step: BatchStep, message: str) -> PipelineState:
        Log.error(f"Batch failed at {step.name} step: {message}")
        return self._store.fail(message)

    def _spawn_history_refresh(self) -> None:
        task = asyncio.create_task(self._refresh_history_after_upload())
        self._background_tasks.add(task)
        task.add_done_callback(self._background_tasks.discard)

    async def _refresh_history_after_upload(self) -> None:
        try:
            await self.refresh_history(limit=self._history_limit)
        except HistoryRefreshError as exc:
            Log.warning(f"File history refresh failed: {exc}")
        except Exception:
            Log.exception("Unexpected error while refreshing file history")


def build_orchestrator(
    settings: Settings,
    token_provider: TokenProvider | None = None,
    store: PipelineStateStore | None = None,
    transport: httpx.AsyncBaseTransport | None = None,
) -> UploadOrchestrator:
    """Build an UploadOrchestrator wired to the configured backend.

    Without a ``token_provider`` the static ``api_token`` setting is used.
    ``transport`` replaces the network for both the backend and the object
    store clients.
    """
    if token_provider is None and settings.api_token:
        token_provider = _static_token(settings.api_token)

    backend = BackendClient(
        base_url=settings.api_base_url,
        timeout_seconds=settings.request_timeout_seconds,
        token_provider=token_provider,
        transport=transport,
    )
    transfer_client = create_transfer_client(settings.transfer_timeout_seconds, transport=transport)
    steps: list[BatchStep] = [
        ResolveDestinationsStep(UploadTargetResolver(backend, settings.presigned_upload_path)),
        TransferFilesStep(
            ObjectTransferExecutor(transfer_client, default_mime_type=settings.default_mime_type)
        ),
        RegisterMetadataStep(MetadataRegistrar(backend, settings.file_upload_path)),
    ]
    return UploadOrchestrator(
        store=store or PipelineStateStore(),
        steps=steps,
        history=FileHistoryClient(backend, settings.file_history_path),
        history_limit=settings.history_refresh_limit,
        closers=[backend.aclose, transfer_client.aclose],
    )


def _static_token(token: str) -> TokenProvider:
    return lambda: token
