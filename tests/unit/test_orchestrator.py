import asyncio
import logging
from unittest.mock import AsyncMock, MagicMock

import pytest

from tests.factories import STORE_URL, make_file
from uploader.upload.exceptions import (
    BatchInProgressError,
    HistoryRefreshError,
    InvalidBatchError,
    RegistrationError,
    ResolutionError,
    TransferError,
)
from uploader.upload.history import FileHistoryClient
from uploader.upload.models import (
    DirectPutDestination,
    FileDescriptor,
    FileHistoryPage,
    FileRecord,
    FileStatus,
    GroupingKey,
    MultipartDestination,
    RegistrationResult,
    UploadDestination,
    UploadedFileMetadata,
)
from uploader.upload.orchestrator import UploadOrchestrator
from uploader.upload.registrar import MetadataRegistrar
from uploader.upload.resolver import UploadTargetResolver
from uploader.upload.state import PipelineState, PipelineStateStore, UploadStep
from uploader.upload.steps import RegisterMetadataStep, ResolveDestinationsStep, TransferFilesStep
from uploader.upload.transfer import ObjectTransferExecutor


def _record(file_id: str) -> FileRecord:
    return FileRecord(
        file_id=file_id,
        paper_code_id="pc-1",
        file_name=f"{file_id}.pdf",
        s3_url=f"{STORE_URL}/{file_id}.pdf",
        file_size=9,
        mime_type="application/pdf",
        status=FileStatus.PENDING,
    )


class _Collaborators:
    def __init__(self) -> None:
        self.resolver = MagicMock(spec=UploadTargetResolver)
        self.resolver.resolve = AsyncMock(
            return_value=[
                MultipartDestination(
                    base_url=f"{STORE_URL}/", fields={"key": "a"}, url=f"{STORE_URL}/a.pdf"
                ),
                DirectPutDestination(url=f"{STORE_URL}/b.pdf"),
            ]
        )
        self.executor = MagicMock(spec=ObjectTransferExecutor)
        self.executor.transfer = AsyncMock(
            side_effect=lambda destination, file: UploadedFileMetadata(
                file_name=file.file_name, s3_url=destination.url, mime_type=file.file_type
            )
        )
        self.registrar = MagicMock(spec=MetadataRegistrar)
        self.registrar.register = AsyncMock(
            return_value=RegistrationResult(files=[_record("f1"), _record("f2")])
        )
        self.history = MagicMock(spec=FileHistoryClient)
        self.history.fetch = AsyncMock(
            return_value=FileHistoryPage(data=[_record("f2"), _record("f1")], total=2)
        )
        self.store = PipelineStateStore()

    def orchestrator(self) -> UploadOrchestrator:
        return UploadOrchestrator(
            store=self.store,
            steps=[
                ResolveDestinationsStep(self.resolver),
                TransferFilesStep(self.executor),
                RegisterMetadataStep(self.registrar),
            ],
            history=self.history,
            history_limit=10,
        )


def _files() -> list[FileDescriptor]:
    return [make_file("a.pdf"), make_file("b.pdf")]


class TestSuccessfulBatch:
    @pytest.mark.asyncio
    async def test_reaches_success(self, grouping_key: GroupingKey) -> None:
        deps = _Collaborators()
        orchestrator = deps.orchestrator()

        state = await orchestrator.submit(grouping_key, _files())
        await orchestrator.wait_for_background_tasks()

        assert state.step is UploadStep.SUCCESS
        assert state.progress == 100
        assert state.error is None
        assert len(state.uploaded_files) == 2
        assert len(state.destinations) == 2

    @pytest.mark.asyncio
    async def test_progress_milestones(self, grouping_key: GroupingKey) -> None:
        deps = _Collaborators()
        progress: list[int] = []
        deps.store.subscribe(lambda state: progress.append(state.progress))
        orchestrator = deps.orchestrator()

        await orchestrator.submit(grouping_key, _files())
        await orchestrator.wait_for_background_tasks()

        deduplicated = [p for i, p in enumerate(progress) if i == 0 or progress[i - 1] != p]
        assert deduplicated == [0, 33, 66, 100]

    @pytest.mark.asyncio
    async def test_logs_each_step_start_and_completion(
        self, grouping_key: GroupingKey, caplog: pytest.LogCaptureFixture
    ) -> None:
        caplog.set_level(logging.INFO, logger="uploader")
        orchestrator = _Collaborators().orchestrator()

        await orchestrator.submit(grouping_key, _files())
        await orchestrator.wait_for_background_tasks()

        messages = [r.getMessage() for r in caplog.records if r.name == "uploader"]
        step_lines = [m for m in messages if m.startswith("Step ")]
        assert step_lines == [
            "Step resolve started",
            "Step resolve complete (33%)",
            "Step transfer started",
            "Step transfer complete (66%)",
            "Step register started",
            "Step register complete (100%)",
        ]

    @pytest.mark.asyncio
    async def test_stages_receive_previous_outputs(self, grouping_key: GroupingKey) -> None:
        deps = _Collaborators()
        files = _files()
        orchestrator = deps.orchestrator()

        await orchestrator.submit(grouping_key, files)
        await orchestrator.wait_for_background_tasks()

        deps.resolver.resolve.assert_awaited_once_with(grouping_key, files)
        assert deps.executor.transfer.await_count == 2
        registered = deps.registrar.register.await_args.args[1]
        assert [u.s3_url for u in registered] == [f"{STORE_URL}/a.pdf", f"{STORE_URL}/b.pdf"]

    @pytest.mark.asyncio
    async def test_refreshes_history_afterwards(self, grouping_key: GroupingKey) -> None:
        deps = _Collaborators()
        orchestrator = deps.orchestrator()

        await orchestrator.submit(grouping_key, _files())
        await orchestrator.wait_for_background_tasks()

        deps.history.fetch.assert_awaited_once_with(paper_code_id=None, limit=10, offset=None)
        assert [r.file_id for r in orchestrator.state.file_history] == ["f2", "f1"]

    @pytest.mark.asyncio
    async def test_history_failure_keeps_success(self, grouping_key: GroupingKey) -> None:
        deps = _Collaborators()
        deps.history.fetch.side_effect = HistoryRefreshError("Request timed out.")
        orchestrator = deps.orchestrator()

        await orchestrator.submit(grouping_key, _files())
        await orchestrator.wait_for_background_tasks()

        assert orchestrator.state.step is UploadStep.SUCCESS
        assert orchestrator.state.error is None
        assert orchestrator.state.file_history == ()


class TestFailedBatch:
    @pytest.mark.asyncio
    async def test_resolution_failure_never_reaches_33(self, grouping_key: GroupingKey) -> None:
        deps = _Collaborators()
        deps.resolver.resolve.side_effect = ResolutionError("Internal Server Error")
        steps: list[UploadStep] = []
        progress: list[int] = []

        def observe(state: PipelineState) -> None:
            steps.append(state.step)
            progress.append(state.progress)

        deps.store.subscribe(observe)

        state = await deps.orchestrator().submit(grouping_key, _files())

        assert state.step is UploadStep.ERROR
        assert state.error == "Internal Server Error"
        assert steps == [UploadStep.UPLOADING, UploadStep.ERROR]
        assert 33 not in progress
        deps.executor.transfer.assert_not_awaited()
        deps.registrar.register.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_transfer_failure_skips_registration(self, grouping_key: GroupingKey) -> None:
        deps = _Collaborators()

        async def transfer(
            destination: UploadDestination, file: FileDescriptor
        ) -> UploadedFileMetadata:
            if file.file_name == "b.pdf":
                raise TransferError("No internet connection. Please check your network.")
            return UploadedFileMetadata(file.file_name, destination.url, file.file_type)

        deps.executor.transfer.side_effect = transfer
        orchestrator = deps.orchestrator()

        state = await orchestrator.submit(grouping_key, _files())
        await orchestrator.wait_for_background_tasks()

        assert state.step is UploadStep.ERROR
        assert state.progress == 33
        assert state.error == "No internet connection. Please check your network."
        assert state.uploaded_files == ()
        deps.registrar.register.assert_not_awaited()
        deps.history.fetch.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_registration_failure(self, grouping_key: GroupingKey) -> None:
        deps = _Collaborators()
        deps.registrar.register.side_effect = RegistrationError("Paper code not found")

        state = await deps.orchestrator().submit(grouping_key, _files())

        assert state.step is UploadStep.ERROR
        assert state.progress == 66
        assert state.error == "Paper code not found"
        deps.history.fetch.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_unexpected_error_becomes_message(self, grouping_key: GroupingKey) -> None:
        deps = _Collaborators()
        deps.resolver.resolve.side_effect = RuntimeError("resolver exploded")

        state = await deps.orchestrator().submit(grouping_key, _files())

        assert state.step is UploadStep.ERROR
        assert state.error == "resolver exploded"

    @pytest.mark.asyncio
    async def test_new_batch_after_error_clears_error(self, grouping_key: GroupingKey) -> None:
        deps = _Collaborators()
        deps.resolver.resolve.side_effect = [
            ResolutionError("boom"),
            deps.resolver.resolve.return_value,
        ]
        orchestrator = deps.orchestrator()

        await orchestrator.submit(grouping_key, _files())
        state = await orchestrator.submit(grouping_key, _files())
        await orchestrator.wait_for_background_tasks()

        assert state.step is UploadStep.SUCCESS
        assert state.error is None


class TestBatchGuards:
    @pytest.mark.asyncio
    async def test_empty_batch_rejected(self, grouping_key: GroupingKey) -> None:
        deps = _Collaborators()

        with pytest.raises(InvalidBatchError):
            await deps.orchestrator().submit(grouping_key, [])

        assert deps.store.state.step is UploadStep.INPUT

    @pytest.mark.asyncio
    async def test_concurrent_submit_rejected(self, grouping_key: GroupingKey) -> None:
        deps = _Collaborators()
        release = asyncio.Event()
        destinations = deps.resolver.resolve.return_value

        async def slow_resolve(*_args: object) -> list[UploadDestination]:
            await release.wait()
            return destinations

        deps.resolver.resolve.side_effect = slow_resolve
        orchestrator = deps.orchestrator()

        first = asyncio.create_task(orchestrator.submit(grouping_key, _files()))
        await asyncio.sleep(0)
        with pytest.raises(BatchInProgressError):
            await orchestrator.submit(grouping_key, _files())
        release.set()
        state = await first
        await orchestrator.wait_for_background_tasks()

        assert state.step is UploadStep.SUCCESS


class TestResetAndHistory:
    @pytest.mark.asyncio
    async def test_reset_after_success_keeps_history(self, grouping_key: GroupingKey) -> None:
        deps = _Collaborators()
        orchestrator = deps.orchestrator()
        await orchestrator.submit(grouping_key, _files())
        await orchestrator.wait_for_background_tasks()

        state = orchestrator.reset()

        assert state.step is UploadStep.INPUT
        assert state.progress == 0
        assert state.destinations == ()
        assert state.uploaded_files == ()
        assert len(state.file_history) == 2

    @pytest.mark.asyncio
    async def test_clear_drops_history(self, grouping_key: GroupingKey) -> None:
        deps = _Collaborators()
        orchestrator = deps.orchestrator()
        await orchestrator.submit(grouping_key, _files())
        await orchestrator.wait_for_background_tasks()

        assert orchestrator.clear() == PipelineState()

    @pytest.mark.asyncio
    async def test_refresh_history_propagates_errors(self) -> None:
        deps = _Collaborators()
        deps.history.fetch.side_effect = HistoryRefreshError("offline")

        with pytest.raises(HistoryRefreshError, match="offline"):
            await deps.orchestrator().refresh_history(paper_code_id="pc-1")

    @pytest.mark.asyncio
    async def test_refresh_history_publishes_page(self) -> None:
        deps = _Collaborators()
        orchestrator = deps.orchestrator()

        page = await orchestrator.refresh_history(limit=5, offset=5)

        deps.history.fetch.assert_awaited_once_with(paper_code_id=None, limit=5, offset=5)
        assert orchestrator.state.file_history == tuple(page.data)

    @pytest.mark.asyncio
    async def test_aclose_runs_closers(self) -> None:
        deps = _Collaborators()
        closer = AsyncMock()
        orchestrator = UploadOrchestrator(
            store=deps.store, steps=[], history=deps.history, closers=[closer]
        )

        await orchestrator.aclose()

        closer.assert_awaited_once()
