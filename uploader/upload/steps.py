import asyncio

from uploader.logging.logger import Log
from uploader.upload.pipeline import BatchContext, BatchStep
from uploader.upload.registrar import MetadataRegistrar
from uploader.upload.resolver import UploadTargetResolver
from uploader.upload.state import PipelineStateStore
from uploader.upload.transfer import ObjectTransferExecutor


class ResolveDestinationsStep(BatchStep):
    name = "resolve"
    milestone = 33

    def __init__(self, resolver: UploadTargetResolver) -> None:
        self._resolver = resolver

    async def run(self, context: BatchContext) -> BatchContext:
        context.destinations = await self._resolver.resolve(context.key, context.files)
        return context

    def record(self, context: BatchContext, store: PipelineStateStore) -> None:
        store.set_destinations(context.destinations)
        store.set_progress(self.milestone)


class TransferFilesStep(BatchStep):
    """Transfers every file of the batch concurrently.

    Waits for all transfers, failing on the first error. Transfers still in
    flight when one fails run to completion, but their results are dropped.
    """

    name = "transfer"
    milestone = 66

    def __init__(self, executor: ObjectTransferExecutor) -> None:
        self._executor = executor

    async def run(self, context: BatchContext) -> BatchContext:
        tasks = [
            asyncio.create_task(self._executor.transfer(destination, file))
            for destination, file in zip(context.destinations, context.files, strict=True)
        ]
        done, pending = await asyncio.wait(tasks, return_when=asyncio.FIRST_EXCEPTION)

        failures = [
            exc for task in tasks if task in done and (exc := task.exception()) is not None
        ]
        if failures:
            if pending:
                Log.warning(
                    f"Transfer failed; waiting for {len(pending)} in-flight transfers "
                    "whose results will be discarded"
                )
                await asyncio.gather(*pending, return_exceptions=True)
            raise failures[0]

        context.uploads = [task.result() for task in tasks]
        return context


class RegisterMetadataStep(BatchStep):
    name = "register"
    milestone = 100

    def __init__(self, registrar: MetadataRegistrar) -> None:
        self._registrar = registrar

    async def run(self, context: BatchContext) -> BatchContext:
        context.registration = await self._registrar.register(context.key, context.uploads)
        return context

    def record(self, context: BatchContext, store: PipelineStateStore) -> None:
        if context.registration is None:
            raise ValueError("BatchContext.registration must be set before recording")
        store.complete(context.registration.files, context.registration.paper_code)
