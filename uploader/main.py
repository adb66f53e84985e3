import argparse
import asyncio
import sys
from collections.abc import Sequence
from pathlib import Path

from uploader.config.settings import Settings
from uploader.logging.logger import Log
from uploader.upload.models import FileDescriptor, GroupingKey
from uploader.upload.orchestrator import UploadOrchestrator, build_orchestrator
from uploader.upload.state import PipelineState, UploadStep


def parse_args(argv: Sequence[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        prog="exam-upload",
        description="Upload scanned answer sheets for evaluation.",
    )
    parser.add_argument("--subject", required=True, help="subject name")
    parser.add_argument("--paper-code", required=True, help="paper code")
    parser.add_argument("files", nargs="+", type=Path, help="files to upload as one batch")
    return parser.parse_args(argv)


async def run_upload(
    orchestrator: UploadOrchestrator, key: GroupingKey, paths: Sequence[Path]
) -> PipelineState:
    """Upload ``paths`` as one batch and wait for the follow-up history refresh."""
    files = [FileDescriptor.from_path(path) for path in paths]
    state = await orchestrator.submit(key, files)
    await orchestrator.wait_for_background_tasks()
    return state


def report(state: PipelineState) -> int:
    if state.step is not UploadStep.SUCCESS:
        print(f"Upload failed: {state.error}", file=sys.stderr)
        return 1
    for record in state.uploaded_files:
        print(f"{record.file_id}  {record.file_name}  {record.status}  {record.s3_url}")
    return 0


async def _main(args: argparse.Namespace, settings: Settings) -> int:
    orchestrator = build_orchestrator(settings)
    try:
        state = await run_upload(
            orchestrator,
            GroupingKey(subject_name=args.subject, paper_code=args.paper_code),
            args.files,
        )
    finally:
        await orchestrator.aclose()
    return report(state)


def main(argv: Sequence[str] | None = None) -> int:
    """Entry point: load settings -> configure logging -> upload one batch."""
    args = parse_args(argv)
    settings = Settings()
    Log.configure(settings.log_level)
    return asyncio.run(_main(args, settings))


if __name__ == "__main__":
    sys.exit(main())
