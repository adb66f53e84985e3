from collections.abc import Sequence

import httpx

from uploader.api.client import BackendClient
from uploader.api.errors import extract_error_message
from uploader.logging.logger import Log
from uploader.upload.exceptions import ResolutionError
from uploader.upload.models import FileDescriptor, GroupingKey, UploadDestination
from uploader.upload.parsing import parse_destinations


class UploadTargetResolver:
    """Obtains one presigned write destination per file in a batch."""

    def __init__(self, backend: BackendClient, path: str) -> None:
        self._backend = backend
        self._path = path

    async def resolve(
        self, key: GroupingKey, files: Sequence[FileDescriptor]
    ) -> list[UploadDestination]:
        """Request destinations for ``files``, returned in the same order.

        No destination is usable unless the whole call succeeds.

        Raises:
            ResolutionError: on transport failure, a non-2xx status, or a
                response that does not carry exactly one destination per file.
        """
        payload = {
            **key.as_payload(),
            "files": [{"file_name": f.file_name, "file_type": f.file_type} for f in files],
        }
        try:
            body = await self._backend.post_json(self._path, payload)
        except (httpx.HTTPError, ValueError) as exc:
            raise ResolutionError(extract_error_message(exc)) from exc

        destinations = parse_destinations(body, expected_count=len(files))
        Log.info(
            f"Resolved {len(destinations)} upload destinations for "
            f"{key.subject_name}/{key.paper_code}"
        )
        return destinations
