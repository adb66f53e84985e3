from collections.abc import Sequence

import httpx

from uploader.api.client import BackendClient
from uploader.api.errors import extract_error_message
from uploader.logging.logger import Log
from uploader.upload.exceptions import RegistrationError
from uploader.upload.models import GroupingKey, RegistrationResult, UploadedFileMetadata
from uploader.upload.parsing import parse_registration


class MetadataRegistrar:
    """Records transferred objects against their grouping key on the backend."""

    def __init__(self, backend: BackendClient, path: str) -> None:
        self._backend = backend
        self._path = path

    async def register(
        self, key: GroupingKey, uploads: Sequence[UploadedFileMetadata]
    ) -> RegistrationResult:
        """Register all of a batch's uploads in a single request.

        On failure the transferred objects stay in the store unregistered;
        nothing is deleted.

        Raises:
            RegistrationError: on transport failure, a non-2xx status, or a
                malformed response.
        """
        payload = {**key.as_payload(), "files": [u.as_payload() for u in uploads]}
        try:
            body = await self._backend.post_json(self._path, payload)
        except (httpx.HTTPError, ValueError) as exc:
            raise RegistrationError(extract_error_message(exc)) from exc

        result = parse_registration(body)
        Log.info(f"Registered {len(result.files)} files for {key.subject_name}/{key.paper_code}")
        return result
