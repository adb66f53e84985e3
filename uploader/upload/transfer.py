import httpx

from uploader.api.errors import extract_error_message
from uploader.logging.logger import Log
from uploader.upload.exceptions import TransferError
from uploader.upload.models import (
    DirectPutDestination,
    FileDescriptor,
    MultipartDestination,
    UploadDestination,
    UploadedFileMetadata,
)

FILE_FIELD_NAME = "file"


class ObjectTransferExecutor:
    """Sends one file's bytes to the object store through a presigned destination."""

    def __init__(
        self,
        client: httpx.AsyncClient,
        default_mime_type: str = "application/octet-stream",
    ) -> None:
        self._client = client
        self._default_mime_type = default_mime_type

    async def transfer(
        self, destination: UploadDestination, file: FileDescriptor
    ) -> UploadedFileMetadata:
        """Upload ``file`` to ``destination``. No retry is attempted.

        The returned URL is always the destination's final ``url``; the
        object store's response body is never parsed.

        Raises:
            TransferError: if the content cannot be read, on transport
                failure, or on a non-2xx response.
        """
        try:
            data = await file.content.read()
        except OSError as exc:
            raise TransferError(f"Could not read {file.file_name}: {exc}") from exc

        mime_type = file.file_type or self._default_mime_type
        try:
            match destination:
                case MultipartDestination():
                    await self._post_multipart(destination, file.file_name, data, mime_type)
                case DirectPutDestination():
                    await self._put(destination, data, mime_type)
        except httpx.HTTPError as exc:
            message = extract_error_message(exc)
            Log.error(f"Transfer of {file.file_name} failed: {message}")
            raise TransferError(message) from exc

        Log.info(f"Transferred {file.file_name} ({len(data)} bytes)")
        return UploadedFileMetadata(
            file_name=file.file_name,
            s3_url=destination.url,
            mime_type=mime_type,
            file_size=file.size if file.size is not None else 0,
        )

    async def _post_multipart(
        self,
        destination: MultipartDestination,
        file_name: str,
        data: bytes,
        mime_type: str,
    ) -> None:
        # The store verifies a signature over the policy fields, which must
        # all precede the file part; httpx encodes ``data`` before ``files``.
        Log.debug(f"POST multipart upload to {destination.base_url}")
        response = await self._client.post(
            destination.base_url,
            data=destination.fields,
            files={FILE_FIELD_NAME: (file_name, data, mime_type)},
        )
        response.raise_for_status()

    async def _put(self, destination: DirectPutDestination, data: bytes, mime_type: str) -> None:
        Log.debug(f"PUT upload of {destination.object_key or destination.file_name}")
        response = await self._client.put(
            destination.url,
            content=data,
            headers={"Content-Type": mime_type},
        )
        response.raise_for_status()
