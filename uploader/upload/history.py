import httpx

from uploader.api.client import BackendClient
from uploader.api.errors import extract_error_message
from uploader.upload.exceptions import HistoryRefreshError
from uploader.upload.models import FileHistoryPage
from uploader.upload.parsing import parse_history_page


class FileHistoryClient:
    """Reads the most recent uploads back from the backend."""

    def __init__(self, backend: BackendClient, path: str) -> None:
        self._backend = backend
        self._path = path

    async def fetch(
        self,
        paper_code_id: str | None = None,
        limit: int | None = None,
        offset: int | None = None,
    ) -> FileHistoryPage:
        """Fetch a page of file history. Only the given filters are sent.

        Raises:
            HistoryRefreshError: on transport failure, a non-2xx status, or a
                malformed response.
        """
        params: dict[str, str | int] = {}
        if paper_code_id:
            params["paper_code_id"] = paper_code_id
        if limit:
            params["limit"] = limit
        if offset:
            params["offset"] = offset

        try:
            body = await self._backend.get_json(self._path, params=params)
        except (httpx.HTTPError, ValueError) as exc:
            raise HistoryRefreshError(extract_error_message(exc)) from exc
        return parse_history_page(body)
