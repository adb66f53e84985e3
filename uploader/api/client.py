from collections.abc import Callable, Generator
from types import TracebackType
from typing import Any

import httpx

from uploader.logging.logger import Log

TokenProvider = Callable[[], str | None]


class BearerTokenAuth(httpx.Auth):
    """Attaches ``Authorization: Bearer <token>`` when a token is available.

    The token is looked up per request so a login or logout elsewhere takes
    effect without rebuilding the client.
    """

    def __init__(self, token_provider: TokenProvider) -> None:
        self._token_provider = token_provider

    def auth_flow(self, request: httpx.Request) -> Generator[httpx.Request, httpx.Response, None]:
        token = self._token_provider()
        if token:
            request.headers["Authorization"] = f"Bearer {token}"
        yield request


class BackendClient:
    """JSON client for the evaluation backend."""

    def __init__(
        self,
        *,
        base_url: str,
        timeout_seconds: float,
        token_provider: TokenProvider | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._client = httpx.AsyncClient(
            base_url=base_url,
            timeout=timeout_seconds,
            headers={"Content-Type": "application/json"},
            auth=BearerTokenAuth(token_provider) if token_provider is not None else None,
            event_hooks={"request": [_log_request], "response": [_log_response]},
            transport=transport,
        )

    async def post_json(self, path: str, payload: dict[str, Any]) -> Any:
        """POST ``payload`` as JSON and return the decoded response body.

        Raises:
            httpx.HTTPError: on transport failure or a non-2xx status.
            ValueError: if the response body is not valid JSON.
        """
        response = await self._client.post(path, json=payload)
        return _decode(response)

    async def get_json(self, path: str, params: dict[str, Any] | None = None) -> Any:
        """GET ``path`` with query ``params`` and return the decoded response body."""
        response = await self._client.get(path, params=params)
        return _decode(response)

    async def aclose(self) -> None:
        await self._client.aclose()

    async def __aenter__(self) -> "BackendClient":
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        await self.aclose()


def create_transfer_client(
    timeout_seconds: float,
    transport: httpx.AsyncBaseTransport | None = None,
) -> httpx.AsyncClient:
    """Client for object-store transfers.

    Presigned destinations carry their own authorization, so no bearer
    token or JSON default headers are attached.
    """
    return httpx.AsyncClient(
        timeout=timeout_seconds,
        event_hooks={"request": [_log_request], "response": [_log_response]},
        transport=transport,
    )


def _decode(response: httpx.Response) -> Any:
    response.raise_for_status()
    return response.json()


async def _log_request(request: httpx.Request) -> None:
    Log.debug(f"HTTP {request.method} {_loggable_url(request)}")


async def _log_response(response: httpx.Response) -> None:
    request = response.request
    Log.debug(f"HTTP {request.method} {_loggable_url(request)} -> {response.status_code}")


def _loggable_url(request: httpx.Request) -> str:
    # Presigned object-store URLs carry their credentials in the query string.
    url = request.url
    return f"{url.scheme}://{url.netloc.decode('ascii')}{url.path}"
