"""Turns transport and server failures into one user-facing message."""

from typing import Any

import httpx

GENERIC_MESSAGE = "Something went wrong. Please try again."
UNEXPECTED_MESSAGE = "An unexpected error occurred. Please try again."
INVALID_DATA_MESSAGE = "Invalid data provided."
NO_CONNECTION_MESSAGE = "No internet connection. Please check your network."
TIMEOUT_MESSAGE = "Request timed out. Please try again."
STATUS_MESSAGE = "Request failed with status {status_code}. Please try again."


def extract_error_message(error: BaseException | str | None) -> str:
    """Return the most specific human-readable message for ``error``.

    Server-provided messages win over transport classification, which wins
    over the exception's own text. The text of httpx exceptions is never
    returned because it embeds the request URL, which may be presigned.
    """
    if error is None:
        return GENERIC_MESSAGE
    if isinstance(error, str):
        return error

    if isinstance(error, httpx.HTTPStatusError):
        server_message = _message_from_body(_json_body(error.response))
        if server_message is not None:
            return server_message
        return STATUS_MESSAGE.format(status_code=error.response.status_code)

    if isinstance(error, httpx.TimeoutException):
        return TIMEOUT_MESSAGE
    if isinstance(error, httpx.TransportError):
        return NO_CONNECTION_MESSAGE
    if isinstance(error, httpx.HTTPError):
        return UNEXPECTED_MESSAGE

    return str(error) or UNEXPECTED_MESSAGE


def _json_body(response: httpx.Response) -> Any:
    try:
        return response.json()
    except ValueError:
        return None


def _message_from_body(body: Any) -> str | None:
    if not isinstance(body, dict):
        return None

    structured = body.get("error")
    if isinstance(structured, dict) and isinstance(structured.get("message"), str):
        return structured["message"]

    detail = body.get("detail")
    if isinstance(detail, str):
        return detail
    if isinstance(body.get("message"), str):
        return body["message"]
    if isinstance(detail, list):
        first = detail[0] if detail else None
        if isinstance(first, dict) and first.get("msg"):
            return str(first["msg"])
        return INVALID_DATA_MESSAGE
    return None
