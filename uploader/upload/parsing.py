"""Builds domain models from backend JSON payloads.

Each public function raises the error type of the stage that consumes the
payload, so a malformed response fails that stage like any other error.
"""

from typing import Any

from uploader.upload.exceptions import (
    HistoryRefreshError,
    RegistrationError,
    ResolutionError,
    UploadError,
)
from uploader.upload.models import (
    DirectPutDestination,
    FileHistoryPage,
    FileRecord,
    FileStatus,
    MultipartDestination,
    PaperCode,
    RegistrationResult,
    UploadDestination,
)

PRESIGNED_FAILURE_MESSAGE = "Failed to get presigned URLs"


def parse_destinations(body: Any, expected_count: int) -> list[UploadDestination]:
    """Parse a presigned-upload response into one destination per requested file.

    Destinations correspond to the request's files by position only, so a
    response of the wrong length is rejected rather than misaligned.

    Raises:
        ResolutionError: on ``success`` false, a missing ``uploads`` list,
            a count mismatch, or a malformed entry.
    """
    if not isinstance(body, dict) or not body.get("success") or not body.get("uploads"):
        raise ResolutionError(PRESIGNED_FAILURE_MESSAGE)
    uploads = body["uploads"]
    if not isinstance(uploads, list):
        raise ResolutionError(PRESIGNED_FAILURE_MESSAGE)
    if len(uploads) != expected_count:
        raise ResolutionError(
            f"Expected {expected_count} upload destinations, received {len(uploads)}"
        )
    return [parse_destination(raw, i) for i, raw in enumerate(uploads)]


def parse_destination(raw: Any, index: int = 0) -> UploadDestination:
    """Choose the transfer protocol from the destination's shape.

    Multipart POST when both ``base_url`` and a non-empty ``fields`` mapping
    are present; direct PUT to ``url`` otherwise.
    """
    if not isinstance(raw, dict):
        raise ResolutionError(f"uploads[{index}] must be an object")
    url = raw.get("url")
    if not url or not isinstance(url, str):
        raise ResolutionError(f"uploads[{index}].url must be a non-empty string")

    object_key = str(raw.get("object_key") or "")
    file_name = str(raw.get("file_name") or "")
    base_url = raw.get("base_url")
    fields = raw.get("fields")

    if base_url and fields:
        if not isinstance(fields, dict):
            raise ResolutionError(f"uploads[{index}].fields must be an object")
        return MultipartDestination(
            base_url=str(base_url),
            fields={str(k): str(v) for k, v in fields.items()},
            url=url,
            object_key=object_key,
            file_name=file_name,
        )
    return DirectPutDestination(url=url, object_key=object_key, file_name=file_name)


def parse_registration(body: Any) -> RegistrationResult:
    """Parse the file-upload (metadata) response.

    Raises:
        RegistrationError: if the body or any record is malformed.
    """
    if not isinstance(body, dict):
        raise RegistrationError("File upload response must be an object")
    files = _build_file_records(body.get("files") or [], "files", RegistrationError)
    paper_code = body.get("paper_code")
    return RegistrationResult(
        files=files,
        paper_code=_build_paper_code(paper_code) if isinstance(paper_code, dict) else None,
    )


def parse_history_page(body: Any) -> FileHistoryPage:
    """Parse a file-history response.

    Raises:
        HistoryRefreshError: if the body or any record is malformed.
    """
    if not isinstance(body, dict):
        raise HistoryRefreshError("File history response must be an object")
    data = _build_file_records(body.get("data") or [], "data", HistoryRefreshError)
    return FileHistoryPage(
        data=data,
        total=_as_int(body.get("total"), default=len(data)),
        limit=_as_optional_int(body.get("limit")),
        offset=_as_optional_int(body.get("offset")),
    )


def _build_file_records(
    raw: Any, key: str, error_cls: type[UploadError]
) -> list[FileRecord]:
    if not isinstance(raw, list):
        raise error_cls(f"'{key}' must be a list")
    records: list[FileRecord] = []
    for i, item in enumerate(raw):
        if not isinstance(item, dict):
            raise error_cls(f"{key}[{i}] must be an object")
        file_id = item.get("file_id")
        if not file_id:
            raise error_cls(f"{key}[{i}].file_id is required")
        records.append(_build_file_record(item))
    return records


def _build_file_record(raw: dict[str, Any]) -> FileRecord:
    evaluation_result = raw.get("evaluation_result")
    return FileRecord(
        file_id=str(raw["file_id"]),
        paper_code_id=str(raw.get("paper_code_id") or ""),
        file_name=str(raw.get("file_name") or ""),
        s3_url=str(raw.get("s3_url") or ""),
        file_size=_as_int(raw.get("file_size")),
        mime_type=str(raw.get("mime_type") or ""),
        status=_build_status(raw.get("status")),
        evaluation_result=evaluation_result if isinstance(evaluation_result, dict) else None,
        evaluation_count=_as_int(raw.get("evaluation_count")),
        created_at=str(raw.get("created_at") or ""),
        subject_name=raw.get("subject_name"),
        paper_code=raw.get("paper_code"),
        code=raw.get("code"),
    )


def _build_status(raw: Any) -> FileStatus | str:
    value = str(raw or FileStatus.PENDING)
    try:
        return FileStatus(value)
    except ValueError:
        return value


def _build_paper_code(raw: dict[str, Any]) -> PaperCode:
    return PaperCode(
        paper_code_id=str(raw.get("paper_code_id") or ""),
        subject_name=str(raw.get("subject_name") or ""),
        paper_code=str(raw.get("paper_code") or ""),
        code=str(raw.get("code") or ""),
        description=raw.get("description"),
        is_active=bool(raw.get("is_active", True)),
        created_at=str(raw.get("created_at") or ""),
    )


def _as_int(raw: Any, default: int = 0) -> int:
    if isinstance(raw, bool):
        return default
    if isinstance(raw, int):
        return raw
    if isinstance(raw, float):
        return int(raw)
    return default


def _as_optional_int(raw: Any) -> int | None:
    if isinstance(raw, bool) or not isinstance(raw, (int, float)):
        return None
    return int(raw)
