class UploadError(Exception):
    """Base exception for all upload pipeline errors.

    ``str(error)`` is always the user-facing message; the transport-level
    cause, when there is one, is chained as ``__cause__``.
    """


class ResolutionError(UploadError):
    """Raised when upload destinations cannot be obtained for a batch."""


class TransferError(UploadError):
    """Raised when a file cannot be transferred to the object store."""


class RegistrationError(UploadError):
    """Raised when the backend rejects or fails to record uploaded file metadata."""


class HistoryRefreshError(UploadError):
    """Raised when the file history cannot be fetched."""


class InvalidBatchError(UploadError):
    """Raised when a batch is submitted without any files."""


class BatchInProgressError(UploadError):
    """Raised when a batch is submitted while another one is still uploading."""
