"""Domain specific exceptions."""
from __future__ import annotations


class TruthScannerError(Exception):
    """Base exception for the application."""


class EncodingError(TruthScannerError):
    """Raised when an input source cannot be turned into a payload."""


class PayloadTooLargeError(EncodingError):
    """Raised when a source exceeds the configured payload ceiling."""

    def __init__(self, size: int, limit: int) -> None:
        super().__init__(f"Payload of {size} bytes exceeds the {limit} byte limit")
        self.size = size
        self.limit = limit


class RemoteFetchFailedError(EncodingError):
    """Raised when a remote URL source cannot be downloaded."""


class UnreadableSourceError(EncodingError):
    """Raised when a local source is missing, empty or unreadable."""


class AnalysisError(TruthScannerError):
    """Raised when the remote analysis engine fails."""


class TransientAnalysisError(AnalysisError):
    """Overload or rate-limit signal; eligible for retry."""


class PermanentAnalysisError(AnalysisError):
    """Auth failure, rejected payload or any other non-retryable failure."""


class ResponseValidationError(TruthScannerError):
    """Raised when a remote response does not satisfy the result contract."""


class IncompleteSchemaError(ResponseValidationError):
    """A required field is missing, empty or mistyped."""


class MalformedResponseError(ResponseValidationError):
    """The response body could not be parsed as a JSON object."""


class HardwareError(TruthScannerError):
    """Raised when the microphone cannot be acquired."""


class InvalidTransitionError(TruthScannerError):
    """Raised when an action is not allowed in the current capture state."""


class StorageError(TruthScannerError):
    """Raised when a storage adapter fails."""


class SecretsError(TruthScannerError):
    """Raised when secrets cannot be retrieved."""


class AuthenticationError(TruthScannerError):
    """Raised when operator credentials are rejected."""
