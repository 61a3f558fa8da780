"""
Exception classes for the import pipeline.

Exception Hierarchy:
    ImportPipelineError (base)
        NetworkError - transport failure talking to the release host
        DownloadFailedError - non-2xx HTTP response
        NoDataAssetError - latest release carries no data archive
        ExtractionError - archive could not be unpacked
        DocumentParseError - a single malformed JSON document (always recovered)
        StoreError - persistence failure

Network, download and extraction errors abort the run; the orchestrator turns
them into a single FAILED progress event using ``str(error)``.
"""


class ImportPipelineError(Exception):
    """
    Base exception for all import pipeline errors.

    Attributes:
        message: Human-readable error description.
        details: Optional dictionary with additional context (e.g. url, file).
    """

    def __init__(self, message: str, details: dict | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def __str__(self) -> str:
        return self.message


class NetworkError(ImportPipelineError):
    """Raised when the release host cannot be reached."""

    def __init__(self, url: str, original_error: Exception) -> None:
        super().__init__(
            f"Network error: {original_error}",
            details={"url": url, "original_error": repr(original_error)},
        )


class DownloadFailedError(ImportPipelineError):
    """Raised on a non-2xx response from the release host."""

    def __init__(self, status_code: int, url: str | None = None) -> None:
        super().__init__(
            f"Download failed with HTTP {status_code}",
            details={"status_code": status_code, "url": url},
        )
        self.status_code = status_code


class NoDataAssetError(ImportPipelineError):
    """Raised when the release has no asset matching the data archive pattern."""

    def __init__(self, tag_name: str | None = None) -> None:
        super().__init__(
            "No data ZIP asset found in latest release",
            details={"tag_name": tag_name},
        )


class ExtractionError(ImportPipelineError):
    """Raised when the downloaded archive cannot be extracted."""

    def __init__(self, archive_path: str, original_error: Exception) -> None:
        super().__init__(
            f"ZIP extraction failed: {original_error}",
            details={"archive_path": archive_path},
        )


class DocumentParseError(ImportPipelineError):
    """Raised for one unreadable or invalid JSON document."""

    def __init__(self, file: str, original_error: Exception) -> None:
        super().__init__(
            f"Failed to parse {file}: {original_error}",
            details={"file": file},
        )
        self.file = file


class StoreError(ImportPipelineError):
    """Raised when a write to the local database fails."""

    def __init__(self, operation: str, original_error: Exception) -> None:
        super().__init__(
            f"Database error during {operation}: {original_error}",
            details={"operation": operation},
        )
