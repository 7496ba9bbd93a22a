"""Exception types shared by the pipeline stages."""


class PipelineError(Exception):
    """Base class for every error raised by the summarization pipeline."""


class ConfigError(PipelineError):
    """Raised when configuration is missing or invalid."""


class StorageError(PipelineError, OSError):
    """Raised when a file or directory cannot be read or written."""


class BackendError(PipelineError):
    """Raised when the generation backend fails or returns an unusable response."""

    def __init__(self, message: str, source_id: str | None = None, attempts: int = 0) -> None:
        super().__init__(message)
        self.source_id = source_id
        self.attempts = attempts
        self.results: list = []


class DataError(PipelineError):
    """Raised when a results artifact is malformed or its ordering is ambiguous."""


class StageFailed(PipelineError):
    """Raised by the pipeline when one of its stages fails."""

    def __init__(self, stage: str, error: Exception) -> None:
        super().__init__(f"{stage} failed: {error}")
        self.stage = stage
        self.error = error
