import enum
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from chainway.pipeline.validation import Finding


class ErrorKind(enum.Enum):
    CONTENT_TYPE = "content_type"
    SCHEMA_VALIDATION = "schema_validation"
    EXTRACTION = "extraction"
    STAGE = "stage"
    REQUEST_TIMEOUT = "request_timeout"
    PAYLOAD_TOO_LARGE = "payload_too_large"
    UNCLASSIFIED = "unclassified"


class PipelineError(Exception):
    """Base exception for every failure the pipeline knows how to tag."""

    kind: ErrorKind = ErrorKind.UNCLASSIFIED


class ContentTypeError(PipelineError):
    kind = ErrorKind.CONTENT_TYPE

    def __init__(self, content_type: str | None) -> None:
        self.content_type = content_type
        super().__init__("Content-Type must be application/json")


class SchemaValidationError(PipelineError):
    kind = ErrorKind.SCHEMA_VALIDATION

    def __init__(self, message: str, findings: "list[Finding]") -> None:
        self.findings = findings
        super().__init__(message)


class ExtractionError(PipelineError):
    kind = ErrorKind.EXTRACTION

    def __init__(self, source: str, reason: str) -> None:
        self.source = source
        self.reason = reason
        super().__init__(f"Could not extract from {source}: {reason}")


class StageError(PipelineError):
    kind = ErrorKind.STAGE

    def __init__(self, stage_index: int, stage_name: str, cause: BaseException) -> None:
        self.stage_index = stage_index
        self.stage_name = stage_name
        self.cause = cause
        super().__init__(str(cause) or type(cause).__name__)


class RequestTimeoutError(PipelineError):
    kind = ErrorKind.REQUEST_TIMEOUT

    def __init__(self, timeout_ms: int) -> None:
        self.timeout_ms = timeout_ms
        super().__init__(f"Request timed out after {timeout_ms}ms")


class PayloadTooLargeError(PipelineError):
    kind = ErrorKind.PAYLOAD_TOO_LARGE

    def __init__(self, size: int, limit: int) -> None:
        self.size = size
        self.limit = limit
        super().__init__(f"Response payload of {size} bytes exceeds limit of {limit} bytes")


def kind_of(error: BaseException) -> ErrorKind:
    if isinstance(error, PipelineError):
        return error.kind
    return ErrorKind.UNCLASSIFIED
