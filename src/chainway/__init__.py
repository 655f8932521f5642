from chainway.config import Settings, settings
from chainway.errors import (
    ContentTypeError,
    ErrorKind,
    ExtractionError,
    PayloadTooLargeError,
    PipelineError,
    RequestTimeoutError,
    SchemaValidationError,
    StageError,
)
from chainway.pipeline.context import Deadline, RequestContext
from chainway.pipeline.controller import Pipeline, handler_builder
from chainway.pipeline.validation import Finding, SchemaValidator
from chainway.runtime import lambda_handler
from chainway.schemas.event import IncomingRequest, InvocationContext
from chainway.schemas.response import ResponseEnvelope

__all__ = [
    "ContentTypeError",
    "Deadline",
    "ErrorKind",
    "ExtractionError",
    "Finding",
    "IncomingRequest",
    "InvocationContext",
    "PayloadTooLargeError",
    "Pipeline",
    "PipelineError",
    "RequestContext",
    "RequestTimeoutError",
    "ResponseEnvelope",
    "SchemaValidationError",
    "SchemaValidator",
    "Settings",
    "StageError",
    "handler_builder",
    "lambda_handler",
    "settings",
]
