"""Pipeline controller: validate, extract, run the chain, assemble a response.

Known limitation: the deadline only abandons observation of a running stage.
Work a stage started (a blocking call on a worker thread, an external request
that ignores cancellation) can keep running after the invocation has already
answered 408.
"""

import asyncio
import json
from collections.abc import Callable, Iterable, Mapping, Sequence
from typing import Any

import structlog

from chainway.config import Settings, settings as default_settings
from chainway.errors import ContentTypeError, RequestTimeoutError
from chainway.pipeline import extraction, response
from chainway.pipeline.classifier import ErrorMatcher, build_error_mapping, classify
from chainway.pipeline.context import Deadline, RequestContext, StageFactory
from chainway.pipeline.executor import execute_chain
from chainway.pipeline.extraction import ExtractionSpec
from chainway.pipeline.validation import SchemaValidator
from chainway.schemas.event import IncomingRequest, InvocationContext
from chainway.schemas.response import ResponseEnvelope

log = structlog.get_logger()


class Pipeline:
    def __init__(
        self,
        stages: Sequence[StageFactory],
        *,
        config: Settings,
        validator: SchemaValidator,
        body_schema: dict[str, Any] | None = None,
        query_extraction: ExtractionSpec | None = None,
        body_extraction: ExtractionSpec | None = None,
        error_mapping: Mapping[int, Iterable[ErrorMatcher]] | None = None,
        timeout_ms: int | None = None,
    ) -> None:
        self.stages = tuple(stages)
        self.config = config
        self.validator = validator
        self.body_schema = body_schema
        self.query_extraction = query_extraction
        self.body_extraction = body_extraction
        self.error_mapping = build_error_mapping(error_mapping)
        self.timeout_ms = timeout_ms or config.timeout_ms
        if body_schema is not None:
            # Fail at build time on a broken schema rather than per request.
            validator.compile(body_schema)

    async def __call__(
        self, request: IncomingRequest, invocation: InvocationContext | None = None
    ) -> ResponseEnvelope:
        invocation = invocation or InvocationContext()
        deadline = Deadline.arm(self.timeout_ms)
        headers = self._headers(request.origin)

        structlog.contextvars.bind_contextvars(request_id=invocation.request_id)
        log.info("pipeline_received", method=request.method, path=request.path)
        try:
            result = await self._process(request, invocation, deadline)
            envelope = response.success(result, headers, self.config.max_response_size)
        except Exception as e:
            return self._failure(e, invocation, headers)
        finally:
            structlog.contextvars.unbind_contextvars("request_id")

        log.info("pipeline_succeeded", status=envelope.status_code)
        return envelope

    def reject(
        self, error: Exception, invocation: InvocationContext, origin: str | None = None
    ) -> ResponseEnvelope:
        """Answer for an event that could not even be turned into a request."""
        return self._failure(error, invocation, self._headers(origin))

    def _headers(self, origin: str | None) -> dict[str, str]:
        return response.compose_headers(
            self.config.security_headers, origin, self.config.cors_origin_whitelist
        )

    def _failure(
        self, error: Exception, invocation: InvocationContext, headers: dict[str, str]
    ) -> ResponseEnvelope:
        status_code = classify(error, self.error_mapping)
        log.info(
            "pipeline_failed",
            status=status_code,
            error=type(error).__name__,
            request_id=invocation.request_id,
        )
        return response.failure(error, status_code, invocation.request_id, headers)

    async def _process(
        self, request: IncomingRequest, invocation: InvocationContext, deadline: Deadline
    ) -> Any:
        request = self._validate(request)
        if self.body_extraction is not None:
            request = extraction.reshape_body(self.body_extraction, request)
        query = extraction.extract_query(self.query_extraction, request)

        if deadline.expired:
            raise self._timeout()

        ctx = RequestContext(request=request, invocation=invocation, deadline=deadline)
        try:
            return await asyncio.wait_for(
                execute_chain(query, self.stages, ctx), timeout=deadline.remaining()
            )
        except asyncio.TimeoutError:
            raise self._timeout() from None

    def _validate(self, request: IncomingRequest) -> IncomingRequest:
        if not request.carries_body:
            return request
        if not request.declares_json:
            raise ContentTypeError(request.content_type)
        if self.body_schema is None:
            return request
        normalized = self.validator.validate(self.body_schema, extraction.parse_body(request))
        return request.with_body(json.dumps(normalized))

    def _timeout(self) -> RequestTimeoutError:
        log.warning("pipeline_timeout", timeout_ms=self.timeout_ms)
        return RequestTimeoutError(self.timeout_ms)


def handler_builder(
    config: Settings | None = None, validator: SchemaValidator | None = None
) -> Callable[..., Pipeline]:
    """Bind process-wide settings once, then build any number of pipelines.

    Example::

        build = handler_builder()
        pipeline = build([LoadUser], body_schema=USER_SCHEMA)
    """
    config = config or default_settings
    validator = validator or SchemaValidator()

    def build(
        stages: Sequence[StageFactory],
        *,
        body_schema: dict[str, Any] | None = None,
        query_extraction: ExtractionSpec | None = None,
        body_extraction: ExtractionSpec | None = None,
        error_mapping: Mapping[int, Iterable[ErrorMatcher]] | None = None,
        timeout_ms: int | None = None,
    ) -> Pipeline:
        return Pipeline(
            stages,
            config=config,
            validator=validator,
            body_schema=body_schema,
            query_extraction=query_extraction,
            body_extraction=body_extraction,
            error_mapping=error_mapping,
            timeout_ms=timeout_ms,
        )

    return build

