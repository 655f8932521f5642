"""Serverless entry points for API Gateway REST proxy events."""

import asyncio
from collections.abc import Awaitable, Callable
from typing import Any

import structlog

from chainway.config import settings
from chainway.errors import ExtractionError
from chainway.logging_setup import configure_logging
from chainway.pipeline.controller import Pipeline
from chainway.schemas.event import IncomingRequest, InvocationContext, find_header

log = structlog.get_logger()


def invocation_from(context: Any) -> InvocationContext:
    request_id = getattr(context, "aws_request_id", None)
    if request_id:
        return InvocationContext(request_id=str(request_id), raw=context)
    return InvocationContext(raw=context)


def async_lambda_handler(
    pipeline: Pipeline,
) -> Callable[[dict[str, Any], Any], Awaitable[dict[str, Any]]]:
    async def handler(event: dict[str, Any], context: Any) -> dict[str, Any]:
        invocation = invocation_from(context)
        try:
            request = IncomingRequest.from_event(event)
        except ExtractionError as e:
            origin = find_header(event.get("headers"), "origin")
            return pipeline.reject(e, invocation, origin).to_proxy_result()
        envelope = await pipeline(request, invocation)
        return envelope.to_proxy_result()

    return handler


def lambda_handler(pipeline: Pipeline) -> Callable[[dict[str, Any], Any], dict[str, Any]]:
    """Wrap a pipeline as a synchronous ``(event, context)`` Lambda handler.

    Each call runs on a fresh event loop. Closing that loop waits for worker
    threads, so a blocking stage that outlives the deadline still delays the
    return of an already-decided 408.
    """
    configure_logging(settings.log_level)
    run = async_lambda_handler(pipeline)

    def handler(event: dict[str, Any], context: Any) -> dict[str, Any]:
        return asyncio.run(run(event, context))

    return handler
