import uuid
from collections.abc import Sequence

from fastapi import APIRouter, Request, Response

from chainway.errors import ExtractionError
from chainway.pipeline.controller import Pipeline
from chainway.schemas.event import IncomingRequest, InvocationContext, decode_body
from chainway.schemas.response import ResponseEnvelope

REQUEST_ID_HEADER = "X-Request-Id"


async def to_incoming_request(request: Request) -> IncomingRequest:
    raw_body = await request.body()
    return IncomingRequest(
        method=request.method,
        path=request.url.path,
        headers=dict(request.headers),
        body=decode_body(raw_body) if raw_body else None,
        query_parameters=dict(request.query_params),
        path_parameters={k: str(v) for k, v in request.path_params.items()},
    )


def mount_pipeline(
    router: APIRouter,
    path: str,
    pipeline: Pipeline,
    methods: Sequence[str] = ("POST",),
) -> None:
    """Expose a pipeline as a route; every outcome is returned, never raised."""

    async def endpoint(request: Request) -> Response:
        request_id = request.headers.get(REQUEST_ID_HEADER) or str(uuid.uuid4())
        invocation = InvocationContext(request_id=request_id, raw=request)
        envelope: ResponseEnvelope
        try:
            incoming = await to_incoming_request(request)
        except ExtractionError as e:
            envelope = pipeline.reject(e, invocation, request.headers.get("origin"))
        else:
            envelope = await pipeline(incoming, invocation)
        return Response(
            content=envelope.body,
            status_code=envelope.status_code,
            headers=envelope.headers,
        )

    router.add_api_route(path, endpoint, methods=list(methods), include_in_schema=False)
