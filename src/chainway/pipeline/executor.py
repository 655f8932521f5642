import asyncio
import inspect
import time
from collections.abc import AsyncIterator, Sequence
from typing import Any

import structlog

from chainway.errors import PipelineError, StageError
from chainway.pipeline.context import Executable, RequestContext, StageFactory

log = structlog.get_logger()

_EXHAUSTED = object()


def stage_name(factory: StageFactory) -> str:
    return getattr(factory, "__qualname__", None) or type(factory).__name__


async def _first_async(producer: AsyncIterator[Any]) -> Any:
    try:
        async for value in producer:
            return value
        return None
    finally:
        aclose = getattr(producer, "aclose", None)
        if aclose is not None:
            await aclose()


def _first_sync(producer: Any) -> Any:
    try:
        value = next(producer, _EXHAUSTED)
    finally:
        producer.close()
    return None if value is _EXHAUSTED else value


async def _settle(result: Any) -> Any:
    """Reduce whatever a stage returned to a single value."""
    if inspect.isawaitable(result):
        result = await result
    if isinstance(result, AsyncIterator):
        return await _first_async(result)
    if inspect.isgenerator(result):
        return await asyncio.to_thread(_first_sync, result)
    return result


async def run_stage(executable: Executable, query: Any) -> Any:
    run = executable.run
    if inspect.iscoroutinefunction(run) or inspect.isasyncgenfunction(run):
        return await _settle(run(query))
    # Plain callables may block; a worker thread keeps the deadline observable.
    return await _settle(await asyncio.to_thread(run, query))


async def execute_chain(
    initial: Any, stages: Sequence[StageFactory], ctx: RequestContext
) -> Any:
    """Run stages strictly in order, feeding each result into the next stage.

    The first failing stage aborts the chain; nothing after it runs. An
    empty chain produces no result.
    """
    if not stages:
        return None
    query = initial
    for index, factory in enumerate(stages):
        name = stage_name(factory)
        start = time.monotonic()
        try:
            executable = factory(query, ctx)
            query = await run_stage(executable, query)
        except PipelineError:
            log.info("pipeline_stage_failed", stage=name, index=index)
            raise
        except Exception as e:
            log.info("pipeline_stage_failed", stage=name, index=index, error=type(e).__name__)
            raise StageError(index, name, e) from e

        log.debug(
            "pipeline_stage_completed",
            stage=name,
            index=index,
            duration_ms=round((time.monotonic() - start) * 1000, 2),
        )
    return query
