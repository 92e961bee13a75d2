"""Server-sent event responses for streamed turns."""

import logging
from collections.abc import AsyncGenerator, AsyncIterator

from fastapi.responses import StreamingResponse

from ...conversations.events import ErrorEvent, TurnEvent
from ...core.errors import ChatError, ErrorType

logger = logging.getLogger(__name__)

SSE_HEADERS = {"Cache-Control": "no-cache", "X-Accel-Buffering": "no"}


async def stream_turn(events: AsyncGenerator[TurnEvent, None]) -> StreamingResponse:
    """Turn an event iterator into an SSE response.

    The first event is pulled before the response starts, so validation and
    persistence failures of the first step still map to a status code. Later
    failures end the stream with an ``error`` event.
    """
    try:
        first = await anext(events)
    except StopAsyncIteration:
        first = None

    async def body() -> AsyncIterator[str]:
        try:
            if first is None:
                return
            yield first.to_sse()
            async for event in events:
                yield event.to_sse()
        except ChatError as e:
            yield ErrorEvent(error=e.message, type=e.error_type.value).to_sse()
        except Exception as e:
            logger.exception(f"Streamed turn failed: {e}")
            yield ErrorEvent(error="Internal error", type=ErrorType.UPSTREAM.value).to_sse()
        finally:
            await events.aclose()

    return StreamingResponse(body(), media_type="text/event-stream", headers=SSE_HEADERS)
