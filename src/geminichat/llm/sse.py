"""Server-sent-event parsing for streamed generateContent responses.

Each event line has the form ``data: {json}``. The JSON payload carries one
incremental fragment at ``candidates[0].content.parts[0].text``. A ``[DONE]``
payload marks the end of the stream and is not data.

A line whose payload fails to parse is skipped. One corrupt line must not
terminate an otherwise healthy stream.
"""

from collections.abc import AsyncIterable, AsyncIterator, Callable

import structlog
from pydantic import ValidationError

from ..config import SSE_DATA_PREFIX, SSE_DONE_SENTINEL
from ..errors import MalformedRecordError
from .models import GenerateContentResponse

logger = structlog.get_logger(__name__)


def extract_payload(line: str) -> str | None:
    """Return the payload of a data line, or None for any other line."""
    line = line.rstrip("\r")
    if not line.startswith(SSE_DATA_PREFIX):
        return None
    payload = line[len(SSE_DATA_PREFIX):]
    if payload.startswith(" "):
        payload = payload[1:]
    return payload


def parse_record(payload: str) -> GenerateContentResponse | None:
    """Parse one event payload.

    Returns:
        The parsed record, or None for the end sentinel

    Raises:
        MalformedRecordError: If the payload is not a valid record
    """
    if payload.strip() == SSE_DONE_SENTINEL:
        return None
    try:
        return GenerateContentResponse.model_validate_json(payload)
    except ValidationError as e:
        raise MalformedRecordError(f"Invalid stream record: {payload[:80]!r}") from e


async def iter_records(lines: AsyncIterable[str]) -> AsyncIterator[GenerateContentResponse]:
    """Yield every well-formed record of a line stream, in order."""
    async for line in lines:
        payload = extract_payload(line)
        if payload is None:
            continue
        try:
            record = parse_record(payload)
        except MalformedRecordError as e:
            logger.debug("gemini.stream.malformed_record", error=str(e))
            continue
        if record is not None:
            yield record


async def iter_fragments(
    lines: AsyncIterable[str],
    on_usage: Callable[[dict[str, int]], None] | None = None,
) -> AsyncIterator[str]:
    """Yield text fragments of a line stream, in arrival order.

    Args:
        lines: Decoded lines of the event stream
        on_usage: Called with token usage whenever a record reports it
    """
    async for record in iter_records(lines):
        if record.usage_metadata is not None and on_usage is not None:
            on_usage(record.usage_metadata.to_usage())
        text = record.first_text()
        if text:
            yield text
