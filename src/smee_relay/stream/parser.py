"""Incremental decoder for the ``text/event-stream`` body served by smee.io.

Only two fields matter: ``event`` names the record and ``data`` carries
the payload. A ``data`` line always completes a record.
"""

import asyncio
import re
from typing import AsyncIterator, Protocol

import aiohttp
from loguru import logger

from smee_relay.common.models import EventRecord, LostConnectionError
from smee_relay.common.text import excerpt

EVENT_FIELD = b"event"
DATA_FIELD = b"data"

FIELD_LINE = re.compile(rb"(\w+):\s+(.*)")


class ByteSource(Protocol):
    async def readany(self) -> bytes:
        ...


async def parse_stream(
    uri: str, source: ByteSource, log=logger
) -> AsyncIterator[EventRecord]:
    """Yield records decoded from ``source`` until it closes or fails.

    The last record yielded always carries an error: ``LostConnectionError``
    for an ordinary end of stream, or the read error itself.
    """
    buffer = bytearray()
    event_type = b""

    while True:
        try:
            chunk = await source.readany()
        except (aiohttp.ClientPayloadError, asyncio.IncompleteReadError) as e:
            log.debug(f"Stream {uri} truncated: {e}")
            yield EventRecord.failure(uri, LostConnectionError())
            return
        except (aiohttp.ClientError, OSError, asyncio.TimeoutError) as e:
            yield EventRecord.failure(uri, e)
            return

        if not chunk:
            if buffer:
                log.debug(f"Dropping incomplete line at end of stream: {excerpt(bytes(buffer))}")
            yield EventRecord.failure(uri, LostConnectionError())
            return

        buffer.extend(chunk)
        while True:
            end = buffer.find(b"\n")
            if end < 0:
                break
            line = bytes(buffer[: end + 1])
            del buffer[: end + 1]

            if len(line) < 2:
                continue

            line = line[:-1]
            log.debug(f"Read line: {excerpt(line)}")
            match = FIELD_LINE.fullmatch(line)
            if match is None:
                log.debug(f"Bad event line: `{excerpt(line)}`")
                continue

            name, value = match.group(1), match.group(2).strip()
            if name == EVENT_FIELD:
                event_type = value
                log.debug(f"Found type: {excerpt(value)}")
            elif name == DATA_FIELD:
                log.debug(f"Found data: {excerpt(value)}")
                yield EventRecord(uri=uri, event_type=event_type, data=value)
                event_type = b""
