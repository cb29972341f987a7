import asyncio
from dataclasses import dataclass
from enum import Enum
from typing import AsyncIterator, Awaitable, Callable, Optional

import aiohttp
from loguru import logger

from smee_relay.common.config import ReconnectPolicy
from smee_relay.common.metrics import metrics
from smee_relay.common.models import (
    EventRecord,
    MissingChannelError,
    UpstreamStatusError,
)
from smee_relay.stream.parser import parse_stream


class SupervisorState(str, Enum):
    CONNECTING = "connecting"
    STREAMING = "streaming"
    RECONNECTING = "reconnecting"
    FAILED = "failed"


@dataclass(frozen=True)
class StartResult:
    task: Optional[asyncio.Task] = None
    error: Optional[BaseException] = None

    @property
    def ok(self) -> bool:
        return self.error is None


class StreamSupervisor:
    """Keeps one upstream event stream flowing into a queue, reconnecting forever."""

    def __init__(
        self,
        source_url: str,
        policy: Optional[ReconnectPolicy] = None,
        connect_timeout: float = 120.0,
        session: Optional[aiohttp.ClientSession] = None,
        log=logger,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self.source_url = source_url
        self.policy = policy or ReconnectPolicy()
        self.connect_timeout = connect_timeout
        self.log = log
        self.state = SupervisorState.CONNECTING
        self._session = session
        self._sleep = sleep

    def start(self, queue: Optional[asyncio.Queue]) -> StartResult:
        """Schedule the supervisor on the running loop.

        A missing queue is reported through the returned result rather than
        raised, and leaves the supervisor in the ``failed`` state.
        """
        if queue is None:
            self.state = SupervisorState.FAILED
            error = MissingChannelError()
            self.log.error(f"Cannot stream {self.source_url}: {error}")
            return StartResult(error=error)

        task = asyncio.create_task(self.run(queue))
        return StartResult(task=task)

    async def run(self, queue: asyncio.Queue):
        owns_session = self._session is None
        session = self._session or aiohttp.ClientSession()
        try:
            attempt = 0
            while True:
                self.state = SupervisorState.CONNECTING
                async for record in self._stream(session):
                    if record.is_error:
                        metrics.stream_errors_total.labels(source=self.source_url).inc()
                    else:
                        metrics.events_received_total.labels(source=self.source_url).inc()
                    await queue.put(record)

                if self.state == SupervisorState.STREAMING:
                    attempt = 0
                self.state = SupervisorState.RECONNECTING
                delay = self.policy.next_delay(attempt)
                attempt += 1
                metrics.stream_reconnect_total.labels(source=self.source_url).inc()
                self.log.info(f"Reconnecting to {self.source_url} in {delay}s")
                await self._sleep(delay)
        except Exception as e:
            self.state = SupervisorState.FAILED
            self.log.error(f"Stream supervisor for {self.source_url} failed: {e}")
            await queue.put(EventRecord.failure(self.source_url, e, fatal=True))
            raise
        finally:
            if owns_session:
                await session.close()

    async def _stream(self, session: aiohttp.ClientSession) -> AsyncIterator[EventRecord]:
        """Open one connection and yield its records, ending with an error record."""
        timeout = aiohttp.ClientTimeout(
            total=None,
            sock_read=None,
            connect=self.connect_timeout,
            sock_connect=self.connect_timeout,
        )
        self.log.debug(f"Connecting to {self.source_url}")
        try:
            async with session.get(
                self.source_url,
                headers={"Accept": "text/event-stream"},
                timeout=timeout,
            ) as response:
                if response.status >= 400:
                    error = UpstreamStatusError(response.status, response.reason)
                    self.log.error(f"Error when access on URL {self.source_url}: {error}")
                    yield EventRecord.failure(self.source_url, error)
                    return

                self.state = SupervisorState.STREAMING
                self.log.info(f"Connected to {self.source_url}")
                async for record in parse_stream(self.source_url, response.content, log=self.log):
                    yield record
        except (aiohttp.ClientError, OSError, asyncio.TimeoutError) as e:
            self.log.error(f"Error when access on URL {self.source_url}: {e}")
            yield EventRecord.failure(self.source_url, e)
