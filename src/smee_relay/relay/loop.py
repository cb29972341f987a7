import asyncio
from typing import Optional, Union

from loguru import logger

from smee_relay.common.metrics import metrics
from smee_relay.common.models import DeliveryDecodeError, EventRecord
from smee_relay.common.text import excerpt
from smee_relay.forwarder.client import WebhookForwarder
from smee_relay.forwarder.delivery import parse_delivery
from smee_relay.forwarder.signature import SignatureCheck, check_signature
from smee_relay.stream.supervisor import StreamSupervisor


class RelayLoop:
    """Feeds supervised stream records through verification and forwarding, one at a time."""

    def __init__(
        self,
        supervisor: StreamSupervisor,
        forwarder: WebhookForwarder,
        secret: Optional[Union[str, bytes]] = None,
        log=logger,
    ):
        self.supervisor = supervisor
        self.forwarder = forwarder
        self.secret = secret
        self.log = log

    async def run(self, queue: Optional[asyncio.Queue] = None):
        if queue is None:
            queue = asyncio.Queue()

        result = self.supervisor.start(queue)
        if not result.ok:
            self.log.error(f"Cannot start relay: {result.error}")
            raise result.error

        self.log.info(
            f"We proxy '{self.supervisor.source_url}' to '{self.forwarder.target_url}'"
        )
        try:
            while True:
                record = await queue.get()
                try:
                    await self.handle(record)
                finally:
                    queue.task_done()
        finally:
            await self._stop(result.task)

    async def _stop(self, task: asyncio.Task):
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass
        except Exception as e:
            self.log.debug(f"Stream supervisor ended with {e!r}")

    async def handle(self, record: EventRecord) -> bool:
        """Verify and forward one record. Returns True when it was forwarded."""
        if record.is_error:
            if record.fatal:
                raise record.error
            self.log.warning(f"Lost stream {record.uri}: {record.error}")
            return False

        try:
            return await self._deliver(record)
        except Exception as e:
            metrics.deliveries_skipped_total.labels(reason="error").inc()
            self.log.error(
                f"Failed to relay event from {record.uri}: {e!r}: {excerpt(record.data)}"
            )
            return False

    async def _deliver(self, record: EventRecord) -> bool:
        self.log.debug(f"Receive message: {excerpt(record.data)}")

        try:
            delivery = parse_delivery(record.data)
        except DeliveryDecodeError as e:
            metrics.deliveries_skipped_total.labels(reason="decode").inc()
            self.log.info(f"Error: undecodable event from {record.uri}: {e}")
            return False

        body = delivery.body
        if body is None:
            metrics.deliveries_skipped_total.labels(reason="no_body").inc()
            self.log.info(f"Error: no body found in {excerpt(record.data)}")
            return False

        check = check_signature(delivery.signature, body, self.secret, log=self.log)
        if not check.allows_forward:
            metrics.signature_failures_total.labels(reason=check.value).inc()
            metrics.deliveries_skipped_total.labels(reason="signature").inc()
            self.log.info(
                f"Skipping event from {record.uri} ({check.value}): {excerpt(body)}"
            )
            return False
        if check == SignatureCheck.VALID:
            self.log.debug("Signature verified")

        return await self.forwarder.forward(delivery)
