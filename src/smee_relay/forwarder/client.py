from typing import Iterable
from urllib.parse import urlparse

import aiohttp
from loguru import logger
from multidict import CIMultiDict

from smee_relay.common.metrics import metrics, measure_time
from smee_relay.common.text import excerpt
from smee_relay.forwarder.delivery import DeliveryField, WebhookDelivery


def select_headers(fields: Iterable[DeliveryField]) -> CIMultiDict:
    """Pick the delivery fields that are replayed as request headers.

    Keys starting with ``x-`` (lower-case prefix only) and any spelling of
    ``content-type`` are kept; a later duplicate replaces an earlier one.
    """
    headers = CIMultiDict()
    for field in fields:
        if field.key.startswith("x-") or field.key.lower() == "content-type":
            headers[field.key] = field.text
    return headers


class WebhookForwarder:
    def __init__(
        self,
        target_url: str,
        timeout: float = 120.0,
        verify_ssl: bool = True,
        log=logger,
    ):
        self.target_url = target_url
        self.timeout = timeout
        self.verify_ssl = verify_ssl
        self.log = log

        # Extract hostname for metrics labels
        parsed_url = urlparse(target_url)
        self.target_label = f"{parsed_url.netloc}{parsed_url.path}"

    def _client_timeout(self) -> aiohttp.ClientTimeout:
        return aiohttp.ClientTimeout(total=self.timeout)

    @measure_time(metrics.forward_latency, lambda self: {"target": self.target_label})
    async def forward(self, delivery: WebhookDelivery) -> bool:
        """POST one delivery to the target. Never retried."""
        body = delivery.body
        headers = select_headers(delivery.fields)

        try:
            async with aiohttp.ClientSession(timeout=self._client_timeout()) as session:
                async with session.post(
                    self.target_url,
                    headers=headers,
                    data=body,
                    ssl=self.verify_ssl,
                ) as response:
                    if response.status < 400:
                        metrics.forward_total.labels(target=self.target_label).inc()
                        self.log.info(
                            f"Successfully proxied webhook to target {self.target_url} "
                            f"(status={response.status}): {excerpt(body)}"
                        )
                        return True

                    metrics.forward_errors.labels(
                        target=self.target_label,
                        status_code=response.status,
                    ).inc()
                    response_text = await response.text()
                    self.log.error(
                        f"Failed to forward webhook to {self.target_url} "
                        f"(status={response.status}): {excerpt(response_text.encode())}"
                    )
        except Exception as e:
            metrics.forward_errors.labels(
                target=self.target_label,
                status_code="error",
            ).inc()
            self.log.error(f"Error when call target {self.target_url}: {e}")

        return False

    async def check_reachable(self) -> bool:
        """Check the target once; any HTTP answer means it is reachable."""
        try:
            async with aiohttp.ClientSession(timeout=self._client_timeout()) as session:
                async with session.head(self.target_url, ssl=self.verify_ssl) as response:
                    self.log.debug(
                        f"Target {self.target_url} answered {response.status} to pre-flight check"
                    )
                    return True
        except Exception as e:
            self.log.warning(f"Target {self.target_url} is not reachable yet: {e}")
            return False
