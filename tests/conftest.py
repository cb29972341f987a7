import hashlib
import hmac
import json
from typing import List
from unittest.mock import MagicMock

import pytest
from loguru import logger

from smee_relay.common.config import ReconnectPolicy, RelayConfig
from smee_relay.common.models import EventRecord


SECRET = "s3cr3t"


class FakeStream:
    """Stand-in for ``aiohttp.StreamReader`` that replays scripted chunks."""

    def __init__(self, chunks: List[bytes], error: BaseException = None):
        self.chunks = list(chunks)
        self.error = error

    async def readany(self) -> bytes:
        if self.chunks:
            return self.chunks.pop(0)
        if self.error is not None:
            raise self.error
        return b""


def sign(body: bytes, secret: str = SECRET) -> str:
    """Return the ``x-hub-signature`` value for ``body``."""
    return "sha1=" + hmac.new(secret.encode(), body, hashlib.sha1).hexdigest()


def delivery_data(body: dict, secret: str = None, **headers) -> bytes:
    """Build the JSON document smee.io sends as an event's data."""
    raw_body = json.dumps(body, separators=(",", ":"))
    document = {"body": body, "content-type": "application/json"}
    document.update(headers)
    if secret is not None:
        document["x-hub-signature"] = sign(raw_body.encode(), secret)
    return json.dumps(document, separators=(",", ":")).encode()


@pytest.fixture
def source_url():
    return "https://smee.io/VyOocXe0HCKwlSj"


@pytest.fixture
def target_url():
    return "http://jenkins.mycompany.local:8080/github-webhook/"


@pytest.fixture
def relay_config(source_url, target_url):
    """Fixture that provides a sample relay configuration."""
    return RelayConfig(
        source_url=source_url,
        target_url=target_url,
        secret=SECRET,
        timeout=5,
        reconnect=ReconnectPolicy(delay=0.5),
    )


@pytest.fixture
def signed_record(source_url):
    """A record carrying a correctly signed delivery."""
    return EventRecord(
        uri=source_url,
        event_type=b"message",
        data=delivery_data({"hello": "world"}, secret=SECRET, **{"x-github-event": "push"}),
    )


@pytest.fixture
def mock_log():
    return MagicMock()


@pytest.fixture
def log_messages():
    """Capture loguru output as a list of ``LEVEL message`` strings."""
    messages = []
    handler_id = logger.add(
        lambda message: messages.append(message.strip()),
        format="{level} {message}",
        level="DEBUG",
    )
    yield messages
    logger.remove(handler_id)


@pytest.fixture
def fake_stream():
    """Factory for scripted upstream bodies."""
    return FakeStream


@pytest.fixture
def signer():
    return sign


@pytest.fixture
def make_delivery():
    return delivery_data
