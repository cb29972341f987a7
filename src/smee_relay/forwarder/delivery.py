"""Decoding of the JSON document smee.io sends as each event's ``data``.

The document is a flat object: ``body`` holds the webhook payload as sent
and the remaining keys mirror the incoming request headers. Values are kept
with their raw JSON text so the body can be replayed exactly as received.
"""

import json
from typing import Any, List, NamedTuple, Optional

from smee_relay.common.models import DeliveryDecodeError

BODY_FIELD = "body"
SIGNATURE_FIELD = "x-hub-signature"

_decoder = json.JSONDecoder()
_WHITESPACE = " \t\n\r"


class DeliveryField(NamedTuple):
    key: str
    value: Any
    raw: str

    @property
    def text(self) -> str:
        """The value as header text: strings as-is, anything else as JSON."""
        return self.value if isinstance(self.value, str) else self.raw


class WebhookDelivery:
    def __init__(self, fields: List[DeliveryField]):
        self.fields = fields

    def get(self, key: str) -> Optional[DeliveryField]:
        for field in self.fields:
            if field.key == key:
                return field
        return None

    @property
    def body(self) -> Optional[bytes]:
        field = self.get(BODY_FIELD)
        if field is None:
            return None
        return field.text.encode("utf-8")

    @property
    def signature(self) -> Any:
        field = self.get(SIGNATURE_FIELD)
        return field.value if field is not None else None


def _skip(text: str, index: int) -> int:
    while index < len(text) and text[index] in _WHITESPACE:
        index += 1
    return index


def _expect(text: str, index: int, char: str) -> int:
    index = _skip(text, index)
    if index >= len(text) or text[index] != char:
        raise DeliveryDecodeError(f"Expected `{char}` at position {index}")
    return index + 1


def parse_delivery(data: bytes) -> WebhookDelivery:
    """Split a delivery document into its top-level fields, in document order."""
    try:
        text = data.decode("utf-8")
    except UnicodeDecodeError as e:
        raise DeliveryDecodeError(f"Delivery is not valid UTF-8: {e}") from e

    fields = []
    try:
        index = _expect(text, 0, "{")
        index = _skip(text, index)
        if index < len(text) and text[index] == "}":
            index += 1
        else:
            while True:
                index = _skip(text, index)
                key, index = _decoder.raw_decode(text, index)
                if not isinstance(key, str):
                    raise DeliveryDecodeError(f"Object key must be a string: {key!r}")
                index = _expect(text, index, ":")
                start = _skip(text, index)
                value, index = _decoder.raw_decode(text, start)
                fields.append(DeliveryField(key, value, text[start:index]))

                index = _skip(text, index)
                if index < len(text) and text[index] == ",":
                    index += 1
                    continue
                index = _expect(text, index, "}")
                break
    except json.JSONDecodeError as e:
        raise DeliveryDecodeError(f"Delivery is not a JSON object: {e}") from e
    except RecursionError as e:
        raise DeliveryDecodeError("Delivery is nested too deeply") from e

    if _skip(text, index) != len(text):
        raise DeliveryDecodeError(f"Trailing data after delivery at position {index}")

    delivery = WebhookDelivery(fields)
    body = delivery.get(BODY_FIELD)
    if body is not None:
        try:
            body.text.encode("utf-8")
        except UnicodeEncodeError as e:
            raise DeliveryDecodeError(f"Delivery body is not valid Unicode: {e}") from e

    return delivery
