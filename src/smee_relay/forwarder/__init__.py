"""Verification and forwarding of webhook deliveries to the target."""

from smee_relay.forwarder.client import WebhookForwarder, select_headers
from smee_relay.forwarder.delivery import DeliveryField, WebhookDelivery, parse_delivery
from smee_relay.forwarder.signature import SignatureCheck, check_signature, verify

__all__ = [
    "WebhookForwarder",
    "select_headers",
    "DeliveryField",
    "WebhookDelivery",
    "parse_delivery",
    "SignatureCheck",
    "check_signature",
    "verify",
]
