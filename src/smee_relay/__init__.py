"""Relay webhooks delivered over a smee.io event stream to a local target."""

__version__ = "0.1.0"
