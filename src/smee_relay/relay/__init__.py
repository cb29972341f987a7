"""Relay loop and command line entry point."""

from smee_relay.relay.loop import RelayLoop

__all__ = ["RelayLoop"]
