"""Upstream event stream decoding and supervision."""

from smee_relay.stream.parser import parse_stream
from smee_relay.stream.supervisor import StartResult, StreamSupervisor, SupervisorState

__all__ = [
    "parse_stream",
    "StartResult",
    "StreamSupervisor",
    "SupervisorState",
]
