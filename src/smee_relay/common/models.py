from typing import Optional

from pydantic import BaseModel, ConfigDict


class LostConnectionError(ConnectionError):
    """The upstream event stream ended."""

    def __init__(self, message: str = "we lost connection"):
        super().__init__(message)


class UpstreamStatusError(ConnectionError):
    def __init__(self, status: int, reason: Optional[str] = None):
        self.status = status
        self.reason = reason
        super().__init__(f"upstream answered {status} {reason or ''}".rstrip())


class MissingChannelError(RuntimeError):
    def __init__(self, message: str = "no destination channel given"):
        super().__init__(message)


class DeliveryDecodeError(ValueError):
    pass


class EventRecord(BaseModel):
    """One decoded unit of the event stream: a payload or a terminal error."""

    model_config = ConfigDict(frozen=True, arbitrary_types_allowed=True)

    uri: str = ""
    event_type: bytes = b""
    data: bytes = b""
    error: Optional[BaseException] = None
    fatal: bool = False

    @classmethod
    def failure(
        cls, uri: str, error: BaseException, fatal: bool = False
    ) -> "EventRecord":
        return cls(uri=uri, error=error, fatal=fatal)

    @property
    def is_error(self) -> bool:
        return self.error is not None
