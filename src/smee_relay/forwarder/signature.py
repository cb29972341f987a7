import binascii
import hashlib
import hmac
from enum import Enum
from typing import Any, Optional, Union

from loguru import logger

SIGNATURE_PREFIX = "sha1="


class SignatureCheck(str, Enum):
    DISABLED = "disabled"
    VALID = "valid"
    MISSING = "missing"
    UNSUPPORTED_SCHEME = "unsupported_scheme"
    INVALID = "invalid"

    @property
    def allows_forward(self) -> bool:
        return self in (SignatureCheck.DISABLED, SignatureCheck.VALID)


def _as_bytes(value: Union[str, bytes]) -> bytes:
    return value.encode("utf-8") if isinstance(value, str) else value


def verify(
    payload: bytes, signature_hex: str, secret: Union[str, bytes], log=logger
) -> bool:
    """Report whether ``signature_hex`` is the HMAC-SHA1 of ``payload`` under ``secret``.

    Malformed hex never raises; it is logged and treated as a mismatch.
    """
    try:
        supplied = binascii.unhexlify(signature_hex)
    except (binascii.Error, ValueError) as e:
        log.error(f"Invalid signature encoding `{signature_hex}`: {e}")
        return False

    expected = hmac.new(_as_bytes(secret), payload, hashlib.sha1).digest()
    return hmac.compare_digest(supplied, expected)


def check_signature(
    signature: Any, body: bytes, secret: Optional[Union[str, bytes]], log=logger
) -> SignatureCheck:
    """Apply the relay's signature policy to one delivery."""
    if not secret:
        return SignatureCheck.DISABLED

    if not isinstance(signature, str):
        log.info("Error: no signature found")
        return SignatureCheck.MISSING

    if not signature.startswith(SIGNATURE_PREFIX):
        log.warning(f"Skipping checking. signature is not SHA1: {signature}")
        return SignatureCheck.UNSUPPORTED_SCHEME

    if not verify(body, signature[len(SIGNATURE_PREFIX):], secret, log=log):
        log.error("Error: Invalid HMAC")
        return SignatureCheck.INVALID

    return SignatureCheck.VALID
