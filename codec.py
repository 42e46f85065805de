"""Byte <-> text conversion at the transport boundary.

Binary protocol messages cross a text-only transport. Two encodings exist:
TEXT (bytes are already text) and BASE64 (standard alphabet, padded).
"""

import base64
import binascii
from enum import IntEnum

from errors import EncodingError


class Encoding(IntEnum):
    TEXT = 1
    BASE64 = 2


def string_to_bytes(text: str, encoding: int) -> bytes:
    """Decode transport text back into bytes."""
    if encoding == Encoding.TEXT:
        try:
            return text.encode("utf-8", "surrogateescape")
        except UnicodeEncodeError as e:
            # lone surrogates outside the escape range (e.g. from JSON "\ud800")
            raise EncodingError(f"text is not encodable as UTF-8: {e}") from e
    if encoding == Encoding.BASE64:
        try:
            return base64.b64decode(text, validate=True)
        except (binascii.Error, ValueError) as e:
            raise EncodingError(f"invalid base64: {e}") from e
    raise EncodingError(f"unexpected encoding [{encoding}], expected 1(Text) or 2(Base64)")


def bytes_to_string(data: bytes, encoding: int) -> str:
    """Encode bytes as transport text."""
    if encoding == Encoding.TEXT:
        # surrogateescape keeps non-UTF-8 bytes recoverable by string_to_bytes
        return data.decode("utf-8", "surrogateescape")
    if encoding == Encoding.BASE64:
        return base64.b64encode(data).decode("ascii")
    raise EncodingError(
        f'unexpected parameter [{encoding}] is given, either "text" or "base64" should be used'
    )


# ---------------------------------------------------------------------------
# Payload strategies -- each signing flow names the one it submits with
# ---------------------------------------------------------------------------

class Base64Payload:
    """Serialized message, base64 encoded."""

    encoding = Encoding.BASE64

    @staticmethod
    def encode(data: bytes) -> str:
        return bytes_to_string(data, Encoding.BASE64)

    @staticmethod
    def decode(text: str) -> bytes:
        return string_to_bytes(text, Encoding.BASE64)


class RawPayload:
    """Serialized message bytes passed through as text, no base64 step."""

    encoding = Encoding.TEXT

    @staticmethod
    def encode(data: bytes) -> str:
        return bytes_to_string(data, Encoding.TEXT)

    @staticmethod
    def decode(text: str) -> bytes:
        return string_to_bytes(text, Encoding.TEXT)
