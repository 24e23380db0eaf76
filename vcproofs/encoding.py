"""
Multibase encoding of cryptographic elements.

Every key, proof value, commitment and ciphertext crosses the public API
as a self-describing string:

    "u" ‖ base64url( type-byte ‖ payload )          (no padding)

The ``u`` is the multibase prefix for unpadded base64url; the type byte
says which kind of element follows, so a public key can never be decoded
as a ciphertext by accident.  Decoding is strict: non-canonical
base64url (e.g. stray trailing bits) is rejected rather than silently
normalised, so any character flip is detected.
"""

from __future__ import annotations

import base64
import binascii
from enum import IntEnum
from typing import List

from .curve import Scalar, Point, SCALAR_BYTES, COMPRESSED_BYTES
from .errors import EncodingError

MULTIBASE_BASE64URL = "u"


class ElementType(IntEnum):
    """Leading type byte of an encoded element."""

    SECRET_KEY = 0x01
    PUBLIC_KEY = 0x02
    PROOF_VALUE = 0x10
    BLIND_PROOF_VALUE = 0x11
    COMMITMENT = 0x12
    PROOF_OF_KNOWLEDGE = 0x13
    BLINDING = 0x14
    SIGNATURE = 0x15
    PPID = 0x16
    INTEGER = 0x17
    ELGAMAL_PUBLIC_KEY = 0x20
    ELGAMAL_SECRET_KEY = 0x21
    CIPHERTEXT = 0x22
    UID = 0x23
    PROVING_KEY = 0x30
    VERIFYING_KEY = 0x31
    RANGE_PROOF = 0x32


# ── base64url ───────────────────────────────────────────────────────────

def base64url_encode(data: bytes) -> str:
    return base64.urlsafe_b64encode(data).rstrip(b"=").decode("ascii")


def base64url_decode(text: str) -> bytes:
    """Strict unpadded base64url decode."""
    if not isinstance(text, str):
        raise EncodingError("base64url input must be a string")
    if "=" in text:
        raise EncodingError("base64url input must be unpadded")
    try:
        data = base64.b64decode(
            text + "=" * (-len(text) % 4), altchars=b"-_", validate=True,
        )
    except (binascii.Error, ValueError) as exc:
        raise EncodingError(f"malformed base64url: {exc}") from exc
    if base64url_encode(data) != text:
        raise EncodingError("non-canonical base64url")
    return data


# ── multibase elements ──────────────────────────────────────────────────

def encode_element(kind: ElementType, payload: bytes) -> str:
    return MULTIBASE_BASE64URL + base64url_encode(bytes([kind]) + payload)


def decode_element(text: str, kind: ElementType) -> bytes:
    """Decode *text* and check that it carries an element of *kind*."""
    if not isinstance(text, str) or not text:
        raise EncodingError("expected a multibase string")
    if text[0] != MULTIBASE_BASE64URL:
        raise EncodingError(
            f"unsupported multibase prefix {text[0]!r} (expected 'u')"
        )
    raw = base64url_decode(text[1:])
    if not raw:
        raise EncodingError("empty multibase payload")
    if raw[0] != kind:
        try:
            found = ElementType(raw[0]).name
        except ValueError:
            found = f"0x{raw[0]:02x}"
        raise EncodingError(f"expected {kind.name}, found {found}")
    return raw[1:]


def encode_scalar(kind: ElementType, s: Scalar) -> str:
    return encode_element(kind, s.to_bytes())


def decode_scalar(text: str, kind: ElementType) -> Scalar:
    return Scalar.from_bytes(decode_element(text, kind))


def encode_point(kind: ElementType, p: Point) -> str:
    return encode_element(kind, p.to_bytes())


def decode_point(text: str, kind: ElementType) -> Point:
    return Point.from_bytes(decode_element(text, kind))


def int_bytes(value: int) -> bytes:
    """
    Signed big integer:  sign byte ‖ u32 length ‖ big-endian magnitude.

    The magnitude carries no leading zero bytes and zero is always
    positive, so every integer has exactly one encoding.
    """
    magnitude = abs(value)
    raw = magnitude.to_bytes((magnitude.bit_length() + 7) // 8, "big")
    return bytes([1 if value < 0 else 0]) + len(raw).to_bytes(4, "big") + raw


def encode_integer(kind: ElementType, value: int) -> str:
    return encode_element(kind, int_bytes(value))


def decode_integer(text: str, kind: ElementType) -> int:
    reader = ByteReader(decode_element(text, kind))
    value = reader.integer()
    reader.finish()
    return value


# ── composite payloads ──────────────────────────────────────────────────

class ByteReader:
    """Sequential reader over a composite payload."""

    def __init__(self, data: bytes) -> None:
        self._data = data
        self._pos = 0

    def take(self, n: int) -> bytes:
        end = self._pos + n
        if end > len(self._data):
            raise EncodingError("truncated payload")
        chunk = self._data[self._pos:end]
        self._pos = end
        return chunk

    def scalar(self) -> Scalar:
        return Scalar.from_bytes(self.take(SCALAR_BYTES))

    def point(self) -> Point:
        return Point.from_bytes(self.take(COMPRESSED_BYTES))

    def u32(self) -> int:
        return int.from_bytes(self.take(4), "big")

    def integer(self) -> int:
        """Inverse of ``int_bytes``; non-canonical forms are rejected."""
        sign = self.take(1)[0]
        raw = self.take(self.u32())
        if sign not in (0, 1) or (raw and raw[0] == 0) or (sign and not raw):
            raise EncodingError("non-canonical integer encoding")
        magnitude = int.from_bytes(raw, "big")
        return -magnitude if sign else magnitude

    def scalars(self, count: int) -> List[Scalar]:
        return [self.scalar() for _ in range(count)]

    def finish(self) -> None:
        if self._pos != len(self._data):
            raise EncodingError(
                f"{len(self._data) - self._pos} trailing bytes in payload"
            )
