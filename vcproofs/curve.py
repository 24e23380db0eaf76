"""
Elliptic curve arithmetic on secp256k1 via libsecp256k1.

Every expensive group operation (scalar multiplication, point addition)
is delegated to the C library ``coincurve``, which wraps Bitcoin Core's
libsecp256k1.  Scalars are plain Python integers reduced modulo the
group order.

Pseudonyms, predicate commitments and ElGamal ciphertexts live in this
group; issuer signatures live in QR_n of the issuer's RSA modulus
(``clsig``).  Proof responses are integers, so one witness can appear
in statements over both.

Randomness
----------
Functions that sample take an optional ``rng``: any object exposing
``randbytes(n) -> bytes`` and ``getrandbits(k) -> int``.  When omitted,
a fresh ``secrets.SystemRandom`` (OS entropy) is used for the call.  Tests pass
``random.Random(seed)`` for reproducible transcripts.

References
----------
- SEC 2 v2 §2.4.1  secp256k1 domain parameters
- RFC 9380 §6.6.1  try-and-increment style hash-to-curve (simplified)
"""

from __future__ import annotations

import hashlib
import secrets
from functools import lru_cache
from typing import Iterable, Optional, Tuple

from coincurve import PrivateKey as _SK, PublicKey as _PK

from .errors import EncodingError

# ── secp256k1 constants ─────────────────────────────────────────────────
ORDER = 0xFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFEBAAEDCE6AF48A03BBFD25E8CD0364141
FIELD_PRIME = 0xFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFEFFFFFC2F
SCALAR_BYTES = 32
COMPRESSED_BYTES = 33


def get_seeded_rng() -> secrets.SystemRandom:
    """Fresh OS-entropy generator for a single operation."""
    return secrets.SystemRandom()


# ── Scalar  (Z_q arithmetic, pure Python) ───────────────────────────────
class Scalar:
    """Element of the scalar field  Z_q  where *q* = ``ORDER``."""

    __slots__ = ("_v",)

    def __init__(self, value: int) -> None:
        self._v = value % ORDER

    @classmethod
    def zero(cls) -> Scalar:
        return cls(0)

    @classmethod
    def random(cls, rng=None) -> Scalar:
        """Uniform in [1, q-1] via rejection sampling."""
        if rng is None:
            rng = get_seeded_rng()
        while True:
            c = int.from_bytes(rng.randbytes(SCALAR_BYTES), "big")
            if 0 < c < ORDER:
                return cls(c)

    @classmethod
    def from_bytes(cls, data: bytes) -> Scalar:
        if len(data) != SCALAR_BYTES:
            raise EncodingError(
                f"need {SCALAR_BYTES} bytes for a scalar, got {len(data)}"
            )
        v = int.from_bytes(data, "big")
        if v >= ORDER:
            raise EncodingError("scalar out of range")
        return cls(v)

    @classmethod
    def from_bytes_reduce(cls, data: bytes) -> Scalar:
        """Hash-output safe: reduce arbitrary length modulo *q*."""
        return cls(int.from_bytes(data, "big"))

    def to_bytes(self) -> bytes:
        return self._v.to_bytes(SCALAR_BYTES, "big")

    @property
    def value(self) -> int:
        return self._v

    def is_zero(self) -> bool:
        return self._v == 0

    # arithmetic -------------------------------------------------------------
    def __add__(self, o: Scalar) -> Scalar:
        if not isinstance(o, Scalar):
            return NotImplemented
        return Scalar(self._v + o._v)

    def __radd__(self, o):
        if isinstance(o, int) and o == 0:
            return self                       # for sum()
        return NotImplemented

    def __sub__(self, o: Scalar) -> Scalar:
        if not isinstance(o, Scalar):
            return NotImplemented
        return Scalar(self._v - o._v)

    def __mul__(self, o):
        if isinstance(o, Scalar):
            return Scalar(self._v * o._v)
        if isinstance(o, Point):
            return o._smul(self)
        return NotImplemented

    def __rmul__(self, o):
        if isinstance(o, int):
            return Scalar(o * self._v)
        return NotImplemented

    def __neg__(self) -> Scalar:
        return Scalar(-self._v)

    def inv(self) -> Scalar:
        """Multiplicative inverse via Fermat's little theorem."""
        if self._v == 0:
            raise ZeroDivisionError("cannot invert zero scalar")
        return Scalar(pow(self._v, ORDER - 2, ORDER))

    def __eq__(self, o: object) -> bool:
        if isinstance(o, Scalar):
            return self._v == o._v
        if isinstance(o, int):
            return self._v == o % ORDER
        return False

    def __hash__(self) -> int:
        return hash(self._v)

    def __bool__(self) -> bool:
        return self._v != 0

    def __repr__(self) -> str:
        # never print full scalar values; they are often secrets
        return "Scalar(…)"


# ── Point  (secp256k1 group element via libsecp256k1) ───────────────────
class Point:
    """
    Point on secp256k1.

    The identity (point at infinity) is represented by a flag rather than
    a ``coincurve.PublicKey``; it serialises as 33 zero bytes.
    """

    __slots__ = ("_pk", "_inf")

    def __init__(self, *, pk: Optional[_PK] = None, infinity: bool = False):
        self._pk: Optional[_PK] = pk
        self._inf: bool = infinity

    @classmethod
    def generator(cls) -> Point:
        """Standard base point *G*."""
        return cls(pk=_SK(b"\x00" * 31 + b"\x01").public_key)

    @classmethod
    def nums(cls, label: bytes) -> Point:
        """
        Nothing-up-my-sleeve point derived from *label*.

        Hash a counter-suffixed label to a candidate x-coordinate until
        x³ + 7 is a square mod p, then take the even-y point.  Nobody
        knows the discrete log of the result with respect to G or to any
        other ``nums`` point, which is what Pedersen binding needs.
        """
        return _nums_point(bytes(label))

    @classmethod
    def identity(cls) -> Point:
        return cls(infinity=True)

    @classmethod
    def from_bytes(cls, data: bytes) -> Point:
        """Deserialise SEC 1 compressed encoding (33 B)."""
        if len(data) != COMPRESSED_BYTES:
            raise EncodingError(
                f"need {COMPRESSED_BYTES} bytes for a point, got {len(data)}"
            )
        if data == b"\x00" * COMPRESSED_BYTES:
            return cls.identity()
        try:
            return cls(pk=_PK(data))
        except ValueError as exc:
            raise EncodingError(f"invalid curve point: {exc}") from exc

    def to_bytes(self) -> bytes:
        if self._inf:
            return b"\x00" * COMPRESSED_BYTES
        return self._pk.format(compressed=True)  # type: ignore[union-attr]

    def is_inf(self) -> bool:
        return self._inf

    # group operations -------------------------------------------------------
    def _smul(self, s: Scalar) -> Point:
        """Scalar multiplication  s · self  (C speed)."""
        if self._inf or s.is_zero():
            return Point.identity()
        copy = _PK(self._pk.format())  # type: ignore[union-attr]
        return Point(pk=copy.multiply(s.to_bytes()))

    def __neg__(self) -> Point:
        if self._inf:
            return self
        raw = bytearray(self._pk.format(compressed=True))  # type: ignore
        raw[0] ^= 0x01            # 0x02 ↔ 0x03 flip parity
        return Point(pk=_PK(bytes(raw)))

    def __add__(self, o: Point) -> Point:
        if not isinstance(o, Point):
            return NotImplemented
        return Point.sum_points([self, o])

    def __sub__(self, o: Point) -> Point:
        return self + (-o)

    def __rmul__(self, s) -> Point:
        if isinstance(s, Scalar):
            return self._smul(s)
        if isinstance(s, int):
            return self._smul(Scalar(s))
        return NotImplemented

    def __eq__(self, o: object) -> bool:
        if not isinstance(o, Point):
            return False
        if self._inf or o._inf:
            return self._inf and o._inf
        return self._pk.format() == o._pk.format()  # type: ignore

    def __hash__(self) -> int:
        return hash(self.to_bytes())

    def __repr__(self) -> str:
        if self._inf:
            return "Point(∞)"
        return f"Point(0x{self.to_bytes().hex()[:16]}…)"

    # utility ----------------------------------------------------------------
    @staticmethod
    def sum_points(points: Iterable[Point]) -> Point:
        """Multi-point addition in a single libsecp256k1 call."""
        real = [p for p in points if not p._inf]
        if not real:
            return Point.identity()
        if len(real) == 1:
            return real[0]
        # P + (-P) makes combine_keys fail; fold pairwise in that case
        try:
            return Point(pk=_PK.combine_keys(
                [p._pk for p in real]))  # type: ignore[list-item]
        except ValueError:
            acc = real[0]
            for p in real[1:]:
                acc = _add_pair(acc, p)
            return acc

    @staticmethod
    def multi_mul(pairs: Iterable[Tuple[Scalar, Point]]) -> Point:
        """Σ s_i · P_i."""
        return Point.sum_points([s * p for s, p in pairs])


def _add_pair(a: Point, b: Point) -> Point:
    if a._inf:
        return b
    if b._inf:
        return a
    if a._pk.format() == (-b)._pk.format():  # type: ignore[union-attr]
        return Point.identity()
    return Point(pk=_PK.combine_keys([a._pk, b._pk]))  # type: ignore


@lru_cache(maxsize=4096)
def _nums_point(label: bytes) -> Point:
    for counter in range(256):
        data = label + counter.to_bytes(4, "big")
        x_int = int.from_bytes(hashlib.sha256(data).digest(), "big")
        if x_int == 0 or x_int >= FIELD_PRIME:
            continue
        y_sq = (pow(x_int, 3, FIELD_PRIME) + 7) % FIELD_PRIME
        # Euler criterion: y_sq is a QR iff y_sq^{(p-1)/2} == 1
        if pow(y_sq, (FIELD_PRIME - 1) // 2, FIELD_PRIME) != 1:
            continue
        try:
            return Point(pk=_PK(b"\x02" + x_int.to_bytes(32, "big")))
        except ValueError:
            continue
    raise RuntimeError(f"failed to derive NUMS point for {label!r}")


# ── module-level generators ─────────────────────────────────────────────
G = Point.generator()
H = Point.nums(b"vcproofs/NUMS/blinding/secp256k1/v1")
