"""
Camenisch-Lysyanskaya signatures over the quadratic residues of an RSA
modulus.

Key:  n = p·q with safe primes  p = 2p'+1,  q = 2q'+1;  S generates QR_n,
Z = S^x,  and the message bases  R_0, R_1, …  are squares hashed from n,
so the published key is just (n, S, Z).

A signature on messages  m_0 … m_L  is  (A, e, v)  with  e  a prime in
[2^(ℓ_e-1), 2^(ℓ_e-1) + 2^(ℓ'_e-1)]  and

    A^e · S^v · Π R_i^{m_i}  ≡  Z   (mod n)

A holder re-randomises a signature before every presentation:

    A' = A · S^(-r),   v' = v + e·r

(A', e, v') satisfies the same equation and A' is statistically
independent of A, so two presentations of one credential share no group
element.  The holder then proves knowledge of (e, v', hidden m_i) in
zero knowledge instead of revealing them.

Blind issuance: the holder sends  U = R_0^s · S^v'  with a proof of
knowledge of (s, v'); the issuer signs  U  together with the document
messages, choosing  v''  so that  v = v' + v''.

References
----------
- Camenisch & Lysyanskaya (2002). "A Signature Scheme with Efficient
  Protocols."  SCN 2002.
- IBM Research (2013). "Specification of the Identity Mixer
  Cryptographic Library", v2.3.40, §6.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from functools import lru_cache
from math import gcd
from typing import Mapping

from sympy import isprime, mod_inverse, nextprime, primerange

from .curve import get_seeded_rng
from .encoding import (
    ByteReader,
    ElementType,
    decode_element,
    encode_element,
    int_bytes,
)
from .errors import CryptoError, EncodingError
from .hash import hash_cl_base
from .proofs import STATISTICAL_BITS

logger = logging.getLogger(__name__)

MESSAGE_BITS = 256
E_BITS = 597
E_RANGE_BITS = 120
E_OFFSET = 2 ** (E_BITS - 1)
MIN_MODULUS_BITS = 512

_SIEVE = tuple(primerange(3, 2000))


def v_bits(modulus_bits: int) -> int:
    """Length of the issuer's v."""
    return modulus_bits + MESSAGE_BITS + STATISTICAL_BITS


def blinding_bits(modulus_bits: int) -> int:
    """Length of holder-side randomness (v' and re-randomisation r)."""
    return modulus_bits + STATISTICAL_BITS


def randomized_v_bits(modulus_bits: int) -> int:
    """Upper bound on v + e·r after re-randomisation."""
    return E_BITS + blinding_bits(modulus_bits) + 1


def e_in_range(e: int) -> bool:
    return E_OFFSET <= e <= E_OFFSET + 2 ** (E_RANGE_BITS - 1)


@lru_cache(maxsize=None)
def message_base(modulus: int, index: int) -> int:
    """R_index: a hashed square modulo *modulus*."""
    width = modulus.bit_length() + 128
    blocks = (width + 255) // 256
    raw = b"".join(hash_cl_base(modulus, index, b) for b in range(blocks))
    x = int.from_bytes(raw, "big") >> (blocks * 256 - width)
    return pow(x % modulus, 2, modulus)


def is_unit(x: int, modulus: int) -> bool:
    return 0 < x < modulus and gcd(x, modulus) == 1


# ── keys ────────────────────────────────────────────────────────────────

@dataclass(frozen=True)
class CLPublicKey:
    n: int
    S: int
    Z: int

    @property
    def modulus_bits(self) -> int:
        return self.n.bit_length()

    def base(self, index: int) -> int:
        return message_base(self.n, index)

    def represent(self, messages: Mapping[int, int]) -> int:
        """Π R_i^{m_i} over the given slots."""
        n = self.n
        out = 1
        for index, m in messages.items():
            out = out * pow(self.base(index), m, n) % n
        return out

    def to_bytes(self) -> bytes:
        return int_bytes(self.n) + int_bytes(self.S) + int_bytes(self.Z)

    def encode(self) -> str:
        return encode_element(ElementType.PUBLIC_KEY, self.to_bytes())

    @classmethod
    def read(cls, reader: ByteReader) -> CLPublicKey:
        n, S, Z = reader.integer(), reader.integer(), reader.integer()
        if n.bit_length() < MIN_MODULUS_BITS or n % 2 == 0:
            raise EncodingError("public key modulus is not a valid RSA modulus")
        if not (is_unit(S, n) and is_unit(Z, n)) or S == 1:
            raise EncodingError("public key bases are not units of the modulus")
        return cls(n, S, Z)

    @classmethod
    def decode(cls, text: str) -> CLPublicKey:
        reader = ByteReader(decode_element(text, ElementType.PUBLIC_KEY))
        key = cls.read(reader)
        reader.finish()
        return key


@dataclass(frozen=True)
class CLSecretKey:
    """Safe primes p, q and the public bases S, Z."""

    p: int
    q: int
    S: int
    Z: int

    @property
    def n(self) -> int:
        return self.p * self.q

    @property
    def order(self) -> int:
        """|QR_n| = p'·q'."""
        return (self.p // 2) * (self.q // 2)

    @property
    def public(self) -> CLPublicKey:
        return CLPublicKey(self.n, self.S, self.Z)

    def encode(self) -> str:
        payload = b"".join(int_bytes(x) for x in (self.p, self.q, self.S, self.Z))
        return encode_element(ElementType.SECRET_KEY, payload)

    @classmethod
    def decode(cls, text: str) -> CLSecretKey:
        reader = ByteReader(decode_element(text, ElementType.SECRET_KEY))
        p, q, S, Z = (reader.integer() for _ in range(4))
        reader.finish()
        if p == q or min(p, q) < 5 or p % 4 != 3 or q % 4 != 3:
            raise EncodingError("secret key primes are malformed")
        key = cls(p, q, S, Z)
        if not (is_unit(S, key.n) and is_unit(Z, key.n)):
            raise EncodingError("secret key bases are not units of the modulus")
        return key


def _safe_prime(bits: int, rng) -> int:
    """Safe prime of exactly *bits* bits with the top two bits set."""
    while True:
        half = rng.getrandbits(bits - 1) | (3 << (bits - 3)) | 1
        if any(half % l == 0 or half % l == (l - 1) // 2 for l in _SIEVE):
            continue
        if isprime(half) and isprime(2 * half + 1):
            return 2 * half + 1


def generate_cl_key(modulus_bits: int = 2048, rng=None) -> CLSecretKey:
    """Fresh issuer key over a *modulus_bits*-bit modulus."""
    if modulus_bits < MIN_MODULUS_BITS or modulus_bits % 2:
        raise ValueError("modulus_bits must be an even number ≥ 512")
    rng = rng or get_seeded_rng()
    p = _safe_prime(modulus_bits // 2, rng)
    q = _safe_prime(modulus_bits // 2, rng)
    while q == p:
        q = _safe_prime(modulus_bits // 2, rng)
    n = p * q
    while True:
        S = pow(rng.getrandbits(modulus_bits) % n, 2, n)
        if S > 1 and gcd(S, n) == 1 and gcd(S - 1, n) == 1:
            break
    order = (p // 2) * (q // 2)
    x = 2 + rng.getrandbits(order.bit_length() + STATISTICAL_BITS) % (order - 2)
    logger.debug("generated %d-bit CL issuer key", n.bit_length())
    return CLSecretKey(p, q, S, pow(S, x, n))


# ── signatures ──────────────────────────────────────────────────────────

@dataclass(frozen=True)
class CLSignature:
    A: int
    e: int
    v: int

    def to_bytes(self) -> bytes:
        return int_bytes(self.A) + int_bytes(self.e) + int_bytes(self.v)

    @classmethod
    def read(cls, reader: ByteReader) -> CLSignature:
        return cls(reader.integer(), reader.integer(), reader.integer())


def _check_messages(messages: Mapping[int, int]) -> None:
    for index, m in messages.items():
        if index < 0 or not 0 <= m < 2 ** MESSAGE_BITS:
            raise CryptoError(f"message {index} outside the signable range")


def cl_sign(
    key: CLSecretKey,
    messages: Mapping[int, int],
    rng=None,
    commitment: int = 1,
) -> CLSignature:
    """
    Sign *messages* (slot → value), optionally on top of a holder
    commitment  U = R_0^s · S^v'.

    With a commitment the returned v is only the issuer's share v''.
    """
    _check_messages(messages)
    rng = rng or get_seeded_rng()
    public = key.public
    n = key.n
    if not is_unit(commitment, n):
        raise CryptoError("commitment is not a unit of the issuer modulus")
    while True:
        e = nextprime(E_OFFSET + rng.getrandbits(E_RANGE_BITS - 2))
        if e_in_range(e):
            break
    bits = v_bits(public.modulus_bits)
    v = rng.getrandbits(bits - 1) | (1 << (bits - 1))
    denominator = commitment * pow(key.S, v, n) * public.represent(messages) % n
    Q = key.Z * mod_inverse(denominator, n) % n
    A = pow(Q, mod_inverse(e, key.order), n)
    return CLSignature(A, e, v)


def cl_verify(
    key: CLPublicKey,
    messages: Mapping[int, int],
    signature: CLSignature,
) -> bool:
    """Check  A^e · S^v · Π R_i^{m_i} ≡ Z  and the ranges of e and m_i."""
    n = key.n
    A, e, v = signature.A, signature.e, signature.v
    if not is_unit(A, n) or v <= 0 or not e_in_range(e):
        return False
    try:
        _check_messages(messages)
    except CryptoError:
        return False
    if not isprime(e):
        return False
    lhs = pow(A, e, n) * pow(key.S, v, n) * key.represent(messages) % n
    return lhs == key.Z % n


def randomize(key: CLPublicKey, signature: CLSignature, rng=None) -> CLSignature:
    """(A·S^(-r), e, v + e·r) for a fresh r."""
    rng = rng or get_seeded_rng()
    n = key.n
    r = rng.getrandbits(blinding_bits(key.modulus_bits))
    A = signature.A * mod_inverse(pow(key.S, r, n), n) % n
    return CLSignature(A, signature.e, signature.v + signature.e * r)
