"""
Zero-knowledge proofs of knowledge over linear relations.

Every proof in vcproofs is one instance of the same sigma protocol: the
prover knows integer witnesses  w_k  such that a list of statements

    Y_j = Σ_k  w_k · B_{j,k}           (secp256k1, additive)
    Y_j = Π_k  B_{j,k}^{w_k}  mod n    (QR_n of an issuer's RSA modulus)

all hold, with a witness allowed to appear in several statements and in
both groups (that is how equality of hidden values across credentials,
predicates, the PPID and the escrowed ciphertext is proven).

Protocol (Fiat-Shamir, responses over the integers):
    nonces       k_w ←$ [0, 2^(ℓ_w + ℓ_c + ℓ_∅))    one per witness key
    announce     T_j = Σ_k k_{w_k}·B_{j,k}      or   Π_k B_{j,k}^{k_{w_k}}
    challenge    c = H(ctx, T_1, …, T_n)        c < 2^ℓ_c
    respond      z_w = k_w + c·w

Verify: recompute  T_j  from the responses and  Y_j^{-c}, check that
hashing them reproduces c, and check every  |z_w| < 2^(ℓ_w + ℓ_c + ℓ_∅ + 1).
The length check is what makes the proof meaningful in a group of
unknown order; ℓ_w is the bit bound agreed for witness w (256 unless the
caller says otherwise).

References
----------
- Schnorr (1989). "Efficient Identification and Signatures for Smart
  Cards."  CRYPTO 1989.
- Camenisch & Stadler (1997). "Proof Systems for General Statements
  about Discrete Logarithms."  ETH TR 260.
- Damgård & Fujisaki (2002). "A Statistically-Hiding Integer Commitment
  Scheme Based on Groups with Hidden Order."  ASIACRYPT 2002.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from math import gcd
from typing import Any, Dict, List, Mapping, Optional, Sequence, Tuple, Union

from .curve import Scalar, Point, get_seeded_rng
from .encoding import ByteReader, int_bytes
from .errors import CryptoError
from .hash import hash_sigma

CHALLENGE_BITS = 256
STATISTICAL_BITS = 80
DEFAULT_WITNESS_BITS = 256


@dataclass
class LinearStatement:
    """Y = Σ w[key]·base  for the (key, base) pairs in ``terms``."""

    target: Point
    terms: List[Tuple[str, Point]] = field(default_factory=list)

    def add(self, key: str, base: Point) -> LinearStatement:
        self.terms.append((key, base))
        return self

    def keys(self) -> List[str]:
        return [k for k, _ in self.terms]

    def evaluate(self, values: Mapping[str, int]) -> Point:
        return Point.multi_mul(
            (Scalar(values[k]), base) for k, base in self.terms
        )

    def holds(self, witnesses: Mapping[str, int]) -> bool:
        return self.target == self.evaluate(witnesses)

    def is_valid(self) -> bool:
        return True

    def recompute(self, responses: Mapping[str, int], challenge: int) -> Point:
        return self.evaluate(responses) - Scalar(challenge) * self.target

    def shape(self) -> List[Any]:
        return [self.target, [[k, base] for k, base in self.terms]]


@dataclass
class ExponentStatement:
    """Y = Π base^w[key]  (mod ``modulus``)."""

    modulus: int
    target: int
    terms: List[Tuple[str, int]] = field(default_factory=list)

    def add(self, key: str, base: int) -> ExponentStatement:
        self.terms.append((key, base))
        return self

    def keys(self) -> List[str]:
        return [k for k, _ in self.terms]

    def evaluate(self, values: Mapping[str, int]) -> int:
        n = self.modulus
        out = 1
        for k, base in self.terms:
            out = out * pow(base, values[k], n) % n
        return out

    def holds(self, witnesses: Mapping[str, int]) -> bool:
        return self.target % self.modulus == self.evaluate(witnesses)

    def is_valid(self) -> bool:
        """Target and bases are units, so negative exponents are defined."""
        n = self.modulus
        return all(
            0 < x < n and gcd(x, n) == 1
            for x in [self.target] + [base for _, base in self.terms]
        )

    def recompute(self, responses: Mapping[str, int], challenge: int) -> int:
        n = self.modulus
        return self.evaluate(responses) * pow(self.target, -challenge, n) % n

    def shape(self) -> List[Any]:
        return [
            self.modulus, self.target, [[k, base] for k, base in self.terms],
        ]


Statement = Union[LinearStatement, ExponentStatement]


def statement_keys(statements: Sequence[Statement]) -> List[str]:
    """Witness keys in first-appearance order."""
    seen: Dict[str, None] = {}
    for st in statements:
        for k in st.keys():
            seen.setdefault(k, None)
    return list(seen)


def _bits(bounds: Optional[Mapping[str, int]], key: str) -> int:
    if bounds is None:
        return DEFAULT_WITNESS_BITS
    return bounds.get(key, DEFAULT_WITNESS_BITS)


def _as_int(witness: Union[int, Scalar]) -> int:
    return witness.value if isinstance(witness, Scalar) else witness


@dataclass(frozen=True)
class SigmaProof:
    """
    Non-interactive proof of knowledge of witnesses for a statement list.

    Transcript: (c, {z_w}).
    """

    challenge: int
    responses: Dict[str, int]

    @staticmethod
    def prove(
        statements: Sequence[Statement],
        witnesses: Mapping[str, Union[int, Scalar]],
        context: Sequence[Any] = (),
        rng=None,
        bounds: Optional[Mapping[str, int]] = None,
    ) -> SigmaProof:
        """
        Produce a proof for *statements* under the given *witnesses*.

        Raises ``CryptoError`` if a witness is missing, exceeds its bit
        bound, or a statement does not hold: an honest prover never
        emits a proof that cannot verify.
        """
        rng = rng or get_seeded_rng()
        keys = statement_keys(statements)
        missing = [k for k in keys if k not in witnesses]
        if missing:
            raise CryptoError(f"no witness for {', '.join(missing)}")
        values = {k: _as_int(witnesses[k]) for k in keys}
        for k in keys:
            if abs(values[k]).bit_length() > _bits(bounds, k):
                raise CryptoError(f"witness {k} exceeds its bit bound")
        for i, st in enumerate(statements):
            if not st.holds(values):
                raise CryptoError(f"statement {i} does not hold for witness")

        nonces = {
            k: rng.getrandbits(_bits(bounds, k) + CHALLENGE_BITS + STATISTICAL_BITS)
            for k in keys
        }
        announcements = [st.evaluate(nonces) for st in statements]
        c = hash_sigma(_context(statements, context), announcements)
        responses = {k: nonces[k] + c * values[k] for k in keys}
        return SigmaProof(challenge=c, responses=responses)

    def verify(
        self,
        statements: Sequence[Statement],
        context: Sequence[Any] = (),
        bounds: Optional[Mapping[str, int]] = None,
    ) -> bool:
        keys = statement_keys(statements)
        if set(keys) != set(self.responses):
            return False
        c = self.challenge
        if not 0 <= c < 2 ** CHALLENGE_BITS:
            return False
        for k in keys:
            limit = _bits(bounds, k) + CHALLENGE_BITS + STATISTICAL_BITS + 1
            if abs(self.responses[k]).bit_length() > limit:
                return False
        if not all(st.is_valid() for st in statements):
            return False
        announcements = [st.recompute(self.responses, c) for st in statements]
        return hash_sigma(_context(statements, context), announcements) == c

    # serialisation: fixed key order known to both sides ---------------------
    def to_bytes(self, keys: Sequence[str]) -> bytes:
        return int_bytes(self.challenge) + b"".join(
            int_bytes(self.responses[k]) for k in keys
        )

    @classmethod
    def from_bytes(cls, data: bytes, keys: Sequence[str]) -> SigmaProof:
        reader = ByteReader(data)
        c = reader.integer()
        responses = {k: reader.integer() for k in keys}
        reader.finish()
        return cls(challenge=c, responses=responses)


def _context(statements: Sequence[Statement], context: Sequence[Any]) -> List[Any]:
    """Bind the full statement (targets, bases, key layout) into c."""
    shape: List[Any] = []
    for st in statements:
        shape.append(st.shape())
    return list(context) + shape
