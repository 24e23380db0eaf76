"""
Predicate circuits: linear relations proven in range.

A circuit fixes a relation over named integer inputs

    v = Σ coeff[name]·input[name] + offset,      0 ≤ v < 2^bits

and the two generators  G_c, H_c  it commits in.  Comparisons between
hidden credential values and public thresholds (age over 18, expiry
after now, …) are all instances: ``a < b`` is  b − a − 1 ∈ [0, 2^bits).

The holder commits  V = v·G_c + t·H_c  and proves the range with a bit
decomposition:

    B_k = b_k·G_c + t_k·H_c     with   Σ 2^k·t_k = t
    Σ 2^k·B_k == V                                          (checked)

plus, for every bit, a Cramer-Damgård-Schoenmakers OR-proof that B_k
commits to 0 or to 1.  That the committed v really is the relation over
the credential values is shown separately, inside the presentation's
aggregate proof, where V appears as a linear statement.

Key material
------------
Proving and verifying keys both carry the generator seed and the
relation itself, so a verifier holding only the verifying key knows
exactly which relation a proof speaks about.  A SNARK back end would
replace this module behind the same ``Circuit`` surface.

References
----------
- Cramer, Damgård & Schoenmakers (1994). "Proofs of Partial Knowledge
  and Simplified Design of Witness Hiding Protocols."  CRYPTO 1994.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from functools import lru_cache
from typing import List, Mapping, Optional, Sequence, Tuple, Union

from .config import DEFAULT_CONFIG, ProofConfig
from .curve import Scalar, Point, get_seeded_rng
from .encoding import ByteReader, ElementType, decode_element, encode_element
from .errors import CryptoError, EncodingError
from .hash import hash_circuit_label, hash_range_bit

logger = logging.getLogger(__name__)

SEED_BYTES = 32
MAX_BITS = 252


@lru_cache(maxsize=256)
def circuit_generators(seed: bytes) -> Tuple[Point, Point]:
    """(G_c, H_c) for a circuit seed."""
    return (
        Point.nums(hash_circuit_label(seed, 0)),
        Point.nums(hash_circuit_label(seed, 1)),
    )


# ── relation ────────────────────────────────────────────────────────────

@dataclass(frozen=True)
class RangeRelation:
    """Σ coeff·input + offset ∈ [0, 2^bits)."""

    coefficients: Tuple[Tuple[str, int], ...]
    offset: int = 0
    bits: int = 64

    def __post_init__(self) -> None:
        if not self.coefficients:
            raise ValueError("relation needs at least one input")
        names = [n for n, _ in self.coefficients]
        if len(set(names)) != len(names):
            raise ValueError("duplicate input names in relation")
        if not 1 <= self.bits <= MAX_BITS:
            raise ValueError(f"bits must be in [1, {MAX_BITS}]")

    @property
    def names(self) -> Tuple[str, ...]:
        return tuple(n for n, _ in self.coefficients)

    def coefficient(self, name: str) -> int:
        return dict(self.coefficients)[name]

    def evaluate(self, inputs: Mapping[str, int]) -> int:
        missing = [n for n in self.names if n not in inputs]
        if missing:
            raise CryptoError(f"no value for input {', '.join(missing)}")
        return sum(c * inputs[n] for n, c in self.coefficients) + self.offset

    def witness(self, inputs: Mapping[str, int]) -> int:
        """The value to range-prove; ``CryptoError`` if out of range."""
        v = self.evaluate(inputs)
        if not 0 <= v < 2 ** self.bits:
            raise CryptoError("inputs do not satisfy the circuit relation")
        return v


# ── range proof ─────────────────────────────────────────────────────────

@dataclass(frozen=True)
class BitProof:
    """Commitment to one bit plus its OR-proof  (B, c0, c1, z0, z1)."""

    B: Point
    c0: Scalar
    c1: Scalar
    z0: Scalar
    z1: Scalar

    def to_bytes(self) -> bytes:
        return self.B.to_bytes() + b"".join(
            s.to_bytes() for s in (self.c0, self.c1, self.z0, self.z1)
        )

    @classmethod
    def read(cls, reader: ByteReader) -> BitProof:
        B = reader.point()
        c0, c1, z0, z1 = reader.scalars(4)
        return cls(B, c0, c1, z0, z1)


@dataclass(frozen=True)
class RangeProof:
    bits: Tuple[BitProof, ...]

    def encode(self) -> str:
        payload = len(self.bits).to_bytes(4, "big") + b"".join(
            b.to_bytes() for b in self.bits
        )
        return encode_element(ElementType.RANGE_PROOF, payload)

    @classmethod
    def decode(cls, text: str) -> RangeProof:
        reader = ByteReader(decode_element(text, ElementType.RANGE_PROOF))
        count = reader.u32()
        if not 1 <= count <= MAX_BITS:
            raise EncodingError(f"range proof with {count} bits")
        bits = tuple(BitProof.read(reader) for _ in range(count))
        reader.finish()
        return cls(bits)


def _prove_bit(
    bit: int, t: Scalar, gc: Point, hc: Point,
    context: bytes, index: int, rng,
) -> BitProof:
    B = Scalar(bit) * gc + t * hc
    targets = (B, B - gc)
    fake = 1 - bit
    c_fake, z_fake = Scalar.random(rng), Scalar.random(rng)
    a = Scalar.random(rng)
    announce = [Point.identity(), Point.identity()]
    announce[fake] = Point.multi_mul([(z_fake, hc), (-c_fake, targets[fake])])
    announce[bit] = a * hc
    c = hash_range_bit(context, index, B, announce[0], announce[1])
    c_real = c - c_fake
    z_real = a + c_real * t
    if bit == 0:
        return BitProof(B, c_real, c_fake, z_real, z_fake)
    return BitProof(B, c_fake, c_real, z_fake, z_real)


def _verify_bit(
    proof: BitProof, gc: Point, hc: Point, context: bytes, index: int,
) -> bool:
    A0 = Point.multi_mul([(proof.z0, hc), (-proof.c0, proof.B)])
    A1 = Point.multi_mul([(proof.z1, hc), (-proof.c1, proof.B - gc)])
    c = hash_range_bit(context, index, proof.B, A0, A1)
    return proof.c0 + proof.c1 == c


def prove_range(
    value: int,
    blinding: Scalar,
    bits: int,
    generators: Tuple[Point, Point],
    context: bytes,
    rng=None,
) -> RangeProof:
    """Prove  V = value·G_c + blinding·H_c  with value in [0, 2^bits)."""
    if not 0 <= value < 2 ** bits:
        raise CryptoError("value outside proof range")
    gc, hc = generators
    ts: List[Scalar] = [Scalar.random(rng) for _ in range(bits - 1)]
    partial = Scalar.zero()
    for k, t_k in enumerate(ts):
        partial = partial + Scalar(2 ** k) * t_k
    ts.append((blinding - partial) * Scalar(2 ** (bits - 1)).inv())
    return RangeProof(tuple(
        _prove_bit((value >> k) & 1, ts[k], gc, hc, context, k, rng)
        for k in range(bits)
    ))


def verify_range(
    commitment: Point,
    proof: RangeProof,
    bits: int,
    generators: Tuple[Point, Point],
    context: bytes,
) -> bool:
    if len(proof.bits) != bits:
        return False
    gc, hc = generators
    recombined = Point.multi_mul(
        (Scalar(2 ** k), bp.B) for k, bp in enumerate(proof.bits)
    )
    if recombined != commitment:
        return False
    return all(
        _verify_bit(bp, gc, hc, context, k)
        for k, bp in enumerate(proof.bits)
    )


# ── circuit ─────────────────────────────────────────────────────────────

@dataclass(frozen=True)
class Circuit:
    """
    A predicate's relation, generator seed and key material.

    Holders build one from the proving key, verifiers from the verifying
    key; both see the same relation.
    """

    circuit_id: str
    relation: RangeRelation
    seed: bytes

    @property
    def generators(self) -> Tuple[Point, Point]:
        return circuit_generators(self.seed)

    def _payload(self) -> bytes:
        description = {
            "circuitId": self.circuit_id,
            "coefficients": [[n, c] for n, c in self.relation.coefficients],
            "offset": self.relation.offset,
            "bits": self.relation.bits,
        }
        return self.seed + json.dumps(
            description, sort_keys=True, separators=(",", ":"),
        ).encode("utf-8")

    @property
    def proving_key(self) -> str:
        return encode_element(ElementType.PROVING_KEY, self._payload())

    @property
    def verifying_key(self) -> str:
        return encode_element(ElementType.VERIFYING_KEY, self._payload())

    @classmethod
    def from_proving_key(cls, key: str) -> Circuit:
        return cls._from_payload(decode_element(key, ElementType.PROVING_KEY))

    @classmethod
    def from_verifying_key(cls, key: str) -> Circuit:
        return cls._from_payload(decode_element(key, ElementType.VERIFYING_KEY))

    @classmethod
    def _from_payload(cls, payload: bytes) -> Circuit:
        if len(payload) <= SEED_BYTES:
            raise EncodingError("circuit key too short")
        seed, body = payload[:SEED_BYTES], payload[SEED_BYTES:]
        try:
            description = json.loads(body.decode("utf-8"))
            circuit_id = description["circuitId"]
            coefficients = tuple(
                (str(n), _as_int(c)) for n, c in description["coefficients"]
            )
            relation = RangeRelation(
                coefficients,
                offset=_as_int(description["offset"]),
                bits=_as_int(description["bits"]),
            )
        except (KeyError, TypeError, ValueError) as exc:
            raise EncodingError(f"malformed circuit description: {exc}") from exc
        if not isinstance(circuit_id, str):
            raise EncodingError("circuitId must be a string")
        return cls(circuit_id=circuit_id, relation=relation, seed=seed)

    # proving ------------------------------------------------------------------
    def commit(self, value: int, blinding: Scalar) -> Point:
        gc, hc = self.generators
        return Scalar(value) * gc + blinding * hc

    def prove(
        self, value: int, blinding: Scalar, context: bytes, rng=None,
    ) -> RangeProof:
        logger.debug(
            "proving %d-bit range for circuit %s",
            self.relation.bits, self.circuit_id,
        )
        return prove_range(
            value, blinding, self.relation.bits, self.generators, context, rng,
        )

    def verify(
        self, commitment: Point, proof: RangeProof, context: bytes,
    ) -> bool:
        return verify_range(
            commitment, proof, self.relation.bits, self.generators, context,
        )


def _as_int(value) -> int:
    if isinstance(value, bool) or not isinstance(value, int):
        raise TypeError(f"expected an integer, got {value!r}")
    return value


# ── setup helpers ───────────────────────────────────────────────────────

Coefficients = Union[Mapping[str, int], Sequence[Tuple[str, int]]]


def setup_circuit(
    circuit_id: str,
    coefficients: Coefficients,
    offset: int = 0,
    bits: Optional[int] = None,
    rng=None,
    config: Optional[ProofConfig] = None,
) -> Circuit:
    """
    Create a circuit with fresh generators.

    >>> c = setup_circuit("adult", {"birthDate": -1, "cutoff": 1})  # doctest: +SKIP
    """
    config = config or DEFAULT_CONFIG
    if rng is None:
        rng = get_seeded_rng()
    pairs = (
        tuple(coefficients.items())
        if isinstance(coefficients, Mapping)
        else tuple((n, c) for n, c in coefficients)
    )
    relation = RangeRelation(
        pairs, offset=offset,
        bits=config.default_range_bits if bits is None else bits,
    )
    logger.debug("set up circuit %s over %s", circuit_id, relation.names)
    return Circuit(circuit_id, relation, rng.randbytes(SEED_BYTES))


def less_than_circuit(
    circuit_id: str,
    lesser: str = "lesser",
    greater: str = "greater",
    bits: Optional[int] = None,
    rng=None,
    config: Optional[ProofConfig] = None,
) -> Circuit:
    """lesser < greater."""
    return setup_circuit(
        circuit_id, ((greater, 1), (lesser, -1)), offset=-1,
        bits=bits, rng=rng, config=config,
    )


def less_than_eq_circuit(
    circuit_id: str,
    lesser: str = "lesser",
    greater: str = "greater",
    bits: Optional[int] = None,
    rng=None,
    config: Optional[ProofConfig] = None,
) -> Circuit:
    """lesser ≤ greater."""
    return setup_circuit(
        circuit_id, ((greater, 1), (lesser, -1)), offset=0,
        bits=bits, rng=rng, config=config,
    )
