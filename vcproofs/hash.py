"""
Domain-separated hash functions for vcproofs.

Every hash call includes a unique domain tag so that outputs for
different protocol roles (term encoding, signature message bases,
presentation challenge, ElGamal key check, range proofs) are
independent, even when fed identical data.

Convention follows BIP-340 tagged hashes:

    H_tag(x) = SHA-256( SHA-256(tag) ‖ SHA-256(tag) ‖ x )
"""

from __future__ import annotations

import hashlib
from typing import Any, Iterable, Optional

from .curve import Scalar, Point
from .encoding import int_bytes


# ── domain tags ─────────────────────────────────────────────────────────
_TAG_TERM     = b"vcproofs/v1/term"
_TAG_SECRET   = b"vcproofs/v1/holder_secret"
_TAG_OPTIONS  = b"vcproofs/v1/proof_options"
_TAG_CL_BASE  = b"vcproofs/v1/cl_message_base"
_TAG_SIGMA    = b"vcproofs/v1/sigma_challenge"
_TAG_PPID     = b"vcproofs/v1/ppid_base"
_TAG_ELGAMAL  = b"vcproofs/v1/elgamal_key_check"
_TAG_RANGE    = b"vcproofs/v1/range_bit"
_TAG_PARAMS   = b"vcproofs/v1/params"
_TAG_CIRCUIT  = b"vcproofs/v1/circuit_generator"
_TAG_PREDICATE = b"vcproofs/v1/predicate_context"

_NONE_MARKER = b"\xff\xff\xff\xff"


# ── internal helpers ────────────────────────────────────────────────────
def _tagged_hasher(tag: bytes):
    """Return a SHA-256 context pre-loaded with the BIP-340 tag prefix."""
    tag_hash = hashlib.sha256(tag).digest()
    h = hashlib.sha256()
    h.update(tag_hash)
    h.update(tag_hash)
    return h


def _encode_item(item: Any) -> bytes:
    """
    Canonical encoding of a protocol element for hashing.

    Variable-length items (bytes, strings, lists) are length-prefixed so
    that concatenations parse unambiguously.
    """
    if item is None:
        return _NONE_MARKER
    if isinstance(item, str):
        item = item.encode("utf-8")
    if isinstance(item, bytes):
        return len(item).to_bytes(4, "big") + item
    if isinstance(item, bool):
        return b"\x01" if item else b"\x00"
    if isinstance(item, int):
        return int_bytes(item)
    if isinstance(item, Scalar):
        return item.to_bytes()
    if isinstance(item, Point):
        return item.to_bytes()
    if isinstance(item, (list, tuple)):
        parts = b"".join(_encode_item(x) for x in item)
        return len(item).to_bytes(4, "big") + parts
    raise TypeError(f"cannot hash item of type {type(item).__name__}")


def _tagged_hash(tag: bytes, *args: Any) -> bytes:
    """Compute BIP-340 tagged hash over arbitrary protocol elements."""
    h = _tagged_hasher(tag)
    for a in args:
        h.update(_encode_item(a))
    return h.digest()


def _tagged_scalar(tag: bytes, *args: Any) -> Scalar:
    """Hash to scalar: H_tag(*args) → Z_q."""
    return Scalar.from_bytes_reduce(_tagged_hash(tag, *args))


# ── public hash functions ───────────────────────────────────────────────

def hash_term(term: str) -> Scalar:
    """Message scalar for an RDF term that has no numeric reading."""
    return _tagged_scalar(_TAG_TERM, term)


def hash_secret(secret: bytes) -> Scalar:
    """Message scalar for a holder secret (slot 0 of every credential)."""
    return _tagged_scalar(_TAG_SECRET, secret)


def hash_proof_options(statements: Iterable[str]) -> bytes:
    """
    Digest of the proof-options graph, order-insensitive.

    The issuer signs this digest as a message of its own so that created
    date, purpose and verification method cannot be swapped.
    """
    return _tagged_hash(_TAG_OPTIONS, sorted(statements))


def hash_cl_base(modulus: int, index: int, block: int) -> bytes:
    """*block*-th 32-byte chunk of the expansion behind message base R_index."""
    return _tagged_hash(_TAG_CL_BASE, modulus, index, block)


def hash_sigma(context: Iterable[Any], announcements: Iterable[Any]) -> int:
    """
    Fiat-Shamir challenge over a statement context and its announcements.

    Returned as a 256-bit integer, not reduced modulo the curve order:
    responses live in Z, so one challenge serves statements in every
    group of a proof.
    """
    return int.from_bytes(
        _tagged_hash(_TAG_SIGMA, list(context), list(announcements)), "big",
    )


def hash_ppid_label(domain: str) -> bytes:
    """Label for the per-domain PPID base point."""
    return _tagged_hash(_TAG_PPID, domain)


def hash_params_label(index: int) -> bytes:
    """Label for the *index*-th message generator."""
    return _tagged_hash(_TAG_PARAMS, index)


def hash_circuit_label(seed: bytes, index: int) -> bytes:
    """Label for the *index*-th generator of a circuit's key material."""
    return _tagged_hash(_TAG_CIRCUIT, seed, index)


def hash_elgamal_tag(public_key: Point, e1: Point, e2: Point) -> bytes:
    """Key-check tag binding an ElGamal ciphertext to its recipient key."""
    return _tagged_hash(_TAG_ELGAMAL, public_key, e1, e2)


def hash_range_bit(
    context: bytes, index: int, B: Point, A0: Point, A1: Point,
) -> Scalar:
    """Fiat-Shamir challenge for one bit of a range proof."""
    return _tagged_scalar(_TAG_RANGE, context, index, B, A0, A1)


def hash_predicate_context(
    circuit_id: str,
    seed: bytes,
    commitment: Point,
    challenge: Optional[str],
    domain: Optional[str],
    index: int,
) -> bytes:
    """Binds a predicate range proof to its circuit and presentation."""
    return _tagged_hash(
        _TAG_PREDICATE, circuit_id, seed, commitment, challenge, domain, index,
    )
