"""
Key generation and public parameters.

Issuer signing keys are Camenisch-Lysyanskaya keys over a fresh RSA
modulus of safe primes; opener (ElGamal) keys are secp256k1 scalar /
point pairs.  Both are drawn from fresh randomness, returned encoded and
never stored.  Public parameters are derived deterministically, so every
party computes the same generators without a setup ceremony.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Dict, Optional

from .clsig import generate_cl_key
from .commitment import Params
from .config import DEFAULT_CONFIG, ProofConfig
from .elgamal import elgamal_keygen
from .encoding import ElementType, encode_point, encode_scalar
from .rdf import (
    SEC_MULTIBASE,
    SEC_PUBLIC_KEY_MULTIBASE,
    SEC_SECRET_KEY_MULTIBASE,
    Statement,
    literal,
    serialize,
)

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class KeyPair:
    """Encoded secret / public key pair."""

    secret_key: str
    public_key: str

    def to_dict(self) -> Dict[str, str]:
        return {"secretKey": self.secret_key, "publicKey": self.public_key}


def generate_keypair(
    rng=None, config: Optional[ProofConfig] = None,
) -> KeyPair:
    """
    Fresh issuer signing key pair over a ``config.modulus_bits`` modulus.

    Safe-prime search dominates the cost; a 2048-bit key takes seconds to
    minutes in pure Python.
    """
    config = config or DEFAULT_CONFIG
    key = generate_cl_key(config.modulus_bits, rng)
    logger.info("generated %d-bit issuer key", config.modulus_bits)
    return KeyPair(
        secret_key=key.encode(),
        public_key=key.public.encode(),
    )


def generate_encryption_keypair(rng=None) -> KeyPair:
    """Fresh opener key pair for pseudonym escrow."""
    public_key, secret_key = elgamal_keygen(rng)
    return KeyPair(
        secret_key=encode_scalar(ElementType.ELGAMAL_SECRET_KEY, secret_key),
        public_key=encode_point(ElementType.ELGAMAL_PUBLIC_KEY, public_key),
    )


def generate_params(count: int) -> Params:
    """
    Public message generators  h_0 … h_{count-1}  plus blinding base H.

    Pure function of *count*; generators are prefix-stable, so
    ``generate_params(n).h[i] == generate_params(m).h[i]``.
    """
    return Params.generate(count)


def build_key_graph(
    verification_method: str,
    keypair: KeyPair,
    include_secret: bool = True,
) -> str:
    """
    Key-graph statements for *verification_method*.

    Issuers sign with ``include_secret=True``; the graph handed to
    holders and verifiers must be built with ``include_secret=False``.
    """
    method = verification_method
    if not method.startswith("<"):
        method = f"<{method}>"
    statements = [
        Statement(method, SEC_PUBLIC_KEY_MULTIBASE,
                  literal(keypair.public_key, SEC_MULTIBASE)),
    ]
    if include_secret:
        statements.append(
            Statement(method, SEC_SECRET_KEY_MULTIBASE,
                      literal(keypair.secret_key, SEC_MULTIBASE)),
        )
    return serialize(statements)
