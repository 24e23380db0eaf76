"""
Runtime configuration for vcproofs.

Defaults can be overridden from the environment; values are read once at
import time into ``DEFAULT_CONFIG``.  Every operation that consults
configuration takes an optional ``config`` argument and falls back to
``DEFAULT_CONFIG`` when it is omitted.
"""

from __future__ import annotations

import os
from dataclasses import dataclass


def _env_bool(name: str, default: bool) -> bool:
    raw = os.getenv(name, "").strip().lower()
    if not raw:
        return default
    return raw in ("1", "true", "yes", "on")


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name, "").strip()
    try:
        return int(raw) if raw else default
    except ValueError:
        return default


@dataclass(frozen=True)
class ProofConfig:
    """Policy knobs shared by the signing and disclosure protocols."""

    # A blind-sign request that skipped its proof of knowledge fails
    # verification.  Turn off only when the commitment is proven some
    # other way (e.g. inside a presentation carrying the commitment).
    require_blind_sign_pok: bool = True

    # Bit width of predicate range proofs for circuits that do not
    # declare their own.
    default_range_bits: int = 64

    # Upper bound on statements accepted per document.
    max_statements: int = 4096

    # RSA modulus size for freshly generated issuer keys.
    modulus_bits: int = 2048

    def __post_init__(self) -> None:
        if not 1 <= self.default_range_bits <= 252:
            raise ValueError("default_range_bits must be in [1, 252]")
        if self.max_statements < 1:
            raise ValueError("max_statements must be ≥ 1")
        if self.modulus_bits < 512 or self.modulus_bits % 2:
            raise ValueError("modulus_bits must be an even number ≥ 512")

    @classmethod
    def from_env(cls) -> ProofConfig:
        return cls(
            require_blind_sign_pok=_env_bool(
                "VCPROOFS_REQUIRE_BLIND_SIGN_POK", True,
            ),
            default_range_bits=_env_int("VCPROOFS_RANGE_BITS", 64),
            max_statements=_env_int("VCPROOFS_MAX_STATEMENTS", 4096),
            modulus_bits=_env_int("VCPROOFS_MODULUS_BITS", 2048),
        )


DEFAULT_CONFIG = ProofConfig.from_env()
