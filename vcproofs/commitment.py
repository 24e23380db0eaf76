"""
Public secp256k1 generators.

H and every h_i are independent NUMS generators with no known
discrete-log relation among them.  Only h_0 carries meaning today: slot
0 is the holder secret, pseudonym escrow encrypts  H_secret(uid)·h_0,
and the escrow statements of a presentation share that slot's witness
with the secret hidden in the credential signatures.

``Params`` fixes a prefix  h_0 … h_{n-1}  so the generators can be
published once and checked by anyone: they depend on nothing but their
index.
"""

from __future__ import annotations

from dataclasses import dataclass
from functools import lru_cache
from typing import Tuple

from .curve import Point, H
from .hash import hash_params_label

# slot reserved for the holder secret in every credential
SECRET_SLOT = 0


@lru_cache(maxsize=None)
def message_generator(index: int) -> Point:
    """The *index*-th message generator h_index."""
    return Point.nums(hash_params_label(index))


@dataclass(frozen=True)
class Params:
    """Public generators: blinding base H and message bases h_0 … h_{n-1}."""

    blinding: Point
    h: Tuple[Point, ...]

    @classmethod
    def generate(cls, count: int) -> Params:
        if count < 1:
            raise ValueError("params need at least one message generator")
        return cls(
            blinding=H,
            h=tuple(message_generator(i) for i in range(count)),
        )

    def __len__(self) -> int:
        return len(self.h)
