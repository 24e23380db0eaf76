"""
Elliptic ElGamal for pseudonym escrow.

Encrypts a *uid element* (a secp256k1 point) under an opener's public key:

    keygen     x ←$ Z_q,   X = x·G
    encrypt    ρ ←$ Z_q,   E1 = ρ·G,   E2 = U + ρ·X,   τ = H(X, E1, E2)
    decrypt    check τ == H(x·G, E1, E2),   U = E2 − x·E1

The uid element of a byte string is  U = H_secret(uid)·h_0, the same
point a holder-bound credential commits to in its secret slot, so a
presentation can prove in zero knowledge that its ciphertext escrows the
holder's own identifier.

The key-check tag τ depends only on public values, so a verifier that
knows X checks it as well as the opener does.  Decryption with the wrong
secret key, or of a ciphertext whose components were swapped, fails
loudly instead of yielding a wrong plaintext, and any ciphertext a
verifier accepted under X decrypts under x.

References
----------
- ElGamal (1985). "A Public Key Cryptosystem and a Signature Scheme
  Based on Discrete Logarithms."  IEEE Trans. IT-31.
"""

from __future__ import annotations

import hmac
import logging
from dataclasses import dataclass
from typing import Tuple

from .commitment import SECRET_SLOT, message_generator
from .curve import Scalar, Point, G
from .encoding import (
    ByteReader,
    ElementType,
    decode_element,
    decode_point,
    decode_scalar,
    encode_element,
    encode_point,
)
from .errors import CryptoError, EncodingError
from .hash import hash_elgamal_tag, hash_secret

logger = logging.getLogger(__name__)

TAG_BYTES = 32


@dataclass(frozen=True)
class ElGamalCiphertext:
    """(E1, E2, τ)"""

    e1: Point
    e2: Point
    tag: bytes

    def encode(self) -> str:
        return encode_element(
            ElementType.CIPHERTEXT,
            self.e1.to_bytes() + self.e2.to_bytes() + self.tag,
        )

    @classmethod
    def decode(cls, text: str) -> ElGamalCiphertext:
        reader = ByteReader(decode_element(text, ElementType.CIPHERTEXT))
        e1, e2 = reader.point(), reader.point()
        tag = reader.take(TAG_BYTES)
        reader.finish()
        return cls(e1=e1, e2=e2, tag=tag)

    def is_bound_to(self, public_key: Point) -> bool:
        """True when τ was computed for *public_key*."""
        return hmac.compare_digest(
            hash_elgamal_tag(public_key, self.e1, self.e2), self.tag,
        )


def elgamal_keygen(rng=None) -> Tuple[Point, Scalar]:
    x = Scalar.random(rng)
    return x * G, x


def uid_point(uid: bytes) -> Point:
    """Group element standing for *uid*."""
    return hash_secret(uid) * message_generator(SECRET_SLOT)


def encrypt_point(
    message: Point, public_key: Point, randomness: Scalar,
) -> ElGamalCiphertext:
    if public_key.is_inf():
        raise CryptoError("opener public key is the identity")
    e1 = randomness * G
    e2 = message + randomness * public_key
    return ElGamalCiphertext(
        e1=e1, e2=e2, tag=hash_elgamal_tag(public_key, e1, e2),
    )


def decrypt_point(secret_key: Scalar, ciphertext: ElGamalCiphertext) -> Point:
    if not ciphertext.is_bound_to(secret_key * G):
        raise CryptoError(
            "ciphertext does not decrypt under this secret key"
        )
    return ciphertext.e2 - secret_key * ciphertext.e1


# ── string-level API ────────────────────────────────────────────────────

def get_encrypted_uid(uid: bytes) -> str:
    """Encoded uid element: what ``decrypt`` returns for *uid*."""
    return encode_point(ElementType.UID, uid_point(uid))


def encrypt(uid: bytes, public_key: str, rng=None) -> str:
    """Encrypt the uid element of *uid* under an opener public key."""
    pk = decode_point(public_key, ElementType.ELGAMAL_PUBLIC_KEY)
    return encrypt_point(uid_point(uid), pk, Scalar.random(rng)).encode()


def decrypt(secret_key: str, ciphertext: str) -> str:
    """
    Recover the encoded uid element from *ciphertext*.

    Raises ``CryptoError`` if the ciphertext is malformed or was not
    produced for this key pair.
    """
    sk = decode_scalar(secret_key, ElementType.ELGAMAL_SECRET_KEY)
    try:
        parsed = ElGamalCiphertext.decode(ciphertext)
    except EncodingError as exc:
        raise CryptoError(f"malformed ciphertext: {exc}") from exc
    message = decrypt_point(sk, parsed)
    logger.debug("decrypted escrowed uid")
    return encode_point(ElementType.UID, message)
