"""
vcproofs: privacy-preserving verifiable credentials over RDF documents.

A credential protocol combining:

- **Re-randomisable CL signatures** over every term of an N-Triples
  document, so presentations of one credential are unlinkable
  [Camenisch & Lysyanskaya, SCN 2002]
- **Blind issuance** binding a credential to a holder secret the issuer
  never sees
- **Selective disclosure** with one aggregate sigma proof, plus range
  predicates over hidden values [Cramer, Damgård & Schoenmakers,
  CRYPTO 1994]
- **Pseudonyms**: per-domain PPIDs and ElGamal escrow of a holder uid
  for a designated opener, on secp256k1

Quick start
-----------
::

    from vcproofs import Issuer, Holder, Verifier, VcPair

    issuer = Issuer.generate("did:example:issuer#key-1")
    document = '<did:example:alice> <http://schema.org/name> "Alice" .'
    signed = issuer.issue(document)

    verifier = Verifier(issuer.public_key_graph)
    assert verifier.verify_credential(signed)

    # hide the subject behind a placeholder
    disclosed = '_:e0 <http://schema.org/name> "Alice" .'
    pair = VcPair(signed.document, signed.proof, disclosed, signed.proof)
    vp = Holder(b"holder secret").present(
        [pair], {"_:e0": "<did:example:alice>"}, issuer.public_key_graph,
    )
    assert verifier.verify(vp)
"""

__version__ = "0.1.0"

# ── errors & configuration ──────────────────────────────────────────────
from .errors import (
    VcProofsError,
    EncodingError,
    CryptoError,
    ProtocolError,
    FailureReason,
    VerifyResult,
)
from .config import ProofConfig, DEFAULT_CONFIG

# ── core types ──────────────────────────────────────────────────────────
from .curve import Scalar, Point, G, H, ORDER
from .clsig import CLPublicKey, CLSecretKey, CLSignature

# ── roles ───────────────────────────────────────────────────────────────
from .protocol import Issuer, Holder, Verifier

# ── key management ──────────────────────────────────────────────────────
from .keygen import (
    KeyPair,
    generate_keypair,
    generate_encryption_keypair,
    generate_params,
    build_key_graph,
)

# ── standard signing ────────────────────────────────────────────────────
from .signing import (
    SignedDocument,
    sign,
    verify,
    blind_verify,
    attach_proof_value,
)

# ── blind signing ───────────────────────────────────────────────────────
from .blind import (
    BlindSignRequest,
    BlindSigningSession,
    request_blind_sign,
    verify_blind_sign_request,
    blind_sign,
    unblind,
)

# ── selective disclosure ────────────────────────────────────────────────
from .presentation import (
    VcPair,
    Predicate,
    DeriveProofRequest,
    VerifyProofRequest,
    VerifiablePresentation,
    derive_proof,
    verify_proof,
)
from .circuit import (
    Circuit,
    setup_circuit,
    less_than_circuit,
    less_than_eq_circuit,
)

# ── pseudonym encryption ────────────────────────────────────────────────
from .elgamal import encrypt, decrypt, get_encrypted_uid

__all__ = [
    # version
    "__version__",
    # errors & config
    "VcProofsError", "EncodingError", "CryptoError", "ProtocolError",
    "FailureReason", "VerifyResult", "ProofConfig", "DEFAULT_CONFIG",
    # core
    "Scalar", "Point", "G", "H", "ORDER",
    "CLPublicKey", "CLSecretKey", "CLSignature",
    # roles
    "Issuer", "Holder", "Verifier",
    # keys
    "KeyPair", "generate_keypair", "generate_encryption_keypair",
    "generate_params", "build_key_graph",
    # signing
    "SignedDocument", "sign", "verify", "blind_verify", "attach_proof_value",
    # blind signing
    "BlindSignRequest", "BlindSigningSession", "request_blind_sign",
    "verify_blind_sign_request", "blind_sign", "unblind",
    # selective disclosure
    "VcPair", "Predicate", "DeriveProofRequest", "VerifyProofRequest",
    "VerifiablePresentation", "derive_proof", "verify_proof",
    "Circuit", "setup_circuit", "less_than_circuit", "less_than_eq_circuit",
    # pseudonyms
    "encrypt", "decrypt", "get_encrypted_uid",
]
