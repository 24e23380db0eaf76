"""
vcproofs test configuration
===========================

Shared fixtures: deterministic randomness, an issuer key graph, a small
credential document and its proof options.

Usage:
    pytest tests/                 # everything
    pytest tests/ -m "not slow"   # skip full-width range proofs
"""

import random

import pytest

from vcproofs.config import ProofConfig
from vcproofs.keygen import build_key_graph, generate_keypair
from vcproofs.signing import attach_proof_value, sign


XSD = "http://www.w3.org/2001/XMLSchema#"
VERIFICATION_METHOD = "did:example:issuer#key-1"
OTHER_METHOD = "did:example:other#key-1"

DOCUMENT = (
    '<did:example:alice> <http://schema.org/name> "Alice" .\n'
    f'<did:example:alice> <http://schema.org/birthDate> "2000-01-01"^^<{XSD}date> .\n'
    f'<did:example:alice> <http://schema.org/age> "24"^^<{XSD}integer> .\n'
    '<did:example:cred> <https://www.w3.org/2018/credentials#credentialSubject> <did:example:alice> .\n'
)

PROOF_OPTIONS = (
    "_:b0 <http://www.w3.org/1999/02/22-rdf-syntax-ns#type> <https://w3id.org/security#DataIntegrityProof> .\n"
    f'_:b0 <http://purl.org/dc/terms/created> "2024-01-01T00:00:00Z"^^<{XSD}dateTime> .\n'
    "_:b0 <https://w3id.org/security#proofPurpose> <https://w3id.org/security#assertionMethod> .\n"
    f"_:b0 <https://w3id.org/security#verificationMethod> <{VERIFICATION_METHOD}> .\n"
)

HOLDER_SECRET = b"holder-secret-0001"

# 512-bit issuer moduli keep safe-prime generation fast
TEST_CONFIG = ProofConfig(modulus_bits=512)


# ============================================================================
# Randomness & keys
# ============================================================================

@pytest.fixture
def rng():
    """Deterministic generator injected as ``rng``."""
    return random.Random(20240101)


@pytest.fixture(scope="session")
def keypair():
    """Issuer key pair, generated once per session."""
    return generate_keypair(random.Random(512001), TEST_CONFIG)


@pytest.fixture(scope="session")
def other_keypair():
    """A second, unrelated issuer key pair."""
    return generate_keypair(random.Random(512002), TEST_CONFIG)


@pytest.fixture
def key_graph(keypair):
    """Issuer key graph including the secret key."""
    return build_key_graph(VERIFICATION_METHOD, keypair)


@pytest.fixture
def public_key_graph(keypair):
    """What holders and verifiers get: public key only."""
    return build_key_graph(VERIFICATION_METHOD, keypair, include_secret=False)


# ============================================================================
# Documents
# ============================================================================

@pytest.fixture
def document():
    return DOCUMENT


@pytest.fixture
def proof_options():
    return PROOF_OPTIONS


@pytest.fixture
def signed_proof(document, proof_options, key_graph, rng):
    """Proof graph of ``document`` signed without a holder secret."""
    value = sign(document, proof_options, key_graph, rng=rng)
    return attach_proof_value(proof_options, value)


@pytest.fixture
def bound_proof(document, proof_options, key_graph, rng):
    """Proof graph of ``document`` bound to ``HOLDER_SECRET``."""
    value = sign(document, proof_options, key_graph, secret=HOLDER_SECRET, rng=rng)
    return attach_proof_value(proof_options, value)
