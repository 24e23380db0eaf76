"""
Blind Signing Tests
===================

Request, verify, blind-sign and unblind, as free functions and through
``BlindSigningSession``.
"""

import pytest

from conftest import HOLDER_SECRET
from vcproofs.blind import (
    Aborted,
    BlindingFactor,
    BlindProofValue,
    BlindSigned,
    BlindSigningSession,
    Init,
    RequestCreated,
    RequestVerified,
    SecretCommitment,
    Unblinded,
    blind_sign,
    request_blind_sign,
    unblind,
    verify_blind_sign_request,
)
from vcproofs.clsig import CLPublicKey
from vcproofs.config import ProofConfig
from vcproofs.errors import CryptoError, EncodingError, FailureReason, ProtocolError
from vcproofs.signing import attach_proof_value, blind_verify, sign, verify

NO_POK = ProofConfig(require_blind_sign_pok=False)


@pytest.fixture
def issuer_key(keypair):
    """Encoded issuer public key the holder commits under."""
    return keypair.public_key


class TestRequest:
    """Holder step 1 and issuer step 2."""

    def test_request_verifies(self, issuer_key, rng):
        request, blinding = request_blind_sign(
            HOLDER_SECRET, issuer_key, "nonce-1", rng=rng,
        )
        assert request.commitment.startswith("u")
        assert request.proof_of_knowledge is not None
        assert verify_blind_sign_request(
            request.commitment, request.proof_of_knowledge, "nonce-1",
        ).verified
        factor = BlindingFactor.decode(blinding)
        assert factor.commitment == SecretCommitment.decode(request.commitment).value

    def test_commitment_names_issuer_key(self, issuer_key, rng):
        request, _ = request_blind_sign(HOLDER_SECRET, issuer_key, rng=rng)
        decoded = SecretCommitment.decode(request.commitment)
        assert decoded.public_key == CLPublicKey.decode(issuer_key)

    def test_commitments_are_hiding(self, issuer_key, rng):
        a, _ = request_blind_sign(HOLDER_SECRET, issuer_key, rng=rng)
        b, _ = request_blind_sign(HOLDER_SECRET, issuer_key, rng=rng)
        assert a.commitment != b.commitment

    def test_request_dict_uses_wire_names(self, issuer_key, rng):
        request, _ = request_blind_sign(HOLDER_SECRET, issuer_key, rng=rng)
        assert set(request.to_dict()) == {"commitment", "pokForCommitment"}

    def test_wrong_challenge(self, issuer_key, rng):
        request, _ = request_blind_sign(
            HOLDER_SECRET, issuer_key, "nonce-1", rng=rng,
        )
        result = verify_blind_sign_request(
            request.commitment, request.proof_of_knowledge, "nonce-2",
        )
        assert result.reason == FailureReason.INVALID_PROOF_OF_KNOWLEDGE

    def test_challenge_dropped_by_issuer(self, issuer_key, rng):
        request, _ = request_blind_sign(
            HOLDER_SECRET, issuer_key, "nonce-1", rng=rng,
        )
        result = verify_blind_sign_request(
            request.commitment, request.proof_of_knowledge, None,
        )
        assert not result.verified

    def test_pok_for_other_commitment(self, issuer_key, rng):
        a, _ = request_blind_sign(HOLDER_SECRET, issuer_key, rng=rng)
        b, _ = request_blind_sign(b"other secret", issuer_key, rng=rng)
        result = verify_blind_sign_request(a.commitment, b.proof_of_knowledge)
        assert result.reason == FailureReason.INVALID_PROOF_OF_KNOWLEDGE

    def test_skipped_pok_rejected_by_default(self, issuer_key, rng):
        request, _ = request_blind_sign(
            HOLDER_SECRET, issuer_key, skip_pok=True, rng=rng,
        )
        assert request.proof_of_knowledge is None
        result = verify_blind_sign_request(request.commitment, None)
        assert result.reason == FailureReason.MISSING_PROOF_OF_KNOWLEDGE

    def test_skipped_pok_accepted_by_policy(self, issuer_key, rng):
        request, _ = request_blind_sign(
            HOLDER_SECRET, issuer_key, skip_pok=True, rng=rng,
        )
        assert verify_blind_sign_request(
            request.commitment, None, config=NO_POK,
        ).verified

    def test_garbage_pok(self, issuer_key, rng):
        request, _ = request_blind_sign(HOLDER_SECRET, issuer_key, rng=rng)
        result = verify_blind_sign_request(request.commitment, "uAAAA")
        assert result.reason == FailureReason.MALFORMED_PROOF

    def test_malformed_commitment_raises(self):
        with pytest.raises(EncodingError):
            verify_blind_sign_request("not-multibase", None)

    def test_request_needs_a_public_key(self, rng):
        with pytest.raises(EncodingError):
            request_blind_sign(HOLDER_SECRET, "uAAAA", rng=rng)


class TestBlindSignUnblind:
    """Issuer step 3 and holder step 4."""

    def test_full_flow(
        self, document, proof_options, key_graph, public_key_graph, issuer_key, rng,
    ):
        request, blinding = request_blind_sign(HOLDER_SECRET, issuer_key, "n", rng=rng)
        blind_value = blind_sign(
            request.commitment, document, proof_options, key_graph, rng=rng,
        )
        decoded = BlindProofValue.decode(blind_value)
        assert decoded.commitment == SecretCommitment.decode(request.commitment).value
        value = unblind(document, blind_value, blinding)
        proof = attach_proof_value(proof_options, value)
        assert blind_verify(HOLDER_SECRET, document, proof, public_key_graph).verified
        assert not verify(document, proof, public_key_graph).verified
        assert not blind_verify(
            b"other secret", document, proof, public_key_graph,
        ).verified

    def test_unblind_accepts_proof_graph(
        self, document, proof_options, key_graph, issuer_key, rng,
    ):
        request, blinding = request_blind_sign(HOLDER_SECRET, issuer_key, rng=rng)
        blind_value = blind_sign(
            request.commitment, document, proof_options, key_graph, rng=rng,
        )
        graph = attach_proof_value(proof_options, blind_value)
        assert unblind(document, graph, blinding) == unblind(
            document, blind_value, blinding,
        )

    @pytest.mark.parametrize("subject", ["urn:x:b0", "<urn:x:b0>"])
    def test_unblind_proof_graph_with_iri_subject(
        self, subject, document, proof_options, key_graph, issuer_key, rng,
    ):
        request, blinding = request_blind_sign(HOLDER_SECRET, issuer_key, rng=rng)
        blind_value = blind_sign(
            request.commitment, document, proof_options, key_graph, rng=rng,
        )
        graph = attach_proof_value(
            proof_options.replace("_:b0", subject), blind_value,
        )
        assert graph.startswith(subject)
        assert unblind(document, graph, blinding) == unblind(
            document, blind_value, blinding,
        )

    def test_unblind_graph_without_proof_value(
        self, document, proof_options, issuer_key, rng,
    ):
        _, blinding = request_blind_sign(HOLDER_SECRET, issuer_key, rng=rng)
        with pytest.raises(EncodingError, match="proofValue"):
            unblind(document, proof_options, blinding)

    def test_wrong_blinding(self, document, proof_options, key_graph, issuer_key, rng):
        request, _ = request_blind_sign(HOLDER_SECRET, issuer_key, rng=rng)
        _, other_blinding = request_blind_sign(HOLDER_SECRET, issuer_key, rng=rng)
        blind_value = blind_sign(
            request.commitment, document, proof_options, key_graph, rng=rng,
        )
        with pytest.raises(CryptoError, match="blinding factor"):
            unblind(document, blind_value, other_blinding)

    def test_commitment_under_other_issuer_refused(
        self, document, proof_options, key_graph, other_keypair, rng,
    ):
        request, _ = request_blind_sign(
            HOLDER_SECRET, other_keypair.public_key, rng=rng,
        )
        with pytest.raises(CryptoError, match="different issuer key"):
            blind_sign(request.commitment, document, proof_options, key_graph, rng=rng)

    @pytest.mark.parametrize("value", [0, 1])
    def test_degenerate_commitment_refused(
        self, value, document, proof_options, key_graph, issuer_key,
    ):
        degenerate = SecretCommitment(CLPublicKey.decode(issuer_key), value).encode()
        with pytest.raises(CryptoError, match="degenerate"):
            blind_sign(degenerate, document, proof_options, key_graph)

    def test_commitment_sharing_a_factor_refused(
        self, document, proof_options, key_graph, issuer_key,
    ):
        key = CLPublicKey.decode(issuer_key)
        degenerate = SecretCommitment(key, key.n).encode()
        with pytest.raises(CryptoError):
            blind_sign(degenerate, document, proof_options, key_graph)

    def test_standard_proof_value_is_not_blind(
        self, document, proof_options, key_graph, issuer_key, rng,
    ):
        _, blinding = request_blind_sign(HOLDER_SECRET, issuer_key, rng=rng)
        value = sign(document, proof_options, key_graph, rng=rng)
        with pytest.raises(EncodingError):
            unblind(document, value, blinding)


class TestSession:
    """State machine over the four steps."""

    def test_happy_path(
        self, document, proof_options, key_graph, public_key_graph, issuer_key, rng,
    ):
        session = BlindSigningSession()
        assert isinstance(session.state, Init)
        session.request(HOLDER_SECRET, issuer_key, "nonce", rng=rng)
        assert isinstance(session.state, RequestCreated)
        assert session.verify_request("nonce").verified
        assert isinstance(session.state, RequestVerified)
        session.sign(document, proof_options, key_graph, rng=rng)
        assert isinstance(session.state, BlindSigned)
        signed = session.unblind()
        assert isinstance(session.state, Unblinded)
        assert blind_verify(
            HOLDER_SECRET, signed.document, signed.proof, public_key_graph,
        ).verified

    def test_sign_before_verify(
        self, document, proof_options, key_graph, issuer_key, rng,
    ):
        session = BlindSigningSession()
        session.request(HOLDER_SECRET, issuer_key, rng=rng)
        with pytest.raises(ProtocolError, match="RequestVerified"):
            session.sign(document, proof_options, key_graph, rng=rng)

    def test_unblind_before_sign(self):
        with pytest.raises(ProtocolError):
            BlindSigningSession().unblind()

    def test_double_request(self, issuer_key, rng):
        session = BlindSigningSession()
        session.request(HOLDER_SECRET, issuer_key, rng=rng)
        with pytest.raises(ProtocolError):
            session.request(HOLDER_SECRET, issuer_key, rng=rng)

    def test_rejected_request_aborts(
        self, document, proof_options, key_graph, issuer_key, rng,
    ):
        session = BlindSigningSession()
        session.request(HOLDER_SECRET, issuer_key, "nonce", rng=rng)
        result = session.verify_request("other nonce")
        assert not result.verified
        assert isinstance(session.state, Aborted)
        with pytest.raises(ProtocolError, match="Aborted"):
            session.sign(document, proof_options, key_graph, rng=rng)
