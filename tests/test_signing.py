"""
Signing Unit Tests
==================

CL signatures, standard signatures over N-Triples documents, holder
binding and the failure reasons reported by ``verify``.
"""

import pytest

from conftest import (
    HOLDER_SECRET,
    OTHER_METHOD,
    PROOF_OPTIONS,
    VERIFICATION_METHOD,
    XSD,
)
from vcproofs.clsig import (
    MESSAGE_BITS,
    CLPublicKey,
    CLSecretKey,
    CLSignature,
    cl_sign,
    cl_verify,
    e_in_range,
    randomize,
)
from vcproofs.errors import CryptoError, EncodingError, FailureReason
from vcproofs.keygen import KeyPair, build_key_graph
from vcproofs.rdf import split_proof, parse_document
from vcproofs.signing import (
    ProofValue,
    SignedDocument,
    attach_proof_value,
    blind_verify,
    sign,
    verify,
)


def _flip(text, index):
    chars = list(text)
    chars[index] = "A" if chars[index] != "A" else "B"
    return "".join(chars)


@pytest.fixture(scope="module")
def cl_key(keypair):
    return CLSecretKey.decode(keypair.secret_key)


MESSAGES = {0: 5, 1: 7, 3: 2 ** 255 + 11}


class TestCLSignature:
    """The signature primitive under every credential."""

    def test_sign_verify(self, cl_key, rng):
        sig = cl_sign(cl_key, MESSAGES, rng)
        assert cl_verify(cl_key.public, MESSAGES, sig)
        assert e_in_range(sig.e)

    def test_wrong_message(self, cl_key, rng):
        sig = cl_sign(cl_key, MESSAGES, rng)
        assert not cl_verify(cl_key.public, {**MESSAGES, 1: 8}, sig)

    def test_message_in_other_slot(self, cl_key, rng):
        sig = cl_sign(cl_key, MESSAGES, rng)
        moved = {0: 5, 2: 7, 3: MESSAGES[3]}
        assert not cl_verify(cl_key.public, moved, sig)

    def test_wrong_key(self, cl_key, other_keypair, rng):
        sig = cl_sign(cl_key, MESSAGES, rng)
        other = CLPublicKey.decode(other_keypair.public_key)
        assert not cl_verify(other, MESSAGES, sig)

    def test_oversized_message_refused(self, cl_key, rng):
        with pytest.raises(CryptoError):
            cl_sign(cl_key, {0: 2 ** MESSAGE_BITS}, rng)

    def test_randomized_signature_verifies(self, cl_key, rng):
        sig = cl_sign(cl_key, MESSAGES, rng)
        fresh = randomize(cl_key.public, sig, rng)
        assert fresh.A != sig.A
        assert fresh.v != sig.v
        assert fresh.e == sig.e
        assert cl_verify(cl_key.public, MESSAGES, fresh)

    def test_signature_on_commitment(self, cl_key, rng):
        public = cl_key.public
        n = public.n
        s, v_prime = 1234567, rng.getrandbits(600)
        U = pow(public.base(0), s, n) * pow(public.S, v_prime, n) % n
        sig = cl_sign(cl_key, {1: 7}, rng, commitment=U)
        assert not cl_verify(public, {0: s, 1: 7}, sig)
        completed = CLSignature(sig.A, sig.e, sig.v + v_prime)
        assert cl_verify(public, {0: s, 1: 7}, completed)

    def test_public_key_encoding(self, cl_key, keypair):
        assert CLPublicKey.decode(keypair.public_key) == cl_key.public
        assert cl_key.public.modulus_bits == 512

    def test_secret_key_is_not_a_public_key(self, keypair):
        with pytest.raises(EncodingError, match="PUBLIC_KEY"):
            CLPublicKey.decode(keypair.secret_key)


class TestSignVerify:
    """End-to-end sign then verify."""

    def test_round_trip(self, document, signed_proof, public_key_graph):
        result = verify(document, signed_proof, public_key_graph)
        assert result.verified
        assert result.error is None
        assert result.to_dict() == {"verified": True}

    def test_proof_value_is_multibase(self, document, proof_options, key_graph, rng):
        value = sign(document, proof_options, key_graph, rng=rng)
        assert value.startswith("u")
        ProofValue.decode(value)

    def test_prefixed_name_document(self, key_graph, public_key_graph, rng):
        document = "ex:subj ex:pred ex:obj .\n"
        value = sign(document, PROOF_OPTIONS, key_graph, rng=rng)
        proof = attach_proof_value(PROOF_OPTIONS, value)
        assert verify(document, proof, public_key_graph).verified

    def test_signatures_are_randomized(self, document, proof_options, key_graph, rng):
        a = sign(document, proof_options, key_graph, rng=rng)
        b = sign(document, proof_options, key_graph, rng=rng)
        assert a != b

    def test_option_order_does_not_matter(self, document, signed_proof, public_key_graph):
        reordered = "".join(reversed(signed_proof.splitlines(keepends=True)))
        assert verify(document, reordered, public_key_graph).verified

    def test_signed_document_proof_graph(self, document, proof_options, key_graph, rng):
        value = sign(document, proof_options, key_graph, rng=rng)
        signed = SignedDocument(document, value, proof_options)
        _, carried = split_proof(parse_document(signed.proof))
        assert carried == value


class TestVerifyFailures:
    """Failed checks come back as results, never as exceptions."""

    def test_tampered_document(self, document, signed_proof, public_key_graph):
        tampered = document.replace('"Alice"', '"Mallory"')
        result = verify(tampered, signed_proof, public_key_graph)
        assert not result.verified
        assert result.reason == FailureReason.INVALID_SIGNATURE

    def test_dropped_statement(self, document, signed_proof, public_key_graph):
        shorter = "".join(document.splitlines(keepends=True)[:-1])
        assert not verify(shorter, signed_proof, public_key_graph).verified

    def test_tampered_options(self, document, signed_proof, public_key_graph):
        tampered = signed_proof.replace("2024-01-01", "2023-01-01")
        result = verify(document, tampered, public_key_graph)
        assert result.reason == FailureReason.INVALID_SIGNATURE

    @pytest.mark.parametrize("index", [0, 1, 10, 60, 100, -1])
    def test_flipped_proof_value_character(
        self, document, proof_options, key_graph, public_key_graph, rng, index,
    ):
        value = sign(document, proof_options, key_graph, rng=rng)
        proof = attach_proof_value(proof_options, _flip(value, index))
        result = verify(document, proof, public_key_graph)
        assert not result.verified
        assert result.reason is not None
        assert result.error

    def test_unknown_verification_method(self, document, signed_proof, keypair):
        other = build_key_graph(OTHER_METHOD, keypair, include_secret=False)
        result = verify(document, signed_proof, other)
        assert result.reason == FailureReason.UNKNOWN_VERIFICATION_METHOD

    def test_wrong_issuer_key(self, document, signed_proof, other_keypair):
        impostor = build_key_graph(
            VERIFICATION_METHOD, other_keypair, include_secret=False,
        )
        result = verify(document, signed_proof, impostor)
        assert result.reason == FailureReason.INVALID_SIGNATURE

    def test_missing_proof_value(self, document, proof_options, public_key_graph):
        result = verify(document, proof_options, public_key_graph)
        assert result.reason == FailureReason.MALFORMED_PROOF

    def test_malformed_document_raises(self, signed_proof, public_key_graph):
        with pytest.raises(EncodingError):
            verify("this is not n-triples", signed_proof, public_key_graph)


class TestSignErrors:
    """Inputs ``sign`` refuses outright."""

    def test_empty_document(self, proof_options, key_graph):
        with pytest.raises(EncodingError):
            sign("", proof_options, key_graph)

    def test_options_with_proof_value(self, document, signed_proof, key_graph):
        with pytest.raises(EncodingError, match="proofValue"):
            sign(document, signed_proof, key_graph)

    def test_public_only_key_graph(self, document, proof_options, public_key_graph):
        with pytest.raises(EncodingError, match="secret key"):
            sign(document, proof_options, public_key_graph)

    def test_mismatched_key_pair(
        self, document, proof_options, keypair, other_keypair,
    ):
        a, b = keypair, other_keypair
        graph = build_key_graph(
            VERIFICATION_METHOD,
            KeyPair(secret_key=a.secret_key, public_key=b.public_key),
        )
        with pytest.raises(CryptoError, match="do not match"):
            sign(document, proof_options, graph)


class TestHolderBinding:
    """Credentials signed with a holder secret in slot 0."""

    def test_bound_credential_needs_secret(self, document, bound_proof, public_key_graph):
        assert not verify(document, bound_proof, public_key_graph).verified
        assert blind_verify(
            HOLDER_SECRET, document, bound_proof, public_key_graph,
        ).verified

    def test_wrong_secret(self, document, bound_proof, public_key_graph):
        result = blind_verify(b"someone else", document, bound_proof, public_key_graph)
        assert result.reason == FailureReason.INVALID_SIGNATURE

    def test_unbound_credential_fails_blind_verify(
        self, document, signed_proof, public_key_graph,
    ):
        assert not blind_verify(
            HOLDER_SECRET, document, signed_proof, public_key_graph,
        ).verified


class TestExactTerms:
    """A signature pins each object's datatype and lexical form."""

    def test_value_equivalent_datatype(self, document, signed_proof, public_key_graph):
        swapped = document.replace(
            f'"24"^^<{XSD}integer>', f'"24"^^<{XSD}long>',
        )
        result = verify(swapped, signed_proof, public_key_graph)
        assert result.reason == FailureReason.INVALID_SIGNATURE

    def test_date_replaced_by_its_unix_seconds(
        self, document, signed_proof, public_key_graph,
    ):
        swapped = document.replace(
            f'"2000-01-01"^^<{XSD}date>', f'"946684800"^^<{XSD}integer>',
        )
        assert swapped != document
        assert not verify(swapped, signed_proof, public_key_graph).verified

    @pytest.mark.parametrize("term", [
        f'"+024"^^<{XSD}negativeInteger>',
        f'"+24"^^<{XSD}integer>',
        f'"024"^^<{XSD}integer>',
        f'"24.0"^^<{XSD}integer>',
    ])
    def test_non_canonical_literal_raises(
        self, document, signed_proof, public_key_graph, term,
    ):
        swapped = document.replace(f'"24"^^<{XSD}integer>', term)
        with pytest.raises(EncodingError):
            verify(swapped, signed_proof, public_key_graph)

    def test_non_canonical_literal_cannot_be_signed(self, proof_options, key_graph, rng):
        document = f'<ex:s> <ex:p> "0024"^^<{XSD}integer> .\n'
        with pytest.raises(EncodingError):
            sign(document, proof_options, key_graph, rng=rng)
