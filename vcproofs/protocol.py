"""
High-level role objects for the credential lifecycle.

``Issuer``, ``Holder`` and ``Verifier`` wrap the protocol functions with
the state each role naturally keeps (keys, holder secret, verifier
expectations), so the common flows read as a few method calls.

Usage
-----
::

    from vcproofs.protocol import Issuer, Holder, Verifier

    issuer = Issuer.generate("did:example:issuer#key-1")
    holder = Holder(b"holder secret")

    # Blind issuance
    request, blinding = holder.request_credential(issuer.public_key,
                                                  challenge="nonce-1")
    blind_value = issuer.blind_issue(request, document, options,
                                     challenge="nonce-1")
    credential = holder.unblind(document, options, blind_value, blinding)

    # Presentation
    verifier = Verifier(issuer.public_key_graph)
    challenge = verifier.new_challenge()
    vp = holder.present([pair], deanon_map, issuer.public_key_graph,
                        challenge=challenge)
    assert verifier.verify(vp, challenge=challenge)
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Mapping, Optional, Sequence, Tuple

from .blind import (
    BlindSignRequest,
    blind_sign,
    request_blind_sign,
    unblind,
    verify_blind_sign_request,
)
from .config import DEFAULT_CONFIG, ProofConfig
from .curve import get_seeded_rng
from .elgamal import get_encrypted_uid
from .encoding import base64url_encode
from .errors import ProtocolError, VerifyResult
from .keygen import KeyPair, build_key_graph, generate_keypair
from .presentation import (
    DeriveProofRequest,
    VcPair,
    VerifiablePresentation,
    VerifyProofRequest,
    derive_proof,
    verify_proof,
)
from .rdf import SEC, Statement, literal, serialize
from .signing import SignedDocument, blind_verify, sign, verify


RDF_TYPE = "<http://www.w3.org/1999/02/22-rdf-syntax-ns#type>"
XSD_DATETIME = "<http://www.w3.org/2001/XMLSchema#dateTime>"
CRYPTOSUITE = "vcproofs-cl-secp256k1-2024"


class Issuer:
    """
    Signs credentials under one verification method.

    The key graph this object signs with contains the secret key; hand
    ``public_key_graph`` to holders and verifiers.
    """

    def __init__(
        self,
        verification_method: str,
        keypair: KeyPair,
        config: Optional[ProofConfig] = None,
    ) -> None:
        self.verification_method = verification_method
        self._keypair = keypair
        self._config = config or DEFAULT_CONFIG
        self._key_graph = build_key_graph(verification_method, keypair)

    # ── factories ──────────────────────────────────────────────────────

    @classmethod
    def generate(
        cls,
        verification_method: str,
        rng=None,
        config: Optional[ProofConfig] = None,
    ) -> Issuer:
        """Fresh issuer with a newly generated signing key."""
        return cls(verification_method, generate_keypair(rng, config), config)

    # ── accessors ──────────────────────────────────────────────────────

    @property
    def public_key(self) -> str:
        return self._keypair.public_key

    @property
    def public_key_graph(self) -> str:
        return build_key_graph(
            self.verification_method, self._keypair, include_secret=False,
        )

    def proof_options(self, created: Optional[datetime] = None) -> str:
        """Proof-options graph naming this issuer's verification method."""
        created = created or datetime.now(timezone.utc)
        stamp = created.astimezone(timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ")
        method = self.verification_method
        if not method.startswith("<"):
            method = f"<{method}>"
        node = "_:b0"
        return serialize([
            Statement(node, RDF_TYPE, f"<{SEC}DataIntegrityProof>"),
            Statement(node, f"<{SEC}cryptosuite>", literal(CRYPTOSUITE)),
            Statement(node, "<http://purl.org/dc/terms/created>",
                      literal(stamp, XSD_DATETIME)),
            Statement(node, f"<{SEC}proofPurpose>", f"<{SEC}assertionMethod>"),
            Statement(node, f"<{SEC}verificationMethod>", method),
        ])

    # ── issuance ───────────────────────────────────────────────────────

    def issue(
        self,
        document: str,
        proof_options: Optional[str] = None,
        secret: Optional[bytes] = None,
        rng=None,
    ) -> SignedDocument:
        """Standard signing; pass *secret* to bind the credential to a holder."""
        options = proof_options or self.proof_options()
        proof_value = sign(
            document, options, self._key_graph, secret, rng, self._config,
        )
        return SignedDocument(document, proof_value, options)

    def verify_request(
        self, request: BlindSignRequest, challenge: Optional[str] = None,
    ) -> VerifyResult:
        return verify_blind_sign_request(
            request.commitment, request.proof_of_knowledge, challenge,
            self._config,
        )

    def blind_issue(
        self,
        request: BlindSignRequest,
        document: str,
        proof_options: str,
        challenge: Optional[str] = None,
        rng=None,
    ) -> str:
        """
        Check *request* and blind-sign *document* around its commitment.

        Raises ``ProtocolError`` when the request does not verify; no
        signature is produced for a rejected request.
        """
        result = self.verify_request(request, challenge)
        if not result:
            raise ProtocolError(f"blind-sign request rejected: {result.error}")
        return blind_sign(
            request.commitment, document, proof_options, self._key_graph,
            rng, self._config,
        )

    def issue_from_presentation(
        self,
        vp: str,
        document: str,
        proof_options: str,
        challenge: Optional[str] = None,
        domain: Optional[str] = None,
        rng=None,
    ) -> str:
        """
        Blind-sign for the holder of a verified presentation.

        The presentation's blind-sign commitment is proven to hide the
        same secret as the credentials it presents, so the new credential
        is bound to the same holder.
        """
        result = verify_proof(VerifyProofRequest(
            vp=vp, key_graph=self.public_key_graph,
            challenge=challenge, domain=domain,
        ), self._config)
        if not result:
            raise ProtocolError(f"presentation rejected: {result.error}")
        commitment = VerifiablePresentation.from_json(vp).blind_sign_commitment
        if commitment is None:
            raise ProtocolError("presentation carries no blind-sign commitment")
        return blind_sign(
            commitment, document, proof_options, self._key_graph,
            rng, self._config,
        )

    def __repr__(self) -> str:
        return f"Issuer({self.verification_method!r})"


class Holder:
    """Owns a holder secret; requests, stores and presents credentials."""

    def __init__(self, secret: bytes, config: Optional[ProofConfig] = None) -> None:
        self._secret = secret
        self._config = config or DEFAULT_CONFIG

    @property
    def uid(self) -> str:
        """Uid element an opener recovers from this holder's presentations."""
        return get_encrypted_uid(self._secret)

    def request_credential(
        self,
        public_key: str,
        challenge: Optional[str] = None,
        rng=None,
    ) -> Tuple[BlindSignRequest, str]:
        """Blind-sign request for the issuer holding *public_key*."""
        return request_blind_sign(self._secret, public_key, challenge, rng=rng)

    def unblind(
        self,
        document: str,
        proof_options: str,
        blind_proof_value: str,
        blinding: str,
    ) -> SignedDocument:
        return SignedDocument(
            document, unblind(document, blind_proof_value, blinding),
            proof_options,
        )

    def verify_credential(
        self, credential: SignedDocument, key_graph: str,
    ) -> VerifyResult:
        """Check a credential, whether or not it is bound to this holder."""
        result = blind_verify(
            self._secret, credential.document, credential.proof, key_graph,
            self._config,
        )
        if result:
            return result
        return verify(
            credential.document, credential.proof, key_graph, self._config,
        )

    def present(
        self,
        vc_pairs: Sequence[VcPair],
        deanon_map: Mapping[str, str],
        key_graph: str,
        rng=None,
        **options,
    ) -> str:
        """
        Derive a presentation with this holder's secret.

        *options* are the optional ``DeriveProofRequest`` fields
        (``challenge``, ``domain``, ``with_ppid``, ``predicates``, …).
        """
        request = DeriveProofRequest(
            vc_pairs=tuple(vc_pairs),
            deanon_map=deanon_map,
            key_graph=key_graph,
            secret=self._secret,
            **options,
        )
        return derive_proof(request, rng, self._config)


class Verifier:
    """Checks presentations against fixed issuer keys and circuits."""

    def __init__(
        self,
        key_graph: str,
        snark_verifying_keys: Optional[Mapping[str, str]] = None,
        opener_public_key: Optional[str] = None,
        config: Optional[ProofConfig] = None,
    ) -> None:
        self._key_graph = key_graph
        self._verifying_keys = dict(snark_verifying_keys or {})
        self._opener_public_key = opener_public_key
        self._config = config or DEFAULT_CONFIG

    @staticmethod
    def new_challenge(rng=None) -> str:
        """Fresh anti-replay nonce for a presentation request."""
        rng = rng or get_seeded_rng()
        return base64url_encode(rng.randbytes(16))

    def verify(
        self,
        vp: str,
        challenge: Optional[str] = None,
        domain: Optional[str] = None,
    ) -> VerifyResult:
        return verify_proof(VerifyProofRequest(
            vp=vp,
            key_graph=self._key_graph,
            challenge=challenge,
            domain=domain,
            snark_verifying_keys=self._verifying_keys,
            opener_public_key=self._opener_public_key,
        ), self._config)

    def verify_credential(
        self, credential: SignedDocument,
    ) -> VerifyResult:
        return verify(
            credential.document, credential.proof, self._key_graph,
            self._config,
        )
