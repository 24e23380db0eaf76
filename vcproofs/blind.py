"""
Blind signing: issuance without the issuer learning the holder secret.

Four steps, each carrying forward exactly the artifacts of the previous:

1. **request** (holder)   U = R_0^s · S^v'  under the issuer's public
   key, plus a PoK of (s, v') bound to an optional anti-replay
   challenge.  The holder keeps the blinding factor v'.
2. **verify request** (issuer)   check the PoK against the same
   challenge.  A failed check aborts the handshake.
3. **blind sign** (issuer)   a CL signature (A, e, v'') on U together
   with the document messages.  The blind proof value carries
   (U, A, e, v'').
4. **unblind** (holder)   v = v' + v''.  The result (A, e, v) is an
   ordinary proof value over the document with the secret in slot 0,
   verifiable with ``blind_verify``.

Splitting 2 from 3 lets an issuer reject requests, or apply policy
(rate limits, authorisation), before committing any signing effort.

``BlindSigningSession`` runs the same steps as an explicit state
machine; calling a step in the wrong state raises ``ProtocolError``.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Dict, Optional, Tuple, Union

from .clsig import (
    CLPublicKey,
    CLSignature,
    blinding_bits,
    cl_sign,
    is_unit,
)
from .commitment import SECRET_SLOT
from .config import DEFAULT_CONFIG, ProofConfig
from .curve import get_seeded_rng
from .encoding import (
    ByteReader,
    ElementType,
    decode_element,
    encode_element,
    int_bytes,
)
from .errors import (
    CryptoError,
    EncodingError,
    FailureReason,
    ProtocolError,
    VerificationFailure,
    VerifyResult,
)
from .hash import hash_secret
from .proofs import ExponentStatement, SigmaProof
from .rdf import parse_document, split_proof
from .signing import (
    ProofValue,
    SignedDocument,
    document_messages,
    parse_options,
    resolve_secret_key,
)

logger = logging.getLogger(__name__)

_POK_KEYS = ("secret", "blinding")
_POK_DOMAIN = "blind-sign-request"


# ── artifacts ───────────────────────────────────────────────────────────

@dataclass(frozen=True)
class BlindSignRequest:
    """What the holder sends: commitment, optional PoK, optional challenge."""

    commitment: str
    proof_of_knowledge: Optional[str] = None
    challenge: Optional[str] = None

    def to_dict(self) -> Dict[str, Optional[str]]:
        return {
            "commitment": self.commitment,
            "pokForCommitment": self.proof_of_knowledge,
        }


@dataclass(frozen=True)
class SecretCommitment:
    """U = R_0^s · S^v'  together with the issuer key it was formed under."""

    public_key: CLPublicKey
    value: int

    def encode(self) -> str:
        return encode_element(
            ElementType.COMMITMENT,
            self.public_key.to_bytes() + int_bytes(self.value),
        )

    @classmethod
    def decode(cls, text: str) -> SecretCommitment:
        reader = ByteReader(decode_element(text, ElementType.COMMITMENT))
        public_key = CLPublicKey.read(reader)
        value = reader.integer()
        reader.finish()
        return cls(public_key, value)

    def statement(self) -> ExponentStatement:
        key = self.public_key
        return ExponentStatement(key.n, self.value, [
            ("secret", key.base(SECRET_SLOT)),
            ("blinding", key.S),
        ])

    def bounds(self) -> Dict[str, int]:
        return {"blinding": blinding_bits(self.public_key.modulus_bits)}


@dataclass(frozen=True)
class BlindingFactor:
    """
    Holder-side secret of a request: v' and the commitment it opens.

    Keeping the commitment next to v' lets ``unblind`` detect a blinding
    factor used against the wrong issuer output.
    """

    blinding: int
    commitment: int

    def encode(self) -> str:
        return encode_element(
            ElementType.BLINDING,
            int_bytes(self.blinding) + int_bytes(self.commitment),
        )

    @classmethod
    def decode(cls, text: str) -> BlindingFactor:
        reader = ByteReader(decode_element(text, ElementType.BLINDING))
        blinding, commitment = reader.integer(), reader.integer()
        reader.finish()
        return cls(blinding=blinding, commitment=commitment)


@dataclass(frozen=True)
class BlindProofValue:
    """Issuer output before unblinding:  (U, A, e, v'')."""

    commitment: int
    signature: CLSignature

    def encode(self) -> str:
        return encode_element(
            ElementType.BLIND_PROOF_VALUE,
            int_bytes(self.commitment) + self.signature.to_bytes(),
        )

    @classmethod
    def decode(cls, text: str) -> BlindProofValue:
        reader = ByteReader(decode_element(text, ElementType.BLIND_PROOF_VALUE))
        commitment = reader.integer()
        signature = CLSignature.read(reader)
        reader.finish()
        return cls(commitment, signature)


# ── protocol steps ──────────────────────────────────────────────────────

def request_blind_sign(
    secret: bytes,
    public_key: str,
    challenge: Optional[str] = None,
    skip_pok: bool = False,
    rng=None,
) -> Tuple[BlindSignRequest, str]:
    """
    Holder step 1: commit to *secret* under the issuer's *public_key*.

    Returns the request and the encoded blinding factor (keep it; never
    send it to the issuer).
    """
    rng = rng or get_seeded_rng()
    key = CLPublicKey.decode(public_key)
    s = hash_secret(secret).value
    v_prime = rng.getrandbits(blinding_bits(key.modulus_bits))
    n = key.n
    U = pow(key.base(SECRET_SLOT), s, n) * pow(key.S, v_prime, n) % n
    commitment = SecretCommitment(key, U)

    pok: Optional[str] = None
    if not skip_pok:
        proof = SigmaProof.prove(
            [commitment.statement()],
            {"secret": s, "blinding": v_prime},
            context=[_POK_DOMAIN, challenge],
            rng=rng,
            bounds=commitment.bounds(),
        )
        pok = encode_element(
            ElementType.PROOF_OF_KNOWLEDGE, proof.to_bytes(_POK_KEYS),
        )
    logger.debug("created blind-sign request (pok=%s)", pok is not None)

    request = BlindSignRequest(
        commitment=commitment.encode(),
        proof_of_knowledge=pok,
        challenge=challenge,
    )
    return request, BlindingFactor(blinding=v_prime, commitment=U).encode()


def verify_blind_sign_request(
    commitment: str,
    proof_of_knowledge: Optional[str],
    challenge: Optional[str] = None,
    config: Optional[ProofConfig] = None,
) -> VerifyResult:
    """
    Issuer step 2: check the request's PoK against *challenge*.

    A malformed commitment raises ``EncodingError``; every other problem
    is reported through the result.
    """
    config = config or DEFAULT_CONFIG
    decoded = SecretCommitment.decode(commitment)
    try:
        _check_request(decoded, proof_of_knowledge, challenge, config)
    except VerificationFailure as failure:
        logger.warning("blind-sign request rejected: %s", failure.detail)
        return VerifyResult.failed(failure)
    return VerifyResult.ok()


def _check_request(
    commitment: SecretCommitment,
    proof_of_knowledge: Optional[str],
    challenge: Optional[str],
    config: ProofConfig,
) -> None:
    if proof_of_knowledge is None:
        if config.require_blind_sign_pok:
            raise VerificationFailure(
                FailureReason.MISSING_PROOF_OF_KNOWLEDGE,
                "request carries no proof of knowledge",
            )
        logger.warning("accepting blind-sign request without PoK by policy")
        return
    try:
        proof = SigmaProof.from_bytes(
            decode_element(proof_of_knowledge, ElementType.PROOF_OF_KNOWLEDGE),
            _POK_KEYS,
        )
    except EncodingError as exc:
        raise VerificationFailure(
            FailureReason.MALFORMED_PROOF, f"undecodable PoK: {exc}",
        ) from exc
    if not proof.verify(
        [commitment.statement()], [_POK_DOMAIN, challenge], commitment.bounds(),
    ):
        raise VerificationFailure(
            FailureReason.INVALID_PROOF_OF_KNOWLEDGE,
            "proof of knowledge does not verify for this commitment "
            "and challenge",
        )


def blind_sign(
    commitment: str,
    document: str,
    proof_options: str,
    key_graph: str,
    rng=None,
    config: Optional[ProofConfig] = None,
) -> str:
    """
    Issuer step 3: sign *document* around the unopened commitment.

    Raises ``CryptoError`` when the commitment was formed under another
    issuer key or is not a unit of this key's modulus.
    """
    config = config or DEFAULT_CONFIG
    decoded = SecretCommitment.decode(commitment)
    statements = parse_document(document, config.max_statements)
    if not statements:
        raise EncodingError("document has no statements")
    options = parse_options(proof_options, config)
    secret_key = resolve_secret_key(parse_document(key_graph), options)
    if decoded.public_key != secret_key.public:
        raise CryptoError("commitment was formed under a different issuer key")
    if not is_unit(decoded.value, secret_key.n) or decoded.value == 1:
        raise CryptoError("blind-sign commitment is degenerate")

    signature = cl_sign(
        secret_key,
        document_messages(statements, options, secret=None),
        rng,
        commitment=decoded.value,
    )
    logger.debug("blind-signed document with %d statements", len(statements))
    return BlindProofValue(decoded.value, signature).encode()


def unblind(document: str, proof: str, blinding: str) -> str:
    """
    Holder step 4: turn the issuer's blind proof into a standard one.

    *proof* is either the blind proof value itself or a proof graph that
    carries it.  Raises ``CryptoError`` when *blinding* belongs to a
    different commitment than the one the issuer signed around.
    """
    if not parse_document(document):
        raise EncodingError("document has no statements")
    value = proof.strip()
    if not value or any(ch.isspace() for ch in value):
        _, value = split_proof(parse_document(proof))
        if value is None:
            raise EncodingError("proof carries no sec:proofValue")
    blind = BlindProofValue.decode(value)
    factor = BlindingFactor.decode(blinding)
    if factor.commitment != blind.commitment:
        raise CryptoError(
            "blinding factor does not match the commitment in the proof"
        )
    signature = blind.signature
    return ProofValue(
        CLSignature(signature.A, signature.e, signature.v + factor.blinding),
    ).encode()


# ── state machine ───────────────────────────────────────────────────────

@dataclass(frozen=True)
class Init:
    pass


@dataclass(frozen=True)
class RequestCreated:
    request: BlindSignRequest
    blinding: str


@dataclass(frozen=True)
class RequestVerified:
    request: BlindSignRequest
    blinding: str


@dataclass(frozen=True)
class BlindSigned:
    document: str
    proof_options: str
    blind_proof_value: str
    blinding: str


@dataclass(frozen=True)
class Unblinded:
    signed: SignedDocument


@dataclass(frozen=True)
class Aborted:
    reason: str


BlindSignState = Union[
    Init, RequestCreated, RequestVerified, BlindSigned, Unblinded, Aborted,
]


class BlindSigningSession:
    """
    One blind-signing handshake as an explicit state machine.

    ``Init → RequestCreated → RequestVerified → BlindSigned → Unblinded``

    A rejected request moves the session to ``Aborted``; nothing from it
    can be signed afterwards.

    Usage
    -----
    ::

        session = BlindSigningSession()
        session.request(b"holder secret", issuer_public_key, challenge="nonce-123")
        if session.verify_request("nonce-123"):
            session.sign(document, proof_options, issuer_key_graph)
            signed = session.unblind()
    """

    def __init__(self) -> None:
        self._state: BlindSignState = Init()

    @property
    def state(self) -> BlindSignState:
        return self._state

    def _expect(self, *kinds: type) -> BlindSignState:
        if not isinstance(self._state, kinds):
            names = " or ".join(k.__name__ for k in kinds)
            raise ProtocolError(
                f"step requires state {names}, "
                f"session is {type(self._state).__name__}"
            )
        return self._state

    def request(
        self,
        secret: bytes,
        public_key: str,
        challenge: Optional[str] = None,
        skip_pok: bool = False,
        rng=None,
    ) -> BlindSignRequest:
        self._expect(Init)
        request, blinding = request_blind_sign(
            secret, public_key, challenge, skip_pok, rng,
        )
        self._state = RequestCreated(request, blinding)
        return request

    def verify_request(
        self,
        challenge: Optional[str] = None,
        config: Optional[ProofConfig] = None,
    ) -> VerifyResult:
        state = self._expect(RequestCreated)
        result = verify_blind_sign_request(
            state.request.commitment,
            state.request.proof_of_knowledge,
            challenge,
            config,
        )
        if result.verified:
            self._state = RequestVerified(state.request, state.blinding)
        else:
            self._state = Aborted(result.error or "request rejected")
        return result

    def sign(
        self,
        document: str,
        proof_options: str,
        key_graph: str,
        rng=None,
        config: Optional[ProofConfig] = None,
    ) -> str:
        state = self._expect(RequestVerified)
        blind_value = blind_sign(
            state.request.commitment, document, proof_options, key_graph,
            rng, config,
        )
        self._state = BlindSigned(
            document, proof_options, blind_value, state.blinding,
        )
        return blind_value

    def unblind(self) -> SignedDocument:
        state = self._expect(BlindSigned)
        proof_value = unblind(
            state.document, state.blind_proof_value, state.blinding,
        )
        signed = SignedDocument(
            document=state.document,
            proof_value=proof_value,
            proof_options=state.proof_options,
        )
        self._state = Unblinded(signed)
        return signed
