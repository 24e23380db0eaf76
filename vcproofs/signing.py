"""
Standard signing of RDF documents.

A document with statements  st_0 … st_{L-1}  and optional holder secret
s  is signed as one Camenisch-Lysyanskaya message vector:

    m_0          = H_secret(s)   (or 0 when the credential is not holder-bound)
    m_1          = H_options(proof options)
    m_{2+4k}     = encode(subject of st_k)
    m_{3+4k}     = encode(predicate of st_k)
    m_{4+4k}     = encode(object of st_k)
    m_{5+4k}     = H_term(object of st_k)

``encode`` maps numeric literals to their value so predicates can range
over them; the extra  H_term  slot pins the object's exact lexical form
and datatype, which the numeric value alone does not.

The proof value carries the signature  (A, e, v).  A verifier rebuilds
the messages from the document and checks the CL equation under the
issuer key named by the proof options' ``verificationMethod``.  Because
the signature is on the messages themselves, a holder can later prove
statements about a *hidden* subset of them after re-randomising
(A, e, v).

Key material is resolved from a key graph:

    <vm> <https://w3id.org/security#secretKeyMultibase> "u…" .
    <vm> <https://w3id.org/security#publicKeyMultibase> "u…" .
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Dict, List, Optional, Tuple

from .clsig import (
    CLPublicKey,
    CLSecretKey,
    CLSignature,
    cl_sign,
    cl_verify,
)
from .commitment import SECRET_SLOT
from .config import DEFAULT_CONFIG, ProofConfig
from .curve import Scalar
from .encoding import (
    ByteReader,
    ElementType,
    decode_element,
    encode_element,
)
from .errors import (
    CryptoError,
    EncodingError,
    FailureReason,
    VerificationFailure,
    VerifyResult,
)
from .hash import hash_proof_options, hash_secret, hash_term
from .rdf import (
    SEC_MULTIBASE,
    SEC_PROOF_VALUE,
    SEC_PUBLIC_KEY_MULTIBASE,
    SEC_SECRET_KEY_MULTIBASE,
    Statement,
    key_material,
    literal,
    parse_document,
    serialize,
    split_proof,
    term_to_scalar,
    verification_method,
)

logger = logging.getLogger(__name__)

OPTIONS_SLOT = 1
FIRST_STATEMENT_SLOT = 2
SLOTS_PER_STATEMENT = 4


# ── proof value ─────────────────────────────────────────────────────────

@dataclass(frozen=True)
class ProofValue:
    """The issuer's signature (A, e, v) on the document messages."""

    signature: CLSignature

    def encode(self) -> str:
        return encode_element(ElementType.PROOF_VALUE, self.signature.to_bytes())

    @classmethod
    def decode(cls, text: str) -> ProofValue:
        reader = ByteReader(decode_element(text, ElementType.PROOF_VALUE))
        signature = CLSignature.read(reader)
        reader.finish()
        return cls(signature=signature)


# ── shared document helpers ─────────────────────────────────────────────

def statement_slots(index: int) -> Tuple[int, int, int, int]:
    """Message slots of statement *index*: subject, predicate, object, exact object."""
    first = FIRST_STATEMENT_SLOT + SLOTS_PER_STATEMENT * index
    return (first, first + 1, first + 2, first + 3)


def statement_messages(st: Statement) -> Tuple[int, int, int, int]:
    return (
        term_to_scalar(st.subject).value,
        term_to_scalar(st.predicate).value,
        term_to_scalar(st.object).value,
        hash_term(st.object).value,
    )


def options_message(options: List[Statement]) -> int:
    return Scalar.from_bytes_reduce(
        hash_proof_options(str(st) for st in options)
    ).value


def document_messages(
    statements: List[Statement],
    options: List[Statement],
    secret: Optional[int] = 0,
) -> Dict[int, int]:
    """
    Slot → message for a whole document.

    ``secret=None`` leaves slot 0 out, for signing around a holder
    commitment that already carries it.
    """
    messages: Dict[int, int] = {}
    if secret is not None:
        messages[SECRET_SLOT] = secret
    messages[OPTIONS_SLOT] = options_message(options)
    for k, st in enumerate(statements):
        messages.update(zip(statement_slots(k), statement_messages(st)))
    return messages


def resolve_public_key(
    key_graph: List[Statement], options: List[Statement],
) -> CLPublicKey:
    """Issuer public key named by the options' verification method."""
    method = verification_method(options)
    encoded = key_material(key_graph, method, SEC_PUBLIC_KEY_MULTIBASE)
    if encoded is None:
        raise VerificationFailure(
            FailureReason.UNKNOWN_VERIFICATION_METHOD,
            f"no public key for {method} in key graph",
        )
    return CLPublicKey.decode(encoded)


def resolve_secret_key(
    key_graph: List[Statement], options: List[Statement],
) -> CLSecretKey:
    method = verification_method(options)
    encoded = key_material(key_graph, method, SEC_SECRET_KEY_MULTIBASE)
    if encoded is None:
        raise EncodingError(f"no secret key for {method} in key graph")
    secret_key = CLSecretKey.decode(encoded)
    published = key_material(key_graph, method, SEC_PUBLIC_KEY_MULTIBASE)
    if published is not None:
        if CLPublicKey.decode(published) != secret_key.public:
            raise CryptoError(
                f"secret and public key for {method} do not match"
            )
    return secret_key


def parse_options(proof_options: str, config: ProofConfig) -> List[Statement]:
    options, value = split_proof(
        parse_document(proof_options, config.max_statements)
    )
    if value is not None:
        raise EncodingError("proof options already carry a proofValue")
    if not options:
        raise EncodingError("proof options are empty")
    return options


def attach_proof_value(proof_options: str, proof_value: str) -> str:
    """Proof graph = options plus one ``sec:proofValue`` statement."""
    options = parse_document(proof_options)
    subject = options[0].subject if options else "_:b0"
    return serialize(
        [st for st in options if st.predicate != SEC_PROOF_VALUE]
        + [Statement(subject, SEC_PROOF_VALUE, literal(proof_value, SEC_MULTIBASE))]
    )


@dataclass
class SignedCredential:
    """A parsed document together with its decoded signature."""

    statements: List[Statement]
    options: List[Statement]
    signature: CLSignature
    public_key: CLPublicKey

    def messages(self, secret: int) -> Dict[int, int]:
        return document_messages(self.statements, self.options, secret)

    def verifies(self, secret: int) -> bool:
        return cl_verify(self.public_key, self.messages(secret), self.signature)


def load_credential(
    document: str,
    proof: str,
    key_graph: List[Statement],
    config: ProofConfig,
) -> SignedCredential:
    """
    Parse a signed document.

    Structural problems raise ``EncodingError``; a missing or
    undecodable proof value and an unknown verification method raise
    ``VerificationFailure``, because they are failed checks.
    """
    statements = parse_document(document, config.max_statements)
    if not statements:
        raise EncodingError("document has no statements")
    options, value = split_proof(parse_document(proof, config.max_statements))
    if value is None:
        raise VerificationFailure(
            FailureReason.MALFORMED_PROOF, "proof carries no sec:proofValue",
        )
    public_key = resolve_public_key(key_graph, options)
    try:
        proof_value = ProofValue.decode(value)
    except EncodingError as exc:
        raise VerificationFailure(
            FailureReason.MALFORMED_PROOF, f"undecodable proof value: {exc}",
        ) from exc
    return SignedCredential(
        statements, options, proof_value.signature, public_key,
    )


# ── public API ──────────────────────────────────────────────────────────

def sign(
    document: str,
    proof_options: str,
    key_graph: str,
    secret: Optional[bytes] = None,
    rng=None,
    config: Optional[ProofConfig] = None,
) -> str:
    """
    Sign *document* under the issuer key named in *proof_options*.

    Parameters
    ----------
    document : str
        Canonical N-Triples.
    proof_options : str
        Proof graph without ``sec:proofValue``.
    key_graph : str
        Statements holding the issuer's ``secretKeyMultibase``.
    secret : bytes or None
        Holder secret to bind the credential to; verify the result with
        ``blind_verify``.

    Returns the multibase proof value.
    """
    config = config or DEFAULT_CONFIG
    statements = parse_document(document, config.max_statements)
    if not statements:
        raise EncodingError("document has no statements")
    options = parse_options(proof_options, config)
    secret_key = resolve_secret_key(parse_document(key_graph), options)

    s = hash_secret(secret).value if secret is not None else 0
    signature = cl_sign(
        secret_key, document_messages(statements, options, s), rng,
    )
    logger.debug(
        "signed document with %d statements (holder-bound=%s)",
        len(statements), secret is not None,
    )
    return ProofValue(signature=signature).encode()


def verify(
    document: str,
    proof: str,
    key_graph: str,
    config: Optional[ProofConfig] = None,
) -> VerifyResult:
    """
    Verify a proof graph (options + ``sec:proofValue``) over *document*.

    Never raises on a failed check.  Malformed document, proof graph or
    key graph syntax raises ``EncodingError``.
    """
    return _verify_with_secret(document, proof, key_graph, 0, config)


def blind_verify(
    secret: bytes,
    document: str,
    proof: str,
    key_graph: str,
    config: Optional[ProofConfig] = None,
) -> VerifyResult:
    """Verify a credential bound to the holder *secret*."""
    return _verify_with_secret(
        document, proof, key_graph, hash_secret(secret).value, config,
    )


def _verify_with_secret(
    document: str,
    proof: str,
    key_graph: str,
    secret: int,
    config: Optional[ProofConfig],
) -> VerifyResult:
    config = config or DEFAULT_CONFIG
    keys = parse_document(key_graph)
    try:
        credential = load_credential(document, proof, keys, config)
        if not credential.verifies(secret):
            raise VerificationFailure(
                FailureReason.INVALID_SIGNATURE,
                "signature does not verify over document",
            )
    except VerificationFailure as failure:
        logger.warning("signature verification failed: %s", failure.detail)
        return VerifyResult.failed(failure)
    return VerifyResult.ok()


@dataclass(frozen=True)
class SignedDocument:
    """A document, its proof options and the proof value over both."""

    document: str
    proof_value: str
    proof_options: str

    @property
    def proof(self) -> str:
        return attach_proof_value(self.proof_options, self.proof_value)
