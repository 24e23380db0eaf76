"""
Selective disclosure: deriving and verifying verifiable presentations.

A holder with signed credentials reveals a subset of their statements.
Hidden terms are replaced by blank-node placeholders (the deanonymization
map, kept by the holder, says which original term each placeholder
stands for) and whole statements may be dropped.  The presentation then
proves, in one aggregate sigma proof, that

* the holder knows a CL signature from each credential's issuer on the
  disclosed terms plus *some* values at every hidden position;
* a placeholder used in several places (or several credentials) stands
  for the same value everywhere;
* a credential bound to a holder secret is held by the owner of that
  secret, and the optional PPID, blind-sign commitment and escrowed uid
  are all derived from that same secret;
* every predicate commitment  V_p  commits to its circuit's relation
  evaluated on the hidden values, with a range proof on V_p.

Per credential  j  the holder re-randomises the issuer signature to
(A'_j, e_j, v_j) and shows only A'_j.  With  ê = e − 2^(ℓ_e−1)  the
statement proven in QR_n is

    Z / (A'^(2^(ℓ_e−1)) · Π_{disclosed i} R_i^{m_i})
        =  A'^ê · S^v · Π_{hidden i} R_i^{w_i}  [· R_0^s]

so nothing the issuer saw at signing time reappears in the
presentation, and two presentations of one credential are unlinkable
through the signature.

Witness keys are shared across statements: a placeholder label keys the
same witness in every credential and predicate that uses it, ``secret``
keys the holder secret everywhere.  Responses are integers, so one
witness can appear both in QR_n statements and in secp256k1 statements
(predicates, PPID, escrow).

The prover and the verifier build the statement list with the same
function (``build_statements``); the verifier only differs in where it
learns which terms are hidden (the response map of the proof).
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field, replace
from typing import (
    Any, Callable, Dict, List, Mapping, NamedTuple, Optional, Sequence, Set,
    Tuple, Union,
)

from .blind import BlindSignRequest, BlindingFactor, SecretCommitment
from .circuit import Circuit, RangeProof
from .clsig import (
    E_OFFSET,
    E_RANGE_BITS,
    CLPublicKey,
    is_unit,
    randomize,
    randomized_v_bits,
)
from .commitment import SECRET_SLOT, message_generator
from .config import DEFAULT_CONFIG, ProofConfig
from .curve import Scalar, Point, G
from .elgamal import ElGamalCiphertext, encrypt_point, uid_point
from .encoding import (
    ElementType,
    decode_integer,
    decode_point,
    encode_integer,
    encode_point,
)
from .errors import (
    CryptoError,
    EncodingError,
    FailureReason,
    ProtocolError,
    VerificationFailure,
    VerifyResult,
)
from .hash import hash_ppid_label, hash_predicate_context, hash_secret, hash_term
from .proofs import (
    ExponentStatement,
    LinearStatement,
    SigmaProof,
    Statement as ProofStatement,
)
from .rdf import (
    Statement,
    is_blank_node,
    numeric_value,
    parse_document,
    serialize,
    split_proof,
    term_to_scalar,
)
from .signing import (
    OPTIONS_SLOT,
    load_credential,
    options_message,
    resolve_public_key,
    statement_slots,
)

logger = logging.getLogger(__name__)

_CONTEXT_DOMAIN = "vcproofs/presentation"


# ── request records ─────────────────────────────────────────────────────

def _field(data: Mapping[str, Any], key: str, kind: type, required: bool = True):
    if key not in data or data[key] is None:
        if required:
            raise EncodingError(f"missing field {key!r}")
        return None
    value = data[key]
    if not isinstance(value, kind) or (kind is int and isinstance(value, bool)):
        raise EncodingError(f"field {key!r} must be {kind.__name__}")
    return value


def _pairs(raw: Any, key: str) -> Tuple[Tuple[str, str], ...]:
    if not isinstance(raw, list):
        raise EncodingError(f"field {key!r} must be a list of pairs")
    out = []
    for item in raw:
        if (not isinstance(item, (list, tuple)) or len(item) != 2
                or not all(isinstance(x, str) for x in item)):
            raise EncodingError(f"field {key!r} must hold [name, term] pairs")
        out.append((item[0], item[1]))
    return tuple(out)


@dataclass(frozen=True)
class VcPair:
    """A signed credential and the partial view of it to disclose."""

    original_document: str
    original_proof: str
    disclosed_document: str
    disclosed_proof: str

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> VcPair:
        return cls(
            original_document=_field(data, "originalDocument", str),
            original_proof=_field(data, "originalProof", str),
            disclosed_document=_field(data, "disclosedDocument", str),
            disclosed_proof=_field(data, "disclosedProof", str),
        )


@dataclass(frozen=True)
class Predicate:
    """
    A circuit applied to hidden and public values.

    ``private_inputs`` maps circuit input names to placeholder labels of
    hidden terms; ``public_inputs`` maps names to literal terms the
    verifier sees.
    """

    circuit_id: str
    private_inputs: Tuple[Tuple[str, str], ...]
    public_inputs: Tuple[Tuple[str, str], ...] = ()

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> Predicate:
        return cls(
            circuit_id=_field(data, "circuitId", str),
            private_inputs=_pairs(data.get("private", []), "private"),
            public_inputs=_pairs(data.get("public", []), "public"),
        )


def _normalize_label(label: str) -> str:
    return label if is_blank_node(label) else f"_:{label}"


@dataclass(frozen=True)
class DeriveProofRequest:
    """
    Everything ``derive_proof`` needs.

    Defaults: no challenge or domain binding, no holder secret, no
    blind-sign commitment, no PPID, no predicates, no escrowed uid.
    """

    vc_pairs: Tuple[VcPair, ...]
    deanon_map: Mapping[str, str]
    key_graph: str
    challenge: Optional[str] = None
    domain: Optional[str] = None
    secret: Optional[bytes] = None
    # what ``request_blind_sign`` returned: (request, encoded blinding)
    blind_sign_request: Optional[Tuple[BlindSignRequest, str]] = None
    with_ppid: bool = False
    predicates: Tuple[Predicate, ...] = ()
    circuits: Mapping[str, Circuit] = field(default_factory=dict)
    opener_public_key: Optional[str] = None

    def __post_init__(self) -> None:
        object.__setattr__(self, "vc_pairs", tuple(self.vc_pairs))
        object.__setattr__(self, "predicates", tuple(self.predicates))
        object.__setattr__(self, "deanon_map", {
            _normalize_label(k): v for k, v in self.deanon_map.items()
        })

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> DeriveProofRequest:
        pairs = _field(data, "vcPairs", list)
        deanon = _field(data, "deanonMap", dict)
        if not all(isinstance(k, str) and isinstance(v, str)
                   for k, v in deanon.items()):
            raise EncodingError("deanonMap must map labels to terms")

        secret = data.get("secret")
        if isinstance(secret, str):
            secret = secret.encode("utf-8")
        elif isinstance(secret, list):
            secret = bytes(secret)
        elif secret is not None and not isinstance(secret, bytes):
            raise EncodingError("secret must be bytes or a string")

        blind_request = None
        raw_blind = _field(data, "blindSignRequest", dict, required=False)
        if raw_blind is not None:
            blind_request = (
                BlindSignRequest(
                    commitment=_field(raw_blind, "commitment", str),
                    proof_of_knowledge=_field(
                        raw_blind, "pokForCommitment", str, required=False,
                    ),
                ),
                _field(raw_blind, "blinding", str),
            )

        circuits: Dict[str, Circuit] = {}
        for circuit_id, raw in (_field(data, "circuits", dict, required=False) or {}).items():
            key = raw if isinstance(raw, str) else _field(raw, "provingKey", str)
            circuits[circuit_id] = Circuit.from_proving_key(key)

        return cls(
            vc_pairs=tuple(VcPair.from_dict(p) for p in pairs),
            deanon_map=deanon,
            key_graph=_field(data, "keyGraph", str),
            challenge=_field(data, "challenge", str, required=False),
            domain=_field(data, "domain", str, required=False),
            secret=secret,
            blind_sign_request=blind_request,
            with_ppid=bool(data.get("withPpid", False)),
            predicates=tuple(
                Predicate.from_dict(p)
                for p in (_field(data, "predicates", list, required=False) or [])
            ),
            circuits=circuits,
            opener_public_key=_field(data, "openerPubKey", str, required=False),
        )


@dataclass(frozen=True)
class VerifyProofRequest:
    """A presentation and the verifier's expectations about it."""

    vp: str
    key_graph: str
    challenge: Optional[str] = None
    domain: Optional[str] = None
    snark_verifying_keys: Mapping[str, str] = field(default_factory=dict)
    opener_public_key: Optional[str] = None

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> VerifyProofRequest:
        keys = _field(data, "snarkVerifyingKeys", dict, required=False) or {}
        return cls(
            vp=_field(data, "vp", str),
            key_graph=_field(data, "keyGraph", str),
            challenge=_field(data, "challenge", str, required=False),
            domain=_field(data, "domain", str, required=False),
            snark_verifying_keys=dict(keys),
            opener_public_key=_field(data, "openerPubKey", str, required=False),
        )


# ── presentation record ─────────────────────────────────────────────────

@dataclass(frozen=True)
class DisclosedCredential:
    """One credential as shown: the disclosed view and the randomised A'."""

    document: str
    proof_options: str
    statement_count: int
    statement_indices: Tuple[int, ...]
    bound: bool
    signature: str

    def to_dict(self) -> Dict[str, Any]:
        return {
            "document": self.document,
            "proof": self.proof_options,
            "statementCount": self.statement_count,
            "statementIndices": list(self.statement_indices),
            "bound": self.bound,
            "signature": self.signature,
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> DisclosedCredential:
        indices = _field(data, "statementIndices", list)
        if not all(isinstance(i, int) and not isinstance(i, bool) for i in indices):
            raise EncodingError("statementIndices must be integers")
        return cls(
            document=_field(data, "document", str),
            proof_options=_field(data, "proof", str),
            statement_count=_field(data, "statementCount", int),
            statement_indices=tuple(indices),
            bound=_field(data, "bound", bool),
            signature=_field(data, "signature", str),
        )


@dataclass(frozen=True)
class PredicateProof:
    circuit_id: str
    private_inputs: Tuple[Tuple[str, str], ...]
    public_inputs: Tuple[Tuple[str, str], ...]
    commitment: str
    proof: str

    def to_dict(self) -> Dict[str, Any]:
        return {
            "circuitId": self.circuit_id,
            "private": [list(p) for p in self.private_inputs],
            "public": [list(p) for p in self.public_inputs],
            "commitment": self.commitment,
            "proof": self.proof,
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> PredicateProof:
        return cls(
            circuit_id=_field(data, "circuitId", str),
            private_inputs=_pairs(data.get("private", []), "private"),
            public_inputs=_pairs(data.get("public", []), "public"),
            commitment=_field(data, "commitment", str),
            proof=_field(data, "proof", str),
        )


@dataclass(frozen=True)
class VerifiablePresentation:
    """
    Wire form of a presentation.

    Cryptographic elements stay encoded here; they are decoded while
    verifying, where a bad encoding is a failed check.
    """

    credentials: Tuple[DisclosedCredential, ...]
    proof_challenge: str
    responses: Mapping[str, str]
    predicates: Tuple[PredicateProof, ...] = ()
    challenge: Optional[str] = None
    domain: Optional[str] = None
    ppid: Optional[str] = None
    blind_sign_commitment: Optional[str] = None
    encrypted_uid: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        out: Dict[str, Any] = {
            "credentials": [c.to_dict() for c in self.credentials],
            "predicates": [p.to_dict() for p in self.predicates],
            "proof": {
                "challenge": self.proof_challenge,
                "responses": dict(self.responses),
            },
        }
        optional = {
            "challenge": self.challenge,
            "domain": self.domain,
            "ppid": self.ppid,
            "blindSignRequestCommitment": self.blind_sign_commitment,
            "encryptedUid": self.encrypted_uid,
        }
        out.update({k: v for k, v in optional.items() if v is not None})
        return out

    def to_json(self) -> str:
        return json.dumps(self.to_dict(), sort_keys=True, separators=(",", ":"))

    @classmethod
    def from_json(cls, text: str) -> VerifiablePresentation:
        """Parse a presentation; ``EncodingError`` on malformed JSON."""
        try:
            data = json.loads(text)
        except (TypeError, ValueError) as exc:
            raise EncodingError(f"presentation is not valid JSON: {exc}") from exc
        if not isinstance(data, dict):
            raise EncodingError("presentation must be a JSON object")
        proof = _field(data, "proof", dict)
        responses = _field(proof, "responses", dict)
        if not all(isinstance(v, str) for v in responses.values()):
            raise EncodingError("proof responses must be encoded integers")
        credentials = _field(data, "credentials", list)
        if not credentials:
            raise EncodingError("presentation carries no credentials")
        return cls(
            credentials=tuple(DisclosedCredential.from_dict(c) for c in credentials),
            proof_challenge=_field(proof, "challenge", str),
            responses=responses,
            predicates=tuple(
                PredicateProof.from_dict(p)
                for p in (_field(data, "predicates", list, required=False) or [])
            ),
            challenge=_field(data, "challenge", str, required=False),
            domain=_field(data, "domain", str, required=False),
            ppid=_field(data, "ppid", str, required=False),
            blind_sign_commitment=_field(
                data, "blindSignRequestCommitment", str, required=False,
            ),
            encrypted_uid=_field(data, "encryptedUid", str, required=False),
        )


# ── statement construction (shared by prover and verifier) ──────────────

class CredentialView(NamedTuple):
    public_key: CLPublicKey
    signature: int
    statements: List[Statement]
    options: List[Statement]
    indices: Tuple[int, ...]
    count: int
    bound: bool


class PredicateView(NamedTuple):
    circuit: Circuit
    private_inputs: Tuple[Tuple[str, str], ...]
    public_total: int
    commitment: Point


def form_key(label: str) -> str:
    """Witness key of the exact-term message behind a hidden object."""
    return f"{label}/form"


def credential_statement(
    j: int, view: CredentialView, is_hidden: Callable[[str], bool],
) -> ExponentStatement:
    key = view.public_key
    n = key.n
    statement = ExponentStatement(n, 1, [
        (f"e:{j}", view.signature),
        (f"v:{j}", key.S),
    ])
    if view.bound:
        statement.add("secret", key.base(SECRET_SLOT))
    disclosed: Dict[int, int] = {OPTIONS_SLOT: options_message(view.options)}
    for st, idx in zip(view.statements, view.indices):
        slots = statement_slots(idx)
        for slot, term in zip(slots, st.terms()):
            if is_hidden(term):
                statement.add(term, key.base(slot))
            else:
                disclosed[slot] = term_to_scalar(term).value
        if is_hidden(st.object):
            statement.add(form_key(st.object), key.base(slots[3]))
        else:
            disclosed[slots[3]] = hash_term(st.object).value
    shown = set(view.indices)
    for idx in range(view.count):
        if idx not in shown:
            for slot in statement_slots(idx):
                statement.add(f"m:{j}:{slot}", key.base(slot))
    known = pow(view.signature, E_OFFSET, n) * key.represent(disclosed) % n
    statement.target = key.Z * pow(known, -1, n) % n
    return statement


def predicate_statement(p: int, view: PredicateView) -> LinearStatement:
    """V_p − public·G_c  =  Σ coeff·w·G_c + t_p·H_c."""
    gc, hc = view.circuit.generators
    relation = view.circuit.relation
    statement = LinearStatement(
        view.commitment - Scalar(view.public_total) * gc,
    )
    for name, label in view.private_inputs:
        statement.add(label, Scalar(relation.coefficient(name)) * gc)
    return statement.add(f"t:{p}", hc)


def ppid_base(domain: str) -> Point:
    return Point.nums(hash_ppid_label(domain))


def build_statements(
    credentials: Sequence[CredentialView],
    is_hidden: Callable[[str], bool],
    predicates: Sequence[PredicateView] = (),
    ppid: Optional[Point] = None,
    domain: Optional[str] = None,
    blind_commitment: Optional[SecretCommitment] = None,
    ciphertext: Optional[ElGamalCiphertext] = None,
    opener_key: Optional[Point] = None,
) -> List[ProofStatement]:
    statements: List[ProofStatement] = [
        credential_statement(j, view, is_hidden)
        for j, view in enumerate(credentials)
    ]
    statements.extend(
        predicate_statement(p, view) for p, view in enumerate(predicates)
    )
    if ppid is not None:
        statements.append(LinearStatement(ppid, [("secret", ppid_base(domain))]))
    if blind_commitment is not None:
        statements.append(blind_commitment.statement())
    if ciphertext is not None:
        statements.append(LinearStatement(ciphertext.e1, [("rho", G)]))
        statements.append(LinearStatement(ciphertext.e2, [
            ("secret", message_generator(SECRET_SLOT)),
            ("rho", opener_key),
        ]))
    return statements


def witness_bounds(
    credentials: Sequence[CredentialView],
    blind_commitment: Optional[SecretCommitment] = None,
) -> Dict[str, int]:
    """Bit bounds of the witnesses that are not message-sized."""
    bounds: Dict[str, int] = {}
    for j, view in enumerate(credentials):
        bounds[f"e:{j}"] = E_RANGE_BITS
        bounds[f"v:{j}"] = randomized_v_bits(view.public_key.modulus_bits)
    if blind_commitment is not None:
        bounds.update(blind_commitment.bounds())
    return bounds


def hidden_terms(
    credentials: Sequence[CredentialView], is_hidden: Callable[[str], bool],
) -> Set[str]:
    """Placeholder labels that occur in some disclosed document."""
    return {
        term
        for view in credentials
        for st in view.statements
        for term in st.terms()
        if is_hidden(term)
    }


def presentation_context(vp: VerifiablePresentation) -> List[Any]:
    """Everything in the presentation except the aggregate proof itself."""
    return [
        _CONTEXT_DOMAIN,
        vp.challenge,
        vp.domain,
        [
            [c.document, c.proof_options, c.statement_count,
             list(c.statement_indices), c.bound, c.signature]
            for c in vp.credentials
        ],
        [
            [p.circuit_id, [list(x) for x in p.private_inputs],
             [list(x) for x in p.public_inputs], p.commitment, p.proof]
            for p in vp.predicates
        ],
        vp.ppid,
        vp.blind_sign_commitment,
        vp.encrypted_uid,
    ]


def _public_total(circuit: Circuit, public_inputs: Sequence[Tuple[str, str]]) -> int:
    relation = circuit.relation
    total = relation.offset
    for name, term in public_inputs:
        value = numeric_value(term)
        if value is None:
            raise EncodingError(f"public input {name!r} is not a numeric literal")
        total += relation.coefficient(name) * value
    return total


def _check_inputs(circuit: Circuit, predicate_names: Sequence[str]) -> bool:
    return sorted(predicate_names) == sorted(circuit.relation.names)


# ── derive ──────────────────────────────────────────────────────────────

def _match_statements(
    j: int,
    original: List[Statement],
    disclosed: List[Statement],
    deanon: Mapping[str, str],
) -> Tuple[int, ...]:
    """Original index of every disclosed statement."""
    used: set = set()
    indices = []
    for st in disclosed:
        full = st.replace_terms(deanon)
        idx = next(
            (i for i, o in enumerate(original) if o == full and i not in used),
            None,
        )
        if idx is None:
            raise CryptoError(
                f"credential {j}: disclosed statement has no counterpart in "
                f"the original document"
            )
        used.add(idx)
        indices.append(idx)
    return tuple(indices)


def _check_request(request: DeriveProofRequest) -> None:
    if not request.vc_pairs:
        raise ProtocolError("no credentials to present")
    if request.predicates and not request.circuits:
        raise ProtocolError("predicates given without circuits")
    needs_secret = {
        "PPID": request.with_ppid,
        "uid escrow": request.opener_public_key is not None,
        "blind-sign request": request.blind_sign_request is not None,
    }
    for mode, enabled in needs_secret.items():
        if enabled and request.secret is None:
            raise ProtocolError(f"{mode} requires the holder secret")
    if request.with_ppid and request.domain is None:
        raise ProtocolError("PPID requires a domain")


class _Prover:
    """Collects statements' public views and their witnesses for one VP."""

    def __init__(self, request: DeriveProofRequest, rng, config: ProofConfig) -> None:
        self.request = request
        self.rng = rng
        self.config = config
        self.keys = parse_document(request.key_graph)
        self.deanon = dict(request.deanon_map)
        self.secret: Optional[int] = (
            hash_secret(request.secret).value
            if request.secret is not None else None
        )
        self.witnesses: Dict[str, Union[int, Scalar]] = {}
        for label, term in self.deanon.items():
            self.witnesses[label] = term_to_scalar(term).value
            self.witnesses[form_key(label)] = hash_term(term).value
        if self.secret is not None:
            self.witnesses["secret"] = self.secret
        self.views: List[CredentialView] = []
        self.records: List[DisclosedCredential] = []
        self.predicate_views: List[PredicateView] = []
        self.predicate_records: List[PredicateProof] = []

    def is_hidden(self, term: str) -> bool:
        return is_blank_node(term) and term in self.deanon

    def add_credential(self, j: int, pair: VcPair) -> None:
        config = self.config
        try:
            cred = load_credential(
                pair.original_document, pair.original_proof, self.keys, config,
            )
        except VerificationFailure as failure:
            raise CryptoError(f"credential {j}: {failure.detail}") from failure
        if self.secret is not None and cred.verifies(self.secret):
            bound, slot0 = True, self.secret
        elif cred.verifies(0):
            bound, slot0 = False, 0
        else:
            raise CryptoError(f"credential {j}: original signature does not verify")

        disclosed = parse_document(pair.disclosed_document, config.max_statements)
        disclosed_options, _ = split_proof(
            parse_document(pair.disclosed_proof, config.max_statements)
        )
        if (sorted(str(st.replace_terms(self.deanon)) for st in disclosed_options)
                != sorted(str(st) for st in cred.options)):
            raise CryptoError(
                f"credential {j}: disclosed proof options differ from the original"
            )
        indices = _match_statements(j, cred.statements, disclosed, self.deanon)

        signature = randomize(cred.public_key, cred.signature, self.rng)
        messages = cred.messages(slot0)
        self.witnesses[f"e:{j}"] = signature.e - E_OFFSET
        self.witnesses[f"v:{j}"] = signature.v
        shown = set(indices)
        for idx in range(len(cred.statements)):
            if idx not in shown:
                for slot in statement_slots(idx):
                    self.witnesses[f"m:{j}:{slot}"] = messages[slot]

        self.views.append(CredentialView(
            cred.public_key, signature.A, disclosed, cred.options, indices,
            len(cred.statements), bound,
        ))
        self.records.append(DisclosedCredential(
            document=serialize(disclosed),
            proof_options=serialize(cred.options),
            statement_count=len(cred.statements),
            statement_indices=indices,
            bound=bound,
            signature=encode_integer(ElementType.SIGNATURE, signature.A),
        ))

    def add_predicate(self, p: int, predicate: Predicate, hidden: Set[str]) -> None:
        circuit = self.request.circuits.get(predicate.circuit_id)
        if circuit is None:
            raise ProtocolError(f"no circuit for predicate {predicate.circuit_id!r}")
        names = [n for n, _ in predicate.private_inputs + predicate.public_inputs]
        if not _check_inputs(circuit, names):
            raise ProtocolError(
                f"predicate inputs {sorted(names)} do not match circuit "
                f"{circuit.circuit_id!r}"
            )
        private = tuple(
            (name, _normalize_label(label))
            for name, label in predicate.private_inputs
        )
        inputs: Dict[str, int] = {}
        for name, label in private:
            if label not in hidden:
                raise CryptoError(
                    f"predicate input {name!r} refers to {label}, which is not "
                    f"a hidden term of any presented credential"
                )
            value = numeric_value(self.deanon[label])
            if value is None:
                raise CryptoError(f"hidden term {label} is not numeric")
            inputs[name] = value
        public_total = _public_total(circuit, predicate.public_inputs)
        for name, term in predicate.public_inputs:
            inputs[name] = numeric_value(term)
        value = circuit.relation.witness(inputs)

        t = Scalar.random(self.rng)
        V = circuit.commit(value, t)
        context = hash_predicate_context(
            circuit.circuit_id, circuit.seed, V,
            self.request.challenge, self.request.domain, p,
        )
        range_proof = circuit.prove(value, t, context, self.rng)
        self.witnesses[f"t:{p}"] = t
        self.predicate_views.append(PredicateView(circuit, private, public_total, V))
        self.predicate_records.append(PredicateProof(
            circuit_id=circuit.circuit_id,
            private_inputs=private,
            public_inputs=tuple(predicate.public_inputs),
            commitment=encode_point(ElementType.COMMITMENT, V),
            proof=range_proof.encode(),
        ))

    def blind_commitment(self) -> Optional[SecretCommitment]:
        if self.request.blind_sign_request is None:
            return None
        blind_request, blinding = self.request.blind_sign_request
        commitment = SecretCommitment.decode(blind_request.commitment)
        factor = BlindingFactor.decode(blinding)
        if factor.commitment != commitment.value:
            raise CryptoError("blinding factor does not match blind-sign request")
        if not commitment.statement().holds({
            "secret": self.secret, "blinding": factor.blinding,
        }):
            raise CryptoError("blind-sign request was made for a different secret")
        self.witnesses["blinding"] = factor.blinding
        return commitment

    def escrow(self) -> Tuple[Optional[ElGamalCiphertext], Optional[Point]]:
        if self.request.opener_public_key is None:
            return None, None
        opener_key = decode_point(
            self.request.opener_public_key, ElementType.ELGAMAL_PUBLIC_KEY,
        )
        rho = Scalar.random(self.rng)
        self.witnesses["rho"] = rho
        return encrypt_point(uid_point(self.request.secret), opener_key, rho), opener_key


def derive_proof(
    request: DeriveProofRequest,
    rng=None,
    config: Optional[ProofConfig] = None,
) -> str:
    """
    Derive a presentation (JSON) from ``request``.

    Raises ``ProtocolError`` for inconsistent modes, ``EncodingError``
    for malformed inputs and ``CryptoError`` when a sub-proof cannot be
    built: an original credential that does not verify, a disclosed
    statement absent from its original, an unsatisfied predicate.
    """
    config = config or DEFAULT_CONFIG
    _check_request(request)
    prover = _Prover(request, rng, config)
    for j, pair in enumerate(request.vc_pairs):
        prover.add_credential(j, pair)

    uses_secret = (
        request.with_ppid
        or request.opener_public_key is not None
        or request.blind_sign_request is not None
    )
    if uses_secret and not any(v.bound for v in prover.views):
        raise ProtocolError(
            "PPID, uid escrow and blind-sign requests need a credential "
            "bound to the holder secret"
        )

    hidden = hidden_terms(prover.views, prover.is_hidden)
    for p, predicate in enumerate(request.predicates):
        prover.add_predicate(p, predicate, hidden)

    ppid = (
        Scalar(prover.secret) * ppid_base(request.domain)
        if request.with_ppid else None
    )
    blind_commitment = prover.blind_commitment()
    ciphertext, opener_key = prover.escrow()

    statements = build_statements(
        prover.views, prover.is_hidden, prover.predicate_views,
        ppid=ppid, domain=request.domain,
        blind_commitment=blind_commitment,
        ciphertext=ciphertext, opener_key=opener_key,
    )
    unsigned = VerifiablePresentation(
        credentials=tuple(prover.records),
        proof_challenge="",
        responses={},
        predicates=tuple(prover.predicate_records),
        challenge=request.challenge,
        domain=request.domain,
        ppid=encode_point(ElementType.PPID, ppid) if ppid is not None else None,
        blind_sign_commitment=(
            request.blind_sign_request[0].commitment
            if blind_commitment is not None else None
        ),
        encrypted_uid=ciphertext.encode() if ciphertext is not None else None,
    )
    proof = SigmaProof.prove(
        statements, prover.witnesses,
        context=presentation_context(unsigned), rng=rng,
        bounds=witness_bounds(prover.views, blind_commitment),
    )
    logger.debug(
        "derived presentation: %d credentials, %d predicates, ppid=%s, "
        "escrow=%s, blind-sign=%s",
        len(prover.views), len(prover.predicate_views), ppid is not None,
        ciphertext is not None, blind_commitment is not None,
    )
    return replace(
        unsigned,
        proof_challenge=encode_integer(ElementType.INTEGER, proof.challenge),
        responses={
            k: encode_integer(ElementType.INTEGER, z)
            for k, z in proof.responses.items()
        },
    ).to_json()


# ── verify ──────────────────────────────────────────────────────────────

def _check_binding(
    what: str,
    requested: Optional[str],
    presented: Optional[str],
    missing_in_request: FailureReason,
    missing_in_presentation: FailureReason,
    mismatched: FailureReason,
) -> None:
    if requested is None and presented is None:
        return
    if requested is None:
        raise VerificationFailure(
            missing_in_request,
            f"presentation is bound to a {what} the verifier did not supply",
        )
    if presented is None:
        raise VerificationFailure(
            missing_in_presentation, f"presentation carries no {what}",
        )
    if requested != presented:
        raise VerificationFailure(mismatched, f"{what} does not match")


def _credential_view(
    j: int,
    record: DisclosedCredential,
    keys: List[Statement],
    config: ProofConfig,
) -> CredentialView:
    statements = parse_document(record.document, config.max_statements)
    options = parse_document(record.proof_options, config.max_statements)
    count, indices = record.statement_count, record.statement_indices
    if not 1 <= count <= config.max_statements:
        raise VerificationFailure(
            FailureReason.MALFORMED_PROOF,
            f"credential {j}: statement count {count} out of range",
        )
    if (len(indices) != len(statements) or len(set(indices)) != len(indices)
            or not all(0 <= i < count for i in indices)):
        raise VerificationFailure(
            FailureReason.MALFORMED_PROOF,
            f"credential {j}: statement indices do not fit the document",
        )
    public_key = resolve_public_key(keys, options)
    signature = decode_integer(record.signature, ElementType.SIGNATURE)
    if not is_unit(signature, public_key.n):
        raise VerificationFailure(
            FailureReason.INVALID_SIGNATURE,
            f"credential {j}: signature is not a unit of the issuer modulus",
        )
    return CredentialView(
        public_key, signature, statements, options, indices, count, record.bound,
    )


def _predicate_view(
    p: int,
    record: PredicateProof,
    circuits: Mapping[str, Circuit],
    vp: VerifiablePresentation,
) -> PredicateView:
    circuit = circuits.get(record.circuit_id)
    if circuit is None:
        raise VerificationFailure(
            FailureReason.MISSING_VERIFYING_KEY,
            f"no verifying key for circuit {record.circuit_id!r}",
        )
    names = [n for n, _ in record.private_inputs + record.public_inputs]
    if circuit.circuit_id != record.circuit_id or not _check_inputs(circuit, names):
        raise VerificationFailure(
            FailureReason.INVALID_PREDICATE_PROOF,
            f"predicate {p} does not match circuit {record.circuit_id!r}",
        )
    commitment = decode_point(record.commitment, ElementType.COMMITMENT)
    context = hash_predicate_context(
        circuit.circuit_id, circuit.seed, commitment, vp.challenge, vp.domain, p,
    )
    if not circuit.verify(commitment, RangeProof.decode(record.proof), context):
        raise VerificationFailure(
            FailureReason.INVALID_PREDICATE_PROOF,
            f"range proof for predicate {p} ({record.circuit_id}) does not verify",
        )
    return PredicateView(
        circuit, record.private_inputs,
        _public_total(circuit, record.public_inputs), commitment,
    )


def _verify_presentation(
    vp: VerifiablePresentation,
    request: VerifyProofRequest,
    keys: List[Statement],
    circuits: Mapping[str, Circuit],
    opener_key: Optional[Point],
    config: ProofConfig,
) -> None:
    _check_binding(
        "challenge", request.challenge, vp.challenge,
        FailureReason.MISSING_CHALLENGE_IN_REQUEST,
        FailureReason.MISSING_CHALLENGE_IN_PRESENTATION,
        FailureReason.MISMATCHED_CHALLENGE,
    )
    _check_binding(
        "domain", request.domain, vp.domain,
        FailureReason.MISSING_DOMAIN_IN_REQUEST,
        FailureReason.MISSING_DOMAIN_IN_PRESENTATION,
        FailureReason.MISMATCHED_DOMAIN,
    )
    if opener_key is not None and vp.encrypted_uid is None:
        raise VerificationFailure(
            FailureReason.MISSING_ENCRYPTED_UID,
            "an opener key was supplied but the presentation escrows no uid",
        )
    if opener_key is None and vp.encrypted_uid is not None:
        raise VerificationFailure(
            FailureReason.MISSING_OPENER_KEY,
            "presentation escrows a uid but no opener key was supplied",
        )

    responses = {
        k: decode_integer(v, ElementType.INTEGER) for k, v in vp.responses.items()
    }
    proof = SigmaProof(
        challenge=decode_integer(vp.proof_challenge, ElementType.INTEGER),
        responses=responses,
    )

    def is_hidden(term: str) -> bool:
        return is_blank_node(term) and term in responses

    views = [
        _credential_view(j, record, keys, config)
        for j, record in enumerate(vp.credentials)
    ]
    hidden = hidden_terms(views, is_hidden)
    predicate_views = []
    for p, record in enumerate(vp.predicates):
        view = _predicate_view(p, record, circuits, vp)
        if not all(label in hidden for _, label in view.private_inputs):
            raise VerificationFailure(
                FailureReason.INVALID_PREDICATE_PROOF,
                f"predicate {p} refers to a term no disclosed document hides",
            )
        predicate_views.append(view)

    secret_used = (
        vp.ppid is not None
        or vp.encrypted_uid is not None
        or vp.blind_sign_commitment is not None
    )
    if secret_used and not any(v.bound for v in views):
        raise VerificationFailure(
            FailureReason.MALFORMED_PROOF,
            "presentation uses a holder secret but no credential is bound to one",
        )

    ppid = None
    if vp.ppid is not None:
        if vp.domain is None:
            raise VerificationFailure(
                FailureReason.MALFORMED_PROOF, "PPID without a domain",
            )
        ppid = decode_point(vp.ppid, ElementType.PPID)
    blind_commitment = None
    if vp.blind_sign_commitment is not None:
        blind_commitment = SecretCommitment.decode(vp.blind_sign_commitment)
    ciphertext = None
    if vp.encrypted_uid is not None:
        ciphertext = ElGamalCiphertext.decode(vp.encrypted_uid)
        if not ciphertext.is_bound_to(opener_key):
            raise VerificationFailure(
                FailureReason.INVALID_PRESENTATION_PROOF,
                "escrowed uid is not tagged for the opener key",
            )

    statements = build_statements(
        views, is_hidden, predicate_views,
        ppid=ppid, domain=vp.domain,
        blind_commitment=blind_commitment,
        ciphertext=ciphertext, opener_key=opener_key,
    )
    if not proof.verify(
        statements, presentation_context(vp),
        witness_bounds(views, blind_commitment),
    ):
        raise VerificationFailure(
            FailureReason.INVALID_PRESENTATION_PROOF,
            "aggregate proof of knowledge does not verify",
        )


def verify_proof(
    request: VerifyProofRequest,
    config: Optional[ProofConfig] = None,
) -> VerifyResult:
    """
    Verify a presentation.

    Malformed request inputs (key graph, verifying keys, opener key, VP
    JSON) raise ``EncodingError``.  Every cryptographic mismatch,
    including an undecodable element inside the presentation, is
    reported through the result.  A predicate whose circuit has no
    verifying key fails the whole presentation.
    """
    config = config or DEFAULT_CONFIG
    keys = parse_document(request.key_graph)
    vp = VerifiablePresentation.from_json(request.vp)
    circuits = {
        circuit_id: Circuit.from_verifying_key(key)
        for circuit_id, key in request.snark_verifying_keys.items()
    }
    opener_key = None
    if request.opener_public_key is not None:
        opener_key = decode_point(
            request.opener_public_key, ElementType.ELGAMAL_PUBLIC_KEY,
        )
    try:
        _verify_presentation(vp, request, keys, circuits, opener_key, config)
    except VerificationFailure as failure:
        logger.warning("presentation rejected: %s", failure.detail)
        return VerifyResult.failed(failure)
    except EncodingError as exc:
        logger.warning("presentation rejected: malformed element: %s", exc)
        return VerifyResult.failed(VerificationFailure(
            FailureReason.MALFORMED_PROOF, f"malformed presentation: {exc}",
        ))
    logger.debug("verified presentation over %d credentials", len(vp.credentials))
    return VerifyResult.ok()
