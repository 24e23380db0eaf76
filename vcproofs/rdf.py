"""
Statement-level handling of canonical N-Triples documents.

Canonicalization is the caller's job: documents arrive already in
canonical N-Triples form, one statement per line.  This module only
splits them into ``Statement`` triples of term strings, maps terms to
message scalars, and looks up the handful of vocabulary terms the
protocols need (verification method, proof value, key material).

Message encoding of terms
-------------------------
Integer-typed literals and ``xsd:date`` / ``xsd:dateTime`` literals are
encoded by numeric value (dates as Unix seconds) so predicate circuits
can compare them.  Every other term is hashed to a scalar.

A numeric value alone does not pin the term: ``"24"^^xsd:integer`` and
``"24"^^xsd:long`` share it.  Signatures therefore carry a second
message per object, the hash of the exact term, and numeric literals
must be in canonical lexical form (no sign on positives, no leading
zeros, UTC ``Z`` date-times without fractions) and inside the value
space of their datatype.
"""

from __future__ import annotations

import re
from datetime import date, datetime, timezone
from typing import Dict, Iterable, List, NamedTuple, Optional, Tuple

from .curve import Scalar
from .errors import EncodingError
from .hash import hash_term

# ── vocabulary ──────────────────────────────────────────────────────────
SEC = "https://w3id.org/security#"
XSD = "http://www.w3.org/2001/XMLSchema#"

SEC_VERIFICATION_METHOD = f"<{SEC}verificationMethod>"
SEC_PROOF_VALUE = f"<{SEC}proofValue>"
SEC_PUBLIC_KEY_MULTIBASE = f"<{SEC}publicKeyMultibase>"
SEC_SECRET_KEY_MULTIBASE = f"<{SEC}secretKeyMultibase>"
SEC_MULTIBASE = f"<{SEC}multibase>"

_INTEGER_RANGES: Dict[str, Tuple[Optional[int], Optional[int]]] = {
    f"<{XSD}{name}>": bounds
    for name, bounds in (
        ("integer", (None, None)),
        ("long", (-2 ** 63, 2 ** 63 - 1)),
        ("int", (-2 ** 31, 2 ** 31 - 1)),
        ("short", (-2 ** 15, 2 ** 15 - 1)),
        ("byte", (-2 ** 7, 2 ** 7 - 1)),
        ("nonNegativeInteger", (0, None)),
        ("positiveInteger", (1, None)),
        ("nonPositiveInteger", (None, 0)),
        ("negativeInteger", (None, -1)),
        ("unsignedLong", (0, 2 ** 64 - 1)),
        ("unsignedInt", (0, 2 ** 32 - 1)),
        ("unsignedShort", (0, 2 ** 16 - 1)),
        ("unsignedByte", (0, 2 ** 8 - 1)),
    )
}
_DATETIME = f"<{XSD}dateTime>"
_DATE = f"<{XSD}date>"

_IRI = r"<[^<>\"{}|^`\\\s]*>"
_BNODE = r"_:[A-Za-z0-9_][A-Za-z0-9_\-.]*"
_LITERAL = r"\"(?:[^\"\\\n\r]|\\.)*\"(?:\^\^<[^<>\"{}|^`\\\s]*>|@[A-Za-z]+(?:-[A-Za-z0-9]+)*)?"
# prefixed names (ex:subj) are kept verbatim, never expanded
_PNAME = r"[A-Za-z][\w\-]*:(?:[^\s<>\"{}|^`\\]*[^\s<>\"{}|^`\\.])?"

_TERM_RE = re.compile(rf"\s*({_IRI}|{_BNODE}|{_LITERAL}|{_PNAME})")
_END_RE = re.compile(r"\s*\.\s*$")
_LITERAL_RE = re.compile(r"^\"((?:[^\"\\]|\\.)*)\"(?:\^\^(<[^>]*>)|@(\S+))?$")
_CANONICAL_INTEGER_RE = re.compile(r"-?(?:0|[1-9][0-9]*)")
_CANONICAL_DATE_RE = re.compile(r"[0-9]{4}-[0-9]{2}-[0-9]{2}")
_CANONICAL_DATETIME_RE = re.compile(
    r"[0-9]{4}-[0-9]{2}-[0-9]{2}T[0-9]{2}:[0-9]{2}:[0-9]{2}Z"
)


class Statement(NamedTuple):
    """One canonical triple; each field is an N-Triples term string."""

    subject: str
    predicate: str
    object: str

    def terms(self) -> Tuple[str, str, str]:
        return (self.subject, self.predicate, self.object)

    def replace_terms(self, mapping: Dict[str, str]) -> Statement:
        return Statement(*(mapping.get(t, t) for t in self.terms()))

    def __str__(self) -> str:
        return f"{self.subject} {self.predicate} {self.object} ."


# ── parsing ─────────────────────────────────────────────────────────────

def parse_statement(line: str) -> Statement:
    terms: List[str] = []
    pos = 0
    while len(terms) < 3:
        m = _TERM_RE.match(line, pos)
        if m is None:
            raise EncodingError(f"malformed N-Triples statement: {line!r}")
        terms.append(m.group(1))
        pos = m.end()
    if not _END_RE.fullmatch(line, pos):
        raise EncodingError(
            f"expected ' .' after three terms (named graphs are not "
            f"supported): {line!r}"
        )
    subject, predicate, obj = terms
    if subject.startswith('"'):
        raise EncodingError(f"literal in subject position: {line!r}")
    if predicate.startswith(('"', "_:")):
        raise EncodingError(f"predicate must be an IRI: {line!r}")
    return Statement(subject, predicate, obj)


def parse_document(text: str, max_statements: Optional[int] = None) -> List[Statement]:
    """Split a canonical N-Triples document into statements (order kept)."""
    if not isinstance(text, str):
        raise EncodingError("document must be a string")
    statements = [
        parse_statement(line)
        for line in text.splitlines()
        if line.strip() and not line.lstrip().startswith("#")
    ]
    if max_statements is not None and len(statements) > max_statements:
        raise EncodingError(
            f"document has {len(statements)} statements "
            f"(limit {max_statements})"
        )
    return statements


def serialize(statements: Iterable[Statement]) -> str:
    return "".join(f"{st}\n" for st in statements)


# ── terms ───────────────────────────────────────────────────────────────

def is_blank_node(term: str) -> bool:
    return term.startswith("_:")


def literal_parts(term: str) -> Tuple[str, Optional[str], Optional[str]]:
    """Split a literal into (lexical form, datatype IRI term, language)."""
    m = _LITERAL_RE.match(term)
    if m is None:
        raise EncodingError(f"not a literal: {term!r}")
    return m.group(1), m.group(2), m.group(3)


def literal(value: str, datatype: Optional[str] = None) -> str:
    escaped = value.replace("\\", "\\\\").replace('"', '\\"')
    if datatype is None:
        return f'"{escaped}"'
    return f'"{escaped}"^^{datatype}'


def numeric_value(term: str) -> Optional[int]:
    """
    Integer reading of a literal, or None when the term has none.

    Integer datatypes map to their value; dates and UTC date-times map
    to Unix seconds.  A non-canonical lexical form, or a value outside
    its datatype's value space, raises ``EncodingError``.
    """
    if not term.startswith('"'):
        return None
    lexical, datatype, _ = literal_parts(term)
    if datatype in _INTEGER_RANGES:
        return _canonical_integer(lexical, datatype)
    try:
        if datatype == _DATETIME:
            if not _CANONICAL_DATETIME_RE.fullmatch(lexical):
                raise ValueError("expected YYYY-MM-DDThh:mm:ssZ")
            dt = datetime.strptime(lexical, "%Y-%m-%dT%H:%M:%SZ")
            return int(dt.replace(tzinfo=timezone.utc).timestamp())
        if datatype == _DATE:
            if not _CANONICAL_DATE_RE.fullmatch(lexical):
                raise ValueError("expected YYYY-MM-DD")
            d = date.fromisoformat(lexical)
            return int(
                datetime(d.year, d.month, d.day, tzinfo=timezone.utc)
                .timestamp()
            )
    except ValueError as exc:
        raise EncodingError(
            f"invalid lexical form for {datatype}: {lexical!r}"
        ) from exc
    return None


def _canonical_integer(lexical: str, datatype: str) -> int:
    if not _CANONICAL_INTEGER_RE.fullmatch(lexical) or lexical == "-0":
        raise EncodingError(
            f"non-canonical lexical form for {datatype}: {lexical!r}"
        )
    value = int(lexical)
    low, high = _INTEGER_RANGES[datatype]
    if (low is not None and value < low) or (high is not None and value > high):
        raise EncodingError(f"{lexical} is outside the value space of {datatype}")
    return value


def term_to_scalar(term: str) -> Scalar:
    """Message scalar the signature commits to for *term*."""
    n = numeric_value(term)
    if n is not None:
        return Scalar(n)
    return hash_term(term)


# ── vocabulary lookups ──────────────────────────────────────────────────

def find_object(
    statements: Iterable[Statement],
    predicate: str,
    subject: Optional[str] = None,
) -> Optional[str]:
    """Object of the first statement matching (subject?, predicate)."""
    for st in statements:
        if st.predicate == predicate and (subject is None or st.subject == subject):
            return st.object
    return None


def split_proof(statements: List[Statement]) -> Tuple[List[Statement], Optional[str]]:
    """Separate a proof graph into (proof options, proofValue or None)."""
    options = [st for st in statements if st.predicate != SEC_PROOF_VALUE]
    value_term = find_object(statements, SEC_PROOF_VALUE)
    if value_term is None:
        return options, None
    return options, literal_parts(value_term)[0]


def verification_method(options: List[Statement]) -> str:
    vm = find_object(options, SEC_VERIFICATION_METHOD)
    if vm is None:
        raise EncodingError("proof options carry no sec:verificationMethod")
    return vm


def key_material(
    key_graph: List[Statement], method: str, predicate: str,
) -> Optional[str]:
    """Multibase key string stored under *method* in the key graph."""
    term = find_object(key_graph, predicate, subject=method)
    if term is None:
        return None
    return literal_parts(term)[0]
