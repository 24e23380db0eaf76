"""
Encoding Unit Tests
===================

Multibase elements, composite payload reading and N-Triples handling.
"""

import pytest

from vcproofs.curve import Scalar, Point, G
from vcproofs.encoding import (
    ByteReader,
    ElementType,
    base64url_decode,
    base64url_encode,
    decode_element,
    decode_point,
    decode_scalar,
    encode_element,
    decode_integer,
    encode_integer,
    encode_point,
    encode_scalar,
    int_bytes,
)
from vcproofs.errors import EncodingError
from vcproofs.hash import hash_term
from vcproofs.rdf import (
    Statement,
    literal,
    numeric_value,
    parse_document,
    parse_statement,
    serialize,
    split_proof,
    term_to_scalar,
)

XSD = "http://www.w3.org/2001/XMLSchema#"


class TestBase64Url:
    """Strict unpadded base64url."""

    def test_no_padding_emitted(self):
        assert base64url_encode(b"\xff\xfe") == "__4"

    def test_padding_rejected(self):
        with pytest.raises(EncodingError):
            base64url_decode("__4=")

    def test_standard_alphabet_rejected(self):
        with pytest.raises(EncodingError):
            base64url_decode("//4")

    def test_non_canonical_trailing_bits_rejected(self):
        # "__4" and "__5" decode to the same bytes; only one is canonical
        with pytest.raises(EncodingError):
            base64url_decode("__5")

    def test_encoding_error_is_value_error(self):
        with pytest.raises(ValueError):
            base64url_decode("!!")


class TestElements:
    """Type-tagged multibase elements."""

    def test_element_starts_with_multibase_prefix(self):
        text = encode_element(ElementType.PUBLIC_KEY, b"\x01\x02")
        assert text.startswith("u")
        assert decode_element(text, ElementType.PUBLIC_KEY) == b"\x01\x02"

    def test_wrong_type_rejected(self):
        text = encode_point(ElementType.PUBLIC_KEY, G)
        with pytest.raises(EncodingError, match="expected CIPHERTEXT"):
            decode_element(text, ElementType.CIPHERTEXT)

    def test_wrong_prefix_rejected(self):
        text = encode_point(ElementType.PUBLIC_KEY, G)
        with pytest.raises(EncodingError, match="prefix"):
            decode_point("z" + text[1:], ElementType.PUBLIC_KEY)

    def test_point_and_scalar(self):
        s = Scalar(123456789)
        assert decode_scalar(encode_scalar(ElementType.SECRET_KEY, s),
                             ElementType.SECRET_KEY) == s
        P = s * G
        assert decode_point(encode_point(ElementType.PUBLIC_KEY, P),
                            ElementType.PUBLIC_KEY) == P

    def test_identity_point_encodes(self):
        text = encode_point(ElementType.COMMITMENT, Point.identity())
        assert decode_point(text, ElementType.COMMITMENT).is_inf()

    def test_scalar_out_of_range_rejected(self):
        text = encode_element(ElementType.SECRET_KEY, b"\xff" * 32)
        with pytest.raises(EncodingError, match="out of range"):
            decode_scalar(text, ElementType.SECRET_KEY)

    def test_invalid_point_rejected(self):
        text = encode_element(ElementType.PUBLIC_KEY, b"\x05" + b"\x00" * 32)
        with pytest.raises(EncodingError):
            decode_point(text, ElementType.PUBLIC_KEY)


class TestByteReader:
    """Sequential decoding of composite payloads."""

    def test_reads_in_order(self):
        s = Scalar(7)
        reader = ByteReader(s.to_bytes() + G.to_bytes())
        assert reader.scalar() == s
        assert reader.point() == G
        reader.finish()

    def test_truncated(self):
        with pytest.raises(EncodingError, match="truncated"):
            ByteReader(b"\x00" * 10).scalar()

    def test_trailing_bytes(self):
        reader = ByteReader(Scalar(1).to_bytes() + b"\x00")
        reader.scalar()
        with pytest.raises(EncodingError, match="trailing"):
            reader.finish()

    @pytest.mark.parametrize("value", [0, 1, -1, 255, 256, 2 ** 600, -(2 ** 97)])
    def test_integers(self, value):
        reader = ByteReader(int_bytes(value) + int_bytes(7))
        assert reader.integer() == value
        assert reader.integer() == 7
        reader.finish()

    def test_integer_element(self):
        text = encode_integer(ElementType.INTEGER, 2 ** 300)
        assert decode_integer(text, ElementType.INTEGER) == 2 ** 300
        with pytest.raises(EncodingError):
            decode_integer(text, ElementType.SIGNATURE)

    @pytest.mark.parametrize("raw", [
        b"\x00\x00\x00\x00\x02\x00\x05",   # leading zero byte
        b"\x01\x00\x00\x00\x00",           # negative zero
        b"\x02\x00\x00\x00\x01\x05",       # unknown sign byte
    ])
    def test_non_canonical_integers_rejected(self, raw):
        with pytest.raises(EncodingError, match="non-canonical"):
            ByteReader(raw).integer()

    def test_integer_length_beyond_payload(self):
        with pytest.raises(EncodingError, match="truncated"):
            ByteReader(b"\x00\x00\x00\x00\x09\x01").integer()


class TestNTriples:
    """Statement splitting and term handling."""

    def test_parse_iri_statement(self):
        st = parse_statement("<ex:s> <ex:p> <ex:o> .")
        assert st == Statement("<ex:s>", "<ex:p>", "<ex:o>")

    def test_parse_prefixed_names(self):
        st = parse_statement("ex:subj ex:pred ex:obj .")
        assert st == Statement("ex:subj", "ex:pred", "ex:obj")
        assert str(st) == "ex:subj ex:pred ex:obj ."

    def test_parse_literal_with_spaces_and_escapes(self):
        st = parse_statement('_:b0 <ex:p> "a \\"quoted\\" value"@en .')
        assert st.subject == "_:b0"
        assert st.object == '"a \\"quoted\\" value"@en'

    def test_document_skips_blank_and_comment_lines(self):
        text = "# header\n\n<ex:s> <ex:p> <ex:o> .\n   \n"
        assert len(parse_document(text)) == 1

    def test_named_graph_rejected(self):
        with pytest.raises(EncodingError, match="named graphs"):
            parse_statement("<ex:s> <ex:p> <ex:o> <ex:g> .")

    def test_literal_subject_rejected(self):
        with pytest.raises(EncodingError, match="subject"):
            parse_statement('"x" <ex:p> <ex:o> .')

    def test_missing_terminator_rejected(self):
        with pytest.raises(EncodingError):
            parse_statement("<ex:s> <ex:p> <ex:o>")

    def test_statement_limit(self):
        text = "<ex:s> <ex:p> <ex:o> .\n" * 3
        with pytest.raises(EncodingError, match="limit"):
            parse_document(text, max_statements=2)

    def test_serialize_round_trips_statements(self):
        statements = parse_document("<ex:s> <ex:p> <ex:o> .\n_:b1 <ex:p> \"v\" .\n")
        assert parse_document(serialize(statements)) == statements

    def test_split_proof(self):
        graph = parse_document(
            "_:b0 <ex:p> <ex:o> .\n"
            '_:b0 <https://w3id.org/security#proofValue> "uABC"'
            "^^<https://w3id.org/security#multibase> .\n"
        )
        options, value = split_proof(graph)
        assert len(options) == 1
        assert value == "uABC"


class TestTermValues:
    """Numeric readings used by predicate circuits."""

    def test_integer(self):
        assert numeric_value(f'"42"^^<{XSD}integer>') == 42
        assert numeric_value(f'"-7"^^<{XSD}int>') == -7

    def test_date_is_unix_seconds(self):
        assert numeric_value(f'"1970-01-02"^^<{XSD}date>') == 86400

    def test_datetime_with_zone(self):
        assert numeric_value(f'"1970-01-01T00:01:00Z"^^<{XSD}dateTime>') == 60

    def test_plain_string_has_no_value(self):
        assert numeric_value('"42"') is None
        assert numeric_value("<ex:s>") is None

    def test_bad_lexical_form(self):
        with pytest.raises(EncodingError):
            numeric_value(f'"forty"^^<{XSD}integer>')

    def test_numeric_terms_map_to_their_value(self):
        assert term_to_scalar(f'"42"^^<{XSD}integer>') == Scalar(42)

    def test_other_terms_are_hashed(self):
        a, b = term_to_scalar('"42"'), term_to_scalar("<ex:42>")
        assert a != b
        assert a != Scalar(42)

    def test_literal_escaping(self):
        assert literal('say "hi"') == '"say \\"hi\\""'


class TestCanonicalLiterals:
    """Only canonical lexical forms carry a numeric reading."""

    @pytest.mark.parametrize("lexical, datatype", [
        ("-0", "integer"),
        ("+1", "integer"),
        ("01", "integer"),
        (" 1", "integer"),
        ("1.0", "integer"),
        ("128", "byte"),
        ("-1", "nonNegativeInteger"),
        ("0", "positiveInteger"),
        ("4294967296", "unsignedInt"),
        ("2024-01-01T00:00:00", "dateTime"),
        ("2024-01-01T00:00:00.5Z", "dateTime"),
        ("2024-01-01T00:00:00+00:00", "dateTime"),
        ("2024-01-01Z", "date"),
        ("2024-1-01", "date"),
        ("2024-13-01", "date"),
    ])
    def test_rejected(self, lexical, datatype):
        with pytest.raises(EncodingError):
            numeric_value(f'"{lexical}"^^<{XSD}{datatype}>')

    @pytest.mark.parametrize("lexical, datatype, value", [
        ("0", "integer", 0),
        ("-128", "byte", -128),
        ("127", "byte", 127),
        ("18446744073709551615", "unsignedLong", 2 ** 64 - 1),
        ("-1", "negativeInteger", -1),
    ])
    def test_accepted(self, lexical, datatype, value):
        assert numeric_value(f'"{lexical}"^^<{XSD}{datatype}>') == value

    def test_same_value_different_terms(self):
        as_integer = f'"24"^^<{XSD}integer>'
        as_long = f'"24"^^<{XSD}long>'
        assert term_to_scalar(as_integer) == term_to_scalar(as_long)
        assert hash_term(as_integer) != hash_term(as_long)
