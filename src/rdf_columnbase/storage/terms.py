"""
RDF terms and their canonical stored form.

Every object written to the store is serialised as an N-Triples term and
addressed by the SHA-1 of that serialisation. The same helper is used on
the insert, delete and index paths so a value always resolves to the same
sub-key.

Parsing and serialisation go through pyoxigraph so the lexical form is the
one a standards-compliant N-Triples reader produces.
"""

from dataclasses import dataclass
from enum import IntEnum
from typing import Any, Optional, Union
import hashlib

from pyoxigraph import BlankNode, Literal, NamedNode, RdfFormat, parse


XSD = "http://www.w3.org/2001/XMLSchema#"
XSD_STRING = XSD + "string"
XSD_INTEGER = XSD + "integer"
XSD_DOUBLE = XSD + "double"
XSD_BOOLEAN = XSD + "boolean"
RDF_LANG_STRING = "http://www.w3.org/1999/02/22-rdf-syntax-ns#langString"

# Placeholder subject/predicate used to wrap a lone term into a parseable line
_PARSE_SUBJECT = "<urn:rdf-columnbase:s>"
_PARSE_PREDICATE = "<urn:rdf-columnbase:p>"


class TermKind(IntEnum):
    """RDF term kind enumeration."""
    IRI = 0
    LITERAL = 1
    BNODE = 2


class TermParseError(ValueError):
    """Raised when stored text is not a valid N-Triples term."""


def content_hash(serialized: Union[bytes, str]) -> bytes:
    """
    Content address of a serialised term.

    Hex SHA-1 digest as ASCII bytes. Collisions are not handled.
    """
    if isinstance(serialized, str):
        serialized = serialized.encode("utf-8")
    return hashlib.sha1(serialized).hexdigest().encode("ascii")


def _is_iri(value: str) -> bool:
    try:
        NamedNode(value)
    except ValueError:
        return False
    return True


@dataclass(frozen=True, slots=True)
class Term:
    """
    Internal representation of an RDF term.

    Attributes:
        kind: The type of term (IRI, LITERAL, BNODE)
        lex: Lexical form (IRI string, literal value, bnode label)
        datatype: Datatype IRI for typed literals
        lang: Language tag for language-tagged literals
    """
    kind: TermKind
    lex: str
    datatype: Optional[str] = None
    lang: Optional[str] = None

    def __str__(self) -> str:
        return self.to_ntriples()

    @property
    def is_resource(self) -> bool:
        return self.kind != TermKind.LITERAL

    @classmethod
    def iri(cls, value: str) -> "Term":
        """Create an IRI term."""
        return cls(kind=TermKind.IRI, lex=value)

    @classmethod
    def literal(
        cls,
        value: str,
        datatype: Optional[str] = None,
        lang: Optional[str] = None,
    ) -> "Term":
        """Create a literal term. Plain strings carry no datatype."""
        if datatype in (XSD_STRING, RDF_LANG_STRING):
            datatype = None
        return cls(kind=TermKind.LITERAL, lex=value, datatype=datatype, lang=lang.lower() if lang else None)

    @classmethod
    def bnode(cls, label: str) -> "Term":
        """Create a blank node term."""
        if label.startswith("_:"):
            label = label[2:]
        return cls(kind=TermKind.BNODE, lex=label)

    @classmethod
    def coerce(cls, value: Any) -> "Term":
        """
        Turn a Python value into a term.

        Strings in N-Triples syntax (``<...>``, ``_:...``, ``"..."``) are
        parsed; other strings that look like IRIs become IRIs; remaining
        strings, numbers and booleans become literals. Text that merely
        contains "://" but is not a valid IRI (for instance prose with
        spaces) stays a literal.
        """
        if isinstance(value, Term):
            return value
        if isinstance(value, (NamedNode, BlankNode, Literal)):
            return cls.from_oxigraph(value)
        if isinstance(value, bool):
            return cls.literal("true" if value else "false", datatype=XSD_BOOLEAN)
        if isinstance(value, int):
            return cls.literal(str(value), datatype=XSD_INTEGER)
        if isinstance(value, float):
            return cls.literal(repr(value), datatype=XSD_DOUBLE)
        if isinstance(value, str):
            if value[:1] in ("<", '"') or value.startswith("_:"):
                return cls.from_ntriples(value)
            if ("://" in value or value.startswith("urn:")) and _is_iri(value):
                return cls.iri(value)
            return cls.literal(value)
        raise TypeError(f"Cannot convert {type(value).__name__} to an RDF term")

    @classmethod
    def from_oxigraph(cls, term: Union[NamedNode, BlankNode, Literal]) -> "Term":
        if isinstance(term, NamedNode):
            return cls.iri(term.value)
        if isinstance(term, BlankNode):
            return cls.bnode(term.value)
        if isinstance(term, Literal):
            if term.language:
                return cls.literal(term.value, lang=term.language)
            return cls.literal(term.value, datatype=term.datatype.value)
        raise TypeError(f"Unsupported term type: {type(term).__name__}")

    def to_oxigraph(self) -> Union[NamedNode, BlankNode, Literal]:
        if self.kind == TermKind.IRI:
            return NamedNode(self.lex)
        if self.kind == TermKind.BNODE:
            return BlankNode(self.lex)
        if self.lang:
            return Literal(self.lex, language=self.lang)
        if self.datatype:
            return Literal(self.lex, datatype=NamedNode(self.datatype))
        return Literal(self.lex)

    @classmethod
    def from_ntriples(cls, text: Union[str, bytes]) -> "Term":
        """
        Parse a single N-Triples term.

        Raises:
            TermParseError: If the text is not exactly one valid term
        """
        if isinstance(text, bytes):
            try:
                text = text.decode("utf-8")
            except UnicodeDecodeError as e:
                raise TermParseError(f"Stored term is not UTF-8: {e}") from e
        line = f"{_PARSE_SUBJECT} {_PARSE_PREDICATE} {text.strip()} .\n"
        try:
            quads = list(parse(line.encode("utf-8"), RdfFormat.N_TRIPLES))
        except (SyntaxError, ValueError) as e:
            raise TermParseError(f"Invalid N-Triples term {text!r}: {e}") from e
        if len(quads) != 1:
            raise TermParseError(f"Expected one N-Triples term, got {text!r}")
        return cls.from_oxigraph(quads[0].object)

    def to_ntriples(self) -> str:
        """Canonical N-Triples serialisation."""
        return str(self.to_oxigraph())

    def canonical_bytes(self) -> bytes:
        """Byte form written to the store."""
        return self.to_ntriples().encode("utf-8")

    def compute_hash(self) -> bytes:
        """Content address used as sub-key and index row key."""
        return content_hash(self.canonical_bytes())

    def to_key(self) -> bytes:
        """
        Row key for a subject: the IRI itself, or ``_:label`` for a blank node.
        """
        if self.kind == TermKind.IRI:
            return self.lex.encode("utf-8")
        if self.kind == TermKind.BNODE:
            return f"_:{self.lex}".encode("utf-8")
        raise ValueError("Literals cannot be used as row keys")

    @classmethod
    def from_key(cls, key: bytes) -> "Term":
        text = key.decode("utf-8")
        if text.startswith("_:"):
            return cls.bnode(text)
        return cls.iri(text)

    def to_python(self) -> Any:
        """Plain string form used in tabular exports."""
        if self.kind == TermKind.LITERAL:
            return self.lex
        if self.kind == TermKind.BNODE:
            return f"_:{self.lex}"
        return self.lex
