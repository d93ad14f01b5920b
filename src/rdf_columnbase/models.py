"""
Core data models for RDF-ColumnBase.

A Triple is a subject/predicate/object statement over RDF terms. A
TriplePattern leaves any of the three positions unbound.
"""

from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, field_validator

from rdf_columnbase.storage.terms import Term, TermKind


class Triple(BaseModel):
    """
    An RDF statement.

    Subjects are IRIs or blank nodes, predicates are IRIs, objects are any term.
    """
    model_config = ConfigDict(frozen=True)

    subject: Term
    predicate: Term
    object: Term

    @field_validator("subject", "predicate", "object", mode="before")
    @classmethod
    def _coerce_term(cls, value: Any) -> Term:
        return Term.coerce(value)

    @field_validator("subject")
    @classmethod
    def _check_subject(cls, value: Term) -> Term:
        if value.kind == TermKind.LITERAL:
            raise ValueError("Subject must be an IRI or blank node")
        return value

    @field_validator("predicate")
    @classmethod
    def _check_predicate(cls, value: Term) -> Term:
        if value.kind != TermKind.IRI:
            raise ValueError("Predicate must be an IRI")
        return value

    @classmethod
    def of(cls, subject: Any, predicate: Any, obj: Any) -> "Triple":
        return cls(subject=subject, predicate=predicate, object=obj)

    def __iter__(self):
        # Unpacks as (s, p, o) rather than pydantic's (name, value) pairs
        return iter((self.subject, self.predicate, self.object))

    def __str__(self) -> str:
        return f"{self.subject} {self.predicate} {self.object} ."


class TriplePattern(BaseModel):
    """A triple with optional wildcards. ``None`` matches anything."""
    model_config = ConfigDict(frozen=True)

    subject: Optional[Term] = None
    predicate: Optional[Term] = None
    object: Optional[Term] = None

    @field_validator("subject", "predicate", "object", mode="before")
    @classmethod
    def _coerce_term(cls, value: Any) -> Optional[Term]:
        return None if value is None else Term.coerce(value)

    @classmethod
    def of(cls, subject: Any = None, predicate: Any = None, obj: Any = None) -> "TriplePattern":
        return cls(subject=subject, predicate=predicate, object=obj)

    @property
    def is_wildcard(self) -> bool:
        return self.subject is None and self.predicate is None and self.object is None

    def matches(self, triple: Triple) -> bool:
        return (
            (self.subject is None or self.subject == triple.subject)
            and (self.predicate is None or self.predicate == triple.predicate)
            and (self.object is None or self.object == triple.object)
        )
