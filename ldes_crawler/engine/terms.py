"""Minimal RDF term and statement types passed between engine components."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum

XSD_STRING = "http://www.w3.org/2001/XMLSchema#string"
RDF_LANG_STRING = "http://www.w3.org/1999/02/22-rdf-syntax-ns#langString"

_ESCAPES = {"\\": "\\\\", '"': '\\"', "\n": "\\n", "\r": "\\r", "\t": "\\t"}


class TermType(str, Enum):
    """Kinds of RDF terms."""

    NAMED_NODE = "NamedNode"
    BLANK_NODE = "BlankNode"
    LITERAL = "Literal"
    DEFAULT_GRAPH = "DefaultGraph"


@dataclass(frozen=True, slots=True)
class Term:
    value: str
    term_type: TermType = TermType.NAMED_NODE
    datatype: str | None = None
    language: str | None = None

    @property
    def is_reference(self) -> bool:
        """True for terms that can be the subject of further statements."""

        return self.term_type in (TermType.NAMED_NODE, TermType.BLANK_NODE)

    def to_nquads(self) -> str:
        if self.term_type is TermType.NAMED_NODE:
            return f"<{self.value}>"
        if self.term_type is TermType.BLANK_NODE:
            return f"_:{self.value}"
        if self.term_type is TermType.DEFAULT_GRAPH:
            return ""
        escaped = "".join(_ESCAPES.get(ch, ch) for ch in self.value)
        if self.language:
            return f'"{escaped}"@{self.language}'
        if self.datatype and self.datatype != XSD_STRING:
            return f'"{escaped}"^^<{self.datatype}>'
        return f'"{escaped}"'


DEFAULT_GRAPH = Term("", TermType.DEFAULT_GRAPH)


def named_node(value: str) -> Term:
    return Term(value, TermType.NAMED_NODE)


def blank_node(value: str) -> Term:
    return Term(value, TermType.BLANK_NODE)


def literal(value: str, datatype: str | None = None, language: str | None = None) -> Term:
    if language:
        datatype = RDF_LANG_STRING
    return Term(value, TermType.LITERAL, datatype=datatype or XSD_STRING, language=language)


@dataclass(frozen=True, slots=True)
class Statement:
    """A subject/predicate/object/graph quad."""

    subject: Term
    predicate: Term
    object: Term
    graph: Term = DEFAULT_GRAPH

    def to_nquads(self) -> str:
        parts = [self.subject.to_nquads(), self.predicate.to_nquads(), self.object.to_nquads()]
        if self.graph.term_type is not TermType.DEFAULT_GRAPH:
            parts.append(self.graph.to_nquads())
        return " ".join(parts) + " ."


__all__ = [
    "DEFAULT_GRAPH",
    "RDF_LANG_STRING",
    "Statement",
    "Term",
    "TermType",
    "XSD_STRING",
    "blank_node",
    "literal",
    "named_node",
]
