"""Turn member statements into the configured output representation."""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from typing import Any

from ..config.models import OutputRepresentation
from ..errors import LdesCrawlerError
from .members import index_by_subject
from .parser import JSONLD_MEDIA_TYPES, RDF_TYPE, parse_nquads
from .terms import DEFAULT_GRAPH, RDF_LANG_STRING, XSD_STRING, Statement, Term, TermType


@dataclass(slots=True)
class MemberRecord:
    """Member emitted in the ``quads`` representation."""

    id: str
    statements: list[Statement] = field(default_factory=list)


def _reference_id(term: Term) -> str:
    return f"_:{term.value}" if term.term_type is TermType.BLANK_NODE else term.value


class StatementFormatter:
    def __init__(
        self,
        representation: OutputRepresentation | None = None,
        mime_type: str = "application/ld+json",
        jsonld_context: Any = None,
        disable_framing: bool = False,
    ) -> None:
        self.representation = representation
        self.mime_type = mime_type.split(";", 1)[0].strip().lower()
        self.disable_framing = disable_framing
        self.context = self._unwrap_context(jsonld_context)
        self._terms, self._prefixes = self._compaction_tables(self.context)

    # ------------------------------------------------------------------
    def format(self, member_uri: str, statements: list[Statement]) -> Any:
        if self.representation is OutputRepresentation.QUADS:
            return MemberRecord(member_uri, list(statements))
        if self.representation is OutputRepresentation.OBJECT:
            if self.disable_framing:
                return {"id": member_uri, "object": self.expand(statements)}
            return {"id": member_uri, "object": self.frame(member_uri, statements)}
        return self.serialize(member_uri, statements) + "\n"

    def serialize(self, member_uri: str, statements: list[Statement]) -> str:
        if self.mime_type in JSONLD_MEDIA_TYPES:
            if self.disable_framing:
                return json.dumps(self.expand(statements), ensure_ascii=False)
            return json.dumps(self.frame(member_uri, statements), ensure_ascii=False)
        if self.mime_type == "application/n-quads":
            return "\n".join(statement.to_nquads() for statement in statements)
        if self.mime_type == "application/n-triples":
            return "\n".join(
                Statement(s.subject, s.predicate, s.object, DEFAULT_GRAPH).to_nquads()
                for s in statements
            )
        raise LdesCrawlerError(f"Unsupported output media type: {self.mime_type}")

    # ------------------------------------------------------------------
    def encode(self, record: Any) -> Any:
        if isinstance(record, MemberRecord):
            return {"id": record.id, "quads": [s.to_nquads() for s in record.statements]}
        return record

    def decode(self, payload: Any) -> Any:
        if self.representation is OutputRepresentation.QUADS:
            return MemberRecord(payload["id"], parse_nquads("\n".join(payload["quads"])))
        return payload

    # ------------------------------------------------------------------
    def frame(self, member_uri: str, statements: list[Statement]) -> dict[str, Any]:
        """Nest every locally described node under the member node."""

        subject_index = index_by_subject(statements)
        root: dict[str, Any] = {"@id": member_uri}
        embedded = {member_uri}
        nodes = [root]
        stack: list[tuple[str, dict[str, Any]]] = [(member_uri, root)]
        while stack:
            subject, target = stack.pop()
            for statement in subject_index.get(subject, ()):
                obj = statement.object
                if statement.predicate.value == RDF_TYPE and obj.term_type is TermType.NAMED_NODE:
                    target.setdefault("@type", []).append(self._compact(obj.value))
                    continue
                key = self._compact(statement.predicate.value)
                if obj.is_reference and obj.value in subject_index and obj.value not in embedded:
                    embedded.add(obj.value)
                    child: dict[str, Any] = {}
                    if obj.term_type is TermType.NAMED_NODE:
                        child["@id"] = obj.value
                    nodes.append(child)
                    stack.append((obj.value, child))
                    value: Any = child
                elif obj.is_reference:
                    value = {"@id": _reference_id(obj)}
                else:
                    value = self._literal_value(obj)
                target.setdefault(key, []).append(value)
        for node in nodes:
            for key, values in node.items():
                if isinstance(values, list) and len(values) == 1:
                    node[key] = values[0]
        if self.context is not None:
            return {"@context": self.context, **root}
        return root

    def expand(self, statements: list[Statement]) -> list[dict[str, Any]]:
        """Flat expanded JSON-LD, one node object per subject."""

        nodes: dict[str, dict[str, Any]] = {}
        for statement in statements:
            subject_id = _reference_id(statement.subject)
            node = nodes.setdefault(subject_id, {"@id": subject_id})
            obj = statement.object
            if statement.predicate.value == RDF_TYPE and obj.term_type is TermType.NAMED_NODE:
                node.setdefault("@type", []).append(obj.value)
                continue
            if obj.is_reference:
                value: dict[str, Any] = {"@id": _reference_id(obj)}
            else:
                value = {"@value": obj.value}
                if obj.language:
                    value["@language"] = obj.language
                elif obj.datatype and obj.datatype != XSD_STRING:
                    value["@type"] = obj.datatype
            node.setdefault(statement.predicate.value, []).append(value)
        return list(nodes.values())

    # ------------------------------------------------------------------
    def _literal_value(self, term: Term) -> Any:
        if term.language:
            return {"@value": term.value, "@language": term.language}
        if term.datatype and term.datatype not in (XSD_STRING, RDF_LANG_STRING):
            return {"@value": term.value, "@type": self._compact(term.datatype)}
        return term.value

    def _compact(self, iri: str) -> str:
        term = self._terms.get(iri)
        if term:
            return term
        best: tuple[str, str] | None = None
        for prefix, namespace in self._prefixes.items():
            if iri.startswith(namespace) and len(iri) > len(namespace):
                if best is None or len(namespace) > len(best[1]):
                    best = (prefix, namespace)
        if best:
            return f"{best[0]}:{iri[len(best[1]):]}"
        return iri

    @staticmethod
    def _unwrap_context(context: Any) -> Any:
        if isinstance(context, dict) and "@context" in context:
            return context["@context"]
        return context

    @staticmethod
    def _compaction_tables(context: Any) -> tuple[dict[str, str], dict[str, str]]:
        terms: dict[str, str] = {}
        prefixes: dict[str, str] = {}
        entries = context if isinstance(context, list) else [context]
        for entry in entries:
            if not isinstance(entry, dict):
                continue
            for key, definition in entry.items():
                if key.startswith("@"):
                    continue
                iri = definition.get("@id") if isinstance(definition, dict) else definition
                if not isinstance(iri, str):
                    continue
                if iri.endswith(("/", "#")):
                    prefixes[key] = iri
                elif ":" in iri:
                    prefix, suffix = iri.split(":", 1)
                    if prefix in prefixes and not suffix.startswith("//"):
                        iri = prefixes[prefix] + suffix
                    terms.setdefault(iri, key)
        return terms, prefixes


__all__ = ["MemberRecord", "StatementFormatter"]
