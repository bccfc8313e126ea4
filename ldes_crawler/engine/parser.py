"""Document parsing into statements (N-Quads/N-Triples and a JSON-LD subset)."""

from __future__ import annotations

import json
import re
from dataclasses import dataclass, field
from threading import Lock
from typing import TYPE_CHECKING, Any, Callable
from urllib.parse import urljoin

from ..errors import ParseError
from .terms import DEFAULT_GRAPH, Statement, Term, blank_node, literal, named_node

if TYPE_CHECKING:
    from .interfaces import PageFetcher

RDF_TYPE = "http://www.w3.org/1999/02/22-rdf-syntax-ns#type"
XSD = "http://www.w3.org/2001/XMLSchema#"

JSONLD_MEDIA_TYPES = {"application/ld+json", "application/json"}
NQUADS_MEDIA_TYPES = {"application/n-quads", "application/n-triples"}

_IRI = re.compile(r"<([^<>\"{}|^`\\\s]*)>")
_BLANK = re.compile(r"_:([A-Za-z0-9_\-]+(?:\.[A-Za-z0-9_\-]+)*)")
_LITERAL = re.compile(
    r'"((?:[^"\\]|\\.)*)"(?:@([A-Za-z]+(?:-[A-Za-z0-9]+)*)|\^\^<([^<>\s]*)>)?'
)
_UNESCAPE = re.compile(r"\\(u[0-9A-Fa-f]{4}|U[0-9A-Fa-f]{8}|[tbnrf\"'\\])")
_SIMPLE_ESCAPES = {"t": "\t", "b": "\b", "n": "\n", "r": "\r", "f": "\f", '"': '"', "'": "'", "\\": "\\"}


def _unescape(value: str) -> str:
    def _replace(match: re.Match[str]) -> str:
        token = match.group(1)
        if token[0] in "uU":
            return chr(int(token[1:], 16))
        return _SIMPLE_ESCAPES[token]

    return _UNESCAPE.sub(_replace, value)


def parse_nquads(text: str, base_url: str | None = None) -> list[Statement]:
    """Parse N-Triples or N-Quads text, one statement per line."""

    statements: list[Statement] = []
    for line_no, raw_line in enumerate(text.splitlines(), start=1):
        line = raw_line.strip()
        if not line or line.startswith("#"):
            continue
        terms: list[Term] = []
        pos = 0
        while pos < len(line):
            char = line[pos]
            if char.isspace():
                pos += 1
                continue
            if char == ".":
                break
            if char == "<":
                match = _IRI.match(line, pos)
                if not match:
                    raise ParseError(f"Malformed IRI on line {line_no}")
                iri = _unescape(match.group(1))
                if base_url and ":" not in iri:
                    iri = urljoin(base_url, iri)
                terms.append(named_node(iri))
            elif char == "_":
                match = _BLANK.match(line, pos)
                if not match:
                    raise ParseError(f"Malformed blank node on line {line_no}")
                terms.append(blank_node(match.group(1)))
            elif char == '"':
                match = _LITERAL.match(line, pos)
                if not match:
                    raise ParseError(f"Malformed literal on line {line_no}")
                terms.append(
                    literal(_unescape(match.group(1)), datatype=match.group(3), language=match.group(2))
                )
            else:
                raise ParseError(f"Unexpected character {char!r} on line {line_no}")
            pos = match.end()
        if pos >= len(line) or len(terms) not in (3, 4):
            raise ParseError(f"Incomplete statement on line {line_no}")
        graph = terms[3] if len(terms) == 4 else DEFAULT_GRAPH
        statements.append(Statement(terms[0], terms[1], terms[2], graph))
    return statements


# ----------------------------------------------------------------------
# JSON-LD subset
# ----------------------------------------------------------------------
ContextLoader = Callable[[str], Any]

_MAX_CONTEXT_DEPTH = 8
# Schemes that make a colon-bearing key an absolute IRI rather than a compact one.
_IRI_SCHEMES = {"http", "https", "urn", "did", "mailto", "tag", "data", "file", "ftp"}


class RemoteContextLoader:
    """Fetch remote ``@context`` documents through a page fetcher, once per URL."""

    def __init__(self, fetcher: PageFetcher) -> None:
        self.fetcher = fetcher
        self._documents: dict[str, Any] = {}
        self._lock = Lock()

    def __call__(self, url: str) -> Any:
        with self._lock:
            if url in self._documents:
                return self._documents[url]
        response = self.fetcher.fetch(url, {"Accept": "application/ld+json, application/json"})
        try:
            document = json.loads(response.text)
        except json.JSONDecodeError as exc:
            raise ParseError(f"Invalid JSON-LD context at {url}: {exc}") from exc
        with self._lock:
            self._documents[url] = document
        return document


@dataclass(slots=True)
class _TermDefinition:
    iri: str
    type_mapping: str | None = None
    language: str | None = None


@dataclass(slots=True)
class _Context:
    base: str | None = None
    vocab: str | None = None
    terms: dict[str, _TermDefinition] = field(default_factory=dict)

    def extend(self, raw: Any, loader: ContextLoader | None = None, depth: int = 0) -> "_Context":
        ctx = _Context(self.base, self.vocab, dict(self.terms))
        entries = raw if isinstance(raw, list) else [raw]
        for entry in entries:
            if entry is None:
                ctx = _Context(self.base)
            elif isinstance(entry, dict):
                ctx._apply(entry)
            elif isinstance(entry, str):
                url = urljoin(self.base, entry) if self.base else entry
                if loader is None:
                    raise ParseError(f"Remote JSON-LD context cannot be loaded: {url}")
                if depth >= _MAX_CONTEXT_DEPTH:
                    raise ParseError(f"Remote JSON-LD contexts nested too deeply at {url}")
                document = loader(url)
                if not isinstance(document, dict) or "@context" not in document:
                    raise ParseError(f"Remote JSON-LD context has no @context: {url}")
                ctx = ctx.extend(document["@context"], loader, depth + 1)
            else:
                raise ParseError(f"Invalid @context entry: {entry!r}")
        return ctx

    def check_prefix(self, value: str) -> None:
        """Reject compact IRIs whose prefix no context defines."""

        if ":" not in value or value.startswith("_:") or value in self.terms:
            return
        prefix, suffix = value.split(":", 1)
        if suffix.startswith("//") or prefix in self.terms or prefix.lower() in _IRI_SCHEMES:
            return
        raise ParseError(f"Undefined prefix {prefix!r} in {value!r}")

    def _apply(self, entry: dict[str, Any]) -> None:
        if "@base" in entry:
            self.base = entry["@base"]
        if "@vocab" in entry:
            self.vocab = entry["@vocab"]
        # Definitions may refer to prefixes declared later in the same object.
        pending = {k: v for k, v in entry.items() if not k.startswith("@")}
        while pending:
            unresolved = {
                term: definition
                for term, definition in pending.items()
                if not self._define(term, definition, pending)
            }
            if len(unresolved) == len(pending):
                break
            pending = unresolved

    def _define(self, term: str, definition: Any, pending: dict[str, Any]) -> bool:
        if definition is None:
            self.terms.pop(term, None)
            return True
        if isinstance(definition, str):
            definition = {"@id": definition}
        if not isinstance(definition, dict):
            raise ParseError(f"Invalid term definition for {term!r}")
        raw_id = definition.get("@id", term)
        prefix = raw_id.split(":", 1)[0] if ":" in raw_id else None
        if prefix and prefix != term and prefix in pending and prefix not in self.terms:
            return False
        iri = self.expand(raw_id, vocab=True)
        if iri is None or ":" not in iri:
            return False
        type_mapping = definition.get("@type")
        if type_mapping and type_mapping not in ("@id", "@vocab"):
            type_mapping = self.expand(type_mapping, vocab=True)
        self.terms[term] = _TermDefinition(iri, type_mapping, definition.get("@language"))
        return True

    def expand(self, value: str, *, vocab: bool) -> str | None:
        if value.startswith("@") or value.startswith("_:"):
            return value
        if vocab and value in self.terms:
            return self.terms[value].iri
        if ":" in value:
            prefix, suffix = value.split(":", 1)
            if not suffix.startswith("//") and prefix in self.terms:
                return self.terms[prefix].iri + suffix
            return value
        if vocab:
            return self.vocab + value if self.vocab else None
        return urljoin(self.base, value) if self.base else value


class _JsonLdReader:
    """Single-use reader; blank node labels are scoped to one document."""

    def __init__(self, base_url: str | None, context_loader: ContextLoader | None = None) -> None:
        self.base_url = base_url
        self.context_loader = context_loader
        self.statements: list[Statement] = []
        self._blank_counter = 0

    def read(self, document: Any) -> list[Statement]:
        ctx = _Context(base=self.base_url)
        for node in document if isinstance(document, list) else [document]:
            if isinstance(node, dict):
                self._top_level(node, ctx)
        return self.statements

    def _top_level(self, node: dict[str, Any], ctx: _Context) -> None:
        if "@context" in node:
            ctx = ctx.extend(node["@context"], self.context_loader)
        graph = node.get("@graph")
        properties = [k for k in node if k not in ("@context", "@graph")]
        if graph is not None:
            for item in graph if isinstance(graph, list) else [graph]:
                if isinstance(item, dict):
                    self._node(item, ctx)
            if properties == [] or properties == ["@id"]:
                return
        self._node({k: v for k, v in node.items() if k != "@graph"}, ctx)

    def _new_blank(self) -> Term:
        self._blank_counter += 1
        return blank_node(f"b{self._blank_counter}")

    def _reference(self, value: str, ctx: _Context, *, vocab: bool) -> Term:
        if value.startswith("_:"):
            return blank_node(value[2:])
        if vocab:
            ctx.check_prefix(value)
        expanded = ctx.expand(value, vocab=vocab)
        if expanded is None:
            expanded = ctx.expand(value, vocab=False)
        return named_node(expanded)

    def _node(self, node: dict[str, Any], ctx: _Context) -> Term:
        if "@context" in node:
            ctx = ctx.extend(node["@context"], self.context_loader)
        raw_id = node.get("@id")
        subject = self._reference(raw_id, ctx, vocab=False) if isinstance(raw_id, str) else self._new_blank()
        types = node.get("@type", [])
        for type_value in types if isinstance(types, list) else [types]:
            self.statements.append(
                Statement(subject, named_node(RDF_TYPE), self._reference(type_value, ctx, vocab=True))
            )
        for key, value in node.items():
            if key.startswith("@"):
                continue
            ctx.check_prefix(key)
            predicate = ctx.expand(key, vocab=True)
            if predicate is None or ":" not in predicate:
                continue
            definition = ctx.terms.get(key)
            for obj in self._objects(value, ctx, definition):
                self.statements.append(Statement(subject, named_node(predicate), obj))
        return subject

    def _objects(self, value: Any, ctx: _Context, definition: _TermDefinition | None) -> list[Term]:
        if value is None:
            return []
        if isinstance(value, list):
            result: list[Term] = []
            for item in value:
                result.extend(self._objects(item, ctx, definition))
            return result
        if isinstance(value, dict):
            if "@value" in value:
                raw = value["@value"]
                if raw is None:
                    return []
                datatype = value.get("@type")
                if datatype:
                    datatype = ctx.expand(datatype, vocab=True)
                return [self._literal(raw, datatype, value.get("@language"))]
            if "@list" in value or "@set" in value:
                return self._objects(value.get("@list", value.get("@set")), ctx, definition)
            return [self._node(value, ctx)]
        if isinstance(value, str):
            type_mapping = definition.type_mapping if definition else None
            if type_mapping == "@id":
                return [self._reference(value, ctx, vocab=False)]
            if type_mapping == "@vocab":
                return [self._reference(value, ctx, vocab=True)]
            language = definition.language if definition else None
            return [literal(value, datatype=type_mapping, language=language)]
        datatype = definition.type_mapping if definition and definition.type_mapping not in ("@id", "@vocab") else None
        return [self._literal(value, datatype, None)]

    @staticmethod
    def _literal(raw: Any, datatype: str | None, language: str | None) -> Term:
        if isinstance(raw, bool):
            return literal("true" if raw else "false", datatype or XSD + "boolean")
        if isinstance(raw, int):
            return literal(str(raw), datatype or XSD + "integer")
        if isinstance(raw, float):
            return literal(repr(raw), datatype or XSD + "double")
        return literal(str(raw), datatype=datatype, language=language)


def parse_jsonld(
    text: str, base_url: str | None = None, context_loader: ContextLoader | None = None
) -> list[Statement]:
    try:
        document = json.loads(text)
    except json.JSONDecodeError as exc:
        raise ParseError(f"Invalid JSON-LD document: {exc}") from exc
    return _JsonLdReader(base_url, context_loader).read(document)


class RdfDocumentParser:
    """Dispatch on media type to the matching parser."""

    def __init__(
        self,
        fallback_mime_type: str = "application/ld+json",
        context_loader: ContextLoader | None = None,
    ) -> None:
        self.fallback_mime_type = fallback_mime_type
        self.context_loader = context_loader

    def parse(self, body: str, base_url: str, mime_type: str | None) -> list[Statement]:
        media_type = (mime_type or self.fallback_mime_type).split(";", 1)[0].strip().lower()
        if media_type in JSONLD_MEDIA_TYPES:
            return parse_jsonld(body, base_url, self.context_loader)
        if media_type in NQUADS_MEDIA_TYPES:
            return parse_nquads(body, base_url)
        raise ParseError(f"Unsupported media type: {media_type}")


__all__ = [
    "JSONLD_MEDIA_TYPES",
    "NQUADS_MEDIA_TYPES",
    "RDF_TYPE",
    "RdfDocumentParser",
    "RemoteContextLoader",
    "parse_jsonld",
    "parse_nquads",
]
