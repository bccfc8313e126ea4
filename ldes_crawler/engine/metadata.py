"""Extraction of TREE feed metadata (relations and collections) from statements."""

from __future__ import annotations

from dataclasses import dataclass, field

from .parser import RDF_TYPE
from .terms import Statement, TermType

TREE = "https://w3id.org/tree#"
LDES = "https://w3id.org/ldes#"
HYDRA = "http://www.w3.org/ns/hydra/core#"

TREE_RELATION = TREE + "relation"
TREE_NODE = TREE + "node"
TREE_VALUE = TREE + "value"
TREE_PATH = TREE + "path"
TREE_MEMBER = TREE + "member"
TREE_VIEW = TREE + "view"
TREE_LESS_THAN_RELATION = TREE + "LessThanRelation"
HYDRA_VIEW = HYDRA + "view"
COLLECTION_TYPES = {TREE + "Collection", LDES + "EventStream"}


@dataclass(slots=True)
class Relation:
    id: str
    types: list[str] = field(default_factory=list)
    nodes: list[str] = field(default_factory=list)
    value: str | None = None
    path: str | None = None

    @property
    def type(self) -> str | None:
        return self.types[0] if self.types else None


@dataclass(slots=True)
class Collection:
    id: str
    members: list[str] = field(default_factory=list)
    views: list[str] = field(default_factory=list)


@dataclass(slots=True)
class FeedMetadata:
    relations: dict[str, Relation] = field(default_factory=dict)
    collections: dict[str, Collection] = field(default_factory=dict)

    def member_uris(self) -> list[str]:
        """Members of every collection on the page, in document order."""

        uris: list[str] = []
        for collection in self.collections.values():
            uris.extend(collection.members)
        return uris

    def to_dict(self) -> dict:
        return {
            "relations": [
                {"id": r.id, "types": r.types, "nodes": r.nodes, "value": r.value, "path": r.path}
                for r in self.relations.values()
            ],
            "collections": {
                c.id: {"members": c.members, "views": c.views} for c in self.collections.values()
            },
        }


def _append_unique(values: list[str], value: str) -> None:
    if value not in values:
        values.append(value)


class TreeMetadataExtractor:
    """Read TREE relations and collection membership from a page's statements."""

    def extract(self, statements: list[Statement], url: str) -> FeedMetadata:
        metadata = FeedMetadata()
        relation_ids: list[str] = []
        for statement in statements:
            predicate = statement.predicate.value
            if predicate == TREE_RELATION and statement.object.is_reference:
                _append_unique(relation_ids, statement.object.value)
            elif predicate == TREE_MEMBER and statement.object.is_reference:
                collection = self._collection(metadata, statement.subject.value)
                _append_unique(collection.members, statement.object.value)
            elif predicate in (TREE_VIEW, HYDRA_VIEW) and statement.object.is_reference:
                collection = self._collection(metadata, statement.subject.value)
                _append_unique(collection.views, statement.object.value)
            elif predicate == RDF_TYPE and statement.object.value in COLLECTION_TYPES:
                self._collection(metadata, statement.subject.value)

        for relation_id in relation_ids:
            metadata.relations[relation_id] = Relation(id=relation_id)
        for statement in statements:
            relation = metadata.relations.get(statement.subject.value)
            if relation is None:
                continue
            predicate = statement.predicate.value
            if predicate == RDF_TYPE:
                _append_unique(relation.types, statement.object.value)
            elif predicate == TREE_NODE and statement.object.is_reference:
                _append_unique(relation.nodes, statement.object.value)
            elif predicate == TREE_VALUE and relation.value is None:
                relation.value = statement.object.value
            elif predicate == TREE_PATH and statement.object.term_type is not TermType.LITERAL:
                relation.path = statement.object.value
        return metadata

    @staticmethod
    def _collection(metadata: FeedMetadata, collection_id: str) -> Collection:
        collection = metadata.collections.get(collection_id)
        if collection is None:
            collection = Collection(id=collection_id)
            metadata.collections[collection_id] = collection
        return collection


__all__ = [
    "Collection",
    "FeedMetadata",
    "Relation",
    "TREE",
    "TREE_LESS_THAN_RELATION",
    "TreeMetadataExtractor",
]
