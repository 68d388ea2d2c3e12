"""Grammar schema used to validate queries at compile time."""

from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from typing import Any


@dataclass(frozen=True)
class GrammarSchema:
    """Named node types of a grammar and the fields each one carries."""

    node_fields: Mapping[str, frozenset[str]] = field(default_factory=dict)
    anonymous_types: frozenset[str] = frozenset()

    def has_node_type(self, node_type: str) -> bool:
        return node_type in self.node_fields

    def has_anonymous_type(self, text: str) -> bool:
        return not self.anonymous_types or text in self.anonymous_types

    def has_field(self, node_type: str, field_name: str) -> bool:
        return field_name in self.node_fields.get(node_type, frozenset())

    @classmethod
    def from_mapping(cls, node_fields: Mapping[str, Iterable[str]]) -> "GrammarSchema":
        """Build a schema from ``{node_type: [field, ...]}``."""
        return cls(node_fields={name: frozenset(fields) for name, fields in node_fields.items()})

    @classmethod
    def from_node_types(cls, entries: list[dict[str, Any]]) -> "GrammarSchema":
        """Build a schema from the entries of a tree-sitter ``node-types.json``.

        Args:
            entries: Decoded JSON list; each entry has ``type``, ``named`` and
                optionally ``fields`` and ``subtypes``

        Returns:
            Schema covering named types (including supertypes) and anonymous
            tokens
        """
        node_fields: dict[str, frozenset[str]] = {}
        anonymous: set[str] = set()
        for entry in entries:
            node_type = entry["type"]
            if not entry.get("named", True):
                anonymous.add(node_type)
                continue
            node_fields[node_type] = frozenset(entry.get("fields", {}).keys())
        return cls(node_fields=node_fields, anonymous_types=frozenset(anonymous))
