"""Boolean metadata filters evaluated against point payloads."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any


@dataclass(frozen=True, slots=True)
class FieldCondition:
    """Exact match of one payload field."""

    key: str
    match: Any

    def matches(self, payload: dict[str, Any]) -> bool:
        return self.key in payload and payload[self.key] == self.match


@dataclass(frozen=True, slots=True)
class Filter:
    """`must` / `should` / `must_not` filter tree.

    A payload passes when every `must` condition matches, no `must_not`
    condition matches and, if `should` is non-empty, at least one `should`
    condition matches. Nested filters are accepted wherever a condition is.
    """

    must: tuple[FieldCondition | Filter, ...] = field(default_factory=tuple)
    should: tuple[FieldCondition | Filter, ...] = field(default_factory=tuple)
    must_not: tuple[FieldCondition | Filter, ...] = field(default_factory=tuple)

    @classmethod
    def for_document(cls, document_id: str) -> "Filter":
        return cls(must=(FieldCondition(key="document_id", match=document_id),))

    def is_empty(self) -> bool:
        return not (self.must or self.should or self.must_not)

    def matches(self, payload: dict[str, Any]) -> bool:
        if not all(condition.matches(payload) for condition in self.must):
            return False
        if any(condition.matches(payload) for condition in self.must_not):
            return False
        if self.should and not any(condition.matches(payload) for condition in self.should):
            return False
        return True


def matches_filter(payload: dict[str, Any], metadata_filter: Filter | None) -> bool:
    if metadata_filter is None:
        return True
    return metadata_filter.matches(payload)
