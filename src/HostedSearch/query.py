"""Search parameters.

A :class:`Query` stores parameters as an untyped map of strings, sorted by
name on output, with typed accessors for the common ones. Lists are
serialized as JSON arrays; booleans as ``true``/``false``. Spaces are encoded
as ``%20`` rather than ``+``.
"""

from __future__ import annotations

import json
from typing import Any, Dict, Iterable, List, Mapping, Optional
from urllib.parse import quote, unquote


def _encode(value: str) -> str:
    return quote(value, safe="")


def _serialize(value: Any) -> Optional[str]:
    if value is None:
        return None
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, (list, tuple)):
        return json.dumps(list(value), separators=(",", ":"))
    return str(value)


class Query:
    """Search query parameters."""

    def __init__(self, query: Optional[str] = None, **params: Any) -> None:
        self._params: Dict[str, str] = {}
        if query is not None:
            self.set("query", query)
        for name, value in params.items():
            if isinstance(getattr(type(self), name, None), property):
                setattr(self, name, value)
            else:
                self.set(name, value)

    # ── Untyped access ────────────────────────────────────────────────────

    def set(self, name: str, value: Any) -> "Query":
        """Set a parameter; ``None`` removes it."""
        serialized = _serialize(value)
        if serialized is None:
            self._params.pop(name, None)
        else:
            self._params[name] = serialized
        return self

    def get(self, name: str) -> Optional[str]:
        return self._params.get(name)

    def to_dict(self) -> Dict[str, str]:
        return dict(sorted(self._params.items()))

    # ── Typed accessors ───────────────────────────────────────────────────

    @property
    def query(self) -> Optional[str]:
        return self.get("query")

    @query.setter
    def query(self, value: Optional[str]) -> None:
        self.set("query", value)

    @property
    def hits_per_page(self) -> Optional[int]:
        return self._get_int("hitsPerPage")

    @hits_per_page.setter
    def hits_per_page(self, value: Optional[int]) -> None:
        self.set("hitsPerPage", value)

    @property
    def page(self) -> Optional[int]:
        return self._get_int("page")

    @page.setter
    def page(self, value: Optional[int]) -> None:
        self.set("page", value)

    @property
    def filters(self) -> Optional[str]:
        return self.get("filters")

    @filters.setter
    def filters(self, value: Optional[str]) -> None:
        self.set("filters", value)

    @property
    def attributes_to_retrieve(self) -> Optional[List[str]]:
        return self._get_list("attributesToRetrieve")

    @attributes_to_retrieve.setter
    def attributes_to_retrieve(self, value: Optional[Iterable[str]]) -> None:
        self.set("attributesToRetrieve", list(value) if value is not None else None)

    @property
    def facets(self) -> Optional[List[str]]:
        return self._get_list("facets")

    @facets.setter
    def facets(self, value: Optional[Iterable[str]]) -> None:
        self.set("facets", list(value) if value is not None else None)

    def _get_int(self, name: str) -> Optional[int]:
        value = self.get(name)
        try:
            return int(value) if value is not None else None
        except ValueError:
            return None

    def _get_list(self, name: str) -> Optional[List[str]]:
        value = self.get(name)
        if value is None:
            return None
        try:
            decoded = json.loads(value)
        except ValueError:
            return [part for part in value.split(",") if part]
        return [str(v) for v in decoded] if isinstance(decoded, list) else None

    # ── Serialization ─────────────────────────────────────────────────────

    def build(self) -> str:
        """URL-encoded query string, parameters sorted by name."""
        return "&".join(
            f"{_encode(name)}={_encode(value)}" for name, value in sorted(self._params.items())
        )

    @classmethod
    def parse(cls, query_string: str) -> "Query":
        """Inverse of :meth:`build`; malformed pairs are ignored."""
        query = cls()
        for pair in query_string.split("&"):
            if not pair:
                continue
            components = pair.split("=")
            if len(components) > 2:
                continue
            name = unquote(components[0])
            value = unquote(components[1]) if len(components) == 2 else ""
            query._params[name] = value
        return query

    @classmethod
    def from_mapping(cls, params: Mapping[str, Any]) -> "Query":
        query = cls()
        for name, value in params.items():
            query.set(name, value)
        return query

    def __eq__(self, other: object) -> bool:
        return isinstance(other, Query) and self._params == other._params

    def __repr__(self) -> str:
        return f"Query{{{self.build()}}}"


__all__ = ["Query"]
