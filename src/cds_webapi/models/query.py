# Copyright (c) Microsoft Corporation.
# Licensed under the MIT license.

"""
Immutable fluent query for OData retrieve requests.

Every configuration method returns a new :class:`Query` with the setting
merged, so a partially configured query can be shared and extended safely.
"""

from __future__ import annotations

from dataclasses import dataclass, replace
from typing import Any, List, Optional, Tuple
from urllib.parse import quote

from ..common.literals import format_literal
from ..core._error_codes import (
    CONFIG_EMPTY_PATH,
    CONFIG_INVALID_VALUE,
    CONFIG_MISSING_PATH,
    CONFIG_NESTED_EXPAND,
)
from ..core.errors import ConfigurationError

# Characters left unescaped inside query option values
_QUERY_SAFE = "$,()'=;@:/*"

ASCENDING = "asc"
DESCENDING = "desc"


def encode_query_value(value: str) -> str:
    """Percent-encode an OData query option value."""
    return quote(value, safe=_QUERY_SAFE)


@dataclass(frozen=True)
class OrderBy:
    attribute: str
    direction: str = ASCENDING

    def render(self) -> str:
        return f"{self.attribute} desc" if self.direction == DESCENDING else self.attribute


@dataclass(frozen=True)
class Expand:
    """A navigation property to expand, with an optional restricted sub-query."""

    navigation_property: str
    query: Optional["Query"] = None

    def render(self) -> str:
        if self.query is None:
            return self.navigation_property
        options = [f"{name}={value}" for name, value in self.query._clauses(include_expand=False)]
        if not options:
            return self.navigation_property
        return f"{self.navigation_property}({';'.join(options)})"


@dataclass(frozen=True)
class Query:
    """
    Fluent, immutable OData query.

    :param entity_logical_name: Logical (singular) entity name, e.g. ``"account"``.
    :type entity_logical_name: str | None

    Example::

        q = (Query("account")
             .path("accounts")
             .select("name", "revenue")
             .filter_eq("statecode", 0)
             .order_by("revenue", descending=True)
             .top(10))
        q.to_query_string()
        # '$select=name,revenue&$filter=statecode%20eq%200&$orderby=revenue%20desc&$top=10'
    """

    entity_logical_name: Optional[str] = None
    entity_set_path: Optional[str] = None
    _filter: Tuple[str, ...] = ()
    _select: Tuple[str, ...] = ()
    _expand: Tuple[Expand, ...] = ()
    _orderby: Tuple[OrderBy, ...] = ()
    _top: Optional[int] = None

    # ------------------------------------------------------------ accessors
    @property
    def filters(self) -> Tuple[str, ...]:
        return self._filter

    @property
    def selected(self) -> Tuple[str, ...]:
        return self._select

    @property
    def expansions(self) -> Tuple[Expand, ...]:
        return self._expand

    @property
    def ordering(self) -> Tuple[OrderBy, ...]:
        return self._orderby

    @property
    def row_limit(self) -> Optional[int]:
        return self._top

    # ------------------------------------------------------------ configuration
    def path(self, entity_set_path: str) -> "Query":
        """Set the entity set path (e.g. ``"accounts"``).

        :raises ~cds_webapi.core.errors.ConfigurationError: If the path is empty.
        """
        if not isinstance(entity_set_path, str) or not entity_set_path.strip():
            raise ConfigurationError("Query path cannot be empty", subcode=CONFIG_EMPTY_PATH)
        return replace(self, entity_set_path=entity_set_path.strip().strip("/"))

    def filter(self, expression: str) -> "Query":
        """Add a raw OData filter expression; filters are combined with ``and``."""
        if not isinstance(expression, str) or not expression.strip():
            raise ConfigurationError("filter expression cannot be empty", subcode=CONFIG_INVALID_VALUE)
        return replace(self, _filter=self._filter + (expression.strip(),))

    def _compare(self, column: str, op: str, value: Any) -> "Query":
        return self.filter(f"{column} {op} {format_literal(value, infer_bare=False)}")

    def filter_eq(self, column: str, value: Any) -> "Query":
        return self._compare(column, "eq", value)

    def filter_ne(self, column: str, value: Any) -> "Query":
        return self._compare(column, "ne", value)

    def filter_gt(self, column: str, value: Any) -> "Query":
        return self._compare(column, "gt", value)

    def filter_ge(self, column: str, value: Any) -> "Query":
        return self._compare(column, "ge", value)

    def filter_lt(self, column: str, value: Any) -> "Query":
        return self._compare(column, "lt", value)

    def filter_le(self, column: str, value: Any) -> "Query":
        return self._compare(column, "le", value)

    def filter_contains(self, column: str, value: str) -> "Query":
        return self.filter(f"contains({column},{format_literal(value, 'Edm.String')})")

    def filter_startswith(self, column: str, value: str) -> "Query":
        return self.filter(f"startswith({column},{format_literal(value, 'Edm.String')})")

    def filter_endswith(self, column: str, value: str) -> "Query":
        return self.filter(f"endswith({column},{format_literal(value, 'Edm.String')})")

    def filter_null(self, column: str) -> "Query":
        return self.filter(f"{column} eq null")

    def filter_not_null(self, column: str) -> "Query":
        return self.filter(f"{column} ne null")

    def select(self, *attributes: str) -> "Query":
        """Add attributes to ``$select``. Order is kept and duplicates are ignored."""
        merged: List[str] = list(self._select)
        for name in attributes:
            if not isinstance(name, str) or not name.strip():
                raise ConfigurationError("select attribute names cannot be empty", subcode=CONFIG_INVALID_VALUE)
            if name.strip() not in merged:
                merged.append(name.strip())
        return replace(self, _select=tuple(merged))

    def expand(self, navigation_property: str, query: Optional["Query"] = None) -> "Query":
        """
        Expand a navigation property, optionally with a sub-query.

        The Web API only supports one level of ``$expand`` and the sub-query may
        only carry ``select``, ``filter`` and ``order_by``.

        :raises ~cds_webapi.core.errors.ConfigurationError: If the sub-query expands
            further or sets ``top``.
        """
        if not isinstance(navigation_property, str) or not navigation_property.strip():
            raise ConfigurationError("expand navigation property cannot be empty", subcode=CONFIG_INVALID_VALUE)
        if query is not None:
            if query._expand:
                raise ConfigurationError(
                    f"Expanded query '{navigation_property}' cannot expand further; "
                    "the Web API supports a single level of $expand",
                    subcode=CONFIG_NESTED_EXPAND,
                )
            if query._top is not None:
                raise ConfigurationError(
                    f"Expanded query '{navigation_property}' may only use select, filter and order_by",
                    subcode=CONFIG_NESTED_EXPAND,
                )
        return replace(self, _expand=self._expand + (Expand(navigation_property.strip(), query),))

    def order_by(self, attribute: str, descending: bool = False) -> "Query":
        """Add a sort attribute. Can be called multiple times for multi-column sorting."""
        if not isinstance(attribute, str) or not attribute.strip():
            raise ConfigurationError("order_by attribute cannot be empty", subcode=CONFIG_INVALID_VALUE)
        order = OrderBy(attribute.strip(), DESCENDING if descending else ASCENDING)
        return replace(self, _orderby=self._orderby + (order,))

    def top(self, count: int) -> "Query":
        """Cap the number of rows. ``$top`` disables server-driven paging."""
        if isinstance(count, bool) or not isinstance(count, int) or count < 1:
            raise ConfigurationError("top count must be a positive integer", subcode=CONFIG_INVALID_VALUE)
        return replace(self, _top=count)

    # ------------------------------------------------------------ rendering
    def _clauses(self, include_expand: bool = True) -> List[Tuple[str, str]]:
        clauses: List[Tuple[str, str]] = []
        if self._select:
            clauses.append(("$select", ",".join(self._select)))
        if self._filter:
            if len(self._filter) == 1:
                clauses.append(("$filter", self._filter[0]))
            else:
                clauses.append(("$filter", " and ".join(f"({f})" for f in self._filter)))
        if self._orderby:
            clauses.append(("$orderby", ",".join(o.render() for o in self._orderby)))
        if include_expand and self._expand:
            clauses.append(("$expand", ",".join(e.render() for e in self._expand)))
        if include_expand and self._top is not None:
            clauses.append(("$top", str(self._top)))
        return clauses

    def to_query_string(self) -> str:
        """
        Render ``$select``, ``$filter``, ``$orderby``, ``$expand`` and ``$top``
        in that order, joined with ``&``. Empty clauses are omitted.
        """
        return "&".join(f"{name}={encode_query_value(value)}" for name, value in self._clauses())

    def to_relative_url(self) -> str:
        """Entity set path plus query string.

        :raises ~cds_webapi.core.errors.ConfigurationError: If no path has been set.
        """
        if not self.entity_set_path:
            raise ConfigurationError(
                f"Query for '{self.entity_logical_name or '?'}' has no entity set path",
                subcode=CONFIG_MISSING_PATH,
            )
        qs = self.to_query_string()
        return f"{self.entity_set_path}?{qs}" if qs else self.entity_set_path


def query(entity_logical_name: str, entity_set_path: Optional[str] = None) -> Query:
    """Start a query for an entity, optionally with its entity set path."""
    q = Query(entity_logical_name)
    return q.path(entity_set_path) if entity_set_path is not None else q


__all__ = ["Query", "Expand", "OrderBy", "query", "encode_query_value"]
