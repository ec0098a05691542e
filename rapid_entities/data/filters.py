"""
Filter and find option types.

Filters form a tree of three node kinds:

- ``FieldFilter``: ``{field, operator, value}`` compared against a column.
- ``BooleanFilter``: ``and``/``or`` over child filters.
- ``ExistenceFilter``: ``exists``/``notExists`` over a relation property, with
  child filters that constrain the related collection.

Requests arrive as plain dictionaries and are parsed with ``parse_filters``.
"""

from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Optional, Union

from ..errors import ValidationError

FIELD_OPERATORS = frozenset(
    {
        "eq",
        "ne",
        "gt",
        "gte",
        "lt",
        "lte",
        "in",
        "notIn",
        "contains",
        "notContains",
        "startsWith",
        "endsWith",
        "null",
        "notNull",
    }
)
ARRAY_OPERATORS = frozenset({"in", "notIn"})
BOOLEAN_OPERATORS = frozenset({"and", "or"})
EXISTENCE_OPERATORS = frozenset({"exists", "notExists"})


@dataclass
class FieldFilter:
    """Compares one column with a value."""

    field: str
    operator: str
    value: Any = None

    def to_dict(self) -> Dict[str, Any]:
        return {"field": self.field, "operator": self.operator, "value": self.value}


@dataclass
class BooleanFilter:
    """Combines child filters with ``and`` or ``or``."""

    operator: str
    filters: List["Filter"] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {"operator": self.operator, "filters": [f.to_dict() for f in self.filters]}


@dataclass
class ExistenceFilter:
    """Selects owners by whether related entities matching ``filters`` exist."""

    operator: str
    field: str
    filters: List["Filter"] = field(default_factory=list)

    @property
    def negated(self) -> bool:
        return self.operator == "notExists"

    def to_dict(self) -> Dict[str, Any]:
        return {
            "operator": self.operator,
            "field": self.field,
            "filters": [f.to_dict() for f in self.filters],
        }


Filter = Union[FieldFilter, BooleanFilter, ExistenceFilter]


def check_array_value(operator: str, value: Any) -> None:
    """Reject a non-array value for ``in``/``notIn``. ``None`` means an empty array."""
    if operator in ARRAY_OPERATORS and value is not None and not isinstance(value, (list, tuple)):
        raise ValidationError(f"Invalid filters. Value of operator '{operator}' must be an array.")


def parse_filter(data: Union[Filter, Dict[str, Any]]) -> Filter:
    """Parse one filter node from its dictionary form."""
    if isinstance(data, (FieldFilter, BooleanFilter, ExistenceFilter)):
        return data
    if not isinstance(data, dict):
        raise ValidationError(f"Invalid filters. Filter must be an object, got {data!r}.")

    operator = data.get("operator")
    if operator in BOOLEAN_OPERATORS:
        return BooleanFilter(operator=operator, filters=parse_filters(data.get("filters")))
    if operator in EXISTENCE_OPERATORS:
        return ExistenceFilter(
            operator=operator,
            field=data.get("field"),
            filters=parse_filters(data.get("filters")),
        )
    if operator in FIELD_OPERATORS:
        if not data.get("field"):
            raise ValidationError(f"Invalid filters. 'field' is required by operator '{operator}'.")
        check_array_value(operator, data.get("value"))
        return FieldFilter(field=data["field"], operator=operator, value=data.get("value"))
    raise ValidationError(f"Invalid filters. Unknown operator '{operator}'.")


def parse_filters(data: Optional[Iterable[Any]]) -> List[Filter]:
    if not data:
        return []
    if isinstance(data, (dict, str)):
        raise ValidationError("Invalid filters. 'filters' must be an array.")
    return [parse_filter(item) for item in data]


@dataclass
class OrderBy:
    field: str
    desc: bool = False


@dataclass
class Pagination:
    offset: int = 0
    limit: Optional[int] = None


@dataclass
class FindOptions:
    """Options of a find request."""

    filters: List[Filter] = field(default_factory=list)
    order_by: List[OrderBy] = field(default_factory=list)
    pagination: Optional[Pagination] = None
    properties: Optional[List[str]] = None
    keep_non_property_fields: bool = False

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> "FindOptions":
        """Build options from a request body using the camelCase keys of the HTTP API."""
        data = data or {}
        order_by = [
            OrderBy(field=item["field"], desc=bool(item.get("desc")))
            for item in data.get("orderBy") or []
        ]
        pagination = None
        if data.get("pagination"):
            limit = data["pagination"].get("limit")
            pagination = Pagination(
                offset=int(data["pagination"].get("offset") or 0),
                limit=int(limit) if limit is not None else None,
            )
        return cls(
            filters=parse_filters(data.get("filters")),
            order_by=order_by,
            pagination=pagination,
            properties=data.get("properties"),
            keep_non_property_fields=bool(data.get("keepNonPropertyFields")),
        )


@dataclass
class CountOptions:
    filters: List[Filter] = field(default_factory=list)

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> "CountOptions":
        return cls(filters=parse_filters((data or {}).get("filters")))
