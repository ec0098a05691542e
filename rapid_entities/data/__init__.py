"""Entity data types: filters, field classification, mapping and events."""

from .entity_fields import (
    EmbeddedEntity,
    EntityList,
    EntityReference,
    ScalarValue,
    classify_entity,
)
from .events import EntityEventTypes, Event, EventBus, RecordingEventBus
from .filters import (
    BooleanFilter,
    CountOptions,
    ExistenceFilter,
    FieldFilter,
    FindOptions,
    OrderBy,
    Pagination,
    parse_filter,
    parse_filters,
)

__all__ = [
    "BooleanFilter",
    "CountOptions",
    "EmbeddedEntity",
    "EntityEventTypes",
    "EntityList",
    "EntityReference",
    "Event",
    "EventBus",
    "ExistenceFilter",
    "FieldFilter",
    "FindOptions",
    "OrderBy",
    "Pagination",
    "RecordingEventBus",
    "ScalarValue",
    "classify_entity",
    "parse_filter",
    "parse_filters",
]
