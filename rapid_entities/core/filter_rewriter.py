"""
Filter rewriting.

Rewrites a filter tree so it can be handed to a relation-unaware data accessor:
``exists``/``notExists`` nodes over relation properties are replaced by
``in``/``notIn`` predicates on id columns, and property codes are resolved to
physical column names.
"""

from typing import Any, List

import structlog
from sqlalchemy import select

from ..data.filters import BooleanFilter, ExistenceFilter, FieldFilter, Filter, FindOptions
from ..data.mapper import map_property_to_column
from ..db.server import DataServer
from ..errors import ConfigurationError, NotFoundError, ValidationError
from ..schema.models import ID_PROPERTY_CODE, ManyForeignKey, ManyLinkTable, Model, OwningOne, Property

logger = structlog.get_logger()

ID_SHORTCUT_OPERATORS = {"eq": "ne", "in": "notIn"}


def _distinct(values: List[Any]) -> List[Any]:
    return list(dict.fromkeys(v for v in values if v is not None))


def target_model_of(server: DataServer, model: Model, prop: Property) -> Model:
    """Resolve the target model of a relation property, preferring the owner's namespace."""
    kind = prop.relation_kind
    target = server.get_model({"namespace": model.namespace, "singularCode": kind.target_singular_code})
    if target is None:
        target = server.get_model(kind.target_singular_code)
    if target is None:
        raise ConfigurationError(
            f"Target model '{kind.target_singular_code}' of property '{prop.code}' "
            f"in model '{model.full_code}' is not registered."
        )
    return target


class FilterRewriter:
    """Rewrites existence filters into containment filters."""

    def __init__(self, server: DataServer):
        self.server = server

    async def rewrite(self, model: Model, filters: List[Filter]) -> List[Filter]:
        rewritten: List[Filter] = []
        for node in filters or []:
            if isinstance(node, BooleanFilter):
                rewritten.append(BooleanFilter(node.operator, await self.rewrite(model, node.filters)))
            elif isinstance(node, ExistenceFilter):
                rewritten.append(await self._rewrite_existence(model, node))
            else:
                column = map_property_to_column(self.server.registry, model, node.field)
                rewritten.append(FieldFilter(column, node.operator, node.value))
        return rewritten

    async def _rewrite_existence(self, model: Model, node: ExistenceFilter) -> FieldFilter:
        prop = model.get_property(node.field) if node.field else None
        if prop is None:
            raise NotFoundError(
                f"Invalid filters. Property '{node.field}' was not found in model '{model.full_code}'"
            )
        if not prop.is_relation:
            raise ValidationError(
                f"Invalid filters. Filter with 'existence' operator on property '{node.field}' "
                "is not allowed. You can only use it on an relation property."
            )
        if not node.filters:
            raise ValidationError(
                "Invalid filters. 'filters' must be provided on filter with 'existence' operator."
            )

        kind = prop.relation_kind
        target = target_model_of(self.server, model, prop)
        containment = "notIn" if node.negated else "in"
        log = logger.bind(model=model.full_code, property=prop.code, operator=node.operator)

        if isinstance(kind, OwningOne):
            shortcut = self._id_shortcut(node)
            if shortcut is not None:
                log.debug("existence_filter_shortcut")
                return FieldFilter(kind.target_id_column_name, shortcut.operator, shortcut.value)

            target_ids = await self._find_column_values(target, node.filters, ID_PROPERTY_CODE)
            return FieldFilter(kind.target_id_column_name, containment, target_ids)

        if isinstance(kind, ManyForeignKey):
            self_ids = await self._find_column_values(target, node.filters, kind.self_id_column_name)
            return FieldFilter(ID_PROPERTY_CODE, containment, self_ids)

        if isinstance(kind, ManyLinkTable):
            target_ids = await self._find_column_values(target, node.filters, ID_PROPERTY_CODE)
            link = self.server.link_table(kind)
            links = await self.server.query_database_object(
                select(link.c[kind.self_id_column_name]).where(
                    link.c[kind.target_id_column_name].in_(target_ids)
                )
            )
            self_ids = _distinct([row[kind.self_id_column_name] for row in links])
            return FieldFilter(ID_PROPERTY_CODE, containment, self_ids)

        raise ConfigurationError(f"Unknown relation kind of property '{prop.code}'.")

    @staticmethod
    def _id_shortcut(node: ExistenceFilter):
        if len(node.filters) != 1:
            return None
        only = node.filters[0]
        if not isinstance(only, FieldFilter) or only.field != ID_PROPERTY_CODE:
            return None
        if only.operator not in ID_SHORTCUT_OPERATORS:
            return None
        operator = ID_SHORTCUT_OPERATORS[only.operator] if node.negated else only.operator
        return FieldFilter(ID_PROPERTY_CODE, operator, only.value)

    async def _find_column_values(self, target: Model, filters: List[Filter], column: str) -> List[Any]:
        nested = await self.rewrite(target, filters)
        accessor = self.server.get_data_accessor(target)
        rows = await accessor.find(FindOptions(filters=nested, properties=[column]))
        return _distinct([row[column] for row in rows])
