"""
Relation expansion.

Attaches related entities to a page of base entities. Each relation property
costs a constant number of queries regardless of the page size.
"""

from typing import Any, Dict, List

import structlog
from sqlalchemy import select

from ..data.filters import FieldFilter, FindOptions
from ..data.mapper import map_db_row_to_entity
from ..db.server import DataServer
from ..schema.models import ID_PROPERTY_CODE, ManyForeignKey, ManyLinkTable, Model, OwningOne, Property
from .filter_rewriter import target_model_of

logger = structlog.get_logger()

Entity = Dict[str, Any]


class RelationExpander:
    """Batch-loads related entities for a page of entities."""

    def __init__(self, server: DataServer):
        self.server = server

    async def expand(self, model: Model, entities: List[Entity], relation_properties: List[Property]) -> List[Entity]:
        if not entities:
            return entities

        entity_ids = [e[ID_PROPERTY_CODE] for e in entities]
        for prop in relation_properties:
            kind = prop.relation_kind
            target = target_model_of(self.server, model, prop)
            logger.debug(
                "expanding_relation",
                model=model.full_code,
                property=prop.code,
                page_size=len(entities),
            )
            if isinstance(kind, ManyLinkTable):
                await self._expand_link_table(target, prop, kind, entities, entity_ids)
            elif isinstance(kind, ManyForeignKey):
                await self._expand_foreign_key(target, prop, kind, entities, entity_ids)
            elif isinstance(kind, OwningOne):
                await self._expand_owning_one(target, prop, kind, entities)
        return entities

    async def _find_by_ids(self, target: Model, ids: List[Any]) -> Dict[Any, Entity]:
        if not ids:
            return {}
        accessor = self.server.get_data_accessor(target)
        rows = await accessor.find(FindOptions(filters=[FieldFilter(ID_PROPERTY_CODE, "in", ids)]))
        return {row[ID_PROPERTY_CODE]: map_db_row_to_entity(self.server.registry, target, row) for row in rows}

    async def _expand_link_table(
        self,
        target: Model,
        prop: Property,
        kind: ManyLinkTable,
        entities: List[Entity],
        entity_ids: List[Any],
    ) -> None:
        link = self.server.link_table(kind)
        links = await self.server.query_database_object(
            select(link).where(link.c[kind.self_id_column_name].in_(entity_ids))
        )
        target_ids = list(dict.fromkeys(row[kind.target_id_column_name] for row in links))
        targets = await self._find_by_ids(target, target_ids)

        for entity in entities:
            entity[prop.code] = [
                dict(targets[row[kind.target_id_column_name]])
                for row in links
                if row[kind.self_id_column_name] == entity[ID_PROPERTY_CODE]
                and row[kind.target_id_column_name] in targets
            ]

    async def _expand_foreign_key(
        self,
        target: Model,
        prop: Property,
        kind: ManyForeignKey,
        entities: List[Entity],
        entity_ids: List[Any],
    ) -> None:
        accessor = self.server.get_data_accessor(target)
        rows = await accessor.find(
            FindOptions(filters=[FieldFilter(kind.self_id_column_name, "in", entity_ids)])
        )
        related: Dict[Any, List[Entity]] = {}
        for row in rows:
            related.setdefault(row[kind.self_id_column_name], []).append(
                map_db_row_to_entity(self.server.registry, target, row)
            )

        for entity in entities:
            entity[prop.code] = related.get(entity[ID_PROPERTY_CODE], [])

    async def _expand_owning_one(
        self,
        target: Model,
        prop: Property,
        kind: OwningOne,
        entities: List[Entity],
    ) -> None:
        target_ids = list(
            dict.fromkeys(
                e.get(kind.target_id_column_name)
                for e in entities
                if e.get(kind.target_id_column_name) is not None
            )
        )
        targets = await self._find_by_ids(target, target_ids)

        for entity in entities:
            related = targets.get(entity.get(kind.target_id_column_name))
            entity[prop.code] = dict(related) if related is not None else None
