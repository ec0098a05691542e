"""Relation-aware reads: find, find by id and count."""

from typing import Any, Dict, List, Optional, Sequence

from ..data.filters import CountOptions, FieldFilter, FindOptions, OrderBy
from ..data.mapper import map_db_row_to_entity, map_property_to_column
from ..db.server import DataServer
from ..schema.models import ID_PROPERTY_CODE, Model, OwningOne, Property
from .filter_rewriter import FilterRewriter
from .relation_expander import RelationExpander

Entity = Dict[str, Any]


class EntityFinder:
    """Runs find requests: filter rewriting, the base query and relation expansion."""

    def __init__(self, server: DataServer):
        self.server = server
        self.rewriter = FilterRewriter(server)
        self.expander = RelationExpander(server)

    def _selection(self, model: Model, properties: Sequence[str]):
        columns: List[str] = []
        relation_properties: List[Property] = []
        for code in properties:
            # id is always selected, declared or not
            if code == ID_PROPERTY_CODE:
                continue
            prop = model.require_property(code)
            if prop.is_relation:
                relation_properties.append(prop)
                kind = prop.relation_kind
                if isinstance(kind, OwningOne):
                    columns.append(kind.target_id_column_name)
            else:
                columns.append(prop.column)
        return columns, relation_properties

    async def find_entities(self, model: Model, options: FindOptions) -> List[Entity]:
        columns: Optional[List[str]] = None
        relation_properties: List[Property] = []
        if options.properties:
            columns, relation_properties = self._selection(model, options.properties)

        query = FindOptions(
            filters=await self.rewriter.rewrite(model, options.filters),
            order_by=[
                OrderBy(map_property_to_column(self.server.registry, model, o.field), o.desc)
                for o in options.order_by
            ],
            pagination=options.pagination,
            properties=columns,
        )
        return await self._fetch(model, query, relation_properties, options.keep_non_property_fields)

    async def find_entity(self, model: Model, options: FindOptions) -> Optional[Entity]:
        entities = await self.find_entities(model, options)
        return entities[0] if entities else None

    async def find_by_id(
        self,
        model: Model,
        id: Any,
        relations: Sequence[str] = (),
        keep_non_property_fields: bool = False,
    ) -> Optional[Entity]:
        """Load one entity with all its columns, expanding the named relation properties."""
        relation_properties = [model.require_property(code) for code in relations]
        query = FindOptions(filters=[FieldFilter(ID_PROPERTY_CODE, "eq", id)])
        entities = await self._fetch(model, query, relation_properties, keep_non_property_fields)
        return entities[0] if entities else None

    async def count(self, model: Model, options: CountOptions) -> Dict[str, int]:
        filters = await self.rewriter.rewrite(model, options.filters)
        accessor = self.server.get_data_accessor(model)
        return await accessor.count(CountOptions(filters=filters))

    async def _fetch(
        self,
        model: Model,
        query: FindOptions,
        relation_properties: List[Property],
        keep_non_property_fields: bool,
    ) -> List[Entity]:
        accessor = self.server.get_data_accessor(model)
        rows = await accessor.find(query)
        if not rows:
            return []

        entities = [
            map_db_row_to_entity(self.server.registry, model, row, keep_non_property_fields)
            for row in rows
        ]
        if relation_properties:
            await self.expander.expand(model, entities, relation_properties)
        return entities
