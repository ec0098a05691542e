"""
Entity manager.

Public façade over one model: relation-aware find/count, cascading
create/update, delete and link-table relation edits. Every write emits a
domain event through the data server once its changes are persisted.
"""

from contextlib import nullcontext
from typing import Any, Dict, List, Mapping, Optional, Sequence, Union

import structlog

from ..data.events import EntityEventTypes
from ..data.filters import CountOptions, FindOptions
from ..db.accessor import DataAccessor
from ..db.server import DataServer
from ..errors import NotFoundError, UnsupportedOperationError, ValidationError
from ..schema.models import ID_PROPERTY_CODE, ManyLinkTable, Model, Property
from .cascade import CascadePersister
from .entity_finder import EntityFinder

logger = structlog.get_logger()

Entity = Dict[str, Any]


class EntityManager:
    """Reads and writes entities of one model."""

    def __init__(self, server: DataServer, data_accessor: DataAccessor):
        self.server = server
        self.data_accessor = data_accessor
        self.finder = EntityFinder(server)
        self.persister = CascadePersister(server, self.finder)
        self.logger = logger.bind(model=self.get_model().full_code)

    def get_model(self) -> Model:
        return self.data_accessor.get_model()

    def _scope(self):
        if self.server.settings.atomic_cascades:
            return self.server.transaction()
        return nullcontext()

    def _event_payload(self, **data: Any) -> Dict[str, Any]:
        model = self.get_model()
        return {"namespace": model.namespace, "modelSingularCode": model.singular_code, **data}

    # Reads

    async def find_entities(self, options: Union[FindOptions, Mapping[str, Any], None] = None) -> List[Entity]:
        if not isinstance(options, FindOptions):
            options = FindOptions.from_dict(options)
        return await self.finder.find_entities(self.get_model(), options)

    async def find_entity(self, options: Union[FindOptions, Mapping[str, Any], None] = None) -> Optional[Entity]:
        if not isinstance(options, FindOptions):
            options = FindOptions.from_dict(options)
        return await self.finder.find_entity(self.get_model(), options)

    async def find_by_id(self, id: Any, keep_non_property_fields: bool = False) -> Optional[Entity]:
        return await self.finder.find_by_id(
            self.get_model(), id, keep_non_property_fields=keep_non_property_fields
        )

    async def count(self, options: Union[CountOptions, Mapping[str, Any], None] = None) -> Dict[str, int]:
        if not isinstance(options, CountOptions):
            options = CountOptions.from_dict(options)
        return await self.finder.count(self.get_model(), options)

    # Writes

    async def create_entity(self, entity: Mapping[str, Any], source: Optional[str] = None) -> Entity:
        """Create an entity with its embedded and referenced relations."""
        async with self._scope():
            new_entity = await self.persister.create(self.get_model(), entity)
            await self.server.emit_event(
                EntityEventTypes.CREATE,
                self._event_payload(after=new_entity),
                source,
            )
        self.logger.info("entity_created", id=new_entity[ID_PROPERTY_CODE])
        return new_entity

    async def create_entities_batch(
        self, entities: Sequence[Mapping[str, Any]], source: Optional[str] = None
    ) -> List[Entity]:
        """Create entities one after another, each with its own event."""
        return [await self.create_entity(entity, source) for entity in entities]

    async def update_entity_by_id(
        self, id: Any, entity: Mapping[str, Any], source: Optional[str] = None
    ) -> Entity:
        """Update the changed fields of an entity, replacing changed many relations."""
        async with self._scope():
            result = await self.persister.update_by_id(self.get_model(), id, entity)
            if not result.changes:
                return result.after
            await self.server.emit_event(
                EntityEventTypes.UPDATE,
                self._event_payload(before=result.before, after=result.after, changes=result.changes),
                source,
            )
        self.logger.info("entity_updated", id=id, changes=sorted(result.changes))
        return result.after

    async def delete_by_id(self, id: Any, source: Optional[str] = None) -> None:
        """Delete an entity. Deleting a missing entity is a no-op without event."""
        entity = await self.find_by_id(id, keep_non_property_fields=True)
        if entity is None:
            return

        await self.data_accessor.delete_by_id(id)
        await self.server.emit_event(
            EntityEventTypes.DELETE,
            self._event_payload(before=entity),
            source,
        )
        self.logger.info("entity_deleted", id=id)

    # Relation edits

    def _link_table_property(self, operation: str, code: str) -> Property:
        model = self.get_model()
        prop = model.get_property(code)
        if prop is None:
            raise NotFoundError(f"Property '{code}' was not found in {model.full_code}")
        if not (prop.is_relation and prop.relation_kind.is_many):
            raise UnsupportedOperationError(
                operation,
                f"Operation '{operation}' is only supported on property of 'many' relation",
            )
        if not isinstance(prop.relation_kind, ManyLinkTable):
            raise UnsupportedOperationError(
                operation,
                f"Operation '{operation}' is only supported on 'many' relation stored in a link table, "
                f"property '{code}' is stored in a foreign key column.",
            )
        return prop

    async def _load_owner(self, id: Any) -> Entity:
        entity = await self.find_by_id(id)
        if entity is None:
            model = self.get_model()
            raise NotFoundError(f"{model.full_code} with id \"{id}\" was not found.")
        return entity

    @staticmethod
    def _relation_ids(relations: Sequence[Any]) -> List[Any]:
        ids = []
        for relation in relations:
            relation_id = relation.get(ID_PROPERTY_CODE) if isinstance(relation, Mapping) else relation
            if relation_id is None:
                raise ValidationError("Every relation must have an 'id'.")
            ids.append(relation_id)
        return ids

    async def add_relations(
        self, id: Any, property: str, relations: Sequence[Any], source: Optional[str] = None
    ) -> None:
        """Link related entities to an entity. Pairs that are already linked are left alone."""
        entity = await self._load_owner(id)
        prop = self._link_table_property("addRelations", property)
        related_ids = self._relation_ids(relations)

        async with self._scope():
            for related_id in related_ids:
                await self.persister.link(prop.relation_kind, id, related_id)
            await self.server.emit_event(
                EntityEventTypes.ADD_RELATIONS,
                self._event_payload(entity=entity, property=property, relations=list(relations)),
                source,
            )
        self.logger.info("relations_added", id=id, property=property, count=len(related_ids))

    async def remove_relations(
        self, id: Any, property: str, relations: Sequence[Any], source: Optional[str] = None
    ) -> None:
        """Unlink related entities from an entity. Missing pairs are ignored."""
        entity = await self._load_owner(id)
        prop = self._link_table_property("removeRelations", property)
        related_ids = self._relation_ids(relations)

        async with self._scope():
            for related_id in related_ids:
                await self.persister.unlink(prop.relation_kind, id, related_id)
            await self.server.emit_event(
                EntityEventTypes.REMOVE_RELATIONS,
                self._event_payload(entity=entity, property=property, relations=list(relations)),
                source,
            )
        self.logger.info("relations_removed", id=id, property=property, count=len(related_ids))
