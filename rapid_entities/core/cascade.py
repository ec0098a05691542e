"""
Cascading persistence.

Creates and updates entities together with their relation graphs:

- an embedded entity without an id is created, depth-first, before it is linked;
- an entity reference (bare id, or object with an id) is looked up and linked;
- owning-one relations are written to the owner's FK column;
- many relations are written to link tables or to the targets' FK column.

Nested creates run strictly in order since later steps need the ids produced
by earlier ones. Transaction scope is decided by the caller.
"""

from contextlib import contextmanager
from dataclasses import dataclass, field
from typing import Any, Dict, Iterator, List, Mapping, Optional

import structlog
from sqlalchemy import delete, insert, select, update

from ..data.entity_fields import (
    EmbeddedEntity,
    EntityList,
    EntityReference,
    FieldValue,
    ScalarValue,
    classify_entity,
)
from ..data.mapper import map_db_row_to_entity, map_entity_to_db_row
from ..db.server import DataServer
from ..errors import CascadeCycleError, CascadeDepthError, NotFoundError, ValidationError
from ..schema.models import ID_PROPERTY_CODE, ManyForeignKey, ManyLinkTable, Model, OwningOne, Property
from .entity_finder import EntityFinder
from .filter_rewriter import target_model_of

logger = structlog.get_logger()

Entity = Dict[str, Any]


class CascadeGuard:
    """Bounds the depth of nested creates and detects embedded entities that contain themselves."""

    def __init__(self, max_depth: int):
        self.max_depth = max_depth
        self._ancestors: List[int] = []

    @property
    def depth(self) -> int:
        return len(self._ancestors)

    @contextmanager
    def enter(self, model: Model, values: Mapping[str, Any]) -> Iterator[None]:
        key = id(values)
        if key in self._ancestors:
            raise CascadeCycleError(
                f"Embedded '{model.full_code}' entity refers back to one of its ancestors."
            )
        if len(self._ancestors) >= self.max_depth:
            raise CascadeDepthError(
                f"Embedded entities are nested deeper than {self.max_depth} levels "
                f"at model '{model.full_code}'."
            )
        self._ancestors.append(key)
        try:
            yield
        finally:
            self._ancestors.pop()


@dataclass
class UpdateResult:
    before: Entity
    after: Entity
    changes: Dict[str, Any] = field(default_factory=dict)


class CascadePersister:
    """Writes entities and their related entities."""

    def __init__(self, server: DataServer, finder: Optional[EntityFinder] = None):
        self.server = server
        self.finder = finder or EntityFinder(server)

    def new_guard(self) -> CascadeGuard:
        return CascadeGuard(self.server.settings.max_cascade_depth)

    # Create

    async def create(
        self,
        model: Model,
        entity: Mapping[str, Any],
        guard: Optional[CascadeGuard] = None,
        extra_columns: Optional[Dict[str, Any]] = None,
    ) -> Entity:
        """Create an entity and, recursively, the related entities embedded in it.

        ``extra_columns`` are written to the new row as they are, e.g. the
        owner id of a many relation stored in the target's FK column.
        """
        guard = guard or self.new_guard()
        with guard.enter(model, entity):
            fields = classify_entity(model, entity)
            row = map_entity_to_db_row(model, entity)

            attached: Entity = {}
            for code, value in fields.items():
                prop = model.require_property(code)
                if isinstance(value, (EntityReference, EmbeddedEntity)):
                    target_id, created = await self._resolve_one(model, prop, value, guard)
                    row[prop.relation_kind.target_id_column_name] = target_id
                    if created is not None:
                        attached[code] = created
            if extra_columns:
                row.update(extra_columns)

            accessor = self.server.get_data_accessor(model)
            new_row = await accessor.create(row)
            new_entity = map_db_row_to_entity(self.server.registry, model, new_row)
            new_entity.update(attached)
            logger.debug("entity_row_created", model=model.full_code, id=new_entity[ID_PROPERTY_CODE], depth=guard.depth)

            for code, value in fields.items():
                if isinstance(value, EntityList):
                    prop = model.require_property(code)
                    new_entity[code] = await self._save_many(
                        model, prop, new_entity[ID_PROPERTY_CODE], value, guard
                    )
            return new_entity

    async def _resolve_one(self, model: Model, prop: Property, value: FieldValue, guard: CascadeGuard):
        """Return the target id for an owning-one value, creating embedded targets first."""
        if isinstance(value, EntityReference):
            return value.id, None
        target = target_model_of(self.server, model, prop)
        created = await self.create(target, value.values, guard)
        return created[ID_PROPERTY_CODE], created

    async def _save_many(
        self,
        model: Model,
        prop: Property,
        owner_id: Any,
        value: EntityList,
        guard: CascadeGuard,
    ) -> List[Entity]:
        kind = prop.relation_kind
        target = target_model_of(self.server, model, prop)
        accessor = self.server.get_data_accessor(target)

        saved: List[Entity] = []
        for item in value.items:
            if isinstance(item, EmbeddedEntity):
                extra = None
                if isinstance(kind, ManyForeignKey):
                    extra = {kind.self_id_column_name: owner_id}
                related = await self.create(target, item.values, guard, extra_columns=extra)
                if isinstance(kind, ManyLinkTable):
                    await self.link(kind, owner_id, related[ID_PROPERTY_CODE])
            else:
                row = await accessor.find_by_id(item.id)
                if row is None:
                    raise NotFoundError(
                        f"Entity with id '{item.id}' in field '{prop.code}' is not exists."
                    )
                if isinstance(kind, ManyLinkTable):
                    await self.link(kind, owner_id, item.id)
                else:
                    row = await accessor.update_by_id(item.id, {kind.self_id_column_name: owner_id})
                related = map_db_row_to_entity(self.server.registry, target, row)
            saved.append(related)
        return saved

    # Link tables

    async def link(self, kind: ManyLinkTable, self_id: Any, target_id: Any) -> bool:
        """Insert a link row unless the pair already exists. Returns whether a row was added."""
        link = self.server.link_table(kind)
        self_column = link.c[kind.self_id_column_name]
        target_column = link.c[kind.target_id_column_name]
        existing = await self.server.query_database_object(
            select(self_column).where(self_column == self_id, target_column == target_id).limit(1)
        )
        if existing:
            return False
        await self.server.query_database_object(
            insert(link).values({kind.self_id_column_name: self_id, kind.target_id_column_name: target_id})
        )
        return True

    async def unlink(self, kind: ManyLinkTable, self_id: Any, target_id: Any) -> None:
        link = self.server.link_table(kind)
        await self.server.query_database_object(
            delete(link).where(
                link.c[kind.self_id_column_name] == self_id,
                link.c[kind.target_id_column_name] == target_id,
            )
        )

    async def clear_links(self, kind: ManyLinkTable, self_id: Any) -> None:
        link = self.server.link_table(kind)
        await self.server.query_database_object(
            delete(link).where(link.c[kind.self_id_column_name] == self_id)
        )

    async def _detach_foreign_keys(self, target: Model, kind: ManyForeignKey, owner_id: Any, keep_ids: List[Any]) -> None:
        """Clear the FK of target rows pointing at the owner, except ``keep_ids``."""
        table = self.server.registry.table_for(target)
        column = table.c[kind.self_id_column_name]
        statement = update(table).where(column == owner_id)
        if keep_ids:
            statement = statement.where(table.c[ID_PROPERTY_CODE].not_in(keep_ids))
        await self.server.query_database_object(statement.values({kind.self_id_column_name: None}))

    # Update

    def _changes(self, model: Model, current: Entity, entity: Mapping[str, Any], fields: Dict[str, FieldValue]) -> Dict[str, Any]:
        """Top-level fields of ``entity`` that differ from ``current``."""
        changes: Dict[str, Any] = {}
        for code, value in fields.items():
            prop = model.require_property(code)
            if isinstance(value, ScalarValue):
                changed = code not in current or current[code] != value.value
            elif isinstance(value, EntityList):
                current_ids = [e[ID_PROPERTY_CODE] for e in current.get(code) or []]
                changed = value.has_embedded or (
                    len(value.reference_ids) != len(current_ids)
                    or set(value.reference_ids) != set(current_ids)
                )
            elif isinstance(value, EntityReference):
                changed = current.get(prop.relation_kind.target_id_column_name) != value.id
            else:
                changed = True
            if changed:
                changes[code] = entity[code]
        return changes

    async def update_by_id(
        self,
        model: Model,
        id: Any,
        entity: Mapping[str, Any],
        guard: Optional[CascadeGuard] = None,
    ) -> UpdateResult:
        """Update the changed fields of an entity.

        Many relations are fully replaced: link rows of the owner are deleted
        and rebuilt, and target rows no longer listed have their FK cleared.
        """
        if id is None:
            raise ValidationError("Id is required when updating an entity.")

        guard = guard or self.new_guard()
        fields = classify_entity(model, entity)
        relation_codes = [code for code in fields if model.require_property(code).is_relation]
        current = await self.finder.find_by_id(model, id, relations=relation_codes)
        if current is None:
            raise NotFoundError(f"{model.full_code} with id \"{id}\" was not found.")

        changes = self._changes(model, current, entity, fields)
        if not changes:
            logger.debug("entity_unchanged", model=model.full_code, id=id)
            return UpdateResult(before=current, after=current, changes={})

        log = logger.bind(model=model.full_code, id=id)
        with guard.enter(model, entity):
            row = map_entity_to_db_row(model, changes)
            related_one: Entity = {}
            for code in changes:
                value = fields[code]
                if isinstance(value, (EntityReference, EmbeddedEntity)):
                    prop = model.require_property(code)
                    target_id, created = await self._resolve_one(model, prop, value, guard)
                    row[prop.relation_kind.target_id_column_name] = target_id
                    related_one[code] = (prop, target_id, created)

            updated = dict(current)
            if row:
                accessor = self.server.get_data_accessor(model)
                updated_row = await accessor.update_by_id(id, row)
                updated.update(map_db_row_to_entity(self.server.registry, model, updated_row))
                log.debug("entity_row_updated", columns=sorted(row))

            for code, (prop, target_id, created) in related_one.items():
                if created is None and target_id is not None:
                    target = target_model_of(self.server, model, prop)
                    target_row = await self.server.get_data_accessor(target).find_by_id(target_id)
                    created = map_db_row_to_entity(self.server.registry, target, target_row)
                updated[code] = created

            for code in changes:
                value = fields[code]
                if not isinstance(value, EntityList):
                    continue
                prop = model.require_property(code)
                kind = prop.relation_kind
                if isinstance(kind, ManyLinkTable):
                    await self.clear_links(kind, id)
                else:
                    target = target_model_of(self.server, model, prop)
                    await self._detach_foreign_keys(target, kind, id, list(value.reference_ids))
                updated[code] = await self._save_many(model, prop, id, value, guard)
                log.debug("relation_replaced", property=code, count=len(updated[code]))

        return UpdateResult(before=current, after=updated, changes=changes)
