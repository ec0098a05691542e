"""
Data accessors.

A data accessor performs primitive, relation-unaware CRUD against the table
of one model. Filters handed to it must already be rewritten: only field and
boolean nodes, with field names resolved to physical columns.
"""

import logging
from abc import ABC, abstractmethod
from contextlib import AbstractAsyncContextManager
from typing import Any, Callable, Dict, List, Optional

from sqlalchemy import Column, Table, and_, delete, func, insert, or_, select, update
from sqlalchemy.ext.asyncio import AsyncConnection

from ..data.filters import (
    BooleanFilter,
    CountOptions,
    ExistenceFilter,
    FieldFilter,
    Filter,
    FindOptions,
    OrderBy,
    check_array_value,
)
from ..errors import NotFoundError, ValidationError
from ..schema.models import ID_PROPERTY_CODE, Model
from ..schema.registry import ModelRegistry

logger = logging.getLogger(__name__)

Row = Dict[str, Any]
ConnectionFactory = Callable[[], AbstractAsyncContextManager[AsyncConnection]]


class DataAccessor(ABC):
    """Primitive storage operations for one model."""

    @abstractmethod
    def get_model(self) -> Model:
        """The model this accessor reads and writes."""

    @abstractmethod
    async def find(self, options: FindOptions) -> List[Row]:
        """Find rows matching the options."""

    @abstractmethod
    async def find_one(self, options: FindOptions) -> Optional[Row]:
        """Find the first row matching the options."""

    @abstractmethod
    async def find_by_id(self, id: Any) -> Optional[Row]:
        """Get a row by id."""

    @abstractmethod
    async def create(self, row: Row) -> Row:
        """Insert a row and return it with its new id."""

    @abstractmethod
    async def update_by_id(self, id: Any, partial: Row) -> Row:
        """Update columns of a row and return the updated row."""

    @abstractmethod
    async def delete_by_id(self, id: Any) -> None:
        """Delete a row by id."""

    @abstractmethod
    async def count(self, options: CountOptions) -> Dict[str, int]:
        """Count rows matching the filters, as ``{"total": n}``."""


class SqlDataAccessor(DataAccessor):
    """Data accessor backed by a SQLAlchemy table."""

    def __init__(self, connect: ConnectionFactory, registry: ModelRegistry, model: Model):
        self._connect = connect
        self._model = model
        self.table: Table = registry.table_for(model)

    def get_model(self) -> Model:
        return self._model

    def _column(self, name: str) -> Column:
        try:
            return self.table.c[name]
        except KeyError:
            raise NotFoundError(
                f"Column '{name}' does not exist in table '{self.table.name}' "
                f"of model '{self._model.full_code}'."
            ) from None

    def _build_condition(self, node: Filter):
        if isinstance(node, BooleanFilter):
            children = [self._build_condition(f) for f in node.filters]
            if not children:
                return None
            return and_(*children) if node.operator == "and" else or_(*children)

        if isinstance(node, ExistenceFilter):
            raise ValidationError(
                f"Filter '{node.operator}' on '{node.field}' must be rewritten before reaching storage."
            )

        column = self._column(node.field)
        operator, value = node.operator, node.value
        check_array_value(operator, value)
        if operator == "eq":
            return column.is_(None) if value is None else column == value
        elif operator == "ne":
            return column.is_not(None) if value is None else column != value
        elif operator == "gt":
            return column > value
        elif operator == "gte":
            return column >= value
        elif operator == "lt":
            return column < value
        elif operator == "lte":
            return column <= value
        elif operator == "in":
            return column.in_(list(value or []))
        elif operator == "notIn":
            return column.not_in(list(value or []))
        elif operator == "contains":
            return column.contains(value, autoescape=True)
        elif operator == "notContains":
            return ~column.contains(value, autoescape=True)
        elif operator == "startsWith":
            return column.startswith(value, autoescape=True)
        elif operator == "endsWith":
            return column.endswith(value, autoescape=True)
        elif operator == "null":
            return column.is_(None)
        elif operator == "notNull":
            return column.is_not(None)
        raise ValidationError(f"Unsupported filter operator '{operator}'.")

    def _where(self, statement, filters: List[Filter]):
        conditions = [c for c in (self._build_condition(f) for f in filters) if c is not None]
        if conditions:
            statement = statement.where(and_(*conditions))
        return statement

    def _order(self, statement, order_by: List[OrderBy]):
        for item in order_by:
            column = self._column(item.field)
            statement = statement.order_by(column.desc() if item.desc else column.asc())
        return statement

    def _select(self, options: FindOptions):
        if options.properties is not None:
            names = [ID_PROPERTY_CODE] + [p for p in options.properties if p != ID_PROPERTY_CODE]
            statement = select(*[self._column(name) for name in dict.fromkeys(names)])
        else:
            statement = select(self.table)

        statement = self._where(statement, options.filters)
        statement = self._order(statement, options.order_by)
        if options.pagination:
            if options.pagination.offset:
                statement = statement.offset(options.pagination.offset)
            if options.pagination.limit is not None:
                statement = statement.limit(options.pagination.limit)
        return statement

    async def find(self, options: FindOptions) -> List[Row]:
        async with self._connect() as conn:
            result = await conn.execute(self._select(options))
            return [dict(row._mapping) for row in result]

    async def find_one(self, options: FindOptions) -> Optional[Row]:
        async with self._connect() as conn:
            result = await conn.execute(self._select(options).limit(1))
            row = result.first()
            return dict(row._mapping) if row is not None else None

    async def find_by_id(self, id: Any) -> Optional[Row]:
        async with self._connect() as conn:
            result = await conn.execute(select(self.table).where(self.table.c.id == id))
            row = result.first()
            return dict(row._mapping) if row is not None else None

    async def create(self, row: Row) -> Row:
        values = {self._column(name).name: value for name, value in row.items() if name != ID_PROPERTY_CODE}
        async with self._connect() as conn:
            result = await conn.execute(insert(self.table).values(**values))
            new_id = result.inserted_primary_key[0]
            created = await conn.execute(select(self.table).where(self.table.c.id == new_id))
            logger.debug(f"Created row {new_id} in {self.table.name}")
            return dict(created.one()._mapping)

    async def update_by_id(self, id: Any, partial: Row) -> Row:
        values = {self._column(name).name: value for name, value in partial.items() if name != ID_PROPERTY_CODE}
        async with self._connect() as conn:
            if values:
                await conn.execute(update(self.table).where(self.table.c.id == id).values(**values))
            result = await conn.execute(select(self.table).where(self.table.c.id == id))
            row = result.first()
            if row is None:
                raise NotFoundError(f"{self._model.full_code} with id \"{id}\" was not found.")
            return dict(row._mapping)

    async def delete_by_id(self, id: Any) -> None:
        async with self._connect() as conn:
            await conn.execute(delete(self.table).where(self.table.c.id == id))

    async def count(self, options: CountOptions) -> Dict[str, int]:
        statement = self._where(select(func.count()).select_from(self.table), options.filters)
        async with self._connect() as conn:
            result = await conn.execute(statement)
            return {"total": int(result.scalar_one())}
