"""
Data server.

The server is the narrow contract the entity engine consumes: model lookup,
per-model data accessors, raw statements for link tables, an optional
transaction scope and event emission.
"""

import logging
from contextlib import asynccontextmanager
from contextvars import ContextVar
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, AsyncIterator, Dict, List, Optional, Tuple

from sqlalchemy import Table
from sqlalchemy.ext.asyncio import AsyncConnection, AsyncEngine

from ..config import Settings, get_settings
from ..data.events import Event, EventBus
from ..errors import NotFoundError
from ..schema.models import ManyLinkTable, Model
from ..schema.registry import ModelRef, ModelRegistry
from .accessor import DataAccessor, SqlDataAccessor

if TYPE_CHECKING:
    from ..core.entity_manager import EntityManager

logger = logging.getLogger(__name__)


@dataclass
class _TransactionScope:
    server: "DataServer"
    connection: AsyncConnection
    pending_events: List[Tuple[str, Dict[str, Any], Optional[str]]] = field(default_factory=list)


_current_scope: ContextVar[Optional[_TransactionScope]] = ContextVar(
    "rapid_entities_transaction_scope", default=None
)


class DataServer:
    """Gives the entity engine access to models, storage and the event bus."""

    def __init__(
        self,
        engine: AsyncEngine,
        registry: ModelRegistry,
        event_bus: Optional[EventBus] = None,
        settings: Optional[Settings] = None,
    ):
        self.engine = engine
        self.registry = registry
        self.event_bus = event_bus or EventBus()
        self.settings = settings or get_settings()
        self._accessors: Dict[str, DataAccessor] = {}

    def get_model(self, ref: ModelRef) -> Optional[Model]:
        return self.registry.get_model(ref)

    def get_data_accessor(self, ref: ModelRef) -> DataAccessor:
        model = self.registry.get_model(ref)
        if model is None:
            raise NotFoundError(f"Data accessor of model '{ref}' was not found.")
        accessor = self._accessors.get(model.full_code)
        if accessor is None:
            accessor = SqlDataAccessor(self.connect, self.registry, model)
            self._accessors[model.full_code] = accessor
        return accessor

    def get_entity_manager(self, ref: ModelRef) -> "EntityManager":
        from ..core.entity_manager import EntityManager

        return EntityManager(self, self.get_data_accessor(ref))

    def link_table(self, relation: ManyLinkTable) -> Table:
        return self.registry.link_table_for(relation)

    def _scope(self) -> Optional[_TransactionScope]:
        scope = _current_scope.get()
        if scope is not None and scope.server is self:
            return scope
        return None

    @property
    def in_transaction(self) -> bool:
        return self._scope() is not None

    @asynccontextmanager
    async def connect(self) -> AsyncIterator[AsyncConnection]:
        """Yield the connection of the current transaction, or a new auto-committed one."""
        scope = self._scope()
        if scope is not None:
            yield scope.connection
            return
        async with self.engine.begin() as conn:
            yield conn

    @asynccontextmanager
    async def transaction(self) -> AsyncIterator[AsyncConnection]:
        """Run the enclosed storage operations in one transaction.

        Nested scopes join the outermost one. Events emitted inside the scope
        are delivered after commit and dropped on rollback.
        """
        scope = self._scope()
        if scope is not None:
            yield scope.connection
            return

        async with self.engine.begin() as conn:
            scope = _TransactionScope(server=self, connection=conn)
            token = _current_scope.set(scope)
            try:
                yield conn
            except BaseException:
                logger.debug("Rolling back transaction, %d events dropped", len(scope.pending_events))
                raise
            finally:
                _current_scope.reset(token)

        for event_type, payload, source in scope.pending_events:
            await self.event_bus.emit(Event(event_type, payload, source))

    async def query_database_object(self, statement: Any, params: Optional[Dict[str, Any]] = None) -> List[Dict[str, Any]]:
        """Execute a statement and return its rows as dictionaries."""
        async with self.connect() as conn:
            result = await conn.execute(statement, params) if params else await conn.execute(statement)
            if not result.returns_rows:
                return []
            return [dict(row._mapping) for row in result]

    async def emit_event(self, event_type: str, payload: Dict[str, Any], source: Optional[str] = None) -> None:
        scope = self._scope()
        if scope is not None:
            scope.pending_events.append((event_type, payload, source))
            return
        await self.event_bus.emit(Event(event_type, payload, source))
