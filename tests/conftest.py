"""Test configuration and fixtures."""

import json
from typing import Any, Dict, List

import pytest
import pytest_asyncio
from sqlalchemy import event, select
from sqlalchemy.ext.asyncio import create_async_engine
from sqlalchemy.pool import StaticPool

from rapid_entities.config import Settings
from rapid_entities.data.events import RecordingEventBus
from rapid_entities.db.server import DataServer
from rapid_entities.schema.registry import ModelRegistry

BLOG_MODELS: List[Dict[str, Any]] = [
    {
        "namespace": "blog",
        "singularCode": "post",
        "pluralCode": "posts",
        "properties": [
            {"code": "id", "type": "integer"},
            {"code": "title", "type": "text"},
            {"code": "views", "type": "integer"},
            {"code": "publishedOn", "type": "text", "columnName": "published_on"},
            {
                "code": "author",
                "relation": "one",
                "targetSingularCode": "user",
                "targetIdColumnName": "authorId",
            },
            {
                "code": "comments",
                "relation": "many",
                "targetSingularCode": "comment",
                "selfIdColumnName": "postId",
            },
            {
                "code": "tags",
                "relation": "many",
                "targetSingularCode": "tag",
                "linkTableName": "post_tags",
                "selfIdColumnName": "postId",
                "targetIdColumnName": "tagId",
            },
        ],
    },
    {
        "namespace": "blog",
        "singularCode": "comment",
        "pluralCode": "comments",
        "properties": [
            {"code": "body", "type": "text"},
            {
                "code": "author",
                "relation": "one",
                "targetSingularCode": "user",
                "targetIdColumnName": "authorId",
            },
        ],
    },
    {
        "namespace": "blog",
        "singularCode": "user",
        "pluralCode": "users",
        "properties": [
            {"code": "name", "type": "text"},
        ],
    },
    {
        "namespace": "blog",
        "singularCode": "tag",
        "pluralCode": "tags",
        "properties": [
            {"code": "name", "type": "text"},
            {
                "code": "posts",
                "relation": "many",
                "targetSingularCode": "post",
                "linkTableName": "post_tags",
                "selfIdColumnName": "tagId",
                "targetIdColumnName": "postId",
            },
        ],
    },
    {
        "namespace": "blog",
        "singularCode": "category",
        "pluralCode": "categories",
        "properties": [
            {"code": "name", "type": "text"},
            {
                "code": "parent",
                "relation": "one",
                "targetSingularCode": "category",
                "targetIdColumnName": "parentId",
            },
        ],
    },
]


@pytest.fixture
def blog_models() -> List[Dict[str, Any]]:
    return json.loads(json.dumps(BLOG_MODELS))


@pytest.fixture
def registry(blog_models) -> ModelRegistry:
    return ModelRegistry.from_definitions(blog_models)


@pytest.fixture
def schema_file(tmp_path, blog_models):
    path = tmp_path / "schema.json"
    path.write_text(json.dumps({"models": blog_models}), encoding="utf-8")
    return path


@pytest.fixture
def settings() -> Settings:
    return Settings(
        database_url="sqlite+aiosqlite:///:memory:",
        atomic_cascades=True,
        max_cascade_depth=4,
    )


@pytest_asyncio.fixture
async def engine(registry):
    """Create a fresh in-memory database for each test."""
    engine = create_async_engine(
        "sqlite+aiosqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    async with engine.begin() as conn:
        await conn.run_sync(registry.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def event_bus() -> RecordingEventBus:
    return RecordingEventBus()


@pytest.fixture
def server(engine, registry, event_bus, settings) -> DataServer:
    return DataServer(engine, registry, event_bus=event_bus, settings=settings)


@pytest.fixture
def statements(engine) -> List[str]:
    """Record every SQL statement sent to the database."""
    recorded: List[str] = []

    def before_cursor_execute(conn, cursor, statement, parameters, context, executemany):
        recorded.append(statement)

    event.listen(engine.sync_engine, "before_cursor_execute", before_cursor_execute)
    yield recorded
    event.remove(engine.sync_engine, "before_cursor_execute", before_cursor_execute)


@pytest.fixture
def link_rows(server):
    """Read the rows of a link table, oldest first."""

    async def read(table_name: str = "post_tags") -> List[Dict[str, Any]]:
        table = server.registry.metadata.tables[table_name]
        return await server.query_database_object(select(table).order_by(table.c.id))

    return read


@pytest.fixture
def writes(statements):
    """Return the INSERT, UPDATE and DELETE statements recorded so far."""

    def recorded_writes() -> List[str]:
        return [s for s in statements if s.lstrip().upper().startswith(("INSERT", "UPDATE", "DELETE"))]

    return recorded_writes
