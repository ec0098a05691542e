"""
Tests for relation-aware reads.

Verifies:
- Selected relation properties are attached to every entity of a page
- The number of queries per relation does not grow with the page size
- find_by_id, count, ordering and property selection
"""

import pytest
import pytest_asyncio

from rapid_entities.errors import NotFoundError


async def _seed_posts(server, count):
    """Create ``count`` posts, each with an author, two comments and two tags."""
    manager = server.get_entity_manager("post")
    shared = await server.get_data_accessor("tag").create({"name": "shared"})
    for i in range(count):
        await manager.create_entity(
            {
                "title": f"post {i}",
                "views": i,
                "author": {"name": f"author {i}"},
                "comments": [{"body": f"first on {i}"}, {"body": f"second on {i}"}],
                "tags": [{"id": shared["id"]}, {"name": f"tag {i}"}],
            }
        )
    return manager


@pytest_asyncio.fixture
async def posts(server):
    return await _seed_posts(server, 3)


class TestRelationExpansion:
    """Tests for attaching related entities."""

    @pytest.mark.asyncio
    async def test_expands_every_relation_kind(self, posts):
        entities = await posts.find_entities(
            {"properties": ["id", "title", "author", "comments", "tags"], "orderBy": [{"field": "id"}]}
        )

        assert [e["title"] for e in entities] == ["post 0", "post 1", "post 2"]
        second = entities[1]
        assert second["author"]["name"] == "author 1"
        assert second["authorId"] == second["author"]["id"]
        assert [c["body"] for c in second["comments"]] == ["first on 1", "second on 1"]
        assert all(c["postId"] == second["id"] for c in second["comments"])
        assert [t["name"] for t in second["tags"]] == ["shared", "tag 1"]

    @pytest.mark.asyncio
    async def test_empty_relations(self, server):
        manager = server.get_entity_manager("post")
        await manager.create_entity({"title": "lonely"})

        entity = await manager.find_entity({"properties": ["title", "author", "comments", "tags"]})

        assert entity == {"id": 1, "title": "lonely", "authorId": None, "author": None, "comments": [], "tags": []}

    @pytest.mark.asyncio
    async def test_shared_targets_are_separate_objects(self, posts):
        entities = await posts.find_entities({"properties": ["tags"]})

        first, second = entities[0]["tags"][0], entities[1]["tags"][0]
        assert first == second
        assert first is not second

    @pytest.mark.asyncio
    async def test_reverse_link_table_side(self, server, posts):
        tags = server.get_entity_manager("tag")

        shared = await tags.find_entity(
            {
                "filters": [{"field": "name", "operator": "eq", "value": "shared"}],
                "properties": ["name", "posts"],
            }
        )

        assert sorted(p["title"] for p in shared["posts"]) == ["post 0", "post 1", "post 2"]

    @pytest.mark.asyncio
    async def test_query_count_is_independent_of_page_size(self, server, statements):
        manager = await _seed_posts(server, 6)
        options = {"properties": ["title", "author", "comments", "tags"]}

        statements.clear()
        await manager.find_entities(dict(options, pagination={"limit": 2}))
        small_page = len(statements)

        statements.clear()
        await manager.find_entities(dict(options, pagination={"limit": 6}))
        large_page = len(statements)

        # base query, author, comments, link rows and tags
        assert small_page == large_page == 5


class TestEntityFinder:
    """Tests for find, find by id and count."""

    @pytest.mark.asyncio
    async def test_properties_restrict_columns(self, posts):
        entities = await posts.find_entities({"properties": ["title"], "pagination": {"limit": 1}})
        assert entities == [{"id": 1, "title": "post 0"}]

    @pytest.mark.asyncio
    async def test_id_can_be_selected_without_being_declared(self, server, posts):
        """blog.comment declares no id property, yet id can be selected like any filter or order field."""
        comments = server.get_entity_manager("comment")

        entities = await comments.find_entities(
            {"properties": ["id", "body"], "orderBy": [{"field": "id"}], "pagination": {"limit": 2}}
        )

        assert entities == [{"id": 1, "body": "first on 0"}, {"id": 2, "body": "second on 0"}]

    @pytest.mark.asyncio
    async def test_all_columns_without_properties(self, posts):
        entity = await posts.find_entity({"filters": [{"field": "id", "operator": "eq", "value": 2}]})
        assert set(entity) == {"id", "title", "views", "publishedOn", "authorId"}

    @pytest.mark.asyncio
    async def test_order_by_property_code(self, posts):
        entities = await posts.find_entities(
            {"properties": ["views"], "orderBy": [{"field": "views", "desc": True}]}
        )
        assert [e["views"] for e in entities] == [2, 1, 0]

    @pytest.mark.asyncio
    async def test_pagination(self, posts):
        entities = await posts.find_entities(
            {"properties": ["title"], "orderBy": [{"field": "id"}], "pagination": {"offset": 1, "limit": 1}}
        )
        assert [e["title"] for e in entities] == ["post 1"]

    @pytest.mark.asyncio
    async def test_unknown_property(self, posts):
        with pytest.raises(NotFoundError, match="does not have a property 'likes'"):
            await posts.find_entities({"properties": ["likes"]})

    @pytest.mark.asyncio
    async def test_find_by_id(self, posts):
        entity = await posts.find_by_id(2)

        assert entity["title"] == "post 1"
        assert "tags" not in entity
        assert await posts.find_by_id(99) is None

    @pytest.mark.asyncio
    async def test_find_by_id_keeps_non_property_fields(self, server, posts):
        comments = server.get_entity_manager("comment")

        comment = await comments.find_by_id(1, keep_non_property_fields=True)

        assert comment["postId"] == 1
        assert comment["body"] == "first on 0"

    @pytest.mark.asyncio
    async def test_count_with_existence_filter(self, posts):
        total = await posts.count(
            {
                "filters": [
                    {
                        "operator": "exists",
                        "field": "tags",
                        "filters": [{"field": "name", "operator": "eq", "value": "tag 1"}],
                    }
                ]
            }
        )
        assert total == {"total": 1}
        assert await posts.count() == {"total": 3}
