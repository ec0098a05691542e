"""Tests for mapping between entities and rows."""

import pytest

from rapid_entities.data.mapper import (
    map_db_row_to_entity,
    map_entity_to_db_row,
    map_property_to_column,
)
from rapid_entities.errors import NotFoundError, ValidationError


class TestMapPropertyToColumn:
    def test_scalar_and_id(self, registry):
        post = registry.get_model("post")
        assert map_property_to_column(registry, post, "id") == "id"
        assert map_property_to_column(registry, post, "publishedOn") == "published_on"

    def test_owning_one_maps_to_foreign_key(self, registry):
        post = registry.get_model("post")
        assert map_property_to_column(registry, post, "author") == "authorId"

    def test_physical_column_is_accepted(self, registry):
        comment = registry.get_model("comment")
        assert map_property_to_column(registry, comment, "postId") == "postId"
        assert map_property_to_column(registry, comment, "authorId") == "authorId"

    def test_many_relation_is_rejected(self, registry):
        with pytest.raises(ValidationError, match="many relation"):
            map_property_to_column(registry, registry.get_model("post"), "tags")

    def test_unknown_name(self, registry):
        with pytest.raises(NotFoundError):
            map_property_to_column(registry, registry.get_model("post"), "missing")


class TestRowMapping:
    def test_entity_to_row_keeps_scalars_only(self, registry):
        post = registry.get_model("post")
        row = map_entity_to_db_row(
            post, {"id": 1, "title": "T", "publishedOn": "2024-01-01", "tags": [1], "author": 2}
        )
        assert row == {"title": "T", "published_on": "2024-01-01"}

    def test_row_to_entity(self, registry):
        comment = registry.get_model("comment")
        row = {"id": 4, "body": "hi", "postId": 1, "authorId": None}
        assert map_db_row_to_entity(registry, comment, row) == row

    def test_row_to_entity_renames_columns(self, registry):
        post = registry.get_model("post")
        entity = map_db_row_to_entity(
            registry, post, {"id": 1, "published_on": "2024-01-01", "authorId": 7}
        )
        assert entity == {"id": 1, "publishedOn": "2024-01-01", "authorId": 7}

    def test_non_property_fields(self, registry):
        user = registry.get_model("user")
        row = {"id": 1, "name": "Ann", "legacy": "x"}
        assert map_db_row_to_entity(registry, user, row) == {"id": 1, "name": "Ann"}
        assert map_db_row_to_entity(registry, user, row, keep_non_property_fields=True) == row

    def test_missing_row(self, registry):
        assert map_db_row_to_entity(registry, registry.get_model("user"), None) is None
