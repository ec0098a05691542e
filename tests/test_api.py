"""Tests for the data manager HTTP API."""

import pytest
from fastapi.testclient import TestClient

from rapid_entities.api import create_app
from rapid_entities.config import Settings


@pytest.fixture
def client(schema_file):
    """Application with its own in-memory database, built at startup."""
    settings = Settings(
        schema_path=str(schema_file),
        database_url="sqlite+aiosqlite:///:memory:",
        base_url="/api",
    )
    with TestClient(create_app(settings=settings)) as client:
        yield client


class TestHealth:
    def test_healthz(self, client):
        response = client.get("/healthz")
        assert response.status_code == 200
        assert response.json() == {"status": "ok"}


class TestEntityEndpoints:
    """Tests for single entity endpoints."""

    def test_create_and_get(self, client):
        response = client.post(
            "/api/blog/posts",
            json={"title": "Hello", "comments": [{"body": "hi"}], "tags": [{"name": "news"}]},
        )

        assert response.status_code == 201
        post = response.json()
        assert post["comments"][0]["postId"] == post["id"]
        assert post["tags"][0]["name"] == "news"

        response = client.get(f"/api/blog/posts/{post['id']}")
        assert response.status_code == 200
        assert response.json()["title"] == "Hello"

    def test_get_missing_entity(self, client):
        response = client.get("/api/blog/posts/404")
        assert response.status_code == 404

    def test_unknown_collection(self, client):
        response = client.post("/api/blog/widgets", json={"name": "x"})
        assert response.status_code == 404

    def test_update(self, client):
        post = client.post("/api/blog/posts", json={"title": "Draft"}).json()

        response = client.patch(f"/api/blog/posts/{post['id']}", json={"title": "Final"})

        assert response.status_code == 200
        assert response.json()["title"] == "Final"

    def test_update_missing_entity(self, client):
        response = client.patch("/api/blog/posts/404", json={"title": "Final"})
        assert response.status_code == 404
        assert response.json()["error"] == "NOT_FOUND"

    def test_delete(self, client):
        post = client.post("/api/blog/posts", json={"title": "Bye"}).json()

        response = client.delete(f"/api/blog/posts/{post['id']}")

        assert response.json() == {"status": "success"}
        assert client.get(f"/api/blog/posts/{post['id']}").status_code == 404


class TestErrorResponses:
    def test_validation_error(self, client):
        response = client.post("/api/blog/posts", json={"title": "x", "tags": "news"})

        assert response.status_code == 400
        assert response.json() == {
            "error": "VALIDATION_ERROR",
            "message": "Value of field 'tags' should be an array.",
        }

    def test_missing_reference(self, client):
        response = client.post("/api/blog/posts", json={"title": "x", "tags": [404]})

        assert response.status_code == 404
        assert "is not exists" in response.json()["message"]

    def test_unsupported_operation(self, client):
        post = client.post("/api/blog/posts", json={"title": "x"}).json()

        response = client.post(
            "/api/blog/posts/operations/add_relations",
            json={"id": post["id"], "property": "comments", "relations": [{"id": 1}]},
        )

        assert response.status_code == 400
        assert response.json()["error"] == "UNSUPPORTED_OPERATION"
        assert response.json()["operation"] == "addRelations"


class TestOperations:
    """Tests for the operations endpoints."""

    def test_find_and_count(self, client):
        for title, tag in (("one", "a"), ("two", "b"), ("three", "a")):
            client.post("/api/blog/posts", json={"title": title, "tags": [{"name": tag}]})
        filters = [
            {
                "operator": "exists",
                "field": "tags",
                "filters": [{"field": "name", "operator": "eq", "value": "a"}],
            }
        ]

        response = client.post(
            "/api/blog/posts/operations/find",
            json={
                "filters": filters,
                "properties": ["title", "tags"],
                "orderBy": [{"field": "title"}],
                "pagination": {"limit": 1},
            },
        )

        assert response.status_code == 200
        body = response.json()
        assert body["total"] == 2
        assert [p["title"] for p in body["list"]] == ["one"]
        assert body["list"][0]["tags"][0]["name"] == "a"

        count = client.post("/api/blog/posts/operations/count", json={"filters": filters})
        assert count.json() == {"total": 2}

    def test_invalid_filter(self, client):
        response = client.post(
            "/api/blog/posts/operations/find",
            json={"filters": [{"field": "title", "operator": "like", "value": "x"}]},
        )
        assert response.status_code == 400

    def test_containment_filter_with_scalar_value(self, client):
        response = client.post(
            "/api/blog/posts/operations/find",
            json={"filters": [{"field": "views", "operator": "in", "value": 5}]},
        )

        assert response.status_code == 400
        assert response.json()["error"] == "VALIDATION_ERROR"

    def test_create_batch(self, client):
        response = client.post(
            "/api/blog/users/operations/create_batch",
            json={"entities": [{"name": "Ann"}, {"name": "Bob"}]},
        )

        assert response.status_code == 201
        assert [u["name"] for u in response.json()] == ["Ann", "Bob"]

    def test_create_batch_requires_array(self, client):
        response = client.post("/api/blog/users/operations/create_batch", json={"entities": {"name": "Ann"}})
        assert response.status_code == 400

    def test_add_and_remove_relations(self, client):
        post = client.post("/api/blog/posts", json={"title": "x"}).json()
        tag = client.post("/api/blog/tags", json={"name": "a"}).json()
        body = {"id": post["id"], "property": "tags", "relations": [{"id": tag["id"]}]}

        added = client.post("/api/blog/posts/operations/add_relations", json=body)
        found = client.post(
            "/api/blog/posts/operations/find", json={"properties": ["tags"]}
        ).json()
        removed = client.post("/api/blog/posts/operations/remove_relations", json=body)
        after = client.post(
            "/api/blog/posts/operations/find", json={"properties": ["tags"]}
        ).json()

        assert added.json() == {"status": "success"}
        assert found["list"][0]["tags"] == [{"id": tag["id"], "name": "a"}]
        assert removed.json() == {"status": "success"}
        assert after["list"][0]["tags"] == []
