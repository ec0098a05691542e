"""Tests for the command line interface."""

import sqlite3

from typer.testing import CliRunner

from rapid_entities.cli import app

runner = CliRunner()


class TestDescribe:
    def test_describe_schema(self, schema_file):
        result = runner.invoke(app, ["describe", "--schema", str(schema_file)])

        assert result.exit_code == 0
        assert "blog.post" in result.output
        assert "published_on" in result.output

    def test_invalid_schema(self, tmp_path):
        schema = tmp_path / "broken.json"
        schema.write_text(
            '[{"namespace": "app", "singularCode": "a", "pluralCode": "as",'
            ' "properties": [{"code": "b", "relation": "one", "targetSingularCode": "a"}]}]'
        )

        result = runner.invoke(app, ["describe", "--schema", str(schema)])

        assert result.exit_code == 1
        assert "Invalid schema" in result.output


class TestInitDb:
    def test_creates_tables(self, schema_file, tmp_path):
        database = tmp_path / "blog.db"

        result = runner.invoke(
            app,
            ["init-db", "--schema", str(schema_file), "--database-url", f"sqlite:///{database}"],
        )

        assert result.exit_code == 0
        assert "Created 6 tables" in result.output
        with sqlite3.connect(database) as conn:
            names = {row[0] for row in conn.execute("SELECT name FROM sqlite_master WHERE type='table'")}
        assert {"posts", "comments", "users", "tags", "categories", "post_tags"} <= names
