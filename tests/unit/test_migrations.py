"""Tests for the tool configuration migration.

The migration module name starts with a digit, so it is loaded from its path.
"""

import importlib.util
import re
from pathlib import Path
from unittest.mock import patch

import pytest

MIGRATION_PATH = Path(__file__).resolve().parents[2] / "migrations" / "versions" / "001_tool_config_tables.py"


@pytest.fixture
def migration():
    spec = importlib.util.spec_from_file_location("tool_config_tables_migration", MIGRATION_PATH)
    module = importlib.util.module_from_spec(spec)
    spec.loader.exec_module(module)
    return module


def executed_sql(migration, step: str) -> list[str]:
    with patch.object(migration.op, "execute") as execute:
        getattr(migration, step)()
    return [call.args[0] for call in execute.call_args_list]


@pytest.mark.unit
@pytest.mark.P1
@pytest.mark.deterministic
class TestToolConfigMigration:
    """DDL for tool_auth, tools and tool_routes."""

    def test_revision_identifiers(self, migration) -> None:
        assert migration.revision == "001_tool_config_tables"
        assert migration.down_revision is None

    def test_upgrade_creates_tables_in_dependency_order(self, migration) -> None:
        statements = executed_sql(migration, "upgrade")

        created = [re.search(r"CREATE TABLE (\w+)", sql).group(1) for sql in statements]
        assert created == ["tool_auth", "tools", "tool_routes"]

    def test_upgrade_constraints(self, migration) -> None:
        sql = "\n".join(executed_sql(migration, "upgrade"))

        assert "CHECK (kind IN ('none', 'bearer', 'api-key'))" in sql
        assert "name TEXT NOT NULL UNIQUE" in sql
        assert "'GET', 'POST', 'PUT', 'PATCH', 'DELETE'" in sql
        assert "request_body_schema_json TEXT" in sql
        assert "REFERENCES tool_auth(id)" in sql
        assert "REFERENCES tools(id)" in sql

    def test_downgrade_drops_in_reverse_order(self, migration) -> None:
        statements = executed_sql(migration, "downgrade")

        dropped = [re.search(r"DROP TABLE IF EXISTS (\w+)", sql).group(1) for sql in statements]
        assert dropped == ["tool_routes", "tools", "tool_auth"]
