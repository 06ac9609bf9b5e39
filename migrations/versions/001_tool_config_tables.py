"""Create tool configuration tables

Creates the configuration store read by toolgate:
- tool_auth: Auth descriptors (none / bearer / api-key) with their config
- tools: Upstream APIs, each optionally bound to an auth descriptor
- tool_routes: Named HTTP operations exposed to agents

Revision ID: 001_tool_config_tables
Revises:
Create Date: 2026-10-19
"""

from typing import Sequence, Union

from alembic import op

# revision identifiers, used by Alembic.
revision: str = "001_tool_config_tables"
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    """Upgrade schema - create tool configuration tables."""

    # 1. Auth descriptors
    op.execute(
        """
        CREATE TABLE tool_auth (
            id BIGSERIAL PRIMARY KEY,
            kind TEXT NOT NULL,
            config_json JSONB NOT NULL DEFAULT '{}'::jsonb,
            created_at TIMESTAMPTZ NOT NULL DEFAULT NOW(),
            updated_at TIMESTAMPTZ NOT NULL DEFAULT NOW(),

            CONSTRAINT tool_auth_kind_check CHECK (kind IN ('none', 'bearer', 'api-key'))
        );
        """
    )

    # 2. Tools
    op.execute(
        """
        CREATE TABLE tools (
            id BIGSERIAL PRIMARY KEY,
            name TEXT NOT NULL UNIQUE,
            kind TEXT NOT NULL DEFAULT 'api',
            base_url TEXT NOT NULL,
            auth_id BIGINT,
            is_active BOOLEAN NOT NULL DEFAULT TRUE,
            created_at TIMESTAMPTZ NOT NULL DEFAULT NOW(),
            updated_at TIMESTAMPTZ NOT NULL DEFAULT NOW(),

            CONSTRAINT tools_auth_fk FOREIGN KEY (auth_id)
                REFERENCES tool_auth(id) ON DELETE SET NULL
        );

        CREATE INDEX idx_tools_active_name ON tools(name) WHERE is_active;
        """
    )

    # 3. Routes (route names are global across tenants)
    op.execute(
        """
        CREATE TABLE tool_routes (
            id BIGSERIAL PRIMARY KEY,
            tool_id BIGINT NOT NULL,
            name TEXT NOT NULL UNIQUE,
            path TEXT NOT NULL DEFAULT '',
            method TEXT NOT NULL DEFAULT 'POST',
            request_body_schema_json TEXT,
            is_active BOOLEAN NOT NULL DEFAULT TRUE,
            created_at TIMESTAMPTZ NOT NULL DEFAULT NOW(),
            updated_at TIMESTAMPTZ NOT NULL DEFAULT NOW(),

            CONSTRAINT tool_routes_tool_fk FOREIGN KEY (tool_id)
                REFERENCES tools(id) ON DELETE CASCADE,
            CONSTRAINT tool_routes_method_check
                CHECK (upper(method) IN ('GET', 'POST', 'PUT', 'PATCH', 'DELETE'))
        );

        CREATE INDEX idx_tool_routes_tool ON tool_routes(tool_id);
        """
    )


def downgrade() -> None:
    """Downgrade schema - drop tool configuration tables."""
    op.execute("DROP TABLE IF EXISTS tool_routes CASCADE;")
    op.execute("DROP TABLE IF EXISTS tools CASCADE;")
    op.execute("DROP TABLE IF EXISTS tool_auth CASCADE;")
