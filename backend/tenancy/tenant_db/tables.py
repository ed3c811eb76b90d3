"""
Table handles for tables that live inside each tenant schema.

Each function returns a new SQLAlchemy Table bound to a fresh MetaData for the
given schema, so the schema is always explicit at the call site:

    >>> users = users_table('tenant_acme_corp')
    >>> conn.execute(select(users.c.email))

The DDL for these tables is owned by the SQL files in tenant_migrations/;
these definitions only describe the columns the Python code reads or writes.
"""

from enum import Enum

from sqlalchemy import (
    Boolean, Column, DateTime, Integer, MetaData, String, Table, func
)
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.types import JSON

from tenancy.utils.naming import validate_schema_name

MIGRATIONS_TABLE_NAME = '_migrations'


class MemberRole(str, Enum):
    """Roles a member can hold inside a tenant."""

    OWNER = 'owner'
    ADMIN = 'admin'
    MEMBER = 'member'
    VIEWER = 'viewer'


def _metadata(schema_name: str) -> MetaData:
    return MetaData(schema=validate_schema_name(schema_name))


def migrations_table(schema_name: str) -> Table:
    """Per-schema tracking table of applied migration files."""
    return Table(
        MIGRATIONS_TABLE_NAME,
        _metadata(schema_name),
        Column('id', Integer, primary_key=True, autoincrement=True),
        Column('filename', String(255), nullable=False, unique=True),
        Column('applied_at', DateTime, server_default=func.current_timestamp()),
    )


def users_table(schema_name: str) -> Table:
    """Tenant members (created by 0000_initial_members_projects.sql)."""
    return Table(
        'users',
        _metadata(schema_name),
        Column('id', String(255), primary_key=True),
        Column('email', String(255), nullable=False, unique=True),
        Column('first_name', String(255)),
        Column('last_name', String(255)),
        Column('avatar_url', String(500)),
        Column('role', String(50), nullable=False, server_default=MemberRole.MEMBER.value),
        Column('metadata', JSON().with_variant(JSONB(), 'postgresql'), nullable=False),
        Column('is_active', Boolean, server_default='true'),
        Column('joined_at', DateTime, server_default=func.current_timestamp()),
        Column('created_at', DateTime, server_default=func.current_timestamp()),
        Column('updated_at', DateTime, server_default=func.current_timestamp()),
    )

