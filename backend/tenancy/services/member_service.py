"""
MemberService - seeding of tenant members

When an organization is created upstream, the user who created it becomes
the first member of the tenant with the owner role. Members live in the
``users`` table of the tenant schema (created by the first tenant migration).
"""

import logging
from typing import Any, Mapping

from sqlalchemy import or_, select

from tenancy.tenant_db.tables import MemberRole, users_table

logger = logging.getLogger(__name__)


class MemberService:
    """
    Writes tenant members.

    Args:
        connections: ConnectionManager providing schema-scoped connections
    """

    def __init__(self, connections):
        self.connections = connections

    def ensure_owner(self, schema_name: str, owner: Mapping[str, Any]) -> bool:
        """
        Make sure the organization creator is an owner of the tenant.

        Idempotent: if a member with the same id or email exists, its role is
        raised to owner instead of inserting a duplicate.

        Args:
            schema_name: Tenant schema
            owner: Dict with id and email, optionally first_name, last_name
                   and avatar_url

        Returns:
            True if a member row was inserted, False if one already existed

        Example:
            >>> members.ensure_owner('tenant_acme_corp', {
            ...     'id': 'user_2abc',
            ...     'email': 'jane@acme.com',
            ...     'first_name': 'Jane'
            ... })
            True
        """
        users = users_table(schema_name)

        with self.connections.connect(schema_name) as conn:
            with conn.begin():
                existing = conn.execute(
                    select(users.c.id, users.c.role).where(
                        or_(users.c.id == owner['id'], users.c.email == owner['email'])
                    )
                ).first()

                if existing is not None:
                    if existing.role != MemberRole.OWNER.value:
                        conn.execute(
                            users.update()
                            .where(users.c.id == existing.id)
                            .values(role=MemberRole.OWNER.value)
                        )
                        logger.info(f"Promoted member {existing.id} to owner in {schema_name}")
                    return False

                conn.execute(
                    users.insert().values(
                        id=owner['id'],
                        email=owner['email'],
                        first_name=owner.get('first_name'),
                        last_name=owner.get('last_name'),
                        avatar_url=owner.get('avatar_url'),
                        role=MemberRole.OWNER.value,
                        metadata={'onboardingComplete': False},
                    )
                )

        logger.info(f"Created owner {owner['id']} in tenant schema {schema_name}")
        return True
