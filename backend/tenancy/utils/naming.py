"""
Slug and schema-name derivation for tenants.

The schema name is computed once from the slug when a tenant is registered and
never recomputed afterwards, so these functions must stay deterministic.

Examples:
    >>> slugify("Acme Corp")
    'acme-corp'
    >>> schema_name_for_slug("acme-corp")
    'tenant_acme_corp'
"""

import re

# PostgreSQL truncates identifiers longer than 63 bytes
MAX_IDENTIFIER_LENGTH = 63

DEFAULT_SCHEMA_PREFIX = 'tenant_'

_SCHEMA_NAME_RE = re.compile(r'^[a-z_][a-z0-9_]{0,62}$')


def slugify(name: str) -> str:
    """
    Derive a URL-safe slug from a display name.

    Lowercases, replaces every run of non-alphanumeric characters with a
    single hyphen and trims leading/trailing hyphens.

    Args:
        name: Organization display name

    Returns:
        Slug string (may be empty if the name has no alphanumerics)
    """
    slug = re.sub(r'[^a-z0-9]+', '-', name.lower())
    return slug.strip('-')


def schema_name_for_slug(slug: str, prefix: str = DEFAULT_SCHEMA_PREFIX) -> str:
    """
    Derive the PostgreSQL schema name for a tenant slug.

    Rules:
    - Lowercase
    - Every run of characters outside [a-z0-9] becomes a single underscore
    - No leading/trailing underscore in the slug part
    - Prefixed with "tenant_" and truncated to 63 characters

    Args:
        slug: Tenant slug
        prefix: Schema name prefix

    Returns:
        Schema name containing only lowercase letters, digits and underscores

    Raises:
        ValueError: If the slug has no usable characters
    """
    body = re.sub(r'[^a-z0-9]+', '_', slug.lower()).strip('_')
    if not body:
        raise ValueError(f"Cannot derive a schema name from slug '{slug}'")

    schema_name = f"{prefix}{body}"[:MAX_IDENTIFIER_LENGTH].rstrip('_')
    return validate_schema_name(schema_name)


def validate_schema_name(schema_name: str) -> str:
    """
    Check that a schema name is safe to embed as an identifier.

    Returns:
        The schema name unchanged

    Raises:
        ValueError: If the name is not a lowercase identifier of at most 63 chars
    """
    if not schema_name or not _SCHEMA_NAME_RE.match(schema_name):
        raise ValueError(
            f"Invalid schema name: {schema_name!r}. "
            "Must contain only lowercase letters, numbers, and underscores."
        )
    return schema_name
