"""
Unit Tests for tenant naming helpers

Tests for tenancy.utils.naming:
- slugify: display name to slug
- schema_name_for_slug: slug to PostgreSQL schema name
- validate_schema_name: identifier safety check
"""

import pytest

from tenancy.utils.naming import (
    MAX_IDENTIFIER_LENGTH,
    schema_name_for_slug,
    slugify,
    validate_schema_name,
)


class TestSlugify:
    """Tests for slugify"""

    def test_slugify_lowercases_and_hyphenates(self):
        """Test spaces and punctuation collapse into single hyphens"""
        assert slugify('Acme Corp') == 'acme-corp'
        assert slugify('  Acme   Corp!  ') == 'acme-corp'
        assert slugify('R&D -- Lab 42') == 'r-d-lab-42'

    def test_slugify_without_alphanumerics(self):
        """Test a name with no usable characters yields an empty slug"""
        assert slugify('!!!') == ''


class TestSchemaNameForSlug:
    """Tests for schema_name_for_slug"""

    def test_schema_name_from_slug(self):
        """Test hyphens become underscores under the tenant_ prefix"""
        assert schema_name_for_slug('acme-corp') == 'tenant_acme_corp'

    def test_schema_name_collapses_and_trims(self):
        """Test runs of invalid characters collapse and edges are trimmed"""
        assert schema_name_for_slug('--Acme..Corp--') == 'tenant_acme_corp'

    def test_schema_name_is_deterministic(self):
        """Test the same slug always maps to the same schema"""
        assert schema_name_for_slug('globex') == schema_name_for_slug('globex')

    def test_schema_name_custom_prefix(self):
        """Test a configured prefix replaces tenant_"""
        assert schema_name_for_slug('acme', prefix='org_') == 'org_acme'

    def test_schema_name_truncated_to_identifier_limit(self):
        """Test long slugs are truncated to 63 characters"""
        schema_name = schema_name_for_slug('a' * 100)

        assert len(schema_name) == MAX_IDENTIFIER_LENGTH
        assert schema_name.startswith('tenant_')

    def test_schema_name_truncation_drops_trailing_underscore(self):
        """Test truncation never leaves a dangling underscore"""
        slug = 'a' * 55 + '-b'
        schema_name = schema_name_for_slug(slug)

        assert not schema_name.endswith('_')
        assert schema_name == 'tenant_' + 'a' * 55

    def test_schema_name_empty_slug(self):
        """Test a slug without alphanumerics is rejected"""
        with pytest.raises(ValueError):
            schema_name_for_slug('---')


class TestValidateSchemaName:
    """Tests for validate_schema_name"""

    def test_valid_name_returned_unchanged(self):
        """Test valid identifiers pass through"""
        assert validate_schema_name('tenant_acme_corp') == 'tenant_acme_corp'

    @pytest.mark.parametrize('schema_name', [
        '',
        'Tenant_Acme',
        'tenant-acme',
        '1tenant',
        'tenant_acme"; DROP SCHEMA public; --',
        't' * 64,
    ])
    def test_invalid_names_rejected(self, schema_name):
        """Test unsafe identifiers raise ValueError"""
        with pytest.raises(ValueError):
            validate_schema_name(schema_name)


class TestDerivationChain:
    """Tests for display name -> slug -> schema name"""

    @pytest.mark.parametrize('name, schema_name', [
        ('Acme Corp', 'tenant_acme_corp'),
        ('  Multi   Space--Org!! ', 'tenant_multi_space_org'),
        ('Café 2000', 'tenant_caf_2000'),
    ])
    def test_name_to_schema(self, name, schema_name):
        """Test schema names contain only lowercase letters, digits and single underscores"""
        result = schema_name_for_slug(slugify(name))

        assert result == schema_name
        assert '__' not in result
        assert not result.endswith('_')
