"""
Tenancy services.

- TenantRegistry: identity/slug to schema mapping
- TenantProvisioner: register, create schema, migrate (with rollback)
- MemberService: owner seeding in tenant schemas
- FleetMigrator: catch-up migrations across all tenants
"""
