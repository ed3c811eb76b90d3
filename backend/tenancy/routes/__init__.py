"""HTTP blueprints: organization webhook and health check."""
