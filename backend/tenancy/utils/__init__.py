"""Database, naming and HTTP helpers."""
