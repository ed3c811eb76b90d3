"""Marshmallow schemas for request validation."""
