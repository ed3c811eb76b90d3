"""
Organization Event Schemas

Marshmallow schemas validating the payload of the organization webhook.

Schemas:
- WebhookEventSchema: Envelope {type, data}, accepted for every event type
- OrganizationDataSchema: data of organization.* events
- OwnerSchema: optional creator details used to seed the tenant owner
"""

from marshmallow import EXCLUDE, Schema, ValidationError, fields, validate, validates


class OwnerSchema(Schema):
    """Creator of the organization, seeded as the tenant owner."""

    class Meta:
        unknown = EXCLUDE

    id = fields.Str(required=True, validate=validate.Length(min=1, max=255))
    email = fields.Email(required=True, validate=validate.Length(max=255))
    first_name = fields.Str(allow_none=True, validate=validate.Length(max=255))
    last_name = fields.Str(allow_none=True, validate=validate.Length(max=255))
    avatar_url = fields.Str(allow_none=True, validate=validate.Length(max=500))


class OrganizationDataSchema(Schema):
    """
    Organization fields carried by organization.* events.

    id is the tenant identity; slug is derived from name when absent.
    """

    class Meta:
        unknown = EXCLUDE

    id = fields.Str(required=True, validate=validate.Length(min=1, max=255))
    name = fields.Str(required=True, validate=validate.Length(min=1, max=255))
    slug = fields.Str(allow_none=True, load_default=None, validate=validate.Length(max=255))
    owner = fields.Nested(OwnerSchema, allow_none=True, load_default=None)

    @validates('name')
    def validate_name(self, value, **kwargs):
        """Validate name is not empty or whitespace only."""
        if not value.strip():
            raise ValidationError("Organization name cannot be empty or whitespace")


class WebhookEventSchema(Schema):
    """Event envelope; data is validated per event type by the route."""

    class Meta:
        unknown = EXCLUDE

    type = fields.Str(required=True, validate=validate.Length(min=1))
    data = fields.Dict(required=True)


# Instantiate schemas for easy import
webhook_event_schema = WebhookEventSchema()
organization_data_schema = OrganizationDataSchema()
