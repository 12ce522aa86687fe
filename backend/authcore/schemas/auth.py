"""Authentication-related Marshmallow schemas."""

from __future__ import annotations

from marshmallow import EXCLUDE, Schema, fields, validate

from authcore.services._shared.dto import PRINCIPAL_KINDS


class DeviceSchema(Schema):
    """Device metadata optionally sent in the login body."""

    class Meta:
        unknown = EXCLUDE

    device_id = fields.String(load_default=None, validate=validate.Length(max=128))
    name = fields.String(load_default=None, validate=validate.Length(max=120))
    platform = fields.String(load_default=None, validate=validate.Length(max=60))
    browser = fields.String(load_default=None, validate=validate.Length(max=60))


class LoginSchema(Schema):
    """Input payload for signing in an administrator or an end user."""

    kind = fields.String(required=True, validate=validate.OneOf(PRINCIPAL_KINDS))
    login = fields.String(required=True, validate=validate.Length(min=1, max=254))
    # No minimum length: a short secret is just a wrong secret
    secret = fields.String(required=True, validate=validate.Length(max=256))
    device = fields.Nested(DeviceSchema, load_default=None)


class RefreshSchema(Schema):
    """Body of refresh and logout requests."""

    refresh_token = fields.String(load_default=None, validate=validate.Length(min=1, max=512))


class TokenPairSchema(Schema):
    """Response payload returned by login and refresh."""

    access_token = fields.String(required=True)
    refresh_token = fields.String(required=True)
    token_type = fields.String(dump_default="Bearer")
    expires_in = fields.Integer(required=True)
    session_id = fields.String(required=True)


class SessionSchema(Schema):
    """One device session as listed to its owner."""

    id = fields.String(required=True)
    device = fields.Method("dump_device")
    created_at = fields.DateTime(required=True)
    last_seen_at = fields.DateTime(required=True)
    current = fields.Boolean(required=True)

    def dump_device(self, obj) -> dict[str, str | None]:
        return obj.device.to_dict()


class PrincipalSchema(Schema):
    """Profile of the authenticated principal."""

    id = fields.Integer(required=True)
    kind = fields.String(required=True)
    login = fields.String(required=True)
    display_name = fields.String(allow_none=True)
    role = fields.String(required=True)
    permissions = fields.List(fields.String())
    is_verified = fields.Boolean()
    last_login_at = fields.DateTime(allow_none=True)
