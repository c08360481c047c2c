from marshmallow import EXCLUDE, fields, validate

from servicebook.extensions import ma
from servicebook.schemas.fields import UTCDateTime


class NotificationSchema(ma.Schema):
    id = fields.Str()
    type = fields.Str()
    title = fields.Str()
    body = fields.Str()
    data = fields.Dict()
    is_read = fields.Bool()
    read_at = UTCDateTime()
    created_at = UTCDateTime()


class MessageSchema(ma.Schema):
    id = fields.Str()
    booking_id = fields.Str()
    sender_id = fields.Str()
    content = fields.Str()
    is_read = fields.Bool()
    created_at = UTCDateTime()


class SendMessageSchema(ma.Schema):
    class Meta:
        unknown = EXCLUDE

    content = fields.Str(required=True, validate=validate.Length(min=1, max=2000))


notifications_schema = NotificationSchema(many=True)
message_schema = MessageSchema()
