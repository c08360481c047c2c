from marshmallow import EXCLUDE, fields, validate

from servicebook.extensions import ma
from servicebook.models.enums import BookingStatus, PaymentMethod
from servicebook.schemas.fields import Money, UTCDateTime


class CreateBookingSchema(ma.Schema):
    class Meta:
        unknown = EXCLUDE

    provider_id = fields.Str(required=True)
    service_id = fields.Str(required=True)
    duration = fields.Int(required=True, validate=validate.OneOf([60, 90, 120]))
    scheduled_at = fields.DateTime(required=True)
    payment_method = fields.Str(load_default=PaymentMethod.CASH, validate=validate.OneOf(PaymentMethod.ALL))
    address_text = fields.Str(required=True, validate=validate.Length(min=1, max=512))
    address_notes = fields.Str(allow_none=True)
    latitude = fields.Float(allow_none=True, validate=validate.Range(min=-90, max=90))
    longitude = fields.Float(allow_none=True, validate=validate.Range(min=-180, max=180))
    customer_notes = fields.Str(allow_none=True)


class ReasonSchema(ma.Schema):
    class Meta:
        unknown = EXCLUDE

    reason = fields.Str(allow_none=True, validate=validate.Length(max=1000))


class StatusUpdateSchema(ma.Schema):
    class Meta:
        unknown = EXCLUDE

    status = fields.Str(required=True, validate=validate.OneOf(BookingStatus.ALL))


class LocationUpdateSchema(ma.Schema):
    class Meta:
        unknown = EXCLUDE

    latitude = fields.Float(required=True, validate=validate.Range(min=-90, max=90))
    longitude = fields.Float(required=True, validate=validate.Range(min=-180, max=180))
    accuracy = fields.Float(allow_none=True, validate=validate.Range(min=0))


class SOSSchema(ma.Schema):
    class Meta:
        unknown = EXCLUDE

    message = fields.Str(allow_none=True, validate=validate.Length(max=1000))
    latitude = fields.Float(allow_none=True, validate=validate.Range(min=-90, max=90))
    longitude = fields.Float(allow_none=True, validate=validate.Range(min=-180, max=180))


class BookingSchema(ma.Schema):
    id = fields.Str()
    booking_number = fields.Str()
    status = fields.Str()
    customer_id = fields.Str()
    provider_id = fields.Str()
    service_id = fields.Str()
    service_name = fields.Function(lambda b: b.service.name if b.service else None)
    duration = fields.Int()
    scheduled_at = UTCDateTime()
    payment_method = fields.Str()
    service_amount = Money()
    platform_fee = Money()
    provider_earning = Money()
    total_amount = Money()
    address_text = fields.Str()
    address_notes = fields.Str()
    latitude = fields.Float()
    longitude = fields.Float()
    customer_notes = fields.Str()
    accepted_at = UTCDateTime()
    en_route_at = UTCDateTime()
    arrived_at = UTCDateTime()
    started_at = UTCDateTime()
    completed_at = UTCDateTime()
    cancelled_at = UTCDateTime()
    cancelled_by = fields.Str()
    cancel_reason = fields.Str()
    created_at = UTCDateTime()
    updated_at = UTCDateTime()


class ProviderLocationSchema(ma.Schema):
    latitude = fields.Float()
    longitude = fields.Float()
    accuracy = fields.Float()
    updated_at = UTCDateTime()


booking_schema = BookingSchema()
bookings_schema = BookingSchema(many=True)
