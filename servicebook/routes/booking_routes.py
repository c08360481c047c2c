from flask import Blueprint, current_app, request
from flask_jwt_extended import jwt_required, get_jwt_identity

from servicebook.schemas.booking_schema import (
    CreateBookingSchema,
    LocationUpdateSchema,
    ProviderLocationSchema,
    ReasonSchema,
    SOSSchema,
    StatusUpdateSchema,
    booking_schema,
    bookings_schema,
)
from servicebook.schemas.notification_schema import MessageSchema, SendMessageSchema, message_schema
from servicebook.utils.response_formatter import success_response
from servicebook.utils.time_utils import isoformat_z

bp = Blueprint("bookings", __name__, url_prefix="/api/v1/bookings")


def _bookings():
    return current_app.extensions["servicebook"]["bookings"]


def _chat():
    return current_app.extensions["servicebook"]["chat"]


def _body():
    return request.get_json(silent=True) or {}


# ------------------------------------------------------------
#  GET /bookings: bookings of the caller (?role=customer|provider)
# ------------------------------------------------------------
@bp.route("", methods=["GET"])
@jwt_required()
def list_bookings():
    uid = get_jwt_identity()
    role = request.args.get("role", "customer")
    status = request.args.get("status")
    page = request.args.get("page", 1, type=int)
    limit = request.args.get("limit", 20, type=int)

    items, meta = _bookings().list_bookings(uid, role=role, status=status, page=page, limit=limit)
    return success_response({"bookings": bookings_schema.dump(items), "pagination": meta})


# ------------------------------------------------------------
#  POST /bookings: customer requests a session
# ------------------------------------------------------------
@bp.route("", methods=["POST"])
@jwt_required()
def create_booking():
    uid = get_jwt_identity()
    data = CreateBookingSchema().load(_body())
    booking = _bookings().create_booking(uid, data)
    return success_response({"booking": booking_schema.dump(booking)}, status=201)


@bp.route("/<booking_id>", methods=["GET"])
@jwt_required()
def get_booking(booking_id):
    booking = _bookings().get_booking(get_jwt_identity(), booking_id)
    return success_response({"booking": booking_schema.dump(booking)})


# ------------------------------------------------------------
#  POST /bookings/<id>/accept | reject: provider decision
# ------------------------------------------------------------
@bp.route("/<booking_id>/accept", methods=["POST"])
@jwt_required()
def accept_booking(booking_id):
    booking = _bookings().accept_booking(get_jwt_identity(), booking_id)
    return success_response({"booking": booking_schema.dump(booking)}, message="Booking accepted")


@bp.route("/<booking_id>/reject", methods=["POST"])
@jwt_required()
def reject_booking(booking_id):
    data = ReasonSchema().load(_body())
    booking = _bookings().reject_booking(get_jwt_identity(), booking_id, data.get("reason"))
    return success_response({"booking": booking_schema.dump(booking)}, message="Booking rejected")


@bp.route("/<booking_id>/cancel", methods=["POST"])
@jwt_required()
def cancel_booking(booking_id):
    data = ReasonSchema().load(_body())
    booking = _bookings().cancel_booking(get_jwt_identity(), booking_id, data.get("reason"))
    return success_response({"booking": booking_schema.dump(booking)}, message="Booking cancelled")


# ------------------------------------------------------------
#  PATCH /bookings/<id>/status: provider advances the session
# ------------------------------------------------------------
@bp.route("/<booking_id>/status", methods=["PATCH"])
@jwt_required()
def update_status(booking_id):
    data = StatusUpdateSchema().load(_body())
    booking = _bookings().update_booking_status(get_jwt_identity(), booking_id, data["status"])
    return success_response({"booking": booking_schema.dump(booking)})


# ------------------------------------------------------------
#  live location and SOS
# ------------------------------------------------------------
@bp.route("/<booking_id>/location", methods=["POST"])
@jwt_required()
def update_location(booking_id):
    data = LocationUpdateSchema().load(_body())
    booking = _bookings().update_booking_location(
        get_jwt_identity(), booking_id, data["latitude"], data["longitude"], data.get("accuracy")
    )
    return success_response({
        "location": {
            "latitude": booking.current_latitude,
            "longitude": booking.current_longitude,
            "accuracy": booking.location_accuracy,
            "updated_at": isoformat_z(booking.location_updated_at),
        }
    })


@bp.route("/<booking_id>/location", methods=["GET"])
@jwt_required()
def get_location(booking_id):
    location = _bookings().get_provider_location(get_jwt_identity(), booking_id)
    return success_response({"location": ProviderLocationSchema().dump(location)})


@bp.route("/<booking_id>/sos", methods=["POST"])
@jwt_required()
def trigger_sos(booking_id):
    data = SOSSchema().load(_body())
    report = _bookings().trigger_sos(
        get_jwt_identity(), booking_id, data.get("message"), data.get("latitude"), data.get("longitude")
    )
    return success_response(
        {"report_id": report.id},
        message="Emergency alert sent. Help is on the way.",
        status=201,
    )


@bp.route("/<booking_id>/hide", methods=["DELETE"])
@jwt_required()
def hide_booking(booking_id):
    _bookings().hide_booking(get_jwt_identity(), booking_id)
    return success_response(message="Booking removed from your history")


# ------------------------------------------------------------
#  chat
# ------------------------------------------------------------
@bp.route("/<booking_id>/messages", methods=["GET"])
@jwt_required()
def get_messages(booking_id):
    uid = get_jwt_identity()
    schema = MessageSchema()
    messages = [
        {**schema.dump(msg), "is_own": is_own}
        for msg, is_own in _chat().get_messages(booking_id, uid)
    ]
    return success_response({
        "messages": messages,
        "unread": _chat().unread_count(booking_id, uid),
    })


@bp.route("/<booking_id>/messages", methods=["POST"])
@jwt_required()
def send_message(booking_id):
    data = SendMessageSchema().load(_body())
    msg = _chat().send_message(booking_id, get_jwt_identity(), data["content"])
    return success_response({"message": {**message_schema.dump(msg), "is_own": True}}, status=201)


@bp.route("/<booking_id>/messages/read", methods=["POST"])
@jwt_required()
def mark_messages_read(booking_id):
    updated = _chat().mark_read(booking_id, get_jwt_identity())
    return success_response({"updated": updated})
