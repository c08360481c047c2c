from flask import Blueprint, current_app, request
from flask_jwt_extended import jwt_required, get_jwt_identity

from servicebook.schemas.notification_schema import NotificationSchema, notifications_schema
from servicebook.utils.response_formatter import success_response

bp = Blueprint("notifications", __name__, url_prefix="/api/v1/notifications")


def _notifications():
    return current_app.extensions["servicebook"]["notifications"]


@bp.route("", methods=["GET"])
@jwt_required()
def get_notifications():
    uid = get_jwt_identity()
    unread_only = request.args.get("unread", "false").lower() in ("1", "true", "yes")
    page = request.args.get("page", 1, type=int)
    limit = request.args.get("limit", 20, type=int)

    items, meta = _notifications().list_for_user(uid, unread_only=unread_only, page=page, limit=limit)
    return success_response({"notifications": notifications_schema.dump(items), "pagination": meta})


@bp.route("/unread-count", methods=["GET"])
@jwt_required()
def unread_count():
    return success_response({"unread": _notifications().unread_count(get_jwt_identity())})


@bp.route("/<notification_id>/read", methods=["POST"])
@jwt_required()
def mark_read(notification_id):
    notif = _notifications().mark_read(get_jwt_identity(), notification_id)
    return success_response({"notification": NotificationSchema().dump(notif)})


@bp.route("/read-all", methods=["POST"])
@jwt_required()
def mark_all_read():
    updated = _notifications().mark_all_read(get_jwt_identity())
    return success_response({"updated": updated}, message="All notifications marked as read")
