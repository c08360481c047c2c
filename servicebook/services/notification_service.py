import logging

from servicebook.models.notification import Notification
from servicebook.utils.exceptions import NotFound
from servicebook.utils.pagination import paginate_query
from servicebook.utils.time_utils import utcnow

logger = logging.getLogger(__name__)


class NotificationService:
    def __init__(self, session, push):
        self.session = session
        self.push = push

    def create(self, user_id, notif_type, title, body, data=None, push_sent=False, commit=True):
        notif = Notification(
            user_id=user_id,
            type=notif_type,
            title=title,
            body=body,
            data=data,
            push_sent=push_sent,
            push_sent_at=utcnow() if push_sent else None,
            created_at=utcnow(),
        )
        self.session.add(notif)
        if commit:
            self.session.commit()
        else:
            self.session.flush()
        return notif

    def notify(self, user_id, notif_type, title, body, data=None):
        """Persist a notification and push it. Delivery problems are logged only."""
        if not user_id:
            return None
        try:
            notif = self.create(user_id, notif_type, title, body, data)
        except Exception:
            self.session.rollback()
            logger.exception("Could not store %s notification for user %s", notif_type, user_id)
            return None

        if self.push.send_to_user(user_id, title, body, {"type": notif_type, **(data or {})}):
            notif.push_sent = True
            notif.push_sent_at = utcnow()
            self.session.commit()
        return notif

    def list_for_user(self, user_id, unread_only=False, page=1, limit=20):
        q = Notification.query.filter_by(user_id=user_id)
        if unread_only:
            q = q.filter_by(is_read=False)
        return paginate_query(q.order_by(Notification.created_at.desc()), page, limit)

    def unread_count(self, user_id):
        return Notification.query.filter_by(user_id=user_id, is_read=False).count()

    def mark_read(self, user_id, notification_id):
        notif = Notification.query.filter_by(id=notification_id, user_id=user_id).first()
        if not notif:
            raise NotFound("Notification not found")
        if not notif.is_read:
            notif.is_read = True
            notif.read_at = utcnow()
            self.session.commit()
        return notif

    def mark_all_read(self, user_id):
        updated = (
            Notification.query
            .filter_by(user_id=user_id, is_read=False)
            .update({"is_read": True, "read_at": utcnow()})
        )
        self.session.commit()
        return updated
