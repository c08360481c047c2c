from servicebook.extensions import db
from servicebook.utils.time_utils import utcnow
import uuid


def gen_notif_id():
    return f"notif-{str(uuid.uuid4())[:8]}"


class Notification(db.Model):
    __tablename__ = "notifications"

    id = db.Column(db.String(50), primary_key=True, default=gen_notif_id)
    user_id = db.Column(db.String(50), db.ForeignKey("users.id"), nullable=False, index=True)

    type = db.Column(db.String(50), default="info")
    title = db.Column(db.String(255), nullable=False)
    body = db.Column(db.Text, nullable=False)
    data = db.Column(db.JSON, nullable=True)

    is_read = db.Column(db.Boolean, default=False, nullable=False)
    read_at = db.Column(db.DateTime)
    push_sent = db.Column(db.Boolean, default=False, nullable=False)
    push_sent_at = db.Column(db.DateTime)

    created_at = db.Column(db.DateTime, default=utcnow)

    user = db.relationship("User", backref="notifications", lazy=True)
