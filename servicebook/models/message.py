from servicebook.extensions import db
from servicebook.utils.time_utils import utcnow
import uuid


def gen_msg_id():
    return f"msg-{str(uuid.uuid4())[:8]}"


class Message(db.Model):
    __tablename__ = "messages"

    id = db.Column(db.String(50), primary_key=True, default=gen_msg_id)
    booking_id = db.Column(db.String(50), db.ForeignKey("bookings.id"), nullable=False, index=True)
    sender_id = db.Column(db.String(50), db.ForeignKey("users.id"), nullable=False)
    content = db.Column(db.Text, nullable=False)
    is_read = db.Column(db.Boolean, default=False, nullable=False)
    read_at = db.Column(db.DateTime)
    created_at = db.Column(db.DateTime, default=utcnow)

    booking = db.relationship("Booking", backref="messages", lazy=True)
    sender = db.relationship("User", lazy=True)
