from servicebook.extensions import db
from servicebook.utils.time_utils import utcnow


class ReminderLog(db.Model):
    """One row per (booking, reminder offset) that has been sent."""

    __tablename__ = "reminder_logs"

    __table_args__ = (
        db.UniqueConstraint("booking_id", "offset_key", name="uq_reminder_booking_offset"),
    )

    id = db.Column(db.Integer, primary_key=True)
    booking_id = db.Column(db.String(50), db.ForeignKey("bookings.id"), nullable=False)
    offset_key = db.Column(db.String(20), nullable=False)
    notification_id = db.Column(db.String(50), db.ForeignKey("notifications.id"), nullable=True)
    sent_at = db.Column(db.DateTime, default=utcnow, nullable=False)
