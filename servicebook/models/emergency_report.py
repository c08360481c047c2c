from servicebook.extensions import db
from servicebook.utils.time_utils import utcnow
import uuid


def gen_report_id():
    return f"sos-{str(uuid.uuid4())[:8]}"


class EmergencyReport(db.Model):
    __tablename__ = "emergency_reports"

    id = db.Column(db.String(50), primary_key=True, default=gen_report_id)
    booking_id = db.Column(db.String(50), db.ForeignKey("bookings.id"), nullable=False, index=True)
    reporter_id = db.Column(db.String(50), db.ForeignKey("users.id"), nullable=False)
    reported_id = db.Column(db.String(50), db.ForeignKey("users.id"), nullable=True)

    severity = db.Column(db.String(20), nullable=False, default="CRITICAL")
    status = db.Column(db.String(20), nullable=False, default="OPEN")
    message = db.Column(db.Text)
    latitude = db.Column(db.Float)
    longitude = db.Column(db.Float)

    created_at = db.Column(db.DateTime, default=utcnow)

    booking = db.relationship("Booking", backref="emergency_reports", lazy=True)
