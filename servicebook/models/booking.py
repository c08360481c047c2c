from servicebook.extensions import db
from servicebook.models.enums import BookingStatus, PaymentMethod
from servicebook.utils.time_utils import utcnow
import uuid


def gen_booking_id():
    return f"bkg-{str(uuid.uuid4())[:12]}"


class Booking(db.Model):
    __tablename__ = "bookings"

    __table_args__ = (
        db.Index("idx_bookings_status_scheduled_at", "status", "scheduled_at"),
        db.CheckConstraint("total_amount = service_amount", name="ck_bookings_total_is_service"),
    )

    id = db.Column(db.String(50), primary_key=True, default=gen_booking_id)
    booking_number = db.Column(db.String(32), unique=True, nullable=False, index=True)

    customer_id = db.Column(db.String(50), db.ForeignKey("users.id"), nullable=False, index=True)
    provider_id = db.Column(db.String(50), db.ForeignKey("providers.id"), nullable=True, index=True)
    service_id = db.Column(db.String(50), db.ForeignKey("services.id"), nullable=False)

    duration = db.Column(db.Integer, nullable=False)
    scheduled_at = db.Column(db.DateTime, nullable=False)

    status = db.Column(db.String(30), nullable=False, default=BookingStatus.PENDING)
    payment_method = db.Column(db.String(20), nullable=False, default=PaymentMethod.CASH)

    # fixed at creation: total == service, service == fee + earning
    service_amount = db.Column(db.Numeric(12, 2), nullable=False)
    platform_fee = db.Column(db.Numeric(12, 2), nullable=False)
    provider_earning = db.Column(db.Numeric(12, 2), nullable=False)
    total_amount = db.Column(db.Numeric(12, 2), nullable=False)

    address_text = db.Column(db.String(512), nullable=False)
    address_notes = db.Column(db.Text)
    latitude = db.Column(db.Float)
    longitude = db.Column(db.Float)

    # live provider position, overwritten on every update
    current_latitude = db.Column(db.Float)
    current_longitude = db.Column(db.Float)
    location_accuracy = db.Column(db.Float)
    location_updated_at = db.Column(db.DateTime)

    customer_notes = db.Column(db.Text)

    accepted_at = db.Column(db.DateTime)
    en_route_at = db.Column(db.DateTime)
    arrived_at = db.Column(db.DateTime)
    started_at = db.Column(db.DateTime)
    completed_at = db.Column(db.DateTime)
    cancelled_at = db.Column(db.DateTime)
    cancelled_by = db.Column(db.String(50))
    cancel_reason = db.Column(db.Text)

    hidden_by_customer = db.Column(db.Boolean, nullable=False, default=False)
    hidden_by_provider = db.Column(db.Boolean, nullable=False, default=False)

    created_at = db.Column(db.DateTime, default=utcnow)
    updated_at = db.Column(db.DateTime, default=utcnow, onupdate=utcnow)

    customer = db.relationship("User", foreign_keys=[customer_id], backref="customer_bookings", lazy=True)
    provider = db.relationship("Provider", foreign_keys=[provider_id], backref="bookings", lazy=True)
    service = db.relationship("Service", lazy=True)

    @property
    def provider_user_id(self):
        return self.provider.user_id if self.provider else None

    def is_party(self, user_id):
        return user_id in (self.customer_id, self.provider_user_id)
