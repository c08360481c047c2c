from servicebook.extensions import db
from servicebook.models.enums import ProviderStatus
from servicebook.utils.time_utils import utcnow
import uuid


def gen_provider_id():
    return f"prv-{str(uuid.uuid4())[:8]}"


class Provider(db.Model):
    __tablename__ = "providers"

    id = db.Column(db.String(50), primary_key=True, default=gen_provider_id)
    user_id = db.Column(db.String(50), db.ForeignKey("users.id"), unique=True, nullable=False)
    # shop-affiliated providers settle platform fees through the shop wallet
    shop_id = db.Column(db.String(50), db.ForeignKey("shops.id"), nullable=True, index=True)

    display_name = db.Column(db.String(255))
    status = db.Column(db.String(30), nullable=False, default=ProviderStatus.PENDING)

    balance = db.Column(db.Numeric(12, 2), nullable=False, default=0)
    total_earnings = db.Column(db.Numeric(12, 2), nullable=False, default=0)
    completed_bookings = db.Column(db.Integer, nullable=False, default=0)

    created_at = db.Column(db.DateTime, default=utcnow)

    user = db.relationship("User", backref=db.backref("provider", uselist=False), lazy=True)
    shop = db.relationship("Shop", backref="providers", lazy=True)


class ProviderService(db.Model):
    __tablename__ = "provider_services"

    __table_args__ = (
        db.UniqueConstraint("provider_id", "service_id", name="uq_provider_service"),
    )

    id = db.Column(db.Integer, primary_key=True)
    provider_id = db.Column(db.String(50), db.ForeignKey("providers.id"), nullable=False)
    service_id = db.Column(db.String(50), db.ForeignKey("services.id"), nullable=False)

    price_60 = db.Column(db.Numeric(12, 2), nullable=False)
    price_90 = db.Column(db.Numeric(12, 2), nullable=True)
    price_120 = db.Column(db.Numeric(12, 2), nullable=True)

    provider = db.relationship("Provider", backref="services", lazy=True)
    service = db.relationship("Service", lazy=True)
