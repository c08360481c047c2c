from servicebook.extensions import db
from servicebook.utils.time_utils import utcnow
import uuid


def gen_shop_id():
    return f"shop-{str(uuid.uuid4())[:8]}"


class Shop(db.Model):
    __tablename__ = "shops"

    id = db.Column(db.String(50), primary_key=True, default=gen_shop_id)
    owner_id = db.Column(db.String(50), db.ForeignKey("users.id"), nullable=False, index=True)
    name = db.Column(db.String(255), nullable=False)

    # denormalized wallet balance, kept in step with wallet_transactions
    balance = db.Column(db.Numeric(12, 2), nullable=False, default=0)
    total_earnings = db.Column(db.Numeric(12, 2), nullable=False, default=0)

    created_at = db.Column(db.DateTime, default=utcnow)

    owner = db.relationship("User", backref="shops", lazy=True)
