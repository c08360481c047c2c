from servicebook.extensions import db
from servicebook.models.enums import TransactionStatus
from servicebook.utils.time_utils import utcnow
import uuid


def gen_tx_id():
    return f"wtx_{uuid.uuid4().hex[:12]}"


class WalletTransaction(db.Model):
    __tablename__ = "wallet_transactions"

    __table_args__ = (
        db.Index("idx_wallet_tx_provider", "owner_type", "provider_id"),
        db.Index("idx_wallet_tx_shop", "owner_type", "shop_id"),
        db.Index("idx_wallet_tx_type", "type"),
        db.CheckConstraint(
            "(owner_type = 'PROVIDER' AND provider_id IS NOT NULL AND shop_id IS NULL) OR "
            "(owner_type = 'SHOP' AND shop_id IS NOT NULL AND provider_id IS NULL)",
            name="ck_wallet_tx_single_owner",
        ),
    )

    id = db.Column(db.String(50), primary_key=True, default=gen_tx_id)

    owner_type = db.Column(db.String(20), nullable=False)
    provider_id = db.Column(db.String(50), db.ForeignKey("providers.id"), nullable=True)
    shop_id = db.Column(db.String(50), db.ForeignKey("shops.id"), nullable=True)

    type = db.Column(db.String(30), nullable=False)
    # positive = credit, negative = debit
    amount = db.Column(db.Numeric(12, 2), nullable=False)
    balance_before = db.Column(db.Numeric(12, 2), nullable=False)
    balance_after = db.Column(db.Numeric(12, 2), nullable=False)

    booking_id = db.Column(db.String(50), db.ForeignKey("bookings.id"), nullable=True, index=True)
    payment_method = db.Column(db.String(20))
    payment_ref = db.Column(db.String(255))

    status = db.Column(db.String(20), nullable=False, default=TransactionStatus.COMPLETED)
    description = db.Column(db.String(255))
    created_at = db.Column(db.DateTime, default=utcnow, index=True)
