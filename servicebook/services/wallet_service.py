from decimal import Decimal
import logging

from sqlalchemy import func
from sqlalchemy.exc import SQLAlchemyError

from servicebook.models.enums import (
    PaymentMethod,
    TransactionStatus,
    WalletOwnerType,
    WalletTransactionType,
)
from servicebook.models.provider import Provider
from servicebook.models.shop import Shop
from servicebook.models.wallet_transaction import WalletTransaction
from servicebook.utils.exceptions import (
    InsufficientBalance,
    InvalidAmount,
    NotFound,
    ValidationError,
)
from servicebook.utils.money import calculate_platform_fee, quantize_money, to_decimal
from servicebook.utils.pagination import paginate_query
from servicebook.utils.time_utils import utcnow

logger = logging.getLogger(__name__)

OWNER_MODELS = {
    WalletOwnerType.PROVIDER: Provider,
    WalletOwnerType.SHOP: Shop,
}


def resolve_fee_owner(provider):
    """Wallet that settles fees for ``provider``: its shop's when affiliated."""
    if provider.shop_id:
        return WalletOwnerType.SHOP, provider.shop_id
    return WalletOwnerType.PROVIDER, provider.id


def _owner_filter(owner_type, owner_id):
    if owner_type == WalletOwnerType.PROVIDER:
        return (WalletTransaction.owner_type == owner_type) & (WalletTransaction.provider_id == owner_id)
    return (WalletTransaction.owner_type == owner_type) & (WalletTransaction.shop_id == owner_id)


class WalletService:
    """Per-owner balances backed by an append-only transaction ledger.

    Every balance change goes through ``_append`` which records the
    before/after snapshot next to the new balance, so the ledger and the
    denormalized ``balance`` column are written by the same flush. Public
    mutators commit once at the end; callers composing a larger unit of work
    pass ``commit=False`` and commit themselves.
    """

    def __init__(self, session, fee_rate):
        self.session = session
        self.fee_rate = to_decimal(fee_rate)

    @property
    def platform_fee_percentage(self):
        return float(self.fee_rate * 100)

    def calculate_fee(self, service_amount):
        return calculate_platform_fee(service_amount, self.fee_rate)

    # ------------------------------------------------------------
    # reads
    # ------------------------------------------------------------
    def get_balance(self, owner_type, owner_id):
        owner = self._load_owner(owner_type, owner_id)

        pending = (
            self.session.query(func.coalesce(func.sum(WalletTransaction.amount), 0))
            .filter(_owner_filter(owner_type, owner_id))
            .filter(WalletTransaction.type == WalletTransactionType.TOP_UP)
            .filter(WalletTransaction.status == TransactionStatus.PENDING)
            .scalar()
        )

        return {
            "balance": to_decimal(owner.balance),
            "total_earnings": to_decimal(owner.total_earnings),
            "pending_top_ups": quantize_money(pending),
            "platform_fee_percentage": self.platform_fee_percentage,
        }

    def list_transactions(self, owner_type, owner_id, page=1, limit=20):
        self._load_owner(owner_type, owner_id)
        q = (
            self.session.query(WalletTransaction)
            .filter(_owner_filter(owner_type, owner_id))
            .order_by(WalletTransaction.created_at.desc(), WalletTransaction.id.desc())
        )
        return paginate_query(q, page, limit)

    def check_balance_for_fee(self, owner_type, owner_id, service_amount):
        owner = self._load_owner(owner_type, owner_id)
        fee = self.calculate_fee(service_amount)
        current = to_decimal(owner.balance)
        return {
            "has_enough": current >= fee,
            "required": fee,
            "current": current,
        }

    # ------------------------------------------------------------
    # writes
    # ------------------------------------------------------------
    def top_up(self, owner_type, owner_id, amount, method, reference=None):
        amount = to_decimal(amount)
        if amount is None or amount <= 0:
            raise InvalidAmount(amount)
        if method not in PaymentMethod.ALL:
            raise ValidationError("Invalid payment method", {"payment_method": [f"Must be one of {', '.join(PaymentMethod.ALL)}"]})

        try:
            owner = self._load_owner(owner_type, owner_id, lock=True)
            tx = self._append(
                owner_type,
                owner,
                WalletTransactionType.TOP_UP,
                quantize_money(amount),
                payment_method=method,
                payment_ref=reference,
                description=f"Wallet top-up via {method}",
            )
            self.session.commit()
        except (SQLAlchemyError, NotFound):
            self.session.rollback()
            raise

        logger.info("Wallet top-up %s %s: +%s -> %s", owner_type, owner_id, tx.amount, tx.balance_after)
        return tx

    def deduct_platform_fee(self, owner_type, owner_id, booking_id, service_amount, commit=True):
        fee = self.calculate_fee(service_amount)
        try:
            owner = self._load_owner(owner_type, owner_id, lock=True)
            current = to_decimal(owner.balance)
            if current < fee:
                raise InsufficientBalance(required=fee, current=current)

            tx = self._append(
                owner_type,
                owner,
                WalletTransactionType.PLATFORM_FEE,
                -fee,
                booking_id=booking_id,
                description=f"Platform fee ({self.platform_fee_percentage:g}%) for cash booking",
            )
            if commit:
                self.session.commit()
        except (SQLAlchemyError, InsufficientBalance, NotFound):
            # a caller composing a larger transaction owns its rollback
            if commit:
                self.session.rollback()
            raise
        logger.info("Platform fee %s deducted from %s %s for booking %s", fee, owner_type, owner_id, booking_id)
        return tx

    def refund_platform_fee(self, booking_id, commit=True):
        """Reverse the fee taken for ``booking_id``, if any. Returns the refund row or None."""
        fee_tx = (
            self.session.query(WalletTransaction)
            .filter_by(booking_id=booking_id, type=WalletTransactionType.PLATFORM_FEE,
                       status=TransactionStatus.COMPLETED)
            .first()
        )
        if not fee_tx:
            return None
        already = (
            self.session.query(WalletTransaction.id)
            .filter_by(booking_id=booking_id, type=WalletTransactionType.REFUND)
            .first()
        )
        if already:
            return None

        owner_id = fee_tx.provider_id if fee_tx.owner_type == WalletOwnerType.PROVIDER else fee_tx.shop_id
        owner = self._load_owner(fee_tx.owner_type, owner_id, lock=True)
        tx = self._append(
            fee_tx.owner_type,
            owner,
            WalletTransactionType.REFUND,
            -to_decimal(fee_tx.amount),
            booking_id=booking_id,
            description="Platform fee refund for cancelled booking",
        )
        if commit:
            self._commit()
        return tx

    def credit_earning(self, owner_type, owner_id, booking_id, amount, commit=True):
        amount = quantize_money(amount)
        if amount <= 0:
            raise InvalidAmount(amount)
        owner = self._load_owner(owner_type, owner_id, lock=True)
        tx = self._append(
            owner_type,
            owner,
            WalletTransactionType.EARNING,
            amount,
            booking_id=booking_id,
            description="Earning for completed booking",
        )
        owner.total_earnings = to_decimal(owner.total_earnings or 0) + amount
        if commit:
            self._commit()
        return tx

    # ------------------------------------------------------------
    # internals
    # ------------------------------------------------------------
    def _load_owner(self, owner_type, owner_id, lock=False):
        model = OWNER_MODELS.get(owner_type)
        if model is None:
            raise ValidationError("Invalid wallet owner", {"owner_type": [f"Must be one of {', '.join(OWNER_MODELS)}"]})

        q = self.session.query(model).filter(model.id == owner_id)
        if lock:
            q = q.with_for_update()
        owner = q.first()
        if not owner:
            raise NotFound(f"{owner_type.title()} not found")
        return owner

    def _append(self, owner_type, owner, tx_type, amount, **fields):
        balance_before = to_decimal(owner.balance or 0)
        balance_after = balance_before + amount

        tx = WalletTransaction(
            owner_type=owner_type,
            provider_id=owner.id if owner_type == WalletOwnerType.PROVIDER else None,
            shop_id=owner.id if owner_type == WalletOwnerType.SHOP else None,
            type=tx_type,
            amount=amount,
            balance_before=balance_before,
            balance_after=balance_after,
            status=TransactionStatus.COMPLETED,
            created_at=utcnow(),
            **fields,
        )
        owner.balance = balance_after
        self.session.add(tx)
        self.session.flush()
        return tx

    def _commit(self):
        try:
            self.session.commit()
        except SQLAlchemyError:
            self.session.rollback()
            raise


def ledger_total(session, owner_type, owner_id):
    """Sum of completed ledger rows for an owner; equals its live balance."""
    total = (
        session.query(func.coalesce(func.sum(WalletTransaction.amount), 0))
        .filter(_owner_filter(owner_type, owner_id))
        .filter(WalletTransaction.status == TransactionStatus.COMPLETED)
        .scalar()
    )
    return quantize_money(Decimal(str(total)))


def find_ledger_mismatches(session):
    """Wallets whose stored balance disagrees with their ledger.

    Returns ``(owner_type, owner_id, balance, ledger)`` tuples, empty when
    every wallet reconciles.
    """
    mismatches = []
    for owner_type, model in OWNER_MODELS.items():
        for owner in session.query(model).order_by(model.id).all():
            ledger = ledger_total(session, owner_type, owner.id)
            balance = quantize_money(owner.balance or 0)
            if ledger != balance:
                mismatches.append((owner_type, owner.id, balance, ledger))
    return mismatches
