from decimal import ROUND_HALF_UP

from marshmallow import EXCLUDE, fields, validate

from servicebook.extensions import ma
from servicebook.models.enums import PaymentMethod
from servicebook.schemas.fields import Money, UTCDateTime


class TopUpSchema(ma.Schema):
    class Meta:
        unknown = EXCLUDE

    amount = fields.Decimal(required=True, places=2, rounding=ROUND_HALF_UP)
    payment_method = fields.Str(required=True, validate=validate.OneOf(PaymentMethod.ALL))
    payment_ref = fields.Str(allow_none=True)


class WalletTransactionSchema(ma.Schema):
    id = fields.Str()
    owner_type = fields.Str()
    type = fields.Str()
    amount = Money()
    balance_before = Money()
    balance_after = Money()
    booking_id = fields.Str()
    payment_method = fields.Str()
    payment_ref = fields.Str()
    status = fields.Str()
    description = fields.Str()
    created_at = UTCDateTime()


class WalletBalanceSchema(ma.Schema):
    balance = Money()
    total_earnings = Money()
    pending_top_ups = Money()
    platform_fee_percentage = fields.Float()


class FeeCheckSchema(ma.Schema):
    has_enough = fields.Bool()
    required = Money()
    current = Money()


wallet_transaction_schema = WalletTransactionSchema()
wallet_transactions_schema = WalletTransactionSchema(many=True)
