from flask import Blueprint, current_app, request
from flask_jwt_extended import jwt_required, get_jwt_identity

from servicebook.models.enums import WalletOwnerType
from servicebook.models.provider import Provider
from servicebook.models.shop import Shop
from servicebook.schemas.wallet_schema import (
    FeeCheckSchema,
    TopUpSchema,
    WalletBalanceSchema,
    wallet_transaction_schema,
    wallet_transactions_schema,
)
from servicebook.utils.exceptions import NotFound, ValidationError
from servicebook.utils.response_formatter import success_response

bp = Blueprint("wallet", __name__, url_prefix="/api/v1/wallet")


def _wallet():
    return current_app.extensions["servicebook"]["wallet"]


def _resolve_owner(owner, uid):
    """Map the ``provider``/``shop`` path segment to the caller's own wallet."""
    if owner == "provider":
        provider = Provider.query.filter_by(user_id=uid).first()
        if not provider:
            raise NotFound("Provider profile not found")
        return WalletOwnerType.PROVIDER, provider.id
    if owner == "shop":
        shop = Shop.query.filter_by(owner_id=uid).first()
        if not shop:
            raise NotFound("Shop not found")
        return WalletOwnerType.SHOP, shop.id
    raise NotFound("Unknown wallet type")


# ------------------------------------------------------------
#  GET /wallet/<owner>: balance summary
# ------------------------------------------------------------
@bp.route("/<owner>", methods=["GET"])
@jwt_required()
def get_wallet(owner):
    owner_type, owner_id = _resolve_owner(owner, get_jwt_identity())
    summary = _wallet().get_balance(owner_type, owner_id)
    return success_response({"wallet": WalletBalanceSchema().dump(summary)})


@bp.route("/<owner>/transactions", methods=["GET"])
@jwt_required()
def list_transactions(owner):
    owner_type, owner_id = _resolve_owner(owner, get_jwt_identity())
    page = request.args.get("page", 1, type=int)
    limit = request.args.get("limit", 20, type=int)
    items, meta = _wallet().list_transactions(owner_type, owner_id, page, limit)
    return success_response({"transactions": wallet_transactions_schema.dump(items), "pagination": meta})


# ------------------------------------------------------------
#  POST /wallet/<owner>/top-up
# ------------------------------------------------------------
@bp.route("/<owner>/top-up", methods=["POST"])
@jwt_required()
def top_up(owner):
    owner_type, owner_id = _resolve_owner(owner, get_jwt_identity())
    data = TopUpSchema().load(request.get_json(silent=True) or {})
    tx = _wallet().top_up(owner_type, owner_id, data["amount"], data["payment_method"], data.get("payment_ref"))
    return success_response(
        {"transaction": wallet_transaction_schema.dump(tx)},
        message="Wallet topped up",
        status=201,
    )


@bp.route("/<owner>/fee-check", methods=["GET"])
@jwt_required()
def fee_check(owner):
    owner_type, owner_id = _resolve_owner(owner, get_jwt_identity())
    amount = request.args.get("amount", type=float)
    if amount is None or amount <= 0:
        raise ValidationError("A positive amount is required", {"amount": ["Must be a positive number"]})
    result = _wallet().check_balance_for_fee(owner_type, owner_id, amount)
    return success_response({"fee_check": FeeCheckSchema().dump(result)})
