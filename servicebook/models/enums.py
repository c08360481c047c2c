class BookingStatus:
    PENDING = "PENDING"
    ACCEPTED = "ACCEPTED"
    PROVIDER_EN_ROUTE = "PROVIDER_EN_ROUTE"
    PROVIDER_ARRIVED = "PROVIDER_ARRIVED"
    IN_PROGRESS = "IN_PROGRESS"
    COMPLETED = "COMPLETED"
    CANCELLED = "CANCELLED"

    ALL = (PENDING, ACCEPTED, PROVIDER_EN_ROUTE, PROVIDER_ARRIVED, IN_PROGRESS, COMPLETED, CANCELLED)

    # provider-driven progression after acceptance, in order
    PROGRESSION = (ACCEPTED, PROVIDER_EN_ROUTE, PROVIDER_ARRIVED, IN_PROGRESS, COMPLETED)
    ACTIVE = (ACCEPTED, PROVIDER_EN_ROUTE, PROVIDER_ARRIVED, IN_PROGRESS)
    CANCELLABLE = (PENDING, ACCEPTED)


class PaymentMethod:
    CASH = "CASH"
    CARD = "CARD"
    GCASH = "GCASH"
    PAYMAYA = "PAYMAYA"

    ALL = (CASH, CARD, GCASH, PAYMAYA)


class WalletOwnerType:
    PROVIDER = "PROVIDER"
    SHOP = "SHOP"

    ALL = (PROVIDER, SHOP)


class WalletTransactionType:
    TOP_UP = "TOP_UP"
    PLATFORM_FEE = "PLATFORM_FEE"
    PAYOUT = "PAYOUT"
    EARNING = "EARNING"
    REFUND = "REFUND"
    ADJUSTMENT = "ADJUSTMENT"


class TransactionStatus:
    PENDING = "PENDING"
    COMPLETED = "COMPLETED"
    FAILED = "FAILED"


class ProviderStatus:
    PENDING = "PENDING"
    APPROVED = "APPROVED"
    SUSPENDED = "SUSPENDED"


class UserRole:
    CUSTOMER = "customer"
    PROVIDER = "provider"
    SHOP_OWNER = "shop_owner"
    ADMIN = "admin"
