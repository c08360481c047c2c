from decimal import Decimal, ROUND_HALF_UP

CENTS = Decimal("0.01")


def to_decimal(value):
    if value is None:
        return None
    if isinstance(value, Decimal):
        return value
    return Decimal(str(value))


def quantize_money(value):
    return to_decimal(value).quantize(CENTS, rounding=ROUND_HALF_UP)


def calculate_platform_fee(service_amount, fee_rate):
    """Platform share of ``service_amount``, rounded half-up to cents.

    Booking creation, the wallet precheck and the wallet deduction all call
    this, so the figures they report can never disagree.
    """
    return quantize_money(to_decimal(service_amount) * to_decimal(fee_rate))


def format_money(value):
    if value is None:
        return None
    return float(quantize_money(value))
