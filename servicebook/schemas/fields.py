from marshmallow import fields

from servicebook.utils.money import format_money
from servicebook.utils.time_utils import isoformat_z


class Money(fields.Field):
    """Decimal money column rendered as a 2-place float."""

    def _serialize(self, value, attr, obj, **kwargs):
        return format_money(value)


class UTCDateTime(fields.Field):
    def _serialize(self, value, attr, obj, **kwargs):
        return isoformat_z(value)
