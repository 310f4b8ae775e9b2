from __future__ import annotations

from decimal import ROUND_HALF_UP, Decimal

from sqlalchemy.types import BigInteger, TypeDecorator


QUANTITY_PLACES = 3
QUANTITY_QUANTUM = Decimal(1).scaleb(-QUANTITY_PLACES)


class Quantity(TypeDecorator):
    """
    Fixed-point quantity stored as an integer count of thousandths.

    Python side: Decimal with 3 places (Decimal("0.125") <-> 125).
    Bound values inside expressions (quantity >= :n, quantity + :delta) are
    scaled the same way, so comparisons and increments run in integer
    arithmetic on every dialect, SQLite included.
    """
    impl = BigInteger
    cache_ok = True

    @property
    def python_type(self):
        return Decimal

    def process_bind_param(self, value, dialect):
        if value is None:
            return None
        if isinstance(value, float):
            value = repr(value)
        quantized = Decimal(value).quantize(QUANTITY_QUANTUM, rounding=ROUND_HALF_UP)
        return int(quantized.scaleb(QUANTITY_PLACES))

    def process_result_value(self, value, dialect):
        if value is None:
            return None
        return Decimal(int(value)).scaleb(-QUANTITY_PLACES)
