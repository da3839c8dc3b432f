"""Column types shared by the models.

Quantities are kilograms with three decimal places.  They are stored as
whole grams so that stock arithmetic is exact on every backend, including
SQLite, which keeps NUMERIC values as floating point.
"""

from decimal import Decimal

from sqlalchemy import BigInteger
from sqlalchemy.types import TypeDecorator

GRAMS_PER_KG = 1000


class Quantity(TypeDecorator):
    """Decimal kilograms in Python, integer grams in the database."""

    impl = BigInteger
    cache_ok = True

    def process_bind_param(self, value, dialect):
        if value is None:
            return None
        return int((Decimal(str(value)) * GRAMS_PER_KG).to_integral_value())

    def process_result_value(self, value, dialect):
        if value is None:
            return None
        return Decimal(int(value)).scaleb(-3)
