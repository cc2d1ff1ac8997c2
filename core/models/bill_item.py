"""Bill line item models, used only while generating an invoice."""

from decimal import Decimal
from enum import Enum

from pydantic import BaseModel, Field


class BillItemType(str, Enum):
    """Kind of charge on a bill."""

    RENT = "rent"
    ELECTRICITY = "electricity"
    WATER = "water"
    OTHER = "other"


METERED_TYPES = frozenset({BillItemType.ELECTRICITY, BillItemType.WATER})


class BillItem(BaseModel):
    """
    One line of a bill.

    For metered types with both readings, amount is recomputed from the
    readings and rate; a caller-supplied amount is advisory only.
    """

    type: BillItemType
    amount: Decimal = Decimal("0")
    description: str | None = Field(None, max_length=500)
    rate: Decimal | None = None
    start_reading: Decimal | None = None
    end_reading: Decimal | None = None
    units_divider_room: Decimal | None = None

    @property
    def is_metered(self) -> bool:
        """Whether this item is an electricity or water charge."""
        return self.type in METERED_TYPES

    @property
    def has_readings(self) -> bool:
        """Whether both meter readings were supplied."""
        return self.start_reading is not None and self.end_reading is not None
