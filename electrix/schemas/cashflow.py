import datetime
from decimal import Decimal, InvalidOperation
from enum import Enum
from typing import Optional

from pydantic import BaseModel, field_validator


class TransactionType(str, Enum):
    EXPENSE = "gasto"
    INCOME = "ingreso"


CATEGORIES = ("Materiales", "Servicios", "Transporte", "Pago", "Otro")


class Transaction(BaseModel):
    id: str
    type: TransactionType
    amount: Decimal
    category: str = CATEGORIES[0]
    description: str = ""
    date: str
    created_by: Optional[str] = None
    created_at: Optional[str] = None

    @property
    def day(self) -> str:
        # Stored either as a date or a timestamp
        return self.date.split("T")[0]


class TransactionForm(BaseModel):
    """Values captured by the add/edit modal, before they are sent."""

    type: TransactionType = TransactionType.EXPENSE
    amount: str = ""
    category: str = CATEGORIES[0]
    description: str = ""
    date: str = ""

    @field_validator("amount", "description", "date", mode="before")
    @classmethod
    def strip(cls, v):
        return str(v or "").strip()

    def parsed_amount(self) -> Optional[Decimal]:
        try:
            value = Decimal(self.amount.replace(",", "."))
        except InvalidOperation:
            return None
        # NaN and Infinity parse but are not amounts
        return value if value.is_finite() else None

    def is_complete(self) -> bool:
        return bool(self.amount) and bool(self.description) and self.parsed_amount() is not None

    def to_record(self) -> dict:
        return {
            "type": self.type.value,
            "amount": str(self.parsed_amount()),
            "category": self.category,
            "description": self.description,
            "date": self.date or datetime.date.today().isoformat(),
        }
