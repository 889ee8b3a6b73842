from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from typing import Optional


UNCATEGORIZED_NAME = "Uncategorized"
UNCATEGORIZED_COLOR = "#cccccc"
DEFAULT_CATEGORY_COLOR = "#000000"

DEFAULT_CATEGORIES = [
    ("Food & Dining", "#FF5733"),
    ("Transportation", "#33FF57"),
    ("Entertainment", "#3357FF"),
    ("Utilities", "#F3FF33"),
    ("Shopping", "#FF33F6"),
    ("Healthcare", "#33FFF6"),
    ("Income", "#8033FF"),
    ("Other", "#FF8333"),
]


@dataclass
class Transaction:
    id: int
    date: date
    description: str
    amount: Decimal
    category_id: Optional[int] = None

    @property
    def is_income(self):
        return self.amount > 0

    @property
    def is_expense(self):
        return self.amount < 0


@dataclass
class Category:
    id: int
    name: str
    color: str = DEFAULT_CATEGORY_COLOR


@dataclass(frozen=True)
class ColumnMapping:
    date: str
    description: str
    amount: str

    @classmethod
    def from_payload(cls, payload):
        payload = payload or {}
        return cls(
            date=(payload.get("date") or "").strip(),
            description=(payload.get("description") or "").strip(),
            amount=(payload.get("amount") or "").strip(),
        )

    def missing_fields(self):
        return [field for field in ("date", "description", "amount") if not getattr(self, field)]


def default_categories():
    return [Category(id=index, name=name, color=color) for index, (name, color) in enumerate(DEFAULT_CATEGORIES, start=1)]
