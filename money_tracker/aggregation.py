"""Spending aggregates derived from a ledger's transactions and categories.

Every function here is pure and recomputes from its inputs; nothing is cached.
Amounts stay as ``Decimal`` until they are formatted for display.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal
from typing import Dict, Iterable, List, Optional, Sequence

from .errors import ValidationError
from .models import UNCATEGORIZED_COLOR, UNCATEGORIZED_NAME, Category, Transaction


ZERO = Decimal("0")
FILTER_TOKENS = ("all", "income", "expense")
SORT_KEYS = ("date", "amount")


@dataclass
class CategorySpend:
    category_id: Optional[int]
    name: str
    color: str
    amount: Decimal = ZERO
    count: int = 0
    transactions: List[Transaction] = field(default_factory=list)


@dataclass(frozen=True)
class MonthlyTotal:
    year: int
    month: int
    amount: Decimal

    @property
    def label(self) -> str:
        return f"{self.month}/{self.year}"


@dataclass(frozen=True)
class MonthlyFlow:
    year: int
    month: int
    income: Decimal
    expense: Decimal

    @property
    def label(self) -> str:
        return f"{self.month}/{self.year}"


@dataclass(frozen=True)
class SummaryStats:
    total_income: Decimal
    total_expense: Decimal
    net_savings: Decimal
    savings_rate: Decimal


@dataclass(frozen=True)
class DashboardSummary:
    total_balance: Decimal
    transaction_count: int
    category_count: int
    expenses_by_category: Sequence[CategorySpend]
    monthly_expenses: Sequence[MonthlyTotal]


def _category_key(transaction: Transaction, lookup: Dict[int, Category]) -> Optional[int]:
    # Orphaned ids from deleted categories fold into Uncategorized.
    if transaction.category_id in lookup:
        return transaction.category_id
    return None


def total_balance(transactions: Iterable[Transaction]) -> Decimal:
    return sum((tx.amount for tx in transactions), ZERO)


def total_income(transactions: Iterable[Transaction]) -> Decimal:
    return sum((tx.amount for tx in transactions if tx.amount > 0), ZERO)


def total_expense(transactions: Iterable[Transaction]) -> Decimal:
    return sum((-tx.amount for tx in transactions if tx.amount < 0), ZERO)


def category_spending(
    transactions: Iterable[Transaction], categories: Iterable[Category]
) -> Dict[Optional[int], CategorySpend]:
    """Expense totals per category, in order of first appearance.

    Keys are category ids, with ``None`` for Uncategorized.
    """
    lookup = {category.id: category for category in categories}
    spending: Dict[Optional[int], CategorySpend] = {}
    for tx in transactions:
        if tx.amount >= 0:
            continue
        key = _category_key(tx, lookup)
        entry = spending.get(key)
        if entry is None:
            if key is None:
                entry = CategorySpend(None, UNCATEGORIZED_NAME, UNCATEGORIZED_COLOR)
            else:
                entry = CategorySpend(key, lookup[key].name, lookup[key].color)
            spending[key] = entry
        entry.amount += -tx.amount
        entry.count += 1
        entry.transactions.append(tx)
    return spending


def ranked_spending(
    transactions: Iterable[Transaction], categories: Iterable[Category]
) -> List[CategorySpend]:
    return sorted(
        category_spending(transactions, categories).values(),
        key=lambda entry: entry.amount,
        reverse=True,
    )


def category_report(
    transactions: Iterable[Transaction], categories: Iterable[Category]
) -> List[CategorySpend]:
    return [entry for entry in ranked_spending(transactions, categories) if entry.amount > 0]


def monthly_expenses(transactions: Iterable[Transaction]) -> List[MonthlyTotal]:
    buckets: Dict[tuple, Decimal] = {}
    for tx in transactions:
        if tx.amount >= 0:
            continue
        key = (tx.date.year, tx.date.month)
        buckets[key] = buckets.get(key, ZERO) + -tx.amount
    return [MonthlyTotal(year, month, amount) for (year, month), amount in sorted(buckets.items())]


def monthly_report(transactions: Iterable[Transaction]) -> List[MonthlyFlow]:
    buckets: Dict[tuple, List[Decimal]] = {}
    for tx in transactions:
        totals = buckets.setdefault((tx.date.year, tx.date.month), [ZERO, ZERO])
        if tx.amount > 0:
            totals[0] += tx.amount
        else:
            totals[1] += -tx.amount
    return [
        MonthlyFlow(year, month, income, expense)
        for (year, month), (income, expense) in sorted(buckets.items())
    ]


def parse_filter_token(token) -> object:
    if token is None or token == "":
        return "all"
    if isinstance(token, bool):
        raise ValidationError(f"Unknown filter: {token}")
    if isinstance(token, int):
        return token
    cleaned = str(token).strip().lower()
    if cleaned in FILTER_TOKENS:
        return cleaned
    try:
        return int(cleaned)
    except ValueError:
        raise ValidationError(f"Unknown filter: {token}") from None


def filter_transactions(
    transactions: Iterable[Transaction],
    start: Optional[date] = None,
    end: Optional[date] = None,
    token="all",
) -> List[Transaction]:
    """Transactions inside ``[start, end]`` that match the filter token.

    ``token`` is ``"all"``, ``"income"``, ``"expense"`` or a category id.
    """
    selector = parse_filter_token(token)
    selected = []
    for tx in transactions:
        if start is not None and tx.date < start:
            continue
        if end is not None and tx.date > end:
            continue
        if selector == "income" and not tx.amount > 0:
            continue
        if selector == "expense" and not tx.amount < 0:
            continue
        if isinstance(selector, int) and tx.category_id != selector:
            continue
        selected.append(tx)
    return selected


def summarize(transactions: Iterable[Transaction]) -> SummaryStats:
    items = list(transactions)
    income = total_income(items)
    expense = total_expense(items)
    net = income - expense
    rate = (net / income * 100) if income > 0 else ZERO
    return SummaryStats(total_income=income, total_expense=expense, net_savings=net, savings_rate=rate)


def list_transactions(
    transactions: Iterable[Transaction],
    search: str = "",
    category_id: Optional[int] = None,
    sort_key: str = "date",
    descending: bool = True,
) -> List[Transaction]:
    if sort_key not in SORT_KEYS:
        raise ValidationError(f"Unknown sort key: {sort_key}")
    needle = (search or "").strip().lower()
    matches = [
        tx
        for tx in transactions
        if needle in (tx.description or "").lower()
        and (category_id is None or tx.category_id == category_id)
    ]
    # sorted() is stable, so equal keys keep insertion order in both directions.
    return sorted(matches, key=lambda tx: getattr(tx, sort_key), reverse=descending)


def dashboard_summary(
    transactions: Sequence[Transaction], categories: Sequence[Category]
) -> DashboardSummary:
    return DashboardSummary(
        total_balance=total_balance(transactions),
        transaction_count=len(transactions),
        category_count=len(categories),
        expenses_by_category=list(category_spending(transactions, categories).values()),
        monthly_expenses=monthly_expenses(transactions),
    )
