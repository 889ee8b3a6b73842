"""Heuristic spending advice.

Each rule is a ``(predicate, formatter)`` pair evaluated against one
``SpendingAnalysis``. Rules are independent: every rule whose predicate holds
contributes its messages, in table order.
"""

from __future__ import annotations

from collections import defaultdict
from dataclasses import dataclass
from decimal import Decimal
from typing import Callable, Dict, List, Optional, Sequence

from . import aggregation
from .aggregation import ZERO, CategorySpend
from .formatting import format_money, format_percent
from .models import Category, Transaction


RECURRING_TOLERANCE = Decimal("5")
UNUSUAL_SHARE_THRESHOLD = Decimal("30")
AVERAGE_SHARE = Decimal("20")
SAVINGS_CUT = Decimal("0.2")
BUDGET_BUFFER = Decimal("1.1")
SAVINGS_CANDIDATES = 2
BUDGET_CANDIDATES = 3


@dataclass(frozen=True)
class Recommendation:
    kind: str
    title: str
    message: str
    severity: str


@dataclass(frozen=True)
class SpendingAnalysis:
    total_income: Decimal
    total_expenses: Decimal
    category_spending: Dict[Optional[int], CategorySpend]
    ranked: Sequence[CategorySpend]
    recurring_transactions: Sequence[Transaction]

    def share_of_expenses(self, entry: CategorySpend) -> Decimal:
        if self.total_expenses == 0:
            return ZERO
        return entry.amount / self.total_expenses * 100

    @property
    def highest_category(self) -> Optional[CategorySpend]:
        return self.ranked[0] if self.ranked else None

    @property
    def unusual_spending(self) -> List[CategorySpend]:
        return [
            entry
            for entry in self.category_spending.values()
            if self.share_of_expenses(entry) > UNUSUAL_SHARE_THRESHOLD
        ]

    @property
    def recurring_total(self) -> Decimal:
        return sum((-tx.amount for tx in self.recurring_transactions), ZERO)


def find_recurring_expenses(transactions, tolerance=RECURRING_TOLERANCE) -> List[Transaction]:
    """Expenses with at least one other expense less than ``tolerance`` apart.

    Amounts are bucketed by ``abs(amount) // tolerance`` so each expense is only
    compared against its own and the two neighbouring buckets. Many expenses of
    nearly the same size still degrade to a pairwise scan within one bucket.
    """
    tolerance = Decimal(str(tolerance))
    expenses = [tx for tx in transactions if tx.amount < 0]
    if tolerance <= 0:
        return []

    buckets = defaultdict(list)
    for tx in expenses:
        buckets[int(abs(tx.amount) // tolerance)].append(tx)

    def has_neighbour(tx):
        size = abs(tx.amount)
        key = int(size // tolerance)
        for bucket in (key - 1, key, key + 1):
            for other in buckets.get(bucket, ()):
                if other.id != tx.id and abs(size - abs(other.amount)) < tolerance:
                    return True
        return False

    return [tx for tx in expenses if has_neighbour(tx)]


def analyze_spending(transactions, categories, recurring_tolerance=RECURRING_TOLERANCE) -> SpendingAnalysis:
    transactions = list(transactions)
    spending = aggregation.category_spending(transactions, categories)
    ranked = sorted(spending.values(), key=lambda entry: entry.amount, reverse=True)
    return SpendingAnalysis(
        total_income=aggregation.total_income(transactions),
        total_expenses=aggregation.total_expense(transactions),
        category_spending=spending,
        ranked=ranked,
        recurring_transactions=find_recurring_expenses(transactions, recurring_tolerance),
    )


def _high_spending(analysis):
    top = analysis.highest_category
    share = format_percent(analysis.share_of_expenses(top))
    return [f"{share} of your expenses go to {top.name}. Consider setting a budget limit."]


def _unusual_spending(analysis):
    return [
        f"Your {entry.name} spending is "
        f"{format_percent(analysis.share_of_expenses(entry) - AVERAGE_SHARE)} higher than average."
        for entry in analysis.unusual_spending
    ]


def _savings_opportunity(analysis):
    top, *_ = analysis.ranked[:SAVINGS_CANDIDATES]
    return [
        f"You could save {format_money(top.amount * SAVINGS_CUT)} per month "
        f"by reducing {top.name} expenses by 20%."
    ]


def _positive_trend(analysis):
    saved = (analysis.total_income - analysis.total_expenses) / analysis.total_income * 100
    return [f"Your income exceeds your spending by {format_percent(saved)} of income. Keep it up!"]


def _budget_suggestions(analysis):
    return [
        f"Based on your spending, we recommend a {entry.name} budget of "
        f"{format_money(entry.amount * BUDGET_BUFFER)}/month."
        for entry in analysis.ranked[:BUDGET_CANDIDATES]
    ]


def _recurring_expenses(analysis):
    count = len(analysis.recurring_transactions)
    return [
        f"You have {count} recurring expenses totaling {format_money(analysis.recurring_total)}/month."
    ]


@dataclass(frozen=True)
class Rule:
    kind: str
    title: str
    severity: str
    predicate: Callable[[SpendingAnalysis], bool]
    formatter: Callable[[SpendingAnalysis], List[str]]

    def evaluate(self, analysis: SpendingAnalysis) -> List[Recommendation]:
        if not self.predicate(analysis):
            return []
        return [Recommendation(self.kind, self.title, message, self.severity) for message in self.formatter(analysis)]


RULES = [
    Rule(
        "high_spending",
        "High Spending Alert",
        "warning",
        lambda analysis: analysis.highest_category is not None and analysis.total_expenses > 0,
        _high_spending,
    ),
    Rule(
        "unusual_spending",
        "Unusual Spending Detected",
        "info",
        lambda analysis: bool(analysis.unusual_spending),
        _unusual_spending,
    ),
    Rule(
        "savings_opportunity",
        "Savings Opportunity",
        "success",
        lambda analysis: bool(analysis.ranked),
        _savings_opportunity,
    ),
    Rule(
        "positive_trend",
        "Great Progress!",
        "success",
        lambda analysis: analysis.total_income > analysis.total_expenses,
        _positive_trend,
    ),
    Rule(
        "budget_suggestion",
        "Budget Suggestion",
        "tip",
        lambda analysis: bool(analysis.ranked),
        _budget_suggestions,
    ),
    Rule(
        "recurring_expenses",
        "Recurring Expenses Detected",
        "info",
        lambda analysis: bool(analysis.recurring_transactions),
        _recurring_expenses,
    ),
]


def evaluate_rules(analysis: SpendingAnalysis, rules=None) -> List[Recommendation]:
    recommendations = []
    for rule in RULES if rules is None else rules:
        recommendations.extend(rule.evaluate(analysis))
    return recommendations


def generate_recommendations(
    transactions: Sequence[Transaction],
    categories: Sequence[Category],
    recurring_tolerance=RECURRING_TOLERANCE,
    rules=None,
) -> List[Recommendation]:
    transactions = list(transactions)
    if not transactions:
        return []
    analysis = analyze_spending(transactions, categories, recurring_tolerance)
    return evaluate_rules(analysis, rules)
