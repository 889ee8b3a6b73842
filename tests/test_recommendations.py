from datetime import date
from decimal import Decimal

from money_tracker.models import Category, Transaction
from money_tracker.recommendations import (
    RULES,
    Rule,
    analyze_spending,
    evaluate_rules,
    find_recurring_expenses,
    generate_recommendations,
)


CATEGORIES = [Category(1, "Food"), Category(2, "Other"), Category(3, "Rent"), Category(4, "Fun")]


def tx(tx_id, amount, category_id=None):
    return Transaction(id=tx_id, date=date(2024, 3, 1), description=f"tx {tx_id}", amount=Decimal(amount), category_id=category_id)


def by_kind(recommendations, kind):
    return [item for item in recommendations if item.kind == kind]


def test_empty_transaction_set_yields_no_recommendations():
    assert generate_recommendations([], CATEGORIES) == []


def test_high_spending_alert_names_top_category_share():
    transactions = [tx(1, "-100", category_id=1), tx(2, "-10", category_id=2)]

    recommendations = generate_recommendations(transactions, CATEGORIES)

    alert = by_kind(recommendations, "high_spending")
    assert len(alert) == 1
    assert alert[0].severity == "warning"
    assert alert[0].title == "High Spending Alert"
    assert alert[0].message == "90.9% of your expenses go to Food. Consider setting a budget limit."
    assert recommendations[0] is alert[0]


def test_unusual_spending_reports_share_minus_twenty_points():
    transactions = [tx(1, "-40", category_id=1), tx(2, "-35", category_id=2), tx(3, "-25", category_id=3)]

    unusual = by_kind(generate_recommendations(transactions, CATEGORIES), "unusual_spending")

    assert [item.message for item in unusual] == [
        "Your Food spending is 20.0% higher than average.",
        "Your Other spending is 15.0% higher than average.",
    ]
    assert all(item.severity == "info" for item in unusual)


def test_share_of_exactly_thirty_percent_is_not_unusual():
    transactions = [tx(1, "-30", category_id=1), tx(2, "-70", category_id=2)]
    unusual = by_kind(generate_recommendations(transactions, CATEGORIES), "unusual_spending")
    assert [item.message for item in unusual] == ["Your Other spending is 50.0% higher than average."]


def test_savings_opportunity_is_twenty_percent_of_top_category():
    transactions = [tx(1, "-123.45", category_id=1), tx(2, "-10", category_id=2)]

    savings = by_kind(generate_recommendations(transactions, CATEGORIES), "savings_opportunity")

    assert len(savings) == 1
    assert savings[0].severity == "success"
    assert savings[0].message == "You could save $24.69 per month by reducing Food expenses by 20%."


def test_positive_trend_only_when_income_exceeds_expenses():
    earning = [tx(1, "1000"), tx(2, "-250", category_id=1)]
    trend = by_kind(generate_recommendations(earning, CATEGORIES), "positive_trend")
    assert len(trend) == 1
    assert "75.0%" in trend[0].message

    spending = [tx(1, "100"), tx(2, "-250", category_id=1)]
    assert by_kind(generate_recommendations(spending, CATEGORIES), "positive_trend") == []


def test_income_only_set_still_reports_positive_trend():
    recommendations = generate_recommendations([tx(1, "500")], CATEGORIES)
    assert [item.kind for item in recommendations] == ["positive_trend"]
    assert "100.0%" in recommendations[0].message


def test_budget_suggestions_cover_top_three_with_buffer():
    transactions = [
        tx(1, "-100", category_id=1),
        tx(2, "-50", category_id=2),
        tx(3, "-30", category_id=3),
        tx(4, "-200", category_id=4),
    ]

    budgets = by_kind(generate_recommendations(transactions, CATEGORIES), "budget_suggestion")

    assert [item.message for item in budgets] == [
        "Based on your spending, we recommend a Fun budget of $220.00/month.",
        "Based on your spending, we recommend a Food budget of $110.00/month.",
        "Based on your spending, we recommend a Other budget of $55.00/month.",
    ]
    assert all(item.severity == "tip" for item in budgets)


def test_recurring_expenses_within_tolerance_are_flagged():
    transactions = [tx(1, "-20.00"), tx(2, "-21.00"), tx(3, "-100.00")]

    flagged = find_recurring_expenses(transactions)

    assert [item.id for item in flagged] == [1, 2]
    summary = by_kind(generate_recommendations(transactions, CATEGORIES), "recurring_expenses")
    assert summary[0].message == "You have 2 recurring expenses totaling $41.00/month."


def test_lone_expense_is_not_recurring():
    assert find_recurring_expenses([tx(1, "-100.00"), tx(2, "50.00"), tx(3, "-52.00")]) == []


def test_recurring_tolerance_is_strict_and_crosses_buckets():
    assert find_recurring_expenses([tx(1, "-10"), tx(2, "-15")]) == []
    flagged = find_recurring_expenses([tx(1, "-9.99"), tx(2, "-14.98")])
    assert [item.id for item in flagged] == [1, 2]


def test_recurring_matches_pairwise_definition():
    amounts = ["-1", "-4.5", "-12", "-16.99", "-40", "-49", "-53.5", "-120", "-300", "-304.99"]
    transactions = [tx(index, amount) for index, amount in enumerate(amounts, start=1)]

    expected = [
        item.id
        for item in transactions
        if any(
            other.id != item.id and abs(abs(item.amount) - abs(other.amount)) < 5
            for other in transactions
        )
    ]

    assert [item.id for item in find_recurring_expenses(transactions)] == expected


def test_same_transaction_twice_is_not_its_own_match():
    single = tx(1, "-20")
    assert find_recurring_expenses([single]) == []


def test_recommendations_are_idempotent():
    transactions = [
        tx(1, "2500"),
        tx(2, "-100", category_id=1),
        tx(3, "-98", category_id=2),
        tx(4, "-12"),
    ]
    first = generate_recommendations(transactions, CATEGORIES)
    second = generate_recommendations(transactions, CATEGORIES)
    assert first == second
    assert [item.kind for item in first] == [
        "high_spending",
        "unusual_spending",
        "unusual_spending",
        "savings_opportunity",
        "positive_trend",
        "budget_suggestion",
        "budget_suggestion",
        "budget_suggestion",
        "recurring_expenses",
    ]


def test_orphaned_category_reported_as_uncategorized():
    transactions = [tx(1, "-80", category_id=99), tx(2, "-20", category_id=1)]
    alert = by_kind(generate_recommendations(transactions, CATEGORIES), "high_spending")
    assert alert[0].message.endswith("go to Uncategorized. Consider setting a budget limit.")


def test_rule_table_can_be_evaluated_selectively():
    analysis = analyze_spending([tx(1, "-10", category_id=1)], CATEGORIES)
    only_alerts = [rule for rule in RULES if rule.kind == "high_spending"]
    assert [item.kind for item in evaluate_rules(analysis, only_alerts)] == ["high_spending"]


def test_custom_rule_plugs_into_table():
    big_spender = Rule(
        "big_spender",
        "Big Spender",
        "warning",
        lambda analysis: analysis.total_expenses > 1000,
        lambda analysis: [f"You spent {analysis.total_expenses}"],
    )
    analysis = analyze_spending([tx(1, "-1500", category_id=1)], CATEGORIES)
    assert [item.message for item in evaluate_rules(analysis, [big_spender])] == ["You spent 1500"]
