from decimal import ROUND_HALF_UP, Decimal


CENT = Decimal("0.01")
TENTH = Decimal("0.1")


def round_money(value):
    return Decimal(value).quantize(CENT, rounding=ROUND_HALF_UP)


def round_percent(value):
    return Decimal(value).quantize(TENTH, rounding=ROUND_HALF_UP)


def format_money(value):
    return f"${round_money(value)}"


def format_percent(value):
    return f"{round_percent(value)}%"


def money(value):
    return float(round_money(value))


def percent(value):
    return float(round_percent(value))


def transaction_to_dict(transaction, lookup=None):
    payload = {
        "id": transaction.id,
        "date": transaction.date.isoformat(),
        "description": transaction.description,
        "amount": money(transaction.amount),
        "categoryId": transaction.category_id,
    }
    if lookup is not None:
        category = lookup.get(transaction.category_id)
        payload["categoryName"] = category.name if category else "Uncategorized"
    return payload


def category_to_dict(category):
    return {"id": category.id, "name": category.name, "color": category.color}


def category_spend_to_dict(entry):
    return {
        "categoryId": entry.category_id,
        "name": entry.name,
        "color": entry.color,
        "value": money(entry.amount),
        "count": entry.count,
    }


def monthly_total_to_dict(entry):
    return {"name": entry.label, "year": entry.year, "month": entry.month, "value": money(entry.amount)}


def monthly_flow_to_dict(entry):
    return {
        "name": entry.label,
        "year": entry.year,
        "month": entry.month,
        "income": money(entry.income),
        "expense": money(entry.expense),
    }


def summary_to_dict(summary):
    return {
        "totalIncome": money(summary.total_income),
        "totalExpense": money(summary.total_expense),
        "netSavings": money(summary.net_savings),
        "savingsRate": percent(summary.savings_rate),
    }


def recommendation_to_dict(recommendation):
    return {
        "kind": recommendation.kind,
        "title": recommendation.title,
        "message": recommendation.message,
        "type": recommendation.severity,
    }
