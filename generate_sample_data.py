import argparse
import csv
import random
from datetime import date, timedelta

from money_tracker import create_app
from money_tracker.auth import CredentialStore
from money_tracker.errors import ConflictError


MERCHANTS = [
    ("Grocery Mart", 40, 160),
    ("Corner Coffee", 3, 8),
    ("City Transit Pass", 20, 25),
    ("Cinema Plaza", 12, 30),
    ("Power & Light Co", 60, 120),
    ("Online Shop", 15, 200),
    ("Pharmacy", 8, 60),
]


def build_rows(days, seed):
    rng = random.Random(seed)
    start = date.today() - timedelta(days=days)
    rows = []
    for offset in range(0, days, 2):
        day = start + timedelta(days=offset)
        description, low, high = rng.choice(MERCHANTS)
        amount = round(rng.uniform(low, high), 2)
        rows.append([day.strftime("%m/%d/%Y"), description, f"-${amount:,.2f}"])
        if day.day == 1:
            rows.append([day.strftime("%m/%d/%Y"), "Payroll Deposit", "$3,250.00"])
    return rows


def main():
    parser = argparse.ArgumentParser(description="Create a demo user and a sample bank statement CSV")
    parser.add_argument("--output", default="sample_statement.csv")
    parser.add_argument("--days", type=int, default=90)
    parser.add_argument("--seed", type=int, default=None)
    args = parser.parse_args()

    app = create_app()
    with app.app_context():
        app.init_db()
        try:
            CredentialStore(app.get_db).register({"username": "demo", "password": "demo123", "firstName": "Demo"})
        except ConflictError:
            pass

    with open(args.output, "w", newline="", encoding="utf-8") as handle:
        writer = csv.writer(handle)
        writer.writerow(["Date", "Description", "Amount"])
        writer.writerows(build_rows(args.days, args.seed))

    print(f"Sample data generated in {args.output}. Login with demo / demo123 and upload it.")


if __name__ == "__main__":
    main()
