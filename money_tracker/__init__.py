import os
from datetime import date
from functools import wraps

from flask import Flask, g, jsonify, request, session, url_for
from werkzeug.exceptions import RequestEntityTooLarge

from . import aggregation
from .auth import CredentialStore
from .db import DatabaseErrors, connect_db, parse_database_config
from .db_migrations import apply_migrations, get_db_health
from .errors import AuthError, DatabaseInitError, MoneyTrackerError, TransientError, ValidationError
from .formatting import (
    category_spend_to_dict,
    category_to_dict,
    money,
    monthly_flow_to_dict,
    monthly_total_to_dict,
    percent,
    recommendation_to_dict,
    summary_to_dict,
    transaction_to_dict,
)
from .mapper import decode_csv_bytes, parse_statement, preview_csv
from .models import ColumnMapping
from .recommendations import analyze_spending, evaluate_rules
from .store import SessionLedgers


LOGIN_MESSAGE = "Welcome to Money Maze Navigator!"
REPORT_TYPES = ("monthly", "category")


def request_payload():
    payload = request.get_json(silent=True)
    if isinstance(payload, dict):
        return payload
    return request.form.to_dict()


def parse_optional_int(value, label):
    if value is None or (isinstance(value, str) and not value.strip()):
        return None
    if isinstance(value, bool):
        raise ValidationError(f"Invalid {label}.")
    try:
        return int(value)
    except (TypeError, ValueError):
        raise ValidationError(f"Invalid {label}.") from None


def parse_query_date(value, default):
    cleaned = (value or "").strip()
    if not cleaned:
        return default
    try:
        return date.fromisoformat(cleaned)
    except ValueError:
        raise ValidationError(f"Invalid date: {cleaned}. Use YYYY-MM-DD.") from None


def read_uploaded_text():
    upload = request.files.get("file")
    if upload is None or not upload.filename:
        raise ValidationError("Please select a CSV file.")
    text = decode_csv_bytes(upload.read())
    if text is None:
        raise ValidationError("Unable to read the uploaded file.")
    return text


def create_app(test_config=None):
    app = Flask(__name__, instance_relative_config=True)
    app.config.from_mapping(
        SECRET_KEY="dev",
        DATABASE=os.path.join(app.instance_path, "money_tracker.sqlite"),
        MAX_CONTENT_LENGTH=5 * 1024 * 1024,
        CSV_PREVIEW_ROWS=5,
        CSV_DAY_FIRST=False,
        RECURRING_TOLERANCE=5,
        LEDGER_IDLE_SECONDS=4 * 60 * 60,
    )

    if test_config is not None:
        app.config.update(test_config)

    os.makedirs(app.instance_path, exist_ok=True)
    app.config.setdefault("DB_INIT_ERROR", None)

    ledgers = SessionLedgers(idle_seconds=app.config["LEDGER_IDLE_SECONDS"])
    app.extensions["money_tracker.ledgers"] = ledgers

    @app.teardown_appcontext
    def close_db(_=None):
        db = g.pop("db", None)
        if db is not None:
            db.close()

    def get_db():
        if "db" not in g:
            try:
                g.db = connect_db(parse_database_config(app.config["DATABASE"]))
            except (*DatabaseErrors, RuntimeError) as exc:
                message = f"Unable to open database at {app.config['DATABASE']}: {exc}"
                app.logger.error(message)
                app.config["DB_INIT_ERROR"] = message
                raise DatabaseInitError() from exc
        return g.db

    def init_db():
        try:
            apply_migrations(parse_database_config(app.config["DATABASE"]))
            app.config["DB_INIT_ERROR"] = None
        except (*DatabaseErrors, OSError, RuntimeError) as exc:
            message = f"Failed to initialize database at {app.config['DATABASE']}: {exc}"
            app.logger.error(message)
            app.config["DB_INIT_ERROR"] = message
            raise DatabaseInitError() from exc

    credentials = CredentialStore(get_db)

    @app.cli.command("init-db")
    def init_db_command():
        init_db()
        print("Initialized the database.")

    @app.errorhandler(MoneyTrackerError)
    def handle_money_tracker_error(exc):
        if isinstance(exc, TransientError):
            app.logger.exception(
                "Request to %s failed: %s",
                request.path,
                app.config.get("DB_INIT_ERROR") or exc.message,
                exc_info=exc,
            )
        return jsonify({"message": exc.message}), exc.status_code

    @app.errorhandler(RequestEntityTooLarge)
    def handle_too_large(_exc):
        return jsonify({"message": "File is too large."}), 413

    @app.get("/health/db")
    def db_health():
        try:
            return jsonify(get_db_health(parse_database_config(app.config["DATABASE"])))
        except DatabaseErrors as exc:
            return jsonify({
                "ok": False,
                "schema_version": 0,
                "missing_tables": [],
                "missing_columns": {},
                "missing_indexes": [],
                "error": str(exc),
            }), 500

    @app.before_request
    def load_logged_in_user():
        user_id = session.get("user_id")
        ledger_key = session.get("ledger_key")
        if user_id is None or not ledger_key:
            g.user = None
            g.ledger = None
            return
        g.user = {"id": user_id, "username": session.get("username")}
        g.ledger = ledgers.get_or_create(ledger_key)

    def login_required(view):
        @wraps(view)
        def wrapped_view(**kwargs):
            if g.user is None:
                raise AuthError("Login required")
            return view(**kwargs)

        return wrapped_view

    def require_database():
        if app.config.get("DB_INIT_ERROR"):
            raise DatabaseInitError()

    @app.post("/register")
    def register():
        require_database()
        credentials.register(request_payload())
        return jsonify({"message": "Registration successful", "redirect": url_for("login")})

    @app.post("/login")
    def login():
        require_database()
        payload = request_payload()
        user = credentials.login(payload.get("username"), payload.get("password"))

        previous_key = session.get("ledger_key")
        if previous_key:
            ledgers.discard(previous_key)
        session.clear()
        session["user_id"] = user["id"]
        session["username"] = user["username"]
        session["ledger_key"] = ledgers.new_key()
        ledgers.get_or_create(session["ledger_key"])
        app.logger.info("User %s logged in", user["username"])
        return jsonify({"message": LOGIN_MESSAGE})

    @app.route("/logout", methods=("GET", "POST"))
    def logout():
        ledger_key = session.get("ledger_key")
        if ledger_key:
            ledgers.discard(ledger_key)
        session.clear()
        return jsonify({"message": "Logged out."})

    @app.post("/upload/preview")
    @login_required
    def upload_preview():
        headers, rows = preview_csv(read_uploaded_text(), limit=app.config["CSV_PREVIEW_ROWS"])
        return jsonify({"headers": headers, "rows": rows})

    @app.post("/upload")
    @login_required
    def upload():
        text = read_uploaded_text()
        mapping = ColumnMapping.from_payload(request.form.to_dict())
        transactions, skipped = parse_statement(text, mapping, day_first=app.config["CSV_DAY_FIRST"])
        g.ledger.append(transactions)
        app.logger.info(
            "Imported %s transactions for user_id=%s (skipped=%s)", len(transactions), g.user["id"], skipped
        )
        return jsonify({
            "message": f"Successfully imported {len(transactions)} transactions",
            "imported": len(transactions),
            "skipped": skipped,
        })

    @app.get("/transactions")
    @login_required
    def transactions():
        direction = (request.args.get("direction") or "desc").strip().lower()
        if direction not in ("asc", "desc"):
            raise ValidationError(f"Unknown sort direction: {direction}")
        rows = aggregation.list_transactions(
            g.ledger.transactions,
            search=request.args.get("search", ""),
            category_id=parse_optional_int(request.args.get("category"), "category"),
            sort_key=(request.args.get("sort") or "date").strip().lower(),
            descending=direction == "desc",
        )
        lookup = g.ledger.category_lookup()
        return jsonify({"transactions": [transaction_to_dict(row, lookup) for row in rows]})

    @app.post("/transactions/<int:transaction_id>/category")
    @login_required
    def update_transaction_category(transaction_id):
        category_id = parse_optional_int(request_payload().get("categoryId"), "category")
        if category_id is not None and g.ledger.get_category(category_id) is None:
            raise ValidationError("Category not found.")
        updated = g.ledger.reassign_category(transaction_id, category_id)
        if updated:
            app.logger.info("Transaction %s moved to category %s", transaction_id, category_id)
        return jsonify({
            "message": "Category updated." if updated else "Transaction not found.",
            "updated": updated,
        })

    @app.route("/categories", methods=("GET", "POST"))
    @login_required
    def categories():
        if request.method == "POST":
            payload = request_payload()
            category = g.ledger.add_category(payload.get("name"), payload.get("color"))
            app.logger.info("Category %s added for user_id=%s", category.id, g.user["id"])
            return jsonify({"message": "Category added.", "category": category_to_dict(category)}), 201
        return jsonify({"categories": [category_to_dict(item) for item in g.ledger.categories]})

    @app.post("/categories/<int:category_id>/edit")
    @login_required
    def edit_category(category_id):
        payload = request_payload()
        category = g.ledger.update_category(category_id, payload.get("name"), payload.get("color"))
        if category is None:
            return jsonify({"message": "Category not found."})
        return jsonify({"message": "Category updated.", "category": category_to_dict(category)})

    @app.post("/categories/<int:category_id>/delete")
    @login_required
    def delete_category(category_id):
        if not g.ledger.delete_category(category_id):
            return jsonify({"message": "Category not found."})
        app.logger.info("Category %s deleted for user_id=%s", category_id, g.user["id"])
        return jsonify({"message": "Category deleted."})

    @app.get("/dashboard")
    @login_required
    def dashboard():
        summary = aggregation.dashboard_summary(g.ledger.transactions, g.ledger.categories)
        return jsonify({
            "totalBalance": money(summary.total_balance),
            "transactionCount": summary.transaction_count,
            "categoryCount": summary.category_count,
            "expensesByCategory": [category_spend_to_dict(entry) for entry in summary.expenses_by_category],
            "monthlyExpenses": [monthly_total_to_dict(entry) for entry in summary.monthly_expenses],
        })

    @app.get("/reports")
    @login_required
    def reports():
        report_type = (request.args.get("type") or "monthly").strip().lower()
        if report_type not in REPORT_TYPES:
            raise ValidationError(f"Unknown report type: {report_type}")
        today = date.today()
        start = parse_query_date(request.args.get("start"), date(today.year, 1, 1))
        end = parse_query_date(request.args.get("end"), today)
        token = request.args.get("filter") or "all"

        selected = aggregation.filter_transactions(g.ledger.transactions, start, end, token)
        if report_type == "monthly":
            data = [monthly_flow_to_dict(entry) for entry in aggregation.monthly_report(selected)]
        else:
            data = [category_spend_to_dict(entry) for entry in aggregation.category_report(selected, g.ledger.categories)]

        return jsonify({
            "type": report_type,
            "filter": token,
            "start": start.isoformat(),
            "end": end.isoformat(),
            "transactionCount": len(selected),
            "summary": summary_to_dict(aggregation.summarize(selected)),
            "data": data,
        })

    @app.get("/recommendations")
    @login_required
    def recommendations():
        transactions = g.ledger.transactions
        analysis = analyze_spending(transactions, g.ledger.categories, app.config["RECURRING_TOLERANCE"])
        items = evaluate_rules(analysis) if transactions else []
        breakdown = []
        for entry in analysis.ranked:
            row = category_spend_to_dict(entry)
            row["percentage"] = percent(analysis.share_of_expenses(entry))
            breakdown.append(row)
        return jsonify({
            "recommendations": [recommendation_to_dict(item) for item in items],
            "insights": {
                "totalExpenses": money(analysis.total_expenses),
                "totalIncome": money(analysis.total_income),
                "categorySpending": breakdown,
            },
        })

    @app.route("/dev/reset-db")
    def dev_reset_db():
        dev_enabled = app.debug or os.environ.get("ENABLE_DEV_DB_RESET") == "1"
        if not dev_enabled:
            return jsonify({"message": "DEV ONLY: database reset is disabled."}), 404

        db = g.pop("db", None)
        if db is not None:
            db.close()

        db_path = app.config["DATABASE"]
        if os.path.exists(db_path):
            os.remove(db_path)

        init_db()
        return jsonify({"message": "DEV ONLY: database reset complete.", "redirect": url_for("register")})

    with app.app_context():
        try:
            init_db()
        except DatabaseInitError:
            pass

    app.get_db = get_db
    app.init_db = init_db
    app.ledgers = ledgers
    return app
