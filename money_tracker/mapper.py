"""Turn uploaded CSV bank statements into transactions.

Dates are read month-first (``03/04/2024`` is March 4th) unless the caller asks
for day-first. The two orders are never mixed within one parse, so an
ambiguous value always lands on the same calendar day.
"""

import csv
import io
import itertools
import logging
import re
from datetime import datetime
from decimal import Decimal, InvalidOperation

from .errors import ValidationError
from .models import ColumnMapping, Transaction


logger = logging.getLogger(__name__)

PREVIEW_ROW_LIMIT = 5

ISO_DATE_PATTERN = re.compile(
    r"(\d{4}-\d{1,2}-\d{1,2})(?:[T ]\d{1,2}:\d{2}(?::\d{2}(?:\.\d+)?)?(?:Z|[+-]\d{2}:?\d{2})?)?"
)
TRAILING_TIME_PATTERN = re.compile(r"\s+\d{1,2}:\d{2}(?::\d{2})?(?:\s*[AaPp][Mm])?$")
NUMERIC_PATTERN = re.compile(r"[+-]?(?:\d+(?:\.\d*)?|\.\d+)")

NAMED_MONTH_FORMATS = ["%Y/%m/%d", "%b %d, %Y", "%B %d, %Y", "%b %d %Y", "%d %b %Y", "%d %B %Y"]
MONTH_FIRST_FORMATS = ["%m/%d/%Y", "%m/%d/%y", "%m-%d-%Y", "%m-%d-%y"]
DAY_FIRST_FORMATS = ["%d/%m/%Y", "%d/%m/%y", "%d-%m-%Y", "%d-%m-%y"]

_transaction_ids = itertools.count(1)


def next_transaction_id():
    return next(_transaction_ids)


def decode_csv_bytes(file_bytes):
    for encoding in ["utf-8-sig", "utf-8", "cp1252", "latin-1"]:
        try:
            return file_bytes.decode(encoding)
        except UnicodeDecodeError:
            continue
    return None


def parse_amount(value):
    cleaned = (value or "").replace("$", "").replace(",", "").strip()
    if not NUMERIC_PATTERN.fullmatch(cleaned):
        return None
    try:
        amount = Decimal(cleaned)
    except InvalidOperation:
        return None
    return amount if amount.is_finite() else None


def parse_date(value, day_first=False):
    cleaned = " ".join((value or "").split())
    if not cleaned:
        return None

    iso_match = ISO_DATE_PATTERN.fullmatch(cleaned)
    if iso_match:
        try:
            return datetime.strptime(iso_match.group(1), "%Y-%m-%d").date()
        except ValueError:
            return None

    cleaned = TRAILING_TIME_PATTERN.sub("", cleaned)
    numeric_formats = DAY_FIRST_FORMATS if day_first else MONTH_FIRST_FORMATS
    for fmt in numeric_formats + NAMED_MONTH_FORMATS:
        try:
            return datetime.strptime(cleaned, fmt).date()
        except ValueError:
            continue
    return None


def _open_reader(text):
    return csv.DictReader(io.StringIO(text or ""), strict=True)


def _headers_for(reader):
    try:
        headers = reader.fieldnames
    except csv.Error as exc:
        raise ValidationError(f"Error parsing file: {exc}") from exc
    if not headers or not any((header or "").strip() for header in headers):
        raise ValidationError("CSV file has no header row.")
    return list(headers)


def _raw_row(headers, record):
    return {header: record.get(header) or "" for header in headers}


def read_csv_rows(text):
    reader = _open_reader(text)
    headers = _headers_for(reader)
    try:
        rows = [_raw_row(headers, record) for record in reader]
    except csv.Error as exc:
        raise ValidationError(f"Error parsing file on line {reader.line_num}: {exc}") from exc
    return headers, rows


def preview_csv(text, limit=PREVIEW_ROW_LIMIT):
    reader = _open_reader(text)
    headers = _headers_for(reader)
    try:
        rows = [_raw_row(headers, record) for record in itertools.islice(reader, max(limit, 0))]
    except csv.Error as exc:
        raise ValidationError(f"Error parsing file on line {reader.line_num}: {exc}") from exc
    return headers, rows


def map_rows(rows, mapping, id_factory=None, day_first=False):
    """Map raw CSV rows onto transactions using ``mapping``.

    Returns ``(transactions, skipped)``. Rows with a blank or unreadable date or
    amount are left out and counted in ``skipped``; one bad row never stops the
    rest of the batch.
    """
    id_factory = id_factory or next_transaction_id
    transactions = []
    skipped = 0
    for row_number, row in enumerate(rows, start=1):
        raw_date = (row.get(mapping.date) or "").strip()
        raw_amount = (row.get(mapping.amount) or "").strip()
        if not raw_date or not raw_amount:
            skipped += 1
            continue

        parsed_date = parse_date(raw_date, day_first=day_first)
        amount = parse_amount(raw_amount)
        if parsed_date is None or amount is None:
            logger.debug("Skipping CSV row %s: date=%r amount=%r", row_number, raw_date, raw_amount)
            skipped += 1
            continue

        transactions.append(
            Transaction(
                id=id_factory(),
                date=parsed_date,
                description=(row.get(mapping.description) or "").strip(),
                amount=amount,
                category_id=None,
            )
        )
    return transactions, skipped


def validate_mapping(mapping, headers):
    if mapping.missing_fields():
        raise ValidationError("Please select a file and map all required fields")
    known = set(headers)
    for column in (mapping.date, mapping.description, mapping.amount):
        if column not in known:
            raise ValidationError(f"Column not found in file: {column}")


def parse_statement(text, mapping, id_factory=None, day_first=False):
    if not isinstance(mapping, ColumnMapping):
        mapping = ColumnMapping.from_payload(mapping)
    headers, rows = read_csv_rows(text)
    validate_mapping(mapping, headers)
    return map_rows(rows, mapping, id_factory=id_factory, day_first=day_first)
