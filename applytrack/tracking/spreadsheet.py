"""Spreadsheet (Excel/CSV) import of job records."""
import json
import logging
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Any, Optional, Union

import pandas as pd
from dateutil import parser as dateutil_parser

from config.settings import settings
from applytrack.exceptions import ParseError
from applytrack.extraction.urls import format_website_url
from applytrack.persistence.models import (
    normalize_employment_type,
    normalize_location_type,
    normalize_response,
    normalize_wage_type,
    utcnow,
)

logger = logging.getLogger(__name__)

# Day zero of Excel serial dates (accounts for the 1900 leap-year bug)
EXCEL_EPOCH = datetime(1899, 12, 30, tzinfo=timezone.utc)

SUPPORTED_SUFFIXES = {".xlsx", ".xls", ".csv"}


def _blank(value: Any) -> bool:
    if value is None:
        return True
    if isinstance(value, str):
        return not value.strip()
    try:
        return bool(pd.isna(value))
    except (TypeError, ValueError):
        return False


def _first(row: dict, *columns: str) -> Any:
    """Value of the first column present and non-blank."""
    for column in columns:
        value = row.get(column)
        if not _blank(value):
            return value
    return None


def _text(value: Any) -> str:
    return "" if _blank(value) else str(value).strip()


def _number(value: Any) -> Optional[float]:
    if _blank(value):
        return None
    try:
        return float(str(value).replace(",", "").replace("$", "").strip())
    except ValueError:
        return None


def parse_excel_date(value: Any) -> Optional[datetime]:
    """
    Parse a spreadsheet date cell.

    Accepts datetimes (including pandas Timestamps), Excel serial numbers
    and date strings. Returns None for blanks and unparseable values.
    """
    if _blank(value):
        return None
    if isinstance(value, pd.Timestamp):
        value = value.to_pydatetime()
    if isinstance(value, datetime):
        return value if value.tzinfo else value.replace(tzinfo=timezone.utc)
    if isinstance(value, (int, float)):
        return EXCEL_EPOCH + timedelta(days=float(value))
    try:
        parsed = dateutil_parser.parse(str(value))
    except (ValueError, OverflowError):
        logger.debug("Unparseable date cell: %r", value)
        return None
    return parsed if parsed.tzinfo else parsed.replace(tzinfo=timezone.utc)


def _status_checks(value: Any) -> list[dict]:
    if _blank(value):
        return []
    try:
        checks = json.loads(value) if isinstance(value, str) else list(value)
    except (TypeError, ValueError) as e:
        logger.warning("Error parsing Status Checks: %s", e)
        return []
    parsed = []
    for check in checks:
        if not isinstance(check, dict):
            continue
        date = parse_excel_date(check.get("date")) or utcnow()
        parsed.append({"date": date.isoformat(), "note": check.get("note") or check.get("notes") or ""})
    return parsed


def map_row(row: dict) -> dict:
    """
    Map a spreadsheet row onto JobRecord fields.

    Args:
        row: Column name to cell value, as read by load_spreadsheet

    Returns:
        Dict of JobRecord keyword arguments
    """
    website = format_website_url(_text(_first(row, "Website", "URL", "Link")))

    return {
        "source": _text(row.get("Source")) or "Excel Import",
        "search_type": _text(row.get("Search Type")) or None,
        "application_through": _text(row.get("Application Through")) or "Other",
        "company": _text(row.get("Company")),
        "company_location": _text(_first(row, "Company Location", "Location")),
        "location_type": normalize_location_type(_text(row.get("Location Type")))
        or settings.default_location_type,
        "employment_type": normalize_employment_type(_text(row.get("Employment Type")))
        or settings.default_employment_type,
        "job_title": _text(_first(row, "Job Title", "Title")),
        "wages_min": _number(_first(row, "Wages", "WagesMin", "Minimum Salary")),
        "wages_max": _number(_first(row, "Wages Max", "WagesMax", "Maximum Salary")),
        "wage_type": normalize_wage_type(_text(row.get("Wage Type"))) or settings.default_wage_type,
        "applied": parse_excel_date(row.get("Applied")) or utcnow(),
        "status_checks": _status_checks(row.get("Status Checks")),
        "responded": parse_excel_date(row.get("Responded")),
        "response": normalize_response(_text(row.get("Response"))),
        "website": website,
        "description": _text(row.get("Description")),
        "external_job_id": _text(_first(row, "External Job ID", "ExternalJobId")) or None,
        "notes": _text(row.get("Notes")) or f"Imported from Excel on {utcnow():%Y-%m-%d}",
    }


def load_spreadsheet(path: Union[str, Path]) -> list[dict]:
    """
    Read the first sheet of an Excel or CSV file.

    Args:
        path: .xlsx, .xls or .csv file

    Returns:
        One dict per data row, keyed by header

    Raises:
        ParseError: If the file type is unsupported, unreadable or empty
    """
    path = Path(path)
    suffix = path.suffix.lower()
    if suffix not in SUPPORTED_SUFFIXES:
        raise ParseError(str(path), f"unsupported file type {suffix or '(none)'}")

    try:
        if suffix == ".csv":
            frame = pd.read_csv(path)
        else:
            frame = pd.read_excel(path, sheet_name=0)
    except (OSError, ValueError) as e:
        raise ParseError(str(path), str(e)) from e

    if frame.empty:
        raise ParseError(str(path), "file has no data")

    frame.columns = [str(column).strip() for column in frame.columns]
    rows = frame.to_dict(orient="records")
    logger.info("Read %d rows from %s", len(rows), path.name)
    return rows
