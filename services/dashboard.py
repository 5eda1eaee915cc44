"""
Builds the submissions table shown in the dashboard: one column per distinct
field seen across a form's submissions, one row per submission.
"""
import json
from datetime import datetime, timezone
from typing import Any, Dict, Iterable, List

from models.base import SubmissionModel, SubmissionTable, SubmissionTableRow

MISSING = "-"
NOT_STAMPED = "N/A"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S UTC"


def format_cell(value: Any) -> str:
    if value is None or value == "":
        return MISSING
    if isinstance(value, (list, tuple)):
        return ", ".join(str(v) for v in value)
    if isinstance(value, dict):
        return json.dumps(value, ensure_ascii=False, default=str)
    return str(value)


def format_timestamp(ts) -> str:
    if not isinstance(ts, datetime):
        return NOT_STAMPED
    if ts.tzinfo is None:
        ts = ts.replace(tzinfo=timezone.utc)
    return ts.astimezone(timezone.utc).strftime(DATE_FORMAT)


def collect_columns(submissions: Iterable[SubmissionModel], excluded: Iterable[str]) -> List[str]:
    hidden = set(excluded or ())
    columns: Dict[str, None] = {}
    for submission in submissions:
        for key in (submission.data or {}):
            if key not in hidden:
                columns.setdefault(key, None)
    return list(columns)


def build_table(form_id: str, submissions: List[SubmissionModel], excluded: Iterable[str]) -> SubmissionTable:
    columns = collect_columns(submissions, excluded)
    rows = []
    for submission in submissions:
        data = submission.data or {}
        rows.append(SubmissionTableRow(
            id=submission.id,
            submitted_at=format_timestamp(submission.submitted_at),
            cells={c: format_cell(data.get(c)) for c in columns},
        ))
    return SubmissionTable(form_id=form_id, columns=columns, rows=rows)
