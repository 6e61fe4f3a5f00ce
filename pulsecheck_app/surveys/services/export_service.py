"""
Export helpers - flatten stored responses into rows and serialise them.

Rows are plain dicts whose keys become CSV column headers, in insertion
order of the first row. The same rows back the ``?export_format=json`` export.
"""

from __future__ import annotations

import csv
from datetime import date, datetime
from io import StringIO
import json
import logging
import re
from typing import Any, Iterable

from django.http import HttpResponse, JsonResponse
from django.utils import timezone
from django.utils.dateparse import parse_datetime

from ..schema import FormSchema

logger = logging.getLogger(__name__)

MULTI_VALUE_SEPARATOR = ", "
_UNSAFE_FILENAME_CHARS = re.compile(r'[\\/:*?"<>|\r\n]+')


def _format_timestamp(value: Any) -> str:
    if not value:
        return ""
    parsed = parse_datetime(value) if isinstance(value, str) else value
    if not isinstance(parsed, datetime):
        return str(value)
    if timezone.is_aware(parsed):
        parsed = timezone.localtime(parsed)
    return parsed.strftime("%Y-%m-%d %H:%M:%S")


def _format_answer_for_export(answer: Any) -> Any:
    """Lists are joined for display; everything else passes through to the serialiser."""
    if isinstance(answer, (list, tuple)):
        return MULTI_VALUE_SEPARATOR.join(str(a) for a in answer)
    return answer


def _question_columns(schema: FormSchema) -> list[tuple[str, str]]:
    """(question id, column header) pairs; repeated question texts get a suffix."""
    columns = []
    used = {"Respondent", "Location", "Submitted At"}
    for question in schema.answerable_questions():
        header = question.question_text or question.id
        candidate, n = header, 2
        while candidate in used:
            candidate = f"{header} ({n})"
            n += 1
        used.add(candidate)
        columns.append((question.id, candidate))
    return columns


def format_for_export(
    responses: Iterable[dict[str, Any]], schema: FormSchema
) -> list[dict[str, Any]]:
    rows = []
    columns = _question_columns(schema)
    for response in responses:
        answers = response.get("responses") or {}
        row = {
            "Respondent": response.get("respondent") or "Anonymous",
            "Location": response.get("location", ""),
            "Submitted At": _format_timestamp(response.get("submitted_at")),
        }
        for question_id, header in columns:
            row[header] = _format_answer_for_export(answers.get(question_id, ""))
        rows.append(row)
    return rows


def format_many_for_export(
    responses: Iterable[dict[str, Any]], schemas: dict[str, FormSchema]
) -> tuple[list[dict[str, Any]], list[str]]:
    """Rows for responses spanning several schemas, plus the union of their headers.

    Responses whose schema was deleted keep their answers under
    ``Question <id>`` columns.
    """
    rows: list[dict[str, Any]] = []
    headers: list[str] = ["Form"]
    for response in responses:
        schema = schemas.get(response.get("form_id"))
        if schema is not None:
            row = format_for_export([response], schema)[0]
            title = schema.title
        else:
            row = {
                "Respondent": response.get("respondent") or "Anonymous",
                "Location": response.get("location", ""),
                "Submitted At": _format_timestamp(response.get("submitted_at")),
            }
            for question_id, answer in (response.get("responses") or {}).items():
                row[f"Question {question_id}"] = _format_answer_for_export(answer)
            title = ""
        row = {"Form": title, **row}
        for header in row:
            if header not in headers:
                headers.append(header)
        rows.append(row)
    return rows, headers


def format_poll_responses_for_export(
    responses: Iterable[dict[str, Any]],
) -> list[dict[str, Any]]:
    return [
        {
            "Respondent": response.get("respondent") or "Anonymous",
            "Response": response.get("selected_option", ""),
            "Location": response.get("location", ""),
            "Submitted At": _format_timestamp(response.get("submitted_at")),
        }
        for response in responses
    ]


def format_nomination_results(results) -> list[dict[str, Any]]:
    """One row per (category, nominee), highest vote count first within a category."""
    rows = []
    for result in results:
        for nominee, votes in result.ranked():
            rows.append(
                {"Category": result.category.title, "Nominee": nominee, "Votes": votes}
            )
    return rows


def _cell(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, (dict, list)):
        return json.dumps(value)
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)


def to_csv(rows: list[dict[str, Any]], headers: list[str] | None = None) -> str:
    """Serialise rows as CSV.

    Fields containing a comma, quote or line break are quoted with internal
    quotes doubled. Returns an empty string for no rows and no headers.
    """
    if not rows and not headers:
        return ""
    headers = headers or list(rows[0].keys())
    output = StringIO()
    writer = csv.writer(output, quoting=csv.QUOTE_MINIMAL, lineterminator="\n")
    writer.writerow(headers)
    for row in rows:
        writer.writerow([_cell(row.get(h)) for h in headers])
    return output.getvalue()


def sanitise_filename(name: str) -> str:
    cleaned = _UNSAFE_FILENAME_CHARS.sub("-", name or "").strip()
    return cleaned or "export"


def export_filename(subject: str, today: date | None = None) -> str:
    """``<subject>-responses-<YYYY-MM-DD>.csv``"""
    today = today or timezone.localdate()
    return f"{sanitise_filename(subject)}-responses-{today.isoformat()}.csv"


def title_export_filename(title: str) -> str:
    """``<title>-responses.csv``"""
    return f"{sanitise_filename(title)}-responses.csv"


def results_filename(subject: str, today: date | None = None) -> str:
    today = today or timezone.localdate()
    return f"{sanitise_filename(subject)}-results-{today.isoformat()}.csv"


def csv_download(
    rows: list[dict[str, Any]], filename: str, headers: list[str] | None = None
) -> HttpResponse:
    response = HttpResponse(to_csv(rows, headers), content_type="text/csv; charset=utf-8")
    response["Content-Disposition"] = f'attachment; filename="{filename}"'
    logger.info(f"Exported {len(rows)} rows as {filename}")
    return response


def json_download(rows: list[dict[str, Any]], filename: str) -> JsonResponse:
    if filename.endswith(".csv"):
        filename = filename[: -len(".csv")] + ".json"
    response = JsonResponse(rows, safe=False)
    response["Content-Disposition"] = f'attachment; filename="{filename}"'
    return response


def download(
    rows: list[dict[str, Any]],
    filename: str,
    export_format: str = "csv",
    headers: list[str] | None = None,
):
    """Pick the download for an export format; ``excel`` is served as CSV."""
    if export_format == "json":
        return json_download(rows, filename)
    return csv_download(rows, filename, headers)
