"""
Response analytics for the administrator dashboard.

Every statistic is computed in one pass over the fetched documents.
"""

from collections import Counter
from dataclasses import dataclass, field
from typing import Any, Iterable

from ..schema import RATING_MAX, RATING_MIN


@dataclass
class ItemCounts:
    """Active-vs-total counts for polls, feedback forms or questionnaires."""

    total: int = 0
    active: int = 0
    responses: int = 0


@dataclass
class FormStats:
    form_id: str
    title: str
    responses: int = 0
    average_rating: float | None = None


@dataclass
class DashboardSummary:
    survey_status: str
    nominations: int = 0
    polls: ItemCounts = field(default_factory=ItemCounts)
    feedback: ItemCounts = field(default_factory=ItemCounts)
    questionnaires: ItemCounts = field(default_factory=ItemCounts)
    average_rating: float | None = None
    forms: list[FormStats] = field(default_factory=list)


def _is_rating(value: Any) -> bool:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return False
    return RATING_MIN <= value <= RATING_MAX


def _average(total: float, count: int) -> float | None:
    if count == 0:
        return None
    return round(total / count, 2)


def average_rating(responses: Iterable[dict[str, Any]]) -> float | None:
    """Mean of every numeric answer within the rating scale; None when there are none."""
    total, count = 0.0, 0
    for response in responses:
        for value in (response.get("responses") or {}).values():
            if _is_rating(value):
                total += value
                count += 1
    return _average(total, count)


def count_items(
    items: Iterable[dict[str, Any]], responses: Iterable[dict[str, Any]]
) -> ItemCounts:
    counts = ItemCounts()
    for item in items:
        counts.total += 1
        if item.get("is_active", True):
            counts.active += 1
    for _ in responses:
        counts.responses += 1
    return counts


def compute_dashboard_summary(
    survey_status: str,
    nominations: int,
    polls: list[dict[str, Any]],
    poll_responses: list[dict[str, Any]],
    feedback_forms: list[dict[str, Any]],
    feedback_responses: list[dict[str, Any]],
    questionnaires: list[dict[str, Any]],
    questionnaire_responses: list[dict[str, Any]],
) -> DashboardSummary:
    """
    Build the dashboard summary.

    Args:
        survey_status: SystemSettings.survey_status() at request time
        nominations: Number of stored nomination submissions
        polls, feedback_forms, questionnaires: Stored item documents
        *_responses: Stored response documents for each kind

    Returns:
        DashboardSummary with counts, the overall average rating across
        feedback and questionnaire responses, and per-form statistics
    """
    summary = DashboardSummary(survey_status=survey_status, nominations=nominations)
    summary.polls = count_items(polls, poll_responses)
    summary.feedback = count_items(feedback_forms, feedback_responses)
    summary.questionnaires = count_items(questionnaires, questionnaire_responses)

    per_form_count: Counter = Counter()
    per_form_total: Counter = Counter()
    per_form_ratings: Counter = Counter()
    total, count = 0.0, 0
    for response in feedback_responses + questionnaire_responses:
        form_id = response.get("form_id")
        per_form_count[form_id] += 1
        for value in (response.get("responses") or {}).values():
            if _is_rating(value):
                total += value
                count += 1
                per_form_total[form_id] += value
                per_form_ratings[form_id] += 1
    summary.average_rating = _average(total, count)

    for item in feedback_forms + questionnaires:
        form_id = item.get("id")
        summary.forms.append(
            FormStats(
                form_id=form_id,
                title=item.get("title", ""),
                responses=per_form_count[form_id],
                average_rating=_average(
                    per_form_total[form_id], per_form_ratings[form_id]
                ),
            )
        )
    return summary
