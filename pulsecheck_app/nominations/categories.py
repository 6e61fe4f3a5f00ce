"""The ten fixed award categories nominations are collected for."""

from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True)
class NominationCategory:
    category_id: int
    title: str
    description: str


CATEGORIES: tuple[NominationCategory, ...] = (
    NominationCategory(
        1,
        "Most Committed Staff of the Year",
        "Staff who demonstrated exceptional dedication and commitment",
    ),
    NominationCategory(
        2,
        "Most Customer-Oriented Staff of the Year",
        "Staff who provided exceptional customer service",
    ),
    NominationCategory(
        3,
        "Employee of the Year",
        "Outstanding staff member with significant contributions",
    ),
    NominationCategory(
        4,
        "Best Front Desk Staff of the Year",
        "Staff ensuring positive first impressions",
    ),
    NominationCategory(
        5,
        "Mr. Always Available",
        "Staff demonstrating strong work ethic and flexibility",
    ),
    NominationCategory(6, "Outstanding Performance", "Staff achieving exceptional results"),
    NominationCategory(7, "Team Player", "Staff demonstrating exceptional teamwork"),
    NominationCategory(
        8,
        "Innovation and Creativity",
        "Staff introducing new ideas and improvements",
    ),
    NominationCategory(9, "Years of Service", "Staff reaching significant milestones"),
    NominationCategory(
        10,
        "Leadership and Mentorship",
        "Staff demonstrating exceptional leadership",
    ),
)

CATEGORIES_BY_ID = {category.category_id: category for category in CATEGORIES}


def get_category(category_id) -> NominationCategory | None:
    """Look up a category by id; string ids (JSON object keys) are accepted."""
    try:
        return CATEGORIES_BY_ID.get(int(category_id))
    except (TypeError, ValueError):
        return None
