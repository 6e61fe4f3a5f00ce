"""
Staff roster loader.

The roster is a static JSON array exported from HR. Records use the HR
export's keys (``Id``, ``Employee``, ``Email``, ``Role``, ``Status``);
snake_case keys are accepted too.
"""

from __future__ import annotations

from dataclasses import dataclass
import json
import logging
from pathlib import Path

from django.conf import settings

logger = logging.getLogger(__name__)

ACTIVE = "Active"


@dataclass(frozen=True)
class Employee:
    id: str
    full_name: str
    email: str
    role: str = ""
    employment_status: str = ""

    @property
    def is_active(self) -> bool:
        return self.employment_status == ACTIVE

    @classmethod
    def from_record(cls, record: dict) -> Employee:
        return cls(
            id=str(record.get("Id", record.get("id", ""))),
            full_name=(record.get("Employee") or record.get("full_name") or "").strip(),
            email=(record.get("Email") or record.get("email") or "").strip(),
            role=record.get("Role") or record.get("role") or "",
            employment_status=(
                record.get("Status") or record.get("employment_status") or ""
            ),
        )


class Roster:
    def __init__(self, employees: list[Employee] | None = None):
        self.employees = list(employees or [])

    def __len__(self) -> int:
        return len(self.employees)

    def active(self) -> list[Employee]:
        """Active employees sorted by name; these are the nomination candidates."""
        return sorted(
            (e for e in self.employees if e.is_active and e.full_name),
            key=lambda e: e.full_name.lower(),
        )

    def find_by_email(self, email: str) -> Employee | None:
        email = (email or "").strip().lower()
        for employee in self.employees:
            if employee.email.lower() == email:
                return employee
        return None

    def is_candidate(self, name: str) -> bool:
        return any(e.full_name == name for e in self.active())


def load_roster(path: str | Path | None = None) -> Roster:
    """Read the roster file. A missing file yields an empty roster."""
    path = Path(path or settings.PULSECHECK_ROSTER_PATH)
    try:
        with path.open(encoding="utf-8") as f:
            records = json.load(f)
    except FileNotFoundError:
        logger.warning(f"Roster file {path} not found; no nomination candidates")
        return Roster()
    if not isinstance(records, list):
        raise ValueError(f"Roster file {path} must contain a JSON array")
    return Roster([Employee.from_record(r) for r in records if isinstance(r, dict)])
