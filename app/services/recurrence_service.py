"""
Recurrence Service
Expands a recurring session into independent future occurrences
"""

import calendar
import copy
import logging
from dataclasses import dataclass, field
from datetime import date, datetime, timedelta
from typing import Any, Dict, List, Optional

from bson import ObjectId

from ..config.settings import settings
from ..models.video_session import DATE_FORMAT, RecurringPattern, SessionStatus
from .session_store import SessionStore, session_store

logger = logging.getLogger(__name__)

# Fields that belong to one concrete occurrence and are never copied
OCCURRENCE_EXCLUDED_FIELDS = (
    "_id",
    "created_at",
    "updated_at",
    "version",
    "participants",
    "materials",
    "feedback",
    "rating",
    "actual_start_time",
    "actual_end_time",
    "actual_duration",
    "attendance_count",
    "recording_url",
    "meeting_id",
    "meeting_link",
)

PATTERN_STEP_DAYS = {
    RecurringPattern.WEEKLY.value: 7,
    RecurringPattern.BIWEEKLY.value: 14,
}


@dataclass
class RecurrenceResult:
    """Outcome of one expansion; failures never undo the base session"""
    created: List[Dict[str, Any]] = field(default_factory=list)
    failed: List[Dict[str, str]] = field(default_factory=list)

    @property
    def warnings(self) -> List[str]:
        return [f"Occurrence on {item['scheduled_date']} was not created: {item['reason']}" for item in self.failed]


# ============================================================================
# DATE ARITHMETIC
# ============================================================================

def parse_date(value: str) -> date:
    return datetime.strptime(value, DATE_FORMAT).date()


def add_months(anchor: date, months: int) -> date:
    """Same day-of-month as the anchor, clamped to the target month's length"""
    month_index = anchor.month - 1 + months
    year = anchor.year + month_index // 12
    month = month_index % 12 + 1
    day = min(anchor.day, calendar.monthrange(year, month)[1])
    return date(year, month, day)


def resolve_end_date(start: date, end: Optional[date]) -> date:
    return end or start + timedelta(days=settings.recurrence_default_window_days)


def occurrence_dates(
    start: date,
    pattern: str,
    end: Optional[date] = None,
    max_occurrences: Optional[int] = None
) -> List[date]:
    """
    Dates of every occurrence after start, up to and including end

    The start date itself is never part of the series: the first occurrence
    is one interval later.
    """
    pattern = RecurringPattern(pattern).value
    end = resolve_end_date(start, end)
    limit = max_occurrences or settings.recurrence_max_occurrences

    dates = []
    step = 1
    while len(dates) < limit:
        if pattern == RecurringPattern.MONTHLY.value:
            cursor = add_months(start, step)
        else:
            cursor = start + timedelta(days=PATTERN_STEP_DAYS[pattern] * step)

        if cursor > end:
            break

        dates.append(cursor)
        step += 1

    return dates


# ============================================================================
# OCCURRENCE DERIVATION
# ============================================================================

def derive_occurrence(base: Dict[str, Any], occurrence_date: date) -> Dict[str, Any]:
    """
    Build a new, unsaved session document for one occurrence of base

    Pure: base is not modified and nothing is persisted.
    """
    occurrence = {
        key: copy.deepcopy(value)
        for key, value in base.items()
        if key not in OCCURRENCE_EXCLUDED_FIELDS
    }

    occurrence.update({
        "_id": ObjectId(),
        "scheduled_date": occurrence_date.strftime(DATE_FORMAT),
        "status": SessionStatus.SCHEDULED.value,
        "parent_session_id": str(base["_id"]),
        "participants": [],
        "materials": [],
        "feedback": [],
        "attendance_count": 0,
    })

    return occurrence


# ============================================================================
# GENERATION
# ============================================================================

class RecurrenceService:
    """Service that materializes the occurrences of a recurring session"""

    def __init__(self, store: Optional[SessionStore] = None):
        self.store = store or session_store

    def build_occurrences(self, base: Dict[str, Any]) -> List[Dict[str, Any]]:
        if not base.get("is_recurring") or not base.get("recurring_pattern"):
            return []

        start = parse_date(base["scheduled_date"])
        end = parse_date(base["recurring_end_date"]) if base.get("recurring_end_date") else None

        return [
            derive_occurrence(base, occurrence_date)
            for occurrence_date in occurrence_dates(start, base["recurring_pattern"], end)
        ]

    async def generate_recurring_sessions(self, base: Dict[str, Any], assign_meeting) -> RecurrenceResult:
        """
        Persist every occurrence of base in a single unordered batch

        Args:
            base: The already persisted recurring session
            assign_meeting: Callable stamping meeting_id/meeting_link on a new document

        Returns:
            RecurrenceResult listing created documents and failed dates
        """
        result = RecurrenceResult()

        try:
            occurrences = self.build_occurrences(base)
        except Exception as e:
            logger.error(f"Error expanding recurrence for session {base.get('_id')}: {e}")
            result.failed.append({"scheduled_date": base.get("scheduled_date"), "reason": str(e)})
            return result

        if not occurrences:
            return result

        for occurrence in occurrences:
            assign_meeting(occurrence)

        try:
            inserted, failed = await self.store.insert_many(occurrences)
        except Exception as e:
            logger.error(f"Error persisting occurrences of session {base['_id']}: {e}")
            result.failed = [
                {"scheduled_date": occurrence["scheduled_date"], "reason": str(e)}
                for occurrence in occurrences
            ]
            return result

        result.created = inserted
        result.failed = [
            {"scheduled_date": occurrence["scheduled_date"], "reason": reason}
            for occurrence, reason in failed
        ]

        logger.info(
            f"✅ Generated {len(result.created)} occurrences for session {base['_id']}"
            + (f" ({len(result.failed)} failed)" if result.failed else "")
        )

        return result


# Singleton instance
recurrence_service = RecurrenceService()
