"""
Timeclock event reconstruction.

Converts legacy tblTimeclock rows, which populate clock-in, clock-out and
transaction date inconsistently, into typed, timestamped time events.

Design Decisions:
    1. Each row yields zero, one or two events; nothing is fabricated for an
       employee that was not migrated
    2. Clock times with a pre-1970 year are time-of-day only; their date comes
       from the transaction date
    3. Missing span endpoints are inferred from a default 480 minute shift
    4. Action codes come from an ActionKind enum: a phrase table first, then
       a small fallback decision tree
    5. All events are tagged IMPORTED, have no work session and are not voided

Reconstruction Steps (per row):
    1. Resolve the employee reference (skip: missing_employee)
    2. Parse clock-in, clock-out, transaction date (bad values are absent)
    3. Anchor time-only clock values to the transaction date
    4. Complete the span (synthesize or repair endpoints)
    5. Span: start/end events (PTO is a single event with minutes)
    6. No span: one event at the first available timestamp
    7. Nothing at all (skip: missing_timestamp)
"""

import re
from dataclasses import dataclass, field
from datetime import datetime, time, timedelta
from enum import Enum
from typing import Callable, List, Optional, Tuple
import logging

from entity_migration.etl.extractors import LegacyPunch
from entity_migration.etl.normalizers import clean_text, parse_legacy_timestamp

logger = logging.getLogger(__name__)

DEFAULT_SHIFT_MINUTES = 480
DEFAULT_SHIFT_START = time(8, 0, 0)

# Years before this are the legacy "time only, date unknown" sentinel
ANCHOR_YEAR_THRESHOLD = 1970

ENTRY_TYPE_IMPORTED = "IMPORTED"

SKIP_MISSING_EMPLOYEE = "missing_employee"
SKIP_MISSING_TIMESTAMP = "missing_timestamp"


class ActionKind(str, Enum):
    """Time event action codes (values match timeclock_actions.Code)."""

    CLOCK_IN = "CLOCK_IN"
    CLOCK_OUT = "CLOCK_OUT"
    BREAK_START = "BREAK_START"
    BREAK_END = "BREAK_END"
    MEAL_START = "MEAL_START"
    MEAL_END = "MEAL_END"
    PTO = "PTO"
    ADJUSTMENT = "ADJUSTMENT"

    @property
    def is_end(self) -> bool:
        return self in (ActionKind.CLOCK_OUT, ActionKind.BREAK_END, ActionKind.MEAL_END)

    @property
    def start_counterpart(self) -> "ActionKind":
        """The start action for an end action; start actions map to themselves."""
        return _START_FOR_END.get(self, self)

    @property
    def paired_end(self) -> "ActionKind":
        """The action that closes a span opened by this action."""
        return _END_FOR_START.get(self, ActionKind.CLOCK_OUT)


_START_FOR_END = {
    ActionKind.CLOCK_OUT: ActionKind.CLOCK_IN,
    ActionKind.BREAK_END: ActionKind.BREAK_START,
    ActionKind.MEAL_END: ActionKind.MEAL_START,
}

_END_FOR_START = {
    ActionKind.BREAK_START: ActionKind.BREAK_END,
    ActionKind.MEAL_START: ActionKind.MEAL_END,
    ActionKind.PTO: ActionKind.PTO,
}

ACTION_DESCRIPTIONS = {
    ActionKind.CLOCK_IN: "Clock In",
    ActionKind.CLOCK_OUT: "Clock Out",
    ActionKind.BREAK_START: "Break Start",
    ActionKind.BREAK_END: "Break End",
    ActionKind.MEAL_START: "Meal Start",
    ActionKind.MEAL_END: "Meal End",
    ActionKind.PTO: "Paid Time Off",
    ActionKind.ADJUSTMENT: "Adjustment",
}

# Phrase rules, checked in order against the uppercased transaction type.
# End phrases come before start phrases that share words with them.
PHRASE_RULES: List[Tuple[re.Pattern, ActionKind]] = [
    (re.compile(r"\b(PTO|PAID TIME OFF|VACATION|HOLIDAY|SICK)\b"), ActionKind.PTO),
    (re.compile(r"\b(BREAK END|END BREAK|BREAK OVER|BACK FROM BREAK|OFF BREAK)\b"), ActionKind.BREAK_END),
    (re.compile(r"\b(BREAK START|START BREAK|BEGIN BREAK|ON BREAK)\b"), ActionKind.BREAK_START),
    (
        re.compile(r"\b(MEAL END|END MEAL|LUNCH END|END LUNCH|LUNCH IN|BACK FROM LUNCH)\b"),
        ActionKind.MEAL_END,
    ),
    (
        re.compile(r"\b(MEAL START|START MEAL|LUNCH START|START LUNCH|LUNCH OUT|OUT TO LUNCH)\b"),
        ActionKind.MEAL_START,
    ),
    (re.compile(r"\b(CLOCK OUT|CLOCKOUT|PUNCH OUT|TIME OUT|END SHIFT|SIGN OUT)\b"), ActionKind.CLOCK_OUT),
    (re.compile(r"\b(CLOCK IN|CLOCKIN|PUNCH IN|TIME IN|START SHIFT|SIGN IN)\b"), ActionKind.CLOCK_IN),
]

BREAK_PATTERN = re.compile(r"BREAK")
MEAL_PATTERN = re.compile(r"MEAL|LUNCH")
OUT_PATTERN = re.compile(r"\bOUT\b")
IN_PATTERN = re.compile(r"\bIN\b")


@dataclass
class TimeEvent:
    """A reconstructed time event, ready for time_events."""

    entity_id: int
    action: ActionKind
    event_at: datetime
    entry_type: str = ENTRY_TYPE_IMPORTED
    minutes: Optional[int] = None
    note: Optional[str] = None
    work_session_id: Optional[int] = None
    voided_at: Optional[datetime] = None
    voided_by: Optional[int] = None
    void_reason: Optional[str] = None


@dataclass
class Reconstruction:
    """Events produced for one legacy row, or the reason it was skipped."""

    events: List[TimeEvent] = field(default_factory=list)
    skip_reason: Optional[str] = None

    @property
    def skipped(self) -> bool:
        return self.skip_reason is not None


def _match_phrase(text: str) -> Optional[ActionKind]:
    for pattern, action in PHRASE_RULES:
        if pattern.search(text):
            return action
    return None


def classify_span_action(trans_type: Optional[str]) -> ActionKind:
    """
    Classify the start action for a row with a usable span.

    End variants are coerced to their start counterpart because the span
    supplies its own paired end event.

    Examples:
        >>> classify_span_action("Lunch Out").value
        'MEAL_START'
        >>> classify_span_action("Break - other").value
        'BREAK_START'
        >>> classify_span_action("Clock Out").value
        'CLOCK_IN'
    """
    text = (trans_type or "").upper()
    action = _match_phrase(text)
    if action is None:
        if BREAK_PATTERN.search(text):
            action = ActionKind.BREAK_START
        elif MEAL_PATTERN.search(text):
            action = ActionKind.MEAL_START
        else:
            action = ActionKind.CLOCK_IN
    return action.start_counterpart


def classify_single_action(trans_type: Optional[str], out_context: bool) -> ActionKind:
    """
    Classify the action for a row that yields a single event.

    Args:
        trans_type: Legacy transaction type text.
        out_context: True when clock-out (not clock-in) was the available field.

    Examples:
        >>> classify_single_action("OUT", out_context=False).value
        'CLOCK_OUT'
        >>> classify_single_action("", out_context=True).value
        'CLOCK_OUT'
    """
    text = (trans_type or "").upper()
    action = _match_phrase(text)
    if action is not None:
        return action
    if BREAK_PATTERN.search(text):
        return ActionKind.BREAK_START
    if MEAL_PATTERN.search(text):
        return ActionKind.MEAL_START
    if OUT_PATTERN.search(text):
        return ActionKind.CLOCK_OUT
    if IN_PATTERN.search(text):
        return ActionKind.CLOCK_IN
    return ActionKind.CLOCK_OUT if out_context else ActionKind.CLOCK_IN


def needs_anchor(value: Optional[datetime]) -> bool:
    """True for a time-of-day-only legacy value (pre-1970 sentinel year)."""
    return value is not None and value.year < ANCHOR_YEAR_THRESHOLD


def anchor_to_date(value: Optional[datetime], trans_date: Optional[datetime]) -> Optional[datetime]:
    """
    Give a time-only clock value the transaction date's date.

    Values that are not time-only, or that have no transaction date to
    anchor to, are returned unchanged.
    """
    if not needs_anchor(value) or trans_date is None:
        return value
    return datetime.combine(trans_date.date(), value.time())


def complete_span(
    clock_in: Optional[datetime],
    clock_out: Optional[datetime],
    trans_date: Optional[datetime],
    shift_minutes: int = DEFAULT_SHIFT_MINUTES,
    shift_start: time = DEFAULT_SHIFT_START,
) -> Optional[Tuple[datetime, datetime]]:
    """
    Infer a (clock_in, clock_out) span from partially available values.

    Returns:
        The completed span, or None when no span can be built.

    Examples:
        >>> complete_span(None, None, datetime(2024, 1, 1))
        (datetime.datetime(2024, 1, 1, 8, 0), datetime.datetime(2024, 1, 1, 16, 0))
    """
    shift = timedelta(minutes=shift_minutes)

    if clock_in is None and clock_out is None:
        if trans_date is None:
            return None
        start = datetime.combine(trans_date.date(), shift_start)
        return start, start + shift
    if clock_out is None:
        return clock_in, clock_in + shift
    if clock_in is None:
        return clock_out - shift, clock_out
    if clock_out <= clock_in:
        return clock_in, clock_in + shift
    return clock_in, clock_out


def span_minutes(start: datetime, end: datetime) -> int:
    """Whole minutes between two timestamps, floored."""
    return int((end - start).total_seconds() // 60)


class TimeclockReconstructor:
    """
    Reconstruct time events from legacy punch rows.

    Args:
        employee_lookup: Maps a legacy employee reference to an EntityID,
            or None when the employee was not migrated.
        trans_type_labels: Legacy transaction type code -> label.
        shift_minutes: Default shift length used to infer endpoints.
    """

    def __init__(
        self,
        employee_lookup: Callable[[Optional[int]], Optional[int]],
        trans_type_labels: Optional[dict] = None,
        shift_minutes: int = DEFAULT_SHIFT_MINUTES,
    ):
        self.employee_lookup = employee_lookup
        self.trans_type_labels = dict(trans_type_labels or {})
        self.shift_minutes = shift_minutes

    def describe_trans_type(self, raw: Optional[str]) -> Optional[str]:
        """Resolve a legacy transaction type code to its label."""
        text = clean_text(raw)
        if text is None:
            return None
        return self.trans_type_labels.get(text, text)

    def reconstruct(self, punch: LegacyPunch) -> Reconstruction:
        """
        Convert one legacy row into zero, one or two time events.

        Args:
            punch: Extracted legacy time-clock row.

        Returns:
            Reconstruction with events, or a skip reason.
        """
        entity_id = self.employee_lookup(punch.employee_ref)
        if entity_id is None:
            logger.debug(f"Timeclock row {punch.legacy_id}: employee {punch.employee_ref} not migrated")
            return Reconstruction(skip_reason=SKIP_MISSING_EMPLOYEE)

        trans_date = parse_legacy_timestamp(punch.trans_date)
        clock_in = anchor_to_date(parse_legacy_timestamp(punch.clock_in), trans_date)
        clock_out = anchor_to_date(parse_legacy_timestamp(punch.clock_out), trans_date)

        if clock_in is None and clock_out is None and trans_date is None:
            logger.debug(f"Timeclock row {punch.legacy_id}: no usable timestamp")
            return Reconstruction(skip_reason=SKIP_MISSING_TIMESTAMP)

        note = self.describe_trans_type(punch.trans_type)

        # A clock time still carrying the sentinel year had no date to anchor to
        dated_in = None if needs_anchor(clock_in) else clock_in
        dated_out = None if needs_anchor(clock_out) else clock_out
        span = complete_span(dated_in, dated_out, trans_date, self.shift_minutes)

        if span is not None:
            events = self._span_events(entity_id, span, note)
        else:
            events = [self._single_event(entity_id, clock_in, clock_out, trans_date, note)]
        return Reconstruction(events=events)

    def _span_events(
        self,
        entity_id: int,
        span: Tuple[datetime, datetime],
        note: Optional[str],
    ) -> List[TimeEvent]:
        start, end = span
        minutes = span_minutes(start, end)
        action = classify_span_action(note)

        if action is ActionKind.PTO:
            return [TimeEvent(entity_id, action, start, minutes=minutes, note=note)]

        return [
            TimeEvent(entity_id, action, start, note=note),
            TimeEvent(entity_id, action.paired_end, end, minutes=minutes, note=note),
        ]

    def _single_event(
        self,
        entity_id: int,
        clock_in: Optional[datetime],
        clock_out: Optional[datetime],
        trans_date: Optional[datetime],
        note: Optional[str],
    ) -> TimeEvent:
        out_context = clock_in is None and clock_out is not None
        event_at = next(ts for ts in (clock_in, clock_out, trans_date) if ts is not None)
        action = classify_single_action(note, out_context)
        return TimeEvent(entity_id, action, event_at, note=note)
