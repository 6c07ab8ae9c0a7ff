"""
Reminder predicates: is the caregiver on track with recurring care actions?

Each reminder reads the whole entry log for "time since last" and the
calendar-day slice of it for "count today". The two are deliberately kept
apart per reminder:

    feeding        hours since last feeding (raw timestamps)
    vitamin D      given today? (local calendar day)
    sterilization  calendar days since last >= cadence, or never recorded
    bathing        same cadence rule as sterilization
    tummy time     minutes today < share of the age-band target
"""
import logging
import re
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Dict, List, Optional, Sequence

from config import settings
from babylog.models.age import age_in_weeks, calendar_days_between
from babylog.models.aggregator import (
    count_matching, filter_by_calendar_day, has_flag, hours_since,
    is_feeding, last_occurrence,
)
from babylog.models.data_structures import (
    BabyProfile, LogEntry, Notification, ReminderResult, ReminderState,
)

logger = logging.getLogger(__name__)


@dataclass
class ReminderConfig:
    feeding_interval_hours: float = 2.0
    feeding_renotify_minutes: float = 30.0
    sterilization_cadence_days: int = 2
    bathing_cadence_days: int = 2
    tummy_time_due_ratio: float = 0.5

    @classmethod
    def from_settings(cls) -> 'ReminderConfig':
        return cls(
            feeding_interval_hours=settings.FEEDING_INTERVAL_HOURS,
            feeding_renotify_minutes=settings.FEEDING_RENOTIFY_MINUTES,
            sterilization_cadence_days=settings.STERILIZATION_CADENCE_DAYS,
            bathing_cadence_days=settings.BATHING_CADENCE_DAYS,
            tummy_time_due_ratio=settings.TUMMY_TIME_DUE_RATIO,
        )


# ── Tummy time recommendations ───────────────────────────────

@dataclass(frozen=True)
class TummyTimeRecommendation:
    age_label: str
    recommended_daily_minutes: float
    session_minutes: str
    sessions_per_day: str
    description: str


# (upper bound in weeks, inclusive; None = open-ended)
TUMMY_TIME_BANDS = (
    (2, TummyTimeRecommendation('0-2 weeks', 7.5, '1-2 minutes',
                                'several times a day',
                                'Short sessions several times a day')),
    (4, TummyTimeRecommendation('3-4 weeks', 12.5, '2-3 minutes',
                                '3-4 times a day',
                                '3-4 times a day after feeding')),
    (8, TummyTimeRecommendation('1-2 months', 25, '3-5 minutes',
                                'several times a day',
                                'Split across several sessions')),
    (12, TummyTimeRecommendation('2-3 months', 50, '5-10 minutes',
                                 '4-6 times a day',
                                 'For example 4-6 times a day')),
    (None, TummyTimeRecommendation('3+ months', 60, '10-15 minutes',
                                   '4-6 times a day',
                                   'Increase gradually')),
)

# Legacy notes format written by the stopwatch: "Tummy Time: 5 min 30 sek"
TUMMY_TIME_NOTES_PATTERN = re.compile(
    r'(?P<min>\d+)\s*min(?:\s+(?P<sec>\d+)\s*sek)?|(?P<only_sec>\d+)\s*sek'
)


def tummy_time_recommendation(age_weeks: int) -> TummyTimeRecommendation:
    for upper, recommendation in TUMMY_TIME_BANDS:
        if upper is None or age_weeks <= upper:
            return recommendation
    return TUMMY_TIME_BANDS[-1][1]


def parse_tummy_time_notes(notes: str) -> Optional[int]:
    """Duration in seconds from legacy notes text, or None if absent."""
    if not notes:
        return None
    match = TUMMY_TIME_NOTES_PATTERN.search(notes)
    if match is None:
        return None
    if match.group('only_sec') is not None:
        return int(match.group('only_sec'))
    return int(match.group('min')) * 60 + int(match.group('sec') or 0)


def format_tummy_time_seconds(seconds: int) -> str:
    mins, secs = divmod(int(seconds), 60)
    if mins == 0:
        return f"{secs} sek"
    if secs == 0:
        return f"{mins} min"
    return f"{mins} min {secs} sek"


def tummy_time_progress(current_minutes: float, target_minutes: float) -> float:
    """Percent of the daily target reached, capped at 100."""
    if target_minutes == 0:
        return 0.0
    return min(current_minutes / target_minutes * 100, 100.0)


# ── Shared state ──────────────────────────────────────────────

def reminder_state(entries: Sequence[LogEntry], predicate, now: datetime) -> ReminderState:
    last = last_occurrence(entries, predicate)
    today = filter_by_calendar_day(entries, now)
    if last is None:
        days_since = settings.NEVER_RECORDED_DAYS
    else:
        days_since = calendar_days_between(last.date_time, now)
    return ReminderState(
        last_occurrence=last.date_time if last else None,
        occurrences_in_window=count_matching(today, predicate),
        days_since_last=days_since,
    )


def _format_elapsed(delta: timedelta) -> str:
    total_minutes = int(delta.total_seconds() // 60)
    hours, minutes = divmod(total_minutes, 60)
    return f"{hours}h {minutes}m"


# ── Reminders ─────────────────────────────────────────────────

def feeding_reminder(entries: Sequence[LogEntry], now: datetime,
                     profile: Optional[BabyProfile] = None,
                     config: Optional[ReminderConfig] = None) -> ReminderResult:
    config = config or ReminderConfig()
    state = reminder_state(entries, is_feeding, now)
    target = f"Feed at least every {config.feeding_interval_hours:g} hours"

    if state.never_recorded:
        return ReminderResult('feeding', True, 'No feeding recorded yet', target, state)

    hours = hours_since(entries, is_feeding, now)
    next_at = state.last_occurrence + timedelta(hours=config.feeding_interval_hours)
    return ReminderResult(
        name='feeding',
        due_for_attention=hours >= config.feeding_interval_hours,
        current_status=f"Last feeding {_format_elapsed(now - state.last_occurrence)} ago",
        target_description=target,
        state=state,
        details={'hours_since_last': hours, 'next_feeding_at': next_at.isoformat()},
    )


def vitamin_d_reminder(entries: Sequence[LogEntry], now: datetime,
                       profile: Optional[BabyProfile] = None,
                       config: Optional[ReminderConfig] = None) -> ReminderResult:
    is_dose = has_flag('vitamin_d')
    state = reminder_state(entries, is_dose, now)
    today_dose = last_occurrence(filter_by_calendar_day(entries, now), is_dose)
    if today_dose is not None:
        status = f"Given today at {today_dose.date_time:%H:%M}"
    elif state.never_recorded:
        status = 'Never recorded'
    else:
        status = 'Not given today'
    return ReminderResult('vitamin_d', today_dose is None, status,
                          'One dose every day', state)


def _cadence_reminder(name: str, flag: str, label: str, cadence_days: int,
                      entries: Sequence[LogEntry], now: datetime) -> ReminderResult:
    state = reminder_state(entries, has_flag(flag), now)
    if state.never_recorded:
        status = 'Never recorded'
    elif state.days_since_last == 0:
        status = f"{label} today"
    elif state.days_since_last == 1:
        status = f"{label} yesterday"
    else:
        status = f"{label} {state.days_since_last} days ago"
    return ReminderResult(
        name=name,
        due_for_attention=state.days_since_last >= cadence_days,
        current_status=status,
        target_description=f"Every {cadence_days} days",
        state=state,
    )


def sterilization_reminder(entries: Sequence[LogEntry], now: datetime,
                           profile: Optional[BabyProfile] = None,
                           config: Optional[ReminderConfig] = None) -> ReminderResult:
    config = config or ReminderConfig()
    return _cadence_reminder('sterilization', 'sterilization', 'Sterilized',
                             config.sterilization_cadence_days, entries, now)


def bathing_reminder(entries: Sequence[LogEntry], now: datetime,
                     profile: Optional[BabyProfile] = None,
                     config: Optional[ReminderConfig] = None) -> ReminderResult:
    config = config or ReminderConfig()
    return _cadence_reminder('bathing', 'bathing', 'Bathed',
                             config.bathing_cadence_days, entries, now)


def tummy_time_reminder(entries: Sequence[LogEntry], now: datetime,
                        profile: Optional[BabyProfile] = None,
                        config: Optional[ReminderConfig] = None) -> ReminderResult:
    """Due while today's tummy time is below the share of the age target.

    Sessions logged without a duration count as zero minutes; they are
    reported in `entries_without_duration` so the gap stays visible.
    """
    config = config or ReminderConfig()
    state = reminder_state(entries, has_flag('tummy_time'), now)
    weeks = age_in_weeks(profile.birth_date, now) if profile else 0
    recommendation = tummy_time_recommendation(weeks)
    target = recommendation.recommended_daily_minutes

    sessions = [e for e in filter_by_calendar_day(entries, now) if e.tummy_time]
    seconds = sum(e.tummy_time_seconds for e in sessions
                  if e.tummy_time_seconds is not None)
    missing = sum(1 for e in sessions if e.tummy_time_seconds is None)
    if missing:
        logger.info("%d tummy time entries today have no duration", missing)

    minutes = seconds / 60
    return ReminderResult(
        name='tummy_time',
        due_for_attention=minutes < target * config.tummy_time_due_ratio,
        current_status=f"{format_tummy_time_seconds(seconds)} today",
        target_description=f"{target:g} min/day ({recommendation.age_label})",
        state=state,
        details={
            'age_weeks': weeks,
            'minutes_today': minutes,
            'target_minutes': target,
            'progress_percent': tummy_time_progress(minutes, target),
            'sessions_today': len(sessions),
            'entries_without_duration': missing,
        },
    )


REMINDERS = {
    'feeding': feeding_reminder,
    'vitamin_d': vitamin_d_reminder,
    'sterilization': sterilization_reminder,
    'bathing': bathing_reminder,
    'tummy_time': tummy_time_reminder,
}


def evaluate_reminders(entries: Sequence[LogEntry], now: datetime,
                       profile: Optional[BabyProfile] = None,
                       config: Optional[ReminderConfig] = None) -> List[ReminderResult]:
    config = config or ReminderConfig()
    return [fn(entries, now, profile, config) for fn in REMINDERS.values()]


# ── Notification rate limiting ───────────────────────────────

class NotificationGate:
    """Lets at most one notification per tag through within the cooldown."""

    def __init__(self, cooldown_minutes: float):
        self.cooldown = timedelta(minutes=cooldown_minutes)
        self._last_sent: Dict[str, datetime] = {}

    def allow(self, tag: str, now: datetime) -> bool:
        last = self._last_sent.get(tag)
        if last is not None and now - last < self.cooldown:
            return False
        self._last_sent[tag] = now
        return True

    def reset(self, tag: str):
        self._last_sent.pop(tag, None)


def feeding_notification(result: ReminderResult, profile: BabyProfile,
                         gate: NotificationGate, now: datetime) -> Optional[Notification]:
    """Notification request for an overdue feeding, rate limited by `gate`.

    Only an elapsed interval triggers it; a profile with no feeding logged
    yet is shown as due but never notified.
    """
    tag = f"feeding-{profile.id}"
    if not result.due_for_attention or result.state is None or result.state.never_recorded:
        gate.reset(tag)
        return None
    if not gate.allow(tag, now):
        return None
    return Notification(
        title=f"Time to feed {profile.name}",
        body=result.current_status,
        tag=tag,
    )
