"""
Dosing-schedule tracking for fixed multi-dose-per-day medication courses.

"Hours since last dose" scans the whole log and never resets at midnight; a
dose at 23:00 followed by a check at 01:00 is two hours old, not "no dose
today". "Doses today" is a separate calendar-day count.
"""
from dataclasses import dataclass
from datetime import date, datetime
from typing import Optional, Sequence

from config import settings
from babylog.models.age import calendar_days_between
from babylog.models.aggregator import (
    count_matching, filter_by_calendar_day, has_flag, hours_since,
)
from babylog.models.data_structures import BabyProfile, LogEntry, Notification

WIDGET_INITIAL = 'initial'
WIDGET_TRACKING = 'tracking'


@dataclass(frozen=True)
class DosingSchedule:
    name: str
    flag: str
    dose_interval_hours: float
    doses_per_day: int
    course_days: int
    course_start: date


IRON_SUPPLEMENT = DosingSchedule(
    name='Iron supplement',
    flag='iron_supplement',
    dose_interval_hours=settings.IRON_DOSE_INTERVAL_HOURS,
    doses_per_day=settings.IRON_DOSES_PER_DAY,
    course_days=settings.IRON_COURSE_DAYS,
    course_start=settings.IRON_COURSE_START,
)

ANTI_GAS_DROPS = DosingSchedule(
    name='Anti-gas drops',
    flag='anti_gas_drops',
    dose_interval_hours=settings.ANTI_GAS_DOSE_INTERVAL_HOURS,
    doses_per_day=settings.ANTI_GAS_DOSES_PER_DAY,
    course_days=settings.ANTI_GAS_COURSE_DAYS,
    course_start=settings.ANTI_GAS_COURSE_START,
)

SCHEDULES = {s.flag: s for s in (IRON_SUPPLEMENT, ANTI_GAS_DROPS)}


@dataclass
class DosingStatus:
    schedule: str
    widget_state: str
    hours_since_last_dose: Optional[float]
    doses_today: int
    doses_per_day: int
    notification_due: bool
    remaining_days: int

    def to_dict(self) -> dict:
        return {
            'schedule': self.schedule,
            'widget_state': self.widget_state,
            'hours_since_last_dose': self.hours_since_last_dose,
            'doses_today': self.doses_today,
            'doses_per_day': self.doses_per_day,
            'notification_due': self.notification_due,
            'remaining_days': self.remaining_days,
        }


class DosingScheduleTracker:
    """Derives a course's state from the entry log; nothing is stored."""

    def __init__(self, schedule: DosingSchedule):
        self.schedule = schedule
        self._is_dose = has_flag(schedule.flag)

    def hours_since_last_dose(self, entries: Sequence[LogEntry],
                              now: datetime) -> Optional[float]:
        return hours_since(entries, self._is_dose, now)

    def doses_today(self, entries: Sequence[LogEntry], now: datetime) -> int:
        return count_matching(filter_by_calendar_day(entries, now), self._is_dose)

    def widget_state(self, entries: Sequence[LogEntry], now: datetime) -> str:
        if self.hours_since_last_dose(entries, now) is None:
            return WIDGET_INITIAL
        return WIDGET_TRACKING

    def notification_due(self, entries: Sequence[LogEntry], now: datetime) -> bool:
        hours = self.hours_since_last_dose(entries, now)
        return hours is not None and hours >= self.schedule.dose_interval_hours

    def remaining_days(self, today) -> int:
        # Before the course starts the full length remains
        elapsed = max(0, calendar_days_between(self.schedule.course_start, today))
        return max(0, self.schedule.course_days - elapsed)

    def status(self, entries: Sequence[LogEntry], now: datetime) -> DosingStatus:
        hours = self.hours_since_last_dose(entries, now)
        return DosingStatus(
            schedule=self.schedule.name,
            widget_state=WIDGET_INITIAL if hours is None else WIDGET_TRACKING,
            hours_since_last_dose=hours,
            doses_today=self.doses_today(entries, now),
            doses_per_day=self.schedule.doses_per_day,
            notification_due=hours is not None and hours >= self.schedule.dose_interval_hours,
            remaining_days=self.remaining_days(now),
        )

    def notification(self, entries: Sequence[LogEntry], now: datetime,
                     profile: BabyProfile) -> Optional[Notification]:
        if not self.notification_due(entries, now):
            return None
        hours = self.hours_since_last_dose(entries, now)
        return Notification(
            title=f"{self.schedule.name} for {profile.name}",
            body=(f"Last dose {hours:.1f} h ago, "
                  f"{self.doses_today(entries, now)}/{self.schedule.doses_per_day} today"),
            tag=f"{self.schedule.flag}-{profile.id}",
        )
