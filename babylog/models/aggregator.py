"""
Aggregation primitives over a single profile's event and measurement log.

Every statistic and reminder is built from these functions so that "last
occurrence" scans, tie-breaks and day boundaries behave the same everywhere.
Inputs must already be filtered to one profile (see `filter_by_profile`).
"""
from datetime import datetime, timedelta
from typing import Callable, Iterable, List, Optional, Sequence, TypeVar

import numpy as np
import pandas as pd

from babylog.models.age import hours_between, is_same_day, start_of_day
from babylog.models.data_structures import (
    DoctorVisit, FormulaGuideRow, LogEntry, Measurement, PeriodStats, SleepSession,
    SleepStats,
)

T = TypeVar('T')
EntryPredicate = Callable[[LogEntry], bool]

# Formula intake guide: mL per kg per day, split over a fixed number of feeds
FORMULA_ML_PER_KG = (150, 180)
FORMULA_FEEDS_PER_DAY = 8


# ── Entry predicates ──────────────────────────────────────────

def is_feeding(entry: LogEntry) -> bool:
    return entry.breastfed or entry.breast_milk_ml > 0 or entry.formula_ml > 0


def has_flag(flag: str) -> EntryPredicate:
    def predicate(entry: LogEntry) -> bool:
        return bool(getattr(entry, flag))
    predicate.__name__ = f'has_{flag}'
    return predicate


# ── Filters ───────────────────────────────────────────────────

def filter_by_profile(records: Iterable[T], profile_id: str) -> List[T]:
    return [r for r in records if r.baby_profile_id == profile_id]


def filter_by_calendar_day(entries: Iterable[LogEntry], day) -> List[LogEntry]:
    return [e for e in entries if is_same_day(e.date_time, day)]


def filter_by_window(entries: Iterable[LogEntry], since: datetime) -> List[LogEntry]:
    """Rolling window: everything at or after `since`."""
    return [e for e in entries if e.date_time >= since]


# ── Scans and reductions ─────────────────────────────────────

def last_occurrence(entries: Iterable[LogEntry],
                    predicate: EntryPredicate) -> Optional[LogEntry]:
    """Matching entry with the latest timestamp; the first seen wins ties."""
    latest = None
    for entry in entries:
        if predicate(entry) and (latest is None or entry.date_time > latest.date_time):
            latest = entry
    return latest


def count_matching(entries: Iterable[LogEntry], predicate: EntryPredicate) -> int:
    return sum(1 for e in entries if predicate(e))


def sum_volume(entries: Iterable[LogEntry]) -> float:
    return sum(e.breast_milk_ml + e.formula_ml for e in entries)


def average_interval(timestamps: Sequence[datetime]) -> Optional[timedelta]:
    """Mean gap between consecutive timestamps; None with fewer than two."""
    if len(timestamps) < 2:
        return None
    ordered = np.array(sorted(timestamps), dtype='datetime64[us]')
    gaps = np.diff(ordered).astype(np.int64)
    return timedelta(microseconds=float(gaps.mean()))


def hours_since(entries: Iterable[LogEntry], predicate: EntryPredicate,
                now: datetime) -> Optional[float]:
    latest = last_occurrence(entries, predicate)
    if latest is None:
        return None
    return hours_between(latest.date_time, now)


# ── Measurements ──────────────────────────────────────────────

def latest_measurement(measurements: Iterable[Measurement],
                       metric: str) -> Optional[Measurement]:
    """Most recent measurement with a recorded (non-zero) value for `metric`."""
    latest = None
    for m in measurements:
        if m.value_for(metric) is None:
            continue
        if latest is None or m.measured_at > latest.measured_at:
            latest = m
    return latest


def latest_weight_kg(measurements: Iterable[Measurement]) -> Optional[float]:
    latest = latest_measurement(measurements, 'weight')
    return latest.value_for('weight') if latest else None


def _round_half_up(value: float) -> int:
    return int(np.floor(value + 0.5))


def formula_intake(weight_kg: float,
                   current_weight_kg: Optional[float] = None) -> FormulaGuideRow:
    """Daily formula volume at 150 and 180 mL/kg, and the per-feed dose of each.

    The row is marked current when `current_weight_kg` is within 50 g.
    """
    low, high = (_round_half_up(weight_kg * per_kg) for per_kg in FORMULA_ML_PER_KG)
    return FormulaGuideRow(
        weight_kg=weight_kg,
        daily_ml_150=low,
        daily_ml_180=high,
        dose_ml_150=_round_half_up(low / FORMULA_FEEDS_PER_DAY),
        dose_ml_180=_round_half_up(high / FORMULA_FEEDS_PER_DAY),
        current=(current_weight_kg is not None
                 and abs(weight_kg - current_weight_kg) < 0.05),
    )


def formula_guide(current_weight_kg: Optional[float] = None, min_kg: float = 3.2,
                  max_kg: float = 5.0, step_kg: float = 0.1) -> List[FormulaGuideRow]:
    weights = np.round(np.arange(min_kg, max_kg + step_kg / 2, step_kg), 1)
    return [formula_intake(float(w), current_weight_kg) for w in weights]


# ── Period statistics ────────────────────────────────────────

def period_stats(entries: Sequence[LogEntry]) -> PeriodStats:
    return PeriodStats(
        total_feedings=count_matching(entries, is_feeding),
        total_ml=sum_volume(entries),
        stool_count=count_matching(entries, has_flag('stool')),
        urination_count=count_matching(entries, has_flag('urination')),
        vomit_count=count_matching(entries, has_flag('vomiting')),
        breastfed_count=count_matching(entries, has_flag('breastfed')),
        vitamin_d_count=count_matching(entries, has_flag('vitamin_d')),
        tummy_time_count=count_matching(entries, has_flag('tummy_time')),
    )


def feeding_summary(entries: Sequence[LogEntry], now: datetime,
                    window_days: int = 7) -> dict:
    """Today / rolling-week statistics plus feeding timing for the stats view."""
    today = filter_by_calendar_day(entries, now)
    week = filter_by_window(entries, start_of_day(now) - timedelta(days=window_days))
    feeding_times = [e.date_time for e in today if is_feeding(e)]
    last_feeding = last_occurrence(entries, is_feeding)
    return {
        'today': period_stats(today),
        'week': period_stats(week),
        'average_interval': average_interval(feeding_times),
        'last_feeding': last_feeding.date_time if last_feeding else None,
        'time_since_last_feeding': (now - last_feeding.date_time) if last_feeding else None,
    }


def daily_summary(entries: Sequence[LogEntry]) -> pd.DataFrame:
    """One row per calendar day with feeding and diaper totals."""
    columns = ['date', 'feedings', 'total_ml', 'breast_milk_ml', 'formula_ml',
               'stool', 'urination', 'vomiting']
    if not entries:
        return pd.DataFrame(columns=columns)

    df = pd.DataFrame([{
        'date': e.date_time.date(),
        'feedings': int(is_feeding(e)),
        'breast_milk_ml': e.breast_milk_ml,
        'formula_ml': e.formula_ml,
        'stool': int(e.stool),
        'urination': int(e.urination),
        'vomiting': int(e.vomiting),
    } for e in entries])
    summary = df.groupby('date', sort=True).sum().reset_index()
    summary['total_ml'] = summary['breast_milk_ml'] + summary['formula_ml']
    return summary[columns]


# ── Sleep ─────────────────────────────────────────────────────

def sleep_duration_minutes(session: SleepSession,
                           now: Optional[datetime] = None) -> Optional[int]:
    """Stored duration, else end - start; ongoing sessions measure up to `now`."""
    if session.duration_minutes is not None:
        return session.duration_minutes
    end = session.end_time or now
    if end is None:
        return None
    return int((end - session.start_time) // timedelta(minutes=1))


def sleep_stats(sessions: Iterable[SleepSession]) -> SleepStats:
    """Totals over completed sessions only."""
    durations = [sleep_duration_minutes(s) for s in sessions if not s.ongoing]
    durations = [d for d in durations if d is not None]
    if not durations:
        return SleepStats()
    return SleepStats(
        session_count=len(durations),
        total_minutes=sum(durations),
        average_minutes=float(np.mean(durations)),
        longest_minutes=max(durations),
    )


# ── Doctor visits ─────────────────────────────────────────────

def visit_datetime(visit: DoctorVisit) -> datetime:
    hours, minutes = (int(part) for part in visit.visit_time.split(':')[:2])
    return datetime(visit.visit_date.year, visit.visit_date.month,
                    visit.visit_date.day, hours, minutes)


def upcoming_visits(visits: Iterable[DoctorVisit], now: datetime) -> List[DoctorVisit]:
    pending = [v for v in visits if not v.completed and visit_datetime(v) >= now]
    return sorted(pending, key=visit_datetime)


def completed_visits(visits: Iterable[DoctorVisit]) -> List[DoctorVisit]:
    return sorted((v for v in visits if v.completed), key=visit_datetime)
