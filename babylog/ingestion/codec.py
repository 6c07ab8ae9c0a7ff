"""
Storage wire format for care records.

Records travel as flat snake_case dicts with ISO-8601 UTC timestamps
("2025-10-15T10:00:00Z"). Inside the core all datetimes are naive local time;
conversion happens only here. Measurement values keep 0 as "not recorded".
"""
import logging
from datetime import date, datetime, timezone
from pathlib import Path
from typing import Iterable, List, Optional, Union

import numpy as np
import pandas as pd

from babylog.models.data_structures import (
    BabyProfile, DoctorVisit, ENTRY_FLAGS, LogEntry, Measurement, SleepSession,
)
from babylog.models.reminders import parse_tummy_time_notes

logger = logging.getLogger(__name__)


class RecordDecodeError(ValueError):
    """A stored record is missing fields or holds unparseable values."""


# ── Timestamps ────────────────────────────────────────────────

def to_wire_time(value: Optional[datetime]) -> Optional[str]:
    if value is None:
        return None
    aware = value.astimezone() if value.tzinfo is None else value
    return aware.astimezone(timezone.utc).isoformat().replace('+00:00', 'Z')


def from_wire_time(value: Optional[str]) -> Optional[datetime]:
    if value is None:
        return None
    if isinstance(value, datetime):
        parsed = value
    else:
        try:
            parsed = datetime.fromisoformat(str(value).replace('Z', '+00:00'))
        except ValueError as e:
            raise RecordDecodeError(f"Invalid timestamp {value!r}") from e
    if parsed.tzinfo is None:
        return parsed
    return parsed.astimezone().replace(tzinfo=None)


def _from_wire_date(value) -> date:
    if isinstance(value, date) and not isinstance(value, datetime):
        return value
    try:
        return date.fromisoformat(str(value)[:10])
    except ValueError as e:
        raise RecordDecodeError(f"Invalid date {value!r}") from e


def _require(record: dict, key: str):
    try:
        return record[key]
    except KeyError:
        raise RecordDecodeError(f"Record {record.get('id')!r} is missing '{key}'") from None


# ── Log entries ───────────────────────────────────────────────

def log_entry_to_record(entry: LogEntry) -> dict:
    record = {
        'id': entry.id,
        'baby_profile_id': entry.baby_profile_id,
        'date_time': to_wire_time(entry.date_time),
        'breast_milk_ml': entry.breast_milk_ml,
        'formula_ml': entry.formula_ml,
        'tummy_time_seconds': entry.tummy_time_seconds,
        'notes': entry.notes,
    }
    for flag in ENTRY_FLAGS:
        record[flag] = getattr(entry, flag)
    return record


def record_to_log_entry(record: dict) -> LogEntry:
    """Decode a stored entry.

    Older records have no `tummy_time_seconds` key and carry the duration only
    inside the notes text; it is lifted into the field here and nowhere else.
    An explicit None stays None.
    """
    tummy_seconds = record.get('tummy_time_seconds')
    if 'tummy_time_seconds' not in record and record.get('tummy_time'):
        tummy_seconds = parse_tummy_time_notes(record.get('notes') or '')
    try:
        return LogEntry(
            id=str(_require(record, 'id')),
            baby_profile_id=str(_require(record, 'baby_profile_id')),
            date_time=from_wire_time(_require(record, 'date_time')),
            breast_milk_ml=record.get('breast_milk_ml') or 0,
            formula_ml=record.get('formula_ml') or 0,
            tummy_time_seconds=None if tummy_seconds is None else int(tummy_seconds),
            notes=record.get('notes') or '',
            **{flag: bool(record.get(flag, False)) for flag in ENTRY_FLAGS},
        )
    except RecordDecodeError:
        raise
    except ValueError as e:
        raise RecordDecodeError(str(e)) from e


# ── Measurements ──────────────────────────────────────────────

def measurement_to_record(m: Measurement) -> dict:
    return {
        'id': m.id,
        'baby_profile_id': m.baby_profile_id,
        'measured_at': to_wire_time(m.measured_at),
        'weight_grams': m.weight_grams,
        'height_cm': m.height_cm,
        'head_circumference_cm': m.head_circumference_cm,
        'notes': m.notes,
        'created_at': to_wire_time(m.created_at),
        'updated_at': to_wire_time(m.updated_at),
    }


def record_to_measurement(record: dict) -> Measurement:
    try:
        return Measurement(
            id=str(_require(record, 'id')),
            baby_profile_id=str(_require(record, 'baby_profile_id')),
            measured_at=from_wire_time(_require(record, 'measured_at')),
            weight_grams=record.get('weight_grams') or 0,
            height_cm=record.get('height_cm') or 0,
            head_circumference_cm=record.get('head_circumference_cm') or 0,
            notes=record.get('notes') or '',
            created_at=from_wire_time(record.get('created_at')),
            updated_at=from_wire_time(record.get('updated_at')),
        )
    except RecordDecodeError:
        raise
    except ValueError as e:
        raise RecordDecodeError(str(e)) from e


# ── Profiles ──────────────────────────────────────────────────

def baby_profile_to_record(p: BabyProfile) -> dict:
    return {
        'id': p.id,
        'name': p.name,
        'birth_date': to_wire_time(p.birth_date),
        'birth_time': p.birth_time,
        'birth_weight_grams': p.birth_weight_grams,
        'birth_height_cm': p.birth_height_cm,
        'created_at': to_wire_time(p.created_at),
        'updated_at': to_wire_time(p.updated_at),
    }


def record_to_baby_profile(record: dict) -> BabyProfile:
    return BabyProfile(
        id=str(_require(record, 'id')),
        name=_require(record, 'name'),
        birth_date=from_wire_time(_require(record, 'birth_date')),
        birth_time=record.get('birth_time') or '',
        birth_weight_grams=record.get('birth_weight_grams') or 0,
        birth_height_cm=record.get('birth_height_cm') or 0,
        created_at=from_wire_time(record.get('created_at')),
        updated_at=from_wire_time(record.get('updated_at')),
    )


# ── Sleep sessions ────────────────────────────────────────────

def sleep_session_to_record(s: SleepSession) -> dict:
    return {
        'id': s.id,
        'baby_profile_id': s.baby_profile_id,
        'start_time': to_wire_time(s.start_time),
        'end_time': to_wire_time(s.end_time),
        'duration_minutes': s.duration_minutes,
        'notes': s.notes,
        'created_at': to_wire_time(s.created_at),
        'updated_at': to_wire_time(s.updated_at),
    }


def record_to_sleep_session(record: dict) -> SleepSession:
    return SleepSession(
        id=str(_require(record, 'id')),
        baby_profile_id=str(_require(record, 'baby_profile_id')),
        start_time=from_wire_time(_require(record, 'start_time')),
        end_time=from_wire_time(record.get('end_time')),
        duration_minutes=record.get('duration_minutes'),
        notes=record.get('notes') or '',
        created_at=from_wire_time(record.get('created_at')),
        updated_at=from_wire_time(record.get('updated_at')),
    )


# ── Doctor visits ─────────────────────────────────────────────

def doctor_visit_to_record(v: DoctorVisit) -> dict:
    return {
        'id': v.id,
        'baby_profile_id': v.baby_profile_id,
        'visit_date': v.visit_date.isoformat(),
        'visit_time': v.visit_time,
        'doctor_type': v.doctor_type,
        'doctor_name': v.doctor_name,
        'location': v.location,
        'notes': v.notes,
        'completed': v.completed,
        'created_at': to_wire_time(v.created_at),
        'updated_at': to_wire_time(v.updated_at),
    }


def record_to_doctor_visit(record: dict) -> DoctorVisit:
    return DoctorVisit(
        id=str(_require(record, 'id')),
        baby_profile_id=str(_require(record, 'baby_profile_id')),
        visit_date=_from_wire_date(_require(record, 'visit_date')),
        visit_time=_require(record, 'visit_time'),
        doctor_type=_require(record, 'doctor_type'),
        doctor_name=record.get('doctor_name') or '',
        location=record.get('location') or '',
        notes=record.get('notes') or '',
        completed=bool(record.get('completed', False)),
        created_at=from_wire_time(record.get('created_at')),
        updated_at=from_wire_time(record.get('updated_at')),
    )


# ── Legacy CSV import ─────────────────────────────────────────

def entries_from_frame(df: pd.DataFrame, profile_id: str) -> List[LogEntry]:
    """Transform an exported entry table into log entries for one profile.

    Unknown or blank numeric cells become 0, missing flag columns False. Rows
    whose timestamp cannot be parsed are dropped.
    """
    if 'date_time' not in df.columns:
        raise RecordDecodeError("Entry table has no date_time column")
    df = df.copy()
    df['date_time'] = pd.to_datetime(df['date_time'], errors='coerce', utc=True)
    n_bad = int(df['date_time'].isna().sum())
    if n_bad:
        logger.warning("Dropping %d rows with unparseable date_time", n_bad)
    df = df[df['date_time'].notna()]

    for col in ['breast_milk_ml', 'formula_ml']:
        if col in df.columns:
            df[col] = pd.to_numeric(df[col], errors='coerce').fillna(0).clip(lower=0)
        else:
            df[col] = 0.0
    for flag in ENTRY_FLAGS:
        if flag in df.columns:
            df[flag] = df[flag].astype(str).str.strip().str.lower().isin(['1', 'true', 'yes'])
        else:
            df[flag] = False
    df['notes'] = df['notes'].fillna('').astype(str) if 'notes' in df.columns else ''
    if 'id' not in df.columns:
        df['id'] = [f"import-{i}" for i in range(len(df))]
    if 'tummy_time_seconds' in df.columns:
        df['tummy_time_seconds'] = pd.to_numeric(df['tummy_time_seconds'], errors='coerce')
    else:
        df['tummy_time_seconds'] = np.nan

    entries = []
    for row in df.itertuples(index=False):
        record = {
            'id': str(row.id),
            'baby_profile_id': profile_id,
            'date_time': row.date_time.to_pydatetime(),
            'breast_milk_ml': float(row.breast_milk_ml),
            'formula_ml': float(row.formula_ml),
            'notes': row.notes,
        }
        # blank cells fall back to the duration written in the notes
        if not pd.isna(row.tummy_time_seconds):
            record['tummy_time_seconds'] = int(row.tummy_time_seconds)
        for flag in ENTRY_FLAGS:
            record[flag] = bool(getattr(row, flag))
        entries.append(record_to_log_entry(record))
    logger.info("Imported %d entries for profile %s", len(entries), profile_id)
    return entries


def load_entries_csv(path: Union[str, Path], profile_id: str) -> List[LogEntry]:
    return entries_from_frame(pd.read_csv(path), profile_id)


def entries_to_frame(entries: Iterable[LogEntry]) -> pd.DataFrame:
    return pd.DataFrame([log_entry_to_record(e) for e in entries])
