"""
In-memory storage collaborator: CRUD keyed by profile id and time range.

Listings are returned as fresh lists ordered by time, so callers always
aggregate over a consistent snapshot.
"""
import logging
import uuid
from datetime import datetime, timedelta
from typing import Callable, Dict, List, Optional, Tuple

from config.settings import UNDO_WINDOW_SECONDS
from babylog.models.data_structures import (
    BabyProfile, DoctorVisit, LogEntry, Measurement, SleepSession,
)

logger = logging.getLogger(__name__)


class RecordNotFound(KeyError):
    pass


class DuplicateRecord(ValueError):
    pass


class UndoExpired(Exception):
    pass


class CareStore:

    def __init__(self, undo_window_seconds: float = None,
                 clock: Callable[[], datetime] = datetime.now):
        self.undo_window = timedelta(
            seconds=UNDO_WINDOW_SECONDS if undo_window_seconds is None else undo_window_seconds
        )
        self.clock = clock
        self.profiles: Dict[str, BabyProfile] = {}
        self.entries: Dict[str, LogEntry] = {}
        self.measurements: Dict[str, Measurement] = {}
        self.sleep_sessions: Dict[str, SleepSession] = {}
        self.visits: Dict[str, DoctorVisit] = {}
        self._deleted: Dict[str, Tuple[LogEntry, datetime]] = {}

    # ── generic helpers ──

    @staticmethod
    def _insert(table: dict, record, kind: str):
        if record.id in table:
            raise DuplicateRecord(f"{kind} '{record.id}' already exists")
        table[record.id] = record
        return record

    @staticmethod
    def _get(table: dict, record_id: str, kind: str):
        try:
            return table[record_id]
        except KeyError:
            raise RecordNotFound(f"{kind} '{record_id}' not found") from None

    def _replace(self, table: dict, record, kind: str):
        self._get(table, record.id, kind)
        table[record.id] = record
        return record

    # ── profiles ──

    def add_profile(self, profile: BabyProfile) -> BabyProfile:
        now = self.clock()
        profile.created_at = profile.created_at or now
        profile.updated_at = profile.updated_at or now
        return self._insert(self.profiles, profile, 'Profile')

    def get_profile(self, profile_id: str) -> BabyProfile:
        return self._get(self.profiles, profile_id, 'Profile')

    def list_profiles(self) -> List[BabyProfile]:
        return sorted(self.profiles.values(), key=lambda p: p.created_at or datetime.min)

    def update_profile(self, profile: BabyProfile) -> BabyProfile:
        profile.updated_at = self.clock()
        return self._replace(self.profiles, profile, 'Profile')

    def delete_profile(self, profile_id: str):
        self._get(self.profiles, profile_id, 'Profile')
        del self.profiles[profile_id]
        for table in (self.entries, self.measurements, self.sleep_sessions, self.visits):
            for rid in [r.id for r in table.values() if r.baby_profile_id == profile_id]:
                del table[rid]
        for token in [t for t, (e, _) in self._deleted.items()
                      if e.baby_profile_id == profile_id]:
            del self._deleted[token]

    # ── log entries ──

    def add_entry(self, entry: LogEntry) -> LogEntry:
        self.get_profile(entry.baby_profile_id)
        return self._insert(self.entries, entry, 'Entry')

    def get_entry(self, entry_id: str) -> LogEntry:
        return self._get(self.entries, entry_id, 'Entry')

    def update_entry(self, entry: LogEntry) -> LogEntry:
        """Replace every field of an existing entry; the id stays the same."""
        return self._replace(self.entries, entry, 'Entry')

    def delete_entry(self, entry_id: str) -> str:
        """Delete an entry and return an undo token valid for the undo window."""
        entry = self._get(self.entries, entry_id, 'Entry')
        del self.entries[entry_id]
        self._purge_expired_undo()
        token = uuid.uuid4().hex
        self._deleted[token] = (entry, self.clock())
        logger.debug("Deleted entry %s (undo token %s)", entry_id, token)
        return token

    def undo_delete(self, token: str, profile_id: Optional[str] = None) -> LogEntry:
        """Restore a deleted entry.

        With `profile_id` given, a token belonging to another profile raises
        RecordNotFound and stays usable.
        """
        try:
            entry, deleted_at = self._deleted[token]
        except KeyError:
            raise UndoExpired(f"Undo token '{token}' is unknown or already used") from None
        if profile_id is not None and entry.baby_profile_id != profile_id:
            raise RecordNotFound(f"Undo token '{token}' not found for profile '{profile_id}'")
        del self._deleted[token]
        if self.clock() - deleted_at > self.undo_window:
            raise UndoExpired(f"Undo window for entry '{entry.id}' has passed")
        self.get_profile(entry.baby_profile_id)
        return self._insert(self.entries, entry, 'Entry')

    def _purge_expired_undo(self):
        now = self.clock()
        expired = [t for t, (_, at) in self._deleted.items() if now - at > self.undo_window]
        for token in expired:
            del self._deleted[token]

    def list_entries(self, profile_id: str, since: Optional[datetime] = None,
                     until: Optional[datetime] = None) -> List[LogEntry]:
        entries = [
            e for e in self.entries.values()
            if e.baby_profile_id == profile_id
            and (since is None or e.date_time >= since)
            and (until is None or e.date_time < until)
        ]
        return sorted(entries, key=lambda e: e.date_time)

    # ── measurements ──

    def add_measurement(self, measurement: Measurement) -> Measurement:
        self.get_profile(measurement.baby_profile_id)
        now = self.clock()
        measurement.created_at = measurement.created_at or now
        measurement.updated_at = measurement.updated_at or now
        return self._insert(self.measurements, measurement, 'Measurement')

    def delete_measurement(self, measurement_id: str):
        self._get(self.measurements, measurement_id, 'Measurement')
        del self.measurements[measurement_id]

    def list_measurements(self, profile_id: str) -> List[Measurement]:
        return sorted(
            (m for m in self.measurements.values() if m.baby_profile_id == profile_id),
            key=lambda m: m.measured_at,
        )

    # ── sleep ──

    def add_sleep_session(self, session: SleepSession) -> SleepSession:
        self.get_profile(session.baby_profile_id)
        return self._insert(self.sleep_sessions, session, 'Sleep session')

    def update_sleep_session(self, session: SleepSession) -> SleepSession:
        session.updated_at = self.clock()
        return self._replace(self.sleep_sessions, session, 'Sleep session')

    def list_sleep_sessions(self, profile_id: str) -> List[SleepSession]:
        return sorted(
            (s for s in self.sleep_sessions.values() if s.baby_profile_id == profile_id),
            key=lambda s: s.start_time,
        )

    # ── doctor visits ──

    def add_visit(self, visit: DoctorVisit) -> DoctorVisit:
        self.get_profile(visit.baby_profile_id)
        return self._insert(self.visits, visit, 'Visit')

    def update_visit(self, visit: DoctorVisit) -> DoctorVisit:
        visit.updated_at = self.clock()
        return self._replace(self.visits, visit, 'Visit')

    def list_visits(self, profile_id: str) -> List[DoctorVisit]:
        return [v for v in self.visits.values() if v.baby_profile_id == profile_id]
