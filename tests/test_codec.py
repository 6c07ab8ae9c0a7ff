"""
Tests for the storage wire format and legacy CSV import.
"""
from datetime import date, datetime, timezone

import pandas as pd
import pytest

from babylog.ingestion.codec import (
    RecordDecodeError, baby_profile_to_record, doctor_visit_to_record,
    entries_from_frame, entries_to_frame, from_wire_time, load_entries_csv,
    log_entry_to_record, measurement_to_record, record_to_baby_profile,
    record_to_doctor_visit, record_to_log_entry, record_to_measurement,
    to_wire_time,
)
from babylog.models.data_structures import (
    BabyProfile, DoctorVisit, ENTRY_FLAGS, LogEntry, Measurement,
)


def local(year, month, day, hour=0, minute=0):
    """Naive local time for a UTC wall-clock moment."""
    utc = datetime(year, month, day, hour, minute, tzinfo=timezone.utc)
    return utc.astimezone().replace(tzinfo=None)


class TestTimestamps:

    def test_aware_to_utc_z(self):
        ts = datetime(2025, 10, 15, 10, 0, tzinfo=timezone.utc)
        assert to_wire_time(ts) == '2025-10-15T10:00:00Z'

    def test_naive_local_round_trip(self):
        ts = datetime(2025, 10, 15, 10, 0)
        wire = to_wire_time(ts)
        assert wire.endswith('Z')
        assert from_wire_time(wire) == ts

    def test_parse_z(self):
        assert from_wire_time('2025-10-15T10:00:00Z') == local(2025, 10, 15, 10)

    def test_none(self):
        assert to_wire_time(None) is None
        assert from_wire_time(None) is None

    def test_invalid(self):
        with pytest.raises(RecordDecodeError):
            from_wire_time('yesterday')


class TestLogEntries:

    def test_round_trip(self):
        entry = LogEntry(
            id='e1', baby_profile_id='b1', date_time=datetime(2025, 10, 15, 9, 30),
            breastfed=True, formula_ml=60, tummy_time=True, tummy_time_seconds=240,
            notes='after nap',
        )
        record = log_entry_to_record(entry)
        assert set(ENTRY_FLAGS) <= set(record)
        assert record_to_log_entry(record) == entry

    def test_round_trip_keeps_missing_duration(self):
        entry = LogEntry(
            id='e1', baby_profile_id='b1', date_time=datetime(2025, 10, 15, 9, 30),
            tummy_time=True, notes='Tummy Time: 5 min',
        )
        decoded = record_to_log_entry(log_entry_to_record(entry))
        assert decoded.tummy_time_seconds is None
        assert decoded == entry

    def test_legacy_notes_duration(self):
        record = {
            'id': 'e1', 'baby_profile_id': 'b1', 'date_time': '2025-10-15T09:30:00Z',
            'tummy_time': True, 'notes': 'Tummy Time: 5 min 30 sek',
        }
        assert record_to_log_entry(record).tummy_time_seconds == 330

    def test_notes_ignored_without_flag(self):
        record = {
            'id': 'e1', 'baby_profile_id': 'b1', 'date_time': '2025-10-15T09:30:00Z',
            'notes': 'Tummy Time: 5 min',
        }
        assert record_to_log_entry(record).tummy_time_seconds is None

    def test_structured_duration_wins(self):
        record = {
            'id': 'e1', 'baby_profile_id': 'b1', 'date_time': '2025-10-15T09:30:00Z',
            'tummy_time': True, 'tummy_time_seconds': 90, 'notes': 'Tummy Time: 5 min',
        }
        assert record_to_log_entry(record).tummy_time_seconds == 90

    def test_null_volumes_default_to_zero(self):
        record = {'id': 'e1', 'baby_profile_id': 'b1', 'date_time': '2025-10-15T09:30:00Z',
                  'formula_ml': None}
        assert record_to_log_entry(record).formula_ml == 0

    def test_missing_field(self):
        with pytest.raises(RecordDecodeError, match='date_time'):
            record_to_log_entry({'id': 'e1', 'baby_profile_id': 'b1'})

    def test_negative_volume(self):
        with pytest.raises(RecordDecodeError):
            record_to_log_entry({'id': 'e1', 'baby_profile_id': 'b1',
                                 'date_time': '2025-10-15T09:30:00Z', 'formula_ml': -5})


class TestOtherRecords:

    def test_measurement(self):
        m = Measurement('m1', 'b1', datetime(2025, 10, 1, 10), weight_grams=4200,
                        height_cm=55.5)
        decoded = record_to_measurement(measurement_to_record(m))
        assert decoded == m
        assert decoded.value_for('head_circumference') is None

    def test_profile(self):
        p = BabyProfile('b1', 'Mia', datetime(2025, 9, 1, 6, 45), birth_time='06:45',
                        birth_weight_grams=3300, birth_height_cm=50)
        assert record_to_baby_profile(baby_profile_to_record(p)) == p

    def test_visit_date_stays_a_date(self):
        v = DoctorVisit('v1', 'b1', date(2025, 11, 2), '10:00', 'Pediatrician')
        record = doctor_visit_to_record(v)
        assert record['visit_date'] == '2025-11-02'
        assert record_to_doctor_visit(record) == v


class TestFrameImport:

    def frame(self):
        return pd.DataFrame({
            'date_time': ['2025-10-15T08:00:00Z', 'not a time', '2025-10-15T11:00:00Z'],
            'formula_ml': ['90', '60', 'abc'],
            'breast_milk_ml': [None, 10, -20],
            'stool': ['1', '0', 'no'],
            'urination': [True, False, 'true'],
            'tummy_time': ['yes', 'no', 'no'],
            'notes': ['Tummy Time: 2 min', None, ''],
        })

    def test_import(self):
        entries = entries_from_frame(self.frame(), 'b1')
        assert len(entries) == 2
        first, second = entries
        assert first.id == 'import-0'
        assert first.baby_profile_id == 'b1'
        assert first.date_time == local(2025, 10, 15, 8)
        assert first.formula_ml == 90
        assert first.breast_milk_ml == 0
        assert first.stool and first.urination and first.tummy_time
        assert first.tummy_time_seconds == 120
        assert second.formula_ml == 0
        assert second.breast_milk_ml == 0
        assert not second.stool
        assert second.urination

    def test_duration_column(self):
        df = pd.DataFrame({
            'date_time': ['2025-10-15T08:00:00Z', '2025-10-15T09:00:00Z'],
            'tummy_time': ['true', 'true'],
            'tummy_time_seconds': [90, None],
            'notes': ['Tummy Time: 5 min', 'Tummy Time: 1 min 15 sek'],
        })
        entries = entries_from_frame(df, 'b1')
        assert [e.tummy_time_seconds for e in entries] == [90, 75]

    def test_requires_date_time(self):
        with pytest.raises(RecordDecodeError):
            entries_from_frame(pd.DataFrame({'formula_ml': [90]}), 'b1')

    def test_csv(self, tmp_path):
        path = tmp_path / 'entries.csv'
        path.write_text(
            "id,date_time,formula_ml,vitamin_d\n"
            "a,2025-10-15T08:00:00Z,90,true\n"
            "b,2025-10-15T12:00:00Z,,false\n"
        )
        entries = load_entries_csv(path, 'b1')
        assert [e.id for e in entries] == ['a', 'b']
        assert entries[0].vitamin_d and not entries[1].vitamin_d
        assert entries[1].formula_ml == 0

    def test_export_frame(self):
        entry = LogEntry(id='e1', baby_profile_id='b1',
                         date_time=datetime(2025, 10, 15, 9), formula_ml=60)
        df = entries_to_frame([entry])
        assert list(df['id']) == ['e1']
        assert df.loc[0, 'formula_ml'] == 60
