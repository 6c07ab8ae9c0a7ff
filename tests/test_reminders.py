"""
Tests for reminder predicates, tummy-time helpers and notification gating.
"""
import itertools
from datetime import datetime, timedelta

import pytest

from babylog.models.data_structures import BabyProfile, LogEntry
from babylog.models.reminders import (
    NotificationGate, ReminderConfig, bathing_reminder, evaluate_reminders,
    feeding_notification, feeding_reminder, format_tummy_time_seconds,
    parse_tummy_time_notes, sterilization_reminder, tummy_time_progress,
    tummy_time_recommendation, tummy_time_reminder, vitamin_d_reminder,
)

_ids = itertools.count()

NOW = datetime(2025, 10, 15, 12, 0)
# 44 days old at NOW: 6 weeks, the 1-2 month tummy time band
PROFILE = BabyProfile(id='b1', name='Mia', birth_date=datetime(2025, 9, 1))


def entry(when, **flags):
    return LogEntry(id=f"e{next(_ids)}", baby_profile_id='b1', date_time=when, **flags)


class TestCadenceReminders:

    def test_never_recorded_is_due(self):
        result = sterilization_reminder([], NOW)
        assert result.due_for_attention is True
        assert result.state.days_since_last == 999
        assert result.state.never_recorded
        assert result.current_status == 'Never recorded'

    def test_yesterday_late_is_one_day(self):
        entries = [entry(datetime(2025, 10, 14, 23, 0), sterilization=True)]
        result = sterilization_reminder(entries, datetime(2025, 10, 15, 0, 30))
        assert result.state.days_since_last == 1
        assert result.due_for_attention is False
        assert result.current_status == 'Sterilized yesterday'

    def test_due_after_cadence(self):
        entries = [entry(datetime(2025, 10, 13, 8, 0), bathing=True)]
        result = bathing_reminder(entries, NOW)
        assert result.state.days_since_last == 2
        assert result.due_for_attention is True
        assert result.current_status == 'Bathed 2 days ago'

    def test_custom_cadence(self):
        entries = [entry(datetime(2025, 10, 13, 8, 0), bathing=True)]
        result = bathing_reminder(entries, NOW, config=ReminderConfig(bathing_cadence_days=3))
        assert result.due_for_attention is False
        assert result.target_description == 'Every 3 days'


class TestVitaminD:

    def test_given_yesterday_is_due_today(self):
        entries = [entry(datetime(2025, 10, 14, 23, 59), vitamin_d=True)]
        result = vitamin_d_reminder(entries, NOW)
        assert result.due_for_attention is True
        assert result.current_status == 'Not given today'

    def test_given_today(self):
        entries = [entry(datetime(2025, 10, 15, 8, 0), vitamin_d=True)]
        result = vitamin_d_reminder(entries, NOW)
        assert result.due_for_attention is False
        assert result.current_status == 'Given today at 08:00'
        assert result.state.occurrences_in_window == 1

    def test_status_uses_todays_dose(self):
        entries = [
            entry(datetime(2025, 10, 15, 8, 0), vitamin_d=True),
            entry(datetime(2025, 10, 16, 9, 0), vitamin_d=True),
        ]
        result = vitamin_d_reminder(entries, NOW)
        assert result.due_for_attention is False
        assert result.current_status == 'Given today at 08:00'

    def test_never_given(self):
        assert vitamin_d_reminder([], NOW).current_status == 'Never recorded'


class TestFeeding:

    def test_overdue(self):
        entries = [entry(datetime(2025, 10, 15, 9, 30), formula_ml=90)]
        result = feeding_reminder(entries, NOW)
        assert result.due_for_attention is True
        assert result.details['hours_since_last'] == 2.5
        assert result.current_status == 'Last feeding 2h 30m ago'
        assert result.details['next_feeding_at'] == '2025-10-15T11:30:00'

    def test_recent(self):
        entries = [entry(datetime(2025, 10, 15, 11, 0), breastfed=True)]
        assert feeding_reminder(entries, NOW).due_for_attention is False

    def test_crosses_midnight(self):
        entries = [entry(datetime(2025, 10, 14, 23, 30), formula_ml=60)]
        result = feeding_reminder(entries, datetime(2025, 10, 15, 0, 30))
        assert result.due_for_attention is False
        assert result.state.occurrences_in_window == 0

    def test_no_feeding_yet(self):
        result = feeding_reminder([entry(NOW, stool=True)], NOW)
        assert result.due_for_attention is True
        assert result.current_status == 'No feeding recorded yet'

    def test_non_feeding_entries_are_ignored(self):
        entries = [
            entry(datetime(2025, 10, 15, 9, 0), formula_ml=90),
            entry(datetime(2025, 10, 15, 11, 30), stool=True),
        ]
        assert feeding_reminder(entries, NOW).details['hours_since_last'] == 3.0


class TestTummyTime:

    @pytest.mark.parametrize("weeks,minutes", [
        (0, 7.5), (2, 7.5), (3, 12.5), (4, 12.5), (5, 25), (8, 25),
        (9, 50), (12, 50), (13, 60), (40, 60),
    ])
    def test_recommendation_bands(self, weeks, minutes):
        assert tummy_time_recommendation(weeks).recommended_daily_minutes == minutes

    def test_half_target_reached(self):
        entries = [
            entry(datetime(2025, 10, 15, 8), tummy_time=True, tummy_time_seconds=300),
            entry(datetime(2025, 10, 15, 10), tummy_time=True, tummy_time_seconds=450),
        ]
        result = tummy_time_reminder(entries, NOW, PROFILE)
        assert result.details['age_weeks'] == 6
        assert result.details['target_minutes'] == 25
        assert result.details['minutes_today'] == 12.5
        assert result.details['progress_percent'] == 50
        assert result.due_for_attention is False
        assert result.current_status == '12 min 30 sek today'

    def test_below_half_target(self):
        entries = [entry(datetime(2025, 10, 15, 8), tummy_time=True, tummy_time_seconds=300)]
        assert tummy_time_reminder(entries, NOW, PROFILE).due_for_attention is True

    def test_yesterday_does_not_count(self):
        entries = [entry(datetime(2025, 10, 14, 20), tummy_time=True, tummy_time_seconds=1800)]
        result = tummy_time_reminder(entries, NOW, PROFILE)
        assert result.details['minutes_today'] == 0
        assert result.due_for_attention is True

    def test_entries_without_duration_reported(self):
        entries = [
            entry(datetime(2025, 10, 15, 8), tummy_time=True),
            entry(datetime(2025, 10, 15, 9), tummy_time=True, tummy_time_seconds=60),
        ]
        result = tummy_time_reminder(entries, NOW, PROFILE)
        assert result.details['sessions_today'] == 2
        assert result.details['entries_without_duration'] == 1
        assert result.details['minutes_today'] == 1

    @pytest.mark.parametrize("notes,seconds", [
        ('Tummy Time: 5 min 30 sek', 330),
        ('Tummy Time: 3 min', 180),
        ('Tummy Time: 45 sek', 45),
        ('Tummy Time', None),
        ('', None),
    ])
    def test_parse_notes(self, notes, seconds):
        assert parse_tummy_time_notes(notes) == seconds

    @pytest.mark.parametrize("seconds,text", [
        (45, '45 sek'), (120, '2 min'), (330, '5 min 30 sek'), (0, '0 sek'),
    ])
    def test_format_seconds(self, seconds, text):
        assert format_tummy_time_seconds(seconds) == text

    def test_progress(self):
        assert tummy_time_progress(30, 25) == 100
        assert tummy_time_progress(5, 0) == 0
        assert tummy_time_progress(5, 20) == 25


class TestEvaluate:

    def test_all_reminders(self):
        results = evaluate_reminders([], NOW, PROFILE)
        assert [r.name for r in results] == [
            'feeding', 'vitamin_d', 'sterilization', 'bathing', 'tummy_time',
        ]
        assert all(r.due_for_attention for r in results)

    def test_to_dict(self):
        data = sterilization_reminder([], NOW).to_dict()
        assert data['state']['last_occurrence'] is None
        assert data['state']['days_since_last'] == 999

    def test_config_defaults_from_settings(self):
        assert ReminderConfig.from_settings() == ReminderConfig()


class TestNotifications:

    def test_gate_cooldown(self):
        gate = NotificationGate(30)
        assert gate.allow('feeding-b1', NOW)
        assert not gate.allow('feeding-b1', NOW + timedelta(minutes=10))
        assert gate.allow('feeding-b2', NOW + timedelta(minutes=10))
        assert gate.allow('feeding-b1', NOW + timedelta(minutes=30))

    def test_feeding_notification_rate_limited(self):
        gate = NotificationGate(30)
        entries = [entry(datetime(2025, 10, 15, 9, 0), formula_ml=90)]
        result = feeding_reminder(entries, NOW)

        first = feeding_notification(result, PROFILE, gate, NOW)
        assert first is not None
        assert first.tag == 'feeding-b1'
        assert first.title == 'Time to feed Mia'
        later = NOW + timedelta(minutes=10)
        assert feeding_notification(result, PROFILE, gate, later) is None

    def test_no_notification_without_history(self):
        gate = NotificationGate(30)
        result = feeding_reminder([], NOW)
        assert result.due_for_attention
        assert feeding_notification(result, PROFILE, gate, NOW) is None

    def test_gate_resets_after_feeding(self):
        gate = NotificationGate(30)
        overdue = feeding_reminder([entry(datetime(2025, 10, 15, 9), formula_ml=90)], NOW)
        assert feeding_notification(overdue, PROFILE, gate, NOW)

        fed_at = NOW + timedelta(minutes=5)
        fed = feeding_reminder([entry(fed_at, formula_ml=90)], fed_at)
        assert feeding_notification(fed, PROFILE, gate, fed_at) is None

        overdue_again = fed_at + timedelta(hours=2)
        again = feeding_reminder([entry(fed_at, formula_ml=90)], overdue_again)
        assert feeding_notification(again, PROFILE, gate, overdue_again) is not None
