"""
Unit tests for recurrence normalization and event payload validation.
"""

import pytest

from guild_calendar_sync.models import EventValidationError
from guild_calendar_sync.models import RecurrenceValidationError
from guild_calendar_sync.normalizer import normalize
from guild_calendar_sync.normalizer import normalize_dict
from guild_calendar_sync.normalizer import normalize_display_name
from guild_calendar_sync.normalizer import validate_event_payload
from guild_calendar_sync.rules import CanonicalRule
from guild_calendar_sync.rules import Frequency
from guild_calendar_sync.rules import NthWeekday
from guild_calendar_sync.rules import RecurrenceRequest
from tests.conftest import utc

ANCHOR = utc(2026, 3, 4, 18, 0)  # a Wednesday


class TestNormalize:
    def test_none_means_no_recurrence(self):
        assert normalize(None, ANCHOR) is None
        assert normalize_dict(None, ANCHOR) is None

    def test_frequency_by_name_or_code(self):
        assert normalize(RecurrenceRequest("Weekly"), ANCHOR).frequency is Frequency.WEEKLY
        assert normalize(RecurrenceRequest(3), ANCHOR).frequency is Frequency.DAILY
        assert normalize(RecurrenceRequest(1), ANCHOR).frequency is Frequency.MONTHLY

    @pytest.mark.parametrize("frequency", [None, "yearly", 0, 7, ""])
    def test_unknown_frequency_rejected(self, frequency):
        with pytest.raises(RecurrenceValidationError):
            normalize(RecurrenceRequest(frequency), ANCHOR)

    @pytest.mark.parametrize("interval", [0, -2])
    def test_non_positive_interval_rejected(self, interval):
        with pytest.raises(RecurrenceValidationError):
            normalize(RecurrenceRequest("daily", interval=interval), ANCHOR)

    def test_anchor_is_embedded(self):
        rule = normalize(RecurrenceRequest("daily"), ANCHOR)
        assert rule.start == ANCHOR
        assert rule.interval == 1

    def test_daily_keeps_weekdays_verbatim(self):
        rule = normalize(RecurrenceRequest("daily", by_weekday=(4, 0, 2)), ANCHOR)
        assert rule.by_weekday == (4, 0, 2)
        assert normalize(RecurrenceRequest("daily"), ANCHOR).by_weekday is None

    def test_weekly_takes_first_weekday(self):
        rule = normalize(RecurrenceRequest("weekly", by_weekday=(5, 1)), ANCHOR)
        assert rule.by_weekday == (5,)

    def test_weekly_defaults_to_anchor_weekday(self):
        assert normalize(RecurrenceRequest("weekly"), ANCHOR).by_weekday == (2,)

    def test_monthly_prefers_nth_weekday(self):
        request = RecurrenceRequest(
            "monthly", by_n_weekday=(NthWeekday(1, 2),), by_month_day=(20,)
        )
        rule = normalize(request, ANCHOR)
        assert rule.by_n_weekday == NthWeekday(1, 2)
        assert rule.by_month_day is None

    def test_monthly_month_day(self):
        rule = normalize(RecurrenceRequest("monthly", by_month_day=(20, 21)), ANCHOR)
        assert rule.by_month_day == 20
        assert rule.by_n_weekday is None

    def test_monthly_defaults_to_anchor_day(self):
        assert normalize(RecurrenceRequest("monthly"), ANCHOR).by_month_day == 4

    def test_normalize_dict_checks_shape(self):
        with pytest.raises(RecurrenceValidationError):
            normalize_dict({"frequency": "weekly", "by_weekday": "MO"}, ANCHOR)
        with pytest.raises(RecurrenceValidationError):
            normalize_dict({"frequency": "monthly", "by_n_weekday": [{"n": 2}]}, ANCHOR)
        with pytest.raises(RecurrenceValidationError):
            normalize_dict({"frequency": True}, ANCHOR)


class TestStoredRuleRenormalizes:
    @pytest.mark.parametrize(
        "body",
        [
            {"frequency": "daily", "by_weekday": [0, 1, 2, 3, 4]},
            {"frequency": "weekly"},
            {"frequency": "monthly", "by_n_weekday": [{"n": 1, "day": 2}]},
            {"frequency": "monthly", "by_month_day": [31]},
            {"frequency": "monthly"},
            {"frequency": 3, "interval": 2},
        ],
        ids=[
            "daily-weekdays",
            "weekly-default",
            "monthly-nth",
            "monthly-day",
            "monthly-bare",
            "daily-code",
        ],
    )
    def test_normalizing_a_stored_rule_changes_nothing(self, body):
        rule = normalize_dict(body, ANCHOR)
        stored = CanonicalRule.from_json(rule.to_json())
        assert normalize_dict(stored.to_dict(), ANCHOR) == rule


class TestDisplayName:
    @pytest.mark.parametrize(
        "value, expected",
        [("  Main hall ", "Main hall"), ("   ", None), ("", None), (None, None), (42, None)],
    )
    def test_normalize_display_name(self, value, expected):
        assert normalize_display_name(value) == expected


def _body(**overrides):
    body = {
        "title": "Standup",
        "description": "Team standup",
        "working_group_id": 1,
        "start_at": "2026-03-04T18:00:00Z",
        "end_at": "2026-03-04T19:00:00Z",
        "location": "https://meet.example.org/standup",
    }
    body.update(overrides)
    return body


class TestValidateEventPayload:
    def test_single_event(self):
        draft, rule, series_end = validate_event_payload(_body())
        assert draft.title == "Standup"
        assert draft.start_at == ANCHOR
        assert rule is None
        assert series_end is None

    def test_recurring_event(self):
        draft, rule, series_end = validate_event_payload(
            _body(
                recurrence_rule={"frequency": "weekly"},
                series_end_at="2026-06-01T00:00:00Z",
            )
        )
        assert rule.frequency is Frequency.WEEKLY
        assert rule.start == draft.start_at
        assert series_end == utc(2026, 6, 1)

    def test_recurring_event_requires_series_end(self):
        with pytest.raises(EventValidationError, match="series_end_at"):
            validate_event_payload(_body(recurrence_rule={"frequency": "daily"}))

    def test_series_end_ignored_without_rule(self):
        _, _, series_end = validate_event_payload(_body(series_end_at="2026-06-01T00:00:00Z"))
        assert series_end is None

    @pytest.mark.parametrize(
        "overrides",
        [
            {"title": "  "},
            {"description": None},
            {"working_group_id": 0},
            {"working_group_id": "abc"},
            {"start_at": "not a date"},
            {"end_at": "2026-03-04T17:00:00Z"},
            {"location": ""},
            {"location_display_name": 5},
        ],
    )
    def test_invalid_payload(self, overrides):
        with pytest.raises(EventValidationError):
            validate_event_payload(_body(**overrides))

    def test_recurrence_error_is_event_validation_error(self):
        with pytest.raises(RecurrenceValidationError):
            validate_event_payload(
                _body(recurrence_rule={"frequency": "yearly"}, series_end_at="2027-01-01")
            )

    def test_display_name_is_trimmed(self):
        draft, _, _ = validate_event_payload(_body(location_display_name="  Room 4 "))
        assert draft.location_display_name == "Room 4"

    def test_non_mapping_rejected(self):
        with pytest.raises(EventValidationError):
            validate_event_payload(["not", "an", "object"])
