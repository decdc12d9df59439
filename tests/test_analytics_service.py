"""
TalentDesk Backend: Analytics Helper Tests
==========================================
"""

import uuid
from datetime import date, datetime, timedelta, timezone

from talentdesk.services.analytics_service import (
    analytics_window,
    build_time_series,
    compute_conversion,
    compute_growth,
    rank_recruiters,
    source_counts,
)


class TestGrowth:
    def test_relative_change(self):
        assert compute_growth(15, 10) == 50
        assert compute_growth(5, 10) == -50

    def test_from_zero(self):
        assert compute_growth(3, 0) == 100
        assert compute_growth(0, 0) == 0


class TestConversion:
    def test_rounded_percentage(self):
        assert compute_conversion(1, 3) == 33
        assert compute_conversion(2, 3) == 67

    def test_empty_pipeline(self):
        assert compute_conversion(0, 0) == 0


class TestWindow:
    def test_window_bounds(self):
        now = datetime(2024, 3, 31, 15, 30, tzinfo=timezone.utc)
        start, end, previous_start = analytics_window(30, now)
        assert start == datetime(2024, 3, 1, tzinfo=timezone.utc)
        assert end.date() == date(2024, 3, 31)
        assert previous_start == start - timedelta(days=30)


class TestTimeSeries:
    def test_zero_filled_daily_points(self):
        start = date(2024, 1, 1)
        created = [
            datetime(2024, 1, 2, 9, tzinfo=timezone.utc),
            datetime(2024, 1, 2, 18, tzinfo=timezone.utc),
        ]
        series = build_time_series(start, 3, created)
        assert [p.date for p in series] == ["2024-01-01", "2024-01-02", "2024-01-03", "2024-01-04"]
        assert [p.count for p in series] == [0, 2, 0, 0]


class TestSources:
    def test_null_source_is_manual(self):
        result = source_counts([(None, 2), ("manual", 1), ("import", 5)])
        assert [(s.source, s.count) for s in result] == [("import", 5), ("manual", 3)]


class TestTopRecruiters:
    def test_query_order_kept(self, make_user):
        first, second = make_user("RECRUITER", name="Ann"), make_user("ADMIN", name="Bo")
        ranked = rank_recruiters([(first.id, 7), (second.id, 3)], {first.id: first, second.id: second})
        assert [(r.user.name, r.count) for r in ranked] == [("Ann", 7), ("Bo", 3)]

    def test_missing_user_reported_as_unknown(self, make_user):
        known = make_user("RECRUITER", name="Ann")
        gone = uuid.uuid4()

        ranked = rank_recruiters([(gone, 4), (known.id, 2)], {known.id: known})

        assert [r.user.name for r in ranked] == ["Unknown", "Ann"]
        assert ranked[0].user.id == gone
        assert ranked[0].count == 4
