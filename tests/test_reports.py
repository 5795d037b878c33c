# ==============================================================================
# Tests for Report Post-Processing
# ==============================================================================
"""
Tests for the pure report helpers: rounding, deltas, trends and the
distribution/heatmap summaries.
"""

import pytest

from siteanalytics.service.reports import (
    classify_trend,
    delta,
    duration_bucket_case,
    page_row,
    parse_period_days,
    ratio,
    round_half_up,
    session_stats_from_row,
    summarize_distribution,
    summarize_heatmap,
)

# ==============================================================================
# Rounding and ratios
# ==============================================================================


class TestRounding:
    """Tests for half-up rounding."""

    @pytest.mark.parametrize(
        "value,digits,expected",
        [
            (2.5, 0, 3),
            (-2.5, 0, -2),
            (2.4, 0, 2),
            (1.25, 1, 1.3),
            (57.142857, 1, 57.1),
            (0.6666, 3, 0.667),
        ],
    )
    def test_round_half_up(self, value, digits, expected):
        assert round_half_up(value, digits) == expected

    def test_zero_digits_returns_int(self):
        assert isinstance(round_half_up(2.5), int)

    def test_ratio(self):
        assert ratio(1, 3, 3) == 0.333
        assert ratio(1, 4) == 0.25
        assert ratio(None, 4) == 0

    def test_ratio_zero_denominator(self):
        assert ratio(5, 0) == 0
        assert ratio(5, None, 1) == 0


# ==============================================================================
# Deltas and trends
# ==============================================================================


class TestDelta:
    """Tests for period-over-period deltas."""

    def test_growth(self):
        assert delta(150, 100) == {"current": 150, "previous": 100, "change": 50, "change_pct": 50}

    def test_decline_rounded(self):
        assert delta(2, 3)["change_pct"] == -33

    def test_no_previous_with_activity(self):
        assert delta(5, 0) == {"current": 5, "previous": 0, "change": 5, "change_pct": None}

    def test_no_activity_at_all(self):
        assert delta(0, 0)["change_pct"] == 0


class TestClassifyTrend:
    """Tests for trend thresholds (strictly beyond +/-10%)."""

    @pytest.mark.parametrize(
        "change_pct,expected",
        [
            (None, "growing"),
            (11, "growing"),
            (10, "stable"),
            (0, "stable"),
            (-10, "stable"),
            (-11, "declining"),
        ],
    )
    def test_thresholds(self, change_pct, expected):
        assert classify_trend(change_pct) == expected


class TestParsePeriodDays:
    """Tests for period parsing."""

    @pytest.mark.parametrize(
        "period,expected",
        [
            ("7d", 7),
            ("30d", 30),
            ("14", 14),
            (" 3 days", 3),
            (90, 90),
            ("0d", 7),
            ("-5d", 7),
            ("week", 7),
            ("", 7),
            (None, 7),
        ],
    )
    def test_parse(self, period, expected):
        assert parse_period_days(period) == expected


# ==============================================================================
# Row summaries
# ==============================================================================


class TestSessionStats:
    """Tests for session statistics from an aggregate row."""

    def test_empty(self):
        assert session_stats_from_row(None)["total_sessions"] == 0
        assert session_stats_from_row({"total_sessions": 0})["bounce_rate"] == 0

    def test_values(self):
        stats = session_stats_from_row(
            {
                "total_sessions": 4,
                "bounced_sessions": 1,
                "total_duration": 10_002,
                "total_events": 9,
                "unique_users": 3,
            }
        )
        assert stats == {
            "total_sessions": 4,
            "bounce_rate": 0.25,
            "avg_duration": 2501,
            "pages_per_session": 2.3,
            "sessions_per_user": 1.3,
        }


class TestPageRow:
    """Tests for entry/exit page rows."""

    def test_rounding(self):
        row = page_row(
            {"page": "/home", "sessions": 3, "bounces": 2, "total_duration": 1000, "total_events": 4}
        )
        assert row == {
            "page": "/home",
            "sessions": 3,
            "bounces": 2,
            "bounce_rate": 0.667,
            "avg_duration": 333,
            "avg_events": 1.3,
        }


class TestSummarizeDistribution:
    """Tests for the session-duration distribution."""

    def test_empty(self):
        assert summarize_distribution([]) == {
            "distribution": [],
            "median_bucket": None,
            "engaged_pct": 0,
        }

    def test_ordering_median_and_engagement(self):
        rows = [
            {"bucket": "1-3m", "sessions": 2, "bounces": 0, "total_events": 8},
            {"bucket": "0s", "sessions": 2, "bounces": 2, "total_events": 2},
            {"bucket": "30-60s", "sessions": 2, "bounces": 0, "total_events": 5},
            {"bucket": "1-10s", "sessions": 1, "bounces": 0, "total_events": 2},
        ]
        summary = summarize_distribution(rows)

        assert [r["bucket"] for r in summary["distribution"]] == ["0s", "1-10s", "30-60s", "1-3m"]
        assert summary["median_bucket"] == "30-60s"
        assert summary["engaged_pct"] == 57.1
        assert summary["distribution"][0]["pct"] == 28.6
        assert summary["distribution"][2]["avg_events"] == 2.5
        assert sum(r["pct"] for r in summary["distribution"]) == pytest.approx(100, abs=0.2)


class TestSummarizeHeatmap:
    """Tests for the activity heatmap summary."""

    def test_empty(self):
        assert summarize_heatmap([])["peak"] is None

    def test_peak_and_busiest(self):
        rows = [
            {"day": 1, "hour": 9, "events": 2, "users": 1},
            {"day": 3, "hour": 9, "events": 1, "users": 1},
            {"day": 3, "hour": 12, "events": 3, "users": 2},
        ]
        summary = summarize_heatmap(rows)

        assert summary["peak"] == {"day": 3, "day_name": "Wednesday", "hour": 12, "events": 3, "users": 2}
        assert summary["busiest_day"] == "Wednesday"
        # Hours 9 and 12 both total 3 events
        assert summary["busiest_hour"] == 9
        assert summary["heatmap"][0]["day_name"] == "Monday"

    def test_peak_tie_keeps_first_cell(self):
        rows = [
            {"day": 0, "hour": 1, "events": 4, "users": 1},
            {"day": 5, "hour": 2, "events": 4, "users": 1},
        ]
        assert summarize_heatmap(rows)["peak"]["day_name"] == "Sunday"


class TestDurationBucketCase:
    """Tests for the duration bucket SQL expression."""

    def test_bucket_bounds(self):
        sql = duration_bucket_case("s.duration")
        assert sql.startswith("CASE WHEN s.duration = 0 THEN '0s'")
        assert "WHEN s.duration < 10000 THEN '1-10s'" in sql
        assert "WHEN s.duration < 600000 THEN '3-10m'" in sql
        assert sql.endswith("ELSE '10m+' END")

    def test_labels_sessions(self, storage):
        sql = f"SELECT {duration_bucket_case('?')} AS bucket"
        cases = {0: "0s", 500: "1-10s", 10_000: "10-30s", 45_000: "30-60s", 600_000: "10m+"}
        for duration, expected in cases.items():
            assert storage.query_one(sql.replace("?", str(duration)))["bucket"] == expected
