from datetime import datetime, timezone

import pytest

from linkdash.services.revenue_tracker import build_revenue_summary, revenue_fetch_start

NOW = datetime(2024, 5, 20, 12, 0, tzinfo=timezone.utc)


def _click(i, when, *, link_id=1, title="Link", platform="Amazon", conversions=()):
    return {
        "id": i,
        "clicked_at": when,
        "link": {"id": link_id, "title": title, "platform": platform, "is_active": True},
        "conversions": [
            {"commission_amount": amount, "payout_status": status} for amount, status in conversions
        ],
    }


@pytest.fixture()
def events():
    return [
        _click(1, datetime(2024, 3, 5, tzinfo=timezone.utc), conversions=[(100, "paid")]),
        _click(2, datetime(2024, 4, 2, tzinfo=timezone.utc), link_id=2, title="Galaxy", platform="Flipkart",
               conversions=[(40, "pending")]),
        _click(3, datetime(2024, 4, 9, tzinfo=timezone.utc), conversions=[(60, "processing")]),
        _click(4, datetime(2024, 5, 1, tzinfo=timezone.utc), conversions=[(150, "pending"), (None, "pending")]),
        _click(5, datetime(2024, 5, 3, tzinfo=timezone.utc), link_id=3, title="Course", platform="ClickBank"),
        _click(6, datetime(2023, 12, 30, tzinfo=timezone.utc), conversions=[(500, "paid")]),
    ]


def test_monthly_revenue_by_platform(events):
    summary = build_revenue_summary(events, months=3, now=NOW)
    assert [m.month for m in summary.monthly] == ["2024-03", "2024-04", "2024-05"]
    april = summary.monthly[1]
    assert april.by_platform == {"Flipkart": 40, "Amazon": 60}
    assert april.total == 100
    assert summary.monthly[2].total == 150


def test_growth_compares_last_two_months(events):
    summary = build_revenue_summary(events, months=3, now=NOW)
    assert summary.growth_pct == pytest.approx(50.0)

    single = build_revenue_summary(events[:1], months=3, now=NOW)
    assert single.growth_pct is None


def test_goals_use_current_periods(events):
    goals = {"monthly": 300.0, "quarterly": 1000.0, "yearly": 200.0}
    summary = build_revenue_summary(events, months=6, goals=goals, now=NOW)
    by_period = {g.period: g for g in summary.goals}
    assert by_period["monthly"].current == 150
    # Q2 = April + May
    assert by_period["quarterly"].current == 250
    # 2024 only, December 2023 excluded
    assert by_period["yearly"].current == 350
    assert by_period["monthly"].progress_pct == pytest.approx(50.0)
    assert by_period["yearly"].progress_pct == pytest.approx(175.0)
    assert by_period["yearly"].progress_display == 100.0


def test_top_links_and_conversion_rate(events):
    summary = build_revenue_summary(events, months=12, now=NOW)
    top = summary.top_links[0]
    assert top.link_id == 1
    assert top.revenue == 810
    assert top.clicks == 4
    assert top.conversions == 5
    assert top.conversion_rate == pytest.approx(125.0)
    assert len(summary.top_links) <= 5
    assert [t.link_id for t in summary.top_links][-1] == 3


def test_payouts_count_unpaid_conversions(events):
    summary = build_revenue_summary(
        events, months=12, now=NOW, payout_minimums={"Amazon": 100.0, "Flipkart": 250.0}
    )
    payouts = {p.platform: p for p in summary.payouts}
    assert payouts["Amazon"].pending == 210
    assert payouts["Amazon"].eligible is True
    assert payouts["Amazon"].remaining_to_minimum == 0
    assert payouts["Flipkart"].pending == 40
    assert payouts["Flipkart"].eligible is False
    assert payouts["Flipkart"].remaining_to_minimum == 210
    assert "ClickBank" not in payouts


def test_platform_breakdown_percentages(events):
    summary = build_revenue_summary(events, months=12, now=NOW)
    assert summary.total_revenue == 850
    assert summary.platform_breakdown[0].platform == "Amazon"
    assert sum(p.percentage for p in summary.platform_breakdown) == pytest.approx(100.0)


def test_empty_summary():
    summary = build_revenue_summary([], months=6, now=NOW)
    assert [m.month for m in summary.monthly] == ["2023-12", "2024-01", "2024-02", "2024-03", "2024-04", "2024-05"]
    assert all(m.total == 0 and m.by_platform == {} for m in summary.monthly)
    assert summary.growth_pct is None
    assert summary.total_revenue == 0
    assert summary.platform_breakdown == ()
    assert all(g.current == 0 for g in summary.goals)


def test_months_without_clicks_are_zero_filled():
    events = [
        _click(1, datetime(2024, 3, 10, tzinfo=timezone.utc), conversions=[(100, "paid")]),
        _click(2, datetime(2024, 5, 2, tzinfo=timezone.utc), conversions=[(150, "paid")]),
    ]
    summary = build_revenue_summary(events, months=3, now=NOW)
    assert [m.month for m in summary.monthly] == ["2024-03", "2024-04", "2024-05"]
    assert summary.monthly[1].total == 0
    # May against an empty April has no baseline
    assert summary.growth_pct is None

    two = build_revenue_summary(events, months=2, now=NOW)
    assert [m.month for m in two.monthly] == ["2024-04", "2024-05"]


def test_growth_is_current_month_against_previous_month():
    events = [
        _click(1, datetime(2024, 4, 10, tzinfo=timezone.utc), conversions=[(200, "paid")]),
        _click(2, datetime(2024, 5, 2, tzinfo=timezone.utc), conversions=[(150, "paid")]),
    ]
    summary = build_revenue_summary(events, months=6, now=NOW)
    assert summary.growth_pct == pytest.approx(-25.0)


def test_totals_cover_reported_months_only():
    events = [
        _click(1, datetime(2024, 1, 15, tzinfo=timezone.utc), link_id=2, title="Galaxy", platform="Flipkart",
               conversions=[(900, "pending")]),
        _click(2, datetime(2024, 5, 4, tzinfo=timezone.utc), conversions=[(100, "pending")]),
    ]
    summary = build_revenue_summary(events, months=1, now=NOW)
    assert [(m.month, m.total) for m in summary.monthly] == [("2024-05", 100)]
    assert summary.total_revenue == 100
    assert [p.platform for p in summary.platform_breakdown] == ["Amazon"]
    assert [t.link_id for t in summary.top_links] == [1]

    by_period = {g.period: g.current for g in summary.goals}
    assert by_period["yearly"] == 1000
    # Outstanding balances are not tied to the reported months
    payouts = {p.platform: p.pending for p in summary.payouts}
    assert payouts == {"Amazon": 100, "Flipkart": 900}


def test_fetch_start_covers_history_and_year():
    assert revenue_fetch_start(3, NOW) == datetime(2024, 1, 1, tzinfo=timezone.utc)
    assert revenue_fetch_start(12, NOW) == datetime(2023, 6, 1, tzinfo=timezone.utc)


def test_payouts_report_oldest_unpaid_conversion():
    event = _click(1, datetime(2024, 5, 2, tzinfo=timezone.utc))
    event["conversions"] = [
        {"commission_amount": 10, "payout_status": "pending", "converted_at": "2024-05-09T10:00:00Z"},
        {"commission_amount": 20, "payout_status": "processing", "converted_at": "2024-05-04T08:30:00Z"},
        {"commission_amount": 99, "payout_status": "paid", "converted_at": "2024-05-02T00:00:00Z"},
        {"commission_amount": 5, "payout_status": "pending"},
    ]
    summary = build_revenue_summary([event], months=1, now=NOW)
    (line,) = summary.payouts
    assert line.pending == 35
    assert line.oldest_pending_at == datetime(2024, 5, 4, 8, 30, tzinfo=timezone.utc)
