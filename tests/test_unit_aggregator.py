from datetime import datetime, timedelta, timezone

import pytest

from linkdash.models.db.enums import StatusFilter
from linkdash.services.aggregator import (
    AggregateSnapshot,
    ClickEventRecord,
    ConversionRecord,
    DashboardQuery,
    aggregate,
    aggregate_with_comparison,
    normalize_event,
)

BASE = datetime(2024, 3, 10, 12, 0, tzinfo=timezone.utc)


def _event(i, *, days_ago=0, platform="Amazon", country="United States", device="Desktop",
           revenue=None, active=True, title="Link", minutes=0):
    conversions = [] if revenue is None else [{"commission_amount": revenue}]
    return {
        "id": i,
        "clicked_at": BASE - timedelta(days=days_ago, minutes=minutes),
        "link": {"id": 1, "title": title, "platform": platform, "is_active": active},
        "country": country,
        "city": "City",
        "device_type": device,
        "browser": "Chrome",
        "conversions": conversions,
    }


def test_same_day_amazon_example():
    events = [_event(1, revenue=10), _event(2, minutes=1), _event(3, revenue=5, minutes=2)]
    snap = aggregate(events)
    assert snap.total_clicks == 3
    assert snap.total_revenue == 15
    assert snap.avg_cpc == pytest.approx(5.0)
    assert list(snap.by_platform) == ["Amazon"]
    assert snap.by_platform["Amazon"].clicks == 3
    assert snap.by_platform["Amazon"].revenue == 15
    assert len(snap.time_series) == 1
    point = snap.time_series[0]
    assert point.date == BASE.date()
    assert (point.clicks, point.revenue) == (3, 15)


def test_country_breakdown_sorted_with_percentages():
    events = [_event(i, country="Canada") for i in range(5)]
    events += [_event(10 + i, country="United States") for i in range(10)]
    snap = aggregate(events)
    assert [c.key for c in snap.by_country] == ["United States", "Canada"]
    assert round(snap.by_country[0].percentage, 1) == 66.7
    assert round(snap.by_country[1].percentage, 1) == 33.3


def test_empty_input_gives_zero_snapshot():
    snap = aggregate([])
    assert snap.total_clicks == 0
    assert snap.total_revenue == 0
    assert snap.avg_cpc == 0
    assert snap.avg_ctr == 0
    assert snap.time_series == ()
    assert dict(snap.by_platform) == {}
    assert snap.by_country == ()
    assert snap.by_device == ()
    assert snap.recent_activity == ()


def test_missing_fields_normalized_to_unknown_and_zero():
    raw = {
        "id": "a",
        "clicked_at": "2024-03-10T08:00:00Z",
        "link": {"title": None, "platform": "  "},
        "country": None,
        "device_type": "",
        "conversions": [{"commission_amount": None}],
    }
    snap = aggregate([raw])
    assert list(snap.by_platform) == ["Unknown"]
    assert snap.by_country[0].key == "Unknown"
    assert snap.by_device[0].key == "Unknown"
    assert snap.total_revenue == 0
    assert snap.recent_activity[0].link_title == "Unknown"


def test_groupings_partition_total_clicks():
    events = []
    for i in range(40):
        events.append(_event(
            i,
            days_ago=i % 9,
            platform=("Amazon", "Flipkart", None)[i % 3],
            country=("India", "Canada", None, "Germany")[i % 4],
            device=("Mobile", "Desktop", None)[i % 3],
            revenue=(i % 5) or None,
        ))
    snap = aggregate(events, time_series_points=0, top_countries=100)
    assert sum(g.clicks for g in snap.by_platform.values()) == snap.total_clicks
    assert sum(g.clicks for g in snap.by_country) == snap.total_clicks
    assert sum(g.clicks for g in snap.by_device) == snap.total_clicks
    assert sum(p.clicks for p in snap.time_series) == snap.total_clicks
    assert sum(g.revenue for g in snap.by_platform.values()) == pytest.approx(snap.total_revenue)
    assert sum(g.percentage for g in snap.by_country) == pytest.approx(100.0)


def test_time_series_keeps_last_seven_days_chronologically():
    events = [_event(i, days_ago=i) for i in range(10)]
    snap = aggregate(events)
    dates = [p.date for p in snap.time_series]
    assert len(dates) == 7
    assert dates == sorted(dates)
    assert dates[-1] == BASE.date()
    assert dates[0] == (BASE - timedelta(days=6)).date()


def test_top_countries_truncated_to_ten():
    events = [_event(i, country=f"Country {i:02d}") for i in range(12)]
    events += [_event(100, country="Country 00")]
    snap = aggregate(events)
    assert len(snap.by_country) == 10
    assert snap.by_country[0].key == "Country 00"
    assert snap.by_country[0].clicks == 2
    # Ties keep first-seen order
    assert [c.key for c in snap.by_country[1:3]] == ["Country 01", "Country 02"]


def test_recent_activity_newest_first_limited_to_ten():
    events = [_event(i, minutes=i, title=f"T{i}") for i in range(15)]
    snap = aggregate(list(reversed(events)))
    assert len(snap.recent_activity) == 10
    assert [a.id for a in snap.recent_activity] == list(range(10))
    stamps = [a.clicked_at for a in snap.recent_activity]
    assert stamps == sorted(stamps, reverse=True)


def test_ctr_placeholder_until_impressions_given():
    events = [_event(i) for i in range(4)]
    snap = aggregate(events)
    assert snap.ctr_is_placeholder is True
    assert snap.avg_ctr == pytest.approx(3.4)

    measured = aggregate(events, impressions=200)
    assert measured.ctr_is_placeholder is False
    assert measured.avg_ctr == pytest.approx(2.0)


def test_revenue_sums_multiple_conversions_once_per_event():
    record = ClickEventRecord(
        id=1,
        clicked_at=BASE,
        platform="ClickBank",
        country="Canada",
        conversions=(ConversionRecord(12.5), ConversionRecord(7.5)),
    )
    snap = aggregate([record])
    assert snap.total_revenue == 20
    assert snap.by_platform["ClickBank"].revenue == 20
    assert snap.by_country[0].revenue == 20
    assert snap.time_series[0].revenue == 20


def test_query_filters_platform_and_link_status():
    events = [
        _event(1, platform="Amazon", active=True),
        _event(2, platform="Amazon", active=False),
        _event(3, platform="Flipkart", active=True),
    ]
    only_amazon = aggregate(events, query=DashboardQuery(platform="Amazon"))
    assert only_amazon.total_clicks == 2

    active = aggregate(events, query=DashboardQuery(status=StatusFilter.ACTIVE))
    assert active.total_clicks == 2
    assert set(active.by_platform) == {"Amazon", "Flipkart"}

    inactive = aggregate(events, query=DashboardQuery(status=StatusFilter.INACTIVE))
    assert inactive.total_clicks == 1


def test_aggregate_is_pure_and_repeatable():
    events = [_event(i, days_ago=i % 3, revenue=i) for i in range(8)]
    before = [dict(e) for e in events]
    first = aggregate(events)
    second = aggregate(events)
    assert first == second
    assert events == before
    assert isinstance(first, AggregateSnapshot)


def test_normalize_event_accepts_flat_rows():
    record = normalize_event({
        "id": 9,
        "clicked_at": BASE,
        "link_id": 4,
        "link_title": "Desk",
        "platform": "ShareASale",
        "link_active": False,
    })
    assert record.link_id == 4
    assert record.link_title == "Desk"
    assert record.platform == "ShareASale"
    assert record.link_active is False
    assert record.country == "Unknown"


def test_comparison_with_previous_window():
    boundary = BASE - timedelta(days=7)
    events = [
        _event(1, revenue=10),
        _event(2, days_ago=1, revenue=20),
        _event(3, days_ago=2),
        _event(4, days_ago=9, revenue=15),
        _event(5, days_ago=10, platform="Flipkart", revenue=100),
    ]
    snap = aggregate_with_comparison(events, boundary=boundary, query=DashboardQuery(platform="Amazon"))
    assert snap.total_clicks == 3
    assert snap.total_revenue == 30
    assert snap.total_conversions == 2
    # Baseline is the Amazon click 9 days ago; Flipkart is filtered out of both windows
    assert snap.changes.clicks_change == pytest.approx(200.0)
    assert snap.changes.revenue_change == pytest.approx(100.0)
    assert snap.changes.conversions_change == pytest.approx(100.0)
    assert sum(p.clicks for p in snap.time_series) == 3


def test_comparison_without_baseline_reports_no_change():
    snap = aggregate_with_comparison([_event(1, revenue=10)], boundary=BASE - timedelta(days=7))
    assert snap.total_clicks == 1
    assert snap.changes.revenue_change is None
    assert snap.changes.clicks_change is None
    assert snap.changes.conversions_change is None
    assert aggregate([]).changes == aggregate_with_comparison([], boundary=BASE).changes
