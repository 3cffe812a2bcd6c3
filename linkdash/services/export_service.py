"""Dashboard snapshot export (CSV / JSON) for the "Export" button."""
import csv
import io
from typing import Any, Dict, Optional

from linkdash.services.aggregator import AggregateSnapshot
from linkdash.services.lookups import country_coordinates, platform_color
from linkdash.utils.metrics import round_currency, round_pct
from linkdash.utils.time import utc_now

CSV_FIELDS = ["section", "key", "clicks", "revenue", "percentage"]


class ExportService:

    @staticmethod
    def export_snapshot_json(
        snapshot: AggregateSnapshot,
        window: str,
        platform: Optional[str] = None,
        status: str = "all",
    ) -> Dict[str, Any]:
        return {
            "exported_at": utc_now().isoformat(),
            "filters": {"window": window, "platform": platform, "status": status},
            "kpis": {
                "total_clicks": snapshot.total_clicks,
                "total_revenue": round_currency(snapshot.total_revenue),
                "total_conversions": snapshot.total_conversions,
                "avg_ctr": round_pct(snapshot.avg_ctr),
                "avg_cpc": round_currency(snapshot.avg_cpc),
                "ctr_is_placeholder": snapshot.ctr_is_placeholder,
            },
            "time_series": [
                {"date": p.date.isoformat(), "clicks": p.clicks, "revenue": round_currency(p.revenue)}
                for p in snapshot.time_series
            ],
            "platforms": [
                {
                    "platform": g.key,
                    "clicks": g.clicks,
                    "revenue": round_currency(g.revenue),
                    "percentage": round_pct(g.percentage),
                    "color": platform_color(g.key),
                }
                for g in snapshot.by_platform.values()
            ],
            "countries": [
                {
                    "country": g.key,
                    "clicks": g.clicks,
                    "revenue": round_currency(g.revenue),
                    "percentage": round_pct(g.percentage),
                    "coordinates": list(country_coordinates(g.key)),
                }
                for g in snapshot.by_country
            ],
            "devices": [
                {"device": g.key, "clicks": g.clicks, "percentage": round_pct(g.percentage)}
                for g in snapshot.by_device
            ],
        }

    @staticmethod
    def export_snapshot_csv(snapshot: AggregateSnapshot) -> str:
        """Flatten the snapshot into one row per metric group.

        The first row holds the totals (section ``total``); daily rows use the
        ISO date as key and leave the percentage column empty.
        """
        output = io.StringIO()
        writer = csv.DictWriter(output, fieldnames=CSV_FIELDS)
        writer.writeheader()

        writer.writerow({
            "section": "total",
            "key": "all",
            "clicks": snapshot.total_clicks,
            "revenue": round_currency(snapshot.total_revenue),
            "percentage": 100.0 if snapshot.total_clicks else 0.0,
        })
        for point in snapshot.time_series:
            writer.writerow({
                "section": "day",
                "key": point.date.isoformat(),
                "clicks": point.clicks,
                "revenue": round_currency(point.revenue),
                "percentage": "",
            })
        for section, groups in (
            ("platform", snapshot.by_platform.values()),
            ("country", snapshot.by_country),
            ("device", snapshot.by_device),
        ):
            for group in groups:
                writer.writerow({
                    "section": section,
                    "key": group.key,
                    "clicks": group.clicks,
                    "revenue": round_currency(group.revenue),
                    "percentage": round_pct(group.percentage),
                })

        return output.getvalue()
