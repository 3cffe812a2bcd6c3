"""Static display lookups: platform chart colors and country map coordinates.

Both tables are read-only mappings. Unknown keys fall back to
``DEFAULT_PLATFORM_COLOR`` and ``DEFAULT_COORDINATES`` (0, 0) instead of
raising, so a new network or an unmapped country still renders.
"""
from __future__ import annotations

from types import MappingProxyType
from typing import Mapping

DEFAULT_PLATFORM_COLOR = "#64748B"
DEFAULT_COORDINATES: tuple[float, float] = (0.0, 0.0)

PLATFORM_COLORS: Mapping[str, str] = MappingProxyType({
    "Amazon": "#FF9900",
    "Flipkart": "#047BD6",
    "ClickBank": "#00A651",
    "ShareASale": "#8B5CF6",
    "Commission Junction": "#00AEEF",
    "Other": "#F59E0B",
})

# (latitude, longitude) of each country's approximate centroid
COUNTRY_COORDINATES: Mapping[str, tuple[float, float]] = MappingProxyType({
    "United States": (39.8283, -98.5795),
    "Canada": (56.1304, -106.3468),
    "United Kingdom": (55.3781, -3.4360),
    "Australia": (-25.2744, 133.7751),
    "Germany": (51.1657, 10.4515),
    "France": (46.2276, 2.2137),
    "India": (20.5937, 78.9629),
    "Brazil": (-14.2350, -51.9253),
    "Japan": (36.2048, 138.2529),
    "Mexico": (23.6345, -102.5528),
    "Spain": (40.4637, -3.7492),
    "Italy": (41.8719, 12.5674),
    "Netherlands": (52.1326, 5.2913),
    "Singapore": (1.3521, 103.8198),
    "South Africa": (-30.5595, 22.9375),
    "Nigeria": (9.0820, 8.6753),
    "Indonesia": (-0.7893, 113.9213),
    "Philippines": (12.8797, 121.7740),
    "United Arab Emirates": (23.4241, 53.8478),
    "Ireland": (53.1424, -7.6921),
})


def platform_color(platform: str | None) -> str:
    if not platform:
        return DEFAULT_PLATFORM_COLOR
    return PLATFORM_COLORS.get(platform, DEFAULT_PLATFORM_COLOR)


def country_coordinates(country: str | None) -> tuple[float, float]:
    if not country:
        return DEFAULT_COORDINATES
    return COUNTRY_COORDINATES.get(country, DEFAULT_COORDINATES)


__all__ = [
    "PLATFORM_COLORS",
    "COUNTRY_COORDINATES",
    "DEFAULT_PLATFORM_COLOR",
    "DEFAULT_COORDINATES",
    "platform_color",
    "country_coordinates",
]
