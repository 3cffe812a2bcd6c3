"""Affiliate link analytics dashboard backend.

Having this file ensures the 'linkdash' directory is recognized as a
standard Python package during test discovery.
"""

__all__: list[str] = []
