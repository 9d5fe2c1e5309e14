"""
Pricing Radar - Automated competitor pricing monitor.

This package provides functionality to:
- Fetch competitor pricing pages and extract their text
- Filter out cookie banners, legal footers and other page noise
- Diff each capture against the previous snapshot
- Classify textual changes as meaningful pricing changes (or not)
- Suppress repeats of an already-notified change
- Notify the monitor's owner by email when a new change is found
"""

__version__ = "1.0.0"
__author__ = "Pricing Radar Team"
