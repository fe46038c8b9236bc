"""
Courier trip analysis feature package.

Extracts trips from tables pasted out of the courier and Shopee portals
and rolls them up per courier and per day.
"""

from .api.router import router as trip_analysis_router  # noqa: F401
from .summary.service import TripAnalysisService, build_analysis  # noqa: F401
