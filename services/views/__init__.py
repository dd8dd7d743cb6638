"""
Per-view projections of the record set, kept in sync by the record bus.
"""

from .record_cache import RecordViewCache
from .analytics_view import AnalyticsView
from .history_view import HistoryView, is_export_artifact
from .risk_advisor_view import RiskAdvisorView

__all__ = [
    'RecordViewCache',
    'AnalyticsView',
    'HistoryView',
    'is_export_artifact',
    'RiskAdvisorView',
]
