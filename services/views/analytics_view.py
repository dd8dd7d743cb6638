# services/views/analytics_view.py
import logging
from datetime import datetime, tzinfo
from typing import Optional

from app.settings import settings
from core.exceptions import TransportError
from core.models import DashboardSnapshot
from services.analytics.aggregation import AnalyticsSummary, build_summary
from shared.decorators.error_handling import handle_errors
from .record_cache import RecordViewCache

logger = logging.getLogger(__name__)


class AnalyticsView(RecordViewCache):
    """Record cache plus the server dashboard rollup"""

    name = "analytics"

    def __init__(self, *args, months: Optional[int] = None, **kwargs):
        super().__init__(*args, **kwargs)
        self.months = months or settings.analytics_months
        self.dashboard: Optional[DashboardSnapshot] = None

    async def refresh(self) -> bool:
        self.dashboard = await self._fetch_dashboard()
        return await super().refresh()

    @handle_errors(default_return=None, handled_exceptions=[TransportError])
    async def _fetch_dashboard(self) -> Optional[DashboardSnapshot]:
        return await self.transport.get_dashboard()

    def summary(self, now: Optional[datetime] = None, tz: Optional[tzinfo] = None) -> AnalyticsSummary:
        """Recomputed from scratch on every call"""
        return build_summary(self.snapshot(), self.dashboard, months=self.months, now=now, tz=tz)
