# services/views/risk_advisor_view.py
import logging
from typing import Optional

from core.enums import RecordEventType
from core.exceptions import EvaluationError
from core.models import ImageRecord, RiskAssessment
from infrastructure.messaging.event_bus import RecordEvent
from .record_cache import RecordViewCache

logger = logging.getLogger(__name__)


class RiskAdvisorView(RecordViewCache):
    """Record cache with a selected record that can be risk-evaluated"""

    name = "risk-advisor"

    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)
        self.selected: Optional[ImageRecord] = None
        self.last_assessment: Optional[RiskAssessment] = None

    def on_seeded(self) -> None:
        # Newest record by default
        if self.selected is None and len(self):
            self.selected = self.snapshot()[0]
        elif self.selected is not None and self.selected.id is not None:
            self.selected = self.get(self.selected.id) or self.selected

    def on_change(self, event: RecordEvent) -> None:
        if event.kind == RecordEventType.CREATED:
            self.selected = self.get(event.record.id) or event.record
        elif self.selected is not None and self.selected.id == event.record.id:
            self.selected = event.record

    def select(self, record_id: str) -> ImageRecord:
        record = self.get(record_id)
        if record is None:
            raise KeyError(f"Unknown record {record_id}")
        self.selected = record
        return record

    async def evaluate(self) -> RiskAssessment:
        """Evaluate the selected record; raises EvaluationError"""
        if self.selected is None:
            raise EvaluationError("No record selected")
        if self.selected.is_provisional:
            raise EvaluationError("Selected record has not been stored yet")

        self.last_assessment = await self.transport.evaluate_risk(self.selected.id)
        return self.last_assessment
