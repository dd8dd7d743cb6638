# core/models/risk_models.py
from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping, Optional

from core.enums import RiskCategory
from .detection_models import is_number


@dataclass(frozen=True)
class RiskAction:
    title: str
    description: str = ""


@dataclass(frozen=True)
class RiskAssessment:
    """Result of POST /api/risk/evaluate"""
    image_id: str
    category: RiskCategory
    score: Optional[float] = None
    explanation: str = ""
    actions: List[RiskAction] = field(default_factory=list, hash=False)
    raw_category: str = ""

    @classmethod
    def from_dict(cls, image_id: str, data: Mapping[str, Any]) -> 'RiskAssessment':
        actions = []
        for item in data.get('actions') or []:
            if isinstance(item, Mapping) and item.get('title'):
                actions.append(RiskAction(title=str(item['title']), description=str(item.get('description') or "")))

        score = data.get('score')
        category = data.get('category')
        return cls(
            image_id=image_id,
            category=RiskCategory.parse(category),
            score=float(score) if is_number(score) else None,
            explanation=str(data.get('explanation') or ""),
            actions=actions,
            raw_category=str(category or ""),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            'imageId': self.image_id,
            'category': self.raw_category or self.category.value,
            'score': self.score,
            'explanation': self.explanation,
            'actions': [{'title': a.title, 'description': a.description} for a in self.actions],
        }
