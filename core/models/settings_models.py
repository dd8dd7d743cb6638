# core/models/settings_models.py
from typing import Any, Dict, List, Mapping

from pydantic import BaseModel, ConfigDict, Field, field_validator

from core.enums import EquipmentType


class ObjectToggle(BaseModel):
    """Per-equipment detection toggle"""
    id: str
    label: str
    enabled: bool = True
    count: int = 0

    model_config = ConfigDict(extra="ignore")


DEFAULT_OBJECTS: List[ObjectToggle] = [
    ObjectToggle(id="oxygen", label=EquipmentType.OXYGEN_TANK.value),
    ObjectToggle(id="nitrogen", label=EquipmentType.NITROGEN_TANK.value),
    ObjectToggle(id="firstaid", label=EquipmentType.FIRST_AID_BOX.value),
    ObjectToggle(id="firealarm", label=EquipmentType.FIRE_ALARM.value),
    ObjectToggle(id="safetyswitch", label=EquipmentType.SAFETY_SWITCH_PANEL.value),
    ObjectToggle(id="emergencyphone", label=EquipmentType.EMERGENCY_PHONE.value),
    ObjectToggle(id="extinguisher", label=EquipmentType.FIRE_EXTINGUISHER.value),
]


def default_objects() -> List[ObjectToggle]:
    return [o.model_copy() for o in DEFAULT_OBJECTS]


class DetectionSettings(BaseModel):
    """Operator settings, loaded from the backend or the local cache"""
    detection_threshold: float = Field(0.5, alias="detectionThreshold")
    max_objects: int = Field(10, alias="maxObjects")
    notify_email: str = Field("", alias="notifyEmail")
    objects: List[ObjectToggle] = Field(default_factory=default_objects)

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    @field_validator('detection_threshold')
    @classmethod
    def validate_threshold(cls, v):
        if not 0.0 <= v <= 1.0:
            raise ValueError("Threshold must be between 0.0 and 1.0")
        return v

    @field_validator('max_objects')
    @classmethod
    def validate_max_objects(cls, v):
        if v < 0:
            raise ValueError("maxObjects must be >= 0")
        return v

    @field_validator('notify_email', mode='before')
    @classmethod
    def validate_email(cls, v):
        return v or ""

    def with_object_counts(self, counts: Mapping[str, Any]) -> 'DetectionSettings':
        """Overlay per-label counts reported by the backend"""
        objects = []
        for obj in self.objects:
            count = counts.get(obj.label)
            objects.append(obj.model_copy(update={'count': int(count) if isinstance(count, int) else obj.count}))
        return self.model_copy(update={'objects': objects})

    def enabled_labels(self) -> List[str]:
        return [o.label for o in self.objects if o.enabled]

    def to_payload(self) -> Dict[str, Any]:
        return self.model_dump(by_alias=True)
