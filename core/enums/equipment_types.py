"""
Equipment taxonomy for the safety detection client.
"""

from enum import Enum


class EquipmentType(str, Enum):
    """Safety equipment categories the detector is trained on"""
    OXYGEN_TANK = "OxygenTank"
    NITROGEN_TANK = "NitrogenTank"
    FIRST_AID_BOX = "FirstAidBox"
    FIRE_ALARM = "FireAlarm"
    SAFETY_SWITCH_PANEL = "SafetySwitchPanel"
    EMERGENCY_PHONE = "EmergencyPhone"
    FIRE_EXTINGUISHER = "FireExtinguisher"

    @classmethod
    def is_known(cls, label: str) -> bool:
        return label in cls._value2member_map_


class BoxUnits(str, Enum):
    """Units of a bounding box"""
    PIXELS = "pixels"          # stored form
    NORMALIZED = "normalized"  # 0-1, live preview only
