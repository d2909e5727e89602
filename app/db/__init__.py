from .models import (
    Base,
    MedicationLog,
    MedicationSchedule,
    Medicine,
    User,
)

__all__ = [
    "Base",
    "MedicationLog",
    "MedicationSchedule",
    "Medicine",
    "User",
]
