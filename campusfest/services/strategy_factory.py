"""
Admission strategy factory.
Configures which admission gate to use.
"""

from typing import Optional

from campusfest.services.interfaces.admission import AdmissionStrategy
from campusfest.services.interfaces.optimistic_admission import OptimisticAdmission
from campusfest.services.admission_gate import RedisAdmission
from campusfest.core.config import get_settings


def get_admission_strategy() -> AdmissionStrategy:
    """
    Build the configured admission gate.

    ADMISSION_STRATEGY=redis  -> RedisAdmission (flash crowds)
    anything else             -> OptimisticAdmission
    """
    if get_settings().ADMISSION_STRATEGY == "redis":
        return RedisAdmission()
    return OptimisticAdmission()


# Singleton instance
_strategy: Optional[AdmissionStrategy] = None


def get_admission() -> AdmissionStrategy:
    """Get admission strategy singleton."""
    global _strategy
    if _strategy is None:
        _strategy = get_admission_strategy()
    return _strategy
