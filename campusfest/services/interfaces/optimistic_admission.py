"""
Optimistic admission strategy - no pre-check.
Relies entirely on the database conditional update.
"""

from campusfest.services.interfaces.admission import AdmissionStrategy


class OptimisticAdmission(AdmissionStrategy):
    """
    No admission gate - always admit.

    Use when:
    - Ordinary campus events, tens of concurrent registrations
    - No Redis available
    """

    async def admit(self, event_id: int, slots: int = 1) -> bool:
        return True

    async def sync(self, event_id: int, remaining: int):
        pass
