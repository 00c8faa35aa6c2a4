"""
Admission gate interface.
A gate may turn requests away before they reach the database; the
database conditional update stays authoritative either way.
"""

from abc import ABC, abstractmethod


class AdmissionStrategy(ABC):
    """
    Interface for admission gates.

    Implementations:
    - OptimisticAdmission: No pre-check, rely on the DB conditional update
    - RedisAdmission: Fail-fast slot counter in Redis before the DB
    """

    # whether the gate keeps its own copy of remaining slots
    stateful: bool = False

    @abstractmethod
    async def admit(self, event_id: int, slots: int = 1) -> bool:
        """
        Check whether an admission request should proceed to the database.

        Args:
            event_id: Event being registered for
            slots: Number of participants to admit together

        Returns:
            True if admitted (proceed to DB)
            False if rejected (fail fast)
        """
        pass

    @abstractmethod
    async def sync(self, event_id: int, remaining: int):
        """
        Align the gate with the database after a counter change.

        Args:
            event_id: Event ID
            remaining: Slots left according to the DB
        """
        pass
