"""
Redis admission gate for flash-crowd events.
Implements AdmissionStrategy using a Redis counter of remaining slots.

Circuit Breaker Pattern:
  On Redis failure, the gate "fails open" (admits the request).
  The database conditional update remains authoritative, so a Redis outage
  degrades throughput protection, never correctness.
"""

from campusfest.services.interfaces.admission import AdmissionStrategy
from campusfest.infrastructure.redis_client import get_redis
from campusfest.core.logging import get_logger
from campusfest.core.metrics import redis_connection_errors, redis_circuit_breaker_open

logger = get_logger(__name__)

# KEYS[1] = remaining-slots counter, ARGV[1] = slots requested.
# Unknown counter -> -1 (let the DB decide); not enough -> 0; taken -> 1.
ADMISSION_SCRIPT = """
local remaining = redis.call('GET', KEYS[1])
if not remaining then
    return -1
end
local wanted = tonumber(ARGV[1])
if tonumber(remaining) < wanted then
    return 0
end
redis.call('DECRBY', KEYS[1], wanted)
return 1
"""


def _slots_key(event_id: int) -> str:
    return f"admission:event:{event_id}:remaining"


class RedisAdmission(AdmissionStrategy):
    """
    Redis-based admission gate.

    Strategy: fail fast at the Redis counter before touching the event row.

    Use when:
    - Hundreds of participants hit registration the moment it opens
    - Need to keep lock contention on the event row low
    """

    stateful = True

    async def admit(self, event_id: int, slots: int = 1) -> bool:
        try:
            client = await get_redis()
            if client is None:
                return True
            result = await client.eval(ADMISSION_SCRIPT, 1, _slots_key(event_id), slots)
            redis_circuit_breaker_open.set(0)
            return int(result) != 0
        except Exception as e:
            # Circuit breaker: on Redis failure, fail open
            redis_connection_errors.inc()
            redis_circuit_breaker_open.set(1)
            logger.warning("admission_gate_unavailable", event_id=event_id, error=str(e))
            return True

    async def sync(self, event_id: int, remaining: int):
        try:
            client = await get_redis()
            if client is not None:
                await client.set(_slots_key(event_id), max(remaining, 0))
        except Exception as e:
            redis_connection_errors.inc()
            logger.warning("admission_gate_sync_failed", event_id=event_id, error=str(e))
