"""
Reservation Table - short-lived exclusive holds on slots.

Design:
- One in-process dict keyed by slot key, guarded by a single lock
- The lock is held only for the in-memory state transition, never across I/O
- Expiry is lazy: any reservation with expires_at <= now is treated as absent
- purge_expired() removes dead entries; the maintenance job calls it periodically

Usage:
    store = ReservationStore(default_ttl_seconds=300)

    if store.acquire("2025-05-05T17:00:00Z", "caller-1"):
        ...
        store.confirm("2025-05-05T17:00:00Z", "caller-1")
"""

import threading
from collections.abc import Callable
from dataclasses import dataclass
from datetime import UTC, datetime, timedelta

from app.infrastructure.observability.logging import get_logger

logger = get_logger(__name__)

DEFAULT_TTL_SECONDS = 300


def _utcnow() -> datetime:
    return datetime.now(UTC)


@dataclass(frozen=True)
class Reservation:
    slot_key: str
    holder_id: str
    created_at: datetime
    expires_at: datetime

    def is_live(self, now: datetime) -> bool:
        return now < self.expires_at

    def seconds_remaining(self, now: datetime) -> int:
        return max(0, int((self.expires_at - now).total_seconds()))

    def to_dict(self, now: datetime) -> dict:
        return {
            "slotKey": self.slot_key,
            "holderId": self.holder_id,
            "createdAt": self.created_at.isoformat(),
            "expiresAt": self.expires_at.isoformat(),
            "secondsRemaining": self.seconds_remaining(now),
        }


class ReservationStore:
    """
    Mutual exclusion keyed by slot.

    acquire/confirm/release are linearizable per key: two holders racing
    for the same key always observe exactly one winner.

    Thread Safety:
        A threading.Lock guards the table, so handlers running on the event
        loop and in the threadpool share the same guarantees.
    """

    def __init__(
        self,
        default_ttl_seconds: int = DEFAULT_TTL_SECONDS,
        clock: Callable[[], datetime] = _utcnow,
    ):
        if default_ttl_seconds <= 0:
            raise ValueError("Reservation TTL must be positive")
        self.default_ttl_seconds = default_ttl_seconds
        self._clock = clock
        self._lock = threading.Lock()
        self._reservations: dict[str, Reservation] = {}

    def now(self) -> datetime:
        return self._clock()

    def _live(self, slot_key: str, now: datetime) -> Reservation | None:
        """Live reservation for a key; drops an expired entry in passing. Lock must be held."""
        reservation = self._reservations.get(slot_key)
        if reservation is None:
            return None
        if not reservation.is_live(now):
            del self._reservations[slot_key]
            return None
        return reservation

    def acquire(self, slot_key: str, holder_id: str, ttl_seconds: int | None = None) -> bool:
        """
        Take or refresh the hold on a slot.

        Succeeds when the slot is free or already held by the same holder
        (the expiry is then extended). Fails when another holder's
        reservation is still live.
        """
        if not slot_key or not holder_id:
            raise ValueError("slot_key and holder_id are required")
        ttl = ttl_seconds if ttl_seconds is not None else self.default_ttl_seconds
        if ttl <= 0:
            raise ValueError("Reservation TTL must be positive")

        with self._lock:
            now = self._clock()
            current = self._live(slot_key, now)

            if current is not None and current.holder_id != holder_id:
                logger.info(
                    "Slot already reserved",
                    slot_key=slot_key,
                    holder_id=holder_id,
                    current_holder=current.holder_id,
                )
                return False

            created_at = current.created_at if current is not None else now
            self._reservations[slot_key] = Reservation(
                slot_key=slot_key,
                holder_id=holder_id,
                created_at=created_at,
                expires_at=now + timedelta(seconds=ttl),
            )

        logger.info(
            "Slot reserved",
            slot_key=slot_key,
            holder_id=holder_id,
            refreshed=current is not None,
            ttl_seconds=ttl,
        )
        return True

    def confirm(self, slot_key: str, holder_id: str) -> bool:
        """
        Consume a live reservation held by holder_id.

        On success the reservation is removed, so it cannot be confirmed twice.
        """
        with self._lock:
            current = self._live(slot_key, self._clock())
            if current is None or current.holder_id != holder_id:
                confirmed = False
            else:
                del self._reservations[slot_key]
                confirmed = True

        if confirmed:
            logger.info("Reservation confirmed", slot_key=slot_key, holder_id=holder_id)
        else:
            logger.warning("Reservation not confirmable", slot_key=slot_key, holder_id=holder_id)
        return confirmed

    def release(self, slot_key: str, holder_id: str) -> bool:
        """Drop the reservation iff holder_id holds it. Other holders are never affected."""
        with self._lock:
            current = self._live(slot_key, self._clock())
            if current is None or current.holder_id != holder_id:
                released = False
            else:
                del self._reservations[slot_key]
                released = True

        logger.info("Reservation release", slot_key=slot_key, holder_id=holder_id, released=released)
        return released

    def get(self, slot_key: str) -> Reservation | None:
        """Live reservation for a slot, if any."""
        with self._lock:
            return self._live(slot_key, self._clock())

    def is_held(self, slot_key: str, exclude_holder: str | None = None) -> bool:
        """True when a live reservation exists for the key and belongs to someone else."""
        reservation = self.get(slot_key)
        if reservation is None:
            return False
        return exclude_holder is None or reservation.holder_id != exclude_holder

    def held_keys(self, exclude_holder: str | None = None) -> set[str]:
        """Keys of all live reservations, optionally excluding one holder's."""
        with self._lock:
            now = self._clock()
            return {
                key
                for key, reservation in self._reservations.items()
                if reservation.is_live(now)
                and (exclude_holder is None or reservation.holder_id != exclude_holder)
            }

    def purge_expired(self) -> int:
        """Remove expired entries. Returns the number removed."""
        with self._lock:
            now = self._clock()
            expired = [key for key, res in self._reservations.items() if not res.is_live(now)]
            for key in expired:
                del self._reservations[key]

        if expired:
            logger.info("Expired reservations purged", count=len(expired))
        return len(expired)

    def clear(self) -> None:
        with self._lock:
            self._reservations.clear()

    def __len__(self) -> int:
        with self._lock:
            return len(self._reservations)
