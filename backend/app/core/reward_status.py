# backend/app/core/reward_status.py
"""
Reward generation status registry.

Process-scoped, in-memory progress records keyed by round id, polled by the
client while a reward is being generated. Entries are advisory only and are
dropped after a TTL.

Lifecycle:
- created once at application startup and stored on `app.state`
- handed to routers/services through a FastAPI dependency
- swept lazily on every write and read; `clear()` empties it (shutdown, tests)
"""
import time
from dataclasses import dataclass, asdict
from typing import Callable, Dict, Optional

GENERATING = "generating"
RETRYING = "retrying"
COMPLETED = "completed"
FAILED = "failed"

VALID_STATUSES = (GENERATING, RETRYING, COMPLETED, FAILED)


@dataclass
class RewardStatus:
    """One progress record"""
    status: str
    message: str = ""
    attempt: Optional[int] = None
    max_attempts: Optional[int] = None
    timestamp: float = 0.0

    def to_dict(self) -> dict:
        d = asdict(self)
        return {
            "status": d["status"],
            "message": d["message"],
            "attempt": d["attempt"],
            "maxAttempts": d["max_attempts"],
            "timestamp": int(d["timestamp"] * 1000),
        }


class RewardStatusRegistry:
    """
    In-memory reward status store.

    Data structure:
    - _entries: Dict[round_id, RewardStatus]
    """

    def __init__(self, ttl_seconds: float = 600, clock: Callable[[], float] = time.time):
        self.ttl_seconds = ttl_seconds
        self._clock = clock
        self._entries: Dict[str, RewardStatus] = {}

    def set(
        self,
        round_id: str,
        status: str,
        message: str = "",
        attempt: int | None = None,
        max_attempts: int | None = None,
    ) -> RewardStatus:
        if status not in VALID_STATUSES:
            raise ValueError(f"unknown reward status: {status}")
        self.sweep()
        entry = RewardStatus(
            status=status,
            message=message,
            attempt=attempt,
            max_attempts=max_attempts,
            timestamp=self._clock(),
        )
        self._entries[str(round_id)] = entry
        return entry

    def get(self, round_id: str) -> RewardStatus | None:
        self.sweep()
        return self._entries.get(str(round_id))

    def remove(self, round_id: str) -> None:
        self._entries.pop(str(round_id), None)

    def sweep(self) -> int:
        """Drop expired entries, return how many were removed"""
        cutoff = self._clock() - self.ttl_seconds
        expired = [k for k, v in self._entries.items() if v.timestamp < cutoff]
        for k in expired:
            del self._entries[k]
        return len(expired)

    def clear(self) -> None:
        self._entries.clear()

    def __len__(self) -> int:
        return len(self._entries)
