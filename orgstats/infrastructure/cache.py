import logging
import threading
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Callable, Generic, Optional, Sequence, Tuple, TypeVar, Union

from orgstats.domain.models import ContributorStat, RepoStat, StatKind

logger = logging.getLogger(__name__)

# Fixed freshness window for both snapshots
CACHE_DURATION = timedelta(minutes=15)

T = TypeVar("T")
Clock = Callable[[], datetime]


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class CacheEntry(Generic[T]):
    payload: Tuple[T, ...]
    timestamp: datetime


class CacheSlot(Generic[T]):
    """
    Holds the current snapshot of one statistic kind.

    Entries are immutable and swapped under the slot's own lock, so a reader
    always gets a payload from exactly one completed write.
    """

    def __init__(self, kind: StatKind, ttl: timedelta, clock: Clock):
        self.kind = kind
        self._ttl = ttl
        self._clock = clock
        self._lock = threading.Lock()
        self._entry: Optional[CacheEntry[T]] = None

    def get(self) -> Tuple[Optional[Tuple[T, ...]], bool]:
        with self._lock:
            entry = self._entry
        if entry is None:
            return None, False
        return entry.payload, True

    def put(self, payload: Sequence[T]) -> CacheEntry[T]:
        entry = CacheEntry(payload=tuple(payload), timestamp=self._clock())
        with self._lock:
            self._entry = entry
        logger.debug(f"Cached {len(entry.payload)} {self.kind.value} at {entry.timestamp.isoformat()}.")
        return entry

    def is_stale(self) -> bool:
        with self._lock:
            entry = self._entry
        if entry is None:
            return True
        return self._clock() - entry.timestamp > self._ttl

    @property
    def timestamp(self) -> Optional[datetime]:
        with self._lock:
            return self._entry.timestamp if self._entry is not None else None


class TTLCache:
    """
    Two independent, time-bounded snapshots: repository stats and contributor stats.

    Each kind has its own slot and lock, so writing one kind never waits on the other.
    There is no eviction; a snapshot is only ever replaced by a newer one.
    """

    def __init__(self, ttl: timedelta = CACHE_DURATION, clock: Clock = utcnow):
        self.ttl = ttl
        self.repositories: CacheSlot[RepoStat] = CacheSlot(StatKind.REPOSITORIES, ttl, clock)
        self.contributors: CacheSlot[ContributorStat] = CacheSlot(StatKind.CONTRIBUTORS, ttl, clock)

    def slot(self, kind: StatKind) -> Union[CacheSlot[RepoStat], CacheSlot[ContributorStat]]:
        if kind is StatKind.REPOSITORIES:
            return self.repositories
        if kind is StatKind.CONTRIBUTORS:
            return self.contributors
        raise ValueError(f"Unknown statistic kind: {kind!r}")

    def get(self, kind: StatKind):
        """Returns (payload, present) for the kind without touching the network."""
        return self.slot(kind).get()

    def put(self, kind: StatKind, payload: Sequence) -> CacheEntry:
        """Replaces the kind's payload and stamps it with the current time."""
        return self.slot(kind).put(payload)

    def is_stale(self, kind: StatKind) -> bool:
        """True when nothing has been stored yet or the stored snapshot is older than the TTL."""
        return self.slot(kind).is_stale()
