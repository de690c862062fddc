"""Portfolio value snapshots over time"""

from abc import ABC, abstractmethod
from datetime import datetime, timedelta
from typing import List, Optional
import logging
from pydantic import BaseModel, ConfigDict, Field
from .exceptions import ValidationError
from .models import PositionSet


class HistorySnapshot(BaseModel):
    model_config = ConfigDict(frozen=True)

    taken_at: datetime
    total_value: float = Field(ge=0)
    positions: PositionSet

    @classmethod
    def capture(cls, positions: PositionSet, taken_at: datetime) -> 'HistorySnapshot':
        return cls(taken_at=taken_at, total_value=positions.total_value, positions=positions)


class SnapshotStore(ABC):
    """Abstract snapshot storage interface"""

    @abstractmethod
    def append(self, snapshot: HistorySnapshot) -> None:
        """Store a snapshot; snapshots must arrive in chronological order"""

    @abstractmethod
    def list(self, since: Optional[datetime] = None) -> List[HistorySnapshot]:
        """Snapshots oldest first, optionally only those taken at or after `since`"""

    @abstractmethod
    def latest(self) -> Optional[HistorySnapshot]:
        """Most recent snapshot or None when empty"""

    @abstractmethod
    def clear(self) -> None:
        """Remove all snapshots"""


class InMemorySnapshotStore(SnapshotStore):
    """
    Snapshot store held in process memory.

    Windowing is explicit: at most `max_snapshots` are kept, and snapshots older
    than `max_age_days` relative to the newest one are evicted on append.
    """

    def __init__(self, max_snapshots: Optional[int] = None, max_age_days: Optional[float] = None,
                 logger: Optional[logging.Logger] = None):
        if max_snapshots is not None and max_snapshots < 1:
            raise ValueError("max_snapshots must be at least 1")
        if max_age_days is not None and max_age_days < 0:
            raise ValueError("max_age_days must be non-negative")
        self.logger = logger or logging.getLogger(__name__)
        self.max_snapshots = max_snapshots
        self.max_age_days = max_age_days
        self._snapshots: List[HistorySnapshot] = []

    def append(self, snapshot: HistorySnapshot) -> None:
        latest = self.latest()
        if latest is not None and snapshot.taken_at < latest.taken_at:
            raise ValidationError(
                f"Snapshot at {snapshot.taken_at.isoformat()} is older than the latest "
                f"{latest.taken_at.isoformat()}",
                reason="out_of_order_snapshot",
            )
        self._snapshots.append(snapshot)
        self._evict()

    def list(self, since: Optional[datetime] = None) -> List[HistorySnapshot]:
        if since is None:
            return list(self._snapshots)
        return [s for s in self._snapshots if s.taken_at >= since]

    def latest(self) -> Optional[HistorySnapshot]:
        return self._snapshots[-1] if self._snapshots else None

    def clear(self) -> None:
        self._snapshots.clear()

    def __len__(self) -> int:
        return len(self._snapshots)

    def _evict(self):
        before = len(self._snapshots)
        if self.max_age_days is not None:
            cutoff = self._snapshots[-1].taken_at - timedelta(days=self.max_age_days)
            self._snapshots = [s for s in self._snapshots if s.taken_at >= cutoff]
        if self.max_snapshots is not None and len(self._snapshots) > self.max_snapshots:
            self._snapshots = self._snapshots[-self.max_snapshots:]

        evicted = before - len(self._snapshots)
        if evicted:
            self.logger.debug(f"Evicted {evicted} snapshots outside the history window")
