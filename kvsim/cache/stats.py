# SPDX-License-Identifier: Apache-2.0
"""
Cache statistics for kvsim.

This module provides the counters reported alongside a simulation snapshot:
lifetime write/eviction counters and a per-status breakdown of the slots.
"""

from dataclasses import asdict, dataclass
from typing import Any, Dict, Sequence

from .slots import Slot, SlotStatus


@dataclass
class BaseCacheStats:
    """
    Lifetime counters of a simulation run.

    writes: Successful writes (equals the write clock)
    evictions: Blocks evicted
    dropped_writes: Writes dropped because nothing could be evicted
    """

    writes: int = 0
    evictions: int = 0
    dropped_writes: int = 0

    @property
    def attempted_writes(self) -> int:
        return self.writes + self.dropped_writes

    @property
    def drop_rate(self) -> float:
        """
        Fraction of attempted writes that were dropped.

        Returns:
            Drop rate as a float between 0.0 and 1.0.
        """
        total = self.attempted_writes
        if total == 0:
            return 0.0
        return self.dropped_writes / total

    def to_dict(self) -> Dict[str, Any]:
        """
        Convert stats to dictionary.

        Returns:
            Dictionary with all stats fields.
        """
        d = asdict(self)
        d["attempted_writes"] = self.attempted_writes
        d["drop_rate"] = self.drop_rate
        return d


@dataclass
class SlotStats(BaseCacheStats):
    """
    Slot-level breakdown of the cache.

    Extends base stats with counts per display status.
    """

    total_slots: int = 0
    new: int = 0
    reused: int = 0
    inactive: int = 0
    pinned: int = 0
    empty: int = 0
    evicted: int = 0

    @property
    def used(self) -> int:
        return self.new + self.reused + self.inactive + self.pinned

    @property
    def free(self) -> int:
        return self.empty + self.evicted

    @property
    def utilization(self) -> float:
        """
        Calculate slot utilization rate.

        Returns:
            Utilization as a float between 0.0 and 1.0.
        """
        if self.total_slots == 0:
            return 0.0
        return self.used / self.total_slots

    def to_dict(self) -> Dict[str, Any]:
        """Convert stats to dictionary."""
        d = super().to_dict()
        d["used"] = self.used
        d["free"] = self.free
        d["utilization"] = self.utilization
        return d


_STATUS_FIELDS = {
    SlotStatus.NEW: "new",
    SlotStatus.REUSED: "reused",
    SlotStatus.INACTIVE: "inactive",
    SlotStatus.PINNED: "pinned",
    SlotStatus.EMPTY: "empty",
    SlotStatus.EVICTED: "evicted",
}


def compute_slot_stats(
    slots: Sequence[Slot],
    writes: int = 0,
    evictions: int = 0,
    dropped_writes: int = 0,
) -> SlotStats:
    """Count slots per status and attach the lifetime counters."""
    stats = SlotStats(
        writes=writes,
        evictions=evictions,
        dropped_writes=dropped_writes,
        total_slots=len(slots),
    )
    for slot in slots:
        name = _STATUS_FIELDS[slot.status]
        setattr(stats, name, getattr(stats, name) + 1)
    return stats
