# SPDX-License-Identifier: Apache-2.0
"""
Slot and block model for the simulated paged KV cache.

The cache is a flat sequence of ``block_count * block_capacity`` slots.
Blocks are not stored: a block is the slot range
``[b * block_capacity, (b + 1) * block_capacity)`` and every block property
is computed by scanning that range.

All functions here are total and side-effect free. Lookups that can fail
return a sentinel (``NO_SLOT`` / ``-1`` / ``None``) instead of raising.
"""

from dataclasses import dataclass, replace
from enum import Enum
from typing import Optional, Sequence, Tuple

from ..config import BlockGeometry

# Sentinel returned when no slot qualifies
NO_SLOT = -1

# write_id carried by free slots
NO_WRITE_ID = -1


class SlotStatus(str, Enum):
    """
    Status of one cache slot.

    Only the free / non-free split (EMPTY, EVICTED vs the rest) affects
    allocation and eviction. NEW, REUSED, PINNED and INACTIVE are display
    sub-states assigned by the annotator.
    """

    EMPTY = "empty"
    NEW = "new"
    REUSED = "reused"
    PINNED = "pinned"
    EVICTED = "evicted"
    INACTIVE = "inactive"


FREE_STATUSES = frozenset({SlotStatus.EMPTY, SlotStatus.EVICTED})


@dataclass(frozen=True)
class Slot:
    """
    One KV cache storage unit.

    Attributes:
        token: Opaque token label ("" for never-written slots)
        status: Current SlotStatus
        owner_id: Owning sequence (continuous batching only)
        owner_position: Index of the token within its owning sequence
        write_id: Global write sequence id, NO_WRITE_ID for free slots
        in_window: Recent-N display metadata (slot is inside the read window)
    """

    token: str = ""
    status: SlotStatus = SlotStatus.EMPTY
    owner_id: Optional[int] = None
    owner_position: Optional[int] = None
    write_id: int = NO_WRITE_ID
    in_window: bool = False

    @property
    def is_free(self) -> bool:
        return self.status in FREE_STATUSES

    def evicted(self) -> "Slot":
        """Return the evicted form of this slot (label kept for display)."""
        return replace(
            self, status=SlotStatus.EVICTED, write_id=NO_WRITE_ID, in_window=False
        )

    def to_dict(self) -> dict:
        return {
            "token": self.token,
            "status": self.status.value,
            "owner_id": self.owner_id,
            "owner_position": self.owner_position,
            "write_id": self.write_id,
            "in_window": self.in_window,
        }


def empty_slots(geometry: BlockGeometry) -> Tuple[Slot, ...]:
    """Create a fresh cache with every slot EMPTY."""
    return tuple(Slot() for _ in range(geometry.total_slots))


def is_free(slot: Slot) -> bool:
    """A slot is free when it is EMPTY or EVICTED."""
    return slot.status in FREE_STATUSES


def block_range(block_index: int, block_capacity: int) -> range:
    """Slot indexes covered by a block."""
    start = block_index * block_capacity
    return range(start, start + block_capacity)


def block_occupied_count(
    slots: Sequence[Slot], block_index: int, block_capacity: int
) -> int:
    """Number of non-free slots in a block."""
    return sum(
        1 for i in block_range(block_index, block_capacity) if not is_free(slots[i])
    )


def block_has_occupied(
    slots: Sequence[Slot], block_index: int, block_capacity: int
) -> bool:
    return any(
        not is_free(slots[i]) for i in block_range(block_index, block_capacity)
    )


def block_is_full(
    slots: Sequence[Slot], block_index: int, block_capacity: int
) -> bool:
    return block_occupied_count(slots, block_index, block_capacity) >= block_capacity


def block_is_completely_free(
    slots: Sequence[Slot], block_index: int, block_capacity: int
) -> bool:
    return not block_has_occupied(slots, block_index, block_capacity)


def block_last_write_id(
    slots: Sequence[Slot], block_index: int, block_capacity: int
) -> int:
    """
    Most recent write id among a block's occupied slots.

    Returns:
        The maximum write_id, or -1 if the block holds no occupied slot.
    """
    last = NO_WRITE_ID
    for i in block_range(block_index, block_capacity):
        slot = slots[i]
        if not is_free(slot) and slot.write_id > last:
            last = slot.write_id
    return last


def first_free_slot_in_block(
    slots: Sequence[Slot], block_index: int, block_capacity: int
) -> int:
    """Lowest-index free slot in a block, or NO_SLOT."""
    for i in block_range(block_index, block_capacity):
        if is_free(slots[i]):
            return i
    return NO_SLOT


def block_sole_owner(
    slots: Sequence[Slot], block_index: int, block_capacity: int
) -> Optional[int]:
    """
    Owner of a block in continuous-batching mode.

    Returns:
        The single owner_id shared by every occupied, owned slot in the block;
        None if the block has no owned occupied slot or mixes owners.
    """
    owner = None
    for i in block_range(block_index, block_capacity):
        slot = slots[i]
        if is_free(slot) or slot.owner_id is None:
            continue
        if owner is None:
            owner = slot.owner_id
        elif owner != slot.owner_id:
            return None
    return owner


def occupied_count(slots: Sequence[Slot]) -> int:
    """Number of non-free slots in the whole cache."""
    return sum(1 for slot in slots if not is_free(slot))
