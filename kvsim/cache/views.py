# SPDX-License-Identifier: Apache-2.0
"""
Read-only views derived from the cache contents.

Nothing here is stored in the simulation state; every view is recomputed by
scanning the slots.
"""

from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Sequence

from ..config import BlockGeometry
from .slots import (
    Slot,
    block_is_completely_free,
    block_is_full,
    block_last_write_id,
    block_occupied_count,
    block_sole_owner,
)


@dataclass(frozen=True)
class BlockView:
    """Summary of one block."""

    index: int
    occupied: int
    capacity: int
    owner_id: Optional[int]
    last_write_id: int

    @property
    def is_full(self) -> bool:
        return self.occupied >= self.capacity

    @property
    def is_free(self) -> bool:
        return self.occupied == 0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "index": self.index,
            "occupied": self.occupied,
            "capacity": self.capacity,
            "owner_id": self.owner_id,
            "last_write_id": self.last_write_id,
            "is_full": self.is_full,
            "is_free": self.is_free,
        }


def free_blocks(slots: Sequence[Slot], geometry: BlockGeometry) -> List[int]:
    """Indexes of completely free blocks."""
    return [
        b
        for b in range(geometry.block_count)
        if block_is_completely_free(slots, b, geometry.block_capacity)
    ]


def full_blocks(slots: Sequence[Slot], geometry: BlockGeometry) -> List[int]:
    return [
        b
        for b in range(geometry.block_count)
        if block_is_full(slots, b, geometry.block_capacity)
    ]


def block_ownership(
    slots: Sequence[Slot], geometry: BlockGeometry, sequence_count: int
) -> Dict[int, List[int]]:
    """
    Blocks owned by each sequence.

    Returns:
        Mapping of owner_id -> block indexes, with an entry (possibly empty)
        for every sequence in ``range(sequence_count)``.
    """
    ownership: Dict[int, List[int]] = {owner: [] for owner in range(sequence_count)}
    for b in range(geometry.block_count):
        owner = block_sole_owner(slots, b, geometry.block_capacity)
        if owner is not None:
            ownership.setdefault(owner, []).append(b)
    return ownership


def block_views(slots: Sequence[Slot], geometry: BlockGeometry) -> List[BlockView]:
    return [
        BlockView(
            index=b,
            occupied=block_occupied_count(slots, b, geometry.block_capacity),
            capacity=geometry.block_capacity,
            owner_id=block_sole_owner(slots, b, geometry.block_capacity),
            last_write_id=block_last_write_id(slots, b, geometry.block_capacity),
        )
        for b in range(geometry.block_count)
    ]


def owner_label(owner_id: Optional[int]) -> str:
    """Display label of a sequence ("P1" for owner 0), "" when unowned."""
    if owner_id is None:
        return ""
    return f"P{owner_id + 1}"


def slot_labels(slots: Sequence[Slot]) -> List[Dict[str, Any]]:
    """Per-slot display status and owner label."""
    return [
        {
            "index": i,
            "token": slot.token,
            "status": slot.status.value,
            "owner": owner_label(slot.owner_id),
        }
        for i, slot in enumerate(slots)
    ]
