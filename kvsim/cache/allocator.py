# SPDX-License-Identifier: Apache-2.0
"""
Write-slot allocator.

Finds the slot where the next token's KV entry is written. Three variants:

- ``find_write_slot``: single-sequence mode. Packs partially used blocks
  before opening a new one, like a real paged allocator.
- ``find_write_slot_prefill``: continuous batching, prefill. Blocks are
  prompt-aligned: a sequence only fills blocks it solely owns or fresh ones.
- ``find_write_slot_decode``: continuous batching, decode. A sequence only
  appends to its tail block (its most recently written block) or a fresh one.

Each returns ``NO_SLOT`` when nothing qualifies; the caller must evict and
retry.
"""

from typing import Optional, Sequence

from ..config import BlockGeometry
from .slots import (
    NO_SLOT,
    NO_WRITE_ID,
    Slot,
    block_has_occupied,
    block_is_completely_free,
    block_last_write_id,
    block_sole_owner,
    first_free_slot_in_block,
)


def first_completely_free_block(slots: Sequence[Slot], geometry: BlockGeometry) -> int:
    """Index of the first block with no occupied slot, or NO_SLOT."""
    for b in range(geometry.block_count):
        if block_is_completely_free(slots, b, geometry.block_capacity):
            return b
    return NO_SLOT


def _allocate_fresh_block(slots: Sequence[Slot], geometry: BlockGeometry) -> int:
    block = first_completely_free_block(slots, geometry)
    if block == NO_SLOT:
        return NO_SLOT
    return block * geometry.block_capacity


def find_write_slot(slots: Sequence[Slot], geometry: BlockGeometry) -> int:
    """
    Find the write slot for single-sequence mode.

    1. First occupied block (index order) that still has a free slot.
    2. Else the first slot of the first completely free block.
    3. Else NO_SLOT.
    """
    for b in range(geometry.block_count):
        if not block_has_occupied(slots, b, geometry.block_capacity):
            continue
        slot = first_free_slot_in_block(slots, b, geometry.block_capacity)
        if slot != NO_SLOT:
            return slot
    return _allocate_fresh_block(slots, geometry)


def find_write_slot_prefill(
    slots: Sequence[Slot], geometry: BlockGeometry, owner_id: int
) -> int:
    """
    Find the prefill write slot for one sequence under continuous batching.

    Blocks owned by other sequences are never considered, even when they
    have free slots.
    """
    for b in range(geometry.block_count):
        if block_sole_owner(slots, b, geometry.block_capacity) != owner_id:
            continue
        slot = first_free_slot_in_block(slots, b, geometry.block_capacity)
        if slot != NO_SLOT:
            return slot
    return _allocate_fresh_block(slots, geometry)


def find_tail_block(
    slots: Sequence[Slot], geometry: BlockGeometry, owner_id: int
) -> Optional[int]:
    """
    Tail block of a sequence: the owned block with the newest write id.

    Recency is by write id, not by block index; after wrap-around a
    low-index block can hold newer data than a high-index one.

    Returns:
        Block index, or None if the sequence owns no block.
    """
    tail = None
    tail_last = NO_WRITE_ID
    for b in range(geometry.block_count):
        if block_sole_owner(slots, b, geometry.block_capacity) != owner_id:
            continue
        last = block_last_write_id(slots, b, geometry.block_capacity)
        if last > tail_last:
            tail_last = last
            tail = b
    return tail


def find_write_slot_decode(
    slots: Sequence[Slot], geometry: BlockGeometry, owner_id: int
) -> int:
    """Find the decode write slot for one sequence under continuous batching."""
    tail = find_tail_block(slots, geometry, owner_id)
    if tail is not None:
        slot = first_free_slot_in_block(slots, tail, geometry.block_capacity)
        if slot != NO_SLOT:
            return slot
    return _allocate_fresh_block(slots, geometry)
