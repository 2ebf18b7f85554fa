# SPDX-License-Identifier: Apache-2.0
"""
Policy-driven display annotation.

After each sub-step the annotator recomputes the display status of occupied
slots. It never touches occupancy, ownership or write ids, so it cannot
change allocation or eviction decisions.

- PINNED_PREFIX: occupied slots of block 0 are PINNED in every phase; during
  a decode read every other occupied slot is REUSED.
- SLIDING_WINDOW: during a decode read every occupied, non-pinned slot is
  REUSED (attention reads the whole cache).
- RECENT_N: during a decode read only the N most recently written occupied
  slots are REUSED, the rest INACTIVE. Outside decode reads it only maintains
  the ``in_window`` flag.
"""

from dataclasses import replace
from typing import Collection, List, Sequence, Tuple

from ..config import BlockGeometry, EvictionPolicy, Phase
from .eviction import PINNED_BLOCK_INDEX
from .slots import Slot, SlotStatus, block_range


def _pin_prefix_block(slots: List[Slot], geometry: BlockGeometry) -> None:
    for i in block_range(PINNED_BLOCK_INDEX, geometry.block_capacity):
        if i >= len(slots):
            break
        slot = slots[i]
        if not slot.is_free and slot.status != SlotStatus.PINNED:
            slots[i] = replace(slot, status=SlotStatus.PINNED)


def _mark_reused(slots: List[Slot]) -> None:
    for i, slot in enumerate(slots):
        if slot.is_free or slot.status == SlotStatus.PINNED:
            continue
        if slot.status != SlotStatus.REUSED:
            slots[i] = replace(slot, status=SlotStatus.REUSED)


def _apply_recent_window(
    slots: List[Slot], window: int, written: Collection[int]
) -> None:
    occupied = [i for i, slot in enumerate(slots) if not slot.is_free]
    # Ascending write id; slot index keeps the order total
    occupied.sort(key=lambda i: (slots[i].write_id, i))
    recent_count = min(window, len(occupied))
    recent = set(occupied[len(occupied) - recent_count:])

    for i in occupied:
        slot = slots[i]
        if i in written and slot.status == SlotStatus.NEW:
            slots[i] = replace(slot, in_window=True)
        elif i in recent:
            slots[i] = replace(slot, status=SlotStatus.REUSED, in_window=True)
        else:
            slots[i] = replace(slot, status=SlotStatus.INACTIVE, in_window=False)


def annotate(
    slots: Sequence[Slot],
    policy: EvictionPolicy,
    phase: Phase,
    recent_n_window: int,
    geometry: BlockGeometry,
    written: Collection[int] = (),
) -> Tuple[Slot, ...]:
    """
    Recompute display statuses for one sub-step.

    Args:
        slots: Current slots
        policy: Active eviction policy
        phase: Sub-step being annotated
        recent_n_window: Window size for RECENT_N
        geometry: Cache geometry
        written: Slot indexes written during the current tick. A NEW slot in
            this set is never downgraded within the tick.

    Returns:
        New slot tuple with updated statuses.
    """
    result = list(slots)
    is_read = phase == Phase.DECODE_READ

    if policy == EvictionPolicy.PINNED_PREFIX:
        _pin_prefix_block(result, geometry)
        if is_read:
            _mark_reused(result)

    elif policy == EvictionPolicy.SLIDING_WINDOW:
        if is_read:
            _mark_reused(result)

    elif policy == EvictionPolicy.RECENT_N:
        if is_read:
            _apply_recent_window(result, recent_n_window, written)
        elif phase == Phase.PREFILL:
            for i, slot in enumerate(result):
                if not slot.is_free and not slot.in_window:
                    result[i] = replace(slot, in_window=True)
        else:
            for i in written:
                if not result[i].is_free:
                    result[i] = replace(result[i], in_window=True)

    return tuple(result)
