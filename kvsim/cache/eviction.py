# SPDX-License-Identifier: Apache-2.0
"""
Block eviction policies.

Eviction runs only after the allocator reports NO_SLOT. Every policy picks
exactly one *full* block and evicts all of its slots; partially filled blocks
are never chosen. The victim is the eligible block with the smallest last
write id (the most stale), ties going to the lowest block index.

Policies differ only in eligibility:
- SLIDING_WINDOW: every full block
- PINNED_PREFIX: every full block except block 0
- RECENT_N: same as SLIDING_WINDOW; Recent-N only changes display labels

Eligibility looks at free/non-free status and write ids only, never at the
display sub-states (REUSED, INACTIVE, PINNED...).
"""

import logging
from dataclasses import dataclass
from typing import Callable, Dict, Optional, Sequence, Tuple

from ..config import BlockGeometry, EvictionPolicy
from .slots import (
    NO_SLOT,
    Slot,
    block_is_full,
    block_last_write_id,
    block_range,
)

logger = logging.getLogger(__name__)

# Block index that the pinned-prefix policy never evicts
PINNED_BLOCK_INDEX = 0


@dataclass(frozen=True)
class EvictionResult:
    """
    Outcome of one eviction attempt.

    Attributes:
        slots: Slot sequence after eviction (unchanged if nothing was evicted)
        victim: Evicted block index, or NO_SLOT when no block was eligible
    """

    slots: Tuple[Slot, ...]
    victim: int = NO_SLOT

    @property
    def evicted(self) -> bool:
        return self.victim != NO_SLOT


def select_victim_block(
    slots: Sequence[Slot],
    geometry: BlockGeometry,
    skip_block: Optional[int] = None,
) -> int:
    """
    Pick the stalest full block.

    Args:
        slots: Current slots
        geometry: Cache geometry
        skip_block: Block index excluded from eligibility, if any

    Returns:
        Victim block index, or NO_SLOT if no block is eligible.
    """
    victim = NO_SLOT
    victim_last = None
    for b in range(geometry.block_count):
        if b == skip_block:
            continue
        if not block_is_full(slots, b, geometry.block_capacity):
            continue
        last = block_last_write_id(slots, b, geometry.block_capacity)
        # Strict comparison keeps the lowest index on ties
        if victim_last is None or last < victim_last:
            victim = b
            victim_last = last
    return victim


def evict_block(
    slots: Sequence[Slot], geometry: BlockGeometry, block_index: int
) -> Tuple[Slot, ...]:
    """Evict every occupied slot in a block."""
    result = list(slots)
    for i in block_range(block_index, geometry.block_capacity):
        if not result[i].is_free:
            result[i] = result[i].evicted()
    return tuple(result)


def evict_full_block(
    slots: Sequence[Slot],
    geometry: BlockGeometry,
    skip_block: Optional[int] = None,
) -> EvictionResult:
    """Evict the stalest full block, optionally skipping one block index."""
    victim = select_victim_block(slots, geometry, skip_block)
    if victim == NO_SLOT:
        logger.debug("No eligible full block to evict")
        return EvictionResult(slots=tuple(slots))

    logger.debug(
        f"Evicting block {victim} "
        f"(last_write_id={block_last_write_id(slots, victim, geometry.block_capacity)})"
    )
    return EvictionResult(slots=evict_block(slots, geometry, victim), victim=victim)


# =============================================================================
# Policy strategies
# =============================================================================


def evict_sliding_window(
    slots: Sequence[Slot], geometry: BlockGeometry
) -> EvictionResult:
    """Discard the least recently written full block."""
    return evict_full_block(slots, geometry)


def evict_pinned_prefix(
    slots: Sequence[Slot], geometry: BlockGeometry
) -> EvictionResult:
    """Like sliding window, but block 0 (the prompt prefix) is never evicted."""
    return evict_full_block(slots, geometry, skip_block=PINNED_BLOCK_INDEX)


def evict_recent_n(slots: Sequence[Slot], geometry: BlockGeometry) -> EvictionResult:
    """Recent-N evicts like sliding window; its window is a display concern."""
    return evict_full_block(slots, geometry)


EvictionStrategy = Callable[[Sequence[Slot], BlockGeometry], EvictionResult]

EVICTION_STRATEGIES: Dict[EvictionPolicy, EvictionStrategy] = {
    EvictionPolicy.SLIDING_WINDOW: evict_sliding_window,
    EvictionPolicy.PINNED_PREFIX: evict_pinned_prefix,
    EvictionPolicy.RECENT_N: evict_recent_n,
}


def evict_by_policy(
    policy: EvictionPolicy, slots: Sequence[Slot], geometry: BlockGeometry
) -> EvictionResult:
    """Dispatch to the eviction strategy registered for ``policy``."""
    strategy = EVICTION_STRATEGIES.get(policy, evict_sliding_window)
    return strategy(slots, geometry)
