# SPDX-License-Identifier: Apache-2.0
"""
Cache module - paged KV cache model for kvsim.

This package contains the pieces the simulator composes:
- Slot/block model and occupancy predicates
- Write-slot allocators (single sequence, batched prefill, batched decode)
- Block eviction policies
- Policy-driven display annotation
- Derived views and statistics
"""

# Slot/block model
from .slots import (
    NO_SLOT,
    NO_WRITE_ID,
    Slot,
    SlotStatus,
    block_has_occupied,
    block_is_completely_free,
    block_is_full,
    block_last_write_id,
    block_occupied_count,
    block_range,
    block_sole_owner,
    empty_slots,
    first_free_slot_in_block,
    is_free,
    occupied_count,
)

# Allocation
from .allocator import (
    find_tail_block,
    find_write_slot,
    find_write_slot_decode,
    find_write_slot_prefill,
    first_completely_free_block,
)

# Eviction
from .eviction import (
    EVICTION_STRATEGIES,
    PINNED_BLOCK_INDEX,
    EvictionResult,
    evict_by_policy,
    evict_pinned_prefix,
    evict_recent_n,
    evict_sliding_window,
    select_victim_block,
)

# Annotation
from .annotator import annotate

# Views and stats
from .stats import BaseCacheStats, SlotStats, compute_slot_stats
from .views import (
    BlockView,
    block_ownership,
    block_views,
    free_blocks,
    full_blocks,
    owner_label,
    slot_labels,
)

__all__ = [
    # Slots
    "NO_SLOT",
    "NO_WRITE_ID",
    "Slot",
    "SlotStatus",
    "block_has_occupied",
    "block_is_completely_free",
    "block_is_full",
    "block_last_write_id",
    "block_occupied_count",
    "block_range",
    "block_sole_owner",
    "empty_slots",
    "first_free_slot_in_block",
    "is_free",
    "occupied_count",
    # Allocation
    "find_tail_block",
    "find_write_slot",
    "find_write_slot_decode",
    "find_write_slot_prefill",
    "first_completely_free_block",
    # Eviction
    "EVICTION_STRATEGIES",
    "PINNED_BLOCK_INDEX",
    "EvictionResult",
    "evict_by_policy",
    "evict_pinned_prefix",
    "evict_recent_n",
    "evict_sliding_window",
    "select_victim_block",
    # Annotation
    "annotate",
    # Views and stats
    "BaseCacheStats",
    "SlotStats",
    "compute_slot_stats",
    "BlockView",
    "block_ownership",
    "block_views",
    "free_blocks",
    "full_blocks",
    "owner_label",
    "slot_labels",
]
