# SPDX-License-Identifier: Apache-2.0
"""
kvsim: paged KV cache simulator

This package models how an inference server fills and evicts a block-paged
KV cache, one token per tick, for a single prompt or for several prompts
sharing the cache under continuous batching.

Features:
- Block-granular allocation with per-sequence block ownership
- Sliding Window, Pinned Prefix and Recent-N eviction
- Pure, immutable step function
- HTTP API and CLI drivers
"""

from kvsim._version import __version__

from kvsim.config import (
    EvictionPolicy,
    Phase,
    SimulationConfig,
    SimulationMode,
    batched_config,
    single_prompt_config,
)
from kvsim.simulator import SimulationState, advance, decode_read, reset, step
from kvsim.cache.slots import Slot, SlotStatus

__all__ = [
    "__version__",
    # Configuration
    "EvictionPolicy",
    "Phase",
    "SimulationConfig",
    "SimulationMode",
    "batched_config",
    "single_prompt_config",
    # Engine
    "SimulationState",
    "advance",
    "decode_read",
    "reset",
    "step",
    # Cache
    "Slot",
    "SlotStatus",
]
