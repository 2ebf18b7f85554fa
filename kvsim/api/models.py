# SPDX-License-Identifier: Apache-2.0
"""
Pydantic models for the kvsim simulation API.

These models define the request and response schemas for:
- /v1/simulations (create, get, delete)
- /v1/simulations/{id}/step
- /v1/simulations/{id}/reset
- /v1/simulations/{id}/blocks
"""

from typing import Any

from pydantic import BaseModel

from ..cache.stats import compute_slot_stats
from ..cache.views import (
    block_ownership,
    block_views,
    free_blocks,
    full_blocks,
    owner_label,
    slot_labels,
)
from ..config import SimulationConfig
from ..simulator import SimulationState


class SimulationConfigRequest(BaseModel):
    """
    Configuration for a new or reset simulation.

    Omitted fields fall back to the server's simulation defaults.
    """

    block_count: int | None = None
    """Number of blocks in the cache."""

    block_capacity: int | None = None
    """Slots per block."""

    eviction_policy: str | None = None
    """One of "sliding-window", "pinned-prefix", "recent-n"."""

    recent_n_window: int | None = None
    """Window size for the Recent-N policy (1-32)."""

    prompts: list[str] | None = None
    """
    Prompt per sequence. One prompt runs single-sequence mode,
    two to four run continuous batching.
    """


class StepRequest(BaseModel):
    """Request to advance a simulation."""

    ticks: int = 1
    """Number of ticks to apply (1 to the server's per-request limit)."""

    generated: list[str] | None = None
    """
    Labels for the tokens generated on each decode tick, one per sequence.
    Missing labels use the "<gen>" placeholder.
    """


class ResetRequest(BaseModel):
    """Request to reset a simulation, optionally with a new config."""

    config: SimulationConfigRequest | None = None


class SimulationConfigModel(BaseModel):
    """Effective configuration of a simulation."""

    block_count: int
    block_capacity: int
    eviction_policy: str
    recent_n_window: int
    prompt_count: int
    prompt_texts: list[str]

    @classmethod
    def from_config(cls, config: SimulationConfig) -> "SimulationConfigModel":
        return cls(**config.to_dict())


class SlotModel(BaseModel):
    """One cache slot."""

    index: int
    token: str
    status: str
    owner: str
    """Owner label ("P1", "P2", ...), empty in single-sequence mode."""

    owner_id: int | None = None
    owner_position: int | None = None
    write_id: int
    in_window: bool


class BlockModel(BaseModel):
    """Summary of one block."""

    index: int
    occupied: int
    capacity: int
    owner_id: int | None = None
    owner: str
    last_write_id: int
    is_full: bool
    is_free: bool


class SlotStatsModel(BaseModel):
    """Per-status slot counts and lifetime counters."""

    total_slots: int
    new: int
    reused: int
    inactive: int
    pinned: int
    empty: int
    evicted: int
    used: int
    free: int
    utilization: float
    writes: int
    evictions: int
    dropped_writes: int
    attempted_writes: int
    drop_rate: float


def state_stats(state: SimulationState) -> SlotStatsModel:
    stats = compute_slot_stats(
        state.slots,
        writes=state.write_clock,
        evictions=state.eviction_count,
        dropped_writes=state.dropped_write_count,
    )
    return SlotStatsModel(**stats.to_dict())


class SimulationSnapshot(BaseModel):
    """Full snapshot of a simulation session."""

    session_id: str
    config: SimulationConfigModel
    mode: str
    phase: str
    tick: int
    prefill_index: int
    prefill_total: int
    decode_steps: int
    write_clock: int
    eviction_count: int
    dropped_write_count: int
    last_written: list[int]
    last_evicted: list[int]
    prompt_tokens: list[list[str]]
    slots: list[SlotModel]
    stats: SlotStatsModel

    @classmethod
    def from_state(cls, session_id: str, state: SimulationState) -> "SimulationSnapshot":
        data: dict[str, Any] = state.to_dict()
        data["config"] = SimulationConfigModel.from_config(state.config)
        data["slots"] = [
            SlotModel(**{**slot.to_dict(), **label})
            for slot, label in zip(state.slots, slot_labels(state.slots))
        ]
        data["stats"] = state_stats(state)
        return cls(session_id=session_id, **data)


class BlocksResponse(BaseModel):
    """Block-level view of a simulation: free list and ownership."""

    session_id: str
    free_blocks: list[int]
    full_blocks: list[int]
    ownership: dict[str, list[int]]
    """Owner label ("P1", ...) -> owned block indexes. Empty in single-sequence mode."""

    blocks: list[BlockModel]

    @classmethod
    def from_state(cls, session_id: str, state: SimulationState) -> "BlocksResponse":
        geometry = state.geometry
        ownership: dict[str, list[int]] = {}
        if state.is_batched:
            ownership = {
                owner_label(owner): blocks
                for owner, blocks in block_ownership(
                    state.slots, geometry, state.sequence_count
                ).items()
            }
        return cls(
            session_id=session_id,
            free_blocks=free_blocks(state.slots, geometry),
            full_blocks=full_blocks(state.slots, geometry),
            ownership=ownership,
            blocks=[
                BlockModel(owner=owner_label(view.owner_id), **view.to_dict())
                for view in block_views(state.slots, geometry)
            ],
        )


class SessionListResponse(BaseModel):
    """Ids of the live sessions."""

    sessions: list[str]
