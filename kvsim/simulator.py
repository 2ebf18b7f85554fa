# SPDX-License-Identifier: Apache-2.0
"""
Simulation stepper for the paged KV cache.

``reset(config)`` builds the initial state; ``step(state)`` derives the state
of the next inference tick. Both are pure: states are frozen dataclasses and
every tick returns a new snapshot, so a driver (HTTP session, CLI loop,
timer in a UI) can keep or discard old snapshots freely.

Tick flow:
    1. Prefill, stream exhausted -> switch to decode, write nothing.
    2. Prefill -> write the next stream token.
    3. Decode  -> read sub-step (relabel), then write one token per sequence.

Each write asks the allocator for a slot; on NO_SLOT the active eviction
policy clears one full block and the allocator is retried once. If the retry
also fails the write is dropped for this tick.
"""

import logging
from dataclasses import dataclass, replace
from typing import Any, Callable, Dict, List, Optional, Sequence, Tuple

from .cache.allocator import (
    find_write_slot,
    find_write_slot_decode,
    find_write_slot_prefill,
)
from .cache.annotator import annotate
from .cache.eviction import evict_by_policy
from .cache.slots import NO_SLOT, Slot, SlotStatus, empty_slots
from .config import (
    GENERATED_TOKEN,
    BlockGeometry,
    EvictionPolicy,
    Phase,
    SimulationConfig,
    SimulationMode,
)
from .prompts import StreamToken, flatten_prefill_stream, tokenize_prompts

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SimulationState:
    """
    Immutable snapshot of one simulation run.

    Attributes:
        config: Configuration the run was reset with
        mode: PREFILL until the prompt stream is consumed, then DECODE forever
        phase: Label of the latest sub-step
        prompt_tokens: Token labels per sequence
        prefill_stream: Flattened prefill tokens across all sequences
        slots: Cache contents
        prefill_index: Next position in ``prefill_stream``
        decode_steps: Completed decode ticks
        write_clock: Write id of the latest successful write (0 = none yet)
        tick: Number of ``step`` calls since reset
        eviction_count: Blocks evicted since reset
        dropped_write_count: Writes dropped because no block could be evicted
        last_written: Slot indexes written during the latest tick
        last_evicted: Block indexes evicted during the latest tick
    """

    config: SimulationConfig
    mode: SimulationMode
    phase: Phase
    prompt_tokens: Tuple[Tuple[str, ...], ...]
    prefill_stream: Tuple[StreamToken, ...]
    slots: Tuple[Slot, ...]
    prefill_index: int = 0
    decode_steps: int = 0
    write_clock: int = 0
    tick: int = 0
    eviction_count: int = 0
    dropped_write_count: int = 0
    last_written: Tuple[int, ...] = ()
    last_evicted: Tuple[int, ...] = ()

    @property
    def geometry(self) -> BlockGeometry:
        return self.config.geometry

    @property
    def policy(self) -> EvictionPolicy:
        return self.config.eviction_policy

    @property
    def is_batched(self) -> bool:
        return self.config.is_batched

    @property
    def sequence_count(self) -> int:
        return len(self.prompt_tokens)

    @property
    def prompt_exhausted(self) -> bool:
        return self.prefill_index >= len(self.prefill_stream)

    def to_dict(self) -> Dict[str, Any]:
        """Convert the snapshot to a JSON-compatible dictionary."""
        return {
            "config": self.config.to_dict(),
            "mode": self.mode.value,
            "phase": self.phase.value,
            "tick": self.tick,
            "prefill_index": self.prefill_index,
            "prefill_total": len(self.prefill_stream),
            "decode_steps": self.decode_steps,
            "write_clock": self.write_clock,
            "eviction_count": self.eviction_count,
            "dropped_write_count": self.dropped_write_count,
            "last_written": list(self.last_written),
            "last_evicted": list(self.last_evicted),
            "prompt_tokens": [list(tokens) for tokens in self.prompt_tokens],
            "slots": [slot.to_dict() for slot in self.slots],
        }


def reset(config: SimulationConfig) -> SimulationState:
    """
    Build the initial state for ``config``.

    All slots start EMPTY and the write clock at 0. The config must already
    be validated.
    """
    prompt_tokens = tokenize_prompts(config.active_prompts)
    state = SimulationState(
        config=config,
        mode=SimulationMode.PREFILL,
        phase=Phase.PREFILL,
        prompt_tokens=prompt_tokens,
        prefill_stream=flatten_prefill_stream(prompt_tokens),
        slots=empty_slots(config.geometry),
    )
    logger.debug(
        f"Simulation reset: blocks={config.block_count}x{config.block_capacity}, "
        f"policy={config.eviction_policy.value}, sequences={state.sequence_count}, "
        f"prefill_tokens={len(state.prefill_stream)}"
    )
    return state


# =============================================================================
# Write path
# =============================================================================

Allocator = Callable[[Sequence[Slot], int], int]


@dataclass
class _TickWrites:
    """Mutable accumulator for the writes of one tick."""

    slots: List[Slot]
    write_clock: int
    written: List[int]
    evicted: List[int]
    dropped: int = 0


def _allocator_for(state: SimulationState, mode: SimulationMode) -> Allocator:
    geometry = state.geometry
    if not state.is_batched:
        return lambda slots, owner_id: find_write_slot(slots, geometry)
    if mode == SimulationMode.PREFILL:
        return lambda slots, owner_id: find_write_slot_prefill(slots, geometry, owner_id)
    return lambda slots, owner_id: find_write_slot_decode(slots, geometry, owner_id)


def _write_tokens(
    state: SimulationState,
    slots: Sequence[Slot],
    pending: Sequence[StreamToken],
    allocate: Allocator,
) -> _TickWrites:
    """Allocate, evict-and-retry once, and write each pending token in order."""
    acc = _TickWrites(
        slots=list(slots),
        write_clock=state.write_clock,
        written=[],
        evicted=[],
    )

    for item in pending:
        target = allocate(acc.slots, item.owner_id)
        if target == NO_SLOT:
            result = evict_by_policy(state.policy, acc.slots, state.geometry)
            if result.evicted:
                acc.slots = list(result.slots)
                acc.evicted.append(result.victim)
            target = allocate(acc.slots, item.owner_id)

        if target == NO_SLOT:
            acc.dropped += 1
            logger.debug(
                f"Dropped write of {item.token!r} (sequence {item.owner_id}): "
                f"no free slot and no evictable block"
            )
            continue

        acc.write_clock += 1
        acc.slots[target] = Slot(
            token=item.token,
            status=SlotStatus.NEW,
            owner_id=item.owner_id if state.is_batched else None,
            owner_position=item.position,
            write_id=acc.write_clock,
        )
        acc.written.append(target)

    return acc


def _finish_tick(
    state: SimulationState, acc: _TickWrites, phase: Phase, **changes: Any
) -> SimulationState:
    slots = annotate(
        acc.slots,
        state.policy,
        phase,
        state.config.recent_n_window,
        state.geometry,
        written=acc.written,
    )
    return replace(
        state,
        phase=phase,
        slots=slots,
        write_clock=acc.write_clock,
        tick=state.tick + 1,
        eviction_count=state.eviction_count + len(acc.evicted),
        dropped_write_count=state.dropped_write_count + acc.dropped,
        last_written=tuple(acc.written),
        last_evicted=tuple(acc.evicted),
        **changes,
    )


# =============================================================================
# Ticks
# =============================================================================


def _prefill_tick(state: SimulationState) -> SimulationState:
    item = state.prefill_stream[state.prefill_index]
    acc = _write_tokens(
        state, state.slots, [item], _allocator_for(state, SimulationMode.PREFILL)
    )
    return _finish_tick(
        state, acc, Phase.PREFILL, prefill_index=state.prefill_index + 1
    )


def decode_read(state: SimulationState) -> SimulationState:
    """
    Decode read sub-step: attention reads the cached KV.

    Relabels occupied slots for the active policy (REUSED / INACTIVE) without
    writing anything. ``step`` runs this before every decode write; drivers
    may call it directly to display the read sub-step.
    """
    slots = annotate(
        state.slots,
        state.policy,
        Phase.DECODE_READ,
        state.config.recent_n_window,
        state.geometry,
    )
    return replace(state, phase=Phase.DECODE_READ, slots=slots)


def _decode_tokens(
    state: SimulationState, generated: Optional[Sequence[str]]
) -> List[StreamToken]:
    pending = []
    for owner_id, tokens in enumerate(state.prompt_tokens):
        label = GENERATED_TOKEN
        if generated is not None and owner_id < len(generated):
            label = generated[owner_id]
        pending.append(
            StreamToken(
                owner_id=owner_id,
                token=label,
                position=len(tokens) + state.decode_steps,
            )
        )
    return pending


def _decode_tick(
    state: SimulationState, generated: Optional[Sequence[str]]
) -> SimulationState:
    read = decode_read(state)
    acc = _write_tokens(
        read,
        read.slots,
        _decode_tokens(read, generated),
        _allocator_for(read, SimulationMode.DECODE),
    )
    return _finish_tick(
        read, acc, Phase.DECODE_WRITE, decode_steps=state.decode_steps + 1
    )


def step(
    state: SimulationState, generated: Optional[Sequence[str]] = None
) -> SimulationState:
    """
    Advance the simulation by one inference tick.

    Args:
        state: Current snapshot
        generated: Optional labels for the tokens generated this tick, one
            per sequence. Missing labels default to ``GENERATED_TOKEN``.
            Ignored during prefill.

    Returns:
        The next snapshot. The simulation never terminates; decode ticks
        keep producing tokens until the caller resets.
    """
    if state.mode == SimulationMode.PREFILL:
        if state.prompt_exhausted:
            logger.debug(f"Prefill complete after {state.write_clock} writes, switching to decode")
            return replace(
                state,
                mode=SimulationMode.DECODE,
                phase=Phase.DECODE_READ,
                tick=state.tick + 1,
                last_written=(),
                last_evicted=(),
            )
        return _prefill_tick(state)

    return _decode_tick(state, generated)


def advance(
    state: SimulationState,
    ticks: int,
    generated: Optional[Sequence[str]] = None,
) -> SimulationState:
    """Apply ``step`` ``ticks`` times."""
    for _ in range(ticks):
        state = step(state, generated)
    return state
