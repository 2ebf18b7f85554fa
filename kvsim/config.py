# SPDX-License-Identifier: Apache-2.0
"""
Simulation configuration for kvsim.

This module provides the configuration consumed by the simulation engine:
- Cache geometry (block count x block capacity)
- Eviction policy selection and Recent-N window
- Prompt texts for single-sequence and continuous-batching runs

The engine assumes a well-formed config. Callers (API, CLI) must run
``SimulationConfig.validate()`` and reject the config before building a state.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple


class EvictionPolicy(str, Enum):
    """
    Eviction policy: decides which full block is discarded when the cache is full.

    Mapping to real LLM serving:
    - SLIDING_WINDOW: keep only the most recent context (Mistral, Llama 3.1)
    - PINNED_PREFIX: keep the system prompt fixed, evict older context
    - RECENT_N: rolling window of exactly N attended tokens (streaming)
    """

    SLIDING_WINDOW = "sliding-window"
    PINNED_PREFIX = "pinned-prefix"
    RECENT_N = "recent-n"


class SimulationMode(str, Enum):
    """Top-level simulation mode."""

    PREFILL = "prefill"
    DECODE = "decode"


class Phase(str, Enum):
    """
    Phase label of the latest snapshot.

    DECODE_READ and DECODE_WRITE are the two visual sub-steps of one decode
    tick: attention reads cached KV, then the new token's KV is written.
    """

    PREFILL = "prefill"
    DECODE_READ = "decode-read"
    DECODE_WRITE = "decode-write"


DEFAULT_BLOCK_COUNT = 4
DEFAULT_BLOCK_CAPACITY = 8
DEFAULT_EVICTION_POLICY = EvictionPolicy.SLIDING_WINDOW
DEFAULT_RECENT_N_WINDOW = 8

MIN_RECENT_N_WINDOW = 1
MAX_RECENT_N_WINDOW = 32

# Upper bounds on the cache grid
MAX_BLOCK_COUNT = 64
MAX_BLOCK_CAPACITY = 64

# 1 prompt = single-sequence mode, 2+ = continuous batching
MIN_PROMPT_COUNT = 1
MAX_PROMPT_COUNT = 4

# Label written for decode ticks once the source prompt is exhausted
GENERATED_TOKEN = "<gen>"

DEFAULT_SINGLE_PROMPT = "Hello, how are you today?"
DEFAULT_PROMPTS: Tuple[str, ...] = (
    "Hello!",
    "Can you summarize this?",
    "What is continuous batching?",
    "Explain KV cache eviction.",
)


def parse_policy(value: "str | EvictionPolicy") -> EvictionPolicy:
    """
    Parse an eviction policy name.

    Accepts the canonical value ("sliding-window") as well as the enum
    member name in any case ("SLIDING_WINDOW", "sliding_window").

    Raises:
        ValueError: If the name is not a known policy.
    """
    if isinstance(value, EvictionPolicy):
        return value

    normalized = value.strip().lower().replace("_", "-")
    for policy in EvictionPolicy:
        if policy.value == normalized:
            return policy
    valid = ", ".join(p.value for p in EvictionPolicy)
    raise ValueError(f"Unknown eviction policy: {value} (must be one of {valid})")


@dataclass(frozen=True)
class BlockGeometry:
    """Fixed layout of the cache: ``block_count`` blocks of ``block_capacity`` slots."""

    block_count: int = DEFAULT_BLOCK_COUNT
    block_capacity: int = DEFAULT_BLOCK_CAPACITY

    @property
    def total_slots(self) -> int:
        return self.block_count * self.block_capacity


@dataclass(frozen=True)
class SimulationConfig:
    """
    Configuration for one simulation run.

    Attributes:
        block_count: Number of blocks in the cache.
        block_capacity: Slots per block.
        eviction_policy: Policy used when no slot is free.
        recent_n_window: Window size for the Recent-N policy.
        prompt_count: Number of active sequences (1 = single-sequence mode).
        prompt_texts: Prompt text per sequence; only the first
            ``prompt_count`` entries are used.
    """

    block_count: int = DEFAULT_BLOCK_COUNT
    block_capacity: int = DEFAULT_BLOCK_CAPACITY
    eviction_policy: EvictionPolicy = DEFAULT_EVICTION_POLICY
    recent_n_window: int = DEFAULT_RECENT_N_WINDOW
    prompt_count: int = 1
    prompt_texts: Tuple[str, ...] = field(
        default_factory=lambda: (DEFAULT_SINGLE_PROMPT,)
    )

    def __post_init__(self):
        if not isinstance(self.eviction_policy, EvictionPolicy):
            object.__setattr__(
                self, "eviction_policy", parse_policy(self.eviction_policy)
            )
        if not isinstance(self.prompt_texts, tuple):
            object.__setattr__(self, "prompt_texts", tuple(self.prompt_texts))

    @property
    def geometry(self) -> BlockGeometry:
        return BlockGeometry(self.block_count, self.block_capacity)

    @property
    def is_batched(self) -> bool:
        """True when more than one sequence shares the cache."""
        return self.prompt_count > 1

    @property
    def active_prompts(self) -> Tuple[str, ...]:
        return self.prompt_texts[: self.prompt_count]

    def validate(self) -> List[str]:
        """
        Validate the configuration.

        Returns:
            List of validation error messages (empty if valid).
        """
        errors = []

        if not 1 <= self.block_count <= MAX_BLOCK_COUNT:
            errors.append(
                f"Invalid block_count: {self.block_count} (must be 1-{MAX_BLOCK_COUNT})"
            )
        if not 1 <= self.block_capacity <= MAX_BLOCK_CAPACITY:
            errors.append(
                f"Invalid block_capacity: {self.block_capacity} "
                f"(must be 1-{MAX_BLOCK_CAPACITY})"
            )

        if not MIN_RECENT_N_WINDOW <= self.recent_n_window <= MAX_RECENT_N_WINDOW:
            errors.append(
                f"Invalid recent_n_window: {self.recent_n_window} "
                f"(must be {MIN_RECENT_N_WINDOW}-{MAX_RECENT_N_WINDOW})"
            )

        if not MIN_PROMPT_COUNT <= self.prompt_count <= MAX_PROMPT_COUNT:
            errors.append(
                f"Invalid prompt_count: {self.prompt_count} "
                f"(must be {MIN_PROMPT_COUNT}-{MAX_PROMPT_COUNT})"
            )
        elif len(self.prompt_texts) < self.prompt_count:
            errors.append(
                f"prompt_count is {self.prompt_count} but only "
                f"{len(self.prompt_texts)} prompt texts were given"
            )

        return errors

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary."""
        return {
            "block_count": self.block_count,
            "block_capacity": self.block_capacity,
            "eviction_policy": self.eviction_policy.value,
            "recent_n_window": self.recent_n_window,
            "prompt_count": self.prompt_count,
            "prompt_texts": list(self.prompt_texts),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "SimulationConfig":
        """Create from dictionary, falling back to defaults for missing keys."""
        prompt_count = data.get("prompt_count", 1)
        default_texts = (
            DEFAULT_PROMPTS if prompt_count > 1 else (DEFAULT_SINGLE_PROMPT,)
        )
        return cls(
            block_count=data.get("block_count", DEFAULT_BLOCK_COUNT),
            block_capacity=data.get("block_capacity", DEFAULT_BLOCK_CAPACITY),
            eviction_policy=data.get("eviction_policy", DEFAULT_EVICTION_POLICY),
            recent_n_window=data.get("recent_n_window", DEFAULT_RECENT_N_WINDOW),
            prompt_count=prompt_count,
            prompt_texts=tuple(data.get("prompt_texts") or default_texts),
        )


def single_prompt_config(
    prompt: str = DEFAULT_SINGLE_PROMPT,
    eviction_policy: "str | EvictionPolicy" = DEFAULT_EVICTION_POLICY,
    block_count: int = DEFAULT_BLOCK_COUNT,
    block_capacity: int = DEFAULT_BLOCK_CAPACITY,
    recent_n_window: int = DEFAULT_RECENT_N_WINDOW,
) -> SimulationConfig:
    """Convenience builder for a single-sequence run."""
    return SimulationConfig(
        block_count=block_count,
        block_capacity=block_capacity,
        eviction_policy=eviction_policy,
        recent_n_window=recent_n_window,
        prompt_count=1,
        prompt_texts=(prompt,),
    )


def batched_config(
    prompts: Optional[List[str]] = None,
    eviction_policy: "str | EvictionPolicy" = DEFAULT_EVICTION_POLICY,
    block_count: int = DEFAULT_BLOCK_COUNT,
    block_capacity: int = DEFAULT_BLOCK_CAPACITY,
    recent_n_window: int = DEFAULT_RECENT_N_WINDOW,
) -> SimulationConfig:
    """Convenience builder for a continuous-batching run (one sequence per prompt)."""
    texts = tuple(prompts) if prompts else DEFAULT_PROMPTS[:2]
    return SimulationConfig(
        block_count=block_count,
        block_capacity=block_capacity,
        eviction_policy=eviction_policy,
        recent_n_window=recent_n_window,
        prompt_count=len(texts),
        prompt_texts=texts,
    )
