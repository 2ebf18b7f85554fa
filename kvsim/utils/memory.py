# SPDX-License-Identifier: Apache-2.0
"""
KV cache memory estimate.

The simulator stores labels, not tensors; this module answers "how much
memory would these cached tokens take on a real model". Each token keeps one
K and one V vector per layer and head:

    bytes = tokens * layers * heads * head_dim * 2 * bytes_per_element
"""

from dataclasses import dataclass
from typing import Any, Dict

from .formatting import format_bytes

# fp16 / bf16
DEFAULT_BYTES_PER_ELEMENT = 2


@dataclass(frozen=True)
class ModelShape:
    """Attention dimensions of the model being modelled."""

    layers: int = 32
    heads: int = 32
    head_dim: int = 128
    bytes_per_element: int = DEFAULT_BYTES_PER_ELEMENT

    def bytes_per_token(self) -> int:
        return calculate_kv_bytes(
            1, self.layers, self.heads, self.head_dim, self.bytes_per_element
        )


def calculate_kv_bytes(
    tokens: int,
    layers: int,
    heads: int,
    head_dim: int,
    bytes_per_element: int = DEFAULT_BYTES_PER_ELEMENT,
) -> int:
    """Return the K+V bytes needed to cache ``tokens`` tokens.

    Args:
        tokens: Number of cached tokens
        layers: Transformer layers
        heads: KV heads per layer
        head_dim: Dimension of each head
        bytes_per_element: Element width (2 for fp16)

    Raises:
        ValueError: If any dimension is negative.
    """
    for name, value in (
        ("tokens", tokens),
        ("layers", layers),
        ("heads", heads),
        ("head_dim", head_dim),
        ("bytes_per_element", bytes_per_element),
    ):
        if value < 0:
            raise ValueError(f"{name} must be non-negative, got {value}")
    return tokens * layers * heads * head_dim * 2 * bytes_per_element


def estimate_cache_memory(used_slots: int, total_slots: int, shape: ModelShape) -> Dict[str, Any]:
    """Memory used by occupied slots and reserved by the whole cache."""
    per_token = shape.bytes_per_token()
    used = used_slots * per_token
    reserved = total_slots * per_token
    return {
        "bytes_per_token": per_token,
        "used_bytes": used,
        "reserved_bytes": reserved,
        "used": format_bytes(used),
        "reserved": format_bytes(reserved),
    }
