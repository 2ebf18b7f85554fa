# SPDX-License-Identifier: Apache-2.0
"""Formatting utilities for kvsim."""

from typing import Optional, Sequence


def format_bytes(bytes_value: int) -> str:
    """Format bytes as human-readable string.

    Args:
        bytes_value: Number of bytes to format

    Returns:
        Human-readable string (e.g., "1.50 GB", "256.00 MB")
    """
    if bytes_value >= 1024**3:
        return f"{bytes_value / 1024**3:.2f} GB"
    elif bytes_value >= 1024**2:
        return f"{bytes_value / 1024**2:.2f} MB"
    elif bytes_value >= 1024:
        return f"{bytes_value / 1024:.2f} KB"
    else:
        return f"{bytes_value} B"


# Single-character status codes used by the text renderer
STATUS_GLYPHS = {
    "empty": ".",
    "new": "N",
    "reused": "R",
    "pinned": "P",
    "evicted": "x",
    "inactive": "i",
}


def format_block_row(statuses: Sequence[str], owner: Optional[str] = None) -> str:
    """Render one block as a row of status glyphs, e.g. ``[NNRR....] P1``."""
    row = "".join(STATUS_GLYPHS.get(s, "?") for s in statuses)
    if owner:
        return f"[{row}] {owner}"
    return f"[{row}]"
