# SPDX-License-Identifier: Apache-2.0
"""Tests for kvsim.utils.memory and kvsim.utils.formatting."""

import pytest

from kvsim.utils.formatting import STATUS_GLYPHS, format_block_row, format_bytes
from kvsim.utils.memory import (
    DEFAULT_BYTES_PER_ELEMENT,
    ModelShape,
    calculate_kv_bytes,
    estimate_cache_memory,
)


class TestFormatBytes:
    """Test cases for format_bytes function."""

    def test_format_gigabytes(self):
        assert format_bytes(1024**3) == "1.00 GB"
        assert format_bytes(int(1.5 * 1024**3)) == "1.50 GB"

    def test_format_megabytes(self):
        assert format_bytes(256 * 1024**2) == "256.00 MB"

    def test_format_kilobytes(self):
        assert format_bytes(1024) == "1.00 KB"

    def test_format_bytes_small(self):
        assert format_bytes(0) == "0 B"
        assert format_bytes(1023) == "1023 B"


class TestFormatBlockRow:
    """Test cases for format_block_row."""

    def test_row_without_owner(self):
        assert format_block_row(["new", "reused", "empty", "empty"]) == "[NR..]"

    def test_row_with_owner(self):
        row = format_block_row(["pinned", "evicted", "inactive"], owner="P1")
        assert row == "[Pxi] P1"

    def test_unknown_status(self):
        assert format_block_row(["bogus"]) == "[?]"

    def test_every_status_has_glyph(self):
        assert set(STATUS_GLYPHS) == {
            "empty",
            "new",
            "reused",
            "pinned",
            "evicted",
            "inactive",
        }


class TestCalculateKvBytes:
    """Test cases for calculate_kv_bytes."""

    def test_single_token(self):
        # 32 layers * 32 heads * 128 dim * (K + V) * fp16
        assert calculate_kv_bytes(1, 32, 32, 128) == 524288

    def test_scales_with_tokens(self):
        assert calculate_kv_bytes(10, 2, 4, 8, 1) == 10 * 2 * 4 * 8 * 2

    def test_zero_tokens(self):
        assert calculate_kv_bytes(0, 32, 32, 128) == 0

    def test_negative_rejected(self):
        with pytest.raises(ValueError, match="layers"):
            calculate_kv_bytes(1, -1, 32, 128)


class TestEstimateCacheMemory:
    """Test cases for ModelShape and estimate_cache_memory."""

    def test_default_shape(self):
        shape = ModelShape()
        assert shape.bytes_per_element == DEFAULT_BYTES_PER_ELEMENT
        assert shape.bytes_per_token() == 512 * 1024

    def test_estimate(self):
        result = estimate_cache_memory(16, 32, ModelShape())

        assert result["bytes_per_token"] == 512 * 1024
        assert result["used_bytes"] == 8 * 1024**2
        assert result["reserved_bytes"] == 16 * 1024**2
        assert result["used"] == "8.00 MB"
        assert result["reserved"] == "16.00 MB"
