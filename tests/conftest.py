# SPDX-License-Identifier: Apache-2.0
"""
Pytest configuration and fixtures for kvsim tests.

This module provides common fixtures used across test files.
"""

from pathlib import Path

import pytest

from kvsim.config import BlockGeometry


@pytest.fixture
def geometry() -> BlockGeometry:
    """Default 4 x 8 cache geometry."""
    return BlockGeometry(block_count=4, block_capacity=8)


@pytest.fixture
def small_geometry() -> BlockGeometry:
    """2 x 4 cache geometry."""
    return BlockGeometry(block_count=2, block_capacity=4)


@pytest.fixture
def tmp_base_path(tmp_path: Path) -> Path:
    """Provide a temporary kvsim base directory for tests."""
    base = tmp_path / "kvsim"
    base.mkdir(parents=True, exist_ok=True)
    return base
