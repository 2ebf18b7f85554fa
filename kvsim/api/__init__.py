# SPDX-License-Identifier: Apache-2.0
"""
API models for kvsim.

This package provides the pydantic request/response schemas used by the
simulation server.
"""

from .models import (
    BlockModel,
    BlocksResponse,
    ResetRequest,
    SessionListResponse,
    SimulationConfigModel,
    SimulationConfigRequest,
    SimulationSnapshot,
    SlotModel,
    SlotStatsModel,
    StepRequest,
)

__all__ = [
    "BlockModel",
    "BlocksResponse",
    "ResetRequest",
    "SessionListResponse",
    "SimulationConfigModel",
    "SimulationConfigRequest",
    "SimulationSnapshot",
    "SlotModel",
    "SlotStatsModel",
    "StepRequest",
]
