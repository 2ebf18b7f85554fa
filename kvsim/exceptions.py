# SPDX-License-Identifier: Apache-2.0
"""
Custom exception hierarchy for kvsim.

The simulation engine itself never raises for expected conditions (a full
cache, a block with no eligible victim); it reports them through sentinels.
These exceptions are raised by the layers around it: configuration
validation, the session table and the HTTP API.

Usage:
    from kvsim.exceptions import InvalidSimulationConfigError, KVSimError

    try:
        config = build_config(payload)
    except InvalidSimulationConfigError as e:
        return {"errors": e.errors}
    except KVSimError as e:
        logger.error(f"Simulation error: {e}")
"""

from typing import List, Optional


class KVSimError(Exception):
    """
    Base exception for all kvsim errors.

    All custom exceptions in kvsim inherit from this class to allow
    catching every kvsim-related error at once.
    """

    def __init__(self, message: str, details: Optional[dict] = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def __str__(self) -> str:
        if self.details:
            return f"{self.message} (details: {self.details})"
        return self.message


# =============================================================================
# Configuration Exceptions
# =============================================================================


class ConfigurationError(KVSimError):
    """Base exception for configuration errors."""

    pass


class InvalidSimulationConfigError(ConfigurationError):
    """
    A simulation configuration failed validation.

    Attributes:
        errors: Validation messages, one per problem found.
    """

    def __init__(self, errors: List[str], details: Optional[dict] = None):
        message = "Invalid simulation config: " + "; ".join(errors)
        super().__init__(message, details)
        self.errors = list(errors)


# =============================================================================
# Simulation Exceptions
# =============================================================================


class SimulationError(KVSimError):
    """Base exception for errors while driving a simulation."""

    pass


class SessionNotFoundError(SimulationError):
    """
    No simulation session with the given id exists.

    Attributes:
        session_id: The id that was looked up.
    """

    def __init__(self, session_id: str, details: Optional[dict] = None):
        super().__init__(f"Simulation session not found: {session_id}", details)
        self.session_id = session_id
