"""
Simulation error taxonomy.

ConfigError fails a run before any bar is processed. DataError fails one symbol
(multi-symbol) or the run (single-symbol). ExecutionError rolls back the intended
transition only. InvariantViolation is fatal and carries a state dump.
"""

from __future__ import annotations
from typing import Any, Optional


class SimulationError(Exception):
    """Base error for the simulation core. `details` holds structured context."""

    def __init__(self, message: str, details: Optional[dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def to_dict(self) -> dict[str, Any]:
        return {
            "error_type": type(self).__name__,
            "message": self.message,
            "details": self.details,
        }


class ConfigError(SimulationError):
    """Invalid or contradictory run parameters."""


class DataError(SimulationError):
    """Missing, out-of-order or malformed bars."""

    def __init__(self, message: str, symbol: str = "", details: Optional[dict[str, Any]] = None):
        super().__init__(message, details)
        self.symbol = symbol


class ExecutionError(SimulationError):
    """Order execution collaborator failed to fill an intent."""


class InvariantViolation(SimulationError):
    """Core logic defect. Never recovered from."""


class IndicatorNotReadyError(SimulationError):
    """An indicator value was read before its warm-up completed."""
