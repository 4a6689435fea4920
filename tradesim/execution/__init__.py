"""Execution: order-intent protocol and the simulated fill model."""

from tradesim.execution.base import ExecutionClient, OrderIntent, OrderResult
from tradesim.execution.simulated import SimulatedExecutionClient

__all__ = ["ExecutionClient", "OrderIntent", "OrderResult", "SimulatedExecutionClient"]
