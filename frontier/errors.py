from __future__ import annotations

from typing import Optional


class SimulationError(Exception):
    """Base class for errors raised by the simulation core."""


class InvalidLayer(SimulationError, ValueError):
    def __init__(self, layer: object) -> None:
        super().__init__(f"knowledge layer must be in 0..4, got {layer!r}")
        self.layer = layer


class IntentRequired(SimulationError):
    def __init__(self, fleet_id: int) -> None:
        super().__init__(f"fleet {fleet_id} has no active intent to evaluate")
        self.fleet_id = fleet_id


class CommandRejected(SimulationError):
    """A command failed validation; no state was touched."""

    def __init__(self, reason: str, detail: Optional[str] = None) -> None:
        super().__init__(f"{reason}: {detail}" if detail else reason)
        self.reason = reason
        self.detail = detail


class InvariantViolation(SimulationError):
    pass
