from __future__ import annotations

from enum import Enum
from typing import Dict, List


class TurnPhase(str, Enum):
    IDLE = "idle"
    REQUESTED = "requested"
    STREAMING = "streaming"
    COMPLETED = "completed"
    FAILED = "failed"


# Lifecycle of one in-flight turn; Completed/Failed rest back to Idle.
TURN_TRANSITIONS: Dict[TurnPhase, List[TurnPhase]] = {
    TurnPhase.IDLE: [TurnPhase.REQUESTED],
    TurnPhase.REQUESTED: [TurnPhase.STREAMING, TurnPhase.COMPLETED, TurnPhase.FAILED],
    TurnPhase.STREAMING: [TurnPhase.COMPLETED, TurnPhase.FAILED],
    TurnPhase.COMPLETED: [TurnPhase.IDLE],
    TurnPhase.FAILED: [TurnPhase.IDLE],
}


def is_valid_transition(current: TurnPhase, target: TurnPhase) -> bool:
    return target in TURN_TRANSITIONS.get(current, [])


class TurnLifecycle:
    """Tracks the phase of a single turn and rejects out-of-order moves."""

    def __init__(self, phase: TurnPhase = TurnPhase.IDLE) -> None:
        self.phase = phase

    def advance(self, target: TurnPhase) -> TurnPhase:
        if target == self.phase and target == TurnPhase.STREAMING:
            return self.phase
        if not is_valid_transition(self.phase, target):
            raise ValueError(f"Invalid turn transition {self.phase.value} -> {target.value}")
        self.phase = target
        return self.phase

    @property
    def finished(self) -> bool:
        return self.phase in (TurnPhase.COMPLETED, TurnPhase.FAILED)
