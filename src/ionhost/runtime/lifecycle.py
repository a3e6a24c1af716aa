from __future__ import annotations

from enum import Enum
from typing import Dict, Set


class LifecycleState(str, Enum):
    """States of one companion-process session."""

    CREATED = "created"
    PROVISIONING = "provisioning"
    LAUNCHING = "launching"
    AWAITING_CONNECTION = "awaiting_connection"
    CONNECTED = "connected"
    SHUTTING_DOWN = "shutting_down"
    STOPPED = "stopped"


_FORWARD_TRANSITIONS: Dict[LifecycleState, Set[LifecycleState]] = {
    LifecycleState.CREATED: {LifecycleState.PROVISIONING},
    LifecycleState.PROVISIONING: {LifecycleState.LAUNCHING},
    LifecycleState.LAUNCHING: {LifecycleState.AWAITING_CONNECTION},
    LifecycleState.AWAITING_CONNECTION: {LifecycleState.CONNECTED},
    LifecycleState.CONNECTED: set(),
    LifecycleState.SHUTTING_DOWN: {LifecycleState.STOPPED},
    LifecycleState.STOPPED: set(),
}


def transition_lifecycle_state(current: LifecycleState, target: LifecycleState) -> LifecycleState:
    """Validate and return the next lifecycle state.

    Shutting down is reachable from every state that has not already begun
    shutting down. Invalid transitions raise ValueError.
    """

    if target == LifecycleState.SHUTTING_DOWN:
        if current in {LifecycleState.SHUTTING_DOWN, LifecycleState.STOPPED}:
            raise ValueError(f"Invalid lifecycle transition: {current} -> {target}")
        return target

    if target in _FORWARD_TRANSITIONS[current]:
        return target

    raise ValueError(f"Invalid lifecycle transition: {current} -> {target}")
