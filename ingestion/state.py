"""
Import configuration lifecycle.

    IDLE / SCHEDULED ──due──▶ DUE ──claim──▶ RUNNING ──▶ SUCCEEDED ──▶ SCHEDULED / IDLE
                                               │
                                               └──────▶ FAILED ──▶ RETRY_PENDING ──due──▶ DUE

SUCCEEDED and FAILED are transient: the scheduler moves a finished run on
to SCHEDULED/IDLE or RETRY_PENDING in the same update. A claimed
configuration that is skipped without an attempt is released straight from
RUNNING back to its resting state.
"""

from typing import Dict, FrozenSet

from core.exceptions import InvalidStateTransitionError
from models.base import ImportState

_RESTING = frozenset({ImportState.IDLE, ImportState.SCHEDULED, ImportState.RETRY_PENDING})

ALLOWED_TRANSITIONS: Dict[ImportState, FrozenSet[ImportState]] = {
    ImportState.IDLE: _RESTING | {ImportState.DUE, ImportState.RUNNING},
    ImportState.SCHEDULED: _RESTING | {ImportState.DUE, ImportState.RUNNING},
    ImportState.DUE: _RESTING | {ImportState.DUE, ImportState.RUNNING},
    ImportState.RUNNING: _RESTING | {ImportState.SUCCEEDED, ImportState.FAILED},
    ImportState.SUCCEEDED: frozenset({ImportState.IDLE, ImportState.SCHEDULED}),
    ImportState.FAILED: frozenset({ImportState.RETRY_PENDING}),
    ImportState.RETRY_PENDING: _RESTING | {ImportState.DUE, ImportState.RUNNING},
}


def resting_state(config) -> ImportState:
    """State a configuration returns to when nothing is in flight."""
    if (config.consecutive_failures or 0) > 0:
        return ImportState.RETRY_PENDING
    if config.next_scheduled_run_at is not None:
        return ImportState.SCHEDULED
    return ImportState.IDLE


def can_transition(current: ImportState, target: ImportState) -> bool:
    return ImportState(target) in ALLOWED_TRANSITIONS[ImportState(current)]


def transition(config, target: ImportState) -> ImportState:
    """
    Move ``config.state`` to ``target``.

    Raises:
        InvalidStateTransitionError: The move is not in the transition table
    """
    current = ImportState(config.state or ImportState.IDLE)
    target = ImportState(target)
    if not can_transition(current, target):
        raise InvalidStateTransitionError(
            f"Cannot move import configuration from {current.value} to {target.value}",
            context={
                "config_id": str(getattr(config, "id", None)),
                "from_state": current.value,
                "to_state": target.value,
            }
        )
    config.state = target
    return target
