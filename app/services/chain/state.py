"""
State transition validation for chain jobs.

Lifecycle: QUEUED -> PLANNING -> GENERATING -> CONCATENATING -> COMPLETED,
with FAILED reachable from every non-terminal state and FAILED -> QUEUED as
the only backwards edge (retry).
"""

from typing import FrozenSet, Set, Tuple
from app.models.chain_job import ChainStatus


TERMINAL_CHAIN_STATES: FrozenSet[ChainStatus] = frozenset({
    ChainStatus.COMPLETED,
    ChainStatus.FAILED,
})

_CHAIN_TRANSITIONS: Set[Tuple[ChainStatus, ChainStatus]] = {
    (ChainStatus.QUEUED, ChainStatus.PLANNING),
    (ChainStatus.PLANNING, ChainStatus.GENERATING),
    (ChainStatus.GENERATING, ChainStatus.CONCATENATING),
    (ChainStatus.CONCATENATING, ChainStatus.COMPLETED),

    (ChainStatus.QUEUED, ChainStatus.FAILED),
    (ChainStatus.PLANNING, ChainStatus.FAILED),
    (ChainStatus.GENERATING, ChainStatus.FAILED),
    (ChainStatus.CONCATENATING, ChainStatus.FAILED),

    # retry
    (ChainStatus.FAILED, ChainStatus.QUEUED),
}


def is_chain_terminal(status: ChainStatus) -> bool:
    return status in TERMINAL_CHAIN_STATES


def can_transition_chain(current: ChainStatus, target: ChainStatus) -> bool:
    """Same-state writes (progress ticks) are not transitions and always allowed."""
    if current == target:
        return True
    return (current, target) in _CHAIN_TRANSITIONS
