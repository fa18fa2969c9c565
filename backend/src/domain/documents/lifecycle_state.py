"""Lifecycle state machine for document rows

A document row carries two independent flags, ``is_deleted`` and
``is_archived``. They are folded into one tagged state so that every
transition is looked up in a single table instead of being checked ad hoc.

State flow:
    ACTIVE <-> DELETED          (soft_delete / restore)
    ACTIVE <-> ARCHIVED         (archive / unarchive)
    DELETED <-> DELETED_AND_ARCHIVED
    ARCHIVED <-> DELETED_AND_ARCHIVED
    any state -> (removed)      (permanent_delete, terminal)
"""

from enum import Enum
from typing import Dict, List, Optional, Tuple

from .errors import StateConflictError


class LifecycleState(str, Enum):
    """Combined deletion/archival state of a document row"""
    ACTIVE = "ACTIVE"
    DELETED = "DELETED"
    ARCHIVED = "ARCHIVED"
    DELETED_AND_ARCHIVED = "DELETED_AND_ARCHIVED"


class LifecycleAction(str, Enum):
    """Lifecycle operations that may be applied to a document row"""
    SOFT_DELETE = "SOFT_DELETE"
    RESTORE = "RESTORE"
    ARCHIVE = "ARCHIVE"
    UNARCHIVE = "UNARCHIVE"
    PERMANENT_DELETE = "PERMANENT_DELETE"


# Target state per (state, action). None target means the row is removed.
ALLOWED_TRANSITIONS: Dict[LifecycleState, Dict[LifecycleAction, Optional[LifecycleState]]] = {
    LifecycleState.ACTIVE: {
        LifecycleAction.SOFT_DELETE: LifecycleState.DELETED,
        LifecycleAction.ARCHIVE: LifecycleState.ARCHIVED,
        LifecycleAction.PERMANENT_DELETE: None,
    },
    LifecycleState.DELETED: {
        LifecycleAction.RESTORE: LifecycleState.ACTIVE,
        LifecycleAction.ARCHIVE: LifecycleState.DELETED_AND_ARCHIVED,
        LifecycleAction.PERMANENT_DELETE: None,
    },
    LifecycleState.ARCHIVED: {
        LifecycleAction.SOFT_DELETE: LifecycleState.DELETED_AND_ARCHIVED,
        LifecycleAction.UNARCHIVE: LifecycleState.ACTIVE,
        LifecycleAction.PERMANENT_DELETE: None,
    },
    LifecycleState.DELETED_AND_ARCHIVED: {
        LifecycleAction.RESTORE: LifecycleState.ARCHIVED,
        LifecycleAction.UNARCHIVE: LifecycleState.DELETED,
        LifecycleAction.PERMANENT_DELETE: None,
    },
}


def state_from_flags(is_deleted: bool, is_archived: bool) -> LifecycleState:
    """Fold the two persisted flags into a LifecycleState

    Example:
        >>> state_from_flags(True, False)
        <LifecycleState.DELETED: 'DELETED'>
    """
    if is_deleted and is_archived:
        return LifecycleState.DELETED_AND_ARCHIVED
    if is_deleted:
        return LifecycleState.DELETED
    if is_archived:
        return LifecycleState.ARCHIVED
    return LifecycleState.ACTIVE


def flags_for(state: LifecycleState) -> Tuple[bool, bool]:
    """Return the (is_deleted, is_archived) pair persisted for a state"""
    return (
        state in (LifecycleState.DELETED, LifecycleState.DELETED_AND_ARCHIVED),
        state in (LifecycleState.ARCHIVED, LifecycleState.DELETED_AND_ARCHIVED),
    )


def can_transition(state: LifecycleState, action: LifecycleAction) -> bool:
    """Validate if an action is allowed from the current state

    Example:
        >>> can_transition(LifecycleState.ACTIVE, LifecycleAction.RESTORE)
        False
        >>> can_transition(LifecycleState.DELETED, LifecycleAction.RESTORE)
        True
    """
    return action in ALLOWED_TRANSITIONS.get(state, {})


def next_state(state: LifecycleState, action: LifecycleAction) -> Optional[LifecycleState]:
    """Resolve the state reached by applying an action

    Args:
        state: Current state
        action: Requested lifecycle action

    Returns:
        Target state, or None for PERMANENT_DELETE (row removed)

    Raises:
        StateConflictError: If the action is not allowed from ``state``
    """
    if not can_transition(state, action):
        raise StateConflictError(
            f"Cannot apply {action.value} to a document in state {state.value}"
        )
    return ALLOWED_TRANSITIONS[state][action]


def get_allowed_actions(state: LifecycleState) -> List[LifecycleAction]:
    """Get list of actions allowed from the current state"""
    return list(ALLOWED_TRANSITIONS.get(state, {}).keys())
