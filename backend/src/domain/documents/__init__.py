"""Documents domain module - lifecycle states, validation, errors and ports"""

from .lifecycle_state import (
    LifecycleState,
    LifecycleAction,
    ALLOWED_TRANSITIONS,
    state_from_flags,
    flags_for,
    can_transition,
    next_state,
    get_allowed_actions,
)
from .errors import (
    DocumentError,
    StateConflictError,
    DocumentNotFoundError,
    DuplicateContentError,
    DocumentValidationError,
    InfrastructureError,
    StorageError,
    SearchIndexError,
)
from .validation import (
    validate_title,
    validate_mime_type,
    validate_file_size,
    validate_filename,
    clamp_access_link_ttl,
    require_valid,
    MAX_ACCESS_LINK_TTL,
    MAX_FILE_SIZE,
)

__all__ = [
    "LifecycleState",
    "LifecycleAction",
    "ALLOWED_TRANSITIONS",
    "state_from_flags",
    "flags_for",
    "can_transition",
    "next_state",
    "get_allowed_actions",
    "DocumentError",
    "StateConflictError",
    "DocumentNotFoundError",
    "DuplicateContentError",
    "DocumentValidationError",
    "InfrastructureError",
    "StorageError",
    "SearchIndexError",
    "validate_title",
    "validate_mime_type",
    "validate_file_size",
    "validate_filename",
    "clamp_access_link_ttl",
    "require_valid",
    "MAX_ACCESS_LINK_TTL",
    "MAX_FILE_SIZE",
]
