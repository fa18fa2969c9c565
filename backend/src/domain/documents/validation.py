"""Input validation for document operations

Validation runs before any store or blob-store access. Each check returns a
``(is_valid, error_message)`` tuple; ``require_*`` helpers raise
DocumentValidationError instead.
"""

import os
import re
from datetime import timedelta
from typing import Optional, Tuple

from .errors import DocumentValidationError


# Hard ceiling for temporary access links, independent of the blob store
MAX_ACCESS_LINK_TTL = timedelta(hours=24)

# File size limit (default 100MB, configurable via env)
MAX_FILE_SIZE = int(os.getenv('MAX_UPLOAD_SIZE_BYTES', 100 * 1024 * 1024))

MAX_TITLE_LENGTH = 500

_MIME_TYPE_PATTERN = re.compile(r"^[\w.+-]+/[\w.+-]+$")


def validate_title(title: Optional[str]) -> Tuple[bool, Optional[str]]:
    """Validate a document title

    Example:
        >>> validate_title('Quarterly report')
        (True, None)
        >>> validate_title('   ')
        (False, 'Title cannot be empty')
    """
    if not title or not title.strip():
        return False, "Title cannot be empty"

    if len(title) > MAX_TITLE_LENGTH:
        return False, f"Title exceeds {MAX_TITLE_LENGTH} characters (got {len(title)})"

    return True, None


def validate_mime_type(mime_type: Optional[str]) -> Tuple[bool, Optional[str]]:
    """Validate MIME type syntax (type/subtype)

    Example:
        >>> validate_mime_type('application/pdf')
        (True, None)
        >>> validate_mime_type('pdf')
        (False, 'Invalid MIME type: pdf')
    """
    if not mime_type:
        return False, "MIME type cannot be empty"

    if not _MIME_TYPE_PATTERN.match(mime_type):
        return False, f"Invalid MIME type: {mime_type}"

    return True, None


def validate_file_size(size_bytes: int, max_size: Optional[int] = None) -> Tuple[bool, Optional[str]]:
    """Validate file size is within limits

    Example:
        >>> validate_file_size(1024)
        (True, None)
        >>> validate_file_size(0)
        (False, 'File is empty (0 bytes)')
    """
    if max_size is None:
        max_size = MAX_FILE_SIZE

    if size_bytes == 0:
        return False, "File is empty (0 bytes)"

    if size_bytes > max_size:
        return False, f"File exceeds maximum size of {max_size} bytes (got {size_bytes} bytes)"

    return True, None


def validate_filename(filename: str) -> Tuple[bool, Optional[str]]:
    """Validate an original file name

    Validation rules:
    - Not empty
    - Max 255 characters
    - No path traversal (../, ..\\)
    - No null bytes or control characters

    Example:
        >>> validate_filename('contract.pdf')
        (True, None)
        >>> validate_filename('../../etc/passwd')
        (False, 'Filename contains path traversal or directory separators')
    """
    if not filename or len(filename.strip()) == 0:
        return False, "Filename cannot be empty"

    if len(filename) > 255:
        return False, f"Filename exceeds 255 characters (got {len(filename)})"

    if '..' in filename or '/' in filename or '\\' in filename:
        return False, "Filename contains path traversal or directory separators"

    if '\x00' in filename:
        return False, "Filename contains null bytes"

    if any(ord(c) < 32 for c in filename):
        return False, "Filename contains control characters"

    return True, None


def clamp_access_link_ttl(requested_ttl: timedelta) -> timedelta:
    """Clamp a requested link lifetime to MAX_ACCESS_LINK_TTL

    Raises:
        DocumentValidationError: If the requested TTL is not positive

    Example:
        >>> clamp_access_link_ttl(timedelta(minutes=2000))
        datetime.timedelta(days=1)
    """
    if requested_ttl <= timedelta(0):
        raise DocumentValidationError("Access link TTL must be greater than zero")
    return min(requested_ttl, MAX_ACCESS_LINK_TTL)


def require_valid(check: Tuple[bool, Optional[str]]) -> None:
    """Raise DocumentValidationError for a failed ``validate_*`` result

    Example:
        require_valid(validate_title(request.title))
    """
    is_valid, message = check
    if not is_valid:
        raise DocumentValidationError(message)
