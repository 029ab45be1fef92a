"""Security utilities for handling untrusted strings.

Container names, origins and Docker error messages all come from outside the
process and end up in log lines, so they are sanitized before logging.
"""

import re
from typing import Union


def sanitize_log_message(msg: Union[str, bytes, int, float, None]) -> str:
    """Remove newlines and control characters from log messages.

    Prevents log injection where a crafted container name or Origin header
    carries newlines to forge extra log entries.

    Args:
        msg: Message to sanitize (will be converted to string)

    Returns:
        Sanitized message with control characters removed

    Examples:
        >>> sanitize_log_message("web\\nINFO fake entry")
        'webINFO fake entry'
    """
    if msg is None:
        return ""

    if isinstance(msg, bytes):
        msg = msg.decode("utf-8", errors="replace")

    # Pattern matches: \n, \r, \t, and control chars (0x00-0x1f, 0x7f-0x9f)
    return re.sub(r"[\n\r\t\x00-\x1f\x7f-\x9f]", "", str(msg))


def short_id(container_id: str) -> str:
    """Return the 12-character short form Docker prints for container IDs."""
    return sanitize_log_message(container_id)[:12]
