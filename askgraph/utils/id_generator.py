"""
ID generation utilities for Ask Your Graph.

Provides consistent ID generation for all entity types:
- Blocks: 9 url-safe characters (graph uid format)
- Result sets: rs_xxx
- Conversation sessions: sess_xxx
- Requests: req_xxx
"""

import secrets
import string
from uuid import uuid4

_UID_ALPHABET = string.ascii_letters + string.digits + "-_"


def generate_block_uid() -> str:
    """
    Generate a block uid in the graph's native format.

    Returns:
        9 characters drawn from [A-Za-z0-9_-]
    """
    return "".join(secrets.choice(_UID_ALPHABET) for _ in range(9))


def generate_result_set_id() -> str:
    """
    Generate unique ResultSet ID.

    Returns:
        ID in format "rs_xxx" where xxx is 12 hex characters
    """
    return f"rs_{uuid4().hex[:12]}"


def generate_session_id() -> str:
    """
    Generate unique conversation session ID.

    Returns:
        ID in format "sess_xxx" where xxx is 12 hex characters
    """
    return f"sess_{uuid4().hex[:12]}"


def generate_request_id() -> str:
    """
    Generate unique request ID.

    Returns:
        ID in format "req_xxx" where xxx is 12 hex characters
    """
    return f"req_{uuid4().hex[:12]}"
