"""
Database helper utilities for resolving the acting user.

Authentication happens upstream; requests may name a user explicitly.
"""
from typing import Optional

from subtrack.config import settings


def get_user_id(user_id: Optional[str] = None) -> str:
    """
    Get the user ID for a request.

    Args:
        user_id: Optional explicit user ID from the request

    Returns:
        The explicit user ID, or the configured default user
    """
    if user_id and user_id.strip():
        return user_id.strip()
    return settings.default_user_id
