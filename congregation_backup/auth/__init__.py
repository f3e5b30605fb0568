"""
congregation_backup.auth - Caller identity

Resolves the authenticated caller that backup and restore require.
"""

from congregation_backup.auth.session import (
    OPERATOR_ENV_VAR,
    Session,
    StaticSession,
    Unauthorized,
    User,
    require_user,
    session_from_config,
)

__all__ = [
    "OPERATOR_ENV_VAR",
    "Session",
    "StaticSession",
    "Unauthorized",
    "User",
    "require_user",
    "session_from_config",
]
