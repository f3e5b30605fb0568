"""
Caller identity for backup and restore operations.

Authentication itself happens outside this package. Operations only need
to know who the current caller is, or that there is none. A session is
any callable returning the current User or None.
"""

from __future__ import annotations

import os
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any, Optional

# Environment variable naming the operator when no config value is set
OPERATOR_ENV_VAR = "CONGREGATION_BACKUP_USER"


class Unauthorized(Exception):
    """Raised when an operation requires an authenticated caller and has none."""

    def __init__(self, message: str = "Unauthorized"):
        super().__init__(message)


@dataclass(frozen=True)
class User:
    """
    An authenticated caller.

    Attributes:
        id: Stable identifier, recorded as the snapshot's createdBy
        name: Display name
    """

    id: str
    name: str = ""


Session = Callable[[], Optional[User]]


class StaticSession:
    """
    Session that always reports the same caller.

    Usage:
        session = StaticSession(User(id="u1", name="Secretary"))
        session()  # User(id="u1", name="Secretary")

        anonymous = StaticSession(None)
        anonymous()  # None
    """

    def __init__(self, user: User | None):
        self.user = user

    def __call__(self) -> User | None:
        return self.user


def require_user(session: Session) -> User:
    """
    Get the current caller or fail.

    Raises:
        Unauthorized: If the session has no authenticated caller
    """
    user = session()
    if user is None:
        raise Unauthorized()
    return user


def session_from_config(
    config: dict[str, Any], operator: str | None = None
) -> StaticSession:
    """
    Build the session for command-line use.

    Priority:
        1. Explicit operator argument (e.g. --user)
        2. "operator" key of the configuration file
        3. CONGREGATION_BACKUP_USER environment variable

    Returns a session with no caller if none of these is set.
    """
    name = operator or config.get("operator") or os.environ.get(OPERATOR_ENV_VAR)
    if not name:
        return StaticSession(None)
    return StaticSession(User(id=name, name=name))
