"""Tests for caller sessions."""

import pytest

from congregation_backup.auth.session import (
    OPERATOR_ENV_VAR,
    StaticSession,
    Unauthorized,
    User,
    require_user,
    session_from_config,
)


class TestRequireUser:
    """Tests for require_user."""

    def test_returns_user(self, user):
        """Test the session's caller is returned."""
        assert require_user(StaticSession(user)) == user

    def test_anonymous_raises(self):
        """Test a session without a caller raises Unauthorized."""
        with pytest.raises(Unauthorized, match="^Unauthorized$"):
            require_user(StaticSession(None))

    def test_any_callable_is_a_session(self):
        """Test plain callables work as sessions."""
        assert require_user(lambda: User(id="u2")).id == "u2"


class TestSessionFromConfig:
    """Tests for session_from_config."""

    def test_explicit_operator_wins(self, monkeypatch):
        """Test the explicit operator beats config and environment."""
        monkeypatch.setenv(OPERATOR_ENV_VAR, "env-user")
        session = session_from_config({"operator": "config-user"}, "cli-user")
        assert session() == User(id="cli-user", name="cli-user")

    def test_config_operator(self, monkeypatch):
        """Test the config value beats the environment."""
        monkeypatch.setenv(OPERATOR_ENV_VAR, "env-user")
        assert session_from_config({"operator": "config-user"})().id == "config-user"

    def test_environment_operator(self, monkeypatch):
        """Test the environment is used last."""
        monkeypatch.setenv(OPERATOR_ENV_VAR, "env-user")
        assert session_from_config({})().id == "env-user"

    def test_no_operator(self, monkeypatch):
        """Test no operator gives an anonymous session."""
        monkeypatch.delenv(OPERATOR_ENV_VAR, raising=False)
        assert session_from_config({})() is None
