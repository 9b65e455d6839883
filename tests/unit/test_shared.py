"""
Unit tests for shared configuration, errors, retry and layout helpers.
"""

from unittest.mock import AsyncMock, patch

import pytest

from shared.config import get_config
from shared.errors import (
    CompilationError,
    MultiActionUnsupportedError,
    RegistrationError,
    StoreError,
    UnsupportedActionError,
)
from shared.retry import RetryConfig, RetryError, calculate_delay, is_retryable_status, retry_on_exception
from shared.trees import (
    COMPILED,
    NamespaceLayout,
    content_type_for,
    fill_tree,
    rules_tree,
    service_rules_tree,
)


class TestConfig:
    """Test cases for service configuration."""

    def test_defaults(self):
        """Test default configuration values."""
        config = get_config("rules-engine", 8020)

        assert config.service_name == "rules-engine"
        assert config.port == 8020
        assert config.global_root == "/bookmarks/rules"
        assert config.check_types is False

    def test_environment_override(self, monkeypatch):
        """Test that RULES_* variables override defaults."""
        monkeypatch.setenv("RULES_STORE_URL", "http://store:8080")
        monkeypatch.setenv("RULES_CHECK_TYPES", "true")

        config = get_config("rules-engine", 8020)

        assert config.store_url == "http://store:8080"
        assert config.check_types is True

    def test_layout_from_config(self, monkeypatch):
        """Test that the namespace layout follows configuration."""
        monkeypatch.setenv("RULES_GLOBAL_ROOT", "/g/")
        monkeypatch.setenv("RULES_SERVICES_ROOT", "/s")

        layout = NamespaceLayout.from_config(get_config("rules-engine", 8020))

        assert layout.global_path(COMPILED) == "/g/compiled"
        assert layout.service_path("mailer", COMPILED, "w1") == "/s/mailer/rules/compiled/w1"


class TestErrors:
    """Test cases for error types."""

    def test_compilation_error_response(self):
        """Test conversion to an error response."""
        error = MultiActionUnsupportedError(details={"actions": ["a", "b"]})

        response = error.to_response()

        assert isinstance(error, CompilationError)
        assert error.status_code == 422
        assert response.code == "MULTI_ACTION_UNSUPPORTED"
        assert response.details == {"actions": ["a", "b"]}

    def test_status_codes(self):
        """Test HTTP statuses of error families."""
        assert RegistrationError().status_code == 502
        assert UnsupportedActionError("fax").status_code == 500
        assert StoreError("x", status=404).status_code == 404

    def test_unsupported_action_names_action(self):
        """Test that the unsupported action is kept on the error."""
        error = UnsupportedActionError("fax")

        assert error.action == "fax"
        assert "fax" in error.message


class TestRetry:
    """Test cases for the retry decorator."""

    def test_delay_is_capped(self):
        """Test exponential backoff with a cap."""
        config = RetryConfig(base_delay=1.0, max_delay=3.0, jitter=False)

        assert [calculate_delay(n, config) for n in (1, 2, 3, 4)] == [1.0, 2.0, 3.0, 3.0]

    def test_retryable_statuses(self):
        """Test which store errors are worth retrying."""
        assert is_retryable_status(StoreError("busy", status=503))
        assert not is_retryable_status(StoreError("missing", status=404))
        assert is_retryable_status(ConnectionError("reset"))

    @pytest.mark.asyncio
    async def test_exhausted(self):
        """Test that RetryError wraps the last failure."""
        calls = []

        @retry_on_exception((ConnectionError,), RetryConfig(max_attempts=2, jitter=False))
        async def flaky():
            calls.append(1)
            raise ConnectionError("reset")

        with patch("shared.retry.asyncio.sleep", new=AsyncMock()):
            with pytest.raises(RetryError) as exc_info:
                await flaky()

        assert len(calls) == 2
        assert exc_info.value.attempts == 2
        assert isinstance(exc_info.value.last_exception, ConnectionError)

    @pytest.mark.asyncio
    async def test_non_retryable_propagates(self):
        """Test that rejected errors are raised on the first attempt."""
        calls = []

        @retry_on_exception((StoreError,), RetryConfig(max_attempts=3))
        async def missing():
            calls.append(1)
            raise StoreError("missing", status=404)

        with pytest.raises(StoreError):
            await missing()

        assert len(calls) == 1


class TestTrees:
    """Test cases for namespace trees."""

    def test_content_type_for_wildcards(self):
        """Test content type lookup through wildcard levels."""
        path = "/bookmarks/services/mailer/rules/compiled/w1"

        assert content_type_for(service_rules_tree, path) == "application/vnd.oada.rule.compiled.1+json"
        assert content_type_for(rules_tree, "/bookmarks/rules/configured") == \
            "application/vnd.oada.rules.configured.1+json"
        assert content_type_for(rules_tree, "/elsewhere") is None
        assert content_type_for(None, "/bookmarks") is None

    @pytest.mark.asyncio
    async def test_fill_tree_one_level_at_a_time(self):
        """Test that every level is created with its own request."""
        conn = AsyncMock()

        await fill_tree(conn, rules_tree, "/bookmarks/rules")

        assert [call.args[0] for call in conn.put.call_args_list] == ["/bookmarks", "/bookmarks/rules"]
