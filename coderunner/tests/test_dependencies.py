"""Tests for dependency injection."""

from unittest.mock import MagicMock, patch

import pytest

from coderunner import state
from coderunner.errors import ServiceUnavailableError


def _settings(enabled=True):
    settings = MagicMock()
    settings.sandbox.enabled = enabled
    return settings


class TestGetRuntime:
    """Test get_runtime dependency."""

    def test_returns_runtime_when_connected(self):
        from coderunner.dependencies import get_runtime

        runtime = MagicMock()
        with patch.object(state, "runtime", runtime), patch("coderunner.dependencies.get_settings", _settings):
            assert get_runtime() is runtime

    def test_raises_when_not_connected(self):
        from coderunner.dependencies import get_runtime

        with patch.object(state, "runtime", None), patch("coderunner.dependencies.get_settings", _settings):
            with pytest.raises(ServiceUnavailableError) as exc_info:
                get_runtime()
            assert "Docker not connected" in exc_info.value.detail

    def test_raises_when_disabled(self):
        from coderunner.dependencies import get_runtime

        with patch.object(state, "runtime", MagicMock()), patch(
            "coderunner.dependencies.get_settings", lambda: _settings(enabled=False)
        ):
            with pytest.raises(ServiceUnavailableError) as exc_info:
                get_runtime()
            assert exc_info.value.detail == "Code execution is disabled"


class TestGetOptionalRuntime:
    def test_returns_none_when_disabled(self):
        from coderunner.dependencies import get_optional_runtime

        with patch.object(state, "runtime", MagicMock()), patch(
            "coderunner.dependencies.get_settings", lambda: _settings(enabled=False)
        ):
            assert get_optional_runtime() is None

    def test_returns_runtime(self):
        from coderunner.dependencies import get_optional_runtime

        runtime = MagicMock()
        with patch.object(state, "runtime", runtime), patch("coderunner.dependencies.get_settings", _settings):
            assert get_optional_runtime() is runtime


class TestGetRegistry:
    def test_raises_when_not_initialized(self):
        from coderunner.dependencies import get_registry

        with patch.object(state, "registry", None):
            with pytest.raises(ServiceUnavailableError):
                get_registry()

    def test_returns_registry(self, registry):
        from coderunner.dependencies import get_registry

        with patch.object(state, "registry", registry):
            assert get_registry() is registry
