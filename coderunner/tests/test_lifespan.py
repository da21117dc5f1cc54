"""Tests for lifespan management."""

from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from coderunner import state


class TestLifespanResources:
    def test_lifespan_resources_defaults(self):
        from coderunner.lifespan import LifespanResources

        resources = LifespanResources()
        assert resources.runtime is None
        assert resources.registry is None
        assert resources.execution_log is None


class TestInitRuntime:
    """Test init_runtime function."""

    def test_returns_none_when_disabled(self):
        from coderunner.lifespan import init_runtime

        with patch("coderunner.lifespan.get_settings") as mock_settings:
            mock_settings.return_value.sandbox.enabled = False
            assert init_runtime() is None

    def test_connects_with_settings(self):
        from coderunner.lifespan import init_runtime

        runtime = MagicMock()
        with patch("coderunner.lifespan.get_settings") as mock_settings, patch(
            "coderunner.lifespan.DockerRuntime.from_settings", return_value=runtime
        ) as from_settings:
            mock_settings.return_value.sandbox.enabled = True
            mock_settings.return_value.docker.base_url = "unix:///var/run/docker.sock"
            mock_settings.return_value.docker.timeout = 30
            mock_settings.return_value.docker.max_pool_size = 4

            assert init_runtime() is runtime
            from_settings.assert_called_once_with(
                base_url="unix:///var/run/docker.sock", timeout=30, max_pool_size=4
            )

    def test_returns_none_when_daemon_unreachable(self):
        from coderunner.lifespan import init_runtime

        with patch("coderunner.lifespan.get_settings") as mock_settings, patch(
            "coderunner.lifespan.DockerRuntime.from_settings", side_effect=RuntimeError("no socket")
        ):
            mock_settings.return_value.sandbox.enabled = True
            assert init_runtime() is None


class TestSetupAndCleanup:
    """Test resource setup and cleanup."""

    @pytest.mark.asyncio
    async def test_setup_populates_state(self, fake_runtime):
        from coderunner.lifespan import cleanup_resources, setup_resources

        with patch("coderunner.lifespan.init_runtime", return_value=fake_runtime):
            resources = await setup_resources()

        try:
            assert state.runtime is fake_runtime
            assert state.registry is resources.registry
            assert "java" in state.registry
            assert state.execution_log is resources.execution_log
        finally:
            await cleanup_resources(resources)

        assert fake_runtime.closed
        assert state.runtime is None
        assert state.registry is None
        assert state.execution_log is None

    @pytest.mark.asyncio
    async def test_cleanup_tolerates_close_failure(self):
        from coderunner.lifespan import LifespanResources, cleanup_resources

        runtime = MagicMock()
        runtime.close = AsyncMock(side_effect=RuntimeError("already closed"))
        await cleanup_resources(LifespanResources(runtime=runtime))
        runtime.close.assert_awaited_once()
