"""
Unit tests for external tool dependency checks.
"""

from unittest.mock import patch

import pytest

from explorerllm_ops.core.exceptions import MissingDependencyError
from explorerllm_ops.models.config import OpsSettings, RemoteTarget
from explorerllm_ops.validation.dependency import DependencyValidator, local_tools


class TestLocalTools:

    def test_default(self):
        assert local_tools(OpsSettings()) == ["docker", "docker-compose"]

    def test_compose_plugin_is_not_duplicated(self):
        settings = OpsSettings(compose_command="docker compose")
        assert local_tools(settings) == ["docker"]


class TestDependencyValidator:
    """Test cases for DependencyValidator"""

    def test_local_tools_present(self, runner):
        validator = DependencyValidator(runner)
        with patch("explorerllm_ops.validation.dependency.shutil.which", return_value="/usr/bin/x"):
            validator.require(["docker", "rsync"])
        assert runner.calls == []

    def test_first_missing_tool_is_reported(self, runner):
        validator = DependencyValidator(runner)
        with patch("explorerllm_ops.validation.dependency.shutil.which",
                   side_effect=lambda tool: None if tool == "rsync" else f"/usr/bin/{tool}"):
            with pytest.raises(MissingDependencyError) as exc_info:
                validator.require(["docker", "rsync", "ssh"])

        assert exc_info.value.details["tool"] == "rsync"
        assert "rsync" in exc_info.value.remediation[0]

    def test_remote_check(self, runner, world):
        world.host("new").tools = {"rsync"}
        validator = DependencyValidator(runner)
        target = RemoteTarget(host="new", user="ops")

        assert validator.is_available("rsync", target)
        with pytest.raises(MissingDependencyError, match="on new"):
            validator.require(["docker"], target)
        assert runner.commands_on("new")[-1] == ["sh", "-c", "command -v docker"]

    def test_unknown_tool_hint(self, runner):
        validator = DependencyValidator(runner)
        with patch("explorerllm_ops.validation.dependency.shutil.which", return_value=None):
            with pytest.raises(MissingDependencyError) as exc_info:
                validator.require(["pigz"])
        assert exc_info.value.remediation == ["Install pigz"]
