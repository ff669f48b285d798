"""Unit tests for prerequisite detection."""

from __future__ import annotations

from unittest.mock import MagicMock, patch

import pytest

from macmagik_cli.bootstrap.prerequisites import (
    KubectlDetector,
    PrerequisiteChecker,
    ToolDetector,
)
from macmagik_cli.bootstrap.tools import CommandRunner, Kubectl
from macmagik_cli.errors import FatalPrereqError


class TestToolDetector:
    """Tests for ToolDetector."""

    def test_detect_available(self):
        """Version comes from the first output line."""
        with patch("subprocess.run") as mock_run:
            mock_run.return_value = MagicMock(returncode=0, stdout="v3.14.2\nextra", stderr="")
            info = ToolDetector(CommandRunner()).detect("helm", ["version", "--short"])

        assert info.available is True
        assert info.version == "v3.14.2"

    def test_detect_not_installed(self):
        """Missing binaries carry an install hint."""
        with patch("shutil.which", return_value=None):
            info = ToolDetector().detect("helm", ["version", "--short"])

        assert info.available is False
        assert "helm.sh" in info.error


class TestKubectlDetector:
    """Tests for KubectlDetector."""

    def test_cluster_reachable(self, tools):
        info = KubectlDetector(tools.kubectl).detect()
        assert info.kubectl_available is True
        assert info.cluster_reachable is True
        assert "v1.29.2" in info.kubectl_version

    def test_cluster_unreachable(self, tools, fake_cluster):
        fake_cluster.reachable = False
        info = KubectlDetector(tools.kubectl).detect()
        assert info.kubectl_available is True
        assert info.cluster_reachable is False
        assert "refused" in info.cluster_info


class TestPrerequisiteChecker:
    """Tests for the hard gate."""

    def test_all_present(self, tools):
        report = PrerequisiteChecker(tools.kubectl, "darwin").check()
        assert report.ok
        assert [t.name for t in report.tools] == ["helm", "openssl"]

    def test_missing_cluster_raises(self, tools, fake_cluster):
        fake_cluster.reachable = False
        with pytest.raises(FatalPrereqError, match="Docker Desktop Kubernetes"):
            PrerequisiteChecker(tools.kubectl, "darwin").check()

    def test_missing_tool_listed(self, tools):
        """Every missing tool is reported together."""

        def which(name):
            return None if name in ("helm", "openssl") else f"/usr/local/bin/{name}"

        with patch("shutil.which", side_effect=which):
            with pytest.raises(FatalPrereqError) as exc_info:
                PrerequisiteChecker(tools.kubectl, "darwin").check()

        problems = exc_info.value.detail["problems"]
        assert len(problems) == 2
        assert exc_info.value.step == "prerequisites"

    def test_non_macos_is_fatal_for_setup(self, tools):
        with pytest.raises(FatalPrereqError, match="macOS is required"):
            PrerequisiteChecker(tools.kubectl, "linux").check()

    def test_non_macos_warning_when_optional(self, tools):
        report = PrerequisiteChecker(tools.kubectl, "linux").inspect(require_macos=False)
        assert report.ok
        assert report.warnings

    def test_inspect_skips_optional_tools(self, tools, fake_cluster):
        report = PrerequisiteChecker(tools.kubectl, "darwin").inspect(
            require_helm=False, require_openssl=False
        )
        assert report.tools == []
        assert not any(c[0] in ("helm", "openssl") for c in fake_cluster.calls)

    def test_default_platform(self):
        with patch("sys.platform", "darwin"):
            checker = PrerequisiteChecker(Kubectl(CommandRunner()))
        assert checker.platform_name == "darwin"
