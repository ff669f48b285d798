"""Unit tests for the external tool wrappers."""

from __future__ import annotations

import subprocess
from pathlib import Path
from unittest.mock import MagicMock, patch

import pytest
import yaml

from macmagik_cli.bootstrap.tools import (
    CommandResult,
    CommandRunner,
    DeleteOutcome,
    ExternalToolClient,
    Helm,
    Kubectl,
    Privileged,
    TrustStore,
)
from macmagik_cli.config import BootstrapConfig
from macmagik_cli.errors import ApplyError, InsufficientPrivilegeError, TrustStoreError


class TestCommandRunner:
    """Tests for CommandRunner."""

    def test_run_captures_output(self):
        """stdout, stderr and the exit code are captured."""
        with patch("subprocess.run") as mock_run:
            mock_run.return_value = MagicMock(returncode=0, stdout="ok", stderr="")
            result = CommandRunner().run(["kubectl", "version"])

        assert result.ok
        assert result.stdout == "ok"
        assert mock_run.call_args.kwargs["capture_output"] is True

    def test_missing_binary(self):
        """A missing binary becomes exit code 127."""
        with patch("subprocess.run", side_effect=FileNotFoundError()):
            result = CommandRunner().run(["helm", "version"])
        assert result.returncode == 127
        assert "helm not found" in result.stderr

    def test_timeout(self):
        """A timeout becomes exit code 124."""
        with patch("subprocess.run", side_effect=subprocess.TimeoutExpired("kubectl", 5)):
            result = CommandRunner().run(["kubectl", "wait"], timeout=5)
        assert result.returncode == 124

    def test_not_found_detection(self):
        """NotFound markers in stderr are recognised."""
        result = CommandResult(["kubectl"], 1, "", 'Error from server (NotFound): "x" not found')
        assert result.not_found
        assert not CommandResult(["kubectl"], 1, "", "forbidden").not_found


class TestKubectl:
    """Tests for the Kubectl client."""

    def _kubectl(self, kubeconfig=None):
        runner = MagicMock()
        runner.run.return_value = CommandResult([], 0, "{}", "")
        return Kubectl(runner, kubeconfig), runner

    def test_kubeconfig_flag(self):
        """--kubeconfig is added when configured."""
        kubectl, runner = self._kubectl("/tmp/kubeconfig")
        kubectl.cluster_info()
        assert runner.run.call_args.args[0] == [
            "kubectl",
            "--kubeconfig",
            "/tmp/kubeconfig",
            "cluster-info",
        ]

    def test_apply_sends_yaml_on_stdin(self):
        """Documents are sent as multi-document YAML."""
        kubectl, runner = self._kubectl()
        docs = [{"kind": "Namespace", "metadata": {"name": "a"}}, {"kind": "Secret"}]
        kubectl.apply(docs, validate=False)

        args = runner.run.call_args.args[0]
        assert args == ["kubectl", "apply", "-f", "-", "--validate=false"]
        body = runner.run.call_args.kwargs["input"]
        assert list(yaml.safe_load_all(body)) == docs

    def test_delete_all_with_flags(self):
        """Deleting a whole kind uses --all plus force flags."""
        kubectl, runner = self._kubectl()
        kubectl.delete("pods", namespace="monitoring", force=True, grace_period=0)
        assert runner.run.call_args.args[0] == [
            "kubectl",
            "delete",
            "pods",
            "--all",
            "-n",
            "monitoring",
            "--force",
            "--grace-period=0",
        ]

    def test_wait_with_selector(self):
        """wait passes the condition, selector and a whole-second timeout."""
        kubectl, runner = self._kubectl()
        kubectl.wait("pods", "Ready", "ingress-nginx", 2.5, selector="app=echo")
        assert runner.run.call_args.args[0] == [
            "kubectl",
            "wait",
            "--for=condition=Ready",
            "pods",
            "-l",
            "app=echo",
            "-n",
            "ingress-nginx",
            "--timeout=2s",
        ]

    def test_get_json_missing(self):
        """get_json returns None when the object does not exist."""
        kubectl, runner = self._kubectl()
        runner.run.return_value = CommandResult([], 1, "", "NotFound")
        assert kubectl.get_json("secret", "default-tls", "monitoring") is None


class TestHelm:
    """Tests for the Helm client."""

    def test_upgrade_install_args(self, tmp_path: Path):
        """upgrade --install carries repo, namespace, values and wait flags."""
        runner = MagicMock()
        runner.run.return_value = CommandResult([], 0)
        values = tmp_path / "values.yaml"
        Helm(runner).upgrade_install(
            "prometheus",
            "kube-prometheus-stack",
            "monitoring",
            repo="https://prometheus-community.github.io/helm-charts",
            values_file=values,
            wait=True,
            timeout_seconds=600,
        )
        assert runner.run.call_args.args[0] == [
            "helm",
            "upgrade",
            "--install",
            "prometheus",
            "kube-prometheus-stack",
            "--repo",
            "https://prometheus-community.github.io/helm-charts",
            "--namespace",
            "monitoring",
            "--create-namespace",
            "-f",
            str(values),
            "--wait",
            "--timeout=600s",
        ]

    def test_uninstall_outcomes(self):
        """uninstall distinguishes deleted, absent and failed."""
        runner = MagicMock()
        helm = Helm(runner)

        runner.run.return_value = CommandResult([], 0)
        assert helm.uninstall("ingress-nginx", "ingress-nginx") == DeleteOutcome.DELETED

        runner.run.return_value = CommandResult([], 1, "", "Error: release: not found")
        assert helm.uninstall("ingress-nginx", "ingress-nginx") == DeleteOutcome.ALREADY_ABSENT

        runner.run.return_value = CommandResult([], 1, "", "Kubernetes cluster unreachable")
        with pytest.raises(ApplyError):
            helm.uninstall("ingress-nginx", "ingress-nginx")


class TestPrivileged:
    """Tests for sudo handling."""

    def test_non_interactive_uses_sudo_n(self):
        """Non-interactive runs never prompt for a password."""
        runner = MagicMock()
        runner.run.return_value = CommandResult([], 0)
        with patch("os.geteuid", return_value=501):
            Privileged(runner, interactive=False).run(["security", "list-keychains"])
        assert runner.run.call_args.args[0][:2] == ["sudo", "-n"]

    def test_root_skips_sudo(self):
        """Already running as root means no prefix."""
        runner = MagicMock()
        runner.run.return_value = CommandResult([], 0)
        with patch("os.geteuid", return_value=0):
            Privileged(runner, interactive=True).run(["tee", "/etc/hosts"])
        assert runner.run.call_args.args[0] == ["tee", "/etc/hosts"]

    def test_refused_sudo_raises(self):
        """A refused sudo is reported, never skipped."""
        runner = MagicMock()
        runner.run.return_value = CommandResult([], 1, "", "sudo: a password is required")
        with patch("os.geteuid", return_value=501):
            with pytest.raises(InsufficientPrivilegeError):
                Privileged(runner, interactive=False).run(["tee", "/etc/hosts"], step="hosts")

    def test_write_file_direct_when_writable(self, tmp_path: Path):
        """Writable files are written without sudo."""
        runner = MagicMock()
        target = tmp_path / "hosts"
        target.write_text("")
        Privileged(runner, interactive=False).write_file(target, "127.0.0.1 a.test\n")
        assert target.read_text() == "127.0.0.1 a.test\n"
        runner.run.assert_not_called()


class TestTrustStore:
    """Tests for the macOS keychain client."""

    def test_non_macos_raises(self):
        """The keychain is macOS only."""
        store = TrustStore(MagicMock(), "/Library/Keychains/System.keychain", "linux")
        with pytest.raises(TrustStoreError, match="only supported on macOS"):
            store.add_trusted_root(Path("/tmp/tls.crt"))

    def test_remove_absent(self):
        """Deleting a missing certificate is ALREADY_ABSENT."""
        privileged = MagicMock()
        privileged.run.return_value = CommandResult(
            [], 44, "", 'Unable to delete certificate matching "*.test"'
        )
        store = TrustStore(privileged, "/Library/Keychains/System.keychain", "darwin")
        assert store.remove("*.test") == DeleteOutcome.ALREADY_ABSENT

    def test_add_trusted_root_args(self):
        """add-trusted-cert trusts the cert as a root in the configured keychain."""
        privileged = MagicMock()
        privileged.run.return_value = CommandResult([], 0)
        store = TrustStore(privileged, "/Library/Keychains/System.keychain", "darwin")
        store.add_trusted_root(Path("/tmp/tls.crt"))
        assert privileged.run.call_args.args[0] == [
            "security",
            "add-trusted-cert",
            "-d",
            "-r",
            "trustRoot",
            "-k",
            "/Library/Keychains/System.keychain",
            "/tmp/tls.crt",
        ]


class TestExternalToolClient:
    """Tests for client construction."""

    def test_from_config(self):
        """Kubeconfig, keychain and sudo mode come from the config."""
        config = BootstrapConfig(
            kubeconfig="/k", keychain="/Library/Keychains/login.keychain", non_interactive=True
        )
        tools = ExternalToolClient.from_config(config, runner=MagicMock())
        assert tools.kubectl.kubeconfig == "/k"
        assert tools.helm.kubeconfig == "/k"
        assert tools.trust_store.keychain == "/Library/Keychains/login.keychain"
        assert tools.privileged.interactive is False
