"""Thin wrappers over the external command-line tools.

Every mutation of the cluster, trust store or hosts file goes through one of
the clients in this module, so tests can swap the ``CommandRunner`` for a fake.
"""

from __future__ import annotations

import json
import os
import subprocess
import sys
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Any

import structlog
import yaml

from ..config import BootstrapConfig
from ..errors import ApplyError, InsufficientPrivilegeError, TrustStoreError

logger = structlog.get_logger(__name__)

NOT_FOUND_MARKERS = ("NotFound", "not found", "could not be found")
SUDO_REFUSED_MARKERS = ("a password is required", "a terminal is required", "not in the sudoers")


class DeleteOutcome(Enum):
    """Result of a tolerant delete."""

    DELETED = "deleted"
    ALREADY_ABSENT = "already_absent"
    IGNORED = "ignored"  # Failure that the caller chose to tolerate


@dataclass
class CommandResult:
    """Result of a single external command."""

    args: list[str]
    returncode: int
    stdout: str = ""
    stderr: str = ""

    @property
    def ok(self) -> bool:
        return self.returncode == 0

    @property
    def not_found(self) -> bool:
        return any(marker in self.stderr for marker in NOT_FOUND_MARKERS)


class CommandRunner:
    """Run external commands synchronously."""

    def run(
        self,
        args: list[str],
        input: str | None = None,
        timeout: float | None = None,
    ) -> CommandResult:
        """Run a command and capture its output.

        A missing binary is reported as exit code 127 rather than raised.
        """
        logger.debug("command.run", args=args)
        try:
            result = subprocess.run(
                args,
                input=input,
                capture_output=True,
                text=True,
                timeout=timeout,
            )
        except FileNotFoundError:
            return CommandResult(args, 127, "", f"{args[0]} not found")
        except subprocess.TimeoutExpired:
            return CommandResult(args, 124, "", f"{args[0]} timed out after {timeout}s")
        return CommandResult(args, result.returncode, result.stdout or "", result.stderr or "")


class Privileged:
    """Prefix commands with sudo when not already root."""

    def __init__(self, runner: CommandRunner, interactive: bool | None = None):
        self.runner = runner
        self.interactive = sys.stdin.isatty() if interactive is None else interactive

    def _prefix(self) -> list[str]:
        if hasattr(os, "geteuid") and os.geteuid() == 0:
            return []
        return ["sudo"] if self.interactive else ["sudo", "-n"]

    def run(self, args: list[str], input: str | None = None, step: str = "") -> CommandResult:
        """Run with elevated privilege.

        Raises:
            InsufficientPrivilegeError: sudo refused (e.g. no tty for a password).
        """
        result = self.runner.run(self._prefix() + args, input=input)
        if not result.ok and any(m in result.stderr for m in SUDO_REFUSED_MARKERS):
            raise InsufficientPrivilegeError(
                f"Elevated privilege required for: {' '.join(args[:2])}",
                step=step or args[0],
                detail={"stderr": result.stderr.strip()},
            )
        return result

    def write_file(self, path: Path, content: str, step: str = "hosts") -> None:
        """Replace a root-owned file's content in one write."""
        if os.access(path, os.W_OK):
            path.write_text(content)
            return
        result = self.run(["tee", str(path)], input=content, step=step)
        if not result.ok:
            raise InsufficientPrivilegeError(
                f"Cannot write {path}: {result.stderr.strip()}",
                step=step,
            )


class Kubectl:
    """Cluster-control client."""

    def __init__(self, runner: CommandRunner, kubeconfig: str | None = None):
        """Initialize kubectl client.

        Args:
            runner: Command runner.
            kubeconfig: Path to kubeconfig file.
        """
        self.runner = runner
        self.kubeconfig = kubeconfig

    def _kubectl_cmd(self) -> list[str]:
        """Build base kubectl command."""
        cmd = ["kubectl"]
        if self.kubeconfig:
            cmd.extend(["--kubeconfig", self.kubeconfig])
        return cmd

    def run(self, args: list[str], input: str | None = None) -> CommandResult:
        return self.runner.run(self._kubectl_cmd() + args, input=input)

    def cluster_info(self) -> CommandResult:
        return self.run(["cluster-info"])

    def apply(self, documents: list[dict[str, Any]], validate: bool = True) -> CommandResult:
        """Apply manifests from stdin (create-or-update)."""
        args = ["apply", "-f", "-"]
        if not validate:
            args.append("--validate=false")
        body = yaml.safe_dump_all(documents, default_flow_style=False, sort_keys=False)
        return self.run(args, input=body)

    def apply_url(
        self, url: str, namespace: str | None = None, validate: bool = True
    ) -> CommandResult:
        args = ["apply", "-f", url]
        if namespace:
            args.extend(["-n", namespace])
        if not validate:
            args.append("--validate=false")
        return self.run(args)

    def get(
        self, kind: str, name: str | None = None, namespace: str | None = None
    ) -> CommandResult:
        args = ["get", kind]
        if name:
            args.append(name)
        if namespace:
            args.extend(["-n", namespace])
        return self.run(args + ["-o", "json"])

    def get_json(
        self, kind: str, name: str | None = None, namespace: str | None = None
    ) -> dict[str, Any] | None:
        """Fetch an object (or list) as JSON; None when it does not exist."""
        result = self.get(kind, name, namespace)
        if not result.ok:
            return None
        try:
            return json.loads(result.stdout)
        except json.JSONDecodeError:
            return None

    def delete(
        self,
        kind: str,
        name: str | None = None,
        namespace: str | None = None,
        force: bool = False,
        grace_period: int | None = None,
        timeout_seconds: int | None = None,
    ) -> CommandResult:
        args = ["delete", kind]
        args.append(name if name else "--all")
        if namespace:
            args.extend(["-n", namespace])
        if force:
            args.append("--force")
        if grace_period is not None:
            args.append(f"--grace-period={grace_period}")
        if timeout_seconds is not None:
            args.append(f"--timeout={timeout_seconds}s")
        return self.run(args)

    def wait(
        self,
        target: str,
        condition: str,
        namespace: str,
        timeout_seconds: float,
        selector: str | None = None,
    ) -> CommandResult:
        args = ["wait", f"--for=condition={condition}", target]
        if selector:
            args.extend(["-l", selector])
        args.extend(["-n", namespace, f"--timeout={max(1, int(timeout_seconds))}s"])
        return self.run(args)

    def patch_merge(
        self, kind: str, name: str, patch: dict[str, Any], namespace: str | None = None
    ) -> CommandResult:
        args = ["patch", kind, name, "-p", json.dumps(patch), "--type=merge"]
        if namespace:
            args.extend(["-n", namespace])
        return self.run(args)


class Helm:
    """Package-release manager client."""

    def __init__(self, runner: CommandRunner, kubeconfig: str | None = None):
        self.runner = runner
        self.kubeconfig = kubeconfig

    def _helm_cmd(self) -> list[str]:
        cmd = ["helm"]
        if self.kubeconfig:
            cmd.extend(["--kubeconfig", self.kubeconfig])
        return cmd

    def version(self) -> CommandResult:
        return self.runner.run(self._helm_cmd() + ["version", "--short"])

    def release_exists(self, release: str, namespace: str) -> bool:
        result = self.runner.run(self._helm_cmd() + ["status", release, "-n", namespace])
        return result.ok

    def upgrade_install(
        self,
        release: str,
        chart: str,
        namespace: str,
        repo: str | None = None,
        values_file: Path | None = None,
        wait: bool = False,
        timeout_seconds: int | None = None,
    ) -> CommandResult:
        """Install or upgrade a release (upsert)."""
        args = self._helm_cmd() + ["upgrade", "--install", release, chart]
        if repo:
            args.extend(["--repo", repo])
        args.extend(["--namespace", namespace, "--create-namespace"])
        if values_file:
            args.extend(["-f", str(values_file)])
        if wait:
            args.append("--wait")
        if timeout_seconds:
            args.append(f"--timeout={timeout_seconds}s")
        logger.info("helm.upgrade", release=release, chart=chart, namespace=namespace)
        return self.runner.run(args)

    def uninstall(self, release: str, namespace: str) -> DeleteOutcome:
        result = self.runner.run(self._helm_cmd() + ["uninstall", release, "-n", namespace])
        if result.ok:
            return DeleteOutcome.DELETED
        if result.not_found:
            return DeleteOutcome.ALREADY_ABSENT
        raise ApplyError(
            f"helm uninstall {release} failed: {result.stderr.strip()}",
            step=f"helm-uninstall:{release}",
        )

    def repo_remove(self, name: str) -> DeleteOutcome:
        result = self.runner.run(self._helm_cmd() + ["repo", "remove", name])
        if result.ok:
            return DeleteOutcome.DELETED
        if result.not_found or "no repo named" in result.stderr:
            return DeleteOutcome.ALREADY_ABSENT
        raise ApplyError(
            f"helm repo remove {name} failed: {result.stderr.strip()}",
            step=f"helm-repo:{name}",
        )


class TrustStore:
    """macOS keychain client (``security``)."""

    def __init__(self, privileged: Privileged, keychain: str, platform_name: str | None = None):
        self.privileged = privileged
        self.keychain = keychain
        self.platform_name = platform_name or sys.platform

    def _require_macos(self) -> None:
        if self.platform_name != "darwin":
            raise TrustStoreError(
                f"OS trust store is only supported on macOS (found {self.platform_name})",
                remediation="Trust the certificate manually for this OS",
            )

    def add_trusted_root(self, cert_path: Path) -> None:
        self._require_macos()
        result = self.privileged.run(
            [
                "security",
                "add-trusted-cert",
                "-d",
                "-r",
                "trustRoot",
                "-k",
                self.keychain,
                str(cert_path),
            ],
            step="trust-store",
        )
        if not result.ok:
            raise TrustStoreError(
                f"Failed to add certificate to keychain: {result.stderr.strip()}",
                detail={"keychain": self.keychain},
            )

    def remove(self, common_name: str) -> DeleteOutcome:
        self._require_macos()
        result = self.privileged.run(
            ["security", "delete-certificate", "-c", common_name, self.keychain],
            step="trust-store",
        )
        if result.ok:
            return DeleteOutcome.DELETED
        if "Unable to delete certificate matching" in result.stderr or result.not_found:
            return DeleteOutcome.ALREADY_ABSENT
        raise TrustStoreError(
            f"Failed to remove '{common_name}' from keychain: {result.stderr.strip()}"
        )

    def contains(self, common_name: str) -> bool:
        self._require_macos()
        result = self.privileged.runner.run(
            ["security", "find-certificate", "-c", common_name, self.keychain]
        )
        return result.ok


class OpenSSL:
    """Certificate tool client."""

    def __init__(self, runner: CommandRunner):
        self.runner = runner

    def self_signed(
        self, config_path: Path, key_path: Path, cert_path: Path, days: int
    ) -> CommandResult:
        return self.runner.run(
            [
                "openssl",
                "req",
                "-x509",
                "-nodes",
                "-days",
                str(days),
                "-newkey",
                "rsa:2048",
                "-keyout",
                str(key_path),
                "-out",
                str(cert_path),
                "-config",
                str(config_path),
                "-extensions",
                "req_ext",
            ]
        )


@dataclass
class ExternalToolClient:
    """Bundle of collaborator clients handed to every component."""

    runner: CommandRunner
    kubectl: Kubectl
    helm: Helm
    trust_store: TrustStore
    openssl: OpenSSL
    privileged: Privileged

    @classmethod
    def create(
        cls,
        runner: CommandRunner | None = None,
        kubeconfig: str | None = None,
        keychain: str = "/Library/Keychains/System.keychain",
        interactive: bool | None = None,
        platform_name: str | None = None,
    ) -> ExternalToolClient:
        runner = runner or CommandRunner()
        privileged = Privileged(runner, interactive=interactive)
        return cls(
            runner=runner,
            kubectl=Kubectl(runner, kubeconfig),
            helm=Helm(runner, kubeconfig),
            trust_store=TrustStore(privileged, keychain, platform_name),
            openssl=OpenSSL(runner),
            privileged=privileged,
        )

    @classmethod
    def from_config(
        cls, config: BootstrapConfig, runner: CommandRunner | None = None
    ) -> ExternalToolClient:
        """Clients for the kubeconfig, keychain and sudo mode in ``config``."""
        return cls.create(
            runner=runner,
            kubeconfig=config.kubeconfig,
            keychain=config.keychain,
            interactive=False if config.non_interactive else None,
        )
