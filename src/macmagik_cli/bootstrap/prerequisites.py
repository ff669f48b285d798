"""Prerequisite detection.

Detects kubectl, helm and openssl, cluster connectivity and the host OS.
``PrerequisiteChecker.check`` is the hard gate run before any mutation.
"""

from __future__ import annotations

import shutil
import sys
from dataclasses import dataclass, field

import structlog

from ..errors import FatalPrereqError
from .tools import CommandRunner, Kubectl

logger = structlog.get_logger(__name__)

INSTALL_HINTS = {
    "kubectl": "Install kubectl: https://kubernetes.io/docs/tasks/tools/",
    "helm": "Install Helm 3.x: https://helm.sh/docs/intro/install/",
    "openssl": "Install openssl (brew install openssl)",
}


@dataclass
class ToolInfo:
    """Binary detection result."""

    name: str
    available: bool
    version: str | None = None
    error: str | None = None


@dataclass
class KubectlInfo:
    """kubectl and cluster detection result."""

    kubectl_available: bool
    kubectl_version: str | None = None
    cluster_reachable: bool = False
    cluster_info: str | None = None
    error: str | None = None


class ToolDetector:
    """Detect a command-line tool on PATH."""

    def __init__(self, runner: CommandRunner | None = None):
        self.runner = runner or CommandRunner()

    def detect(self, name: str, version_args: list[str]) -> ToolInfo:
        if not shutil.which(name):
            return ToolInfo(name, False, error=f"{name} not found. {INSTALL_HINTS.get(name, '')}")

        result = self.runner.run([name, *version_args], timeout=10)
        if not result.ok:
            return ToolInfo(name, False, error=f"{name} error: {result.stderr.strip()}")
        output = result.stdout.strip()
        return ToolInfo(name, True, version=output.splitlines()[0] if output else None)


class KubectlDetector:
    """Detect kubectl and Kubernetes cluster availability."""

    def __init__(self, kubectl: Kubectl):
        self.kubectl = kubectl

    def detect(self) -> KubectlInfo:
        """Check for kubectl and cluster connectivity."""
        tool = ToolDetector(self.kubectl.runner).detect("kubectl", ["version", "--client"])
        if not tool.available:
            return KubectlInfo(kubectl_available=False, error=tool.error)

        result = self.kubectl.cluster_info()
        cluster_reachable = result.ok
        return KubectlInfo(
            kubectl_available=True,
            kubectl_version=tool.version,
            cluster_reachable=cluster_reachable,
            cluster_info=result.stdout.strip() if cluster_reachable else result.stderr.strip(),
        )


@dataclass
class PrereqReport:
    """Everything detected during the prerequisite gate."""

    kubectl: KubectlInfo
    tools: list[ToolInfo] = field(default_factory=list)
    platform: str = ""
    problems: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.problems


class PrerequisiteChecker:
    """Hard gate run before any mutation."""

    def __init__(self, kubectl: Kubectl, platform_name: str | None = None):
        self.kubectl = kubectl
        self.platform_name = platform_name or sys.platform

    def inspect(
        self,
        require_helm: bool = True,
        require_openssl: bool = True,
        require_macos: bool = True,
    ) -> PrereqReport:
        """Detect prerequisites without raising."""
        report = PrereqReport(
            kubectl=KubectlDetector(self.kubectl).detect(),
            platform=self.platform_name,
        )

        if not report.kubectl.kubectl_available:
            report.problems.append(report.kubectl.error or "kubectl not available")
        elif not report.kubectl.cluster_reachable:
            report.problems.append(
                "kubectl cannot connect to Kubernetes cluster. "
                "Please ensure Docker Desktop Kubernetes is running."
            )

        detector = ToolDetector(self.kubectl.runner)
        if require_helm:
            report.tools.append(detector.detect("helm", ["version", "--short"]))
        if require_openssl:
            report.tools.append(detector.detect("openssl", ["version"]))
        for tool in report.tools:
            if not tool.available:
                report.problems.append(tool.error or f"{tool.name} not available")

        if self.platform_name != "darwin":
            message = f"macOS is required for keychain integration (found {self.platform_name})"
            if require_macos:
                report.problems.append(message)
            else:
                report.warnings.append(message)

        logger.info("prerequisites.inspected", problems=report.problems, warnings=report.warnings)
        return report

    def check(self, **requirements: bool) -> PrereqReport:
        """Detect prerequisites and fail hard on any problem.

        Raises:
            FatalPrereqError: listing every missing prerequisite.
        """
        report = self.inspect(**requirements)
        if not report.ok:
            raise FatalPrereqError(
                "; ".join(report.problems),
                detail={"problems": report.problems},
            )
        return report
