"""Cleanup and recovery.

Both walk the same resource space the installers create and are safe to run
any number of times. Each step reports a DeleteOutcome; an unexpected
failure is recorded as IGNORED with a warning and the run carries on.
"""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Any

import structlog

from ..config import BootstrapConfig
from ..errors import MacmagikError
from .certs import CertificateProvisioner
from .components import CORE_NAMESPACE, ComponentSpec, build_component_specs
from .convergence import ResourceConvergence
from .hosts import HostsFileSync
from .tools import DeleteOutcome, ExternalToolClient

logger = structlog.get_logger(__name__)

HELM_REPOS = ["ingress-nginx", "prometheus-community"]
ECHO_RESOURCES = [("ingress", "echo-ingress"), ("deployment", "echo"), ("service", "echo")]


@dataclass
class StepOutcome:
    """Outcome of one cleanup/recovery step."""

    step: str
    outcome: DeleteOutcome
    detail: str | None = None


@dataclass
class TeardownReport:
    """All step outcomes of a cleanup or recovery run."""

    steps: list[StepOutcome] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)

    @property
    def exit_code(self) -> int:
        # Best effort: failures are reported, never fatal
        return 0

    def count(self, outcome: DeleteOutcome) -> int:
        return sum(1 for step in self.steps if step.outcome == outcome)


class _BestEffort:
    """Shared plumbing for Teardown and Recovery."""

    def __init__(
        self,
        config: BootstrapConfig,
        tools: ExternalToolClient,
        convergence: ResourceConvergence | None = None,
        on_step: Callable[[StepOutcome], None] | None = None,
    ):
        self.config = config
        self.tools = tools
        self.convergence = convergence or ResourceConvergence(tools.kubectl)
        self.on_step = on_step
        self.specs: list[ComponentSpec] = build_component_specs(config, monitoring=True)

    @property
    def namespaces(self) -> list[str]:
        namespaces: list[str] = []
        for spec in self.specs:
            for namespace in spec.secret_namespaces():
                if namespace not in namespaces:
                    namespaces.append(namespace)
        return namespaces

    def _step(
        self,
        report: TeardownReport,
        name: str,
        action: Callable[..., Any],
        *args: Any,
        **kwargs: Any,
    ) -> StepOutcome:
        try:
            outcome = action(*args, **kwargs)
            step = StepOutcome(name, outcome)
        except MacmagikError as e:
            step = StepOutcome(name, DeleteOutcome.IGNORED, e.render())
            report.warnings.append(f"{name}: {e.render()}")
            logger.warning("teardown.step_failed", step=name, error=e.message)
        report.steps.append(step)
        if self.on_step:
            self.on_step(step)
        return step

    def _delete_owned_volumes(self, report: TeardownReport) -> None:
        try:
            volumes = self.convergence.owned_persistent_volumes(self.namespaces)
        except MacmagikError as e:
            report.warnings.append(f"pv: {e.render()}")
            return
        for volume in volumes:
            self._step(report, f"pv/{volume}", self.convergence.delete, "pv", volume)


class Teardown(_BestEffort):
    """Remove everything setup created, in reverse install order."""

    def run(self) -> TeardownReport:
        report = TeardownReport()
        convergence = self.convergence

        for spec in reversed(self.specs):
            for kind, name in spec.teardown:
                self._step(
                    report,
                    f"{spec.name}: {kind}/{name or '*'}",
                    convergence.delete,
                    kind,
                    name,
                    namespace=spec.namespace,
                )
            if spec.release:
                self._step(
                    report,
                    f"{spec.name}: helm release {spec.release.release}",
                    self.tools.helm.uninstall,
                    spec.release.release,
                    spec.namespace,
                )
            self._step(
                report,
                f"{spec.name}: stuck pods",
                convergence.delete,
                "pods",
                None,
                namespace=spec.namespace,
                force=True,
                grace_period_seconds=0,
            )
            self._step(
                report,
                f"{spec.name}: namespace {spec.namespace}",
                convergence.delete,
                "namespace",
                spec.namespace,
                timeout_seconds=60,
            )

        certificates = CertificateProvisioner(
            self.tools, convergence, secret_name=self.config.tls_secret_name
        )
        for common_name in (self.config.wildcard, self.config.domain):
            self._step(
                report,
                f"trust store: {common_name}",
                lambda cn: certificates.remove_trust([cn])[cn],
                common_name,
            )
        for namespace in self.namespaces:
            self._step(
                report,
                f"secret {self.config.tls_secret_name} in {namespace}",
                convergence.delete,
                "secret",
                self.config.tls_secret_name,
                namespace=namespace,
            )

        hosts = HostsFileSync(
            self.tools.privileged, self.config.hosts_file, address=self.config.loopback_address
        )
        self._step(report, f"hosts entries *.{self.config.domain}", self._remove_hosts, hosts)

        for repo in HELM_REPOS:
            self._step(report, f"helm repo {repo}", self.tools.helm.repo_remove, repo)

        for namespace in self.namespaces:
            if convergence.namespace_exists(namespace):
                self._step(
                    report,
                    f"finalizers on namespace {namespace}",
                    convergence.strip_finalizers,
                    "namespace",
                    namespace,
                )
        self._delete_owned_volumes(report)

        logger.info(
            "teardown.done",
            deleted=report.count(DeleteOutcome.DELETED),
            ignored=report.count(DeleteOutcome.IGNORED),
        )
        return report

    def _remove_hosts(self, hosts: HostsFileSync) -> DeleteOutcome:
        removed = hosts.remove_all(self.config.domain)
        return DeleteOutcome.DELETED if removed else DeleteOutcome.ALREADY_ABSENT


class Recovery(_BestEffort):
    """Force-remediate stuck resources so setup can run again."""

    def run(self) -> TeardownReport:
        report = TeardownReport()
        convergence = self.convergence

        for namespace in self.namespaces:
            self._step(
                report,
                f"secret {self.config.tls_secret_name} in {namespace}",
                convergence.delete,
                "secret",
                self.config.tls_secret_name,
                namespace=namespace,
            )

        for namespace in self.namespaces:
            if not convergence.namespace_exists(namespace):
                continue
            self._step(
                report,
                f"namespace {namespace}",
                convergence.delete,
                "namespace",
                namespace,
                force=True,
                grace_period_seconds=0,
                timeout_seconds=30,
            )
            self._step(
                report,
                f"finalizers on namespace {namespace}",
                convergence.strip_finalizers,
                "namespace",
                namespace,
            )

        for kind, name in ECHO_RESOURCES:
            self._step(
                report,
                f"{kind}/{name}",
                convergence.delete,
                kind,
                name,
                namespace=CORE_NAMESPACE,
                force=True,
                grace_period_seconds=0,
            )

        for spec in self.specs:
            if spec.release:
                self._step(
                    report,
                    f"helm release {spec.release.release}",
                    self.tools.helm.uninstall,
                    spec.release.release,
                    spec.namespace,
                )

        self._delete_owned_volumes(report)

        for namespace in self.namespaces:
            if not convergence.namespace_exists(namespace):
                continue
            for kind, name in convergence.objects_with_finalizers(namespace):
                self._step(
                    report,
                    f"finalizers on {kind}/{name}",
                    convergence.strip_finalizers,
                    kind,
                    name,
                    namespace=namespace,
                )

        logger.info(
            "recovery.done",
            deleted=report.count(DeleteOutcome.DELETED),
            ignored=report.count(DeleteOutcome.IGNORED),
        )
        return report
