"""Component descriptors and the generic component installer.

A component (core ingress, monitoring, tracing) is a declarative
``ComponentSpec``; ``ComponentInstaller`` turns one into cluster state and
reports an ``InstallOutcome`` instead of raising, so a failure in one
component never stops the next from being attempted.
"""

from __future__ import annotations

import tempfile
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any

import structlog

from ..config import BootstrapConfig
from ..errors import ApplyError, MacmagikError
from .certs import CertificateBundle, CertificateProvisioner
from .convergence import ReadinessCheck, ResourceConvergence
from .hosts import HostsFileSync
from .manifests import (
    SSL_REDIRECT_ANNOTATIONS,
    build_echo_app,
    build_ingress,
    build_jaeger_instance,
    build_nginx_values,
    build_prometheus_values,
    write_values,
)
from .tools import ExternalToolClient

logger = structlog.get_logger(__name__)

CORE_NAMESPACE = "ingress-nginx"
MONITORING_NAMESPACE = "monitoring"
TRACING_NAMESPACE = "observability"

JAEGER_OPERATOR_VERSION = "v1.51.0"
JAEGER_CRD_URL = (
    "https://raw.githubusercontent.com/jaegertracing/jaeger-operator/"
    f"{JAEGER_OPERATOR_VERSION}/deploy/crds/jaegertracing.io_jaegers_crd.yaml"
)
JAEGER_OPERATOR_URL = (
    "https://github.com/jaegertracing/jaeger-operator/releases/download/"
    f"{JAEGER_OPERATOR_VERSION}/jaeger-operator.yaml"
)


@dataclass
class HelmRelease:
    """Chart reference plus the values to install it with."""

    release: str
    chart: str
    repo: str | None = None
    values: dict[str, Any] = field(default_factory=dict)
    wait: bool = False
    timeout_seconds: int | None = None


@dataclass
class ManifestSource:
    """One entry of a raw manifest set: inline documents or a remote URL."""

    name: str
    documents: list[dict[str, Any]] = field(default_factory=list)
    url: str | None = None
    namespace: str | None = None
    validate: bool = True
    requires_crd: str | None = None
    wait_before: ReadinessCheck | None = None


@dataclass
class IngressRule:
    """Hostname -> service:port routing with TLS termination."""

    name: str
    namespace: str
    hostname: str
    service: str
    port: int
    tls_secret: str
    annotations: dict[str, str] = field(default_factory=dict)

    def to_manifest(self) -> dict[str, Any]:
        return build_ingress(
            self.name,
            self.namespace,
            self.hostname,
            self.service,
            self.port,
            self.tls_secret,
            self.annotations,
        )


@dataclass
class ComponentSpec:
    """Declarative description of one installable subsystem."""

    name: str
    namespace: str
    release: HelmRelease | None = None
    manifests: list[ManifestSource] = field(default_factory=list)
    readiness: list[ReadinessCheck] = field(default_factory=list)
    ingress_rules: list[IngressRule] = field(default_factory=list)
    depends_on: list[str] = field(default_factory=list)
    # (kind, name or None for --all) removed before the namespace on teardown
    teardown: list[tuple[str, str | None]] = field(default_factory=list)
    title: str = ""

    @property
    def install_method(self) -> str:
        return "chart" if self.release else "manifests"

    @property
    def hostnames(self) -> list[str]:
        return [rule.hostname for rule in self.ingress_rules]

    def secret_namespaces(self) -> list[str]:
        """Namespaces that need the TLS secret, component namespace first."""
        namespaces = [self.namespace]
        for rule in self.ingress_rules:
            if rule.namespace not in namespaces:
                namespaces.append(rule.namespace)
        return namespaces


def validate_specs(specs: list[ComponentSpec]) -> None:
    """Reject forward/unknown dependencies and duplicate hostnames.

    A dependency must name a component declared earlier in ``specs``, which
    also rules out cycles.

    Raises:
        ValueError: on the first violation.
    """
    declared: set[str] = set()
    hostnames: set[str] = set()
    for spec in specs:
        if spec.name in declared:
            raise ValueError(f"Component '{spec.name}' declared twice")
        for dependency in spec.depends_on:
            if dependency not in declared:
                raise ValueError(
                    f"Component '{spec.name}' depends on '{dependency}', "
                    "which is not declared before it"
                )
        for hostname in spec.hostnames:
            if hostname in hostnames:
                raise ValueError(f"Hostname '{hostname}' used by more than one ingress rule")
            hostnames.add(hostname)
        declared.add(spec.name)


class InstallStatus(Enum):
    """Outcome of installing one component."""

    INSTALLED = "installed"
    ALREADY_PRESENT = "already_present"
    PARTIAL_FAILURE = "partial_failure"
    FAILED = "failed"


@dataclass
class InstallOutcome:
    """Result of ComponentInstaller.install."""

    component: str
    status: InstallStatus = InstallStatus.INSTALLED
    detail: str | None = None
    warnings: list[str] = field(default_factory=list)
    error: MacmagikError | None = None

    @property
    def failed(self) -> bool:
        return self.status == InstallStatus.FAILED


class ComponentInstaller:
    """Install one ComponentSpec: namespace, secret, chart, manifests, ingress, hosts."""

    def __init__(
        self,
        tools: ExternalToolClient,
        convergence: ResourceConvergence,
        certificates: CertificateProvisioner,
        hosts: HostsFileSync,
        secret_source_namespace: str = CORE_NAMESPACE,
    ):
        self.tools = tools
        self.convergence = convergence
        self.certificates = certificates
        self.hosts = hosts
        self.secret_source_namespace = secret_source_namespace

    def install(
        self, spec: ComponentSpec, bundle: CertificateBundle | None = None
    ) -> InstallOutcome:
        """Converge one component.

        Args:
            spec: Component to install.
            bundle: Freshly generated certificate; when None the secret is
                copied from the core namespace instead.

        Returns:
            InstallOutcome; hard errors are reported as FAILED, never raised.
        """
        outcome = InstallOutcome(spec.name)
        log = logger.bind(component=spec.name, namespace=spec.namespace)
        log.info("component.install.start", method=spec.install_method)

        try:
            already_present = spec.release is not None and self.tools.helm.release_exists(
                spec.release.release, spec.namespace
            )

            for namespace in spec.secret_namespaces():
                self.convergence.ensure_namespace(namespace)
                self._ensure_secret(namespace, bundle)

            if spec.release:
                self._install_release(spec.release, spec.namespace)

            for source in spec.manifests:
                self._apply_source(source, outcome)
        except MacmagikError as e:
            return self._fail(outcome, e)

        for check in spec.readiness:
            readiness = self.convergence.wait_ready(check)
            if not readiness.ready:
                outcome.warnings.append(
                    f"{check.target} not ready yet ({readiness.error}); "
                    "it may still converge, check with `macmagik verify`"
                )

        try:
            if spec.ingress_rules:
                self.convergence.apply(
                    [rule.to_manifest() for rule in spec.ingress_rules],
                    step=f"ingress:{spec.name}",
                )
        except MacmagikError as e:
            return self._fail(outcome, e)

        for hostname in spec.hostnames:
            try:
                self.hosts.upsert(hostname)
            except MacmagikError as e:
                outcome.warnings.append(e.render())

        if outcome.warnings:
            outcome.status = InstallStatus.PARTIAL_FAILURE
            outcome.detail = f"{len(outcome.warnings)} warning(s)"
        elif already_present:
            outcome.status = InstallStatus.ALREADY_PRESENT
        log.info("component.install.done", status=outcome.status.value)
        return outcome

    def _fail(self, outcome: InstallOutcome, error: MacmagikError) -> InstallOutcome:
        outcome.status = InstallStatus.FAILED
        outcome.error = error
        outcome.detail = error.render()
        logger.error("component.install.failed", component=outcome.component, error=error.message)
        return outcome

    def _ensure_secret(self, namespace: str, bundle: CertificateBundle | None) -> None:
        if bundle is not None:
            self.certificates.publish_secret(bundle, namespace)
        else:
            self.certificates.copy_secret(self.secret_source_namespace, namespace)

    def _install_release(self, release: HelmRelease, namespace: str) -> None:
        with tempfile.TemporaryDirectory(prefix="macmagik-values-") as tmp:
            values_file = None
            if release.values:
                values_path = Path(tmp) / f"{release.release}-values.yaml"
                values_file = write_values(values_path, release.values)
            result = self.tools.helm.upgrade_install(
                release.release,
                release.chart,
                namespace,
                repo=release.repo,
                values_file=values_file,
                wait=release.wait,
                timeout_seconds=release.timeout_seconds,
            )
        if not result.ok:
            raise ApplyError(
                f"helm upgrade --install {release.release} failed: {result.stderr.strip()}",
                step=f"helm:{release.release}",
            )

    def _apply_source(self, source: ManifestSource, outcome: InstallOutcome) -> None:
        step = f"manifest:{source.name}"
        if source.wait_before is not None:
            readiness = self.convergence.wait_ready(source.wait_before)
            if not readiness.ready:
                outcome.warnings.append(
                    f"{source.wait_before.target} taking longer than expected ({readiness.error})"
                )
        if source.requires_crd and not self.convergence.exists("crd", source.requires_crd):
            raise ApplyError(f"CRD {source.requires_crd} not found", step=step)
        if source.url:
            # URL bundle failures are soft; requires_crd gates what depends on them
            try:
                self.convergence.apply_url(
                    source.url, namespace=source.namespace, step=step, validate=source.validate
                )
            except ApplyError as e:
                outcome.warnings.append(e.render())
        if source.documents:
            self.convergence.apply(source.documents, step=step, validate=source.validate)


def build_core_spec(config: BootstrapConfig) -> ComponentSpec:
    """NGINX ingress controller plus the echo test app."""
    namespace = CORE_NAMESPACE
    return ComponentSpec(
        name="core",
        title="NGINX Ingress Controller",
        namespace=namespace,
        release=HelmRelease(
            release="ingress-nginx",
            chart="ingress-nginx",
            repo="https://kubernetes.github.io/ingress-nginx",
            values=build_nginx_values(namespace, config.tls_secret_name),
        ),
        manifests=[ManifestSource(name="echo", documents=build_echo_app(namespace))],
        readiness=[
            ReadinessCheck(
                namespace,
                "app.kubernetes.io/name=ingress-nginx",
                timeout_seconds=config.ready_timeout,
            ),
            ReadinessCheck(namespace, "app=echo", timeout_seconds=min(120, config.ready_timeout)),
        ],
        ingress_rules=[
            IngressRule(
                name="echo-ingress",
                namespace=namespace,
                hostname=config.host("echo"),
                service="echo",
                port=80,
                tls_secret=config.tls_secret_name,
            )
        ],
    )


def build_monitoring_spec(config: BootstrapConfig) -> ComponentSpec:
    """kube-prometheus-stack: Prometheus, Grafana and AlertManager."""
    namespace = MONITORING_NAMESPACE
    routes = [
        ("prometheus", "prometheus-kube-prometheus-prometheus", 9090),
        ("grafana", "prometheus-grafana", 80),
        ("alertmanager", "prometheus-kube-prometheus-alertmanager", 9093),
    ]
    return ComponentSpec(
        name="monitoring",
        title="Monitoring Stack",
        namespace=namespace,
        depends_on=["core"],
        release=HelmRelease(
            release="prometheus",
            chart="kube-prometheus-stack",
            repo="https://prometheus-community.github.io/helm-charts",
            values=build_prometheus_values(
                config.host("grafana"),
                config.grafana_admin_password,
                config.metrics_retention,
            ),
            wait=True,
            timeout_seconds=600,
        ),
        readiness=[
            ReadinessCheck(
                namespace, "app.kubernetes.io/name=prometheus", timeout_seconds=config.ready_timeout
            ),
            ReadinessCheck(
                namespace, "app.kubernetes.io/name=grafana", timeout_seconds=config.ready_timeout
            ),
        ],
        ingress_rules=[
            IngressRule(
                name=f"{host}-ingress",
                namespace=namespace,
                hostname=config.host(host),
                service=service,
                port=port,
                tls_secret=config.tls_secret_name,
                annotations=SSL_REDIRECT_ANNOTATIONS,
            )
            for host, service, port in routes
        ],
    )


def build_tracing_spec(config: BootstrapConfig) -> ComponentSpec:
    """Jaeger operator and an all-in-one Jaeger instance."""
    namespace = TRACING_NAMESPACE
    operator_ready = ReadinessCheck(
        namespace,
        "deployment/jaeger-operator",
        kind="deployment",
        condition="Available",
        timeout_seconds=config.ready_timeout,
    )
    return ComponentSpec(
        name="tracing",
        title="Distributed Tracing",
        namespace=namespace,
        depends_on=["core"],
        manifests=[
            ManifestSource(name="jaeger-crds", url=JAEGER_CRD_URL),
            ManifestSource(name="jaeger-operator", url=JAEGER_OPERATOR_URL, namespace=namespace),
            ManifestSource(
                name="jaeger-instance",
                documents=[build_jaeger_instance(namespace)],
                validate=False,
                requires_crd="jaegers.jaegertracing.io",
                wait_before=operator_ready,
            ),
        ],
        readiness=[
            ReadinessCheck(
                namespace, "app.kubernetes.io/name=jaeger", timeout_seconds=config.ready_timeout
            )
        ],
        ingress_rules=[
            IngressRule(
                name="jaeger-ingress",
                namespace=namespace,
                hostname=config.host("jaeger"),
                service="jaeger-prod-query",
                port=16686,
                tls_secret=config.tls_secret_name,
                annotations=SSL_REDIRECT_ANNOTATIONS,
            )
        ],
        teardown=[("jaeger", None), ("deployment", "jaeger-operator")],
    )


def build_component_specs(config: BootstrapConfig, monitoring: bool = True) -> list[ComponentSpec]:
    """Specs in install order; optional stacks only when ``monitoring``."""
    specs = [build_core_spec(config)]
    if monitoring:
        specs.extend([build_monitoring_spec(config), build_tracing_spec(config)])
    validate_specs(specs)
    return specs
