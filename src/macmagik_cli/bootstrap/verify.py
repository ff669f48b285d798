"""Post-setup verification.

Probe groups are derived from the component specs, so verification checks
exactly what setup installs. Optional components whose namespace does not
exist are skipped rather than counted as failures.
"""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass, field

import httpx
import structlog

from ..config import BootstrapConfig
from ..errors import MacmagikError, ProbeFailure
from .components import ComponentSpec, build_component_specs
from .convergence import ResourceConvergence
from .hosts import HostsFileSync
from .tools import ExternalToolClient

logger = structlog.get_logger(__name__)

HTTP_TIMEOUT_SECONDS = 10.0
RUNNING_PHASES = ("Running", "Succeeded")


@dataclass
class ProbeResult:
    """Result of a single probe."""

    name: str
    kind: str  # dns | http | resource | trust_store
    passed: bool
    detail: str = ""


@dataclass
class ProbeGroup:
    """Probes belonging to one component."""

    component: str
    title: str = ""
    results: list[ProbeResult] = field(default_factory=list)
    skipped: bool = False
    reason: str | None = None

    @property
    def passed(self) -> int:
        return sum(1 for r in self.results if r.passed)


@dataclass
class VerificationSummary:
    """Aggregate of all probe groups. Skipped groups are not counted."""

    groups: list[ProbeGroup] = field(default_factory=list)

    @property
    def counted(self) -> list[ProbeGroup]:
        return [g for g in self.groups if not g.skipped]

    @property
    def total(self) -> int:
        return sum(len(g.results) for g in self.counted)

    @property
    def passed(self) -> int:
        return sum(g.passed for g in self.counted)

    @property
    def skipped(self) -> list[str]:
        return [g.component for g in self.groups if g.skipped]

    @property
    def ok(self) -> bool:
        return self.passed == self.total

    @property
    def exit_code(self) -> int:
        return 0 if self.ok else 1


class VerificationProbe:
    """Run resource, trust-store, DNS and HTTPS probes per component."""

    def __init__(
        self,
        config: BootstrapConfig,
        tools: ExternalToolClient,
        transport: httpx.BaseTransport | None = None,
    ):
        """Initialize verification.

        Args:
            config: Effective configuration.
            tools: External tool clients.
            transport: Optional httpx transport (tests use httpx.MockTransport).
        """
        self.config = config
        self.tools = tools
        self.convergence = ResourceConvergence(tools.kubectl)
        self.hosts = HostsFileSync(
            tools.privileged, config.hosts_file, address=config.loopback_address
        )
        self.transport = transport

    def run(self, specs: list[ComponentSpec] | None = None) -> VerificationSummary:
        specs = specs or build_component_specs(self.config, monitoring=True)
        summary = VerificationSummary()
        with httpx.Client(
            verify=False,
            timeout=HTTP_TIMEOUT_SECONDS,
            transport=self.transport,
        ) as client:
            for index, spec in enumerate(specs):
                summary.groups.append(self._run_group(spec, client, core=index == 0))
        logger.info(
            "verify.done",
            total=summary.total,
            passed=summary.passed,
            skipped=summary.skipped,
        )
        return summary

    def _run_group(self, spec: ComponentSpec, client: httpx.Client, core: bool) -> ProbeGroup:
        group = ProbeGroup(spec.name, title=spec.title or spec.name)
        if not core and not self.convergence.namespace_exists(spec.namespace):
            group.skipped = True
            group.reason = f"namespace {spec.namespace} not found"
            return group

        group.results.append(
            self._probe(f"pods in {spec.namespace}", "resource", self._pods_running, spec.namespace)
        )
        if core:
            group.results.append(
                self._probe(
                    f"keychain trusts {self.config.wildcard}",
                    "trust_store",
                    self._trusted,
                    self.config.wildcard,
                )
            )
        for hostname in spec.hostnames:
            group.results.append(
                self._probe(f"{hostname} in hosts", "dns", self._resolves, hostname)
            )
            group.results.append(
                self._probe(f"https://{hostname}", "http", self._https_ok, client, hostname)
            )
        return group

    def _probe(self, name: str, kind: str, check: Callable[..., str], *args) -> ProbeResult:
        try:
            detail = check(*args)
        except MacmagikError as e:
            return ProbeResult(name, kind, False, e.message)
        return ProbeResult(name, kind, True, detail)

    def _pods_running(self, namespace: str) -> str:
        listing = self.tools.kubectl.get_json("pods", namespace=namespace)
        if listing is None:
            raise ProbeFailure(f"cannot list pods in {namespace}")
        pods = listing.get("items", [])
        if not pods:
            raise ProbeFailure(f"no pods in {namespace}")
        pending = [
            p["metadata"]["name"]
            for p in pods
            if (p.get("status") or {}).get("phase") not in RUNNING_PHASES
        ]
        if pending:
            raise ProbeFailure(f"not running: {', '.join(pending)}")
        return f"{len(pods)} pod(s) running"

    def _trusted(self, common_name: str) -> str:
        if not self.tools.trust_store.contains(common_name):
            raise ProbeFailure(f"{common_name} not in {self.config.keychain}")
        return "trusted"

    def _resolves(self, hostname: str) -> str:
        if not self.hosts.contains(hostname):
            raise ProbeFailure(f"{hostname} missing from {self.config.hosts_file}")
        return self.config.loopback_address

    def _https_ok(self, client: httpx.Client, hostname: str) -> str:
        try:
            response = client.get(f"https://{hostname}")
        except httpx.HTTPError as e:
            raise ProbeFailure(f"request failed: {e}") from e
        if not 200 <= response.status_code < 400:
            raise ProbeFailure(f"HTTP {response.status_code}")
        return f"HTTP {response.status_code}"
