"""Setup state machine.

INIT -> PREREQ_CHECK -> CORE_INSTALL -> MONITORING_INSTALL -> TRACING_INSTALL -> DONE,
with ABORTED reachable from PREREQ_CHECK and CORE_INSTALL only. Everything
after core is isolated: a failed optional component becomes a warning.
"""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass, field
from enum import Enum

import structlog

from ..config import BootstrapConfig
from ..errors import CertGenerationError, FatalPrereqError, MacmagikError
from .certs import CertificateProvisioner
from .components import (
    ComponentInstaller,
    ComponentSpec,
    InstallOutcome,
    build_component_specs,
)
from .convergence import ResourceConvergence
from .health import ReadinessPoller
from .hosts import HostsFileSync
from .prerequisites import PrerequisiteChecker, PrereqReport
from .tools import ExternalToolClient

logger = structlog.get_logger(__name__)


class SequencerState(Enum):
    """Setup run states."""

    INIT = "init"
    PREREQ_CHECK = "prereq_check"
    CORE_INSTALL = "core_install"
    MONITORING_INSTALL = "monitoring_install"
    TRACING_INSTALL = "tracing_install"
    DONE = "done"
    ABORTED = "aborted"


COMPONENT_STATES = {
    "core": SequencerState.CORE_INSTALL,
    "monitoring": SequencerState.MONITORING_INSTALL,
    "tracing": SequencerState.TRACING_INSTALL,
}


@dataclass
class SetupResult:
    """Result of one setup run."""

    state: SequencerState = SequencerState.INIT
    outcomes: list[InstallOutcome] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)
    error: MacmagikError | None = None
    prerequisites: PrereqReport | None = None

    @property
    def exit_code(self) -> int:
        return 1 if self.state == SequencerState.ABORTED else 0

    def outcome(self, component: str) -> InstallOutcome | None:
        for outcome in self.outcomes:
            if outcome.component == component:
                return outcome
        return None


class Sequencer:
    """Drive prerequisite gate, certificate and component installs in order."""

    def __init__(
        self,
        config: BootstrapConfig,
        tools: ExternalToolClient,
        poller: ReadinessPoller | None = None,
        on_state: Callable[[SequencerState, ComponentSpec | None], None] | None = None,
        on_outcome: Callable[[InstallOutcome], None] | None = None,
    ):
        """Initialize sequencer.

        Args:
            config: Effective configuration.
            tools: External tool clients; every mutation goes through them.
            poller: Readiness poller (defaults from config timeouts).
            on_state: Optional callback on each state transition, for progress output.
            on_outcome: Optional callback after each component install.
        """
        self.config = config
        self.tools = tools
        self.convergence = ResourceConvergence(
            tools.kubectl,
            poller
            or ReadinessPoller(
                timeout_seconds=config.ready_timeout,
                interval_seconds=config.poll_interval,
            ),
        )
        self.certificates = CertificateProvisioner(
            tools, self.convergence, secret_name=config.tls_secret_name
        )
        self.hosts = HostsFileSync(
            tools.privileged, config.hosts_file, address=config.loopback_address
        )
        self.prerequisites = PrerequisiteChecker(
            tools.kubectl, platform_name=tools.trust_store.platform_name
        )
        self.on_state = on_state
        self.on_outcome = on_outcome

    def _enter(
        self, result: SetupResult, state: SequencerState, spec: ComponentSpec | None = None
    ) -> None:
        logger.info("sequencer.state", previous=result.state.value, state=state.value)
        result.state = state
        if self.on_state:
            self.on_state(state, spec)

    def _record(self, result: SetupResult, outcome: InstallOutcome) -> None:
        result.outcomes.append(outcome)
        result.warnings.extend(f"{outcome.component}: {w}" for w in outcome.warnings)
        if self.on_outcome:
            self.on_outcome(outcome)

    def run(self, monitoring: bool | None = None) -> SetupResult:
        """Run setup end to end.

        Args:
            monitoring: Install monitoring and tracing; defaults to config.monitoring.

        Returns:
            SetupResult; ``exit_code`` is 1 only when the run was ABORTED.
        """
        result = SetupResult()
        monitoring = self.config.monitoring if monitoring is None else monitoring
        installer = ComponentInstaller(
            self.tools, self.convergence, self.certificates, self.hosts
        )

        self._enter(result, SequencerState.PREREQ_CHECK)
        try:
            result.prerequisites = self.prerequisites.check()
        except FatalPrereqError as e:
            result.error = e
            self._enter(result, SequencerState.ABORTED)
            return result
        result.warnings.extend(result.prerequisites.warnings)

        specs = build_component_specs(self.config, monitoring=monitoring)
        core, optional = specs[0], specs[1:]

        self._enter(result, SequencerState.CORE_INSTALL, core)
        try:
            with self.certificates.provision(
                self.config.wildcard, self.config.cert_validity_days
            ) as bundle:
                outcome = installer.install(core, bundle)
                self._record(result, outcome)
                if outcome.failed:
                    result.error = outcome.error
                    self._enter(result, SequencerState.ABORTED)
                    return result
                try:
                    self.certificates.register_trust(bundle)
                except MacmagikError as e:
                    result.warnings.append(e.render())
        except CertGenerationError as e:
            result.error = e
            self._enter(result, SequencerState.ABORTED)
            return result

        self._add_extra_hostnames(result)

        for spec in optional:
            self._enter(result, COMPONENT_STATES[spec.name], spec)
            outcome = installer.install(spec)
            self._record(result, outcome)
            if outcome.failed:
                result.warnings.append(f"{spec.name}: {outcome.detail}")

        self._enter(result, SequencerState.DONE)
        logger.info(
            "sequencer.done",
            outcomes={o.component: o.status.value for o in result.outcomes},
            warnings=len(result.warnings),
        )
        return result

    def _add_extra_hostnames(self, result: SetupResult) -> None:
        for name in self.config.extra_hostnames:
            hostname = name if "." in name else self.config.host(name)
            try:
                self.hosts.upsert(hostname)
            except MacmagikError as e:
                result.warnings.append(e.render())
