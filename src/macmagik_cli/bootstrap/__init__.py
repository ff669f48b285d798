"""Bootstrap package for the local Kubernetes environment.

This package provides the `macmagik setup` flow which:
1. Checks kubectl, helm, openssl and cluster connectivity
2. Generates a wildcard certificate and publishes it as a TLS secret
3. Installs the ingress controller and echo test app
4. Optionally installs the monitoring and tracing stacks
5. Syncs hosts-file aliases and trusts the certificate in the keychain
"""

from .certs import CertificateBundle, CertificateProvisioner
from .components import (
    ComponentInstaller,
    ComponentSpec,
    HelmRelease,
    IngressRule,
    InstallOutcome,
    InstallStatus,
    ManifestSource,
    build_component_specs,
    build_core_spec,
    build_monitoring_spec,
    build_tracing_spec,
    validate_specs,
)
from .convergence import ReadinessCheck, ResourceConvergence
from .health import ReadinessPoller, ReadinessResult
from .hosts import HostsEntry, HostsFileSync
from .prerequisites import KubectlDetector, KubectlInfo, PrerequisiteChecker, PrereqReport
from .sequencer import Sequencer, SequencerState, SetupResult
from .teardown import Recovery, StepOutcome, Teardown, TeardownReport
from .tools import CommandResult, CommandRunner, DeleteOutcome, ExternalToolClient
from .verify import ProbeGroup, ProbeResult, VerificationProbe, VerificationSummary

__all__ = [
    # Tools
    "CommandResult",
    "CommandRunner",
    "DeleteOutcome",
    "ExternalToolClient",
    # Prerequisites
    "KubectlDetector",
    "KubectlInfo",
    "PrerequisiteChecker",
    "PrereqReport",
    # Readiness
    "ReadinessPoller",
    "ReadinessResult",
    "ReadinessCheck",
    "ResourceConvergence",
    # Certificates and hosts
    "CertificateBundle",
    "CertificateProvisioner",
    "HostsEntry",
    "HostsFileSync",
    # Components
    "ComponentInstaller",
    "ComponentSpec",
    "HelmRelease",
    "IngressRule",
    "InstallOutcome",
    "InstallStatus",
    "ManifestSource",
    "build_component_specs",
    "build_core_spec",
    "build_monitoring_spec",
    "build_tracing_spec",
    "validate_specs",
    # Orchestration
    "Sequencer",
    "SequencerState",
    "SetupResult",
    "Teardown",
    "Recovery",
    "StepOutcome",
    "TeardownReport",
    # Verification
    "ProbeGroup",
    "ProbeResult",
    "VerificationProbe",
    "VerificationSummary",
]
