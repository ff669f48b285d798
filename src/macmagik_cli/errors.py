"""Error taxonomy for macmagik.

Every error carries the step that failed and a remediation hint so the CLI
can always print an actionable message.
"""

from dataclasses import dataclass, field
from typing import Any

RERUN_RECOVERY = "Run `macmagik recovery`, then `macmagik setup` again"
RERUN_WITH_SUDO = "Re-run from an interactive terminal or configure passwordless sudo"


@dataclass
class MacmagikError(Exception):
    """Base error class for bootstrap errors."""

    message: str
    step: str = ""
    remediation: str = RERUN_RECOVERY
    detail: dict[str, Any] = field(default_factory=dict)

    def __str__(self) -> str:
        return self.message

    def render(self) -> str:
        """Human-readable one-liner naming the step and the fix."""
        prefix = f"[{self.step}] " if self.step else ""
        suffix = f" ({self.remediation})" if self.remediation else ""
        return f"{prefix}{self.message}{suffix}"


@dataclass
class FatalPrereqError(MacmagikError):
    """A prerequisite is missing. Nothing has been mutated yet."""

    step: str = "prerequisites"
    remediation: str = "Install the missing tool or start Docker Desktop Kubernetes"


@dataclass
class ApplyError(MacmagikError):
    """A cluster or package-manager mutation failed."""


@dataclass
class ReadinessTimeout(MacmagikError):
    """Workload did not report ready in time. Treated as a warning."""

    remediation: str = "The component may still converge; check with `macmagik verify`"


@dataclass
class InsufficientPrivilegeError(MacmagikError):
    """An operation needing elevated privilege could not obtain it."""

    remediation: str = RERUN_WITH_SUDO


@dataclass
class CertGenerationError(MacmagikError):
    """openssl failed to produce the key/certificate pair."""

    step: str = "certificate"
    remediation: str = "Check that openssl is installed and the temp directory is writable"


@dataclass
class TrustStoreError(MacmagikError):
    """The OS trust store rejected the operation."""

    step: str = "trust-store"


@dataclass
class ProbeFailure(MacmagikError):
    """A verification probe failed. Never aborts a run."""

    step: str = "verify"
