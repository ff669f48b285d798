"""Self-signed wildcard certificate provisioning.

The private key only ever exists inside the temporary directory owned by
``CertificateProvisioner.provision``; the directory is removed on every exit
path, including exceptions and interrupts.
"""

from __future__ import annotations

import tempfile
from collections.abc import Iterator
from contextlib import contextmanager
from dataclasses import dataclass, field
from pathlib import Path

import structlog

from ..errors import ApplyError, CertGenerationError
from .convergence import ResourceConvergence
from .manifests import build_openssl_config, build_tls_secret, retarget
from .tools import DeleteOutcome, ExternalToolClient

logger = structlog.get_logger(__name__)


@dataclass
class CertificateBundle:
    """Key/certificate pair on local disk for the duration of one provisioning."""

    key_path: Path
    cert_path: Path
    common_name: str
    subject_alt_names: list[str] = field(default_factory=list)

    def read_key(self) -> bytes:
        return self.key_path.read_bytes()

    def read_cert(self) -> bytes:
        return self.cert_path.read_bytes()


class CertificateProvisioner:
    """Generate the wildcard certificate and distribute it."""

    def __init__(
        self,
        tools: ExternalToolClient,
        convergence: ResourceConvergence,
        secret_name: str = "default-tls",
    ):
        self.tools = tools
        self.convergence = convergence
        self.secret_name = secret_name

    @contextmanager
    def provision(
        self, subject_wildcard: str, validity_days: int = 365
    ) -> Iterator[CertificateBundle]:
        """Generate a self-signed key/cert for ``*.apex`` and ``apex``.

        Args:
            subject_wildcard: Wildcard name, e.g. "*.kubernetes.docker.internal".
            validity_days: Certificate lifetime.

        Yields:
            CertificateBundle valid until the context exits.

        Raises:
            CertGenerationError: openssl failed or the temp path is unusable.
        """
        apex = subject_wildcard.removeprefix("*.")
        try:
            workdir = tempfile.TemporaryDirectory(prefix="macmagik-cert-")
        except OSError as e:
            raise CertGenerationError(f"Cannot create temporary directory: {e}") from e

        with workdir as tmp:
            tmpdir = Path(tmp)
            tmpdir.chmod(0o700)
            config_path = tmpdir / "openssl-san.cnf"
            key_path = tmpdir / "tls.key"
            cert_path = tmpdir / "tls.crt"

            try:
                config_path.write_text(build_openssl_config(apex))
            except OSError as e:
                raise CertGenerationError(f"Cannot write OpenSSL config: {e}") from e

            result = self.tools.openssl.self_signed(config_path, key_path, cert_path, validity_days)
            if not result.ok or not key_path.exists() or not cert_path.exists():
                raise CertGenerationError(
                    f"openssl failed to generate certificate: {result.stderr.strip()}"
                )

            logger.info("certificate.generated", common_name=subject_wildcard, days=validity_days)
            yield CertificateBundle(
                key_path=key_path,
                cert_path=cert_path,
                common_name=subject_wildcard,
                subject_alt_names=[apex, subject_wildcard],
            )
        logger.debug("certificate.key_material_removed")

    def register_trust(self, bundle: CertificateBundle) -> None:
        """Trust the certificate as a root in the OS keychain.

        Any earlier entry for the same name is removed first so repeated runs
        leave exactly one.

        Raises:
            TrustStoreError: unsupported OS or keychain rejection.
            InsufficientPrivilegeError: sudo unavailable.
        """
        self.tools.trust_store.remove(bundle.common_name)
        self.tools.trust_store.add_trusted_root(bundle.cert_path)
        logger.info("trust_store.added", common_name=bundle.common_name)

    def remove_trust(self, common_names: list[str]) -> dict[str, DeleteOutcome]:
        return {name: self.tools.trust_store.remove(name) for name in common_names}

    def publish_secret(self, bundle: CertificateBundle, namespace: str) -> None:
        """Create or overwrite the TLS secret in ``namespace``.

        Raises:
            ApplyError: the cluster rejected the secret.
        """
        secret = build_tls_secret(
            self.secret_name, namespace, bundle.read_cert(), bundle.read_key()
        )
        self.convergence.apply([secret], step=f"secret:{namespace}")

    def copy_secret(self, source_namespace: str, target_namespace: str) -> None:
        """Copy the published TLS secret into another namespace.

        Raises:
            ApplyError: the source secret is missing or the apply failed.
        """
        if source_namespace == target_namespace:
            return
        secret = self.tools.kubectl.get_json("secret", self.secret_name, source_namespace)
        if secret is None:
            raise ApplyError(
                f"TLS secret {self.secret_name} not found in {source_namespace}",
                step=f"secret:{target_namespace}",
            )
        self.convergence.apply(
            [retarget(secret, target_namespace)], step=f"secret:{target_namespace}"
        )
