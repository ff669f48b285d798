"""Idempotent resource convergence.

Every apply is an upsert and every delete tolerates "not found", so running
the same sequence twice converges instead of failing.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any

import structlog

from ..errors import ApplyError
from .health import ReadinessPoller, ReadinessResult
from .manifests import build_namespace
from .tools import DeleteOutcome, Kubectl

logger = structlog.get_logger(__name__)

FINALIZER_PATCH = {"metadata": {"finalizers": []}}


@dataclass
class ReadinessCheck:
    """What to wait for before a component counts as ready."""

    namespace: str
    selector: str  # label selector for pods, or "deployment/<name>"
    kind: str = "pod"
    condition: str = "Ready"
    timeout_seconds: int | None = None

    @property
    def target(self) -> str:
        if self.kind == "pod":
            return f"pods[{self.selector}]@{self.namespace}"
        return f"{self.selector}@{self.namespace}"


def _kind_rank(document: dict[str, Any]) -> int:
    return 0 if document.get("kind") == "Namespace" else 1


class ResourceConvergence:
    """Apply, delete and wait on cluster resources."""

    def __init__(self, kubectl: Kubectl, poller: ReadinessPoller | None = None):
        """Initialize convergence helper.

        Args:
            kubectl: Cluster-control client.
            poller: Readiness poller used by wait_ready.
        """
        self.kubectl = kubectl
        self.poller = poller or ReadinessPoller()

    def apply(
        self,
        documents: list[dict[str, Any]],
        step: str = "apply",
        validate: bool = True,
    ) -> None:
        """Create-or-update the given manifests.

        Namespaces are always applied before the objects inside them.

        Raises:
            ApplyError: kubectl rejected the manifests.
        """
        ordered = sorted(documents, key=_kind_rank)
        result = self.kubectl.apply(ordered, validate=validate)
        if not result.ok:
            raise ApplyError(
                f"Failed to apply {_describe(ordered)}: {result.stderr.strip()}",
                step=step,
            )
        logger.info("kubectl.apply", step=step, objects=_describe(ordered))

    def apply_url(
        self,
        url: str,
        namespace: str | None = None,
        step: str = "apply",
        validate: bool = True,
    ) -> None:
        result = self.kubectl.apply_url(url, namespace=namespace, validate=validate)
        if not result.ok:
            raise ApplyError(f"Failed to apply {url}: {result.stderr.strip()}", step=step)
        logger.info("kubectl.apply_url", step=step, url=url)

    def ensure_namespace(self, name: str) -> None:
        self.apply([build_namespace(name)], step=f"namespace:{name}")

    def exists(self, kind: str, name: str, namespace: str | None = None) -> bool:
        return self.kubectl.get(kind, name, namespace).ok

    def namespace_exists(self, name: str) -> bool:
        return self.exists("namespace", name)

    def delete(
        self,
        kind: str,
        name: str | None = None,
        namespace: str | None = None,
        force: bool = False,
        grace_period_seconds: int | None = None,
        timeout_seconds: int | None = None,
    ) -> DeleteOutcome:
        """Delete a resource (or all of a kind when name is None).

        Returns:
            DELETED, or ALREADY_ABSENT when the API server reports NotFound.

        Raises:
            ApplyError: any other failure.
        """
        result = self.kubectl.delete(
            kind,
            name,
            namespace=namespace,
            force=force,
            grace_period=grace_period_seconds,
            timeout_seconds=timeout_seconds,
        )
        target = f"{kind}/{name or '*'}" + (f" -n {namespace}" if namespace else "")
        if result.ok:
            # `delete --all` on an empty set succeeds with "No resources found"
            if "No resources found" in result.stdout + result.stderr:
                return DeleteOutcome.ALREADY_ABSENT
            logger.info("kubectl.delete", target=target)
            return DeleteOutcome.DELETED
        if result.not_found or "the server doesn't have a resource type" in result.stderr:
            return DeleteOutcome.ALREADY_ABSENT
        raise ApplyError(f"Failed to delete {target}: {result.stderr.strip()}", step="delete")

    def strip_finalizers(self, kind: str, name: str, namespace: str | None = None) -> DeleteOutcome:
        """Clear finalizers that keep a resource stuck in Terminating."""
        result = self.kubectl.patch_merge(kind, name, FINALIZER_PATCH, namespace=namespace)
        if result.ok:
            return DeleteOutcome.DELETED
        if result.not_found:
            return DeleteOutcome.ALREADY_ABSENT
        raise ApplyError(
            f"Failed to clear finalizers on {kind}/{name}: {result.stderr.strip()}",
            step="finalizers",
        )

    def wait_ready(self, check: ReadinessCheck, timeout: float | None = None) -> ReadinessResult:
        """Wait for a readiness condition.

        Returns:
            ReadinessResult; a timeout is a soft failure for the caller to log.
        """
        deadline = timeout or check.timeout_seconds or self.poller.timeout_seconds
        poller = self.poller.with_timeout(deadline)
        start = poller.clock()

        def probe() -> tuple[bool, str | None]:
            # Each attempt lets kubectl itself block for at most the remaining time
            slice_seconds = min(max(poller.interval_seconds, 1.0), poller.remaining(start) or 1.0)
            if check.kind == "pod":
                result = self.kubectl.wait(
                    "pods",
                    check.condition,
                    check.namespace,
                    slice_seconds,
                    selector=check.selector,
                )
            else:
                result = self.kubectl.wait(
                    check.selector, check.condition, check.namespace, slice_seconds
                )
            return result.ok, (result.stderr.strip() or None)

        readiness = poller.wait(probe, target=check.target)
        logger.info(
            "kubectl.wait",
            target=check.target,
            ready=readiness.ready,
            attempts=readiness.attempts,
        )
        return readiness

    def owned_persistent_volumes(self, namespaces: list[str]) -> list[str]:
        """Names of PVs whose claim lives in one of ``namespaces``."""
        listing = self.kubectl.get_json("pv") or {}
        owned = []
        for item in listing.get("items", []):
            claim = (item.get("spec") or {}).get("claimRef") or {}
            if claim.get("namespace") in namespaces:
                owned.append(item["metadata"]["name"])
        return owned

    def objects_with_finalizers(self, namespace: str) -> list[tuple[str, str]]:
        """(kind, name) of objects in ``namespace`` still carrying finalizers."""
        listing = self.kubectl.get_json("all", namespace=namespace) or {}
        stuck = []
        for item in listing.get("items", []):
            metadata = item.get("metadata") or {}
            if metadata.get("finalizers"):
                stuck.append((item.get("kind", "").lower(), metadata.get("name", "")))
        return stuck


def _describe(documents: list[dict[str, Any]]) -> str:
    return ", ".join(
        f"{d.get('kind', '?')}/{(d.get('metadata') or {}).get('name', '?')}" for d in documents
    )
