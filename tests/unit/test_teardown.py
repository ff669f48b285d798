"""Unit tests for cleanup (Teardown) and Recovery."""

from __future__ import annotations

import pytest

from macmagik_cli.bootstrap.convergence import ResourceConvergence
from macmagik_cli.bootstrap.sequencer import Sequencer
from macmagik_cli.bootstrap.teardown import Recovery, Teardown
from macmagik_cli.bootstrap.tools import DeleteOutcome, ExternalToolClient


@pytest.fixture
def installed(config, tools, poller, fake_cluster):
    """Cluster after a full setup."""
    result = Sequencer(config, tools, poller=poller).run()
    assert result.exit_code == 0
    return fake_cluster


def _steps(report):
    return {step.step: step.outcome for step in report.steps}


class TestTeardown:
    """Tests for cleanup."""

    def test_removes_everything(self, installed, config, tools, hosts_file):
        report = Teardown(config, tools).run()

        for namespace in ("ingress-nginx", "monitoring", "observability"):
            assert namespace not in installed.namespaces
        assert installed.releases == {}
        assert installed.trusted == set()
        assert "kubernetes.docker.internal" not in hosts_file.read_text()
        assert report.exit_code == 0
        assert report.warnings == []

    def test_reverse_install_order(self, installed, config, tools):
        Teardown(config, tools).run()
        deleted = [e[3] for e in installed.events if e[0] == "delete" and e[1] == "namespace"]
        assert deleted == ["observability", "monitoring", "ingress-nginx"]

    def test_idempotent(self, config, tools, fake_cluster):
        """A second run on a clean cluster only reports absent resources."""
        report = Teardown(config, tools).run()

        outcomes = set(_steps(report).values())
        assert DeleteOutcome.DELETED not in outcomes
        assert report.warnings == []
        assert report.exit_code == 0

    def test_failures_become_warnings(self, installed, config, tools):
        """An unreachable cluster is reported per step, never raised."""
        installed.reachable = False
        report = Teardown(config, tools).run()

        assert report.exit_code == 0
        assert report.count(DeleteOutcome.IGNORED) > 0
        assert report.warnings

    def test_non_macos_trust_step_ignored(self, installed, config, poller):
        tools = ExternalToolClient.create(runner=installed, platform_name="linux")
        report = Teardown(config, tools).run()
        steps = _steps(report)
        assert steps[f"trust store: {config.wildcard}"] == DeleteOutcome.IGNORED
        assert "ingress-nginx" not in installed.namespaces

    def test_only_owned_volumes_deleted(self, installed, config, tools):
        installed.add_persistent_volume("pvc-grafana", "monitoring")
        installed.add_persistent_volume("pvc-postgres", "databases")
        Teardown(config, tools).run()
        assert installed.names("pv") == ["pvc-postgres"]

    def test_on_step_callback(self, config, tools):
        seen = []
        Teardown(config, tools, on_step=seen.append).run()
        assert seen
        assert seen[0].step == "tracing: jaeger/*"


class TestRecovery:
    """Tests for recovery."""

    def test_recovers_stuck_namespace(self, installed, config, tools):
        """A namespace stuck in Terminating is force-deleted and unblocked."""
        installed.terminating.add("monitoring")
        report = Recovery(config, tools).run()

        assert report.exit_code == 0
        assert "monitoring" not in installed.namespaces
        assert installed.releases == {}

    def test_rerunnable(self, installed, config, tools):
        Recovery(config, tools).run()
        report = Recovery(config, tools).run()
        assert report.warnings == []
        assert DeleteOutcome.DELETED not in set(_steps(report).values())

    def test_scoped_volumes(self, installed, config, tools):
        installed.add_persistent_volume("pvc-prometheus", "monitoring")
        installed.add_persistent_volume("pvc-other", "team-a")
        Recovery(config, tools).run()
        assert installed.names("pv") == ["pvc-other"]

    def test_strips_remaining_finalizers(self, config, tools, fake_cluster, poller):
        """Objects blocking a Terminating namespace lose their finalizers."""
        convergence = ResourceConvergence(tools.kubectl, poller)
        convergence.ensure_namespace("observability")
        convergence.apply(
            [
                {
                    "apiVersion": "v1",
                    "kind": "Service",
                    "metadata": {
                        "name": "jaeger-prod-query",
                        "namespace": "observability",
                        "finalizers": ["service.kubernetes.io/load-balancer-cleanup"],
                    },
                }
            ]
        )
        fake_cluster.terminating.add("observability")

        report = Recovery(config, tools, convergence=convergence).run()

        steps = _steps(report)
        assert steps["finalizers on namespace observability"] == DeleteOutcome.DELETED
        assert steps["finalizers on service/jaeger-prod-query"] == DeleteOutcome.DELETED
        assert "observability" not in fake_cluster.namespaces


class TestTeardownFinalizers:
    """Tests for namespaces that do not terminate on their own."""

    def test_terminating_namespace_unblocked(self, installed, config, tools):
        installed.terminating.add("ingress-nginx")
        report = Teardown(config, tools).run()

        assert _steps(report)["finalizers on namespace ingress-nginx"] == DeleteOutcome.DELETED
        assert "ingress-nginx" not in installed.namespaces
