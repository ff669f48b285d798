"""Shared test fixtures for macmagik-cli tests.

This module provides fixtures for exercising the bootstrap flow without a
real cluster:
- fake_cluster: FakeCluster interpreting kubectl/helm/openssl/security calls
- clock / poller: fake monotonic clock so readiness waits never sleep
- config: BootstrapConfig pointing at a temporary hosts file
"""

from __future__ import annotations

from pathlib import Path

import pytest

from macmagik_cli.bootstrap import ExternalToolClient, ReadinessPoller
from macmagik_cli.config import BootstrapConfig
from tests.mocks import FakeCluster


class FakeClock:
    """Monotonic clock advanced only by its own sleep."""

    def __init__(self) -> None:
        self.now = 0.0
        self.sleeps: list[float] = []

    def __call__(self) -> float:
        return self.now

    def sleep(self, seconds: float) -> None:
        self.sleeps.append(seconds)
        self.now += seconds


@pytest.fixture(autouse=True)
def tools_on_path(monkeypatch):
    """Pretend kubectl, helm and openssl are installed."""
    monkeypatch.setattr("shutil.which", lambda name: f"/usr/local/bin/{name}")


@pytest.fixture
def fake_cluster() -> FakeCluster:
    return FakeCluster()


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def poller(clock: FakeClock) -> ReadinessPoller:
    return ReadinessPoller(
        timeout_seconds=30,
        interval_seconds=1,
        clock=clock,
        sleep=clock.sleep,
    )


@pytest.fixture
def hosts_file(tmp_path: Path) -> Path:
    path = tmp_path / "hosts"
    path.write_text("127.0.0.1 localhost\n255.255.255.255 broadcasthost\n")
    return path


@pytest.fixture
def config(hosts_file: Path) -> BootstrapConfig:
    return BootstrapConfig(hosts_file=str(hosts_file), ready_timeout=30, non_interactive=True)


@pytest.fixture
def tools(fake_cluster: FakeCluster) -> ExternalToolClient:
    return ExternalToolClient.create(
        runner=fake_cluster,
        platform_name="darwin",
        interactive=False,
    )
