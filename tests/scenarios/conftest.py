"""Shared fixtures for user scenario tests."""

from __future__ import annotations

import sys

import httpx
import pytest
from click.testing import CliRunner

from macmagik_cli.main import cli
from tests.mocks import FakeCluster


@pytest.fixture(autouse=True)
def on_macos(monkeypatch):
    monkeypatch.setattr(sys, "platform", "darwin")


@pytest.fixture
def cluster() -> FakeCluster:
    return FakeCluster()


@pytest.fixture
def macmagik(tmp_path, hosts_file, cluster):
    """Run a macmagik command against the fake cluster.

    Usage:
        result = macmagik("setup", "--no-monitoring")
    """
    config_file = tmp_path / "config.yaml"
    config_file.write_text(f"hosts_file: {hosts_file}\nready_timeout: 30\n")
    runner = CliRunner()
    transport = httpx.MockTransport(lambda request: httpx.Response(200))

    def run(*args: str):
        return runner.invoke(
            cli,
            ["--config", str(config_file), "--non-interactive", *args],
            obj={"runner": cluster, "transport": transport},
        )

    return run
