"""Test mocks for macmagik-cli.

Provides mock implementations for testing:
- FakeCluster: Simulates kubectl, helm, openssl and the macOS keychain
"""

from .fake_cluster import FakeCluster

__all__ = ["FakeCluster"]
