"""Scenario tests for macmagik-cli.

End-to-end user journeys driven through the CLI against a FakeCluster:
setup, verify, cleanup and recovery in the order a developer runs them.
"""
