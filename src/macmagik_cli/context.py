"""Objects the CLI commands share through ``ctx.obj``.

``main.cli`` stores the effective ``config`` there. Two optional keys are
the seams for driving the commands without real tools or network:

- ``runner``: a ``CommandRunner``-compatible object used for every
  kubectl/helm/openssl/security call (default: ``CommandRunner``).
- ``transport``: an ``httpx`` transport for the verify HTTPS checks
  (default: httpx's network transport).

Callers pass them as ``cli(obj={"runner": ..., "transport": ...})``.
"""

from __future__ import annotations

import click
import httpx

from .bootstrap.tools import ExternalToolClient
from .config import BootstrapConfig


def get_config(ctx: click.Context) -> BootstrapConfig:
    return ctx.obj["config"]


def get_tools(ctx: click.Context) -> ExternalToolClient:
    """Tool clients for the effective config, using the injected runner if any."""
    return ExternalToolClient.from_config(get_config(ctx), runner=ctx.obj.get("runner"))


def get_transport(ctx: click.Context) -> httpx.BaseTransport | None:
    return ctx.obj.get("transport")
