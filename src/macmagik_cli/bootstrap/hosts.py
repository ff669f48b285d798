"""Local DNS aliases via the hosts file."""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path

import structlog

from ..errors import InsufficientPrivilegeError
from .tools import Privileged

logger = structlog.get_logger(__name__)


@dataclass
class HostsEntry:
    """One hostname -> address mapping."""

    hostname: str
    address: str = "127.0.0.1"

    def render(self) -> str:
        return f"{self.address} {self.hostname}"


def _hostnames(line: str) -> list[str]:
    """Hostnames declared on a hosts-file line (comments ignored)."""
    content = line.split("#", 1)[0].split()
    return content[1:] if len(content) > 1 else []


def _strip_names(lines: list[str], match) -> list[str]:
    """Drop matching hostnames; lines left without any hostname go too."""
    kept = []
    for line in lines:
        names = _hostnames(line)
        if not any(match(name) for name in names):
            kept.append(line)
            continue
        remaining = [name for name in names if not match(name)]
        if remaining:
            body, sep, comment = line.partition("#")
            indent = body[: len(body) - len(body.lstrip())]
            rebuilt = indent + " ".join([body.split()[0], *remaining])
            kept.append(f"{rebuilt} {sep}{comment}" if sep else rebuilt)
    return kept


class HostsFileSync:
    """Upsert and strip loopback aliases in the hosts file."""

    def __init__(
        self,
        privileged: Privileged,
        path: str | Path = "/etc/hosts",
        address: str = "127.0.0.1",
    ):
        self.privileged = privileged
        self.path = Path(path)
        self.address = address

    def _read(self) -> list[str]:
        try:
            return self.path.read_text().splitlines()
        except FileNotFoundError:
            return []
        except PermissionError as e:
            raise InsufficientPrivilegeError(f"Cannot read {self.path}: {e}", step="hosts") from e

    def _write(self, lines: list[str]) -> None:
        self.privileged.write_file(self.path, "\n".join(lines) + "\n", step="hosts")

    def entries(self) -> list[HostsEntry]:
        result = []
        for line in self._read():
            parts = line.split("#", 1)[0].split()
            for hostname in parts[1:]:
                result.append(HostsEntry(hostname, parts[0]))
        return result

    def contains(self, hostname: str) -> bool:
        return any(hostname in _hostnames(line) for line in self._read())

    def upsert(self, hostname: str) -> HostsEntry:
        """Ensure exactly one ``<loopback> <hostname>`` line exists.

        Raises:
            InsufficientPrivilegeError: the file cannot be rewritten.
        """
        entry = HostsEntry(hostname, self.address)
        lines = _strip_names(self._read(), lambda name: name == hostname)
        lines.append(entry.render())
        self._write(lines)
        logger.info("hosts.upsert", hostname=hostname, path=str(self.path))
        return entry

    def remove(self, hostname: str) -> bool:
        lines = self._read()
        kept = _strip_names(lines, lambda name: name == hostname)
        if kept == lines:
            return False
        self._write(kept)
        return True

    def remove_all(self, domain_suffix: str) -> int:
        """Strip every subdomain of ``domain_suffix``.

        The bare apex stays: Docker Desktop maps it for its own API server.

        Returns:
            Number of removed entries.
        """

        def matches(name: str) -> bool:
            return name.endswith(f".{domain_suffix}")

        lines = self._read()
        removed = sum(1 for line in lines for name in _hostnames(line) if matches(name))
        if removed:
            self._write(_strip_names(lines, matches))
        logger.info("hosts.remove_all", suffix=domain_suffix, removed=removed)
        return removed
