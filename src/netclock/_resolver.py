"""Host-list loading and host-name resolution.

Provides:

- :data:`DEFAULT_HOSTS` — built-in pool.ntp.org zones used when no host
  list is configured.  Global, country, and continental zones are mixed
  so an outage in one region cannot empty the pool.
- :func:`parse_host_list` / :func:`load_host_list` — the ``ntp.hosts``
  file format: one name per line, skipping empty lines and lines whose
  first character is ``#`` or whitespace.
- :class:`ResolverPort` and :class:`SystemResolver` — asynchronous
  resolution through the event loop's ``getaddrinfo``.
"""

from __future__ import annotations

import asyncio
import logging
import socket
from collections.abc import Iterable
from pathlib import Path
from typing import Protocol, runtime_checkable

from netclock._errors import ResolutionError

logger = logging.getLogger(__name__)

DEFAULT_HOSTS: tuple[str, ...] = (
    "0.pool.ntp.org",
    "0.uk.pool.ntp.org",
    "0.us.pool.ntp.org",
    "asia.pool.ntp.org",
    "europe.pool.ntp.org",
    "north-america.pool.ntp.org",
    "south-america.pool.ntp.org",
    "oceania.pool.ntp.org",
    "africa.pool.ntp.org",
)

NTP_PORT = 123


def is_host_entry(line: str) -> bool:
    """Whether *line* names a host (not blank, comment, or indented)."""
    return bool(line) and not line[0].isspace() and line[0] != "#"


def parse_host_list(lines: Iterable[str]) -> list[str]:
    """Filter raw lines down to host names, trailing whitespace stripped."""
    return [line.rstrip() for line in lines if is_host_entry(line)]


def load_host_list(path: str | Path | None = None) -> list[str]:
    """Read host names from *path*, or return :data:`DEFAULT_HOSTS`.

    A missing or unreadable file falls back to the defaults.  An
    existing file is used as-is, even if it names no hosts.
    """
    if path is None:
        return list(DEFAULT_HOSTS)

    try:
        text = Path(path).read_text(encoding="utf-8")
    except FileNotFoundError:
        logger.info("Host list %s not found, using built-in servers", path)
        return list(DEFAULT_HOSTS)
    except OSError:
        logger.warning("Cannot read host list %s, using built-in servers", path)
        return list(DEFAULT_HOSTS)

    hosts = parse_host_list(text.splitlines())
    if not hosts:
        logger.warning("Host list %s names no hosts", path)
    return hosts


@runtime_checkable
class ResolverPort(Protocol):
    """Port contract for host-name resolution."""

    async def resolve(self, host: str) -> list[str]:
        """Return the addresses of *host*.

        Raises:
            ResolutionError: When the name cannot be resolved.
        """
        ...


class SystemResolver:
    """Resolve through ``loop.getaddrinfo`` (the platform resolver).

    Args:
        port: Service port passed to ``getaddrinfo``.
        family: ``socket.AF_UNSPEC`` (default), ``AF_INET`` or
            ``AF_INET6``.
    """

    def __init__(
        self,
        *,
        port: int = NTP_PORT,
        family: socket.AddressFamily = socket.AF_UNSPEC,
    ) -> None:
        self._port = port
        self._family = family

    async def resolve(self, host: str) -> list[str]:
        """Return unique addresses of *host* in resolver order."""
        loop = asyncio.get_running_loop()
        try:
            infos = await loop.getaddrinfo(
                host,
                self._port,
                family=self._family,
                type=socket.SOCK_DGRAM,
                proto=socket.IPPROTO_UDP,
            )
        except OSError as exc:
            raise ResolutionError(host, str(exc)) from exc

        addresses = dict.fromkeys(str(info[4][0]) for info in infos)
        return list(addresses)
