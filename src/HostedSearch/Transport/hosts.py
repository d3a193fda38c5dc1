# === NAVMAP v1 ===
# {
#   "module": "HostedSearch.Transport.hosts",
#   "purpose": "Role-scoped host lists and eligibility filtering.",
#   "sections": [
#     {"id": "hostpool", "name": "HostPool", "anchor": "class-hostpool", "kind": "class"},
#     {"id": "default-hosts", "name": "default_hosts", "anchor": "function-default-hosts", "kind": "function"}
#   ]
# }
# === /NAVMAP ===

"""Role-scoped host lists.

Each client holds two ordered host lists: one for read operations (search,
object retrieval) and one for write operations (indexing, administration).
Order matters: the first host is the primary; the remaining hosts are
fallbacks tried in sequence.

Default hosts
-------------
Without explicit hosts, a client targets a load-balanced primary host plus
three fallback hosts derived from the application ID. The fallbacks are
shuffled once per pool so that many clients failing over at the same time
spread across them instead of all hitting the same one.

Concurrency
-----------
Reconfiguration replaces the stored tuple atomically; dispatches already in
flight keep the list they obtained (last write wins).
"""

from __future__ import annotations

import logging
import random
from typing import Iterable, List, Optional, Sequence, Tuple

from .errors import ConfigurationError
from .health import HostHealthTracker
from .types import HostRole

LOGGER = logging.getLogger(__name__)

READ_PRIMARY_TEMPLATE = "{app_id}-dsn.algolia.net"
WRITE_PRIMARY_TEMPLATE = "{app_id}.algolia.net"
FALLBACK_TEMPLATES = (
    "{app_id}-1.algolianet.com",
    "{app_id}-2.algolianet.com",
    "{app_id}-3.algolianet.com",
)


def default_hosts(
    application_id: str, rng: Optional[random.Random] = None
) -> Tuple[List[str], List[str]]:
    """Build the default ``(read_hosts, write_hosts)`` for an application.

    Args:
        application_id: Application identifier used to derive host names.
        rng: Random source used to shuffle the fallbacks (tests pass a seeded one).

    Returns:
        Read and write host lists sharing the same shuffled fallback order.
    """
    if not application_id:
        raise ConfigurationError("application_id is required to derive default hosts")
    fallbacks = [t.format(app_id=application_id) for t in FALLBACK_TEMPLATES]
    (rng or random).shuffle(fallbacks)
    read_hosts = [READ_PRIMARY_TEMPLATE.format(app_id=application_id), *fallbacks]
    write_hosts = [WRITE_PRIMARY_TEMPLATE.format(app_id=application_id), *fallbacks]
    return read_hosts, write_hosts


def _validated(hosts: Iterable[str], role: HostRole) -> Tuple[str, ...]:
    if isinstance(hosts, str):
        hosts = [hosts]
    cleaned = tuple(hosts)
    if not cleaned:
        raise ConfigurationError(f"{role.value} hosts cannot be empty")
    for host in cleaned:
        if not isinstance(host, str) or not host.strip():
            raise ConfigurationError(f"invalid {role.value} host: {host!r}")
    return cleaned


class HostPool:
    """Ordered read/write host lists with down-host filtering."""

    def __init__(self, read_hosts: Sequence[str], write_hosts: Sequence[str]) -> None:
        self._read_hosts = _validated(read_hosts, HostRole.READ)
        self._write_hosts = _validated(write_hosts, HostRole.WRITE)

    @classmethod
    def default(cls, application_id: str, rng: Optional[random.Random] = None) -> "HostPool":
        read_hosts, write_hosts = default_hosts(application_id, rng)
        return cls(read_hosts, write_hosts)

    # ── Configuration ─────────────────────────────────────────────────────

    @property
    def read_hosts(self) -> Tuple[str, ...]:
        return self._read_hosts

    @property
    def write_hosts(self) -> Tuple[str, ...]:
        return self._write_hosts

    def set_read_hosts(self, hosts: Iterable[str]) -> None:
        self._read_hosts = _validated(hosts, HostRole.READ)
        LOGGER.debug("Read hosts set: %s", self._read_hosts)

    def set_write_hosts(self, hosts: Iterable[str]) -> None:
        self._write_hosts = _validated(hosts, HostRole.WRITE)
        LOGGER.debug("Write hosts set: %s", self._write_hosts)

    def set_hosts(self, hosts: Iterable[str]) -> None:
        """Use the same hosts for reads and writes."""
        hosts = _validated(hosts, HostRole.READ)
        self._read_hosts = hosts
        self._write_hosts = hosts

    def configure(
        self,
        read_hosts: Optional[Iterable[str]] = None,
        write_hosts: Optional[Iterable[str]] = None,
    ) -> None:
        """Replace either or both host lists; both are validated before either is applied."""
        new_read = _validated(read_hosts, HostRole.READ) if read_hosts is not None else None
        new_write = _validated(write_hosts, HostRole.WRITE) if write_hosts is not None else None
        if new_read is not None:
            self._read_hosts = new_read
        if new_write is not None:
            self._write_hosts = new_write

    def hosts_for(self, role: HostRole) -> Tuple[str, ...]:
        return self._read_hosts if role is HostRole.READ else self._write_hosts

    # ── Selection ─────────────────────────────────────────────────────────

    def eligible_hosts(
        self, role: HostRole, tracker: HostHealthTracker, cool_down_ms: float
    ) -> List[str]:
        """Return the role's hosts that are up or past their cool-down.

        If every host is currently marked down, the full list is returned so
        that a dispatch always has something to try.
        """
        hosts = self.hosts_for(role)
        up = [host for host in hosts if tracker.is_eligible(host, cool_down_ms)]
        if not up:
            LOGGER.debug("All %s hosts marked down; trying full list", role.value)
            return list(hosts)
        return up

    def __repr__(self) -> str:
        return f"HostPool(read={list(self._read_hosts)}, write={list(self._write_hosts)})"


__all__ = ["HostPool", "default_hosts"]
