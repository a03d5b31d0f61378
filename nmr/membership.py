from __future__ import annotations

import ipaddress
from typing import Iterable

# Canonical address strings in discovery order.
Snapshot = tuple[str, ...]


def parse_annotation(value: str) -> str:
    """Return the canonical address of an ``address[/prefix]`` annotation value.

    Raises ValueError when the address part is not an IPv4/IPv6 address.
    """
    raw = (value or "").strip().split("/", 1)[0]
    if not raw:
        raise ValueError(f"empty address in annotation value {value!r}")
    return str(ipaddress.ip_address(raw))


def dedup(addresses: Iterable[str]) -> Snapshot:
    """Drop repeated addresses, keeping the first occurrence."""
    seen: set[str] = set()
    out: list[str] = []
    for a in addresses:
        if a in seen:
            continue
        seen.add(a)
        out.append(a)
    return tuple(out)


def differs(previous: Snapshot, current: Snapshot) -> bool:
    """True when the two snapshots do not hold the same addresses.

    Order is ignored. Snapshots are expected to be duplicate-free
    (``KubeMemberSource`` dedups at fetch time).
    """
    if len(previous) != len(current):
        return True
    for addr in previous:
        if not any(addr == other for other in current):
            return True
    return False


def ip_version(address: str) -> int:
    return ipaddress.ip_address(address).version
