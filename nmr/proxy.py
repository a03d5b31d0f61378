from __future__ import annotations

import os
import tempfile
from dataclasses import dataclass
from typing import Callable

from .appliers import RuleApplier, WriteFailed
from .db import log_event
from .health import check_health
from .membership import Snapshot, ip_version
from .reload import Reloader


@dataclass(frozen=True)
class UpstreamTarget:
    name: str
    port: int
    weight: int = 100


def parse_upstreams(raw: str, weight: int = 100) -> list[UpstreamTarget]:
    """Parse ``name:port[,name:port...]`` into targets, keeping declaration order."""
    targets: list[UpstreamTarget] = []
    for item in raw.split(","):
        item = item.strip()
        if not item:
            continue
        name, sep, port = item.rpartition(":")
        if not sep or not name:
            raise ValueError(f"Invalid upstream {item!r}; expected name:port.")
        p = int(port)
        if not 1 <= p <= 65535:
            raise ValueError(f"Invalid upstream port in {item!r}.")
        targets.append(UpstreamTarget(name=name.strip(), port=p, weight=weight))
    return targets


def _host(address: str) -> str:
    return f"[{address}]" if ip_version(address) == 6 else address


def render_upstreams(targets: list[UpstreamTarget], current: Snapshot) -> list[str]:
    lines: list[str] = []
    for t in targets:
        lines.append(f"upstream {t.name} {{")
        for addr in current:
            lines.append(f"server {_host(addr)}:{t.port} weight={t.weight};")
        lines.append("}")
    return lines


def write_atomic(path: str, lines: list[str], mode: int = 0o644) -> None:
    """Replace ``path`` with ``lines`` so readers see the old or the new file, never a mix."""
    directory = os.path.dirname(os.path.abspath(path))
    fd, tmp = tempfile.mkstemp(prefix=".nmr-", suffix=".tmp", dir=directory)
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as f:
            for line in lines:
                f.write(line + "\n")
            f.flush()
            os.fsync(f.fileno())
        os.chmod(tmp, mode)
        os.replace(tmp, path)
    except BaseException:
        try:
            os.unlink(tmp)
        except FileNotFoundError:
            pass
        raise


class ReverseProxyApplier(RuleApplier):
    """Writes nginx upstream blocks for every member and reloads nginx."""

    kind = "proxy"

    def __init__(
        self,
        path: str,
        targets: list[UpstreamTarget],
        reloader: Reloader,
        probe_url: str | None = None,
        probe: Callable[[str], tuple[bool, str, float | None]] = check_health,
    ):
        self.path = path
        self.targets = list(targets)
        self.reloader = reloader
        self.probe_url = probe_url
        self._probe = probe

    def describe(self) -> str:
        names = ", ".join(t.name for t in self.targets)
        return f"nginx upstreams [{names}] -> {self.path}"

    def render(self, current: Snapshot) -> list[str]:
        return render_upstreams(self.targets, current)

    def apply(self, current: Snapshot) -> None:
        log_event("INFO", f"Building upstream file for {len(current)} address(es)", component="proxy")
        lines = self.render(current)
        try:
            write_atomic(self.path, lines)
        except OSError as e:
            raise WriteFailed(f"cannot write {self.path}: {e}") from e
        log_event("INFO", f"Wrote {len(lines)} line(s) to {self.path}", component="proxy")

        # ReloadFailed propagates; the new file stays in place.
        output = self.reloader.reload()
        log_event("INFO", f"Reload completed with: {output or '(no output)'}", component="proxy")

        if self.probe_url:
            ok, msg, latency = self._probe(self.probe_url)
            log_event(
                "INFO" if ok else "WARN",
                f"Proxy probe {self.probe_url}: {msg} ({latency} ms)",
                component="proxy",
            )
