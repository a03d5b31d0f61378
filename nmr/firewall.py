from __future__ import annotations

import os
import subprocess
from typing import Callable

from .appliers import ChainOpFailed, RuleApplier
from .db import log_event
from .membership import Snapshot, ip_version


class IptablesError(Exception):
    pass


class Iptables:
    """Thin wrapper around the iptables / iptables-restore binaries."""

    def __init__(
        self,
        binary: str = "iptables",
        timeout_s: float = 30,
        runner: Callable[..., subprocess.CompletedProcess] = subprocess.run,
    ):
        self.binary = binary
        self.restore_binary = f"{binary}-restore"
        self.timeout_s = timeout_s
        self._runner = runner
        self.ip_version = 6 if os.path.basename(binary).startswith("ip6") else 4

    def _run(self, cmd: list[str], stdin: str | None = None) -> str:
        try:
            cp = self._runner(cmd, input=stdin, capture_output=True, text=True, timeout=self.timeout_s)
        except subprocess.TimeoutExpired as e:
            raise IptablesError(f"{' '.join(cmd)} timed out after {self.timeout_s}s") from e
        except OSError as e:
            raise IptablesError(f"{' '.join(cmd)} could not run: {e}") from e
        if cp.returncode != 0:
            raise IptablesError(f"{' '.join(cmd)} exited with {cp.returncode}: {(cp.stderr or '').strip()}")
        return cp.stdout or ""

    def _ipt(self, table: str, *args: str) -> str:
        return self._run([self.binary, "-w", "-t", table, *args])

    def chain_exists(self, table: str, chain: str) -> bool:
        for line in self._ipt(table, "-S").splitlines():
            parts = line.split()
            if len(parts) >= 2 and parts[0] in {"-N", "-P"} and parts[1] == chain:
                return True
        return False

    def new_chain(self, table: str, chain: str) -> None:
        self._ipt(table, "-N", chain)

    def clear_chain(self, table: str, chain: str) -> None:
        self._ipt(table, "-F", chain)

    def append(self, table: str, chain: str, *rulespec: str) -> None:
        self._ipt(table, "-A", chain, *rulespec)

    def list_rules(self, table: str, chain: str) -> list[str]:
        return [line for line in self._ipt(table, "-S", chain).splitlines() if line.strip()]

    def replace_chain(self, table: str, chain: str, rules: list[list[str]]) -> None:
        """Create or flush ``chain`` and fill it with ``rules`` in one transaction.

        With --noflush, declaring the chain flushes only that chain; the rest
        of the table is untouched and the whole payload commits atomically.
        """
        lines = [f"*{table}", f":{chain} - [0:0]"]
        lines.extend(" ".join(["-A", chain, *rule]) for rule in rules)
        lines.append("COMMIT")
        self._run([self.restore_binary, "--noflush"], stdin="\n".join(lines) + "\n")


class FirewallChainApplier(RuleApplier):
    """Keeps one iptables chain holding an ACCEPT rule per member address."""

    kind = "firewall"

    def __init__(
        self,
        ipt: Iptables,
        table: str = "filter",
        chain: str = "mongodb",
        protocol: str = "tcp",
        dport: int = 27017,
        atomic: bool = True,
    ):
        self.ipt = ipt
        self.table = table
        self.chain = chain
        self.protocol = protocol
        self.dport = int(dport)
        self.atomic = atomic

    def describe(self) -> str:
        mode = "atomic" if self.atomic else "stepwise"
        return f"firewall chain {self.table}/{self.chain} {self.protocol}/{self.dport} ({mode})"

    def _rule(self, address: str) -> list[str]:
        return ["-s", address, "-p", self.protocol, "-m", self.protocol, "--dport", str(self.dport), "-j", "ACCEPT"]

    def _eligible(self, current: Snapshot) -> list[str]:
        return [a for a in current if ip_version(a) == self.ipt.ip_version]

    def render(self, current: Snapshot) -> list[list[str]]:
        return [self._rule(a) for a in self._eligible(current)]

    def apply(self, current: Snapshot) -> None:
        skipped = len(current) - len(self._eligible(current))
        if skipped:
            log_event(
                "WARN",
                f"Skipping {skipped} address(es) not matching IPv{self.ipt.ip_version} for {self.ipt.binary}",
                component="firewall",
            )
        rules = self.render(current)
        log_event("INFO", f"Building {self.chain} chain with {len(rules)} rule(s)", component="firewall")
        if self.atomic:
            try:
                self.ipt.replace_chain(self.table, self.chain, rules)
            except IptablesError as e:
                raise ChainOpFailed(str(e)) from e
        else:
            self._apply_stepwise(rules)
        self._log_rules()

    def _apply_stepwise(self, rules: list[list[str]]) -> None:
        """Clear-or-create then append, one command at a time.

        A failure mid-way leaves the chain partially populated; every step is
        still attempted and the apply fails afterwards so the next cycle
        rebuilds the chain from scratch.
        """
        errors: list[str] = []

        try:
            exists = self.ipt.chain_exists(self.table, self.chain)
        except IptablesError as e:
            errors.append(str(e))
            exists = False

        try:
            if exists:
                self.ipt.clear_chain(self.table, self.chain)
            else:
                self.ipt.new_chain(self.table, self.chain)
        except IptablesError as e:
            errors.append(str(e))

        for rule in rules:
            try:
                self.ipt.append(self.table, self.chain, *rule)
            except IptablesError as e:
                errors.append(str(e))

        for err in errors:
            log_event("ERROR", err, component="firewall")
        if errors:
            raise ChainOpFailed(f"{len(errors)} chain operation(s) failed, first: {errors[0]}")

    def _log_rules(self) -> None:
        try:
            rules = self.ipt.list_rules(self.table, self.chain)
        except IptablesError as e:
            log_event("WARN", f"Could not list {self.chain} rules: {e}", component="firewall")
            return
        for r in rules:
            log_event("DEBUG", f"Configured rule: {r}", component="firewall")
