import dataclasses
import subprocess

import pytest
from kubernetes.client import V1Node, V1NodeList, V1ObjectMeta

from nmr import db
from nmr.appliers import ApplyFailed, RuleApplier
from nmr.firewall import IptablesError
from nmr.kube import SourceUnavailable

ANNOTATION = "projectcalico.org/IPv4Address"


@pytest.fixture(autouse=True)
def event_db(tmp_path, monkeypatch):
    """Point the event log at an isolated sqlite file for every test."""
    cfg = dataclasses.replace(db.settings, db_path=str(tmp_path / "events.db"))
    monkeypatch.setattr(db, "settings", cfg)
    db.init_db()
    return cfg


def make_node(name, address=None, key=ANNOTATION, extra=None):
    annotations = dict(extra or {})
    if address is not None:
        annotations[key] = address
    return V1Node(metadata=V1ObjectMeta(name=name, annotations=annotations or None))


class FakeCoreApi:
    def __init__(self, nodes=None, error=None):
        self.nodes = list(nodes or [])
        self.error = error
        self.calls = []

    def list_node(self, **kwargs):
        self.calls.append(kwargs)
        if self.error is not None:
            raise self.error
        return V1NodeList(items=list(self.nodes))


class FakeIptables:
    """In-memory chains keyed by (table, chain)."""

    ip_version = 4
    binary = "iptables"

    def __init__(self, fail_on=None):
        self.chains = {}
        self.fail_on = set(fail_on or [])
        self.ops = []

    def _check(self, op, *args):
        self.ops.append((op, *args))
        if op in self.fail_on or (op, *args) in self.fail_on:
            raise IptablesError(f"{op} failed")

    def chain_exists(self, table, chain):
        self._check("chain_exists")
        return (table, chain) in self.chains

    def new_chain(self, table, chain):
        self._check("new_chain")
        self.chains[(table, chain)] = []

    def clear_chain(self, table, chain):
        self._check("clear_chain")
        self.chains[(table, chain)] = []

    def append(self, table, chain, *rulespec):
        self._check("append", *rulespec)
        self.chains.setdefault((table, chain), []).append(list(rulespec))

    def list_rules(self, table, chain):
        self._check("list_rules")
        return [" ".join(["-A", chain, *r]) for r in self.chains.get((table, chain), [])]

    def replace_chain(self, table, chain, rules):
        self._check("replace_chain")
        self.chains[(table, chain)] = [list(r) for r in rules]


class FakeRunner:
    """Stands in for subprocess.run; replies are consumed in order, the last one repeats."""

    def __init__(self, *replies):
        self.replies = list(replies) or [(0, "", "")]
        self.calls = []

    def __call__(self, cmd, **kwargs):
        self.calls.append((cmd, kwargs))
        reply = self.replies.pop(0) if len(self.replies) > 1 else self.replies[0]
        if isinstance(reply, BaseException):
            raise reply
        code, out, err = reply
        return subprocess.CompletedProcess(cmd, code, stdout=out, stderr=err)


class FakeReloader:
    def __init__(self, error=None, output="ok"):
        self.error = error
        self.output = output
        self.calls = 0

    def reload(self):
        self.calls += 1
        if self.error is not None:
            raise self.error
        return self.output


class ScriptedSource:
    """Returns the scripted snapshots in order; exceptions in the script are raised."""

    def __init__(self, *script):
        self.script = list(script)
        self.calls = 0

    def fetch(self):
        self.calls += 1
        item = self.script.pop(0) if len(self.script) > 1 else self.script[0]
        if isinstance(item, BaseException):
            raise item
        return tuple(item)


class RecordingApplier(RuleApplier):
    kind = "recording"

    def __init__(self, failures=0, error=None):
        self.applied = []
        self.failures = failures
        self.error = error

    def render(self, current):
        return list(current)

    def apply(self, current):
        self.applied.append(tuple(current))
        if self.error is not None:
            raise self.error
        if self.failures > 0:
            self.failures -= 1
            raise ApplyFailed("downstream refused")


@pytest.fixture
def unavailable():
    return SourceUnavailable("listing nodes failed: HTTP 503 Service Unavailable")
