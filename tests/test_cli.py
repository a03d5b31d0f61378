import json
import logging

import pytest

import cli
from conftest import FakeIptables, RecordingApplier, ScriptedSource
from nmr.firewall import FirewallChainApplier
from nmr.proxy import ReverseProxyApplier, UpstreamTarget
from nmr.reconciler import Reconciler


@pytest.fixture
def captured(monkeypatch):
    seen = {}

    def fake_build_reconciler(cfg):
        seen["cfg"] = cfg
        return Reconciler(seen.get("source", ScriptedSource(["10.0.0.1"])), RecordingApplier())

    monkeypatch.setattr(cli, "build_reconciler", fake_build_reconciler)
    return seen


def test_once_prints_cycle_and_succeeds(captured, capsys):
    assert cli.main(["once"]) == 0
    out = json.loads(capsys.readouterr().out)
    assert out["outcome"] == "applied"
    assert out["fetched"] == ["10.0.0.1"]


def test_once_fails_when_membership_unavailable(captured, unavailable, capsys):
    captured["source"] = ScriptedSource(unavailable)
    assert cli.main(["once"]) == 1
    assert json.loads(capsys.readouterr().out)["outcome"] == "unavailable"


def test_flags_override_environment_settings(captured):
    cli.main(["--kubeconfig", "/tmp/kc", "--applier", "proxy", "--config", "/tmp/u.conf", "--interval", "9", "once"])
    cfg = captured["cfg"]
    assert cfg.kubeconfig == "/tmp/kc"
    assert cfg.applier == "proxy"
    assert cfg.nginx_config == "/tmp/u.conf"
    assert cfg.poll_interval_s == 9


def test_render_firewall_prints_rules(monkeypatch, capsys):
    monkeypatch.setattr(cli, "build_source", lambda cfg: ScriptedSource(["10.0.0.1", "10.0.0.2"]))
    monkeypatch.setattr(cli, "build_applier", lambda cfg: FirewallChainApplier(FakeIptables()))
    assert cli.main(["render"]) == 0
    assert capsys.readouterr().out.splitlines() == [
        "-A mongodb -s 10.0.0.1 -p tcp -m tcp --dport 27017 -j ACCEPT",
        "-A mongodb -s 10.0.0.2 -p tcp -m tcp --dport 27017 -j ACCEPT",
    ]


def test_render_proxy_prints_config_without_writing(monkeypatch, capsys, tmp_path):
    path = tmp_path / "u.conf"
    monkeypatch.setattr(cli, "build_source", lambda cfg: ScriptedSource(["10.0.0.1"]))
    monkeypatch.setattr(
        cli, "build_applier", lambda cfg: ReverseProxyApplier(str(path), [UpstreamTarget("diy", 32016)], None)
    )
    assert cli.main(["render"]) == 0
    assert capsys.readouterr().out.splitlines() == ["upstream diy {", "server 10.0.0.1:32016 weight=100;", "}"]
    assert not path.exists()


def test_render_reports_unavailable_membership(monkeypatch, unavailable):
    monkeypatch.setattr(cli, "build_source", lambda cfg: ScriptedSource(unavailable))
    monkeypatch.setattr(cli, "build_applier", lambda cfg: FirewallChainApplier(FakeIptables()))
    assert cli.main(["render"]) == 1


def test_verbose_flag_configures_debug_logging(captured, monkeypatch):
    levels = []
    monkeypatch.setattr(cli, "configure_logging", levels.append)
    cli.main(["once"])
    cli.main(["-v", "once"])
    assert levels == [logging.INFO, logging.DEBUG]
