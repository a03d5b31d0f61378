from __future__ import annotations

from .appliers import RuleApplier
from .firewall import FirewallChainApplier, Iptables
from .kube import KubeMemberSource
from .proxy import ReverseProxyApplier, parse_upstreams
from .reconciler import Reconciler
from .reload import DockerReloader, Reloader, SystemctlReloader
from .runtime import RuntimeState
from .settings import Settings


def build_source(cfg: Settings) -> KubeMemberSource:
    return KubeMemberSource(
        annotation_key=cfg.annotation_key,
        kubeconfig=cfg.kubeconfig or None,
        timeout_s=cfg.fetch_timeout_s,
    )


def build_reloader(cfg: Settings) -> Reloader:
    if cfg.reloader == "systemctl":
        return SystemctlReloader(cfg.systemctl, cfg.reload_service, timeout_s=cfg.apply_timeout_s)
    if cfg.reloader == "docker":
        return DockerReloader(cfg.nginx_container, timeout_s=cfg.apply_timeout_s)
    raise ValueError(f"Unknown reloader {cfg.reloader!r}; use systemctl or docker.")


def build_applier(cfg: Settings) -> RuleApplier:
    if cfg.applier == "firewall":
        return FirewallChainApplier(
            Iptables(cfg.ipt_binary, timeout_s=cfg.apply_timeout_s),
            table=cfg.ipt_table,
            chain=cfg.ipt_chain,
            protocol=cfg.ipt_protocol,
            dport=cfg.ipt_dport,
            atomic=cfg.ipt_atomic,
        )
    if cfg.applier == "proxy":
        return ReverseProxyApplier(
            cfg.nginx_config,
            parse_upstreams(cfg.upstreams, weight=cfg.upstream_weight),
            build_reloader(cfg),
            probe_url=cfg.proxy_probe_url,
        )
    raise ValueError(f"Unknown applier {cfg.applier!r}; use firewall or proxy.")


def build_reconciler(cfg: Settings, runtime: RuntimeState | None = None) -> Reconciler:
    return Reconciler(build_source(cfg), build_applier(cfg), interval_s=cfg.poll_interval_s, runtime=runtime)
