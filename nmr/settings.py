from __future__ import annotations

import os
from dataclasses import dataclass


def _env_bool(name: str, default: bool = False) -> bool:
    raw = os.getenv(name)
    if raw is None:
        return default
    return raw.strip().lower() in {"1", "true", "yes", "y", "on"}


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None:
        return default
    try:
        return int(raw)
    except ValueError:
        return default


def _default_kubeconfig() -> str:
    home = os.path.expanduser("~")
    if home and home != "~":
        return os.path.join(home, ".kube", "config")
    return ""


@dataclass(frozen=True)
class Settings:
    # Core
    db_path: str = os.getenv("NMR_DB_PATH", "nmr.db")
    poll_interval_s: int = _env_int("NMR_POLL_INTERVAL_S", 5)
    applier: str = os.getenv("NMR_APPLIER", "firewall")  # firewall|proxy

    # Discovery
    kubeconfig: str = os.getenv("NMR_KUBECONFIG", _default_kubeconfig())
    annotation_key: str = os.getenv("NMR_ANNOTATION_KEY", "projectcalico.org/IPv4Address")
    fetch_timeout_s: int = _env_int("NMR_FETCH_TIMEOUT_S", 10)
    apply_timeout_s: int = _env_int("NMR_APPLY_TIMEOUT_S", 30)

    # Firewall chain
    ipt_binary: str = os.getenv("NMR_IPT_BINARY", "iptables")
    ipt_table: str = os.getenv("NMR_IPT_TABLE", "filter")
    ipt_chain: str = os.getenv("NMR_IPT_CHAIN", "mongodb")
    ipt_protocol: str = os.getenv("NMR_IPT_PROTOCOL", "tcp")
    ipt_dport: int = _env_int("NMR_IPT_DPORT", 27017)
    ipt_atomic: bool = _env_bool("NMR_IPT_ATOMIC", True)

    # Reverse proxy
    nginx_config: str = os.getenv("NMR_NGINX_CONFIG", "/etc/nginx/upstreams/upstreams.conf")
    upstreams: str = os.getenv("NMR_UPSTREAMS", "diy:32016,dockerui:32018,tryingadventure:32020,monitor:32699")
    upstream_weight: int = _env_int("NMR_UPSTREAM_WEIGHT", 100)
    reloader: str = os.getenv("NMR_RELOADER", "systemctl")  # systemctl|docker
    systemctl: str = os.getenv("NMR_SYSTEMCTL", "/bin/systemctl")
    reload_service: str = os.getenv("NMR_RELOAD_SERVICE", "nginx")
    nginx_container: str = os.getenv("NMR_NGINX_CONTAINER", "nginx")
    proxy_probe_url: str | None = os.getenv("NMR_PROXY_PROBE_URL")

    # Email alerting (optional)
    enable_email: bool = _env_bool("NMR_ENABLE_EMAIL", False)
    smtp_host: str = os.getenv("NMR_SMTP_HOST", "smtp.gmail.com")
    smtp_port: int = _env_int("NMR_SMTP_PORT", 587)
    smtp_user: str | None = os.getenv("NMR_SMTP_USER")
    smtp_password: str | None = os.getenv("NMR_SMTP_PASSWORD")
    email_from: str | None = os.getenv("NMR_EMAIL_FROM")
    email_to: str | None = os.getenv("NMR_EMAIL_TO")


settings = Settings()
